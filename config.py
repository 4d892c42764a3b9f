"""
Configuration module for Trading Portal.
Manages storage locations, remote backend credentials and sync timings.
"""
import os
from dotenv import load_dotenv

load_dotenv(os.path.join(os.path.dirname(__file__), '.env'))

# =============================================================================
# LOCAL STORAGE
# =============================================================================
# Directory holding the local cache blob, the sqlite database and backups
DATA_DIR = os.environ.get("DATA_DIR", os.path.join(os.path.dirname(os.path.abspath(__file__)), "data"))

# Fixed key of the local snapshot (stored as <DATA_DIR>/<key>.json)
LOCAL_STORAGE_KEY = "tradingPortalData"

# =============================================================================
# REMOTE BACKEND
# =============================================================================
# "sql" (SQLAlchemy, DATABASE_URL), "supabase" (PostgREST over HTTP) or "none" (offline only)
REMOTE_BACKEND = os.environ.get("REMOTE_BACKEND", "sql").strip().lower()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///" + os.path.join(DATA_DIR, "trading_portal.db"))

SUPABASE_URL = os.environ.get("SUPABASE_URL", "")
SUPABASE_ANON_KEY = os.environ.get("SUPABASE_ANON_KEY", "")
SUPABASE_ENABLED = bool(SUPABASE_URL and SUPABASE_ANON_KEY)
CLIENT_INFO = "trading-portal@1.0.0"

# =============================================================================
# SYNC POLICY
# =============================================================================
# Initial load gets a longer timeout than the single retry
INITIAL_LOAD_TIMEOUT = float(os.environ.get("INITIAL_LOAD_TIMEOUT", 10))  # seconds
RETRY_LOAD_TIMEOUT = float(os.environ.get("RETRY_LOAD_TIMEOUT", 5))  # seconds
RETRY_DELAY = float(os.environ.get("RETRY_DELAY", 2))  # seconds before the one retry
WRITE_TIMEOUT = float(os.environ.get("WRITE_TIMEOUT", 10))  # seconds per remote mutation
PROBE_TIMEOUT = float(os.environ.get("PROBE_TIMEOUT", 3))  # seconds for a reachability check
PROBE_INTERVAL = float(os.environ.get("PROBE_INTERVAL", 60))  # seconds between probes while offline

# Row limits per remote table on load
LOAD_LIMITS = {
    "trades": 1000,
    "withdrawals": 100,
    "monthly_goals": 50,
    "expenses": 500,
    "incomes": 500,
    "user_settings": 1,
}

# =============================================================================
# TRADING RULES
# =============================================================================
STARTING_BALANCE = 100000.0
DRAWDOWN_BUFFER = 3000.0
PA_DRAWDOWN_CAP = 100100.0
PA_MARKER = "PA"
OFFLINE_ERROR = "Using offline mode - data saved locally"
OFFLINE_EMAIL = "offline@local"

# Backups
BACKUP_DIR = os.environ.get("BACKUP_DIR", os.path.join(DATA_DIR, "backups"))
BACKUP_KEEP = int(os.environ.get("BACKUP_KEEP", 10))

# Optional user to resume on server start (the id comes from the auth provider)
DEFAULT_USER_ID = os.environ.get("DEFAULT_USER_ID", "")
DEFAULT_USER_EMAIL = os.environ.get("DEFAULT_USER_EMAIL", "")
