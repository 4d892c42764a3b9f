from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
import logging
import os

import config

Base = declarative_base()


def normalize_url(url):
    """Clean up a DATABASE_URL (whitespace, legacy postgres:// scheme)."""
    url = (url or "").strip()
    # Railway/Heroku style URLs
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


def make_engine(url=None):
    url = normalize_url(url or config.DATABASE_URL)
    if not url:
        raise ValueError("DATABASE_URL is empty")

    # Log connection attempt (redacted)
    safe_url = url.split("@")[-1] if "@" in url else "local/sqlite"
    logging.info(f"[DATABASE] Connecting to: ...@{safe_url}")

    if url.startswith("sqlite:///"):
        db_file = url[len("sqlite:///"):]
        if db_file and db_file != ":memory:":
            os.makedirs(os.path.dirname(os.path.abspath(db_file)), exist_ok=True)
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True)


def make_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine):
    """Create all tables if they don't exist"""
    import models  # noqa: F401  (registers tables on Base)
    Base.metadata.create_all(bind=engine)

