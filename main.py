from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
import uvicorn
from sqlalchemy.exc import SQLAlchemyError
import asyncio
import logging

import config
import health  # Healthcheck module
import backup
import trading_portal
from local_store import LocalStore
from remote_backend import make_backend
from sync_coordinator import TradingStore

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

app = FastAPI(title="Trading Portal API")

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include portal routes
app.include_router(trading_portal.router)


def create_store():
    """One store per process: configured remote backend + local snapshot"""
    try:
        backend = make_backend()
    except (ValueError, SQLAlchemyError) as e:
        logging.error(f"[Startup] Remote backend unavailable, running offline: {e}")
        backend = None
    return TradingStore(backend=backend, local_store=LocalStore())


@app.on_event("startup")
async def startup_event():
    if getattr(app.state, "store", None) is None:
        app.state.store = create_store()
    store = app.state.store

    # Resume the configured user, if any
    if config.DEFAULT_USER_ID:
        asyncio.create_task(store.start_session(config.DEFAULT_USER_ID, config.DEFAULT_USER_EMAIL))

    # Leave offline mode once the backend answers again
    asyncio.create_task(store.connection_monitor_loop())
    logging.info("[Startup] Connection monitor started")


@app.get("/api/health")
def get_health():
    """System health and diagnostics"""
    return health.get_full_health(app.state.store)


# -----------------------------------------------------
# BACKUP ENDPOINTS
# -----------------------------------------------------

@app.post("/api/backups/create")
def create_backup_endpoint():
    result = backup.create_backup(app.state.store.local_store)
    if result.get("status") == "error":
        raise HTTPException(status_code=500, detail=result.get("message"))
    return result


@app.get("/api/backups/list")
def list_backups_endpoint():
    return backup.list_backups()


@app.post("/api/backups/restore/{filename}")
def restore_backup_endpoint(filename: str):
    # Security check: Basic path traversal prevention
    if ".." in filename or "/" in filename or "\\" in filename:
        raise HTTPException(status_code=400, detail="Invalid filename")

    store = app.state.store
    result = backup.restore_backup(filename, store.local_store)
    if result.get("status") == "error":
        raise HTTPException(status_code=500, detail=result.get("message"))

    # Put the restored snapshot into the live state
    store.load_local_backup()
    return result


if __name__ == "__main__":
    uvicorn.run("main:app", host="127.0.0.1", port=8000, reload=True)
