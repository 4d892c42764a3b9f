import os
import time
from datetime import datetime

import psutil

from remote_backend import RemoteBackendError


def check_local_storage(store):
    """Check that the local snapshot exists and can be read."""
    local = store.local_store
    if not local.exists():
        return {"status": "warning", "message": "No local snapshot yet", "path": local.path}
    data = local.load()
    if data is None:
        return {"status": "error", "message": "Local snapshot is unreadable", "path": local.path}
    return {
        "status": "ok",
        "message": "Local snapshot readable",
        "path": local.path,
        "size_bytes": os.path.getsize(local.path),
        "trades": len(data.get("trades") or []),
    }


def check_remote_backend(store):
    """Verify connectivity to the remote backend via a lightweight query."""
    backend = store.backend
    if backend is None:
        return {"status": "disabled", "message": "Remote backend not configured"}
    try:
        start_time = time.time()
        backend.ping()
        latency = (time.time() - start_time) * 1000
        return {
            "status": "ok",
            "message": f"Connected to {backend.name} backend",
            "latency_ms": round(latency, 2),
        }
    except RemoteBackendError as e:
        return {"status": "error", "message": f"{backend.name} backend unreachable: {str(e)}"}


def check_system_resources():
    """Check server resource usage."""
    try:
        cpu_usage = psutil.cpu_percent(interval=None)
        memory = psutil.virtual_memory()
        disk = psutil.disk_usage('.')

        return {
            "cpu_usage_pct": cpu_usage,
            "ram_usage_pct": memory.percent,
            "ram_available_mb": round(memory.available / (1024 * 1024), 2),
            "disk_free_gb": round(disk.free / (1024 * 1024 * 1024), 2),
            "status": "ok" if memory.percent < 90 and disk.percent < 95 else "warning"
        }
    except (OSError, psutil.Error) as e:
        return {"status": "error", "message": f"Resource check failed: {str(e)}"}


def get_full_health(store):
    """Aggregate all health checks."""
    local = check_local_storage(store)
    remote = check_remote_backend(store)
    resources = check_system_resources()

    # Overall status logic
    # Offline mode still works off the local snapshot, so it only warns
    overall = "ok"
    if local["status"] == "error":
        overall = "error"
    elif store.offline_mode or remote["status"] == "error":
        overall = "warning"
    elif local["status"] == "warning" or resources["status"] != "ok":
        overall = "warning"

    return {
        "timestamp": datetime.now().isoformat(),
        "overall_status": overall,
        "offline_mode": store.offline_mode,
        "components": {
            "local_storage": local,
            "remote_backend": remote,
            "resources": resources
        }
    }
