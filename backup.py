import os
import shutil
import zipfile
import glob
from datetime import datetime
import logging

import config


def _backup_dir():
    os.makedirs(config.BACKUP_DIR, exist_ok=True)
    return config.BACKUP_DIR


def _sqlite_file():
    """Path of the sqlite database when DATABASE_URL points at one"""
    url = config.DATABASE_URL.strip()
    if url.startswith("sqlite:///") and ":memory:" not in url:
        return url[len("sqlite:///"):]
    return None


def create_backup(local_store):
    """Creates a zip backup of the local snapshot (and the sqlite database, if any)"""
    try:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        backup_filename = f"backup_{timestamp}.zip"
        backup_path = os.path.join(_backup_dir(), backup_filename)

        db_file = _sqlite_file()
        with zipfile.ZipFile(backup_path, 'w') as zipf:
            if local_store.exists():
                zipf.write(local_store.path, arcname=os.path.basename(local_store.path))
            if db_file and os.path.exists(db_file):
                zipf.write(db_file, arcname=os.path.basename(db_file))

        # Clean up old backups
        cleanup_backups(config.BACKUP_KEEP)

        return {
            "status": "success",
            "filename": backup_filename,
            "timestamp": timestamp,
            "path": os.path.abspath(backup_path)
        }
    except OSError as e:
        logging.error(f"Backup failed: {e}")
        return {"status": "error", "message": str(e)}


def list_backups():
    """Lists available backups"""
    files = glob.glob(os.path.join(_backup_dir(), "*.zip"))
    backups = []

    for f in files:
        stats = os.stat(f)
        backups.append({
            "filename": os.path.basename(f),
            "size": stats.st_size,
            "created": datetime.fromtimestamp(stats.st_ctime).strftime("%Y-%m-%d %H:%M:%S")
        })

    # Sort by name desc (names carry the timestamp)
    backups.sort(key=lambda x: x['filename'], reverse=True)
    return backups


def restore_backup(filename, local_store):
    """Restores the local snapshot from a specific backup zip"""
    backup_path = os.path.join(_backup_dir(), os.path.basename(filename))
    if not os.path.exists(backup_path):
        return {"status": "error", "message": "Backup file not found"}

    snapshot_name = os.path.basename(local_store.path)
    try:
        with zipfile.ZipFile(backup_path, 'r') as zipf:
            if snapshot_name not in zipf.namelist():
                return {"status": "error", "message": f"{snapshot_name} not in backup"}

            # Keep the current snapshot around just in case
            if local_store.exists():
                stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
                shutil.copy2(local_store.path, f"{local_store.path}.pre_restore_{stamp}.bak")

            zipf.extract(snapshot_name, path=local_store.data_dir)
            # The database is not restored automatically; it may be shared

        return {"status": "success", "message": f"Restored from {filename}"}
    except (OSError, zipfile.BadZipFile) as e:
        return {"status": "error", "message": str(e)}


def cleanup_backups(keep=10):
    """Deletes old backups, keeping only the last N"""
    files = sorted(glob.glob(os.path.join(_backup_dir(), "*.zip")), reverse=True)
    if len(files) > keep:
        for f in files[keep:]:
            try:
                os.remove(f)
                logging.info(f"Deleted old backup: {f}")
            except OSError as e:
                logging.error(f"Error deleting {f}: {e}")
