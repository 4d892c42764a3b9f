"""
Local Storage
Single JSON snapshot of the portal state, kept on this machine as an
offline cache and backup of whatever the remote backend holds.
"""
import json
import logging
import os

import config
from trading_state import snapshot


class LocalStore:
    """Key-value style blob storage: one file per key under DATA_DIR"""

    def __init__(self, data_dir=None, key=None):
        self.data_dir = data_dir or config.DATA_DIR
        self.key = key or config.LOCAL_STORAGE_KEY
        os.makedirs(self.data_dir, exist_ok=True)

    @property
    def path(self):
        return os.path.join(self.data_dir, f"{self.key}.json")

    def exists(self):
        return os.path.exists(self.path)

    def load(self):
        """Return the saved snapshot dict, or None if missing/unreadable"""
        if not self.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logging.error(f"[LocalStore] Failed to load local data: {e}")
            return None
        if not isinstance(data, dict):
            logging.error("[LocalStore] Local data is not an object, ignoring it")
            return None
        return data

    def save(self, state):
        """Write the persisted fields of state (loading/error are left out)"""
        tmp_path = self.path + ".tmp"
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(snapshot(state), f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
            return True
        except (OSError, TypeError, ValueError) as e:
            logging.error(f"[LocalStore] Failed to save local data: {e}")
            return False

    def clear(self):
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass
