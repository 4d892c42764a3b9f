"""In-memory remote backend and row builders shared by the tests."""
import time

from remote_backend import NO_ROWS, RemoteBackend, RemoteBackendError


def trade_row(trade_id, account, profit, trade_date="2026-10-19", user_id="user-1", **extra):
    """A trades row as the remote backend returns it."""
    row = {
        "user_id": user_id,
        "trade_id": trade_id,
        "account_name": account,
        "symbol": "NQ",
        "side": "Long",
        "quantity": 1,
        "price": 20000.0,
        "points": 0,
        "profit": profit,
        "trade_date": trade_date,
        "trade_timestamp": f"{trade_date}T09:31:00",
    }
    row.update(extra)
    return row


def withdrawal_row(row_id, account, amount, withdrawal_date="2026-10-19", user_id="user-1"):
    return {
        "id": row_id,
        "user_id": user_id,
        "account_name": account,
        "amount": amount,
        "withdrawal_date": withdrawal_date,
        "description": "",
    }


class FakeBackend(RemoteBackend):
    """
    Dict-of-lists backend.
    down: every call fails; broken: tables whose reads fail; delay: seconds slept per call.
    """

    name = "fake"

    def __init__(self, tables=None):
        self.tables = {table: [dict(r) for r in rows] for table, rows in (tables or {}).items()}
        self.users = {}
        self.down = False
        self.broken = set()
        self.delay = 0
        self.calls = []
        self._next_id = 1000

    def _check(self, op, table=None):
        self.calls.append((op, table))
        if self.delay:
            time.sleep(self.delay)
        if self.down:
            raise RemoteBackendError("connection refused")

    def count(self, op, table=None):
        return len([c for c in self.calls if c[0] == op and (table is None or c[1] == table)])

    def fetch_user(self, user_id):
        self._check("fetch_user", "users")
        if user_id not in self.users:
            raise RemoteBackendError("JSON object requested, multiple (or no) rows returned", code=NO_ROWS)
        return self.users[user_id]

    def create_user(self, user_id, email=""):
        self._check("create_user", "users")
        self.users[user_id] = {"id": user_id, "email": email}
        return self.users[user_id]

    def fetch_rows(self, table, user_id, limit=None):
        self._check("fetch_rows", table)
        if table in self.broken:
            raise RemoteBackendError(f"relation {table} is unavailable")
        rows = [dict(r) for r in self.tables.get(table, []) if r.get("user_id") == user_id]
        return rows[:limit] if limit else rows

    def insert_rows(self, table, rows):
        self._check("insert_rows", table)
        stored = []
        for row in rows:
            row = dict(row)
            if "id" not in row:
                self._next_id += 1
                row["id"] = self._next_id
            self.tables.setdefault(table, []).append(row)
            stored.append(dict(row))
        return stored

    def upsert_row(self, table, row, on_conflict):
        self._check("upsert_row", table)
        rows = self.tables.setdefault(table, [])
        for existing in rows:
            if all(existing.get(k) == row[k] for k in on_conflict):
                existing.update(row)
                return dict(existing)
        rows.append(dict(row))
        return dict(row)

    def update_row(self, table, user_id, row_id, values):
        self._check("update_row", table)
        for existing in self.tables.get(table, []):
            if existing.get("user_id") == user_id and existing.get("id") == row_id:
                existing.update(values)
                return dict(existing)
        raise RemoteBackendError(f"No {table} row {row_id}", code=NO_ROWS)

    def delete_rows(self, table, user_id, row_id=None):
        self._check("delete_rows", table)
        rows = self.tables.get(table, [])
        keep = [r for r in rows
                if r.get("user_id") != user_id or (row_id is not None and r.get("id") != row_id)]
        self.tables[table] = keep
        return len(rows) - len(keep)

    def ping(self):
        self._check("ping")
        return True
