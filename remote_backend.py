"""
Remote Backend
Table-style CRUD per entity kind, filtered by an opaque user id.
Two implementations share one interface so the store never depends on a
module-level client:
- SqlBackend: SQLAlchemy against the tables in models.py
- SupabaseBackend: PostgREST over HTTP (hosted Postgres with row-level auth)
"""
import logging
from datetime import date, datetime

import requests
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

import config
from database import init_db, make_engine, make_session_factory
from models import TABLES

# PostgREST code for "no rows returned" on single-row requests
NO_ROWS = "PGRST116"


class RemoteBackendError(Exception):
    """Any failure talking to the remote backend (network, HTTP, SQL)."""

    def __init__(self, message, code=None, status=None):
        super().__init__(message)
        self.code = code
        self.status = status


class RemoteBackend:
    """Interface used by the sync coordinator. All calls are blocking."""

    name = "remote"

    def fetch_user(self, user_id):
        raise NotImplementedError

    def create_user(self, user_id, email=""):
        raise NotImplementedError

    def fetch_rows(self, table, user_id, limit=None):
        raise NotImplementedError

    def insert_rows(self, table, rows):
        raise NotImplementedError

    def upsert_row(self, table, row, on_conflict):
        raise NotImplementedError

    def update_row(self, table, user_id, row_id, values):
        raise NotImplementedError

    def delete_rows(self, table, user_id, row_id=None):
        raise NotImplementedError

    def ping(self):
        raise NotImplementedError


# ============================================
# Row mapping (local records -> remote columns)
# ============================================

def trade_to_row(user_id, trade):
    return {
        "user_id": user_id,
        "trade_id": trade.id,
        "account_name": trade.account,
        "symbol": trade.symbol,
        "side": trade.side,
        "quantity": trade.quantity,
        "price": trade.price,
        "points": trade.points,
        "profit": trade.profit,
        "trade_date": trade.date,
        "trade_timestamp": trade.timestamp.isoformat() if trade.timestamp else None,
    }


def withdrawal_to_row(user_id, withdrawal):
    return {
        "user_id": user_id,
        "account_name": withdrawal.account,
        "amount": withdrawal.amount,
        "withdrawal_date": withdrawal.date,
        "description": withdrawal.description,
    }


def goal_to_row(user_id, month, amount):
    return {"user_id": user_id, "month": month, "goal_amount": amount}


def expense_to_row(user_id, expense):
    return {
        "id": expense.id,
        "user_id": user_id,
        "category": expense.category,
        "description": expense.description,
        "amount": expense.amount,
        "due_date": expense.due_date,
        "is_paid": expense.is_paid,
        "is_recurring": expense.is_recurring,
        "created_at": expense.created_at,
    }


def income_to_row(user_id, income):
    return {
        "id": income.id,
        "user_id": user_id,
        "category": income.category,
        "description": income.description,
        "amount": income.amount,
        "income_date": income.date,
        "is_paid": income.is_paid,
        "is_recurring": income.is_recurring,
        "created_at": income.created_at,
    }


def settings_to_row(user_id, current_cash):
    return {"user_id": user_id, "current_cash": current_cash}


# ============================================
# SQLAlchemy backend
# ============================================

def _row_to_dict(obj):
    row = {}
    for column in obj.__table__.columns:
        value = getattr(obj, column.name)
        if isinstance(value, (datetime, date)):
            value = value.isoformat()
        row[column.name] = value
    return row


class SqlBackend(RemoteBackend):
    """Relational backend reached through SQLAlchemy sessions"""

    name = "sql"

    def __init__(self, url=None, engine=None):
        self.engine = engine or make_engine(url)
        init_db(self.engine)
        self._sessions = make_session_factory(self.engine)

    def _run(self, fn):
        with self._sessions() as db:
            try:
                result = fn(db)
                db.commit()
                return result
            except (SQLAlchemyError, TypeError) as e:
                db.rollback()
                raise RemoteBackendError(str(e)) from e

    def _model(self, table):
        try:
            return TABLES[table]
        except KeyError:
            raise RemoteBackendError(f"Unknown table: {table}")

    def fetch_user(self, user_id):
        model = self._model("users")

        def _fetch(db):
            user = db.get(model, user_id)
            return _row_to_dict(user) if user else None
        return self._run(_fetch)

    def create_user(self, user_id, email=""):
        return self.insert_rows("users", [{"id": user_id, "email": email or ""}])[0]

    def fetch_rows(self, table, user_id, limit=None):
        model = self._model(table)

        def _fetch(db):
            query = db.query(model).filter(model.user_id == user_id)
            if limit:
                query = query.limit(limit)
            return [_row_to_dict(obj) for obj in query.all()]
        return self._run(_fetch)

    def insert_rows(self, table, rows):
        model = self._model(table)

        def _insert(db):
            objs = [model(**row) for row in rows]
            db.add_all(objs)
            db.flush()
            return [_row_to_dict(obj) for obj in objs]
        return self._run(_insert)

    def upsert_row(self, table, row, on_conflict):
        model = self._model(table)

        def _upsert(db):
            keys = {column: row[column] for column in on_conflict}
            obj = db.query(model).filter_by(**keys).first()
            if obj is None:
                obj = model(**row)
                db.add(obj)
            else:
                for column, value in row.items():
                    setattr(obj, column, value)
            db.flush()
            return _row_to_dict(obj)
        return self._run(_upsert)

    def update_row(self, table, user_id, row_id, values):
        model = self._model(table)

        def _update(db):
            obj = db.query(model).filter(model.user_id == user_id, model.id == row_id).first()
            if obj is None:
                raise RemoteBackendError(f"No {table} row {row_id}", code=NO_ROWS)
            for column, value in values.items():
                setattr(obj, column, value)
            db.flush()
            return _row_to_dict(obj)
        return self._run(_update)

    def delete_rows(self, table, user_id, row_id=None):
        model = self._model(table)

        def _delete(db):
            query = db.query(model).filter(model.user_id == user_id)
            if row_id is not None:
                query = query.filter(model.id == row_id)
            return query.delete(synchronize_session=False)
        return self._run(_delete)

    def ping(self):
        model = self._model("users")
        self._run(lambda db: db.execute(select(model.id).limit(1)).all())
        return True


# ============================================
# Supabase (PostgREST) backend
# ============================================

class SupabaseBackend(RemoteBackend):
    """Hosted Postgres reached through its REST endpoint"""

    name = "supabase"

    def __init__(self, url, api_key, access_token=None, timeout=None, session=None):
        self.base_url = url.rstrip("/") + "/rest/v1"
        self.timeout = timeout or config.WRITE_TIMEOUT
        self.session = session or requests.Session()
        self.session.headers.update({
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
            "Content-Type": "application/json",
            "x-client-info": config.CLIENT_INFO,
        })

    def _request(self, method, table, params=None, json=None, prefer=None):
        headers = {"Prefer": prefer} if prefer else None
        try:
            response = self.session.request(
                method, f"{self.base_url}/{table}",
                params=params, json=json, headers=headers, timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise RemoteBackendError(f"Request to {table} failed: {e}") from e

        if response.status_code >= 400:
            code, message = None, response.text
            try:
                payload = response.json()
                code = payload.get("code")
                message = payload.get("message") or message
            except ValueError:
                pass
            raise RemoteBackendError(message, code=code, status=response.status_code)

        if not response.content:
            return []
        return response.json()

    def fetch_user(self, user_id):
        rows = self._request("GET", "users", params={"select": "id,email", "id": f"eq.{user_id}"})
        return rows[0] if rows else None

    def create_user(self, user_id, email=""):
        rows = self._request("POST", "users", json={"id": user_id, "email": email or ""},
                             prefer="return=representation")
        return rows[0] if rows else {"id": user_id, "email": email or ""}

    def fetch_rows(self, table, user_id, limit=None):
        params = {"select": "*", "user_id": f"eq.{user_id}"}
        if limit:
            params["limit"] = limit
        return self._request("GET", table, params=params)

    def insert_rows(self, table, rows):
        return self._request("POST", table, json=rows, prefer="return=representation")

    def upsert_row(self, table, row, on_conflict):
        rows = self._request(
            "POST", table, params={"on_conflict": ",".join(on_conflict)}, json=row,
            prefer="resolution=merge-duplicates,return=representation",
        )
        return rows[0] if rows else row

    def update_row(self, table, user_id, row_id, values):
        rows = self._request(
            "PATCH", table, params={"id": f"eq.{row_id}", "user_id": f"eq.{user_id}"},
            json=values, prefer="return=representation",
        )
        if not rows:
            raise RemoteBackendError(f"No {table} row {row_id}", code=NO_ROWS)
        return rows[0]

    def delete_rows(self, table, user_id, row_id=None):
        params = {"user_id": f"eq.{user_id}"}
        if row_id is not None:
            params["id"] = f"eq.{row_id}"
        return len(self._request("DELETE", table, params=params, prefer="return=representation"))

    def ping(self):
        self._request("GET", "users", params={"select": "id", "limit": 1})
        return True


def make_backend(kind=None):
    """Build the configured backend, or None for offline-only operation"""
    kind = (kind or config.REMOTE_BACKEND).strip().lower()
    if kind == "sql":
        return SqlBackend(config.DATABASE_URL)
    if kind == "supabase":
        if not config.SUPABASE_ENABLED:
            logging.error("[Remote] Missing SUPABASE_URL or SUPABASE_ANON_KEY - running offline")
            return None
        return SupabaseBackend(config.SUPABASE_URL, config.SUPABASE_ANON_KEY)
    if kind != "none":
        logging.warning(f"[Remote] Unknown REMOTE_BACKEND {kind!r} - running offline")
    return None
