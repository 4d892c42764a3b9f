"""
Sync Coordinator
Wraps the pure reducer with the side effects around it:
- every persisted change is written to the local store
- mutations are applied locally and written to the remote backend best effort
- remote failures or timeouts switch the store to offline mode
- a background probe switches back online and reloads remote state
"""
import asyncio
import logging
import time
from datetime import date, datetime

import config
from csv_import import parse_trade_rows
from local_store import LocalStore
from remote_backend import (
    NO_ROWS, RemoteBackendError, expense_to_row, goal_to_row, income_to_row,
    settings_to_row, trade_to_row, withdrawal_to_row,
)
from trading_state import (
    Action, Expense, Income, Withdrawal, coerce_amount, initial_state, trading_reducer,
    TRANSIENT_ACTIONS, SET_LOADING, SET_ERROR, LOAD_TRADES, LOAD_WITHDRAWALS, LOAD_GOALS,
    LOAD_EXPENSES, LOAD_INCOMES, LOAD_SETTINGS, LOAD_LOCALSTORAGE, IMPORT_TRADES,
    ADD_WITHDRAWAL, SET_MONTHLY_GOAL, ADD_EXPENSE, UPDATE_EXPENSE, DELETE_EXPENSE,
    ADD_INCOME, UPDATE_INCOME, DELETE_INCOME, SET_CURRENT_CASH, CLEAR_DATA,
)

# remote table -> load action, in dispatch order (trades before withdrawals)
LOAD_ORDER = [
    ("trades", LOAD_TRADES),
    ("withdrawals", LOAD_WITHDRAWALS),
    ("monthly_goals", LOAD_GOALS),
    ("expenses", LOAD_EXPENSES),
    ("incomes", LOAD_INCOMES),
    ("user_settings", LOAD_SETTINGS),
]

# tables wiped by clear_data, children of users
USER_TABLES = ["trades", "withdrawals", "monthly_goals", "expenses", "incomes", "user_settings"]


class TradingStore:
    """Single store per session: state + offline flag + injected collaborators"""

    def __init__(self, backend=None, local_store=None):
        self.backend = backend
        self.local_store = local_store or LocalStore()
        self.state = initial_state()
        self.user = None
        self.offline_mode = False
        self._last_id = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def dispatch(self, action):
        self.state = trading_reducer(self.state, action)
        # Save to local storage for backup
        if action.type not in TRANSIENT_ACTIONS:
            self.local_store.save(self.state)
        return self.state

    @property
    def current_user(self):
        if self.offline_mode:
            return {"id": None, "email": config.OFFLINE_EMAIL}
        return self.user

    def _new_id(self):
        # millisecond ids, bumped so two records created in the same ms differ
        self._last_id = max(int(time.time() * 1000), self._last_id + 1)
        return str(self._last_id)

    def _user_id(self):
        return (self.user or {}).get("id")

    def _is_online(self):
        return not self.offline_mode and self.backend is not None and bool(self._user_id())

    def load_local_backup(self):
        local_data = self.local_store.load()
        if local_data:
            logging.info("[Sync] Loading data from local backup")
            self.dispatch(Action(LOAD_LOCALSTORAGE, local_data))
        return local_data

    # ------------------------------------------------------------------
    # Remote helpers
    # ------------------------------------------------------------------

    async def _call(self, timeout, fn, *args):
        """Run a blocking backend call in a thread, racing it against a timer.
        A late result is discarded; the underlying request is not cancelled."""
        return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=max(timeout, 0))

    async def _remote_write(self, label, fn, *args):
        """Best-effort write. Returns the backend result, or None when offline/failed."""
        if not self._is_online():
            return None
        try:
            return await self._call(config.WRITE_TIMEOUT, fn, *args)
        except RemoteBackendError as e:
            if e.code == NO_ROWS:
                # missing row, not a dead connection
                logging.warning(f"[Sync] No remote {label} row to update, kept locally: {e}")
                return None
            logging.warning(f"[Sync] Failed to save {label} to remote backend, using local storage: {e!r}")
            self.offline_mode = True
            return None
        except asyncio.TimeoutError as e:
            logging.warning(f"[Sync] Failed to save {label} to remote backend, using local storage: {e!r}")
            self.offline_mode = True
            return None

    async def _sync_cash(self, previous_cash):
        if self.state.current_cash == previous_cash or not self._is_online():
            return
        await self._remote_write(
            "cash", self.backend.upsert_row, "user_settings",
            settings_to_row(self._user_id(), self.state.current_cash), ("user_id",),
        )

    def _fetch_all(self, user_id):
        """Blocking: read every user table. Per-table errors are logged and read as empty."""
        results, failures = {}, []
        for table, _ in LOAD_ORDER:
            try:
                results[table] = self.backend.fetch_rows(table, user_id, config.LOAD_LIMITS.get(table))
            except RemoteBackendError as e:
                logging.warning(f"[Sync] Error loading {table}: {e}")
                failures.append(table)
                results[table] = []
        if len(failures) == len(LOAD_ORDER):
            raise RemoteBackendError("Every table failed to load")
        return results

    def _ensure_user(self, user_id):
        """Blocking: create the users row on first sight of this id."""
        try:
            existing = self.backend.fetch_user(user_id)
        except RemoteBackendError as e:
            if e.code != NO_ROWS:
                raise
            existing = None
        if not existing:
            email = (self.user or {}).get("email") or ""
            self.backend.create_user(user_id, email)

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    async def start_session(self, user_id, email=""):
        """Attach an authenticated user and load their data"""
        self.user = {"id": user_id, "email": email or ""}
        if self.backend is None:
            logging.warning("[Sync] Remote backend not available - using offline mode")
            self.offline_mode = True
            self.load_local_backup()
            return self.state
        await self.load_user_data(user_id)
        return self.state

    async def load_user_data(self, user_id, retry_count=0):
        """Load everything for user_id with one retry, then fall back to local data"""
        if self.backend is None:
            logging.warning("[Sync] Remote backend not available for loading data")
            return self.state

        # Don't try the remote backend if already in offline mode
        if self.offline_mode and retry_count == 0:
            logging.info("[Sync] Already in offline mode, skipping remote load")
            return self.state

        self.dispatch(Action(SET_LOADING, True))

        # One deadline covers user creation and the data load
        timeout = config.INITIAL_LOAD_TIMEOUT if retry_count == 0 else config.RETRY_LOAD_TIMEOUT
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        try:
            # Create user record if it doesn't exist (only on first try)
            if retry_count == 0:
                try:
                    await self._call(deadline - loop.time(), self._ensure_user, user_id)
                except (RemoteBackendError, asyncio.TimeoutError) as e:
                    logging.warning(f"[Sync] User creation failed, continuing with data load: {e!r}")

            results = await self._call(deadline - loop.time(), self._fetch_all, user_id)

            for table, kind in LOAD_ORDER:
                self.dispatch(Action(kind, results.get(table) or []))

            self.dispatch(Action(SET_LOADING, False))
            self.dispatch(Action(SET_ERROR, None))
            logging.info(f"[Sync] Loaded {len(self.state.trades)} trades for user {user_id}")

        except (RemoteBackendError, asyncio.TimeoutError) as e:
            logging.error(f"[Sync] Error loading user data: {e!r}")

            # Only retry once
            if retry_count == 0:
                logging.info("[Sync] Retrying data load once more...")
                await asyncio.sleep(config.RETRY_DELAY)
                return await self.load_user_data(user_id, 1)

            logging.warning("[Sync] Switching to offline mode - using local data")
            self.offline_mode = True
            self.load_local_backup()
            self.dispatch(Action(SET_ERROR, config.OFFLINE_ERROR))
            self.dispatch(Action(SET_LOADING, False))

        return self.state

    def sign_out(self):
        """Forget the user but keep all local data"""
        self.dispatch(Action(SET_LOADING, True))
        self.dispatch(Action(SET_ERROR, None))
        self.user = None
        self.offline_mode = False
        self.dispatch(Action(SET_LOADING, False))

    # ------------------------------------------------------------------
    # Trading mutations
    # ------------------------------------------------------------------

    async def import_trades(self, rows):
        """Import CSV rows; returns the trades that were added"""
        self.dispatch(Action(SET_LOADING, True))
        try:
            trades = parse_trade_rows(rows)
        except ValueError as e:
            logging.error(f"[Sync] Error importing trades: {e}")
            self.dispatch(Action(SET_ERROR, "Failed to import trades"))
            return []

        if trades and self._is_online():
            user_id = self._user_id()
            await self._remote_write(
                "trades", self.backend.insert_rows, "trades",
                [trade_to_row(user_id, t) for t in trades],
            )

        # Always update local state
        self.dispatch(Action(IMPORT_TRADES, trades))
        return trades

    async def add_withdrawal(self, account, amount, withdrawal_date=None, description=""):
        withdrawal = Withdrawal(
            id=self._new_id(),
            account=account,
            amount=coerce_amount(amount),
            date=withdrawal_date or date.today().isoformat(),
            description=description or "",
        )
        if self._is_online():
            stored = await self._remote_write(
                "withdrawal", self.backend.insert_rows, "withdrawals",
                [withdrawal_to_row(self._user_id(), withdrawal)],
            )
            if stored:
                withdrawal = withdrawal.model_copy(update={"id": str(stored[0]["id"])})

        self.dispatch(Action(ADD_WITHDRAWAL, withdrawal))
        return withdrawal

    async def set_monthly_goal(self, month, amount):
        amount = coerce_amount(amount)
        if self._is_online():
            await self._remote_write(
                "goal", self.backend.upsert_row, "monthly_goals",
                goal_to_row(self._user_id(), month, amount), ("user_id", "month"),
            )
        self.dispatch(Action(SET_MONTHLY_GOAL, {"month": month, "amount": amount}))

    # ------------------------------------------------------------------
    # Personal finance mutations
    # ------------------------------------------------------------------

    async def set_current_cash(self, amount):
        amount = coerce_amount(amount)
        logging.info(f"[Sync] Setting current cash to: {amount}")
        previous = self.state.current_cash
        self.dispatch(Action(SET_CURRENT_CASH, amount))
        await self._sync_cash(previous)
        return self.state.current_cash

    async def add_expense(self, expense):
        new_expense = Expense.model_validate({
            **expense,
            "id": self._new_id(),
            "createdAt": datetime.now().isoformat(),
        })
        return await self._add_entry("expense", "expenses", ADD_EXPENSE, new_expense,
                                     expense_to_row)

    async def update_expense(self, expense):
        return await self._update_entry("expense", "expenses", UPDATE_EXPENSE, self.state.expenses,
                                        Expense.model_validate(expense), expense_to_row)

    async def delete_expense(self, expense_id):
        return await self._delete_entry("expense", "expenses", DELETE_EXPENSE, self.state.expenses,
                                        expense_id)

    async def add_income(self, income):
        new_income = Income.model_validate({
            **income,
            "id": self._new_id(),
            "createdAt": datetime.now().isoformat(),
        })
        return await self._add_entry("income", "incomes", ADD_INCOME, new_income, income_to_row)

    async def update_income(self, income):
        return await self._update_entry("income", "incomes", UPDATE_INCOME, self.state.incomes,
                                        Income.model_validate(income), income_to_row)

    async def delete_income(self, income_id):
        return await self._delete_entry("income", "incomes", DELETE_INCOME, self.state.incomes,
                                        income_id)

    async def _add_entry(self, label, table, kind, entry, to_row):
        previous = self.state.current_cash
        if self._is_online():
            await self._remote_write(label, self.backend.insert_rows, table,
                                     [to_row(self._user_id(), entry)])
        self.dispatch(Action(kind, entry))
        await self._sync_cash(previous)
        return entry

    async def _update_entry(self, label, table, kind, entries, entry, to_row):
        if not any(e.id == entry.id for e in entries):
            return None
        previous = self.state.current_cash
        if self._is_online():
            values = to_row(self._user_id(), entry)
            values.pop("id")
            values.pop("user_id")
            await self._remote_write(label, self.backend.update_row, table,
                                     self._user_id(), entry.id, values)
        self.dispatch(Action(kind, entry))
        await self._sync_cash(previous)
        return entry

    async def _delete_entry(self, label, table, kind, entries, entry_id):
        if not any(e.id == entry_id for e in entries):
            return False
        previous = self.state.current_cash
        if self._is_online():
            await self._remote_write(label, self.backend.delete_rows, table,
                                     self._user_id(), entry_id)
        self.dispatch(Action(kind, entry_id))
        await self._sync_cash(previous)
        return True

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def clear_data(self):
        """Delete ALL data locally, and remotely when online"""
        if self._is_online():
            for table in USER_TABLES:
                await self._remote_write(table, self.backend.delete_rows, table, self._user_id())
        self.dispatch(Action(CLEAR_DATA))
        self.local_store.clear()
        logging.info("[Sync] All data cleared successfully")

    async def _ping(self):
        try:
            await self._call(config.PROBE_TIMEOUT, self.backend.ping)
            return True
        except (RemoteBackendError, asyncio.TimeoutError) as e:
            logging.warning(f"[Sync] Connection check failed: {e!r}")
            return False

    async def check_connection(self):
        """True only when online and the backend answers within the probe timeout"""
        if self.backend is None or self.offline_mode:
            return False
        return await self._ping()

    async def probe_reconnect(self):
        """While offline: probe the backend and, if it answers, go online and reload.
        Remote state replaces local state; edits made while offline are not merged."""
        if self.backend is None or not self.offline_mode:
            return False
        if not await self._ping():
            return False
        user_id = self._user_id()
        if not user_id:
            return False

        logging.info("[Sync] Connection restored - attempting to reload data")
        self.offline_mode = False
        self.dispatch(Action(SET_ERROR, None))
        await self.load_user_data(user_id, 0)
        return True

    async def connection_monitor_loop(self, interval=None):
        """Background task: periodically try to leave offline mode"""
        interval = interval or config.PROBE_INTERVAL
        while True:
            try:
                await self.probe_reconnect()
            except Exception as e:
                logging.error(f"[Sync] Error in connection monitor: {e}")
            await asyncio.sleep(interval)
