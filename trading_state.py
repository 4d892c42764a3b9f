"""
Trading Portal State
- Records for trades, withdrawals, goals and the personal finance ledger
- Pure reducer: (state, action) -> new state, no I/O
- Account aggregates are derived from the trade list, never stored as truth
"""
import math
from datetime import datetime
from typing import Any, Dict, List, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

import config


# ============================================
# Records
# ============================================

class PortalModel(BaseModel):
    # camelCase on the wire (local snapshot keys), snake_case in Python
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Trade(PortalModel):
    id: str
    account: str
    date: str  # YYYY-MM-DD
    symbol: str = ""
    side: str = "Long"  # Long or Short
    quantity: float = 0.0
    price: float = 0.0
    points: float = 0.0
    profit: float = 0.0
    timestamp: Optional[datetime] = None


class Account(PortalModel):
    id: str
    starting_balance: float = config.STARTING_BALANCE
    current_balance: float = config.STARTING_BALANCE
    total_pl: float = Field(default=0.0, alias="totalPL")
    status: str = "Active"
    available_drawdown: float = config.STARTING_BALANCE - config.DRAWDOWN_BUFFER


class Withdrawal(PortalModel):
    id: str
    account: str
    amount: float
    date: str
    description: str = ""


class Expense(PortalModel):
    id: str
    category: str = "Other"
    description: str = ""
    amount: float = 0.0
    due_date: Optional[str] = None
    is_paid: bool = False
    is_recurring: bool = False
    created_at: Optional[str] = None


class Income(PortalModel):
    id: str
    category: str = "Other"
    description: str = ""
    amount: float = 0.0
    date: Optional[str] = None
    is_paid: bool = False  # received
    is_recurring: bool = False
    created_at: Optional[str] = None


class TradingState(PortalModel):
    trades: List[Trade] = []
    accounts: Dict[str, Account] = {}
    withdrawals: List[Withdrawal] = []
    monthly_goals: Dict[str, float] = {}
    expenses: List[Expense] = []
    incomes: List[Income] = []
    current_cash: float = 0.0
    loading: bool = False
    error: Optional[str] = None


class Action(NamedTuple):
    type: str
    payload: Any = None


# Action kinds
SET_LOADING = "SET_LOADING"
SET_ERROR = "SET_ERROR"
LOAD_TRADES = "LOAD_TRADES"
LOAD_WITHDRAWALS = "LOAD_WITHDRAWALS"
LOAD_GOALS = "LOAD_GOALS"
LOAD_EXPENSES = "LOAD_EXPENSES"
LOAD_INCOMES = "LOAD_INCOMES"
LOAD_SETTINGS = "LOAD_SETTINGS"
LOAD_LOCALSTORAGE = "LOAD_LOCALSTORAGE"
IMPORT_TRADES = "IMPORT_TRADES"
ADD_WITHDRAWAL = "ADD_WITHDRAWAL"
SET_MONTHLY_GOAL = "SET_MONTHLY_GOAL"
ADD_EXPENSE = "ADD_EXPENSE"
UPDATE_EXPENSE = "UPDATE_EXPENSE"
DELETE_EXPENSE = "DELETE_EXPENSE"
ADD_INCOME = "ADD_INCOME"
UPDATE_INCOME = "UPDATE_INCOME"
DELETE_INCOME = "DELETE_INCOME"
SET_CURRENT_CASH = "SET_CURRENT_CASH"
CLEAR_DATA = "CLEAR_DATA"

# Actions that never touch persisted data
TRANSIENT_ACTIONS = (SET_LOADING, SET_ERROR)


def initial_state():
    return TradingState()


# ============================================
# Coercion helpers
# ============================================

def coerce_amount(value):
    """Parse a user supplied amount; anything unparseable becomes 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return 0.0
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(value):
        return 0.0
    return value


def _pick(row, *keys, default=None):
    # First present, non-null key wins (remote column names before local ones)
    for key in keys:
        value = row.get(key)
        if value is not None:
            return value
    return default


def _as_dict(record):
    if isinstance(record, BaseModel):
        return record.model_dump()
    return dict(record)


def trade_from_row(row):
    """Build a Trade from a remote row, a snapshot dict or a Trade."""
    if isinstance(row, Trade):
        return row
    return Trade(
        id=str(_pick(row, "trade_id", "id", default="")),
        account=_pick(row, "account_name", "account", default=""),
        date=_pick(row, "trade_date", "date", default=""),
        symbol=_pick(row, "symbol", default=""),
        side=_pick(row, "side", default="Long"),
        quantity=coerce_amount(row.get("quantity")),
        price=coerce_amount(row.get("price")),
        points=coerce_amount(row.get("points")),
        profit=coerce_amount(row.get("profit")),
        timestamp=_pick(row, "trade_timestamp", "timestamp") or None,
    )


def withdrawal_from_row(row):
    if isinstance(row, Withdrawal):
        return row
    return Withdrawal(
        id=str(_pick(row, "id", default="")),
        account=_pick(row, "account_name", "account", default=""),
        amount=coerce_amount(row.get("amount")),
        date=_pick(row, "withdrawal_date", "date", default=""),
        description=_pick(row, "description", default=""),
    )


def expense_from_row(row):
    if isinstance(row, Expense):
        return row
    return Expense(
        id=str(_pick(row, "id", default="")),
        category=_pick(row, "category", default="Other"),
        description=_pick(row, "description", default=""),
        amount=coerce_amount(row.get("amount")),
        due_date=_pick(row, "due_date", "dueDate"),
        is_paid=bool(_pick(row, "is_paid", "isPaid", default=False)),
        is_recurring=bool(_pick(row, "is_recurring", "isRecurring", default=False)),
        created_at=_pick(row, "created_at", "createdAt"),
    )


def income_from_row(row):
    if isinstance(row, Income):
        return row
    return Income(
        id=str(_pick(row, "id", default="")),
        category=_pick(row, "category", default="Other"),
        description=_pick(row, "description", default=""),
        amount=coerce_amount(row.get("amount")),
        date=_pick(row, "income_date", "date"),
        is_paid=bool(_pick(row, "is_paid", "isPaid", default=False)),
        is_recurring=bool(_pick(row, "is_recurring", "isRecurring", default=False)),
        created_at=_pick(row, "created_at", "createdAt"),
    )


# ============================================
# Account derivation
# ============================================

def available_drawdown(account_name, current_balance):
    """Balance above the trailing floor; funded (PA) accounts are capped."""
    drawdown = current_balance - config.DRAWDOWN_BUFFER
    if config.PA_MARKER in account_name:
        drawdown = min(drawdown, config.PA_DRAWDOWN_CAP)
    return drawdown


def make_account(name, total_pl=0.0, current_balance=None):
    if current_balance is None:
        current_balance = config.STARTING_BALANCE + total_pl
    return Account(
        id=name,
        starting_balance=config.STARTING_BALANCE,
        current_balance=current_balance,
        total_pl=total_pl,
        status="Active",
        available_drawdown=available_drawdown(name, current_balance),
    )


def build_accounts(trades, withdrawals=()):
    """
    Rebuild the account map from scratch.
    Withdrawals only count against accounts that have trades.
    """
    totals = {}
    for trade in trades:
        totals[trade.account] = totals.get(trade.account, 0.0) + trade.profit

    withdrawn = {}
    for withdrawal in withdrawals:
        if withdrawal.account in totals:
            withdrawn[withdrawal.account] = withdrawn.get(withdrawal.account, 0.0) + withdrawal.amount

    accounts = {}
    for name, total_pl in totals.items():
        balance = config.STARTING_BALANCE + total_pl - withdrawn.get(name, 0.0)
        accounts[name] = make_account(name, total_pl, balance)
    return accounts


def _paid(entry):
    return entry.amount if entry.is_paid else 0.0


def _find(entries, entry_id):
    return next((e for e in entries if e.id == entry_id), None)


# ============================================
# Reducer
# ============================================

def trading_reducer(state, action):
    """Pure state transition. Unknown actions return the state unchanged."""
    kind, payload = action.type, action.payload

    if kind == SET_LOADING:
        return state.model_copy(update={"loading": bool(payload)})

    if kind == SET_ERROR:
        return state.model_copy(update={"error": payload, "loading": False})

    if kind == LOAD_TRADES:
        trades = [trade_from_row(row) for row in payload or []]
        return state.model_copy(update={
            "trades": trades,
            "accounts": build_accounts(trades, state.withdrawals),
            "loading": False,
            "error": None,
        })

    if kind == LOAD_WITHDRAWALS:
        withdrawals = [withdrawal_from_row(row) for row in payload or []]
        return state.model_copy(update={
            "withdrawals": withdrawals,
            "accounts": build_accounts(state.trades, withdrawals),
        })

    if kind == LOAD_GOALS:
        goals = {}
        for row in payload or []:
            row = _as_dict(row)
            goals[row["month"]] = coerce_amount(_pick(row, "goal_amount", "amount"))
        return state.model_copy(update={"monthly_goals": goals})

    if kind == LOAD_EXPENSES:
        return state.model_copy(update={"expenses": [expense_from_row(row) for row in payload or []]})

    if kind == LOAD_INCOMES:
        return state.model_copy(update={"incomes": [income_from_row(row) for row in payload or []]})

    if kind == LOAD_SETTINGS:
        rows = payload or []
        if not rows:
            return state
        return state.model_copy(update={"current_cash": coerce_amount(_as_dict(rows[0]).get("current_cash"))})

    if kind == LOAD_LOCALSTORAGE:
        data = payload or {}
        trades = [trade_from_row(row) for row in data.get("trades") or []]
        withdrawals = [withdrawal_from_row(row) for row in data.get("withdrawals") or []]
        return TradingState(
            trades=trades,
            accounts=build_accounts(trades, withdrawals),
            withdrawals=withdrawals,
            monthly_goals={k: coerce_amount(v) for k, v in (data.get("monthlyGoals") or {}).items()},
            expenses=[expense_from_row(row) for row in data.get("expenses") or []],
            incomes=[income_from_row(row) for row in data.get("incomes") or []],
            current_cash=coerce_amount(data.get("currentCash")),
            loading=False,
            error=None,
        )

    if kind == IMPORT_TRADES:
        new_trades = [trade_from_row(row) for row in payload or []]
        return state.model_copy(update={
            "trades": state.trades + new_trades,
            "accounts": build_accounts(state.trades + new_trades, state.withdrawals),
            "loading": False,
            "error": None,
        })

    if kind == ADD_WITHDRAWAL:
        withdrawal = withdrawal_from_row(payload)
        accounts = dict(state.accounts)
        account = accounts.get(withdrawal.account)
        # no dedup: replaying the same withdrawal decrements again
        if account is not None:
            accounts[withdrawal.account] = make_account(
                account.id, account.total_pl, account.current_balance - withdrawal.amount
            )
        return state.model_copy(update={
            "withdrawals": state.withdrawals + [withdrawal],
            "accounts": accounts,
        })

    if kind == SET_MONTHLY_GOAL:
        goals = dict(state.monthly_goals)
        goals[payload["month"]] = coerce_amount(payload["amount"])
        return state.model_copy(update={"monthly_goals": goals})

    if kind == ADD_EXPENSE:
        expense = expense_from_row(payload)
        return state.model_copy(update={
            "expenses": state.expenses + [expense],
            "current_cash": state.current_cash - _paid(expense),
        })

    if kind == UPDATE_EXPENSE:
        expense = expense_from_row(payload)
        old = _find(state.expenses, expense.id)
        if old is None:
            return state
        return state.model_copy(update={
            "expenses": [expense if e.id == expense.id else e for e in state.expenses],
            "current_cash": state.current_cash + _paid(old) - _paid(expense),
        })

    if kind == DELETE_EXPENSE:
        old = _find(state.expenses, payload)
        if old is None:
            return state
        return state.model_copy(update={
            "expenses": [e for e in state.expenses if e.id != payload],
            "current_cash": state.current_cash + _paid(old),
        })

    if kind == ADD_INCOME:
        income = income_from_row(payload)
        return state.model_copy(update={
            "incomes": state.incomes + [income],
            "current_cash": state.current_cash + _paid(income),
        })

    if kind == UPDATE_INCOME:
        income = income_from_row(payload)
        old = _find(state.incomes, income.id)
        if old is None:
            return state
        return state.model_copy(update={
            "incomes": [income if i.id == income.id else i for i in state.incomes],
            "current_cash": state.current_cash - _paid(old) + _paid(income),
        })

    if kind == DELETE_INCOME:
        old = _find(state.incomes, payload)
        if old is None:
            return state
        return state.model_copy(update={
            "incomes": [i for i in state.incomes if i.id != payload],
            "current_cash": state.current_cash - _paid(old),
        })

    if kind == SET_CURRENT_CASH:
        return state.model_copy(update={"current_cash": coerce_amount(payload)})

    if kind == CLEAR_DATA:
        return initial_state()

    return state


def snapshot(state):
    """Serializable view of the persisted fields (no loading/error)."""
    return state.model_dump(mode="json", by_alias=True, exclude={"loading", "error"})
