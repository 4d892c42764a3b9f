"""
Trading Portal API
Routes over the TradingStore: session, CSV import, withdrawals, goals,
personal finance ledger and derived metrics.
"""
from typing import Optional, Union

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

import analytics
import metrics
from csv_import import CsvImportError, IMPORT_COLUMNS, read_trade_csv
from trading_state import PortalModel, snapshot

router = APIRouter(prefix="/api/portal", tags=["portal"])


def get_store(request: Request):
    """The store lives on the app (set in main.py)"""
    return request.app.state.store


def portal_view(store):
    """State plus the computed values the dashboard reads"""
    view = snapshot(store.state)
    view.update({
        "loading": store.state.loading,
        "error": store.state.error,
        "user": store.current_user,
        "offlineMode": store.offline_mode,
    })
    view.update(metrics.summary(store.state))
    return view


# ============================================
# Pydantic Models
# ============================================

class SessionStart(BaseModel):
    user_id: str
    email: Optional[str] = ""


class WithdrawalCreate(PortalModel):
    account: str
    amount: float
    date: Optional[str] = None
    description: Optional[str] = ""


class GoalSet(PortalModel):
    month: str  # e.g. "October 2026"
    amount: float


class CashSet(PortalModel):
    amount: Union[float, str, None] = None  # coerced, bad input becomes 0


class ExpenseIn(PortalModel):
    category: str
    description: str = ""
    amount: float
    due_date: Optional[str] = None
    is_paid: bool = False
    is_recurring: bool = False


class IncomeIn(PortalModel):
    category: str
    description: str = ""
    amount: float
    date: Optional[str] = None
    is_paid: bool = False
    is_recurring: bool = False


# ============================================
# Session & state
# ============================================

@router.post("/session")
async def start_session(body: SessionStart, store=Depends(get_store)):
    """Attach the authenticated user and load their data"""
    await store.start_session(body.user_id, body.email)
    return portal_view(store)


@router.post("/signout")
def sign_out(store=Depends(get_store)):
    store.sign_out()
    return {"status": "success", "offlineMode": store.offline_mode}


@router.get("/state")
def get_state(store=Depends(get_store)):
    return portal_view(store)


@router.get("/status")
async def get_status(store=Depends(get_store)):
    """Connection status (online check is skipped while offline)"""
    return {
        "offlineMode": store.offline_mode,
        "online": await store.check_connection(),
        "error": store.state.error,
        "user": store.current_user,
    }


@router.post("/reconnect")
async def reconnect(store=Depends(get_store)):
    """Run one reconnection probe now instead of waiting for the monitor"""
    reconnected = await store.probe_reconnect()
    return {"reconnected": reconnected, "offlineMode": store.offline_mode}


# ============================================
# Trading
# ============================================

@router.get("/trades")
def get_trades(account: Optional[str] = None, store=Depends(get_store)):
    trades = store.state.trades
    if account:
        trades = [t for t in trades if t.account == account]
    return {"trades": [t.model_dump(mode="json", by_alias=True) for t in trades]}


@router.get("/trades/template")
async def get_template():
    """Download a CSV template for importing trades"""
    csv_content = ",".join(IMPORT_COLUMNS) + "\nPA-APEX-1,1001,NQ,2026-10-19 09:31:00,1,2,20150.25,12.5,500"
    return Response(content=csv_content, media_type="text/csv",
                    headers={"Content-Disposition": "attachment; filename=trade_template.csv"})


@router.post("/trades/import")
async def import_trades(file: UploadFile = File(...), store=Depends(get_store)):
    """Import trades from a broker CSV export"""
    content = await file.read()
    try:
        rows = read_trade_csv(content)
    except CsvImportError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})

    trades = await store.import_trades(rows)
    return {
        "message": f"Successfully imported {len(trades)} trades.",
        "imported": len(trades),
        "skipped": len(rows) - len(trades),
        "offlineMode": store.offline_mode,
    }


@router.get("/accounts")
def get_accounts(store=Depends(get_store)):
    return analytics.account_overview(store.state)


@router.post("/withdrawals")
async def add_withdrawal(body: WithdrawalCreate, store=Depends(get_store)):
    withdrawal = await store.add_withdrawal(body.account, body.amount, body.date, body.description)
    return withdrawal.model_dump(by_alias=True)


@router.get("/withdrawals")
def get_withdrawals(store=Depends(get_store)):
    return {"withdrawals": [w.model_dump(by_alias=True) for w in store.state.withdrawals]}


@router.put("/goals")
async def set_goal(body: GoalSet, store=Depends(get_store)):
    await store.set_monthly_goal(body.month, body.amount)
    return {"monthlyGoals": store.state.monthly_goals}


# ============================================
# Personal finance
# ============================================

@router.put("/cash")
async def set_cash(body: CashSet, store=Depends(get_store)):
    current_cash = await store.set_current_cash(body.amount)
    return {"currentCash": current_cash}


def _existing(entries, entry_id, label):
    entry = next((e for e in entries if e.id == entry_id), None)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return entry


@router.post("/expenses")
async def add_expense(body: ExpenseIn, store=Depends(get_store)):
    expense = await store.add_expense(body.model_dump())
    return expense.model_dump(by_alias=True)


@router.put("/expenses/{expense_id}")
async def update_expense(expense_id: str, body: ExpenseIn, store=Depends(get_store)):
    existing = _existing(store.state.expenses, expense_id, "Expense")
    expense = await store.update_expense({**body.model_dump(), "id": expense_id,
                                          "created_at": existing.created_at})
    return expense.model_dump(by_alias=True)


@router.delete("/expenses/{expense_id}")
async def delete_expense(expense_id: str, store=Depends(get_store)):
    _existing(store.state.expenses, expense_id, "Expense")
    await store.delete_expense(expense_id)
    return {"status": "success", "currentCash": store.state.current_cash}


@router.post("/incomes")
async def add_income(body: IncomeIn, store=Depends(get_store)):
    income = await store.add_income(body.model_dump())
    return income.model_dump(by_alias=True)


@router.put("/incomes/{income_id}")
async def update_income(income_id: str, body: IncomeIn, store=Depends(get_store)):
    existing = _existing(store.state.incomes, income_id, "Income")
    income = await store.update_income({**body.model_dump(), "id": income_id,
                                        "created_at": existing.created_at})
    return income.model_dump(by_alias=True)


@router.delete("/incomes/{income_id}")
async def delete_income(income_id: str, store=Depends(get_store)):
    _existing(store.state.incomes, income_id, "Income")
    await store.delete_income(income_id)
    return {"status": "success", "currentCash": store.state.current_cash}


# ============================================
# Derived values
# ============================================

@router.get("/metrics")
def get_metrics(store=Depends(get_store)):
    return metrics.summary(store.state)


@router.get("/cash-flow")
def get_cash_flow(period: str = "month", store=Depends(get_store)):
    if period not in metrics.PERIODS:
        raise HTTPException(status_code=400, detail=f"Invalid period. Use one of {list(metrics.PERIODS)}")
    return metrics.calculate_cash_flow(store.state, period)


@router.get("/net-worth")
def get_net_worth(store=Depends(get_store)):
    return {"netWorth": metrics.calculate_net_worth(store.state)}


@router.get("/analytics")
def get_analytics(store=Depends(get_store)):
    return analytics.full_report(store.state)


# ============================================
# Maintenance
# ============================================

@router.delete("/all")
async def delete_all(store=Depends(get_store)):
    """Delete ALL data - Dangerous operation!"""
    await store.clear_data()
    return {"status": "success", "message": "All data cleared"}

