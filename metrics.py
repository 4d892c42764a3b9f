"""
Derived values over the portal state: trading totals, cash flow and net worth.
"""
from datetime import date, datetime, timedelta

PERIODS = ("day", "week", "month")


def to_date(value):
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def total_pl(state):
    return sum(t.profit for t in state.trades)


def total_withdrawals(state):
    return sum(w.amount for w in state.withdrawals)


def winning_trades(state):
    return len([t for t in state.trades if t.profit > 0])


def win_rate(state):
    """Percentage of trades with a positive profit"""
    if not state.trades:
        return 0.0
    return winning_trades(state) / len(state.trades) * 100


def profit_factor(state):
    total_wins = sum(t.profit for t in state.trades if t.profit > 0)
    total_losses = abs(sum(t.profit for t in state.trades if t.profit < 0))
    if total_losses > 0:
        return total_wins / total_losses
    return 999 if total_wins > 0 else 0


def active_accounts(state):
    return len([a for a in state.accounts.values() if a.status == "Active"])


def period_bounds(period, now=None):
    """Inclusive (start, end) dates of the current day, week (Sunday first) or month"""
    today = to_date(now or datetime.now())
    if period == "day":
        return today, today
    if period == "week":
        start = today - timedelta(days=(today.weekday() + 1) % 7)
        return start, start + timedelta(days=6)
    # month (default)
    start = today.replace(day=1)
    next_month = (start + timedelta(days=32)).replace(day=1)
    return start, next_month - timedelta(days=1)


def calculate_cash_flow(state, period="month", now=None):
    """
    Income, expenses and projected cash for the current period.
    Trading withdrawals count as income; expenses are placed by due date.
    """
    start, end = period_bounds(period, now)

    def in_period(value):
        d = to_date(value)
        return d is not None and start <= d <= end

    period_expenses = sum(e.amount for e in state.expenses if in_period(e.due_date))
    period_income = sum(i.amount for i in state.incomes if in_period(i.date))
    trading_income = sum(w.amount for w in state.withdrawals if in_period(w.date))

    income = period_income + trading_income
    return {
        "period": period if period in PERIODS else "month",
        "start": start.isoformat(),
        "end": end.isoformat(),
        "income": income,
        "expenses": period_expenses,
        "netCashFlow": income - period_expenses,
        "projectedCash": state.current_cash + income - period_expenses,
    }


def calculate_net_worth(state):
    cash_on_hand = state.current_cash
    trading_account_value = sum(a.current_balance for a in state.accounts.values())
    pending_withdrawals = total_withdrawals(state)
    return cash_on_hand + trading_account_value - pending_withdrawals


def summary(state):
    return {
        "totalPL": total_pl(state),
        "totalWithdrawals": total_withdrawals(state),
        "winRate": win_rate(state),
        "profitFactor": profit_factor(state),
        "activeAccounts": active_accounts(state),
        "winningTrades": winning_trades(state),
        "totalTrades": len(state.trades),
        "netWorth": calculate_net_worth(state),
    }
