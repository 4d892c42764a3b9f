"""
Trade Analytics
Dashboard breakdowns over the trade list: equity curve, instruments,
time of day, P&L distribution, goal progress and cash suggestions.
"""
from datetime import datetime

import pandas as pd

import metrics

DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

PNL_BUCKETS = [
    ("Large Loss (>$500)", lambda p: p < -500),
    ("Medium Loss ($100-$500)", lambda p: -500 <= p < -100),
    ("Small Loss (<$100)", lambda p: -100 <= p < 0),
    ("Small Win (<$100)", lambda p: 0 < p <= 100),
    ("Medium Win ($100-$500)", lambda p: 100 < p <= 500),
    ("Large Win (>$500)", lambda p: p > 500),
]

CASH_BUFFER = 1000


def trades_frame(trades):
    """DataFrame of trades (one row per trade)"""
    columns = ["id", "account", "date", "symbol", "side", "quantity", "profit", "timestamp"]
    if not trades:
        return pd.DataFrame(columns=columns)
    df = pd.DataFrame([t.model_dump() for t in trades])[columns]
    return df


def _round(value):
    return round(float(value), 2)


def daily_pnl(state):
    """Daily P&L with the running total (equity curve)"""
    df = trades_frame(state.trades)
    if df.empty:
        return []
    daily = df.groupby("date")["profit"].sum().sort_index()
    cumulative = daily.cumsum()
    return [
        {"date": d, "daily": _round(daily[d]), "pnl": _round(cumulative[d])}
        for d in daily.index
    ]


def weekly_stats(state, now=None):
    """P&L and trade count for the current Sunday-Saturday week"""
    start, end = metrics.period_bounds("week", now)
    week = []
    for trade in state.trades:
        d = metrics.to_date(trade.date)
        if d is not None and start <= d <= end:
            week.append(trade)
    return {
        "start": start.isoformat(),
        "end": end.isoformat(),
        "pnl": _round(sum(t.profit for t in week)),
        "trades": len(week),
    }


def _group_stats(df, key, label):
    grouped = df.groupby(key)["profit"]
    stats = pd.DataFrame({
        "trades": grouped.count(),
        "winningTrades": grouped.apply(lambda s: int((s > 0).sum())),
        "totalPL": grouped.sum(),
    })
    rows = []
    for name, row in stats.iterrows():
        trades = int(row["trades"])
        rows.append({
            label: name,
            "trades": trades,
            "winningTrades": int(row["winningTrades"]),
            "totalPL": _round(row["totalPL"]),
            "winRate": _round(row["winningTrades"] / trades * 100) if trades else 0.0,
        })
    return rows


def instrument_breakdown(state):
    df = trades_frame(state.trades)
    if df.empty:
        return []
    rows = _group_stats(df, "symbol", "symbol")
    volume = df.groupby("symbol")["quantity"].sum()
    for row in rows:
        row["totalVolume"] = float(volume[row["symbol"]])
    return sorted(rows, key=lambda r: r["totalPL"], reverse=True)


def time_analysis(state):
    """Stats per hour of day and per day of week (from trade timestamps)"""
    df = trades_frame(state.trades).dropna(subset=["timestamp"])
    if df.empty:
        return {"hourly": [], "dayOfWeek": []}
    df = df.assign(
        hour=df["timestamp"].map(lambda ts: ts.hour),
        day=df["timestamp"].map(lambda ts: DAY_NAMES[ts.weekday()]),
    )
    hourly = sorted(_group_stats(df, "hour", "hour"), key=lambda r: r["hour"])
    by_day = sorted(_group_stats(df, "day", "day"), key=lambda r: DAY_NAMES.index(r["day"]))
    for row in hourly:
        row["hour"] = int(row["hour"])
    return {"hourly": hourly, "dayOfWeek": by_day}


def pnl_distribution(state):
    """Count of trades per P&L bucket, empty buckets left out"""
    result = []
    for label, in_bucket in PNL_BUCKETS:
        count = len([t for t in state.trades if in_bucket(t.profit)])
        if count > 0:
            result.append({"range": label, "count": count})
    return result


def trade_stats(state):
    wins = [t.profit for t in state.trades if t.profit > 0]
    losses = [t.profit for t in state.trades if t.profit < 0]
    avg_win = sum(wins) / len(wins) if wins else 0.0
    avg_loss = sum(losses) / len(losses) if losses else 0.0
    win_rate = metrics.win_rate(state)
    return {
        "avgWin": _round(avg_win),
        "avgLoss": _round(avg_loss),
        "winRate": _round(win_rate),
        "profitFactor": _round(metrics.profit_factor(state)),
        "expectancy": _round((win_rate / 100) * avg_win + ((100 - win_rate) / 100) * avg_loss),
        "bestTrade": _round(max(wins, default=0.0)),
        "worstTrade": _round(min(losses, default=0.0)),
    }


def month_label(value):
    """'2026-10-19' -> 'October 2026' (the key used for monthly goals)"""
    ts = pd.to_datetime(value, errors="coerce")
    if pd.isna(ts):
        return None
    return ts.strftime("%B %Y")


def goal_progress(state):
    """Actual trading profit per month compared with the monthly goals"""
    actuals = {}
    for trade in state.trades:
        label = month_label(trade.date)
        if label:
            actuals[label] = actuals.get(label, 0.0) + trade.profit

    goals = []
    achieved = 0
    for month, target in state.monthly_goals.items():
        actual = actuals.get(month, 0.0)
        done = target > 0 and actual >= target
        achieved += 1 if done else 0
        goals.append({
            "month": month,
            "target": target,
            "actual": _round(actual),
            "progress": _round(actual / target * 100) if target else 0.0,
            "achieved": done,
        })
    return {
        "totalGoals": len(state.monthly_goals),
        "totalTarget": sum(state.monthly_goals.values()),
        "achievedGoals": achieved,
        "goals": goals,
    }


def account_overview(state):
    accounts = []
    for account in state.accounts.values():
        accounts.append({
            **account.model_dump(by_alias=True),
            "profitPercentage": _round(account.total_pl / account.starting_balance * 100),
        })
    return {
        "activeAccounts": metrics.active_accounts(state),
        "totalStartingBalance": sum(a.starting_balance for a in state.accounts.values()),
        "totalCurrentBalance": sum(a.current_balance for a in state.accounts.values()),
        "accounts": accounts,
    }


def investment_suggestions(state, now=None):
    """Rule-of-thumb suggestions from this month's projected cash (keeping a $1000 buffer)"""
    monthly = metrics.calculate_cash_flow(state, "month", now)
    available_cash = max(0, monthly["projectedCash"] - CASH_BUFFER)
    net_worth = metrics.calculate_net_worth(state)

    suggestions = []
    if available_cash < 500:
        suggestions.append({
            "type": "Emergency Fund",
            "suggestion": "Focus on building an emergency fund of 3-6 months of expenses before investing.",
            "priority": "High",
        })
    elif available_cash < 2000:
        suggestions.append({
            "type": "High-Yield Savings",
            "suggestion": "Consider a high-yield savings account or money market fund for liquidity.",
            "priority": "Medium",
        })
    else:
        suggestions.append({
            "type": "Index Funds",
            "suggestion": "Consider low-cost index funds (S&P 500) for long-term growth.",
            "priority": "High",
        })
        suggestions.append({
            "type": "Trading Capital",
            "suggestion": "Allocate some funds to expand your trading accounts for higher returns.",
            "priority": "Medium",
        })

    if net_worth > 10000:
        suggestions.append({
            "type": "Diversification",
            "suggestion": "Consider diversifying with bonds, REITs, or international funds.",
            "priority": "Medium",
        })

    return {"availableCash": available_cash, "netWorth": net_worth, "suggestions": suggestions}


def full_report(state, now=None):
    now = now or datetime.now()
    return {
        "daily": daily_pnl(state),
        "week": weekly_stats(state, now),
        "instruments": instrument_breakdown(state),
        "time": time_analysis(state),
        "distribution": pnl_distribution(state),
        "stats": trade_stats(state),
        "goals": goal_progress(state),
        "accounts": account_overview(state),
        "suggestions": investment_suggestions(state, now),
    }
