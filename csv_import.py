"""
CSV Trade Import
Turns a broker execution export into Trade records.
Expected columns: name, order_id, symbol, mov_time, mov_type, exec_qty, price_done, points, profit
"""
import io
import logging
from datetime import datetime

import pandas as pd

from trading_state import Trade, coerce_amount

IMPORT_COLUMNS = ["name", "order_id", "symbol", "mov_time", "mov_type", "exec_qty", "price_done", "points", "profit"]
DEFAULT_ACCOUNT = "Default Account"


class CsvImportError(ValueError):
    """Raised when an upload cannot be read as a trade export."""


def read_trade_csv(content):
    """Read an uploaded export into row dicts (comma first, then semicolon)."""
    try:
        df = pd.read_csv(io.BytesIO(content), dtype=str)
    except (pd.errors.EmptyDataError, pd.errors.ParserError, UnicodeDecodeError) as e:
        raise CsvImportError(f"Could not read CSV: {e}") from e

    # Smart Check: if the profit column is missing, try semicolon
    if "profit" not in df.columns:
        try:
            df = pd.read_csv(io.BytesIO(content), dtype=str, sep=";")
        except (pd.errors.EmptyDataError, pd.errors.ParserError) as e:
            raise CsvImportError(f"Could not read CSV: {e}") from e

    df.columns = [str(c).strip() for c in df.columns]
    if "profit" not in df.columns:
        raise CsvImportError(f"Missing columns.\nExpected: {IMPORT_COLUMNS}\nFound: {list(df.columns)}")

    df = df.astype(object).where(pd.notna(df), None)
    return df.to_dict(orient="records")


def _parse_time(value, now):
    if value is None or str(value).strip() == "":
        return now
    ts = pd.to_datetime(str(value).strip(), errors="coerce")
    if pd.isna(ts):
        logging.warning(f"[Import] Unparseable mov_time {value!r}, using import time")
        return now
    return ts.to_pydatetime()


def _has_profit(row):
    raw = row.get("profit")
    if raw is None or str(raw).strip() == "":
        return False
    return coerce_amount(raw) != 0


def parse_trade_rows(rows, now=None):
    """
    Apply the import contract to raw CSV rows.
    Rows with a missing or zero profit are dropped; side follows the sign of mov_type.
    """
    now = now or datetime.now()
    stamp = int(now.timestamp() * 1000)

    trades = []
    for index, row in enumerate(r for r in rows if _has_profit(r)):
        timestamp = _parse_time(row.get("mov_time"), now)
        trades.append(Trade(
            id=str(row.get("order_id") or f"trade_{stamp}_{index}"),
            account=row.get("name") or DEFAULT_ACCOUNT,
            date=timestamp.date().isoformat(),
            symbol=row.get("symbol") or "",
            side="Long" if coerce_amount(row.get("mov_type")) > 0 else "Short",
            quantity=abs(coerce_amount(row.get("exec_qty"))),
            price=coerce_amount(row.get("price_done")),
            points=coerce_amount(row.get("points")),
            profit=coerce_amount(row.get("profit")),
            timestamp=timestamp,
        ))

    dropped = len(rows) - len(trades)
    if dropped:
        logging.info(f"[Import] Dropped {dropped} rows without profit")
    return trades
