from __future__ import annotations

from decimal import Decimal
from typing import Dict, List, Optional

import pandas as pd

from hflab.risk.position import Asset, Position, find_reserve, round_cents

LOW_HEALTH_FACTOR = Decimal("1.1")
HIGH_HEALTH_FACTOR = Decimal(3)

LINE_ITEM_COLUMNS = [
    "side",
    "symbol",
    "amount",
    "price_usd",
    "value_usd",
    "value_mrc",
    "collateral",
    "added_by_user",
]
LIQUIDATION_COLUMNS = ["symbol", "current_price_usd", "liquidation_price_usd", "change_pct"]


def scenario_report(position: Position) -> Dict[str, Decimal]:
    return {
        "total_collateral_mrc": position.total_collateral_mrc,
        "total_borrows_mrc": position.total_borrows_mrc,
        "total_borrows_usd": position.total_borrows_usd,
        "liquidation_threshold": position.current_liquidation_threshold,
        "loan_to_value": position.current_loan_to_value,
        "health_factor": position.health_factor,
        "available_borrows_usd": position.available_borrows_usd,
    }


def format_health_factor(value: Optional[Decimal]) -> str:
    if value is None or value < 0:
        return "—"
    if value.is_infinite():
        return "∞"
    return f"{round_cents(value):.2f}"


def health_color(value: Optional[Decimal]) -> str:
    if value is None:
        return "yellow"
    if value < LOW_HEALTH_FACTOR:
        return "red"
    if value > HIGH_HEALTH_FACTOR:
        return "green"
    return "yellow"


def line_items_frame(position: Position) -> pd.DataFrame:
    rows = []
    for item in position.reserves:
        rows.append({
            "side": "supply",
            "symbol": item.symbol,
            "amount": float(item.underlying_balance),
            "price_usd": float(item.asset.price_usd),
            "value_usd": float(item.underlying_balance_usd),
            "value_mrc": float(item.underlying_balance_mrc),
            "collateral": item.usage_as_collateral_enabled,
            "added_by_user": item.asset.added_by_user,
        })
    for item in position.borrows:
        rows.append({
            "side": "borrow",
            "symbol": item.symbol,
            "amount": float(item.total_borrows),
            "price_usd": float(item.asset.price_usd),
            "value_usd": float(item.total_borrows_usd),
            "value_mrc": float(item.total_borrows_mrc),
            "collateral": False,
            "added_by_user": item.asset.added_by_user,
        })
    return pd.DataFrame(rows, columns=LINE_ITEM_COLUMNS)


def liquidation_frame(position: Position, scenario: List[Asset]) -> pd.DataFrame:
    """Current vs. liquidation price for each asset of *scenario*."""
    rows = []
    for asset in scenario:
        item = find_reserve(position, asset.symbol)
        current = item.asset.price_usd if item is not None else asset.price_usd
        change_pct = (asset.price_usd - current) * 100 / current if current else Decimal(0)
        rows.append({
            "symbol": asset.symbol,
            "current_price_usd": float(current),
            "liquidation_price_usd": float(asset.price_usd),
            "change_pct": float(round_cents(change_pct)),
        })
    return pd.DataFrame(rows, columns=LIQUIDATION_COLUMNS)
