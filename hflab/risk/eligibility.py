from __future__ import annotations

from decimal import Decimal
from typing import List

from hflab.risk.position import ZERO, Asset, Position, ReserveItem

STABLECOIN_SYMBOLS = (
    "DAI",
    "USDC",
    "USDT",
    "TUSD",
    "USDP",
    "BUSD",
    "FRAX",
    "LUSD",
    "SUSD",
    "GUSD",
    "USDD",
    "DUSD",
    "GHO",
    "USD",
    "EUR",
    "MAI",
    "USDE",
    "SUSDE",
    "EUSDE",
    "EURT",
    "EURS",
    "AGEUR",
    "PAR",
)

MINIMUM_CUMULATIVE_RESERVE_USD = Decimal(50)
MINIMUM_CUMULATIVE_RESERVE_PCT = Decimal(5)


def is_stablecoin(asset: Asset) -> bool:
    symbol = (asset.symbol or "").upper()
    return any(stable in symbol for stable in STABLECOIN_SYMBOLS)


def is_active(asset: Asset) -> bool:
    return asset.is_active and not asset.is_paused and not asset.is_frozen


def is_borrowable(asset: Asset) -> bool:
    return is_active(asset) and asset.borrowing_enabled


def is_suppliable(asset: Asset) -> bool:
    return is_active(asset) and asset.usage_as_collateral_enabled


def is_flashloanable(asset: Asset) -> bool:
    return is_active(asset) and asset.flash_loan_enabled


def eligible_liquidation_reserves(
    position: Position,
    minimum_usd: Decimal = MINIMUM_CUMULATIVE_RESERVE_USD,
    minimum_pct: Decimal = MINIMUM_CUMULATIVE_RESERVE_PCT,
) -> List[ReserveItem]:
    """Reserves whose price can be moved to build a liquidation scenario.

    Only positions with pure stablecoin debt get a scenario.  The candidates
    are the non-stable collateral-enabled reserves; together they must be
    worth more than *minimum_usd* and more than *minimum_pct* percent of the
    total collateral, and at least one borrow must be a different asset.
    """
    if any(not is_stablecoin(item.asset) for item in position.borrows):
        return []

    candidates = [
        item
        for item in position.reserves
        if not is_stablecoin(item.asset) and item.usage_as_collateral_enabled
    ]

    cumulative_usd = sum((item.underlying_balance_usd for item in candidates), ZERO)
    cumulative_mrc = sum((item.underlying_balance_mrc for item in candidates), ZERO)

    exceeds_pct = cumulative_mrc > position.total_collateral_mrc * (minimum_pct / 100)
    exceeds_usd = cumulative_usd > minimum_usd
    if not (exceeds_pct and exceeds_usd):
        return []

    candidate_symbols = {item.symbol for item in candidates}
    has_different_borrow = any(
        item.symbol not in candidate_symbols for item in position.borrows
    )
    return candidates if has_different_borrow else []
