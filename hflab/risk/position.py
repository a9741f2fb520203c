"""Position data model and the derived-metrics recompute pass.

Every derived field on a :class:`Position` is a pure function of its line items
and the market reference currency (MRC) price.  All arithmetic is done with
:class:`decimal.Decimal` so that an unchanged input recomputes to exactly the
same values.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Dict, List, Optional, Union

logger = logging.getLogger(__name__)

Number = Union[Decimal, int, float, str]

ZERO = Decimal(0)
ONE = Decimal(1)
BPS_DENOMINATOR = Decimal(10_000)
INFINITY = Decimal("Infinity")
CENT = Decimal("0.01")


def to_decimal(value: Optional[Number]) -> Decimal:
    """Convert *value* to Decimal without picking up binary float noise."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        if math.isinf(value):
            return INFINITY if value > 0 else -INFINITY
        return Decimal(repr(value))
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid number {value!r}") from exc


def round_cents(value: Decimal) -> Decimal:
    """Round half-up to two decimals (finite values only)."""
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, value.adjusted() + 3)
        return value.quantize(CENT, rounding=ROUND_HALF_UP)


def price_or_one(price: Decimal) -> Decimal:
    return price if price else ONE


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Asset:
    """A lendable asset of one market.

    LTV and liquidation thresholds are in basis points, as the protocol
    reports them.
    """

    symbol: str
    price_usd: Decimal
    base_ltv_bps: int
    liquidation_threshold_bps: int
    name: str = ""
    price_in_mrc: Decimal = ZERO
    usage_as_collateral_enabled: bool = True
    borrowing_enabled: bool = True
    is_active: bool = True
    is_frozen: bool = False
    is_paused: bool = False
    flash_loan_enabled: bool = False
    emode_category_id: Optional[int] = None
    emode_ltv_bps: int = 0
    emode_liquidation_threshold_bps: int = 0
    emode_label: str = ""
    underlying_asset: str = ""
    added_by_user: bool = False


@dataclass(frozen=True)
class ReserveItem:
    asset: Asset
    underlying_balance: Decimal
    underlying_balance_usd: Decimal = ZERO
    underlying_balance_mrc: Decimal = ZERO
    usage_as_collateral_enabled: bool = True

    @property
    def symbol(self) -> str:
        return self.asset.symbol


@dataclass(frozen=True)
class BorrowItem:
    asset: Asset
    total_borrows: Decimal
    total_borrows_usd: Decimal = ZERO
    total_borrows_mrc: Decimal = ZERO
    stable_borrow_apy: Decimal = ZERO

    @property
    def symbol(self) -> str:
        return self.asset.symbol


@dataclass(frozen=True)
class Position:
    """Supplied and borrowed line items plus the metrics derived from them."""

    reserves: List[ReserveItem] = field(default_factory=list)
    borrows: List[BorrowItem] = field(default_factory=list)
    emode_category_id: Optional[int] = None
    address: str = ""
    total_collateral_mrc: Decimal = ZERO
    total_borrows_mrc: Decimal = ZERO
    total_borrows_usd: Decimal = ZERO
    current_liquidation_threshold: Decimal = ZERO
    current_loan_to_value: Decimal = ZERO
    health_factor: Decimal = ZERO
    available_borrows_usd: Decimal = ZERO


@dataclass(frozen=True)
class MarketContext:
    """Market-wide inputs: the MRC price and the catalog of available assets."""

    market_id: str
    market_reference_price_usd: Decimal
    assets: Dict[str, Asset] = field(default_factory=dict)
    chain_id: Optional[int] = None

    def asset(self, symbol: str) -> Optional[Asset]:
        return self.assets.get(symbol)


@dataclass(frozen=True)
class RiskParameters:
    ltv: Decimal
    liquidation_threshold: Decimal
    is_emode: bool


def find_reserve(position: Position, symbol: str) -> Optional[ReserveItem]:
    return next((item for item in position.reserves if item.symbol == symbol), None)


def find_borrow(position: Position, symbol: str) -> Optional[BorrowItem]:
    return next((item for item in position.borrows if item.symbol == symbol), None)


def effective_risk_parameters(
    asset: Asset, emode_category_id: Optional[int]
) -> RiskParameters:
    """Pick e-mode or base LTV/threshold for *asset* under the position's e-mode."""
    is_emode = bool(asset.emode_category_id) and asset.emode_category_id == emode_category_id
    if is_emode:
        ltv_bps = asset.emode_ltv_bps or 0
        threshold_bps = asset.emode_liquidation_threshold_bps or 0
    else:
        ltv_bps = asset.base_ltv_bps or 0
        threshold_bps = asset.liquidation_threshold_bps or 0
    return RiskParameters(
        ltv=Decimal(ltv_bps) / BPS_DENOMINATOR,
        liquidation_threshold=Decimal(threshold_bps) / BPS_DENOMINATOR,
        is_emode=is_emode,
    )


def with_asset_price(position: Position, symbol: str, price_usd: Number) -> Position:
    """Return *position* with *symbol* priced at *price_usd* in every line item.

    Derived fields are left stale; callers follow up with :func:`recompute`.
    """
    price = to_decimal(price_usd)
    reserves = [
        replace(item, asset=replace(item.asset, price_usd=price))
        if item.symbol == symbol and item.asset.price_usd != price else item
        for item in position.reserves
    ]
    borrows = [
        replace(item, asset=replace(item.asset, price_usd=price))
        if item.symbol == symbol and item.asset.price_usd != price else item
        for item in position.borrows
    ]
    return replace(position, reserves=reserves, borrows=borrows)


# ---------------------------------------------------------------------------
# Recompute
# ---------------------------------------------------------------------------

def _refresh_asset(asset: Asset, mrc_price: Decimal) -> Asset:
    price_in_mrc = asset.price_usd / mrc_price
    if price_in_mrc == asset.price_in_mrc:
        return asset
    return replace(asset, price_in_mrc=price_in_mrc)


def _refresh_reserve(item: ReserveItem, mrc_price: Decimal) -> ReserveItem:
    asset = _refresh_asset(item.asset, mrc_price)
    balance_mrc = asset.price_in_mrc * item.underlying_balance
    balance_usd = item.underlying_balance * asset.price_usd
    if (
        asset is item.asset
        and balance_mrc == item.underlying_balance_mrc
        and balance_usd == item.underlying_balance_usd
    ):
        return item
    return replace(
        item,
        asset=asset,
        underlying_balance_mrc=balance_mrc,
        underlying_balance_usd=balance_usd,
    )


def _refresh_borrow(item: BorrowItem, mrc_price: Decimal) -> BorrowItem:
    asset = _refresh_asset(item.asset, mrc_price)
    borrows_mrc = asset.price_in_mrc * item.total_borrows
    borrows_usd = item.total_borrows * asset.price_usd
    if (
        asset is item.asset
        and borrows_mrc == item.total_borrows_mrc
        and borrows_usd == item.total_borrows_usd
    ):
        return item
    return replace(
        item,
        asset=asset,
        total_borrows_mrc=borrows_mrc,
        total_borrows_usd=borrows_usd,
    )


def _same_items(old: list, new: list) -> bool:
    return len(old) == len(new) and all(a is b for a, b in zip(old, new))


def recompute(position: Position, market_reference_price_usd: Number) -> Position:
    """Recompute every derived field of *position*.

    Returns *position* itself when no value changed.
    """
    mrc_price = to_decimal(market_reference_price_usd)
    if mrc_price <= 0:
        logger.warning("Non-positive market reference price %s, assuming 1", mrc_price)
        mrc_price = ONE

    reserves = [_refresh_reserve(item, mrc_price) for item in position.reserves]
    borrows = [_refresh_borrow(item, mrc_price) for item in position.borrows]

    collateral = ZERO
    weighted_threshold = ZERO
    weighted_ltv = ZERO
    for item in reserves:
        if not item.usage_as_collateral_enabled:
            continue
        params = effective_risk_parameters(item.asset, position.emode_category_id)
        collateral += item.underlying_balance_mrc
        weighted_threshold += params.liquidation_threshold * item.underlying_balance_mrc
        weighted_ltv += params.ltv * item.underlying_balance_mrc

    debt = sum((item.total_borrows_mrc for item in borrows), ZERO)

    liquidation_threshold = ZERO
    if weighted_threshold > 0 and collateral > 0:
        liquidation_threshold = weighted_threshold / collateral

    loan_to_value = ZERO
    if weighted_ltv > 0 and collateral > 0:
        loan_to_value = weighted_ltv / collateral

    if debt == 0:
        health_factor = INFINITY
    elif collateral > 0 and liquidation_threshold > 0:
        health_factor = collateral * liquidation_threshold / debt
    else:
        health_factor = ZERO

    available_borrows_usd = (collateral * loan_to_value - debt) * mrc_price
    if available_borrows_usd < 0:
        available_borrows_usd = ZERO

    total_borrows_usd = debt * mrc_price

    unchanged = (
        _same_items(position.reserves, reserves)
        and _same_items(position.borrows, borrows)
        and position.total_collateral_mrc == collateral
        and position.total_borrows_mrc == debt
        and position.total_borrows_usd == total_borrows_usd
        and position.current_liquidation_threshold == liquidation_threshold
        and position.current_loan_to_value == loan_to_value
        and position.health_factor == health_factor
        and position.available_borrows_usd == available_borrows_usd
    )
    if unchanged:
        return position

    return replace(
        position,
        reserves=reserves,
        borrows=borrows,
        total_collateral_mrc=collateral,
        total_borrows_mrc=debt,
        total_borrows_usd=total_borrows_usd,
        current_liquidation_threshold=liquidation_threshold,
        current_loan_to_value=loan_to_value,
        health_factor=health_factor,
        available_borrows_usd=available_borrows_usd,
    )
