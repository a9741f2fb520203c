"""Simulation operations on a working position.

Every operation takes ``(position, market, ...)`` and returns a position with
derived metrics recomputed.  Invalid input (unknown symbol, non-positive
amount, ineligible target, same source and target) is not an error: the
operation returns the position it was given, unchanged.

The ``project_*`` variants run the same arithmetic and return the resulting
health factor and liquidation scenario without handing back a new position.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import List, Optional

from hflab.risk.eligibility import is_borrowable, is_suppliable
from hflab.risk.fees import DEFAULT_FEE_MODEL, FeeModel
from hflab.risk.liquidation import DEFAULT_SOLVER_CONFIG, SolverConfig, liquidation_scenario
from hflab.risk.position import (
    ONE,
    ZERO,
    Asset,
    BorrowItem,
    MarketContext,
    Number,
    Position,
    ReserveItem,
    find_borrow,
    find_reserve,
    price_or_one,
    recompute,
    to_decimal,
    with_asset_price,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Projection:
    health_factor: Optional[Decimal] = None
    liquidation_scenario: List[Asset] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _finish(position: Position, market: MarketContext) -> Position:
    return recompute(position, market.market_reference_price_usd)


def _valid_fraction(fraction: Optional[Number]) -> Optional[Decimal]:
    if fraction is None:
        return None
    value = to_decimal(fraction)
    if value <= 0 or value > 1:
        return None
    return value


def _positive(amount: Optional[Number]) -> Optional[Decimal]:
    if amount is None:
        return None
    value = to_decimal(amount)
    return value if value > 0 else None


def _set_reserve_balance(position: Position, symbol: str, balance: Decimal) -> Position:
    reserves = [
        replace(item, underlying_balance=balance) if item.symbol == symbol else item
        for item in position.reserves
    ]
    return replace(position, reserves=reserves)


def _set_borrow_amount(position: Position, symbol: str, amount: Decimal) -> Position:
    borrows = [
        replace(item, total_borrows=amount) if item.symbol == symbol else item
        for item in position.borrows
    ]
    return replace(position, borrows=borrows)


def _new_reserve(asset: Asset, balance: Decimal = ZERO) -> ReserveItem:
    return ReserveItem(
        asset=replace(asset, added_by_user=True),
        underlying_balance=balance,
        usage_as_collateral_enabled=asset.usage_as_collateral_enabled,
    )


def _new_borrow(asset: Asset, amount: Decimal = ZERO) -> BorrowItem:
    return BorrowItem(asset=replace(asset, added_by_user=True), total_borrows=amount)


def _credit_reserve(position: Position, asset: Asset, units: Decimal) -> Position:
    existing = find_reserve(position, asset.symbol)
    if existing is None:
        return replace(position, reserves=position.reserves + [_new_reserve(asset, units)])
    return _set_reserve_balance(position, asset.symbol, existing.underlying_balance + units)


def _credit_borrow(position: Position, asset: Asset, units: Decimal) -> Position:
    existing = find_borrow(position, asset.symbol)
    if existing is None:
        return replace(position, borrows=position.borrows + [_new_borrow(asset, units)])
    return _set_borrow_amount(position, asset.symbol, existing.total_borrows + units)


def _keep(position: Position, planned: Optional[Position]) -> Position:
    return position if planned is None else planned


def _project(
    planned: Optional[Position],
    market: MarketContext,
    solver_config: SolverConfig,
) -> Projection:
    if planned is None:
        return Projection()
    return Projection(
        health_factor=planned.health_factor,
        liquidation_scenario=liquidation_scenario(
            planned, market.market_reference_price_usd, solver_config
        ),
    )


# ---------------------------------------------------------------------------
# Line items
# ---------------------------------------------------------------------------

def add_reserve(position: Position, market: MarketContext, symbol: str) -> Position:
    asset = market.asset(symbol)
    if asset is None or find_reserve(position, symbol) is not None:
        return position
    updated = replace(position, reserves=position.reserves + [_new_reserve(asset)])
    return _finish(updated, market)


def add_borrow(position: Position, market: MarketContext, symbol: str) -> Position:
    asset = market.asset(symbol)
    if asset is None or find_borrow(position, symbol) is not None:
        return position
    updated = replace(position, borrows=position.borrows + [_new_borrow(asset)])
    return _finish(updated, market)


def remove_reserve(position: Position, market: MarketContext, symbol: str) -> Position:
    if find_reserve(position, symbol) is None:
        return position
    reserves = [item for item in position.reserves if item.symbol != symbol]
    return _finish(replace(position, reserves=reserves), market)


def remove_borrow(position: Position, market: MarketContext, symbol: str) -> Position:
    if find_borrow(position, symbol) is None:
        return position
    borrows = [item for item in position.borrows if item.symbol != symbol]
    return _finish(replace(position, borrows=borrows), market)


def set_reserve_quantity(
    position: Position, market: MarketContext, symbol: str, quantity: Number
) -> Position:
    balance = to_decimal(quantity)
    item = find_reserve(position, symbol)
    if item is None or balance < 0 or item.underlying_balance == balance:
        return position
    return _finish(_set_reserve_balance(position, symbol, balance), market)


def set_borrow_quantity(
    position: Position, market: MarketContext, symbol: str, quantity: Number
) -> Position:
    amount = to_decimal(quantity)
    item = find_borrow(position, symbol)
    if item is None or amount < 0 or item.total_borrows == amount:
        return position
    return _finish(_set_borrow_amount(position, symbol, amount), market)


def set_asset_price(
    position: Position, market: MarketContext, symbol: str, price_usd: Number
) -> Position:
    """Override the USD price of *symbol* in both reserve and borrow lists."""
    price = to_decimal(price_usd)
    if price < 0:
        return position
    items = [find_reserve(position, symbol), find_borrow(position, symbol)]
    if all(item is None or item.asset.price_usd == price for item in items):
        return position
    return _finish(with_asset_price(position, symbol, price), market)


def set_collateral_usage(
    position: Position, market: MarketContext, symbol: str, enabled: bool
) -> Position:
    item = find_reserve(position, symbol)
    if item is None or item.usage_as_collateral_enabled == enabled:
        return position
    reserves = [
        replace(r, usage_as_collateral_enabled=enabled) if r.symbol == symbol else r
        for r in position.reserves
    ]
    return _finish(replace(position, reserves=reserves), market)


# ---------------------------------------------------------------------------
# Swaps
# ---------------------------------------------------------------------------

def _plan_swap_debt(
    position: Position,
    market: MarketContext,
    source_symbol: str,
    target_symbol: str,
    fraction: Number,
    slippage_bps: Optional[int],
    fee_model: FeeModel,
) -> Optional[Position]:
    share = _valid_fraction(fraction)
    source = find_borrow(position, source_symbol)
    if share is None or source is None or source.total_borrows <= 0:
        return None
    if source_symbol == target_symbol:
        return None
    target_asset = market.asset(target_symbol)
    if target_asset is None or not is_borrowable(target_asset):
        logger.debug("Swap debt skipped: %s is not borrowable", target_symbol)
        return None

    notional = source.total_borrows * share * source.asset.price_usd
    net_usd = fee_model.breakdown(notional, slippage_bps).net_receive_usd
    target_units = net_usd / price_or_one(target_asset.price_usd)

    updated = _set_borrow_amount(position, source_symbol, source.total_borrows * (ONE - share))
    updated = _credit_borrow(updated, target_asset, target_units)
    return _finish(updated, market)


def _plan_swap_collateral(
    position: Position,
    market: MarketContext,
    source_symbol: str,
    target_symbol: str,
    fraction: Optional[Number],
    amount: Optional[Number],
    slippage_bps: Optional[int],
    fee_model: FeeModel,
) -> Optional[Position]:
    source = find_reserve(position, source_symbol)
    if source is None or source.underlying_balance <= 0 or source_symbol == target_symbol:
        return None

    fixed_amount = _positive(amount)
    if fixed_amount is not None:
        units = min(fixed_amount, source.underlying_balance)
    else:
        share = _valid_fraction(fraction)
        if share is None:
            return None
        units = source.underlying_balance * share

    target_asset = market.asset(target_symbol)
    if target_asset is None or not is_suppliable(target_asset):
        logger.debug("Swap collateral skipped: %s is not suppliable", target_symbol)
        return None

    notional = units * source.asset.price_usd
    net_usd = fee_model.breakdown(notional, slippage_bps).net_receive_usd
    target_units = net_usd / price_or_one(target_asset.price_usd)

    updated = _set_reserve_balance(position, source_symbol, source.underlying_balance - units)
    updated = _credit_reserve(updated, target_asset, target_units)
    return _finish(updated, market)


def swap_debt(
    position: Position,
    market: MarketContext,
    source_symbol: str,
    target_symbol: str,
    fraction: Number,
    slippage_bps: Optional[int] = None,
    fee_model: FeeModel = DEFAULT_FEE_MODEL,
) -> Position:
    """Move *fraction* of one debt into another borrowable asset.

    The target debt grows by the swap's net receive, so fees and slippage
    leave the position owing slightly less in USD than before.
    """
    planned = _plan_swap_debt(
        position, market, source_symbol, target_symbol, fraction, slippage_bps, fee_model
    )
    return _keep(position, planned)


def swap_collateral(
    position: Position,
    market: MarketContext,
    source_symbol: str,
    target_symbol: str,
    fraction: Optional[Number] = None,
    amount: Optional[Number] = None,
    slippage_bps: Optional[int] = None,
    fee_model: FeeModel = DEFAULT_FEE_MODEL,
) -> Position:
    """Sell part of one reserve into another suppliable asset.

    A positive *amount* (source units, capped at the balance) takes
    precedence over *fraction*.
    """
    planned = _plan_swap_collateral(
        position, market, source_symbol, target_symbol, fraction, amount, slippage_bps, fee_model
    )
    return _keep(position, planned)


# ---------------------------------------------------------------------------
# Repay / borrow
# ---------------------------------------------------------------------------

def _plan_repay_debt(
    position: Position, market: MarketContext, symbol: str, amount: Number
) -> Optional[Position]:
    debt = find_borrow(position, symbol)
    if debt is None or debt.total_borrows <= 0:
        return None
    repay = to_decimal(amount)
    if repay <= 0:
        return None
    return _finish(
        _set_borrow_amount(position, symbol, max(ZERO, debt.total_borrows - repay)), market
    )


def _plan_repay_with_collateral(
    position: Position,
    market: MarketContext,
    debt_symbol: str,
    collateral_symbol: str,
    fraction: Optional[Number],
    amount: Optional[Number],
    slippage_bps: Optional[int],
    liquidation_bonus_pct: Optional[Number],
    fee_model: FeeModel,
) -> Optional[Position]:
    debt = find_borrow(position, debt_symbol)
    if debt is None or debt.total_borrows <= 0:
        return None

    fixed_amount = _positive(amount)
    if fixed_amount is not None:
        target_units = min(fixed_amount, debt.total_borrows)
    else:
        share = _valid_fraction(fraction)
        if share is None:
            return None
        target_units = share * debt.total_borrows

    collateral = find_reserve(position, collateral_symbol)
    if collateral is None or collateral.underlying_balance <= 0 or target_units <= 0:
        return None

    debt_price = price_or_one(debt.asset.price_usd)
    collateral_price = price_or_one(collateral.asset.price_usd)
    target_usd = target_units * debt_price
    bonus = ZERO
    if liquidation_bonus_pct is not None and to_decimal(liquidation_bonus_pct) > 0:
        bonus = to_decimal(liquidation_bonus_pct) / 100

    if bonus > 0:
        # A liquidator takes collateral worth the repaid debt plus the bonus; no swap fees.
        seized_units = min(
            target_usd * (ONE + bonus) / collateral_price, collateral.underlying_balance
        )
        used_units = seized_units
        reduce_units = min(
            seized_units * collateral_price / (ONE + bonus) / debt_price, debt.total_borrows
        )
    else:
        needed_usd = fee_model.collateral_usd_needed(target_usd, slippage_bps)
        used_units = min(needed_usd / collateral_price, collateral.underlying_balance)
        receive_usd = used_units * collateral_price * fee_model.multiplier(slippage_bps)
        reduce_units = min(receive_usd / debt_price, debt.total_borrows)

    updated = _set_reserve_balance(
        position, collateral_symbol, max(ZERO, collateral.underlying_balance - used_units)
    )
    updated = _set_borrow_amount(
        updated, debt_symbol, max(ZERO, debt.total_borrows - reduce_units)
    )
    return _finish(updated, market)


def _plan_borrow_more(
    position: Position, market: MarketContext, symbol: str, units: Number
) -> Optional[Position]:
    additional = to_decimal(units)
    if additional <= 0:
        return None
    existing = find_borrow(position, symbol)
    if existing is not None:
        return _finish(
            _set_borrow_amount(position, symbol, existing.total_borrows + additional), market
        )
    asset = market.asset(symbol)
    if asset is None or not is_borrowable(asset):
        logger.debug("Borrow skipped: %s is not borrowable", symbol)
        return None
    return _finish(_credit_borrow(position, asset, additional), market)


def repay_debt(position: Position, market: MarketContext, symbol: str, amount: Number) -> Position:
    """Repay *amount* units of debt from outside funds, flooring the debt at 0."""
    return _keep(position, _plan_repay_debt(position, market, symbol, amount))


def repay_debt_with_collateral(
    position: Position,
    market: MarketContext,
    debt_symbol: str,
    collateral_symbol: str,
    fraction: Optional[Number] = None,
    amount: Optional[Number] = None,
    slippage_bps: Optional[int] = None,
    liquidation_bonus_pct: Optional[Number] = None,
    fee_model: FeeModel = DEFAULT_FEE_MODEL,
) -> Position:
    """Repay debt by selling collateral.

    The debt target is *amount* units (capped at the debt) or *fraction* of
    the debt.  Without a bonus the collateral is sold through the fee model:

        sold     = min(target_usd / multiplier / collateral_price, balance)
        repaid   = min(sold * collateral_price * multiplier / debt_price, debt)

    With ``liquidation_bonus_pct`` > 0 the sale models a liquidation instead:

        seized   = min(target_usd * (1 + bonus) / collateral_price, balance)
        repaid   = min(seized * collateral_price / (1 + bonus) / debt_price, debt)
    """
    planned = _plan_repay_with_collateral(
        position,
        market,
        debt_symbol,
        collateral_symbol,
        fraction,
        amount,
        slippage_bps,
        liquidation_bonus_pct,
        fee_model,
    )
    return _keep(position, planned)


def borrow_more(position: Position, market: MarketContext, symbol: str, units: Number) -> Position:
    return _keep(position, _plan_borrow_more(position, market, symbol, units))


# ---------------------------------------------------------------------------
# Composites
# ---------------------------------------------------------------------------

def apply_looping_state(
    position: Position,
    market: MarketContext,
    collateral_symbol: str,
    collateral_amount: Number,
    debt_symbol: str,
    debt_amount: Number,
) -> Position:
    """Transplant absolute collateral/debt quantities onto *position*."""
    updated = position
    if find_reserve(updated, collateral_symbol) is None:
        updated = add_reserve(updated, market, collateral_symbol)
    if find_borrow(updated, debt_symbol) is None:
        updated = add_borrow(updated, market, debt_symbol)
    updated = set_reserve_quantity(updated, market, collateral_symbol, collateral_amount)
    return set_borrow_quantity(updated, market, debt_symbol, debt_amount)


def apply_liquidation_scenario(
    position: Position,
    market: MarketContext,
    solver_config: SolverConfig = DEFAULT_SOLVER_CONFIG,
) -> Position:
    """Reprice the position at its solved liquidation scenario."""
    updated = position
    for asset in liquidation_scenario(position, market.market_reference_price_usd, solver_config):
        updated = set_asset_price(updated, market, asset.symbol, asset.price_usd)
    return updated


# ---------------------------------------------------------------------------
# Projections
# ---------------------------------------------------------------------------

def project_swap_debt(
    position: Position,
    market: MarketContext,
    source_symbol: str,
    target_symbol: str,
    fraction: Number,
    slippage_bps: Optional[int] = None,
    fee_model: FeeModel = DEFAULT_FEE_MODEL,
    solver_config: SolverConfig = DEFAULT_SOLVER_CONFIG,
) -> Projection:
    planned = _plan_swap_debt(
        position, market, source_symbol, target_symbol, fraction, slippage_bps, fee_model
    )
    return _project(planned, market, solver_config)


def project_swap_collateral(
    position: Position,
    market: MarketContext,
    source_symbol: str,
    target_symbol: str,
    fraction: Optional[Number] = None,
    amount: Optional[Number] = None,
    slippage_bps: Optional[int] = None,
    fee_model: FeeModel = DEFAULT_FEE_MODEL,
    solver_config: SolverConfig = DEFAULT_SOLVER_CONFIG,
) -> Projection:
    planned = _plan_swap_collateral(
        position, market, source_symbol, target_symbol, fraction, amount, slippage_bps, fee_model
    )
    return _project(planned, market, solver_config)


def project_repay_debt(
    position: Position,
    market: MarketContext,
    symbol: str,
    amount: Number,
    solver_config: SolverConfig = DEFAULT_SOLVER_CONFIG,
) -> Projection:
    return _project(_plan_repay_debt(position, market, symbol, amount), market, solver_config)


def project_repay_debt_with_collateral(
    position: Position,
    market: MarketContext,
    debt_symbol: str,
    collateral_symbol: str,
    fraction: Optional[Number] = None,
    amount: Optional[Number] = None,
    slippage_bps: Optional[int] = None,
    liquidation_bonus_pct: Optional[Number] = None,
    fee_model: FeeModel = DEFAULT_FEE_MODEL,
    solver_config: SolverConfig = DEFAULT_SOLVER_CONFIG,
) -> Projection:
    planned = _plan_repay_with_collateral(
        position,
        market,
        debt_symbol,
        collateral_symbol,
        fraction,
        amount,
        slippage_bps,
        liquidation_bonus_pct,
        fee_model,
    )
    return _project(planned, market, solver_config)


def project_borrow_more(
    position: Position,
    market: MarketContext,
    symbol: str,
    units: Number,
    solver_config: SolverConfig = DEFAULT_SOLVER_CONFIG,
) -> Projection:
    return _project(_plan_borrow_more(position, market, symbol, units), market, solver_config)
