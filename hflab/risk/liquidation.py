"""Liquidation price scenario search.

Finds hypothetical prices for the eligible collateral assets at which the
position's health factor lands just above 1.00.  The search is a bounded
heuristic rather than a closed-form inverse: with several collateral assets
sharing one weighted threshold there is no unique answer, and the scenario
values shown to users are the ones this particular walk converges to.

1. Expansion: while HF is below the target bound, raise every eligible price by
   10% (rounded to the cent), one asset at a time with a recompute after each.
2. Contraction: while HF is above the target bound, lower prices one asset at a
   time.  The first decrement of a sweep is estimated from the HF excess and
   fixes a percentage that the rest of the sweep reuses.  A decrement that
   pushes HF below 1.00 is undone.
3. An empty list comes back when every price hits the floor or the iteration
   budget runs out.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List

from hflab.risk.eligibility import eligible_liquidation_reserves
from hflab.risk.position import (
    CENT,
    ONE,
    ZERO,
    Asset,
    Number,
    Position,
    find_reserve,
    price_or_one,
    recompute,
    round_cents,
    with_asset_price,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SolverConfig:
    max_iterations: int = 500
    hf_target_bound: Decimal = Decimal("1.0049999999999")
    price_floor: Decimal = CENT
    step_up: Decimal = Decimal("0.10")
    damping: Decimal = Decimal("0.45")
    max_step_down: Decimal = Decimal("0.50")


DEFAULT_SOLVER_CONFIG = SolverConfig()

# Health factors that display as 1.00.
NEAR_ONE_LOW = Decimal("0.995")
NEAR_ONE_HIGH = Decimal("1.005")


def _reprice(position: Position, symbol: str, price: Decimal, mrc_price: Number) -> Position:
    return recompute(with_asset_price(position, symbol, price), mrc_price)


def liquidation_scenario(
    position: Position,
    market_reference_price_usd: Number,
    config: SolverConfig = DEFAULT_SOLVER_CONFIG,
) -> List[Asset]:
    scenario = recompute(position, market_reference_price_usd)
    eligible = eligible_liquidation_reserves(scenario)
    hf = scenario.health_factor

    if not eligible or hf.is_infinite() or hf <= 0:
        return []

    if NEAR_ONE_LOW <= hf < NEAR_ONE_HIGH:
        return [item.asset for item in eligible]

    symbols = [item.symbol for item in eligible]
    prices: Dict[str, Decimal] = {item.symbol: item.asset.price_usd for item in eligible}
    iteration = 0

    while hf < config.hf_target_bound and iteration < config.max_iterations:
        iteration += 1
        for symbol in symbols:
            increment = round_cents(price_or_one(prices[symbol]) * config.step_up)
            prices[symbol] += increment
            scenario = _reprice(scenario, symbol, prices[symbol], market_reference_price_usd)
            hf = scenario.health_factor

    short_circuit = False
    while hf > config.hf_target_bound and iteration < config.max_iterations and not short_circuit:
        iteration += 1
        # Reset every sweep so all assets fall by roughly the same share.
        uniform_pct = ZERO
        for symbol in symbols:
            if hf < config.hf_target_bound:
                break

            price = prices[symbol]
            if uniform_pct:
                decrement = max(config.price_floor, uniform_pct * price / 100)
            else:
                estimate = min(
                    price * ((hf - config.hf_target_bound) * config.damping),
                    price * config.max_step_down,
                )
                decrement = max(config.price_floor, estimate)
            decrement = round_cents(decrement)

            if not uniform_pct and price > 0:
                uniform_pct = decrement * 100 / price

            new_price = max(price - decrement, config.price_floor)
            prices[symbol] = new_price

            if new_price == config.price_floor and not any(
                p > config.price_floor for p in prices.values()
            ):
                short_circuit = True

            candidate = _reprice(scenario, symbol, new_price, market_reference_price_usd)
            if candidate.health_factor < ONE:
                prices[symbol] = price
                continue

            scenario = candidate
            hf = candidate.health_factor

    if short_circuit or iteration == config.max_iterations:
        logger.debug(
            "No liquidation scenario (short_circuit=%s, iterations=%d)",
            short_circuit,
            iteration,
        )
        return []

    logger.debug("Liquidation scenario converged after %d iterations at HF %s", iteration, hf)
    return [find_reserve(scenario, symbol).asset for symbol in symbols]
