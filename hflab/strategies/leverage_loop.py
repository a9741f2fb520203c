"""Leverage loop calculator: borrow stablecoins, buy more collateral, repeat."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, replace
from decimal import Decimal
from typing import List, Optional

import pandas as pd

from hflab.risk.mutations import apply_looping_state
from hflab.risk.position import (
    BPS_DENOMINATOR,
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
)

logger = logging.getLogger(__name__)

CONSTRAINT_MODES = ("min_hf", "max_ltv", "both")


@dataclass(frozen=True)
class LoopConfig:
    """Inputs of the looping table.

    ``constraint`` picks which bounds cap each loop's borrow on top of
    ``borrow_per_loop_usd`` and the available borrows:

        min_hf   borrow <= (collateral_usd * lt - min_hf * debt_usd) / (min_hf - lt)
        max_ltv  borrow <= collateral_usd * max_ltv_pct / 100 - debt_usd
        both     both of the above

    ``initial_collateral`` / ``initial_debt`` default to the balances the
    position currently holds.
    """

    borrow_per_loop_usd: Decimal = ZERO
    collateral_symbol: str = "cbBTC"
    debt_symbol: str = "USDC"
    num_loops: int = 3
    constraint: str = "min_hf"
    min_health_factor: Decimal = Decimal(2)
    max_ltv_pct: Decimal = Decimal(80)
    initial_collateral: Optional[Decimal] = None
    initial_debt: Optional[Decimal] = None

    def __post_init__(self) -> None:
        if self.constraint not in CONSTRAINT_MODES:
            raise ValueError(
                f"Unknown loop constraint {self.constraint!r}, expected one of {CONSTRAINT_MODES}"
            )


@dataclass(frozen=True)
class LoopStep:
    loop: int
    label: str
    collateral: Decimal
    debt: Decimal
    collateral_usd: Decimal
    debt_usd: Decimal
    borrow_this_loop: Decimal
    available_borrows_usd: Decimal
    health_factor: Decimal
    ltv_pct: Decimal


class LeverageLoop:
    def __init__(self, config: LoopConfig | None = None) -> None:
        self.config = config or LoopConfig()

    # ------------------------------------------------------------------
    # Public
    # ------------------------------------------------------------------

    def steps(self, position: Position, market: MarketContext) -> List[LoopStep]:
        config = self.config
        collateral_asset = market.asset(config.collateral_symbol)
        debt_asset = market.asset(config.debt_symbol)
        if collateral_asset is None or debt_asset is None:
            logger.info(
                "Market %s lacks %s or %s, no loop table",
                market.market_id,
                config.collateral_symbol,
                config.debt_symbol,
            )
            return []

        collateral_price = price_or_one(collateral_asset.price_usd)
        debt_price = price_or_one(debt_asset.price_usd)
        threshold = Decimal(collateral_asset.liquidation_threshold_bps) / BPS_DENOMINATOR
        borrow_per_loop = to_decimal(config.borrow_per_loop_usd)

        collateral = self._initial_collateral(position)
        debt = self._initial_debt(position)

        rows = [self._row(0, "Start", collateral, debt, ZERO, collateral_asset, debt_asset, market)]
        for loop in range(1, config.num_loops + 1):
            collateral_usd = collateral * collateral_price
            debt_usd = debt * debt_price
            synthetic = self._synthetic(collateral_asset, debt_asset, collateral, debt, market)
            caps = [borrow_per_loop, max(synthetic.available_borrows_usd, ZERO)]

            if config.constraint in ("min_hf", "both"):
                min_hf = to_decimal(config.min_health_factor)
                denominator = min_hf - threshold
                if denominator > 0:
                    caps.append(max(ZERO, (collateral_usd * threshold - min_hf * debt_usd) / denominator))
            if config.constraint in ("max_ltv", "both"):
                caps.append(collateral_usd * to_decimal(config.max_ltv_pct) / 100 - debt_usd)

            borrow = max(ZERO, min(caps))
            if borrow <= 0 and loop == 1:
                break

            collateral += borrow / collateral_price
            debt += borrow / debt_price
            rows.append(
                self._row(loop, str(loop), collateral, debt, borrow, collateral_asset, debt_asset, market)
            )
        return rows

    def apply(
        self,
        position: Position,
        market: MarketContext,
        step: Optional[LoopStep] = None,
    ) -> Position:
        """Put *step* (the last loop by default) onto the working position."""
        if step is None:
            rows = self.steps(position, market)
            if not rows:
                return position
            step = rows[-1]
        return apply_looping_state(
            position,
            market,
            self.config.collateral_symbol,
            step.collateral,
            self.config.debt_symbol,
            step.debt,
        )

    @staticmethod
    def to_frame(steps: List[LoopStep]) -> pd.DataFrame:
        records = []
        for step in steps:
            record = asdict(step)
            for key, value in record.items():
                if isinstance(value, Decimal):
                    record[key] = float(value)
            records.append(record)
        return pd.DataFrame.from_records(records, columns=list(LoopStep.__dataclass_fields__))

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _initial_collateral(self, position: Position) -> Decimal:
        if self.config.initial_collateral is not None:
            return to_decimal(self.config.initial_collateral)
        item = find_reserve(position, self.config.collateral_symbol)
        return item.underlying_balance if item is not None else ZERO

    def _initial_debt(self, position: Position) -> Decimal:
        if self.config.initial_debt is not None:
            return to_decimal(self.config.initial_debt)
        item = find_borrow(position, self.config.debt_symbol)
        return item.total_borrows if item is not None else ZERO

    @staticmethod
    def _synthetic(
        collateral_asset: Asset,
        debt_asset: Asset,
        collateral: Number,
        debt: Number,
        market: MarketContext,
    ) -> Position:
        reserve = ReserveItem(
            asset=replace(collateral_asset, price_usd=price_or_one(collateral_asset.price_usd)),
            underlying_balance=to_decimal(collateral),
            usage_as_collateral_enabled=True,
        )
        borrow = BorrowItem(
            asset=replace(debt_asset, price_usd=price_or_one(debt_asset.price_usd)),
            total_borrows=to_decimal(debt),
        )
        return recompute(Position(reserves=[reserve], borrows=[borrow]), market.market_reference_price_usd)

    def _row(
        self,
        loop: int,
        label: str,
        collateral: Decimal,
        debt: Decimal,
        borrow: Decimal,
        collateral_asset: Asset,
        debt_asset: Asset,
        market: MarketContext,
    ) -> LoopStep:
        collateral_usd = collateral * price_or_one(collateral_asset.price_usd)
        debt_usd = debt * price_or_one(debt_asset.price_usd)
        synthetic = self._synthetic(collateral_asset, debt_asset, collateral, debt, market)
        ltv_pct = 100 * debt_usd / collateral_usd if collateral_usd > 0 else ZERO
        return LoopStep(
            loop=loop,
            label=label,
            collateral=collateral,
            debt=debt,
            collateral_usd=collateral_usd,
            debt_usd=debt_usd,
            borrow_this_loop=borrow,
            available_borrows_usd=max(synthetic.available_borrows_usd, ZERO),
            health_factor=synthetic.health_factor,
            ltv_pct=ltv_pct,
        )
