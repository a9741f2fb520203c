"""Swap fee and slippage model.

Every simulated swap pays a flat protocol swap fee plus an execution fee on the
notional, then loses a slippage share of what remains:

    fee_usd     = notional * (swap_bps + execution_bps) / 10000
    slippage    = (notional - fee_usd) * slippage_bps / 10000
    net_receive = notional - fee_usd - slippage
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from hflab.risk.position import BPS_DENOMINATOR, ONE, ZERO, Asset, Number, to_decimal

SWAP_FEE_BPS = 25
EXECUTION_FEE_BPS = 5
DEFAULT_SLIPPAGE_BPS = 150


@dataclass(frozen=True)
class FeeBreakdown:
    swap_fee_usd: Decimal
    execution_fee_usd: Decimal
    total_fee_usd: Decimal
    slippage_usd: Decimal
    net_receive_usd: Decimal
    slippage_bps: int


@dataclass(frozen=True)
class FeeModel:
    swap_fee_bps: int = SWAP_FEE_BPS
    execution_fee_bps: int = EXECUTION_FEE_BPS
    default_slippage_bps: int = DEFAULT_SLIPPAGE_BPS

    @property
    def fee_bps(self) -> int:
        return self.swap_fee_bps + self.execution_fee_bps

    def slippage_or_default(self, slippage_bps: Optional[int]) -> int:
        return self.default_slippage_bps if slippage_bps is None else int(slippage_bps)

    def multiplier(self, slippage_bps: Optional[int] = None) -> Decimal:
        """Fraction of the notional that arrives after fees and slippage."""
        slippage = self.slippage_or_default(slippage_bps)
        after_fees = ONE - Decimal(self.fee_bps) / BPS_DENOMINATOR
        return after_fees * (ONE - Decimal(slippage) / BPS_DENOMINATOR)

    def breakdown(self, notional_usd: Number, slippage_bps: Optional[int] = None) -> FeeBreakdown:
        notional = to_decimal(notional_usd)
        slippage = self.slippage_or_default(slippage_bps)
        swap_fee = notional * Decimal(self.swap_fee_bps) / BPS_DENOMINATOR
        execution_fee = notional * Decimal(self.execution_fee_bps) / BPS_DENOMINATOR
        total_fee = notional * Decimal(self.fee_bps) / BPS_DENOMINATOR
        after_fees = notional - total_fee
        slippage_usd = after_fees * Decimal(slippage) / BPS_DENOMINATOR
        return FeeBreakdown(
            swap_fee_usd=swap_fee,
            execution_fee_usd=execution_fee,
            total_fee_usd=total_fee,
            slippage_usd=slippage_usd,
            net_receive_usd=after_fees - slippage_usd,
            slippage_bps=slippage,
        )

    def collateral_usd_needed(
        self, target_receive_usd: Number, slippage_bps: Optional[int] = None
    ) -> Decimal:
        """Notional to sell so that *target_receive_usd* arrives after fees.

        needed = target / ((1 - fee_bps/10000) * (1 - slippage_bps/10000))
        """
        multiplier = self.multiplier(slippage_bps)
        if multiplier <= 0:
            return ZERO
        return to_decimal(target_receive_usd) / multiplier


DEFAULT_FEE_MODEL = FeeModel()


def swap_fee_breakdown(notional_usd: Number, slippage_bps: Optional[int] = None) -> FeeBreakdown:
    return DEFAULT_FEE_MODEL.breakdown(notional_usd, slippage_bps)


def collateral_usd_needed(target_receive_usd: Number, slippage_bps: Optional[int] = None) -> Decimal:
    return DEFAULT_FEE_MODEL.collateral_usd_needed(target_receive_usd, slippage_bps)


def resolve_slippage_bps(
    oracle,
    chain_id: Optional[int],
    source: Asset,
    target: Asset,
    fee_model: FeeModel = DEFAULT_FEE_MODEL,
) -> int:
    """Ask *oracle* for a pair quote, falling back to the model's default."""
    if oracle is None or chain_id is None:
        return fee_model.default_slippage_bps
    if not source.underlying_asset or not target.underlying_asset:
        return fee_model.default_slippage_bps
    quote = oracle.slippage_bps(chain_id, source.underlying_asset, target.underlying_asset)
    return fee_model.default_slippage_bps if quote is None else int(quote)
