"""Position risk engine: derived metrics, liquidation scenarios and simulation operations."""

from hflab.risk.eligibility import (
    STABLECOIN_SYMBOLS,
    eligible_liquidation_reserves,
    is_active,
    is_borrowable,
    is_flashloanable,
    is_stablecoin,
    is_suppliable,
)
from hflab.risk.fees import (
    DEFAULT_FEE_MODEL,
    DEFAULT_SLIPPAGE_BPS,
    EXECUTION_FEE_BPS,
    SWAP_FEE_BPS,
    FeeBreakdown,
    FeeModel,
    collateral_usd_needed,
    resolve_slippage_bps,
    swap_fee_breakdown,
)
from hflab.risk.liquidation import DEFAULT_SOLVER_CONFIG, SolverConfig, liquidation_scenario
from hflab.risk.mutations import (
    Projection,
    add_borrow,
    add_reserve,
    apply_liquidation_scenario,
    apply_looping_state,
    borrow_more,
    project_borrow_more,
    project_repay_debt,
    project_repay_debt_with_collateral,
    project_swap_collateral,
    project_swap_debt,
    remove_borrow,
    remove_reserve,
    repay_debt,
    repay_debt_with_collateral,
    set_asset_price,
    set_borrow_quantity,
    set_collateral_usage,
    set_reserve_quantity,
    swap_collateral,
    swap_debt,
)
from hflab.risk.position import (
    Asset,
    BorrowItem,
    MarketContext,
    Position,
    ReserveItem,
    RiskParameters,
    effective_risk_parameters,
    find_borrow,
    find_reserve,
    recompute,
    round_cents,
    to_decimal,
    with_asset_price,
)

__all__ = [
    "Asset",
    "BorrowItem",
    "DEFAULT_FEE_MODEL",
    "DEFAULT_SLIPPAGE_BPS",
    "DEFAULT_SOLVER_CONFIG",
    "EXECUTION_FEE_BPS",
    "FeeBreakdown",
    "FeeModel",
    "MarketContext",
    "Position",
    "Projection",
    "ReserveItem",
    "RiskParameters",
    "STABLECOIN_SYMBOLS",
    "SWAP_FEE_BPS",
    "SolverConfig",
    "add_borrow",
    "add_reserve",
    "apply_liquidation_scenario",
    "apply_looping_state",
    "borrow_more",
    "collateral_usd_needed",
    "effective_risk_parameters",
    "eligible_liquidation_reserves",
    "find_borrow",
    "find_reserve",
    "is_active",
    "is_borrowable",
    "is_flashloanable",
    "is_stablecoin",
    "is_suppliable",
    "liquidation_scenario",
    "project_borrow_more",
    "project_repay_debt",
    "project_repay_debt_with_collateral",
    "project_swap_collateral",
    "project_swap_debt",
    "recompute",
    "remove_borrow",
    "remove_reserve",
    "repay_debt",
    "repay_debt_with_collateral",
    "resolve_slippage_bps",
    "round_cents",
    "set_asset_price",
    "set_borrow_quantity",
    "set_collateral_usage",
    "set_reserve_quantity",
    "swap_collateral",
    "swap_debt",
    "swap_fee_breakdown",
    "to_decimal",
    "with_asset_price",
]
