from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Iterable, Optional

from hflab.risk import mutations
from hflab.risk.fees import DEFAULT_FEE_MODEL, FeeModel, resolve_slippage_bps
from hflab.risk.liquidation import DEFAULT_SOLVER_CONFIG, SolverConfig
from hflab.risk.position import MarketContext, Position, find_borrow, find_reserve
from hflab.strategies.leverage_loop import LeverageLoop, LoopConfig

_LINE_ITEM_ACTIONS = {
    "add_reserve": mutations.add_reserve,
    "add_borrow": mutations.add_borrow,
    "remove_reserve": mutations.remove_reserve,
    "remove_borrow": mutations.remove_borrow,
}


def _slippage(
    action: Dict[str, Any],
    position: Position,
    market: MarketContext,
    source_is_debt: bool,
    fee_model: FeeModel,
    slippage_oracle,
) -> Optional[int]:
    if action.get("slippage_bps") is not None:
        return int(action["slippage_bps"])
    if slippage_oracle is None:
        return None
    item = (
        find_borrow(position, action["source"])
        if source_is_debt
        else find_reserve(position, action["source"])
    )
    target = market.asset(action["target"])
    if item is None or target is None:
        return None
    return resolve_slippage_bps(slippage_oracle, market.chain_id, item.asset, target, fee_model)


def _loop_config(action: Dict[str, Any]) -> LoopConfig:
    fields = {key: value for key, value in action.items() if key != "type"}
    for key in ("borrow_per_loop_usd", "min_health_factor", "max_ltv_pct",
                "initial_collateral", "initial_debt"):
        if fields.get(key) is not None:
            fields[key] = Decimal(str(fields[key]))
    return LoopConfig(**fields)


def apply_actions(
    position: Position,
    market: MarketContext,
    actions: Iterable[Dict[str, Any]],
    fee_model: FeeModel = DEFAULT_FEE_MODEL,
    slippage_oracle=None,
    solver_config: SolverConfig = DEFAULT_SOLVER_CONFIG,
) -> Position:
    """Run a scripted list of simulation steps against *position*.

    Each action is a dict with a ``type`` key.  Swap actions without an
    explicit ``slippage_bps`` ask *slippage_oracle* (when given) for a quote.
    """
    for action in actions:
        action_type = action["type"]

        if action_type in _LINE_ITEM_ACTIONS:
            position = _LINE_ITEM_ACTIONS[action_type](position, market, action["symbol"])
        elif action_type == "set_reserve_quantity":
            position = mutations.set_reserve_quantity(
                position, market, action["symbol"], action["quantity"]
            )
        elif action_type == "set_borrow_quantity":
            position = mutations.set_borrow_quantity(
                position, market, action["symbol"], action["quantity"]
            )
        elif action_type == "set_price":
            if action.get("price") is None:
                raise ValueError(f"Price is required for action {action_type}.")
            position = mutations.set_asset_price(position, market, action["symbol"], action["price"])
        elif action_type == "set_collateral":
            position = mutations.set_collateral_usage(
                position, market, action["symbol"], bool(action["enabled"])
            )
        elif action_type == "swap_debt":
            position = mutations.swap_debt(
                position,
                market,
                action["source"],
                action["target"],
                action["fraction"],
                slippage_bps=_slippage(action, position, market, True, fee_model, slippage_oracle),
                fee_model=fee_model,
            )
        elif action_type == "swap_collateral":
            position = mutations.swap_collateral(
                position,
                market,
                action["source"],
                action["target"],
                fraction=action.get("fraction"),
                amount=action.get("amount"),
                slippage_bps=_slippage(action, position, market, False, fee_model, slippage_oracle),
                fee_model=fee_model,
            )
        elif action_type == "repay":
            if action.get("collateral") is None:
                position = mutations.repay_debt(position, market, action["symbol"], action["amount"])
            else:
                position = mutations.repay_debt_with_collateral(
                    position,
                    market,
                    action["symbol"],
                    action["collateral"],
                    fraction=action.get("fraction"),
                    amount=action.get("amount"),
                    slippage_bps=action.get("slippage_bps"),
                    liquidation_bonus_pct=action.get("liquidation_bonus_pct"),
                    fee_model=fee_model,
                )
        elif action_type == "borrow":
            position = mutations.borrow_more(position, market, action["symbol"], action["amount"])
        elif action_type == "apply_looping_state":
            position = mutations.apply_looping_state(
                position,
                market,
                action["collateral_symbol"],
                action["collateral_amount"],
                action["debt_symbol"],
                action["debt_amount"],
            )
        elif action_type == "loop":
            position = LeverageLoop(_loop_config(action)).apply(position, market)
        elif action_type == "apply_liquidation_scenario":
            position = mutations.apply_liquidation_scenario(position, market, solver_config)
        else:
            raise ValueError(f"Unknown action type: {action_type}")

    return position
