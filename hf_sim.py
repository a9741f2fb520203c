import argparse
import json
import logging
import os
import sys
from decimal import Decimal
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from hflab.config import SimulatorConfig, load_config
from hflab.logging_setup import configure_logging
from hflab.report import (
    format_health_factor,
    health_color,
    liquidation_frame,
    line_items_frame,
    scenario_report,
)
from hflab.risk.actions import apply_actions
from hflab.risk.liquidation import liquidation_scenario
from hflab.risk.position import MarketContext, Position
from hflab.slippage import CowSlippageOracle
from hflab.snapshot import parse_snapshot

logger = logging.getLogger("hf_sim")


def _format_report(title: str, position: Position) -> str:
    lines = [title]
    for key, value in scenario_report(position).items():
        if key == "health_factor":
            lines.append(
                f"  {key}: {format_health_factor(value)} ({health_color(value)})"
            )
        else:
            lines.append(f"  {key}: {value:.6f}")
    return "\n".join(lines)


def _format_position(
    title: str,
    position: Position,
    market: MarketContext,
    config: SimulatorConfig,
    show_scenario: bool,
) -> List[str]:
    output = [_format_report(title, position), line_items_frame(position).to_string(index=False)]
    if show_scenario:
        scenario = liquidation_scenario(
            position, market.market_reference_price_usd, config.solver
        )
        if scenario:
            output.append(liquidation_frame(position, scenario).to_string(index=False))
        else:
            output.append("  no liquidation scenario")
    return output


def run_simulation(
    payload: Dict[str, Any],
    config: Optional[SimulatorConfig] = None,
    slippage_oracle=None,
    show_scenario: bool = True,
) -> str:
    config = config or SimulatorConfig.defaults()
    snapshot = parse_snapshot(payload)
    market = snapshot.market
    baseline = snapshot.position

    output = _format_position("Baseline:", baseline, market, config, show_scenario)

    actions: List[Dict[str, Any]] = snapshot.actions
    if actions:
        logger.info("Applying %d actions", len(actions))
        working = apply_actions(
            baseline,
            market,
            actions,
            fee_model=config.fee_model,
            slippage_oracle=slippage_oracle,
            solver_config=config.solver,
        )
        output.extend(_format_position("After actions:", working, market, config, show_scenario))
    return "\n".join(output)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Lending position health factor simulator.")
    parser.add_argument("--input", required=True, help="Path to JSON snapshot with optional actions.")
    parser.add_argument(
        "--config",
        default=os.getenv("HFLAB_CONFIG"),
        help="Path to JSON simulator configuration (default: $HFLAB_CONFIG).",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )
    parser.add_argument(
        "--live-slippage",
        action="store_true",
        help="Quote swap slippage from the CoW Protocol API instead of the default.",
    )
    parser.add_argument(
        "--no-scenario",
        action="store_true",
        help="Skip the liquidation price scenario.",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    try:
        config = load_config(args.config)
        with open(args.input, "r", encoding="utf-8") as handle:
            payload = json.load(handle, parse_float=Decimal)
    except (FileNotFoundError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    oracle = None
    if args.live_slippage or config.live_slippage:
        oracle = CowSlippageOracle(
            base_url=config.slippage_oracle.base_url,
            timeout=config.slippage_oracle.timeout,
        )

    try:
        report = run_simulation(payload, config, oracle, show_scenario=not args.no_scenario)
    except (KeyError, ValueError) as exc:
        print(f"error: invalid snapshot: {exc}", file=sys.stderr)
        return 1

    print(report)
    return 0


if __name__ == "__main__":
    sys.exit(main())
