"""Simulator configuration: JSON file -> frozen dataclasses, validated."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional, Union

from hflab.risk.fees import DEFAULT_SLIPPAGE_BPS, EXECUTION_FEE_BPS, SWAP_FEE_BPS, FeeModel
from hflab.risk.liquidation import SolverConfig
from hflab.risk.position import to_decimal
from hflab.slippage import COW_BFF_BASE_URL

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SlippageOracleConfig:
    enabled: bool = False
    base_url: str = COW_BFF_BASE_URL
    timeout: float = 10.0


@dataclass(frozen=True)
class SimulatorConfig:
    fee_model: FeeModel = field(default_factory=FeeModel)
    solver: SolverConfig = field(default_factory=SolverConfig)
    slippage_oracle: SlippageOracleConfig = field(default_factory=SlippageOracleConfig)

    @classmethod
    def defaults(cls) -> SimulatorConfig:
        return cls()

    @property
    def live_slippage(self) -> bool:
        return self.slippage_oracle.enabled


# ---------------------------------------------------------------------------
# JSON -> dataclass builders
# ---------------------------------------------------------------------------


def _build_fee_model(raw: Dict[str, Any]) -> FeeModel:
    return FeeModel(
        swap_fee_bps=int(raw.get("swap_fee_bps", SWAP_FEE_BPS)),
        execution_fee_bps=int(raw.get("execution_fee_bps", EXECUTION_FEE_BPS)),
        default_slippage_bps=int(raw.get("default_slippage_bps", DEFAULT_SLIPPAGE_BPS)),
    )


def _build_solver(raw: Dict[str, Any]) -> SolverConfig:
    defaults = SolverConfig()
    return SolverConfig(
        max_iterations=int(raw.get("max_iterations", defaults.max_iterations)),
        hf_target_bound=to_decimal(raw.get("hf_target_bound", defaults.hf_target_bound)),
        price_floor=to_decimal(raw.get("price_floor", defaults.price_floor)),
        step_up=to_decimal(raw.get("step_up", defaults.step_up)),
        damping=to_decimal(raw.get("damping", defaults.damping)),
        max_step_down=to_decimal(raw.get("max_step_down", defaults.max_step_down)),
    )


def _build_slippage_oracle(raw: Dict[str, Any]) -> SlippageOracleConfig:
    return SlippageOracleConfig(
        enabled=bool(raw.get("enabled", False)),
        base_url=raw.get("base_url", COW_BFF_BASE_URL),
        timeout=float(raw.get("timeout", 10.0)),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: Optional[Union[str, Path]] = None) -> SimulatorConfig:
    """Load and validate simulator configuration from JSON.

    Without a path the built-in defaults are returned.
    """
    if config_path is None:
        return SimulatorConfig.defaults()
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as handle:
        raw = json.load(handle, parse_float=Decimal)

    cfg = SimulatorConfig(
        fee_model=_build_fee_model(raw.get("fees", {})),
        solver=_build_solver(raw.get("solver", {})),
        slippage_oracle=_build_slippage_oracle(raw.get("slippage_oracle", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: SimulatorConfig) -> None:
    """Raise on invalid configuration."""
    fees = cfg.fee_model
    for name in ("swap_fee_bps", "execution_fee_bps", "default_slippage_bps"):
        value = getattr(fees, name)
        if not 0 <= value < 10_000:
            raise ValueError(f"fees.{name} must be in [0, 10000), got {value}")
    if fees.fee_bps >= 10_000:
        raise ValueError("Combined swap and execution fees must be below 10000 bps")

    solver = cfg.solver
    if solver.max_iterations <= 0:
        raise ValueError("solver.max_iterations must be positive")
    if solver.price_floor <= 0:
        raise ValueError("solver.price_floor must be positive")
    if solver.hf_target_bound <= 1:
        raise ValueError("solver.hf_target_bound must be above 1")

    if cfg.slippage_oracle.timeout <= 0:
        raise ValueError("slippage_oracle.timeout must be positive")
