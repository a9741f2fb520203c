"""Baseline/working position pairs and the refresh merge.

A :class:`PositionSession` holds the fetched baseline and the working copy a
user simulates on.  A :class:`PositionBook` keys sessions by
``(address, market_id)`` so that positions never see each other's edits.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

from hflab.interfaces import PositionProvider, ProviderError
from hflab.risk.liquidation import DEFAULT_SOLVER_CONFIG, SolverConfig, liquidation_scenario
from hflab.risk.mutations import Projection, apply_liquidation_scenario
from hflab.risk.position import Asset, MarketContext, Position, recompute, round_cents
from hflab.snapshot import Snapshot

logger = logging.getLogger(__name__)


def _display_hf(value: Decimal) -> Decimal:
    return round_cents(value) if value.is_finite() else value


def _merge_asset(working: Asset, previous: Optional[Asset], fresh: Asset) -> Asset:
    """Fresh provider fields, keeping user flags and price overrides."""
    merged = replace(fresh, added_by_user=working.added_by_user)
    if previous is not None and working.price_usd != previous.price_usd:
        merged = replace(merged, price_usd=working.price_usd)
    return merged


class PositionSession:
    def __init__(self, snapshot: Snapshot) -> None:
        self.market: MarketContext = snapshot.market
        self.baseline: Position = snapshot.position
        self.working: Position = snapshot.position

    # ------------------------------------------------------------------
    # Simulation
    # ------------------------------------------------------------------

    def apply(self, operation: Callable[..., Position], *args: Any, **kwargs: Any) -> Position:
        """Run a mutation against the working copy and keep its result."""
        self.working = operation(self.working, self.market, *args, **kwargs)
        return self.working

    def project(self, projection: Callable[..., Projection], *args: Any, **kwargs: Any) -> Projection:
        return projection(self.working, self.market, *args, **kwargs)

    def liquidation_scenario(self, solver_config: SolverConfig = DEFAULT_SOLVER_CONFIG) -> List[Asset]:
        return liquidation_scenario(
            self.working, self.market.market_reference_price_usd, solver_config
        )

    def apply_liquidation_scenario(
        self, solver_config: SolverConfig = DEFAULT_SOLVER_CONFIG
    ) -> Position:
        return self.apply(apply_liquidation_scenario, solver_config)

    def reset(self) -> Position:
        self.working = self.baseline
        return self.working

    def has_edits(self) -> bool:
        return _display_hf(self.working.health_factor) != _display_hf(self.baseline.health_factor)

    def is_diverged(self) -> bool:
        return (
            self.working.health_factor != self.baseline.health_factor
            or len(self.working.reserves) != len(self.baseline.reserves)
            or len(self.working.borrows) != len(self.baseline.borrows)
        )

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def refresh(self, snapshot: Snapshot) -> Position:
        """Take a fresh provider snapshot without losing simulation edits.

        An untouched working copy simply becomes the fresh baseline.  A
        diverged one keeps its quantities, user-added items and price
        overrides, takes every other asset field from the fresh catalog and
        is recomputed at the fresh market reference price.
        """
        previous_market = self.market
        diverged = self.is_diverged()
        self.market = snapshot.market
        self.baseline = snapshot.position

        if not diverged:
            logger.info("Refreshed %s on %s, no edits to keep", self.baseline.address, self.market.market_id)
            self.working = snapshot.position
            return self.working

        fresh = snapshot.market.assets
        reserves = [
            replace(item, asset=_merge_asset(item.asset, previous_market.asset(item.symbol), fresh[item.symbol]))
            if item.symbol in fresh else item
            for item in self.working.reserves
        ]
        borrows = [
            replace(item, asset=_merge_asset(item.asset, previous_market.asset(item.symbol), fresh[item.symbol]))
            if item.symbol in fresh else item
            for item in self.working.borrows
        ]
        merged = replace(self.working, reserves=reserves, borrows=borrows)
        self.working = recompute(merged, self.market.market_reference_price_usd)
        logger.info(
            "Refreshed %s on %s, kept simulated edits (HF %s)",
            self.baseline.address,
            self.market.market_id,
            self.working.health_factor,
        )
        return self.working


class PositionBook:
    """Sessions keyed by ``(address, market_id)``."""

    def __init__(self, provider: PositionProvider) -> None:
        self.provider = provider
        self._sessions: Dict[Tuple[str, str], PositionSession] = {}

    def __contains__(self, key: Tuple[str, str]) -> bool:
        return key in self._sessions

    def get(self, address: str, market_id: str) -> Optional[PositionSession]:
        return self._sessions.get((address, market_id))

    def load(self, address: str, market_id: str) -> PositionSession:
        """Fetch and open a session, or refresh the existing one."""
        try:
            snapshot = self.provider.fetch(address, market_id)
        except ProviderError:
            logger.exception("Provider failed for %s on %s", address, market_id)
            raise

        session = self._sessions.get((address, market_id))
        if session is None:
            session = PositionSession(snapshot)
            self._sessions[(address, market_id)] = session
        else:
            session.refresh(snapshot)
        return session

    def drop(self, address: str, market_id: str) -> None:
        self._sessions.pop((address, market_id), None)
