"""Collaborator protocols: position data provider and slippage quotes."""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Protocol

if TYPE_CHECKING:
    from hflab.snapshot import Snapshot


class ProviderError(Exception):
    """The data provider could not produce a snapshot."""


class PositionProvider(Protocol):
    """Source of position snapshots keyed by (address, market)."""

    def fetch(self, address: str, market_id: str) -> Snapshot: ...


class SlippageOracle(Protocol):
    """Recommended slippage for a token pair, or None when unavailable."""

    def slippage_bps(self, chain_id: int, token_a: str, token_b: str) -> Optional[int]: ...
