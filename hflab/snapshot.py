"""Position snapshots: JSON payload parsing and a file-backed provider.

Payload layout::

    {
      "address": "0xabc...",
      "market_id": "base",
      "chain_id": 8453,
      "market_reference_price_usd": 1,
      "emode_category_id": null,
      "assets": [{"symbol": "cbBTC", "price_usd": 60000, "base_ltv_bps": 7500,
                  "liquidation_threshold_bps": 7800, ...}],
      "reserves": [{"symbol": "cbBTC", "balance": 1.0, "collateral": true}],
      "borrows": [{"symbol": "USDC", "amount": 40000}],
      "actions": []
    }
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from hflab.interfaces import ProviderError
from hflab.risk.position import (
    Asset,
    BorrowItem,
    MarketContext,
    Position,
    ReserveItem,
    recompute,
    to_decimal,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Snapshot:
    market: MarketContext
    position: Position
    actions: List[Dict[str, Any]] = field(default_factory=list)


def _optional_int(value: Any) -> Optional[int]:
    return None if value is None else int(value)


def _parse_asset(item: Dict[str, Any]) -> Asset:
    return Asset(
        symbol=item["symbol"],
        name=item.get("name", ""),
        price_usd=to_decimal(item["price_usd"]),
        base_ltv_bps=int(item.get("base_ltv_bps", 0)),
        liquidation_threshold_bps=int(item.get("liquidation_threshold_bps", 0)),
        usage_as_collateral_enabled=bool(item.get("usage_as_collateral_enabled", True)),
        borrowing_enabled=bool(item.get("borrowing_enabled", True)),
        is_active=bool(item.get("is_active", True)),
        is_frozen=bool(item.get("is_frozen", False)),
        is_paused=bool(item.get("is_paused", False)),
        flash_loan_enabled=bool(item.get("flash_loan_enabled", False)),
        emode_category_id=_optional_int(item.get("emode_category_id")),
        emode_ltv_bps=int(item.get("emode_ltv_bps", 0)),
        emode_liquidation_threshold_bps=int(item.get("emode_liquidation_threshold_bps", 0)),
        emode_label=item.get("emode_label", ""),
        underlying_asset=item.get("underlying_asset", ""),
    )


def _unique_symbols(items: List[Dict[str, Any]], kind: str) -> None:
    seen = set()
    for item in items:
        symbol = item["symbol"]
        if symbol in seen:
            raise ValueError(f"Duplicate {kind} symbol {symbol} in snapshot.")
        seen.add(symbol)


def _catalog_asset(assets: Dict[str, Asset], symbol: str, kind: str) -> Asset:
    asset = assets.get(symbol)
    if asset is None:
        raise ValueError(f"{kind.capitalize()} {symbol} is not in the market asset list.")
    return asset


def parse_snapshot(payload: Dict[str, Any]) -> Snapshot:
    """Build the market context and a recomputed baseline position."""
    asset_items = payload.get("assets", [])
    reserve_items = payload.get("reserves", [])
    borrow_items = payload.get("borrows", [])
    _unique_symbols(asset_items, "asset")
    _unique_symbols(reserve_items, "reserve")
    _unique_symbols(borrow_items, "borrow")

    assets = {item["symbol"]: _parse_asset(item) for item in asset_items}
    market = MarketContext(
        market_id=payload.get("market_id", payload.get("market", "")),
        market_reference_price_usd=to_decimal(payload.get("market_reference_price_usd", 1)),
        assets=assets,
        chain_id=_optional_int(payload.get("chain_id")),
    )

    reserves = []
    for item in reserve_items:
        asset = _catalog_asset(assets, item["symbol"], "reserve")
        reserves.append(
            ReserveItem(
                asset=asset,
                underlying_balance=to_decimal(item["balance"]),
                usage_as_collateral_enabled=bool(
                    item.get("collateral", asset.usage_as_collateral_enabled)
                ),
            )
        )

    borrows = [
        BorrowItem(
            asset=_catalog_asset(assets, item["symbol"], "borrow"),
            total_borrows=to_decimal(item["amount"]),
            stable_borrow_apy=to_decimal(item.get("stable_borrow_apy", 0)),
        )
        for item in borrow_items
    ]

    position = Position(
        reserves=reserves,
        borrows=borrows,
        emode_category_id=_optional_int(payload.get("emode_category_id")),
        address=payload.get("address", ""),
    )
    return Snapshot(
        market=market,
        position=recompute(position, market.market_reference_price_usd),
        actions=list(payload.get("actions", [])),
    )


def load_snapshot(path: Union[str, Path]) -> Snapshot:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Snapshot file not found: {path}")
    with path.open("r", encoding="utf-8") as handle:
        payload = json.load(handle, parse_float=Decimal)
    return parse_snapshot(payload)


class JsonFileProvider:
    """Serve snapshots stored as ``<directory>/<market_id>/<address>.json``."""

    def __init__(self, directory: Union[str, Path]) -> None:
        self.directory = Path(directory)

    def path_for(self, address: str, market_id: str) -> Path:
        return self.directory / market_id / f"{address}.json"

    def fetch(self, address: str, market_id: str) -> Snapshot:
        path = self.path_for(address, market_id)
        try:
            snapshot = load_snapshot(path)
        except FileNotFoundError as exc:
            raise ProviderError(f"No snapshot for {address} on {market_id}") from exc
        except (KeyError, ValueError) as exc:
            raise ProviderError(f"Malformed snapshot {path}: {exc}") from exc
        logger.info("Loaded snapshot for %s on %s from %s", address, market_id, path)
        return snapshot
