"""Shared test helpers for the health factor simulator tests."""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from hflab.risk.position import (
    Asset,
    BorrowItem,
    MarketContext,
    Position,
    ReserveItem,
    recompute,
)

CBBTC_ADDRESS = "0xcbB7C0000aB88B473b1f5aFd9ef808440eed33Bf"
USDC_ADDRESS = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
DAI_ADDRESS = "0x50c5725949A6F0c72E6C4a641F24049A917DB0Cb"


def make_asset(
    symbol: str = "cbBTC",
    price: Any = 60000,
    ltv_bps: int = 7500,
    liq_threshold_bps: int = 7800,
    **overrides: Any,
) -> Asset:
    return Asset(
        symbol=symbol,
        price_usd=Decimal(str(price)),
        base_ltv_bps=ltv_bps,
        liquidation_threshold_bps=liq_threshold_bps,
        **overrides,
    )


def default_assets() -> List[Asset]:
    return [
        make_asset("cbBTC", 60000, 7500, 7800, underlying_asset=CBBTC_ADDRESS),
        make_asset("USDC", 1, 7500, 7800, underlying_asset=USDC_ADDRESS),
        make_asset("DAI", 1, 7700, 8000, underlying_asset=DAI_ADDRESS),
        make_asset(
            "WETH", 3000, 8000, 8250,
            emode_category_id=1, emode_ltv_bps=9000,
            emode_liquidation_threshold_bps=9300, emode_label="ETH correlated",
        ),
        make_asset("GHO", 1, 0, 0, usage_as_collateral_enabled=False),
        make_asset("OLD", 5, 5000, 6000, is_frozen=True),
    ]


def make_market(
    assets: Optional[List[Asset]] = None,
    mrc_price: Any = 1,
    market_id: str = "base",
    chain_id: Optional[int] = 8453,
) -> MarketContext:
    catalog = default_assets() if assets is None else assets
    return MarketContext(
        market_id=market_id,
        market_reference_price_usd=Decimal(str(mrc_price)),
        assets={asset.symbol: asset for asset in catalog},
        chain_id=chain_id,
    )


def make_reserve(asset: Asset, balance: Any = 1, collateral: bool = True) -> ReserveItem:
    return ReserveItem(
        asset=asset,
        underlying_balance=Decimal(str(balance)),
        usage_as_collateral_enabled=collateral,
    )


def make_borrow(asset: Asset, amount: Any = 1000) -> BorrowItem:
    return BorrowItem(asset=asset, total_borrows=Decimal(str(amount)))


def make_position(
    reserves: Optional[List[ReserveItem]] = None,
    borrows: Optional[List[BorrowItem]] = None,
    emode_category_id: Optional[int] = None,
    mrc_price: Any = 1,
) -> Position:
    position = Position(
        reserves=reserves or [],
        borrows=borrows or [],
        emode_category_id=emode_category_id,
        address="0xuser",
    )
    return recompute(position, Decimal(str(mrc_price)))


def make_btc_usdc_position(
    market: MarketContext,
    btc: Any = 1,
    usdc: Any = 40000,
) -> Position:
    """1 cbBTC @ $60k against 40k USDC: HF 1.17 with the default catalog."""
    return make_position(
        reserves=[make_reserve(market.assets["cbBTC"], btc)],
        borrows=[make_borrow(market.assets["USDC"], usdc)],
        mrc_price=market.market_reference_price_usd,
    )


def make_payload(**overrides: Any) -> Dict[str, Any]:
    """Provider-style JSON payload for the 1 cbBTC / 40k USDC position."""
    payload: Dict[str, Any] = {
        "address": "0xuser",
        "market_id": "base",
        "chain_id": 8453,
        "market_reference_price_usd": 1,
        "emode_category_id": None,
        "assets": [
            {
                "symbol": "cbBTC",
                "price_usd": 60000,
                "base_ltv_bps": 7500,
                "liquidation_threshold_bps": 7800,
                "underlying_asset": CBBTC_ADDRESS,
            },
            {
                "symbol": "USDC",
                "price_usd": 1,
                "base_ltv_bps": 7500,
                "liquidation_threshold_bps": 7800,
                "underlying_asset": USDC_ADDRESS,
            },
            {
                "symbol": "DAI",
                "price_usd": 1,
                "base_ltv_bps": 7700,
                "liquidation_threshold_bps": 8000,
                "underlying_asset": DAI_ADDRESS,
            },
        ],
        "reserves": [{"symbol": "cbBTC", "balance": 1}],
        "borrows": [{"symbol": "USDC", "amount": 40000}],
        "actions": [],
    }
    payload.update(overrides)
    return payload
