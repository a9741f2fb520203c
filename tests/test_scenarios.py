"""Multi-step position scenarios.

Each test is marked with @pytest.mark.scenario.
"""

from decimal import Decimal

import pytest
from pytest import approx

from hflab.risk.actions import apply_actions
from hflab.risk.liquidation import liquidation_scenario
from hflab.risk.mutations import (
    repay_debt_with_collateral,
    set_asset_price,
    swap_debt,
)
from hflab.risk.position import find_reserve, round_cents
from hflab.session import PositionSession
from hflab.snapshot import parse_snapshot
from hflab.strategies.leverage_loop import LeverageLoop, LoopConfig
from tests.conftest import (
    make_borrow,
    make_btc_usdc_position,
    make_market,
    make_payload,
    make_position,
    make_reserve,
)


def _liquidation_price(position, market, symbol):
    scenario = liquidation_scenario(position, market.market_reference_price_usd)
    return next(asset.price_usd for asset in scenario if asset.symbol == symbol)


# ---------------------------------------------------------------------------
# 1. Selling collateral to deleverage
# ---------------------------------------------------------------------------

@pytest.mark.scenario
def test_selling_half_the_debt_with_collateral_moves_liquidation_down():
    """Repaying half the USDC debt with cbBTC lifts HF past 1.5.

    Fees and slippage cost a little collateral, but the liquidation price
    still falls well below the original ~51.5k.
    """
    market = make_market()
    position = make_btc_usdc_position(market)
    before = _liquidation_price(position, market, "cbBTC")

    updated = repay_debt_with_collateral(position, market, "USDC", "cbBTC", fraction="0.5")
    assert updated.health_factor > Decimal("1.5")
    # 20000 / 0.982045 / 60000 BTC sold
    assert float(find_reserve(updated, "cbBTC").underlying_balance) == approx(
        1 - 20000 / 0.982045 / 60000
    )

    after = _liquidation_price(updated, market, "cbBTC")
    assert after < before
    assert float(after) == approx(20000 * 1.005 / (0.660572 * 0.78), rel=1e-3)


# ---------------------------------------------------------------------------
# 2. Looping pushes the liquidation price up
# ---------------------------------------------------------------------------

@pytest.mark.scenario
def test_leverage_loop_raises_liquidation_price():
    """Three 5k loops on 1 cbBTC / 10k USDC end at 1.25 cbBTC / 25k USDC."""
    market = make_market()
    position = make_btc_usdc_position(market, usdc=10000)
    before = _liquidation_price(position, market, "cbBTC")

    looped = LeverageLoop(LoopConfig(borrow_per_loop_usd=Decimal(5000))).apply(position, market)
    assert float(find_reserve(looped, "cbBTC").underlying_balance) == approx(1.25)

    after = _liquidation_price(looped, market, "cbBTC")
    assert after > before
    # 25000 * ~1.005 / (1.25 * 0.78)
    assert float(after) == approx(25769.2, rel=5e-3)


# ---------------------------------------------------------------------------
# 3. E-mode headroom
# ---------------------------------------------------------------------------

@pytest.mark.scenario
def test_emode_lowers_weth_liquidation_price():
    """WETH collateral at the 93% e-mode threshold survives a deeper drop than at 82.5%."""
    market = make_market()
    reserves = [make_reserve(market.assets["WETH"], 20)]
    borrows = [make_borrow(market.assets["USDC"], 40000)]
    base = make_position(reserves=reserves, borrows=borrows)
    emode = make_position(reserves=reserves, borrows=borrows, emode_category_id=1)

    assert emode.health_factor > base.health_factor
    emode_price = _liquidation_price(emode, market, "WETH")
    base_price = _liquidation_price(base, market, "WETH")
    assert emode_price < base_price
    assert float(emode_price) == approx(40000 * 1.005 / (20 * 0.93), rel=1e-3)


# ---------------------------------------------------------------------------
# 4. Reference currency independence
# ---------------------------------------------------------------------------

@pytest.mark.scenario
def test_eth_denominated_market_matches_usd_market():
    """The same position priced in an ETH reference currency liquidates at the same USD price."""
    usd_market = make_market()
    eth_market = make_market(mrc_price=2000)
    usd_price = _liquidation_price(make_btc_usdc_position(usd_market), usd_market, "cbBTC")
    eth_price = _liquidation_price(make_btc_usdc_position(eth_market), eth_market, "cbBTC")
    assert abs(usd_price - eth_price) < 1


# ---------------------------------------------------------------------------
# 5. Debt swap then a drawdown
# ---------------------------------------------------------------------------

@pytest.mark.scenario
def test_debt_swap_costs_fees_but_keeps_health():
    """Moving all USDC debt into DAI shrinks the USD debt by the swap costs.

    With the default fee model the swapped debt is smaller in USD, so a
    10% cbBTC drawdown hurts slightly less than on the original position.
    """
    market = make_market()
    position = make_btc_usdc_position(market)

    free = swap_debt(position, market, "USDC", "DAI", 1, slippage_bps=0)
    assert free.total_borrows_usd == Decimal(39880)

    swapped = swap_debt(position, market, "USDC", "DAI", 1)
    drop_original = set_asset_price(position, market, "cbBTC", 54000)
    drop_swapped = set_asset_price(swapped, market, "cbBTC", 54000)
    assert drop_swapped.health_factor > drop_original.health_factor
    assert round_cents(drop_original.health_factor) == Decimal("1.05")


# ---------------------------------------------------------------------------
# 6. Simulate, refresh, reset
# ---------------------------------------------------------------------------

@pytest.mark.scenario
def test_session_refresh_keeps_crash_simulation():
    """A user's crash price survives a provider refresh until they reset."""
    session = PositionSession(parse_snapshot(make_payload()))
    session.apply(set_asset_price, "cbBTC", 45000)
    assert session.working.health_factor < 1

    fresh_payload = make_payload()
    fresh_payload["assets"] = [dict(item) for item in fresh_payload["assets"]]
    fresh_payload["assets"][0]["price_usd"] = 62000
    session.refresh(parse_snapshot(fresh_payload))

    assert find_reserve(session.working, "cbBTC").asset.price_usd == Decimal(45000)
    assert find_reserve(session.baseline, "cbBTC").asset.price_usd == Decimal(62000)

    session.reset()
    assert round_cents(session.working.health_factor) == Decimal("1.21")


# ---------------------------------------------------------------------------
# 7. Scripted rescue
# ---------------------------------------------------------------------------

@pytest.mark.scenario
def test_scripted_rescue_after_crash():
    """Crash to 48k, post 5k DAI as extra collateral and repay 5k USDC."""
    market = make_market()
    position = make_btc_usdc_position(market)
    updated = apply_actions(position, market, [
        {"type": "set_price", "symbol": "cbBTC", "price": 48000},
        {"type": "add_reserve", "symbol": "DAI"},
        {"type": "set_reserve_quantity", "symbol": "DAI", "quantity": 5000},
        {"type": "repay", "symbol": "USDC", "amount": 5000},
    ])
    # (48000 * 0.78 + 5000 * 0.80) / 35000
    assert float(updated.health_factor) == approx(1.184)

    scenario = liquidation_scenario(updated, 1)
    assert [asset.symbol for asset in scenario] == ["cbBTC"]
    price = scenario[0].price_usd
    # (35000 - 4000) / 0.78 at HF 1.00
    assert Decimal("39743.58") <= price < Decimal("48000")
