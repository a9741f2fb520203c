"""Tests for the leverage loop table."""

from decimal import Decimal

import pytest
from pytest import approx

from hflab.risk.position import find_borrow, find_reserve
from hflab.strategies.leverage_loop import LeverageLoop, LoopConfig
from tests.conftest import make_btc_usdc_position, make_market


def _loop(**kwargs):
    defaults = dict(borrow_per_loop_usd=Decimal(5000), initial_collateral=Decimal(1),
                    initial_debt=Decimal(0))
    defaults.update(kwargs)
    return LeverageLoop(LoopConfig(**defaults))


class TestSteps:
    def test_three_loops_from_clean_collateral(self):
        market = make_market()
        rows = _loop().steps(make_btc_usdc_position(market), market)

        assert [row.label for row in rows] == ["Start", "1", "2", "3"]
        assert [float(row.borrow_this_loop) for row in rows] == [0, 5000, 5000, 5000]
        last = rows[-1]
        assert float(last.collateral) == approx(1.25)
        assert last.debt == Decimal(15000)
        assert float(last.ltv_pct) == approx(20)
        # 75000 * 0.78 / 15000
        assert float(last.health_factor) == approx(3.9)

    def test_start_row_without_debt(self):
        market = make_market()
        start = _loop().steps(make_btc_usdc_position(market), market)[0]
        assert start.health_factor.is_infinite()
        assert start.ltv_pct == 0
        assert start.available_borrows_usd == Decimal(45000)

    def test_initial_balances_come_from_position(self):
        market = make_market()
        position = make_btc_usdc_position(market)
        loop = LeverageLoop(LoopConfig(borrow_per_loop_usd=Decimal(5000)))
        rows = loop.steps(position, market)
        # HF 1.17 is already below the 2.0 floor
        assert len(rows) == 1
        assert rows[0].debt == Decimal(40000)

    def test_min_hf_bound_caps_borrow(self):
        market = make_market()
        rows = _loop(borrow_per_loop_usd=Decimal(100000), num_loops=1).steps(
            make_btc_usdc_position(market), market
        )
        # 46800 / (2 - 0.78)
        assert float(rows[1].borrow_this_loop) == approx(46800 / 1.22)
        assert float(rows[1].health_factor) == approx(2.0)

    def test_max_ltv_bound_caps_borrow(self):
        market = make_market()
        rows = _loop(constraint="max_ltv", max_ltv_pct=Decimal(10)).steps(
            make_btc_usdc_position(market), market
        )
        assert [float(row.borrow_this_loop) for row in rows[1:]] == approx([5000, 1500, 150])

    def test_both_takes_the_tighter_bound(self):
        market = make_market()
        rows = _loop(constraint="both", borrow_per_loop_usd=Decimal(100000),
                     max_ltv_pct=Decimal(30), num_loops=1).steps(
            make_btc_usdc_position(market), market
        )
        assert float(rows[1].borrow_this_loop) == approx(18000)

    def test_available_borrows_cap(self):
        market = make_market()
        rows = _loop(constraint="max_ltv", borrow_per_loop_usd=Decimal(100000),
                     max_ltv_pct=Decimal(95), num_loops=1).steps(
            make_btc_usdc_position(market), market
        )
        assert float(rows[1].borrow_this_loop) == approx(45000)

    def test_missing_asset_yields_no_rows(self):
        market = make_market()
        rows = _loop(collateral_symbol="NOPE").steps(make_btc_usdc_position(market), market)
        assert rows == []

    def test_unknown_constraint(self):
        with pytest.raises(ValueError, match="Unknown loop constraint"):
            LoopConfig(constraint="max_hf")


class TestApply:
    def test_last_row_lands_on_position(self):
        market = make_market()
        position = make_btc_usdc_position(market)
        updated = _loop().apply(position, market)
        assert float(find_reserve(updated, "cbBTC").underlying_balance) == approx(1.25)
        assert find_borrow(updated, "USDC").total_borrows == Decimal(15000)

    def test_chosen_row(self):
        market = make_market()
        position = make_btc_usdc_position(market)
        loop = _loop()
        rows = loop.steps(position, market)
        updated = loop.apply(position, market, rows[1])
        assert find_borrow(updated, "USDC").total_borrows == Decimal(5000)

    def test_nothing_to_borrow_is_noop(self):
        market = make_market()
        position = make_btc_usdc_position(market)
        loop = LeverageLoop(LoopConfig(borrow_per_loop_usd=Decimal(5000)))
        assert loop.apply(position, market) is position

    def test_missing_items_are_added(self):
        market = make_market()
        position = make_btc_usdc_position(market)
        updated = _loop(collateral_symbol="WETH", debt_symbol="DAI",
                        initial_collateral=Decimal(10)).apply(position, market)
        assert find_reserve(updated, "WETH") is not None
        assert find_borrow(updated, "DAI").total_borrows == Decimal(15000)


class TestFrame:
    def test_to_frame(self):
        market = make_market()
        rows = _loop().steps(make_btc_usdc_position(market), market)
        frame = LeverageLoop.to_frame(rows)
        assert list(frame["label"]) == ["Start", "1", "2", "3"]
        assert frame["debt"].tolist() == [0.0, 5000.0, 10000.0, 15000.0]
        assert frame["health_factor"].iloc[0] == float("inf")
