"""Liquidity pool tests.

Properties tested:
1. Quotes follow constant product with fee-on-input, ask fee on buys
2. Executions keep the full input in the pool, so k never decreases
3. Invalid executions are rejected without touching reserves
4. Depth statistics are positive and bracket the spot price
5. Trades report sides, edge and implied fees consistently
"""

import math

import pytest

from amm_replay.core.amm import MIN_INPUT, LiquidityPool
from amm_replay.core.trade import FeeQuote, PoolRole, SwapSide, TradeSide
from tests.fixtures.pool_fixtures import PoolProfile, create_pool


class TestPoolConstruction:

    @pytest.mark.parametrize("x,y", [(0.0, 10.0), (10.0, 0.0), (-1.0, 5.0), (math.nan, 5.0)])
    def test_rejects_non_positive_reserves(self, x, y):
        with pytest.raises(ValueError):
            LiquidityPool(name="bad", role=PoolRole.SUBMISSION, reserve_x=x, reserve_y=y)

    def test_spot_and_k(self, standard_pool):
        assert standard_pool.spot_price == 100.0
        assert standard_pool.k == 1_000_000.0

    def test_storage_is_normalized(self):
        pool = LiquidityPool("p", PoolRole.SUBMISSION, 1.0, 1.0, storage=b"\x05")
        assert len(pool.storage) == 1024
        assert pool.storage[0] == 5

    def test_set_fees_clamps(self, standard_pool):
        standard_pool.set_fees(FeeQuote(bid_fee_bps=5000, ask_fee_bps=12))
        assert standard_pool.fees == FeeQuote(1000, 12)


class TestPoolQuotes:

    def test_quote_buy_x(self, standard_pool):
        """Paying 100 Y into (100, 10000) at 30 bps returns ~0.98719 X."""
        expected = 100.0 - 1e6 / (10_000.0 + 100.0 * 0.997)
        assert standard_pool.quote_buy_x(100.0) == pytest.approx(expected, rel=1e-8)

    def test_quote_sell_x(self, standard_pool):
        expected = 10_000.0 - 1e6 / (100.0 + 0.997)
        assert standard_pool.quote_sell_x(1.0) == pytest.approx(expected, rel=1e-8)

    def test_ask_fee_applies_to_buys(self):
        """Raising only the ask fee makes buying X worse and leaves selling unchanged."""
        cheap = create_pool(fee_bps=0)
        dear = create_pool(fee_bps=0)
        dear.set_fees(FeeQuote(bid_fee_bps=0, ask_fee_bps=100))

        assert dear.quote_buy_x(100.0) < cheap.quote_buy_x(100.0)
        assert dear.quote_sell_x(1.0) == cheap.quote_sell_x(1.0)

    @pytest.mark.parametrize("amount", [0.0, -1.0, math.nan, math.inf])
    def test_invalid_amount_quotes_zero(self, standard_pool, amount):
        assert standard_pool.quote(SwapSide.BUY_X, amount) == 0.0

    def test_larger_trades_get_worse_prices(self, standard_pool):
        small = standard_pool.quote_buy_x(10.0) / 10.0
        large = standard_pool.quote_buy_x(1000.0) / 1000.0
        assert large < small


class TestPoolExecution:

    def test_buy_x_updates_reserves(self, standard_pool):
        trade = standard_pool.execute_buy_x(standard_pool.quote_buy_x, 100.0, timestamp=3)

        assert trade is not None
        assert trade.side == SwapSide.BUY_X
        assert trade.amm_side == TradeSide.SELL
        assert trade.timestamp == 3
        assert standard_pool.reserve_y == 10_100.0
        assert standard_pool.reserve_x == pytest.approx(100.0 - trade.output_amount)
        assert (trade.before_x, trade.before_y) == (100.0, 10_000.0)
        assert trade.spot_after > trade.spot_before

    def test_sell_x_updates_reserves(self, standard_pool):
        trade = standard_pool.execute_sell_x(standard_pool.quote_sell_x, 2.0, timestamp=1)

        assert trade.amm_side == TradeSide.BUY
        assert trade.amount_x == 2.0
        assert trade.amount_y == trade.output_amount
        assert standard_pool.reserve_x == 102.0
        assert trade.spot_after < trade.spot_before

    @pytest.mark.parametrize("side", [SwapSide.BUY_X, SwapSide.SELL_X])
    def test_k_never_decreases(self, side):
        """The whole input stays in the pool, fee included."""
        pool = create_pool(PoolProfile.DEEP, fee_bps=30)
        for amount in (0.5, 5.0, 50.0):
            k_before = pool.k
            trade = pool.execute(side, lambda a: pool.quote(side, a), amount, 0)
            assert trade is not None
            assert pool.k >= k_before

    def test_zero_fee_preserves_k(self):
        pool = create_pool(fee_bps=0)
        pool.execute_buy_x(pool.quote_buy_x, 500.0, 0)
        assert pool.k == pytest.approx(1_000_000.0, rel=1e-9)

    def test_rejects_dust_input(self, standard_pool):
        assert standard_pool.execute_buy_x(standard_pool.quote_buy_x, MIN_INPUT / 2, 0) is None
        assert standard_pool.reserve_y == 10_000.0

    @pytest.mark.parametrize("output", [0.0, -1.0, math.nan, math.inf, 100.0, 250.0])
    def test_rejects_bad_quotes(self, standard_pool, output):
        """Non-positive, non-finite or reserve-draining outputs are refused."""
        assert standard_pool.execute_buy_x(lambda a: output, 10.0, 0) is None
        assert (standard_pool.reserve_x, standard_pool.reserve_y) == (100.0, 10_000.0)

    def test_nano_amounts_recorded(self, standard_pool):
        trade = standard_pool.execute_buy_x(standard_pool.quote_buy_x, 1.5, 0)
        assert trade.input_amount_nano == 1_500_000_000
        assert trade.output_amount_nano > 0


class TestTradeAccounting:

    def test_value_edge_positive_at_spot(self, standard_pool):
        """A fee-paying retail trade at fair = spot gives the pool positive edge."""
        trade = standard_pool.execute_buy_x(standard_pool.quote_buy_x, 100.0, 0)
        assert trade.value_edge(100.0) == pytest.approx(100.0 - trade.output_amount * 100.0)
        assert trade.value_edge(100.0) > 0

    def test_value_edge_sell(self, standard_pool):
        trade = standard_pool.execute_sell_x(standard_pool.quote_sell_x, 1.0, 0)
        assert trade.value_edge(100.0) == pytest.approx(100.0 - trade.output_amount)

    @pytest.mark.parametrize("side", [SwapSide.BUY_X, SwapSide.SELL_X])
    def test_implied_fee_matches_pool_fee(self, side):
        pool = create_pool(PoolProfile.DEEP, fee_bps=30)
        trade = pool.execute(side, lambda a: pool.quote(side, a), 1.0, 0)
        assert abs(trade.implied_fee_bps - 30) <= 1

    def test_implied_fee_zero_for_fee_free_pool(self):
        pool = create_pool(fee_bps=0)
        trade = pool.execute_buy_x(pool.quote_buy_x, 10.0, 0)
        assert trade.implied_fee_bps == 0


class TestDepthStats:

    def test_depth_positive_and_ordered(self, standard_pool):
        stats = standard_pool.depth_stats()
        for value in (stats.buy_depth_1, stats.buy_depth_5, stats.sell_depth_1, stats.sell_depth_5):
            assert math.isfinite(value)
            assert value > 0
        assert stats.buy_depth_5 > stats.buy_depth_1
        assert stats.sell_depth_5 > stats.sell_depth_1

    def test_one_x_brackets_spot(self, standard_pool):
        """Buying one X costs more than spot, selling one pays less."""
        stats = standard_pool.depth_stats()
        assert stats.buy_one_x_cost_y > standard_pool.spot_price
        assert stats.sell_one_x_payout_y < standard_pool.spot_price

    def test_deeper_pool_has_more_depth(self):
        shallow = create_pool(PoolProfile.SHALLOW).depth_stats()
        deep = create_pool(PoolProfile.DEEP).depth_stats()
        assert deep.sell_depth_1 > shallow.sell_depth_1

    def test_custom_quote(self, standard_pool):
        """A quote that never fills reports infinite cost for one X."""
        stats = standard_pool.depth_stats(lambda side, amount: 0.0)
        assert stats.buy_one_x_cost_y == math.inf
        assert stats.sell_one_x_payout_y == 0.0
