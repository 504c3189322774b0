"""Tests for indicators, the strategy controller and strategy helpers."""

import math

import pytest

from conftest import PAIR, _ts, make_bar, series
from execution.errors import InsufficientFundsError
from execution.matching_engine import MatchingEngine
from execution.models import OrderSide
from strategy.base import Dataframe
from strategy.controller import StrategyController
from strategy.cross_ma import CrossMA
from strategy.indicators import crossover, crossunder, ema, sma
from strategy.tools import OrderScheduler, TrailingStop


class RecordingStrategy:
    def __init__(self, warmup: int = 3) -> None:
        self.warmup = warmup
        self.indicator_calls = 0
        self.bars: list[int] = []

    def timeframe(self) -> str:
        return "1h"

    def warmup_period(self) -> int:
        return self.warmup

    def indicators(self, df: Dataframe) -> None:
        self.indicator_calls += 1

    def on_bar(self, df: Dataframe, broker) -> None:
        self.bars.append(len(df))


class PartialStrategy(RecordingStrategy):
    def __init__(self) -> None:
        super().__init__(warmup=1)
        self.partials: list[float] = []

    def on_partial_bar(self, df: Dataframe, broker) -> None:
        self.partials.append(df.close[-1])


class FakeBroker:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.orders: list[tuple[OrderSide, str, float]] = []

    def create_order_market(self, side: OrderSide, pair: str, quantity: float):
        if self.fail:
            raise InsufficientFundsError(pair, quantity)
        self.orders.append((side, pair, quantity))


class TestIndicators:
    def test_sma(self) -> None:
        out = sma([1.0, 2.0, 3.0, 4.0], 2)
        assert math.isnan(out[0])
        assert out[1:] == [1.5, 2.5, 3.5]

    def test_ema_seeded_with_sma(self) -> None:
        out = ema([1.0, 2.0, 3.0, 6.0], 3)
        assert math.isnan(out[1])
        assert out[2] == pytest.approx(2.0)
        assert out[3] == pytest.approx(6.0 * 0.5 + 2.0 * 0.5)

    def test_ema_short_series_all_nan(self) -> None:
        assert all(math.isnan(v) for v in ema([1.0], 3))

    def test_cross(self) -> None:
        assert crossover([1.0, 3.0], [2.0, 2.0])
        assert not crossover([3.0, 4.0], [2.0, 2.0])
        assert crossunder([3.0, 1.0], [2.0, 2.0])
        assert not crossover([math.nan, 3.0], [2.0, 2.0])

    def test_bad_period(self) -> None:
        with pytest.raises(ValueError):
            sma([1.0], 0)


class TestDataframe:
    def test_same_timestamp_overwrites_last_row(self) -> None:
        df = Dataframe(pair=PAIR)
        df.update(make_bar(1.0, _ts(1)))
        df.update(make_bar(2.0, _ts(1)))
        df.update(make_bar(3.0, _ts(1, 1)))
        assert df.close == [2.0, 3.0]
        assert len(df) == 2
        assert df.last_update == _ts(1, 1)


class TestStrategyController:
    def test_warmup_then_on_bar(self) -> None:
        strategy = RecordingStrategy(warmup=3)
        sc = StrategyController(PAIR, strategy, FakeBroker())
        sc.start()
        for bar in series([1.0, 2.0, 3.0, 4.0]):
            sc.on_bar(bar)
        assert strategy.bars == [3, 4]
        assert strategy.indicator_calls == 2

    def test_not_started_only_computes_indicators(self) -> None:
        strategy = RecordingStrategy(warmup=1)
        sc = StrategyController(PAIR, strategy, FakeBroker())
        for bar in series([1.0, 2.0]):
            sc.on_bar(bar)
        assert strategy.indicator_calls == 2
        assert strategy.bars == []

    def test_late_bar_ignored(self) -> None:
        strategy = RecordingStrategy(warmup=1)
        sc = StrategyController(PAIR, strategy, FakeBroker())
        sc.start()
        sc.on_bar(make_bar(1.0, _ts(2)))
        sc.on_bar(make_bar(2.0, _ts(1)))
        assert strategy.bars == [1]
        assert sc.dataframe.close == [1.0]

    def test_partial_bars_only_for_high_frequency_strategies(self) -> None:
        plain = RecordingStrategy(warmup=1)
        sc = StrategyController(PAIR, plain, FakeBroker())
        sc.start()
        sc.on_bar(make_bar(1.0, _ts(1)))
        sc.on_partial_bar(make_bar(1.5, _ts(1, 1), complete=False))
        assert len(sc.dataframe) == 1

        hf = PartialStrategy()
        sc = StrategyController(PAIR, hf, FakeBroker())
        sc.start()
        sc.on_partial_bar(make_bar(0.5, _ts(1), complete=False))  # before warm-up
        sc.on_bar(make_bar(1.0, _ts(1)))
        sc.on_partial_bar(make_bar(1.5, _ts(1, 1), complete=False))
        sc.on_partial_bar(make_bar(1.7, _ts(1, 1), complete=False))
        assert hf.partials == [1.5, 1.7]
        assert sc.dataframe.close == [1.0, 1.7]


class TestTools:
    def test_trailing_stop(self) -> None:
        ts = TrailingStop()
        assert not ts.update(50.0)
        ts.start(100.0, 95.0)
        assert not ts.update(105.0)
        assert ts.stop == pytest.approx(100.0)
        assert not ts.update(101.0)
        assert ts.update(99.5)
        ts.cancel()
        assert not ts.update(1.0)

    def test_scheduler_fires_once(self) -> None:
        broker = FakeBroker()
        scheduler = OrderScheduler(PAIR)
        scheduler.buy_when(2.0, lambda df: df.close[-1] > 10)
        df = Dataframe(pair=PAIR)
        df.update(make_bar(9.0, _ts(1)))
        scheduler.update(df, broker)
        assert broker.orders == []
        df.update(make_bar(11.0, _ts(1, 1)))
        scheduler.update(df, broker)
        scheduler.update(df, broker)
        assert broker.orders == [(OrderSide.BUY, PAIR, 2.0)]
        assert scheduler.conditions == []

    def test_scheduler_keeps_rejected_order(self) -> None:
        scheduler = OrderScheduler(PAIR)
        scheduler.sell_when(1.0, lambda df: True)
        scheduler.update(Dataframe(pair=PAIR), FakeBroker(fail=True))
        assert len(scheduler.conditions) == 1
        broker = FakeBroker()
        scheduler.update(Dataframe(pair=PAIR), broker)
        assert broker.orders == [(OrderSide.SELL, PAIR, 1.0)]


class TestCrossMA:
    CLOSES = [10, 10, 10, 10, 9, 8, 7, 8, 10, 12, 14, 13, 11, 9, 7]

    def test_rejects_inverted_periods(self) -> None:
        with pytest.raises(ValueError):
            CrossMA(fast=5, slow=5)

    def test_buys_on_crossover_and_sells_on_crossunder(self) -> None:
        engine = MatchingEngine("USDT", balances={"USDT": 10_000.0})
        sc = StrategyController(PAIR, CrossMA(fast=2, slow=4, timeframe="1h"), engine)
        sc.start()
        for bar in series([float(c) for c in self.CLOSES]):
            engine.on_bar(bar)
            sc.on_bar(bar)
        orders = engine.orders()
        assert [(o.side, o.price) for o in orders] == [(OrderSide.BUY, 10.0), (OrderSide.SELL, 11.0)]
        assert orders[0].quantity == pytest.approx(1000.0)
        assert engine.position(PAIR) == (0.0, pytest.approx(11_000.0))
        assert sc.dataframe.metadata["sma_slow"][3] == pytest.approx(10.0)
