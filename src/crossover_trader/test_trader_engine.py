from datetime import datetime, timedelta, timezone

import pytest

from crossover_trader.bar_buffer import Bar, Quote, Trade
from crossover_trader.broker import DepotBroker, PaperBroker
from crossover_trader.exceptions import ConfigurationError, MarketDataError
from crossover_trader.indicator_gateway import HttpIndicatorGateway, LocalIndicatorGateway
from crossover_trader.models import IndicatorConfig, OrderSide
from crossover_trader.trader_config import TraderConfig
from crossover_trader.trader_engine import TradingEngine, build_broker, build_evaluator, build_gateway

START = datetime(2024, 1, 2, 14, 30, tzinfo=timezone.utc)


def make_bars(closes, symbol='AAPL'):
    return [
        Bar(symbol, START + timedelta(minutes=i), c, c, c, c, 1000)
        for i, c in enumerate(closes)
    ]


@pytest.fixture
def config():
    return TraderConfig(
        symbols=['AAPL'],
        broker_backend='paper',
        indicator_backend='local',
        starting_cash=100000.0,
        max_trade_percent=1.0,
        max_position_percent=10.0,
        buffer_size=100
    )


def make_engine(config, indicator_config=IndicatorConfig(5, 20)):
    broker = build_broker(config)
    evaluator = build_evaluator(config, build_gateway(config), broker, indicator_config=indicator_config)
    return TradingEngine(config, evaluator, broker), broker


def test_builders_follow_backends(config):
    assert isinstance(build_gateway(config), LocalIndicatorGateway)
    assert isinstance(build_broker(config), PaperBroker)

    config.indicator_backend = 'http'
    config.broker_backend = 'depot'
    assert isinstance(build_gateway(config), HttpIndicatorGateway)
    assert isinstance(build_broker(config), DepotBroker)
    assert isinstance(build_broker(config, paper=True), PaperBroker)

    config.broker_backend = 'ib'
    with pytest.raises(ConfigurationError):
        build_broker(config)


def test_replay_places_golden_cross_buy(config):
    engine, broker = make_engine(config)
    closes = [120.0 - i for i in range(20)] + [200.0] * 5

    engine.startup()
    placed = engine.replay(make_bars(closes))

    assert placed == 1
    assert engine.orders[0].side == OrderSide.BUY
    assert broker.get_position('AAPL') == 5

    status = engine.get_status()
    assert status['bars_processed'] == 25
    assert status['symbols']['AAPL'] == {'bars': 25, 'state': 'ACTIVE'}
    assert not status['running']


def test_mixed_events_are_dispatched(config):
    engine, _ = make_engine(config)
    events = [
        Trade('AAPL', START, 100.0, 5),
        Quote('AAPL', START, 99.9, 100.1),
        make_bars([100.0])[0],
    ]

    engine.replay(events)

    status = engine.get_status()
    assert status['trades_processed'] == 1
    assert status['quotes_processed'] == 1
    assert status['bars_processed'] == 1
    assert status['orders'] == 0


def test_market_data_failure_ends_replay(config):
    engine, _ = make_engine(config)

    def failing_source():
        yield from make_bars([100.0, 101.0])
        raise MarketDataError("bad row 2")

    engine.replay(failing_source())

    assert engine.bars_processed == 2
    assert engine.errors == ['bad row 2']


def test_live_source_failure_ends_loop(config):
    engine, _ = make_engine(config)

    class DroppingSource:
        stopped = False

        def run(self, on_event):
            for bar in make_bars([100.0, 101.0, 102.0]):
                on_event(bar)
            raise MarketDataError("socket closed")

        def stop(self):
            self.stopped = True

    engine.run_live(DroppingSource())

    assert engine.bars_processed == 3
    assert not engine.running
    assert engine.errors == ['socket closed']


def test_stop_halts_replay(config):
    engine, _ = make_engine(config)
    bars = make_bars([100.0 + i for i in range(10)])

    def source():
        for i, bar in enumerate(bars):
            if i == 4:
                engine.stop()
            yield bar

    engine.replay(source())

    assert engine.bars_processed == 4
