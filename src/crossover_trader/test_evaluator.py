"""
Evaluator tests: activation threshold, buy/sell/short paths, contained
indicator and broker failures.
"""

import random
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from crossover_trader.audit_logger import AuditLogger, EventType
from crossover_trader.bar_buffer import Bar, Quote, Trade
from crossover_trader.broker import DepotBroker, PaperBroker
from crossover_trader.evaluator import ACTIVATION_THRESHOLD, Evaluator, SymbolState
from crossover_trader.exceptions import BrokerError, IndicatorError
from crossover_trader.indicator_gateway import HttpIndicatorGateway, IndicatorGateway, LocalIndicatorGateway
from crossover_trader.models import IndicatorConfig, OrderSide
from crossover_trader.position_sizer import PositionSizer

START = datetime(2024, 1, 2, 14, 30, tzinfo=timezone.utc)

# 20 falling closes, then a jump: golden cross on bar 21 for SMA(5/20)
FALLING_THEN_JUMP = [120.0 - i for i in range(20)] + [200.0] * 5
# 20 rising closes, then a crash: death cross on bar 21 for SMA(5/20)
RISING_THEN_CRASH = [100.0 + i for i in range(20)] + [20.0] * 5


def make_bars(closes, symbol='AAPL'):
    return [
        Bar(symbol, START + timedelta(minutes=i), c, c, c, c, 1000)
        for i, c in enumerate(closes)
    ]


def make_evaluator(broker=None, gateway=None, config=IndicatorConfig(5, 20), audit=None):
    return Evaluator(
        gateway=gateway or LocalIndicatorGateway(),
        broker=broker or PaperBroker(starting_cash=100000),
        sizer=PositionSizer(1.0, 10.0),
        buffer_size=100,
        config=config,
        audit=audit
    )


class FailingGateway(IndicatorGateway):
    def compute(self, kind, values, period, multiplier=0.0):
        raise IndicatorError("indicator service unavailable")


class QueryFailingBroker(PaperBroker):
    def get_portfolio_value(self):
        raise BrokerError("depot unreachable")

    def get_position(self, symbol):
        raise BrokerError("depot unreachable")


def test_no_orders_while_accumulating():
    broker = PaperBroker(starting_cash=100000)
    evaluator = make_evaluator(broker)
    bars = make_bars(FALLING_THEN_JUMP)

    for bar in bars[:ACTIVATION_THRESHOLD - 1]:
        assert evaluator.on_bar(bar) is None
        assert evaluator.state_of('AAPL') == SymbolState.ACCUMULATING

    assert broker.order_count == 0

    evaluator.on_bar(bars[ACTIVATION_THRESHOLD - 1])
    assert evaluator.state_of('AAPL') == SymbolState.ACTIVE


def test_golden_cross_buys_within_trade_limit():
    broker = PaperBroker(starting_cash=100000)
    evaluator = make_evaluator(broker)

    tickets = [evaluator.on_bar(bar) for bar in make_bars(FALLING_THEN_JUMP)]
    placed = [(i + 1, t) for i, t in enumerate(tickets) if t is not None]

    assert len(placed) == 1
    bar_number, ticket = placed[0]
    assert bar_number == 21
    assert ticket.side == OrderSide.BUY
    # 1% of $100,000 at $200/share
    assert ticket.count == 5
    assert broker.get_position('AAPL') == 5


def test_death_cross_opens_short_when_flat():
    broker = PaperBroker(starting_cash=100000)
    evaluator = make_evaluator(broker)

    tickets = [t for t in (evaluator.on_bar(bar) for bar in make_bars(RISING_THEN_CRASH)) if t]

    assert len(tickets) == 1
    assert tickets[0].side == OrderSide.SELL
    assert tickets[0].reason == 'death cross, short'
    # 1% of $100,000 at $20/share
    assert tickets[0].count == 50
    assert broker.get_position('AAPL') == -50


def test_death_cross_closes_long_in_full():
    broker = PaperBroker(starting_cash=100000)
    broker.buy('AAPL', 30, 100.0)
    evaluator = make_evaluator(broker)

    tickets = [t for t in (evaluator.on_bar(bar) for bar in make_bars(RISING_THEN_CRASH)) if t]

    assert len(tickets) == 1
    assert tickets[0].reason == 'death cross, close long'
    assert tickets[0].count == 30
    assert broker.get_position('AAPL') == 0


def test_at_most_one_order_per_bar():
    rng = random.Random(11)
    closes = [100.0]
    for _ in range(300):
        closes.append(max(1.0, closes[-1] + rng.uniform(-3, 3)))

    broker = PaperBroker(starting_cash=100000)
    evaluator = make_evaluator(broker, config=IndicatorConfig.sample(rng))

    for i, bar in enumerate(make_bars(closes)):
        before = broker.order_count
        evaluator.on_bar(bar)
        assert broker.order_count - before <= 1
        if i < ACTIVATION_THRESHOLD - 1:
            assert broker.order_count == 0


def test_indicator_failure_abandons_step(tmp_path):
    audit = AuditLogger(tmp_path / 'audit.csv')
    broker = PaperBroker(starting_cash=100000)
    evaluator = make_evaluator(broker, gateway=FailingGateway(), audit=audit)

    for bar in make_bars(FALLING_THEN_JUMP):
        assert evaluator.on_bar(bar) is None

    assert broker.order_count == 0
    errors = audit.get_audit_trail(event_type=EventType.ERROR)
    assert len(errors) == len(FALLING_THEN_JUMP) - ACTIVATION_THRESHOLD + 1


def test_broker_query_failure_abandons_order():
    broker = QueryFailingBroker(starting_cash=100000)
    evaluator = make_evaluator(broker)

    for closes in (FALLING_THEN_JUMP, RISING_THEN_CRASH):
        evaluator.reset(IndicatorConfig(5, 20))
        for bar in make_bars(closes):
            assert evaluator.on_bar(bar) is None

    assert broker.order_count == 0


def test_long_period_beyond_history_waits():
    broker = PaperBroker(starting_cash=100000)
    evaluator = make_evaluator(broker, config=IndicatorConfig(5, 40))

    for bar in make_bars(FALLING_THEN_JUMP):
        assert evaluator.on_bar(bar) is None
    assert evaluator.state_of('AAPL') == SymbolState.ACTIVE


def test_default_periods_without_config():
    evaluator = make_evaluator(config=None)
    assert evaluator.resolve_periods(37) == (37, 5)

    evaluator.set_config(IndicatorConfig(3, 12))
    assert evaluator.resolve_periods(37) == (12, 3)


def test_signals_are_audited(tmp_path):
    audit = AuditLogger(tmp_path / 'audit.csv')
    evaluator = make_evaluator(audit=audit)

    for bar in make_bars(FALLING_THEN_JUMP):
        evaluator.on_bar(bar)

    signals = audit.get_audit_trail(event_type=EventType.SIGNAL_GENERATED)
    assert len(signals) == 1
    assert 'BULLISH' in signals['message'].iloc[0]
    assert audit.get_order_summary()['shares_bought'] == 5


def test_reset_forgets_buffers_and_state():
    evaluator = make_evaluator()
    for bar in make_bars(FALLING_THEN_JUMP):
        evaluator.on_bar(bar)

    evaluator.reset(IndicatorConfig(2, 10))

    assert evaluator.buffers == {}
    assert evaluator.state_of('AAPL') == SymbolState.ACCUMULATING
    assert evaluator.config == IndicatorConfig(2, 10)


def test_trades_and_quotes_are_buffered_not_traded():
    broker = PaperBroker(starting_cash=100000)
    evaluator = make_evaluator(broker)

    evaluator.on_trade(Trade('AAPL', START, 100.0, 5))
    evaluator.on_quote(Quote('AAPL', START, 99.9, 100.1))

    assert evaluator.buffer_for('AAPL').trade_count() == 1
    assert len(evaluator.buffer_for('AAPL')) == 0
    assert broker.order_count == 0


@pytest.mark.parametrize('symbol_a,symbol_b', [('AAPL', 'MSFT')])
def test_symbols_have_independent_buffers(symbol_a, symbol_b):
    evaluator = make_evaluator()
    for bar in make_bars(FALLING_THEN_JUMP[:10], symbol_a):
        evaluator.on_bar(bar)
    for bar in make_bars(FALLING_THEN_JUMP[:3], symbol_b):
        evaluator.on_bar(bar)

    assert len(evaluator.buffer_for(symbol_a)) == 10
    assert len(evaluator.buffer_for(symbol_b)) == 3


def test_clear_buffers_keeps_config():
    evaluator = make_evaluator(config=IndicatorConfig(3, 12))
    for bar in make_bars(FALLING_THEN_JUMP):
        evaluator.on_bar(bar)

    evaluator.clear_buffers()

    assert evaluator.buffers == {}
    assert evaluator.state_of('AAPL') == SymbolState.ACCUMULATING
    assert evaluator.config == IndicatorConfig(3, 12)


def _http_gateway(body):
    session = MagicMock()
    session.headers = {}
    response = MagicMock()
    response.status_code = 200
    response.json.return_value = body
    session.post.return_value = response
    return HttpIndicatorGateway('http://indicators:50052', session=session)


@pytest.mark.parametrize('body', [
    {'numbers': [None] * 25},
    {'numbers': None},
    {'numbers': 'n/a'},
])
def test_malformed_indicator_reply_abandons_step(body):
    broker = PaperBroker(starting_cash=100000)
    evaluator = make_evaluator(broker, gateway=_http_gateway(body))

    for bar in make_bars(FALLING_THEN_JUMP):
        assert evaluator.on_bar(bar) is None

    assert broker.order_count == 0
    assert evaluator.state_of('AAPL') == SymbolState.ACTIVE


def test_malformed_depot_reply_abandons_order():
    session = MagicMock()
    session.headers = {}
    response = MagicMock()
    response.status_code = 200
    response.content = b'{}'
    response.json.return_value = {'cash': None, 'shares': None}
    session.get.return_value = response
    session.post.return_value = response
    broker = DepotBroker('http://depot:50051', session=session)
    evaluator = make_evaluator(broker)

    for closes in (FALLING_THEN_JUMP, RISING_THEN_CRASH):
        evaluator.reset(IndicatorConfig(5, 20))
        for bar in make_bars(closes):
            assert evaluator.on_bar(bar) is None

    posted = [c.args[0] for c in session.post.call_args_list]
    assert session.get.called
    assert 'http://depot:50051/buy_shares' not in posted
    assert 'http://depot:50051/sell_shares' not in posted
