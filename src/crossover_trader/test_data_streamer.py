import asyncio
import threading
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import MagicMock

import pandas as pd
import pytest

from crossover_trader.bar_buffer import Bar, Quote, Trade
from crossover_trader.data_streamer import (
    AlpacaHistorySource,
    AlpacaStreamSource,
    bar_from_alpaca,
    csv_bar_source,
    load_csv_bars,
)
from crossover_trader.exceptions import MarketDataError
from crossover_trader.trader_config import TraderConfig

CSV = """Date,Open,High,Low,Close,Adj Close,Volume
2023-01-03,88.0,89.5,87.2,88.9,87.1,1200000
2023-01-04,89.0,90.1,88.4,89.7,87.9,1100000
2023-01-05,89.6,89.9,86.8,87.0,85.3,1500000
"""


@pytest.fixture
def csv_file(tmp_path):
    path = tmp_path / 'orcl.csv'
    path.write_text(CSV)
    return path


def test_csv_bars_in_file_order(csv_file):
    bars = load_csv_bars(csv_file, 'ORCL')

    assert [b.close for b in bars] == [88.9, 89.7, 87.0]
    assert all(b.symbol == 'ORCL' for b in bars)
    assert bars[0].timestamp.tzinfo is not None
    assert bars[0].timestamp < bars[1].timestamp
    assert bars[2].volume == 1500000


def test_csv_source_is_lazy(csv_file):
    source = csv_bar_source(csv_file, 'ORCL')
    assert next(source).close == 88.9


def test_missing_csv_raises(tmp_path):
    with pytest.raises(MarketDataError):
        load_csv_bars(tmp_path / 'missing.csv', 'ORCL')


def test_csv_missing_columns_raises(tmp_path):
    path = tmp_path / 'bad.csv'
    path.write_text("Date,Price\n2023-01-03,88.0\n")
    with pytest.raises(MarketDataError):
        load_csv_bars(path, 'ORCL')


def test_history_source_converts_bars():
    index = pd.DatetimeIndex(
        ['2023-01-04 05:00:00+00:00', '2023-01-03 05:00:00+00:00'], name='timestamp'
    )
    df = pd.DataFrame({
        'open': [2.0, 1.0], 'high': [2.0, 1.0], 'low': [2.0, 1.0],
        'close': [2.5, 1.5], 'volume': [10, 20]
    }, index=index)
    client = MagicMock()
    client.get_bars.return_value.df = df

    bars = AlpacaHistorySource(TraderConfig(), client=client).get_bars('AAPL', lookback_days=10)

    assert [b.close for b in bars] == [1.5, 2.5]
    assert bars[0].timestamp.utcoffset() == timedelta(0)


def test_history_source_errors():
    client = MagicMock()
    client.get_bars.return_value.df = pd.DataFrame()
    source = AlpacaHistorySource(TraderConfig(), client=client)

    with pytest.raises(MarketDataError):
        source.get_bars('AAPL')

    client.get_bars.side_effect = RuntimeError("forbidden")
    with pytest.raises(MarketDataError):
        source.get_bars('AAPL')


def test_alpaca_bar_conversion():
    bar = bar_from_alpaca(SimpleNamespace(
        symbol='AAPL', timestamp=1672756200000000000,
        open=1, high=2, low=0.5, close=1.5, volume=300
    ))
    assert bar == Bar('AAPL', bar.timestamp, 1.0, 2.0, 0.5, 1.5, 300.0)
    assert bar.timestamp.year == 2023


def test_stream_handlers_forward_events():
    stream = MagicMock()
    source = AlpacaStreamSource(TraderConfig(), ['AAPL', 'MSFT'], stream=stream)
    events = []

    source.subscribe(events.append)

    bar_handler, *symbols = stream.subscribe_bars.call_args.args
    assert symbols == ['AAPL', 'MSFT']
    trade_handler = stream.subscribe_trades.call_args.args[0]
    quote_handler = stream.subscribe_quotes.call_args.args[0]

    ts = pd.Timestamp('2024-01-02 14:30', tz='UTC')
    asyncio.run(bar_handler(SimpleNamespace(
        symbol='AAPL', timestamp=ts, open=1, high=1, low=1, close=1, volume=1
    )))
    asyncio.run(trade_handler(SimpleNamespace(symbol='AAPL', timestamp=ts, price=1.2, size=5)))
    asyncio.run(quote_handler(SimpleNamespace(symbol='AAPL', timestamp=ts, bid_price=1.1, ask_price=1.3)))

    assert [type(e) for e in events] == [Bar, Trade, Quote]


def test_stream_failure_raises_market_data_error():
    stream = MagicMock()
    stream.run.side_effect = ConnectionError("socket closed")
    source = AlpacaStreamSource(TraderConfig(), ['AAPL'], stream=stream)

    with pytest.raises(MarketDataError):
        source.run(lambda event: None)


def test_stream_callback_runs_off_the_event_loop():
    stream = MagicMock()
    source = AlpacaStreamSource(TraderConfig(), ['AAPL'], stream=stream)
    released = threading.Event()
    calls = []

    def slow_on_event(event):
        calls.append((threading.current_thread().name, released.wait(timeout=5)))

    source.subscribe(slow_on_event)
    bar_handler = stream.subscribe_bars.call_args.args[0]
    ts = pd.Timestamp('2024-01-02 14:30', tz='UTC')

    async def release():
        released.set()

    async def main():
        await asyncio.gather(
            bar_handler(SimpleNamespace(symbol='AAPL', timestamp=ts, open=1, high=1, low=1, close=1, volume=1)),
            release()
        )

    asyncio.run(main())

    (thread_name, was_released), = calls
    assert was_released
    assert thread_name.startswith('market-events')
