"""
Data Streamer
=============
Market data sources for the crossover trader:
- csv_bar_source: replays an OHLCV CSV file as Bars (mock data)
- AlpacaHistorySource: historical bars from the Alpaca REST API (search replay)
- AlpacaStreamSource: live bars/trades/quotes from the Alpaca websocket stream
"""

import time
import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Union

import pandas as pd
from alpaca_trade_api import REST
from alpaca_trade_api.rest import TimeFrame, TimeFrameUnit
from alpaca_trade_api.stream import Stream

from .bar_buffer import Bar, Quote, Trade
from .exceptions import MarketDataError
from .trader_config import TraderConfig

logger = logging.getLogger(__name__)

# Adj Close is accepted but not used
REQUIRED_CSV_COLUMNS = ['Date', 'Open', 'High', 'Low', 'Close', 'Volume']

MarketEvent = Union[Bar, Trade, Quote]


def _to_datetime(value) -> datetime:
    """Normalize Alpaca / CSV timestamps (ns ints, strings, datetimes) to aware UTC datetimes"""
    ts = pd.Timestamp(value)
    if ts.tzinfo is None:
        ts = ts.tz_localize('UTC')
    return ts.tz_convert('UTC').to_pydatetime()


# =============================================================================
# CSV (MOCK DATA)
# =============================================================================

def _read_csv_frame(path: Union[str, Path]) -> pd.DataFrame:
    path = Path(path)
    if not path.exists():
        raise MarketDataError(f"mock file not found: {path}")

    try:
        df = pd.read_csv(path)
    except (OSError, ValueError) as e:
        raise MarketDataError(f"cannot read {path}: {e}") from e

    missing = [c for c in REQUIRED_CSV_COLUMNS if c not in df.columns]
    if missing:
        raise MarketDataError(f"{path} is missing columns: {', '.join(missing)}")

    return df


def _row_to_bar(row, symbol: str) -> Bar:
    return Bar(
        symbol=symbol,
        timestamp=_to_datetime(row['Date']),
        open=float(row['Open']),
        high=float(row['High']),
        low=float(row['Low']),
        close=float(row['Close']),
        volume=float(row['Volume'])
    )


def csv_bar_source(path: Union[str, Path], symbol: str, delay_ms: int = 0) -> Iterator[Bar]:
    """
    Yield the bars of an OHLCV CSV file in file order.

    Args:
        path: CSV with columns Date,Open,High,Low,Close,Adj Close,Volume
        symbol: Symbol to stamp on every bar
        delay_ms: Pause between bars (simulated feed)

    Raises:
        MarketDataError: missing file, unreadable file or bad row
    """
    df = _read_csv_frame(path)
    logger.info(f"Replaying {len(df)} bars of {symbol} from {path}")

    for i, row in df.iterrows():
        try:
            bar = _row_to_bar(row, symbol)
        except (TypeError, ValueError) as e:
            raise MarketDataError(f"{path}: bad row {i}: {e}") from e
        yield bar
        if delay_ms > 0:
            time.sleep(delay_ms / 1000.0)


def load_csv_bars(path: Union[str, Path], symbol: str) -> List[Bar]:
    """Load every bar of a CSV file (replayed once per search episode)"""
    return list(csv_bar_source(path, symbol))


# =============================================================================
# ALPACA HISTORY
# =============================================================================

class AlpacaHistorySource:
    """
    Historical daily bars from Alpaca, for configuration search replay.
    """

    def __init__(self, config: TraderConfig, client: REST = None):
        """
        Initialize AlpacaHistorySource.

        Args:
            config: TraderConfig instance with API credentials
            client: Optional existing Alpaca REST client
        """
        self.config = config

        if client:
            self.client = client
        else:
            self.client = REST(
                key_id=config.alpaca_api_key,
                secret_key=config.alpaca_secret_key,
                base_url=config.alpaca_base_url
            )

        self.timeframe = TimeFrame(1, TimeFrameUnit.Day)

        logger.info("[OK] AlpacaHistorySource initialized")

    def get_bars(self, symbol: str, lookback_days: int = 365, end: datetime = None) -> List[Bar]:
        """
        Fetch historical bars for a symbol, oldest first.

        Raises:
            MarketDataError: API failure or no data returned
        """
        if end is None:
            end = datetime.now()
        start = end - timedelta(days=lookback_days)

        start_str = start.strftime('%Y-%m-%d')
        end_str = end.strftime('%Y-%m-%d')
        logger.debug(f"Fetching {symbol} bars: {start_str} to {end_str}")

        try:
            df = self.client.get_bars(
                symbol,
                self.timeframe,
                start=start_str,
                end=end_str,
                feed=self.config.data_feed
            ).df
        except Exception as e:
            raise MarketDataError(f"get_bars({symbol}) failed: {e}") from e

        if df.empty:
            raise MarketDataError(f"No data returned for {symbol}")

        df = df.reset_index()
        df.columns = [c.lower() for c in df.columns]
        df = df.sort_values('timestamp').reset_index(drop=True)

        bars = [
            Bar(
                symbol=symbol,
                timestamp=_to_datetime(row['timestamp']),
                open=float(row['open']),
                high=float(row['high']),
                low=float(row['low']),
                close=float(row['close']),
                volume=float(row['volume'])
            )
            for _, row in df.iterrows()
        ]
        logger.info(f"Fetched {len(bars)} bars for {symbol}")
        return bars


# =============================================================================
# ALPACA LIVE STREAM
# =============================================================================

def bar_from_alpaca(bar) -> Bar:
    return Bar(
        symbol=bar.symbol,
        timestamp=_to_datetime(bar.timestamp),
        open=float(bar.open),
        high=float(bar.high),
        low=float(bar.low),
        close=float(bar.close),
        volume=float(bar.volume)
    )


def trade_from_alpaca(trade) -> Trade:
    return Trade(
        symbol=trade.symbol,
        timestamp=_to_datetime(trade.timestamp),
        price=float(trade.price),
        size=float(trade.size)
    )


def quote_from_alpaca(quote) -> Quote:
    return Quote(
        symbol=quote.symbol,
        timestamp=_to_datetime(quote.timestamp),
        bid_price=float(quote.bid_price),
        ask_price=float(quote.ask_price)
    )


class AlpacaStreamSource:
    """
    Live market data over the Alpaca websocket stream.

    Every bar, trade and quote for the subscribed symbols is converted and
    handed to one callback. The callback runs on a single worker thread so
    the stream's event loop keeps reading while the Evaluator waits on
    remote calls; one worker keeps arrival order. run() blocks until the
    stream stops.
    """

    def __init__(self, config: TraderConfig, symbols: Optional[List[str]] = None, stream: Stream = None):
        """
        Initialize AlpacaStreamSource.

        Args:
            config: TraderConfig instance with API credentials
            symbols: Symbols to subscribe (default: from config)
            stream: Optional existing Alpaca Stream
        """
        self.config = config
        self.symbols = symbols or config.symbols

        if stream:
            self.stream = stream
        else:
            self.stream = Stream(
                key_id=config.alpaca_api_key,
                secret_key=config.alpaca_secret_key,
                base_url=config.alpaca_base_url,
                data_feed=config.data_feed
            )

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='market-events')

        logger.info(f"[OK] AlpacaStreamSource initialized ({', '.join(self.symbols)})")

    def subscribe(self, on_event: Callable[[MarketEvent], None]):
        """Register handlers that convert Alpaca entities and forward them to on_event"""

        async def dispatch(event: MarketEvent):
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(self._executor, on_event, event)

        async def handle_bar(bar):
            await dispatch(bar_from_alpaca(bar))

        async def handle_trade(trade):
            await dispatch(trade_from_alpaca(trade))

        async def handle_quote(quote):
            await dispatch(quote_from_alpaca(quote))

        self.stream.subscribe_bars(handle_bar, *self.symbols)
        self.stream.subscribe_trades(handle_trade, *self.symbols)
        self.stream.subscribe_quotes(handle_quote, *self.symbols)

    def run(self, on_event: Callable[[MarketEvent], None]):
        """
        Subscribe and block on the stream.

        Raises:
            MarketDataError: the stream terminated with a transport error
        """
        self.subscribe(on_event)
        logger.info("Alpaca stream starting")
        try:
            self.stream.run()
        except KeyboardInterrupt:
            raise
        except Exception as e:
            raise MarketDataError(f"market data stream failed: {e}") from e
        finally:
            self._executor.shutdown(wait=True)
            logger.info("Alpaca stream stopped")

    def stop(self):
        self.stream.stop()
