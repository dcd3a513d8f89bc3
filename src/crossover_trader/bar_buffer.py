"""
Bar Buffer
==========
Fixed-capacity rolling window of the most recent bars (and trades) for one
symbol. Oldest entries are evicted first once the window is full.
"""

from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Deque, List


@dataclass(frozen=True)
class Bar:
    """OHLCV summary for one symbol over one interval"""
    symbol: str
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True)
class Trade:
    """Single trade print"""
    symbol: str
    timestamp: datetime
    price: float
    size: float


@dataclass(frozen=True)
class Quote:
    """Top-of-book quote"""
    symbol: str
    timestamp: datetime
    bid_price: float
    ask_price: float


class BarBuffer:
    """
    FIFO window of bars for a single symbol.

    Invariant: len(buffer) <= capacity. Adding to a full buffer drops the
    oldest bar first; the capacity never changes after construction.
    """

    def __init__(self, symbol: str, capacity: int):
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1 (got {capacity})")
        self.symbol = symbol
        self.capacity = capacity
        self._bars: Deque[Bar] = deque(maxlen=capacity)
        self._trades: Deque[Trade] = deque(maxlen=capacity)

    def add(self, bar: Bar):
        """Append a bar, evicting the oldest one when at capacity"""
        self._bars.append(bar)

    def snapshot(self) -> List[Bar]:
        """Bars ordered oldest -> newest"""
        return list(self._bars)

    def closes(self) -> List[float]:
        """Closing prices ordered oldest -> newest"""
        return [bar.close for bar in self._bars]

    def add_trade(self, trade: Trade):
        """Append a trade, evicting the oldest one when at capacity"""
        self._trades.append(trade)

    def trades(self) -> List[Trade]:
        return list(self._trades)

    def trade_count(self) -> int:
        return len(self._trades)

    def clear(self):
        self._bars.clear()
        self._trades.clear()

    def __len__(self) -> int:
        return len(self._bars)

    def __repr__(self) -> str:
        return f"BarBuffer(symbol={self.symbol!r}, bars={len(self._bars)}/{self.capacity})"
