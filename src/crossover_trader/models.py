"""
Shared Types
============
Indicator configurations, run results and order records passed between
the evaluator, the brokers and the configuration search.
"""

import random
from datetime import datetime, timezone
from dataclasses import dataclass, asdict, field
from enum import Enum
from typing import Optional

# Sampling bounds for the configuration search
LONG_PERIOD_MIN = 10
LONG_PERIOD_MAX = 50
SHORT_PERIOD_MIN = 2
SHORT_PERIOD_GAP = 5


class OrderSide(Enum):
    BUY = "buy"
    SELL = "sell"


@dataclass(frozen=True)
class IndicatorConfig:
    """Moving-average pair used for one evaluation episode"""
    short_period: int
    long_period: int

    @classmethod
    def sample(cls, rng: random.Random) -> 'IndicatorConfig':
        """
        Draw a random configuration.

        long_period is uniform in [10, 50]; short_period is uniform in
        [2, long_period - 5], so short_period < long_period always holds.
        """
        long_period = rng.randint(LONG_PERIOD_MIN, LONG_PERIOD_MAX)
        short_period = rng.randint(SHORT_PERIOD_MIN, long_period - SHORT_PERIOD_GAP)
        return cls(short_period=short_period, long_period=long_period)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'IndicatorConfig':
        return cls(short_period=int(data['short_period']), long_period=int(data['long_period']))

    def __str__(self) -> str:
        return f"SMA({self.short_period}/{self.long_period})"


@dataclass(frozen=True)
class RunResult:
    """Outcome of one search episode"""
    config: IndicatorConfig
    symbol: str
    gain: float
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'short_period': self.config.short_period,
            'long_period': self.config.long_period,
            'symbol': self.symbol,
            'gain': self.gain,
            'timestamp': self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'RunResult':
        return cls(
            id=data.get('id'),
            config=IndicatorConfig.from_dict(data),
            symbol=data['symbol'],
            gain=float(data['gain']),
            timestamp=datetime.fromisoformat(data['timestamp']),
        )


@dataclass(frozen=True)
class OrderTicket:
    """An order the evaluator decided to submit"""
    symbol: str
    side: OrderSide
    count: int
    price: float
    reason: str = ''


@dataclass
class OrderResult:
    """Broker acknowledgment of an order"""
    success: bool
    symbol: str = ""
    side: str = ""
    qty: int = 0
    price: float = 0.0
    order_id: Optional[str] = None
    status: str = ""
    error: Optional[str] = None
