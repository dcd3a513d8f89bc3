"""
Indicator Gateway
=================
Computes a named series transform (moving averages, bands) over a list of
prices. Two implementations share one interface:
- HttpIndicatorGateway: remote indicator service (JSON over HTTP)
- LocalIndicatorGateway: in-process pandas computation

Results always have the same length and alignment as the input.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Sequence
from urllib.parse import urljoin

import numpy as np
import pandas as pd
import requests

from .exceptions import IndicatorError

logger = logging.getLogger(__name__)


class IndicatorKind(Enum):
    """Supported series transforms"""
    SMA = "SMA"
    EMA = "EMA"
    BOLLINGER_UPPER = "BOLLINGER_UPPER"
    BOLLINGER_LOWER = "BOLLINGER_LOWER"


class IndicatorGateway(ABC):
    """Series computation interface"""

    @abstractmethod
    def compute(
        self,
        kind: IndicatorKind,
        values: Sequence[float],
        period: int,
        multiplier: float = 0.0
    ) -> List[float]:
        """
        Compute an indicator series.

        Args:
            kind: Transform to apply
            values: Input series, oldest first
            period: Window length
            multiplier: Band width in standard deviations (bands only)

        Returns:
            Series of the same length as values

        Raises:
            IndicatorError: if the series cannot be computed
        """

    def sma(self, values: Sequence[float], period: int) -> List[float]:
        return self.compute(IndicatorKind.SMA, values, period)


class LocalIndicatorGateway(IndicatorGateway):
    """
    In-process indicator computation with pandas.

    Windows use min_periods=1: the head of each series holds the
    partial-window value instead of NaN.
    """

    def compute(
        self,
        kind: IndicatorKind,
        values: Sequence[float],
        period: int,
        multiplier: float = 0.0
    ) -> List[float]:
        if period < 1:
            raise IndicatorError(f"{kind.value}: period must be at least 1 (got {period})")

        series = pd.Series(np.asarray(values, dtype=float))

        if kind == IndicatorKind.SMA:
            result = series.rolling(period, min_periods=1).mean()
        elif kind == IndicatorKind.EMA:
            result = series.ewm(span=period, adjust=False).mean()
        elif kind in (IndicatorKind.BOLLINGER_UPPER, IndicatorKind.BOLLINGER_LOWER):
            mid = series.rolling(period, min_periods=1).mean()
            std = series.rolling(period, min_periods=1).std(ddof=0).fillna(0.0)
            sign = 1.0 if kind == IndicatorKind.BOLLINGER_UPPER else -1.0
            result = mid + sign * multiplier * std
        else:
            raise IndicatorError(f"Unsupported indicator: {kind}")

        return result.tolist()


class HttpIndicatorGateway(IndicatorGateway):
    """
    Client for the remote indicator service.

    Request:  POST {base_url}/calculate
              {"indicator": "SMA", "opt": {"period": 20, "multiplier": 0.0},
               "numbers": [...]}
    Response: {"numbers": [...]}
    """

    def __init__(self, base_url: str, timeout: float = 10, session: requests.Session = None):
        """
        Initialize HttpIndicatorGateway.

        Args:
            base_url: Indicator service root URL
            timeout: Seconds before a request is abandoned
            session: Optional existing requests session
        """
        self.base_url = base_url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({'Content-Type': 'application/json'})

        logger.info(f"[OK] HttpIndicatorGateway initialized ({base_url})")

    def compute(
        self,
        kind: IndicatorKind,
        values: Sequence[float],
        period: int,
        multiplier: float = 0.0
    ) -> List[float]:
        url = urljoin(self.base_url, '/calculate')
        payload = {
            'indicator': kind.value,
            'opt': {'period': int(period), 'multiplier': float(multiplier)},
            'numbers': [float(v) for v in values],
        }

        try:
            response = self.session.post(url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise IndicatorError(f"{kind.value}({period}) request failed: {e}") from e

        if response.status_code != 200:
            raise IndicatorError(f"{kind.value}({period}) failed with HTTP {response.status_code}: {response.text}")

        try:
            numbers = response.json()['numbers']
            if not isinstance(numbers, list):
                raise TypeError(f"numbers is {type(numbers).__name__}, not a list")
            series = [float(n) for n in numbers]
        except (ValueError, KeyError, TypeError) as e:
            raise IndicatorError(f"{kind.value}({period}) returned a malformed body: {e}") from e

        if len(series) != len(values):
            raise IndicatorError(
                f"{kind.value}({period}) returned {len(series)} points for {len(values)} inputs"
            )

        return series
