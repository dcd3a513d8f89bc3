"""
Position Sizer
==============
Converts portfolio state and percentage risk limits into share counts:
- Buy size capped by trade limit, position limit and available cash
- Sell size liquidates the full long position
- Short size capped by trade limit and short position limit

Limits are percentages of total portfolio value (1.0 = 1%). Every result is
floored, so a limit can be approached but never exceeded.
"""

import math
import logging

logger = logging.getLogger(__name__)


class PositionSizer:
    """
    Risk-bounded share sizing.

    Features:
    - Max value per trade (max_trade_percent of portfolio)
    - Max value per symbol (max_position_percent of portfolio)
    - Cash constraint on buys
    """

    def __init__(self, max_trade_percent: float, max_position_percent: float):
        """
        Initialize PositionSizer.

        Args:
            max_trade_percent: Max % of portfolio per trade (1.0 = 1%)
            max_position_percent: Max % of portfolio per symbol (10.0 = 10%)
        """
        self.max_trade_percent = max_trade_percent
        self.max_position_percent = max_position_percent

    def _limits(self, portfolio_value: float):
        max_trade_value = portfolio_value * (self.max_trade_percent / 100.0)
        max_position_value = portfolio_value * (self.max_position_percent / 100.0)
        return max_trade_value, max_position_value

    def buy_size(
        self,
        price: float,
        portfolio_value: float,
        current_position_value: float,
        cash_available: float
    ) -> int:
        """
        Number of shares to buy.

        Args:
            price: Current price per share
            portfolio_value: Total portfolio value (cash + positions)
            current_position_value: Value already held in this symbol
            cash_available: Available cash

        Returns:
            Shares to buy (0 if any limit is already reached)
        """
        if portfolio_value <= 0 or price <= 0:
            return 0

        max_trade_value, max_position_value = self._limits(portfolio_value)
        remaining_capacity = max_position_value - current_position_value

        if remaining_capacity <= 0:
            logger.info("Position limit reached for this stock")
            return 0

        max_value = min(max_trade_value, remaining_capacity, cash_available)
        shares = math.floor(max_value / price)

        return max(shares, 0)

    def sell_size(self, current_position: int, price: float, portfolio_value: float) -> int:
        """
        Number of shares to sell.

        A long position is liquidated in full; flat or short positions
        yield 0 (shorting goes through short_size).
        """
        if current_position > 0:
            return current_position
        return 0

    def short_size(self, price: float, portfolio_value: float, current_position: int) -> int:
        """
        Number of shares to sell short.

        Args:
            price: Current price per share
            portfolio_value: Total portfolio value
            current_position: Signed position (negative = short)

        Returns:
            Shares to short (0 if the short limit is already reached)
        """
        if portfolio_value <= 0 or price <= 0:
            return 0

        max_trade_value, max_position_value = self._limits(portfolio_value)

        current_short_value = abs(current_position) * price if current_position < 0 else 0.0
        remaining_short_capacity = max_position_value - current_short_value

        if remaining_short_capacity <= 0:
            logger.info("Short position limit reached for this stock")
            return 0

        max_value = min(max_trade_value, remaining_short_capacity)
        shares = math.floor(max_value / price)

        return max(shares, 0)
