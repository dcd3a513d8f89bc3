"""
Evaluator
=========
Per-symbol evaluation state machine:
- Buffers every incoming bar (and trade) per symbol
- Once a symbol has ACTIVATION_THRESHOLD bars, each new bar runs one
  evaluation step: two SMA series -> crossover -> position sizing -> order
- At most one order per bar (buy on a golden cross, sell/short on a
  death cross)

External failures are contained: an indicator failure abandons the step,
a broker query failure abandons the order, and a rejected order is logged.
"""

import logging
import threading
from enum import Enum
from typing import Dict, Optional, Tuple

from .audit_logger import AuditLogger
from .bar_buffer import Bar, BarBuffer, Quote, Trade
from .broker import BrokerFacade
from .crossover import CrossoverSignal, is_death_cross, is_golden_cross, last_two
from .exceptions import BrokerError, IndicatorError
from .indicator_gateway import IndicatorGateway, IndicatorKind
from .models import IndicatorConfig, OrderSide, OrderTicket
from .position_sizer import PositionSizer

logger = logging.getLogger(__name__)

ACTIVATION_THRESHOLD = 20
DEFAULT_SHORT_PERIOD = 5


class SymbolState(Enum):
    ACCUMULATING = "ACCUMULATING"
    ACTIVE = "ACTIVE"


class Evaluator:
    """
    Drives buffering, signal detection and order submission.

    The evaluator owns the symbol -> BarBuffer map and the active
    IndicatorConfig. Every public mutating call holds one re-entrant lock,
    so a live stream and a search episode never interleave on the same
    instance.
    """

    def __init__(
        self,
        gateway: IndicatorGateway,
        broker: BrokerFacade,
        sizer: PositionSizer,
        buffer_size: int = 100,
        config: Optional[IndicatorConfig] = None,
        audit: Optional[AuditLogger] = None
    ):
        """
        Initialize Evaluator.

        Args:
            gateway: Indicator computation service
            broker: Order execution / account state
            sizer: PositionSizer with the process risk limits
            buffer_size: Capacity of each per-symbol buffer
            config: Active moving-average pair (None = default pair)
            audit: Optional audit trail
        """
        self.gateway = gateway
        self.broker = broker
        self.sizer = sizer
        self.buffer_size = buffer_size
        self.config = config
        self.audit = audit

        self.buffers: Dict[str, BarBuffer] = {}
        self.states: Dict[str, SymbolState] = {}
        self._lock = threading.RLock()

        logger.info(f"[OK] Evaluator initialized (buffer: {buffer_size} bars, config: {config or 'default'})")

    # =========================================================================
    # STATE
    # =========================================================================

    def set_config(self, config: Optional[IndicatorConfig]):
        with self._lock:
            self.config = config

    def clear_buffers(self):
        with self._lock:
            self.buffers.clear()
            self.states.clear()

    def reset(self, config: Optional[IndicatorConfig]):
        """Install a new config and forget all buffered history"""
        with self._lock:
            self.set_config(config)
            self.clear_buffers()

    def buffer_for(self, symbol: str) -> BarBuffer:
        """Get (or lazily create) the buffer for symbol"""
        with self._lock:
            buffer = self.buffers.get(symbol)
            if buffer is None:
                buffer = BarBuffer(symbol, self.buffer_size)
                self.buffers[symbol] = buffer
                self.states[symbol] = SymbolState.ACCUMULATING
                logger.debug(f"{symbol}: buffer created ({self.buffer_size} bars)")
            return buffer

    def state_of(self, symbol: str) -> SymbolState:
        return self.states.get(symbol, SymbolState.ACCUMULATING)

    def resolve_periods(self, buffer_len: int) -> Tuple[int, int]:
        """(long_period, short_period) for the active config"""
        if self.config is not None:
            return self.config.long_period, self.config.short_period
        return buffer_len, DEFAULT_SHORT_PERIOD

    # =========================================================================
    # EVENTS
    # =========================================================================

    def on_bar(self, bar: Bar) -> Optional[OrderTicket]:
        """
        Buffer a bar and, once the symbol is active, evaluate it.

        Args:
            bar: New bar (must arrive in time order per symbol)

        Returns:
            The order submitted for this bar, or None
        """
        with self._lock:
            buffer = self.buffer_for(bar.symbol)
            buffer.add(bar)

            if self.states[bar.symbol] == SymbolState.ACCUMULATING:
                if len(buffer) < ACTIVATION_THRESHOLD:
                    return None
                self.states[bar.symbol] = SymbolState.ACTIVE
                logger.info(f"{bar.symbol}: active after {len(buffer)} bars")

            return self.evaluate(bar.symbol, bar.close)

    def on_trade(self, trade: Trade):
        with self._lock:
            self.buffer_for(trade.symbol).add_trade(trade)

    def on_quote(self, quote: Quote):
        logger.debug(f"{quote.symbol}: quote {quote.bid_price:.2f}/{quote.ask_price:.2f}")

    # =========================================================================
    # EVALUATION STEP
    # =========================================================================

    def evaluate(self, symbol: str, price: float) -> Optional[OrderTicket]:
        """
        Run one evaluation step for symbol at price.

        Returns:
            The order submitted, or None (no signal, insufficient history,
            zero size, or a contained failure)
        """
        with self._lock:
            closes = self.buffer_for(symbol).closes()
            long_period, short_period = self.resolve_periods(len(closes))

            if len(closes) < long_period:
                logger.debug(f"{symbol}: insufficient history ({len(closes)}/{long_period} bars)")
                return None

            try:
                long_ma = self.gateway.compute(IndicatorKind.SMA, closes, long_period)
                short_ma = self.gateway.compute(IndicatorKind.SMA, closes, short_period)
                long_prev, long_cur = last_two(long_ma)
                short_prev, short_cur = last_two(short_ma)
            except (IndicatorError, ValueError) as e:
                logger.warning(f"{symbol}: evaluation abandoned, indicator failure: {e}")
                if self.audit:
                    self.audit.log_error(f"indicator failure: {e}", symbol)
                return None

            periods = IndicatorConfig(short_period=short_period, long_period=long_period)

            if is_golden_cross(long_prev, long_cur, short_prev, short_cur):
                self._log_signal(symbol, CrossoverSignal.BULLISH, price, periods)
                return self._buy_path(symbol, price)

            if is_death_cross(long_prev, long_cur, short_prev, short_cur):
                self._log_signal(symbol, CrossoverSignal.BEARISH, price, periods)
                return self._sell_path(symbol, price)

            return None

    def _log_signal(self, symbol: str, signal: CrossoverSignal, price: float, periods: IndicatorConfig):
        logger.info(f"{symbol}: {signal.value} crossover @ ${price:.2f} ({periods})")
        if self.audit:
            self.audit.log_signal(symbol, signal.value, price, periods)

    def _buy_path(self, symbol: str, price: float) -> Optional[OrderTicket]:
        try:
            portfolio_value = self.broker.get_portfolio_value()
            cash = self.broker.get_cash_balance()
            position = self.broker.get_position(symbol)
        except BrokerError as e:
            logger.warning(f"{symbol}: buy abandoned, broker query failed: {e}")
            return None

        position_value = position * price if position > 0 else 0.0
        count = self.sizer.buy_size(price, portfolio_value, position_value, cash)
        if count <= 0:
            logger.debug(f"{symbol}: buy size is 0")
            return None

        logger.info(f"[BUY] {symbol}: {count} shares @ ${price:.2f}")
        return self._submit(OrderTicket(symbol, OrderSide.BUY, count, price, 'golden cross'))

    def _sell_path(self, symbol: str, price: float) -> Optional[OrderTicket]:
        try:
            position = self.broker.get_position(symbol)
            portfolio_value = self.broker.get_portfolio_value()
            if position > 0:
                count = self.sizer.sell_size(position, price, portfolio_value)
                reason = 'death cross, close long'
            else:
                count = self.sizer.short_size(price, portfolio_value, position)
                reason = 'death cross, short'
        except BrokerError as e:
            logger.warning(f"{symbol}: sell abandoned, broker query failed: {e}")
            return None

        if count <= 0:
            logger.debug(f"{symbol}: sell size is 0")
            return None

        label = 'SELL' if position > 0 else 'SHORT'
        logger.info(f"[{label}] {symbol}: {count} shares @ ${price:.2f}")
        return self._submit(OrderTicket(symbol, OrderSide.SELL, count, price, reason))

    def _submit(self, ticket: OrderTicket) -> Optional[OrderTicket]:
        if ticket.side == OrderSide.BUY:
            result = self.broker.buy(ticket.symbol, ticket.count, ticket.price)
        else:
            result = self.broker.sell(ticket.symbol, ticket.count, ticket.price)

        if self.audit:
            self.audit.log_order(result, ticket.reason)

        if not result.success:
            logger.warning(f"{ticket.symbol}: {ticket.side.value} order not placed: {result.error}")
            return None
        return ticket
