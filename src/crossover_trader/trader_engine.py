"""
Trading Engine
==============
Live / replay loop that feeds market events to the Evaluator:
- Component builders (gateway, broker, evaluator) from TraderConfig
- Startup account check
- Event dispatch (bars, trades, quotes)
- Graceful stop and status reporting
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from .audit_logger import AuditLogger
from .bar_buffer import Bar, Quote, Trade
from .broker import BrokerFacade, DepotBroker, PaperBroker
from .evaluator import Evaluator
from .exceptions import BrokerError, ConfigurationError, MarketDataError
from .indicator_gateway import HttpIndicatorGateway, IndicatorGateway, LocalIndicatorGateway
from .models import IndicatorConfig, OrderTicket
from .position_sizer import PositionSizer
from .trader_config import TraderConfig

logger = logging.getLogger(__name__)


# =============================================================================
# BUILDERS
# =============================================================================

def build_gateway(config: TraderConfig) -> IndicatorGateway:
    if config.indicator_backend == 'local':
        return LocalIndicatorGateway()
    if config.indicator_backend == 'http':
        return HttpIndicatorGateway(config.indicator_url, timeout=config.rpc_timeout_seconds)
    raise ConfigurationError(f"unknown indicator backend: {config.indicator_backend}")


def build_broker(config: TraderConfig, paper: bool = False) -> BrokerFacade:
    """
    Build the broker selected by config.broker_backend.

    Args:
        config: TraderConfig instance
        paper: Force the in-memory PaperBroker (offline runs)
    """
    if paper or config.broker_backend == 'paper':
        return PaperBroker(starting_cash=config.starting_cash)
    if config.broker_backend == 'depot':
        return DepotBroker(config.depot_url, timeout=config.rpc_timeout_seconds)
    if config.broker_backend == 'alpaca':
        from .alpaca_broker import AlpacaBroker
        return AlpacaBroker(config)
    raise ConfigurationError(f"unknown broker backend: {config.broker_backend}")


def build_evaluator(
    config: TraderConfig,
    gateway: IndicatorGateway,
    broker: BrokerFacade,
    audit: Optional[AuditLogger] = None,
    indicator_config: Optional[IndicatorConfig] = None
) -> Evaluator:
    sizer = PositionSizer(config.max_trade_percent, config.max_position_percent)
    return Evaluator(
        gateway=gateway,
        broker=broker,
        sizer=sizer,
        buffer_size=config.buffer_size,
        config=indicator_config,
        audit=audit
    )


# =============================================================================
# ENGINE
# =============================================================================

class TradingEngine:
    """
    Drives one Evaluator from a stream of market events.

    Events for a symbol must arrive in time order. A market data failure
    ends the loop; per-bar indicator and broker failures are contained by
    the Evaluator and never stop the engine.
    """

    def __init__(
        self,
        config: TraderConfig,
        evaluator: Evaluator,
        broker: BrokerFacade,
        audit: Optional[AuditLogger] = None
    ):
        """
        Initialize trading engine.

        Args:
            config: TraderConfig instance
            evaluator: Evaluator that owns buffers and places orders
            broker: Broker shared with the evaluator (startup/status queries)
            audit: Optional audit trail
        """
        self.config = config
        self.evaluator = evaluator
        self.broker = broker
        self.audit = audit

        # Engine state
        self.running = False
        self.source = None
        self.bars_processed = 0
        self.trades_processed = 0
        self.quotes_processed = 0
        self.orders: List[OrderTicket] = []
        self.last_event_time: Optional[datetime] = None
        self.errors: List[str] = []

        logger.info("[OK] TradingEngine initialized")

    def startup(self):
        """Log the account state the engine starts from"""
        logger.info("=" * 50)
        logger.info("TRADING ENGINE STARTUP")
        logger.info("=" * 50)
        logger.info(f"Symbols: {', '.join(self.config.symbols)}")

        try:
            cash = self.broker.get_cash_balance()
            portfolio_value = self.broker.get_portfolio_value()
            logger.info(f"[OK] Cash: ${cash:,.2f} | Portfolio value: ${portfolio_value:,.2f}")
        except BrokerError as e:
            logger.warning(f"Could not read account state: {e}")
            self.errors.append(str(e))

        if self.audit:
            self.audit.log_info(f"engine startup ({', '.join(self.config.symbols)})")

    def process_event(self, event) -> Optional[OrderTicket]:
        """
        Dispatch one market event to the evaluator.

        Returns:
            The order placed for this event, or None
        """
        self.last_event_time = getattr(event, 'timestamp', self.last_event_time)

        if isinstance(event, Bar):
            self.bars_processed += 1
            ticket = self.evaluator.on_bar(event)
            if ticket is not None:
                self.orders.append(ticket)
            return ticket
        if isinstance(event, Trade):
            self.trades_processed += 1
            self.evaluator.on_trade(event)
        elif isinstance(event, Quote):
            self.quotes_processed += 1
            self.evaluator.on_quote(event)
        else:
            logger.warning(f"Ignoring unknown event type: {type(event).__name__}")
        return None

    def replay(self, events: Iterable) -> int:
        """
        Feed a finite event source (CSV mock data) to the evaluator.

        Returns:
            Number of orders placed
        """
        self.running = True
        placed = 0
        try:
            for event in events:
                if not self.running:
                    logger.info("Replay stopped")
                    break
                if self.process_event(event) is not None:
                    placed += 1
        except MarketDataError as e:
            logger.error(f"Market data failure, replay ended: {e}")
            self.errors.append(str(e))
        finally:
            self._shutdown()
        return placed

    def run_live(self, source):
        """
        Block on a live source until it ends, fails or is interrupted.

        Args:
            source: Object with run(on_event) and stop() (AlpacaStreamSource)
        """
        self.running = True
        self.source = source
        try:
            source.run(self.process_event)
        except MarketDataError as e:
            logger.error(f"Market data failure, live loop ended: {e}")
            self.errors.append(str(e))
        except KeyboardInterrupt:
            logger.info("Interrupted by user")
        finally:
            self._shutdown()

    def stop(self):
        """Stop the loop after the current event"""
        logger.info("Stopping trading engine...")
        self.running = False
        if self.source is not None:
            self.source.stop()

    def _shutdown(self):
        self.running = False
        logger.info("=" * 50)
        logger.info("TRADING ENGINE SHUTDOWN")
        logger.info(f"Bars: {self.bars_processed} | Trades: {self.trades_processed} | Orders: {len(self.orders)}")
        logger.info("=" * 50)
        if self.audit:
            self.audit.log_info(f"engine shutdown ({self.bars_processed} bars, {len(self.orders)} orders)")

    def get_status(self) -> Dict:
        """
        Get current engine status.

        Returns:
            Status dictionary
        """
        return {
            'running': self.running,
            'bars_processed': self.bars_processed,
            'trades_processed': self.trades_processed,
            'quotes_processed': self.quotes_processed,
            'orders': len(self.orders),
            'last_event': self.last_event_time.isoformat() if self.last_event_time else None,
            'symbols': {
                symbol: {
                    'bars': len(buffer),
                    'state': self.evaluator.state_of(symbol).value
                }
                for symbol, buffer in self.evaluator.buffers.items()
            },
            'errors': len(self.errors),
            'last_errors': self.errors[-3:] if self.errors else []
        }
