"""
Crossover Trader
================
Signal-driven paper trading on simple moving-average crossovers:
- Rolling per-symbol bar buffers
- Golden / death cross detection
- Percent-of-portfolio position sizing
- Random search for the best moving-average pair
"""

from .trader_config import TraderConfig
from .exceptions import (
    TraderError,
    TransientRpcFailure,
    IndicatorError,
    BrokerError,
    GainUnavailable,
    PersistenceFailure,
    MarketDataError,
    ConfigurationError,
)
from .models import IndicatorConfig, RunResult, OrderTicket, OrderResult, OrderSide
from .bar_buffer import Bar, Trade, Quote, BarBuffer
from .crossover import CrossoverSignal, detect_crossover
from .position_sizer import PositionSizer
from .indicator_gateway import IndicatorGateway, IndicatorKind, LocalIndicatorGateway, HttpIndicatorGateway
from .broker import BrokerFacade, PaperBroker, DepotBroker
from .audit_logger import AuditLogger, EventType
from .evaluator import Evaluator, SymbolState
from .results_store import ResultsStore, SqliteResultsStore
from .config_search import ConfigSearchLoop, BestConfigsRanking, SearchSummary
from .trader_engine import TradingEngine, build_gateway, build_broker, build_evaluator

__version__ = "1.0.0"
__all__ = [
    "TraderConfig",
    "TraderError",
    "TransientRpcFailure",
    "IndicatorError",
    "BrokerError",
    "GainUnavailable",
    "PersistenceFailure",
    "MarketDataError",
    "ConfigurationError",
    "IndicatorConfig",
    "RunResult",
    "OrderTicket",
    "OrderResult",
    "OrderSide",
    "Bar",
    "Trade",
    "Quote",
    "BarBuffer",
    "CrossoverSignal",
    "detect_crossover",
    "PositionSizer",
    "IndicatorGateway",
    "IndicatorKind",
    "LocalIndicatorGateway",
    "HttpIndicatorGateway",
    "BrokerFacade",
    "PaperBroker",
    "DepotBroker",
    "AuditLogger",
    "EventType",
    "Evaluator",
    "SymbolState",
    "ResultsStore",
    "SqliteResultsStore",
    "ConfigSearchLoop",
    "BestConfigsRanking",
    "SearchSummary",
    "TradingEngine",
    "build_gateway",
    "build_broker",
    "build_evaluator",
]
