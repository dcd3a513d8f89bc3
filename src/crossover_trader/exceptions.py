"""
Trader Exceptions
=================
Error taxonomy for the crossover trader.

Per-bar and per-episode failures are contained by the Evaluator and the
ConfigSearchLoop; only ConfigurationError is allowed to stop the process.
"""


class TraderError(Exception):
    """Base class for all trader errors"""


class TransientRpcFailure(TraderError):
    """An external service (indicator or broker) could not be reached or errored"""


class IndicatorError(TransientRpcFailure):
    """Indicator service failed to compute a series"""


class BrokerError(TransientRpcFailure):
    """Broker query or account reset failed"""


class GainUnavailable(TraderError):
    """Realized gain could not be read at the end of an episode"""


class PersistenceFailure(TraderError):
    """A run result could not be written to the results store"""


class MarketDataError(TraderError):
    """Market data source failed (bad CSV, dropped stream, ...)"""


class ConfigurationError(TraderError):
    """Startup configuration is missing or invalid"""
