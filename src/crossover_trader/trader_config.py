"""
Trader Configuration
====================
Central configuration for the crossover trader.
All tunable parameters in one place, defaulted from the environment (.env).
"""

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional
from dotenv import load_dotenv

from .exceptions import ConfigurationError

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

BROKER_BACKENDS = ('depot', 'paper', 'alpaca')
INDICATOR_BACKENDS = ('http', 'local')


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == '':
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_list(name: str, default: List[str]) -> List[str]:
    value = os.getenv(name)
    if not value:
        return list(default)
    return [s.strip().upper() for s in value.split(',') if s.strip()]


def _env_optional_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    if value is None or value.strip() == '':
        return None
    return int(value)


@dataclass
class TraderConfig:
    """
    Crossover Trader Configuration

    Every field can be overridden through the environment or by assigning
    to the attribute before the components are built.
    """

    # =========================================================================
    # API CREDENTIALS (from .env)
    # =========================================================================
    alpaca_api_key: str = field(default_factory=lambda: os.getenv('ALPACA_API_KEY', ''))
    alpaca_secret_key: str = field(default_factory=lambda: os.getenv('ALPACA_SECRET_KEY', ''))
    alpaca_base_url: str = field(default_factory=lambda: os.getenv('APCA_API_BASE_URL', 'https://paper-api.alpaca.markets'))
    data_feed: str = field(default_factory=lambda: os.getenv('DATA_SOURCE', 'iex'))

    # =========================================================================
    # TRADING UNIVERSE
    # =========================================================================
    symbols: List[str] = field(default_factory=lambda: _env_list('TRADER_SYMBOLS', ['AAPL']))
    search_symbol: str = field(default_factory=lambda: os.getenv('SEARCH_SYMBOL', 'AAPL'))

    # =========================================================================
    # EXTERNAL SERVICES
    # =========================================================================
    broker_backend: str = field(default_factory=lambda: os.getenv('BROKER_BACKEND', 'depot'))
    depot_url: str = field(default_factory=lambda: os.getenv('DEPOT_URL', 'http://localhost:50051'))
    indicator_backend: str = field(default_factory=lambda: os.getenv('INDICATOR_BACKEND', 'http'))
    indicator_url: str = field(default_factory=lambda: os.getenv('INDICATOR_URL', 'http://localhost:50052'))
    rpc_timeout_seconds: float = field(default_factory=lambda: float(os.getenv('RPC_TIMEOUT_SECONDS', '10')))

    # =========================================================================
    # MOCK DATA
    # =========================================================================
    use_mock_data: bool = field(default_factory=lambda: _env_bool('USE_MOCK_DATA', False))
    mock_file_path: str = field(default_factory=lambda: os.getenv('MOCK_FILE_PATH', 'files/orcl.csv'))
    mock_delay_ms: int = field(default_factory=lambda: int(os.getenv('MOCK_DELAY_MS', '0')))

    # =========================================================================
    # RISK MANAGEMENT (percent of portfolio value, 1.0 = 1%)
    # =========================================================================
    buffer_size: int = field(default_factory=lambda: int(os.getenv('BUFFER_SIZE', '100')))
    max_trade_percent: float = field(default_factory=lambda: float(os.getenv('MAX_TRADE_PERCENT', '1.0')))
    max_position_percent: float = field(default_factory=lambda: float(os.getenv('MAX_POSITION_PERCENT', '10.0')))

    # =========================================================================
    # CONFIGURATION SEARCH
    # =========================================================================
    eval_iterations: int = field(default_factory=lambda: int(os.getenv('EVAL_ITERATIONS', '100')))
    top_n_configs: int = field(default_factory=lambda: int(os.getenv('TOP_N_CONFIGS', '10')))
    starting_cash: float = field(default_factory=lambda: float(os.getenv('STARTING_CASH', '100000')))
    persist_results: bool = field(default_factory=lambda: _env_bool('PERSIST_RESULTS', True))
    results_db_path: str = field(default_factory=lambda: os.getenv('RESULTS_DB_PATH', 'data/results.db'))
    random_seed: Optional[int] = field(default_factory=lambda: _env_optional_int('RANDOM_SEED'))

    # =========================================================================
    # LOGGING
    # =========================================================================
    logs_dir: str = 'logs/trader'
    audit_csv: str = 'logs/trader/audit_trail.csv'

    def needs_alpaca(self, live: bool = True) -> bool:
        """True if the selected backends talk to Alpaca"""
        if self.broker_backend == 'alpaca':
            return True
        return live and not self.use_mock_data

    def validate(self, live: bool = True, search: bool = False):
        """
        Validate configuration settings.

        Args:
            live: True when a live market data feed will be used
            search: True when validating for a configuration search (needs a resettable broker)

        Raises:
            ConfigurationError: listing every problem found
        """
        errors = []

        if self.needs_alpaca(live):
            if not self.alpaca_api_key:
                errors.append("ALPACA_API_KEY not set")
            if not self.alpaca_secret_key:
                errors.append("ALPACA_SECRET_KEY not set")
        if self.broker_backend not in BROKER_BACKENDS:
            errors.append(f"broker_backend must be one of {BROKER_BACKENDS}")
        if search and self.broker_backend == 'alpaca':
            errors.append("alpaca broker cannot be reset; use depot or paper for configuration search")
        if self.indicator_backend not in INDICATOR_BACKENDS:
            errors.append(f"indicator_backend must be one of {INDICATOR_BACKENDS}")
        if not 0 < self.max_trade_percent <= 100:
            errors.append("max_trade_percent should be in (0, 100]")
        if not 0 < self.max_position_percent <= 100:
            errors.append("max_position_percent should be in (0, 100]")
        if self.buffer_size < 50:
            errors.append("buffer_size must hold at least 50 bars (largest sampled long period)")
        if self.eval_iterations < 1:
            errors.append("eval_iterations must be at least 1")
        if self.top_n_configs < 1:
            errors.append("top_n_configs must be at least 1")
        if self.starting_cash <= 0:
            errors.append("starting_cash must be positive")
        if self.rpc_timeout_seconds <= 0:
            errors.append("rpc_timeout_seconds must be positive")
        if self.use_mock_data and not Path(self.mock_file_path).exists():
            errors.append(f"mock file not found: {self.mock_file_path}")
        if len(self.symbols) == 0:
            errors.append("symbols list is empty")

        if errors:
            for e in errors:
                logger.error(f"Config: {e}")
            raise ConfigurationError("; ".join(errors))

    def display(self):
        """Print configuration summary"""
        print("\n" + "="*70)
        print("CROSSOVER TRADER CONFIGURATION")
        print("="*70)
        print(f"Symbols:           {', '.join(self.symbols)}")
        print(f"Broker:            {self.broker_backend} ({self.depot_url if self.broker_backend == 'depot' else self.alpaca_base_url})")
        print(f"Indicators:        {self.indicator_backend} ({self.indicator_url if self.indicator_backend == 'http' else 'in-process'})")
        print(f"Mock Data:         {self.mock_file_path if self.use_mock_data else 'off'}")
        print("-"*70)
        print("RISK SETTINGS:")
        print(f"  Max Trade:       {self.max_trade_percent:.2f}% of portfolio")
        print(f"  Max Position:    {self.max_position_percent:.2f}% of portfolio")
        print(f"  Buffer Size:     {self.buffer_size} bars")
        print("-"*70)
        print("SEARCH SETTINGS:")
        print(f"  Symbol:          {self.search_symbol}")
        print(f"  Iterations:      {self.eval_iterations}")
        print(f"  Top N:           {self.top_n_configs}")
        print(f"  Starting Cash:   ${self.starting_cash:,.2f}")
        print(f"  Persist:         {self.results_db_path if self.persist_results else 'off'}")
        print("="*70 + "\n")
