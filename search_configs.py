#!/usr/bin/env python3
"""
Search Crossover Configurations
===============================
Random search over SMA(short/long) pairs on one symbol's history.

Each episode resets the broker account, deposits the starting cash,
replays the bars through the Evaluator and records the gain.

Usage:
    python search_configs.py --mock --iterations 200 --top-n 10
    python search_configs.py --symbol ORCL --seed 42 --progress
    python search_configs.py --list-results
"""

import argparse
import logging
import random
import sys
from datetime import datetime
from pathlib import Path

import pandas as pd

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from crossover_trader.audit_logger import AuditLogger
from crossover_trader.config_search import ConfigSearchLoop
from crossover_trader.exceptions import ConfigurationError, MarketDataError, PersistenceFailure
from crossover_trader.results_store import SqliteResultsStore
from crossover_trader.trader_config import TraderConfig
from crossover_trader.trader_engine import build_broker, build_evaluator, build_gateway


def setup_logging(verbose: bool = False, log_dir: str = 'logs/trader'):
    """Configure logging"""
    level = logging.DEBUG if verbose else logging.INFO

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    log_file = log_dir / f"search_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%H:%M:%S',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file)
        ]
    )

    return log_file


def load_bars(config: TraderConfig, symbol: str):
    """Historical bars for the search: mock CSV or Alpaca history"""
    if config.use_mock_data:
        from crossover_trader.data_streamer import load_csv_bars
        return load_csv_bars(config.mock_file_path, symbol)

    from crossover_trader.data_streamer import AlpacaHistorySource
    return AlpacaHistorySource(config).get_bars(symbol)


def print_ranking(summary, symbol: str):
    print("\n" + "=" * 70)
    print(f"BEST CONFIGURATIONS FOR {symbol}")
    print("=" * 70)

    rows = [
        {'rank': i + 1, 'short_period': c.short_period, 'long_period': c.long_period, 'gain': gain}
        for i, (gain, c) in enumerate(summary.ranking.items())
    ]
    if not rows:
        print("No episode produced a gain.")
    else:
        print(pd.DataFrame(rows).to_string(index=False))

    print("-" * 70)
    print(f"Episodes: {len(summary.episodes)} | Ranked: {summary.completed} | Skipped: {summary.skipped}")
    print("=" * 70 + "\n")


def list_results(store: SqliteResultsStore, symbol: str = None):
    df = store.to_dataframe(symbol)
    print("\n" + "=" * 70)
    print(f"STORED RESULTS ({store.db_path})")
    print("=" * 70)
    print(df.to_string(index=False) if not df.empty else "No stored results.")
    print("=" * 70 + "\n")


def main():
    parser = argparse.ArgumentParser(
        description="SMA crossover configuration search",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python search_configs.py --mock --paper          # Fully offline
  python search_configs.py --iterations 500 --top-n 20 --seed 7
  python search_configs.py --list-results --symbol ORCL
        """
    )

    parser.add_argument('--iterations', type=int, help='Number of episodes (default: EVAL_ITERATIONS)')
    parser.add_argument('--top-n', type=int, help='Size of the best-config ranking (default: TOP_N_CONFIGS)')
    parser.add_argument('--symbol', help='Symbol to search on (default: SEARCH_SYMBOL)')
    parser.add_argument('--mock', action='store_true', help='Replay a CSV file instead of Alpaca history')
    parser.add_argument('--file', help='CSV file to replay with --mock (default: MOCK_FILE_PATH)')
    parser.add_argument('--seed', type=int, help='Random seed for reproducible sampling')
    parser.add_argument('--no-persist', action='store_true', help='Do not store run results')
    parser.add_argument('--paper', action='store_true', help='Use the in-memory paper broker')
    parser.add_argument('--list-results', action='store_true', help='Print stored results and exit')
    parser.add_argument('--clear-results', action='store_true', help='Delete all stored results and exit')
    parser.add_argument('--progress', action='store_true', help='Show a progress bar')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')

    args = parser.parse_args()

    config = TraderConfig()

    if args.iterations is not None:
        config.eval_iterations = args.iterations
    if args.top_n is not None:
        config.top_n_configs = args.top_n
    if args.symbol:
        config.search_symbol = args.symbol.upper()
    if args.mock:
        config.use_mock_data = True
    if args.file:
        config.mock_file_path = args.file
    if args.seed is not None:
        config.random_seed = args.seed
    if args.no_persist:
        config.persist_results = False
    if args.paper:
        config.broker_backend = 'paper'

    setup_logging(args.verbose, config.logs_dir)
    logger = logging.getLogger(__name__)

    if args.list_results or args.clear_results:
        store = SqliteResultsStore(config.results_db_path)
        if args.clear_results:
            store.delete_schema()
            store.init_schema()
            print(f"[OK] Cleared results in {config.results_db_path}")
        else:
            list_results(store, args.symbol.upper() if args.symbol else None)
        return 0

    try:
        config.validate(live=not config.use_mock_data, search=True)
    except ConfigurationError as e:
        print(f"\n[X] Invalid configuration: {e}")
        return 1

    config.display()

    symbol = config.search_symbol
    try:
        bars = load_bars(config, symbol)
    except MarketDataError as e:
        logger.error(f"Could not load bars for {symbol}: {e}")
        return 1

    audit = AuditLogger(config.audit_csv)
    gateway = build_gateway(config)
    broker = build_broker(config)
    evaluator = build_evaluator(config, gateway, broker, audit)

    store = None
    if config.persist_results:
        try:
            store = SqliteResultsStore(config.results_db_path)
        except PersistenceFailure as e:
            logger.warning(f"Results store unavailable, continuing without persistence: {e}")

    search = ConfigSearchLoop(
        evaluator=evaluator,
        broker=broker,
        symbol=symbol,
        eval_iterations=config.eval_iterations,
        top_n=config.top_n_configs,
        starting_cash=config.starting_cash,
        store=store,
        rng=random.Random(config.random_seed),
        audit=audit,
        show_progress=args.progress
    )

    try:
        summary = search.run(bars)
    except KeyboardInterrupt:
        print("\n\nSearch interrupted.")
        return 1

    print_ranking(summary, symbol)
    return 0


if __name__ == "__main__":
    sys.exit(main())
