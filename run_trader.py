#!/usr/bin/env python3
"""
Run Crossover Trader
====================
Main entry point for live (or mock-replay) SMA crossover trading.

Usage:
    python run_trader.py                         # Alpaca stream, config symbols
    python run_trader.py --symbols AAPL NVDA     # Alpaca stream, given symbols
    python run_trader.py --mock                  # Replay MOCK_FILE_PATH
    python run_trader.py --mock --file files/orcl.csv --delay-ms 50
"""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from crossover_trader.audit_logger import AuditLogger
from crossover_trader.exceptions import ConfigurationError
from crossover_trader.trader_config import TraderConfig
from crossover_trader.trader_engine import TradingEngine, build_broker, build_evaluator, build_gateway


def setup_logging(verbose: bool = False, log_dir: str = 'logs/trader'):
    """Configure logging"""
    level = logging.DEBUG if verbose else logging.INFO

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    log_file = log_dir / f"trader_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

    handlers = [
        logging.StreamHandler(sys.stdout),
        logging.FileHandler(log_file)
    ]

    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%H:%M:%S',
        handlers=handlers
    )

    return log_file


def main():
    parser = argparse.ArgumentParser(
        description="SMA Crossover Trader",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_trader.py                          # Live Alpaca stream
  python run_trader.py --symbols AAPL NVDA
  python run_trader.py --mock --verbose         # CSV replay, debug output
        """
    )

    parser.add_argument(
        '--mock',
        action='store_true',
        help='Replay a CSV file instead of the live Alpaca stream'
    )

    parser.add_argument(
        '--file',
        help='CSV file to replay with --mock (default: MOCK_FILE_PATH)'
    )

    parser.add_argument(
        '--symbols',
        nargs='+',
        help='List of symbols to trade (default: config symbols)'
    )

    parser.add_argument(
        '--delay-ms',
        type=int,
        help='Delay between replayed bars in ms (default: MOCK_DELAY_MS)'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable debug logging'
    )

    args = parser.parse_args()

    config = TraderConfig()

    if args.mock:
        config.use_mock_data = True
    if args.file:
        config.mock_file_path = args.file
    if args.symbols:
        config.symbols = [s.upper() for s in args.symbols]
    if args.delay_ms is not None:
        config.mock_delay_ms = args.delay_ms

    log_file = setup_logging(args.verbose, config.logs_dir)
    logger = logging.getLogger(__name__)

    print("\n" + "=" * 60)
    print("  SMA CROSSOVER TRADER")
    print("=" * 60)

    try:
        config.validate(live=True)
    except ConfigurationError as e:
        print(f"\n[X] Invalid configuration: {e}")
        return 1

    config.display()
    print(f"   Log: {log_file}")

    audit = AuditLogger(config.audit_csv)
    gateway = build_gateway(config)
    broker = build_broker(config)
    evaluator = build_evaluator(config, gateway, broker, audit)
    engine = TradingEngine(config, evaluator, broker, audit)

    try:
        engine.startup()

        if config.use_mock_data:
            from crossover_trader.data_streamer import csv_bar_source

            symbol = config.symbols[0]
            print(f"\n   Replaying {config.mock_file_path} as {symbol}...")
            engine.replay(csv_bar_source(config.mock_file_path, symbol, config.mock_delay_ms))
        else:
            from crossover_trader.data_streamer import AlpacaStreamSource

            print("\n   Starting live stream...")
            print("   Press Ctrl+C to stop\n")
            engine.run_live(AlpacaStreamSource(config, config.symbols))

    except KeyboardInterrupt:
        print("\n\nShutting down...")
        engine.stop()

    except Exception as e:
        logger.error(f"Fatal error: {e}")
        import traceback
        traceback.print_exc()
        return 1

    status = engine.get_status()
    print(f"\n   Bars processed: {status['bars_processed']}")
    print(f"   Orders placed:  {status['orders']}")
    print("\n[OK] Trading session ended")
    return 0


if __name__ == "__main__":
    sys.exit(main())
