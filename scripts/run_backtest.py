#!/usr/bin/env python3
"""Script to run a pin-bar backtest from the command line."""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from adapters.data.csv_loader import (
    CSVDataLoader,
    dataframe_to_candles,
    filter_candles_by_date,
    find_data_file,
)
from config.config_loader import deep_merge, load_config_with_profile, resolve_config_path
from config.schema import BacktestConfig, load_defaults, validate_backtest_config
from engine.backtest_engine import BacktestEngine
from metrics.report import export_result_csv, format_summary
from metrics.time_slots import generate_time_slot_report
from strategies.pin_bar import PinBarStrategy

logger = logging.getLogger(__name__)


def setup_logging(logs_dir: Path = Path('data/logs')) -> Path:
    """File handler gets everything, console only warnings and errors."""
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    log_filename = logs_dir / f'backtest_{timestamp}.log'

    file_handler = logging.FileHandler(log_filename, mode='w', encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    root.addHandler(file_handler)
    root.addHandler(console_handler)

    logger.info(f"Logging initialized. Log file: {log_filename}")
    return log_filename


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Run a pin-bar backtest on CSV candles')
    parser.add_argument(
        '--config',
        type=str,
        help='Path to backtest config file (default: built-in defaults only)'
    )
    parser.add_argument(
        '--config-profile',
        type=str,
        help='Config profile name, loaded from configs/profiles/{profile}.yml next to --config'
    )
    parser.add_argument(
        '--data',
        type=str,
        help='Path to CSV data file. If not provided, searched in data.directory by symbol.'
    )
    parser.add_argument(
        '--start',
        type=str,
        help='Start date (YYYY-MM-DD). Filters data to this date and later.'
    )
    parser.add_argument(
        '--end',
        type=str,
        help='End date (YYYY-MM-DD), inclusive.'
    )
    parser.add_argument(
        '--capital',
        type=str,
        help='Initial capital override'
    )
    parser.add_argument(
        '--risk',
        type=str,
        help='Max loss per trade in percent of equity (override)'
    )
    parser.add_argument(
        '--output',
        type=str,
        help='Directory for CSV exports of trades, equity curve and period metrics'
    )
    parser.add_argument(
        '--top-slots',
        type=int,
        default=5,
        help='Number of hour slots listed in the time slot report (default: 5)'
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> BacktestConfig:
    """Defaults, then the config file (with profile), then CLI overrides."""
    config_dict = load_defaults()

    if args.config:
        file_config = load_config_with_profile(
            base_config_path=resolve_config_path(args.config),
            config_profile=args.config_profile
        )
        config_dict = deep_merge(config_dict, file_config)
    elif args.config_profile:
        raise ValueError("--config-profile requires --config")

    overrides = {'account': {}, 'data': {}}
    if args.capital is not None:
        overrides['account']['initial_capital'] = args.capital
    if args.risk is not None:
        overrides['account']['max_loss_per_trade_percent'] = args.risk
    if args.start:
        overrides['data']['start_date'] = args.start
    if args.end:
        overrides['data']['end_date'] = args.end

    return validate_backtest_config(deep_merge(config_dict, overrides))


def resolve_data_path(args: argparse.Namespace, config: BacktestConfig) -> Path:
    """--data as given; otherwise data.file or a symbol lookup in data.directory.

    Relative data paths from a config file are relative to that file.
    """
    if args.data:
        return resolve_config_path(args.data)
    base_dir = resolve_config_path(args.config).parent if args.config else None
    directory = resolve_config_path(config.data.directory, base_dir)
    if config.data.file:
        return directory / config.data.file
    return find_data_file(directory, config.strategy.symbol, config.strategy.csv_filter)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging()

    try:
        config = build_config(args)
        data_path = resolve_data_path(args, config)

        print(f"\nLoading data from {data_path}...")
        df = CSVDataLoader().load(data_path)
        candles = dataframe_to_candles(df)
        candles = filter_candles_by_date(candles, config.data.start_date, config.data.end_date)
        print(f"  {len(candles)} bars in range")

        strategy = PinBarStrategy(config.strategy)
        engine = BacktestEngine(strategy)

        print(f"\nRunning backtest on {data_path}...")
        result = engine.run(candles, config.strategy, config.account)
    except (FileNotFoundError, ValueError) as e:
        logger.error(str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print("\n" + format_summary(result))
    print("\n" + generate_time_slot_report(result.trades, top=args.top_slots))

    if args.output:
        paths = export_result_csv(result, Path(args.output))
        print(f"\nCSV exports saved to: {Path(args.output)} ({', '.join(p.name for p in paths.values())})")

    return 0


if __name__ == '__main__':
    sys.exit(main())
