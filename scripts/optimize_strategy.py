#!/usr/bin/env python3
"""Grid search pin-bar and risk parameters over one candle set."""

import argparse
import logging
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pandas as pd

from adapters.data.csv_loader import CSVDataLoader, dataframe_to_candles, filter_candles_by_date
from config.config_loader import resolve_config_path, save_config_profile
from scripts.run_backtest import build_config, resolve_data_path, setup_logging
from validation.sensitivity import (
    SensitivityAnalyzer,
    best_config,
    best_parameters,
    count_combinations,
    export_optimization_csv,
    load_parameter_space,
)

logger = logging.getLogger(__name__)

DEFAULT_SPACE = Path(__file__).parent.parent / 'config' / 'parameter_space.yml'


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description='Grid search strategy parameters on CSV candles',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python3 scripts/optimize_strategy.py --data data/XAUUSD_M15.csv

  python3 scripts/optimize_strategy.py \\
    --config configs/xauusd.yml \\
    --space configs/space.yml \\
    --start 2023-01-01 --end 2023-12-31 \\
    --output results/opt --save-profile optimized_2023
        """
    )
    parser.add_argument('--config', type=str, help='Path to base backtest config file')
    parser.add_argument('--config-profile', type=str, help='Config profile applied to the base config')
    parser.add_argument('--data', type=str, help='Path to CSV data file')
    parser.add_argument('--start', type=str, help='Start date (YYYY-MM-DD)')
    parser.add_argument('--end', type=str, help='End date (YYYY-MM-DD), inclusive')
    parser.add_argument('--capital', type=str, help='Initial capital override')
    parser.add_argument('--risk', type=str, help='Base max loss per trade in percent (override)')
    parser.add_argument(
        '--space',
        type=str,
        default=str(DEFAULT_SPACE),
        help='Parameter space YAML (default: config/parameter_space.yml)'
    )
    parser.add_argument('--top', type=int, default=10, help='Number of ranked results to print (default: 10)')
    parser.add_argument('--output', type=str, help='Directory for optimization_results.csv')
    parser.add_argument(
        '--save-profile',
        type=str,
        help='Save the best configuration as configs/profiles/{name}.yml next to --config'
    )
    return parser.parse_args(argv)


def format_ranking(results: pd.DataFrame, param_names, top: int) -> str:
    lines = [
        "=" * 60,
        f"OPTIMIZATION RESULTS (top {min(top, len(results))} of {len(results)})",
        "=" * 60,
    ]
    for _, row in results.head(top).iterrows():
        lines.append(
            f"#{row['rank']} return {row['total_return_rate']:.2f}%  win rate {row['win_rate']:.2f}%  "
            f"trades {row['total_trades']}  max DD ${row['max_drawdown']:,.2f}  "
            f"PF {row['profit_factor']:.2f}"
        )
        lines.append("    " + ", ".join(f"{name}={row[name]}" for name in param_names))
    return "\n".join(lines)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging()

    try:
        config = build_config(args)
        data_path = resolve_data_path(args, config)
        space = load_parameter_space(resolve_config_path(args.space))

        print(f"\nLoading data from {data_path}...")
        candles = dataframe_to_candles(CSVDataLoader().load(data_path))
        candles = filter_candles_by_date(candles, config.data.start_date, config.data.end_date)
        print(f"  {len(candles)} bars in range")

        print(f"\nRunning grid search: {count_combinations(space)} combinations")
        for name, values in space.items():
            print(f"  {name}: {values}")

        base = config.model_dump(mode='json')
        results = SensitivityAnalyzer().grid_search(candles, base, space)
    except (FileNotFoundError, ValueError) as e:
        logger.error(str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if results.empty:
        print("Error: no valid parameter combination", file=sys.stderr)
        return 1

    print("\n" + format_ranking(results, list(space), args.top))

    if args.output:
        path = export_optimization_csv(results, Path(args.output))
        print(f"\nResults saved to: {path}")

    if args.save_profile:
        base_dir = resolve_config_path(args.config).parent if args.config else Path.cwd()
        profile_path = save_config_profile(
            best_config(base, best_parameters(results, space)),
            base_dir,
            args.save_profile,
            description=f"Best of {len(results)} combinations on {data_path.name}",
        )
        print(f"Best configuration saved to: {profile_path}")
        print(f"  Use it with: --config {args.config or '<config>'} --config-profile {args.save_profile}")

    return 0


if __name__ == '__main__':
    sys.exit(main())
