"""Parameter grid search for the pin bar strategy.

A parameter space maps dotted config paths to candidate values::

    parameters:
      strategy.max_body_percentage: [20, 30]
      strategy.risk_reward_ratio: [1.5, 2.0]
      account.max_loss_per_trade_percent: [0.5, 1]

Every combination is merged into a base backtest config and run through its
own BacktestEngine over one shared candle list. Indicators are computed once
per distinct indicator setting rather than once per combination.
"""

from itertools import product
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple
import copy
import logging

import pandas as pd
import yaml
from pydantic import ValidationError

from config.config_loader import deep_merge
from config.schema import BacktestConfig, StrategyConfig, validate_backtest_config
from engine.backtest_engine import BacktestEngine
from engine.indicators import IndicatorCalculator, NullPreprocessor
from engine.models import Candle
from strategies.pin_bar import PinBarStrategy

logger = logging.getLogger(__name__)

# Fields the indicator preprocessor reads; combinations that differ only
# elsewhere share one indicator pass.
INDICATOR_FIELDS = ('atr_period', 'adx_period', 'adx_timeframe', 'ema_list', 'base_ema')

METRIC_COLUMNS = [
    'total_trades',
    'winning_trades',
    'losing_trades',
    'win_rate',
    'total_profit',
    'total_return_rate',
    'max_drawdown',
    'profit_factor',
    'max_consecutive_wins',
    'max_consecutive_losses',
    'final_equity',
]

# Highest return first, then win rate, then the smaller drawdown.
RANKING = [('total_return_rate', False), ('win_rate', False), ('max_drawdown', True)]


def load_parameter_space(path: Path) -> Dict[str, List[Any]]:
    """
    Load a parameter space YAML file.

    Raises:
        FileNotFoundError: file does not exist
        ValueError: no parameters, or a parameter without candidate values
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Parameter space file not found: {path}")

    with open(path, 'r') as f:
        content = yaml.safe_load(f) or {}

    space = content.get('parameters') or {}
    if not space:
        raise ValueError(f"{path}: no 'parameters' section")
    for name, values in space.items():
        if not isinstance(values, list) or not values:
            raise ValueError(f"{path}: parameter {name!r} needs a non-empty list of values")
    return space


def count_combinations(param_grid: Dict[str, List[Any]]) -> int:
    count = 1
    for values in param_grid.values():
        count *= len(values)
    return count


def iter_combinations(param_grid: Dict[str, List[Any]]) -> Iterator[Dict[str, Any]]:
    """Cartesian product of the grid, last parameter varying fastest."""
    names = list(param_grid)
    for combo in product(*(param_grid[name] for name in names)):
        yield dict(zip(names, combo))


def set_nested_param(config: Dict[str, Any], path: str, value: Any) -> None:
    """Set a value in a nested dict using a dotted path."""
    keys = path.split('.')
    current = config
    for key in keys[:-1]:
        current = current.setdefault(key, {})
    current[keys[-1]] = value


def _indicator_key(config: StrategyConfig) -> Tuple:
    return tuple(
        tuple(value) if isinstance(value, list) else value
        for value in (getattr(config, name) for name in INDICATOR_FIELDS)
    )


class SensitivityAnalyzer:
    """Grid search over strategy and account parameters."""

    def __init__(self, strategy_class=PinBarStrategy, preprocessor=None):
        """
        Args:
            strategy_class: Strategy type built from each combination's StrategyConfig
            preprocessor: Indicator preprocessor; defaults to IndicatorCalculator
        """
        self.strategy_class = strategy_class
        self.preprocessor = preprocessor or IndicatorCalculator()
        self._indicator_key = None

    def grid_search(
        self,
        candles: List[Candle],
        base_config: Dict[str, Any],
        param_grid: Dict[str, List[Any]]
    ) -> pd.DataFrame:
        """
        Run one backtest per parameter combination.

        Args:
            candles: Shared candle list, annotated in place with indicators
            base_config: Backtest config dict (strategy, account, data sections)
            param_grid: Dotted config path -> candidate values

        Returns:
            DataFrame with one row per valid combination: parameter columns,
            METRIC_COLUMNS and a 1-based 'rank', best first
        """
        total = count_combinations(param_grid)
        logger.info(f"Grid search: {total} combinations over {len(candles)} candles")

        rows = []
        skipped = 0
        for number, params in enumerate(iter_combinations(param_grid), start=1):
            run_config = copy.deepcopy(base_config)
            for path, value in params.items():
                set_nested_param(run_config, path, value)

            try:
                config = validate_backtest_config(run_config)
            except ValidationError as e:
                skipped += 1
                logger.warning(f"Combination {number}/{total} {params} is invalid: {e.errors()[0]['msg']}")
                continue

            result = self.run_combination(candles, config)
            m = result.overall_metrics
            row = dict(params)
            row.update({
                'total_trades': m.total_trades,
                'winning_trades': m.winning_trades,
                'losing_trades': m.losing_trades,
                'win_rate': m.win_rate,
                'total_profit': m.total_profit,
                'total_return_rate': m.total_return_rate,
                'max_drawdown': m.max_drawdown,
                'profit_factor': m.profit_factor,
                'max_consecutive_wins': m.max_consecutive_wins,
                'max_consecutive_losses': m.max_consecutive_losses,
                'final_equity': result.final_equity,
            })
            rows.append(row)
            logger.debug(f"Combination {number}/{total} {params}: return {m.total_return_rate}%")

        if skipped:
            logger.warning(f"Skipped {skipped} invalid combination(s)")
        return rank_results(pd.DataFrame(rows, columns=list(param_grid) + METRIC_COLUMNS))

    def run_combination(self, candles: List[Candle], config: BacktestConfig):
        """Backtest one validated config on a fresh engine."""
        key = _indicator_key(config.strategy)
        if key != self._indicator_key:
            for candle in candles:
                candle.indicators.clear()
            self.preprocessor.calculate_indicators(candles, config.strategy)
            self._indicator_key = key

        engine = BacktestEngine(self.strategy_class(config.strategy), preprocessor=NullPreprocessor())
        return engine.run(candles, config.strategy, config.account)


def rank_results(results: pd.DataFrame) -> pd.DataFrame:
    """Sort by return, win rate and drawdown and number the rows from 1."""
    columns = [name for name, _ in RANKING]
    ascending = [asc for _, asc in RANKING]
    ranked = results.sort_values(columns, ascending=ascending, kind='mergesort').reset_index(drop=True)
    ranked.insert(0, 'rank', range(1, len(ranked) + 1))
    return ranked


def best_parameters(results: pd.DataFrame, param_grid: Dict[str, List[Any]]) -> Optional[Dict[str, Any]]:
    """Parameter values of the top-ranked row, or None for an empty result."""
    if results.empty:
        return None
    top = results.iloc[0]
    return {name: top[name] for name in param_grid}


def best_config(base_config: Dict[str, Any], best: Dict[str, Any]) -> Dict[str, Any]:
    """Base config with the winning parameters applied."""
    overrides = {}
    for path, value in best.items():
        set_nested_param(overrides, path, value.item() if hasattr(value, 'item') else value)
    return deep_merge(base_config, overrides)


def export_optimization_csv(results: pd.DataFrame, output_dir: Path) -> Path:
    """Write the ranked results to output_dir/optimization_results.csv."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / 'optimization_results.csv'
    results.to_csv(path, index=False)
    logger.info(f"Wrote {len(results)} rows to {path}")
    return path
