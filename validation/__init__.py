"""Parameter search over backtest configurations."""

from validation.sensitivity import (
    SensitivityAnalyzer,
    best_config,
    best_parameters,
    count_combinations,
    export_optimization_csv,
    iter_combinations,
    load_parameter_space,
    rank_results,
)

__all__ = [
    'SensitivityAnalyzer',
    'best_config',
    'best_parameters',
    'count_combinations',
    'export_optimization_csv',
    'iter_combinations',
    'load_parameter_space',
    'rank_results',
]
