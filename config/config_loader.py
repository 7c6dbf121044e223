"""Hierarchical configuration loading.

A backtest config can be layered:
1. Base backtest config (strategy, account and data sections)
2. Symbol-specific overlay (e.g. configs/XAUUSD.yml next to the base file)
3. Saved profile (e.g. configs/profiles/optimized_2024.yml)

Later layers override earlier ones; nested dicts are merged key by key.
"""

from pathlib import Path
from typing import Dict, Any, Optional
from datetime import datetime
import copy
import logging

import yaml

logger = logging.getLogger(__name__)


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge override dict into base dict.

    Values in override take precedence. Nested dicts are merged recursively.

    Args:
        base: Base configuration dictionary
        override: Override configuration dictionary

    Returns:
        Merged configuration dictionary
    """
    result = copy.deepcopy(base)

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def load_yaml_config(config_path: Path) -> Dict[str, Any]:
    """Load YAML configuration file."""
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        return yaml.safe_load(f) or {}


def resolve_config_path(path, base_dir: Optional[Path] = None) -> Path:
    """Absolute form of a config or data path.

    Relative paths are taken from base_dir (e.g. the directory of the config
    file that named them), or from the working directory without one.
    """
    path = Path(path)
    if path.is_absolute():
        return path
    return ((base_dir or Path.cwd()) / path).resolve()


def load_config_with_profile(
    base_config_path: Path,
    symbol: Optional[str] = None,
    config_profile: Optional[str] = None
) -> Dict[str, Any]:
    """
    Load a backtest configuration with symbol overlay and profile.

    Lookup rules:
    1. Load base config
    2. If symbol is given (or set in the base config's strategy section),
       merge configs/{symbol}.yml or configs/{symbol_lower}.yml when present
    3. If config_profile is given, merge configs/profiles/{profile}.yml
       (missing profile is an error)

    Args:
        base_config_path: Path to base backtest config file
        symbol: Trading symbol (e.g., 'XAUUSD')
        config_profile: Optional profile name (e.g., 'optimized_2024')

    Returns:
        Merged configuration dictionary (not yet validated)
    """
    base_config = load_yaml_config(base_config_path)
    configs_dir = base_config_path.parent / 'configs'

    symbol = symbol or (base_config.get('strategy') or {}).get('symbol')
    if symbol:
        possible_paths = [
            configs_dir / f'{symbol}.yml',
            configs_dir / f'{symbol.lower()}.yml',
        ]
        for path in possible_paths:
            if path.exists():
                base_config = deep_merge(base_config, load_yaml_config(path))
                logger.info(f"Loaded symbol config: {path}")
                break
        else:
            logger.debug(f"No symbol config for {symbol} in {configs_dir}")

    if config_profile:
        profile_path = configs_dir / 'profiles' / f'{config_profile}.yml'
        if not profile_path.exists():
            raise FileNotFoundError(f"Config profile not found: {profile_path}")
        profile_config = load_yaml_config(profile_path)
        profile_config.pop('_profile_metadata', None)
        base_config = deep_merge(base_config, profile_config)

    return base_config


def save_config_profile(
    config: Dict[str, Any],
    base_dir: Path,
    profile_name: str,
    description: Optional[str] = None
) -> Path:
    """
    Save a configuration as a named profile under base_dir/configs/profiles.

    Args:
        config: Configuration dictionary to save
        base_dir: Directory holding the base config file
        profile_name: Profile name (e.g., 'optimized_2024')
        description: Optional description for the profile

    Returns:
        Path to saved profile file
    """
    profiles_dir = Path(base_dir) / 'configs' / 'profiles'
    profiles_dir.mkdir(parents=True, exist_ok=True)

    profile_path = profiles_dir / f'{profile_name}.yml'

    profile_config = {
        '_profile_metadata': {
            'name': profile_name,
            'description': description or f'Config profile: {profile_name}',
            'created_at': datetime.now().isoformat(),
        },
        **config
    }

    with open(profile_path, 'w') as f:
        yaml.dump(profile_config, f, default_flow_style=False, sort_keys=False)

    return profile_path
