"""
Configuration loading for the weather missingness analysis.

Configuration is a nested dictionary. Defaults live in DEFAULT_CONFIG and can be
overridden by a YAML file and by a small set of environment variables.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


DEFAULT_CONFIG: Dict[str, Any] = {
    'data': {
        'path': 'data/weatherAUS.csv',
        'date_column': 'date',
        'location_column': 'location',
        'rainfall_column': 'rainfall',
        'sunshine_column': 'sunshine',
        'target_columns': ['sunshine', 'evaporation', 'cloud3pm', 'cloud9am'],
    },
    'analysis': {
        'top_n': 10,
        'rainy_threshold_mm': 1.0,
        'rainy_label': 'Rainy (>1mm)',
        'dry_label': 'Dry (≤1mm)',
        'density_range_mm': [0.0, 50.0],
    },
    'output': {
        'output_dir': 'output',
        'export_tables': True,
        'export_figures': True,
        'export_report': True,
    },
    'logging': {
        'log_level': 'INFO',
        'log_dir': 'output/logs',
        'enable_performance': True,
    },
}


class ConfigurationError(Exception):
    """Raised when a configuration file cannot be read or has the wrong shape"""


def _deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load analysis configuration.

    Args:
        config_path: Optional path to a YAML file whose keys override the defaults

    Returns:
        Complete configuration dictionary
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    explicit_log_dir = False

    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise ConfigurationError(f"Configuration file not found: {path}")

        try:
            with open(path, 'r', encoding='utf-8') as f:
                user_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Could not parse configuration file {path}: {e}") from e

        if not isinstance(user_config, dict):
            raise ConfigurationError(
                f"Configuration file {path} must contain a mapping, got {type(user_config).__name__}"
            )

        config = _deep_merge(config, user_config)
        explicit_log_dir = 'log_dir' in (user_config.get('logging') or {})
        logging.info(f"Configuration loaded from {path}")

    # Environment overrides for paths
    config['data']['path'] = os.getenv('WEATHER_DATA_PATH', config['data']['path'])
    output_dir = os.getenv('MISSINGNESS_OUTPUT_DIR')
    if output_dir:
        config['output']['output_dir'] = output_dir
        # Logs follow the results unless the config file placed them
        if not explicit_log_dir:
            config['logging']['log_dir'] = os.path.join(output_dir, 'logs')

    return config
