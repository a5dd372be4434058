"""
System Configuration Settings

Global configuration for the gene module sweep.
"""

import copy
import json
import logging
import os
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_CONFIG = {
    'system': {
        'name': 'Gene Module Sweep',
        'version': '1.0.0',
        'log_level': 'INFO',
        'log_file': None
    },
    'grid': {
        # Upper bound on combinations per grid and jobs per batch
        'max_combinations': 10_000_000
    },
    'partition': {
        'method': 'fixed',
        'threshold': 3.0,
        'n_neighbors': 10
    },
    'ica': {
        'fail_on_nonconvergence': True
    },
    'evaluation': {
        'fdr_alpha': 0.05
    },
    'dispatch': {
        # Checked in order when a worker is started without --job-id
        'job_id_env_vars': [
            'SLURM_ARRAY_TASK_ID',
            'SGE_TASK_ID',
            'LSB_JOBINDEX',
            'PBS_ARRAYID'
        ]
    }
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from file merged over the defaults."""
    if config_path and os.path.exists(config_path):
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                return _merge(DEFAULT_CONFIG, json.load(f))
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load config from {config_path}: {e}")
    elif config_path:
        logger.warning(f"Config file not found: {config_path}; using defaults")

    return copy.deepcopy(DEFAULT_CONFIG)


def save_config(config: Dict[str, Any], config_path: str) -> None:
    """Save configuration to file."""
    with open(config_path, 'w', encoding='utf-8') as f:
        json.dump(config, f, indent=2)


def get_grid_config(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Get parameter grid limits."""
    config = config or load_config()
    return config.get('grid', copy.deepcopy(DEFAULT_CONFIG['grid']))


def get_partition_config(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Get module partitioning configuration."""
    config = config or load_config()
    return config.get('partition', copy.deepcopy(DEFAULT_CONFIG['partition']))


def get_ica_config(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Get ICA kernel policy configuration."""
    config = config or load_config()
    return config.get('ica', copy.deepcopy(DEFAULT_CONFIG['ica']))


def get_evaluation_config(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Get enrichment evaluation configuration."""
    config = config or load_config()
    return config.get('evaluation', copy.deepcopy(DEFAULT_CONFIG['evaluation']))


def get_dispatch_config(config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Get worker dispatch configuration."""
    config = config or load_config()
    return config.get('dispatch', copy.deepcopy(DEFAULT_CONFIG['dispatch']))
