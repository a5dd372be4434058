"""
Configuration Module

Provides centralized configuration management for the gene module sweep.
"""

from .settings import (
    DEFAULT_CONFIG,
    load_config,
    save_config,
    get_grid_config,
    get_partition_config,
    get_ica_config,
    get_evaluation_config,
    get_dispatch_config
)

__all__ = [
    'DEFAULT_CONFIG',
    'load_config',
    'save_config',
    'get_grid_config',
    'get_partition_config',
    'get_ica_config',
    'get_evaluation_config',
    'get_dispatch_config'
]
