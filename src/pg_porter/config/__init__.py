"""Configuration management: profiles, TOML loading, and config models.

Usage:
    >>> from pg_porter.config import load_config, DatabaseProfile, PorterConfig
"""

from pg_porter.config.loader import CONFIG_ENV_VAR, default_config_path, load_config
from pg_porter.config.models import (
    ApiSettings,
    DatabaseProfile,
    ExportSettings,
    ImportSettings,
    PorterConfig,
)

__all__ = [
    "CONFIG_ENV_VAR",
    "default_config_path",
    "load_config",
    "ApiSettings",
    "DatabaseProfile",
    "ExportSettings",
    "ImportSettings",
    "PorterConfig",
]
