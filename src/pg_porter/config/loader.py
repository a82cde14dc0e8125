"""Load pg-porter configuration from a TOML file."""

import os
import tomllib
from pathlib import Path

from pg_porter.config.models import PorterConfig

CONFIG_ENV_VAR = "PG_PORTER_CONFIG"
DEFAULT_CONFIG_FILE = "db.toml"


def default_config_path() -> Path:
    """``$PG_PORTER_CONFIG`` if set, else ``./db.toml``."""
    return Path(os.environ.get(CONFIG_ENV_VAR) or Path.cwd() / DEFAULT_CONFIG_FILE)


def load_config(config_path: Path | None = None) -> PorterConfig:
    """Load configuration from TOML file.

    Args:
        config_path: Path to db.toml (default: ``default_config_path()``)

    Returns:
        PorterConfig with all profiles and sections

    Raises:
        FileNotFoundError: If config file doesn't exist
        pydantic.ValidationError: If config values are invalid
    """
    if config_path is None:
        config_path = default_config_path()

    if not config_path.exists():
        raise FileNotFoundError(
            f"Database config not found: {config_path}\n"
            f"Create db.toml with [profiles.<name>] entries or set {CONFIG_ENV_VAR}."
        )

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    return PorterConfig.model_validate(data)
