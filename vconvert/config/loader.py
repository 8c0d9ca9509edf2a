import logging
from pathlib import Path
from typing import Optional
import yaml
from pydantic import ValidationError
from vconvert.config.models import AppConfig
from vconvert.domain.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "vconvert" / "vconvert.yaml"


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Loads the YAML config, falling back to defaults when the file is absent.

    Expected layout::

        general:
          min_bitrate: 8000
          extensions: [mp4, mkv]
          delete: false
    """
    path = Path(config_path).expanduser() if config_path else DEFAULT_CONFIG_PATH
    if not path.exists():
        logger.debug(f"Config file {path} not found, using defaults")
        return AppConfig()

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    try:
        return AppConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config file {path}: {e}") from e
