"""
Fuelex Configuration Manager

Loads the packaged defaults, deep-merges user overrides and hands out typed
views for each component.
"""

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import ValidationError

from fuelex.config.settings import (
    BatchConfig,
    ExtractionConfig,
    NormalizerConfig,
    ReconcileConfig,
    ValidationRules,
)
from fuelex.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / 'default_config.yaml'
USER_CONFIG_PATH = Path.home() / '.fuelex' / 'config.yaml'


def _deep_update(d: Dict[str, Any], u: Dict[str, Any]) -> Dict[str, Any]:
    for k, v in u.items():
        if isinstance(v, dict) and k in d and isinstance(d[k], dict):
            d[k] = _deep_update(d[k], v)
        else:
            d[k] = v
    return d


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to load configuration from {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file {path} must contain a mapping")
    return data


class ConfigManager:
    """
    Manages fuelex configuration

    Values are read with dot notation (e.g. 'batch.window_size'). Typed
    views validate each section and raise ConfigurationError on bad input.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = _read_yaml(DEFAULT_CONFIG_PATH)
        if config:
            _deep_update(self.config, copy.deepcopy(config))
        logger.debug("Initialized fuelex ConfigManager")

    @classmethod
    def load(
        cls,
        config_path: Optional[Union[str, Path]] = None,
        use_user_config: bool = True
    ) -> 'ConfigManager':
        """
        Build a configuration from defaults, the user file and an explicit file

        Args:
            config_path: Optional configuration file, applied last
            use_user_config: Whether to apply ~/.fuelex/config.yaml

        Returns:
            ConfigManager instance
        """
        instance = cls()
        if use_user_config and USER_CONFIG_PATH.exists():
            instance.update(_read_yaml(USER_CONFIG_PATH))
            logger.debug(f"Applied user configuration from {USER_CONFIG_PATH}")
        if config_path:
            path = Path(config_path)
            if not path.exists():
                raise ConfigurationError(f"Configuration file not found: {path}")
            instance.update(_read_yaml(path))
            logger.debug(f"Applied configuration from {path}")
        return instance

    @classmethod
    def from_dict(cls, config: Optional[Dict[str, Any]] = None) -> 'ConfigManager':
        return cls(config)

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self.config)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation

        Args:
            key: Configuration key (e.g., 'validation.max_litres')
            default: Default value if key not found

        Returns:
            Configuration value
        """
        try:
            value = self.config
            for k in key.split('.'):
                value = value[k]
            return value
        except (KeyError, TypeError):
            return default

    def set(self, key: str, value: Any) -> None:
        keys = key.split('.')
        config = self.config
        for k in keys[:-1]:
            if not isinstance(config.get(k), dict):
                config[k] = {}
            config = config[k]
        config[keys[-1]] = value
        logger.debug(f"Set configuration {key}={value!r}")

    def update(self, config: Dict[str, Any]) -> None:
        self.config = _deep_update(self.config, copy.deepcopy(config))

    def _section(self, name: str) -> Dict[str, Any]:
        section = self.config.get(name) or {}
        if not isinstance(section, dict):
            raise ConfigurationError(f"Configuration section '{name}' must be a mapping")
        return section

    def _typed(self, name: str, model):
        try:
            return model(**self._section(name))
        except (ValidationError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid '{name}' configuration: {e}") from e

    def normalizer(self) -> NormalizerConfig:
        return self._typed('normalizer', NormalizerConfig)

    def extraction(self) -> ExtractionConfig:
        return self._typed('extraction', ExtractionConfig)

    def validation(self) -> ValidationRules:
        return self._typed('validation', ValidationRules)

    def reconciliation(self) -> ReconcileConfig:
        return self._typed('reconciliation', ReconcileConfig)

    def batch(self) -> BatchConfig:
        return self._typed('batch', BatchConfig)

    def log_level(self) -> str:
        return str(self.get('logging.level', 'INFO')).upper()

    def log_format(self) -> str:
        return self.get('logging.format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s')
