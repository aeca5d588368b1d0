"""
Layered configuration with packaged YAML defaults and environment overrides.

Configuration is resolved from, in increasing priority:

1. ``default.yaml`` shipped inside the package
2. ``default.yaml`` / ``config.yaml`` / ``<ENVIRONMENT>.yaml`` in the config dir
3. ``CRYPTO_TRACKER_*`` environment variables (also read from a ``.env`` file),
   with ``__`` separating nested keys
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

PACKAGE_CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"


class ConfigError(Exception):
    """Configuration-related errors."""
    pass


class ConfigManager:
    """
    Hierarchical configuration manager.

    Values are addressed with dot notation (``refresh.interval``). Environment
    overrides map ``CRYPTO_TRACKER_COINGECKO__API_KEY`` to ``coingecko.api_key``.
    """

    def __init__(
        self,
        config_dir: Optional[Path] = None,
        env_prefix: str = "CRYPTO_TRACKER",
        load_env_file: bool = True,
    ):
        self.config_dir = Path(config_dir) if config_dir else None
        self.env_prefix = env_prefix
        self.load_env_file = load_env_file

        self._config: Dict[str, Any] = {}
        self._loaded = False

    async def initialize(self) -> None:
        """Initialize the configuration manager."""
        logger.debug("Initializing configuration manager")

        if self.load_env_file:
            load_dotenv()

        await self.load_config()

        self._loaded = True

    async def load_config(self) -> None:
        """Load configuration from all sources."""
        self._config = {}

        self._load_yaml_config()
        self._apply_env_overrides()

        logger.debug(f"Loaded configuration with {len(self._config)} top-level keys")

    def _load_yaml_config(self) -> None:
        """Load configuration from YAML files."""
        config_files = [PACKAGE_CONFIG_DIR / "default.yaml"]

        if self.config_dir is not None:
            config_files.extend([
                self.config_dir / "default.yaml",
                self.config_dir / "config.yaml",
            ])

            env = os.getenv("ENVIRONMENT", "development")
            config_files.append(self.config_dir / f"{env}.yaml")

        for config_file in config_files:
            if not config_file.exists():
                continue

            try:
                with open(config_file, 'r') as f:
                    file_config = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                raise ConfigError(f"Failed to load config from {config_file}: {e}")

            if not isinstance(file_config, dict):
                raise ConfigError(f"Config file {config_file} must contain a mapping")

            self._merge_config(self._config, file_config)
            logger.debug(f"Loaded config from {config_file}")

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides."""
        prefix = f"{self.env_prefix}_"

        for key, value in os.environ.items():
            if key.startswith(prefix):
                config_key = key[len(prefix):].lower().replace('__', '.')
                self._set_nested_value(self._config, config_key, value)
                logger.debug(f"Applied env override: {config_key}")

    def _merge_config(self, target: Dict[str, Any], source: Dict[str, Any]) -> None:
        """Recursively merge configuration dictionaries."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._merge_config(target[key], value)
            else:
                target[key] = value

    def _set_nested_value(self, config: Dict[str, Any], key_path: str, value: Any) -> None:
        """Set a nested configuration value using dot notation."""
        keys = key_path.split('.')
        current = config

        for key in keys[:-1]:
            if not isinstance(current.get(key), dict):
                current[key] = {}
            current = current[key]

        current[keys[-1]] = self._convert_value(value)

    def _convert_value(self, value: Any) -> Any:
        """Convert string value to appropriate type."""
        if not isinstance(value, str):
            return value

        if value.lower() in ('true', 'false'):
            return value.lower() == 'true'

        try:
            return int(value)
        except ValueError:
            pass

        try:
            return float(value)
        except ValueError:
            pass

        return value

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value using dot notation."""
        if not self._loaded:
            raise ConfigError("Configuration not loaded")

        current = self._config
        for k in key.split('.'):
            if isinstance(current, dict) and k in current:
                current = current[k]
            else:
                return default

        return current

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value using dot notation."""
        self._set_nested_value(self._config, key, value)

    def get_all(self) -> Dict[str, Any]:
        """Get a copy of the whole configuration."""
        return dict(self._config)

    def has(self, key: str) -> bool:
        """Check if a configuration key exists."""
        if not self._loaded:
            return False

        current = self._config
        for k in key.split('.'):
            if isinstance(current, dict) and k in current:
                current = current[k]
            else:
                return False

        return True


@dataclass
class TrackerSettings:
    """Typed view of the settings the tracker components need."""

    base_url: str = "https://api.coingecko.com/api/v3"
    api_key: Optional[str] = None
    request_timeout: int = 30
    max_retries: int = 5
    retry_delay: float = 1.0
    refresh_interval: float = 30.0
    cache_duration: float = 300.0
    pacing_delay: float = 3.0
    store_path: Path = Path("portfolio.db")

    @classmethod
    def from_config(cls, config: ConfigManager) -> 'TrackerSettings':
        """Build settings from a loaded configuration manager."""
        api_key = config.get("coingecko.api_key") or os.getenv("COINGECKO_API_KEY")

        try:
            settings = cls(
                base_url=str(config.get("coingecko.base_url", cls.base_url)),
                api_key=str(api_key) if api_key else None,
                request_timeout=int(config.get("coingecko.timeout", cls.request_timeout)),
                max_retries=int(config.get("coingecko.max_retries", cls.max_retries)),
                retry_delay=float(config.get("coingecko.retry_delay", cls.retry_delay)),
                refresh_interval=float(config.get("refresh.interval", cls.refresh_interval)),
                cache_duration=float(config.get("cache.duration", cls.cache_duration)),
                pacing_delay=float(config.get("reconcile.pacing_delay", cls.pacing_delay)),
                store_path=Path(config.get("store.path", str(cls.store_path))),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid tracker setting: {e}")

        if settings.refresh_interval <= 0 or settings.cache_duration <= 0:
            raise ConfigError("refresh.interval and cache.duration must be positive")
        if settings.max_retries < 0 or settings.pacing_delay < 0:
            raise ConfigError("coingecko.max_retries and reconcile.pacing_delay must not be negative")

        return settings
