"""
Unit tests for the configuration management system.

Tests packaged defaults, config directory overrides, environment overrides
and the typed tracker settings built from them.
"""

from pathlib import Path

import pytest
import yaml

from crypto_portfolio_tracker.core.config import ConfigError, ConfigManager, TrackerSettings


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for key in ("ENVIRONMENT", "COINGECKO_API_KEY", "CRYPTO_TRACKER_COINGECKO__API_KEY"):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def config_dir(temp_dir):
    directory = temp_dir / "config"
    directory.mkdir()
    return directory


async def load(config_dir=None, env_prefix="CRYPTO_TRACKER"):
    manager = ConfigManager(config_dir=config_dir, env_prefix=env_prefix, load_env_file=False)
    await manager.initialize()
    return manager


class TestConfigManager:
    """Test the ConfigManager class."""

    @pytest.mark.asyncio
    async def test_packaged_defaults(self):
        manager = await load()

        assert manager.get("coingecko.base_url") == "https://api.coingecko.com/api/v3"
        assert manager.get("refresh.interval") == 30
        assert manager.get("cache.duration") == 300
        assert manager.get("reconcile.pacing_delay") == 3.0
        assert manager.get("logging.level") == "INFO"

    @pytest.mark.asyncio
    async def test_config_dir_overrides_defaults(self, config_dir):
        with open(config_dir / "config.yaml", "w") as f:
            yaml.dump({"refresh": {"interval": 60}, "store": {"path": "data/p.db"}}, f)

        manager = await load(config_dir)

        assert manager.get("refresh.interval") == 60
        assert manager.get("store.path") == "data/p.db"
        assert manager.get("cache.duration") == 300

    @pytest.mark.asyncio
    async def test_environment_file_has_priority(self, config_dir, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        with open(config_dir / "config.yaml", "w") as f:
            yaml.dump({"cache": {"duration": 120}}, f)
        with open(config_dir / "production.yaml", "w") as f:
            yaml.dump({"cache": {"duration": 600}}, f)

        manager = await load(config_dir)

        assert manager.get("cache.duration") == 600

    @pytest.mark.asyncio
    async def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("TRACKER_TEST_COINGECKO__API_KEY", "secret-key")
        monkeypatch.setenv("TRACKER_TEST_REFRESH__INTERVAL", "45")
        monkeypatch.setenv("TRACKER_TEST_LOGGING__STRUCTURED", "true")

        manager = await load(env_prefix="TRACKER_TEST")

        assert manager.get("coingecko.api_key") == "secret-key"
        assert manager.get("refresh.interval") == 45
        assert manager.get("logging.structured") is True

    @pytest.mark.asyncio
    async def test_invalid_yaml(self, config_dir):
        (config_dir / "config.yaml").write_text("refresh: [unclosed")

        with pytest.raises(ConfigError):
            await load(config_dir)

    @pytest.mark.asyncio
    async def test_non_mapping_yaml(self, config_dir):
        (config_dir / "config.yaml").write_text("- just\n- a list\n")

        with pytest.raises(ConfigError):
            await load(config_dir)

    def test_get_before_load(self):
        with pytest.raises(ConfigError):
            ConfigManager().get("refresh.interval")

    @pytest.mark.asyncio
    async def test_set_get_has(self):
        manager = await load()

        manager.set("logging.handlers.console.level", "DEBUG")

        assert manager.get("logging.handlers.console.level") == "DEBUG"
        assert manager.has("logging.handlers.console")
        assert not manager.has("missing.key")
        assert manager.get("missing.key", "fallback") == "fallback"


class TestTrackerSettings:
    """Test TrackerSettings construction."""

    @pytest.mark.asyncio
    async def test_from_default_config(self):
        settings = TrackerSettings.from_config(await load())

        assert settings.refresh_interval == 30.0
        assert settings.cache_duration == 300.0
        assert settings.pacing_delay == 3.0
        assert settings.max_retries == 5
        assert settings.retry_delay == 1.0
        assert settings.api_key is None
        assert settings.store_path == Path("portfolio.db")

    @pytest.mark.asyncio
    async def test_api_key_from_plain_env_var(self, monkeypatch):
        monkeypatch.setenv("COINGECKO_API_KEY", "demo-key")

        settings = TrackerSettings.from_config(await load())

        assert settings.api_key == "demo-key"

    @pytest.mark.asyncio
    async def test_invalid_values(self, config_dir):
        with open(config_dir / "config.yaml", "w") as f:
            yaml.dump({"refresh": {"interval": 0}}, f)

        with pytest.raises(ConfigError):
            TrackerSettings.from_config(await load(config_dir))

    @pytest.mark.asyncio
    async def test_non_numeric_values(self, config_dir):
        with open(config_dir / "config.yaml", "w") as f:
            yaml.dump({"coingecko": {"max_retries": "many"}}, f)

        with pytest.raises(ConfigError):
            TrackerSettings.from_config(await load(config_dir))
