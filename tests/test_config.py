"""Tests for environment configuration."""

import pytest

from plugsync.config import DEFAULT_DB_PATH, DEFAULT_USER, SyncConfig
from plugsync.errors import ConfigurationError

ENV = {
    "CHARGEV_DB_API_URL": "https://db.example/api",
    "CHARGEV_DB_API_JWT": "jwt",
    "GE_API_KEY": "key",
}


@pytest.mark.unit
class TestSyncConfig:
    """Test reading configuration from the environment."""

    def test_defaults(self):
        config = SyncConfig.from_env(ENV)

        assert config.chargev_db_url == "https://db.example/api"
        assert config.ge_api_key == "key"
        assert config.ge_api_url is None
        assert config.ge_api_delay_ms == 150
        assert config.db_path == DEFAULT_DB_PATH
        assert config.user_record_name == DEFAULT_USER
        assert config.max_request_size == 200

    def test_overrides(self):
        config = SyncConfig.from_env(
            {
                **ENV,
                "GE_API_URL": "https://ge.example/",
                "GE_API_DELAY_MS": "0",
                "PLUGSYNC_DB": "/tmp/store.db",
                "PLUGSYNC_USER": "_sync",
                "PLUGSYNC_MAX_REQUEST_SIZE": "50",
            }
        )

        assert config.ge_api_url == "https://ge.example/"
        assert config.ge_api_delay_ms == 0
        assert config.db_path == "/tmp/store.db"
        assert config.user_record_name == "_sync"
        assert config.max_request_size == 50

    @pytest.mark.parametrize("missing", ["CHARGEV_DB_API_URL", "CHARGEV_DB_API_JWT"])
    def test_missing_chargev_db_settings(self, missing):
        env = {key: value for key, value in ENV.items() if key != missing}

        with pytest.raises(ConfigurationError, match="CHARGEV_DB_API_URL and/or CHARGEV_DB_API_JWT"):
            SyncConfig.from_env(env)

    def test_missing_api_key(self):
        env = {key: value for key, value in ENV.items() if key != "GE_API_KEY"}

        with pytest.raises(ConfigurationError, match="GE API Key not configured"):
            SyncConfig.from_env(env)

    def test_invalid_integer(self):
        with pytest.raises(ConfigurationError):
            SyncConfig.from_env({**ENV, "GE_API_DELAY_MS": "fast"})

    def test_request_size_must_be_positive(self):
        with pytest.raises(ConfigurationError):
            SyncConfig.from_env({**ENV, "PLUGSYNC_MAX_REQUEST_SIZE": "0"})

    def test_dotenv_loaded_from_process_environment(self, monkeypatch):
        for key, value in ENV.items():
            monkeypatch.setenv(key, value)
        monkeypatch.setattr("plugsync.config.load_dotenv", lambda: None)

        assert SyncConfig.from_env().ge_api_key == "key"
