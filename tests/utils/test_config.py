"""
Tests for configuration loading.
"""

import pytest

from docstore.database import Database
from docstore.errors import InvalidArgumentError
from docstore.utils.config import CONFIG_FILE_ENV, ENV_OVERRIDES, Config, get_config, reset_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (CONFIG_FILE_ENV, *ENV_OVERRIDES):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


class TestConfig:
    """Test Config."""

    def test_defaults(self):
        config = Config()

        assert config.get("database.database_id") == "(default)"
        assert config.get("transactions.max_attempts") == 5
        assert config.get("missing.key", "fallback") == "fallback"

    def test_file_override_deep_merges(self, tmp_path):
        config_file = tmp_path / "override.yaml"
        config_file.write_text("client:\n  target: \"db.example:443\"\n")

        config = Config(str(config_file))

        assert config.get("client.target") == "db.example:443"
        assert config.get("client.request_timeout_ms") == 60000

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("DOCSTORE_PROJECT", "env-project")
        monkeypatch.setenv("DOCSTORE_MAX_ATTEMPTS", "2")

        config = Config()

        assert config.get("database.project_id") == "env-project"
        assert config.get("transactions.max_attempts") == 2

    def test_config_file_from_environment(self, monkeypatch, tmp_path):
        """DOCSTORE_CONFIG names the override file when none is passed."""
        config_file = tmp_path / "env.yaml"
        config_file.write_text("transactions:\n  backoff_ms: 7\n")
        monkeypatch.setenv(CONFIG_FILE_ENV, str(config_file))

        config = Config()

        assert config.get("transactions.backoff_ms") == 7
        assert config.get("transactions.max_attempts") == 5

    def test_env_beats_file(self, monkeypatch, tmp_path):
        config_file = tmp_path / "override.yaml"
        config_file.write_text("client:\n  target: \"file:1\"\n")
        monkeypatch.setenv("DOCSTORE_TARGET", "env:2")

        assert Config(str(config_file)).get("client.target") == "env:2"

    def test_bad_env_number_rejected(self, monkeypatch):
        monkeypatch.setenv("DOCSTORE_MAX_ATTEMPTS", "many")

        with pytest.raises(InvalidArgumentError, match="DOCSTORE_MAX_ATTEMPTS"):
            Config()

    def test_out_of_range_setting_rejected(self, tmp_path):
        config_file = tmp_path / "override.yaml"
        config_file.write_text("transactions:\n  max_attempts: 0\n")

        with pytest.raises(InvalidArgumentError, match="transactions.max_attempts"):
            Config(str(config_file))

    def test_non_mapping_file_rejected(self, tmp_path):
        config_file = tmp_path / "override.yaml"
        config_file.write_text("- just\n- a list\n")

        with pytest.raises(InvalidArgumentError):
            Config(str(config_file))

    def test_section_is_a_copy(self):
        config = Config()

        client = config.section("client")
        client["target"] = "elsewhere:1"

        assert config.get("client.target") == "localhost:8080"
        assert config.section("missing") == {}

    def test_set_creates_sections(self):
        config = Config()

        config.set("a.b.c", 1)

        assert config.get("a.b.c") == 1
        assert config.to_dict()["a"] == {"b": {"c": 1}}

    def test_global_instance(self):
        assert get_config() is get_config()

    def test_database_from_config(self, monkeypatch):
        monkeypatch.setenv("DOCSTORE_PROJECT", "env-project")
        created = []

        class RecordingClient:
            @classmethod
            def from_config(cls, config):
                created.append(config.get("client.target"))
                return cls()

        monkeypatch.setattr("docstore.database.DocumentServiceClient", RecordingClient)

        database = Database.from_config(Config())

        assert database.root_path == "projects/env-project/databases/(default)"
        assert created == ["localhost:8080"]
