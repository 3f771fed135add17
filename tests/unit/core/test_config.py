"""Unit tests for settings and safety configuration."""

import pytest
from pydantic import ValidationError

from dualmode.core.config import ManagerOptions, SafetyConfig, Settings


class TestSettings:
    """Environment-backed settings."""

    def test_defaults(self, settings):
        """Test default values with an empty environment."""
        assert settings.TEST_MODE is None
        assert settings.LOG_LEVEL == "INFO"
        assert settings.CLEANUP_MAX_RETRIES == 3
        assert settings.mode_environment() == {}

    def test_reads_environment(self, monkeypatch):
        """Test that settings come from environment variables."""
        monkeypatch.setenv("TEST_MODE", "dual")
        monkeypatch.setenv("NODE_ENV", "production")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        settings = Settings(_env_file=None)

        assert settings.LOG_LEVEL == "DEBUG"
        assert settings.mode_environment() == {"TEST_MODE": "dual", "NODE_ENV": "production"}

    def test_invalid_log_level(self):
        """Test that unknown log levels are rejected."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, LOG_LEVEL="chatty")

    def test_negative_retries_rejected(self):
        """Test that the retry budget cannot be negative."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, CLEANUP_MAX_RETRIES=-1)

    def test_reads_env_file(self, tmp_path):
        """Test that a .env file is honoured."""
        env_file = tmp_path / ".env"
        env_file.write_text("TEST_MODE=production\nAPI_BASE_URL=https://x\n")

        settings = Settings(_env_file=str(env_file))

        assert settings.TEST_MODE == "production"
        assert settings.API_BASE_URL == "https://x"

    def test_load_safety_config_default(self, settings):
        """Test that no path yields the default safety configuration."""
        assert settings.load_safety_config() == SafetyConfig()

    def test_load_safety_config_from_path(self, tmp_path):
        """Test that SAFETY_CONFIG_PATH is loaded."""
        path = tmp_path / "safety.yaml"
        path.write_text("bulk_delete_threshold: 3\n")

        settings = Settings(_env_file=None, SAFETY_CONFIG_PATH=str(path))

        assert settings.load_safety_config().bulk_delete_threshold == 3


class TestSafetyConfig:
    """Marker configuration validation and loading."""

    def test_defaults(self):
        """Test the default markers."""
        config = SafetyConfig()

        assert config.name_marker == "looneyTunesTest"
        assert config.email_domain == "looneytunestest.com"
        assert "Bugs Bunny" in config.character_names
        assert config.bulk_delete_threshold == 10

    def test_empty_marker_list_rejected(self):
        """Test that marker lists cannot be empty."""
        with pytest.raises(ValidationError):
            SafetyConfig(test_markers=[])
        with pytest.raises(ValidationError):
            SafetyConfig(character_names=["  "])

    def test_invalid_pattern_rejected(self):
        """Test that patterns must compile."""
        with pytest.raises(ValidationError):
            SafetyConfig(dangerous_patterns=["(unclosed"])

    def test_unknown_keys_rejected(self):
        """Test that typos in configuration files are caught."""
        with pytest.raises(ValidationError):
            SafetyConfig(bulk_threshold=3)

    def test_name_marker_added_to_markers(self):
        """Test that a custom name marker is always a recognised marker."""
        config = SafetyConfig(name_marker="qaSynthetic", test_markers=["test_"])

        assert config.test_markers == ["test_", "qaSynthetic"]

    def test_from_file_with_env_substitution(self, tmp_path, monkeypatch):
        """Test YAML loading with nested section and variable substitution."""
        monkeypatch.setenv("QA_DOMAIN", "qa.example.com")
        path = tmp_path / "safety.yaml"
        path.write_text(
            "safety:\n"
            "  email_domain: ${QA_DOMAIN}\n"
            "  character_names:\n"
            "    - Wile E. Coyote\n"
            "  route_marker: ${UNSET_VARIABLE}\n"
        )

        config = SafetyConfig.from_file(str(path))

        assert config.email_domain == "qa.example.com"
        assert config.character_names == ["Wile E. Coyote"]
        assert config.route_marker == "${UNSET_VARIABLE}"

    def test_from_empty_file(self, tmp_path):
        """Test that an empty file gives the defaults."""
        path = tmp_path / "safety.yaml"
        path.write_text("")

        assert SafetyConfig.from_file(str(path)) == SafetyConfig()


class TestManagerOptions:
    """Manager feature switches."""

    def test_defaults(self):
        """Test that every feature is on by default."""
        options = ManagerOptions()

        assert options.enable_production_safety
        assert options.auto_cleanup
        assert options.track_data_creation

    def test_unknown_option(self):
        """Test that unknown options are rejected."""
        with pytest.raises(ValidationError):
            ManagerOptions(cleanup_everything=True)
