"""
Tests for properties-file configuration
"""

import pytest

from thai_literacy.core.services.settings_config_service import (
    SettingsConfigService,
    get_settings_service,
    reset_settings_service,
)


@pytest.fixture
def properties_file(test_data_dir):
    path = test_data_dir / "env-test.properties"
    path.write_text(
        "\n".join(
            [
                "[ai]",
                "gemini.model = gemini-1.5-pro",
                "gemini.api_key = file-key",
                "timeout_seconds = 12.5",
                "",
                "[storage]",
                "upload_path = /srv/uploads",
                "read_only = false",
                "",
                "[grading]",
                "game_passing_score = 70",
                "",
            ]
        ),
        encoding="utf-8",
    )
    return path


class TestSettingsConfigService:
    """Configuration loading and environment overrides"""

    def test_reads_properties_file(self, properties_file):
        settings = SettingsConfigService(str(properties_file))

        ai = settings.get_ai_config_defaults()
        assert ai["model"] == "gemini-1.5-pro"
        assert ai["api_key"] == "file-key"
        assert ai["timeout_seconds"] == 12.5
        assert ai["connect_timeout_seconds"] == 10.0

        assert settings.get_storage_defaults()["upload_path"] == "/srv/uploads"
        assert settings.get_grading_defaults()["game_passing_score"] == 70

    def test_missing_file_uses_defaults_without_writing(self, test_data_dir):
        missing = test_data_dir / "absent.properties"

        settings = SettingsConfigService(str(missing))

        assert settings.get_ai_config_defaults()["model"] == "gemini-2.5-flash"
        assert settings.get_grading_defaults()["game_passing_score"] == 60
        assert settings.get_storage_defaults()["read_only"] is False
        assert not missing.exists()

    def test_environment_overrides(self, properties_file, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "env-key")
        monkeypatch.setenv("GEMINI_MODEL", "gemini-2.5-pro")

        ai = SettingsConfigService(str(properties_file)).get_ai_config_defaults()

        assert ai["api_key"] == "env-key"
        assert ai["model"] == "gemini-2.5-pro"

    @pytest.mark.parametrize("variable", ["VERCEL", "THAI_LMS_READ_ONLY_STORAGE"])
    def test_serverless_forces_read_only_storage(self, properties_file, monkeypatch, variable):
        monkeypatch.setenv(variable, "1")

        storage = SettingsConfigService(str(properties_file)).get_storage_defaults()

        assert storage["read_only"] is True

    def test_typed_getters_fall_back(self, properties_file):
        settings = SettingsConfigService(str(properties_file))

        assert settings.getint("grading", "missing", 5) == 5
        assert settings.getfloat("nope", "x", 1.5) == 1.5
        assert settings.getboolean("storage", "read_only", True) is False
        assert settings.get("nope", "x") == ""

    def test_global_instance_is_cached(self, properties_file, monkeypatch):
        monkeypatch.setenv("THAI_LMS_CONFIG_FILE", str(properties_file))
        reset_settings_service()

        first = get_settings_service()
        assert first is get_settings_service()
        assert first.config_file == str(properties_file)

        reset_settings_service()
        assert get_settings_service() is not first
