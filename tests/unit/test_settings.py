"""Unit tests for settings accessors."""

from transcription import settings as keys
from transcription.settings import EnvSettings, MemorySettings


class TestMemorySettings:
    """Tests for the dict-backed settings."""

    def test_missing_string_is_empty(self):
        """Missing keys read as an empty string."""
        assert MemorySettings().get_string(keys.FFMPEG_PATH) == ""

    def test_typed_values(self):
        """Native bools and ints pass through."""
        settings = MemorySettings(
            {
                keys.WHISPER_SERVER_PORT: 9000,
                keys.TRANSCRIPTION_ENABLED: True,
                keys.TRANSCRIPTION_LANGUAGE: "en",
            }
        )
        assert settings.get_int(keys.WHISPER_SERVER_PORT, 8178) == 9000
        assert settings.get_bool(keys.TRANSCRIPTION_ENABLED) is True
        assert settings.get_string(keys.TRANSCRIPTION_LANGUAGE) == "en"

    def test_string_values_are_parsed(self):
        """String values are parsed into bools and ints."""
        settings = MemorySettings({"port": "9001", "flag": "yes", "off": "0"})
        assert settings.get_int("port", 1) == 9001
        assert settings.get_bool("flag") is True
        assert settings.get_bool("off", True) is False

    def test_defaults_apply(self):
        """Defaults cover missing and malformed values."""
        settings = MemorySettings({"port": "", "bad": "eighty"})
        assert settings.get_int("port", 8178) == 8178
        assert settings.get_int("bad", 8178) == 8178
        assert settings.get_bool("missing", True) is True

    def test_set_overwrites(self):
        """set() replaces an existing value."""
        settings = MemorySettings()
        settings.set(keys.TRANSCRIPTION_AUTO_RUN, True)
        assert settings.get_bool(keys.TRANSCRIPTION_AUTO_RUN) is True


class TestEnvSettings:
    """Tests for the environment-backed settings."""

    def test_reads_prefixed_environment(self, monkeypatch):
        """Keys map to TRANSCRIPTION_<KEY> variables."""
        monkeypatch.setenv("TRANSCRIPTION_WHISPER_MODEL_PATH", "/models/ggml-small.bin")
        monkeypatch.setenv("TRANSCRIPTION_WHISPER_SERVER_PORT", "9100")
        monkeypatch.setenv("TRANSCRIPTION_TRANSCRIPTION_ENABLED", "on")

        settings = EnvSettings()
        assert settings.get_string(keys.WHISPER_MODEL_PATH) == "/models/ggml-small.bin"
        assert settings.get_int(keys.WHISPER_SERVER_PORT, 8178) == 9100
        assert settings.get_bool(keys.TRANSCRIPTION_ENABLED) is True

    def test_overrides_take_precedence(self, monkeypatch):
        """Explicit overrides win over the environment."""
        monkeypatch.setenv("TRANSCRIPTION_WHISPER_SERVER_PORT", "9100")
        settings = EnvSettings({keys.WHISPER_SERVER_PORT: 9200})
        assert settings.get_int(keys.WHISPER_SERVER_PORT, 8178) == 9200

    def test_none_overrides_fall_through(self, monkeypatch):
        """None overrides defer to the environment."""
        monkeypatch.setenv("TRANSCRIPTION_FFMPEG_PATH", "/usr/bin/ffmpeg")
        settings = EnvSettings({keys.FFMPEG_PATH: None})
        assert settings.get_string(keys.FFMPEG_PATH) == "/usr/bin/ffmpeg"

    def test_unset_values(self, monkeypatch):
        """Unset variables fall back to defaults."""
        monkeypatch.delenv("TRANSCRIPTION_DELETE_VIDEO_AFTER_TRANSCRIPT", raising=False)
        settings = EnvSettings()
        assert settings.get_bool(keys.DELETE_VIDEO_AFTER_TRANSCRIPT) is False
        assert settings.get_string("nothing_here") == ""
