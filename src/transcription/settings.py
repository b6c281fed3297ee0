"""Settings accessor used to look up tool paths, port, language and flags.

The persisted settings store lives outside this package. Anything that
implements SettingsAccessor can be passed in; MemorySettings and EnvSettings
cover tests, the CLI and simple deployments.
"""

import logging
import os
from collections.abc import Mapping
from typing import Any, Protocol

logger = logging.getLogger(__name__)

# Setting keys
FFMPEG_PATH = "ffmpeg_path"
WHISPER_SERVER_PATH = "whisper_server_path"
WHISPER_MODEL_PATH = "whisper_model_path"
WHISPER_SERVER_PORT = "whisper_server_port"
TRANSCRIPTION_LANGUAGE = "transcription_language"
TRANSCRIPTION_ENABLED = "transcription_enabled"
TRANSCRIPTION_AUTO_RUN = "transcription_auto_run"
DELETE_VIDEO_AFTER_TRANSCRIPT = "delete_video_after_transcript"

ENV_PREFIX = "TRANSCRIPTION_"

_TRUE_VALUES = {"1", "true", "t", "yes", "y", "on"}


class SettingsAccessor(Protocol):
    """Key/value lookup for transcription settings."""

    def get_string(self, key: str) -> str:
        """Return the value for key, or an empty string when unset."""
        ...

    def get_bool(self, key: str, default: bool = False) -> bool:
        ...

    def get_int(self, key: str, default: int = 0) -> int:
        ...


def parse_bool(value: str, default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


def parse_int(key: str, value: str, default: int) -> int:
    if value is None or value.strip() == "":
        return default
    try:
        return int(value.strip())
    except ValueError:
        logger.warning("Setting %s has non-integer value %r; using %d", key, value, default)
        return default


class MemorySettings:
    """Dictionary-backed settings."""

    def __init__(self, values: Mapping[str, Any] | None = None):
        self._values: dict[str, Any] = dict(values or {})

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value

    def get_string(self, key: str) -> str:
        value = self._values.get(key)
        return "" if value is None else str(value)

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self._values.get(key)
        if isinstance(value, bool):
            return value
        return parse_bool(None if value is None else str(value), default)

    def get_int(self, key: str, default: int = 0) -> int:
        value = self._values.get(key)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        return parse_int(key, None if value is None else str(value), default)


class EnvSettings:
    """Settings read from TRANSCRIPTION_<KEY> environment variables.

    Explicit overrides take precedence over the environment, which is how the
    CLI layers its flags on top of the process environment.
    """

    def __init__(self, overrides: Mapping[str, Any] | None = None, prefix: str = ENV_PREFIX):
        self._overrides = {k: v for k, v in (overrides or {}).items() if v is not None}
        self._prefix = prefix

    def _raw(self, key: str) -> str | None:
        if key in self._overrides:
            return str(self._overrides[key])
        return os.getenv(self._prefix + key.upper())

    def get_string(self, key: str) -> str:
        return self._raw(key) or ""

    def get_bool(self, key: str, default: bool = False) -> bool:
        return parse_bool(self._raw(key), default)

    def get_int(self, key: str, default: int = 0) -> int:
        return parse_int(key, self._raw(key), default)
