"""whisper-server transcription orchestration package."""

from transcription.constants import (
    CHANNELS,
    DEFAULT_SERVER_PORT,
    JOB_TIMEOUT_S,
    SAMPLE_RATE,
    SERVER_HOST,
)

__all__ = [
    "SAMPLE_RATE",
    "CHANNELS",
    "SERVER_HOST",
    "DEFAULT_SERVER_PORT",
    "JOB_TIMEOUT_S",
]
