"""Shared fixtures: fake tool executables, settings and media files."""

import socket
import stat
import sys
from pathlib import Path

import numpy as np
import pytest

from transcription import settings as keys
from transcription.audio import float32_to_pcm16
from transcription.constants import SAMPLE_RATE
from transcription.records import InMemoryRecordStore, MediaRecord
from transcription.settings import MemorySettings

SRC_DIR = Path(__file__).resolve().parents[1] / "src"


def make_executable(path: Path, body: str) -> Path:
    """Write a /bin/sh script and mark it executable."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("#!/bin/sh\n" + body + "\n")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def module_executable(path: Path, module: str) -> Path:
    """Executable that runs ``python -m module`` with the package importable."""
    return make_executable(
        path,
        f'PYTHONPATH="{SRC_DIR}${{PYTHONPATH:+:$PYTHONPATH}}" exec "{sys.executable}" -m {module} "$@"',
    )


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def media_bytes(duration_s: float = 1.0) -> bytes:
    """Deterministic stand-in media content (a 440Hz tone as raw PCM16)."""
    t = np.arange(int(SAMPLE_RATE * duration_s)) / SAMPLE_RATE
    return float32_to_pcm16((0.3 * np.sin(2 * np.pi * 440 * t)).astype(np.float32))


@pytest.fixture
def fake_ffmpeg(tmp_path) -> Path:
    return module_executable(tmp_path / "bin" / "ffmpeg", "transcription.fakes.encoder")


@pytest.fixture
def fake_whisper_server(tmp_path) -> Path:
    return module_executable(tmp_path / "bin" / "whisper-server", "transcription.fakes.server")


@pytest.fixture
def model_file(tmp_path) -> Path:
    path = tmp_path / "models" / "ggml-fake.bin"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"fake model weights")
    return path


@pytest.fixture
def media_file(tmp_path) -> Path:
    path = tmp_path / "media" / "clip.mp4"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(media_bytes())
    return path


@pytest.fixture
def settings(fake_ffmpeg, fake_whisper_server, model_file) -> MemorySettings:
    return MemorySettings(
        {
            keys.FFMPEG_PATH: str(fake_ffmpeg),
            keys.WHISPER_SERVER_PATH: str(fake_whisper_server),
            keys.WHISPER_MODEL_PATH: str(model_file),
            keys.WHISPER_SERVER_PORT: free_port(),
            keys.TRANSCRIPTION_LANGUAGE: "en",
        }
    )


@pytest.fixture
def record_store(media_file) -> InMemoryRecordStore:
    return InMemoryRecordStore([MediaRecord(id="rec-1", file_path=str(media_file), title="clip")])
