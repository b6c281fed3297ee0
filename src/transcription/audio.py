"""WAV inspection and PCM16 conversion utilities.

The extractor uses these to check the encoder output; the fakes use them to
produce and read 16kHz mono PCM16 WAV files.
"""

import wave
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

import numpy as np

from transcription.constants import BYTES_PER_SAMPLE, CHANNELS, SAMPLE_RATE


@dataclass(frozen=True)
class WavInfo:
    """Header fields of a WAV file."""

    sample_rate: int
    channels: int
    sample_width: int
    frames: int

    @property
    def duration_s(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return self.frames / self.sample_rate

    @property
    def is_normalized(self) -> bool:
        """True when the audio is the 16kHz mono format whisper-server expects."""
        return self.sample_rate == SAMPLE_RATE and self.channels == CHANNELS


def _header(wav: wave.Wave_read) -> WavInfo:
    return WavInfo(
        sample_rate=wav.getframerate(),
        channels=wav.getnchannels(),
        sample_width=wav.getsampwidth(),
        frames=wav.getnframes(),
    )


def read_wav_info(path: str | Path) -> WavInfo:
    """Read the header of a WAV file.

    Raises:
        wave.Error: If the file is not a valid WAV file.
        OSError: If the file cannot be opened.
    """
    with wave.open(str(path), "rb") as wav:
        return _header(wav)


def pcm16_to_float32(data: bytes) -> np.ndarray:
    """Convert PCM16 bytes to float32 array normalized to [-1, 1].

    Args:
        data: Raw PCM16 little-endian audio bytes.

    Returns:
        Float32 numpy array with values in [-1, 1].
    """
    audio = np.frombuffer(data, dtype=np.int16).astype(np.float32)
    audio /= 32768.0
    return audio


def float32_to_pcm16(audio: np.ndarray) -> bytes:
    """Convert float32 array [-1, 1] to PCM16 bytes."""
    clipped = np.clip(audio, -1.0, 1.0)
    pcm = (clipped * 32767.0).astype(np.int16)
    return pcm.tobytes()


def read_wav_pcm16(source: str | Path | BinaryIO) -> tuple[np.ndarray, WavInfo]:
    """Read a PCM16 WAV file (path or binary file object) as float32 samples plus its header."""
    if isinstance(source, (str, Path)):
        source = str(source)
    with wave.open(source, "rb") as wav:
        info = _header(wav)
        data = wav.readframes(info.frames)
    if info.sample_width != BYTES_PER_SAMPLE:
        raise ValueError(f"expected 16-bit PCM, got {info.sample_width * 8}-bit")
    return pcm16_to_float32(data), info


def write_wav_pcm16(
    path: str | Path,
    audio: np.ndarray,
    sample_rate: int = SAMPLE_RATE,
    channels: int = CHANNELS,
) -> None:
    """Write float32 samples as a PCM16 WAV file."""
    with wave.open(str(path), "wb") as wav:
        wav.setnchannels(channels)
        wav.setsampwidth(BYTES_PER_SAMPLE)
        wav.setframerate(sample_rate)
        wav.writeframes(float32_to_pcm16(audio))
