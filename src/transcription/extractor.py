"""Audio extraction via an external encoder (ffmpeg).

Converts any media file into the 16kHz mono WAV that whisper-server expects.
The encoder runs as an asyncio subprocess so that cancelling the awaiting
task kills it instead of leaving it running in the background.
"""

import asyncio
import logging
import shutil
import wave
from pathlib import Path

from transcription.audio import read_wav_info
from transcription.constants import CHANNELS, ENCODER_EXECUTABLE, SAMPLE_RATE, TEMP_WAV_SUFFIX
from transcription.errors import ExtractionError, NotConfiguredError
from transcription.settings import FFMPEG_PATH, SettingsAccessor

logger = logging.getLogger(__name__)

MAX_OUTPUT_CHARS = 2000


def encoder_args(source: str | Path, dest: str | Path) -> list[str]:
    """Encoder arguments producing overwrite-if-exists 16kHz mono WAV."""
    return [
        "-i", str(source),
        "-ar", str(SAMPLE_RATE),
        "-ac", str(CHANNELS),
        "-f", "wav",
        "-y",
        str(dest),
    ]


def wav_path_for(source: str | Path) -> Path:
    """Temporary WAV location next to the source file."""
    return Path(str(source) + TEMP_WAV_SUFFIX)


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Could not remove partial audio file %s: %s", path, exc)


async def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await process.wait()


class AudioExtractor:
    """Runs the encoder to produce normalized WAV audio."""

    def __init__(self, settings: SettingsAccessor):
        self._settings = settings

    def encoder_path(self) -> str:
        """Configured encoder path, falling back to ffmpeg on PATH."""
        path = self._settings.get_string(FFMPEG_PATH)
        if path:
            return path
        return shutil.which(ENCODER_EXECUTABLE) or ""

    async def extract(self, source_path: str | Path) -> Path:
        """Extract audio from source_path into a temporary WAV file.

        The caller owns the returned file and must delete it.

        Raises:
            NotConfiguredError: No encoder is configured or on PATH.
            ExtractionError: The encoder failed or produced unusable output.
        """
        encoder = self.encoder_path()
        if not encoder:
            raise NotConfiguredError("ffmpeg path is not configured and ffmpeg is not on PATH")

        source = Path(source_path)
        dest = wav_path_for(source)
        logger.info("Extracting audio: %s", source.name)

        try:
            process = await asyncio.create_subprocess_exec(
                encoder,
                *encoder_args(source, dest),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as exc:
            raise ExtractionError(f"could not run encoder {encoder}: {exc}") from exc

        try:
            stdout, _ = await process.communicate()
        except asyncio.CancelledError:
            await _kill(process)
            _remove_quietly(dest)
            logger.info("Audio extraction cancelled: %s", source.name)
            raise

        output = (stdout or b"").decode("utf-8", errors="replace").strip()
        if process.returncode != 0:
            _remove_quietly(dest)
            raise ExtractionError(
                f"encoder exited with code {process.returncode}",
                returncode=process.returncode,
                output=output[-MAX_OUTPUT_CHARS:],
            )

        try:
            info = read_wav_info(dest)
        except (OSError, EOFError, wave.Error) as exc:
            _remove_quietly(dest)
            raise ExtractionError(f"encoder produced no readable WAV at {dest}: {exc}") from exc
        if not info.is_normalized:
            _remove_quietly(dest)
            raise ExtractionError(
                f"encoder produced {info.sample_rate}Hz/{info.channels}ch audio, "
                f"expected {SAMPLE_RATE}Hz/{CHANNELS}ch"
            )

        logger.info("Extracted %.1fs of audio to %s", info.duration_s, dest.name)
        return dest

    async def probe(self) -> tuple[bool, str]:
        """Check that the encoder runs (``ffmpeg -version``)."""
        encoder = self.encoder_path()
        if not encoder:
            return False, "ffmpeg not found; configure its path or add it to PATH"
        try:
            process = await asyncio.create_subprocess_exec(
                encoder,
                "-version",
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as exc:
            return False, f"ffmpeg failed to run: {exc}"
        returncode = await process.wait()
        if returncode != 0:
            return False, f"ffmpeg -version exited with code {returncode}"
        return True, ""
