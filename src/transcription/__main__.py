"""Transcribe one media file with a locally supervised whisper-server.

Usage:
    python -m transcription VIDEO [--model MODEL] [--server PATH] [--ffmpeg PATH]

Settings not given on the command line are read from TRANSCRIPTION_*
environment variables, e.g. TRANSCRIPTION_WHISPER_MODEL_PATH.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from transcription import settings as keys
from transcription.errors import TranscriptionError
from transcription.jobs import JobCoordinator
from transcription.logging_config import setup_logging
from transcription.records import InMemoryRecordStore, MediaRecord
from transcription.settings import EnvSettings

logger = logging.getLogger("transcription.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m transcription",
        description="Transcribe a media file to <file>.txt using whisper-server.",
    )
    parser.add_argument("source", type=Path, help="Media file to transcribe")
    parser.add_argument("--model", help="Path to the whisper model file")
    parser.add_argument("--server", help="Path to the whisper-server executable")
    parser.add_argument("--ffmpeg", help="Path to the ffmpeg executable")
    parser.add_argument("--port", type=int, help="Port for whisper-server")
    parser.add_argument("--language", help='Language hint, or "auto"')
    parser.add_argument("--timeout", type=float, default=None, help="Job deadline in seconds")
    parser.add_argument(
        "--delete-source",
        action="store_true",
        default=None,
        help="Delete the media file after a successful transcription",
    )
    parser.add_argument("--log-level", default="INFO")
    return parser


async def transcribe_file(args: argparse.Namespace) -> Path:
    settings = EnvSettings(
        {
            keys.WHISPER_MODEL_PATH: args.model,
            keys.WHISPER_SERVER_PATH: args.server,
            keys.FFMPEG_PATH: args.ffmpeg,
            keys.WHISPER_SERVER_PORT: args.port,
            keys.TRANSCRIPTION_LANGUAGE: args.language,
            keys.DELETE_VIDEO_AFTER_TRANSCRIPT: args.delete_source,
        }
    )
    source = args.source.resolve()
    store = InMemoryRecordStore([MediaRecord(id="cli", file_path=str(source), title=source.name)])
    coordinator = JobCoordinator(settings, store)
    try:
        return await coordinator.run("cli", timeout=args.timeout)
    finally:
        await coordinator.shutdown()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)
    try:
        transcript = asyncio.run(transcribe_file(args))
    except TranscriptionError as exc:
        logger.error("Transcription failed: %s", exc)
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130
    print(transcript)
    return 0


if __name__ == "__main__":
    sys.exit(main())
