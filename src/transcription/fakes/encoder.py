"""Fake ffmpeg for testing audio extraction without a real encoder.

Understands the subset of the ffmpeg command line the extractor uses::

    python -m transcription.fakes.encoder -i SRC -ar 16000 -ac 1 -f wav -y DEST
    python -m transcription.fakes.encoder -version

The source bytes are reinterpreted as PCM16 samples, so output is
deterministic for a given input. Behaviour switches:

- a source starting with ``CORRUPT`` writes a partial file and exits 1
- ``FAKE_ENCODER_DELAY_S`` sleeps before writing (for cancellation tests)
- ``FAKE_ENCODER_SAMPLE_RATE`` overrides the requested output rate
"""

import argparse
import os
import sys
import time
from pathlib import Path

from transcription.audio import pcm16_to_float32, write_wav_pcm16

CORRUPT_MARKER = b"CORRUPT"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ffmpeg", allow_abbrev=False)
    parser.add_argument("-version", action="store_true")
    parser.add_argument("-i", dest="source")
    parser.add_argument("-ar", dest="sample_rate", type=int, default=16000)
    parser.add_argument("-ac", dest="channels", type=int, default=1)
    parser.add_argument("-f", dest="format", default="wav")
    parser.add_argument("-y", dest="overwrite", action="store_true")
    parser.add_argument("output", nargs="?")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.version:
        print("ffmpeg version 0.0-fake")
        return 0

    if not args.source or not args.output:
        print("At least one output file must be specified", file=sys.stderr)
        return 1

    source = Path(args.source)
    output = Path(args.output)
    if not source.exists():
        print(f"{source}: No such file or directory", file=sys.stderr)
        return 1
    if output.exists() and not args.overwrite:
        print(f"File '{output}' already exists. Exiting.", file=sys.stderr)
        return 1

    delay = float(os.environ.get("FAKE_ENCODER_DELAY_S") or 0)
    if delay > 0:
        time.sleep(delay)

    data = source.read_bytes()
    if data.startswith(CORRUPT_MARKER):
        output.write_bytes(b"RIFF\x00\x00")
        print(f"{source}: Invalid data found when processing input", file=sys.stderr)
        return 1

    sample_rate = int(os.environ.get("FAKE_ENCODER_SAMPLE_RATE") or args.sample_rate)
    audio = pcm16_to_float32(data[: len(data) // 2 * 2])
    write_wav_pcm16(output, audio, sample_rate=sample_rate, channels=args.channels)
    print(f"Output #0, wav, to '{output}'")
    return 0


if __name__ == "__main__":
    sys.exit(main())
