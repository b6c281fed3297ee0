"""Fake whisper-server for CPU-only testing.

Speaks the same HTTP surface as whisper.cpp's server (``GET /`` and
``POST /inference``) and returns deterministic text derived from the audio,
so the whole pipeline can run without a model.

In-process use::

    transport = httpx.ASGITransport(app=create_app())

As a child process (same CLI shape as whisper-server)::

    python -m transcription.fakes.server -m MODEL --host 127.0.0.1 --port 8178
"""

import argparse
import asyncio
import hashlib
import io
import sys
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np
from fastapi import FastAPI, File, Form, UploadFile
from fastapi.responses import JSONResponse, PlainTextResponse

from transcription.audio import read_wav_pcm16
from transcription.logging_config import setup_logging


@dataclass
class InferenceRequest:
    """What the fake server saw for one /inference call."""

    filename: str
    response_format: str
    language: str | None


@dataclass
class FakeServerState:
    latency_s: float = 0.0
    fail_status: int | None = None
    requests: list[InferenceRequest] = field(default_factory=list)


def fake_transcript(audio: np.ndarray, sample_rate: int, language: str | None) -> str:
    """Generate a deterministic transcript based on audio properties."""
    duration_s = len(audio) / sample_rate if sample_rate else 0.0
    samples = audio[: min(100, len(audio))]
    audio_hash = hashlib.sha256(samples.tobytes()).hexdigest()
    return f"[fake:{audio_hash[:8]}|{duration_s:.2f}s|{language or 'auto'}]"


def create_app(
    latency_s: float = 0.0,
    fail_status: int | None = None,
    model: str = "fake",
) -> FastAPI:
    """Create the fake server application.

    Args:
        latency_s: Simulated inference latency in seconds.
        fail_status: If set, /inference answers with this status code.
        model: Model name reported by the health endpoint.
    """
    app = FastAPI(title="Fake whisper-server")
    app.state.fake = FakeServerState(latency_s=latency_s, fail_status=fail_status)

    @app.get("/")
    async def health():
        return {"status": "ok", "model": model}

    @app.post("/inference")
    async def inference(
        file: UploadFile = File(...),
        response_format: str = Form("json"),
        language: str | None = Form(None),
    ):
        state: FakeServerState = app.state.fake
        state.requests.append(
            InferenceRequest(
                filename=file.filename or "",
                response_format=response_format,
                language=language,
            )
        )

        if state.latency_s > 0:
            await asyncio.sleep(state.latency_s)
        if state.fail_status is not None:
            return PlainTextResponse("inference failed", status_code=state.fail_status)

        data = await file.read()
        try:
            audio, info = read_wav_pcm16(io.BytesIO(data))
        except Exception as exc:
            return JSONResponse({"error": f"invalid audio: {exc}"}, status_code=400)

        text = fake_transcript(audio, info.sample_rate, language)
        if response_format == "text":
            return PlainTextResponse(text + "\n")
        return {"text": text}

    return app


def main(argv: list[str] | None = None) -> int:
    import uvicorn

    parser = argparse.ArgumentParser(description="Fake whisper-server")
    parser.add_argument("-m", "--model", required=True)
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8080)
    parser.add_argument("--latency", type=float, default=0.0)
    args = parser.parse_args(argv)
    setup_logging("WARNING")

    if not Path(args.model).exists():
        print(f"error: failed to open model '{args.model}'", file=sys.stderr)
        return 1

    app = create_app(latency_s=args.latency, model=Path(args.model).name)
    uvicorn.run(app, host=args.host, port=args.port, log_level="warning")
    return 0


if __name__ == "__main__":
    sys.exit(main())
