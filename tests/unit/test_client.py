"""Unit tests for the inference client against the fake server app."""

import asyncio

import httpx
import numpy as np
import pytest

from transcription.audio import write_wav_pcm16
from transcription.client import InferenceClient
from transcription.constants import SAMPLE_RATE
from transcription.errors import InferenceServerError, InferenceTransportError
from transcription.fakes.server import create_app

from conftest import free_port

BASE_URL = "http://whisper.test"


@pytest.fixture
def wav_file(tmp_path):
    path = tmp_path / "clip.mp4.tmp.wav"
    write_wav_pcm16(path, np.zeros(SAMPLE_RATE, dtype=np.float32))
    return path


def client_for(app) -> InferenceClient:
    return InferenceClient(transport=httpx.ASGITransport(app=app))


class TestFormFields:
    """Tests for the multipart form fields."""

    def test_language_hint_included(self):
        """A concrete language is sent as a form field."""
        assert InferenceClient.form_fields("en") == {"response_format": "text", "language": "en"}

    def test_auto_language_omitted(self):
        """The auto language sends no language field."""
        assert InferenceClient.form_fields("auto") == {"response_format": "text"}
        assert InferenceClient.form_fields("") == {"response_format": "text"}


class TestRecognize:
    """Tests for InferenceClient.recognize."""

    @pytest.mark.asyncio
    async def test_returns_server_text(self, wav_file):
        """Successful inference returns the raw response body."""
        app = create_app()
        text = await client_for(app).recognize(BASE_URL, wav_file, "en")

        assert text.startswith("[fake:")
        assert "|1.00s|en]" in text

        (request,) = app.state.fake.requests
        assert request.filename == wav_file.name
        assert request.response_format == "text"
        assert request.language == "en"

    @pytest.mark.asyncio
    async def test_auto_language_not_sent(self, wav_file):
        """The server sees no language hint for auto detection."""
        app = create_app()
        text = await client_for(app).recognize(BASE_URL, wav_file, "auto")

        assert "|auto]" in text
        assert app.state.fake.requests[0].language is None

    @pytest.mark.asyncio
    async def test_error_status_raises_server_error(self, wav_file):
        """Non-200 responses carry status code and body."""
        app = create_app(fail_status=500)
        with pytest.raises(InferenceServerError) as excinfo:
            await client_for(app).recognize(BASE_URL, wav_file, "en")

        assert excinfo.value.status_code == 500
        assert excinfo.value.body == "inference failed"

    @pytest.mark.asyncio
    async def test_connection_refused_raises_transport_error(self, wav_file):
        """Nothing listening on the port is a transport failure."""
        client = InferenceClient(timeout=5.0)
        with pytest.raises(InferenceTransportError):
            await client.recognize(f"http://127.0.0.1:{free_port()}", wav_file, "en")

    @pytest.mark.asyncio
    async def test_cancellation_aborts_request(self, wav_file):
        """Cancelling the awaiting task stops a slow inference promptly."""
        app = create_app(latency_s=10.0)
        task = asyncio.create_task(client_for(app).recognize(BASE_URL, wav_file, "en"))
        await asyncio.sleep(0.2)

        loop = asyncio.get_running_loop()
        start = loop.time()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert loop.time() - start < 2.0
