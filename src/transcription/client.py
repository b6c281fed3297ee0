"""HTTP client for the whisper-server ``/inference`` endpoint."""

import logging
from pathlib import Path

import httpx

from transcription.constants import AUTO_LANGUAGE, INFERENCE_TIMEOUT_S
from transcription.errors import InferenceServerError, InferenceTransportError

logger = logging.getLogger(__name__)


class InferenceClient:
    """Sends one WAV file to a ready whisper-server and returns its text.

    Inference time grows with audio length, so the only bound besides the
    generous default timeout is the caller's deadline: cancelling the
    awaiting task aborts the request.
    """

    def __init__(
        self,
        timeout: float = INFERENCE_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            timeout: Upper bound for one inference request, in seconds.
            transport: Optional httpx transport, e.g. ``httpx.ASGITransport``
                wrapping a fake server in tests.
        """
        self._timeout = timeout
        self._transport = transport

    @staticmethod
    def form_fields(language: str | None) -> dict[str, str]:
        """Form fields sent alongside the audio file."""
        fields = {"response_format": "text"}
        if language and language != AUTO_LANGUAGE:
            fields["language"] = language
        return fields

    async def recognize(
        self,
        base_url: str,
        wav_path: str | Path,
        language: str | None = AUTO_LANGUAGE,
    ) -> str:
        """Transcribe wav_path on the server at base_url.

        Raises:
            InferenceServerError: The server answered with a non-200 status.
            InferenceTransportError: The request failed before a response arrived.
        """
        wav = Path(wav_path)
        logger.info("Recognizing speech: %s", wav.name)

        try:
            async with httpx.AsyncClient(
                base_url=base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                with wav.open("rb") as fh:
                    response = await client.post(
                        "/inference",
                        files={"file": (wav.name, fh, "audio/wav")},
                        data=self.form_fields(language),
                    )
        except httpx.TransportError as exc:
            raise InferenceTransportError(f"request to whisper-server failed: {exc!r}") from exc

        if response.status_code != httpx.codes.OK:
            raise InferenceServerError(response.status_code, response.text)

        logger.debug("whisper-server returned %d characters", len(response.text))
        return response.text
