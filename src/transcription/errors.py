"""Error taxonomy for the transcription pipeline.

Every error raised by the pipeline derives from TranscriptionError, so
callers can catch one type. The coordinator tags errors with the pipeline
stage they came from.
"""


class TranscriptionError(Exception):
    """Base class for all transcription failures."""

    def __init__(self, message: str, stage: str | None = None):
        super().__init__(message)
        self.message = message
        self.stage = stage

    def __str__(self) -> str:
        if self.stage:
            return f"[{self.stage}] {self.message}"
        return self.message


class AlreadyRunningError(TranscriptionError):
    """A job for the record is already in the job table."""

    def __init__(self, record_id: str):
        super().__init__(f"transcription already running for record {record_id}")
        self.record_id = record_id


class NotFoundError(TranscriptionError):
    """A record, job, model file, source file or transcript is missing."""


class NotConfiguredError(TranscriptionError):
    """A required tool or model path is not set."""


class StartupTimeoutError(TranscriptionError):
    """whisper-server did not answer its health probe in time."""

    def __init__(self, port: int, timeout: float):
        super().__init__(
            f"timed out after {timeout:.1f}s waiting for whisper-server on port {port}"
        )
        self.port = port
        self.timeout = timeout


class ServerStartError(TranscriptionError):
    """whisper-server could not be spawned or exited during startup."""


class ExtractionError(TranscriptionError):
    """The encoder exited non-zero or produced unusable output."""

    def __init__(self, message: str, returncode: int | None = None, output: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.output = output

    def __str__(self) -> str:
        text = super().__str__()
        if self.output:
            return f"{text}, output: {self.output}"
        return text


class InferenceServerError(TranscriptionError):
    """whisper-server answered with a non-success status."""

    def __init__(self, status_code: int, body: str):
        super().__init__(f"whisper-server returned {status_code}: {body}")
        self.status_code = status_code
        self.body = body


class InferenceTransportError(TranscriptionError):
    """The inference request failed before a response arrived."""


class JobCancelledError(TranscriptionError):
    """The job was cancelled on request or its deadline expired."""

    def __init__(self, record_id: str, reason: str = "cancelled"):
        super().__init__(f"transcription for record {record_id} {reason}")
        self.record_id = record_id
        self.reason = reason
