"""Job coordinator: admission control and pipeline sequencing.

Each media record has at most one live job. A job is an asyncio task running
the pipeline:

    ensure whisper-server is ready -> extract audio -> POST /inference
    -> write <source>.txt -> mark the record completed

Cancelling a job cancels its task, so the CancelledError lands at whichever
await the pipeline is suspended on (encoder wait, health poll, HTTP call) and
each stage cleans up after itself.
"""

import asyncio
import contextlib
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from transcription.client import InferenceClient
from transcription.constants import DEFAULT_LANGUAGE, JOB_TIMEOUT_S
from transcription.errors import (
    AlreadyRunningError,
    JobCancelledError,
    NotFoundError,
    TranscriptionError,
)
from transcription.extractor import AudioExtractor
from transcription.records import MediaRecord, RecordStore, TranscriptStatus, transcript_path_for
from transcription.settings import (
    DELETE_VIDEO_AFTER_TRANSCRIPT,
    TRANSCRIPTION_AUTO_RUN,
    TRANSCRIPTION_ENABLED,
    TRANSCRIPTION_LANGUAGE,
    SettingsAccessor,
)
from transcription.supervisor import ProcessSupervisor

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class TranscriptionJob:
    """One in-flight transcription for a record."""

    record_id: str
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    task: asyncio.Task | None = None
    cancel_requested: bool = False

    def cancel(self) -> None:
        self.cancel_requested = True
        if self.task is not None:
            self.task.cancel()

    @property
    def done(self) -> bool:
        return self.task is not None and self.task.done()

    async def wait(self) -> None:
        """Wait for the job's task to finish, whatever the outcome."""
        if self.task is not None:
            await asyncio.wait({self.task})


@contextlib.contextmanager
def _stage(name: str) -> Iterator[None]:
    """Tag errors raised inside a pipeline stage with the stage name."""
    try:
        yield
    except TranscriptionError as exc:
        if exc.stage is None:
            exc.stage = name
        raise
    except OSError as exc:
        raise TranscriptionError(str(exc), stage=name) from exc


class JobCoordinator:
    """Runs transcription jobs, at most one per record."""

    def __init__(
        self,
        settings: SettingsAccessor,
        records: RecordStore,
        *,
        supervisor: ProcessSupervisor | None = None,
        extractor: AudioExtractor | None = None,
        client: InferenceClient | None = None,
    ):
        self._settings = settings
        self._records = records
        self._supervisor = supervisor or ProcessSupervisor(settings)
        self._extractor = extractor or AudioExtractor(settings)
        self._client = client or InferenceClient()
        self._jobs: dict[str, TranscriptionJob] = {}

    def is_enabled(self) -> bool:
        return self._settings.get_bool(TRANSCRIPTION_ENABLED, False)

    def is_auto_run_enabled(self) -> bool:
        if not self.is_enabled():
            return False
        return self._settings.get_bool(TRANSCRIPTION_AUTO_RUN, False)

    def language(self) -> str:
        return self._settings.get_string(TRANSCRIPTION_LANGUAGE) or DEFAULT_LANGUAGE

    def delete_source_after_transcript(self) -> bool:
        return self._settings.get_bool(DELETE_VIDEO_AFTER_TRANSCRIPT, False)

    # _admit and _release never await, so each runs as one uninterrupted
    # step on the event loop and check-then-insert cannot interleave.

    def _admit(self, record_id: str) -> TranscriptionJob:
        if record_id in self._jobs:
            raise AlreadyRunningError(record_id)
        job = TranscriptionJob(record_id=record_id)
        self._jobs[record_id] = job
        return job

    def _release(self, job: TranscriptionJob) -> None:
        if self._jobs.get(job.record_id) is job:
            del self._jobs[job.record_id]

    def active_jobs(self) -> dict[str, TranscriptionJob]:
        """Snapshot of the live job table."""
        return dict(self._jobs)

    def is_running(self, record_id: str) -> bool:
        return record_id in self._jobs

    def submit(self, record_id: str, timeout: float | None = JOB_TIMEOUT_S) -> TranscriptionJob:
        """Admit a job and run it in the background.

        Must be called from a running event loop. Returns immediately; the
        outcome is persisted on the record.

        Raises:
            NotFoundError: The record or its source file does not exist.
            AlreadyRunningError: A job for the record is already live.
        """
        record = self._load_record(record_id)
        job = self._admit(record_id)
        self._set_status(record_id, TranscriptStatus.IN_PROGRESS)
        job.task = asyncio.create_task(
            self._run_in_background(job, record, timeout), name=f"transcribe-{record_id}"
        )
        # Also releases jobs cancelled before their task got to run.
        job.task.add_done_callback(lambda _: self._release(job))
        logger.info("Transcription queued for record %s", record_id)
        return job

    async def run(self, record_id: str, timeout: float | None = None) -> Path:
        """Transcribe a record in the calling task and return the transcript path.

        Raises:
            NotFoundError: The record or its source file does not exist.
            AlreadyRunningError: A job for the record is already live.
            JobCancelledError: The job was cancelled or its deadline expired.
            TranscriptionError: Any pipeline stage failed.
        """
        record = self._load_record(record_id)
        job = self._admit(record_id)
        job.task = asyncio.current_task()
        try:
            return await self._execute(job, record, timeout)
        finally:
            self._release(job)

    def cancel(self, record_id: str) -> None:
        """Cancel the live job for record_id and mark the record failed.

        Raises:
            NotFoundError: No job is running for the record.
        """
        job = self._jobs.get(record_id)
        # A finished task waits for its done-callback to leave the table.
        if job is None or job.done:
            raise NotFoundError(f"no transcription running for record {record_id}")
        job.cancel()
        self._set_status(record_id, TranscriptStatus.FAILED)
        logger.info("Transcription cancelled for record %s", record_id)

    def maybe_auto_submit(self, record_id: str) -> bool:
        """Submit record_id if automatic transcription is enabled."""
        if not self.is_auto_run_enabled():
            return False
        try:
            self.submit(record_id)
        except TranscriptionError as exc:
            logger.warning("Auto transcription skipped for record %s: %s", record_id, exc)
            return False
        return True

    def get_transcript_path(self, record_id: str) -> str:
        record = self._records.get_by_id(record_id)
        if record is None:
            raise NotFoundError(f"record not found: {record_id}")
        if not record.transcript_path:
            raise NotFoundError(f"no transcript for record {record_id}")
        return record.transcript_path

    def get_transcript(self, record_id: str) -> str:
        record = self._records.get_by_id(record_id)
        if record is None:
            raise NotFoundError(f"record not found: {record_id}")
        if not record.transcript_path or record.transcript_status != TranscriptStatus.COMPLETED:
            raise NotFoundError(f"transcript for record {record_id} is not ready")
        try:
            return Path(record.transcript_path).read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise NotFoundError(f"transcript file missing: {record.transcript_path}") from exc

    async def validate_tools(self) -> tuple[bool, str]:
        """Check that ffmpeg, whisper-server and the model are usable."""
        ok, reason = await self._extractor.probe()
        if not ok:
            return False, reason
        ok, reason = await self._supervisor.probe_executable()
        if not ok:
            return False, reason
        model_path = self._supervisor.model_path()
        if not model_path:
            return False, "whisper model path is not configured"
        if not Path(model_path).exists():
            return False, f"whisper model file not found: {model_path}"
        return True, "ffmpeg and whisper-server checks passed"

    async def stop_server(self) -> None:
        await self._supervisor.stop()

    async def shutdown(self) -> None:
        """Cancel every live job, wait for them, then stop whisper-server."""
        jobs = list(self._jobs.values())
        for job in jobs:
            job.cancel()
            self._set_status(job.record_id, TranscriptStatus.FAILED)
        tasks = {job.task for job in jobs if job.task is not None and job.task is not asyncio.current_task()}
        if tasks:
            await asyncio.wait(tasks)
        await self._supervisor.stop()

    def _load_record(self, record_id: str) -> MediaRecord:
        record = self._records.get_by_id(record_id)
        if record is None:
            raise NotFoundError(f"record not found: {record_id}")
        if not Path(record.file_path).is_file():
            raise NotFoundError(f"source file not found: {record.file_path}")
        return record

    def _set_status(self, record_id: str, status: TranscriptStatus) -> None:
        """Best-effort status write; the path is left untouched."""
        try:
            self._records.update_transcript_status(record_id, status, None)
        except Exception as exc:
            logger.error("Failed to set record %s status to %s: %s", record_id, status.value, exc)

    async def _run_in_background(
        self, job: TranscriptionJob, record: MediaRecord, timeout: float | None
    ) -> None:
        try:
            await self._execute(job, record, timeout)
        except JobCancelledError as exc:
            logger.info("Transcription stopped [%s]: %s", job.record_id, exc)
        except Exception as exc:
            logger.error("Transcription failed [%s]: %s", job.record_id, exc, exc_info=True)

    async def _execute(
        self, job: TranscriptionJob, record: MediaRecord, timeout: float | None
    ) -> Path:
        transcript_path = transcript_path_for(record.file_path)
        self._set_status(record.id, TranscriptStatus.IN_PROGRESS)

        try:
            async with asyncio.timeout(timeout):
                await self._pipeline(record, transcript_path)
            with _stage("verify"):
                if not transcript_path.is_file():
                    raise NotFoundError(f"transcript file missing after run: {transcript_path}")
            with _stage("record"):
                self._records.update_transcript_status(
                    record.id, TranscriptStatus.COMPLETED, str(transcript_path)
                )
        except asyncio.CancelledError:
            self._set_status(record.id, TranscriptStatus.FAILED)
            task = asyncio.current_task()
            if job.cancel_requested and task is not None and task.uncancel() == 0:
                raise JobCancelledError(record.id) from None
            raise
        except TimeoutError as exc:
            self._set_status(record.id, TranscriptStatus.FAILED)
            raise JobCancelledError(record.id, "deadline exceeded") from exc
        except Exception:
            self._set_status(record.id, TranscriptStatus.FAILED)
            raise

        logger.info("Transcription completed: %s -> %s", record.title or record.id, transcript_path)

        if self.delete_source_after_transcript():
            self._remove_source(record.file_path)
        return transcript_path

    async def _pipeline(self, record: MediaRecord, transcript_path: Path) -> None:
        with _stage("server"):
            base_url = await self._supervisor.ensure_ready()

        with _stage("extract"):
            wav_path = await self._extractor.extract(record.file_path)

        try:
            with _stage("inference"):
                text = await self._client.recognize(base_url, wav_path, self.language())
            with _stage("write"):
                transcript_path.write_text(text.strip(), encoding="utf-8")
        finally:
            try:
                wav_path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Could not remove temporary audio %s: %s", wav_path, exc)

    @staticmethod
    def _remove_source(file_path: str) -> None:
        try:
            Path(file_path).unlink()
        except OSError as exc:
            logger.warning("Could not delete source file after transcription: %s", exc)
        else:
            logger.info("Deleted source file: %s", file_path)
