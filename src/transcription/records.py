"""Media records and the store the coordinator reads and updates.

Records are owned by the download subsystem; the transcription service only
reads ``file_path`` and writes the transcript status and path.
"""

import dataclasses
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol

from transcription.constants import TRANSCRIPT_SUFFIX
from transcription.errors import NotFoundError

logger = logging.getLogger(__name__)


class TranscriptStatus(str, Enum):
    """Transcript state of a media record."""

    NONE = "none"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class MediaRecord:
    """A downloaded media file and its transcript state."""

    id: str
    file_path: str
    title: str = ""
    transcript_status: TranscriptStatus = TranscriptStatus.NONE
    transcript_path: str = ""


class RecordStore(Protocol):
    """Lookup and status updates for media records."""

    def get_by_id(self, record_id: str) -> MediaRecord | None:
        ...

    def update_transcript_status(
        self,
        record_id: str,
        status: TranscriptStatus,
        transcript_path: str | None = None,
    ) -> None:
        """Set the transcript status.

        ``transcript_path=None`` leaves the stored path untouched.
        """
        ...


class InMemoryRecordStore:
    """Thread-safe in-process record store."""

    def __init__(self, records: list[MediaRecord] | None = None):
        self._lock = threading.Lock()
        self._records: dict[str, MediaRecord] = {}
        for record in records or []:
            self.add(record)

    def add(self, record: MediaRecord) -> None:
        with self._lock:
            self._records[record.id] = dataclasses.replace(record)

    def get_by_id(self, record_id: str) -> MediaRecord | None:
        with self._lock:
            record = self._records.get(record_id)
            return dataclasses.replace(record) if record else None

    def update_transcript_status(
        self,
        record_id: str,
        status: TranscriptStatus,
        transcript_path: str | None = None,
    ) -> None:
        with self._lock:
            record = self._records.get(record_id)
            if record is None:
                raise NotFoundError(f"record not found: {record_id}")
            record.transcript_status = TranscriptStatus(status)
            if transcript_path is not None:
                record.transcript_path = transcript_path
        logger.debug("Record %s transcript status -> %s", record_id, status)


def transcript_path_for(file_path: str | Path) -> Path:
    """Return the transcript location: the source path with a .txt extension."""
    return Path(file_path).with_suffix(TRANSCRIPT_SUFFIX)
