"""
Vault - Type Definitions.

============================================================
PURPOSE
============================================================
Shared types for the ingestion and retrieval layers.

- File kind classification
- Upload handles received from the HTTP layer
- Per-file outcomes and the aggregated report

============================================================
DESIGN PRINCIPLES
============================================================
- No I/O
- No business logic beyond extension lookup
- Serializable for the response body

============================================================
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional


# =============================================================
# ENUMS
# =============================================================

class FileKind(str, Enum):
    """Stored file variants, plus the rejection bucket."""
    SENTIMENT = "sentiment"
    AUDIO = "audio"
    VIDEO = "video"
    UNSUPPORTED = "unsupported"

    @property
    def is_media(self) -> bool:
        return self in (FileKind.AUDIO, FileKind.VIDEO)


class OutcomeStatus(str, Enum):
    """Terminal state of one uploaded file."""
    SUCCESS = "success"
    ERROR = "error"


TABULAR_EXTENSIONS = frozenset({".csv", ".xls", ".xlsx"})
AUDIO_EXTENSIONS = frozenset({".mp3", ".wav", ".ogg", ".m4a", ".aac", ".flac"})
VIDEO_EXTENSIONS = frozenset({".mp4", ".mov", ".avi", ".mkv", ".webm"})

DEFAULT_CONTENT_TYPES = {
    FileKind.AUDIO: "audio/mpeg",
    FileKind.VIDEO: "video/mp4",
}


def classify_filename(filename: str) -> FileKind:
    """Classify an upload purely by its (case-insensitive) extension."""
    ext = Path(filename).suffix.lower()
    if ext in TABULAR_EXTENSIONS:
        return FileKind.SENTIMENT
    if ext in AUDIO_EXTENSIONS:
        return FileKind.AUDIO
    if ext in VIDEO_EXTENSIONS:
        return FileKind.VIDEO
    return FileKind.UNSUPPORTED


# =============================================================
# UPLOAD HANDLES
# =============================================================

@dataclass(frozen=True)
class UploadedFile:
    """
    A file the HTTP layer has already saved to local disk.

    `path` is the plaintext location; the coordinator deletes it
    once the upload reaches a terminal state.
    """
    original_name: str
    path: Path
    size_bytes: int
    owner: Optional[str] = None


# =============================================================
# OUTCOMES
# =============================================================

@dataclass
class FileOutcome:
    """Result of ingesting a single uploaded file."""
    original_name: str
    file_type: FileKind
    status: OutcomeStatus
    message: str = ""
    error: Optional[str] = None
    records_saved: int = 0
    encrypted_file: Optional[str] = None
    folder: Optional[str] = None
    record_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS

    @classmethod
    def failure(cls, upload: UploadedFile, kind: FileKind, error: str) -> "FileOutcome":
        return cls(
            original_name=upload.original_name,
            file_type=kind,
            status=OutcomeStatus.ERROR,
            error=error,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "original_name": self.original_name,
            "file_type": self.file_type.value,
            "status": self.status.value,
        }
        if not self.ok:
            data["error"] = self.error
            return data
        data["message"] = self.message
        if self.file_type == FileKind.SENTIMENT:
            data["records_saved"] = self.records_saved
        else:
            data["record_id"] = self.record_id
        data["encrypted_file"] = self.encrypted_file
        data["folder"] = self.folder
        return data


@dataclass
class IngestionReport:
    """Per-file outcomes of one upload request, in input order."""
    files: List[FileOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for outcome in self.files if outcome.ok)

    @property
    def failed(self) -> int:
        return len(self.files) - self.succeeded

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": len(self.files),
            "succeeded": self.succeeded,
            "failed": self.failed,
            "files": [outcome.to_dict() for outcome in self.files],
        }
