"""
Vault Package.

Encrypted storage of uploaded sentiment sheets, audio and video.

Modules:
- config: cipher and vault settings
- paths: per-day, per-owner directory allocation
- cipher: AES-256-CBC stream codec
- ingestion: upload pipeline
- retrieval: decrypting media streams
- lifecycle: list, update and delete
- reconciliation: startup repair of disk vs metadata
- router: FastAPI endpoints
"""

from .cipher import DecryptedStream, StreamCipherCodec
from .config import CipherConfig, VaultConfig
from .ingestion import IngestionCoordinator
from .lifecycle import DeletionResult, RecordLifecycle
from .paths import PathAllocator, mint_unique_name, owner_segment
from .reconciliation import ReconciliationReport, ReconciliationSweep
from .retrieval import ResponseSink, RetrievalStreamer, RetrievedMedia
from .types import (
    FileKind,
    FileOutcome,
    IngestionReport,
    OutcomeStatus,
    UploadedFile,
    classify_filename,
)


__all__ = [
    "CipherConfig",
    "VaultConfig",
    "PathAllocator",
    "mint_unique_name",
    "owner_segment",
    "StreamCipherCodec",
    "DecryptedStream",
    "IngestionCoordinator",
    "RetrievalStreamer",
    "RetrievedMedia",
    "ResponseSink",
    "RecordLifecycle",
    "DeletionResult",
    "ReconciliationSweep",
    "ReconciliationReport",
    "FileKind",
    "FileOutcome",
    "IngestionReport",
    "OutcomeStatus",
    "UploadedFile",
    "classify_filename",
]
