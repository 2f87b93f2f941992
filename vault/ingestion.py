"""
Vault - Ingestion Coordinator.

============================================================
PURPOSE
============================================================
Takes uploaded plaintext files from local disk and turns each
into encrypted storage plus metadata.

============================================================
PER-FILE STATE MACHINE
============================================================
1. Classify       by extension (sentiment / audio / video)
2. Validate       empty file, media size ceiling
3. Parse          sentiment sheets only
4. Normalize      sentiment rows -> records, owner attached
5. Encrypt        plaintext -> ciphertext in the owner's folder
6. Persist        metadata records (ciphertext removed if this fails)
7. Discard        plaintext removed
8. Report         one FileOutcome per upload

Every terminal state removes the plaintext. A crash between
steps 5 and 7 leaves a ciphertext without metadata and/or a
stale plaintext in the staging area; ReconciliationSweep cleans
both up on the next start.

============================================================
CONCURRENCY
============================================================
Files of one request are processed strictly in order, one
plaintext/ciphertext pair open at a time. Blocking parsing runs
in a worker thread.

============================================================
"""

import asyncio
import logging
import mimetypes
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from core.clock import ClockProtocol, get_clock
from core.exceptions import ParseError, StorageWriteFailed, ValidationError, VaultException
from storage.database import Database
from storage.models import MODEL_BY_KIND, SentimentRecordModel, StoredFileModel
from storage.repositories import RepositoryException, StoredFileRepository
from tabular import normalize_rows, parse
from .cipher import StreamCipherCodec
from .config import VaultConfig
from .paths import PathAllocator, mint_unique_name
from .types import (
    DEFAULT_CONTENT_TYPES,
    FileKind,
    FileOutcome,
    IngestionReport,
    OutcomeStatus,
    UploadedFile,
    classify_filename,
)


logger = logging.getLogger(__name__)


MSG_INVALID_TYPE = "invalid file type"
MSG_EMPTY = "file is empty"
MSG_TOO_LARGE = "size limit exceeded"
MSG_NO_DATA = "file contains no data"

MSG_SENTIMENT_STORED = "File uploaded, encrypted & data stored"
MSG_MEDIA_STORED = "File uploaded & encrypted"


def content_type_for(original_name: str, kind: FileKind) -> Optional[str]:
    guessed, _ = mimetypes.guess_type(original_name)
    return guessed or DEFAULT_CONTENT_TYPES.get(kind)


class IngestionCoordinator:
    """
    Runs the per-file pipeline over a batch of uploads.

    Usage:
        coordinator = IngestionCoordinator(config, database, codec, allocator)
        report = await coordinator.ingest(uploads)
    """

    def __init__(
        self,
        config: VaultConfig,
        database: Database,
        codec: StreamCipherCodec,
        allocator: PathAllocator,
        parser: Callable = parse,
        clock: Optional[ClockProtocol] = None,
    ):
        self._config = config
        self._database = database
        self._codec = codec
        self._allocator = allocator
        self._parser = parser
        self._clock = clock or get_clock()

    # =========================================================
    # PUBLIC API
    # =========================================================

    async def ingest(self, uploads: Sequence[UploadedFile]) -> IngestionReport:
        """Process `uploads` in order; one failure never stops the rest."""
        report = IngestionReport()
        for upload in uploads:
            report.files.append(await self.ingest_one(upload))

        logger.info(
            f"Ingestion batch done: {report.succeeded} succeeded, {report.failed} failed"
        )
        return report

    async def ingest_one(self, upload: UploadedFile) -> FileOutcome:
        kind = classify_filename(upload.original_name)
        logger.info(f"Ingesting {upload.original_name} as {kind.value} ({upload.size_bytes} bytes)")

        try:
            self._validate(upload, kind)
            if kind == FileKind.SENTIMENT:
                outcome = await self._ingest_sentiment(upload)
            else:
                outcome = await self._ingest_media(upload, kind)
        except VaultException as e:
            log = logger.info if e.is_client_error else logger.error
            log(f"Rejected {upload.original_name}: {e.to_log_format()}")
            outcome = FileOutcome.failure(upload, kind, e.message)
        except RepositoryException as e:
            logger.error(f"Metadata store failed for {upload.original_name}: {e}")
            outcome = FileOutcome.failure(upload, kind, f"metadata store error: {e.message}")
        except OSError as e:
            logger.error(f"Filesystem fault while ingesting {upload.original_name}: {e}")
            outcome = FileOutcome.failure(upload, kind, f"storage error: {e.strerror or e}")
        finally:
            await self._discard_plaintext(upload)

        return outcome

    # =========================================================
    # STAGES
    # =========================================================

    def _validate(self, upload: UploadedFile, kind: FileKind) -> None:
        if kind == FileKind.UNSUPPORTED:
            raise ValidationError(MSG_INVALID_TYPE, filename=upload.original_name)
        if upload.size_bytes == 0:
            raise ValidationError(MSG_EMPTY, filename=upload.original_name)
        if kind.is_media and upload.size_bytes > self._config.max_media_bytes:
            raise ValidationError(
                MSG_TOO_LARGE,
                filename=upload.original_name,
                context={"size_bytes": upload.size_bytes, "limit": self._config.max_media_bytes},
            )

    async def _ingest_sentiment(self, upload: UploadedFile) -> FileOutcome:
        suffix = Path(upload.original_name).suffix
        rows = await asyncio.to_thread(self._parser, upload.path, suffix)
        if not rows:
            raise ParseError(MSG_NO_DATA, filename=upload.original_name)

        owner = self._allocator.resolve_owner(upload.owner)
        normalized = normalize_rows(rows, owner, filename=upload.original_name)
        logger.info(f"Normalized {len(normalized)} row(s) from {upload.original_name}")

        directory = await asyncio.to_thread(self._allocator.allocate, owner)
        destination = await asyncio.to_thread(self._tabular_destination, directory, upload)
        await self._codec.encrypt_file(upload.path, destination)

        now = self._clock.now()
        records: List[StoredFileModel] = [
            SentimentRecordModel(
                filepath=str(destination),
                original_name=upload.original_name,
                size_bytes=upload.size_bytes,
                content_type=content_type_for(upload.original_name, FileKind.SENTIMENT),
                created_at=now,
                updated_at=now,
                **record.to_columns(),
            )
            for record in normalized
        ]
        await self._persist(records, destination)

        return FileOutcome(
            original_name=upload.original_name,
            file_type=FileKind.SENTIMENT,
            status=OutcomeStatus.SUCCESS,
            message=MSG_SENTIMENT_STORED,
            records_saved=len(records),
            encrypted_file=destination.name,
            folder=str(directory),
        )

    async def _ingest_media(self, upload: UploadedFile, kind: FileKind) -> FileOutcome:
        owner = self._allocator.resolve_owner(upload.owner)
        directory = await asyncio.to_thread(self._allocator.allocate, owner)
        destination = directory / mint_unique_name(upload.original_name)
        await self._codec.encrypt_file(upload.path, destination)

        now = self._clock.now()
        model_class = MODEL_BY_KIND[kind.value]
        record = model_class(
            uploaded_by=owner,
            filepath=str(destination),
            original_name=upload.original_name,
            size_bytes=upload.size_bytes,
            content_type=content_type_for(upload.original_name, kind),
            created_at=now,
            updated_at=now,
        )
        await self._persist([record], destination)

        return FileOutcome(
            original_name=upload.original_name,
            file_type=kind,
            status=OutcomeStatus.SUCCESS,
            message=MSG_MEDIA_STORED,
            records_saved=1,
            encrypted_file=destination.name,
            folder=str(directory),
            record_id=str(record.id),
        )

    async def _persist(self, records: List[StoredFileModel], ciphertext: Path) -> None:
        """Insert metadata; on failure the just-written ciphertext is removed."""
        try:
            async with self._database.session() as session:
                await StoredFileRepository(session).insert_many(records)
        except RepositoryException:
            logger.warning(f"Removing ciphertext {ciphertext} after failed metadata insert")
            await asyncio.to_thread(ciphertext.unlink, missing_ok=True)
            raise

    # =========================================================
    # HELPERS
    # =========================================================

    def _tabular_destination(self, directory: Path, upload: UploadedFile) -> Path:
        """Staged name plus the tabular suffix, or a fresh name if that is taken."""
        suffix = self._config.tabular_suffix
        destination = directory / f"{Path(upload.path).name}{suffix}"
        try:
            taken = destination.exists()
        except OSError as e:
            raise StorageWriteFailed(
                f"Failed to inspect {destination}: {e.strerror or e}",
                path=str(destination),
                operation="allocate",
                cause=e,
            ) from e
        if taken:
            destination = directory / f"{mint_unique_name(upload.original_name)}{suffix}"
        return destination

    async def _discard_plaintext(self, upload: UploadedFile) -> None:
        try:
            await asyncio.to_thread(Path(upload.path).unlink, missing_ok=True)
            logger.debug(f"Discarded plaintext {upload.path}")
        except OSError as e:
            logger.warning(f"Could not remove plaintext {upload.path}: {e}")
