"""
Vault - Record Lifecycle.

============================================================
PURPOSE
============================================================
Listing, sentiment updates and deletion of stored files.

============================================================
DELETION ORDER
============================================================
1. Remove the ciphertext blob
2. Remove the metadata record

Never the reverse: a crash in between leaves an unreachable
ciphertext (cleaned by ReconciliationSweep), never a record that
points at nothing. Sentiment rows of one sheet share a single
ciphertext; it is removed together with the last row.

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from core.exceptions import NotFound, StorageWriteFailed, ValidationError
from storage.database import Database
from storage.models import SentimentRecordModel, StoredFileModel
from storage.repositories import RecordNotFoundError, StoredFileRepository
from storage.repositories import ValidationError as RepositoryValidationError
from tabular import parse_authors, parse_score, parse_ticker_sentiment, parse_topics
from .types import FileKind


logger = logging.getLogger(__name__)


@dataclass
class DeletionResult:
    record_id: str
    ciphertext_removed: bool
    ciphertext_path: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.record_id,
            "ciphertext_removed": self.ciphertext_removed,
            "ciphertext_path": self.ciphertext_path,
        }


def prepare_patch(patch: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Bring update values into stored form.

    Nested lists may be given structured or in the compact
    `name(value)` form; scores and authors go through the same
    rules as uploaded rows.
    """
    prepared: Dict[str, Any] = {}
    for name, value in patch.items():
        if name == "overall_sentiment_score":
            value = parse_score(value)
        elif name == "authors":
            value = parse_authors(value)
        elif name == "topics" and (value is None or isinstance(value, str)):
            value = [entry.to_dict() for entry in parse_topics(value)]
        elif name == "ticker_sentiment" and (value is None or isinstance(value, str)):
            value = [entry.to_dict() for entry in parse_ticker_sentiment(value)]
        prepared[name] = value
    return prepared


class RecordLifecycle:
    """
    Update and delete operations over stored files.
    """

    def __init__(self, database: Database):
        self._database = database

    async def list_files(
        self,
        owner: Optional[str] = None,
        kind: Optional[FileKind] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[StoredFileModel]:
        async with self._database.session() as session:
            return await StoredFileRepository(session).find(
                owner=owner,
                kind=kind.value if kind else None,
                limit=limit,
                offset=offset,
            )

    async def get(self, record_id: str) -> StoredFileModel:
        async with self._database.session() as session:
            record = await StoredFileRepository(session).find_by_id(record_id)
        if record is None:
            raise NotFound(record_id)
        return record

    async def update_record(
        self,
        record_id: str,
        patch: Mapping[str, Any],
    ) -> SentimentRecordModel:
        """
        Patch the fields of a sentiment record.

        Raises:
            NotFound: no sentiment record with this id
            ValidationError: unknown field in the patch
            ParseError: bad score value
        """
        prepared = prepare_patch(patch)
        async with self._database.session() as session:
            try:
                record = await StoredFileRepository(session).update_by_id(record_id, prepared)
            except RecordNotFoundError:
                raise NotFound(record_id) from None
            except RepositoryValidationError as e:
                raise ValidationError(e.message, context={"field": e.field}) from e

        logger.info(f"Sentiment record {record_id} updated ({len(prepared)} field(s))")
        return record

    async def delete(self, record_id: str) -> DeletionResult:
        """
        Delete a stored file: ciphertext first, then metadata.

        Raises:
            NotFound: no record with this id
            StorageWriteFailed: the ciphertext exists but could not be removed
        """
        async with self._database.session() as session:
            repository = StoredFileRepository(session)
            record = await repository.find_by_id(record_id)
            if record is None:
                raise NotFound(record_id)

            path = record.ciphertext_path
            sharers = await repository.count_by_filepath(record.filepath)

            removed = False
            if sharers <= 1:
                removed = await self._remove_ciphertext(record_id, path)
            else:
                logger.info(
                    f"Keeping ciphertext {path}: still referenced by {sharers - 1} other record(s)"
                )

            await repository.delete_by_id(record.id)

        logger.info(f"Deleted stored file {record_id}")
        return DeletionResult(
            record_id=str(record.id),
            ciphertext_removed=removed,
            ciphertext_path=str(path),
        )

    async def _remove_ciphertext(self, record_id: str, path: Path) -> bool:
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError:
            logger.warning(f"Ciphertext for {record_id} already absent at {path}")
            return False
        except OSError as e:
            raise StorageWriteFailed(
                f"Failed to remove ciphertext {path}: {e}",
                path=str(path),
                operation="delete",
                cause=e,
            ) from e
        logger.info(f"Removed ciphertext {path}")
        return True
