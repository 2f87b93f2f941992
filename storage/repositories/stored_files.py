"""
Stored File Repository.

============================================================
PURPOSE
============================================================
Data access for the metadata of every ciphertext blob.

The contract is plain CRUD with no transaction spanning the
filesystem: callers order filesystem and metadata steps
themselves (see vault.ingestion and vault.lifecycle).

============================================================
OPERATIONS
============================================================
- insert_many: persist a batch of new records in one commit
- find_by_id: lookup by identifier (any variant)
- find: filter by owner and/or kind
- update_by_id: patch sentiment fields
- delete_by_id: remove one record
- count_by_filepath: how many records share one ciphertext
- locations: (id, ciphertext path) of every record

============================================================
"""

from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storage.models.files import SentimentRecordModel, StoredFileModel
from storage.repositories.base import BaseRepository
from storage.repositories.exceptions import RecordNotFoundError, ValidationError


RecordId = Union[UUID, str]


def coerce_record_id(record_id: RecordId) -> Optional[UUID]:
    """UUID for `record_id`, or None when it cannot be one."""
    if isinstance(record_id, UUID):
        return record_id
    try:
        return UUID(str(record_id))
    except ValueError:
        return None


class StoredFileRepository(BaseRepository[StoredFileModel]):
    """
    Repository for stored file metadata (all variants).
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, StoredFileModel, "StoredFileRepository")

    # =========================================================
    # CREATE
    # =========================================================

    async def insert_many(self, records: Sequence[StoredFileModel]) -> List[StoredFileModel]:
        """
        Persist `records` in a single commit.

        Either every record is stored or none is.
        """
        if not records:
            return []
        self._session.add_all(records)
        await self._flush_and_commit("insert_many", {"count": len(records)})
        self._logger.info(f"Inserted {len(records)} {records[0].kind} record(s)")
        return list(records)

    # =========================================================
    # READ
    # =========================================================

    async def find_by_id(self, record_id: RecordId) -> Optional[StoredFileModel]:
        uid = coerce_record_id(record_id)
        if uid is None:
            return None
        stmt = select(StoredFileModel).where(StoredFileModel.id == uid)
        return await self._execute_scalar(stmt, "find_by_id")

    async def find(
        self,
        owner: Optional[str] = None,
        kind: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[StoredFileModel]:
        """Records matching every given filter, newest first."""
        stmt = select(StoredFileModel)
        if owner is not None:
            stmt = stmt.where(StoredFileModel.uploaded_by == owner)
        if kind is not None:
            stmt = stmt.where(StoredFileModel.kind == kind)
        stmt = (
            stmt.order_by(StoredFileModel.created_at.desc(), StoredFileModel.id)
            .limit(limit)
            .offset(offset)
        )
        return await self._execute_query(stmt, "find")

    async def count_by_filepath(self, filepath: str) -> int:
        stmt = (
            select(func.count())
            .select_from(StoredFileModel)
            .where(StoredFileModel.filepath == filepath)
        )
        return (await self._execute_scalar(stmt, "count_by_filepath")) or 0

    async def locations(self) -> List[Tuple[str, str]]:
        """(record id, ciphertext path) for every record."""
        stmt = select(StoredFileModel.id, StoredFileModel.filepath).order_by(StoredFileModel.filepath)
        try:
            result = await self._session.execute(stmt)
            return [(str(record_id), filepath) for record_id, filepath in result.all()]
        except SQLAlchemyError as e:
            self._handle_db_error(e, "locations")

    # =========================================================
    # UPDATE
    # =========================================================

    async def update_by_id(
        self,
        record_id: RecordId,
        patch: Mapping[str, Any],
    ) -> SentimentRecordModel:
        """
        Apply `patch` to a sentiment record.

        Raises:
            RecordNotFoundError: no sentiment record with this id
            ValidationError: patch names a field that cannot be updated
        """
        for field_name in patch:
            if field_name not in SentimentRecordModel.UPDATABLE_FIELDS:
                raise ValidationError(
                    repository_name=self._repository_name,
                    operation="update_by_id",
                    field=field_name,
                    reason="not an updatable sentiment field",
                )

        record = await self.find_by_id(record_id)
        if not isinstance(record, SentimentRecordModel):
            raise RecordNotFoundError(self._repository_name, record_id, operation="update_by_id")

        for field_name, value in patch.items():
            setattr(record, field_name, value)

        await self._flush_and_commit("update_by_id", {"id": str(record_id)})
        self._logger.info(f"Updated record {record.id}: {sorted(patch)}")
        return record

    # =========================================================
    # DELETE
    # =========================================================

    async def delete_by_id(self, record_id: RecordId) -> bool:
        """Delete one record. Returns False if it did not exist."""
        record = await self.find_by_id(record_id)
        if record is None:
            return False

        await self._session.delete(record)
        await self._flush_and_commit("delete_by_id", {"id": str(record_id)})
        self._logger.info(f"Deleted record {record_id}")
        return True

