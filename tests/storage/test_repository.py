"""
Tests for the stored file repository.

============================================================
PURPOSE
============================================================
Runs the repository against a real SQLite database (aiosqlite)
to cover polymorphic loading, filtering, updates and deletes.

============================================================
"""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from storage.models import (
    AudioAssetModel,
    SentimentRecordModel,
    StoredFileModel,
    VideoAssetModel,
)
from storage.repositories import (
    RecordNotFoundError,
    StoredFileRepository,
    ValidationError,
)


T0 = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


def sentiment(owner="alice", filepath="/vault/20240315/alice/a.csv.enc", **fields):
    return SentimentRecordModel(
        uploaded_by=owner,
        filepath=filepath,
        original_name="a.csv",
        size_bytes=120,
        title=fields.pop("title", "BTC rallies"),
        authors=fields.pop("authors", ["Alice"]),
        overall_sentiment_score=fields.pop("overall_sentiment_score", Decimal("0.25")),
        topics=fields.pop("topics", [{"topic": "Crypto", "relevance_score": "0.9"}]),
        ticker_sentiment=fields.pop("ticker_sentiment", []),
        **fields,
    )


def audio(owner="alice", filepath="/vault/20240315/alice/x.mp3", created_at=T0):
    return AudioAssetModel(
        uploaded_by=owner,
        filepath=filepath,
        original_name="song.mp3",
        size_bytes=2048,
        content_type="audio/mpeg",
        created_at=created_at,
        updated_at=created_at,
    )


def video(owner="bob", filepath="/vault/20240315/bob/y.mp4"):
    return VideoAssetModel(
        uploaded_by=owner,
        filepath=filepath,
        original_name="clip.mp4",
        size_bytes=4096,
        content_type="video/mp4",
    )


# ============================================================
# CREATE / READ TESTS
# ============================================================

class TestInsertAndFind:

    @pytest.mark.asyncio
    async def test_insert_many_assigns_ids(self, database):
        async with database.session() as session:
            records = await StoredFileRepository(session).insert_many([sentiment(), sentiment()])

        assert all(isinstance(r.id, uuid.UUID) for r in records)
        assert records[0].id != records[1].id

    @pytest.mark.asyncio
    async def test_insert_nothing(self, database):
        async with database.session() as session:
            assert await StoredFileRepository(session).insert_many([]) == []

    @pytest.mark.asyncio
    async def test_find_by_id_returns_variant(self, database):
        async with database.session() as session:
            repo = StoredFileRepository(session)
            [row, clip, film] = await repo.insert_many([sentiment(), audio(), video()])

        async with database.session() as session:
            repo = StoredFileRepository(session)
            loaded_row = await repo.find_by_id(row.id)
            loaded_clip = await repo.find_by_id(str(clip.id))
            loaded_film = await repo.find_by_id(film.id)

        assert isinstance(loaded_row, SentimentRecordModel)
        assert loaded_row.topics == [{"topic": "Crypto", "relevance_score": "0.9"}]
        assert loaded_row.overall_sentiment_score == Decimal("0.25")
        assert isinstance(loaded_clip, AudioAssetModel)
        assert loaded_clip.is_media
        assert isinstance(loaded_film, VideoAssetModel)
        assert not loaded_row.is_media

    @pytest.mark.asyncio
    @pytest.mark.parametrize("record_id", ["not-a-uuid", str(uuid.uuid4())])
    async def test_find_by_id_missing(self, database, record_id):
        async with database.session() as session:
            assert await StoredFileRepository(session).find_by_id(record_id) is None

    @pytest.mark.asyncio
    async def test_find_filters(self, database):
        async with database.session() as session:
            await StoredFileRepository(session).insert_many([
                sentiment(owner="alice"),
                audio(owner="alice"),
                video(owner="bob"),
            ])

        async with database.session() as session:
            repo = StoredFileRepository(session)
            alice = await repo.find(owner="alice")
            media_of_alice = await repo.find(owner="alice", kind="audio")
            everything = await repo.find()
            limited = await repo.find(limit=1)

        assert len(alice) == 2
        assert [r.original_name for r in media_of_alice] == ["song.mp3"]
        assert len(everything) == 3
        assert len(limited) == 1

    @pytest.mark.asyncio
    async def test_find_newest_first(self, database):
        async with database.session() as session:
            await StoredFileRepository(session).insert_many([
                audio(filepath="/old.mp3", created_at=T0),
                audio(filepath="/new.mp3", created_at=T0 + timedelta(hours=1)),
            ])

        async with database.session() as session:
            records = await StoredFileRepository(session).find(kind="audio")

        assert [r.filepath for r in records] == ["/new.mp3", "/old.mp3"]

    @pytest.mark.asyncio
    async def test_shared_filepath_count_and_locations(self, database):
        shared = "/vault/20240315/alice/sheet.csv.enc"
        async with database.session() as session:
            rows = await StoredFileRepository(session).insert_many([
                sentiment(filepath=shared),
                sentiment(filepath=shared),
                audio(),
            ])

        async with database.session() as session:
            repo = StoredFileRepository(session)
            count = await repo.count_by_filepath(shared)
            locations = await repo.locations()

        assert count == 2
        assert len(locations) == 3
        assert (str(rows[0].id), shared) in locations


# ============================================================
# UPDATE / DELETE TESTS
# ============================================================

class TestUpdateAndDelete:

    @pytest.mark.asyncio
    async def test_update_sentiment_fields(self, database):
        async with database.session() as session:
            [row] = await StoredFileRepository(session).insert_many([sentiment()])

        async with database.session() as session:
            await StoredFileRepository(session).update_by_id(row.id, {
                "title": "BTC retreats",
                "overall_sentiment_score": Decimal("-0.4"),
                "topics": [],
            })

        async with database.session() as session:
            reloaded = await StoredFileRepository(session).find_by_id(row.id)

        assert reloaded.title == "BTC retreats"
        assert reloaded.overall_sentiment_score == Decimal("-0.4")
        assert reloaded.topics == []
        assert reloaded.authors == ["Alice"]

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_field(self, database):
        async with database.session() as session:
            [row] = await StoredFileRepository(session).insert_many([sentiment()])

        async with database.session() as session:
            with pytest.raises(ValidationError):
                await StoredFileRepository(session).update_by_id(row.id, {"filepath": "/etc/passwd"})

    @pytest.mark.asyncio
    async def test_update_media_is_not_found(self, database):
        async with database.session() as session:
            [clip] = await StoredFileRepository(session).insert_many([audio()])

        async with database.session() as session:
            with pytest.raises(RecordNotFoundError):
                await StoredFileRepository(session).update_by_id(clip.id, {"title": "x"})

    @pytest.mark.asyncio
    async def test_delete_by_id(self, database):
        async with database.session() as session:
            [row, clip] = await StoredFileRepository(session).insert_many([sentiment(), audio()])

        async with database.session() as session:
            repo = StoredFileRepository(session)
            assert await repo.delete_by_id(row.id) is True
            assert await repo.delete_by_id(row.id) is False

        async with database.session() as session:
            repo = StoredFileRepository(session)
            assert await repo.find_by_id(row.id) is None
            assert await repo.find_by_id(clip.id) is not None
            remaining = await repo.find()

        assert all(isinstance(r, StoredFileModel) for r in remaining)
        assert len(remaining) == 1


# ============================================================
# SCORE STORAGE TESTS
# ============================================================

class TestScoreText:
    """Scores come back with exactly the digits they were stored with."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["0.123456789", "0.9", "-0.10", "1E+2"])
    async def test_score_text_preserved(self, database, text):
        async with database.session() as session:
            [row] = await StoredFileRepository(session).insert_many([
                sentiment(overall_sentiment_score=Decimal(text))
            ])

        async with database.session() as session:
            loaded = await StoredFileRepository(session).find_by_id(row.id)

        assert str(loaded.overall_sentiment_score) == text
        assert loaded.to_dict()["overall_sentiment_score"] == text

    @pytest.mark.asyncio
    async def test_missing_score_stays_null(self, database):
        async with database.session() as session:
            [row] = await StoredFileRepository(session).insert_many([
                sentiment(overall_sentiment_score=None)
            ])

        async with database.session() as session:
            loaded = await StoredFileRepository(session).find_by_id(row.id)

        assert loaded.overall_sentiment_score is None
        assert loaded.to_dict()["overall_sentiment_score"] is None
