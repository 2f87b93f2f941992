"""
Tests for the Ingestion Coordinator.

============================================================
PURPOSE
============================================================
Covers the per-file state machine end to end against a real
SQLite metadata store and a temporary storage root:
1. Classification and validation rejects
2. Sentiment sheets: parse, normalize, encrypt, persist
3. Media: encrypt, persist
4. Plaintext removal on every terminal state
5. Ciphertext compensation when metadata insert fails

============================================================
"""

import asyncio
import os
from unittest.mock import AsyncMock, patch

import pytest

from storage.models import KIND_SENTIMENT, SentimentRecordModel
from storage.repositories import QueryError, StoredFileRepository
from vault.types import FileKind, OutcomeStatus
from tests.vault.test_cipher import collect


MIB = 1024 * 1024


def ciphertext_files(storage_root):
    return sorted(
        p for p in storage_root.rglob("*")
        if p.is_file() and p.parent.parent.parent == storage_root
    )


async def decrypt_file(codec, path):
    return await collect(await codec.open_decrypt(path))


# ============================================================
# REJECTION TESTS
# ============================================================

class TestRejections:
    """Uploads that never reach encryption."""

    @pytest.mark.asyncio
    async def test_zero_byte_upload(self, coordinator, make_upload, vault_config, lifecycle):
        upload = make_upload("empty.csv", b"")

        report = await coordinator.ingest([upload])

        [outcome] = report.files
        assert outcome.status == OutcomeStatus.ERROR
        assert outcome.error == "file is empty"
        assert not upload.path.exists()
        assert ciphertext_files(vault_config.storage_root) == []
        assert await lifecycle.list_files() == []

    @pytest.mark.asyncio
    async def test_unsupported_extension(self, coordinator, make_upload, vault_config):
        upload = make_upload("notes.txt", b"hello")

        [outcome] = (await coordinator.ingest([upload])).files

        assert outcome.file_type == FileKind.UNSUPPORTED
        assert outcome.error == "invalid file type"
        assert not upload.path.exists()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["big.mp3", "big.mp4"])
    async def test_oversized_media(self, coordinator, make_upload, vault_config, lifecycle, name):
        upload = make_upload(name, b"\x00" * (11 * MIB))

        [outcome] = (await coordinator.ingest([upload])).files

        assert outcome.error == "size limit exceeded"
        assert not upload.path.exists()
        assert ciphertext_files(vault_config.storage_root) == []
        assert await lifecycle.list_files() == []

    @pytest.mark.asyncio
    async def test_size_limit_not_applied_to_sheets(self, coordinator, make_upload, vault_config):
        header = b"title,summary\n"
        body = b"Row," + b"x" * (11 * MIB) + b"\n"
        upload = make_upload("wide.csv", header + body)

        [outcome] = (await coordinator.ingest([upload])).files

        assert outcome.ok

    @pytest.mark.asyncio
    async def test_sheet_without_rows(self, coordinator, make_upload, vault_config):
        upload = make_upload("header.csv", b"title,url\n")

        [outcome] = (await coordinator.ingest([upload])).files

        assert outcome.error == "file contains no data"
        assert not upload.path.exists()
        assert ciphertext_files(vault_config.storage_root) == []

    @pytest.mark.asyncio
    async def test_bad_score_names_row(self, coordinator, make_upload, lifecycle):
        upload = make_upload("bad.csv", b"title,overall_sentiment_score\nA,0.1\nB,lots\n")

        [outcome] = (await coordinator.ingest([upload])).files

        assert outcome.status == OutcomeStatus.ERROR
        assert "Row 2" in outcome.error
        assert await lifecycle.list_files() == []


# ============================================================
# SUCCESS TESTS
# ============================================================

class TestSentimentIngestion:

    @pytest.mark.asyncio
    async def test_sheet_stored_encrypted(
        self, coordinator, make_upload, sentiment_csv, vault_config, codec, lifecycle
    ):
        upload = make_upload("news.csv", sentiment_csv, owner="alice")

        report = await coordinator.ingest([upload])

        [outcome] = report.files
        assert outcome.ok, outcome.error
        assert outcome.records_saved == 2
        assert outcome.encrypted_file == f"{upload.path.name}.enc"
        assert outcome.folder == str(vault_config.storage_root / "20240315" / "alice")

        ciphertext = vault_config.storage_root / "20240315" / "alice" / outcome.encrypted_file
        assert ciphertext.exists()
        assert not upload.path.exists()
        assert sentiment_csv not in ciphertext.read_bytes()
        assert await decrypt_file(codec, ciphertext) == sentiment_csv

        records = await lifecycle.list_files(kind=FileKind.SENTIMENT)
        assert len(records) == 2
        by_title = {r.title: r for r in records}
        btc = by_title["BTC rallies"]
        assert isinstance(btc, SentimentRecordModel)
        assert btc.kind == KIND_SENTIMENT
        assert btc.uploaded_by == "alice"
        assert btc.authors == ["Alice", "Bob"]
        assert btc.topics == [
            {"topic": "Crypto", "relevance_score": "0.9"},
            {"topic": "Markets", "relevance_score": "0.5"},
        ]
        assert by_title["ETH dips"].ticker_sentiment == [{
            "ticker": "ETH",
            "ticker_sentiment_label": "Bearish",
            "relevance_score": "",
            "ticker_sentiment_score": "",
        }]
        assert {r.filepath for r in records} == {str(ciphertext)}

    @pytest.mark.asyncio
    async def test_scores_keep_uploaded_text(self, coordinator, make_upload, lifecycle):
        upload = make_upload(
            "scores.csv",
            b"title,overall_sentiment_score\nPrecise,0.123456789\nShort,0.9\n",
        )

        [outcome] = (await coordinator.ingest([upload])).files

        assert outcome.ok, outcome.error
        records = await lifecycle.list_files()
        scores = {r.title: r.to_dict()["overall_sentiment_score"] for r in records}
        assert scores == {"Precise": "0.123456789", "Short": "0.9"}

    @pytest.mark.asyncio
    async def test_same_sheet_twice_same_day(self, coordinator, make_upload, sentiment_csv, vault_config):
        first = (await coordinator.ingest([make_upload("news.csv", sentiment_csv)])).files[0]
        second = (await coordinator.ingest([make_upload("news.csv", sentiment_csv)])).files[0]

        assert first.folder == second.folder
        assert first.encrypted_file != second.encrypted_file
        assert len(ciphertext_files(vault_config.storage_root)) == 2


class TestMediaIngestion:

    @pytest.mark.asyncio
    async def test_audio_stored_encrypted(self, coordinator, make_upload, vault_config, codec, lifecycle):
        payload = os.urandom(50_000)
        upload = make_upload("Song.MP3", payload, owner="bob")

        [outcome] = (await coordinator.ingest([upload])).files

        assert outcome.ok
        assert outcome.file_type == FileKind.AUDIO
        assert outcome.encrypted_file.endswith(".mp3")
        assert "Song" not in outcome.encrypted_file

        record = await lifecycle.get(outcome.record_id)
        assert record.kind == "audio"
        assert record.owner_id == "bob"
        assert record.original_name == "Song.MP3"
        assert record.size_bytes == len(payload)
        assert record.content_type == "audio/mpeg"
        assert record.ciphertext_path.parent == vault_config.storage_root / "20240315" / "bob"
        assert await decrypt_file(codec, record.ciphertext_path) == payload

    @pytest.mark.asyncio
    async def test_media_at_exact_limit_accepted(self, coordinator, make_upload, vault_config):
        upload = make_upload("edge.wav", b"\x01" * vault_config.max_media_bytes)

        [outcome] = (await coordinator.ingest([upload])).files

        assert outcome.ok

    @pytest.mark.asyncio
    async def test_missing_owner_goes_to_unknown_user(self, coordinator, make_upload, vault_config, lifecycle):
        upload = make_upload("clip.mp4", b"video-bytes", owner=None)

        [outcome] = (await coordinator.ingest([upload])).files

        assert outcome.folder.endswith("UnknownUser")
        record = await lifecycle.get(outcome.record_id)
        assert record.uploaded_by == "UnknownUser"


# ============================================================
# BATCH AND FAILURE TESTS
# ============================================================

class TestBatch:

    @pytest.mark.asyncio
    async def test_outcomes_in_input_order(self, coordinator, make_upload, sentiment_csv):
        uploads = [
            make_upload("readme.txt", b"text"),
            make_upload("song.mp3", b"audio"),
            make_upload("empty.wav", b""),
            make_upload("news.csv", sentiment_csv),
        ]

        report = await coordinator.ingest(uploads)

        assert [o.original_name for o in report.files] == [u.original_name for u in uploads]
        assert [o.ok for o in report.files] == [False, True, False, True]
        assert report.succeeded == 2
        assert report.failed == 2
        assert report.to_dict()["processed"] == 4
        assert all(not u.path.exists() for u in uploads)

    @pytest.mark.asyncio
    async def test_outcome_serialization(self, coordinator, make_upload):
        report = await coordinator.ingest([
            make_upload("song.mp3", b"audio"),
            make_upload("bad.exe", b"MZ"),
        ])

        ok, failed = report.to_dict()["files"]
        assert ok["status"] == "success"
        assert ok["record_id"]
        assert "error" not in ok
        assert failed == {
            "original_name": "bad.exe",
            "file_type": "unsupported",
            "status": "error",
            "error": "invalid file type",
        }

    @pytest.mark.asyncio
    async def test_metadata_failure_removes_ciphertext(self, coordinator, make_upload, vault_config):
        upload = make_upload("song.mp3", b"audio-bytes")
        failing = AsyncMock(side_effect=QueryError("StoredFileRepository", "insert_many", "disk full"))

        with patch.object(StoredFileRepository, "insert_many", failing):
            [outcome] = (await coordinator.ingest([upload])).files

        assert outcome.status == OutcomeStatus.ERROR
        assert "metadata store error" in outcome.error
        assert failing.await_count == 1
        assert ciphertext_files(vault_config.storage_root) == []
        assert not upload.path.exists()

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_batch(self, coordinator, make_upload, lifecycle):
        calls = []
        original = StoredFileRepository.insert_many

        async def fail_first(self, records):
            calls.append(len(records))
            if len(calls) == 1:
                raise QueryError("StoredFileRepository", "insert_many", "locked")
            return await original(self, records)

        with patch.object(StoredFileRepository, "insert_many", fail_first):
            report = await coordinator.ingest([
                make_upload("one.mp3", b"1"),
                make_upload("two.mp3", b"2"),
            ])

        assert [o.ok for o in report.files] == [False, True]
        assert len(await lifecycle.list_files()) == 1


# ============================================================
# FILESYSTEM FAULT TESTS
# ============================================================

class TestFilesystemFaults:
    """Disk-side failures become per-file outcomes."""

    @pytest.mark.asyncio
    async def test_owner_name_too_long_for_directory(
        self, coordinator, make_upload, sentiment_csv, vault_config, lifecycle
    ):
        clip = make_upload("clip.mp3", b"x" * 100, owner="a" * 300)
        sheet = make_upload("sheet.csv", sentiment_csv, owner="bob")

        report = await coordinator.ingest([clip, sheet])

        assert [o.status for o in report.files] == [OutcomeStatus.ERROR, OutcomeStatus.SUCCESS]
        assert report.files[0].error.startswith("Failed to create storage directory")
        assert not clip.path.exists()
        assert not sheet.path.exists()
        stored = await lifecycle.list_files()
        assert {record.uploaded_by for record in stored} == {"bob"}

    @pytest.mark.asyncio
    async def test_unwrapped_os_error_is_contained(
        self, coordinator, allocator, make_upload, monkeypatch, lifecycle
    ):
        original = allocator.allocate
        calls = []

        def deny_first(owner):
            calls.append(owner)
            if len(calls) == 1:
                raise PermissionError(13, "Permission denied")
            return original(owner)

        monkeypatch.setattr(allocator, "allocate", deny_first)
        first = make_upload("one.wav", b"1")
        second = make_upload("two.wav", b"2")

        report = await coordinator.ingest([first, second])

        assert [o.ok for o in report.files] == [False, True]
        assert report.files[0].error == "storage error: Permission denied"
        assert not first.path.exists()
        assert len(await lifecycle.list_files()) == 1

    @pytest.mark.asyncio
    async def test_disk_calls_leave_event_loop(self, coordinator, make_upload, monkeypatch):
        offloaded = []
        original = asyncio.to_thread

        async def recording(func, *args, **kwargs):
            offloaded.append(func.__name__)
            return await original(func, *args, **kwargs)

        monkeypatch.setattr(asyncio, "to_thread", recording)

        report = await coordinator.ingest([make_upload("clip.mp3", b"x" * 100)])

        assert report.files[0].ok
        assert "allocate" in offloaded
        assert "unlink" in offloaded
