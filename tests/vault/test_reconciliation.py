"""
Tests for the startup reconciliation sweep.
"""

import dataclasses

import pytest

from vault.reconciliation import ReconciliationSweep


async def ingest(coordinator, make_upload, name, payload):
    [outcome] = (await coordinator.ingest([make_upload(name, payload)])).files
    assert outcome.ok, outcome.error
    return outcome


class TestReconciliationSweep:

    @pytest.mark.asyncio
    async def test_consistent_storage_is_clean(self, coordinator, make_upload, vault_config, database):
        outcome = await ingest(coordinator, make_upload, "song.mp3", b"audio")

        report = await ReconciliationSweep(vault_config, database).run()

        assert report.is_clean
        assert (vault_config.storage_root / "20240315" / "alice" / outcome.encrypted_file).exists()

    @pytest.mark.asyncio
    async def test_stale_plaintext_removed(self, make_upload, vault_config, database):
        leftover = make_upload("interrupted.csv", b"title\nx\n")

        report = await ReconciliationSweep(vault_config, database).run()

        assert not leftover.path.exists()
        assert report.staged_plaintext_removed == [str(leftover.path)]

    @pytest.mark.asyncio
    async def test_orphaned_ciphertext_purged(self, coordinator, make_upload, vault_config, database):
        await ingest(coordinator, make_upload, "song.mp3", b"audio")
        orphan_dir = vault_config.storage_root / "20240101" / "ghost"
        orphan_dir.mkdir(parents=True)
        orphan = orphan_dir / "lost.mp3"
        orphan.write_bytes(b"\x00" * 32)

        report = await ReconciliationSweep(vault_config, database).run()

        assert report.orphaned_ciphertext == [str(orphan)]
        assert report.orphans_removed == [str(orphan)]
        assert not orphan.exists()
        assert not (vault_config.storage_root / "20240101").exists()

    @pytest.mark.asyncio
    async def test_orphans_only_reported_when_purge_disabled(self, vault_config, database):
        config = dataclasses.replace(vault_config, purge_orphans=False)
        orphan_dir = config.storage_root / "20240101" / "ghost"
        orphan_dir.mkdir(parents=True)
        orphan = orphan_dir / "lost.mp3"
        orphan.write_bytes(b"\x00" * 32)

        report = await ReconciliationSweep(config, database).run()

        assert report.orphaned_ciphertext == [str(orphan)]
        assert report.orphans_removed == []
        assert orphan.exists()

    @pytest.mark.asyncio
    async def test_missing_payload_reported_not_deleted(
        self, coordinator, make_upload, vault_config, database, lifecycle
    ):
        outcome = await ingest(coordinator, make_upload, "clip.mp4", b"video")
        (await lifecycle.get(outcome.record_id)).ciphertext_path.unlink()

        report = await ReconciliationSweep(vault_config, database).run()

        assert report.missing_payloads == [outcome.record_id]
        assert (await lifecycle.get(outcome.record_id)).original_name == "clip.mp4"

    @pytest.mark.asyncio
    async def test_non_date_directories_ignored(self, vault_config, database):
        notes = vault_config.storage_root / "notes" / "alice"
        notes.mkdir(parents=True)
        (notes / "todo.txt").write_text("keep me")

        report = await ReconciliationSweep(vault_config, database).run()

        assert report.is_clean
        assert (notes / "todo.txt").exists()
