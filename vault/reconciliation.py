"""
Vault - Reconciliation Sweep.

============================================================
PURPOSE
============================================================
Repairs what an interrupted ingestion or deletion leaves behind.
Runs once at startup, before requests are served.

============================================================
ACTIONS
============================================================
- Stale plaintext in the staging area      -> deleted
- Ciphertext no record references          -> deleted (or only
                                              reported when
                                              purge_orphans is off)
- Record whose ciphertext is missing        -> reported only

Only <storage_root>/<YYYYMMDD>/<owner>/ directories are walked.

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Set, Tuple

from storage.database import Database
from storage.repositories import StoredFileRepository
from .config import VaultConfig
from .paths import DATE_FOLDER_PATTERN


logger = logging.getLogger(__name__)


@dataclass
class ReconciliationReport:
    """What one sweep found and did."""

    staged_plaintext_removed: List[str] = field(default_factory=list)
    orphaned_ciphertext: List[str] = field(default_factory=list)
    orphans_removed: List[str] = field(default_factory=list)
    missing_payloads: List[str] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not (
            self.staged_plaintext_removed
            or self.orphaned_ciphertext
            or self.missing_payloads
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "staged_plaintext_removed": list(self.staged_plaintext_removed),
            "orphaned_ciphertext": list(self.orphaned_ciphertext),
            "orphans_removed": list(self.orphans_removed),
            "missing_payloads": list(self.missing_payloads),
        }


def iter_ciphertext_files(storage_root: Path) -> Iterator[Path]:
    """Files under <root>/<YYYYMMDD>/<owner>/."""
    if not storage_root.is_dir():
        return
    for date_dir in sorted(storage_root.iterdir()):
        if not date_dir.is_dir() or not DATE_FOLDER_PATTERN.match(date_dir.name):
            continue
        for owner_dir in sorted(date_dir.iterdir()):
            if not owner_dir.is_dir():
                continue
            for path in sorted(owner_dir.iterdir()):
                if path.is_file():
                    yield path


def _prune_empty_parents(path: Path, stop_at: Path) -> None:
    parent = path.parent
    while parent != stop_at and parent.is_dir() and not any(parent.iterdir()):
        parent.rmdir()
        parent = parent.parent


class ReconciliationSweep:
    """
    Brings disk and metadata back into agreement.
    """

    def __init__(self, config: VaultConfig, database: Database):
        self._config = config
        self._database = database

    async def run(self) -> ReconciliationReport:
        report = ReconciliationReport()
        logger.info(f"Reconciliation sweep starting under {self._config.storage_root}")

        await asyncio.to_thread(self._clear_staging, report)

        async with self._database.session() as session:
            locations = await StoredFileRepository(session).locations()

        referenced = await asyncio.to_thread(self._check_payloads, locations, report)
        await asyncio.to_thread(self._sweep_orphans, referenced, report)

        if report.is_clean:
            logger.info("Reconciliation sweep: storage consistent")
        else:
            logger.warning(
                f"Reconciliation sweep: {len(report.staged_plaintext_removed)} plaintext removed, "
                f"{len(report.orphaned_ciphertext)} orphaned ciphertext "
                f"({len(report.orphans_removed)} removed), "
                f"{len(report.missing_payloads)} record(s) missing payload"
            )
        return report

    def _clear_staging(self, report: ReconciliationReport) -> None:
        staging = self._config.staging_dir
        if not staging.is_dir():
            return
        for path in sorted(staging.iterdir()):
            if path.is_file():
                path.unlink(missing_ok=True)
                report.staged_plaintext_removed.append(str(path))
                logger.info(f"Removed stale plaintext {path}")

    def _check_payloads(self, locations: List[Tuple[str, str]], report: ReconciliationReport) -> Set[Path]:
        referenced: Set[Path] = set()
        for record_id, filepath in locations:
            path = Path(filepath)
            referenced.add(path.resolve())
            if not path.exists():
                report.missing_payloads.append(record_id)
                logger.warning(f"Record {record_id} has no ciphertext at {filepath}")
        return referenced

    def _sweep_orphans(self, referenced: Set[Path], report: ReconciliationReport) -> None:
        root = self._config.storage_root
        for path in iter_ciphertext_files(root):
            if path.resolve() in referenced:
                continue
            report.orphaned_ciphertext.append(str(path))
            if not self._config.purge_orphans:
                logger.warning(f"Orphaned ciphertext (kept): {path}")
                continue
            path.unlink(missing_ok=True)
            _prune_empty_parents(path, root)
            report.orphans_removed.append(str(path))
            logger.info(f"Removed orphaned ciphertext {path}")
