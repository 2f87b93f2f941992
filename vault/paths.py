"""
Vault - Path Allocation.

============================================================
PURPOSE
============================================================
Deterministic storage placement for ciphertext blobs.

Layout:
    <storage_root>/<YYYYMMDD>/<owner>/<filename>

- Same owner, same UTC day -> same directory
- Different day -> different directory
- Filename uniqueness is the caller's job (see mint_unique_name)

============================================================
"""

import logging
import re
import uuid
from pathlib import Path
from typing import Optional

from core.clock import ClockProtocol, get_clock
from core.exceptions import StorageWriteFailed


logger = logging.getLogger(__name__)


DATE_FOLDER_PATTERN = re.compile(r"^\d{8}$")

_UNSAFE_SEGMENT = re.compile(r"[\\/\x00]")


def owner_segment(owner: str) -> str:
    """Make an owner identifier safe to use as one directory name."""
    segment = _UNSAFE_SEGMENT.sub("_", owner.strip())
    if segment in (".", ".."):
        segment = segment.replace(".", "_")
    return segment


def mint_unique_name(original_name: str) -> str:
    """Unguessable file name that keeps only the original extension."""
    return f"{uuid.uuid4().hex}{Path(original_name).suffix.lower()}"


class PathAllocator:
    """
    Resolves and creates the per-day, per-owner storage directory.
    """

    def __init__(
        self,
        base_dir: Path,
        clock: Optional[ClockProtocol] = None,
        unknown_owner: str = "UnknownUser",
    ):
        self._base_dir = Path(base_dir)
        self._clock = clock or get_clock()
        self._unknown_owner = unknown_owner

    def resolve_owner(self, owner: Optional[str]) -> str:
        """Owner identifier with the unknown-owner fallback applied."""
        if owner is None or not owner.strip():
            return self._unknown_owner
        return owner.strip()

    def directory_for(self, owner: Optional[str]) -> Path:
        """Directory for `owner` today, without touching the filesystem."""
        segment = owner_segment(self.resolve_owner(owner))
        return self._base_dir / self._clock.date_folder() / segment

    def allocate(self, owner: Optional[str]) -> Path:
        """
        Directory for `owner` today, created if missing.

        Raises:
            StorageWriteFailed: the directory could not be created
        """
        directory = self.directory_for(owner)
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageWriteFailed(
                f"Failed to create storage directory: {e.strerror or e}",
                path=str(directory),
                operation="allocate",
                cause=e,
            ) from e
        logger.debug(f"Allocated storage directory {directory}")
        return directory
