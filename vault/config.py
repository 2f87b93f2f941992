"""
Vault - Configuration.

============================================================
PURPOSE
============================================================
All configuration for the encrypted upload vault.

CRITICAL CONSTRAINTS:
- The symmetric key is fixed for the lifetime of the process
- The key is never persisted to disk by the vault
- Configuration objects are immutable once built

============================================================
"""

import binascii
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from core.exceptions import InvalidConfigError, MissingConfigError


KEY_SIZE_BYTES = 32
"""AES-256 key length."""

IV_SIZE_BYTES = 16
"""CBC initialization vector length; also the on-disk ciphertext prefix."""

DEFAULT_CHUNK_SIZE = 64 * 1024
"""Bytes read per streaming step."""

DEFAULT_MAX_MEDIA_BYTES = 10 * 1024 * 1024
"""Size ceiling for audio and video uploads (10 MiB)."""


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


# ============================================================
# CIPHER CONFIGURATION
# ============================================================

@dataclass(frozen=True)
class CipherConfig:
    """
    Key material for the stream cipher codec.

    Built once at startup and injected into the codec.
    """

    key: bytes = field(repr=False)
    """256-bit symmetric key."""

    chunk_size: int = DEFAULT_CHUNK_SIZE
    """Bytes read per streaming step."""

    def __post_init__(self) -> None:
        if len(self.key) != KEY_SIZE_BYTES:
            raise InvalidConfigError(
                "VAULT_ENCRYPTION_KEY",
                f"key must be {KEY_SIZE_BYTES} bytes, got {len(self.key)}",
            )
        if self.chunk_size < IV_SIZE_BYTES:
            raise InvalidConfigError(
                "VAULT_CHUNK_SIZE",
                f"chunk size must be at least {IV_SIZE_BYTES} bytes",
            )

    @classmethod
    def from_hex(cls, hex_key: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> "CipherConfig":
        """Build from a hex-encoded 256-bit key."""
        try:
            key = binascii.unhexlify(hex_key.strip())
        except (binascii.Error, ValueError):
            raise InvalidConfigError("VAULT_ENCRYPTION_KEY", "key is not valid hex") from None
        return cls(key=key, chunk_size=chunk_size)

    @classmethod
    def from_env(cls) -> "CipherConfig":
        """Load key material from environment variables."""
        hex_key = os.getenv("VAULT_ENCRYPTION_KEY")
        if not hex_key:
            raise MissingConfigError("VAULT_ENCRYPTION_KEY")
        return cls.from_hex(
            hex_key,
            chunk_size=int(os.getenv("VAULT_CHUNK_SIZE", str(DEFAULT_CHUNK_SIZE))),
        )


# ============================================================
# VAULT CONFIGURATION
# ============================================================

@dataclass(frozen=True)
class VaultConfig:
    """
    Top-level configuration for storage, limits and wiring.
    """

    cipher: CipherConfig
    """Key material for the codec."""

    storage_root: Path = Path("uploads")
    """Base directory for <YYYYMMDD>/<owner>/ ciphertext partitions."""

    incoming_dir: Optional[Path] = None
    """Plaintext staging area for the HTTP adapter (default: <storage_root>/incoming)."""

    database_url: str = "sqlite+aiosqlite:///./vault.db"
    """SQLAlchemy async URL of the metadata store."""

    max_media_bytes: int = DEFAULT_MAX_MEDIA_BYTES
    """Size ceiling for audio and video uploads."""

    tabular_suffix: str = ".enc"
    """Suffix appended to tabular plaintext names to form the ciphertext name."""

    unknown_owner: str = "UnknownUser"
    """Owner used when an upload carries no owner identifier."""

    reconcile_on_startup: bool = True
    """Run the reconciliation sweep when the application starts."""

    purge_orphans: bool = True
    """Delete unreferenced ciphertext found by the sweep (otherwise only report)."""

    log_level: str = "INFO"
    """Logging level."""

    @property
    def staging_dir(self) -> Path:
        """Resolved plaintext staging directory."""
        return self.incoming_dir or (self.storage_root / "incoming")

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Load configuration from environment variables."""
        incoming = os.getenv("VAULT_INCOMING_DIR")
        return cls(
            cipher=CipherConfig.from_env(),
            storage_root=Path(os.getenv("VAULT_STORAGE_ROOT", "uploads")),
            incoming_dir=Path(incoming) if incoming else None,
            database_url=os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./vault.db"),
            max_media_bytes=int(os.getenv("VAULT_MAX_MEDIA_BYTES", str(DEFAULT_MAX_MEDIA_BYTES))),
            tabular_suffix=os.getenv("VAULT_TABULAR_SUFFIX", ".enc"),
            unknown_owner=os.getenv("VAULT_UNKNOWN_OWNER", "UnknownUser"),
            reconcile_on_startup=_env_bool("VAULT_RECONCILE_ON_STARTUP", "true"),
            purge_orphans=_env_bool("VAULT_PURGE_ORPHANS", "true"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if self.max_media_bytes < 1:
            errors.append("max_media_bytes must be at least 1")

        if not self.tabular_suffix:
            errors.append("tabular_suffix must not be empty")

        if not self.unknown_owner.strip():
            errors.append("unknown_owner must not be blank")

        staging = self.staging_dir.resolve()
        if staging == self.storage_root.resolve():
            errors.append("incoming_dir must differ from storage_root")

        return errors
