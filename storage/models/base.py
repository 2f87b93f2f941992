"""
Declarative Base for Vault Metadata.

Every table of the metadata store hangs off `Base`. Timestamps are
timezone-aware UTC everywhere.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import DateTime, String, func
from sqlalchemy.types import TypeDecorator
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DecimalText(TypeDecorator):
    """Decimal stored as its exact text; reads give back the same digits."""

    impl = String(64)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect) -> Optional[str]:
        if value is None:
            return None
        return str(value if isinstance(value, Decimal) else Decimal(str(value)))

    def process_result_value(self, value: Any, dialect) -> Optional[Decimal]:
        if value is None:
            return None
        return Decimal(value)


class Base(DeclarativeBase):
    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }


class TimestampMixin:
    """
    created_at / updated_at columns.

    Filled in on the Python side so the values are present on the
    instance after flush; async sessions cannot lazy-load a server
    default. Callers may also set them explicitly (ingestion stamps
    records with the injected clock).
    """

    created_at: Mapped[datetime] = mapped_column(
        default=utc_now,
        server_default=func.now(),
        comment="When the file was stored (UTC)",
    )

    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now,
        onupdate=utc_now,
        server_default=func.now(),
        comment="Last metadata change (UTC)",
    )
