"""
Stored File ORM Models.

============================================================
PURPOSE
============================================================
Metadata records for every ciphertext blob held by the vault.

============================================================
VARIANTS (joined-table inheritance on stored_files)
============================================================
- SentimentRecordModel: one row of an uploaded sentiment sheet
- AudioAssetModel: one uploaded audio file
- VideoAssetModel: one uploaded video file

All variants answer `owner_id` and `ciphertext_path`, which is
all retrieval, deletion and reconciliation need to know.

============================================================
DATA LIFECYCLE
============================================================
- Created once, after its ciphertext has been written
- Mutated only through the sentiment update operation
- Deleted after its ciphertext has been removed

============================================================
"""

import uuid
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, BigInteger, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from storage.models.base import Base, DecimalText, TimestampMixin


KIND_SENTIMENT = "sentiment"
KIND_AUDIO = "audio"
KIND_VIDEO = "video"
MEDIA_KINDS = (KIND_AUDIO, KIND_VIDEO)


class StoredFileModel(Base, TimestampMixin):
    """
    Common metadata of every stored file.

    ============================================================
    INVARIANT
    ============================================================
    `filepath` points at a ciphertext whose first 16 bytes are
    the IV used to encrypt it.

    ============================================================
    """

    __tablename__ = "stored_files"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
        comment="Unique identifier of the stored file"
    )

    kind: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        index=True,
        comment="Variant discriminator: sentiment, audio or video"
    )

    uploaded_by: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        comment="Opaque owner identifier"
    )

    filepath: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        index=True,
        comment="Location of the IV-prefixed ciphertext"
    )

    original_name: Mapped[str] = mapped_column(
        String(512),
        nullable=False,
        comment="File name as uploaded"
    )

    size_bytes: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        comment="Plaintext size in bytes"
    )

    content_type: Mapped[Optional[str]] = mapped_column(
        String(128),
        nullable=True,
        comment="MIME type hint for streaming"
    )

    __mapper_args__ = {
        "polymorphic_on": "kind",
        "polymorphic_identity": "stored_file",
    }

    @property
    def owner_id(self) -> str:
        return self.uploaded_by

    @property
    def ciphertext_path(self) -> Path:
        return Path(self.filepath)

    @property
    def is_media(self) -> bool:
        return self.kind in MEDIA_KINDS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "kind": self.kind,
            "uploaded_by": self.uploaded_by,
            "original_name": self.original_name,
            "size_bytes": self.size_bytes,
            "content_type": self.content_type,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id} owner={self.uploaded_by!r}>"


class SentimentRecordModel(StoredFileModel):
    """
    One normalized row of a market-sentiment sheet.

    Topics and ticker sentiments are embedded JSON lists: they have
    no identity of their own and live and die with the row. Their
    scores are kept as the text that arrived.
    """

    __tablename__ = "sentiment_records"

    id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("stored_files.id", ondelete="CASCADE"),
        primary_key=True,
    )

    title: Mapped[Optional[str]] = mapped_column(Text)
    url: Mapped[Optional[str]] = mapped_column(Text)
    time_published: Mapped[Optional[str]] = mapped_column(String(64))
    authors: Mapped[List[str]] = mapped_column(JSON, default=list)
    summary: Mapped[Optional[str]] = mapped_column(Text)
    banner_image: Mapped[Optional[str]] = mapped_column(Text)
    source: Mapped[Optional[str]] = mapped_column(String(255))
    category_within_source: Mapped[Optional[str]] = mapped_column(String(255))
    source_domain: Mapped[Optional[str]] = mapped_column(String(255))

    overall_sentiment_score: Mapped[Optional[Decimal]] = mapped_column(
        DecimalText,
        nullable=True,
        comment="Exact decimal text as uploaded",
    )
    overall_sentiment_label: Mapped[Optional[str]] = mapped_column(String(64))

    topics: Mapped[List[Dict[str, str]]] = mapped_column(
        JSON,
        default=list,
        comment="Ordered [{topic, relevance_score}]"
    )

    ticker_sentiment: Mapped[List[Dict[str, str]]] = mapped_column(
        JSON,
        default=list,
        comment="Ordered [{ticker, relevance_score, ticker_sentiment_score, ticker_sentiment_label}]"
    )

    __mapper_args__ = {
        "polymorphic_identity": KIND_SENTIMENT,
        "polymorphic_load": "inline",
    }

    UPDATABLE_FIELDS = frozenset({
        "title",
        "url",
        "time_published",
        "authors",
        "summary",
        "banner_image",
        "source",
        "category_within_source",
        "source_domain",
        "overall_sentiment_score",
        "overall_sentiment_label",
        "topics",
        "ticker_sentiment",
    })

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        score = self.overall_sentiment_score
        data.update({
            "title": self.title,
            "url": self.url,
            "time_published": self.time_published,
            "authors": list(self.authors or []),
            "summary": self.summary,
            "banner_image": self.banner_image,
            "source": self.source,
            "category_within_source": self.category_within_source,
            "source_domain": self.source_domain,
            "overall_sentiment_score": str(score) if score is not None else None,
            "overall_sentiment_label": self.overall_sentiment_label,
            "topics": list(self.topics or []),
            "ticker_sentiment": list(self.ticker_sentiment or []),
        })
        return data


class AudioAssetModel(StoredFileModel):
    """An uploaded audio file."""

    __mapper_args__ = {"polymorphic_identity": KIND_AUDIO}


class VideoAssetModel(StoredFileModel):
    """An uploaded video file."""

    __mapper_args__ = {"polymorphic_identity": KIND_VIDEO}


MODEL_BY_KIND = {
    KIND_SENTIMENT: SentimentRecordModel,
    KIND_AUDIO: AudioAssetModel,
    KIND_VIDEO: VideoAssetModel,
}
