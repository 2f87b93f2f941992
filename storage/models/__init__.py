"""
ORM Models Package.

Importing this package registers every table on Base.metadata.
"""

from storage.models.base import Base, DecimalText, TimestampMixin
from storage.models.files import (
    KIND_AUDIO,
    KIND_SENTIMENT,
    KIND_VIDEO,
    MEDIA_KINDS,
    MODEL_BY_KIND,
    AudioAssetModel,
    SentimentRecordModel,
    StoredFileModel,
    VideoAssetModel,
)


__all__ = [
    "Base",
    "TimestampMixin",
    "DecimalText",
    "StoredFileModel",
    "SentimentRecordModel",
    "AudioAssetModel",
    "VideoAssetModel",
    "MODEL_BY_KIND",
    "MEDIA_KINDS",
    "KIND_SENTIMENT",
    "KIND_AUDIO",
    "KIND_VIDEO",
]
