"""
Pydantic Schemas for the Vault HTTP API.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .types import FileKind, OutcomeStatus


# =============================================================
# UPLOAD
# =============================================================

class FileOutcomeResponse(BaseModel):
    """Outcome of one uploaded file."""
    original_name: str
    file_type: FileKind
    status: OutcomeStatus
    message: Optional[str] = None
    error: Optional[str] = None
    records_saved: Optional[int] = None
    record_id: Optional[str] = None
    encrypted_file: Optional[str] = None
    folder: Optional[str] = None


class UploadResponse(BaseModel):
    """Per-file outcomes of one upload request, in input order."""
    processed: int
    succeeded: int
    failed: int
    files: List[FileOutcomeResponse]


# =============================================================
# STORED FILES
# =============================================================

class TopicSchema(BaseModel):
    topic: str
    relevance_score: str = ""


class TickerSentimentSchema(BaseModel):
    ticker: str
    ticker_sentiment_label: str = ""
    relevance_score: str = ""
    ticker_sentiment_score: str = ""


class StoredFileResponse(BaseModel):
    """Metadata of a stored file. Sentiment fields are null for media."""
    id: str
    kind: FileKind
    uploaded_by: str
    original_name: str
    size_bytes: int
    content_type: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    title: Optional[str] = None
    url: Optional[str] = None
    time_published: Optional[str] = None
    authors: Optional[List[str]] = None
    summary: Optional[str] = None
    banner_image: Optional[str] = None
    source: Optional[str] = None
    category_within_source: Optional[str] = None
    source_domain: Optional[str] = None
    overall_sentiment_score: Optional[str] = None
    overall_sentiment_label: Optional[str] = None
    topics: Optional[List[TopicSchema]] = None
    ticker_sentiment: Optional[List[TickerSentimentSchema]] = None


class StoredFileListResponse(BaseModel):
    files: List[StoredFileResponse]
    count: int


class SentimentRecordUpdate(BaseModel):
    """
    Partial update of a sentiment record.

    Only fields present in the request body are changed. Topic and
    ticker lists accept either structured entries or the compact
    `name(value), ...` text form.
    """
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    url: Optional[str] = None
    time_published: Optional[str] = None
    authors: Optional[Union[List[str], str]] = None
    summary: Optional[str] = None
    banner_image: Optional[str] = None
    source: Optional[str] = None
    category_within_source: Optional[str] = None
    source_domain: Optional[str] = None
    overall_sentiment_score: Optional[Union[float, str]] = Field(
        None, description="Decimal value; null clears it"
    )
    overall_sentiment_label: Optional[str] = None
    topics: Optional[Union[List[TopicSchema], str]] = None
    ticker_sentiment: Optional[Union[List[TickerSentimentSchema], str]] = None

    def to_patch(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class DeletionResponse(BaseModel):
    id: str
    ciphertext_removed: bool
    ciphertext_path: str
