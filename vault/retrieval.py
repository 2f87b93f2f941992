"""
Vault - Retrieval Streamer.

============================================================
PURPOSE
============================================================
Serves stored media back as decrypted byte streams.

1. Look up metadata by id (media variants only)
2. Open the ciphertext and consume its 16-byte IV
3. Stream decrypted chunks to the caller

Nothing is emitted until the IV has been read, so a missing or
truncated payload fails before any response bytes go out.

============================================================
ERRORS
============================================================
- NotFound: no media record with this id
- PayloadMissingError: record exists, ciphertext file does not
- MalformedCiphertext: ciphertext shorter than an IV or badly padded

============================================================
"""

import logging
from dataclasses import dataclass
from typing import AsyncIterator, Protocol

from core.exceptions import NotFound, PayloadMissingError
from storage.database import Database
from storage.repositories import StoredFileRepository
from .cipher import DecryptedStream, StreamCipherCodec
from .types import DEFAULT_CONTENT_TYPES, FileKind


logger = logging.getLogger(__name__)


class ResponseSink(Protocol):
    """Anything that accepts a content type and decrypted chunks."""

    def set_content_type(self, content_type: str) -> None:
        ...

    async def write(self, chunk: bytes) -> None:
        ...


@dataclass
class RetrievedMedia:
    """An opened media payload, ready to iterate."""

    record_id: str
    kind: FileKind
    original_name: str
    size_bytes: int
    content_type: str
    stream: DecryptedStream

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self.stream.__aiter__()

    async def aclose(self) -> None:
        await self.stream.aclose()


class RetrievalStreamer:
    """
    Resolves ids to media and decrypts them on the fly.
    """

    def __init__(self, database: Database, codec: StreamCipherCodec):
        self._database = database
        self._codec = codec

    async def open(self, record_id: str) -> RetrievedMedia:
        """
        Resolve `record_id` and open its payload.

        The returned object owns an open file; iterate it to the end
        or call aclose().
        """
        async with self._database.session() as session:
            record = await StoredFileRepository(session).find_by_id(record_id)

        if record is None or not record.is_media:
            raise NotFound(record_id)

        kind = FileKind(record.kind)
        try:
            stream = await self._codec.open_decrypt(record.ciphertext_path)
        except FileNotFoundError as e:
            logger.error(f"Payload missing for {record_id} at {record.filepath}")
            raise PayloadMissingError(record_id, record.filepath, cause=e) from e

        logger.info(f"Streaming {kind.value} {record_id} owned by {record.owner_id!r}")
        return RetrievedMedia(
            record_id=str(record.id),
            kind=kind,
            original_name=record.original_name,
            size_bytes=record.size_bytes,
            content_type=record.content_type or DEFAULT_CONTENT_TYPES[kind],
            stream=stream,
        )

    async def pipe(self, record_id: str, sink: ResponseSink) -> int:
        """
        Decrypt `record_id` straight into `sink`.

        Returns:
            Number of plaintext bytes written
        """
        media = await self.open(record_id)
        sink.set_content_type(media.content_type)

        written = 0
        async with media.stream:
            async for chunk in media:
                await sink.write(chunk)
                written += len(chunk)

        logger.info(f"Streamed {written} bytes of {record_id}")
        return written

