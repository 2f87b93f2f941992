"""
Vault - Stream Cipher Codec.

============================================================
PURPOSE
============================================================
AES-256-CBC encryption and decryption over async byte streams.

Ciphertext layout:
    [16-byte IV][CBC ciphertext of PKCS7-padded plaintext]

- Fresh random IV per encryption
- Plaintext is never held in memory as a whole
- No authentication tag: tampering is not detected

============================================================
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import AsyncIterable, AsyncIterator, Optional

import aiofiles
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from core.exceptions import MalformedCiphertext, StorageReadFailed, StorageWriteFailed
from .config import CipherConfig, IV_SIZE_BYTES


logger = logging.getLogger(__name__)


BLOCK_SIZE_BITS = algorithms.AES.block_size
BLOCK_SIZE_BYTES = BLOCK_SIZE_BITS // 8


async def read_chunks(path: Path, chunk_size: int) -> AsyncIterator[bytes]:
    """Yield a file's bytes in chunks; read failures become StorageReadFailed."""
    try:
        async with aiofiles.open(path, "rb") as handle:
            while True:
                chunk = await handle.read(chunk_size)
                if not chunk:
                    break
                yield chunk
    except OSError as e:
        raise StorageReadFailed(
            f"Failed to read {path}: {e}", path=str(path), operation="read", cause=e
        ) from e


# ============================================================
# DECRYPTED STREAM
# ============================================================

class DecryptedStream:
    """
    Plaintext view over an opened ciphertext file.

    The IV has already been consumed when this object exists;
    iterating yields decrypted bytes and closes the file at the end.
    """

    def __init__(self, codec: "StreamCipherCodec", handle, iv: bytes, path: Path):
        self._codec = codec
        self._handle = handle
        self._iv = iv
        self._path = path
        self._closed = False

    @property
    def path(self) -> Path:
        return self._path

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._generate()

    async def __aenter__(self) -> "DecryptedStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def _read_body(self) -> AsyncIterator[bytes]:
        while True:
            try:
                chunk = await self._handle.read(self._codec.chunk_size)
            except OSError as e:
                raise StorageReadFailed(
                    f"Failed to read {self._path}: {e}",
                    path=str(self._path),
                    operation="read",
                    cause=e,
                ) from e
            if not chunk:
                break
            yield chunk

    async def _generate(self) -> AsyncIterator[bytes]:
        try:
            async for piece in self._codec.decrypt_body(self._iv, self._read_body(), path=self._path):
                yield piece
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if not self._closed:
            self._closed = True
            await self._handle.close()


# ============================================================
# CODEC
# ============================================================

class StreamCipherCodec:
    """
    Encrypts and decrypts byte streams under one immutable key.

    Safe to share across concurrent tasks: the only state is the
    frozen CipherConfig, every call builds its own cipher context.
    """

    def __init__(self, config: CipherConfig):
        self._config = config

    @property
    def chunk_size(self) -> int:
        return self._config.chunk_size

    def _cipher(self, iv: bytes) -> Cipher:
        return Cipher(algorithms.AES(self._config.key), modes.CBC(iv))

    # --------------------------------------------------------
    # STREAM LEVEL
    # --------------------------------------------------------

    async def encrypt(self, chunks: AsyncIterable[bytes]) -> AsyncIterator[bytes]:
        """Yield the IV, then the ciphertext of `chunks`."""
        iv = os.urandom(IV_SIZE_BYTES)
        encryptor = self._cipher(iv).encryptor()
        padder = padding.PKCS7(BLOCK_SIZE_BITS).padder()

        yield iv

        async for chunk in chunks:
            out = encryptor.update(padder.update(chunk))
            if out:
                yield out

        yield encryptor.update(padder.finalize()) + encryptor.finalize()

    async def decrypt(self, chunks: AsyncIterable[bytes]) -> AsyncIterator[bytes]:
        """Read the leading IV from `chunks`, then yield plaintext."""
        iterator = chunks.__aiter__()
        head = b""
        while len(head) < IV_SIZE_BYTES:
            try:
                head += await iterator.__anext__()
            except StopAsyncIteration:
                raise MalformedCiphertext(
                    f"Ciphertext too short for IV: {len(head)} bytes"
                ) from None

        async def remainder() -> AsyncIterator[bytes]:
            if len(head) > IV_SIZE_BYTES:
                yield head[IV_SIZE_BYTES:]
            async for chunk in iterator:
                yield chunk

        async for piece in self.decrypt_body(head[:IV_SIZE_BYTES], remainder()):
            yield piece

    async def decrypt_body(
        self,
        iv: bytes,
        chunks: AsyncIterable[bytes],
        path: Optional[Path] = None,
    ) -> AsyncIterator[bytes]:
        """Decrypt the bytes that follow an already-consumed IV."""
        decryptor = self._cipher(iv).decryptor()
        unpadder = padding.PKCS7(BLOCK_SIZE_BITS).unpadder()
        where = str(path) if path else None
        total = 0

        async for chunk in chunks:
            total += len(chunk)
            out = unpadder.update(decryptor.update(chunk))
            if out:
                yield out

        if total == 0 or total % BLOCK_SIZE_BYTES:
            raise MalformedCiphertext(
                f"Ciphertext body of {total} bytes is not a whole number of blocks",
                path=where,
            )

        try:
            tail = unpadder.update(decryptor.finalize()) + unpadder.finalize()
        except ValueError as e:
            raise MalformedCiphertext("Invalid padding in final block", path=where, cause=e) from e

        if tail:
            yield tail

    # --------------------------------------------------------
    # FILE LEVEL
    # --------------------------------------------------------

    async def encrypt_file(self, source: Path, destination: Path) -> int:
        """
        Encrypt `source` into `destination`.

        Returns:
            Number of ciphertext bytes written (IV included)

        Raises:
            StorageReadFailed: source could not be read
            StorageWriteFailed: destination could not be written
        """
        written = 0
        logger.debug(f"Encrypting {source} -> {destination}")
        try:
            async with aiofiles.open(destination, "wb") as out:
                async for piece in self.encrypt(read_chunks(source, self.chunk_size)):
                    await out.write(piece)
                    written += len(piece)
        except OSError as e:
            await asyncio.to_thread(destination.unlink, missing_ok=True)
            raise StorageWriteFailed(
                f"Failed to write ciphertext {destination}: {e}",
                path=str(destination),
                operation="encrypt",
                cause=e,
            ) from e
        except StorageReadFailed:
            await asyncio.to_thread(destination.unlink, missing_ok=True)
            raise

        logger.info(f"Encrypted {source.name} into {destination} ({written} bytes)")
        return written

    async def open_decrypt(self, path: Path) -> DecryptedStream:
        """
        Open a ciphertext file, check its shape and consume its IV.

        The body length and the padding of the final block are checked
        before anything is returned, so a damaged file fails here and
        not halfway through a response.

        Raises:
            FileNotFoundError: no file at `path`
            MalformedCiphertext: too short, partial block or bad padding
            StorageReadFailed: any other read failure
        """
        try:
            handle = await aiofiles.open(path, "rb")
        except FileNotFoundError:
            raise
        except OSError as e:
            raise StorageReadFailed(
                f"Failed to open {path}: {e}", path=str(path), operation="open", cause=e
            ) from e

        try:
            iv = await self._check_layout(handle, Path(path))
        except (MalformedCiphertext, StorageReadFailed):
            await handle.close()
            raise

        return DecryptedStream(self, handle, iv, Path(path))

    async def _check_layout(self, handle, path: Path) -> bytes:
        """Validate the file behind `handle`; leaves it positioned after the IV."""
        try:
            size = await handle.seek(0, os.SEEK_END)
            body = size - IV_SIZE_BYTES
            if body < 0:
                raise MalformedCiphertext(
                    f"Ciphertext too short for IV: {size} bytes", path=str(path)
                )
            if body == 0 or body % BLOCK_SIZE_BYTES:
                raise MalformedCiphertext(
                    f"Ciphertext body of {body} bytes is not a whole number of blocks",
                    path=str(path),
                )

            # CBC: the last block decrypts with the block before it as IV
            await handle.seek(size - 2 * BLOCK_SIZE_BYTES)
            previous = await handle.read(BLOCK_SIZE_BYTES)
            last = await handle.read(BLOCK_SIZE_BYTES)
            await handle.seek(0)
            iv = await handle.read(IV_SIZE_BYTES)
        except OSError as e:
            raise StorageReadFailed(
                f"Failed to read {path}: {e}", path=str(path), operation="read", cause=e
            ) from e

        decryptor = self._cipher(previous).decryptor()
        unpadder = padding.PKCS7(BLOCK_SIZE_BITS).unpadder()
        try:
            unpadder.update(decryptor.update(last) + decryptor.finalize())
            unpadder.finalize()
        except ValueError as e:
            raise MalformedCiphertext("Invalid padding in final block", path=str(path), cause=e) from e

        return iv
