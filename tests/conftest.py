"""
Shared fixtures for the vault test suite.

Every test gets its own storage root and SQLite database under
pytest's tmp_path; time is pinned with MockClock.
"""

from datetime import datetime, timezone

import pytest
import pytest_asyncio

from core.clock import MockClock
from storage import Database, DatabaseConfig
from vault.cipher import StreamCipherCodec
from vault.config import CipherConfig, VaultConfig
from vault.ingestion import IngestionCoordinator
from vault.lifecycle import RecordLifecycle
from vault.paths import PathAllocator, mint_unique_name
from vault.retrieval import RetrievalStreamer
from vault.types import UploadedFile


TEST_KEY_HEX = "000102030405060708090a0b0c0d0e0f101112131415161718191a1b1c1d1e1f"

SENTIMENT_CSV = (
    "title,url,authors,topics,overall_sentiment_score,overall_sentiment_label,ticker_sentiment,extra\n"
    "BTC rallies,https://example.com/a,\"Alice, Bob\",\"Crypto(0.9), Markets(0.5)\",0.25,Bullish,BTC(Bullish),x\n"
    "ETH dips,https://example.com/b,Carol,Economy(0.3),-0.1,Bearish,\"ETH(Bearish), NoParens\",y\n"
).encode("utf-8")


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def cipher_config():
    """Fixed key, small chunks so streams span several reads."""
    return CipherConfig.from_hex(TEST_KEY_HEX, chunk_size=4096)


@pytest.fixture
def codec(cipher_config):
    return StreamCipherCodec(cipher_config)


@pytest.fixture
def clock():
    return MockClock(datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def vault_config(tmp_path, cipher_config):
    return VaultConfig(
        cipher=cipher_config,
        storage_root=tmp_path / "uploads",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'vault.db'}",
        reconcile_on_startup=False,
    )


@pytest_asyncio.fixture
async def database(vault_config):
    db = Database(DatabaseConfig(url=vault_config.database_url))
    await db.connect()
    yield db
    await db.disconnect()


@pytest.fixture
def allocator(vault_config, clock):
    return PathAllocator(vault_config.storage_root, clock=clock)


@pytest.fixture
def coordinator(vault_config, database, codec, allocator, clock):
    return IngestionCoordinator(vault_config, database, codec, allocator, clock=clock)


@pytest.fixture
def streamer(database, codec):
    return RetrievalStreamer(database, codec)


@pytest.fixture
def lifecycle(database):
    return RecordLifecycle(database)


@pytest.fixture
def make_upload(vault_config):
    """Write plaintext into the staging area the way the HTTP layer does."""
    staging = vault_config.staging_dir
    staging.mkdir(parents=True, exist_ok=True)

    def _make(name, content, owner="alice"):
        path = staging / mint_unique_name(name)
        path.write_bytes(content)
        return UploadedFile(original_name=name, path=path, size_bytes=len(content), owner=owner)

    return _make


@pytest.fixture
def sentiment_csv():
    return SENTIMENT_CSV
