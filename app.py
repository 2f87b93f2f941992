#!/usr/bin/env python3
"""
Encrypted Upload Vault - Main Application Entry Point.

============================================================
SINGLE ENTRYPOINT
============================================================
Builds the FastAPI application, wires the vault services into
it and serves it with uvicorn.

Startup sequence (lifespan):
1. Connect the metadata store (schema created if missing)
2. Run the reconciliation sweep (unless disabled)
3. Publish services on app.state

============================================================
USAGE
============================================================
Serve:
    VAULT_ENCRYPTION_KEY=<64 hex chars> python app.py

Reconcile storage and exit (server stopped):
    python app.py --reconcile-only

With PM2:
    pm2 start app.py --interpreter python --name vault

============================================================
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI

from core.clock import ClockProtocol, get_clock
from core.exceptions import ConfigurationError
from storage import Database, DatabaseConfig
from vault.cipher import StreamCipherCodec
from vault.config import VaultConfig
from vault.ingestion import IngestionCoordinator
from vault.lifecycle import RecordLifecycle
from vault.paths import PathAllocator
from vault.reconciliation import ReconciliationSweep
from vault.retrieval import RetrievalStreamer
from vault.router import register_exception_handlers, router


load_dotenv()

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )


# ============================================================
# APPLICATION FACTORY
# ============================================================

def create_app(
    config: VaultConfig,
    clock: Optional[ClockProtocol] = None,
) -> FastAPI:
    """
    Build the application for `config`.

    Services are created in the lifespan so tests can build an app
    per temporary directory.
    """
    clock = clock or get_clock()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        config.storage_root.mkdir(parents=True, exist_ok=True)
        config.staging_dir.mkdir(parents=True, exist_ok=True)

        database = Database(DatabaseConfig(url=config.database_url))
        await database.connect()

        if config.reconcile_on_startup:
            app.state.reconciliation = await ReconciliationSweep(config, database).run()

        codec = StreamCipherCodec(config.cipher)
        allocator = PathAllocator(config.storage_root, clock=clock, unknown_owner=config.unknown_owner)

        app.state.config = config
        app.state.database = database
        app.state.coordinator = IngestionCoordinator(config, database, codec, allocator, clock=clock)
        app.state.streamer = RetrievalStreamer(database, codec)
        app.state.lifecycle = RecordLifecycle(database)

        logger.info(f"Vault ready: storage at {config.storage_root}")
        try:
            yield
        finally:
            await database.disconnect()
            logger.info("Vault stopped")

    app = FastAPI(
        title="Encrypted Upload Vault",
        description="Encrypted-at-rest storage for sentiment sheets, audio and video.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    register_exception_handlers(app)
    return app


# ============================================================
# CLI
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vault",
        description="Encrypted upload vault server",
    )
    parser.add_argument(
        "--host",
        default=os.getenv("VAULT_HOST", "0.0.0.0"),
        help="Bind address (default: $VAULT_HOST or 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("VAULT_PORT", os.getenv("PORT", "8000"))),
        help="Bind port (default: $VAULT_PORT or 8000)",
    )
    parser.add_argument(
        "--reconcile-only",
        action="store_true",
        help=(
            "Run the reconciliation sweep, print its report and exit. "
            "Stop the server first: the sweep deletes staged uploads and "
            "not-yet-recorded ciphertext that a running server is still working on"
        ),
    )
    return parser


async def run_reconciliation(config: VaultConfig) -> int:
    database = Database(DatabaseConfig(url=config.database_url))
    await database.connect()
    try:
        report = await ReconciliationSweep(config, database).run()
    finally:
        await database.disconnect()
    print(json.dumps(report.to_dict(), indent=2))
    return 0 if report.is_clean else 2


def main() -> int:
    """Main entry point."""
    args = create_parser().parse_args()

    try:
        config = VaultConfig.from_env()
    except ConfigurationError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    setup_logging(config.log_level)

    errors = config.validate()
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return 1

    if args.reconcile_only:
        return asyncio.run(run_reconciliation(config))

    logger.info(f"Starting vault API on {args.host}:{args.port}")
    uvicorn.run(
        create_app(config),
        host=args.host,
        port=args.port,
        log_level=config.log_level.lower(),
        access_log=True,
    )
    return 0


# ============================================================
# ENTRY POINT
# ============================================================

if __name__ == "__main__":
    sys.exit(main())
