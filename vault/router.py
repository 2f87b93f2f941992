"""
FastAPI Router for Vault Endpoints.

Thin HTTP boundary over the vault services:
- Upload files (staged to disk, then ingested)
- Stream decrypted media
- List, inspect, update and delete stored files
"""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote

import aiofiles
from fastapi import APIRouter, Depends, FastAPI, File, Form, Query, Request, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from core.exceptions import NotFound, StorageWriteFailed, VaultException
from storage.database import Database
from storage.repositories import RepositoryException
from .config import VaultConfig
from .ingestion import IngestionCoordinator
from .lifecycle import RecordLifecycle
from .paths import mint_unique_name
from .retrieval import RetrievalStreamer
from .schemas import (
    DeletionResponse,
    SentimentRecordUpdate,
    StoredFileListResponse,
    StoredFileResponse,
    UploadResponse,
)
from .types import FileKind, UploadedFile


logger = logging.getLogger(__name__)

router = APIRouter(tags=["Vault"])


# =============================================================
# HELPER: Service dependencies (wired in app lifespan)
# =============================================================

def get_config(request: Request) -> VaultConfig:
    return request.app.state.config


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_coordinator(request: Request) -> IngestionCoordinator:
    return request.app.state.coordinator


def get_streamer(request: Request) -> RetrievalStreamer:
    return request.app.state.streamer


def get_lifecycle(request: Request) -> RecordLifecycle:
    return request.app.state.lifecycle


# =============================================================
# HELPER: Upload staging
# =============================================================

async def stage_upload(
    upload: UploadFile,
    staging_dir: Path,
    owner: Optional[str],
    chunk_size: int,
) -> UploadedFile:
    """Copy one multipart part to the staging area under a unique name."""
    original_name = Path(upload.filename or "upload").name
    destination = staging_dir / mint_unique_name(original_name)
    size = 0
    try:
        async with aiofiles.open(destination, "wb") as out:
            while True:
                chunk = await upload.read(chunk_size)
                if not chunk:
                    break
                await out.write(chunk)
                size += len(chunk)
    except OSError as e:
        await asyncio.to_thread(destination.unlink, missing_ok=True)
        raise StorageWriteFailed(
            f"Failed to stage upload {original_name}: {e}",
            path=str(destination),
            operation="stage",
            cause=e,
        ) from e
    finally:
        await upload.close()

    return UploadedFile(
        original_name=original_name,
        path=destination,
        size_bytes=size,
        owner=owner,
    )


# =============================================================
# UPLOAD
# =============================================================

@router.post("/upload", response_model=UploadResponse)
async def upload_files(
    files: List[UploadFile] = File(..., description="One or more files"),
    username: Optional[str] = Form(None),
    config: VaultConfig = Depends(get_config),
    coordinator: IngestionCoordinator = Depends(get_coordinator),
):
    """
    Upload sentiment sheets (.csv/.xls/.xlsx), audio or video.

    Every file gets its own outcome; one rejected file does not
    affect the others.
    """
    staging_dir = config.staging_dir
    await asyncio.to_thread(staging_dir.mkdir, parents=True, exist_ok=True)

    staged: List[UploadedFile] = []
    try:
        for upload in files:
            staged.append(
                await stage_upload(upload, staging_dir, username, config.cipher.chunk_size)
            )
    except StorageWriteFailed:
        for item in staged:
            await asyncio.to_thread(item.path.unlink, missing_ok=True)
        raise

    report = await coordinator.ingest(staged)
    return report.to_dict()


# =============================================================
# RETRIEVAL
# =============================================================

@router.get("/files/{file_id}")
async def stream_file(
    file_id: str,
    streamer: RetrievalStreamer = Depends(get_streamer),
):
    """Stream a decrypted audio or video file."""
    media = await streamer.open(file_id)
    disposition = f"inline; filename*=UTF-8''{quote(media.original_name)}"
    return StreamingResponse(
        media,
        media_type=media.content_type,
        headers={"Content-Disposition": disposition},
        background=BackgroundTask(media.aclose),
    )


@router.get("/files", response_model=StoredFileListResponse)
async def list_files(
    owner: Optional[str] = Query(None, description="Filter by uploader"),
    kind: Optional[FileKind] = Query(None, description="sentiment, audio or video"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    lifecycle: RecordLifecycle = Depends(get_lifecycle),
):
    records = await lifecycle.list_files(owner=owner, kind=kind, limit=limit, offset=offset)
    return StoredFileListResponse(
        files=[StoredFileResponse.model_validate(record.to_dict()) for record in records],
        count=len(records),
    )


@router.get("/files/{file_id}/metadata", response_model=StoredFileResponse)
async def get_file_metadata(
    file_id: str,
    lifecycle: RecordLifecycle = Depends(get_lifecycle),
):
    record = await lifecycle.get(file_id)
    return StoredFileResponse.model_validate(record.to_dict())


# =============================================================
# UPDATE / DELETE
# =============================================================

@router.patch("/records/{record_id}", response_model=StoredFileResponse)
async def update_record(
    record_id: str,
    body: SentimentRecordUpdate,
    lifecycle: RecordLifecycle = Depends(get_lifecycle),
):
    """Patch fields of a sentiment record."""
    record = await lifecycle.update_record(record_id, body.to_patch())
    return StoredFileResponse.model_validate(record.to_dict())


@router.delete("/files/{file_id}", response_model=DeletionResponse)
async def delete_file(
    file_id: str,
    lifecycle: RecordLifecycle = Depends(get_lifecycle),
):
    """Remove the ciphertext, then the metadata record."""
    result = await lifecycle.delete(file_id)
    return result.to_dict()


@router.get("/health")
async def health(database: Database = Depends(get_database)):
    healthy = await database.health_check()
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={"status": "ok" if healthy else "degraded", "database": healthy},
    )


# =============================================================
# ERROR MAPPING
# =============================================================

def _status_for(error: VaultException) -> int:
    if isinstance(error, NotFound):
        return 404
    if error.is_client_error:
        return 400
    return 500


async def vault_exception_handler(request: Request, exc: VaultException) -> JSONResponse:
    status_code = _status_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.to_log_format()}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "type": type(exc).__name__},
    )


async def repository_exception_handler(request: Request, exc: RepositoryException) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "metadata store error", "type": type(exc).__name__},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(VaultException, vault_exception_handler)
    app.add_exception_handler(RepositoryException, repository_exception_handler)
