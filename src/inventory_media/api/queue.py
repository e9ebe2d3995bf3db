"""Upload queue endpoints."""

from __future__ import annotations

import logging
import mimetypes
from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter, File, HTTPException, Request, UploadFile, status
from fastapi.responses import Response

from inventory_media.api.models import (
    AddFilesResult,
    CategoryUpdate,
    PendingUploadView,
    QueueView,
    RejectedFile,
    UploadRequest,
    UploadSummaryView,
)
from inventory_media.domain.media import CapturedFile, FileRejectedError, ensure_accepted
from inventory_media.services.uploads import UploadInProgressError

if TYPE_CHECKING:
    from inventory_media.containers import AppContainer

logger = logging.getLogger(__name__)

GENERIC_MIME_TYPE = "application/octet-stream"

router = APIRouter(tags=["queue"])


def _container(request: Request) -> AppContainer:
    return request.app.state.container


def _mime_type(upload: UploadFile, name: str) -> str:
    if upload.content_type and upload.content_type != GENERIC_MIME_TYPE:
        return upload.content_type
    guessed, _ = mimetypes.guess_type(name)
    return guessed or GENERIC_MIME_TYPE


def _queue_view(container: AppContainer) -> QueueView:
    queue = container.upload_queue
    summary = queue.last_summary
    return QueueView(
        entries=[PendingUploadView.from_entry(entry) for entry in queue.entries],
        uploading=queue.is_uploading,
        summary=UploadSummaryView.from_summary(summary) if summary else None,
    )


@router.get("/queue")
async def list_queue(request: Request) -> QueueView:
    """Return queued files in upload order."""
    return _queue_view(_container(request))


@router.post("/queue/files")
async def add_files(
    request: Request, files: list[UploadFile] = File(...)
) -> AddFilesResult:
    """Queue files selected from disk, skipping unsupported ones."""
    container = _container(request)
    max_bytes = container.settings.max_upload_bytes
    added: list[PendingUploadView] = []
    rejected: list[RejectedFile] = []
    for upload in files:
        name = upload.filename or "upload"
        # Never buffer more than one byte past the limit.
        content = await upload.read(max_bytes + 1)
        captured = CapturedFile(
            name=name, content=content, mime_type=_mime_type(upload, name)
        )
        try:
            ensure_accepted(captured, max_bytes)
        except FileRejectedError as exc:
            rejected.append(RejectedFile(file_name=name, reason=str(exc)))
            continue
        entry = container.upload_queue.add(captured)
        added.append(PendingUploadView.from_entry(entry))
    if rejected:
        logger.info("Rejected selected files", extra={"count": len(rejected)})
    return AddFilesResult(added=added, rejected=rejected)


@router.patch("/queue/{entry_id}")
async def update_category(
    entry_id: UUID, update: CategoryUpdate, request: Request
) -> PendingUploadView:
    """Change the category of a pending file."""
    queue = _container(request).upload_queue
    entry = queue.get(entry_id)
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    if not queue.set_category(entry_id, update.category):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Only pending files can be recategorized.",
        )
    return PendingUploadView.from_entry(entry)


@router.delete("/queue/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_entry(entry_id: UUID, request: Request) -> Response:
    """Remove a pending file from the queue."""
    queue = _container(request).upload_queue
    if queue.get(entry_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    if not queue.remove(entry_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Only pending files can be removed while no upload is running.",
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/queue/clear")
async def clear_finished(request: Request) -> QueueView:
    """Discard uploaded and failed files."""
    container = _container(request)
    if container.upload_queue.is_uploading:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT)
    container.upload_queue.clear_finished()
    return _queue_view(container)


@router.post("/queue/upload")
async def upload_all(body: UploadRequest, request: Request) -> UploadSummaryView:
    """Upload every pending file, one after another."""
    queue = _container(request).upload_queue
    try:
        summary = await queue.run_upload(body.car_id)
    except UploadInProgressError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail=str(exc)
        ) from exc
    return UploadSummaryView.from_summary(summary)


@router.get("/previews/{handle}")
async def preview(handle: str, request: Request) -> Response:
    """Serve the bytes behind a preview handle."""
    file = _container(request).preview_store.get(handle)
    if file is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return Response(content=file.content, media_type=file.mime_type)
