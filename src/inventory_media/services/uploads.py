"""Upload queue that sends files to the inventory backend one at a time."""

import logging
from dataclasses import dataclass, field
from typing import Protocol
from uuid import UUID, uuid4

from inventory_media.domain.media import (
    CapturedFile,
    MediaCategory,
    MediaKind,
    MediaRecord,
    UploadStatus,
    UploadSummary,
    media_kind_for,
)
from inventory_media.services.previews import PreviewStore

logger = logging.getLogger(__name__)


class TransferError(Exception):
    """Raised when the backend rejects a request or cannot be reached."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UploadInProgressError(RuntimeError):
    """Raised when an upload pass is requested while another one runs."""


class MediaUploader(Protocol):
    """Interface for sending a single file to the inventory backend."""

    async def upload(
        self,
        file: CapturedFile,
        owner_id: str,
        media_kind: MediaKind,
        category: MediaCategory,
    ) -> MediaRecord:
        """Upload a file for an owner (car) and return the stored record."""


@dataclass
class PendingUpload:
    """A queued file and its upload state."""

    source_file: CapturedFile
    preview_handle: str
    media_kind: MediaKind
    id: UUID = field(default_factory=uuid4)
    category: MediaCategory = MediaCategory.GENERAL
    status: UploadStatus = UploadStatus.PENDING
    progress: int = 0
    record: MediaRecord | None = None

    @property
    def file_name(self) -> str:
        return self.source_file.name

    @property
    def file_size(self) -> int:
        return self.source_file.size

    @property
    def is_pending(self) -> bool:
        return self.status is UploadStatus.PENDING


@dataclass
class UploadQueue:
    """Ordered queue of files, drained sequentially by run_upload."""

    uploader: MediaUploader
    previews: PreviewStore
    last_summary: UploadSummary | None = None
    _entries: list[PendingUpload] = field(default_factory=list, init=False)
    _uploading: bool = field(default=False, init=False)

    @property
    def entries(self) -> tuple[PendingUpload, ...]:
        return tuple(self._entries)

    @property
    def is_uploading(self) -> bool:
        return self._uploading

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, entry_id: UUID) -> PendingUpload | None:
        """Return the entry with the given id, if queued."""
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        return None

    def add(self, file: CapturedFile) -> PendingUpload:
        """Append a file as a new pending entry."""
        entry = PendingUpload(
            source_file=file,
            preview_handle=self.previews.create(file),
            media_kind=media_kind_for(file.mime_type),
        )
        self._entries.append(entry)
        logger.debug(
            "Queued file", extra={"entry_id": str(entry.id), "file_name": file.name}
        )
        return entry

    def remove(self, entry_id: UUID) -> bool:
        """Drop a pending entry. Returns False when removal is not allowed."""
        entry = self.get(entry_id)
        if entry is None or not entry.is_pending or self._uploading:
            return False
        self._entries.remove(entry)
        self.previews.revoke(entry.preview_handle)
        return True

    def set_category(self, entry_id: UUID, category: MediaCategory) -> bool:
        """Retag a pending entry. Returns False when the entry is locked."""
        entry = self.get(entry_id)
        if entry is None or not entry.is_pending or self._uploading:
            return False
        entry.category = category
        return True

    def clear_finished(self) -> int:
        """Discard uploaded and failed entries, returning how many were dropped."""
        if self._uploading:
            return 0
        finished = [entry for entry in self._entries if not entry.is_pending]
        for entry in finished:
            self._entries.remove(entry)
            self.previews.revoke(entry.preview_handle)
        return len(finished)

    async def run_upload(self, owner_id: str) -> UploadSummary:
        """Upload every pending entry in order, isolating per-file failures."""
        if self._uploading:
            raise UploadInProgressError("An upload pass is already running")
        self._uploading = True
        batch = [entry for entry in self._entries if entry.is_pending]
        logger.info(
            "Starting upload pass", extra={"owner_id": owner_id, "total": len(batch)}
        )
        try:
            for entry in batch:
                await self._upload_entry(entry, owner_id)
        finally:
            self._uploading = False

        success_count = sum(1 for e in batch if e.status is UploadStatus.SUCCESS)
        error_count = sum(1 for e in batch if e.status is UploadStatus.ERROR)
        summary = UploadSummary(
            success_count=success_count,
            error_count=error_count,
            total=len(batch),
        )
        self.last_summary = summary
        logger.info(
            "Upload summary",
            extra={
                "owner_id": owner_id,
                "total": summary.total,
                "success": summary.success_count,
                "errors": summary.error_count,
            },
        )
        return summary

    async def _upload_entry(self, entry: PendingUpload, owner_id: str) -> None:
        entry.status = UploadStatus.UPLOADING
        try:
            record = await self.uploader.upload(
                entry.source_file,
                owner_id,
                entry.media_kind,
                entry.category,
            )
        except TransferError as exc:
            logger.warning(
                "Upload failed: %s",
                exc,
                extra={"entry_id": str(entry.id), "file_name": entry.file_name},
            )
            entry.status = UploadStatus.ERROR
            return
        except Exception:
            logger.exception(
                "Unexpected upload failure",
                extra={"entry_id": str(entry.id), "file_name": entry.file_name},
            )
            entry.status = UploadStatus.ERROR
            return
        entry.record = record
        entry.progress = 100
        entry.status = UploadStatus.SUCCESS
