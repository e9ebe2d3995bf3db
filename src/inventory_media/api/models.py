"""Pydantic models for the capture station HTTP API."""

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from inventory_media.domain.capture import CaptureMode, CaptureState
from inventory_media.domain.media import (
    CapturedFile,
    MediaCategory,
    MediaKind,
    UploadStatus,
    UploadSummary,
)
from inventory_media.services.capture import CaptureSession
from inventory_media.services.uploads import PendingUpload


class OpenCameraRequest(BaseModel):
    """Request to open the camera."""

    mode: CaptureMode = CaptureMode.BOTH


class CategoryUpdate(BaseModel):
    """Request to retag a queued file."""

    category: MediaCategory


class UploadRequest(BaseModel):
    """Request to upload every pending file for a car."""

    model_config = ConfigDict(populate_by_name=True)

    car_id: str = Field(alias="carId", min_length=1)


class PendingUploadView(BaseModel):
    """Queued file as shown to the UI."""

    id: UUID
    file_name: str
    file_size: int
    media_kind: MediaKind
    category: MediaCategory
    status: UploadStatus
    progress: int
    preview_handle: str
    media_id: str | None = None

    @classmethod
    def from_entry(cls, entry: PendingUpload) -> "PendingUploadView":
        return cls(
            id=entry.id,
            file_name=entry.file_name,
            file_size=entry.file_size,
            media_kind=entry.media_kind,
            category=entry.category,
            status=entry.status,
            progress=entry.progress,
            preview_handle=entry.preview_handle,
            media_id=entry.record.id if entry.record else None,
        )


class UploadSummaryView(BaseModel):
    """Counts reported after an upload pass."""

    success_count: int
    error_count: int
    total: int
    succeeded: bool

    @classmethod
    def from_summary(cls, summary: UploadSummary) -> "UploadSummaryView":
        return cls(
            success_count=summary.success_count,
            error_count=summary.error_count,
            total=summary.total,
            succeeded=summary.succeeded,
        )


class QueueView(BaseModel):
    """Full queue snapshot."""

    entries: list[PendingUploadView]
    uploading: bool
    summary: UploadSummaryView | None = None


class RejectedFile(BaseModel):
    """A selected file that was not queued."""

    file_name: str
    reason: str


class AddFilesResult(BaseModel):
    """Outcome of a file selection."""

    added: list[PendingUploadView]
    rejected: list[RejectedFile]


class CameraView(BaseModel):
    """Capture session state."""

    state: CaptureState
    mode: CaptureMode
    recording: bool
    error_message: str | None = None

    @classmethod
    def from_session(cls, session: CaptureSession) -> "CameraView":
        return cls(
            state=session.state,
            mode=session.mode,
            recording=session.is_recording,
            error_message=session.error_message,
        )


class CaptureResult(BaseModel):
    """Result of a capture action."""

    captured: bool
    file_name: str | None = None
    file_size: int | None = None
    mime_type: str | None = None
    camera: CameraView

    @classmethod
    def build(
        cls, captured: CapturedFile | None, session: CaptureSession
    ) -> "CaptureResult":
        return cls(
            captured=captured is not None,
            file_name=captured.name if captured else None,
            file_size=captured.size if captured else None,
            mime_type=captured.mime_type if captured else None,
            camera=CameraView.from_session(session),
        )
