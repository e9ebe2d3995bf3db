"""Domain models for queued and uploaded media."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import PurePath

from pydantic import BaseModel, ConfigDict, Field


class MediaKind(str, Enum):
    """Kind of media as understood by the inventory backend."""

    IMAGE = "IMAGE"
    VIDEO = "VIDEO"


class MediaCategory(str, Enum):
    """Tags a vehicle photo or video can be filed under."""

    GENERAL = "general"
    EXTERIOR = "exterior"
    INTERIOR = "interior"
    ENGINE = "engine"
    DAMAGE = "damage"


class UploadStatus(str, Enum):
    """Lifecycle of a queued file."""

    PENDING = "pending"
    UPLOADING = "uploading"
    SUCCESS = "success"
    ERROR = "error"


ACCEPTED_EXTENSIONS: dict[str, frozenset[str]] = {
    "image": frozenset({".png", ".jpg", ".jpeg", ".webp", ".gif"}),
    "video": frozenset({".mp4", ".webm", ".mov"}),
}
MAX_UPLOAD_BYTES = 100 * 1024 * 1024


@dataclass(frozen=True)
class CapturedFile:
    """Binary payload with the metadata needed to upload it."""

    name: str
    content: bytes
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.content)


class MediaRecord(BaseModel):
    """Media row returned by the inventory backend after a successful upload."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    car_id: str = Field(alias="carId")
    type: str
    category: str | None = None
    url: str
    thumbnail_url: str | None = Field(default=None, alias="thumbnailUrl")
    file_name: str = Field(alias="fileName")
    file_size: int = Field(alias="fileSize")
    mime_type: str = Field(alias="mimeType")
    duration: float | None = None
    resolution: str | None = None
    status: str = "READY"
    uploaded_at: datetime | None = Field(default=None, alias="uploadedAt")
    uploaded_by: str | None = Field(default=None, alias="uploadedBy")


@dataclass(frozen=True)
class UploadSummary:
    """Outcome counts of one upload pass."""

    success_count: int
    error_count: int
    total: int

    @property
    def succeeded(self) -> bool:
        """A pass with at least one uploaded file counts as a (partial) success."""
        return self.success_count > 0


class FileRejectedError(ValueError):
    """Raised when a selected file does not meet the upload rules."""


def media_kind_for(mime_type: str) -> MediaKind:
    """Derive the media kind from a MIME type."""
    if mime_type.lower().startswith("image"):
        return MediaKind.IMAGE
    return MediaKind.VIDEO


def ensure_accepted(file: CapturedFile, max_bytes: int = MAX_UPLOAD_BYTES) -> None:
    """Validate a file picked from disk against the accepted types and size.

    A file passes the type check when either its MIME type is an image or
    video type, or its extension is one of the accepted ones.
    """
    major = file.mime_type.split("/", 1)[0].lower()
    extension = PurePath(file.name).suffix.lower()
    known_extension = any(
        extension in extensions for extensions in ACCEPTED_EXTENSIONS.values()
    )
    if major not in ACCEPTED_EXTENSIONS and not known_extension:
        raise FileRejectedError(
            f"Unsupported file type: {file.mime_type or 'unknown'} "
            f"({extension or 'no extension'})"
        )
    if file.size > max_bytes:
        raise FileRejectedError(f"File exceeds the {max_bytes} byte limit")
