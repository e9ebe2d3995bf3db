"""Preview handles for files waiting in the upload queue."""

from dataclasses import dataclass
from typing import Protocol
from uuid import uuid4

from inventory_media.domain.media import CapturedFile


class PreviewStore(Protocol):
    """Issues short-lived references a UI can use to display a queued file."""

    def create(self, file: CapturedFile) -> str:
        """Register a file and return its preview handle."""

    def get(self, handle: str) -> CapturedFile | None:
        """Return the file behind a handle if it is still live."""

    def revoke(self, handle: str) -> None:
        """Release a handle."""


@dataclass
class InMemoryPreviewStore(PreviewStore):
    """Preview store keeping files in process memory."""

    _files: dict[str, CapturedFile]

    def __init__(self) -> None:
        self._files = {}

    def create(self, file: CapturedFile) -> str:
        handle = f"preview-{uuid4().hex}"
        self._files[handle] = file
        return handle

    def get(self, handle: str) -> CapturedFile | None:
        return self._files.get(handle)

    def revoke(self, handle: str) -> None:
        self._files.pop(handle, None)

    def __len__(self) -> int:
        return len(self._files)
