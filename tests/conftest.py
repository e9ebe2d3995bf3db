"""Shared test fixtures."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field

import pytest

from inventory_media.config import Settings
from inventory_media.containers import AppContainer, wire_capture_session
from inventory_media.domain.capture import MediaConstraints
from inventory_media.domain.media import (
    CapturedFile,
    MediaCategory,
    MediaKind,
    MediaRecord,
)
from inventory_media.services.capture import (
    CaptureError,
    CaptureSession,
    MediaDevices,
    MediaRecorder,
    MediaStream,
)
from inventory_media.services.previews import InMemoryPreviewStore
from inventory_media.services.uploads import MediaUploader, TransferError, UploadQueue


def _on_event_loop() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


@dataclass
class FakeRecorder(MediaRecorder):
    """Recorder that delivers scripted chunks."""

    on_chunk: Callable[[bytes], None]
    final_chunks: list[bytes]
    stop_calls: int = 0
    error: Exception | None = None

    def stop(self) -> None:
        self.stop_calls += 1
        if self.error is not None:
            raise self.error
        for chunk in self.final_chunks:
            self.on_chunk(chunk)


@dataclass
class FakeMediaStream(MediaStream):
    """In-memory stream standing in for a camera."""

    frame: bytes | None = b"\xff\xd8\xff-jpeg-frame"
    supported_types: set[str] = field(
        default_factory=lambda: {"video/webm;codecs=vp9", "video/webm"}
    )
    chunks: list[bytes] = field(default_factory=lambda: [b"chunk-1", b"chunk-2"])
    stopped: int = 0
    recorders: list[FakeRecorder] = field(default_factory=list)
    recorder_args: list[dict[str, object]] = field(default_factory=list)
    blocking_calls_on_loop: list[bool] = field(default_factory=list)

    def is_ready(self) -> bool:
        return self.frame is not None

    def grab_frame(self, quality: float) -> bytes | None:
        self.blocking_calls_on_loop.append(_on_event_loop())
        return self.frame

    def is_type_supported(self, mime_type: str) -> bool:
        return mime_type in self.supported_types

    def start_recorder(
        self,
        mime_type: str,
        bits_per_second: int,
        timeslice_ms: int,
        on_chunk: Callable[[bytes], None],
    ) -> MediaRecorder:
        self.recorder_args.append(
            {
                "mime_type": mime_type,
                "bits_per_second": bits_per_second,
                "timeslice_ms": timeslice_ms,
            }
        )
        # First chunk arrives during recording, the rest on stop.
        on_chunk(self.chunks[0])
        recorder = FakeRecorder(on_chunk=on_chunk, final_chunks=self.chunks[1:])
        self.recorders.append(recorder)
        return recorder

    def stop(self) -> None:
        self.blocking_calls_on_loop.append(_on_event_loop())
        self.stopped += 1


@dataclass
class FakeMediaDevices(MediaDevices):
    """Media devices returning fake streams or a scripted error."""

    error: CaptureError | None = None
    stream_factory: Callable[[], FakeMediaStream] = FakeMediaStream
    streams: list[FakeMediaStream] = field(default_factory=list)
    constraints: list[MediaConstraints] = field(default_factory=list)

    async def get_user_media(self, constraints: MediaConstraints) -> MediaStream:
        self.constraints.append(constraints)
        if self.error is not None:
            raise self.error
        stream = self.stream_factory()
        self.streams.append(stream)
        return stream


@dataclass
class FakeUploader(MediaUploader):
    """Uploader that succeeds or fails per call and tracks concurrency."""

    failures: set[str] = field(default_factory=set)
    calls: list[tuple[str, str, MediaKind, MediaCategory]] = field(
        default_factory=list
    )
    in_flight: int = 0
    max_in_flight: int = 0
    statuses_seen: list[list[str]] = field(default_factory=list)
    stored: list[MediaRecord] = field(default_factory=list)
    queue: UploadQueue | None = None

    async def upload(
        self,
        file: CapturedFile,
        owner_id: str,
        media_kind: MediaKind,
        category: MediaCategory,
    ) -> MediaRecord:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            self.calls.append((file.name, owner_id, media_kind, category))
            if self.queue is not None:
                self.statuses_seen.append(
                    [entry.status.value for entry in self.queue.entries]
                )
            if file.name in self.failures:
                raise TransferError(f"rejected {file.name}")
            record = MediaRecord(
                id=f"media-{len(self.calls)}",
                carId=owner_id,
                type=media_kind.value,
                category=category.value,
                url=f"https://cdn.example.com/{file.name}",
                fileName=file.name,
                fileSize=file.size,
                mimeType=file.mime_type,
            )
            self.stored.append(record)
            return record
        finally:
            self.in_flight -= 1

    async def list_for_car(self, car_id: str) -> list[MediaRecord]:
        return [record for record in self.stored if record.car_id == car_id]

    async def delete(self, media_id: str) -> None:
        remaining = [record for record in self.stored if record.id != media_id]
        if len(remaining) == len(self.stored):
            raise TransferError("DELETE rejected with status 404", status_code=404)
        self.stored = remaining

    async def close(self) -> None:
        return None


def make_file(name: str = "front.jpg", mime_type: str = "image/jpeg") -> CapturedFile:
    return CapturedFile(
        name=name, content=b"payload-" + name.encode(), mime_type=mime_type
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        media_api_base_url="https://inventory.example.com/api",
        media_api_token="test-token",
    )


@pytest.fixture
def preview_store() -> InMemoryPreviewStore:
    return InMemoryPreviewStore()


@pytest.fixture
def uploader() -> FakeUploader:
    return FakeUploader()


@pytest.fixture
def upload_queue(
    uploader: FakeUploader, preview_store: InMemoryPreviewStore
) -> UploadQueue:
    queue = UploadQueue(uploader=uploader, previews=preview_store)
    uploader.queue = queue
    return queue


@pytest.fixture
def devices() -> FakeMediaDevices:
    return FakeMediaDevices()


@pytest.fixture
def captured_files() -> list[CapturedFile]:
    return []


@pytest.fixture
def capture_session(
    devices: FakeMediaDevices, captured_files: list[CapturedFile]
) -> CaptureSession:
    return CaptureSession(
        devices=devices,
        on_capture=captured_files.append,
        clock=lambda: 1700000000.123,
    )


@pytest.fixture
def container(
    settings: Settings,
    uploader: FakeUploader,
    preview_store: InMemoryPreviewStore,
    upload_queue: UploadQueue,
    devices: FakeMediaDevices,
) -> AppContainer:
    capture_session = wire_capture_session(settings, devices, upload_queue)
    closed: list[bool] = []

    async def close_resources() -> None:
        await asyncio.to_thread(capture_session.close)
        closed.append(True)

    return AppContainer(
        settings=settings,
        media_client=uploader,
        preview_store=preview_store,
        upload_queue=upload_queue,
        capture_session=capture_session,
        close_resources=close_resources,
    )
