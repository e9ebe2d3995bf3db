"""Dependency container wiring for the capture station."""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from inventory_media.adapters.av_camera import AvMediaDevices
from inventory_media.adapters.media_api_client import (
    HttpxMediaApiClient,
    MediaApiClient,
)
from inventory_media.config import Settings, parse_bearer_token
from inventory_media.domain.media import CapturedFile
from inventory_media.services.capture import CaptureSession, MediaDevices
from inventory_media.services.previews import InMemoryPreviewStore, PreviewStore
from inventory_media.services.uploads import UploadQueue


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    media_client: MediaApiClient
    preview_store: PreviewStore
    upload_queue: UploadQueue
    capture_session: CaptureSession
    close_resources: Callable[[], Awaitable[None]]


def wire_capture_session(
    settings: Settings, devices: MediaDevices, upload_queue: UploadQueue
) -> CaptureSession:
    """Build a capture session whose captures land in the upload queue."""

    def on_capture(file: CapturedFile) -> None:
        upload_queue.add(file)

    return CaptureSession(
        devices=devices,
        on_capture=on_capture,
        width=settings.capture_width,
        height=settings.capture_height,
    )


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    media_client = HttpxMediaApiClient.create(
        base_url=resolved_settings.media_api_base_url,
        token=parse_bearer_token(resolved_settings.media_api_token),
        timeout=resolved_settings.upload_timeout_seconds,
    )
    preview_store = InMemoryPreviewStore()
    upload_queue = UploadQueue(uploader=media_client, previews=preview_store)
    devices = AvMediaDevices(
        video_device=resolved_settings.camera_device,
        video_format=resolved_settings.camera_input_format,
        audio_device=resolved_settings.audio_device,
        audio_format=resolved_settings.audio_input_format,
    )
    capture_session = wire_capture_session(resolved_settings, devices, upload_queue)

    async def close_resources() -> None:
        await asyncio.to_thread(capture_session.close)
        await media_client.close()

    return AppContainer(
        settings=resolved_settings,
        media_client=media_client,
        preview_store=preview_store,
        upload_queue=upload_queue,
        capture_session=capture_session,
        close_resources=close_resources,
    )
