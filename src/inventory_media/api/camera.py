"""Camera capture endpoints."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from fastapi import APIRouter, Request

from inventory_media.api.models import CameraView, CaptureResult, OpenCameraRequest

if TYPE_CHECKING:
    from inventory_media.services.capture import CaptureSession

router = APIRouter(prefix="/camera", tags=["camera"])

# Session calls can block on device release or encoding, so they run in
# worker threads.


def _session(request: Request) -> CaptureSession:
    return request.app.state.container.capture_session


@router.get("")
async def camera_state(request: Request) -> CameraView:
    """Return the capture session state."""
    return CameraView.from_session(_session(request))


@router.post("/open")
async def open_camera(body: OpenCameraRequest, request: Request) -> CameraView:
    """Open the camera, replacing any stream that is already open."""
    session = _session(request)
    await asyncio.to_thread(session.close)
    await session.open(body.mode)
    return CameraView.from_session(session)


@router.post("/photo")
async def take_photo(request: Request) -> CaptureResult:
    """Take a photo; it is queued for upload when captured."""
    session = _session(request)
    captured = await asyncio.to_thread(session.capture_photo)
    return CaptureResult.build(captured, session)


@router.post("/recording/start")
async def start_recording(request: Request) -> CameraView:
    """Start recording video."""
    session = _session(request)
    await asyncio.to_thread(session.start_recording)
    return CameraView.from_session(session)


@router.post("/recording/stop")
async def stop_recording(request: Request) -> CaptureResult:
    """Stop recording; the video is queued for upload."""
    session = _session(request)
    captured = await asyncio.to_thread(session.stop_recording)
    return CaptureResult.build(captured, session)


@router.post("/close")
async def close_camera(request: Request) -> CaptureResult:
    """Close the camera, keeping any recording that was in progress."""
    session = _session(request)
    captured = await asyncio.to_thread(session.close)
    return CaptureResult.build(captured, session)
