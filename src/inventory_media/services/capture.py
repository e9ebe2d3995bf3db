"""Camera capture session driven through an injected media device."""

import asyncio
import logging
import threading
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Protocol

from inventory_media.domain.capture import (
    PHOTO_QUALITY,
    PREFERRED_VIDEO_MIME_TYPES,
    RECORDER_TIMESLICE_MS,
    VIDEO_BITS_PER_SECOND,
    CaptureMode,
    CaptureState,
    MediaConstraints,
)
from inventory_media.domain.media import CapturedFile

logger = logging.getLogger(__name__)

PERMISSION_DENIED_MESSAGE = "Camera permission denied."
DEVICE_UNAVAILABLE_MESSAGE = "Could not access camera."


class CaptureError(Exception):
    """Raised when a media device cannot provide a stream."""


class PermissionDenied(CaptureError):
    """The user or the OS refused access to the camera or microphone."""


class DeviceUnavailable(CaptureError):
    """No usable capture device was found or it failed to start."""


class MediaRecorder(Protocol):
    """Handle for an in-progress recording."""

    def stop(self) -> None:
        """Stop recording and deliver every remaining chunk before returning."""


class MediaStream(Protocol):
    """Live audio/video input acquired from a media device."""

    def is_ready(self) -> bool:
        """Return True once at least one frame is available."""

    def grab_frame(self, quality: float) -> bytes | None:
        """Encode the current frame as JPEG, or return None if there is none."""

    def is_type_supported(self, mime_type: str) -> bool:
        """Return True if the stream can record into the given MIME type."""

    def start_recorder(
        self,
        mime_type: str,
        bits_per_second: int,
        timeslice_ms: int,
        on_chunk: Callable[[bytes], None],
    ) -> MediaRecorder:
        """Start recording, passing encoded chunks to on_chunk."""

    def stop(self) -> None:
        """Release the stream and every underlying device handle."""


class MediaDevices(Protocol):
    """Capability for acquiring live media streams."""

    async def get_user_media(self, constraints: MediaConstraints) -> MediaStream:
        """Acquire a stream or raise PermissionDenied/DeviceUnavailable."""


@dataclass
class RecordingBuffer:
    """Accumulates recorder chunks until the recording is finalized."""

    mime_type: str
    chunks: list[bytes] = field(default_factory=list)

    def append(self, chunk: bytes) -> None:
        if chunk:
            self.chunks.append(chunk)

    def finalize(self, timestamp_ms: int) -> CapturedFile:
        """Join the buffered chunks into a single video file."""
        container_type = self.mime_type.split(";", 1)[0].strip()
        extension = "webm" if "webm" in container_type else "mp4"
        return CapturedFile(
            name=f"capture-{timestamp_ms}.{extension}",
            content=b"".join(self.chunks),
            mime_type=container_type,
        )


@dataclass
class CaptureSession:
    """Owns one camera stream and emits at most one file per open/close cycle.

    Preconditions that do not hold turn capture calls into silent no-ops, the
    same way disabled buttons behave in the capture dialog.
    Capture calls are serialized, so they may be run from worker threads.
    """

    devices: MediaDevices
    on_capture: Callable[[CapturedFile], None] | None = None
    width: int = 1280
    height: int = 720
    clock: Callable[[], float] = time.time
    mode: CaptureMode = CaptureMode.BOTH
    state: CaptureState = CaptureState.CLOSED
    error_message: str | None = None
    _stream: MediaStream | None = field(default=None, init=False, repr=False)
    _recorder: MediaRecorder | None = field(default=None, init=False, repr=False)
    _buffer: RecordingBuffer | None = field(default=None, init=False, repr=False)
    _emitted: bool = field(default=False, init=False, repr=False)
    _generation: int = field(default=0, init=False, repr=False)
    _lock: threading.RLock = field(
        default_factory=threading.RLock, init=False, repr=False
    )

    @property
    def is_recording(self) -> bool:
        return self.state is CaptureState.RECORDING

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    async def open(self, mode: CaptureMode = CaptureMode.BOTH) -> CaptureState:
        """Acquire a rear camera stream, releasing any stream already held."""
        with self._lock:
            self.close()
            self._generation += 1
            generation = self._generation
            self.mode = mode
            self.error_message = None
            self._emitted = False
            self.state = CaptureState.OPENING
        constraints = MediaConstraints(
            width=self.width,
            height=self.height,
            audio=mode is not CaptureMode.PHOTO,
        )
        try:
            stream = await self.devices.get_user_media(constraints)
        except PermissionDenied as exc:
            return self._fail(generation, PERMISSION_DENIED_MESSAGE, exc)
        except CaptureError as exc:
            return self._fail(generation, DEVICE_UNAVAILABLE_MESSAGE, exc)
        except asyncio.CancelledError:
            with self._lock:
                if generation == self._generation:
                    self.state = CaptureState.CLOSED
            raise

        with self._lock:
            if (
                generation != self._generation
                or self.state is not CaptureState.OPENING
            ):
                # Closed or reopened while the device was starting up.
                stream.stop()
                return self.state
            self._stream = stream
            self.state = CaptureState.READY
        logger.info("Camera stream opened", extra={"mode": mode.value})
        return self.state

    def close(self) -> CapturedFile | None:
        """Finalize any recording, then release the stream. Safe to repeat.

        The stream is released even when finalizing the recording fails.
        """
        with self._lock:
            self._generation += 1
            stream, self._stream = self._stream, None
            try:
                if self.state is CaptureState.RECORDING:
                    return self._finish_recording()
                return None
            finally:
                self._recorder = None
                self._buffer = None
                self.state = CaptureState.CLOSED
                if stream is not None:
                    stream.stop()
                    logger.info("Camera stream released")

    def capture_photo(self) -> CapturedFile | None:
        """Snapshot the current frame as a JPEG and close the session."""
        with self._lock:
            stream = self._stream
            if (
                self.state is not CaptureState.READY
                or not self.mode.allows_photo
                or stream is None
                or not stream.is_ready()
            ):
                return None
            data = stream.grab_frame(PHOTO_QUALITY)
            if not data:
                return None
            captured = CapturedFile(
                name=f"capture-{self._timestamp_ms()}.jpg",
                content=data,
                mime_type="image/jpeg",
            )
            try:
                self._emit(captured)
            finally:
                self.close()
            return captured

    def start_recording(self) -> bool:
        """Begin buffering encoded chunks from the stream."""
        with self._lock:
            stream = self._stream
            if (
                self.state is not CaptureState.READY
                or not self.mode.allows_video
                or stream is None
            ):
                return False
            mime_type = next(
                (
                    candidate
                    for candidate in PREFERRED_VIDEO_MIME_TYPES
                    if stream.is_type_supported(candidate)
                ),
                PREFERRED_VIDEO_MIME_TYPES[-1],
            )
            buffer = RecordingBuffer(mime_type=mime_type)
            self._recorder = stream.start_recorder(
                mime_type=mime_type,
                bits_per_second=VIDEO_BITS_PER_SECOND,
                timeslice_ms=RECORDER_TIMESLICE_MS,
                on_chunk=buffer.append,
            )
            self._buffer = buffer
            self.state = CaptureState.RECORDING
        logger.info("Recording started", extra={"mime_type": mime_type})
        return True

    def stop_recording(self) -> CapturedFile | None:
        """Finalize the recording into a single video file and close."""
        with self._lock:
            if self.state is not CaptureState.RECORDING:
                return None
            return self.close()

    @asynccontextmanager
    async def opened(
        self, mode: CaptureMode = CaptureMode.BOTH
    ) -> AsyncIterator["CaptureSession"]:
        """Open the session for the duration of a block and always release it."""
        await self.open(mode)
        try:
            yield self
        finally:
            self.close()

    def _finish_recording(self) -> CapturedFile | None:
        recorder, self._recorder = self._recorder, None
        buffer, self._buffer = self._buffer, None
        if recorder is None or buffer is None:
            return None
        recorder.stop()
        captured = buffer.finalize(self._timestamp_ms())
        logger.info(
            "Recording finalized",
            extra={"file_name": captured.name, "size": captured.size},
        )
        self._emit(captured)
        return captured

    def _fail(
        self, generation: int, message: str, exc: CaptureError
    ) -> CaptureState:
        with self._lock:
            if generation != self._generation:
                return self.state
            self.error_message = message
            self.state = CaptureState.ERROR
        logger.warning("Camera unavailable: %s", exc)
        return self.state

    def _emit(self, captured: CapturedFile) -> None:
        if self._emitted:
            return
        self._emitted = True
        if self.on_capture is not None:
            self.on_capture(captured)

    def _timestamp_ms(self) -> int:
        return int(self.clock() * 1000)
