"""Camera and microphone access through PyAV (FFmpeg capture devices)."""

from __future__ import annotations

import asyncio
import io
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from fractions import Fraction

import av
from av import AudioFrame, VideoFrame
from PIL import Image

from inventory_media.domain.capture import MediaConstraints
from inventory_media.services.capture import (
    DeviceUnavailable,
    MediaDevices,
    MediaRecorder,
    MediaStream,
    PermissionDenied,
)

logger = logging.getLogger(__name__)

# libvpx expects yuv420p; libopus is fed interleaved 16-bit stereo at 48 kHz.
WEBM_PIX_FMT = "yuv420p"
OPUS_SAMPLE_RATE = 48000
OPUS_FRAME_SIZE = 960
DEFAULT_FPS = 30

VIDEO_CODECS: dict[str, str] = {
    "video/webm;codecs=vp9": "libvpx-vp9",
    "video/webm": "libvpx",
}


def encode_jpeg(image: Image.Image, quality: float) -> bytes:
    """Compress a PIL image to JPEG bytes; quality is a 0-1 fraction."""
    buffer = io.BytesIO()
    image.convert("RGB").save(
        buffer,
        format="JPEG",
        quality=max(1, min(100, round(quality * 100))),
    )
    return buffer.getvalue()


class AvRecorder(MediaRecorder):
    """Encodes live frames into an in-memory WebM container.

    WebM is finalized in place when the container closes, so the whole
    recording is delivered as a single chunk from stop().
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        codec: str,
        bits_per_second: int,
        fps: int,
        on_chunk: Callable[[bytes], None],
        with_audio: bool = False,
    ) -> None:
        self._codec = codec
        self._bits_per_second = bits_per_second
        self._fps = fps
        self._on_chunk = on_chunk
        self._with_audio = with_audio
        self._buffer = io.BytesIO()
        self._container: av.container.OutputContainer | None = None
        self._video_stream: av.VideoStream | None = None
        self._audio_stream: av.AudioStream | None = None
        self._resampler: av.AudioResampler | None = None
        self._fifo: av.AudioFifo | None = None
        self._lock = threading.Lock()
        self._frame_count = 0
        self._sample_count = 0
        self.stopped = False

    @property
    def frame_count(self) -> int:
        return self._frame_count

    def _ensure_container(
        self, width: int, height: int
    ) -> tuple[av.container.OutputContainer, av.VideoStream]:
        if self._container is not None and self._video_stream is not None:
            return self._container, self._video_stream
        container = av.open(self._buffer, "w", format="webm")
        video_stream = container.add_stream(self._codec, rate=self._fps)
        video_stream.width = width
        video_stream.height = height
        video_stream.pix_fmt = WEBM_PIX_FMT
        video_stream.bit_rate = self._bits_per_second
        video_stream.time_base = Fraction(1, self._fps)
        self._container = container
        self._video_stream = video_stream
        if self._with_audio:
            self._audio_stream = container.add_stream(
                "libopus", rate=OPUS_SAMPLE_RATE, layout="stereo"
            )
            self._resampler = av.AudioResampler(
                format="s16", layout="stereo", rate=OPUS_SAMPLE_RATE
            )
            self._fifo = av.AudioFifo()
        return container, video_stream

    def add_video(self, frame: VideoFrame) -> None:
        """Encode one video frame."""
        if frame.width <= 0 or frame.height <= 0:
            return
        with self._lock:
            if self.stopped:
                return
            container, video_stream = self._ensure_container(
                frame.width, frame.height
            )
            if frame.format and frame.format.name != WEBM_PIX_FMT:
                frame = frame.reformat(format=WEBM_PIX_FMT)
            frame.pts = self._frame_count
            frame.time_base = Fraction(1, self._fps)
            for packet in video_stream.encode(frame):
                container.mux(packet)
            self._frame_count += 1

    def add_audio(self, frame: AudioFrame) -> None:
        """Resample and encode captured audio; ignored until video has started."""
        with self._lock:
            resampler, fifo = self._resampler, self._fifo
            if self.stopped or resampler is None or fifo is None:
                return
            for resampled in resampler.resample(frame):
                resampled.pts = None
                fifo.write(resampled)
            for chunk in fifo.read_many(OPUS_FRAME_SIZE):
                self._encode_audio(chunk)

    def _encode_audio(self, chunk: AudioFrame | None) -> None:
        container, audio_stream = self._container, self._audio_stream
        if container is None or audio_stream is None:
            return
        if chunk is not None:
            chunk.pts = self._sample_count
            chunk.time_base = Fraction(1, OPUS_SAMPLE_RATE)
            self._sample_count += chunk.samples
        for packet in audio_stream.encode(chunk):
            container.mux(packet)

    def stop(self) -> None:
        """Flush the encoders, close the container and deliver the bytes."""
        with self._lock:
            if self.stopped:
                return
            self.stopped = True
            data = b""
            if self._container is not None and self._video_stream is not None:
                for packet in self._video_stream.encode():
                    self._container.mux(packet)
                if self._audio_stream is not None:
                    self._encode_audio(None)
                self._container.close()
                data = self._buffer.getvalue()
            self._container = None
            self._video_stream = None
            self._audio_stream = None
            self._buffer = io.BytesIO()
        if data:
            self._on_chunk(data)


@dataclass
class AvMediaStream(MediaStream):
    """Live stream backed by opened PyAV input containers."""

    video: av.container.InputContainer
    audio: av.container.InputContainer | None = None
    _latest: VideoFrame | None = field(default=None, init=False, repr=False)
    _recorder: AvRecorder | None = field(default=None, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)
    _closed: threading.Event = field(default_factory=threading.Event, init=False)
    _threads: list[threading.Thread] = field(default_factory=list, init=False)

    def __post_init__(self) -> None:
        self._spawn(self._read_video, "camera-video")
        if self.audio is not None:
            self._spawn(self._read_audio, "camera-audio")

    @property
    def fps(self) -> int:
        rate = self.video.streams.video[0].average_rate
        return int(rate) if rate else DEFAULT_FPS

    def is_ready(self) -> bool:
        with self._lock:
            return self._latest is not None

    def grab_frame(self, quality: float) -> bytes | None:
        with self._lock:
            frame = self._latest
        if frame is None:
            return None
        return encode_jpeg(frame.to_image(), quality)

    def is_type_supported(self, mime_type: str) -> bool:
        codec = VIDEO_CODECS.get(mime_type)
        return codec is not None and codec in av.codecs_available

    def start_recorder(
        self,
        mime_type: str,
        bits_per_second: int,
        timeslice_ms: int,
        on_chunk: Callable[[bytes], None],
    ) -> MediaRecorder:
        recorder = AvRecorder(
            codec=VIDEO_CODECS.get(mime_type, "libvpx"),
            bits_per_second=bits_per_second,
            fps=self.fps,
            on_chunk=on_chunk,
            with_audio=self.audio is not None,
        )
        with self._lock:
            self._recorder = recorder
        return recorder

    def stop(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        with self._lock:
            recorder, self._recorder = self._recorder, None
        if recorder is not None:
            recorder.stop()
        for thread in self._threads:
            thread.join(timeout=2)
        self.video.close()
        if self.audio is not None:
            self.audio.close()

    def _active_recorder(self) -> AvRecorder | None:
        with self._lock:
            recorder = self._recorder
        if recorder is None or recorder.stopped:
            return None
        return recorder

    def _read_video(self) -> None:
        try:
            for frame in self.video.decode(video=0):
                if self._closed.is_set():
                    break
                with self._lock:
                    self._latest = frame
                recorder = self._active_recorder()
                if recorder is not None:
                    recorder.add_video(frame)
        except av.error.FFmpegError as exc:
            if not self._closed.is_set():
                logger.warning("Camera stream ended: %s", exc)

    def _read_audio(self) -> None:
        audio = self.audio
        if audio is None:
            return
        try:
            for frame in audio.decode(audio=0):
                if self._closed.is_set():
                    break
                recorder = self._active_recorder()
                if recorder is not None:
                    recorder.add_audio(frame)
        except av.error.FFmpegError as exc:
            if not self._closed.is_set():
                logger.warning("Microphone stream ended: %s", exc)

    def _spawn(self, target: Callable[[], None], name: str) -> None:
        thread = threading.Thread(target=target, name=name, daemon=True)
        thread.start()
        self._threads.append(thread)


@dataclass
class AvMediaDevices(MediaDevices):
    """Opens FFmpeg capture devices (v4l2, avfoundation, dshow, pulse...)."""

    video_device: str
    video_format: str | None = "v4l2"
    audio_device: str | None = None
    audio_format: str | None = "pulse"

    async def get_user_media(self, constraints: MediaConstraints) -> MediaStream:
        loop = asyncio.get_running_loop()
        opening = loop.run_in_executor(None, self._open, constraints)
        try:
            return await asyncio.shield(opening)
        except asyncio.CancelledError:
            # The device keeps opening in its worker thread; release it once done.
            opening.add_done_callback(_release_abandoned)
            raise

    def _open(self, constraints: MediaConstraints) -> AvMediaStream:
        # FFmpeg inputs have no notion of facing mode; the configured device wins.
        video = _open_input(
            self.video_device,
            self.video_format,
            {"video_size": f"{constraints.width}x{constraints.height}"},
        )
        audio = None
        if constraints.audio:
            if self.audio_device is None:
                logger.info("No audio device configured; recording video only")
            else:
                try:
                    audio = _open_input(self.audio_device, self.audio_format, {})
                except (PermissionDenied, DeviceUnavailable):
                    video.close()
                    raise
        return AvMediaStream(video=video, audio=audio)


def _release_abandoned(opening: asyncio.Future[AvMediaStream]) -> None:
    if opening.cancelled() or opening.exception() is not None:
        return
    logger.info("Releasing camera opened after the request was cancelled")
    release = threading.Thread(
        target=opening.result().stop, name="camera-release", daemon=True
    )
    release.start()


def _open_input(
    device: str, input_format: str | None, options: dict[str, str]
) -> av.container.InputContainer:
    try:
        return av.open(device, format=input_format, options=options)
    except PermissionError as exc:
        raise PermissionDenied(f"Access to {device} was denied") from exc
    except (av.error.FFmpegError, OSError) as exc:
        raise DeviceUnavailable(f"Could not open {device}: {exc}") from exc
