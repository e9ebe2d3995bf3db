"""Domain models for camera capture sessions."""

from dataclasses import dataclass
from enum import Enum


class CaptureMode(str, Enum):
    """Which outputs a capture session offers."""

    PHOTO = "photo"
    VIDEO = "video"
    BOTH = "both"

    @property
    def allows_photo(self) -> bool:
        return self in {CaptureMode.PHOTO, CaptureMode.BOTH}

    @property
    def allows_video(self) -> bool:
        return self in {CaptureMode.VIDEO, CaptureMode.BOTH}


class CaptureState(str, Enum):
    """Observable state of a capture session."""

    CLOSED = "closed"
    OPENING = "opening"
    READY = "ready"
    RECORDING = "recording"
    ERROR = "error"


@dataclass(frozen=True)
class MediaConstraints:
    """Stream request passed to a media device."""

    width: int = 1280
    height: int = 720
    facing_mode: str = "environment"
    audio: bool = True


PHOTO_QUALITY = 0.92
VIDEO_BITS_PER_SECOND = 2_500_000
RECORDER_TIMESLICE_MS = 1000
PREFERRED_VIDEO_MIME_TYPES = ("video/webm;codecs=vp9", "video/webm")
