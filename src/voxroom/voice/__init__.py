"""Voice capture, conversion and playback."""

from voxroom.voice.audio_format import (
    BACKEND_INPUT_FORMAT,
    BACKEND_REPLY_FORMAT,
    BACKEND_REPLY_SAMPLE_RATE,
    PLATFORM_FORMAT,
    PCMFormat,
)
from voxroom.voice.base import CaptureBuffer, CaptureSubscription, VoiceSession
from voxroom.voice.boundary import SpeechBoundaryTracker
from voxroom.voice.events import (
    ConnectionStateChanged,
    PlatformEvent,
    SpeakingEnded,
    SpeakingStarted,
)
from voxroom.voice.player import PlaybackQueue
from voxroom.voice.resampler import (
    apply_noise_gate,
    compute_rms,
    to_backend_format,
    to_platform_format,
    validate,
)

__all__ = [
    "BACKEND_INPUT_FORMAT",
    "BACKEND_REPLY_FORMAT",
    "BACKEND_REPLY_SAMPLE_RATE",
    "PLATFORM_FORMAT",
    "CaptureBuffer",
    "CaptureSubscription",
    "ConnectionStateChanged",
    "PCMFormat",
    "PlatformEvent",
    "PlaybackQueue",
    "SpeakingEnded",
    "SpeakingStarted",
    "SpeechBoundaryTracker",
    "VoiceSession",
    "apply_noise_gate",
    "compute_rms",
    "to_backend_format",
    "to_platform_format",
    "validate",
]
