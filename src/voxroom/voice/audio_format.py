"""Fixed PCM formats on both sides of the engine.

All audio is 16-bit signed little-endian PCM.  The rate of audio coming back
from the backend is a single constant here; every conversion and every
backend configuration reads it from this module.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class PCMFormat:
    """Sample rate and channel layout of a 16-bit PCM stream."""

    sample_rate: int
    channels: int
    sample_width: int = 2

    @property
    def frame_bytes(self) -> int:
        return self.channels * self.sample_width

    @property
    def bytes_per_second(self) -> int:
        return self.sample_rate * self.frame_bytes

    def duration_ms(self, data: bytes) -> float:
        """Duration of *data* in milliseconds, ignoring a trailing partial frame."""
        frames = len(data) // self.frame_bytes
        return frames * 1000 / self.sample_rate


PLATFORM_SAMPLE_RATE = 48000
PLATFORM_CHANNELS = 2
BACKEND_INPUT_SAMPLE_RATE = 16000
BACKEND_INPUT_CHANNELS = 1
BACKEND_REPLY_SAMPLE_RATE = 24000
BACKEND_REPLY_CHANNELS = 1

PLATFORM_FORMAT = PCMFormat(PLATFORM_SAMPLE_RATE, PLATFORM_CHANNELS)
BACKEND_INPUT_FORMAT = PCMFormat(BACKEND_INPUT_SAMPLE_RATE, BACKEND_INPUT_CHANNELS)
BACKEND_REPLY_FORMAT = PCMFormat(BACKEND_REPLY_SAMPLE_RATE, BACKEND_REPLY_CHANNELS)
