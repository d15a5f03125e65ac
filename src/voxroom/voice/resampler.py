"""PCM conversion between the platform and backend formats.

Nearest-neighbour sample-rate conversion plus channel mixing in pure Python.
Quality is not the goal: output is deterministic, never reads past the end
of the input and never raises on malformed-but-non-empty buffers.  Only
programmer errors (non-positive rates, unsupported channel counts) raise
``ValueError``.
"""

from __future__ import annotations

import logging
import math
import struct

from voxroom.voice.audio_format import (
    BACKEND_INPUT_CHANNELS,
    BACKEND_INPUT_SAMPLE_RATE,
    BACKEND_REPLY_CHANNELS,
    BACKEND_REPLY_SAMPLE_RATE,
    PLATFORM_CHANNELS,
    PLATFORM_SAMPLE_RATE,
)

logger = logging.getLogger("voxroom.voice.resampler")

_INT16_MIN = -32768
_INT16_MAX = 32767
_SAMPLE_WIDTH = 2


def _clamp(value: int) -> int:
    return max(_INT16_MIN, min(_INT16_MAX, value))


def _unpack(data: bytes) -> tuple[int, ...]:
    count = len(data) // _SAMPLE_WIDTH
    return struct.unpack(f"<{count}h", data[: count * _SAMPLE_WIDTH])


def _pack(samples: list[int]) -> bytes:
    return struct.pack(f"<{len(samples)}h", *samples)


def _check_args(src_rate: int, src_channels: int, dst_rate: int, dst_channels: int) -> None:
    if src_rate <= 0 or dst_rate <= 0:
        raise ValueError(f"Sample rates must be positive, got {src_rate} -> {dst_rate}")
    for channels in (src_channels, dst_channels):
        if channels not in (1, 2):
            raise ValueError(f"Only mono and stereo are supported, got {channels} channels")


def convert(
    data: bytes,
    src_rate: int,
    src_channels: int,
    dst_rate: int,
    dst_channels: int,
) -> bytes:
    """Convert 16-bit PCM between sample rates and channel layouts.

    Output frame ``i`` is taken from source frame
    ``floor(i * src_rate / dst_rate)``.  Stereo to mono averages both
    channels (floored), mono to stereo duplicates.  A trailing partial frame
    is dropped and input shorter than one frame yields ``b""``.
    """
    _check_args(src_rate, src_channels, dst_rate, dst_channels)
    samples = _unpack(data)
    src_frames = len(samples) // src_channels
    if src_frames == 0:
        return b""

    dst_frames = src_frames * dst_rate // src_rate
    out: list[int] = []
    for i in range(dst_frames):
        src_index = i * src_rate // dst_rate
        if src_index >= src_frames:
            break
        base = src_index * src_channels
        if src_channels == dst_channels:
            out.extend(samples[base : base + src_channels])
        elif src_channels == 2:
            out.append(_clamp((samples[base] + samples[base + 1]) // 2))
        else:
            sample = samples[base]
            out.append(sample)
            out.append(sample)
    return _pack(out)


def to_backend_format(
    data: bytes,
    src_rate: int = PLATFORM_SAMPLE_RATE,
    src_channels: int = PLATFORM_CHANNELS,
    dst_rate: int = BACKEND_INPUT_SAMPLE_RATE,
    dst_channels: int = BACKEND_INPUT_CHANNELS,
) -> bytes:
    """Convert captured platform audio (48 kHz stereo) to backend input (16 kHz mono)."""
    return convert(data, src_rate, src_channels, dst_rate, dst_channels)


def to_platform_format(
    data: bytes,
    src_rate: int = BACKEND_REPLY_SAMPLE_RATE,
    src_channels: int = BACKEND_REPLY_CHANNELS,
    dst_rate: int = PLATFORM_SAMPLE_RATE,
    dst_channels: int = PLATFORM_CHANNELS,
) -> bytes:
    """Convert backend reply audio to the platform playback format."""
    return convert(data, src_rate, src_channels, dst_rate, dst_channels)


def compute_rms(data: bytes) -> float:
    """Root-mean-square level of *data*, normalised to ``[0, 1]``."""
    samples = _unpack(data)
    if not samples:
        return 0.0
    total = sum((s / 32768.0) ** 2 for s in samples)
    return min(1.0, math.sqrt(total / len(samples)))


def peak_level(data: bytes) -> float:
    """Largest absolute sample of *data*, normalised to ``[0, 1]``."""
    samples = _unpack(data)
    if not samples:
        return 0.0
    return min(1.0, max(abs(s) for s in samples) / 32768.0)


def apply_noise_gate(data: bytes, threshold: int) -> bytes:
    """Zero every sample whose magnitude is below *threshold*.

    Returns a new buffer of the same length; a trailing odd byte is kept
    as-is.
    """
    if threshold < 0:
        raise ValueError(f"Noise gate threshold must be >= 0, got {threshold}")
    samples = _unpack(data)
    gated = [0 if abs(s) < threshold else s for s in samples]
    return _pack(gated) + data[len(samples) * _SAMPLE_WIDTH :]


def align(data: bytes) -> bytes:
    """Drop a trailing odd byte so the buffer holds whole 16-bit samples."""
    if len(data) % _SAMPLE_WIDTH:
        return data[: len(data) - len(data) % _SAMPLE_WIDTH]
    return data


def validate(data: bytes | None, expected_channels: int, expected_rate: int) -> bool:
    """Cheap sanity check before conversion.

    Rejects missing or empty buffers, buffers with an odd byte length and
    buffers shorter than one frame.  *expected_rate* is accepted for
    symmetry but the sample rate cannot be recovered from raw PCM, so it is
    not checked.
    """
    if not data:
        logger.debug("Rejecting empty audio buffer")
        return False
    if len(data) % _SAMPLE_WIDTH:
        logger.debug("Rejecting misaligned audio buffer (%d bytes)", len(data))
        return False
    if len(data) < expected_channels * _SAMPLE_WIDTH:
        logger.debug(
            "Rejecting audio buffer shorter than one frame (%d bytes, %d channels @ %d Hz)",
            len(data),
            expected_channels,
            expected_rate,
        )
        return False
    return True
