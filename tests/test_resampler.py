"""Tests for PCM conversion and signal helpers."""

from __future__ import annotations

import pytest

from tests.conftest import pcm, platform_audio, unpack
from voxroom.voice.audio_format import BACKEND_INPUT_FORMAT, PLATFORM_FORMAT
from voxroom.voice.resampler import (
    align,
    apply_noise_gate,
    compute_rms,
    convert,
    peak_level,
    to_backend_format,
    to_platform_format,
    validate,
)


class TestToBackendFormat:
    def test_output_length(self) -> None:
        out = to_backend_format(platform_audio(100))
        # 100 ms at 16 kHz mono = 1600 samples
        assert len(out) == 1600 * 2

    def test_downmix_is_floored_mean(self) -> None:
        data = pcm(100, 201) * 3
        out = unpack(to_backend_format(data, dst_rate=48000))
        assert out == [150, 150, 150]

    def test_downmix_negative_floors_toward_minus_infinity(self) -> None:
        out = unpack(to_backend_format(pcm(-1, -2), dst_rate=48000))
        assert out == [-2]

    def test_nearest_neighbour_picks_floor_index(self) -> None:
        # Mono 48 kHz ramp -> 16 kHz keeps every third sample
        data = pcm(*range(12))
        out = unpack(convert(data, 48000, 1, 16000, 1))
        assert out == [0, 3, 6, 9]

    def test_partial_frame_truncated(self) -> None:
        data = pcm(10, 20, 30)  # one full stereo frame plus half a frame
        out = unpack(to_backend_format(data, dst_rate=48000))
        assert out == [15]

    def test_trailing_odd_byte_ignored(self) -> None:
        data = pcm(10, 20) + b"\x01"
        assert to_backend_format(data, dst_rate=48000) == pcm(15)

    def test_shorter_than_one_frame_is_empty(self) -> None:
        assert to_backend_format(b"") == b""
        assert to_backend_format(pcm(5)) == b""
        assert to_backend_format(b"\x01") == b""

    def test_extremes_stay_in_range(self) -> None:
        data = pcm(32767, 32767, -32768, -32768)
        out = unpack(to_backend_format(data, dst_rate=48000))
        assert out == [32767, -32768]


class TestToPlatformFormat:
    def test_mono_to_stereo_duplicates(self) -> None:
        out = unpack(to_platform_format(pcm(7, -7), src_rate=48000))
        assert out == [7, 7, -7, -7]

    def test_upsample_repeats_samples(self) -> None:
        out = unpack(to_platform_format(pcm(1, 2), src_rate=24000))
        # 2 frames at 24 kHz -> 4 frames at 48 kHz, stereo
        assert out == [1, 1, 1, 1, 2, 2, 2, 2]

    def test_reply_rate_default(self) -> None:
        one_second = pcm(0) * 24000
        out = to_platform_format(one_second)
        assert PLATFORM_FORMAT.duration_ms(out) == pytest.approx(1000.0)


class TestRoundTrip:
    @pytest.mark.parametrize("duration_ms", [1, 20, 333, 1000])
    def test_duration_preserved_within_one_frame(self, duration_ms: int) -> None:
        original = platform_audio(duration_ms)
        backend = to_backend_format(original)
        back = to_platform_format(backend, src_rate=BACKEND_INPUT_FORMAT.sample_rate)
        original_frames = len(original) // PLATFORM_FORMAT.frame_bytes
        back_frames = len(back) // PLATFORM_FORMAT.frame_bytes
        assert abs(original_frames - back_frames) <= 3  # one 16 kHz frame = 3 platform frames

    def test_odd_sized_input_does_not_raise(self) -> None:
        data = platform_audio(10) + b"\x00\x01\x02"
        back = to_platform_format(to_backend_format(data), src_rate=16000)
        assert len(back) % PLATFORM_FORMAT.frame_bytes == 0


class TestProgrammerErrors:
    def test_non_positive_rate_raises(self) -> None:
        with pytest.raises(ValueError):
            convert(pcm(1, 2), 0, 2, 16000, 1)
        with pytest.raises(ValueError):
            convert(pcm(1, 2), 48000, 2, -16000, 1)

    def test_unsupported_channels_raise(self) -> None:
        with pytest.raises(ValueError):
            convert(pcm(1, 2, 3), 48000, 3, 16000, 1)

    def test_negative_gate_threshold_raises(self) -> None:
        with pytest.raises(ValueError):
            apply_noise_gate(pcm(1), -1)


class TestComputeRMS:
    def test_empty_is_zero(self) -> None:
        assert compute_rms(b"") == 0.0

    def test_silence_is_zero(self) -> None:
        assert compute_rms(pcm(0) * 100) == 0.0

    def test_silence_stays_silent_after_conversion(self) -> None:
        silence = platform_audio(50, value=0)
        assert compute_rms(to_backend_format(silence)) == 0.0
        assert compute_rms(to_platform_format(to_backend_format(silence), src_rate=16000)) == 0.0

    def test_full_scale(self) -> None:
        assert compute_rms(pcm(-32768) * 10) == pytest.approx(1.0)

    def test_half_scale(self) -> None:
        assert compute_rms(pcm(16384, -16384)) == pytest.approx(0.5)

    def test_peak_level(self) -> None:
        assert peak_level(pcm(100, -16384, 50)) == pytest.approx(0.5)
        assert peak_level(b"") == 0.0


class TestNoiseGate:
    def test_zeroes_exactly_samples_below_threshold(self) -> None:
        data = pcm(0, 99, -99, 100, -100, 101, -5000)
        out = unpack(apply_noise_gate(data, 100))
        assert out == [0, 0, 0, 100, -100, 101, -5000]

    def test_length_preserved(self) -> None:
        data = pcm(1, 2, 3) + b"\x07"
        out = apply_noise_gate(data, 500)
        assert len(out) == len(data)
        assert out[-1:] == b"\x07"

    def test_input_not_mutated(self) -> None:
        data = bytearray(pcm(10, 20))
        snapshot = bytes(data)
        apply_noise_gate(bytes(data), 500)
        assert bytes(data) == snapshot

    def test_zero_threshold_is_identity(self) -> None:
        data = pcm(0, 1, -1)
        assert apply_noise_gate(data, 0) == data


class TestValidate:
    def test_rejects_empty(self) -> None:
        assert validate(b"", 2, 48000) is False
        assert validate(None, 2, 48000) is False

    def test_rejects_odd_length(self) -> None:
        assert validate(b"\x00\x00\x00", 2, 48000) is False

    def test_rejects_shorter_than_frame(self) -> None:
        assert validate(pcm(1), 2, 48000) is False

    def test_accepts_whole_frames(self) -> None:
        assert validate(pcm(1, 2), 2, 48000) is True

    def test_does_not_check_rate(self) -> None:
        assert validate(pcm(1, 2), 2, 1) is True

    def test_align_drops_odd_byte(self) -> None:
        assert align(b"\x01\x02\x03") == b"\x01\x02"
        assert align(b"\x01\x02") == b"\x01\x02"
