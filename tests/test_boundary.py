"""Tests for SpeechBoundaryTracker."""

from __future__ import annotations

from tests.conftest import FakeClock
from voxroom.core.throttle import ThrottleEngine
from voxroom.models.enums import SpeechPriority
from voxroom.voice.boundary import SpeechBoundaryTracker


def _speak(tracker: SpeechBoundaryTracker, clock: FakeClock, ms: float) -> SpeechPriority:
    tracker.on_start("alice")
    clock.advance(ms)
    return tracker.on_end("alice")


class TestPriority:
    def test_short_directed_utterance_is_high(self, clock: FakeClock) -> None:
        tracker = SpeechBoundaryTracker(clock=clock)
        assert _speak(tracker, clock, 1800) == SpeechPriority.HIGH

    def test_cough_is_skipped(self, clock: FakeClock) -> None:
        tracker = SpeechBoundaryTracker(clock=clock)
        assert _speak(tracker, clock, 300) == SpeechPriority.SKIP

    def test_monologue_is_normal(self, clock: FakeClock) -> None:
        tracker = SpeechBoundaryTracker(clock=clock)
        assert _speak(tracker, clock, 20_000) == SpeechPriority.NORMAL

    def test_between_skip_and_high_is_normal(self, clock: FakeClock) -> None:
        tracker = SpeechBoundaryTracker(clock=clock)
        assert _speak(tracker, clock, 500) == SpeechPriority.NORMAL
        assert _speak(tracker, clock, 1499) == SpeechPriority.NORMAL

    def test_high_bounds_inclusive(self, clock: FakeClock) -> None:
        tracker = SpeechBoundaryTracker(clock=clock)
        assert _speak(tracker, clock, 1500) == SpeechPriority.HIGH
        assert _speak(tracker, clock, 10_000) == SpeechPriority.HIGH
        assert _speak(tracker, clock, 10_001) == SpeechPriority.NORMAL

    def test_end_without_start_is_normal(self, clock: FakeClock) -> None:
        tracker = SpeechBoundaryTracker(clock=clock)
        assert tracker.on_end("ghost") == SpeechPriority.NORMAL

    def test_penalized_speaker_is_skipped(self, clock: FakeClock) -> None:
        throttle = ThrottleEngine(clock=clock)
        tracker = SpeechBoundaryTracker(throttle, clock=clock)
        throttle.set_penalty("alice", 60_000)
        assert _speak(tracker, clock, 1800) == SpeechPriority.SKIP

    def test_penalized_speaker_skipped_without_start(self, clock: FakeClock) -> None:
        throttle = ThrottleEngine(clock=clock)
        tracker = SpeechBoundaryTracker(throttle, clock=clock)
        throttle.set_penalty("ghost", 60_000)
        assert tracker.on_end("ghost") == SpeechPriority.SKIP

    def test_speakers_tracked_independently(self, clock: FakeClock) -> None:
        tracker = SpeechBoundaryTracker(clock=clock)
        tracker.on_start("alice")
        clock.advance(1000)
        tracker.on_start("bob")
        clock.advance(800)
        assert tracker.on_end("alice") == SpeechPriority.HIGH
        assert tracker.on_end("bob") == SpeechPriority.NORMAL


class TestSweep:
    def test_removes_stale_starts(self, clock: FakeClock) -> None:
        tracker = SpeechBoundaryTracker(clock=clock)
        tracker.on_start("alice")
        clock.advance(20_000)
        tracker.on_start("bob")
        clock.advance(10_001)

        assert tracker.sweep() == 1
        assert not tracker.is_speaking("alice")
        assert tracker.is_speaking("bob")
        assert len(tracker) == 1

    def test_swept_speaker_end_is_normal(self, clock: FakeClock) -> None:
        tracker = SpeechBoundaryTracker(clock=clock)
        tracker.on_start("alice")
        clock.advance(31_000)
        tracker.sweep()
        assert tracker.on_end("alice") == SpeechPriority.NORMAL
