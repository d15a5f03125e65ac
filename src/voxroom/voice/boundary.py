"""Utterance duration classification per speaker."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from voxroom.core.throttle import monotonic_ms
from voxroom.models.enums import SpeechPriority

if TYPE_CHECKING:
    from voxroom.core.throttle import ThrottleEngine

logger = logging.getLogger("voxroom.voice.boundary")


class SpeechBoundaryTracker:
    """Tracks when each speaker started talking and grades the utterance.

    On :meth:`on_end` the elapsed time ``d`` is classified:

    * speaker under a throttle penalty: ``SKIP``
    * ``d < min_duration_ms``: ``SKIP`` (cough, click, noise)
    * ``high_min_ms <= d <= high_max_ms``: ``HIGH``
    * anything else: ``NORMAL``

    A penalized speaker is skipped even without a recorded start; any other
    end without a matching start is graded ``NORMAL``.  Starts that never
    see an end are dropped by :meth:`sweep` once older than ``max_age_ms``.
    """

    def __init__(
        self,
        throttle: ThrottleEngine | None = None,
        *,
        min_duration_ms: float = 500,
        high_min_ms: float = 1500,
        high_max_ms: float = 10_000,
        max_age_ms: float = 30_000,
        clock: Callable[[], float] = monotonic_ms,
    ) -> None:
        self._throttle = throttle
        self._min_duration_ms = min_duration_ms
        self._high_min_ms = high_min_ms
        self._high_max_ms = high_max_ms
        self._max_age_ms = max_age_ms
        self._clock = clock
        self._starts: dict[str, float] = {}

    def on_start(self, speaker_id: str) -> None:
        self._starts[speaker_id] = self._clock()

    def on_end(self, speaker_id: str) -> SpeechPriority:
        start = self._starts.pop(speaker_id, None)
        if self._throttle is not None and self._throttle.is_penalized(speaker_id):
            logger.debug("Speaker %s is penalized -> skip", speaker_id)
            return SpeechPriority.SKIP
        if start is None:
            return SpeechPriority.NORMAL

        duration = self._clock() - start
        if duration < self._min_duration_ms:
            priority = SpeechPriority.SKIP
        elif self._high_min_ms <= duration <= self._high_max_ms:
            priority = SpeechPriority.HIGH
        else:
            priority = SpeechPriority.NORMAL

        logger.debug("Speaker %s spoke for %.0f ms -> %s", speaker_id, duration, priority)
        return priority

    def is_speaking(self, speaker_id: str) -> bool:
        return speaker_id in self._starts

    def forget(self, speaker_id: str) -> None:
        self._starts.pop(speaker_id, None)

    def sweep(self) -> int:
        """Drop stale start timestamps. Returns how many were removed."""
        now = self._clock()
        stale = [sid for sid, start in self._starts.items() if now - start > self._max_age_ms]
        for sid in stale:
            del self._starts[sid]
        if stale:
            logger.debug("Swept %d stale speech starts", len(stale))
        return len(stale)

    def __len__(self) -> int:
        return len(self._starts)
