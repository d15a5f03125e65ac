"""Two-phase admission control for voice utterances."""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass

from voxroom.models.config import ThrottleConfig

logger = logging.getLogger("voxroom.core.throttle")


def monotonic_ms() -> float:
    """Default clock: monotonic time in milliseconds."""
    return time.monotonic() * 1000.0


@dataclass
class ActivationWindow:
    """Voice activations counted within one rolling spam window."""

    count: int
    reset_at: float


@dataclass(frozen=True)
class ThrottleStats:
    responses_this_hour: int
    max_responses_per_hour: int
    time_until_reset_ms: float
    active_speakers: int


class ThrottleEngine:
    """Decides whether an utterance should reach the backend, and be answered.

    Phase A (:meth:`should_consider`) is a cheap pre-filter run before audio
    is converted and sent.  It applies the penalty and spam checks, the
    hourly quota, channel and speaker cooldowns, then a widened random
    draw (``random_response_chance * transcription_multiplier``).

    Phase B (:meth:`should_respond`) runs once the transcript is known.  A
    wake term in the transcript forces acceptance past the cooldowns but
    never past the hourly quota.  Otherwise the cooldowns are applied again
    followed by a random draw at the base chance.  Every acceptance in
    Phase B is recorded as a response.

    All deadlines are checked lazily against ``clock()``; nothing is
    scheduled.  ``clock`` returns milliseconds and ``rng`` only needs a
    ``random()`` method, so both can be replaced in tests.

    **Concurrency note:** no method awaits, so every check-and-update is
    atomic within one event-loop iteration.
    """

    def __init__(
        self,
        config: ThrottleConfig | None = None,
        *,
        clock: Callable[[], float] = monotonic_ms,
        rng: random.Random | None = None,
    ) -> None:
        self._config = config or ThrottleConfig()
        self._clock = clock
        self._rng = rng or random.Random()
        self._wake_terms = tuple(t.lower() for t in self._config.wake_terms if t)

        self._last_response: dict[str, float] = {}
        self._channel_last_response: dict[str, float] = {}
        self._last_activation: dict[str, float] = {}
        self._activations: dict[str, ActivationWindow] = {}
        self._penalty_until: dict[str, float] = {}
        self._interactions: dict[str, int] = {}
        self._response_count = 0
        self._hourly_reset_at = self._clock() + self._config.hourly_window_ms

    @property
    def config(self) -> ThrottleConfig:
        return self._config

    @property
    def response_count(self) -> int:
        self._roll_hourly(self._clock())
        return self._response_count

    # -- Penalties --

    def is_penalized(self, speaker_id: str) -> bool:
        """Return True while *speaker_id* is inside a spam penalty."""
        until = self._penalty_until.get(speaker_id)
        if until is None:
            return False
        if self._clock() < until:
            return True
        del self._penalty_until[speaker_id]
        return False

    def set_penalty(self, speaker_id: str, duration_ms: float) -> None:
        """Suppress *speaker_id* for *duration_ms* from now."""
        self._penalty_until[speaker_id] = self._clock() + duration_ms
        logger.info("Speaker %s penalized for %.0f ms", speaker_id, duration_ms)

    # -- Phase A --

    def should_consider(self, speaker_id: str, channel_id: str, *, force: bool = False) -> bool:
        """Pre-transcription gate.

        With ``force=True`` (used for high-priority utterances) the penalty,
        spam and hourly checks still apply but the cooldowns and the random
        draw are skipped.
        """
        if self.is_penalized(speaker_id):
            return self._reject("penalty", speaker_id, channel_id)
        if not self._check_spam(speaker_id):
            return self._reject("spam", speaker_id, channel_id)

        now = self._clock()
        if self._hourly_limit_reached(now):
            return self._reject("hourly_limit", speaker_id, channel_id)
        if force:
            return True
        if self._in_channel_cooldown(channel_id, now):
            return self._reject("channel_cooldown", speaker_id, channel_id)
        if self._in_speaker_cooldown(speaker_id, now):
            return self._reject("speaker_cooldown", speaker_id, channel_id)

        chance = self._config.random_response_chance * self._config.transcription_multiplier
        if self._rng.random() < chance:
            logger.debug(
                "Phase A accepted",
                extra={"speaker_id": speaker_id, "channel_id": channel_id, "chance": chance},
            )
            return True
        return self._reject("random", speaker_id, channel_id)

    # -- Phase B --

    def should_respond(self, speaker_id: str, channel_id: str, transcript: str) -> bool:
        """Post-transcription gate. Records the response when accepting."""
        now = self._clock()
        if self._hourly_limit_reached(now):
            return self._reject("hourly_limit", speaker_id, channel_id)

        if self.contains_wake_term(transcript):
            logger.info("Wake term heard from %s in %s", speaker_id, channel_id)
            self.record_response(speaker_id, channel_id)
            return True

        if self._in_channel_cooldown(channel_id, now):
            return self._reject("channel_cooldown", speaker_id, channel_id)
        if self._in_speaker_cooldown(speaker_id, now):
            return self._reject("speaker_cooldown", speaker_id, channel_id)

        if self._rng.random() < self._config.random_response_chance:
            self.record_response(speaker_id, channel_id)
            return True
        return self._reject("random", speaker_id, channel_id)

    def contains_wake_term(self, transcript: str) -> bool:
        lowered = transcript.lower()
        return any(term in lowered for term in self._wake_terms)

    def record_response(self, speaker_id: str, channel_id: str) -> None:
        now = self._clock()
        self._last_response[speaker_id] = now
        self._channel_last_response[channel_id] = now
        self._response_count += 1
        self._interactions[speaker_id] = self._interactions.get(speaker_id, 0) + 1

    # -- Administration --

    def stats(self) -> ThrottleStats:
        now = self._clock()
        self._roll_hourly(now)
        return ThrottleStats(
            responses_this_hour=self._response_count,
            max_responses_per_hour=self._config.max_responses_per_hour,
            time_until_reset_ms=max(0.0, self._hourly_reset_at - now),
            active_speakers=len(self._interactions),
        )

    def reset(self) -> None:
        """Clear cooldowns, interaction counts and the hourly quota.

        Spam penalties and activation windows are left in place.
        """
        self._last_response.clear()
        self._channel_last_response.clear()
        self._interactions.clear()
        self._response_count = 0
        self._hourly_reset_at = self._clock() + self._config.hourly_window_ms
        logger.info("Throttle state reset")

    def forget_channel(self, channel_id: str) -> None:
        """Drop cooldown state scoped to *channel_id*."""
        self._channel_last_response.pop(channel_id, None)

    # -- Internal checks --

    def _check_spam(self, speaker_id: str) -> bool:
        now = self._clock()
        last = self._last_activation.get(speaker_id)
        if last is not None and now - last < self._config.voice_spam_cooldown_ms:
            return False

        window = self._activations.get(speaker_id)
        if window is None or now > window.reset_at:
            window = ActivationWindow(count=0, reset_at=now + self._config.spam_window_ms)
            self._activations[speaker_id] = window

        if window.count >= self._config.voice_spam_threshold:
            self.set_penalty(speaker_id, self._config.spam_penalty_ms)
            logger.warning(
                "Voice spam from %s: %d activations within %d ms",
                speaker_id,
                window.count,
                self._config.spam_window_ms,
            )
            return False

        self._last_activation[speaker_id] = now
        window.count += 1
        return True

    def _roll_hourly(self, now: float) -> None:
        if now > self._hourly_reset_at:
            self._response_count = 0
            self._hourly_reset_at = now + self._config.hourly_window_ms

    def _hourly_limit_reached(self, now: float) -> bool:
        self._roll_hourly(now)
        return self._response_count >= self._config.max_responses_per_hour

    def _in_channel_cooldown(self, channel_id: str, now: float) -> bool:
        last = self._channel_last_response.get(channel_id)
        return last is not None and now - last < self._config.global_cooldown_ms

    def _in_speaker_cooldown(self, speaker_id: str, now: float) -> bool:
        last = self._last_response.get(speaker_id)
        return last is not None and now - last < self._config.user_cooldown_ms

    def _reject(self, reason: str, speaker_id: str, channel_id: str) -> bool:
        logger.debug(
            "Throttle rejected (%s)",
            reason,
            extra={"speaker_id": speaker_id, "channel_id": channel_id, "reason": reason},
        )
        return False
