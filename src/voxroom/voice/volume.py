"""Loudness monitoring with temporary server-side mute."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from voxroom.core.throttle import monotonic_ms
from voxroom.models.config import VolumeMonitorConfig
from voxroom.voice.resampler import compute_rms

if TYPE_CHECKING:
    from voxroom.voice.base import VoiceSession

logger = logging.getLogger("voxroom.voice.volume")


class VolumeMonitor:
    """Mutes speakers whose input level exceeds a threshold.

    Each speaker is checked at most once per ``check_interval_ms``.  When a
    chunk's RMS level is above ``threshold`` the speaker is server-muted and
    an unmute task is scheduled ``mute_duration_ms`` later.  The task lives
    in ``session.mute_timers`` until it fires or the session is torn down.
    """

    def __init__(
        self,
        config: VolumeMonitorConfig | None = None,
        *,
        clock: Callable[[], float] = monotonic_ms,
    ) -> None:
        self._config = config or VolumeMonitorConfig()
        self._clock = clock
        self._last_check: dict[str, float] = {}

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    async def check(self, session: VoiceSession, speaker_id: str, chunk: bytes) -> bool:
        """Inspect one chunk. Returns True if the speaker was muted by this call."""
        if not self._config.enabled or speaker_id in session.mute_timers:
            return False

        now = self._clock()
        last = self._last_check.get(speaker_id)
        if last is not None and now - last < self._config.check_interval_ms:
            return False
        self._last_check[speaker_id] = now

        level = compute_rms(chunk)
        if level <= self._config.threshold:
            return False

        logger.info(
            "Speaker %s too loud (%.2f > %.2f), muting for %d ms",
            speaker_id,
            level,
            self._config.threshold,
            self._config.mute_duration_ms,
        )
        try:
            await session.connection.set_speaker_muted(speaker_id, True)
        except Exception:
            logger.warning("Could not mute speaker %s", speaker_id, exc_info=True)
            return False
        if session.destroyed:
            return False

        task = asyncio.get_running_loop().create_task(
            self._unmute_later(session, speaker_id),
            name=f"voxroom_unmute_{speaker_id}",
        )
        session.mute_timers[speaker_id] = task
        return True

    async def _unmute_later(self, session: VoiceSession, speaker_id: str) -> None:
        try:
            await asyncio.sleep(self._config.mute_duration_ms / 1000)
            if session.destroyed:
                return
            await session.connection.set_speaker_muted(speaker_id, False)
            logger.info("Speaker %s unmuted", speaker_id)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.debug("Unmute failed for %s", speaker_id, exc_info=True)
        finally:
            if session.mute_timers.get(speaker_id) is asyncio.current_task():
                del session.mute_timers[speaker_id]

    def forget(self, speaker_id: str) -> None:
        self._last_check.pop(speaker_id, None)

    def reset(self) -> None:
        """Drop every per-speaker check timestamp."""
        self._last_check.clear()

    def __len__(self) -> int:
        return len(self._last_check)

    @staticmethod
    async def cancel_all(session: VoiceSession) -> None:
        """Cancel every pending unmute timer of *session*."""
        tasks = list(session.mute_timers.values())
        session.mute_timers.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
