"""PlaybackQueue: serial playback of replies on one shared player."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from voxroom.platform.base import AudioPlayer

logger = logging.getLogger("voxroom.voice.player")

# Sentinel used as a control signal on the queue
_STOP = "STOP"


class PlaybackQueue:
    """Plays queued replies one at a time, in arrival order.

    A reply enqueued while another is playing waits until the player is
    idle.  Nothing is dropped while the queue is running; replies still
    queued when :meth:`stop` is called are discarded and logged.

    Args:
        player: The session's platform audio player.
        idle_timeout: Upper bound in seconds on waiting for one buffer to
            finish.  The queue moves on (with a warning) when exceeded.
    """

    def __init__(self, player: AudioPlayer, *, idle_timeout: float = 120.0) -> None:
        self._player = player
        self._idle_timeout = idle_timeout
        self._queue: asyncio.Queue[bytes | str] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None
        self._played = 0

    @property
    def player(self) -> AudioPlayer:
        return self._player

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def played(self) -> int:
        return self._played

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def enqueue(self, audio: bytes) -> None:
        """Queue a platform-format buffer for playback (non-blocking)."""
        if not audio:
            return
        if not self.running:
            logger.warning("Playback queue not running, dropping %d bytes", len(audio))
            return
        self._queue.put_nowait(audio)

    async def join(self) -> None:
        """Wait until every queued buffer has been played."""
        await self._queue.join()

    async def start(self) -> None:
        """Start the background playback task."""
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="voxroom_playback_queue"
        )

    async def stop(self) -> None:
        """Stop playback, discard anything still queued, stop the player."""
        if self._task is None:
            return
        dropped = 0
        while not self._queue.empty():
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            self._queue.task_done()
            dropped += 1
        if dropped:
            logger.info("Discarded %d queued replies on stop", dropped)
        self._queue.put_nowait(_STOP)
        # Stopping the player releases a worker blocked in wait_idle()
        try:
            await self._player.stop()
        except Exception:
            logger.exception("Error stopping audio player")
        try:
            await asyncio.wait_for(self._task, timeout=2.0)
        except (TimeoutError, asyncio.CancelledError):
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None

    async def _run(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                if item == _STOP:
                    return
                assert isinstance(item, bytes)
                await self._play_one(item)
            finally:
                self._queue.task_done()

    async def _play_one(self, audio: bytes) -> None:
        try:
            if not self._player.is_idle:
                await asyncio.wait_for(self._player.wait_idle(), timeout=self._idle_timeout)
            await self._player.play(audio)
            await asyncio.wait_for(self._player.wait_idle(), timeout=self._idle_timeout)
            self._played += 1
        except TimeoutError:
            logger.warning("Audio player did not become idle within %.0fs", self._idle_timeout)
        except Exception:
            logger.exception("Error playing reply audio")
