"""Session-scoped state for one voice connection."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import uuid4

from voxroom.models.enums import SessionState, SpeechPriority

if TYPE_CHECKING:
    from voxroom.platform.base import AudioSubscription, VoiceConnection
    from voxroom.voice.player import PlaybackQueue


def _utcnow() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(UTC)


class CaptureBuffer:
    """Ordered chunks from one speaker, consumed exactly once."""

    def __init__(self) -> None:
        self._chunks: list[bytes] = []
        self._size = 0
        self._consumed = False

    def append(self, chunk: bytes) -> None:
        if self._consumed:
            return
        self._chunks.append(chunk)
        self._size += len(chunk)

    def consume(self) -> bytes:
        """Return the concatenated audio and empty the buffer.

        Later calls return ``b""``.
        """
        if self._consumed:
            return b""
        self._consumed = True
        data = b"".join(self._chunks)
        self._chunks.clear()
        self._size = 0
        return data

    def peek(self) -> bytes:
        return b"".join(self._chunks)

    @property
    def consumed(self) -> bool:
        return self._consumed

    @property
    def chunk_count(self) -> int:
        return len(self._chunks)

    def __len__(self) -> int:
        return self._size


@dataclass
class CaptureSubscription:
    """An open receive stream for one speaker plus its buffer and task."""

    speaker_id: str
    stream: AudioSubscription
    buffer: CaptureBuffer = field(default_factory=CaptureBuffer)
    task: asyncio.Task[None] | None = None
    priority: SpeechPriority | None = None
    released: bool = False
    discarded: bool = False


@dataclass
class VoiceSession:
    """One live connection to a voice channel and everything it owns."""

    channel_id: str
    connection: VoiceConnection
    playback: PlaybackQueue | None = None
    id: str = field(default_factory=lambda: uuid4().hex)
    state: SessionState = SessionState.CONNECTING
    listening: bool = True
    destroyed: bool = False
    subscriptions: dict[str, CaptureSubscription] = field(default_factory=dict)
    mute_timers: dict[str, asyncio.Task[None]] = field(default_factory=dict)
    history_keys: set[str] = field(default_factory=set)
    utterance_tasks: set[asyncio.Task[None]] = field(default_factory=set)
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def active(self) -> bool:
        return not self.destroyed and self.state == SessionState.READY
