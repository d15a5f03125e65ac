"""Mock conferencing platform for testing."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from voxroom.errors import TransportError
from voxroom.models.enums import ConnectionStatus
from voxroom.platform.base import (
    AudioPlayer,
    AudioSubscription,
    ConferencingPlatform,
    VoiceConnection,
)
from voxroom.voice.events import (
    ConnectionStateChanged,
    PlatformEvent,
    SpeakingEnded,
    SpeakingStarted,
)

# Queue markers for subscription streams
_END = object()
_ERROR = object()


@dataclass
class MockPlatformCall:
    """Record of a call made to a mock platform object."""

    method: str
    args: dict[str, Any] = field(default_factory=dict)


class MockAudioSubscription(AudioSubscription):
    """Subscription fed by :meth:`MockVoiceConnection.push_audio`."""

    def __init__(self, speaker_id: str, silence_duration_ms: int) -> None:
        self._speaker_id = speaker_id
        self.silence_duration_ms = silence_duration_ms
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False

    @property
    def speaker_id(self) -> str:
        return self._speaker_id

    @property
    def closed(self) -> bool:
        return self._closed

    def feed(self, chunk: bytes) -> None:
        if not self._closed:
            self._queue.put_nowait(chunk)

    def end(self) -> None:
        """Simulate trailing silence ending the stream."""
        self._queue.put_nowait(_END)

    def fail(self) -> None:
        """Simulate a transport error on the stream."""
        self._queue.put_nowait(_ERROR)

    async def __aiter__(self) -> AsyncIterator[bytes]:  # type: ignore[override]
        while True:
            item = await self._queue.get()
            if item is _END:
                return
            if item is _ERROR:
                raise TransportError(f"Receive stream for {self._speaker_id} failed")
            assert isinstance(item, bytes)
            yield item

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_END)


class MockAudioPlayer(AudioPlayer):
    """Records every buffer played.

    With ``auto_finish=True`` playback completes instantly.  Otherwise each
    buffer keeps playing until :meth:`finish` is called.
    """

    def __init__(self, *, auto_finish: bool = True) -> None:
        self.auto_finish = auto_finish
        self.played: list[bytes] = []
        self.calls: list[MockPlatformCall] = []
        self.destroyed = False
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def is_idle(self) -> bool:
        return self._idle.is_set()

    async def play(self, audio: bytes) -> None:
        self.calls.append(MockPlatformCall(method="play", args={"size": len(audio)}))
        if not self._idle.is_set():
            raise RuntimeError("play() called while a buffer is still playing")
        self.played.append(audio)
        if not self.auto_finish:
            self._idle.clear()

    def finish(self) -> None:
        """Simulate the current buffer finishing."""
        self._idle.set()

    async def wait_idle(self) -> None:
        await self._idle.wait()

    async def stop(self) -> None:
        self.calls.append(MockPlatformCall(method="stop"))
        self._idle.set()

    async def destroy(self) -> None:
        self.calls.append(MockPlatformCall(method="destroy"))
        self.destroyed = True
        self._idle.set()


class MockVoiceConnection(VoiceConnection):
    """Mock connection with helpers to simulate platform events.

    Example:
        platform = MockConferencingPlatform()
        conn = await platform.connect("room-1")

        conn.simulate_speaking_started("alice")
        conn.push_audio("alice", b"\\x01\\x00" * 960)
        conn.simulate_speaking_ended("alice")
    """

    def __init__(
        self,
        channel_id: str,
        *,
        ready: bool = True,
        auto_finish_playback: bool = True,
    ) -> None:
        self._channel_id = channel_id
        self._status = ConnectionStatus.READY if ready else ConnectionStatus.CONNECTING
        self._ready = asyncio.Event()
        if ready:
            self._ready.set()
        self._events: asyncio.Queue[PlatformEvent | None] = asyncio.Queue()
        self._auto_finish = auto_finish_playback
        self.subscriptions: dict[str, MockAudioSubscription] = {}
        self.players: list[MockAudioPlayer] = []
        self.muted: set[str] = set()
        self.calls: list[MockPlatformCall] = []
        self.destroyed = False
        self.ready_on_rejoin = True
        self.fail_mute = False

    @property
    def channel_id(self) -> str:
        return self._channel_id

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def player(self) -> MockAudioPlayer | None:
        return self.players[-1] if self.players else None

    async def events(self) -> AsyncIterator[PlatformEvent]:  # type: ignore[override]
        while True:
            event = await self._events.get()
            if event is None:
                return
            yield event

    async def wait_ready(self, timeout: float) -> None:
        self.calls.append(MockPlatformCall(method="wait_ready", args={"timeout": timeout}))
        await asyncio.wait_for(self._ready.wait(), timeout=timeout)

    async def subscribe(self, speaker_id: str, *, silence_duration_ms: int) -> AudioSubscription:
        self.calls.append(
            MockPlatformCall(
                method="subscribe",
                args={"speaker_id": speaker_id, "silence_duration_ms": silence_duration_ms},
            )
        )
        sub = MockAudioSubscription(speaker_id, silence_duration_ms)
        self.subscriptions[speaker_id] = sub
        return sub

    async def create_player(self) -> AudioPlayer:
        self.calls.append(MockPlatformCall(method="create_player"))
        player = MockAudioPlayer(auto_finish=self._auto_finish)
        self.players.append(player)
        return player

    async def set_speaker_muted(self, speaker_id: str, muted: bool) -> None:
        self.calls.append(
            MockPlatformCall(
                method="set_speaker_muted",
                args={"speaker_id": speaker_id, "muted": muted},
            )
        )
        if self.fail_mute:
            raise TransportError(f"Cannot change mute state of {speaker_id}")
        if muted:
            self.muted.add(speaker_id)
        else:
            self.muted.discard(speaker_id)

    async def rejoin(self) -> None:
        self.calls.append(MockPlatformCall(method="rejoin"))
        if self.ready_on_rejoin:
            self._set_status(ConnectionStatus.READY)

    async def destroy(self) -> None:
        if self.destroyed:
            return
        self.calls.append(MockPlatformCall(method="destroy"))
        self.destroyed = True
        self._status = ConnectionStatus.DESTROYED
        self._ready.clear()
        self._events.put_nowait(None)

    # -- Simulation helpers --

    def _set_status(self, status: ConnectionStatus) -> None:
        self._status = status
        if status == ConnectionStatus.READY:
            self._ready.set()
        else:
            self._ready.clear()

    def simulate_speaking_started(self, speaker_id: str) -> None:
        self._events.put_nowait(SpeakingStarted(speaker_id=speaker_id))

    def simulate_speaking_ended(self, speaker_id: str) -> None:
        self._events.put_nowait(SpeakingEnded(speaker_id=speaker_id))

    def simulate_status(self, status: ConnectionStatus, reason: str | None = None) -> None:
        """Change transport state and emit the matching event."""
        self._set_status(status)
        self._events.put_nowait(ConnectionStateChanged(status=status, reason=reason))

    def push_audio(self, speaker_id: str, chunk: bytes) -> None:
        """Deliver a chunk on the speaker's open subscription, if any."""
        sub = self.subscriptions.get(speaker_id)
        if sub is not None:
            sub.feed(chunk)

    def simulate_silence(self, speaker_id: str) -> None:
        """End the speaker's stream as if trailing silence elapsed."""
        sub = self.subscriptions.get(speaker_id)
        if sub is not None:
            sub.end()

    def simulate_stream_error(self, speaker_id: str) -> None:
        sub = self.subscriptions.get(speaker_id)
        if sub is not None:
            sub.fail()


class MockConferencingPlatform(ConferencingPlatform):
    """Hands out :class:`MockVoiceConnection` objects and records joins."""

    def __init__(self, *, ready: bool = True, auto_finish_playback: bool = True) -> None:
        self._ready = ready
        self._auto_finish = auto_finish_playback
        self.connections: list[MockVoiceConnection] = []
        self.calls: list[MockPlatformCall] = []

    @property
    def connection(self) -> MockVoiceConnection | None:
        return self.connections[-1] if self.connections else None

    async def connect(self, channel_id: str) -> VoiceConnection:
        self.calls.append(MockPlatformCall(method="connect", args={"channel_id": channel_id}))
        conn = MockVoiceConnection(
            channel_id, ready=self._ready, auto_finish_playback=self._auto_finish
        )
        self.connections.append(conn)
        return conn
