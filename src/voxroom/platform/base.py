"""Conferencing platform abstractions.

The engine never talks to a platform SDK directly.  An adapter implements
these ABCs on top of the SDK's voice connection, receive stream and audio
player primitives.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from voxroom.models.enums import ConnectionStatus
from voxroom.voice.events import PlatformEvent


class AudioSubscription(ABC):
    """Raw audio from one speaker, as 48 kHz stereo 16-bit PCM chunks.

    Iteration ends when the platform detects the configured trailing
    silence or when :meth:`close` is called.  Transport failures surface
    as :class:`~voxroom.errors.TransportError` raised from iteration.
    """

    @property
    @abstractmethod
    def speaker_id(self) -> str: ...

    @property
    @abstractmethod
    def closed(self) -> bool: ...

    @abstractmethod
    def __aiter__(self) -> AsyncIterator[bytes]: ...

    @abstractmethod
    async def close(self) -> None:
        """Stop receiving. Must be idempotent."""
        ...


class AudioPlayer(ABC):
    """Plays one finite buffer at a time into the session."""

    @property
    @abstractmethod
    def is_idle(self) -> bool: ...

    @abstractmethod
    async def play(self, audio: bytes) -> None:
        """Start playing *audio* (48 kHz stereo PCM). Returns once started."""
        ...

    @abstractmethod
    async def wait_idle(self) -> None:
        """Wait until the current buffer has finished playing."""
        ...

    @abstractmethod
    async def stop(self) -> None: ...

    @abstractmethod
    async def destroy(self) -> None: ...


class VoiceConnection(ABC):
    """A live connection to one voice channel."""

    @property
    @abstractmethod
    def channel_id(self) -> str: ...

    @property
    @abstractmethod
    def status(self) -> ConnectionStatus: ...

    @abstractmethod
    def events(self) -> AsyncIterator[PlatformEvent]:
        """Speaking and connection-state events, in platform order.

        The iterator ends once the connection is destroyed.
        """
        ...

    @abstractmethod
    async def wait_ready(self, timeout: float) -> None:
        """Wait for the connection to become ready.

        Raises:
            TimeoutError: If the connection is not ready within *timeout*.
        """
        ...

    @abstractmethod
    async def subscribe(self, speaker_id: str, *, silence_duration_ms: int) -> AudioSubscription:
        """Open a receive stream for *speaker_id*."""
        ...

    @abstractmethod
    async def create_player(self) -> AudioPlayer: ...

    @abstractmethod
    async def set_speaker_muted(self, speaker_id: str, muted: bool) -> None:
        """Server-mute or unmute a participant."""
        ...

    async def rejoin(self) -> None:  # noqa: B027
        """Ask the transport to re-establish a dropped connection.

        Default: no-op, for transports that reconnect on their own.
        """

    @abstractmethod
    async def destroy(self) -> None:
        """Tear down the connection. Must be idempotent."""
        ...


class ConferencingPlatform(ABC):
    """Entry point into a conferencing platform."""

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    async def connect(self, channel_id: str) -> VoiceConnection:
        """Join *channel_id* and return the (possibly not yet ready) connection."""
        ...
