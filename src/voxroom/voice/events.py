"""Platform events consumed by the session dispatch loop."""

from __future__ import annotations

from dataclasses import dataclass, field

from voxroom.core.throttle import monotonic_ms
from voxroom.models.enums import ConnectionStatus


@dataclass(frozen=True)
class SpeakingStarted:
    """A participant began speaking."""

    speaker_id: str
    timestamp_ms: float = field(default_factory=monotonic_ms)


@dataclass(frozen=True)
class SpeakingEnded:
    """A participant stopped speaking."""

    speaker_id: str
    timestamp_ms: float = field(default_factory=monotonic_ms)


@dataclass(frozen=True)
class ConnectionStateChanged:
    """The platform connection changed transport state."""

    status: ConnectionStatus
    reason: str | None = None
    timestamp_ms: float = field(default_factory=monotonic_ms)


PlatformEvent = SpeakingStarted | SpeakingEnded | ConnectionStateChanged
