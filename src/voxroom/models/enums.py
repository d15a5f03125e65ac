"""All string enums for voxroom."""

from __future__ import annotations

from enum import StrEnum, unique


@unique
class SessionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"
    RECONNECTING = "reconnecting"


@unique
class SpeechPriority(StrEnum):
    SKIP = "skip"
    NORMAL = "normal"
    HIGH = "high"


@unique
class ConnectionStatus(StrEnum):
    """Transport-level state reported by the conferencing platform."""

    CONNECTING = "connecting"
    READY = "ready"
    DISCONNECTED = "disconnected"
    DESTROYED = "destroyed"


@unique
class HistoryScope(StrEnum):
    """Whether conversation history is keyed per channel or per speaker."""

    CHANNEL = "channel"
    SPEAKER = "speaker"


@unique
class HistoryRole(StrEnum):
    USER = "user"
    MODEL = "model"
