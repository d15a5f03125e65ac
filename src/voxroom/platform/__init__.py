"""Conferencing platform interfaces and test doubles."""

from voxroom.platform.base import (
    AudioPlayer,
    AudioSubscription,
    ConferencingPlatform,
    VoiceConnection,
)
from voxroom.platform.mock import (
    MockAudioPlayer,
    MockAudioSubscription,
    MockConferencingPlatform,
    MockVoiceConnection,
)

__all__ = [
    "AudioPlayer",
    "AudioSubscription",
    "ConferencingPlatform",
    "MockAudioPlayer",
    "MockAudioSubscription",
    "MockConferencingPlatform",
    "MockVoiceConnection",
    "VoiceConnection",
]
