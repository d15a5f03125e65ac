"""Text-to-speech providers."""

from voxroom.voice.tts.base import TTSProvider
from voxroom.voice.tts.mock import MockTTSProvider

__all__ = ["MockTTSProvider", "TTSProvider"]
