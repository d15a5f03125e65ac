"""Google Gemini backends and speech synthesis."""

from voxroom.providers.gemini.backend import GeminiBackend
from voxroom.providers.gemini.config import GeminiConfig
from voxroom.providers.gemini.live import GeminiLiveBackend
from voxroom.providers.gemini.tts import GeminiTTSProvider

__all__ = ["GeminiBackend", "GeminiConfig", "GeminiLiveBackend", "GeminiTTSProvider"]
