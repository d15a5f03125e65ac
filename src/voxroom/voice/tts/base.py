"""Text-to-speech provider ABC."""

from __future__ import annotations

from abc import ABC, abstractmethod

from voxroom.voice.audio_format import BACKEND_REPLY_FORMAT, PCMFormat


class TTSProvider(ABC):
    """Turns reply text into raw PCM for playback.

    Implementations return 16-bit PCM in :attr:`output_format`, which
    defaults to the backend reply format so the same conversion path is
    used for spoken and synthesized replies.
    """

    @property
    def name(self) -> str:
        """Provider name (e.g. 'gemini', 'mock')."""
        return self.__class__.__name__

    @property
    def default_voice(self) -> str | None:
        """Default voice ID. Override in subclasses."""
        return None

    @property
    def output_format(self) -> PCMFormat:
        return BACKEND_REPLY_FORMAT

    @abstractmethod
    async def synthesize(self, text: str, *, voice: str | None = None) -> bytes:
        """Synthesize text to PCM audio.

        Args:
            text: Text to synthesize.
            voice: Voice ID (uses default_voice if not specified).

        Returns:
            Raw 16-bit PCM in :attr:`output_format`.
        """
        ...

    async def close(self) -> None:  # noqa: B027
        """Release resources. Override in subclasses if needed."""
