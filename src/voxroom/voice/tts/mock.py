"""Mock text-to-speech provider for testing."""

from __future__ import annotations

from voxroom.voice.tts.base import TTSProvider


class MockTTSProvider(TTSProvider):
    """Mock text-to-speech for testing.

    Produces a low constant-level buffer: 10 ms of reply-format audio per
    character of input.
    """

    def __init__(self, voice: str = "mock-voice", *, error: Exception | None = None) -> None:
        self._default_voice = voice
        self.error = error
        self.calls: list[dict[str, str | None]] = []

    @property
    def default_voice(self) -> str:
        return self._default_voice

    async def synthesize(self, text: str, *, voice: str | None = None) -> bytes:
        self.calls.append({"text": text, "voice": voice or self._default_voice})
        if self.error is not None:
            raise self.error
        frame = b"\x00\x01" * (self.output_format.sample_rate // 100)
        return frame * max(1, len(text))
