"""Gemini speech generation as a TTS provider."""

from __future__ import annotations

from typing import Any

from voxroom.providers.gemini.backend import wrap_gemini_error
from voxroom.providers.gemini.config import GeminiConfig
from voxroom.voice.tts.base import TTSProvider


class GeminiTTSProvider(TTSProvider):
    """Synthesizes 24 kHz mono PCM with a Gemini TTS model."""

    def __init__(self, config: GeminiConfig) -> None:
        try:
            from google import genai as _genai
            from google.genai import types as _types
        except ImportError as exc:
            raise ImportError(
                "google-genai is required for GeminiTTSProvider. "
                "Install it with: pip install voxroom[gemini]"
            ) from exc

        self._config = config
        self._types = _types
        self._client = _genai.Client(api_key=config.api_key.get_secret_value())

    @property
    def name(self) -> str:
        return "gemini"

    @property
    def default_voice(self) -> str:
        return self._config.voice

    def _build_config(self, voice: str) -> Any:
        types = self._types
        return types.GenerateContentConfig(
            response_modalities=["AUDIO"],
            speech_config=types.SpeechConfig(
                voice_config=types.VoiceConfig(
                    prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=voice)
                )
            ),
        )

    async def synthesize(self, text: str, *, voice: str | None = None) -> bytes:
        try:
            response = await self._client.aio.models.generate_content(
                model=self._config.tts_model,
                contents=text,
                config=self._build_config(voice or self.default_voice),
            )
        except Exception as exc:
            raise wrap_gemini_error(exc) from exc

        audio = bytearray()
        for candidate in response.candidates or []:
            if not candidate.content or not candidate.content.parts:
                continue
            for part in candidate.content.parts:
                if part.inline_data and part.inline_data.data:
                    audio.extend(part.inline_data.data)
        return bytes(audio)

    async def close(self) -> None:
        self._client = None  # type: ignore[assignment]
