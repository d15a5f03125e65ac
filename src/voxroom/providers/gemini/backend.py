"""Gemini request/response backend: transcript and reply text in one call."""

from __future__ import annotations

import io
import logging
import wave
from typing import Any

from pydantic import BaseModel, ValidationError

from voxroom.errors import BackendError
from voxroom.models.enums import HistoryRole
from voxroom.providers.base import (
    BackendReply,
    ConversationalBackend,
    ConversationRequest,
    ErrorReply,
    HistoryEntry,
    TextOnlyReply,
)
from voxroom.providers.gemini.config import GeminiConfig

logger = logging.getLogger("voxroom.providers.gemini.backend")

_AUDIO_PROMPT = (
    "Transcribe the user's speech in this audio clip, then answer it. "
    "Return the verbatim transcript and your spoken reply."
)


class _TranscriptAndReply(BaseModel):
    transcript: str
    reply: str


def pcm_to_wav(pcm: bytes, sample_rate: int, channels: int = 1) -> bytes:
    """Wrap raw 16-bit PCM in a WAV container."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wav:
        wav.setnchannels(channels)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm)
    return buf.getvalue()


def wrap_gemini_error(exc: Exception) -> BackendError:
    """Wrap an SDK exception into a BackendError."""
    status_code = getattr(exc, "code", None) or getattr(exc, "status_code", None)
    retryable = (
        status_code in (429, 500, 502, 503)
        if status_code
        else any(term in str(exc).lower() for term in ["rate", "limit", "429", "500", "503"])
    )
    return BackendError(
        str(exc),
        retryable=retryable,
        provider="gemini",
        status_code=status_code,
    )


class GeminiBackend(ConversationalBackend):
    """Backend using ``generate_content`` with structured JSON output.

    The utterance is sent as WAV audio together with the prior history.
    Gemini answers with ``{"transcript", "reply"}`` which is decoded into a
    :class:`~voxroom.providers.base.TextOnlyReply`; speech is produced by a
    separate TTS provider.
    """

    def __init__(self, config: GeminiConfig) -> None:
        try:
            from google import genai as _genai
            from google.genai import types as _types
        except ImportError as exc:
            raise ImportError(
                "google-genai is required for GeminiBackend. "
                "Install it with: pip install voxroom[gemini]"
            ) from exc

        self._config = config
        self._types = _types
        self._client = _genai.Client(api_key=config.api_key.get_secret_value())

    @property
    def name(self) -> str:
        return "gemini"

    def _format_history(self, history: list[HistoryEntry]) -> list[Any]:
        return [
            self._types.Content(
                role="model" if entry.role == HistoryRole.MODEL else "user",
                parts=[self._types.Part.from_text(text=entry.content)],
            )
            for entry in history
        ]

    def _format_turn(self, request: ConversationRequest) -> Any:
        parts: list[Any] = []
        if request.audio:
            parts.append(self._types.Part.from_text(text=_AUDIO_PROMPT))
            parts.append(
                self._types.Part.from_bytes(
                    data=pcm_to_wav(request.audio, request.sample_rate),
                    mime_type="audio/wav",
                )
            )
        if request.text:
            parts.append(self._types.Part.from_text(text=request.text))
        return self._types.Content(role="user", parts=parts)

    def _build_config(self, request: ConversationRequest) -> Any:
        kwargs: dict[str, Any] = {
            "temperature": request.generation.temperature,
            "max_output_tokens": request.generation.max_output_tokens,
            "response_mime_type": "application/json",
            "response_schema": _TranscriptAndReply,
        }
        if request.system_instruction:
            kwargs["system_instruction"] = request.system_instruction
        return self._types.GenerateContentConfig(**kwargs)

    async def converse(self, request: ConversationRequest) -> BackendReply:
        if not request.audio and not request.text:
            return ErrorReply(message="Empty request")

        contents = self._format_history(request.history)
        contents.append(self._format_turn(request))
        try:
            response = await self._client.aio.models.generate_content(
                model=self._config.model,
                contents=contents,
                config=self._build_config(request),
            )
        except Exception as exc:
            raise wrap_gemini_error(exc) from exc

        text = response.text or ""
        if not text:
            return ErrorReply(message="Gemini returned an empty response")
        try:
            parsed = _TranscriptAndReply.model_validate_json(text)
        except ValidationError:
            logger.warning("Unstructured Gemini reply, using it verbatim")
            return TextOnlyReply(transcript=request.text or "", reply_text=text.strip())
        return TextOnlyReply(transcript=parsed.transcript, reply_text=parsed.reply)

    async def close(self) -> None:
        """Release the genai client reference."""
        self._client = None  # type: ignore[assignment]
