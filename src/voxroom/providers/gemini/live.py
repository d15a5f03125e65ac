"""Gemini Live backend: speech in, speech out, one exchange per utterance."""

from __future__ import annotations

import logging
from typing import Any

from voxroom.errors import BackendError
from voxroom.models.enums import HistoryRole
from voxroom.providers.base import (
    BackendReply,
    ConversationalBackend,
    ConversationRequest,
    ErrorReply,
    SetupComplete,
    ToolCallReply,
    TranscriptWithAudio,
)
from voxroom.providers.gemini.backend import wrap_gemini_error
from voxroom.providers.gemini.config import GeminiConfig
from voxroom.voice.audio_format import BACKEND_REPLY_SAMPLE_RATE

logger = logging.getLogger("voxroom.providers.gemini.live")


def decode_live_message(message: Any) -> BackendReply | None:
    """Map one Live API server message onto the reply union.

    Returns None for messages that only carry partial turn data (audio
    chunks, transcription fragments); those are accumulated by the caller.

    Raises:
        BackendError: The server announced it is going away.
    """
    if getattr(message, "setup_complete", None) is not None:
        return SetupComplete()
    tool_call = getattr(message, "tool_call", None)
    if tool_call and tool_call.function_calls:
        fc = tool_call.function_calls[0]
        return ToolCallReply(
            call_id=fc.id or "",
            name=fc.name,
            arguments=dict(fc.args) if fc.args else {},
        )
    go_away = getattr(message, "go_away", None)
    if go_away:
        time_left = getattr(go_away, "time_left", "unknown")
        raise BackendError(
            f"Gemini Live session going away (time_left={time_left})",
            retryable=True,
            provider="gemini",
        )
    return None


class GeminiLiveBackend(ConversationalBackend):
    """Backend on the Gemini Live API.

    Each utterance opens a short-lived Live session: prior history is sent
    as client content, the 16 kHz utterance is streamed as realtime input
    followed by an end-of-stream marker, and reply audio plus both
    transcriptions are collected until ``turn_complete``.  Reply audio is
    24 kHz mono PCM.
    """

    def __init__(self, config: GeminiConfig) -> None:
        try:
            from google import genai as _genai
            from google.genai import types as _types
        except ImportError as exc:
            raise ImportError(
                "google-genai is required for GeminiLiveBackend. "
                "Install it with: pip install voxroom[gemini]"
            ) from exc

        self._config = config
        self._types = _types
        self._client = _genai.Client(api_key=config.api_key.get_secret_value())

    @property
    def name(self) -> str:
        return "gemini-live"

    def _build_config(self, request: ConversationRequest) -> Any:
        types = self._types
        speech_kwargs: dict[str, Any] = {
            "voice_config": types.VoiceConfig(
                prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=self._config.voice)
            )
        }
        if self._config.language:
            speech_kwargs["language_code"] = self._config.language

        config: dict[str, Any] = {
            "response_modalities": ["AUDIO"],
            "input_audio_transcription": types.AudioTranscriptionConfig(),
            "output_audio_transcription": types.AudioTranscriptionConfig(),
            "speech_config": types.SpeechConfig(**speech_kwargs),
            "temperature": request.generation.temperature,
            "max_output_tokens": request.generation.max_output_tokens,
        }
        if request.system_instruction:
            config["system_instruction"] = request.system_instruction
        return types.LiveConnectConfig(**config)

    async def converse(self, request: ConversationRequest) -> BackendReply:
        if not request.audio:
            return ErrorReply(message="Gemini Live backend needs audio input")

        types = self._types
        audio = bytearray()
        transcript: list[str] = []
        reply_text: list[str] = []
        try:
            async with self._client.aio.live.connect(
                model=self._config.live_model,
                config=self._build_config(request),
            ) as live:
                if request.history:
                    turns = [
                        types.Content(
                            role="model" if entry.role == HistoryRole.MODEL else "user",
                            parts=[types.Part.from_text(text=entry.content)],
                        )
                        for entry in request.history
                    ]
                    await live.send_client_content(turns=turns, turn_complete=False)

                await live.send_realtime_input(
                    audio=types.Blob(
                        data=request.audio,
                        mime_type=f"audio/pcm;rate={request.sample_rate}",
                    )
                )
                await live.send_realtime_input(audio_stream_end=True)

                async for message in live.receive():
                    decoded = decode_live_message(message)
                    if isinstance(decoded, ToolCallReply):
                        return decoded
                    if message.data:
                        audio.extend(message.data)
                    content = message.server_content
                    if content is None:
                        continue
                    if content.input_transcription and content.input_transcription.text:
                        transcript.append(content.input_transcription.text)
                    if content.output_transcription and content.output_transcription.text:
                        reply_text.append(content.output_transcription.text)
                    if content.turn_complete:
                        break
        except BackendError:
            raise
        except Exception as exc:
            raise wrap_gemini_error(exc) from exc

        logger.debug(
            "Gemini Live turn complete: %d audio bytes, transcript=%r",
            len(audio),
            "".join(transcript),
        )
        if not audio:
            return ErrorReply(message="Gemini Live returned no audio")
        return TranscriptWithAudio(
            transcript="".join(transcript).strip(),
            reply_text="".join(reply_text).strip(),
            audio=bytes(audio),
            sample_rate=BACKEND_REPLY_SAMPLE_RATE,
        )

    async def close(self) -> None:
        """Release the genai client reference."""
        self._client = None  # type: ignore[assignment]
