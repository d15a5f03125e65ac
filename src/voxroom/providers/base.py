"""Conversational backend interface and reply payloads."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter

from voxroom.models.config import GenerationConfig
from voxroom.models.enums import HistoryRole
from voxroom.voice.audio_format import BACKEND_INPUT_SAMPLE_RATE, BACKEND_REPLY_SAMPLE_RATE


class HistoryEntry(BaseModel):
    """One conversational turn."""

    role: HistoryRole
    content: str


class ConversationRequest(BaseModel):
    """Everything a backend needs to answer one utterance.

    Exactly one of ``audio`` (16-bit mono PCM at ``sample_rate``) or
    ``text`` is expected; backends that only speak text can rely on a
    prior transcription step.
    """

    history: list[HistoryEntry] = Field(default_factory=list)
    audio: bytes | None = None
    text: str | None = None
    sample_rate: int = BACKEND_INPUT_SAMPLE_RATE
    system_instruction: str = ""
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    speaker_id: str | None = None


# -- Reply union --


class SetupComplete(BaseModel):
    """Backend session is ready. Carries no answer."""

    kind: Literal["setup_complete"] = "setup_complete"


class ToolCallReply(BaseModel):
    """Backend asked for a tool invocation instead of answering."""

    kind: Literal["tool_call"] = "tool_call"
    call_id: str = ""
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class TranscriptWithAudio(BaseModel):
    """Transcript of the user turn plus spoken reply audio."""

    kind: Literal["transcript_with_audio"] = "transcript_with_audio"
    transcript: str
    reply_text: str = ""
    audio: bytes
    sample_rate: int = BACKEND_REPLY_SAMPLE_RATE


class TextOnlyReply(BaseModel):
    """Transcript and textual reply. Needs a TTS hop before playback."""

    kind: Literal["text_only"] = "text_only"
    transcript: str
    reply_text: str


class ErrorReply(BaseModel):
    """In-band error from the backend."""

    kind: Literal["error"] = "error"
    message: str
    retryable: bool = False
    code: int | None = None


BackendReply = Annotated[
    SetupComplete | ToolCallReply | TranscriptWithAudio | TextOnlyReply | ErrorReply,
    Field(discriminator="kind"),
]

_reply_adapter: TypeAdapter[BackendReply] = TypeAdapter(BackendReply)


def decode_reply(payload: dict[str, Any] | str | bytes) -> BackendReply:
    """Decode a raw reply payload (mapping or JSON) into a typed reply.

    Raises ``pydantic.ValidationError`` for unknown kinds or missing fields.
    """
    if isinstance(payload, (str, bytes)):
        return _reply_adapter.validate_json(payload)
    return _reply_adapter.validate_python(payload)


class ConversationalBackend(ABC):
    """A metered AI service that answers one utterance at a time.

    Failures are signalled out of band by raising
    :class:`~voxroom.errors.BackendError` (quota, transport, timeout) or in
    band by returning :class:`ErrorReply`.
    """

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    async def converse(self, request: ConversationRequest) -> BackendReply:
        """Send one turn and return the decoded reply."""
        ...

    async def close(self) -> None:  # noqa: B027
        """Release resources. Override if needed."""
