"""Tests for the Google Gemini backends and TTS provider."""

from __future__ import annotations

import io
import wave
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from voxroom.errors import BackendError
from voxroom.models.enums import HistoryRole
from voxroom.providers.base import (
    ConversationRequest,
    ErrorReply,
    HistoryEntry,
    SetupComplete,
    TextOnlyReply,
    ToolCallReply,
    TranscriptWithAudio,
)
from voxroom.providers.gemini.config import GeminiConfig


def _ns_factory() -> MagicMock:
    return MagicMock(side_effect=lambda **kw: SimpleNamespace(**kw))


def _mock_genai_module() -> MagicMock:
    """Return a MagicMock that behaves like the google.genai module."""
    mod = MagicMock()

    types = MagicMock()
    for name in (
        "Content",
        "Blob",
        "GenerateContentConfig",
        "LiveConnectConfig",
        "SpeechConfig",
        "VoiceConfig",
        "PrebuiltVoiceConfig",
        "AudioTranscriptionConfig",
    ):
        setattr(types, name, _ns_factory())
    types.Part.from_text = MagicMock(side_effect=lambda text: SimpleNamespace(text=text))
    types.Part.from_bytes = MagicMock(
        side_effect=lambda data, mime_type: SimpleNamespace(data=data, mime_type=mime_type)
    )

    client_instance = MagicMock()
    client_instance.aio.models.generate_content = AsyncMock()
    mod.Client.return_value = client_instance

    # Attach types to the module so 'from google.genai import types' works
    mod.types = types
    return mod


def _genai_modules(mock_genai: MagicMock) -> dict[str, Any]:
    """Build sys.modules patch dict for Gemini tests."""
    return {
        "google": MagicMock(genai=mock_genai),
        "google.genai": mock_genai,
    }


def _config(**overrides: Any) -> GeminiConfig:
    defaults: dict[str, Any] = {"api_key": "test-api-key"}
    defaults.update(overrides)
    return GeminiConfig(**defaults)


def _request(**overrides: Any) -> ConversationRequest:
    defaults: dict[str, Any] = {
        "history": [
            HistoryEntry(role=HistoryRole.USER, content="hi bot"),
            HistoryEntry(role=HistoryRole.MODEL, content="hello"),
        ],
        "audio": b"\x01\x00" * 160,
        "system_instruction": "Be brief.",
    }
    defaults.update(overrides)
    return ConversationRequest(**defaults)


class _FakeLiveSession:
    """Records what is sent and replays canned server messages."""

    def __init__(self, messages: list[SimpleNamespace]) -> None:
        self._messages = messages
        self.client_content: list[dict[str, Any]] = []
        self.realtime_input: list[dict[str, Any]] = []

    async def send_client_content(self, **kwargs: Any) -> None:
        self.client_content.append(kwargs)

    async def send_realtime_input(self, **kwargs: Any) -> None:
        self.realtime_input.append(kwargs)

    async def receive(self) -> Any:
        for message in self._messages:
            yield message


class _FakeConnect:
    def __init__(self, session: _FakeLiveSession) -> None:
        self._session = session

    async def __aenter__(self) -> _FakeLiveSession:
        return self._session

    async def __aexit__(self, *exc: Any) -> None:
        return None


def _live_message(
    *,
    data: bytes | None = None,
    heard: str | None = None,
    said: str | None = None,
    turn_complete: bool = False,
    **extra: Any,
) -> SimpleNamespace:
    content = None
    if heard is not None or said is not None or turn_complete:
        content = SimpleNamespace(
            input_transcription=SimpleNamespace(text=heard) if heard else None,
            output_transcription=SimpleNamespace(text=said) if said else None,
            turn_complete=turn_complete,
        )
    fields: dict[str, Any] = {
        "setup_complete": None,
        "tool_call": None,
        "go_away": None,
        "data": data,
        "server_content": content,
    }
    fields.update(extra)
    return SimpleNamespace(**fields)


class TestGeminiBackend:
    async def test_structured_reply(self) -> None:
        mock_genai = _mock_genai_module()
        with patch.dict("sys.modules", _genai_modules(mock_genai)):
            from voxroom.providers.gemini.backend import GeminiBackend

            backend = GeminiBackend(_config())
            generate = backend._client.aio.models.generate_content
            generate.return_value = SimpleNamespace(
                text='{"transcript": "hey bot", "reply": "Hey there!"}'
            )
            reply = await backend.converse(_request())

        assert isinstance(reply, TextOnlyReply)
        assert reply.transcript == "hey bot"
        assert reply.reply_text == "Hey there!"

        kwargs = generate.call_args.kwargs
        assert kwargs["model"] == "gemini-2.0-flash"
        contents = kwargs["contents"]
        assert [c.role for c in contents] == ["user", "model", "user"]
        wav_part = contents[-1].parts[1]
        assert wav_part.mime_type == "audio/wav"
        assert kwargs["config"].system_instruction == "Be brief."
        assert kwargs["config"].temperature == 0.7
        assert kwargs["config"].max_output_tokens == 1000

    async def test_unstructured_reply_used_verbatim(self) -> None:
        mock_genai = _mock_genai_module()
        with patch.dict("sys.modules", _genai_modules(mock_genai)):
            from voxroom.providers.gemini.backend import GeminiBackend

            backend = GeminiBackend(_config())
            backend._client.aio.models.generate_content.return_value = SimpleNamespace(
                text="  just text  "
            )
            reply = await backend.converse(_request(text="typed"))

        assert isinstance(reply, TextOnlyReply)
        assert reply.transcript == "typed"
        assert reply.reply_text == "just text"

    async def test_empty_response_is_error_reply(self) -> None:
        mock_genai = _mock_genai_module()
        with patch.dict("sys.modules", _genai_modules(mock_genai)):
            from voxroom.providers.gemini.backend import GeminiBackend

            backend = GeminiBackend(_config())
            backend._client.aio.models.generate_content.return_value = SimpleNamespace(text="")
            reply = await backend.converse(_request())

        assert isinstance(reply, ErrorReply)

    async def test_sdk_error_wrapped(self) -> None:
        mock_genai = _mock_genai_module()
        with patch.dict("sys.modules", _genai_modules(mock_genai)):
            from voxroom.providers.gemini.backend import GeminiBackend

            backend = GeminiBackend(_config())
            err = RuntimeError("quota exceeded")
            err.code = 429  # type: ignore[attr-defined]
            backend._client.aio.models.generate_content.side_effect = err

            with pytest.raises(BackendError) as exc_info:
                await backend.converse(_request())

        assert exc_info.value.retryable is True
        assert exc_info.value.status_code == 429
        assert exc_info.value.provider == "gemini"

    async def test_empty_request(self) -> None:
        mock_genai = _mock_genai_module()
        with patch.dict("sys.modules", _genai_modules(mock_genai)):
            from voxroom.providers.gemini.backend import GeminiBackend

            backend = GeminiBackend(_config())
            reply = await backend.converse(_request(audio=None))

        assert isinstance(reply, ErrorReply)
        backend._client.aio.models.generate_content.assert_not_called()

    def test_missing_sdk_raises_import_error(self) -> None:
        with patch.dict("sys.modules", {"google": None, "google.genai": None}):
            from voxroom.providers.gemini.backend import GeminiBackend

            with pytest.raises(ImportError, match="voxroom\\[gemini\\]"):
                GeminiBackend(_config())


class TestPcmToWav:
    def test_header_describes_audio(self) -> None:
        from voxroom.providers.gemini.backend import pcm_to_wav

        data = pcm_to_wav(b"\x00\x01" * 1600, 16000)
        with wave.open(io.BytesIO(data), "rb") as wav:
            assert wav.getframerate() == 16000
            assert wav.getnchannels() == 1
            assert wav.getsampwidth() == 2
            assert wav.getnframes() == 1600


class TestGeminiLiveBackend:
    def _backend(self, messages: list[SimpleNamespace]) -> Any:
        from voxroom.providers.gemini.live import GeminiLiveBackend

        backend = GeminiLiveBackend(_config(language="en-US"))
        session = _FakeLiveSession(messages)
        backend._client.aio.live.connect = MagicMock(return_value=_FakeConnect(session))
        return backend, session

    async def test_collects_audio_and_transcripts(self) -> None:
        mock_genai = _mock_genai_module()
        messages = [
            _live_message(setup_complete=SimpleNamespace()),
            _live_message(heard="hey "),
            _live_message(heard="bot"),
            _live_message(data=b"\x01\x00" * 10, said="Hi"),
            _live_message(data=b"\x02\x00" * 10, said=" there"),
            _live_message(turn_complete=True),
            _live_message(data=b"\xff\xff" * 10),
        ]
        with patch.dict("sys.modules", _genai_modules(mock_genai)):
            backend, session = self._backend(messages)
            reply = await backend.converse(_request())

        assert isinstance(reply, TranscriptWithAudio)
        assert reply.transcript == "hey bot"
        assert reply.reply_text == "Hi there"
        assert reply.audio == b"\x01\x00" * 10 + b"\x02\x00" * 10
        assert reply.sample_rate == 24000

        assert len(session.client_content[0]["turns"]) == 2
        assert session.client_content[0]["turn_complete"] is False
        blob = session.realtime_input[0]["audio"]
        assert blob.mime_type == "audio/pcm;rate=16000"
        assert session.realtime_input[1] == {"audio_stream_end": True}

        config = backend._client.aio.live.connect.call_args.kwargs["config"]
        assert config.response_modalities == ["AUDIO"]
        assert config.speech_config.language_code == "en-US"

    async def test_no_audio_is_error_reply(self) -> None:
        mock_genai = _mock_genai_module()
        with patch.dict("sys.modules", _genai_modules(mock_genai)):
            backend, _ = self._backend([_live_message(turn_complete=True)])
            reply = await backend.converse(_request())

        assert isinstance(reply, ErrorReply)

    async def test_tool_call_returned(self) -> None:
        mock_genai = _mock_genai_module()
        call = SimpleNamespace(id="c1", name="lookup", args={"q": "x"})
        messages = [_live_message(tool_call=SimpleNamespace(function_calls=[call]))]
        with patch.dict("sys.modules", _genai_modules(mock_genai)):
            backend, _ = self._backend(messages)
            reply = await backend.converse(_request(history=[]))

        assert reply == ToolCallReply(call_id="c1", name="lookup", arguments={"q": "x"})

    async def test_go_away_raises_retryable(self) -> None:
        mock_genai = _mock_genai_module()
        messages = [_live_message(go_away=SimpleNamespace(time_left="5s"))]
        with patch.dict("sys.modules", _genai_modules(mock_genai)):
            backend, _ = self._backend(messages)
            with pytest.raises(BackendError) as exc_info:
                await backend.converse(_request())

        assert exc_info.value.retryable is True

    async def test_requires_audio(self) -> None:
        mock_genai = _mock_genai_module()
        with patch.dict("sys.modules", _genai_modules(mock_genai)):
            backend, _ = self._backend([])
            reply = await backend.converse(_request(audio=None, text="hello"))

        assert isinstance(reply, ErrorReply)


class TestDecodeLiveMessage:
    def test_setup_complete(self) -> None:
        from voxroom.providers.gemini.live import decode_live_message

        assert decode_live_message(_live_message(setup_complete=SimpleNamespace())) == (
            SetupComplete()
        )

    def test_partial_data_is_none(self) -> None:
        from voxroom.providers.gemini.live import decode_live_message

        assert decode_live_message(_live_message(data=b"\x00\x00")) is None


class TestGeminiTTSProvider:
    async def test_synthesize_concatenates_inline_audio(self) -> None:
        mock_genai = _mock_genai_module()
        with patch.dict("sys.modules", _genai_modules(mock_genai)):
            from voxroom.providers.gemini.tts import GeminiTTSProvider

            tts = GeminiTTSProvider(_config(voice="Puck"))
            generate = tts._client.aio.models.generate_content
            generate.return_value = SimpleNamespace(
                candidates=[
                    SimpleNamespace(
                        content=SimpleNamespace(
                            parts=[
                                SimpleNamespace(inline_data=SimpleNamespace(data=b"ab")),
                                SimpleNamespace(inline_data=None),
                                SimpleNamespace(inline_data=SimpleNamespace(data=b"cd")),
                            ]
                        )
                    ),
                    SimpleNamespace(content=None),
                ]
            )
            audio = await tts.synthesize("Sorry, try again.")

        assert audio == b"abcd"
        kwargs = generate.call_args.kwargs
        assert kwargs["model"] == "gemini-2.5-flash-preview-tts"
        assert kwargs["contents"] == "Sorry, try again."
        voice = kwargs["config"].speech_config.voice_config.prebuilt_voice_config
        assert voice.voice_name == "Puck"
        assert tts.output_format.sample_rate == 24000

    async def test_error_wrapped(self) -> None:
        mock_genai = _mock_genai_module()
        with patch.dict("sys.modules", _genai_modules(mock_genai)):
            from voxroom.providers.gemini.tts import GeminiTTSProvider

            tts = GeminiTTSProvider(_config())
            tts._client.aio.models.generate_content.side_effect = RuntimeError("503 unavailable")
            with pytest.raises(BackendError) as exc_info:
                await tts.synthesize("hi")

        assert exc_info.value.retryable is True
