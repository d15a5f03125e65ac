"""Mock conversational backend for testing."""

from __future__ import annotations

import asyncio

from voxroom.errors import BackendError
from voxroom.providers.base import (
    BackendReply,
    ConversationalBackend,
    ConversationRequest,
    TranscriptWithAudio,
)


class MockConversationalBackend(ConversationalBackend):
    """Round-robin reply backend for tests.

    Every request is recorded in ``calls``.  Replies are returned in order
    and wrap around.  Set ``error`` to make every call raise, or ``delay``
    to make calls hang for that many seconds (useful for timeout tests).

    Example:
        backend = MockConversationalBackend(
            [TranscriptWithAudio(transcript="hi bot", audio=b"\\x01\\x00" * 240)]
        )
        reply = await backend.converse(ConversationRequest(audio=b"..."))
        assert backend.calls[-1].audio == b"..."
    """

    def __init__(
        self,
        replies: list[BackendReply] | None = None,
        *,
        error: BackendError | None = None,
        delay: float = 0.0,
    ) -> None:
        self.replies: list[BackendReply] = replies or [
            TranscriptWithAudio(
                transcript="hello",
                reply_text="Hello from mock",
                audio=b"\x00\x10" * 480,
            )
        ]
        self.error = error
        self.delay = delay
        self.calls: list[ConversationRequest] = []
        self.closed = False
        self._index = 0

    async def converse(self, request: ConversationRequest) -> BackendReply:
        self.calls.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        reply = self.replies[self._index % len(self.replies)]
        self._index += 1
        return reply

    async def close(self) -> None:
        self.closed = True
