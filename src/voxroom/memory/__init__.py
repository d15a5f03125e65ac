"""Conversation history storage."""

from voxroom.memory.history import ConversationStateStore

__all__ = ["ConversationStateStore"]
