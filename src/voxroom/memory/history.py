"""In-memory conversation history keyed per channel or per speaker."""

from __future__ import annotations

from collections.abc import Iterator

from voxroom.models.enums import HistoryRole
from voxroom.providers.base import HistoryEntry


class ConversationStateStore:
    """Ordered history of prior exchanges, supplied to the backend as context.

    Entries are kept in insertion order and never reordered.  There is no
    eviction: callers clear a key when the owning session or speaker goes
    away.
    """

    def __init__(self) -> None:
        self._histories: dict[str, list[HistoryEntry]] = {}

    def get_history(self, key: str) -> list[HistoryEntry]:
        """Return a copy of the history for *key* (empty if unknown)."""
        return list(self._histories.get(key, ()))

    def append(self, key: str, entry: HistoryEntry) -> None:
        self._histories.setdefault(key, []).append(entry)

    def append_exchange(self, key: str, user_text: str, model_text: str) -> None:
        """Append a user turn followed by the model's answer."""
        self.append(key, HistoryEntry(role=HistoryRole.USER, content=user_text))
        self.append(key, HistoryEntry(role=HistoryRole.MODEL, content=model_text))

    def has_history(self, key: str) -> bool:
        return bool(self._histories.get(key))

    def clear(self, key: str) -> None:
        self._histories.pop(key, None)

    def clear_all(self) -> None:
        self._histories.clear()

    def keys(self) -> list[str]:
        return list(self._histories)

    def __len__(self) -> int:
        return len(self._histories)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._histories))
