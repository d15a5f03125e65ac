"""Tests for public API surface."""

from __future__ import annotations

import voxroom


class TestPublicAPI:
    def test_version_string(self) -> None:
        assert isinstance(voxroom.__version__, str)
        assert voxroom.__version__ == "0.1.0"

    def test_all_names_importable(self) -> None:
        for name in voxroom.__all__:
            obj = getattr(voxroom, name)
            assert obj is not None, f"{name} is None"

    def test_core_classes_available(self) -> None:
        assert voxroom.VoiceSessionManager is not None
        assert voxroom.ThrottleEngine is not None
        assert voxroom.SpeechBoundaryTracker is not None
        assert voxroom.ConversationStateStore is not None

    def test_subpackage_imports(self) -> None:
        from voxroom.memory import history
        from voxroom.models import enums
        from voxroom.platform import mock
        from voxroom.providers import mock as backend_mock
        from voxroom.voice import resampler

        assert enums is not None
        assert history is not None
        assert mock is not None
        assert backend_mock is not None
        assert resampler is not None

    def test_exception_classes(self) -> None:
        for exc in (
            voxroom.SessionNotConnectedError,
            voxroom.SessionAlreadyConnectedError,
            voxroom.ConnectionFailedError,
            voxroom.TransportError,
            voxroom.BackendError,
        ):
            assert issubclass(exc, voxroom.VoxRoomError)
