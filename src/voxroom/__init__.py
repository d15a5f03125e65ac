"""voxroom - Multi-speaker voice sessions in front of a conversational AI backend."""

from voxroom._version import __version__
from voxroom.core.throttle import ThrottleEngine, ThrottleStats
from voxroom.errors import (
    BackendError,
    ConnectionFailedError,
    SessionAlreadyConnectedError,
    SessionNotConnectedError,
    TransportError,
    VoxRoomError,
)
from voxroom.memory.history import ConversationStateStore
from voxroom.models.config import (
    GenerationConfig,
    ReconnectPolicy,
    SessionConfig,
    ThrottleConfig,
    VolumeMonitorConfig,
)
from voxroom.models.enums import (
    ConnectionStatus,
    HistoryRole,
    HistoryScope,
    SessionState,
    SpeechPriority,
)
from voxroom.platform.base import (
    AudioPlayer,
    AudioSubscription,
    ConferencingPlatform,
    VoiceConnection,
)
from voxroom.providers.base import (
    BackendReply,
    ConversationalBackend,
    ConversationRequest,
    ErrorReply,
    HistoryEntry,
    SetupComplete,
    TextOnlyReply,
    ToolCallReply,
    TranscriptWithAudio,
    decode_reply,
)
from voxroom.voice.boundary import SpeechBoundaryTracker
from voxroom.voice.manager import SessionStats, SessionStatus, VoiceSessionManager
from voxroom.voice.tts.base import TTSProvider
from voxroom.voice.volume import VolumeMonitor

__all__ = [
    "AudioPlayer",
    "AudioSubscription",
    "BackendError",
    "BackendReply",
    "ConferencingPlatform",
    "ConnectionFailedError",
    "ConnectionStatus",
    "ConversationRequest",
    "ConversationStateStore",
    "ConversationalBackend",
    "ErrorReply",
    "GenerationConfig",
    "HistoryEntry",
    "HistoryRole",
    "HistoryScope",
    "ReconnectPolicy",
    "SessionAlreadyConnectedError",
    "SessionConfig",
    "SessionNotConnectedError",
    "SessionState",
    "SessionStats",
    "SessionStatus",
    "SetupComplete",
    "SpeechBoundaryTracker",
    "SpeechPriority",
    "TTSProvider",
    "TextOnlyReply",
    "ThrottleConfig",
    "ThrottleEngine",
    "ThrottleStats",
    "ToolCallReply",
    "TranscriptWithAudio",
    "TransportError",
    "VoiceConnection",
    "VoiceSessionManager",
    "VolumeMonitor",
    "VolumeMonitorConfig",
    "VoxRoomError",
    "__version__",
    "decode_reply",
]
