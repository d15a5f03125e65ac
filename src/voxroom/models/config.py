"""Configuration models for the voice session engine.

Every model can be built directly or loaded from environment variables via
``from_env()``.  Only variables that are set override the defaults, and all
values go through normal pydantic validation.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field, field_validator

from voxroom.models.enums import HistoryScope

DEFAULT_FALLBACK_TEXT = "Sorry, something went wrong on my side. Please try again."

_THROTTLE_ENV = {
    "GLOBAL_COOLDOWN_MS": "global_cooldown_ms",
    "USER_COOLDOWN_MS": "user_cooldown_ms",
    "RANDOM_RESPONSE_CHANCE": "random_response_chance",
    "MAX_RESPONSES_PER_HOUR": "max_responses_per_hour",
    "TRANSCRIPTION_MULTIPLIER": "transcription_multiplier",
    "VOICE_SPAM_COOLDOWN_MS": "voice_spam_cooldown_ms",
    "VOICE_SPAM_THRESHOLD": "voice_spam_threshold",
    "WAKE_TERMS": "wake_terms",
}

_VOLUME_ENV = {
    "VOLUME_MONITOR": "enabled",
    "VOLUME_THRESHOLD": "threshold",
    "MUTE_DURATION": "mute_duration_ms",
}

_SESSION_ENV = {
    "SYSTEM_INSTRUCTION": "system_instruction",
    "BACKEND_TIMEOUT_SECONDS": "backend_timeout_seconds",
    "NOISE_GATE_THRESHOLD": "noise_gate_threshold",
    "HISTORY_SCOPE": "history_scope",
    "FALLBACK_TEXT": "fallback_text",
}


# Free-text values keep any "#" they contain
_TEXT_ENV = frozenset({"SYSTEM_INSTRUCTION", "FALLBACK_TEXT", "WAKE_TERMS"})


def _env_overrides(environ: Mapping[str, str], names: Mapping[str, str]) -> dict[str, Any]:
    """Collect ``{field: raw_value}`` for every mapped variable that is set.

    Whitespace is stripped and empty values are ignored.  Trailing
    ``# comment`` fragments are stripped from numeric and flag values only.
    """
    values: dict[str, Any] = {}
    for env_name, field_name in names.items():
        raw = environ.get(env_name)
        if raw is None:
            continue
        if env_name not in _TEXT_ENV:
            raw = raw.split("#", 1)[0]
        raw = raw.strip()
        if raw:
            values[field_name] = raw
    return values


class ThrottleConfig(BaseModel):
    """Admission-control tuning for :class:`~voxroom.core.throttle.ThrottleEngine`."""

    global_cooldown_ms: int = Field(default=30_000, ge=0)
    user_cooldown_ms: int = Field(default=60_000, ge=0)
    random_response_chance: float = Field(default=0.15, ge=0.0, le=1.0)
    max_responses_per_hour: int = Field(default=20, ge=0)
    transcription_multiplier: float = Field(default=3.0, ge=0.0)
    voice_spam_cooldown_ms: int = Field(default=2_500, ge=0)
    voice_spam_threshold: int = Field(default=3, ge=1)
    spam_window_ms: int = Field(default=60_000, gt=0)
    spam_penalty_ms: int = Field(default=60_000, ge=0)
    hourly_window_ms: int = Field(default=3_600_000, gt=0)
    wake_terms: tuple[str, ...] = ("assistant", "bot")

    @field_validator("wake_terms", mode="before")
    @classmethod
    def _split_wake_terms(cls, value: Any) -> Any:
        if isinstance(value, str):
            return tuple(term.strip() for term in value.split(",") if term.strip())
        return value

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ThrottleConfig:
        """Load overrides from environment variables."""
        env = os.environ if environ is None else environ
        return cls(**_env_overrides(env, _THROTTLE_ENV))


class ReconnectPolicy(BaseModel):
    """Linear backoff used when joining and when the transport drops.

    The delay before attempt ``n`` is ``base_delay_seconds * n``, capped at
    ``max_delay_seconds``.
    """

    max_attempts: int = Field(default=5, ge=1)
    base_delay_seconds: float = Field(default=2.0, ge=0.0)
    max_delay_seconds: float = Field(default=10.0, ge=0.0)
    attempt_timeout_seconds: float = Field(default=30.0, gt=0.0)


class VolumeMonitorConfig(BaseModel):
    """Auto-mute for speakers whose input is persistently too loud."""

    enabled: bool = False
    threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    check_interval_ms: int = Field(default=100, ge=0)
    mute_duration_ms: int = Field(default=30_000, gt=0)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> VolumeMonitorConfig:
        env = os.environ if environ is None else environ
        return cls(**_env_overrides(env, _VOLUME_ENV))


class GenerationConfig(BaseModel):
    """Generation parameters forwarded to the conversational backend."""

    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_output_tokens: int = Field(default=1000, gt=0)


class SessionConfig(BaseModel):
    """Top-level configuration for :class:`~voxroom.voice.manager.VoiceSessionManager`."""

    system_instruction: str = (
        "You are a friendly voice assistant taking part in a group voice chat. "
        "Keep replies short and conversational."
    )
    silence_duration_ms: int = Field(default=500, gt=0)
    backend_timeout_seconds: float = Field(default=15.0, gt=0.0)
    noise_gate_threshold: int = Field(default=100, ge=0)
    history_scope: HistoryScope = HistoryScope.CHANNEL
    high_priority_bypasses_precheck: bool = True
    fallback_text: str = DEFAULT_FALLBACK_TEXT
    sweep_interval_seconds: float = Field(default=10.0, gt=0.0)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    throttle: ThrottleConfig = Field(default_factory=ThrottleConfig)
    reconnect: ReconnectPolicy = Field(default_factory=ReconnectPolicy)
    volume: VolumeMonitorConfig = Field(default_factory=VolumeMonitorConfig)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> SessionConfig:
        """Load the whole configuration tree from environment variables."""
        env = os.environ if environ is None else environ
        return cls(
            throttle=ThrottleConfig.from_env(env),
            volume=VolumeMonitorConfig.from_env(env),
            **_env_overrides(env, _SESSION_ENV),
        )
