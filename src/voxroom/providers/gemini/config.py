"""Google Gemini backend configuration."""

from __future__ import annotations

from pydantic import BaseModel, SecretStr


class GeminiConfig(BaseModel):
    """Google Gemini backend configuration."""

    api_key: SecretStr
    model: str = "gemini-2.0-flash"
    live_model: str = "gemini-2.0-flash-live-001"
    tts_model: str = "gemini-2.5-flash-preview-tts"
    voice: str = "Kore"
    language: str | None = None
