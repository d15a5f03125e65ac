"""voxroom - Voice session answered by Gemini Live.

Configuration is read from the environment (GLOBAL_COOLDOWN_MS,
RANDOM_RESPONSE_CHANCE, WAKE_TERMS, HISTORY_SCOPE, ...).  The conferencing
platform is the in-memory mock: a recorded 16-bit 48 kHz stereo PCM file
is played into the channel as one speaker's utterance and the spoken reply
is written next to it.

Requirements:
    pip install voxroom[gemini]

Run with:
    GOOGLE_API_KEY=... uv run python examples/voice_session_gemini.py question.pcm
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from pathlib import Path

from voxroom import SessionConfig, VoiceSessionManager
from voxroom.platform.mock import MockConferencingPlatform
from voxroom.providers.gemini import GeminiConfig, GeminiLiveBackend, GeminiTTSProvider

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(message)s")
logger = logging.getLogger("voice_session_gemini")

CHUNK_BYTES = 48 * 4 * 20  # 20 ms of 48 kHz stereo


async def main(pcm_path: Path) -> None:
    api_key = os.environ.get("GOOGLE_API_KEY")
    if not api_key:
        print("Set GOOGLE_API_KEY to run this example.")
        return

    gemini = GeminiConfig(api_key=api_key, voice=os.environ.get("GEMINI_VOICE", "Kore"))
    config = SessionConfig.from_env()
    platform = MockConferencingPlatform()
    manager = VoiceSessionManager(
        platform,
        GeminiLiveBackend(gemini),
        tts=GeminiTTSProvider(gemini),
        config=config,
    )

    session = await manager.join("gemini-demo")
    conn = platform.connection
    assert conn is not None

    audio = pcm_path.read_bytes()
    conn.simulate_speaking_started("caller")
    await asyncio.sleep(0.01)
    for offset in range(0, len(audio), CHUNK_BYTES):
        conn.push_audio("caller", audio[offset : offset + CHUNK_BYTES])
        await asyncio.sleep(0.02)
    conn.simulate_speaking_ended("caller")

    # Wait for the backend round trip and playback
    await asyncio.sleep(config.backend_timeout_seconds)
    if session.playback is not None:
        await session.playback.join()

    assert conn.player is not None
    if conn.player.played:
        out = pcm_path.with_suffix(".reply.pcm")
        out.write_bytes(b"".join(conn.player.played))
        logger.info("Reply written to %s", out)
    else:
        logger.info("No reply (throttled or backend failure)")

    await manager.leave()


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("usage: voice_session_gemini.py <48k-stereo.pcm>")
        sys.exit(1)
    asyncio.run(main(Path(sys.argv[1])))
