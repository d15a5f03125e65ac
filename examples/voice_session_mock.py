"""voxroom - Voice session with mock platform and backend.

Two speakers talk over each other in a simulated channel.  The mock
backend answers with a short tone; the throttle decides who gets a reply.
No API keys or audio devices are needed.

Run with:
    uv run python examples/voice_session_mock.py
"""

from __future__ import annotations

import asyncio
import logging

from voxroom import SessionConfig, ThrottleConfig, VoiceSessionManager
from voxroom.platform.mock import MockConferencingPlatform
from voxroom.providers.base import TranscriptWithAudio
from voxroom.providers.mock import MockConversationalBackend
from voxroom.voice.tts.mock import MockTTSProvider

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(message)s")
logger = logging.getLogger("voice_session_mock")


def _speech(duration_ms: int, level: int = 2000) -> bytes:
    """48 kHz stereo PCM at a constant level."""
    frame = level.to_bytes(2, "little", signed=True) * 2
    return frame * (48 * duration_ms)


async def _speak(platform: MockConferencingPlatform, speaker: str, duration_ms: int) -> None:
    conn = platform.connection
    assert conn is not None
    conn.simulate_speaking_started(speaker)
    await asyncio.sleep(0.01)
    for _ in range(duration_ms // 20):
        conn.push_audio(speaker, _speech(20))
        await asyncio.sleep(0.02)
    conn.simulate_speaking_ended(speaker)


async def main() -> None:
    platform = MockConferencingPlatform()
    backend = MockConversationalBackend(
        [
            TranscriptWithAudio(
                transcript="hey bot, what time is it?",
                reply_text="Time for a demo.",
                audio=b"\x00\x08" * 24_000,
            )
        ]
    )
    config = SessionConfig(
        throttle=ThrottleConfig(global_cooldown_ms=0, user_cooldown_ms=0),
    )
    manager = VoiceSessionManager(platform, backend, tts=MockTTSProvider(), config=config)

    session = await manager.join("demo-channel")
    logger.info("Joined, status=%s", manager.get_status())

    # Alice and Bob overlap; each is captured into its own buffer
    await asyncio.gather(_speak(platform, "alice", 1600), _speak(platform, "bob", 2000))
    await asyncio.sleep(0.5)
    if session.playback is not None:
        await session.playback.join()

    conn = platform.connection
    assert conn is not None and conn.player is not None
    logger.info(
        "Backend calls: %d, replies played: %d", len(backend.calls), len(conn.player.played)
    )
    logger.info("Stats: %s", manager.get_stats())

    await manager.leave()


if __name__ == "__main__":
    asyncio.run(main())
