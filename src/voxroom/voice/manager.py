"""VoiceSessionManager: one voice channel, many speakers, one backend.

The manager owns the lifecycle of a :class:`~voxroom.voice.base.VoiceSession`:

* a single dispatch task consumes platform events in arrival order,
* each speaker gets its own capture task, so a slow backend call for one
  speaker never blocks another,
* replies go through a :class:`~voxroom.voice.player.PlaybackQueue` and are
  played one at a time,
* a dropped transport is retried in a separate reconnect task.

Per utterance the flow is: boundary priority, Phase A, alignment and
validation, conversion to the backend format, noise gate, backend call
(bounded by ``backend_timeout_seconds``), Phase B on the transcript,
conversion back to the platform format, playback.

Every side effect that follows an ``await`` is guarded by the session's
``destroyed`` flag so that late replies never reach a torn-down session.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from voxroom.core.retry import retry_with_backoff
from voxroom.core.throttle import ThrottleEngine, monotonic_ms
from voxroom.errors import (
    BackendError,
    ConnectionFailedError,
    SessionAlreadyConnectedError,
    SessionNotConnectedError,
    TransportError,
)
from voxroom.memory.history import ConversationStateStore
from voxroom.models.config import SessionConfig
from voxroom.models.enums import ConnectionStatus, HistoryScope, SessionState, SpeechPriority
from voxroom.providers.base import (
    ConversationRequest,
    ErrorReply,
    SetupComplete,
    TextOnlyReply,
    ToolCallReply,
    TranscriptWithAudio,
)
from voxroom.voice.audio_format import (
    BACKEND_REPLY_CHANNELS,
    PLATFORM_CHANNELS,
    PLATFORM_SAMPLE_RATE,
)
from voxroom.voice.base import CaptureSubscription, VoiceSession
from voxroom.voice.boundary import SpeechBoundaryTracker
from voxroom.voice.events import (
    ConnectionStateChanged,
    PlatformEvent,
    SpeakingEnded,
    SpeakingStarted,
)
from voxroom.voice.player import PlaybackQueue
from voxroom.voice.resampler import (
    align,
    apply_noise_gate,
    to_backend_format,
    to_platform_format,
    validate,
)
from voxroom.voice.volume import VolumeMonitor

if TYPE_CHECKING:
    from voxroom.platform.base import ConferencingPlatform, VoiceConnection
    from voxroom.providers.base import ConversationalBackend
    from voxroom.voice.tts.base import TTSProvider

logger = logging.getLogger("voxroom.voice.manager")


@dataclass(frozen=True)
class SessionStatus:
    connected: bool
    active: bool
    state: SessionState


@dataclass(frozen=True)
class SessionStats:
    responses_this_hour: int
    max_per_hour: int
    time_until_reset_ms: float
    active_speaker_count: int


@dataclass(frozen=True)
class _Answer:
    transcript: str
    reply_text: str
    audio: bytes
    sample_rate: int
    channels: int


async def _cancel(task: asyncio.Task[None] | None) -> None:
    """Cancel *task* and wait for it, unless it is the running task."""
    if task is None or task.done() or task is asyncio.current_task():
        return
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


class VoiceSessionManager:
    """Runs one voice session at a time against a conversational backend.

    Args:
        platform: Conferencing platform used to join channels.
        backend: Conversational backend answering utterances.
        tts: Optional text-to-speech provider for text-only replies and
            the fallback apology.
        config: Session configuration.  Defaults to ``SessionConfig()``.
        throttle: Admission control.  Built from ``config.throttle`` if
            omitted.
        tracker: Speech boundary tracker.  Built around *throttle* if
            omitted.
        history: Conversation history store.
        clock: Millisecond clock shared by the components built here.
        rng: Random source for the throttle's probabilistic gates.
    """

    def __init__(
        self,
        platform: ConferencingPlatform,
        backend: ConversationalBackend,
        *,
        tts: TTSProvider | None = None,
        config: SessionConfig | None = None,
        throttle: ThrottleEngine | None = None,
        tracker: SpeechBoundaryTracker | None = None,
        history: ConversationStateStore | None = None,
        clock: Callable[[], float] = monotonic_ms,
        rng: random.Random | None = None,
    ) -> None:
        self._platform = platform
        self._backend = backend
        self._tts = tts
        self._config = config or SessionConfig()
        self._throttle = throttle or ThrottleEngine(self._config.throttle, clock=clock, rng=rng)
        self._tracker = tracker or SpeechBoundaryTracker(self._throttle, clock=clock)
        self._history = history if history is not None else ConversationStateStore()
        self._volume = VolumeMonitor(self._config.volume, clock=clock)

        self._session: VoiceSession | None = None
        self._joining = False
        self._dispatch_task: asyncio.Task[None] | None = None
        self._sweep_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None

    # -- Accessors --

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def throttle(self) -> ThrottleEngine:
        return self._throttle

    @property
    def tracker(self) -> SpeechBoundaryTracker:
        return self._tracker

    @property
    def history(self) -> ConversationStateStore:
        return self._history

    @property
    def volume(self) -> VolumeMonitor:
        return self._volume

    @property
    def session(self) -> VoiceSession | None:
        return self._session

    @property
    def state(self) -> SessionState:
        if self._session is None:
            return SessionState.CONNECTING if self._joining else SessionState.DISCONNECTED
        return self._session.state

    # -- Command surface --

    async def join(self, channel_id: str) -> VoiceSession:
        """Connect to *channel_id* and start listening.

        Waits for the connection to become ready, retrying with linear
        backoff according to ``config.reconnect``.

        Raises:
            SessionAlreadyConnectedError: A session is already active.
            ConnectionFailedError: The connection never became ready.
        """
        if self._session is not None or self._joining:
            raise SessionAlreadyConnectedError("Already connected to a voice channel")

        self._joining = True
        try:
            connection = await self._platform.connect(channel_id)
        except Exception as exc:
            self._joining = False
            raise ConnectionFailedError(f"Could not connect to {channel_id}: {exc}") from exc

        session = VoiceSession(channel_id=channel_id, connection=connection)
        self._session = session
        self._joining = False
        logger.info("Joining voice channel %s (session %s)", channel_id, session.id)

        policy = self._config.reconnect
        try:
            await retry_with_backoff(
                connection.wait_ready,
                policy,
                policy.attempt_timeout_seconds,
                retry_on=(TimeoutError, TransportError),
            )
            player = await connection.create_player()
        except (TimeoutError, TransportError) as exc:
            logger.error("Voice channel %s never became ready", channel_id)
            await self._teardown(session)
            raise ConnectionFailedError(
                f"Connection to {channel_id} not ready after {policy.max_attempts} attempts"
            ) from exc

        session.playback = PlaybackQueue(player)
        await session.playback.start()
        if session.destroyed:
            raise ConnectionFailedError(f"Connection to {channel_id} closed while joining")

        session.state = SessionState.READY
        loop = asyncio.get_running_loop()
        self._dispatch_task = loop.create_task(
            self._dispatch_loop(session), name=f"voxroom_dispatch_{session.id}"
        )
        self._sweep_task = loop.create_task(
            self._sweep_loop(session), name=f"voxroom_sweep_{session.id}"
        )
        logger.info("Voice session %s ready in %s", session.id, channel_id)
        return session

    async def leave(self) -> None:
        """Tear down the active session.

        Raises:
            SessionNotConnectedError: No session is active.
        """
        session = self._require_session()
        logger.info("Leaving voice channel %s", session.channel_id)
        await self._teardown(session)

    def start_listening(self) -> None:
        session = self._require_session()
        session.listening = True
        logger.info("Listening enabled in %s", session.channel_id)

    async def stop_listening(self) -> None:
        """Stop capturing. In-flight captures are closed and discarded."""
        session = self._require_session()
        session.listening = False
        for sub in list(session.subscriptions.values()):
            sub.discarded = True
            self._tracker.forget(sub.speaker_id)
            await self._release(session, sub)
        logger.info("Listening disabled in %s", session.channel_id)

    def get_status(self) -> SessionStatus:
        session = self._session
        connected = (
            session is not None and not session.destroyed and session.state == SessionState.READY
        )
        return SessionStatus(
            connected=connected,
            active=connected and session is not None and session.listening,
            state=self.state,
        )

    def get_stats(self) -> SessionStats:
        stats = self._throttle.stats()
        return SessionStats(
            responses_this_hour=stats.responses_this_hour,
            max_per_hour=stats.max_responses_per_hour,
            time_until_reset_ms=stats.time_until_reset_ms,
            active_speaker_count=stats.active_speakers,
        )

    def reset_throttle(self) -> None:
        self._throttle.reset()

    def _require_session(self) -> VoiceSession:
        if self._session is None or self._session.destroyed:
            raise SessionNotConnectedError("Not connected to a voice channel")
        return self._session

    # -- Event dispatch --

    async def _dispatch_loop(self, session: VoiceSession) -> None:
        try:
            async for event in session.connection.events():
                if session.destroyed:
                    break
                try:
                    await self._handle_event(session, event)
                except Exception:
                    logger.exception("Error handling platform event %r", event)
        except TransportError:
            logger.warning("Platform event stream failed for session %s", session.id)
        if not session.destroyed:
            logger.info("Platform event stream ended, tearing down session %s", session.id)
            await self._teardown(session)

    async def _handle_event(self, session: VoiceSession, event: PlatformEvent) -> None:
        if isinstance(event, SpeakingStarted):
            await self._on_speaking_started(session, event.speaker_id)
        elif isinstance(event, SpeakingEnded):
            await self._on_speaking_ended(session, event.speaker_id)
        elif isinstance(event, ConnectionStateChanged):
            await self._on_connection_state(session, event)

    async def _on_speaking_started(self, session: VoiceSession, speaker_id: str) -> None:
        if not session.listening or session.state != SessionState.READY:
            return
        if speaker_id in session.subscriptions:
            return

        self._tracker.on_start(speaker_id)
        try:
            stream = await session.connection.subscribe(
                speaker_id, silence_duration_ms=self._config.silence_duration_ms
            )
        except TransportError:
            logger.warning("Could not subscribe to %s", speaker_id, exc_info=True)
            self._tracker.forget(speaker_id)
            return
        if session.destroyed:
            await stream.close()
            return

        sub = CaptureSubscription(speaker_id=speaker_id, stream=stream)
        session.subscriptions[speaker_id] = sub
        task = asyncio.get_running_loop().create_task(
            self._capture(session, sub), name=f"voxroom_capture_{speaker_id}"
        )
        sub.task = task
        session.utterance_tasks.add(task)
        task.add_done_callback(session.utterance_tasks.discard)
        logger.debug("Capturing audio from %s", speaker_id)

    async def _on_speaking_ended(self, session: VoiceSession, speaker_id: str) -> None:
        sub = session.subscriptions.get(speaker_id)
        if sub is None:
            self._tracker.forget(speaker_id)
            return
        sub.priority = self._tracker.on_end(speaker_id)
        await sub.stream.close()

    async def _on_connection_state(
        self, session: VoiceSession, event: ConnectionStateChanged
    ) -> None:
        logger.info("Connection %s -> %s", session.channel_id, event.status)
        if event.status == ConnectionStatus.DESTROYED:
            await self._teardown(session)
        elif event.status == ConnectionStatus.DISCONNECTED:
            if session.state == SessionState.READY:
                session.state = SessionState.RECONNECTING
                self._reconnect_task = asyncio.get_running_loop().create_task(
                    self._reconnect(session), name=f"voxroom_reconnect_{session.id}"
                )

    # -- Reconnection --

    async def _reconnect(self, session: VoiceSession) -> None:
        policy = self._config.reconnect
        try:
            await retry_with_backoff(
                self._rejoin_once,
                policy,
                session.connection,
                retry_on=(TimeoutError, TransportError),
            )
        except (TimeoutError, TransportError):
            logger.error(
                "Could not reconnect to %s after %d attempts",
                session.channel_id,
                policy.max_attempts,
            )
            self._reconnect_task = None
            await self._teardown(session)
            return
        self._reconnect_task = None
        if not session.destroyed:
            session.state = SessionState.READY
            logger.info("Reconnected to %s", session.channel_id)

    async def _rejoin_once(self, connection: VoiceConnection) -> None:
        await connection.rejoin()
        await connection.wait_ready(self._config.reconnect.attempt_timeout_seconds)

    async def _sweep_loop(self, session: VoiceSession) -> None:
        while not session.destroyed:
            await asyncio.sleep(self._config.sweep_interval_seconds)
            self._tracker.sweep()

    # -- Capture --

    async def _capture(self, session: VoiceSession, sub: CaptureSubscription) -> None:
        failed = False
        try:
            async for chunk in sub.stream:
                sub.buffer.append(chunk)
                if self._volume.enabled and not session.destroyed:
                    await self._volume.check(session, sub.speaker_id, chunk)
        except TransportError:
            failed = True
            logger.warning("Receive stream for %s failed, dropping utterance", sub.speaker_id)
        except Exception:
            failed = True
            logger.exception("Unexpected error reading audio from %s", sub.speaker_id)
        finally:
            await self._release(session, sub)

        if failed or sub.discarded or session.destroyed:
            self._tracker.forget(sub.speaker_id)
            return

        priority = sub.priority
        if priority is None:
            # Stream ended on trailing silence before the platform's end event
            priority = self._tracker.on_end(sub.speaker_id)
        audio = sub.buffer.consume()
        try:
            await self._process_utterance(session, sub.speaker_id, audio, priority)
        except Exception:
            logger.exception("Error processing utterance from %s", sub.speaker_id)

    async def _release(self, session: VoiceSession, sub: CaptureSubscription) -> None:
        """Remove *sub* from the session and close its stream, exactly once."""
        if sub.released:
            return
        sub.released = True
        if session.subscriptions.get(sub.speaker_id) is sub:
            del session.subscriptions[sub.speaker_id]
        try:
            await sub.stream.close()
        except Exception:
            logger.debug("Error closing stream for %s", sub.speaker_id, exc_info=True)

    # -- Utterance pipeline --

    def _history_key(self, session: VoiceSession, speaker_id: str) -> str:
        if self._config.history_scope == HistoryScope.SPEAKER:
            return f"{session.channel_id}:{speaker_id}"
        return session.channel_id

    async def _process_utterance(
        self,
        session: VoiceSession,
        speaker_id: str,
        audio: bytes,
        priority: SpeechPriority,
    ) -> None:
        channel_id = session.channel_id
        if priority == SpeechPriority.SKIP:
            logger.debug("Skipping utterance from %s", speaker_id)
            return

        force = priority == SpeechPriority.HIGH and self._config.high_priority_bypasses_precheck
        if not self._throttle.should_consider(speaker_id, channel_id, force=force):
            return

        audio = align(audio)
        if not validate(audio, PLATFORM_CHANNELS, PLATFORM_SAMPLE_RATE):
            logger.warning(
                "Dropping malformed utterance from %s (%d bytes)", speaker_id, len(audio)
            )
            return
        pcm = to_backend_format(audio)
        if not pcm:
            logger.warning("Utterance from %s too short to convert", speaker_id)
            return
        pcm = apply_noise_gate(pcm, self._config.noise_gate_threshold)

        key = self._history_key(session, speaker_id)
        request = ConversationRequest(
            history=self._history.get_history(key),
            audio=pcm,
            system_instruction=self._config.system_instruction,
            generation=self._config.generation,
            speaker_id=speaker_id,
        )

        answer = await self._converse(session, speaker_id, request)
        if answer is None or session.destroyed:
            return

        if not self._throttle.should_respond(speaker_id, channel_id, answer.transcript):
            logger.debug("Not answering %s: %r", speaker_id, answer.transcript)
            return

        reply_audio = to_platform_format(
            answer.audio, src_rate=answer.sample_rate, src_channels=answer.channels
        )
        if session.destroyed:
            return
        self._history.append_exchange(key, answer.transcript, answer.reply_text)
        session.history_keys.add(key)
        if session.playback is not None:
            session.playback.enqueue(reply_audio)
        logger.info("Answered %s in %s", speaker_id, channel_id)

    async def _converse(
        self,
        session: VoiceSession,
        speaker_id: str,
        request: ConversationRequest,
    ) -> _Answer | None:
        """Call the backend and normalise its reply.

        Returns None when there is nothing to play.  Backend failures play
        the fallback apology and also return None.
        """
        timeout = self._config.backend_timeout_seconds
        try:
            reply = await asyncio.wait_for(self._backend.converse(request), timeout=timeout)
        except TimeoutError:
            logger.warning("Backend timed out after %.1fs for %s", timeout, speaker_id)
            await self._play_fallback(session)
            return None
        except BackendError as exc:
            logger.warning(
                "Backend error for %s: %s",
                speaker_id,
                exc,
                extra={"provider": exc.provider, "status_code": exc.status_code},
            )
            await self._play_fallback(session)
            return None
        except Exception:
            logger.exception("Backend call failed for %s", speaker_id)
            await self._play_fallback(session)
            return None

        if session.destroyed:
            return None

        if isinstance(reply, ErrorReply):
            logger.warning("Backend returned error for %s: %s", speaker_id, reply.message)
            await self._play_fallback(session)
            return None
        if isinstance(reply, (SetupComplete, ToolCallReply)):
            logger.debug("Ignoring %s reply for %s", reply.kind, speaker_id)
            return None

        if isinstance(reply, TranscriptWithAudio) and reply.audio:
            return _Answer(
                transcript=reply.transcript,
                reply_text=reply.reply_text,
                audio=reply.audio,
                sample_rate=reply.sample_rate,
                channels=BACKEND_REPLY_CHANNELS,
            )

        if not isinstance(reply, (TextOnlyReply, TranscriptWithAudio)):
            logger.warning("Unexpected reply type %s for %s", type(reply).__name__, speaker_id)
            return None
        if not reply.reply_text:
            logger.debug("Empty reply for %s", speaker_id)
            return None
        audio = await self._synthesize(reply.reply_text)
        if audio is None or self._tts is None:
            return None
        return _Answer(
            transcript=reply.transcript,
            reply_text=reply.reply_text,
            audio=audio,
            sample_rate=self._tts.output_format.sample_rate,
            channels=self._tts.output_format.channels,
        )

    async def _synthesize(self, text: str) -> bytes | None:
        if self._tts is None:
            logger.warning("Text-only reply but no TTS provider configured")
            return None
        try:
            return await self._tts.synthesize(text)
        except Exception:
            logger.warning("Speech synthesis failed", exc_info=True)
            return None

    async def _play_fallback(self, session: VoiceSession) -> None:
        """Play the canned apology. Does not count as a response."""
        if self._tts is None or session.destroyed:
            return
        audio = await self._synthesize(self._config.fallback_text)
        if not audio or session.destroyed or session.playback is None:
            return
        session.playback.enqueue(
            to_platform_format(
                audio,
                src_rate=self._tts.output_format.sample_rate,
                src_channels=self._tts.output_format.channels,
            )
        )

    # -- Teardown --

    async def _teardown(self, session: VoiceSession) -> None:
        """Release everything *session* owns, in order.

        Subscriptions, then mute timers, then history, then the player,
        then the connection.  The session is marked disconnected last.
        """
        if session.destroyed:
            return
        session.destroyed = True
        logger.info("Tearing down voice session %s", session.id)

        await _cancel(self._sweep_task)
        await _cancel(self._reconnect_task)
        self._sweep_task = None
        self._reconnect_task = None

        for sub in list(session.subscriptions.values()):
            sub.discarded = True
            self._tracker.forget(sub.speaker_id)
            await self._release(session, sub)
        for task in list(session.utterance_tasks):
            await _cancel(task)
        session.utterance_tasks.clear()

        await VolumeMonitor.cancel_all(session)
        self._volume.reset()

        for key in session.history_keys:
            self._history.clear(key)
        session.history_keys.clear()
        self._throttle.forget_channel(session.channel_id)

        if session.playback is not None:
            await session.playback.stop()
            try:
                await session.playback.player.destroy()
            except Exception:
                logger.warning("Error destroying audio player", exc_info=True)

        try:
            await session.connection.destroy()
        except Exception:
            logger.warning("Error destroying voice connection", exc_info=True)

        await _cancel(self._dispatch_task)
        self._dispatch_task = None

        session.state = SessionState.DISCONNECTED
        if self._session is session:
            self._session = None
        logger.info("Voice session %s disconnected", session.id)
