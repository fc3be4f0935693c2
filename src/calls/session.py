"""Conversation state machine for one phone call.

A session owns the conversation history and the outbound audio path of a
single call. Work is split across two tasks on the same event loop:

- the event task drains the mailbox (transcripts, playback acknowledgements)
  in arrival order and decides on barge-in;
- the turn task answers finalized caller utterances and speaks the greeting,
  strictly one at a time.

Neither task runs in parallel with the other, so session state is only
mutated between awaits and needs no locking.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Protocol

from calls.agent_config import AgentConfig
from calls.errors import RecognizerError, TransportClosedError
from calls.interruption import InterruptionController
from calls.models import ConversationState, ConversationTurn, TransportState, VoiceConfig
from config.settings import Settings
from llm.generator import ResponseGenerator
from speech.recognizer import BaseRecognizer, RecognitionStream, RecognizerConfig, TranscriptEvent
from speech.tts import BaseSynthesizer
from telephony.transcoder import DEFAULT_FRAME_CHARS, AudioTranscoder

LOGGER = logging.getLogger(__name__)

AUDIO_COMPLETE_MARK = "audio_complete"


class OutboundChannel(Protocol):
    """Transport-side operations a session needs; framing belongs to the adapter."""

    async def send_media(self, stream_id: str, payload: str) -> None: ...

    async def send_mark(self, stream_id: str, name: str) -> None: ...

    async def send_clear(self, stream_id: str) -> None: ...


@dataclass(slots=True)
class CallPorts:
    """The external engines a session talks to."""

    recognizer: BaseRecognizer | None
    generator: ResponseGenerator
    synthesizer: BaseSynthesizer
    transcoder: AudioTranscoder = field(default_factory=AudioTranscoder)
    recognizer_config: RecognizerConfig = field(default_factory=RecognizerConfig)


@dataclass(slots=True)
class SessionOptions:
    frame_chars: int = DEFAULT_FRAME_CHARS
    frame_pacing_seconds: float = 0.0
    # None disables the greeting.
    greeting_delay_seconds: float | None = 0.5
    playback_ack_grace_seconds: float = 5.0
    interruption_min_chars: int = 3

    @classmethod
    def from_settings(cls, settings: Settings) -> SessionOptions:
        return cls(
            frame_chars=settings.outbound_frame_chars,
            frame_pacing_seconds=settings.outbound_frame_pacing_seconds,
            greeting_delay_seconds=settings.greeting_delay_seconds,
            playback_ack_grace_seconds=settings.playback_ack_grace_seconds,
            interruption_min_chars=settings.interruption_min_chars,
        )


@dataclass(frozen=True, slots=True)
class MarkAck:
    name: str


@dataclass(frozen=True, slots=True)
class _Utterance:
    text: str
    from_caller: bool


class CallSession:
    """State machine and data owner for one phone call."""

    def __init__(
        self,
        call_id: str,
        agent: AgentConfig,
        ports: CallPorts,
        channel: OutboundChannel,
        options: SessionOptions | None = None,
    ) -> None:
        self.call_id = call_id
        self.voice = VoiceConfig(prompt_text=agent.prompt_text, voice_id=agent.voice_id)
        self.greeting_text = agent.greeting_text
        self.history: list[ConversationTurn] = []
        self.transport = TransportState()
        self.state = ConversationState.AWAITING_START
        self.pending_audio: deque[bytes] = deque()
        self.interim_transcript = ""

        self._ports = ports
        self._channel = channel
        self._options = options or SessionOptions()
        self._interruption = InterruptionController(self._options.interruption_min_chars)

        self._caller_speaking = False
        self._playback_done = asyncio.Event()
        self._marks_outstanding = 0
        self._mailbox: asyncio.Queue[TranscriptEvent | MarkAck] = asyncio.Queue()
        self._turns: asyncio.Queue[_Utterance] = asyncio.Queue()
        self._stream: RecognitionStream | None = None
        self._tasks: list[asyncio.Task] = []
        self._ended = False

    @property
    def ended(self) -> bool:
        return self._ended

    async def start(self, stream_id: str) -> None:
        """Handle the transport's start signal."""

        if self._ended:
            return
        if self.transport.ready:
            LOGGER.warning("call=%s duplicate start signal ignored", self.call_id)
            return

        self.transport.stream_id = stream_id
        self.transport.ready = True
        self.state = ConversationState.LISTENING
        LOGGER.info("call=%s stream %s ready", self.call_id, stream_id)

        self._tasks.append(asyncio.create_task(self._event_loop(), name=f"call-{self.call_id}-events"))
        self._tasks.append(asyncio.create_task(self._turn_loop(), name=f"call-{self.call_id}-turns"))

        await self._open_recognizer()
        await self._flush_pending_audio()

        delay = self._options.greeting_delay_seconds
        if self.greeting_text and delay is not None and not self._ended:
            self._tasks.append(
                asyncio.create_task(self._greet_after(delay), name=f"call-{self.call_id}-greeting")
            )

    async def _open_recognizer(self) -> None:
        recognizer = self._ports.recognizer
        if recognizer is None:
            LOGGER.warning("call=%s no recognizer configured; caller speech will be ignored", self.call_id)
            return

        try:
            stream = await recognizer.open(self._ports.recognizer_config, self.post_transcript)
        except RecognizerError as exc:
            LOGGER.error("call=%s recognizer unavailable: %s", self.call_id, exc.detail)
            return
        except Exception:
            LOGGER.exception("call=%s failed to open recognizer stream", self.call_id)
            return

        if self._ended:
            await self._close_stream(stream)
            return
        self._stream = stream

    async def _greet_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        if self._ended:
            return
        LOGGER.info("call=%s greeting: %s", self.call_id, self.greeting_text)
        self._turns.put_nowait(_Utterance(self.greeting_text, from_caller=False))

    # Inbound ---------------------------------------------------------------

    async def feed_audio(self, payload_b64: str) -> None:
        """Forward one inbound media frame to the recognizer."""

        if self._ended or self._stream is None:
            return
        ulaw = self._ports.transcoder.decode_inbound(payload_b64)
        if not ulaw:
            return
        await self._stream.send(self._ports.transcoder.to_recognizer(ulaw))

    def post_transcript(self, event: TranscriptEvent) -> None:
        if not self._ended:
            self._mailbox.put_nowait(event)

    def acknowledge_mark(self, name: str) -> None:
        if not self._ended:
            self._mailbox.put_nowait(MarkAck(name))

    async def join(self) -> None:
        """Wait until every queued event and caller turn has been handled."""

        await self._mailbox.join()
        await self._turns.join()

    async def _event_loop(self) -> None:
        while True:
            item = await self._mailbox.get()
            try:
                if isinstance(item, TranscriptEvent):
                    await self._on_transcript(item)
                else:
                    self._on_mark(item.name)
            except Exception:
                LOGGER.exception("call=%s failed to handle %r", self.call_id, item)
            finally:
                self._mailbox.task_done()

    async def _on_transcript(self, event: TranscriptEvent) -> None:
        if self._ended:
            return

        text = event.text.strip()
        if not event.is_final:
            self.interim_transcript = text
            if self._interruption.is_barge_in(text, self.state):
                await self.interrupt()
            return

        self.interim_transcript = ""
        if not text:
            return

        if self._interruption.is_barge_in(text, self.state):
            await self.interrupt()
        self._turns.put_nowait(_Utterance(text, from_caller=True))

    def _on_mark(self, name: str) -> None:
        if name != AUDIO_COMPLETE_MARK:
            LOGGER.debug("call=%s ignoring mark %s", self.call_id, name)
            return
        # Acks arrive in send order; only the latest clip's ack ends playback.
        self._marks_outstanding = max(self._marks_outstanding - 1, 0)
        if not self._marks_outstanding:
            self._playback_done.set()

    async def interrupt(self) -> None:
        """Stop the agent mid-utterance because the caller started talking."""

        if self.state is not ConversationState.SPEAKING:
            return

        LOGGER.info("call=%s caller barged in; stopping playback", self.call_id)
        self.state = ConversationState.INTERRUPTED
        self._caller_speaking = True
        self.pending_audio.clear()

        stream_id = self.transport.stream_id
        if self.transport.ready and stream_id:
            try:
                await self._channel.send_clear(stream_id)
            except TransportClosedError:
                LOGGER.debug("call=%s could not send clear; transport closed", self.call_id)

        self.state = ConversationState.LISTENING
        self._playback_done.set()

    # Turns -----------------------------------------------------------------

    async def _turn_loop(self) -> None:
        while True:
            utterance = await self._turns.get()
            try:
                if self._ended:
                    continue
                if utterance.from_caller:
                    await self._respond(utterance.text)
                else:
                    await self._speak(utterance.text)
            except Exception:
                LOGGER.exception("call=%s turn failed", self.call_id)
                if not self._ended:
                    self.state = ConversationState.LISTENING
            finally:
                self._turns.task_done()

    async def _respond(self, text: str) -> None:
        LOGGER.info("call=%s CALLER: %s", self.call_id, text)
        self.history.append(ConversationTurn(role="caller", text=text))
        self.state = ConversationState.GENERATING

        reply = await self._ports.generator.generate(tuple(self.history), self.voice.prompt_text)
        if self._ended:
            return

        LOGGER.info("call=%s AGENT: %s", self.call_id, reply)
        self.history.append(ConversationTurn(role="agent", text=reply))
        await self._speak(reply)

    async def _speak(self, text: str) -> None:
        self.state = ConversationState.SPEAKING
        self._caller_speaking = False

        try:
            clip = await self._ports.synthesizer.synthesize(text, self.voice.voice_id)
        except Exception:
            LOGGER.exception("call=%s synthesizer raised", self.call_id)
            clip = None

        if self._ended or self._caller_speaking:
            return
        if not clip:
            LOGGER.warning("call=%s no audio synthesized; back to listening", self.call_id)
            self.state = ConversationState.LISTENING
            return

        delivered = await self.deliver(clip)
        if delivered and not self._caller_speaking and not self._ended:
            timeout = AudioTranscoder.clip_duration_seconds(clip) + self._options.playback_ack_grace_seconds
            try:
                await asyncio.wait_for(self._playback_done.wait(), timeout)
            except asyncio.TimeoutError:
                LOGGER.warning("call=%s no playback acknowledgement after %.1fs", self.call_id, timeout)

        if self.state is ConversationState.SPEAKING:
            self.state = ConversationState.LISTENING

    # Outbound --------------------------------------------------------------

    async def deliver(self, clip: bytes) -> bool:
        """Send a clip now, or queue it until the transport is ready.

        Returns True when the clip was transmitted (completely or up to a barge-in).
        """

        if self._ended or not clip:
            return False
        if not self.transport.ready:
            LOGGER.info("call=%s queueing audio; stream not ready yet", self.call_id)
            self.pending_audio.append(clip)
            return False
        return await self._send_clip(clip)

    async def _flush_pending_audio(self) -> None:
        while self.pending_audio and self.transport.ready and not self._ended:
            clip = self.pending_audio.popleft()
            if not await self._send_clip(clip):
                break

    async def _send_clip(self, clip: bytes) -> bool:
        stream_id = self.transport.stream_id or ""
        frames = self._ports.transcoder.encode_frames(clip, self._options.frame_chars)

        sent = 0
        try:
            for frame in frames:
                if self._caller_speaking or self._ended:
                    break
                await self._channel.send_media(stream_id, frame)
                sent += 1
                # Yield so barge-in can be evaluated between frames.
                await asyncio.sleep(self._options.frame_pacing_seconds)

            if self._ended:
                return False
            self._marks_outstanding += 1
            self._playback_done.clear()
            await self._channel.send_mark(stream_id, AUDIO_COMPLETE_MARK)
        except TransportClosedError:
            LOGGER.info(
                "call=%s transport closed after %d/%d audio frames", self.call_id, sent, len(frames)
            )
            return False

        LOGGER.info("call=%s sent %d/%d audio frames (stream %s)", self.call_id, sent, len(frames), stream_id)
        return True

    # Teardown --------------------------------------------------------------

    async def end(self) -> None:
        """Destroy the session. Repeated calls are no-ops."""

        if self._ended:
            return
        self._ended = True
        self.state = ConversationState.ENDED
        self.transport.ready = False
        self._caller_speaking = True
        self.pending_audio.clear()
        self.interim_transcript = ""
        self._playback_done.set()

        for queue in (self._mailbox, self._turns):
            while not queue.empty():
                queue.get_nowait()
                queue.task_done()

        current = asyncio.current_task()
        tasks = [task for task in self._tasks if task is not current]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

        if self._stream is not None:
            stream, self._stream = self._stream, None
            await self._close_stream(stream)

        LOGGER.info("call=%s session ended", self.call_id)

    async def _close_stream(self, stream: RecognitionStream) -> None:
        try:
            await stream.close()
        except Exception:
            LOGGER.debug("call=%s recognizer stream close failed", self.call_id, exc_info=True)
