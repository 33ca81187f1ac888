"""
Per-call session controller.

Drives one call through its lifecycle:

    AWAITING_SETUP -> STREAMING -> AWAITING_FULFILLMENT -> SYNTHESIZING
                   ^                                          |
                   +------------------------------------------+
    any state -> CLOSED (socket disconnect)

Socket messages arrive through ``handle_message`` in receipt order.
Recognition events arrive on the stream's own task and are not ordered
relative to socket messages, so every transition is decided under a
registry update that applies only while this connection still owns an open
CallState. A newer connection reusing the call id replaces the entry, and
the older controller then treats its call as gone.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional, Set, TypeVar, Union

from prometheus_client import Counter

from callbridge.config import AppConfig
from callbridge.core.call_registry import CallRegistry
from callbridge.core.models import CallState, CallStatus
from callbridge.errors import StreamError, SynthesisError
from callbridge.logging_config import bind_call_id, get_logger
from callbridge.protocol import SetupMessage, disconnect_message, parse_setup_message, send_message
from callbridge.recognition.events import (
    FinalResult,
    Fulfillment,
    PartialResult,
    RecognitionEvent,
    StreamFailed,
)
from callbridge.recognition.stream import RecognitionStream

logger = get_logger(__name__)

T = TypeVar("T")

_AUDIO_DROPPED = Counter(
    "callbridge_audio_chunks_dropped_total",
    "Inbound audio chunks dropped because no recognition stream was live",
)
_UTTERANCES = Counter(
    "callbridge_utterances_total",
    "Utterances that reached fulfillment",
)


class SessionController:
    """Owns one call connection from setup message to socket close."""

    def __init__(
        self,
        socket,
        *,
        registry: CallRegistry,
        backend,
        synthesizer,
        config: AppConfig,
        room: Optional[str] = None,
        stream_factory=RecognitionStream,
    ) -> None:
        self.socket = socket
        self.room = room
        self.call_id: Optional[str] = None
        self._registry = registry
        self._backend = backend
        self._synthesizer = synthesizer
        self._config = config
        self._stream_factory = stream_factory
        self._state: Optional[CallState] = None
        self._lifecycle_lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()
        self._streams: Set[RecognitionStream] = set()
        self._closed = False

    @property
    def status(self) -> CallStatus:
        if self._state is None:
            return CallStatus.CLOSED if self._closed else CallStatus.AWAITING_SETUP
        return self._state.status

    # ------------------------------------------------------------------
    # Socket side
    # ------------------------------------------------------------------
    async def handle_message(self, message: Union[str, bytes]) -> None:
        """Process one inbound socket message. Raises SetupError on a bad first message."""
        if self._closed:
            return
        if self._state is None:
            await self._setup(message)
            return
        if isinstance(message, (bytes, bytearray, memoryview)):
            await self._forward_audio(bytes(message))
            return
        logger.info("Call message", call_id=self.call_id, message=message)

    async def close(self) -> None:
        """Socket went away: tear down the live stream and drop the call."""
        if self._closed:
            return
        self._closed = True
        state = self._state
        if state is None:
            return

        stream = await self._registry.update(
            state.call_id, lambda s: s.close() if s is state and not s.closed else None
        )
        if stream is None and not state.closed:
            # Entry was replaced by a newer connection with the same call id
            stream = state.close()
        # Includes a stream that already ended and still awaits fulfillment
        streams = [s for s in self._streams if s is not stream and not s.destroyed]
        if stream is not None:
            streams.insert(0, stream)
        for s in streams:
            await s.end()
            await s.destroy()
        self._streams.clear()
        await self._registry.remove(state.call_id, expected=state)

        for task in list(self._tasks):
            task.cancel()
        logger.info("Call ended", call_id=state.call_id, utterances=state.utterances)

    async def _setup(self, raw: Union[str, bytes]) -> None:
        setup = parse_setup_message(raw)
        self.call_id = setup.call_id
        bind_call_id(setup.call_id)

        state = CallState(
            call_id=setup.call_id,
            socket=self.socket,
            sample_rate=setup.sample_rate,
            session=self._backend.session_path(setup.call_id),
            room=self.room,
            payload=setup.fulfill_params,
        )
        self._state = state
        await self._registry.put(setup.call_id, state)
        logger.info(
            "Call started",
            call_id=setup.call_id,
            room=self.room,
            sample_rate=setup.sample_rate,
            session=state.session,
            **{"from": setup.from_, "to": setup.to},
        )

        await self._greet(setup, state)
        await self._open_stream()

    async def _greet(self, setup: SetupMessage, state: CallState) -> None:
        """Play the reply to the call's context event before listening starts."""
        if not self._config.greeting.enabled:
            return
        event_name = setup.context or self._config.greeting.event_name
        if not event_name:
            return
        try:
            text = await self._backend.detect_event(
                state.session,
                event_name,
                parameters=setup.context_params,
                language_code=self._config.recognition.language_code,
                payload=setup.fulfill_params,
            )
        except StreamError as exc:
            logger.warning("Greeting event failed", call_id=state.call_id, event_name=event_name, error=str(exc))
            return
        if text:
            await self._synthesize_and_play(text)

    async def _forward_audio(self, chunk: bytes) -> None:
        state = await self._current()
        stream = state.stream if state is not None else None
        # Audio between streams is lost on purpose
        if stream is None or not await stream.write_audio(chunk):
            _AUDIO_DROPPED.inc()

    # ------------------------------------------------------------------
    # Recognition side
    # ------------------------------------------------------------------
    async def _open_stream(self) -> Optional[RecognitionStream]:
        async with self._lifecycle_lock:
            state = await self._current()
            if state is None:
                return None
            previous = await self._update(_detach_stream)
            if previous is not None:
                await previous.end()
                await previous.destroy()

            recognition = self._config.recognition
            stream = self._stream_factory(self._backend, state.call_id, self._on_recognition_event)
            await stream.open(
                state.session,
                state.sample_rate,
                recognition.language_code,
                single_utterance=recognition.single_utterance,
                payload=state.payload,
            )
            self._streams = {s for s in self._streams if not s.destroyed}
            self._streams.add(stream)

            def attach(s: CallState) -> bool:
                s.stream = stream
                s.status = CallStatus.STREAMING
                return True

            if not await self._update(attach):
                # Closed while the stream was opening
                await stream.end()
                await stream.destroy()
                return None
            return stream

    async def _on_recognition_event(self, stream: RecognitionStream, event: RecognitionEvent) -> None:
        if isinstance(event, PartialResult):
            logger.debug("Partial transcript", call_id=self.call_id, transcript=event.transcript)
        elif isinstance(event, FinalResult):
            await self._finish_utterance(stream, event)
        elif isinstance(event, Fulfillment):
            await self._complete_utterance(stream, event)
        elif isinstance(event, StreamFailed):
            await self._handle_stream_error(stream, event.error)

    async def _finish_utterance(self, stream: RecognitionStream, event: FinalResult) -> None:
        """Caller stopped talking: stop accepting audio, wait for fulfillment."""
        def detach(s: CallState) -> bool:
            if s.stream is not stream:
                return False
            s.stream = None
            s.status = CallStatus.AWAITING_FULFILLMENT
            return True

        if not await self._update(detach):
            return
        logger.info("Utterance recognized", call_id=self.call_id, transcript=event.transcript)
        await stream.end()

    async def _complete_utterance(self, stream: RecognitionStream, event: Fulfillment) -> None:
        await stream.destroy()

        def complete(s: CallState) -> Optional[CallState]:
            if s.stream is stream:
                s.stream = None
            elif s.stream is not None:
                return None
            s.status = CallStatus.SYNTHESIZING
            s.utterances += 1
            return s

        state = await self._update(complete)
        if state is None:
            logger.debug("Ignoring fulfillment for finished call", call_id=self.call_id)
            return

        _UTTERANCES.inc()
        logger.info(
            "Fulfillment received",
            call_id=self.call_id,
            query_text=event.query_text,
            intent=event.intent,
            text=event.text,
        )
        if event.text:
            self._spawn(self._synthesize_and_play(event.text))
        await self._open_stream()

    async def _handle_stream_error(self, stream: RecognitionStream, error: StreamError) -> None:
        """A broken recognition channel ends the call: notify the client and close."""
        await stream.destroy()

        def detach(s: CallState) -> Optional[CallState]:
            if s.stream is not None and s.stream is not stream:
                return None
            s.stream = None
            return s

        state = await self._update(detach)
        if state is None:
            logger.debug("Ignoring stream error for finished call", call_id=self.call_id, error=str(error))
            return

        logger.error("Recognition stream failed", call_id=self.call_id, error=str(error))
        await send_message(state.socket, disconnect_message())
        await state.socket.close()

    # ------------------------------------------------------------------
    # Synthesis
    # ------------------------------------------------------------------
    async def _synthesize_and_play(self, text: str) -> None:
        state = await self._current()
        if state is None:
            return
        try:
            audio = await self._synthesizer.synthesize(text, state.sample_rate)
        except SynthesisError as exc:
            logger.error("Synthesis failed", call_id=self.call_id, error=str(exc))
            return

        state = await self._current()
        if state is None:
            logger.debug("Discarding synthesized audio for finished call", call_id=self.call_id)
            return
        await send_message(state.socket, self._synthesizer.play_message(audio, state.sample_rate))

    async def _update(self, fn: Callable[[CallState], T]) -> Optional[T]:
        """Apply ``fn`` to this connection's state; None once it is closed or replaced."""
        own = self._state

        def apply(s: CallState) -> Optional[T]:
            if s is not own or s.closed:
                return None
            return fn(s)

        return await self._registry.update(self.call_id, apply)

    async def _current(self) -> Optional[CallState]:
        return await self._update(lambda s: s)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for in-flight synthesis tasks (used on shutdown and in tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


def _detach_stream(state: CallState) -> Optional[RecognitionStream]:
    stream, state.stream = state.stream, None
    return stream
