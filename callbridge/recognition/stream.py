"""
Recognition stream adapter.

One RecognitionStream owns one bidirectional exchange with the recognition
backend for a single utterance:

    open -> write_audio* -> end -> (final/fulfillment events) -> destroy

Requests flow through an asyncio queue into the backend's request iterator;
responses are read by a background task and translated into
RecognitionEvents for the owner's callback.
"""

from __future__ import annotations

import asyncio
import itertools
from typing import Any, Awaitable, Callable, Dict, Optional

from prometheus_client import Counter

from callbridge.errors import StreamError
from callbridge.logging_config import get_logger
from callbridge.recognition.events import RecognitionEvent, StreamFailed

logger = get_logger(__name__)

_END = object()
_stream_ids = itertools.count(1)

_STREAMS_OPENED = Counter(
    "callbridge_recognition_streams_opened_total",
    "Recognition streams opened",
)
_STREAM_ERRORS = Counter(
    "callbridge_recognition_stream_errors_total",
    "Recognition streams that failed with a backend error",
)
_AUDIO_BYTES = Counter(
    "callbridge_recognition_audio_bytes_total",
    "Audio bytes written to recognition streams",
)

EventCallback = Callable[["RecognitionStream", RecognitionEvent], Awaitable[None]]


class RecognitionStream:
    """Adapter around one streaming recognition request."""

    def __init__(self, backend, call_id: str, on_event: EventCallback) -> None:
        self._backend = backend
        self._on_event = on_event
        self.call_id = call_id
        self.stream_id = next(_stream_ids)
        self.session: Optional[str] = None

        self._requests: "asyncio.Queue[Any]" = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self._call: Any = None
        self._opened = False
        self._ended = False
        self._destroyed = False

    @property
    def live(self) -> bool:
        """True while the stream accepts audio."""
        return self._opened and not self._ended and not self._destroyed

    @property
    def ended(self) -> bool:
        return self._ended

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    async def open(
        self,
        session: str,
        sample_rate: int,
        language_code: str,
        single_utterance: bool = True,
        payload: Optional[Dict[str, Any]] = None,
    ) -> "RecognitionStream":
        if self._opened:
            raise RuntimeError("recognition stream already opened")
        self.session = session
        self._requests.put_nowait(
            self._backend.config_request(
                session,
                sample_rate=sample_rate,
                language_code=language_code,
                single_utterance=single_utterance,
                payload=payload,
            )
        )
        self._opened = True
        self._task = asyncio.create_task(self._run(), name=f"recognition-{self.call_id}-{self.stream_id}")
        _STREAMS_OPENED.inc()
        logger.debug("Recognition stream opened", call_id=self.call_id, stream_id=self.stream_id)
        return self

    async def write_audio(self, audio: bytes) -> bool:
        """Queue an audio chunk; returns False (and drops it) once the stream is not live."""
        if not self.live:
            return False
        self._requests.put_nowait(self._backend.audio_request(self.session, audio))
        _AUDIO_BYTES.inc(len(audio))
        return True

    async def end(self) -> None:
        """Half-close: no more audio, the backend should produce its final result."""
        if self._ended or self._destroyed or not self._opened:
            return
        self._ended = True
        self._requests.put_nowait(_END)

    async def destroy(self) -> None:
        """Release the stream immediately; idempotent and safe after end()."""
        if self._destroyed:
            return
        self._destroyed = True
        if not self._ended:
            self._ended = True
            self._requests.put_nowait(_END)
        if self._call is not None and hasattr(self._call, "cancel"):
            self._call.cancel()
        task = self._task
        # When invoked from an event callback the task stops on its own after
        # the callback returns.
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
        logger.debug("Recognition stream destroyed", call_id=self.call_id, stream_id=self.stream_id)

    async def wait_closed(self) -> None:
        if self._task is not None and self._task is not asyncio.current_task():
            await asyncio.gather(self._task, return_exceptions=True)

    async def _request_iterator(self):
        while True:
            item = await self._requests.get()
            if item is _END:
                return
            yield item

    async def _run(self) -> None:
        try:
            self._call = await self._backend.streaming_detect_intent(self._request_iterator())
            async for response in self._call:
                for event in self._backend.to_events(response):
                    if self._destroyed:
                        break
                    await self._on_event(self, event)
                if self._destroyed:
                    break
        except asyncio.CancelledError:
            if not self._destroyed:
                raise
        except Exception as exc:  # noqa: BLE001
            if self._destroyed:
                logger.debug("Recognition stream error after destroy", call_id=self.call_id, error=str(exc))
                return
            _STREAM_ERRORS.inc()
            error = exc if isinstance(exc, StreamError) else StreamError(
                f"recognition stream failed: {exc}", call_id=self.call_id, cause=exc
            )
            await self._on_event(self, StreamFailed(error))
