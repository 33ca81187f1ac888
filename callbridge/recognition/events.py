"""Recognition events delivered by a RecognitionStream to its owner."""

from dataclasses import dataclass
from typing import Union

from callbridge.errors import StreamError


@dataclass(frozen=True)
class PartialResult:
    """Interim transcript; informational only."""
    transcript: str


@dataclass(frozen=True)
class FinalResult:
    """End of the caller's utterance; fulfillment may follow on the same stream."""
    transcript: str = ""


@dataclass(frozen=True)
class Fulfillment:
    """Reply text for the recognized utterance (may be empty)."""
    text: str
    query_text: str = ""
    intent: str = ""


@dataclass(frozen=True)
class StreamFailed:
    error: StreamError


RecognitionEvent = Union[PartialResult, FinalResult, Fulfillment, StreamFailed]
