"""
Core data models for the call bridge.

One CallState per active call, stored in the CallRegistry and mutated only
through registry updates.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, TYPE_CHECKING
import time

if TYPE_CHECKING:
    from callbridge.recognition.stream import RecognitionStream


class CallStatus(str, Enum):
    AWAITING_SETUP = "awaiting_setup"
    STREAMING = "streaming"
    AWAITING_FULFILLMENT = "awaiting_fulfillment"
    SYNTHESIZING = "synthesizing"
    CLOSED = "closed"


@dataclass
class CallState:
    """Complete state for one call."""
    call_id: str
    socket: Any
    sample_rate: int
    session: str
    room: Optional[str] = None
    # Forwarded as query parameters payload on every recognition stream
    payload: Optional[Dict[str, Any]] = None
    stream: Optional["RecognitionStream"] = None
    status: CallStatus = CallStatus.AWAITING_SETUP
    closed: bool = False
    utterances: int = 0
    created_at: float = field(default_factory=time.time)

    def close(self) -> Optional["RecognitionStream"]:
        """Mark closed and hand back the live stream, if any, for teardown."""
        stream, self.stream = self.stream, None
        self.closed = True
        self.status = CallStatus.CLOSED
        return stream
