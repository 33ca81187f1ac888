"""Error taxonomy for the call bridge."""

from typing import Optional


class CallBridgeError(Exception):
    """Base class for call bridge failures."""


class ConfigurationError(CallBridgeError):
    """Configuration could not be loaded or is invalid."""


class SetupError(CallBridgeError):
    """The first socket message is malformed or incomplete."""


class StreamError(CallBridgeError):
    """A recognition backend exchange failed (network, auth, quota)."""

    def __init__(self, message: str, *, call_id: Optional[str] = None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.call_id = call_id
        self.cause = cause


class SynthesisError(CallBridgeError):
    """The speech synthesis backend call failed."""
