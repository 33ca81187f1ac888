"""
Out-of-band call commands.

Each command resolves the target call through the CallRegistry and writes a
control message to its socket. Calls that are not (or no longer) registered
are silently skipped.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Optional, Union

from prometheus_client import Counter

from callbridge.core.call_registry import CallRegistry
from callbridge.logging_config import get_logger
from callbridge.protocol import (
    DISCONNECT,
    KILL_AUDIO,
    PLAY_AUDIO,
    TRANSCRIPTION,
    TRANSFER,
    disconnect_message,
    kill_audio_message,
    play_audio_message,
    send_message,
    transcription_message,
    transfer_message,
)

logger = get_logger(__name__)

_COMMANDS = Counter(
    "callbridge_commands_total",
    "Commands dispatched to calls",
    labelnames=("command", "delivered"),
)

CommandResult = Optional[Dict[str, Any]]


class UnknownCommandError(KeyError):
    """No handler is registered under the requested command name."""


class CommandHandler:
    def __init__(self, registry: CallRegistry) -> None:
        self._registry = registry
        self._handlers: Dict[str, Callable[..., Awaitable[CommandResult]]] = {
            PLAY_AUDIO: self.play_audio,
            KILL_AUDIO: self.kill_audio,
            DISCONNECT: self.disconnect,
            TRANSFER: self.transfer,
            TRANSCRIPTION: self.transcription,
        }

    @property
    def commands(self):
        return sorted(self._handlers)

    async def dispatch(self, command: str, call_id: str, params: Optional[Dict[str, Any]] = None) -> CommandResult:
        handler = self._handlers.get(command)
        if handler is None:
            raise UnknownCommandError(command)
        return await handler(call_id, **(params or {}))

    async def play_audio(
        self,
        call_id: str,
        audio_content: Union[bytes, str],
        audio_content_type: str,
        sample_rate: int,
    ) -> CommandResult:
        await self._send(PLAY_AUDIO, call_id, play_audio_message(sample_rate, audio_content, audio_content_type))
        return {"callId": call_id}

    async def kill_audio(self, call_id: str) -> CommandResult:
        await self._send(KILL_AUDIO, call_id, kill_audio_message())
        return {"callId": call_id}

    async def disconnect(self, call_id: str) -> CommandResult:
        await self._send(DISCONNECT, call_id, disconnect_message())
        return {"callId": call_id}

    async def transfer(self, call_id: str) -> CommandResult:
        # TODO: define the transfer target payload with the PBX side
        await self._send(TRANSFER, call_id, transfer_message())
        return None

    async def transcription(self, call_id: str) -> CommandResult:
        # TODO: define the transcription payload with the PBX side
        await self._send(TRANSCRIPTION, call_id, transcription_message())
        return None

    async def _send(self, command: str, call_id: str, message: Dict[str, Any]) -> bool:
        state = await self._registry.get(call_id)
        if state is None or state.closed:
            logger.debug("Command for unknown call skipped", command=command, call_id=call_id)
            _COMMANDS.labels(command=command, delivered="false").inc()
            return False
        delivered = await send_message(state.socket, message)
        _COMMANDS.labels(command=command, delivered=str(delivered).lower()).inc()
        logger.info("Command sent", command=command, call_id=call_id, delivered=delivered)
        return delivered
