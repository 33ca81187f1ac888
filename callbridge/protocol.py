"""
Socket message codec.

Inbound, only the setup message has a schema; later frames are either raw
audio (binary) or informational text. Outbound messages are JSON objects
tagged with ``type``.
"""

from __future__ import annotations

import base64
import json
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from websockets.exceptions import ConnectionClosed

from callbridge.errors import SetupError
from callbridge.logging_config import get_logger

logger = get_logger(__name__)

PLAY_AUDIO = "playAudio"
KILL_AUDIO = "killAudio"
DISCONNECT = "disconnect"
TRANSFER = "transfer"
TRANSCRIPTION = "transcription"


class SetupMessage(BaseModel):
    """First message of every call connection."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    call_id: str = Field(alias="callId", min_length=1)
    sample_rate: int = Field(alias="sampleRate", gt=0)
    context: Optional[str] = None
    context_params: Optional[Dict[str, Any]] = Field(default=None, alias="contextParams")
    fulfill_params: Optional[Dict[str, Any]] = Field(default=None, alias="fulfillParams")
    from_: Optional[str] = Field(default=None, alias="from")
    to: Optional[str] = None

    @field_validator("call_id", mode="before")
    @classmethod
    def _stringify_call_id(cls, value):
        # Some PBX clients send numeric call ids
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


def parse_setup_message(raw: Union[str, bytes]) -> SetupMessage:
    """Parse the first socket message, raising SetupError when it is unusable."""
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise SetupError(f"setup message is not JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise SetupError("setup message must be a JSON object")
    try:
        return SetupMessage.model_validate(data)
    except ValidationError as exc:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in exc.errors()})
        raise SetupError(f"invalid setup message fields: {', '.join(fields)}") from exc


def encode_audio(audio_content: Union[bytes, bytearray, str]) -> str:
    """Base64 encode audio for the wire; text input is assumed to be base64 already."""
    if isinstance(audio_content, str):
        return audio_content
    return base64.b64encode(bytes(audio_content)).decode("ascii")


def play_audio_message(sample_rate: int, audio_content: Union[bytes, str], audio_content_type: str) -> Dict[str, Any]:
    return {
        "type": PLAY_AUDIO,
        "data": {
            "sampleRate": sample_rate,
            "audioContentType": audio_content_type,
            "audioContent": encode_audio(audio_content),
        },
    }


def kill_audio_message() -> Dict[str, Any]:
    return {"type": KILL_AUDIO}


def disconnect_message() -> Dict[str, Any]:
    return {"type": DISCONNECT}


def transfer_message() -> Dict[str, Any]:
    # Payload not defined yet
    return {"type": TRANSFER, "data": {}}


def transcription_message() -> Dict[str, Any]:
    # Payload not defined yet
    return {"type": TRANSCRIPTION, "data": {}}


async def send_message(socket, message: Dict[str, Any]) -> bool:
    """Write a JSON control message; a socket that already went away is not an error."""
    try:
        await socket.send(json.dumps(message))
        return True
    except ConnectionClosed:
        logger.debug("Dropped message for closed socket", message_type=message.get("type"))
        return False
