"""
Speech synthesis over Google Cloud Text-to-Speech.

The invoker only turns text into audio bytes; wrapping them into a
``playAudio`` message for the socket is done by ``play_audio_message``.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import texttospeech
from prometheus_client import Counter

from callbridge.config import SynthesisConfig
from callbridge.errors import SynthesisError
from callbridge.logging_config import get_logger
from callbridge.protocol import play_audio_message

logger = get_logger(__name__)

# API, credential refresh and transport failures
_BACKEND_ERRORS = (google_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError, OSError)

_SYNTHESIS_REQUESTS = Counter(
    "callbridge_synthesis_requests_total",
    "Synthesis requests by outcome",
    labelnames=("outcome",),
)


class SynthesisInvoker:
    """Calls the synthesis backend once per reply; failures are not retried."""

    def __init__(
        self,
        config: SynthesisConfig,
        *,
        credentials=None,
        client: Optional[texttospeech.TextToSpeechAsyncClient] = None,
    ) -> None:
        self.config = config
        self._client = client or texttospeech.TextToSpeechAsyncClient(credentials=credentials)

    def _voice(self) -> texttospeech.VoiceSelectionParams:
        params: Dict[str, Any] = {
            "language_code": self.config.language_code,
            "ssml_gender": texttospeech.SsmlVoiceGender[self.config.ssml_gender],
        }
        if self.config.voice_name:
            params["name"] = self.config.voice_name
        return texttospeech.VoiceSelectionParams(**params)

    async def synthesize(self, text: str, sample_rate: int) -> bytes:
        if not text or not text.strip():
            _SYNTHESIS_REQUESTS.labels(outcome="invalid").inc()
            raise SynthesisError("nothing to synthesize")
        try:
            response = await self._client.synthesize_speech(
                input=texttospeech.SynthesisInput(text=text),
                voice=self._voice(),
                audio_config=texttospeech.AudioConfig(
                    audio_encoding=texttospeech.AudioEncoding[self.config.audio_encoding],
                    sample_rate_hertz=sample_rate,
                ),
            )
        except _BACKEND_ERRORS as exc:
            _SYNTHESIS_REQUESTS.labels(outcome="error").inc()
            raise SynthesisError(f"synthesis failed: {exc}") from exc
        _SYNTHESIS_REQUESTS.labels(outcome="ok").inc()
        logger.debug("Synthesized reply", chars=len(text), bytes=len(response.audio_content))
        return response.audio_content

    def play_message(self, audio: bytes, sample_rate: int) -> Dict[str, Any]:
        return play_audio_message(sample_rate, audio, self.config.audio_content_type)
