"""
Dialogflow ES binding for recognition streams.

Builds StreamingDetectIntent requests, opens the bidirectional gRPC call and
maps responses onto RecognitionEvents. Also runs the one-shot event query
used for greetings.
"""

from __future__ import annotations

from typing import Any, AsyncIterable, AsyncIterator, Dict, List, Optional

from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import dialogflow_v2 as dialogflow

from callbridge.config import GoogleConfig, RecognitionConfig
from callbridge.errors import StreamError
from callbridge.logging_config import get_logger
from callbridge.recognition.events import FinalResult, Fulfillment, PartialResult, RecognitionEvent

logger = get_logger(__name__)

# API, credential refresh and transport failures
_BACKEND_ERRORS = (google_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError, OSError)

_TRANSCRIPT = dialogflow.StreamingRecognitionResult.MessageType.TRANSCRIPT


class DialogflowBackend:
    """Thin async wrapper over ``SessionsAsyncClient``."""

    def __init__(
        self,
        google: GoogleConfig,
        recognition: RecognitionConfig,
        *,
        credentials=None,
        client: Optional[dialogflow.SessionsAsyncClient] = None,
    ) -> None:
        self.project_id = google.project_id
        self.recognition = recognition
        self._client = client or dialogflow.SessionsAsyncClient(credentials=credentials)

    def session_path(self, call_id: str) -> str:
        return dialogflow.SessionsClient.session_path(self.project_id, call_id)

    def config_request(
        self,
        session: str,
        *,
        sample_rate: int,
        language_code: str,
        single_utterance: bool = True,
        payload: Optional[Dict[str, Any]] = None,
    ) -> dialogflow.StreamingDetectIntentRequest:
        """First request of a stream: audio config plus optional query payload."""
        audio_config = dialogflow.InputAudioConfig(
            audio_encoding=dialogflow.AudioEncoding[self.recognition.audio_encoding],
            sample_rate_hertz=sample_rate,
            language_code=language_code,
            single_utterance=single_utterance,
        )
        request = dialogflow.StreamingDetectIntentRequest(
            session=session,
            query_input=dialogflow.QueryInput(audio_config=audio_config),
        )
        if payload:
            request.query_params = dialogflow.QueryParameters(payload=payload)
        return request

    def audio_request(self, session: str, audio: bytes) -> dialogflow.StreamingDetectIntentRequest:
        return dialogflow.StreamingDetectIntentRequest(session=session, input_audio=audio)

    async def streaming_detect_intent(
        self, requests: AsyncIterator[dialogflow.StreamingDetectIntentRequest]
    ) -> AsyncIterable[dialogflow.StreamingDetectIntentResponse]:
        return await self._client.streaming_detect_intent(requests=requests)

    async def detect_event(
        self,
        session: str,
        event_name: str,
        *,
        parameters: Optional[Dict[str, Any]] = None,
        language_code: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Trigger a named event in the conversation and return its fulfillment text."""
        event = dialogflow.EventInput(
            name=event_name,
            parameters=parameters or {},
            language_code=language_code or self.recognition.language_code,
        )
        request = dialogflow.DetectIntentRequest(
            session=session,
            query_input=dialogflow.QueryInput(event=event),
        )
        if payload:
            request.query_params = dialogflow.QueryParameters(payload=payload)
        try:
            response = await self._client.detect_intent(request=request)
        except _BACKEND_ERRORS as exc:
            raise StreamError(f"event {event_name!r} failed: {exc}", cause=exc) from exc
        return response.query_result.fulfillment_text

    @staticmethod
    def to_events(response: dialogflow.StreamingDetectIntentResponse) -> List[RecognitionEvent]:
        events: List[RecognitionEvent] = []
        if "recognition_result" in response:
            result = response.recognition_result
            if result.is_final:
                events.append(FinalResult(transcript=result.transcript))
            elif result.message_type == _TRANSCRIPT:
                events.append(PartialResult(transcript=result.transcript))
        if "query_result" in response:
            query_result = response.query_result
            events.append(
                Fulfillment(
                    text=query_result.fulfillment_text,
                    query_text=query_result.query_text,
                    intent=query_result.intent.display_name,
                )
            )
        return events
