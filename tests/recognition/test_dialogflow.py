import pytest
from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import dialogflow_v2 as dialogflow

from callbridge.config import GoogleConfig, RecognitionConfig
from callbridge.errors import StreamError
from callbridge.recognition.dialogflow import DialogflowBackend
from callbridge.recognition.events import FinalResult, Fulfillment, PartialResult

_TRANSCRIPT = dialogflow.StreamingRecognitionResult.MessageType.TRANSCRIPT


class _FakeSessionsClient:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    async def detect_intent(self, request=None):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.response


def _backend(client=None):
    return DialogflowBackend(
        GoogleConfig(project_id="proj"),
        RecognitionConfig(),
        client=client or _FakeSessionsClient(),
    )


def test_session_path():
    assert _backend().session_path("c1") == "projects/proj/agent/sessions/c1"


def test_config_request_carries_audio_config():
    request = _backend().config_request(
        "projects/proj/agent/sessions/c1",
        sample_rate=8000,
        language_code="bg-BG",
        single_utterance=True,
    )
    audio_config = request.query_input.audio_config
    assert request.session == "projects/proj/agent/sessions/c1"
    assert audio_config.audio_encoding == dialogflow.AudioEncoding.AUDIO_ENCODING_LINEAR_16
    assert audio_config.sample_rate_hertz == 8000
    assert audio_config.language_code == "bg-BG"
    assert audio_config.single_utterance is True
    assert "query_params" not in request


def test_config_request_with_payload():
    request = _backend().config_request("s", sample_rate=16000, language_code="bg-BG", payload={"customer": "42"})
    assert "query_params" in request
    assert request.query_params.payload["customer"] == "42"


def test_audio_request():
    request = _backend().audio_request("s", b"\x00\x01")
    assert request.input_audio == b"\x00\x01"
    assert request.session == "s"


def test_interim_transcript_is_partial():
    response = dialogflow.StreamingDetectIntentResponse(
        recognition_result=dialogflow.StreamingRecognitionResult(
            message_type=_TRANSCRIPT, transcript="зд", is_final=False
        )
    )
    assert DialogflowBackend.to_events(response) == [PartialResult(transcript="зд")]


def test_final_transcript_is_final():
    response = dialogflow.StreamingDetectIntentResponse(
        recognition_result=dialogflow.StreamingRecognitionResult(
            message_type=_TRANSCRIPT, transcript="здравей", is_final=True
        )
    )
    assert DialogflowBackend.to_events(response) == [FinalResult(transcript="здравей")]


def test_query_result_is_fulfillment():
    response = dialogflow.StreamingDetectIntentResponse(
        query_result=dialogflow.QueryResult(
            query_text="здравей",
            fulfillment_text="Здравейте!",
            intent=dialogflow.Intent(display_name="greeting"),
        )
    )
    assert DialogflowBackend.to_events(response) == [
        Fulfillment(text="Здравейте!", query_text="здравей", intent="greeting")
    ]


@pytest.mark.asyncio
async def test_detect_event_returns_fulfillment_text():
    client = _FakeSessionsClient(
        response=dialogflow.DetectIntentResponse(
            query_result=dialogflow.QueryResult(fulfillment_text="Добре дошли")
        )
    )
    text = await _backend(client).detect_event("s", "WELCOME", parameters={"name": "Ivan"})

    assert text == "Добре дошли"
    [request] = client.requests
    assert request.query_input.event.name == "WELCOME"
    assert request.query_input.event.language_code == "bg-BG"
    assert request.query_input.event.parameters["name"] == "Ivan"


@pytest.mark.asyncio
async def test_detect_event_failure_raises_stream_error():
    client = _FakeSessionsClient(error=google_exceptions.ServiceUnavailable("down"))
    with pytest.raises(StreamError):
        await _backend(client).detect_event("s", "WELCOME")


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [
    auth_exceptions.RefreshError("token expired"),
    ConnectionResetError("peer reset"),
])
async def test_detect_event_credential_and_transport_errors_raise_stream_error(error):
    client = _FakeSessionsClient(error=error)
    with pytest.raises(StreamError) as excinfo:
        await _backend(client).detect_event("s", "WELCOME")
    assert excinfo.value.__cause__ is error
