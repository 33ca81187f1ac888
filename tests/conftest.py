import pytest

from callbridge.config import AppConfig
from callbridge.core.call_registry import CallRegistry
from callbridge.core.session_controller import SessionController
from fakes import FakeBackend, FakeSocket, FakeSynthesizer, StreamFactory


@pytest.fixture
def app_config():
    return AppConfig(google={"project_id": "proj"})


@pytest.fixture
def registry():
    return CallRegistry()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def synthesizer():
    return FakeSynthesizer()


@pytest.fixture
def stream_factory():
    return StreamFactory()


@pytest.fixture
def make_controller(registry, backend, synthesizer, app_config, stream_factory):
    def _make(socket=None, **overrides):
        kwargs = dict(
            registry=registry,
            backend=backend,
            synthesizer=synthesizer,
            config=app_config,
            room="calls",
            stream_factory=stream_factory,
        )
        kwargs.update(overrides)
        return SessionController(socket or FakeSocket(), **kwargs)
    return _make