import threading

import pytest
from fastapi.testclient import TestClient

from auth import Principal
from config import Settings
from db import init_db, make_engine, make_session_factory
from errors import Unauthenticated
from generator import StubResponseGenerator
from main import create_app
from store import ConversationStore

ALICE = Principal(id="alice-id", email="alice@example.com")
BOB = Principal(id="bob-id", email="bob@example.com")


class FakeVerifier:
    tokens = {"alice-token": ALICE, "bob-token": BOB}

    def verify(self, token):
        principal = self.tokens.get(token)
        if principal is None:
            raise Unauthenticated("Invalid or expired token")
        return principal


class RecordingGenerator(StubResponseGenerator):
    """Zero-delay stub that remembers what it was asked."""

    def __init__(self, **kwargs):
        super().__init__(min_delay=0, max_delay=0, **kwargs)
        self.calls = []

    def generate(self, message, history):
        self.calls.append((message, list(history)))
        return super().generate(message, history)


class BlockingGenerator(StubResponseGenerator):
    """Waits for ``release`` before answering."""

    def __init__(self):
        super().__init__(min_delay=0, max_delay=0)
        self.release = threading.Event()

    def generate(self, message, history):
        self.release.wait(5)
        return super().generate(message, history)


@pytest.fixture
def settings():
    return Settings(
        app_env="test",
        database_url="sqlite://",
        auth_mode="jwt",
        jwt_secret="test-secret",
        jwt_audience="authenticated",
        generator_backend="stub",
        generator_min_delay_seconds=0,
        generator_max_delay_seconds=0,
        generator_timeout_seconds=5,
    )


@pytest.fixture
def store():
    engine = make_engine("sqlite://")
    init_db(engine)
    yield ConversationStore(make_session_factory(engine))
    engine.dispose()


@pytest.fixture
def generator():
    return RecordingGenerator()


@pytest.fixture
def app(settings, generator):
    return create_app(settings, verifier=FakeVerifier(), generator=generator)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def alice_headers():
    return {"Authorization": "Bearer alice-token"}


@pytest.fixture
def bob_headers():
    return {"Authorization": "Bearer bob-token"}
