import json

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from app import app as flask_app


class FakeResponse:
    """Just enough of requests.Response for the resolver and the proxy."""

    def __init__(self, status_code=200, payload=None, text=None, headers=None, chunks=None):
        self.status_code = status_code
        if text is None:
            text = json.dumps(payload) if payload is not None else ''
        self.text = text
        self.headers = CaseInsensitiveDict(headers or {})
        self.chunks = chunks or []
        self.closed = False

    def json(self):
        return json.loads(self.text)

    def iter_content(self, chunk_size=1):
        yield from self.chunks

    def close(self):
        self.closed = True


class FakeSession:
    """Replays queued responses (or raises queued exceptions) in order."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []
        self.closed = False

    def _next(self, method, url, kwargs):
        self.calls.append((method, url, kwargs))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def request(self, method, url, **kwargs):
        return self._next(method, url, kwargs)

    def get(self, url, **kwargs):
        return self._next('GET', url, kwargs)

    def close(self):
        self.closed = True


@pytest.fixture
def app():
    flask_app.config.update(
        TESTING=True,
        RAPID_API_KEY='test-key',
        RAPID_API_HOST='api.example.test',
    )
    yield flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def fake_session(app):
    """Install a FakeSession as the app's transport; call it with outcomes."""
    def install(*outcomes):
        session = FakeSession(*outcomes)
        app.config['HTTP_SESSION_FACTORY'] = lambda: session
        return session
    yield install
    app.config['HTTP_SESSION_FACTORY'] = requests.Session
