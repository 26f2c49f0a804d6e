from types import SimpleNamespace

import pytest

from app import create_app


class FakeCompletions:
    """Stands in for ``client.chat.completions``; replies are queued strings,
    lists of strings (streamed chunks) or exceptions to raise."""

    def __init__(self):
        self.replies = []
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.replies.pop(0) if self.replies else "[]"
        if isinstance(reply, Exception):
            raise reply
        if kwargs.get('stream'):
            return [
                SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=piece))])
                for piece in reply
            ]
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=reply))])


class FakeOpenAI:
    def __init__(self):
        self.chat = SimpleNamespace(completions=FakeCompletions())

    def queue(self, *replies):
        self.chat.completions.replies.extend(replies)
        return self

    @property
    def calls(self):
        return self.chat.completions.calls


@pytest.fixture
def fake_openai():
    return FakeOpenAI()


def _make_app(tmp_path, **overrides):
    config = {
        'TESTING': True,
        'DATABASE_URL': f"sqlite:///{tmp_path / 'test.db'}",
        'SESSION_FILE_DIR': str(tmp_path / 'sessions'),
        'SESSION_COOKIE_SECURE': False,
        'SECRET_KEY': 'test-secret',
        'OPENAI_API_KEY': None,
        'LOG_LEVEL': 'WARNING',
    }
    config.update(overrides)
    return create_app(config)


@pytest.fixture
def make_app(tmp_path):
    def factory(**overrides):
        return _make_app(tmp_path, **overrides)
    return factory


@pytest.fixture
def app(make_app, fake_openai):
    return make_app(OPENAI_CLIENT=fake_openai)


@pytest.fixture
def storage(app):
    return app.extensions['storage']


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_client(client):
    response = client.post('/api/demo-login')
    assert response.status_code == 200
    return client


@pytest.fixture
def no_ai_client(make_app):
    client = make_app().test_client()
    client.post('/api/demo-login')
    return client
