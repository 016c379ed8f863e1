import os

import pytest
import structlog

os.environ.setdefault("CACHE_TYPE", "NullCache")
os.environ.setdefault("RATELIMIT_ENABLED", "false")
os.environ.setdefault("LOG_FORMAT", "plain")

_STRATEGY_ENV = (
    "GENERATION_PROVIDER",
    "GENERATION_MODEL",
    "XAI_API_KEY",
    "OPENAI_API_KEY",
    "GEMINI_API_KEY",
    "GENERATIVEAI_API_KEY",
    "BROWSER_ENABLED",
)


@pytest.fixture(scope="session")
def app():
    from resolver import create_app

    app = create_app({"TESTING": True})
    with app.app_context():
        yield app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture(autouse=True)
def isolate_strategy_env(monkeypatch):
    """Keep developer credentials and browser settings out of the tests."""
    for var in _STRATEGY_ENV:
        monkeypatch.delenv(var, raising=False)
    yield
    structlog.contextvars.clear_contextvars()
