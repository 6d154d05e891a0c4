import os
from typing import Any, Dict, List

import pytest
from flask import Flask
from flask_caching import Cache

# Ensure a predictable test environment before importing the package
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "0")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("CACHE_TYPE", "SimpleCache")
os.environ.setdefault("DISABLE_AUTH", "1")
os.environ.setdefault("ENABLE_SCHEDULER", "0")
os.environ.setdefault("RATE_LIMIT_ENABLED", "0")
os.environ.setdefault("OPENAI_API_KEY", "")
os.environ.setdefault("WORLD_BANK_API_URL", "")


class RecordingTransport:
    """Realtime transport that keeps every message it is asked to send."""

    def __init__(self, fail: bool = False) -> None:
        self.sent: List[Dict[str, Any]] = []
        self.fail = fail
        self.closed = False

    def send(self, message: Dict[str, Any]) -> None:
        if self.fail:
            raise ConnectionError("peer gone")
        self.sent.append(message)

    def close(self) -> None:
        self.closed = True

    def types(self) -> List[str]:
        return [m.get("type") for m in self.sent]


@pytest.fixture
def settings():
    # Import delayed so Settings reads the env just set above
    from worldstats.config import Settings

    return Settings()


@pytest.fixture
def database(settings):
    from worldstats.db import Database

    db = Database(settings, url="sqlite:///:memory:")
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def seeded_db(database):
    from worldstats.seed import seed_database

    seed_database(database)
    return database


@pytest.fixture
def flask_cache():
    server = Flask(__name__)
    return Cache(server, config={"CACHE_TYPE": "SimpleCache", "CACHE_DEFAULT_TIMEOUT": 0})


@pytest.fixture
def cache_facade(flask_cache, settings):
    from worldstats.cache import CacheFacade

    return CacheFacade(flask_cache, settings=settings)


@pytest.fixture
def broadcaster():
    from worldstats.realtime import Broadcaster

    return Broadcaster()


@pytest.fixture
def app(settings, seeded_db):
    from worldstats import create_app

    server = create_app(settings, database=seeded_db, providers=[])
    server.config["TESTING"] = True
    return server


@pytest.fixture
def flask_client(app):
    return app.test_client()
