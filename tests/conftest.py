# MetaGift test suite - shared fixtures
#
# - temporary data directory per test (JSON documents never touch ./data)
# - fresh Database and Shop per test
# - recording notifier instead of the Telegram bot
# - FastAPI TestClient wired to the per-test Shop

import os
import tempfile

# Must be set before the application modules are imported: they build
# their module-level singletons from the environment.
os.environ["DATA_DIR"] = tempfile.mkdtemp(prefix="metagift-test-")
os.environ["BOT_TOKEN"] = ""

import pytest
from fastapi.testclient import TestClient

import api
from database import Database
from shop import Shop


class RecordingNotifier:
    """Collects notifications instead of sending them to Telegram."""

    def __init__(self):
        self.sent = []

    async def notify(self, chat_id, text):
        self.sent.append((chat_id, text))
        return True


class FailingNotifier:
    async def notify(self, chat_id, text):
        raise RuntimeError("telegram is down")


@pytest.fixture
def database(tmp_path):
    return Database(str(tmp_path))


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def engine(database, notifier):
    return Shop(database, notifier)


@pytest.fixture
def add_item(database):
    """Puts an item straight into the catalog and returns its id."""
    def _add(**fields):
        item = {"name": "Plush Pepe", "image": "🐸", "price": 5, "quantity": "x1", "stock": 1}
        item.update(fields)
        return database.catalog.insert(item)
    return _add


@pytest.fixture
def client(database, engine, monkeypatch):
    monkeypatch.setattr(api, "db", database)
    monkeypatch.setattr(api, "shop", engine)
    from main import app
    return TestClient(app)
