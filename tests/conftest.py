"""
Pytest configuration and shared fixtures.

Each test gets its own SQLite file under tmp_path, so no .env is needed.
"""

import pytest
from fastapi.testclient import TestClient

# Clear settings cache before any app imports so test env vars are used
from sms_inbox.config import get_settings
get_settings.cache_clear()

from sms_inbox.main import create_app
from sms_inbox.storage import MessageStore


@pytest.fixture
def store(tmp_path):
    """Message store over a fresh SQLite file with the schema applied."""
    message_store = MessageStore(f"sqlite:///{tmp_path / 'sms.db'}")
    message_store.init_schema()
    yield message_store
    message_store.engine.dispose()


@pytest.fixture
def client(store):
    """Test client bound to the fresh store."""
    with TestClient(create_app(store=store)) as test_client:
        yield test_client
