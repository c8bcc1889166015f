"""
Fixtures for the unit tests.

Every test gets a fresh :class:`InMemoryFirestore` wrapped in a
:class:`FakeFirestoreDB`, so services run their real transactions and
batches without a backend.  Tests inspect ``store`` directly to check
what actually landed.
"""

import pytest

from firestore_social_graph import SocialGraph, SocialGraphSettings

from .fake_firestore import FakeFirestoreDB, InMemoryFirestore


@pytest.fixture
def store():
    return InMemoryFirestore()


@pytest.fixture
def fake_db(store):
    return FakeFirestoreDB(store)


@pytest.fixture
def settings():
    return SocialGraphSettings(operation_timeout=5.0)


@pytest.fixture
def graph(fake_db, settings):
    return SocialGraph(fake_db, settings)


@pytest.fixture
def seed_users(store):
    """Create ``users/{uid}`` documents: ``seed_users("alice", "bob")``."""

    def _seed(*user_ids, **fields):
        for uid in user_ids:
            data = {
                "name": uid.capitalize(),
                "followersCount": 0,
                "followingCount": 0,
                "currentStatus": None,
                "customStatuses": [],
            }
            data.update(fields)
            store.put(f"users/{uid}", data)

    return _seed
