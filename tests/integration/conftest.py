"""
Fixtures for integration tests against the Firestore Emulator.

The whole directory is skipped unless ``FIRESTORE_EMULATOR_HOST`` is set::

    gcloud emulators firestore start --host-port=localhost:8080
    FIRESTORE_EMULATOR_HOST=localhost:8080 pytest tests/integration
"""

import logging
import os

import httpx
import pytest
import pytest_asyncio

from firestore_social_graph import FirestoreDB, SocialGraph, SocialGraphSettings

logger = logging.getLogger(__name__)

EMULATOR_HOST = os.environ.get("FIRESTORE_EMULATOR_HOST", "").strip()
DATABASE = os.environ.get("DATABASE") or None
# GitHub Actions expands an unset secret to "", so fall back with ``or``.
PROJECT_ID = os.environ.get("GOOGLE_CLOUD_PROJECT") or "test-project"


def pytest_collection_modifyitems(config, items):
    if EMULATOR_HOST:
        return
    skip = pytest.mark.skip(reason="FIRESTORE_EMULATOR_HOST is not set")
    for item in items:
        if "integration" in item.nodeid:
            item.add_marker(skip)


@pytest.fixture()
def settings():
    return SocialGraphSettings(
        project_id=PROJECT_ID,
        database=DATABASE,
        emulator_host=EMULATOR_HOST,
    )


@pytest.fixture()
def firestore_db(settings):
    """
    Function-scoped so each test gets a fresh AsyncClient bound to the
    current event loop (avoids 'Event loop is closed' with gRPC).
    """
    return FirestoreDB.from_settings(settings)


@pytest.fixture()
def raw_client(firestore_db):
    """Raw AsyncClient pointing to the same emulator as the services."""
    return firestore_db.client


@pytest.fixture()
def graph(firestore_db, settings):
    return SocialGraph(firestore_db, settings)


@pytest_asyncio.fixture(autouse=True)
async def clean_firestore():
    """Wipe the emulator BEFORE and AFTER each test."""
    await _wipe_emulator()
    yield
    await _wipe_emulator()


async def _wipe_emulator():
    db_name = DATABASE or "(default)"
    url = (
        f"http://{EMULATOR_HOST}/emulator/v1/projects/"
        f"{PROJECT_ID}/databases/{db_name}/documents"
    )
    async with httpx.AsyncClient() as client:
        response = await client.delete(url)
    if response.status_code >= 400:
        logger.warning(f"Emulator wipe returned {response.status_code}: {response.text}")


@pytest.fixture()
def seed_users(raw_client):
    async def _seed(*user_ids, **fields):
        for uid in user_ids:
            data = {"name": uid.capitalize(), "followersCount": 0, "followingCount": 0}
            data.update(fields)
            await raw_client.collection("users").document(uid).set(data)

    return _seed
