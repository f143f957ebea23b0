"""Shared fixtures for integration tests against a live Plex server."""

import os
from pathlib import Path

import pytest
from dotenv import load_dotenv

from src.plexcollections.client import CollectionsClient
from src.plexcollections.config import load_config

# Load .env file from project root
env_path = Path(__file__).parent.parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)


@pytest.fixture(scope="session")
def plex_env():
    """Live server settings from environment variables."""
    return {
        "url": os.getenv("PLEX_SERVER_URL"),
        "token": os.getenv("PLEX_TOKEN"),
        "section_id": os.getenv("PLEX_TEST_SECTION_ID"),
        "item_ids": [i for i in os.getenv("PLEX_TEST_ITEM_IDS", "").split(",") if i],
        "filter_query": os.getenv("PLEX_TEST_FILTER", "type=1"),
    }


@pytest.fixture(scope="session")
def skip_if_no_plex(plex_env):
    """Skip test if Plex server not configured."""
    if not plex_env["url"] or not plex_env["token"]:
        pytest.skip("Plex server not configured (PLEX_SERVER_URL/PLEX_TOKEN not set)")
    if not plex_env["section_id"]:
        pytest.skip("PLEX_TEST_SECTION_ID not set")


@pytest.fixture(scope="module")
def live_client(skip_if_no_plex):
    client = CollectionsClient(load_config())
    yield client
    client.close()


@pytest.fixture
def created_collections(live_client):
    """Collection IDs created during a test, deleted afterwards."""
    ids = []
    yield ids
    for collection_id in ids:
        try:
            live_client.delete_collection(collection_id)
        except Exception as e:
            print(f"Cleanup failed for collection {collection_id}: {e}")


def pytest_configure(config):
    """Add custom markers for integration tests."""
    config.addinivalue_line(
        "markers",
        "integration: mark test as an integration test that requires a live Plex server"
    )
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow running (typically >5 seconds)"
    )
