"""
Shared fixtures: every test runs against its own temporary SQLite database.
"""

import uuid

import pytest

from vault.core import config
from vault.core.accounts import create_user
from vault.core.catalog import create_entry
from vault.core.db import get_db, init_db, transaction
from vault.core.karma import award


@pytest.fixture(autouse=True)
def vault_db(tmp_path):
    """Point the vault at a fresh database file for the duration of a test."""
    original_path = config.DB_PATH
    original_mode = config.STALE_PROPOSAL_MODE
    config.DB_PATH = str(tmp_path / "vault.db")
    config.STALE_PROPOSAL_MODE = "block"
    init_db()
    yield config.DB_PATH
    config.DB_PATH = original_path
    config.STALE_PROPOSAL_MODE = original_mode


def _grant(user_id, points):
    with get_db() as conn:
        with transaction(conn):
            award(conn, user_id, 'seed', 'test', str(uuid.uuid4()), points=points)


@pytest.fixture
def grant_karma():
    """Seed ledger points for a user outside the normal action table."""
    return _grant


@pytest.fixture
def make_user():
    """Factory creating a user with a given starting karma."""
    def _make(user_id=None, karma=0, is_admin=False):
        user = create_user(display_name=user_id, user_id=user_id, is_admin=is_admin)
        if karma:
            _grant(user.id, karma)
        return user
    return _make


@pytest.fixture
def creator(make_user):
    return make_user("creator")


@pytest.fixture
def entry(creator):
    """A Music entry with a legacy reference image and a low-sensitivity description."""
    return create_entry(
        user_id=creator.id,
        subject="Metallica",
        category="Music",
        year="1991",
        tag_brand="Giant",
        description="Black tee",
        reference_image_url="https://img.example/metallica.jpg",
    )
