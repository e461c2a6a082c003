"""
SQLite store for the vault - schema, connections and transactions.

Uniqueness and atomic conditional updates are delegated to SQLite: one vote per
user per target, one username, one invite redemption, one tag per entry.
"""

import sqlite3
from contextlib import contextmanager
from typing import Generator

from . import config
from .errors import UpstreamFailure

REQUIRED_TABLES = [
    'users', 'invite_codes', 'catalog_entries', 'contributions', 'votes',
    'tag_pool', 'item_tags', 'item_images', 'edit_proposals', 'activity',
]


@contextmanager
def get_db() -> Generator[sqlite3.Connection, None, None]:
    """Get a SQLite database connection in autocommit mode."""
    try:
        conn = sqlite3.connect(config.DB_PATH, timeout=config.DB_TIMEOUT_SEC, isolation_level=None)
    except sqlite3.OperationalError as e:
        raise UpstreamFailure(f"Store unavailable: {e}") from e
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def transaction(conn: sqlite3.Connection) -> Generator[sqlite3.Connection, None, None]:
    """Run a block inside BEGIN IMMEDIATE; roll back on any error."""
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    else:
        conn.execute("COMMIT")


def init_db():
    """Initialize the database with required tables."""
    config.ensure_db_directory()
    with get_db() as conn:
        conn.executescript('''
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                username TEXT UNIQUE,
                display_name TEXT,
                is_admin BOOLEAN NOT NULL DEFAULT FALSE,
                created_at TIMESTAMP NOT NULL
            );

            CREATE TABLE IF NOT EXISTS invite_codes (
                code TEXT PRIMARY KEY,
                created_by TEXT NOT NULL REFERENCES users(id),
                used_by TEXT REFERENCES users(id),
                used_at TIMESTAMP,
                expires_at TIMESTAMP,
                created_at TIMESTAMP NOT NULL
            );

            CREATE TABLE IF NOT EXISTS catalog_entries (
                id TEXT PRIMARY KEY,
                subject TEXT NOT NULL,
                category TEXT NOT NULL,
                year TEXT,
                tag_brand TEXT,
                material TEXT,
                origin TEXT,
                stitch_type TEXT,
                body_type TEXT,
                description TEXT,
                reference_image_url TEXT,
                verification_count INTEGER NOT NULL DEFAULT 0,
                upvotes INTEGER NOT NULL DEFAULT 0,
                downvotes INTEGER NOT NULL DEFAULT 0,
                parent_id TEXT REFERENCES catalog_entries(id),
                variant_kind TEXT,
                created_by TEXT REFERENCES users(id),
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL,
                CHECK (parent_id IS NULL OR variant_kind IS NOT NULL)
            );

            -- Append-only karma ledger
            CREATE TABLE IF NOT EXISTS contributions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                actor_id TEXT NOT NULL REFERENCES users(id),
                action TEXT NOT NULL,
                points INTEGER NOT NULL,
                reference_type TEXT NOT NULL,
                reference_id TEXT NOT NULL,
                entry_id TEXT,
                created_at TIMESTAMP NOT NULL,
                UNIQUE (actor_id, action, reference_type, reference_id)
            );

            -- One slot per voter per target; no row means no vote
            CREATE TABLE IF NOT EXISTS votes (
                target_type TEXT NOT NULL,
                target_id TEXT NOT NULL,
                voter_id TEXT NOT NULL REFERENCES users(id),
                direction TEXT NOT NULL CHECK (direction IN ('up', 'down')),
                created_at TIMESTAMP NOT NULL,
                PRIMARY KEY (target_type, target_id, voter_id)
            );

            CREATE TABLE IF NOT EXISTS tag_pool (
                id TEXT PRIMARY KEY,
                slug TEXT NOT NULL UNIQUE,
                name TEXT NOT NULL,
                usage_count INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP NOT NULL
            );

            CREATE TABLE IF NOT EXISTS item_tags (
                id TEXT PRIMARY KEY,
                entry_id TEXT NOT NULL REFERENCES catalog_entries(id),
                tag_id TEXT NOT NULL REFERENCES tag_pool(id),
                added_by TEXT REFERENCES users(id),
                upvotes INTEGER NOT NULL DEFAULT 0,
                downvotes INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP NOT NULL,
                UNIQUE (entry_id, tag_id)
            );

            CREATE TABLE IF NOT EXISTS item_images (
                id TEXT PRIMARY KEY,
                entry_id TEXT NOT NULL REFERENCES catalog_entries(id),
                view_type TEXT NOT NULL CHECK (view_type IN ('front', 'back', 'tag')),
                url TEXT NOT NULL,
                caption TEXT,
                is_primary BOOLEAN NOT NULL DEFAULT FALSE,
                added_by TEXT REFERENCES users(id),
                upvotes INTEGER NOT NULL DEFAULT 0,
                downvotes INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP NOT NULL
            );

            CREATE TABLE IF NOT EXISTS edit_proposals (
                id TEXT PRIMARY KEY,
                entry_id TEXT NOT NULL REFERENCES catalog_entries(id),
                field_name TEXT NOT NULL,
                old_value TEXT,
                new_value TEXT NOT NULL,
                proposer_id TEXT NOT NULL REFERENCES users(id),
                status TEXT NOT NULL CHECK (status IN ('pending', 'approved', 'rejected', 'applied')),
                reviewer_id TEXT REFERENCES users(id),
                reviewed_at TIMESTAMP,
                review_note TEXT,
                upvotes INTEGER NOT NULL DEFAULT 0,
                downvotes INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP NOT NULL
            );

            CREATE TABLE IF NOT EXISTS activity (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                actor_id TEXT,
                action_type TEXT NOT NULL,
                target_type TEXT,
                target_id TEXT,
                metadata TEXT,
                created_at TIMESTAMP NOT NULL
            );

            -- Indexes for performance
            CREATE INDEX IF NOT EXISTS idx_contributions_actor ON contributions(actor_id);
            CREATE INDEX IF NOT EXISTS idx_entries_parent ON catalog_entries(parent_id);
            CREATE INDEX IF NOT EXISTS idx_images_group ON item_images(entry_id, view_type);
            CREATE INDEX IF NOT EXISTS idx_item_tags_entry ON item_tags(entry_id);
            CREATE INDEX IF NOT EXISTS idx_proposals_status ON edit_proposals(status, created_at DESC);
            CREATE INDEX IF NOT EXISTS idx_activity_created ON activity(created_at DESC);
        ''')


def health_check() -> bool:
    """Check database health."""
    try:
        with get_db() as conn:
            rows = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
    except (sqlite3.Error, UpstreamFailure):
        return False

    table_names = {row[0] for row in rows}
    return all(table in table_names for table in REQUIRED_TABLES)
