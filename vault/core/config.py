"""
Vault configuration - environment driven, single point of control.
Values are read once at import; tests patch the module attributes directly.
"""

import os
from pathlib import Path

# Database path configuration
DB_PATH = os.getenv("VAULT_DB_PATH", "./data/vault.db")
DB_TIMEOUT_SEC = float(os.getenv("VAULT_DB_TIMEOUT_SEC", "10"))

# Debug flag is now a function to be dynamic
DEBUG = os.getenv("DEBUG", "false").lower() == "true"

# Edit proposals: what to do when a proposal's snapshot no longer matches the entry
STALE_PROPOSAL_MODE = os.getenv("STALE_PROPOSAL_MODE", "block")  # block|warn
PROPOSAL_LIST_LIMIT = int(os.getenv("PROPOSAL_LIST_LIMIT", "50"))

# Tag curation
TAG_MAX_LENGTH = int(os.getenv("TAG_MAX_LENGTH", "40"))
TAG_SUGGESTION_LIMIT = int(os.getenv("TAG_SUGGESTION_LIMIT", "5"))

# Duplicate resolution
ENTRY_SEARCH_LIMIT = int(os.getenv("ENTRY_SEARCH_LIMIT", "5"))
MATCH_RESULT_LIMIT = int(os.getenv("MATCH_RESULT_LIMIT", "5"))

# Version string
VERSION = "1.0.0"


def debug_enabled() -> bool:
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true" or DEBUG


def get_stale_proposal_mode() -> str:
    """Get the stale proposal policy, falling back to 'block' for unknown values."""
    if STALE_PROPOSAL_MODE not in ("block", "warn"):
        return "block"
    return STALE_PROPOSAL_MODE


def ensure_db_directory():
    """Ensure the directory holding the SQLite file exists."""
    db_dir = Path(DB_PATH).parent
    db_dir.mkdir(parents=True, exist_ok=True)
