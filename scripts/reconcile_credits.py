#!/usr/bin/env python3
"""
Award edit credits missing from accepted proposals.

Usage:
    python scripts/reconcile_credits.py [--dry-run] [--db PATH]
"""

import argparse
import sys
from pathlib import Path

import dotenv

# Load VAULT_* settings from .env before config is imported
dotenv.load_dotenv()

# Add the project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from vault.core import config
from vault.core.db import init_db
from vault.core.errors import VaultError
from vault.core.reconcile import reconcile_edit_credits, ReconciliationSummary


def format_summary(summary: ReconciliationSummary) -> str:
    """Format a reconciliation summary for display."""
    lines = [
        f"Mode: {'DRY RUN' if summary.dry_run else 'APPLY'}",
        f"Accepted proposals: {summary.accepted_proposals}",
        f"Missing credits: {summary.missing_credits}",
        f"Credits awarded: {summary.awarded}",
    ]
    if summary.proposal_ids:
        lines.append("Proposals:")
        for proposal_id in summary.proposal_ids:
            lines.append(f"  {proposal_id}")
    return "\n".join(lines)


def main():
    parser = argparse.ArgumentParser(description="Reconcile edit_accepted karma credits")
    parser.add_argument("--dry-run", action="store_true", help="Report missing credits without awarding them")
    parser.add_argument("--db", help="SQLite database path (defaults to VAULT_DB_PATH)")
    args = parser.parse_args()

    if args.db:
        config.DB_PATH = args.db

    try:
        init_db()
        summary = reconcile_edit_credits(dry_run=args.dry_run)
    except VaultError as e:
        print(f"❌ Reconciliation failed: {e}", file=sys.stderr)
        return 1

    print(format_summary(summary))
    return 0


if __name__ == "__main__":
    sys.exit(main())
