"""
Structured logging for vault operations - votes, karma, proposals and curation.
"""

import logging
from typing import Any, Dict, List


class StructuredLogger:
    """Structured logger for consensus and trust-gating operations."""

    def __init__(self, name: str = "vault"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        self.logger.info(message)

    def log_vote(self, target_type: str, target_id: str, voter_id: str, user_vote: str = None,
                 net_score: int = 0):
        """Log a vote cast, flipped or retracted."""
        details = {
            "target_type": target_type,
            "target_id": target_id,
            "voter_id": voter_id,
            "user_vote": user_vote or "none",
            "net_score": net_score
        }
        self.log_operation("scoring.vote", "success", details)

    def log_karma_award(self, actor_id: str, action: str, points: int, reference_id: str,
                        status: str = "success"):
        """Log a ledger append (or a skipped duplicate)."""
        details = {
            "actor_id": actor_id,
            "action": action,
            "points": points,
            "reference_id": reference_id
        }
        self.log_operation("karma.award", status, details)

    def log_permission_denied(self, user_id: str, capability: str, tier: str = None):
        """Log a capability check failure."""
        details = {"user_id": user_id, "capability": capability, "tier": tier or "unknown"}
        self.log_operation("permission.check", "denied", details)

    def log_proposal_created(self, proposal_id: str, entry_id: str, field_name: str, proposer_id: str):
        """Log edit proposal creation."""
        details = {
            "proposal_id": proposal_id,
            "entry_id": entry_id,
            "field_name": field_name,
            "proposer_id": proposer_id
        }
        self.log_operation("proposal.created", "pending", details)

    def log_proposal_decision(self, proposal_id: str, decision: str, reviewer_id: str, note: str = ""):
        """Log a review decision or a direct edit."""
        details = {
            "proposal_id": proposal_id,
            "decision": decision,
            "reviewer_id": reviewer_id,
            "note": note[:100] if note else ""  # Limit note length
        }
        self.log_operation("proposal.decision", decision, details)

    def log_stale_proposal(self, proposal_id: str, field_name: str, mode: str):
        """Log a proposal whose snapshot drifted from the live value."""
        details = {"proposal_id": proposal_id, "field_name": field_name, "mode": mode}
        self.logger.warning(f"Operation: proposal.stale, Status: {mode}, Details: {details}")

    def log_tag_added(self, entry_id: str, slug: str, created_pool_entry: bool):
        """Log a tag association."""
        details = {"entry_id": entry_id, "slug": slug, "new_pool_entry": created_pool_entry}
        self.log_operation("tags.added", "success", details)

    def log_image_added(self, entry_id: str, image_id: str, view_type: str):
        """Log a new image candidate."""
        details = {"entry_id": entry_id, "image_id": image_id, "view_type": view_type}
        self.log_operation("images.added", "success", details)

    def log_primary_changed(self, entry_id: str, view_type: str, old_primary: str = None,
                            new_primary: str = None):
        """Log a change of primary image within a group."""
        details = {
            "entry_id": entry_id,
            "view_type": view_type,
            "old_primary": old_primary,
            "new_primary": new_primary
        }
        self.log_operation("images.primary_changed", "success", details)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


# Global logger instance
logger = StructuredLogger()


# General audit event function
def audit_event(event_type: str, identifiers: Dict[str, Any]):
    """Log an account audit event with sanitized identifiers."""
    logger.log_operation(f"audit.{event_type}", "audit", sanitize_payload(identifiers))


# Payload sanitization utility
def sanitize_payload(payload: Any, reveal_sensitive: bool = False, sensitive_fields: List[str] = None) -> Any:
    """Sanitize payloads for audit logging."""
    if sensitive_fields is None:
        sensitive_fields = ['password', 'token', 'secret', 'code']

    if isinstance(payload, dict):
        sanitized = {}
        for k, v in payload.items():
            if reveal_sensitive or k not in sensitive_fields:
                sanitized[k] = sanitize_payload(v, reveal_sensitive, sensitive_fields)
            else:
                sanitized[k] = "[REDACTED]"
        return sanitized
    elif isinstance(payload, str):
        # Truncate long strings
        return payload[:100] + "..." if len(payload) > 100 else payload
    elif isinstance(payload, list):
        return [sanitize_payload(item, reveal_sensitive, sensitive_fields) for item in payload]
    else:
        return payload
