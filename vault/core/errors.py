"""
Error taxonomy for vault operations.

Every failure is scoped to the single requested operation; nothing here is
fatal to the process.
"""

from typing import Any, Optional


class VaultError(Exception):
    """Base class for all vault operation failures."""
    pass


class PermissionDenied(VaultError):
    """The actor's tier lacks the required capability."""

    def __init__(self, message: str, capability: Optional[str] = None, tier: Optional[str] = None):
        super().__init__(message)
        self.capability = capability
        self.tier = tier


class NotFoundError(VaultError):
    """A referenced entry, proposal, tag, image, user or invite does not exist."""
    pass


class ConflictError(VaultError):
    """A uniqueness rule rejected the request; re-fetch and retry with corrected intent."""
    pass


class StaleValueConflict(ConflictError):
    """A proposal's captured old value no longer matches the live field."""

    def __init__(self, proposal_id: str, field_name: str, expected: Any, actual: Any):
        super().__init__(
            f"Proposal {proposal_id} is stale: {field_name} was {expected!r} when proposed, "
            f"now {actual!r}"
        )
        self.proposal_id = proposal_id
        self.field_name = field_name
        self.expected = expected
        self.actual = actual


class InvalidTransition(VaultError):
    """The proposal is not in a state that allows the requested action."""
    pass


class InvalidInput(VaultError, ValueError):
    """Request values failed validation."""
    pass


class UpstreamFailure(VaultError):
    """The classifier or the store is unavailable; surfaced without retry."""
    pass
