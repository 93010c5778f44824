"""
Stable reason codes.

Every refusal in the core carries exactly one of these codes. Audit logs
and UIs branch on the value, so values never change once published.

Business-rule failures are returned, never raised. The exception class
below is for programming errors only.
"""

from __future__ import annotations

from enum import Enum


class ReasonCode(str, Enum):
    # Shape
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_TYPE = "INVALID_TYPE"
    FORBIDDEN_FIELD = "FORBIDDEN_FIELD"

    # Grants
    INVALID_CAPABILITY = "INVALID_CAPABILITY"
    INVALID_EXPIRY = "INVALID_EXPIRY"
    EFFECTIVE_FROM_TOO_FAR = "EFFECTIVE_FROM_TOO_FAR"
    DUPLICATE_GRANT = "DUPLICATE_GRANT"
    GRANT_NOT_FOUND = "GRANT_NOT_FOUND"
    GENESIS_ALREADY_SEEDED = "GENESIS_ALREADY_SEEDED"

    # Dialogue
    RETENTION_TOO_SHORT = "RETENTION_TOO_SHORT"
    RETENTION_TOO_LONG = "RETENTION_TOO_LONG"
    DIALOGUE_CANNOT_MUTATE_STATE = "DIALOGUE_CANNOT_MUTATE_STATE"
    NOT_DIALOGUE = "NOT_DIALOGUE"

    # Transitions
    INVALID_TRANSITION = "INVALID_TRANSITION"
    MISSING_EVIDENCE = "MISSING_EVIDENCE"
    MISSING_SIGNATURE = "MISSING_SIGNATURE"
    MISSING_AUTHORITY = "MISSING_AUTHORITY"
    STATE_MISMATCH = "STATE_MISMATCH"

    # Ledger
    COMMIT_ID_CONFLICT = "COMMIT_ID_CONFLICT"

    # Authority resolution
    AUTHORITY_NOT_DISCOVERABLE = "AUTHORITY_NOT_DISCOVERABLE"
    AUTHORITY_EXPIRED_OR_REVOKED = "AUTHORITY_EXPIRED_OR_REVOKED"
    AUTHORITY_CAPABILITY_MISSING = "AUTHORITY_CAPABILITY_MISSING"
    AUTHORITY_SCOPE_MISMATCH = "AUTHORITY_SCOPE_MISMATCH"

    # Confidence vetoes
    STATE_INDETERMINATE = "STATE_INDETERMINATE"
    CONFIDENCE_BELOW_MIN = "CONFIDENCE_BELOW_MIN"
    CONFLICTING_EVIDENCE = "CONFLICTING_EVIDENCE"


class InvariantViolationError(RuntimeError):
    """Raised when a caller hands the core something that is not a commit."""
    pass
