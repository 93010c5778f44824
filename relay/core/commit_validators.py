"""
Commit validators.

Pure functions: commit in, ValidationResult out. Nothing here reads the
authority store; existence of a revoked grant, for example, is checked
by the resolver.

Load-bearing order for every type:
1. Required-field presence (MISSING_FIELD)
2. Type tag (INVALID_TYPE)
3. Type-specific rules
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

from relay.core.capability import is_well_formed
from relay.core.commit_types import (
    AuthorityGrant,
    AuthorityRevoke,
    BaseCommit,
    Commit,
    CommitType,
    DialogueCommit,
    GenericCommit,
    StateTransitionCommit,
    commit_from_dict,
    now_ms,
    required_fields,
)
from relay.core.config import (
    DIALOGUE_FORBIDDEN_FIELDS,
    DIALOGUE_MAX_RETENTION_HOURS,
    DIALOGUE_MIN_RETENTION_HOURS,
    GRANT_MAX_FUTURE_SKEW_MS,
)
from relay.core.reasons import InvariantViolationError, ReasonCode
from relay.core.state_transitions import ObjectState, is_valid_transition

CommitLike = Union[Commit, Mapping[str, Any]]


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    reason: Optional[ReasonCode] = None
    detail: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "reason": self.reason.value if self.reason else None,
            "detail": self.detail,
        }


VALID = ValidationResult(valid=True)


def invalid(reason: ReasonCode, detail: Optional[str] = None) -> ValidationResult:
    return ValidationResult(valid=False, reason=reason, detail=detail)


def coerce_commit(commit: CommitLike) -> Commit:
    """Accept a commit variant or a raw mapping; anything else is a bug."""
    if isinstance(commit, BaseCommit):
        return commit
    if isinstance(commit, Mapping):
        return commit_from_dict(commit)
    raise InvariantViolationError(
        f"Expected a commit or a mapping, got {type(commit).__name__}"
    )


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def _field_value(commit: Commit, name: str) -> Any:
    # Fields the variant does not declare arrived in extra
    value = getattr(commit, name, None)
    if value is None:
        value = commit.extra.get(name)
    return value


def _check_shape(commit: Commit, expected: type) -> Optional[ValidationResult]:
    for name in required_fields(expected):
        if _is_missing(_field_value(commit, name)):
            return invalid(ReasonCode.MISSING_FIELD, name)
    if not isinstance(commit, expected):
        return invalid(
            ReasonCode.INVALID_TYPE,
            f"expected {expected.COMMIT_TYPE}, got {commit.type}",
        )
    return None


def validate_dialogue_commit(commit: CommitLike) -> ValidationResult:
    """
    Validate a dialogue commit.

    Any forbidden mutation field fails the commit outright. This is the
    mechanical proof that coordination traffic never carries a mutation.
    """
    commit = coerce_commit(commit)
    failure = _check_shape(commit, DialogueCommit)
    if failure:
        return failure

    forbidden = [name for name in DIALOGUE_FORBIDDEN_FIELDS if name in commit.extra]
    if forbidden:
        return invalid(ReasonCode.FORBIDDEN_FIELD, ",".join(forbidden))

    hours = commit.retention_window_hours
    if hours < DIALOGUE_MIN_RETENTION_HOURS:
        return invalid(ReasonCode.RETENTION_TOO_SHORT, f"{hours}h")
    if hours > DIALOGUE_MAX_RETENTION_HOURS:
        return invalid(ReasonCode.RETENTION_TOO_LONG, f"{hours}h")

    return VALID


def validate_state_transition_commit(commit: CommitLike) -> ValidationResult:
    """
    Validate a state transition commit.

    Authority is not checked here; see state_transitions.authorize_transition.
    """
    commit = coerce_commit(commit)
    failure = _check_shape(commit, StateTransitionCommit)
    if failure:
        return failure

    if not is_valid_transition(commit.from_state, commit.to_state):
        return invalid(
            ReasonCode.INVALID_TRANSITION,
            f"{commit.from_state}->{commit.to_state}",
        )

    if commit.to_state == ObjectState.COMMIT.value and not commit.evidence_refs:
        return invalid(ReasonCode.MISSING_EVIDENCE, "COMMIT requires evidence_refs")

    if commit.to_state in (ObjectState.COMMIT.value, ObjectState.REVERT.value):
        if _is_missing(commit.signature):
            return invalid(ReasonCode.MISSING_SIGNATURE, f"{commit.to_state} requires a signature")

    return VALID


def validate_authority_grant_commit(
    commit: CommitLike,
    current_ms: Optional[int] = None,
) -> ValidationResult:
    """Validate a grant commit against the clock in current_ms."""
    commit = coerce_commit(commit)
    failure = _check_shape(commit, AuthorityGrant)
    if failure:
        return failure

    if not commit.capabilities:
        return invalid(ReasonCode.INVALID_CAPABILITY, "capabilities is empty")
    for token in commit.capabilities:
        if not is_well_formed(token):
            return invalid(ReasonCode.INVALID_CAPABILITY, str(token))

    current_ms = now_ms() if current_ms is None else current_ms
    if commit.effective_from_ms > current_ms + GRANT_MAX_FUTURE_SKEW_MS:
        return invalid(
            ReasonCode.EFFECTIVE_FROM_TOO_FAR,
            f"effective_from_ms={commit.effective_from_ms}",
        )

    if commit.expires_at_ms is not None and commit.expires_at_ms <= commit.effective_from_ms:
        return invalid(
            ReasonCode.INVALID_EXPIRY,
            f"expires_at_ms={commit.expires_at_ms} <= effective_from_ms={commit.effective_from_ms}",
        )

    return VALID


def validate_authority_revoke_commit(commit: CommitLike) -> ValidationResult:
    """Presence checks only. The resolver checks that the grant exists."""
    commit = coerce_commit(commit)
    failure = _check_shape(commit, AuthorityRevoke)
    if failure:
        return failure
    return VALID


def validate_generic_commit(commit: CommitLike) -> ValidationResult:
    commit = coerce_commit(commit)
    failure = _check_shape(commit, GenericCommit)
    if failure:
        return failure
    return VALID


_VALIDATORS = {
    CommitType.DIALOGUE.value: validate_dialogue_commit,
    CommitType.STATE_TRANSITION.value: validate_state_transition_commit,
    CommitType.AUTHORITY_GRANT.value: validate_authority_grant_commit,
    CommitType.AUTHORITY_REVOKE.value: validate_authority_revoke_commit,
}


def validate_commit(commit: CommitLike) -> ValidationResult:
    """Dispatch to the validator for the commit's type."""
    commit = coerce_commit(commit)
    validator = _VALIDATORS.get(commit.type, validate_generic_commit)
    return validator(commit)
