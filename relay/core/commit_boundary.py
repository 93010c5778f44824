"""
Commit boundary.

THE ONLY DOOR to state change. Every mutating entry point asks
can_commit_change_state() first and does nothing when it says no.

- DIALOGUE never changes state. Unconditionally.
- STATE_TRANSITION changes state only if validation and authorization pass.
- Any other commit must name its type, then needs authority and a timestamp.

The check is a pure predicate over the commit and the resolver, so the
same boundary can be placed at several doors. DialogueOnlyBoundary is the
door for transports that must carry coordination traffic only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from relay.core.authority_resolver import AuthorityResolver
from relay.core.commit_types import CommitType, GenericCommit
from relay.core.commit_validators import (
    CommitLike,
    coerce_commit,
    validate_dialogue_commit,
    validate_generic_commit,
    validate_state_transition_commit,
)
from relay.core.observability import get_logger
from relay.core.reasons import ReasonCode
from relay.core.state_transitions import authorize_transition

logger = get_logger('boundary')


@dataclass(frozen=True)
class BoundaryDecision:
    allowed: bool
    reason: Optional[ReasonCode] = None
    constitutional_violation: bool = False
    detail: Optional[str] = None
    chain: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "reason": self.reason.value if self.reason else None,
            "constitutional_violation": self.constitutional_violation,
            "detail": self.detail,
            "chain": list(self.chain),
        }


def _deny(reason: ReasonCode, detail: Optional[str] = None,
          constitutional: bool = False) -> BoundaryDecision:
    return BoundaryDecision(
        allowed=False,
        reason=reason,
        constitutional_violation=constitutional,
        detail=detail,
    )


def can_commit_change_state(commit: CommitLike, resolver: AuthorityResolver) -> BoundaryDecision:
    """
    Decide whether a commit may change state.

    A commit that is not explicitly allowed here is rejected.
    """
    commit = coerce_commit(commit)

    if commit.type == CommitType.DIALOGUE.value:
        logger.info(f"Dialogue commit {commit.commit_id} refused at state boundary")
        return _deny(
            ReasonCode.DIALOGUE_CANNOT_MUTATE_STATE,
            "dialogue commits are coordination only",
            constitutional=True,
        )

    if commit.type == CommitType.STATE_TRANSITION.value:
        validation = validate_state_transition_commit(commit)
        if not validation.valid:
            return _deny(validation.reason, validation.detail)

        check = authorize_transition(commit, resolver)
        if not check.allowed:
            return _deny(check.reason, check.detail)

        return BoundaryDecision(allowed=True, chain=check.chain)

    if isinstance(commit, GenericCommit):
        validation = validate_generic_commit(commit)
        if not validation.valid:
            return _deny(validation.reason, validation.detail)

    if not commit.authority_ref:
        return _deny(ReasonCode.MISSING_AUTHORITY, f"{commit.type} carries no authority reference")
    if commit.timestamp_ms is None:
        return _deny(ReasonCode.MISSING_FIELD, "timestamp_ms")

    return BoundaryDecision(allowed=True)


class CommitBoundary:
    """Boundary bound to one resolver."""

    def __init__(self, resolver: AuthorityResolver):
        self._resolver = resolver

    @property
    def resolver(self) -> AuthorityResolver:
        return self._resolver

    def can_commit_change_state(self, commit: CommitLike) -> BoundaryDecision:
        return can_commit_change_state(commit, self._resolver)


class DialogueOnlyBoundary:
    """
    Door for coordination-only transports.

    Accepts well-formed dialogue and nothing else, not even a fully
    authorized state transition.
    """

    def accept(self, commit: CommitLike) -> BoundaryDecision:
        commit = coerce_commit(commit)

        if commit.type != CommitType.DIALOGUE.value:
            logger.info(f"Dialogue-only boundary refused {commit.type} commit {commit.commit_id}")
            return _deny(ReasonCode.NOT_DIALOGUE, f"got {commit.type}", constitutional=True)

        validation = validate_dialogue_commit(commit)
        if not validation.valid:
            return _deny(validation.reason, validation.detail)

        return BoundaryDecision(allowed=True)
