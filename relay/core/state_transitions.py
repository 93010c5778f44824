"""
State transition engine.

Finite-state machine over the lifecycle of a shared object:

    DRAFT   -> HOLD, PROPOSE
    HOLD    -> PROPOSE, DRAFT
    PROPOSE -> COMMIT, HOLD, DRAFT
    COMMIT  -> REVERT
    REVERT  -> (terminal; create a new object instead of editing)

Every rejection carries a ReasonCode so callers can branch on it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple

from relay.core.observability import get_logger
from relay.core.reasons import ReasonCode

if TYPE_CHECKING:
    from relay.core.authority_resolver import AuthorityResolver
    from relay.core.commit_types import StateTransitionCommit

logger = get_logger('transitions')


class ObjectState(str, Enum):
    DRAFT = "DRAFT"
    HOLD = "HOLD"
    PROPOSE = "PROPOSE"
    COMMIT = "COMMIT"
    REVERT = "REVERT"


TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    ObjectState.DRAFT.value: (ObjectState.HOLD.value, ObjectState.PROPOSE.value),
    ObjectState.HOLD.value: (ObjectState.PROPOSE.value, ObjectState.DRAFT.value),
    ObjectState.PROPOSE.value: (
        ObjectState.COMMIT.value,
        ObjectState.HOLD.value,
        ObjectState.DRAFT.value,
    ),
    ObjectState.COMMIT.value: (ObjectState.REVERT.value,),
    ObjectState.REVERT.value: (),
}

INITIAL_STATE = ObjectState.DRAFT.value

# Parking one's own draft is private; no authority chain is needed.
CHAIN_EXEMPT_EDGES = frozenset({(ObjectState.DRAFT.value, ObjectState.HOLD.value)})


@dataclass(frozen=True)
class TransitionCheck:
    allowed: bool
    reason: Optional[ReasonCode] = None
    detail: Optional[str] = None
    required_capability: Optional[str] = None
    chain: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "reason": self.reason.value if self.reason else None,
            "detail": self.detail,
            "required_capability": self.required_capability,
            "chain": list(self.chain),
        }


def get_next_states(state: str) -> List[str]:
    """States reachable in one step. Unknown states reach nothing."""
    return list(TRANSITIONS.get(state, ()))


def is_valid_transition(from_state: str, to_state: str) -> bool:
    return to_state in TRANSITIONS.get(from_state, ())


def requires_authority_chain(from_state: str, to_state: str) -> bool:
    return (from_state, to_state) not in CHAIN_EXEMPT_EDGES


def required_capability(object_type: str, to_state: str) -> str:
    return f"STATE_TRANSITION:{object_type}:{to_state}"


def can_transition(
    from_state: str,
    to_state: str,
    authority_ref: Optional[str],
    evidence_refs: Optional[Sequence[str]] = None,
) -> TransitionCheck:
    """
    Check the edge itself: declared, authority present, evidence into COMMIT.

    Whether authority_ref actually holds the capability is a separate
    question, answered by authorize_transition().
    """
    if not is_valid_transition(from_state, to_state):
        return TransitionCheck(
            allowed=False,
            reason=ReasonCode.INVALID_TRANSITION,
            detail=f"{from_state}->{to_state}",
        )

    if not authority_ref:
        return TransitionCheck(
            allowed=False,
            reason=ReasonCode.MISSING_AUTHORITY,
            detail="authority_ref is required",
        )

    if to_state == ObjectState.COMMIT.value and not evidence_refs:
        return TransitionCheck(
            allowed=False,
            reason=ReasonCode.MISSING_EVIDENCE,
            detail="COMMIT requires evidence_refs",
        )

    return TransitionCheck(allowed=True)


def authorize_transition(
    commit: "StateTransitionCommit",
    resolver: "AuthorityResolver",
) -> TransitionCheck:
    """
    Full transition decision for one commit.

    Exact load-bearing order:
    1. Edge, authority presence, evidence (can_transition)
    2. DRAFT->HOLD stops here: private parking needs no chain
    3. authority_ref must resolve to STATE_TRANSITION:<object_type>:<to_state>
    """
    check = can_transition(
        commit.from_state,
        commit.to_state,
        commit.authority_ref,
        commit.evidence_refs,
    )
    if not check.allowed:
        logger.info(f"Transition refused {commit.object_id}: {check.reason.value}")
        return check

    if not requires_authority_chain(commit.from_state, commit.to_state):
        return TransitionCheck(allowed=True)

    capability = required_capability(commit.object_type, commit.to_state)
    authorization = resolver.has_capability(commit.authority_ref, capability)
    if not authorization.authorized:
        logger.info(
            f"Transition refused {commit.object_id}: {authorization.reason.value} "
            f"for {capability}"
        )
        return TransitionCheck(
            allowed=False,
            reason=authorization.reason,
            detail=f"{commit.authority_ref} lacks {capability}",
            required_capability=capability,
        )

    return TransitionCheck(
        allowed=True,
        required_capability=capability,
        chain=authorization.resolution.chain,
    )
