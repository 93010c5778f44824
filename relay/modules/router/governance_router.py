"""
governance_router.py

HTTP surface for the governance core.

Thin mapping only: every endpoint hands its input to the ledger, the
resolver, the transition table or the confidence calculator and returns
the structured result. Refusals come back as 200 with accepted/allowed
set to False and a reason code; the HTTP status never carries a business
decision. A 422 means the body itself was malformed.
"""

from __future__ import annotations

import threading
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Query
from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, StrictStr

from relay.core.commit_ledger import CommitLedger
from relay.core.commit_types import create_dialogue_commit
from relay.core.config import DIALOGUE_DEFAULT_RETENTION_HOURS
from relay.core.confidence import can_use_for_action, create_state_aware_value
from relay.core.observability import get_logger, set_correlation_id
from relay.core.state_transitions import get_next_states

logger = get_logger('router')

router = APIRouter()

_ledger: Optional[CommitLedger] = None
_ledger_lock = threading.Lock()


def get_ledger() -> CommitLedger:
    """Process-wide ledger, created on first use."""
    global _ledger
    with _ledger_lock:
        if _ledger is None:
            _ledger = CommitLedger()
        return _ledger


def set_ledger(ledger: Optional[CommitLedger]) -> None:
    """Swap the process-wide ledger. None resets to a fresh one on next use."""
    global _ledger
    with _ledger_lock:
        _ledger = ledger


# =========================
# API models
# =========================

class CommitBody(BaseModel):
    """
    Wire shape shared by every commit variant.

    Only types are enforced here. Presence and business rules stay with the
    core validators, so a missing field is still a refusal with a reason code
    while a wrongly typed one is a 422. Undeclared keys pass through, which
    is how a forbidden field on a dialogue commit reaches its validator.
    """

    model_config = ConfigDict(extra="allow")

    type: Optional[StrictStr] = None
    commit_id: Optional[StrictStr] = None
    timestamp_ms: Optional[StrictInt] = None

    # DIALOGUE
    content_hash: Optional[StrictStr] = None
    context_ref: Optional[StrictStr] = None
    retention_window_hours: Optional[StrictInt] = None
    participant_ids: Optional[List[StrictStr]] = None
    expiry_timestamp_ms: Optional[StrictInt] = None

    # STATE_TRANSITION
    object_id: Optional[StrictStr] = None
    object_type: Optional[StrictStr] = None
    from_state: Optional[StrictStr] = None
    to_state: Optional[StrictStr] = None
    authority_ref: Optional[StrictStr] = None
    evidence_refs: Optional[List[StrictStr]] = None
    signature: Optional[StrictStr] = None

    # AUTHORITY_GRANT
    grant_id: Optional[StrictStr] = None
    scope: Optional[StrictStr] = None
    capabilities: Optional[List[StrictStr]] = None
    grantee_id: Optional[StrictStr] = None
    grantor_authority_ref: Optional[StrictStr] = None
    effective_from_ms: Optional[StrictInt] = None
    expires_at_ms: Optional[StrictInt] = None
    genesis: Optional[StrictBool] = None

    # AUTHORITY_REVOKE (reason is shared with transitions)
    grant_commit_id: Optional[StrictStr] = None
    reason: Optional[StrictStr] = None
    revoked_by_authority_ref: Optional[StrictStr] = None

    def to_commit_dict(self) -> Dict[str, Any]:
        data = self.model_dump(exclude_unset=True)
        data.update(self.model_extra or {})
        return data


class DialogueMessageRequest(BaseModel):
    content: str
    context_ref: str
    participant_ids: List[str] = []
    retention_window_hours: int = DIALOGUE_DEFAULT_RETENTION_HOURS


class CapabilityCheckRequest(BaseModel):
    authority_ref: str
    capability: str
    scope: Optional[str] = None


class ValueUseRequest(BaseModel):
    value: Any = None
    confidence: float = Field(..., ge=0.0, le=1.0, allow_inf_nan=False)
    missing_inputs: List[str] = []
    conflicting_evidence: bool = False
    method: Optional[str] = None
    policy_ref: Optional[str] = None
    min_confidence: Optional[float] = Field(None, ge=0.0, le=1.0, allow_inf_nan=False)


# =========================
# Commits
# =========================

@router.post("/api/commits")
def submit_commit(commit: CommitBody) -> Dict[str, Any]:
    """
    Submit any commit to the ledger.

    Dialogue sent here is refused as a constitutional violation; use
    /api/dialogue for coordination traffic.
    """
    set_correlation_id()
    receipt = get_ledger().submit(commit.to_commit_dict())
    return receipt.to_dict()


@router.post("/api/dialogue")
def submit_dialogue(commit: CommitBody) -> Dict[str, Any]:
    """Dialogue-only door. Every other commit type is refused."""
    set_correlation_id()
    receipt = get_ledger().record_dialogue(commit.to_commit_dict())
    return receipt.to_dict()


@router.post("/api/dialogue/messages")
def post_dialogue_message(body: DialogueMessageRequest) -> Dict[str, Any]:
    """Hash raw content into a dialogue commit. The content itself is not kept."""
    set_correlation_id()
    commit = create_dialogue_commit(
        content=body.content,
        context_ref=body.context_ref,
        participant_ids=body.participant_ids,
        retention_window_hours=body.retention_window_hours,
        timestamp_ms=get_ledger().resolver.now(),
    )
    receipt = get_ledger().record_dialogue(commit)
    return {"receipt": receipt.to_dict(), "commit": commit.to_dict()}


@router.get("/api/decisions")
def list_decisions(limit: int = Query(100, ge=1, le=1000)) -> List[Dict[str, Any]]:
    """Most recent ledger decisions, oldest first."""
    decisions = get_ledger().decisions()
    return [d.to_dict() for d in decisions[-limit:]]


@router.get("/api/objects/{object_id}")
def get_object(object_id: str) -> Dict[str, Any]:
    ledger = get_ledger()
    state = ledger.current_state(object_id)
    return {
        "object_id": object_id,
        "state": state,
        "known": state is not None,
        "next_states": get_next_states(state) if state else [],
        "history": [c.to_dict() for c in ledger.history(object_id)],
    }


# =========================
# Authority
# =========================

@router.get("/api/authority/{authority_ref}")
def resolve_authority(authority_ref: str) -> Dict[str, Any]:
    return get_ledger().resolver.resolve(authority_ref).to_dict()


@router.post("/api/authority/check")
def check_capability(body: CapabilityCheckRequest) -> Dict[str, Any]:
    check = get_ledger().resolver.has_capability(
        body.authority_ref, body.capability, scope=body.scope
    )
    return check.to_dict()


# =========================
# Transitions
# =========================

@router.get("/api/transitions/{state}")
def list_next_states(state: str) -> Dict[str, Any]:
    """Unknown states reach nothing; that is an answer, not an error."""
    return {"state": state, "next_states": get_next_states(state)}


# =========================
# Derived values
# =========================

@router.post("/api/values/can-use")
def can_use_value(body: ValueUseRequest) -> Dict[str, Any]:
    value = create_state_aware_value(
        value=body.value,
        confidence=body.confidence,
        missing_inputs=body.missing_inputs,
        conflicting_evidence=body.conflicting_evidence,
        method=body.method,
        policy_ref=body.policy_ref,
        computed_at=get_ledger().resolver.now(),
    )
    if body.min_confidence is None:
        decision = can_use_for_action(value)
    else:
        decision = can_use_for_action(value, min_confidence=body.min_confidence)

    if not decision.allowed:
        logger.info(f"Value refused for action: {decision.reason.value}")
    return {"value": value.to_dict(), "decision": decision.to_dict()}
