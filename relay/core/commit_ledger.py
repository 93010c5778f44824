"""
Commit ledger.

The one mutating entry point. Every submission goes through the commit
boundary first; only accepted commits touch state. Every decision,
accepted or not, is appended to the decision log so the path to any
state can be replayed.

Exact load-bearing order for submit():
1. Commit boundary (can_commit_change_state)
2. Replay: an identical copy of an accepted commit is a no-op; a different
   commit reusing an accepted commit_id is refused
3. Type-specific application:
   - AUTHORITY_GRANT: grantor holds AUTHORITY_GRANT:AUTHORITY:ISSUE in scope
     and every capability it hands out
   - AUTHORITY_REVOKE: original grantor (never the genesis pseudo-grantor),
     or holds AUTHORITY_REVOKE:AUTHORITY:ISSUE
   - STATE_TRANSITION: from_state equals the object's current state
4. Append to the commit log and the decision log
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from relay.core.authority_resolver import AuthorityResolver
from relay.core.capability import any_matches
from relay.core.commit_boundary import BoundaryDecision, CommitBoundary, DialogueOnlyBoundary
from relay.core.commit_types import (
    AuthorityGrant,
    AuthorityRevoke,
    Commit,
    CommitType,
    DialogueCommit,
    StateTransitionCommit,
)
from relay.core.commit_validators import CommitLike, coerce_commit
from relay.core.config import (
    GENESIS_GRANTOR,
    GRANT_ISSUE_CAPABILITY,
    MS_PER_HOUR,
    REVOKE_ISSUE_CAPABILITY,
)
from relay.core.observability import get_logger
from relay.core.reasons import ReasonCode
from relay.core.state_transitions import INITIAL_STATE

logger = get_logger('ledger')


@dataclass(frozen=True)
class LedgerReceipt:
    commit_id: Optional[str]
    commit_type: Optional[str]
    accepted: bool
    reason: Optional[ReasonCode] = None
    detail: Optional[str] = None
    constitutional_violation: bool = False
    duplicate: bool = False
    chain: Tuple[str, ...] = field(default_factory=tuple)
    decided_at: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "commit_id": self.commit_id,
            "commit_type": self.commit_type,
            "accepted": self.accepted,
            "reason": self.reason.value if self.reason else None,
            "detail": self.detail,
            "constitutional_violation": self.constitutional_violation,
            "duplicate": self.duplicate,
            "chain": list(self.chain),
            "decided_at": self.decided_at,
        }


class CommitLedger:
    """
    Applies accepted commits and keeps the decision log.

    One lock serializes all writes. Reads return copies.
    """

    def __init__(self, resolver: Optional[AuthorityResolver] = None):
        self._resolver = resolver if resolver is not None else AuthorityResolver()
        self._boundary = CommitBoundary(self._resolver)
        self._dialogue_boundary = DialogueOnlyBoundary()
        self._lock = threading.Lock()

        self._states: Dict[str, str] = {}
        self._object_types: Dict[str, str] = {}
        self._history: Dict[str, List[StateTransitionCommit]] = {}
        self._commits: List[Commit] = []
        self._accepted: Dict[str, Tuple[Commit, LedgerReceipt]] = {}
        self._decisions: List[LedgerReceipt] = []
        self._dialogue: Dict[str, DialogueCommit] = {}

    @property
    def resolver(self) -> AuthorityResolver:
        return self._resolver

    @property
    def boundary(self) -> CommitBoundary:
        return self._boundary

    # ---- Writes ----

    def submit(self, commit: CommitLike) -> LedgerReceipt:
        """Submit a commit for application. Never raises on a business-rule failure."""
        commit = coerce_commit(commit)

        with self._lock:
            decision = self._boundary.can_commit_change_state(commit)
            if not decision.allowed:
                return self._reject(commit, decision.reason, decision.detail,
                                    constitutional=decision.constitutional_violation)

            if commit.commit_id in self._accepted:
                stored, previous = self._accepted[commit.commit_id]
                if stored != commit:
                    return self._reject(commit, ReasonCode.COMMIT_ID_CONFLICT,
                                        f"{commit.commit_id} already names another accepted commit")
                return self._record(commit, True, duplicate=True, chain=previous.chain)

            if commit.type == CommitType.AUTHORITY_GRANT.value:
                return self._apply_grant(commit)
            if commit.type == CommitType.AUTHORITY_REVOKE.value:
                return self._apply_revoke(commit)
            if commit.type == CommitType.STATE_TRANSITION.value:
                return self._apply_transition(commit, decision)

            return self._accept(commit)

    def record_dialogue(self, commit: CommitLike) -> LedgerReceipt:
        """
        Keep a dialogue commit in the ephemeral buffer.

        The buffer is not state: it never feeds a decision and it forgets
        entries once their retention window ends.
        """
        commit = coerce_commit(commit)
        decision = self._dialogue_boundary.accept(commit)

        with self._lock:
            if not decision.allowed:
                return self._reject(commit, decision.reason, decision.detail,
                                    constitutional=decision.constitutional_violation)
            self._dialogue[commit.commit_id] = commit
            return self._record(commit, True)

    def purge_expired_dialogue(self, current_ms: Optional[int] = None) -> int:
        """Drop dialogue past its retention window. Returns how many were dropped."""
        current_ms = self._resolver.now() if current_ms is None else current_ms
        with self._lock:
            expired = [
                commit_id for commit_id, commit in self._dialogue.items()
                if _dialogue_expiry(commit) <= current_ms
            ]
            for commit_id in expired:
                del self._dialogue[commit_id]

        if expired:
            logger.info(f"Purged {len(expired)} expired dialogue commits")
        return len(expired)

    # ---- Application ----

    def _apply_grant(self, grant: AuthorityGrant) -> LedgerReceipt:
        check = self._resolver.has_capability(
            grant.grantor_authority_ref, GRANT_ISSUE_CAPABILITY, scope=grant.scope
        )
        if not check.authorized:
            return self._reject(grant, check.reason,
                                f"{grant.grantor_authority_ref} lacks {GRANT_ISSUE_CAPABILITY}")

        # Attenuation only: an issuer hands out nothing it does not hold
        for capability in grant.capabilities:
            if not any_matches(check.resolution.capabilities, capability):
                return self._reject(grant, ReasonCode.AUTHORITY_CAPABILITY_MISSING,
                                    f"{grant.grantor_authority_ref} does not hold {capability}")

        result = self._resolver.register_grant(grant)
        if not result.accepted:
            return self._reject(grant, result.reason, result.detail)
        return self._accept(grant, chain=check.resolution.chain)

    def _apply_revoke(self, revoke: AuthorityRevoke) -> LedgerReceipt:
        grant = self._resolver.grant_for_commit(revoke.grant_commit_id)
        if grant is None:
            return self._reject(revoke, ReasonCode.GRANT_NOT_FOUND, revoke.grant_commit_id)

        chain: Tuple[str, ...] = ()
        by_grantor = (
            revoke.revoked_by_authority_ref == grant.grantor_authority_ref
            and grant.grantor_authority_ref != GENESIS_GRANTOR
        )
        if not by_grantor:
            check = self._resolver.has_capability(
                revoke.revoked_by_authority_ref, REVOKE_ISSUE_CAPABILITY, scope=grant.scope
            )
            if not check.authorized:
                return self._reject(revoke, check.reason,
                                    f"{revoke.revoked_by_authority_ref} lacks {REVOKE_ISSUE_CAPABILITY}")
            chain = check.resolution.chain

        result = self._resolver.register_revoke(revoke)
        if not result.accepted:
            return self._reject(revoke, result.reason, result.detail)
        return self._accept(revoke, chain=chain)

    def _apply_transition(self, commit: StateTransitionCommit,
                          decision: BoundaryDecision) -> LedgerReceipt:
        current = self._states.get(commit.object_id, INITIAL_STATE)
        if commit.from_state != current:
            return self._reject(
                commit, ReasonCode.STATE_MISMATCH,
                f"{commit.object_id} is {current}, commit expects {commit.from_state}",
            )

        known_type = self._object_types.get(commit.object_id)
        if known_type is not None and known_type != commit.object_type:
            return self._reject(
                commit, ReasonCode.STATE_MISMATCH,
                f"{commit.object_id} is a {known_type}, commit names {commit.object_type}",
            )

        self._states[commit.object_id] = commit.to_state
        self._object_types[commit.object_id] = commit.object_type
        self._history.setdefault(commit.object_id, []).append(commit)
        logger.info(f"{commit.object_id}: {commit.from_state} -> {commit.to_state}")
        return self._accept(commit, chain=decision.chain)

    # ---- Decision log ----

    def _record(self, commit: Commit, accepted: bool, reason: Optional[ReasonCode] = None,
                detail: Optional[str] = None, constitutional: bool = False,
                duplicate: bool = False, chain: Tuple[str, ...] = ()) -> LedgerReceipt:
        receipt = LedgerReceipt(
            commit_id=commit.commit_id,
            commit_type=commit.type,
            accepted=accepted,
            reason=reason,
            detail=detail,
            constitutional_violation=constitutional,
            duplicate=duplicate,
            chain=tuple(chain),
            decided_at=self._resolver.now(),
        )
        self._decisions.append(receipt)
        return receipt

    def _accept(self, commit: Commit, chain: Tuple[str, ...] = ()) -> LedgerReceipt:
        receipt = self._record(commit, True, chain=chain)
        self._commits.append(commit)
        if commit.commit_id:
            self._accepted[commit.commit_id] = (commit, receipt)
        return receipt

    def _reject(self, commit: Commit, reason: Optional[ReasonCode], detail: Optional[str] = None,
                constitutional: bool = False) -> LedgerReceipt:
        if constitutional:
            logger.warning(f"Constitutional violation by {commit.type} commit {commit.commit_id}: {reason.value}")
        else:
            logger.info(f"Rejected {commit.type} commit {commit.commit_id}: {reason.value}")
        return self._record(commit, False, reason=reason, detail=detail, constitutional=constitutional)

    # ---- Reads ----

    def current_state(self, object_id: str) -> Optional[str]:
        with self._lock:
            return self._states.get(object_id)

    def history(self, object_id: str) -> List[StateTransitionCommit]:
        with self._lock:
            return list(self._history.get(object_id, []))

    def commits(self) -> List[Commit]:
        with self._lock:
            return list(self._commits)

    def decisions(self) -> List[LedgerReceipt]:
        with self._lock:
            return list(self._decisions)

    def dialogue(self, context_ref: Optional[str] = None) -> List[DialogueCommit]:
        with self._lock:
            return [
                commit for commit in self._dialogue.values()
                if context_ref is None or commit.context_ref == context_ref
            ]


def _dialogue_expiry(commit: DialogueCommit) -> int:
    if commit.expiry_timestamp_ms is not None:
        return commit.expiry_timestamp_ms
    return commit.timestamp_ms + commit.retention_window_hours * MS_PER_HOUR
