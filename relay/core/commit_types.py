"""
Commit variants.

A commit is an immutable, timestamped record. Each commit type is its own
frozen dataclass carrying only the fields that type needs. Fields marked
optional=True in their metadata may be absent; every other field is
required and validators report it as MISSING_FIELD when it is None.

Commits are never edited. Later commits (a revoke, a REVERT) negate the
effect of earlier ones.
"""

from __future__ import annotations

import hashlib
import time
import uuid
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from relay.core.config import (
    DIALOGUE_DEFAULT_RETENTION_HOURS,
    GENESIS_CAPABILITY,
    GENESIS_GRANT_ID,
    GENESIS_GRANTOR,
    GENESIS_SCOPE,
    MS_PER_HOUR,
)


class CommitType(str, Enum):
    DIALOGUE = "DIALOGUE"
    STATE_TRANSITION = "STATE_TRANSITION"
    AUTHORITY_GRANT = "AUTHORITY_GRANT"
    AUTHORITY_REVOKE = "AUTHORITY_REVOKE"


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def new_commit_id() -> str:
    return str(uuid.uuid4())


def _optional(default: Any = None, factory: Any = None):
    if factory is not None:
        return field(default_factory=factory, metadata={"optional": True})
    return field(default=default, metadata={"optional": True})


# BASE COMMIT
@dataclass(frozen=True)
class BaseCommit:
    """
    Fields shared by every commit.

    extra holds any field the commit arrived with that its type does not
    declare. It is kept, not dropped, so the dialogue check can see an
    injected mutation field.
    """

    COMMIT_TYPE: ClassVar[Optional[str]] = None

    commit_id: Optional[str] = None
    timestamp_ms: Optional[int] = None
    extra: Mapping[str, Any] = _optional(factory=dict)

    @property
    def type(self) -> Optional[str]:
        return self.COMMIT_TYPE

    @property
    def authority_ref(self) -> Optional[str]:
        return None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type}
        for f in fields(self):
            if f.name in ("extra", "type_tag"):
                continue
            value = getattr(self, f.name)
            data[f.name] = list(value) if isinstance(value, tuple) else value
        data.update(self.extra)
        return data


# VARIANT 1: DIALOGUE (EPHEMERAL)
@dataclass(frozen=True)
class DialogueCommit(BaseCommit):
    """
    Ephemeral coordination traffic.

    Stores a hash of the content, never the content itself.
    Can never change state.
    """

    COMMIT_TYPE: ClassVar[str] = CommitType.DIALOGUE.value

    content_hash: Optional[str] = None
    context_ref: Optional[str] = None
    retention_window_hours: Optional[int] = None
    participant_ids: Tuple[str, ...] = _optional(factory=tuple)
    expiry_timestamp_ms: Optional[int] = _optional()


# VARIANT 2: STATE TRANSITION (ONE EDGE)
@dataclass(frozen=True)
class StateTransitionCommit(BaseCommit):
    """One edge traversal in an object's lifecycle."""

    COMMIT_TYPE: ClassVar[str] = CommitType.STATE_TRANSITION.value

    object_id: Optional[str] = None
    object_type: Optional[str] = None
    from_state: Optional[str] = None
    to_state: Optional[str] = None
    # Declared as a field here; the other variants expose it as a property.
    authority_ref: Optional[str] = None  # type: ignore[assignment]
    evidence_refs: Tuple[str, ...] = _optional(factory=tuple)
    reason: Optional[str] = _optional()
    signature: Optional[str] = _optional()


# VARIANT 3: AUTHORITY GRANT
@dataclass(frozen=True)
class AuthorityGrant(BaseCommit):
    """
    Grant of capabilities to one subject.

    Active from effective_from_ms until expires_at_ms (exclusive) or until
    revoked. Never deleted.
    """

    COMMIT_TYPE: ClassVar[str] = CommitType.AUTHORITY_GRANT.value

    grant_id: Optional[str] = None
    scope: Optional[str] = None
    capabilities: Tuple[str, ...] = None  # type: ignore[assignment]
    grantee_id: Optional[str] = None
    grantor_authority_ref: Optional[str] = None
    effective_from_ms: Optional[int] = None
    signature: Optional[str] = None
    evidence_refs: Tuple[str, ...] = _optional(factory=tuple)
    expires_at_ms: Optional[int] = _optional()
    genesis: bool = _optional(default=False)

    @property
    def authority_ref(self) -> Optional[str]:
        return self.grantor_authority_ref


# VARIANT 4: AUTHORITY REVOKE (TERMINAL)
@dataclass(frozen=True)
class AuthorityRevoke(BaseCommit):
    """
    Permanent revocation of one grant.

    grant_commit_id names the grant by the commit that created it.
    """

    COMMIT_TYPE: ClassVar[str] = CommitType.AUTHORITY_REVOKE.value

    grant_commit_id: Optional[str] = None
    reason: Optional[str] = None
    revoked_by_authority_ref: Optional[str] = None
    signature: Optional[str] = None

    @property
    def authority_ref(self) -> Optional[str]:
        return self.revoked_by_authority_ref


# ANY OTHER AUDITABLE COMMIT
@dataclass(frozen=True)
class GenericCommit(BaseCommit):
    """
    A commit type this core has no dedicated rules for.

    It may change state only when it names its type and carries an
    authority reference and a timestamp.
    """

    type_tag: Optional[str] = None
    # Declared as a field here; the other variants expose it as a property.
    authority_ref: Optional[str] = _optional()  # type: ignore[assignment]

    @property
    def type(self) -> Optional[str]:
        return self.type_tag


Commit = Union[DialogueCommit, StateTransitionCommit, AuthorityGrant, AuthorityRevoke, GenericCommit]

COMMIT_CLASSES = {
    CommitType.DIALOGUE.value: DialogueCommit,
    CommitType.STATE_TRANSITION.value: StateTransitionCommit,
    CommitType.AUTHORITY_GRANT.value: AuthorityGrant,
    CommitType.AUTHORITY_REVOKE.value: AuthorityRevoke,
}

_SEQUENCE_FIELDS = {"participant_ids", "evidence_refs", "capabilities"}


def required_fields(commit_class: type) -> List[str]:
    """Names of the fields a commit class requires, in declaration order."""
    return [
        f.name for f in fields(commit_class)
        if not f.metadata.get("optional")
    ]


def commit_from_dict(data: Mapping[str, Any]) -> Commit:
    """
    Build a commit variant from a loosely-typed mapping.

    Never raises for missing fields; validators report them. Fields the
    variant does not declare land in extra.
    """
    type_tag = data.get("type")
    commit_class = COMMIT_CLASSES.get(type_tag, GenericCommit)
    declared = {f.name for f in fields(commit_class)} - {"extra"}

    kwargs: Dict[str, Any] = {}
    extra: Dict[str, Any] = {}
    for key, value in data.items():
        if key == "type":
            continue
        if key in declared:
            if key in _SEQUENCE_FIELDS and isinstance(value, (list, set, frozenset)):
                value = tuple(value)
            kwargs[key] = value
        else:
            extra[key] = value

    if commit_class is GenericCommit:
        kwargs["type_tag"] = type_tag
    kwargs["extra"] = extra
    return commit_class(**kwargs)


def hash_content(content: str) -> str:
    """SHA-256 hex digest of dialogue content."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def create_dialogue_commit(
    content: str,
    context_ref: str,
    participant_ids: Sequence[str] = (),
    retention_window_hours: int = DIALOGUE_DEFAULT_RETENTION_HOURS,
    timestamp_ms: Optional[int] = None,
) -> DialogueCommit:
    """
    Create a dialogue commit.

    The raw content is hashed here and then dropped; it never reaches the
    commit.
    """
    timestamp_ms = now_ms() if timestamp_ms is None else timestamp_ms
    return DialogueCommit(
        commit_id=new_commit_id(),
        timestamp_ms=timestamp_ms,
        content_hash=hash_content(content),
        context_ref=context_ref,
        retention_window_hours=retention_window_hours,
        participant_ids=tuple(participant_ids),
        expiry_timestamp_ms=timestamp_ms + retention_window_hours * MS_PER_HOUR,
    )


def create_state_transition_commit(
    object_id: str,
    object_type: str,
    from_state: str,
    to_state: str,
    authority_ref: Optional[str],
    evidence_refs: Sequence[str] = (),
    reason: Optional[str] = None,
    signature: Optional[str] = None,
    timestamp_ms: Optional[int] = None,
) -> StateTransitionCommit:
    """Create a state transition commit with a fresh id and timestamp."""
    return StateTransitionCommit(
        commit_id=new_commit_id(),
        timestamp_ms=now_ms() if timestamp_ms is None else timestamp_ms,
        object_id=object_id,
        object_type=object_type,
        from_state=from_state,
        to_state=to_state,
        authority_ref=authority_ref,
        evidence_refs=tuple(evidence_refs),
        reason=reason,
        signature=signature,
    )


def create_authority_grant(
    grantee_id: str,
    capabilities: Sequence[str],
    scope: str,
    grantor_authority_ref: str,
    signature: str,
    effective_from_ms: Optional[int] = None,
    expires_at_ms: Optional[int] = None,
    evidence_refs: Sequence[str] = (),
    timestamp_ms: Optional[int] = None,
) -> AuthorityGrant:
    """Create an ordinary authority grant commit."""
    timestamp_ms = now_ms() if timestamp_ms is None else timestamp_ms
    return AuthorityGrant(
        commit_id=new_commit_id(),
        timestamp_ms=timestamp_ms,
        grant_id=new_commit_id(),
        scope=scope,
        capabilities=tuple(capabilities),
        grantee_id=grantee_id,
        grantor_authority_ref=grantor_authority_ref,
        effective_from_ms=timestamp_ms if effective_from_ms is None else effective_from_ms,
        expires_at_ms=expires_at_ms,
        evidence_refs=tuple(evidence_refs),
        signature=signature,
    )


def create_authority_revoke(
    grant_commit_id: str,
    reason: str,
    revoked_by_authority_ref: str,
    signature: str,
    timestamp_ms: Optional[int] = None,
) -> AuthorityRevoke:
    """Create a revocation commit for the grant created by grant_commit_id."""
    return AuthorityRevoke(
        commit_id=new_commit_id(),
        timestamp_ms=now_ms() if timestamp_ms is None else timestamp_ms,
        grant_commit_id=grant_commit_id,
        reason=reason,
        revoked_by_authority_ref=revoked_by_authority_ref,
        signature=signature,
    )


def build_genesis_grant(custodian_id: str, timestamp_ms: int) -> AuthorityGrant:
    """
    Build the root grant for the first custodian.

    Only AuthorityResolver.seed_genesis() should call this. The grant is
    flagged genesis=True so the audit trail shows where it came from.
    """
    return AuthorityGrant(
        commit_id=GENESIS_GRANT_ID,
        timestamp_ms=timestamp_ms,
        grant_id=GENESIS_GRANT_ID,
        scope=GENESIS_SCOPE,
        capabilities=(GENESIS_CAPABILITY,),
        grantee_id=custodian_id,
        grantor_authority_ref=GENESIS_GRANTOR,
        effective_from_ms=timestamp_ms,
        expires_at_ms=None,
        signature=GENESIS_GRANTOR,
        genesis=True,
    )
