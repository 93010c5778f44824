"""
Authority resolver.

Turns an authority reference into the capabilities it currently holds,
plus the grant chain that justifies them. Authority is never assumed:
anything not discoverable from active grants does not exist.

Exact load-bearing order for resolve():
1. self:<id> resolves to SELF:*:* with an empty chain
2. Strip the subject prefix, fetch every grant for the subject
3. Keep active grants: not revoked, started, not expired
4. Nothing active: EXPIRED_OR_REVOKED if grants exist, else NOT_DISCOVERABLE
5. Union capabilities and scopes, earliest expiry, ordered chain
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from relay.core.authority_store import AuthorityStore, InMemoryAuthorityStore
from relay.core.capability import any_matches, any_scope_matches
from relay.core.commit_types import (
    AuthorityGrant,
    AuthorityRevoke,
    build_genesis_grant,
    now_ms,
)
from relay.core.commit_validators import (
    validate_authority_grant_commit,
    validate_authority_revoke_commit,
)
from relay.core.config import GENESIS_GRANT_ID, SELF_CAPABILITY, SELF_PREFIX
from relay.core.observability import log_authority_event
from relay.core.reasons import ReasonCode


@dataclass(frozen=True)
class Resolution:
    valid: bool
    capabilities: Tuple[str, ...] = field(default_factory=tuple)
    scope: Tuple[str, ...] = field(default_factory=tuple)
    expires_at_ms: Optional[int] = None
    chain: Tuple[str, ...] = field(default_factory=tuple)
    reason: Optional[ReasonCode] = None
    chain_hash: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "capabilities": list(self.capabilities),
            "scope": list(self.scope),
            "expires_at_ms": self.expires_at_ms,
            "chain": list(self.chain),
            "reason": self.reason.value if self.reason else None,
            "chain_hash": self.chain_hash,
        }


@dataclass(frozen=True)
class AuthorizationCheck:
    authorized: bool
    reason: Optional[ReasonCode]
    resolution: Resolution
    required_capability: str
    scope: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "authorized": self.authorized,
            "reason": self.reason.value if self.reason else None,
            "required_capability": self.required_capability,
            "scope": self.scope,
            "resolution": self.resolution.to_dict(),
        }


@dataclass(frozen=True)
class RegistrationResult:
    accepted: bool
    reason: Optional[ReasonCode] = None
    grant_id: Optional[str] = None
    duplicate: bool = False
    detail: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accepted": self.accepted,
            "reason": self.reason.value if self.reason else None,
            "grant_id": self.grant_id,
            "duplicate": self.duplicate,
            "detail": self.detail,
        }


def split_authority_ref(authority_ref: str) -> Tuple[Optional[str], str]:
    """
    Split "user:bob" into ("user", "bob").

    Refs without a prefix come back as (None, ref).
    """
    if ":" not in authority_ref:
        return None, authority_ref
    prefix, subject = authority_ref.split(":", 1)
    return prefix, subject


def subject_of(authority_ref: str) -> str:
    return split_authority_ref(authority_ref)[1]


def is_active(grant: AuthorityGrant, revoked: bool, at_ms: int) -> bool:
    if revoked:
        return False
    if grant.effective_from_ms > at_ms:
        return False
    if grant.expires_at_ms is not None and grant.expires_at_ms <= at_ms:
        return False
    return True


def _grant_digest(grant: AuthorityGrant) -> str:
    canonical = json.dumps(
        {
            "grant_id": grant.grant_id,
            "commit_id": grant.commit_id,
            "grantee_id": grant.grantee_id,
            "grantor_authority_ref": grant.grantor_authority_ref,
            "scope": grant.scope,
            "capabilities": list(grant.capabilities),
            "effective_from_ms": grant.effective_from_ms,
            "expires_at_ms": grant.expires_at_ms,
            "genesis": grant.genesis,
        },
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(f"{grant.grant_id}:{canonical}".encode("utf-8")).hexdigest()


def chain_hash(grants: Iterable[AuthorityGrant]) -> Optional[str]:
    """
    Deterministic SHA-256 chain over the contributing grants.

    Replaying the same grants in the same order gives the same hash; any
    change to a grant in the chain changes it.
    """
    current = ""
    for grant in grants:
        element = _grant_digest(grant)
        if not current:
            current = element
        else:
            current = hashlib.sha256(f"{current}:{element}".encode("utf-8")).hexdigest()
    return current or None


def _dedupe(values: Iterable[str]) -> Tuple[str, ...]:
    seen: Dict[str, None] = {}
    for value in values:
        seen.setdefault(value, None)
    return tuple(seen)


class AuthorityResolver:
    """
    Grant registry and resolution over an injected store.

    now_fn returns epoch milliseconds; tests pass a fixed clock.
    """

    def __init__(
        self,
        store: Optional[AuthorityStore] = None,
        now_fn: Callable[[], int] = now_ms,
    ):
        self._store = store if store is not None else InMemoryAuthorityStore()
        self._now = now_fn

    @property
    def store(self) -> AuthorityStore:
        return self._store

    def now(self) -> int:
        return self._now()

    # ---- Resolution ----

    def resolve(self, authority_ref: Optional[str], at_ms: Optional[int] = None) -> Resolution:
        """Resolve a reference to its active capabilities and proof chain."""
        if not authority_ref:
            return Resolution(valid=False, reason=ReasonCode.AUTHORITY_NOT_DISCOVERABLE)

        prefix, subject = split_authority_ref(authority_ref)

        # Private actions need no grant
        if prefix == SELF_PREFIX:
            return Resolution(valid=True, capabilities=(SELF_CAPABILITY,))

        at_ms = self._now() if at_ms is None else at_ms
        grants, revoked = self._store.subject_snapshot(subject)

        if not grants:
            return Resolution(valid=False, reason=ReasonCode.AUTHORITY_NOT_DISCOVERABLE)

        active = [g for g in grants if is_active(g, g.grant_id in revoked, at_ms)]
        if not active:
            return Resolution(valid=False, reason=ReasonCode.AUTHORITY_EXPIRED_OR_REVOKED)

        expiries = [g.expires_at_ms for g in active if g.expires_at_ms is not None]

        return Resolution(
            valid=True,
            capabilities=_dedupe(c for g in active for c in g.capabilities),
            scope=_dedupe(g.scope for g in active),
            # A chain is only as durable as its weakest link
            expires_at_ms=min(expiries) if expiries else None,
            chain=tuple(g.grant_id for g in active),
            chain_hash=chain_hash(active),
        )

    resolve_authority = resolve

    def has_capability(
        self,
        authority_ref: Optional[str],
        required: str,
        scope: Optional[str] = None,
        at_ms: Optional[int] = None,
    ) -> AuthorizationCheck:
        """
        Check that authority_ref currently holds a capability covering required.

        If scope is given, one of the granted scopes must also cover it.
        """
        resolution = self.resolve(authority_ref, at_ms=at_ms)
        if not resolution.valid:
            return AuthorizationCheck(False, resolution.reason, resolution, required, scope)

        if not any_matches(resolution.capabilities, required):
            return AuthorizationCheck(
                False, ReasonCode.AUTHORITY_CAPABILITY_MISSING, resolution, required, scope
            )

        if scope is not None and not any_scope_matches(resolution.scope, scope):
            return AuthorizationCheck(
                False, ReasonCode.AUTHORITY_SCOPE_MISMATCH, resolution, required, scope
            )

        return AuthorizationCheck(True, None, resolution, required, scope)

    def grant_for_commit(self, commit_id: str) -> Optional[AuthorityGrant]:
        return self._store.grant_for_commit(commit_id)

    # ---- Registration ----

    def register_grant(self, grant: AuthorityGrant) -> RegistrationResult:
        """
        Validate and append a grant.

        Re-registering the identical grant is a no-op that reports success.
        A different grant reusing an existing grant_id is refused.
        """
        validation = validate_authority_grant_commit(grant, current_ms=self._now())
        if not validation.valid:
            return RegistrationResult(
                False, validation.reason, grant_id=getattr(grant, "grant_id", None),
                detail=validation.detail,
            )

        if grant.genesis:
            # The root grant only enters through seed_genesis()
            return RegistrationResult(
                False, ReasonCode.FORBIDDEN_FIELD, grant_id=grant.grant_id, detail="genesis"
            )

        # The genesis id is reserved even before seed_genesis() has run
        for name in ("grant_id", "commit_id"):
            if getattr(grant, name) == GENESIS_GRANT_ID:
                return RegistrationResult(
                    False, ReasonCode.FORBIDDEN_FIELD, grant_id=grant.grant_id, detail=name
                )

        if not self._store.append_grant(grant, subject_of(grant.grantee_id)):
            existing = self._store.get_grant(grant.grant_id)
            if existing == grant:
                return RegistrationResult(True, grant_id=grant.grant_id, duplicate=True)
            return RegistrationResult(False, ReasonCode.DUPLICATE_GRANT, grant_id=grant.grant_id)

        log_authority_event(
            "grant_registered",
            authority_ref=grant.grantor_authority_ref,
            grant_id=grant.grant_id,
            grantee=grant.grantee_id,
            scope=grant.scope,
            capabilities=",".join(grant.capabilities),
        )
        return RegistrationResult(True, grant_id=grant.grant_id)

    def register_revoke(self, revoke: AuthorityRevoke) -> RegistrationResult:
        """
        Validate and record a revocation.

        Revocation is permanent. Repeating it changes nothing and reports
        the same outcome as the first call.
        """
        validation = validate_authority_revoke_commit(revoke)
        if not validation.valid:
            return RegistrationResult(False, validation.reason, detail=validation.detail)

        grant = self._store.grant_for_commit(revoke.grant_commit_id)
        if grant is None:
            return RegistrationResult(
                False, ReasonCode.GRANT_NOT_FOUND, detail=revoke.grant_commit_id
            )

        if not self._store.mark_revoked(grant.grant_id, revoke):
            return RegistrationResult(True, grant_id=grant.grant_id, duplicate=True)

        log_authority_event(
            "grant_revoked",
            authority_ref=revoke.revoked_by_authority_ref,
            grant_id=grant.grant_id,
            reason=revoke.reason,
        )
        return RegistrationResult(True, grant_id=grant.grant_id)

    def seed_genesis(self, custodian_id: str) -> RegistrationResult:
        """
        Seed the root grant for the first custodian.

        This is the one grant that does not come from an authorized grantor.
        It is logged as an exception, and it can only happen once per store.
        """
        if self._store.contains_grant(GENESIS_GRANT_ID):
            return RegistrationResult(
                False, ReasonCode.GENESIS_ALREADY_SEEDED, grant_id=GENESIS_GRANT_ID
            )

        grant = build_genesis_grant(custodian_id, self._now())
        self._store.append_grant(grant, subject_of(custodian_id))

        log_authority_event(
            "genesis_seeded",
            severity="WARNING",
            authority_ref=custodian_id,
            grant_id=grant.grant_id,
            note="root grant created outside the grant pipeline",
        )
        return RegistrationResult(True, grant_id=grant.grant_id)

    def chain_grants(self, chain: Iterable[str]) -> List[AuthorityGrant]:
        """Fetch the grants named by a resolution chain, for audit replay."""
        grants = []
        for grant_id in chain:
            grant = self._store.get_grant(grant_id)
            if grant is not None:
                grants.append(grant)
        return grants
