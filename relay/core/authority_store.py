"""
Authority store.

The resolver never owns its grants; it is handed a store. Durable stores
live outside this package. InMemoryAuthorityStore is the reference
implementation used by tests and by single-process deployments.

Writes are append or set-insert only. Nothing is ever deleted.
"""

from __future__ import annotations

import threading
from typing import Dict, FrozenSet, List, Optional, Protocol, Tuple

from relay.core.commit_types import AuthorityGrant, AuthorityRevoke


class AuthorityStore(Protocol):
    """Store contract the resolver depends on."""

    def append_grant(self, grant: AuthorityGrant, subject_id: str) -> bool:
        """Append a grant under subject_id. Returns False if the grant_id is already present."""
        ...

    def contains_grant(self, grant_id: str) -> bool:
        ...

    def get_grant(self, grant_id: str) -> Optional[AuthorityGrant]:
        ...

    def grant_for_commit(self, commit_id: str) -> Optional[AuthorityGrant]:
        ...

    def grants_for_subject(self, subject_id: str) -> List[AuthorityGrant]:
        ...

    def mark_revoked(self, grant_id: str, revoke: AuthorityRevoke) -> bool:
        """Record a revocation. Returns False if the grant was already revoked."""
        ...

    def is_revoked(self, grant_id: str) -> bool:
        ...

    def get_revocation(self, grant_id: str) -> Optional[AuthorityRevoke]:
        ...

    def subject_snapshot(
        self, subject_id: str
    ) -> Tuple[List[AuthorityGrant], FrozenSet[str]]:
        """Grants for a subject and the revoked grant ids, read together."""
        ...


class InMemoryAuthorityStore:
    """
    In-memory, append-only authority store.

    One lock guards grants and revocations together, so a snapshot never
    shows a grant without a revocation that was recorded before it.
    """

    def __init__(self):
        self._grants: Dict[str, AuthorityGrant] = {}
        self._commit_index: Dict[str, str] = {}  # commit_id -> grant_id
        self._subject_grants: Dict[str, List[str]] = {}  # subject -> grant_ids
        self._revocations: Dict[str, AuthorityRevoke] = {}
        self._lock = threading.Lock()

    def append_grant(self, grant: AuthorityGrant, subject_id: str) -> bool:
        with self._lock:
            if grant.grant_id in self._grants:
                return False

            self._grants[grant.grant_id] = grant
            if grant.commit_id:
                self._commit_index[grant.commit_id] = grant.grant_id

            # Track grants by subject, registration order
            self._subject_grants.setdefault(subject_id, []).append(grant.grant_id)
            return True

    def contains_grant(self, grant_id: str) -> bool:
        with self._lock:
            return grant_id in self._grants

    def get_grant(self, grant_id: str) -> Optional[AuthorityGrant]:
        with self._lock:
            return self._grants.get(grant_id)

    def grant_for_commit(self, commit_id: str) -> Optional[AuthorityGrant]:
        with self._lock:
            grant_id = self._commit_index.get(commit_id)
            if grant_id is None:
                return None
            return self._grants.get(grant_id)

    def grants_for_subject(self, subject_id: str) -> List[AuthorityGrant]:
        with self._lock:
            return [self._grants[g] for g in self._subject_grants.get(subject_id, [])]

    def mark_revoked(self, grant_id: str, revoke: AuthorityRevoke) -> bool:
        with self._lock:
            if grant_id in self._revocations:
                # Already revoked - first revocation wins
                return False
            self._revocations[grant_id] = revoke
            return True

    def is_revoked(self, grant_id: str) -> bool:
        with self._lock:
            return grant_id in self._revocations

    def get_revocation(self, grant_id: str) -> Optional[AuthorityRevoke]:
        with self._lock:
            return self._revocations.get(grant_id)

    def subject_snapshot(
        self, subject_id: str
    ) -> Tuple[List[AuthorityGrant], FrozenSet[str]]:
        with self._lock:
            grant_ids = self._subject_grants.get(subject_id, [])
            grants = [self._grants[g] for g in grant_ids]
            revoked = frozenset(g for g in grant_ids if g in self._revocations)
            return grants, revoked
