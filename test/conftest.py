"""
Shared fixtures for the governance core tests.

All tests run against a fixed clock. Time moves only when a test calls
clock.advance().
"""

from __future__ import annotations

import pytest

from relay.core.authority_resolver import AuthorityResolver
from relay.core.commit_ledger import CommitLedger
from relay.core.commit_types import create_authority_grant
from relay.core.config import MS_PER_HOUR

NOW = 1_700_000_000_000
CUSTODIAN = "user:custodian"


class FixedClock:
    """Callable clock returning epoch milliseconds."""

    def __init__(self, start_ms: int = NOW):
        self.current = start_ms

    def __call__(self) -> int:
        return self.current

    def advance(self, ms: int) -> int:
        self.current += ms
        return self.current

    def advance_hours(self, hours: float) -> int:
        return self.advance(int(hours * MS_PER_HOUR))


def make_grant(grantee_id="user:bob", capabilities=("STATE_TRANSITION:PURCHASE_ORDER:APPROVE",),
               scope="site.a", grantor=CUSTODIAN, **kwargs):
    kwargs.setdefault("timestamp_ms", NOW)
    return create_authority_grant(
        grantee_id=grantee_id,
        capabilities=capabilities,
        scope=scope,
        grantor_authority_ref=grantor,
        signature=kwargs.pop("signature", "sig-grant"),
        **kwargs,
    )


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def resolver(clock):
    return AuthorityResolver(now_fn=clock)


@pytest.fixture
def seeded_resolver(resolver):
    result = resolver.seed_genesis(CUSTODIAN)
    assert result.accepted
    return resolver


@pytest.fixture
def ledger(seeded_resolver):
    return CommitLedger(seeded_resolver)
