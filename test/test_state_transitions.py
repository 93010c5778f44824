"""
Lifecycle state machine: DRAFT, HOLD, PROPOSE, COMMIT, REVERT.
"""

from __future__ import annotations

from dataclasses import FrozenInstanceError

import pytest

from relay.core.commit_types import StateTransitionCommit, create_state_transition_commit
from relay.core.reasons import ReasonCode
from relay.core.state_transitions import (
    ObjectState,
    TRANSITIONS,
    authorize_transition,
    can_transition,
    get_next_states,
    is_valid_transition,
    required_capability,
    requires_authority_chain,
)

from conftest import NOW, make_grant

STATES = [s.value for s in ObjectState]


def plan_commit(from_state, to_state, authority_ref="user:bob", evidence=(), signature=None):
    return create_state_transition_commit(
        object_id="plan-1",
        object_type="PLAN",
        from_state=from_state,
        to_state=to_state,
        authority_ref=authority_ref,
        evidence_refs=evidence,
        signature=signature,
        timestamp_ms=NOW,
    )


class TestTransitionTable:

    def test_declared_edges(self):
        assert get_next_states("DRAFT") == ["HOLD", "PROPOSE"]
        assert get_next_states("HOLD") == ["PROPOSE", "DRAFT"]
        assert get_next_states("PROPOSE") == ["COMMIT", "HOLD", "DRAFT"]
        assert get_next_states("COMMIT") == ["REVERT"]

    def test_revert_is_terminal(self):
        """Nothing leaves REVERT"""
        assert get_next_states("REVERT") == []
        for state in STATES:
            assert not is_valid_transition("REVERT", state)

    def test_unknown_state_reaches_nothing(self):
        assert get_next_states("ARCHIVED") == []
        assert not is_valid_transition("ARCHIVED", "DRAFT")

    def test_is_valid_transition_matches_table(self):
        for from_state in STATES:
            for to_state in STATES:
                expected = to_state in TRANSITIONS[from_state]
                assert is_valid_transition(from_state, to_state) == expected

    def test_next_states_is_a_copy(self):
        """Callers cannot edit the table through the result"""
        get_next_states("DRAFT").append("COMMIT")
        assert not is_valid_transition("DRAFT", "COMMIT")

    def test_only_draft_to_hold_skips_chain(self):
        for from_state, targets in TRANSITIONS.items():
            for to_state in targets:
                expected = (from_state, to_state) != ("DRAFT", "HOLD")
                assert requires_authority_chain(from_state, to_state) == expected

    def test_required_capability_name(self):
        assert required_capability("PURCHASE_ORDER", "COMMIT") == "STATE_TRANSITION:PURCHASE_ORDER:COMMIT"


class TestCanTransition:

    def test_commit_without_evidence(self):
        """Into COMMIT with no evidence fails on evidence"""
        check = can_transition("PROPOSE", "COMMIT", "user:bob", [])
        assert not check.allowed
        assert check.reason == ReasonCode.MISSING_EVIDENCE

    def test_commit_with_evidence(self):
        """With evidence the edge itself passes; authority is separate"""
        assert can_transition("PROPOSE", "COMMIT", "user:bob", ["ev1"]).allowed

    def test_invalid_edge_reported_first(self):
        check = can_transition("DRAFT", "COMMIT", None, [])
        assert check.reason == ReasonCode.INVALID_TRANSITION

    def test_authority_required(self):
        check = can_transition("DRAFT", "PROPOSE", None)
        assert check.reason == ReasonCode.MISSING_AUTHORITY

    @pytest.mark.parametrize("to_state", ["PROPOSE", "HOLD", "DRAFT"])
    def test_evidence_only_required_into_commit(self, to_state):
        assert can_transition("PROPOSE", to_state, "user:bob").allowed


class TestAuthorizeTransition:

    def test_draft_to_hold_needs_no_chain(self, resolver):
        """Parking one's own draft is private"""
        check = authorize_transition(plan_commit("DRAFT", "HOLD", "self:alice"), resolver)
        assert check.allowed
        assert check.chain == ()

    def test_other_edges_need_capability(self, resolver):
        check = authorize_transition(plan_commit("DRAFT", "PROPOSE"), resolver)
        assert not check.allowed
        assert check.reason == ReasonCode.AUTHORITY_NOT_DISCOVERABLE
        assert check.required_capability == "STATE_TRANSITION:PLAN:PROPOSE"

    def test_self_cannot_propose(self, resolver):
        """SELF:*:* does not cover STATE_TRANSITION"""
        check = authorize_transition(plan_commit("DRAFT", "PROPOSE", "self:alice"), resolver)
        assert check.reason == ReasonCode.AUTHORITY_CAPABILITY_MISSING

    def test_granted_capability_allows(self, resolver):
        grant = make_grant(capabilities=("STATE_TRANSITION:PLAN:*",))
        resolver.register_grant(grant)
        check = authorize_transition(plan_commit("PROPOSE", "COMMIT", evidence=["ev1"], signature="s"), resolver)
        assert check.allowed
        assert check.chain == (grant.grant_id,)
        assert check.required_capability == "STATE_TRANSITION:PLAN:COMMIT"

    def test_edge_checked_before_authority(self, seeded_resolver):
        """Even the custodian cannot take an undeclared edge"""
        commit = plan_commit("REVERT", "DRAFT", "user:custodian")
        check = authorize_transition(commit, seeded_resolver)
        assert check.reason == ReasonCode.INVALID_TRANSITION


class TestTransitionFactory:

    def test_factory_fills_id_and_timestamp(self):
        commit = create_state_transition_commit("po-9", "PURCHASE_ORDER", "DRAFT", "PROPOSE", "user:bob")
        assert isinstance(commit, StateTransitionCommit)
        assert commit.commit_id
        assert commit.timestamp_ms > 0
        assert commit.type == "STATE_TRANSITION"

    def test_commits_are_immutable(self):
        commit = plan_commit("DRAFT", "PROPOSE")
        with pytest.raises(FrozenInstanceError):
            commit.to_state = "COMMIT"

    def test_fresh_ids(self):
        assert plan_commit("DRAFT", "PROPOSE").commit_id != plan_commit("DRAFT", "PROPOSE").commit_id
