"""
Capability and scope matching.

Wildcards cover whole segments only. Anything malformed never matches.
"""

from __future__ import annotations

import pytest

from relay.core.capability import (
    CapabilityToken,
    any_matches,
    any_scope_matches,
    is_well_formed,
    matches,
    parse_capability,
    scope_matches,
)

WELL_FORMED = [
    "STATE_TRANSITION:PURCHASE_ORDER:APPROVE",
    "AUTHORITY_GRANT:AUTHORITY:ISSUE",
    "SELF:*:*",
    "*:PLAN:*",
    "a:b:c",
]

MALFORMED = [
    "",
    "A:B",
    "A:B:C:D",
    "A::C",
    ":B:C",
    "A:B:",
    "A:B :C",
    " A:B:C",
    "STATE*:B:C",
    "A:*B:C",
    None,
    42,
]


class TestParsing:
    """Tokens parse once into a three-part record"""

    def test_parse_well_formed(self):
        """Well-formed token parses into its segments"""
        token = parse_capability("STATE_TRANSITION:PLAN:COMMIT")
        assert token == CapabilityToken("STATE_TRANSITION", "PLAN", "COMMIT")
        assert str(token) == "STATE_TRANSITION:PLAN:COMMIT"

    @pytest.mark.parametrize("token", MALFORMED)
    def test_parse_malformed_returns_none(self, token):
        """Malformed tokens parse to None"""
        assert parse_capability(token) is None
        assert not is_well_formed(token)


class TestTokenMatching:
    """ACTION:OBJECT_TYPE:OPERATION matching"""

    @pytest.mark.parametrize("token", WELL_FORMED)
    def test_full_wildcard_covers_everything(self, token):
        """*:*:* covers every well-formed token"""
        assert matches("*:*:*", token)

    @pytest.mark.parametrize("token", WELL_FORMED)
    def test_token_matches_itself(self, token):
        """Every well-formed token covers itself"""
        assert matches(token, token)

    def test_wildcard_in_each_position(self):
        """A wildcard works in any single position"""
        required = "STATE_TRANSITION:PLAN:COMMIT"
        assert matches("*:PLAN:COMMIT", required)
        assert matches("STATE_TRANSITION:*:COMMIT", required)
        assert matches("STATE_TRANSITION:PLAN:*", required)

    def test_mismatched_segment_denied(self):
        """One differing segment is enough to deny"""
        assert not matches(
            "STATE_TRANSITION:PURCHASE_ORDER:APPROVE",
            "STATE_TRANSITION:PURCHASE_ORDER:REJECT",
        )

    def test_case_sensitive(self):
        """Matching is case-sensitive"""
        assert not matches("state_transition:plan:commit", "STATE_TRANSITION:PLAN:COMMIT")

    def test_wildcard_in_required_is_literal(self):
        """A wildcard on the required side is not a grant of anything"""
        assert not matches("A:B:C", "A:B:*")

    @pytest.mark.parametrize("token", MALFORMED)
    def test_malformed_never_matches(self, token):
        """Malformed tokens never match, even against *:*:*"""
        assert not matches("*:*:*", token)
        assert not matches(token, "A:B:C")

    def test_any_matches(self):
        """Any one granted token is enough"""
        granted = ["X:Y:Z", "bad token", "STATE_TRANSITION:PLAN:*"]
        assert any_matches(granted, "STATE_TRANSITION:PLAN:HOLD")
        assert not any_matches(granted, "STATE_TRANSITION:ORDER:HOLD")
        assert not any_matches([], "A:B:C")


class TestScopeMatching:
    """Dotted scope paths"""

    def test_empty_required_scope_always_matches(self):
        """No required scope means no scope constraint"""
        assert scope_matches("site.a", None)
        assert scope_matches("site.a", "")
        assert scope_matches("", None)

    def test_empty_granted_scope_never_matches(self):
        """An empty granted scope covers nothing"""
        assert not scope_matches("", "site.a")

    def test_exact_scope(self):
        """Identical scopes match"""
        assert scope_matches("site.a.dock", "site.a.dock")

    def test_trailing_wildcard_covers_descendants(self):
        """A wildcard segment covers every remaining segment"""
        assert scope_matches("site.*", "site.a.dock")
        assert scope_matches("*", "anything.at.all")

    def test_granted_must_be_at_least_as_specific(self):
        """A broader concrete scope does not cover a narrower one"""
        assert not scope_matches("site", "site.a")

    def test_granted_deeper_than_required_denied(self):
        """A narrower concrete scope does not cover a broader one"""
        assert not scope_matches("site.a", "site")

    def test_sibling_scope_denied(self):
        """Differing segments deny"""
        assert not scope_matches("site.b", "site.a")

    def test_any_scope_matches(self):
        """Any granted scope may cover the required one"""
        assert any_scope_matches(["site.b", "site.a.*"], "site.a.dock")
        assert not any_scope_matches(["site.b"], "site.a")
        assert any_scope_matches([], None)
