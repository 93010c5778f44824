"""
HTTP surface tests.

Refusals come back as 200 with a reason code; the router owns no rules.
Only a malformed body is an HTTP error (422).
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from relay.core.commit_types import create_dialogue_commit, create_state_transition_commit
from relay.governance_server import create_app
from relay.modules.router.governance_router import get_ledger, set_ledger

from conftest import CUSTODIAN, NOW, make_grant


@pytest.fixture
def client(ledger):
    app = create_app(ledger=ledger, custodian_id=None)
    yield TestClient(app)
    set_ledger(None)


def grant_payload(**kwargs):
    return make_grant(capabilities=("STATE_TRANSITION:PURCHASE_ORDER:*",), **kwargs).to_dict()


def transition_payload(from_state, to_state, authority_ref="user:bob", **kwargs):
    return create_state_transition_commit(
        "po-1", "PURCHASE_ORDER", from_state, to_state, authority_ref,
        timestamp_ms=NOW, **kwargs,
    ).to_dict()


class TestCommitEndpoints:

    def test_grant_then_transition(self, client):
        response = client.post("/api/commits", json=grant_payload())
        assert response.status_code == 200
        assert response.json()["accepted"] is True

        response = client.post("/api/commits", json=transition_payload("DRAFT", "PROPOSE"))
        body = response.json()
        assert body["accepted"] is True
        assert body["commit_type"] == "STATE_TRANSITION"

        obj = client.get("/api/objects/po-1").json()
        assert obj["state"] == "PROPOSE"
        assert obj["next_states"] == ["COMMIT", "HOLD", "DRAFT"]
        assert len(obj["history"]) == 1

    def test_refusal_is_not_an_http_error(self, client):
        response = client.post("/api/commits", json=transition_payload("DRAFT", "PROPOSE"))
        assert response.status_code == 200
        assert response.json()["reason"] == "AUTHORITY_NOT_DISCOVERABLE"

    def test_dialogue_on_commit_door_is_constitutional_violation(self, client):
        payload = create_dialogue_commit("x", "thread-1", timestamp_ms=NOW).to_dict()
        payload["state_change"] = {"to_state": "COMMIT"}
        body = client.post("/api/commits", json=payload).json()
        assert body["accepted"] is False
        assert body["reason"] == "DIALOGUE_CANNOT_MUTATE_STATE"
        assert body["constitutional_violation"] is True

    def test_unknown_object(self, client):
        body = client.get("/api/objects/nothing").json()
        assert body["known"] is False
        assert body["state"] is None

    def test_wrongly_typed_field_is_422(self, client):
        payload = grant_payload()
        payload["effective_from_ms"] = str(NOW)
        response = client.post("/api/commits", json=payload)
        assert response.status_code == 422
        assert get_ledger().decisions() == []

    def test_missing_field_is_still_a_refusal(self, client):
        payload = transition_payload("DRAFT", "PROPOSE")
        del payload["object_id"]
        response = client.post("/api/commits", json=payload)
        assert response.status_code == 200
        assert response.json()["reason"] == "MISSING_FIELD"

    def test_decisions(self, client):
        client.post("/api/commits", json=transition_payload("DRAFT", "COMMIT"))
        body = client.get("/api/decisions", params={"limit": 5}).json()
        assert body[-1]["reason"] == "INVALID_TRANSITION"


class TestDialogueEndpoints:

    def test_dialogue_door_accepts_dialogue(self, client):
        payload = create_dialogue_commit("x", "thread-1", timestamp_ms=NOW).to_dict()
        assert client.post("/api/dialogue", json=payload).json()["accepted"] is True

    def test_dialogue_door_refuses_transitions(self, client):
        body = client.post("/api/dialogue", json=transition_payload("DRAFT", "HOLD", "self:alice")).json()
        assert body["reason"] == "NOT_DIALOGUE"
        assert get_ledger().current_state("po-1") is None

    def test_string_retention_is_422(self, client):
        payload = create_dialogue_commit("x", "thread-1", timestamp_ms=NOW).to_dict()
        payload["retention_window_hours"] = "24"
        assert client.post("/api/dialogue", json=payload).status_code == 422

    def test_forbidden_field_reaches_validator(self, client):
        payload = create_dialogue_commit("x", "thread-1", timestamp_ms=NOW).to_dict()
        payload["policy_change"] = {"min_confidence": 0}
        body = client.post("/api/dialogue", json=payload).json()
        assert body["reason"] == "FORBIDDEN_FIELD"

    def test_message_is_hashed(self, client):
        response = client.post("/api/dialogue/messages", json={
            "content": "meet at the dock",
            "context_ref": "thread-9",
            "participant_ids": ["alice", "bob"],
        })
        body = response.json()
        assert body["receipt"]["accepted"] is True
        assert "meet at the dock" not in body["commit"].values()
        assert body["commit"]["expiry_timestamp_ms"] == NOW + 24 * 60 * 60 * 1000

    def test_message_retention_checked(self, client):
        body = client.post("/api/dialogue/messages", json={
            "content": "x", "context_ref": "t", "retention_window_hours": 500,
        }).json()
        assert body["receipt"]["reason"] == "RETENTION_TOO_LONG"


class TestAuthorityEndpoints:

    def test_resolve_self(self, client):
        body = client.get("/api/authority/self:alice").json()
        assert body["valid"] is True
        assert body["capabilities"] == ["SELF:*:*"]
        assert body["chain"] == []

    def test_resolve_custodian(self, client):
        body = client.get(f"/api/authority/{CUSTODIAN}").json()
        assert body["capabilities"] == ["*:*:*"]
        assert body["chain"] == ["genesis"]
        assert body["chain_hash"]

    def test_capability_check(self, client):
        client.post("/api/commits", json=grant_payload())
        body = client.post("/api/authority/check", json={
            "authority_ref": "user:bob",
            "capability": "STATE_TRANSITION:PURCHASE_ORDER:APPROVE",
            "scope": "site.b",
        }).json()
        assert body["authorized"] is False
        assert body["reason"] == "AUTHORITY_SCOPE_MISMATCH"


class TestTransitionAndValueEndpoints:

    def test_next_states(self, client):
        assert client.get("/api/transitions/REVERT").json()["next_states"] == []
        assert client.get("/api/transitions/DRAFT").json()["next_states"] == ["HOLD", "PROPOSE"]

    def test_can_use_value(self, client):
        body = client.post("/api/values/can-use", json={"value": 12.5, "confidence": 0.9}).json()
        assert body["decision"]["allowed"] is True
        assert body["value"]["state"] == "VERIFIED"

    def test_conflicting_value_refused(self, client):
        body = client.post("/api/values/can-use", json={
            "value": 12.5, "confidence": 1.0, "conflicting_evidence": True,
        }).json()
        assert body["decision"]["allowed"] is False
        assert "CONFLICTING_EVIDENCE" in body["decision"]["reasons"]

    def test_out_of_range_confidence_rejected(self, client):
        response = client.post("/api/values/can-use", json={"confidence": 1.5})
        assert response.status_code == 422

    @pytest.mark.parametrize("raw", [
        '{"confidence": NaN}',
        '{"confidence": 0.9, "min_confidence": NaN}',
    ])
    def test_nan_confidence_rejected(self, client, raw):
        response = client.post(
            "/api/values/can-use", content=raw, headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 422


class TestAppFactory:

    def test_seeds_custodian(self, resolver):
        from relay.core.commit_ledger import CommitLedger

        ledger = CommitLedger(resolver)
        try:
            client = TestClient(create_app(ledger=ledger, custodian_id="user:root"))
            assert client.get("/api/authority/user:root").json()["valid"] is True
            assert client.get("/health").json() == {"status": "ok"}
        finally:
            set_ledger(None)
