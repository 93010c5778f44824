"""
Core configuration and decision primitives for the governance engine.

Modules:
- config: thresholds, retention bounds, subject prefixes.
- observability: logging schema and authority audit events.
- reasons: stable reason codes returned by every decision.
- capability: capability token and scope matching.
- commit_types: tagged union of commit variants.
- commit_validators: per-type commit checks.
- authority_store: injected grant/revoke store.
- authority_resolver: grant aggregation and capability checks.
- state_transitions: object lifecycle FSM.
- commit_boundary: the single mutability gate.
- commit_ledger: applies accepted commits.
- confidence: state-aware derived values.
"""
