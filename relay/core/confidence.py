"""
confidence.py

State-aware derived values.

Any computed value is wrapped with its confidence, its state, and the
inputs it was missing, so consumers can refuse to act on it. A derived
value is never authoritative: it can always be recomputed from inputs.

INDETERMINATE always blocks dependent action. There is no default
substitute for a value we cannot trust.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple

from relay.core.commit_types import now_ms
from relay.core.config import (
    CONFIDENCE_DEGRADED_THRESHOLD,
    CONFIDENCE_VERIFIED_THRESHOLD,
    FAILED_VALIDATION_PENALTY,
    MIN_ACTION_CONFIDENCE,
    STALENESS_BLEND_FLOOR,
    STALENESS_DECAY_WINDOW_HOURS,
)
from relay.core.observability import get_logger
from relay.core.reasons import ReasonCode

logger = get_logger('confidence')


class ValueState(str, Enum):
    VERIFIED = "VERIFIED"
    DEGRADED = "DEGRADED"
    INDETERMINATE = "INDETERMINATE"


# Weakest first
STATE_RANK = {
    ValueState.INDETERMINATE: 0,
    ValueState.DEGRADED: 1,
    ValueState.VERIFIED: 2,
}


@dataclass(frozen=True)
class StateAwareValue:
    """A derived value plus everything needed to decide whether to trust it."""

    value: Any
    confidence: float
    state: ValueState
    missing_inputs: Tuple[str, ...] = field(default_factory=tuple)
    insufficient_data: bool = False
    conflicting_evidence: bool = False
    method: Optional[str] = None
    policy_ref: Optional[str] = None
    computed_at: Optional[int] = None

    def __post_init__(self):
        if self.confidence is None:
            raise ValueError("StateAwareValue: confidence is required")
        if not (0.0 <= self.confidence <= 1.0):
            raise ValueError(
                f"StateAwareValue: confidence must be 0.0-1.0, got {self.confidence}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "value": self.value,
            "confidence": self.confidence,
            "state": self.state.value,
            "missing_inputs": list(self.missing_inputs),
            "insufficient_data": self.insufficient_data,
            "conflicting_evidence": self.conflicting_evidence,
            "method": self.method,
            "policy_ref": self.policy_ref,
            "computed_at": self.computed_at,
        }


@dataclass(frozen=True)
class ActionDecision:
    allowed: bool
    reasons: Tuple[ReasonCode, ...] = field(default_factory=tuple)

    @property
    def reason(self) -> Optional[ReasonCode]:
        return self.reasons[0] if self.reasons else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "reason": self.reason.value if self.reason else None,
            "reasons": [r.value for r in self.reasons],
        }


def _clamp(value: float) -> float:
    # NaN carries no information; it must never clamp up to 1.0
    if math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, value))


def determine_state(
    confidence: float,
    missing_inputs: Sequence[str] = (),
    conflicts: bool = False,
) -> ValueState:
    """
    Map confidence, missing inputs and conflicts to a state.

    Conflicts force INDETERMINATE even at confidence 1.0.
    """
    if conflicts:
        return ValueState.INDETERMINATE
    if confidence >= CONFIDENCE_VERIFIED_THRESHOLD and not missing_inputs:
        return ValueState.VERIFIED
    if confidence >= CONFIDENCE_DEGRADED_THRESHOLD:
        return ValueState.DEGRADED
    return ValueState.INDETERMINATE


def staleness_factor(age_hours: float) -> float:
    """Exponential decay blended between STALENESS_BLEND_FLOOR and 1.0."""
    decay = math.exp(-max(0.0, age_hours) / STALENESS_DECAY_WINDOW_HOURS)
    return STALENESS_BLEND_FLOOR + (1.0 - STALENESS_BLEND_FLOOR) * decay


def calculate_confidence(
    inputs_present: int,
    inputs_required: int,
    age_hours: float = 0.0,
    source_reliability: float = 1.0,
    validation_passed: bool = True,
) -> float:
    """
    Combine completeness, staleness, source reliability and validation.

    Args:
        inputs_present: Number of inputs actually available
        inputs_required: Number of inputs the method needs
        age_hours: Age of the newest input in hours
        source_reliability: Multiplier for the source, 0.0-1.0
        validation_passed: False halves the result

    Returns:
        Confidence clamped to [0.0, 1.0]
    """
    if inputs_required > 0:
        completeness = _clamp(inputs_present / inputs_required)
    else:
        completeness = 1.0

    score = completeness * staleness_factor(age_hours) * source_reliability
    if not validation_passed:
        score *= FAILED_VALIDATION_PENALTY
    return _clamp(score)


def create_state_aware_value(
    value: Any,
    confidence: float,
    missing_inputs: Iterable[str] = (),
    conflicting_evidence: bool = False,
    method: Optional[str] = None,
    policy_ref: Optional[str] = None,
    computed_at: Optional[int] = None,
) -> StateAwareValue:
    missing = tuple(missing_inputs)
    confidence = _clamp(confidence)
    return StateAwareValue(
        value=value,
        confidence=confidence,
        state=determine_state(confidence, missing, conflicting_evidence),
        missing_inputs=missing,
        insufficient_data=bool(missing),
        conflicting_evidence=bool(conflicting_evidence),
        method=method,
        policy_ref=policy_ref,
        computed_at=now_ms() if computed_at is None else computed_at,
    )


def can_use_for_action(
    value: StateAwareValue,
    min_confidence: float = MIN_ACTION_CONFIDENCE,
) -> ActionDecision:
    """
    Decide whether a value may drive an action.

    Three independent vetoes; every one that applies is reported.
    """
    reasons = []
    if value.state == ValueState.INDETERMINATE:
        reasons.append(ReasonCode.STATE_INDETERMINATE)
    if math.isnan(min_confidence) or value.confidence < min_confidence:
        reasons.append(ReasonCode.CONFIDENCE_BELOW_MIN)
    if value.conflicting_evidence:
        reasons.append(ReasonCode.CONFLICTING_EVIDENCE)

    if reasons:
        logger.debug(
            f"Value refused for action ({value.method or 'unknown'}): "
            f"{','.join(r.value for r in reasons)}"
        )
    return ActionDecision(allowed=not reasons, reasons=tuple(reasons))


def aggregate_states(
    values: Sequence[StateAwareValue],
    method: str = "aggregate",
    policy_ref: Optional[str] = None,
) -> StateAwareValue:
    """
    Weakest-link aggregation.

    One poisoned input poisons the whole aggregate. Aggregating nothing
    yields an explicit INDETERMINATE.
    """
    if not values:
        return StateAwareValue(
            value=None,
            confidence=0.0,
            state=ValueState.INDETERMINATE,
            insufficient_data=True,
            method=method,
            policy_ref=policy_ref,
            computed_at=now_ms(),
        )

    weakest = min(values, key=lambda v: STATE_RANK[v.state])
    missing: Dict[str, None] = {}
    for v in values:
        for name in v.missing_inputs:
            missing.setdefault(name, None)

    return StateAwareValue(
        value=tuple(v.value for v in values),
        confidence=min(v.confidence for v in values),
        state=weakest.state,
        missing_inputs=tuple(missing),
        insufficient_data=any(v.insufficient_data for v in values),
        conflicting_evidence=any(v.conflicting_evidence for v in values),
        method=method,
        policy_ref=policy_ref,
        computed_at=now_ms(),
    )
