import os

"""
Central configuration for the governance core.
Thresholds, retention bounds and naming constants live here.

Everything here is read once at import. Decisions never re-read the
environment, so two calls with the same inputs give the same answer.
"""


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(
            f"Environment variable {name}={raw!r} is not a number. "
            f"Unset it or fix the value."
        )


# ---- Logging ----
LOG_LEVEL = os.environ.get("RELAY_LOG_LEVEL", "INFO").upper()

# ---- Time ----
MS_PER_HOUR = 60 * 60 * 1000

# A grant may be registered ahead of time, but not further than this.
GRANT_MAX_FUTURE_SKEW_MS = 24 * MS_PER_HOUR

# ---- Dialogue retention (hours) ----
DIALOGUE_MIN_RETENTION_HOURS = 1
DIALOGUE_MAX_RETENTION_HOURS = 168
DIALOGUE_DEFAULT_RETENTION_HOURS = 24

# Fields a dialogue commit may never carry.
DIALOGUE_FORBIDDEN_FIELDS = (
    "state_change",
    "object_mutation",
    "value_set",
    "policy_change",
    "authority_grant",
)

# ---- Authority references ----
SELF_PREFIX = "self"
SELF_CAPABILITY = "SELF:*:*"
GENESIS_SCOPE = "*"
GENESIS_CAPABILITY = "*:*:*"
GENESIS_GRANTOR = "genesis"
GENESIS_GRANT_ID = "genesis"

# Capabilities checked by the ledger before authority commits are applied.
GRANT_ISSUE_CAPABILITY = "AUTHORITY_GRANT:AUTHORITY:ISSUE"
REVOKE_ISSUE_CAPABILITY = "AUTHORITY_REVOKE:AUTHORITY:ISSUE"

# ---- Confidence thresholds ----
CONFIDENCE_VERIFIED_THRESHOLD = 0.8
CONFIDENCE_DEGRADED_THRESHOLD = 0.5

# Staleness decays as exp(-hours / window), blended between floor and 1.0.
STALENESS_DECAY_WINDOW_HOURS = 168.0
STALENESS_BLEND_FLOOR = 0.7

# Multiplier applied when the producing validation failed.
FAILED_VALIDATION_PENALTY = 0.5

# Default minimum confidence a caller needs before acting on a value.
MIN_ACTION_CONFIDENCE = _env_float("RELAY_MIN_ACTION_CONFIDENCE", 0.8)

# ---- Server bootstrap ----
# If set, the HTTP server seeds the genesis grant for this custodian at startup.
GENESIS_CUSTODIAN = os.environ.get("RELAY_GENESIS_CUSTODIAN") or None
