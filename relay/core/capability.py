"""
Capability matcher.

Capabilities are three-part tokens, ACTION:OBJECT_TYPE:OPERATION.
Scopes are dotted paths, e.g. "site.a.dock".

Tokens stay strings at the boundary. Internally each token is parsed once
into a CapabilityToken so matching never re-splits strings.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

WILDCARD = "*"
TOKEN_SEPARATOR = ":"
SCOPE_SEPARATOR = "."


@dataclass(frozen=True)
class CapabilityToken:
    """Parsed ACTION:OBJECT_TYPE:OPERATION token."""

    action: str
    object_type: str
    operation: str

    def segments(self) -> tuple:
        return (self.action, self.object_type, self.operation)

    def __str__(self) -> str:
        return TOKEN_SEPARATOR.join(self.segments())


def parse_capability(token: object) -> Optional[CapabilityToken]:
    """
    Parse a capability string.

    Returns None for anything that is not exactly three non-empty,
    whitespace-free segments. A wildcard must fill a whole segment.
    """
    if not isinstance(token, str):
        return None
    parts = token.split(TOKEN_SEPARATOR)
    if len(parts) != 3:
        return None
    for part in parts:
        if not part or part != part.strip() or " " in part:
            return None
        if WILDCARD in part and part != WILDCARD:
            return None
    return CapabilityToken(*parts)


def is_well_formed(token: object) -> bool:
    return parse_capability(token) is not None


def _segment_matches(granted: str, required: str) -> bool:
    return granted == WILDCARD or granted == required


def token_matches(granted: CapabilityToken, required: CapabilityToken) -> bool:
    return all(
        _segment_matches(g, r)
        for g, r in zip(granted.segments(), required.segments())
    )


def matches(granted: str, required: str) -> bool:
    """
    Check whether a granted capability covers a required one.

    Each position matches if equal or if the granted position is "*".
    Case-sensitive. Malformed tokens never match.
    """
    granted_token = parse_capability(granted)
    required_token = parse_capability(required)
    if granted_token is None or required_token is None:
        return False
    return token_matches(granted_token, required_token)


def any_matches(granted: Iterable[str], required: str) -> bool:
    """True if any granted capability covers the required one."""
    required_token = parse_capability(required)
    if required_token is None:
        return False
    for candidate in granted:
        token = parse_capability(candidate)
        if token is not None and token_matches(token, required_token):
            return True
    return False


def scope_matches(granted: str, required: Optional[str]) -> bool:
    """
    Check whether a granted scope covers a required scope.

    Segments are compared left to right. A "*" segment in the granted
    scope covers every remaining required segment. Without a wildcard,
    every segment must be equal and the granted scope needs at least as
    many concrete segments as the required one.
    """
    if not required:
        return True
    if not granted:
        return False

    granted_parts = granted.split(SCOPE_SEPARATOR)
    required_parts = required.split(SCOPE_SEPARATOR)

    for index, part in enumerate(granted_parts):
        if part == WILDCARD:
            return True
        if index >= len(required_parts) or part != required_parts[index]:
            return False

    return len(granted_parts) >= len(required_parts)


def any_scope_matches(granted: Iterable[str], required: Optional[str]) -> bool:
    if not required:
        return True
    return any(scope_matches(scope, required) for scope in granted)
