"""Utility functions shared across the source migrator."""

import re

from .constants import OBJECT_NAME_MAX_LENGTH, OBJECT_NAME_PATTERN

_OBJECT_NAME_RE = re.compile(OBJECT_NAME_PATTERN)


def canonical_name(name: str) -> str:
    """Canonical form of an IBM i object name: trimmed and uppercased.

    Example:
        >>> canonical_name(" qrpgsrc ")
        'QRPGSRC'
    """
    return name.strip().upper()


def is_valid_object_name(name: str) -> bool:
    """Check a canonical name against IBM i object naming rules."""
    return len(name) <= OBJECT_NAME_MAX_LENGTH and bool(_OBJECT_NAME_RE.match(name))


def validate_object_name(name: str, kind: str) -> str:
    """Canonicalize and validate an object name.

    Args:
        name: Raw name as typed by the user
        kind: What the name identifies, used in the error message

    Returns:
        The canonical name

    Raises:
        ValueError: If the name is not a valid IBM i object name
    """
    canonical = canonical_name(name)
    if not is_valid_object_name(canonical):
        raise ValueError(f"Invalid {kind} name: '{name}'")
    return canonical


def sql_literal(value: str) -> str:
    """Quote a value as an SQL string literal."""
    return "'" + value.replace("'", "''") + "'"


def cl_quote(value: str) -> str:
    """Quote a value as a CL string parameter."""
    return "'" + value.replace("'", "''") + "'"


def dedupe(names: list[str]) -> list[str]:
    """Remove duplicates while preserving first-seen order."""
    return list(dict.fromkeys(names))


def format_duration(seconds: float) -> str:
    """Format elapsed seconds the way the summary prints them."""
    return f"{seconds:.2f} seconds"
