"""Data models for the source migrator."""

from .enums import MigrationState, ScopeKind  # noqa: F401
from .migration import (  # noqa: F401
    MigrationScope,
    MigrationSummary,
    MigrationTarget,
    TransferOutcome,
)

__all__ = [
    "MigrationState",
    "ScopeKind",
    "MigrationScope",
    "MigrationSummary",
    "MigrationTarget",
    "TransferOutcome",
]
