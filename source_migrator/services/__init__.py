"""
Source Migrator Services

Validation, enumeration and orchestration of a migration run.
"""

from .enumeration import TargetEnumerator, group_by_container  # noqa: F401
from .migration import SourceMigrationOrchestrator  # noqa: F401
from .validation import MigrationValidator  # noqa: F401

__all__ = [
    "MigrationValidator",
    "TargetEnumerator",
    "group_by_container",
    "SourceMigrationOrchestrator",
]
