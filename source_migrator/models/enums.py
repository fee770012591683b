"""Enum definitions for migration runs."""

from enum import Enum


class MigrationState(Enum):
    """Lifecycle of a single orchestrator run."""

    IDLE = "idle"
    VALIDATING = "validating"
    ENUMERATING = "enumerating"
    MIRRORING_DIRECTORIES = "mirroring_directories"
    DISPATCHING = "dispatching"
    AWAITING = "awaiting"
    SUMMARIZING = "summarizing"
    DONE = "done"
    FAILED = "failed"


class ScopeKind(Enum):
    """What part of a library a run covers."""

    LIBRARY = "library"
    CONTAINER = "container"
    MEMBERS = "members"
