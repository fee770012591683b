"""Core exceptions for source migration operations."""


class SourceMigratorError(Exception):
    """Base exception for source migrator operations."""


class ConfigurationError(SourceMigratorError):
    """Configuration validation or loading failed."""


class PreconditionError(SourceMigratorError):
    """A migration precondition failed; nothing was dispatched."""


class ScopeError(PreconditionError):
    """Requested migration scope is contradictory or malformed."""


class NotFoundError(PreconditionError):
    """A requested library, source PF or member does not exist."""

    def __init__(
        self,
        message: str,
        missing: list[str] | None = None,
        suggestions: list[str] | None = None,
    ):
        super().__init__(message)
        self.missing = list(missing or [])
        self.suggestions = list(suggestions or [])


class LibraryNotFoundError(NotFoundError):
    """Library has no eligible source PFs."""


class ContainerNotFoundError(NotFoundError):
    """Source PF does not exist in the library or holds no source members."""

    def __init__(
        self,
        message: str,
        missing: list[str] | None = None,
        available: dict[str, int] | None = None,
    ):
        super().__init__(message, missing=missing)
        self.available = dict(available or {})


class MemberNotFoundError(NotFoundError):
    """One or more requested members do not exist in the source PF."""


class InfrastructureError(SourceMigratorError):
    """The environment cannot support any migration work."""


class CatalogQueryError(InfrastructureError):
    """Catalog query failed or returned unreadable output."""


class OutputDirectoryError(InfrastructureError):
    """Output directory could not be resolved or created."""


class CommandExecutionError(InfrastructureError):
    """Host command execution failed."""


class SSHConnectionError(InfrastructureError):
    """SSH connection related errors."""


class TransferError(SourceMigratorError):
    """A single member transfer failed."""
