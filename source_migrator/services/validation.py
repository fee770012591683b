"""Pre-flight validation of a migration scope against the catalog."""

import structlog
from structlog.stdlib import BoundLogger

from ..constants import SCRATCH_LIBRARY
from ..core.exceptions import ContainerNotFoundError, LibraryNotFoundError, MemberNotFoundError
from ..core.metadata import CatalogService
from ..models.migration import MigrationScope
from ..utils import canonical_name, dedupe


class MigrationValidator:
    """Checks that everything a scope names exists before any work starts.

    All checks are read-only catalog queries. A failing check raises a
    ``NotFoundError`` subclass; requested names are never silently dropped.
    """

    def __init__(self, catalog: CatalogService):
        self.catalog = catalog
        self.logger: BoundLogger = structlog.get_logger().bind(component="migration_validator")

    async def validate_library(self, library: str) -> None:
        """Raise ``LibraryNotFoundError`` unless the library has eligible source PFs."""
        library = canonical_name(library)
        if library == SCRATCH_LIBRARY:
            return

        if await self.catalog.library_exists(library):
            return

        suggestions = await self.catalog.similar_libraries(library)
        self.logger.warning(
            "Library not found", library=library, did_you_mean=suggestions or None
        )
        raise LibraryNotFoundError(
            f"Library {library} does not exist in your system.",
            missing=[library],
            suggestions=suggestions,
        )

    async def validate_container(self, container: str, library: str) -> None:
        """Raise ``ContainerNotFoundError`` unless the source PF exists and is eligible."""
        container = canonical_name(container)
        library = canonical_name(library)

        if await self.catalog.container_exists(library, container):
            return

        available = await self.catalog.container_member_counts(library)
        self.logger.warning(
            "Source PF not found",
            library=library,
            source_pf=container,
            available_source_pfs=sorted(available),
        )
        raise ContainerNotFoundError(
            f"Source PF {container} does not exist in library {library}",
            missing=[container],
            available=available,
        )

    async def validate_members(
        self, names: list[str], container: str, library: str
    ) -> list[str]:
        """Resolve requested members case-insensitively.

        Args:
            names: Member names as requested
            container: Source PF holding the members
            library: Library holding the source PF

        Returns:
            Canonical member names in request order, without duplicates

        Raises:
            MemberNotFoundError: Listing exactly the names that do not exist
        """
        requested = dedupe([canonical_name(name) for name in names])
        existing = {
            canonical_name(member)
            for member, _ in await self.catalog.list_members(
                canonical_name(library), canonical_name(container)
            )
        }

        missing = [name for name in requested if name not in existing]
        if missing:
            self.logger.warning(
                "Members not found", library=library, source_pf=container, missing=missing
            )
            raise MemberNotFoundError(
                f"Members not found in {library}/{container}: {', '.join(missing)}",
                missing=missing,
            )
        return requested

    async def validate_scope(self, scope: MigrationScope) -> None:
        """Run every check the scope calls for, stopping at the first failure."""
        await self.validate_library(scope.library)
        if scope.container:
            await self.validate_container(scope.container, scope.library)
        if scope.members:
            await self.validate_members(scope.members, scope.container, scope.library)
