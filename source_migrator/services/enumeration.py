"""Resolve a migration scope into concrete member targets."""

import structlog

from ..core.metadata import CatalogService
from ..models.migration import MigrationScope, MigrationTarget
from ..utils import canonical_name

logger = structlog.get_logger()


class TargetEnumerator:
    """Builds ``MigrationTarget`` lists from catalog rows."""

    def __init__(self, catalog: CatalogService):
        self.catalog = catalog
        self.logger = logger.bind(component="target_enumerator")

    async def enumerate_targets(
        self, scope: MigrationScope, output_root: str
    ) -> list[MigrationTarget]:
        """List every member covered by the scope, ordered by source PF then member.

        One catalog query serves all scopes: the source PF and member filters are
        applied only when the scope sets them. Source PFs without eligible
        members produce no targets.
        """
        rows = await self.catalog.list_sources(
            scope.library,
            container=scope.container,
            members=scope.members or None,
        )

        root = output_root.rstrip("/")
        targets = {
            (container, member): MigrationTarget(
                library=scope.library,
                container=container,
                member=member,
                source_type=canonical_name(source_type),
                destination_dir=f"{root}/{scope.library}/{container}",
            )
            for container, member, source_type in rows
            if source_type.strip()
        }

        ordered = [targets[key] for key in sorted(targets)]
        self.logger.debug(
            "Enumerated migration targets",
            library=scope.library,
            scope=scope.kind.value,
            targets=len(ordered),
        )
        return ordered


def group_by_container(targets: list[MigrationTarget]) -> dict[str, list[MigrationTarget]]:
    """Group targets by source PF, keeping source PF and member order."""
    groups: dict[str, list[MigrationTarget]] = {}
    for target in targets:
        groups.setdefault(target.container, []).append(target)
    return groups
