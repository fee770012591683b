"""Catalog queries that enumerate source PFs and members on the IBM i.

Source physical files and their members are read from
``QSYS2.SYSPARTITIONSTAT``. A source PF is eligible for migration when at
least one of its members has a non-blank ``SOURCE_TYPE``; members with a
blank type are never migrated.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any

import structlog

from ..constants import (
    ALIAS_CONTAINER,
    ALIAS_LIBRARY,
    ALIAS_MEMBER,
    ALIAS_SOURCE_TYPE,
    COL_CONTAINER,
    COL_LIBRARY,
    COL_MEMBER,
    COL_SOURCE_TYPE,
    COLUMN_CATALOG,
    DB2UTIL_COMMAND,
    DUMMY_TABLE,
    INVARIANT_CCSID,
    PARTITION_CATALOG,
)
from ..utils import canonical_name, sql_literal
from .exceptions import CatalogQueryError
from .host_runner import CommandRunner
from .settings import CATALOG_QUERY_TIMEOUT

logger = structlog.get_logger()

SourceRow = tuple[str, str, str]  # (container, member, source_type)


class CatalogService(ABC):
    """Read-only view of the libraries, source PFs and members on the source system."""

    @abstractmethod
    async def library_exists(self, library: str) -> bool:
        """True when the library holds at least one eligible source PF."""

    @abstractmethod
    async def container_member_counts(self, library: str) -> dict[str, int]:
        """Eligible source PFs of a library mapped to their eligible member counts."""

    @abstractmethod
    async def container_exists(self, library: str, container: str) -> bool:
        """True when the source PF exists in the library and is eligible."""

    @abstractmethod
    async def list_members(self, library: str, container: str) -> list[tuple[str, str]]:
        """Eligible members of a source PF as (member, source_type) pairs."""

    @abstractmethod
    async def list_sources(
        self,
        library: str,
        container: str | None = None,
        members: list[str] | None = None,
    ) -> list[SourceRow]:
        """Eligible (container, member, source_type) rows, optionally filtered."""

    async def list_eligible_containers(self, library: str) -> list[str]:
        """Names of the library's eligible source PFs, sorted."""
        return sorted(await self.container_member_counts(library))

    async def similar_libraries(self, library: str, limit: int = 10) -> list[str]:
        """Library names resembling ``library``; diagnostic only."""
        return []

    async def system_name(self) -> str:
        return "UNKNOWN"

    async def system_ccsid(self) -> str:
        return ""


# SQL builders


def _name_column(column: str, alias: str) -> str:
    return f"CAST({column} AS VARCHAR(10) CCSID {INVARIANT_CCSID}) AS {alias}"


def _eligible() -> str:
    return f"TRIM({COL_SOURCE_TYPE}) <> ''"


def build_library_exists_query(library: str) -> str:
    return (
        f"SELECT 1 AS FOUND FROM {PARTITION_CATALOG} "
        f"WHERE {COL_LIBRARY} = {sql_literal(library)} "
        f"AND {_eligible()} LIMIT 1"
    )


def build_container_counts_query(library: str) -> str:
    return (
        f"SELECT {_name_column(COL_CONTAINER, ALIAS_CONTAINER)}, COUNT(*) AS MEMBERS "
        f"FROM {PARTITION_CATALOG} "
        f"WHERE {COL_LIBRARY} = {sql_literal(library)} "
        f"AND {_eligible()} "
        f"GROUP BY {COL_CONTAINER} ORDER BY {COL_CONTAINER}"
    )


def build_container_exists_query(library: str, container: str) -> str:
    return (
        f"SELECT 1 AS FOUND FROM {PARTITION_CATALOG} "
        f"WHERE {COL_LIBRARY} = {sql_literal(library)} "
        f"AND {COL_CONTAINER} = {sql_literal(container)} "
        f"AND {_eligible()} LIMIT 1"
    )


def build_sources_query(
    library: str,
    container: str | None = None,
    members: list[str] | None = None,
) -> str:
    """Build the single enumeration query for all three migration scopes.

    Args:
        library: Library to read
        container: Restrict to one source PF
        members: Restrict to these members (requires ``container``)

    Returns:
        SQL selecting SOURCEPF, MEMBER and SOURCETYPE ordered by source PF then member
    """
    conditions = [f"{COL_LIBRARY} = {sql_literal(library)}"]
    if container:
        conditions.append(f"{COL_CONTAINER} = {sql_literal(container)}")
    if members:
        in_list = ", ".join(sql_literal(m) for m in members)
        conditions.append(f"{COL_MEMBER} IN ({in_list})")
    conditions.append(_eligible())

    return (
        f"SELECT {_name_column(COL_CONTAINER, ALIAS_CONTAINER)}, "
        f"{_name_column(COL_MEMBER, ALIAS_MEMBER)}, "
        f"{_name_column(COL_SOURCE_TYPE, ALIAS_SOURCE_TYPE)} "
        f"FROM {PARTITION_CATALOG} "
        f"WHERE {' AND '.join(conditions)} "
        f"ORDER BY {COL_CONTAINER}, {COL_MEMBER}"
    )


def build_similar_libraries_query(library: str, limit: int) -> str:
    pattern = sql_literal(f"%{library}%")
    return (
        f"SELECT {_name_column(COL_LIBRARY, ALIAS_LIBRARY)} "
        f"FROM {PARTITION_CATALOG} "
        f"WHERE {COL_LIBRARY} LIKE {pattern} "
        f"GROUP BY {COL_LIBRARY} ORDER BY {COL_LIBRARY} LIMIT {int(limit)}"
    )


def build_system_name_query() -> str:
    return f"SELECT CURRENT_SERVER AS SERVER FROM {DUMMY_TABLE}"


def build_ccsid_query() -> str:
    return (
        f"SELECT CCSID FROM {COLUMN_CATALOG} "
        f"WHERE TABLE_NAME = 'SYSPARTITIONSTAT' AND TABLE_SCHEMA = 'QSYS2' "
        f"AND COLUMN_NAME = '{COL_CONTAINER}'"
    )


def _column(row: dict[str, Any], name: str) -> Any:
    try:
        return row[name]
    except KeyError as e:
        raise CatalogQueryError(f"Catalog row is missing column {name}: {row!r}") from e


def parse_db2util_json(output: str) -> list[dict[str, Any]]:
    """Parse ``db2util -o json`` output into rows with uppercase keys and trimmed values.

    Raises:
        CatalogQueryError: If the output is not the expected JSON shape
    """
    text = output.strip()
    if not text:
        return []
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise CatalogQueryError(f"Unreadable catalog output: {text[:200]}") from e

    records = payload.get("records", []) if isinstance(payload, dict) else payload
    if not isinstance(records, list):
        raise CatalogQueryError(f"Unexpected catalog output shape: {type(records).__name__}")

    rows = []
    for record in records:
        if not isinstance(record, dict):
            raise CatalogQueryError(f"Unexpected catalog record: {record!r}")
        rows.append(
            {
                str(key).upper(): value.strip() if isinstance(value, str) else value
                for key, value in record.items()
            }
        )
    return rows


class Db2CatalogService(CatalogService):
    """Catalog service backed by SQL run through ``db2util`` on the host."""

    def __init__(
        self,
        runner: CommandRunner,
        timeout: float = CATALOG_QUERY_TIMEOUT,
        db2util: str = DB2UTIL_COMMAND,
    ):
        self.runner = runner
        self.timeout = timeout
        self.db2util = db2util
        self.logger = logger.bind(component="catalog")

    async def query(self, sql: str) -> list[dict[str, Any]]:
        """Run one SQL statement and return its rows.

        Raises:
            CatalogQueryError: On timeout, non-zero exit or unreadable output
        """
        self.logger.debug("Running catalog query", sql=sql)
        try:
            result = await self.runner.run([self.db2util, "-o", "json", sql], timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise CatalogQueryError(f"Catalog query timed out after {self.timeout}s") from e

        if not result.success:
            raise CatalogQueryError(
                f"Catalog query failed (exit {result.returncode}): {result.output[:500]}"
            )
        return parse_db2util_json(result.stdout)

    async def library_exists(self, library: str) -> bool:
        return bool(await self.query(build_library_exists_query(library)))

    async def container_member_counts(self, library: str) -> dict[str, int]:
        rows = await self.query(build_container_counts_query(library))
        return {
            canonical_name(_column(row, ALIAS_CONTAINER)): int(_column(row, "MEMBERS"))
            for row in rows
        }

    async def container_exists(self, library: str, container: str) -> bool:
        return bool(await self.query(build_container_exists_query(library, container)))

    async def list_members(self, library: str, container: str) -> list[tuple[str, str]]:
        rows = await self.list_sources(library, container)
        return [(member, source_type) for _, member, source_type in rows]

    async def list_sources(
        self,
        library: str,
        container: str | None = None,
        members: list[str] | None = None,
    ) -> list[SourceRow]:
        rows = await self.query(build_sources_query(library, container, members))
        return [
            (
                canonical_name(_column(row, ALIAS_CONTAINER)),
                canonical_name(_column(row, ALIAS_MEMBER)),
                canonical_name(_column(row, ALIAS_SOURCE_TYPE)),
            )
            for row in rows
        ]

    async def similar_libraries(self, library: str, limit: int = 10) -> list[str]:
        rows = await self.query(build_similar_libraries_query(library, limit))
        return [canonical_name(_column(row, ALIAS_LIBRARY)) for row in rows]

    async def system_name(self) -> str:
        rows = await self.query(build_system_name_query())
        return str(_column(rows[0], "SERVER")) if rows else "UNKNOWN"

    async def system_ccsid(self) -> str:
        rows = await self.query(build_ccsid_query())
        return str(_column(rows[0], "CCSID")) if rows else ""
