"""Source member migration orchestrator."""

import asyncio
import time
from collections.abc import Callable

import structlog
from structlog.stdlib import BoundLogger

from ..core.exceptions import InfrastructureError, PreconditionError
from ..core.filesystem import DirectoryMirror, Filesystem
from ..core.metadata import CatalogService
from ..core.settings import MAX_CONCURRENCY, MIGRATION_DEADLINE
from ..core.transfer.base import BaseTransfer
from ..models.enums import MigrationState
from ..models.migration import MigrationScope, MigrationSummary, MigrationTarget, TransferOutcome
from .enumeration import TargetEnumerator, group_by_container
from .validation import MigrationValidator

OutcomeCallback = Callable[[TransferOutcome], None]


class SourceMigrationOrchestrator:
    """Orchestrates the migration of source members to stream files.

    A run validates the scope, enumerates targets, then walks the source PFs
    in order: each source PF directory is created before any of its members
    is dispatched, and members are copied as independent concurrent tasks.
    Outcomes flow through one queue into a single aggregator, so the summary
    counters are only ever touched by one task. The run waits for every
    dispatched transfer before summarizing.
    """

    def __init__(
        self,
        catalog: CatalogService,
        transfer: BaseTransfer,
        filesystem: Filesystem,
        max_concurrency: int = MAX_CONCURRENCY,
        deadline: float | None = MIGRATION_DEADLINE,
        on_outcome: OutcomeCallback | None = None,
    ):
        """Initialize the orchestrator and its components.

        Args:
            catalog: Catalog queries for validation and enumeration
            transfer: Member copy method
            filesystem: Where the output directory tree is mirrored
            max_concurrency: Maximum in-flight transfers, 0 for unbounded
            deadline: Seconds after which no new transfers are dispatched
            on_outcome: Called once per finished transfer, from the aggregator
        """
        if max_concurrency < 0:
            raise ValueError("max_concurrency must be >= 0")

        self.validator = MigrationValidator(catalog)
        self.enumerator = TargetEnumerator(catalog)
        self.transfer = transfer
        self.filesystem = filesystem
        self.max_concurrency = max_concurrency
        self.deadline = deadline
        self.on_outcome = on_outcome
        self.state = MigrationState.IDLE
        self._cancel_event = asyncio.Event()
        self._deadline_hit = False
        self._stop_reason: str | None = None
        self.logger: BoundLogger = structlog.get_logger().bind(component="migration_orchestrator")

    def cancel(self) -> None:
        """Stop dispatching new transfers; in-flight ones still finish.

        Cancellation is sticky: later runs on this orchestrator dispatch
        nothing. A deadline stop only applies to the run that hit it.
        """
        if not self._cancel_event.is_set():
            self.logger.warning("Migration cancellation requested")
            self._cancel_event.set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event.is_set()

    def _set_state(self, state: MigrationState) -> None:
        if state is not self.state:
            self.logger.debug("Migration state changed", previous=self.state.value, state=state.value)
            self.state = state

    def _should_stop(self, deadline_at: float | None) -> bool:
        if self._deadline_hit:
            return True
        if self._cancel_event.is_set():
            self._stop_reason = self._stop_reason or "cancelled"
            return True
        if deadline_at is not None and time.monotonic() >= deadline_at:
            self.logger.warning("Migration deadline exceeded, no more transfers will start")
            self._stop_reason = "deadline exceeded"
            self._deadline_hit = True
            return True
        return False

    async def run(
        self,
        scope: MigrationScope,
        output_root: str,
        dry_run: bool = False,
        validated: bool = False,
    ) -> MigrationSummary:
        """Migrate everything the scope covers.

        Args:
            scope: Library, optional source PF and optional member list
            output_root: Resolved absolute output directory
            dry_run: Validate and enumerate only; create nothing, copy nothing
            validated: The caller already ran ``validator.validate_scope(scope)``

        Returns:
            Summary of the run. Individual member failures are reported in it,
            never raised.

        Raises:
            PreconditionError: Validation failed; nothing was dispatched
            InfrastructureError: Catalog or output directory unusable
        """
        started = time.monotonic()
        summary = MigrationSummary(library=scope.library, output_root=output_root, dry_run=dry_run)

        try:
            if not validated:
                self._set_state(MigrationState.VALIDATING)
                await self.validator.validate_scope(scope)

            self._set_state(MigrationState.ENUMERATING)
            targets = await self.enumerator.enumerate_targets(scope, output_root)

            if dry_run:
                summary.planned_paths = [target.destination_path for target in targets]
            else:
                await self._migrate_targets(targets, scope.library, output_root, summary, started)
        except (PreconditionError, InfrastructureError) as e:
            self._set_state(MigrationState.FAILED)
            summary.state = MigrationState.FAILED
            self.logger.error(
                "Migration aborted", library=scope.library, error=str(e), error_type=type(e).__name__
            )
            raise

        self._set_state(MigrationState.SUMMARIZING)
        summary.elapsed_seconds = time.monotonic() - started
        summary.migrated_paths.sort()
        summary.state = MigrationState.DONE
        self._set_state(MigrationState.DONE)

        self.logger.info(
            "Migration completed",
            library=scope.library,
            containers_migrated=summary.containers_migrated,
            members_migrated=summary.members_migrated,
            errors=summary.errors,
            skipped=summary.skipped,
            elapsed_seconds=round(summary.elapsed_seconds, 2),
        )
        return summary

    async def _migrate_targets(
        self,
        targets: list[MigrationTarget],
        library: str,
        output_root: str,
        summary: MigrationSummary,
        started: float,
    ) -> None:
        """Mirror directories and fan out transfers, then drain everything dispatched."""
        mirror = DirectoryMirror(self.filesystem, output_root)
        deadline_at = started + self.deadline if self.deadline else None
        self._deadline_hit = False
        self._stop_reason = None

        self._set_state(MigrationState.MIRRORING_DIRECTORIES)
        await mirror.ensure_library(library)

        queue: asyncio.Queue[TransferOutcome | None] = asyncio.Queue()
        aggregator = asyncio.create_task(self._aggregate(queue, summary))
        semaphore = asyncio.Semaphore(self.max_concurrency) if self.max_concurrency else None
        tasks: list[asyncio.Task] = []

        try:
            for container, group in group_by_container(targets).items():
                if self._should_stop(deadline_at):
                    break

                self._set_state(MigrationState.MIRRORING_DIRECTORIES)
                await mirror.ensure_container(library, container)

                self._set_state(MigrationState.DISPATCHING)
                self.logger.info("Migrating source PF", library=library, source_pf=container)
                dispatched = await self._dispatch_group(group, semaphore, queue, tasks, deadline_at)
                if dispatched < len(group):
                    break
                summary.containers_migrated += 1
        finally:
            self._set_state(MigrationState.AWAITING)
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
            await queue.put(None)
            await aggregator

        summary.skipped = len(targets) - len(tasks)
        summary.cancelled = self._deadline_hit or self._cancel_event.is_set()
        if summary.skipped:
            self.logger.warning(
                "Migration stopped before all members were dispatched",
                reason=self._stop_reason,
                skipped=summary.skipped,
            )

    async def _dispatch_group(
        self,
        group: list[MigrationTarget],
        semaphore: asyncio.Semaphore | None,
        queue: asyncio.Queue,
        tasks: list[asyncio.Task],
        deadline_at: float | None,
    ) -> int:
        """Start a task per member; returns how many were started."""
        dispatched = 0
        for target in group:
            if self._should_stop(deadline_at):
                break
            if semaphore is not None:
                await semaphore.acquire()
                if self._should_stop(deadline_at):
                    semaphore.release()
                    break
            tasks.append(asyncio.create_task(self._run_transfer(target, semaphore, queue)))
            dispatched += 1
        return dispatched

    async def _run_transfer(
        self,
        target: MigrationTarget,
        semaphore: asyncio.Semaphore | None,
        queue: asyncio.Queue,
    ) -> None:
        """Copy one member and hand its outcome to the aggregator."""
        try:
            outcome = await self.transfer.copy(target)
        except Exception as e:
            self.logger.exception("Unexpected transfer failure", member=target.label)
            outcome = TransferOutcome.failed(target, f"unexpected error: {e}")
        finally:
            if semaphore is not None:
                semaphore.release()
        await queue.put(outcome)

    async def _aggregate(self, queue: asyncio.Queue, summary: MigrationSummary) -> None:
        """Fold outcomes into the summary until the end-of-run sentinel arrives."""
        while True:
            outcome = await queue.get()
            if outcome is None:
                return

            summary.record(outcome)
            target = outcome.target
            if outcome.success:
                self.logger.info(
                    "Member migrated",
                    source_pf=target.container,
                    member=target.file_name,
                    path=target.destination_path,
                )
            else:
                self.logger.error(
                    "Member migration failed",
                    source_pf=target.container,
                    member=target.member,
                    reason=outcome.reason,
                )

            if self.on_outcome is not None:
                try:
                    self.on_outcome(outcome)
                except Exception:
                    self.logger.exception("Outcome callback failed", member=target.label)
