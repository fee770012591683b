"""Abstract base class for member transfer methods."""

import asyncio
from abc import ABC, abstractmethod

import structlog

from ...models.migration import MigrationTarget, TransferOutcome
from ..exceptions import InfrastructureError, TransferError

logger = structlog.get_logger()


class BaseTransfer(ABC):
    """Abstract base class for all transfer methods.

    ``copy`` is the only entry point used by the orchestrator and never raises
    for a failed member: the failure is returned as a ``TransferOutcome``.
    """

    def __init__(self):
        self.logger = logger.bind(component=self.__class__.__name__.lower())

    async def copy(self, target: MigrationTarget) -> TransferOutcome:
        """Copy one member to its destination stream file.

        Args:
            target: Fully resolved member and destination

        Returns:
            Success, or failure with a reason
        """
        try:
            await self._copy(target)
        except asyncio.TimeoutError:
            return TransferOutcome.failed(target, "transfer timed out")
        except (TransferError, InfrastructureError, OSError) as e:
            return TransferOutcome.failed(target, str(e))
        return TransferOutcome.ok(target)

    @abstractmethod
    async def _copy(self, target: MigrationTarget) -> None:
        """Perform the copy, raising ``TransferError`` on failure."""

    @abstractmethod
    async def validate_requirements(self) -> tuple[bool, str]:
        """Validate that this transfer method can be used on the host.

        Returns:
            Tuple of (is_valid: bool, error_message: str)
        """

    @abstractmethod
    def get_transfer_type(self) -> str:
        """Get the name/type of this transfer method."""
