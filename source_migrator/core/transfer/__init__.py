"""Transfer methods for copying source members to stream files."""

from .base import BaseTransfer  # noqa: F401
from .cpytostmf import CpyToStmfTransfer, build_cpytostmf_command  # noqa: F401

__all__ = [
    "BaseTransfer",
    "CpyToStmfTransfer",
    "build_cpytostmf_command",
]
