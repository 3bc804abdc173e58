"""Core models, configuration and git engines."""

from .config import ChamberConfig, load_config
from .conflicts import ConflictController
from .models import (
    BranchResult,
    CreateWorktreeRequest,
    RemoveWorktreeRequest,
    StatusResult,
    ValidationCode,
    WorktreeInfo,
    WorktreeMode,
    WorktreeValidationResult,
)
from .repository_ops import RepositoryOperations
from .status import StatusEngine

__all__ = [
    "ChamberConfig",
    "load_config",
    "ConflictController",
    "BranchResult",
    "CreateWorktreeRequest",
    "RemoveWorktreeRequest",
    "StatusResult",
    "ValidationCode",
    "WorktreeInfo",
    "WorktreeMode",
    "WorktreeValidationResult",
    "RepositoryOperations",
    "StatusEngine",
]
