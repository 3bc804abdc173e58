"""Structured repository adapters (the fast path over the git CLI)."""

from .base import (
    AdapterBranch,
    Change,
    ChangeStatus,
    RepositoryHead,
    RepositoryProvider,
    RepositoryState,
    StructuredRepository,
    UpstreamRef,
)
from .gitpython_adapter import GitPythonProvider, GitPythonRepository
from .service import AdapterService

__all__ = [
    "AdapterBranch",
    "AdapterService",
    "Change",
    "ChangeStatus",
    "GitPythonProvider",
    "GitPythonRepository",
    "RepositoryHead",
    "RepositoryProvider",
    "RepositoryState",
    "StructuredRepository",
    "UpstreamRef",
]
