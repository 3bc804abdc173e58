"""Contract for the structured repository adapter (the fast path)."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, List, Optional


class ChangeStatus(IntEnum):
    """Change kinds reported by a structured repository."""
    INDEX_MODIFIED = 0
    INDEX_ADDED = 1
    INDEX_DELETED = 2
    INDEX_RENAMED = 3
    INDEX_COPIED = 4
    MODIFIED = 5
    DELETED = 6
    UNTRACKED = 7
    IGNORED = 8
    INTENT_TO_ADD = 9
    INTENT_TO_RENAME = 10
    TYPE_CHANGED = 11
    ADDED_BY_US = 12
    ADDED_BY_THEM = 13
    DELETED_BY_US = 14
    DELETED_BY_THEM = 15
    BOTH_ADDED = 16
    BOTH_DELETED = 17
    BOTH_MODIFIED = 18


@dataclass
class Change:
    path: str  # relative to the repository root
    status: int


@dataclass
class UpstreamRef:
    remote: str
    name: str


@dataclass
class RepositoryHead:
    name: Optional[str] = None  # None when detached
    commit: Optional[str] = None
    upstream: Optional[UpstreamRef] = None
    ahead: int = 0
    behind: int = 0


@dataclass
class RepositoryState:
    head: Optional[RepositoryHead] = None
    index_changes: List[Change] = field(default_factory=list)
    working_tree_changes: List[Change] = field(default_factory=list)
    merge_changes: List[Change] = field(default_factory=list)


@dataclass
class AdapterBranch:
    name: str
    commit: str = ""


class StructuredRepository(ABC):
    """
    One repository opened through the structured adapter.

    Every method may raise; callers treat any exception as "adapter unhealthy"
    and fall back to the command-line path.
    """

    root: str

    @abstractmethod
    async def get_state(self) -> RepositoryState:
        pass

    @abstractmethod
    async def get_branches(self, remote: bool = False) -> List[AdapterBranch]:
        pass

    @abstractmethod
    async def checkout(self, ref: str) -> None:
        pass

    @abstractmethod
    async def create_branch(self, name: str, checkout: bool = False, start_point: Optional[str] = None) -> None:
        pass

    @abstractmethod
    async def delete_branch(self, name: str, force: bool = False) -> None:
        pass

    @abstractmethod
    async def add(self, paths: List[str]) -> None:
        pass

    @abstractmethod
    async def commit(self, message: str) -> None:
        pass

    @abstractmethod
    async def pull(self) -> None:
        pass

    @abstractmethod
    async def fetch(self, remote: Optional[str] = None, ref: Optional[str] = None) -> None:
        pass

    @abstractmethod
    async def revert(self, paths: List[str]) -> None:
        """Discard working-tree changes to paths."""
        pass

    @abstractmethod
    async def show(self, ref: str, path: str) -> str:
        """Content of path at ref (``HEAD``, or ``:0`` for the index)."""
        pass

    @abstractmethod
    async def get_config(self, key: str) -> str:
        pass

    @abstractmethod
    async def set_config(self, key: str, value: str) -> None:
        pass


EnablementListener = Callable[[bool], None]


class RepositoryProvider(ABC):
    """Source of StructuredRepository handles (one per process)."""

    @property
    @abstractmethod
    def enabled(self) -> bool:
        pass

    @abstractmethod
    async def open_repository(self, directory: str) -> Optional[StructuredRepository]:
        """Repository containing directory, or None when it is not a repository."""
        pass

    @abstractmethod
    def on_enablement_change(self, listener: EnablementListener) -> Callable[[], None]:
        """Register listener; returns a callable that unsubscribes it."""
        pass
