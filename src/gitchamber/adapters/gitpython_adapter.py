"""Structured repository adapter backed by GitPython.

GitPython is synchronous; every call is pushed to the default executor so the
event loop is never blocked.
"""

import asyncio
import logging
import os
from typing import Callable, Dict, List, Optional, TypeVar

import git

from .base import (
    AdapterBranch,
    Change,
    ChangeStatus,
    EnablementListener,
    RepositoryHead,
    RepositoryProvider,
    RepositoryState,
    StructuredRepository,
    UpstreamRef,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Only these are forwarded into GitPython's per-repo environment overrides
_FORWARDED_ENV_KEYS = ("GIT_TERMINAL_PROMPT", "SSH_AUTH_SOCK")

_INDEX_CHANGE_TYPES = {
    "A": ChangeStatus.INDEX_ADDED,
    "D": ChangeStatus.INDEX_DELETED,
    "R": ChangeStatus.INDEX_RENAMED,
    "C": ChangeStatus.INDEX_COPIED,
    "M": ChangeStatus.INDEX_MODIFIED,
    "T": ChangeStatus.TYPE_CHANGED,
}

_WORKTREE_CHANGE_TYPES = {
    "D": ChangeStatus.DELETED,
    "M": ChangeStatus.MODIFIED,
    "T": ChangeStatus.TYPE_CHANGED,
}


def _unmerged_status(stages: set) -> ChangeStatus:
    """Classify an unmerged path from the index stages present (1=base, 2=ours, 3=theirs)."""
    ours, theirs, base = 2 in stages, 3 in stages, 1 in stages
    if ours and theirs:
        return ChangeStatus.BOTH_MODIFIED if base else ChangeStatus.BOTH_ADDED
    if base and ours:
        return ChangeStatus.DELETED_BY_THEM
    if base and theirs:
        return ChangeStatus.DELETED_BY_US
    if ours:
        return ChangeStatus.ADDED_BY_US
    if theirs:
        return ChangeStatus.ADDED_BY_THEM
    return ChangeStatus.BOTH_DELETED


async def _in_executor(fn: Callable[[], T]) -> T:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, fn)


class GitPythonRepository(StructuredRepository):
    """StructuredRepository over a ``git.Repo``."""

    def __init__(self, repo: git.Repo):
        self._repo = repo
        self.root = str(repo.working_tree_dir or repo.git_dir)

    def _read_head(self) -> RepositoryHead:
        repo = self._repo
        head = RepositoryHead()
        if repo.head.is_valid():
            head.commit = repo.head.commit.hexsha
        if repo.head.is_detached:
            return head

        branch = repo.active_branch
        head.name = branch.name
        tracking = branch.tracking_branch()
        if tracking is None:
            return head

        head.upstream = UpstreamRef(remote=tracking.remote_name, name=tracking.remote_head)
        if head.commit and tracking.is_valid():
            counts = repo.git.rev_list("--left-right", "--count", f"{branch.path}...{tracking.path}")
            parts = counts.split()
            if len(parts) == 2:
                head.ahead, head.behind = int(parts[0]), int(parts[1])
        return head

    def _read_state(self) -> RepositoryState:
        repo = self._repo
        state = RepositoryState(head=self._read_head())

        unmerged: Dict[str, set] = {}
        for path, entries in repo.index.unmerged_blobs().items():
            unmerged[str(path)] = {stage for stage, _ in entries}
        for path, stages in unmerged.items():
            state.merge_changes.append(Change(path=path, status=_unmerged_status(stages)))

        if repo.head.is_valid():
            for diff in repo.head.commit.diff():
                path = diff.b_path or diff.a_path
                if path in unmerged:
                    continue
                status = _INDEX_CHANGE_TYPES.get(diff.change_type)
                if status is not None:
                    state.index_changes.append(Change(path=path, status=status))
        else:
            # Unborn branch: everything staged is an addition
            for path, stage in repo.index.entries.keys():
                if stage == 0:
                    state.index_changes.append(Change(path=str(path), status=ChangeStatus.INDEX_ADDED))

        for diff in repo.index.diff(None):
            path = diff.a_path or diff.b_path
            if path in unmerged:
                continue
            status = _WORKTREE_CHANGE_TYPES.get(diff.change_type)
            if status is not None:
                state.working_tree_changes.append(Change(path=path, status=status))

        for path in repo.untracked_files:
            state.working_tree_changes.append(Change(path=path, status=ChangeStatus.UNTRACKED))

        return state

    async def get_state(self) -> RepositoryState:
        return await _in_executor(self._read_state)

    def _list_branches(self, remote: bool) -> List[AdapterBranch]:
        if not remote:
            return [AdapterBranch(name=head.name, commit=head.commit.hexsha) for head in self._repo.heads]
        branches = []
        for remote_obj in self._repo.remotes:
            for ref in remote_obj.refs:
                if ref.remote_head == "HEAD":
                    continue
                branches.append(AdapterBranch(name=ref.name, commit=ref.commit.hexsha))
        return branches

    async def get_branches(self, remote: bool = False) -> List[AdapterBranch]:
        return await _in_executor(lambda: self._list_branches(remote))

    async def checkout(self, ref: str) -> None:
        await _in_executor(lambda: self._repo.git.checkout(ref))

    async def create_branch(self, name: str, checkout: bool = False, start_point: Optional[str] = None) -> None:
        args = ["-b", name] if checkout else [name]
        if start_point:
            args.append(start_point)
        if checkout:
            await _in_executor(lambda: self._repo.git.checkout(*args))
        else:
            await _in_executor(lambda: self._repo.git.branch(*args))

    async def delete_branch(self, name: str, force: bool = False) -> None:
        await _in_executor(lambda: self._repo.git.branch("-D" if force else "-d", name))

    async def add(self, paths: List[str]) -> None:
        await _in_executor(lambda: self._repo.git.add("--", *paths))

    async def commit(self, message: str) -> None:
        await _in_executor(lambda: self._repo.git.commit("-m", message))

    async def pull(self) -> None:
        await _in_executor(lambda: self._repo.git.pull())

    async def fetch(self, remote: Optional[str] = None, ref: Optional[str] = None) -> None:
        args = [value for value in (remote, ref) if value]
        await _in_executor(lambda: self._repo.git.fetch(*args))

    async def revert(self, paths: List[str]) -> None:
        await _in_executor(lambda: self._repo.git.checkout("--", *paths))

    async def show(self, ref: str, path: str) -> str:
        # strip_newline_in_stdout=False keeps file content byte-faithful
        return await _in_executor(
            lambda: self._repo.git.show(f"{ref}:{path}", strip_newline_in_stdout=False)
        )

    async def get_config(self, key: str) -> str:
        return await _in_executor(lambda: self._repo.git.config("--get", key))

    async def set_config(self, key: str, value: str) -> None:
        await _in_executor(lambda: self._repo.git.config(key, value))


class GitPythonProvider(RepositoryProvider):
    """Opens repositories with GitPython, applying the credential environment."""

    def __init__(self, env_builder=None):
        self.env_builder = env_builder
        self._enabled = True
        self._listeners: List[EnablementListener] = []

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        if enabled == self._enabled:
            return
        self._enabled = enabled
        for listener in list(self._listeners):
            listener(enabled)

    def on_enablement_change(self, listener: EnablementListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _env_overrides(self) -> Dict[str, str]:
        env = dict(os.environ)
        if self.env_builder is not None:
            env = await self.env_builder.build_env()
        overrides = {key: env[key] for key in _FORWARDED_ENV_KEYS if env.get(key)}
        overrides["GIT_TERMINAL_PROMPT"] = "0"
        return overrides

    async def open_repository(self, directory: str) -> Optional[StructuredRepository]:
        if not directory or not os.path.isdir(directory):
            return None

        def _open() -> Optional[git.Repo]:
            try:
                return git.Repo(directory, search_parent_directories=True)
            except (git.InvalidGitRepositoryError, git.NoSuchPathError):
                return None

        repo = await _in_executor(_open)
        if repo is None or repo.bare:
            return None
        repo.git.update_environment(**(await self._env_overrides()))
        return GitPythonRepository(repo)
