"""Status & branch engine: structured adapter first, porcelain parsing as fallback."""

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

from ..adapters.base import ChangeStatus, RepositoryState, StructuredRepository
from ..adapters.service import AdapterService
from ..utils.subprocess_utils import GitExecutor
from .models import (
    BranchDetail,
    BranchResult,
    FileStatus,
    InProgressState,
    MergeInProgress,
    RebaseInProgress,
    StatusResult,
)
from .parsers import BRANCH_LIST_FORMAT, parse_branch_listing, parse_status_porcelain

logger = logging.getLogger(__name__)

STATUS_CODE_MAP: Dict[int, str] = {
    ChangeStatus.INDEX_MODIFIED: "M",
    ChangeStatus.INDEX_ADDED: "A",
    ChangeStatus.INDEX_DELETED: "D",
    ChangeStatus.INDEX_RENAMED: "R",
    ChangeStatus.INDEX_COPIED: "C",
    ChangeStatus.MODIFIED: "M",
    ChangeStatus.DELETED: "D",
    ChangeStatus.UNTRACKED: "?",
    ChangeStatus.IGNORED: "!",
    ChangeStatus.INTENT_TO_ADD: "A",
    ChangeStatus.INTENT_TO_RENAME: "R",
    ChangeStatus.TYPE_CHANGED: "T",
    ChangeStatus.ADDED_BY_US: "U",
    ChangeStatus.ADDED_BY_THEM: "U",
    ChangeStatus.DELETED_BY_US: "U",
    ChangeStatus.DELETED_BY_THEM: "U",
    ChangeStatus.BOTH_ADDED: "U",
    ChangeStatus.BOTH_DELETED: "U",
    ChangeStatus.BOTH_MODIFIED: "U",
}


def map_change_status(status: int) -> str:
    """Single-character status code; unknown codes map to a space."""
    return STATUS_CODE_MAP.get(status, " ")


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return ""


def resolve_git_dir(directory: str) -> Path:
    """
    ``<directory>/.git``, following the ``gitdir:`` pointer linked worktrees use.
    """
    dot_git = Path(directory) / ".git"
    if dot_git.is_file():
        content = _read_text(dot_git).strip()
        if content.startswith("gitdir:"):
            target = Path(content[len("gitdir:"):].strip())
            return target if target.is_absolute() else (Path(directory) / target).resolve()
    return dot_git


def read_in_progress_state(directory: str) -> InProgressState:
    """
    Detect an interrupted merge or rebase from git's marker files.

    A merge counts only when MERGE_HEAD yields a non-empty short sha; a rebase
    only when head-name or onto is non-empty.
    """
    state = InProgressState()
    git_dir = resolve_git_dir(directory)

    merge_head_path = git_dir / "MERGE_HEAD"
    if merge_head_path.exists():
        head_sha = _read_text(merge_head_path).strip()[:7]
        if head_sha:
            merge_msg = _read_text(git_dir / "MERGE_MSG")
            state.merge_in_progress = MergeInProgress(
                head=head_sha,
                message=merge_msg.split("\n")[0] if merge_msg else "",
            )

    for rebase_dir_name in ("rebase-merge", "rebase-apply"):
        rebase_dir = git_dir / rebase_dir_name
        if not rebase_dir.exists():
            continue
        head_name = _read_text(rebase_dir / "head-name").strip().replace("refs/heads/", "", 1)
        onto = _read_text(rebase_dir / "onto").strip()[:7]
        if head_name or onto:
            state.rebase_in_progress = RebaseInProgress(head_name=head_name, onto=onto)
        break

    return state


def files_from_state(state: RepositoryState) -> List[FileStatus]:
    """Merge index, working-tree and unmerged changes into one entry per path."""
    files: List[FileStatus] = []
    by_path: Dict[str, FileStatus] = {}

    for change in state.index_changes:
        entry = FileStatus(path=change.path, index=map_change_status(change.status), working_dir=" ")
        files.append(entry)
        by_path[change.path] = entry

    for change in state.working_tree_changes:
        existing = by_path.get(change.path)
        if existing is not None:
            existing.working_dir = map_change_status(change.status)
            continue
        entry = FileStatus(path=change.path, index=" ", working_dir=map_change_status(change.status))
        files.append(entry)
        by_path[change.path] = entry

    for change in state.merge_changes:
        code = map_change_status(change.status)
        existing = by_path.get(change.path)
        if existing is not None:
            existing.index = existing.working_dir = code
            continue
        entry = FileStatus(path=change.path, index=code, working_dir=code)
        files.append(entry)
        by_path[change.path] = entry

    return files


class StatusEngine:
    """Builds status snapshots and branch inventories, fresh on every call."""

    def __init__(self, executor: GitExecutor, adapters: Optional[AdapterService] = None):
        self.executor = executor
        self.adapters = adapters or AdapterService()

    async def _repository(self, directory: str) -> Optional[StructuredRepository]:
        return await self.adapters.get_repository(directory)

    # ============== Status ==============

    async def get_status(self, directory: str) -> StatusResult:
        repo = await self._repository(directory)
        if repo is not None:
            try:
                return await self._status_from_adapter(repo, directory)
            except Exception as e:
                logger.warning(f"Structured status failed for {directory}, using git CLI: {e}")
        return await self.get_status_raw(directory)

    async def _status_from_adapter(self, repo: StructuredRepository, directory: str) -> StatusResult:
        state = await repo.get_state()
        head = state.head
        in_progress = read_in_progress_state(directory)
        tracking = None
        if head is not None and head.upstream is not None:
            tracking = f"{head.upstream.remote}/{head.upstream.name}"
        return StatusResult(
            current=(head.name if head else None) or "",
            tracking=tracking,
            ahead=(head.ahead if head else 0) or 0,
            behind=(head.behind if head else 0) or 0,
            files=files_from_state(state),
            merge_in_progress=in_progress.merge_in_progress,
            rebase_in_progress=in_progress.rebase_in_progress,
        )

    async def get_status_raw(self, directory: str) -> StatusResult:
        """``git status --porcelain=v1 -b -uall``; an empty clean result when git fails."""
        result = await self.executor.run(["status", "--porcelain=v1", "-b", "-uall"], directory)
        if not result.success:
            logger.debug(f"git status failed in {directory}: {result.message}")
            return StatusResult()

        status = parse_status_porcelain(result.stdout)
        in_progress = read_in_progress_state(directory)
        status.merge_in_progress = in_progress.merge_in_progress
        status.rebase_in_progress = in_progress.rebase_in_progress
        return status

    # ============== Branches ==============

    async def get_branches(self, directory: str) -> BranchResult:
        repo = await self._repository(directory)
        if repo is not None:
            try:
                return await self._branches_from_adapter(repo)
            except Exception as e:
                logger.warning(f"Structured branch listing failed for {directory}, using git CLI: {e}")
        return await self.get_branches_raw(directory)

    async def _branches_from_adapter(self, repo: StructuredRepository) -> BranchResult:
        state = await repo.get_state()
        head = state.head
        current = (head.name if head else None) or ""
        result = BranchResult(current=current)

        for ref in await repo.get_branches(remote=False):
            if not ref.name:
                continue
            result.all.append(ref.name)
            result.branches[ref.name] = BranchDetail(
                current=ref.name == current,
                name=ref.name,
                commit=ref.commit or "",
                label=ref.name,
            )

        for ref in await repo.get_branches(remote=True):
            if not ref.name:
                continue
            key = f"remotes/{ref.name}"
            result.all.append(key)
            result.branches[key] = BranchDetail(
                current=False,
                name=key,
                commit=ref.commit or "",
                label=ref.name,
            )

        if head is not None and head.name and head.upstream is not None:
            detail = result.branches.get(head.name)
            if detail is not None:
                detail.tracking = f"{head.upstream.remote}/{head.upstream.name}"
                detail.ahead = head.ahead
                detail.behind = head.behind

        return result

    async def get_branches_raw(self, directory: str) -> BranchResult:
        result = await self.executor.run(["branch", "-a", "-v", f"--format={BRANCH_LIST_FORMAT}"], directory)
        if not result.success:
            logger.debug(f"git branch failed in {directory}: {result.message}")
            return BranchResult()
        return parse_branch_listing(result.stdout)

    # ============== HEAD ==============

    async def get_current_branch(self, directory: str) -> Optional[str]:
        """Current branch name, or None when HEAD is detached."""
        repo = await self._repository(directory)
        if repo is not None:
            try:
                state = await repo.get_state()
                return (state.head.name if state.head else None) or None
            except Exception as e:
                logger.warning(f"Structured HEAD lookup failed for {directory}, using git CLI: {e}")

        result = await self.executor.run(["symbolic-ref", "--short", "HEAD"], directory)
        if result.success:
            return result.stdout.strip()
        return None

    async def is_git_repository(self, directory: str) -> bool:
        result = await self.executor.run(["rev-parse", "--is-inside-work-tree"], directory)
        return result.success and result.stdout.strip() == "true"

    async def is_linked_worktree(self, directory: str) -> bool:
        """True when directory's git-dir differs from the common dir."""
        git_dir = await self.executor.run(["rev-parse", "--git-dir"], directory)
        common_dir = await self.executor.run(["rev-parse", "--git-common-dir"], directory)
        if not git_dir.success or not common_dir.success:
            return False
        git_dir_path = os.path.normpath(os.path.join(directory, git_dir.stdout.strip()))
        common_dir_path = os.path.normpath(os.path.join(directory, common_dir.stdout.strip()))
        return git_dir_path != common_dir_path
