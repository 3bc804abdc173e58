"""GitService: the caller-facing facade over the engines.

One instance serves any number of repositories; every operation takes the
repository directory explicitly and holds no per-repository state between
calls (the adapter provider is the only process-scoped memo).
"""

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

from .adapters import AdapterService, GitPythonProvider
from .core.config import ChamberConfig, load_config
from .core.conflicts import ConflictController
from .core.models import (
    BranchDetail,
    BranchOperationResult,
    BranchResult,
    CommitFile,
    CommitResult,
    ConflictResult,
    CreateWorktreeRequest,
    DetachResult,
    DiffResult,
    FileDiff,
    GitIdentity,
    GitRemote,
    LogResult,
    OperationResult,
    ProjectWorktree,
    PullResult,
    PushResult,
    RemoveWorktreeRequest,
    StatusResult,
    WorktreeInfo,
    WorktreeMode,
    WorktreeValidationResult,
)
from .core.parsers import GitOptions
from .core.repository_ops import RepositoryOperations
from .core.status import StatusEngine
from .utils.credentials import CredentialEnvResolver
from .utils.error_handling import safe_await
from .utils.subprocess_utils import GitExecutor
from .utils.validators import clean_branch_name, normalize_branch_name, parse_remote_branch_ref
from .workspace.project_store import JsonProjectStore, ProjectStore
from .workspace.start_scripts import StartScriptRunner
from .workspace.worktree_manager import WorktreeLifecycleManager, canonical_path

logger = logging.getLogger(__name__)


class GitService:
    """Status, branches, worktrees, commits, sync, conflicts, history and identity."""

    def __init__(
        self,
        executor: Optional[GitExecutor] = None,
        adapters: Optional[AdapterService] = None,
        store: Optional[ProjectStore] = None,
        config: Optional[ChamberConfig] = None,
    ):
        """
        Initialize the service.

        Args:
            executor: Git runner; built from config when omitted
            adapters: Structured adapter service; built from config when omitted
            store: Project metadata store; JSON files under the data root by default
            config: Settings; defaults apply when omitted
        """
        self.config = config or ChamberConfig()

        if executor is None:
            credentials = CredentialEnvResolver.from_config(self.config.credentials)
            executor = GitExecutor(
                executable=self.config.git.executable,
                env_builder=credentials,
                timeout=self.config.git.timeout,
            )
        self.executor = executor

        if adapters is None:
            env_builder = executor.env_builder
            adapters = AdapterService(
                provider_factory=lambda: GitPythonProvider(env_builder=env_builder),
                enabled=self.config.adapter.enabled,
            )
        self.adapters = adapters

        self.store = store or JsonProjectStore.from_config(self.config.worktree)
        self.status_engine = StatusEngine(executor, adapters)
        self.conflicts = ConflictController(executor)
        self.operations = RepositoryOperations(executor, adapters)
        self.start_scripts = StartScriptRunner(
            self.store,
            env_builder=executor.env_builder,
            config=self.config.start_scripts,
        )
        self.worktrees = WorktreeLifecycleManager(
            executor,
            self.store,
            start_scripts=self.start_scripts,
            config=self.config.worktree,
        )

    @classmethod
    def from_config(cls, config_path: Path = Path("gitchamber.yaml")) -> "GitService":
        return cls(config=load_config(config_path))

    def close(self) -> None:
        self.adapters.close()

    # ============== Repository state ==============

    async def is_git_repository(self, directory: str) -> bool:
        return await self.status_engine.is_git_repository(directory)

    async def is_linked_worktree(self, directory: str) -> bool:
        return await self.status_engine.is_linked_worktree(directory)

    async def get_status(self, directory: str) -> StatusResult:
        return await self.status_engine.get_status(directory)

    async def get_branches(self, directory: str) -> BranchResult:
        return await self.status_engine.get_branches(directory)

    async def get_current_branch(self, directory: str) -> Optional[str]:
        return await self.status_engine.get_current_branch(directory)

    # ============== Branches ==============

    async def checkout_branch(self, directory: str, branch: str) -> BranchOperationResult:
        return await self.operations.checkout_branch(directory, branch)

    async def create_branch(
        self, directory: str, name: str, start_point: Optional[str] = None
    ) -> BranchOperationResult:
        return await self.operations.create_branch(directory, name, start_point)

    async def delete_branch(self, directory: str, branch: str, force: bool = False) -> OperationResult:
        return await self.operations.delete_branch(directory, branch, force)

    async def delete_remote_branch(self, directory: str, branch: str, remote: str = "origin") -> OperationResult:
        return await self.operations.delete_remote_branch(directory, branch, remote)

    async def detach_head(self, directory: str) -> DetachResult:
        return await self.operations.detach_head(directory)

    async def get_available_branches_for_worktree(self, directory: str) -> List[BranchDetail]:
        """Local branches that no worktree has checked out."""
        branches = await self.get_branches(directory)
        checked_out = {
            clean_branch_name(info.branch)
            for info in await self.worktrees.list_worktrees(directory)
            if info.branch
        }
        return [
            detail
            for name, detail in branches.branches.items()
            if not name.startswith("remotes/") and name not in checked_out
        ]

    # ============== Worktrees ==============

    async def list_worktrees(self, directory: str) -> List[WorktreeInfo]:
        return await self.worktrees.list_worktrees(directory)

    async def validate_worktree_create(
        self, directory: str, request: CreateWorktreeRequest
    ) -> WorktreeValidationResult:
        return await self.worktrees.validate(directory, request)

    async def create_worktree(self, directory: str, request: CreateWorktreeRequest) -> WorktreeInfo:
        return await self.worktrees.create(directory, request)

    async def remove_worktree(self, directory: str, request: RemoveWorktreeRequest) -> bool:
        return await self.worktrees.remove(directory, request)

    async def list_project_worktrees(self, project_directory: str) -> List[ProjectWorktree]:
        """Linked worktrees of a project, primary excluded, sorted by label."""
        primary = canonical_path(project_directory)
        results = []
        for info in await self.list_worktrees(project_directory):
            if not info.path or canonical_path(info.path) == primary:
                continue
            name = info.name or os.path.basename(info.path.rstrip("/\\"))
            branch = clean_branch_name(info.branch)
            results.append(ProjectWorktree(
                name=name,
                path=info.path,
                project_directory=project_directory,
                branch=branch,
                label=branch or name,
            ))
        return sorted(results, key=lambda entry: entry.label.lower())

    async def resolve_root_tracking_remote(self, project_directory: str) -> Optional[str]:
        """Remote the project's checked-out branch tracks, if any."""
        root_branch = await safe_await(
            self.get_current_branch(project_directory),
            error_message=f"HEAD lookup failed for {project_directory}",
            logger_instance=logger,
        )
        branches = await safe_await(
            self.get_branches(project_directory),
            error_message=f"Branch tracking lookup failed for {project_directory}",
            logger_instance=logger,
        )
        detail = branches.branches.get(root_branch or "") if branches is not None else None
        parsed = parse_remote_branch_ref(detail.tracking if detail else None)
        if parsed is not None:
            return parsed.remote

        status = await safe_await(
            self.get_status(project_directory),
            error_message=f"Status tracking lookup failed for {project_directory}",
            logger_instance=logger,
        )
        parsed = parse_remote_branch_ref(status.tracking if status is not None else None)
        return parsed.remote if parsed is not None else None

    async def with_upstream_defaults(
        self, project_directory: str, request: CreateWorktreeRequest
    ) -> CreateWorktreeRequest:
        """
        Fill unset upstream fields so the new branch tracks
        ``<root-tracking-remote>/<local-branch>``.

        Returns the request unchanged when the root branch tracks nothing.
        """
        if request.branch_name:
            local_branch = normalize_branch_name(request.branch_name)
        elif request.mode == WorktreeMode.EXISTING:
            local_branch = normalize_branch_name(request.existing_branch or request.preferred_name)
        else:
            local_branch = normalize_branch_name(request.preferred_name)

        remote = await self.resolve_root_tracking_remote(project_directory)
        if not remote or not local_branch:
            return request

        return request.model_copy(update={
            "set_upstream": True if request.set_upstream is None else request.set_upstream,
            "upstream_remote": request.upstream_remote or remote,
            "upstream_branch": request.upstream_branch or local_branch,
        })

    async def remove_project_worktree(
        self,
        project_directory: str,
        worktree: ProjectWorktree,
        delete_local_branch: bool = False,
        delete_remote_branch: bool = False,
        remote_name: Optional[str] = None,
    ) -> bool:
        """Remove a listed worktree and optionally its branch on the remote (best-effort)."""
        removed = await self.remove_worktree(
            project_directory,
            RemoveWorktreeRequest(directory=worktree.path, delete_local_branch=delete_local_branch),
        )

        branch = clean_branch_name(worktree.branch)
        if delete_remote_branch and branch:
            result = await self.delete_remote_branch(project_directory, branch, remote_name or "origin")
            if not result.success:
                logger.warning(f"Failed to delete remote branch {branch}")
        return removed

    # ============== Diffs ==============

    async def get_diff(
        self,
        directory: str,
        file_path: str,
        staged: bool = False,
        context_lines: Optional[int] = None,
    ) -> DiffResult:
        return await self.operations.get_diff(directory, file_path, staged, context_lines)

    async def get_range_diff(
        self, directory: str, base: str, head: str, file_path: str, context_lines: int = 3
    ) -> DiffResult:
        return await self.operations.get_range_diff(directory, base, head, file_path, context_lines)

    async def get_range_files(self, directory: str, base: str, head: str) -> List[str]:
        return await self.operations.get_range_files(directory, base, head)

    async def get_file_diff(self, directory: str, file_path: str, staged: bool = False) -> FileDiff:
        return await self.operations.get_file_diff(directory, file_path, staged)

    async def revert_file(self, directory: str, file_path: str) -> None:
        await self.operations.revert_file(directory, file_path)

    # ============== Commits & sync ==============

    async def commit(
        self,
        directory: str,
        message: str,
        add_all: bool = False,
        files: Optional[List[str]] = None,
    ) -> CommitResult:
        return await self.operations.commit(directory, message, add_all, files)

    async def push(
        self,
        directory: str,
        remote: Optional[str] = None,
        branch: Optional[str] = None,
        options: GitOptions = None,
    ) -> PushResult:
        return await self.operations.push(directory, remote, branch, options)

    async def pull(self, directory: str, remote: Optional[str] = None, branch: Optional[str] = None) -> PullResult:
        return await self.operations.pull(directory, remote, branch)

    async def fetch(self, directory: str, remote: Optional[str] = None, branch: Optional[str] = None) -> OperationResult:
        return await self.operations.fetch(directory, remote, branch)

    async def get_remotes(self, directory: str) -> List[GitRemote]:
        return await self.operations.get_remotes(directory)

    # ============== Merge & rebase ==============

    async def rebase(self, directory: str, onto: str) -> ConflictResult:
        return await self.conflicts.rebase(directory, onto)

    async def continue_rebase(self, directory: str) -> ConflictResult:
        return await self.conflicts.continue_rebase(directory)

    async def abort_rebase(self, directory: str) -> OperationResult:
        return await self.conflicts.abort_rebase(directory)

    async def merge(self, directory: str, branch: str) -> ConflictResult:
        return await self.conflicts.merge(directory, branch)

    async def continue_merge(self, directory: str) -> ConflictResult:
        return await self.conflicts.continue_merge(directory)

    async def abort_merge(self, directory: str) -> OperationResult:
        return await self.conflicts.abort_merge(directory)

    # ============== Stash ==============

    async def stash(
        self, directory: str, message: Optional[str] = None, include_untracked: bool = True
    ) -> OperationResult:
        return await self.operations.stash(directory, message, include_untracked)

    async def stash_pop(self, directory: str) -> OperationResult:
        return await self.operations.stash_pop(directory)

    # ============== History ==============

    async def get_log(
        self,
        directory: str,
        max_count: Optional[int] = None,
        from_ref: Optional[str] = None,
        to_ref: Optional[str] = None,
        file: Optional[str] = None,
    ) -> LogResult:
        return await self.operations.get_log(directory, max_count, from_ref, to_ref, file)

    async def get_commit_files(self, directory: str, commit_hash: str) -> List[CommitFile]:
        return await self.operations.get_commit_files(directory, commit_hash)

    # ============== Identity ==============

    async def get_identity(self, directory: str) -> GitIdentity:
        return await self.operations.get_identity(directory)

    async def set_identity(
        self, directory: str, user_name: str, user_email: str, ssh_key: Optional[str] = None
    ) -> OperationResult:
        return await self.operations.set_identity(directory, user_name, user_email, ssh_key)

    def describe(self) -> Dict[str, str]:
        """Effective settings, for ``gitchamber info``."""
        return {
            "git": self.config.git.executable,
            "data_root": str(self.config.worktree.data_root),
            "branch_prefix": self.config.worktree.branch_prefix,
            "adapter": "enabled" if self.config.adapter.enabled else "disabled",
            "start_scripts": "enabled" if self.config.start_scripts.enabled else "disabled",
        }
