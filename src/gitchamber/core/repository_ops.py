"""Day-to-day repository operations: branches, diffs, commits, remotes, history, stash."""

import logging
from pathlib import Path
from typing import List, Optional

from ..adapters.base import StructuredRepository
from ..adapters.service import AdapterService
from ..errors import GitCommandError
from ..utils.credentials import build_ssh_command
from ..utils.subprocess_utils import CommandResult, GitExecutor
from .models import (
    BranchOperationResult,
    CommitFile,
    CommitResult,
    DetachResult,
    DiffResult,
    FileDiff,
    GitIdentity,
    GitRemote,
    LogResult,
    OperationResult,
    PullResult,
    PushedRef,
    PushResult,
)
from .parsers import (
    LOG_FORMAT,
    GitOptions,
    has_option,
    looks_like_missing_upstream,
    normalize_git_options,
    parse_lines,
    parse_log,
    parse_numstat,
    parse_remotes,
)

logger = logging.getLogger(__name__)

DEFAULT_LOG_MAX_COUNT = 50


def _push_failure_message(result: CommandResult) -> str:
    return (result.stderr or result.stdout or "").strip() or "Failed to push to remote"


class RepositoryOperations:
    """Operations that prefer the structured adapter and fall back to the git CLI."""

    def __init__(self, executor: GitExecutor, adapters: Optional[AdapterService] = None):
        self.executor = executor
        self.adapters = adapters or AdapterService()

    async def _repository(self, directory: str) -> Optional[StructuredRepository]:
        return await self.adapters.get_repository(directory)

    # ============== Branches ==============

    async def checkout_branch(self, directory: str, branch: str) -> BranchOperationResult:
        repo = await self._repository(directory)
        if repo is not None:
            try:
                await repo.checkout(branch)
                return BranchOperationResult(success=True, branch=branch)
            except Exception as e:
                logger.error(f"Failed to checkout branch via adapter: {e}")

        result = await self.executor.run(["checkout", branch], directory)
        return BranchOperationResult(success=result.success, branch=branch)

    async def detach_head(self, directory: str) -> DetachResult:
        """Detach HEAD at the current commit so the branch can move to a worktree."""
        head = await self.executor.run(["rev-parse", "HEAD"], directory)
        if not head.success:
            return DetachResult(success=False, commit="")
        result = await self.executor.run(["checkout", "--detach", "HEAD"], directory)
        return DetachResult(success=result.success, commit=head.stdout.strip())

    async def create_branch(
        self, directory: str, name: str, start_point: Optional[str] = None
    ) -> BranchOperationResult:
        repo = await self._repository(directory)
        if repo is not None:
            try:
                await repo.create_branch(name, checkout=False, start_point=start_point)
                return BranchOperationResult(success=True, branch=name)
            except Exception as e:
                logger.error(f"Failed to create branch via adapter: {e}")

        args = ["branch", name]
        if start_point:
            args.append(start_point)
        result = await self.executor.run(args, directory)
        return BranchOperationResult(success=result.success, branch=name)

    async def delete_branch(self, directory: str, branch: str, force: bool = False) -> OperationResult:
        repo = await self._repository(directory)
        if repo is not None:
            try:
                await repo.delete_branch(branch, force)
                return OperationResult(success=True)
            except Exception as e:
                logger.error(f"Failed to delete branch via adapter: {e}")

        result = await self.executor.run(["branch", "-D" if force else "-d", branch], directory)
        return OperationResult(success=result.success)

    async def delete_remote_branch(self, directory: str, branch: str, remote: str = "origin") -> OperationResult:
        result = await self.executor.run(["push", remote or "origin", "--delete", branch], directory)
        return OperationResult(success=result.success)

    # ============== Diffs ==============

    async def get_diff(
        self,
        directory: str,
        file_path: str,
        staged: bool = False,
        context_lines: Optional[int] = None,
    ) -> DiffResult:
        args = ["diff"]
        if staged:
            args.append("--cached")
        if context_lines is not None:
            args.append(f"-U{context_lines}")
        args.extend(["--", file_path])
        result = await self.executor.run(args, directory)
        return DiffResult(diff=result.stdout)

    async def _resolve_range_base(self, directory: str, base: str) -> str:
        """Prefer ``origin/<base>`` when that remote-tracking ref exists."""
        verify = await self.executor.run(["rev-parse", "--verify", f"refs/remotes/origin/{base}"], directory)
        return f"origin/{base}" if verify.success else base

    async def get_range_diff(
        self,
        directory: str,
        base: str,
        head: str,
        file_path: str,
        context_lines: int = 3,
    ) -> DiffResult:
        base_ref, head_ref = (base or "").strip(), (head or "").strip()
        if not base_ref or not head_ref:
            return DiffResult(diff="")
        resolved_base = await self._resolve_range_base(directory, base_ref)
        result = await self.executor.run(
            ["diff", "--no-color", f"-U{max(0, context_lines)}", f"{resolved_base}...{head_ref}", "--", file_path],
            directory,
        )
        return DiffResult(diff=result.stdout)

    async def get_range_files(self, directory: str, base: str, head: str) -> List[str]:
        base_ref, head_ref = (base or "").strip(), (head or "").strip()
        if not base_ref or not head_ref:
            return []
        resolved_base = await self._resolve_range_base(directory, base_ref)
        result = await self.executor.run(["diff", "--name-only", f"{resolved_base}...{head_ref}"], directory)
        if not result.success:
            return []
        return parse_lines(result.stdout)

    async def get_file_diff(self, directory: str, file_path: str, staged: bool = False) -> FileDiff:
        """
        Original and modified content of one file.

        Original is HEAD for staged diffs, else the index (falling back to HEAD
        for files not in the index). Modified is the working copy.
        """
        repo = await self._repository(directory)
        if repo is not None:
            try:
                if staged:
                    original = await repo.show("HEAD", file_path)
                else:
                    try:
                        original = await repo.show(":0", file_path)
                    except Exception:
                        original = await repo.show("HEAD", file_path)
                modified = (Path(directory) / file_path).read_text(encoding="utf-8")
                return FileDiff(original=original, modified=modified, path=file_path)
            except Exception as e:
                logger.error(f"Failed to get file diff via adapter: {e}")

        original_spec = f"HEAD:{file_path}" if staged else f":0:{file_path}"
        shown = await self.executor.run(["show", original_spec], directory)
        if not shown.success and not staged:
            shown = await self.executor.run(["show", f"HEAD:{file_path}"], directory)
        original = shown.stdout if shown.success else ""

        try:
            modified = (Path(directory) / file_path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            modified = ""
        return FileDiff(original=original, modified=modified, path=file_path)

    async def revert_file(self, directory: str, file_path: str) -> None:
        repo = await self._repository(directory)
        if repo is not None:
            try:
                await repo.revert([file_path])
                return
            except Exception as e:
                logger.error(f"Failed to revert via adapter: {e}")

        await self.executor.run(["checkout", "--", file_path], directory)

    # ============== Commits ==============

    async def commit(
        self,
        directory: str,
        message: str,
        add_all: bool = False,
        files: Optional[List[str]] = None,
    ) -> CommitResult:
        repo = await self._repository(directory)
        if repo is not None:
            try:
                if add_all:
                    await repo.add(["."])
                elif files:
                    await repo.add(list(files))
                await repo.commit(message)
                state = await repo.get_state()
                head = state.head
                return CommitResult(
                    success=True,
                    commit=(head.commit if head else None) or "",
                    branch=(head.name if head else None) or "",
                )
            except Exception as e:
                logger.error(f"Failed to commit via adapter: {e}")

        if add_all:
            await self.executor.run(["add", "-A"], directory)
        elif files:
            await self.executor.run(["add", *files], directory)

        result = await self.executor.run(["commit", "-m", message], directory)
        if not result.success:
            logger.warning(f"git commit failed in {directory}: {result.message}")
            return CommitResult(success=False)

        commit_hash = await self.executor.run(["rev-parse", "HEAD"], directory)
        branch = await self.executor.run(["rev-parse", "--abbrev-ref", "HEAD"], directory)
        return CommitResult(
            success=True,
            commit=commit_hash.stdout.strip(),
            branch=branch.stdout.strip(),
        )

    # ============== Remotes ==============

    async def _current_branch_name(self, directory: str) -> str:
        result = await self.executor.run(["rev-parse", "--abbrev-ref", "HEAD"], directory)
        return result.stdout.strip()

    async def _has_tracking_branch(self, directory: str) -> bool:
        result = await self.executor.run(
            ["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}"], directory
        )
        return result.success and bool(result.stdout.strip())

    async def _remote_names(self, directory: str) -> List[str]:
        result = await self.executor.run(["remote"], directory)
        return parse_lines(result.stdout) if result.success else []

    async def _push_raw(self, directory: str, args: List[str]) -> None:
        result = await self.executor.run(args, directory)
        if not result.success:
            raise GitCommandError(
                _push_failure_message(result),
                exit_code=result.exit_code,
                stderr=result.stderr,
                stdout=result.stdout,
            )

    @staticmethod
    def _with_upstream_flag(options: GitOptions) -> List[str]:
        normalized = normalize_git_options(options)
        if has_option(normalized, "--set-upstream") or has_option(normalized, "-u"):
            return normalized
        return [*normalized, "--set-upstream"]

    async def push(
        self,
        directory: str,
        remote: Optional[str] = None,
        branch: Optional[str] = None,
        options: GitOptions = None,
    ) -> PushResult:
        """
        Push, establishing upstream tracking when git reports there is none.

        Raises:
            GitCommandError: When the push fails for any other reason
        """
        remote = (remote or "").strip() or None

        def pushed(local: str, remote_name: str) -> PushResult:
            return PushResult(success=True, pushed=[PushedRef(local=local, remote=remote_name)], repo=directory)

        if not remote and not branch:
            try:
                await self._push_raw(directory, ["push", *normalize_git_options(options)])
                return PushResult(success=True, pushed=[], repo=directory)
            except GitCommandError as e:
                if not looks_like_missing_upstream(str(e)):
                    raise
                current = await self._current_branch_name(directory)
                remotes = await self._remote_names(directory)
                fallback_remote = "origin" if "origin" in remotes else (remotes[0] if remotes else "")
                if not current or not fallback_remote:
                    raise
                logger.info(f"No upstream for {current}; pushing with --set-upstream to {fallback_remote}")
                await self._push_raw(
                    directory, ["push", *self._with_upstream_flag(options), fallback_remote, current]
                )
                return pushed(current, fallback_remote)

        remote_name = remote or "origin"

        if not branch:
            current = await self._current_branch_name(directory)
            if current and current != "HEAD" and not await self._has_tracking_branch(directory):
                try:
                    await self._push_raw(
                        directory, ["push", *self._with_upstream_flag(options), remote_name, current]
                    )
                    return pushed(current, remote_name)
                except GitCommandError as e:
                    logger.warning(f"Upstream push of {current} to {remote_name} failed, retrying plain push: {e}")

        args = ["push", *normalize_git_options(options), remote_name]
        if branch:
            args.append(branch)
        try:
            await self._push_raw(directory, args)
            return pushed(branch or "", remote_name)
        except GitCommandError as e:
            if not looks_like_missing_upstream(str(e)):
                raise
            fallback_branch = branch or await self._current_branch_name(directory)
            if not fallback_branch:
                raise
            await self._push_raw(
                directory, ["push", *self._with_upstream_flag(options), remote_name, fallback_branch]
            )
            return pushed(fallback_branch, remote_name)

    async def pull(self, directory: str, remote: Optional[str] = None, branch: Optional[str] = None) -> PullResult:
        repo = await self._repository(directory)
        if repo is not None:
            try:
                await repo.pull()
                return PullResult(success=True)
            except Exception as e:
                logger.error(f"Failed to pull via adapter: {e}")

        args = ["pull"]
        if remote:
            args.append(remote)
        if branch:
            args.append(branch)
        result = await self.executor.run(args, directory)
        return PullResult(success=result.success)

    async def fetch(self, directory: str, remote: Optional[str] = None, branch: Optional[str] = None) -> OperationResult:
        repo = await self._repository(directory)
        if repo is not None:
            try:
                await repo.fetch(remote=remote, ref=branch)
                return OperationResult(success=True)
            except Exception as e:
                logger.error(f"Failed to fetch via adapter: {e}")

        args = ["fetch"]
        if remote:
            args.append(remote)
        if branch:
            args.append(branch)
        result = await self.executor.run(args, directory)
        return OperationResult(success=result.success)

    async def get_remotes(self, directory: str) -> List[GitRemote]:
        result = await self.executor.run(["remote", "-v"], directory)
        if not result.success:
            return []
        return parse_remotes(result.stdout)

    # ============== History ==============

    async def get_log(
        self,
        directory: str,
        max_count: Optional[int] = None,
        from_ref: Optional[str] = None,
        to_ref: Optional[str] = None,
        file: Optional[str] = None,
    ) -> LogResult:
        args = [
            "log",
            f"--max-count={max_count or DEFAULT_LOG_MAX_COUNT}",
            f"--format={LOG_FORMAT}",
            "--shortstat",
        ]
        if from_ref and to_ref:
            args.append(f"{from_ref}..{to_ref}")
        if file:
            args.extend(["--", file])

        result = await self.executor.run(args, directory)
        if not result.success:
            return LogResult()

        entries = parse_log(result.stdout)
        return LogResult(all=entries, latest=entries[0] if entries else None, total=len(entries))

    async def get_commit_files(self, directory: str, commit_hash: str) -> List[CommitFile]:
        result = await self.executor.run(["show", "--numstat", "--format=", commit_hash], directory)
        if not result.success:
            return []
        return parse_numstat(result.stdout)

    # ============== Identity ==============

    async def get_identity(self, directory: str) -> GitIdentity:
        repo = await self._repository(directory)
        if repo is not None:
            try:
                values = []
                for key in ("user.name", "user.email", "core.sshCommand"):
                    try:
                        values.append(await repo.get_config(key))
                    except Exception:
                        values.append("")
                return GitIdentity(
                    user_name=values[0] or None,
                    user_email=values[1] or None,
                    ssh_command=values[2] or None,
                )
            except Exception as e:
                logger.error(f"Failed to get identity via adapter: {e}")

        name = await self.executor.run(["config", "user.name"], directory)
        email = await self.executor.run(["config", "user.email"], directory)
        ssh = await self.executor.run(["config", "core.sshCommand"], directory)
        return GitIdentity(
            user_name=name.stdout.strip() if name.success else None,
            user_email=email.stdout.strip() if email.success else None,
            ssh_command=ssh.stdout.strip() if ssh.success else None,
        )

    async def set_identity(
        self,
        directory: str,
        user_name: str,
        user_email: str,
        ssh_key: Optional[str] = None,
    ) -> OperationResult:
        """
        Write user.name, user.email and optionally core.sshCommand.

        Raises:
            InvalidSshKeyPathError: Before anything is written, if ssh_key
                contains shell metacharacters
        """
        ssh_command = build_ssh_command(ssh_key) if ssh_key else None

        repo = await self._repository(directory)
        if repo is not None:
            try:
                await repo.set_config("user.name", user_name)
                await repo.set_config("user.email", user_email)
                if ssh_command:
                    await repo.set_config("core.sshCommand", ssh_command)
                return OperationResult(success=True)
            except Exception as e:
                logger.error(f"Failed to set identity via adapter: {e}")

        await self.executor.run(["config", "user.name", user_name], directory)
        await self.executor.run(["config", "user.email", user_email], directory)
        if ssh_command:
            await self.executor.run(["config", "core.sshCommand", ssh_command], directory)
        return OperationResult(success=True)

    # ============== Stash ==============

    async def stash(
        self,
        directory: str,
        message: Optional[str] = None,
        include_untracked: bool = True,
    ) -> OperationResult:
        args = ["stash", "push"]
        if include_untracked:
            args.append("--include-untracked")
        if message:
            args.extend(["-m", message])
        result = await self.executor.run(args, directory)
        return OperationResult(success=result.success)

    async def stash_pop(self, directory: str) -> OperationResult:
        result = await self.executor.run(["stash", "pop"], directory)
        return OperationResult(success=result.success)
