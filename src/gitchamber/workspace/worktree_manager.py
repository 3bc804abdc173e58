"""Worktree lifecycle manager.

Validates, creates, configures and removes git worktrees for parallel coding
sessions. ``validate`` and ``create`` apply the same resolution rules so a
successful validation is a trustworthy dry run; validation never writes to the
filesystem or moves refs.

Worktrees live under ``<data-root>/worktree/<project-id>/<name>``. Duplicate
creation is guarded only by the naming loop and by live existence checks right
before ``git worktree add``; a concurrent request can still lose at git level
and should be retried with a new name.
"""

import logging
import os
import random
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from ..core.config import WorktreeConfig
from ..core.models import (
    CreateWorktreeRequest,
    RemoveWorktreeRequest,
    ResolvedWorktree,
    ValidationCode,
    WorktreeEntry,
    WorktreeInfo,
    WorktreeMode,
    WorktreeValidationError,
    WorktreeValidationResult,
)
from ..core.parsers import parse_worktree_porcelain
from ..errors import WorktreeError
from ..utils.error_handling import ErrorContext, log_and_ignore
from ..utils.subprocess_utils import GitExecutor
from ..utils.validators import (
    RemoteBranchRef,
    UpstreamTarget,
    clean_branch_name,
    normalize_directory_path,
    normalize_upstream_target,
    parse_remote_branch_ref,
    slugify_worktree_name,
)
from .project_store import ProjectStore, ensure_project_id
from .start_scripts import StartScriptRunner

logger = logging.getLogger(__name__)

ADJECTIVES = [
    "brave", "calm", "clever", "cosmic", "crisp", "curious", "eager", "gentle", "glowing", "happy",
    "hidden", "jolly", "kind", "lucky", "mighty", "misty", "neon", "nimble", "playful", "proud",
    "quick", "quiet", "shiny", "silent", "stellar", "sunny", "swift", "tidy", "witty",
]

NOUNS = [
    "cabin", "cactus", "canyon", "circuit", "comet", "eagle", "engine", "falcon", "forest", "garden",
    "harbor", "island", "knight", "lagoon", "meadow", "moon", "mountain", "nebula", "orchid", "otter",
    "panda", "pixel", "planet", "river", "rocket", "sailor", "squid", "star", "tiger", "wizard", "wolf",
]


def generate_random_name(rng: Optional[random.Random] = None) -> str:
    rng = rng or random
    return f"{rng.choice(ADJECTIVES)}-{rng.choice(NOUNS)}"


def resolve_name_candidates(
    base_name: str,
    attempts: int = 26,
    max_length: int = 80,
    rng: Optional[random.Random] = None,
) -> List[str]:
    """
    Worktree name candidates in acceptance order.

    The bare slug comes first, then ``<slug>-<adjective>-<noun>``; an empty
    slug yields only random ``<adjective>-<noun>`` names.
    """
    slug = slugify_worktree_name(base_name, max_length)
    if not slug:
        return [generate_random_name(rng) for _ in range(attempts)]
    return [slug] + [f"{slug}-{generate_random_name(rng)}" for _ in range(attempts - 1)]


def canonical_path(value: str) -> str:
    resolved = os.path.normpath(os.path.realpath(os.path.abspath(value)))
    return resolved.lower() if sys.platform == "win32" else resolved


@dataclass
class WorktreeContext:
    """Where a repository's worktrees live and how its metadata is keyed."""
    project_id: str
    sandbox: str
    primary_worktree: str
    worktree_root: Path


@dataclass
class WorktreeCandidate:
    name: str
    directory: Path
    branch: str


@dataclass
class ExistingBranchResolution:
    local_branch: str
    checkout_ref: str
    create_local_branch: bool
    remote_ref: Optional[RemoteBranchRef] = None


@dataclass
class RemoteBranchCheck:
    success: bool  # False when the remote could not be queried
    found: bool


class WorktreeLifecycleManager:
    """Creates and tears down worktrees and keeps the project record in sync."""

    def __init__(
        self,
        executor: GitExecutor,
        store: ProjectStore,
        start_scripts: Optional[StartScriptRunner] = None,
        config: Optional[WorktreeConfig] = None,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize the manager.

        Args:
            executor: Git runner carrying the credential environment
            store: Project metadata store to register sandboxes in
            start_scripts: Runner for post-create scripts (None disables them)
            config: Placement and naming settings
            rng: Random source for generated names (seed it for repeatable tests)
        """
        self.executor = executor
        self.store = store
        self.start_scripts = start_scripts
        self.config = config or WorktreeConfig()
        self.rng = rng or random.Random()

    # ============== Context ==============

    async def resolve_context(self, directory: str, persist_id: bool = True) -> WorktreeContext:
        """
        Resolve sandbox, primary worktree, project ID and worktree root.

        Raises:
            GitChamberError: If directory is blank, outside a repository, or the
                repository has no commits
        """
        directory_path = normalize_directory_path(directory)
        if not directory_path:
            raise WorktreeError("Directory is required")

        top = await self.executor.run_or_raise(
            ["rev-parse", "--show-toplevel"], directory_path, "Failed to resolve git top-level directory"
        )
        sandbox = os.path.normpath(os.path.join(os.path.abspath(directory_path), top.stdout.strip()))

        common = await self.executor.run_or_raise(
            ["rev-parse", "--git-common-dir"], sandbox, "Failed to resolve git common directory"
        )
        common_dir = os.path.normpath(os.path.join(sandbox, common.stdout.strip()))
        primary_worktree = os.path.dirname(common_dir)

        project_id = await ensure_project_id(self.executor, primary_worktree, persist=persist_id)
        return WorktreeContext(
            project_id=project_id,
            sandbox=sandbox,
            primary_worktree=primary_worktree,
            worktree_root=self.config.worktree_root(project_id),
        )

    # ============== Listing ==============

    async def list_entries(self, directory: str) -> List[WorktreeEntry]:
        result = await self.executor.run_or_raise(
            ["worktree", "list", "--porcelain"], directory, "Failed to list git worktrees"
        )
        return parse_worktree_porcelain(result.stdout)

    async def list_worktrees(self, directory: str) -> List[WorktreeInfo]:
        """All worktrees including the primary; empty when directory is not a repository root."""
        directory_path = normalize_directory_path(directory)
        if not directory_path or not os.path.exists(directory_path) or not os.path.exists(
            os.path.join(directory_path, ".git")
        ):
            return []

        try:
            entries = await self.list_entries(directory_path)
        except Exception as e:
            log_and_ignore(e, "Failed to list worktrees, returning empty list", logger_instance=logger)
            return []

        return [
            WorktreeInfo(
                head=entry.head or "",
                name=os.path.basename(entry.worktree or ""),
                branch=entry.branch or "",
                path=entry.worktree,
            )
            for entry in entries
        ]

    # ============== Ref probes ==============

    async def _ref_exists(self, primary_worktree: str, full_ref: str) -> bool:
        return await self.executor.succeeds(["show-ref", "--verify", "--quiet", full_ref], primary_worktree)

    async def branch_exists(self, primary_worktree: str, branch: str) -> bool:
        return await self._ref_exists(primary_worktree, f"refs/heads/{branch}")

    async def find_branch_in_use(self, primary_worktree: str, local_branch: str) -> Optional[WorktreeEntry]:
        """The worktree entry that has local_branch checked out, if any."""
        if not local_branch:
            return None
        target_ref = f"refs/heads/{local_branch}"
        target_clean = clean_branch_name(target_ref)
        for entry in await self.list_entries(primary_worktree):
            entry_ref = (entry.branch_ref or "").strip()
            entry_clean = clean_branch_name(entry_ref or entry.branch or "")
            if entry_ref == target_ref or entry_clean == target_clean:
                return entry
        return None

    async def check_remote_branch_exists(
        self, primary_worktree: str, remote: str, branch: str, remote_url: str = ""
    ) -> RemoteBranchCheck:
        """Ask the remote (by URL when given) whether refs/heads/<branch> exists."""
        remote, branch, remote_url = (remote or "").strip(), (branch or "").strip(), (remote_url or "").strip()
        if not remote or not branch:
            return RemoteBranchCheck(success=False, found=False)
        result = await self.executor.run(
            ["ls-remote", "--heads", remote_url or remote, f"refs/heads/{branch}"], primary_worktree
        )
        if not result.success:
            return RemoteBranchCheck(success=False, found=False)
        return RemoteBranchCheck(success=True, found=bool(result.stdout.strip()))

    # ============== Resolution ==============

    async def resolve_candidate(
        self, context: WorktreeContext, preferred_name: str, explicit_branch: str = ""
    ) -> WorktreeCandidate:
        """
        First candidate whose directory is free and, unless a branch was given
        explicitly, whose ``<prefix>/<name>`` branch does not exist yet.

        Raises:
            WorktreeError: If every candidate is taken
        """
        candidates = resolve_name_candidates(
            preferred_name,
            attempts=self.config.max_name_attempts,
            max_length=self.config.max_name_length,
            rng=self.rng,
        )
        for name in candidates:
            directory = context.worktree_root / name
            if directory.exists():
                continue
            if explicit_branch:
                return WorktreeCandidate(name=name, directory=directory, branch=explicit_branch)

            branch = f"{self.config.branch_prefix}/{name}"
            if await self.branch_exists(context.primary_worktree, branch):
                continue
            return WorktreeCandidate(name=name, directory=directory, branch=branch)

        raise WorktreeError("Failed to generate a unique worktree name")

    async def resolve_remote_start_ref(
        self, primary_worktree: str, start_ref: str, ensure_remote_name: str = ""
    ) -> Optional[RemoteBranchRef]:
        """
        The ``<remote>/<branch>`` a start ref names, or None for local refs.

        A local branch such as ``feature/base`` wins over the remote reading,
        and the remote part must be configured (or about to be added).
        """
        if not start_ref or start_ref == "HEAD":
            return None
        parsed = parse_remote_branch_ref(start_ref)
        if parsed is None:
            return None
        if await self.branch_exists(primary_worktree, start_ref):
            return None
        if parsed.remote == ensure_remote_name:
            return parsed
        if not await self.executor.succeeds(["remote", "get-url", parsed.remote], primary_worktree):
            return None
        return parsed

    async def fetch_remote_branch(self, primary_worktree: str, remote: str, branch: str) -> None:
        remote, branch = (remote or "").strip(), (branch or "").strip()
        if not remote or not branch:
            return
        refspec = f"+refs/heads/{branch}:refs/remotes/{remote}/{branch}"
        await self.executor.run_or_raise(
            ["fetch", remote, refspec], primary_worktree, f"Failed to fetch {remote}/{branch}"
        )

    async def resolve_existing_branch(
        self,
        primary_worktree: str,
        existing_branch: str,
        preferred_branch_name: str = "",
        fetch_missing: bool = True,
    ) -> ExistingBranchResolution:
        """
        Resolve the branch an ``existing``-mode worktree attaches to.

        A local branch wins. Otherwise the name is parsed as ``<remote>/<branch>``;
        a missing remote-tracking ref is fetched once (or, with fetch_missing
        off, looked up with ls-remote so nothing is written).

        Raises:
            WorktreeError: If neither a local nor a remote branch resolves
        """
        requested = (existing_branch or "").strip()
        if not requested:
            raise WorktreeError("existing_branch is required in existing mode", ValidationCode.BRANCH_NOT_FOUND.value)

        local_name = clean_branch_name(requested)
        if await self.branch_exists(primary_worktree, local_name):
            return ExistingBranchResolution(
                local_branch=local_name,
                checkout_ref=local_name,
                create_local_branch=False,
            )

        remote_ref = parse_remote_branch_ref(requested)
        if remote_ref is None:
            raise WorktreeError(f"Branch not found: {requested}", ValidationCode.BRANCH_NOT_FOUND.value)

        if not await self._ref_exists(primary_worktree, remote_ref.full_ref):
            if fetch_missing:
                try:
                    await self.fetch_remote_branch(primary_worktree, remote_ref.remote, remote_ref.branch)
                except Exception as e:
                    logger.debug(f"Fetch of {remote_ref.remote_ref} failed: {e}")
                found = await self._ref_exists(primary_worktree, remote_ref.full_ref)
            else:
                check = await self.check_remote_branch_exists(primary_worktree, remote_ref.remote, remote_ref.branch)
                found = check.success and check.found
            if not found:
                raise WorktreeError(f"Remote branch not found: {requested}", ValidationCode.BRANCH_NOT_FOUND.value)

        local_branch = clean_branch_name(preferred_branch_name or remote_ref.branch or requested)
        if not local_branch:
            raise WorktreeError("Failed to resolve local branch name for existing branch worktree")

        return ExistingBranchResolution(
            local_branch=local_branch,
            checkout_ref=remote_ref.remote_ref,
            create_local_branch=True,
            remote_ref=remote_ref,
        )

    # ============== Remotes & upstream ==============

    async def ensure_remote_with_url(self, primary_worktree: str, remote_name: str, remote_url: str) -> None:
        """Add the remote, or repoint it when its URL differs."""
        name, url = (remote_name or "").strip(), (remote_url or "").strip()
        if not name or not url:
            return

        current = await self.executor.run(["remote", "get-url", name], primary_worktree)
        if current.success:
            if current.stdout.strip() != url:
                logger.info(f"Updating remote {name} URL")
                await self.executor.run_or_raise(
                    ["remote", "set-url", name, url], primary_worktree, "Failed to update git remote URL"
                )
            return

        logger.info(f"Adding remote {name}")
        await self.executor.run_or_raise(["remote", "add", name, url], primary_worktree, "Failed to add git remote")

    async def set_branch_tracking_fallback(
        self, worktree_directory: str, local_branch: str, upstream: UpstreamTarget
    ) -> None:
        await self.executor.run_or_raise(
            ["config", f"branch.{local_branch}.remote", upstream.remote],
            worktree_directory,
            f"Failed to set branch.{local_branch}.remote",
        )
        await self.executor.run_or_raise(
            ["config", f"branch.{local_branch}.merge", f"refs/heads/{upstream.branch}"],
            worktree_directory,
            f"Failed to set branch.{local_branch}.merge",
        )

    async def apply_upstream_configuration(
        self,
        primary_worktree: str,
        worktree_directory: str,
        local_branch: str,
        upstream_remote: str,
        upstream_branch: str,
        ensure_remote_name: str = "",
        ensure_remote_url: str = "",
    ) -> None:
        """
        Link local_branch to ``<remote>/<branch>``.

        Fetches the remote branch and uses ``branch --set-upstream-to``; when the
        fetch is impossible the two tracking config keys are written directly.
        """
        if ensure_remote_name and ensure_remote_url:
            await self.ensure_remote_with_url(primary_worktree, ensure_remote_name, ensure_remote_url)

        upstream = normalize_upstream_target(upstream_remote, upstream_branch)
        if upstream is None or not local_branch:
            return

        try:
            await self.fetch_remote_branch(primary_worktree, upstream.remote, upstream.branch)
        except Exception as e:
            logger.warning(f"Could not fetch {upstream.full}, writing tracking config directly: {e}")
            await self.set_branch_tracking_fallback(worktree_directory, local_branch, upstream)
            return

        await self.executor.run_or_raise(
            ["branch", f"--set-upstream-to={upstream.full}", local_branch],
            worktree_directory,
            f"Failed to set upstream to {upstream.full}",
        )

    # ============== Validate ==============

    async def validate(self, directory: str, request: CreateWorktreeRequest) -> WorktreeValidationResult:
        """
        Dry run of ``create``: same checks, collected as coded errors, no mutation.
        """
        mode = request.mode
        errors: List[WorktreeValidationError] = []

        def add_error(code: ValidationCode, message: str) -> None:
            errors.append(WorktreeValidationError(code=code, message=message))

        try:
            context = await self.resolve_context(directory, persist_id=False)
            primary = context.primary_worktree
            ensure_name, ensure_url = request.ensure_remote_name, request.ensure_remote_url

            local_branch = ""
            inferred: Optional[RemoteBranchRef] = None

            if mode == WorktreeMode.EXISTING:
                try:
                    parsed = parse_remote_branch_ref(request.existing_branch)
                    if parsed is not None and request.has_remote_pair and ensure_name == parsed.remote:
                        check = await self.check_remote_branch_exists(primary, parsed.remote, parsed.branch, ensure_url)
                        if not check.success:
                            raise WorktreeError(f"Unable to query remote {ensure_name}")
                        if not check.found:
                            raise WorktreeError(f"Remote branch not found: {parsed.remote_ref}")
                        local_branch = clean_branch_name(request.branch_name or parsed.branch)
                        inferred = parsed
                    else:
                        resolved = await self.resolve_existing_branch(
                            primary, request.existing_branch, request.branch_name, fetch_missing=False
                        )
                        local_branch = resolved.local_branch
                        inferred = resolved.remote_ref
                except Exception as e:
                    add_error(ValidationCode.BRANCH_NOT_FOUND, str(e) or "Existing branch not found")
            else:
                if request.branch_name:
                    if await self.branch_exists(primary, request.branch_name):
                        add_error(ValidationCode.BRANCH_EXISTS, f"Branch already exists: {request.branch_name}")
                    local_branch = request.branch_name

                start_ref = request.start_ref
                parsed = await self.resolve_remote_start_ref(
                    primary, start_ref, ensure_name if request.has_remote_pair else ""
                )
                if start_ref != "HEAD":
                    if parsed is not None:
                        paired = request.has_remote_pair and ensure_name == parsed.remote
                        check = await self.check_remote_branch_exists(
                            primary, parsed.remote, parsed.branch, ensure_url if paired else ""
                        )
                        if not check.success:
                            add_error(
                                ValidationCode.REMOTE_UNREACHABLE,
                                f"Unable to query remote {ensure_name if paired else parsed.remote}",
                            )
                        elif not check.found:
                            add_error(ValidationCode.START_REF_NOT_FOUND, f"Remote branch not found: {parsed.remote_ref}")
                    elif not await self.executor.succeeds(["rev-parse", "--verify", "--quiet", start_ref], primary):
                        add_error(ValidationCode.START_REF_NOT_FOUND, f"Start ref not found: {start_ref}")
                inferred = parsed

            if local_branch:
                in_use = await self.find_branch_in_use(primary, local_branch)
                if in_use is not None:
                    add_error(ValidationCode.BRANCH_IN_USE, f"Branch is already checked out in {in_use.worktree}")

            if bool(ensure_name) != bool(ensure_url):
                add_error(
                    ValidationCode.INVALID_REMOTE_CONFIG,
                    "Both ensure_remote_name and ensure_remote_url are required together",
                )

            if request.set_upstream:
                upstream_remote = request.upstream_remote or (inferred.remote if inferred else "")
                upstream_branch = request.upstream_branch or (inferred.branch if inferred else "")
                if not upstream_remote or not upstream_branch:
                    add_error(
                        ValidationCode.UPSTREAM_INCOMPLETE,
                        "upstream_remote and upstream_branch are required when set_upstream is true",
                    )
                else:
                    remote_known = await self.executor.succeeds(["remote", "get-url", upstream_remote], primary)
                    if not remote_known and ensure_name != upstream_remote:
                        add_error(ValidationCode.REMOTE_NOT_FOUND, f"Remote not found: {upstream_remote}")

            return WorktreeValidationResult(
                ok=not errors,
                errors=errors,
                resolved=ResolvedWorktree(mode=mode, local_branch=local_branch or None),
            )
        except Exception as e:
            logger.warning(f"Worktree validation failed for {directory}: {e}")
            return WorktreeValidationResult(
                ok=False,
                errors=[WorktreeValidationError(
                    code=ValidationCode.VALIDATION_FAILED,
                    message=str(e) or "Failed to validate worktree creation",
                )],
            )

    # ============== Create ==============

    async def create(self, directory: str, request: CreateWorktreeRequest) -> WorktreeInfo:
        """
        Create a worktree and return ``{head, name, branch, path}``.

        Start scripts are queued, not awaited.

        Raises:
            WorktreeError: On name exhaustion, missing/existing/in-use branches
            GitCommandError: When a required git step fails
        """
        mode = request.mode
        context = await self.resolve_context(directory)
        context.worktree_root.mkdir(parents=True, exist_ok=True)
        primary = context.primary_worktree
        ensure_name, ensure_url = request.ensure_remote_name, request.ensure_remote_url

        candidate = await self.resolve_candidate(
            context,
            request.preferred_name,
            request.branch_name if mode == WorktreeMode.NEW else "",
        )
        target = str(candidate.directory)

        inferred: Optional[RemoteBranchRef] = None
        add_args = ["worktree", "add", "--no-checkout"]

        if mode == WorktreeMode.EXISTING:
            parsed = parse_remote_branch_ref(request.existing_branch)
            if parsed is not None and request.has_remote_pair and parsed.remote == ensure_name:
                await self.ensure_remote_with_url(primary, ensure_name, ensure_url)
                await self.fetch_remote_branch(primary, parsed.remote, parsed.branch)

            resolved = await self.resolve_existing_branch(primary, request.existing_branch, request.branch_name)
            local_branch = resolved.local_branch

            in_use = await self.find_branch_in_use(primary, local_branch)
            if in_use is not None:
                raise WorktreeError(
                    f"Branch is already checked out in {in_use.worktree}", ValidationCode.BRANCH_IN_USE.value
                )

            if resolved.create_local_branch:
                add_args.extend(["-b", local_branch])
            add_args.extend([target, resolved.checkout_ref])
            inferred = resolved.remote_ref
        else:
            local_branch = candidate.branch
            if not local_branch:
                raise WorktreeError("Failed to resolve branch name for new worktree")

            if await self.branch_exists(primary, local_branch):
                raise WorktreeError(f"Branch already exists: {local_branch}", ValidationCode.BRANCH_EXISTS.value)

            in_use = await self.find_branch_in_use(primary, local_branch)
            if in_use is not None:
                raise WorktreeError(
                    f"Branch is already checked out in {in_use.worktree}", ValidationCode.BRANCH_IN_USE.value
                )

            add_args.extend(["-b", local_branch, target])
            if request.start_ref != "HEAD":
                add_args.append(request.start_ref)
            inferred = await self.resolve_remote_start_ref(
                primary, request.start_ref, ensure_name if request.has_remote_pair else ""
            )

        if request.has_remote_pair:
            await self.ensure_remote_with_url(primary, ensure_name, ensure_url)

        if mode == WorktreeMode.NEW and inferred is not None:
            await self.fetch_remote_branch(primary, inferred.remote, inferred.branch)

        logger.info(f"Creating worktree {candidate.name} on {local_branch}")
        await self.executor.run_or_raise(add_args, primary, "Failed to create git worktree")
        await self.executor.run_or_raise(["reset", "--hard"], target, "Failed to populate worktree")

        with ErrorContext(
            "sync project sandbox metadata (add)",
            raise_on_error=False,
            logger_instance=logger,
            log_level=logging.WARNING,
        ):
            await self.store.add_sandbox(context.project_id, primary, target)

        if request.set_upstream:
            await self.apply_upstream_configuration(
                primary,
                target,
                local_branch,
                request.upstream_remote or (inferred.remote if inferred else ""),
                request.upstream_branch or (inferred.branch if inferred else ""),
                ensure_name,
                ensure_url,
            )

        if self.start_scripts is not None:
            self.start_scripts.queue(target, context.project_id, request.start_command)

        head = await self.executor.run(["rev-parse", "HEAD"], target)
        return WorktreeInfo(head=head.stdout.strip(), name=candidate.name, branch=local_branch, path=target)

    # ============== Remove ==============

    async def remove(self, directory: str, request: RemoveWorktreeRequest) -> bool:
        """
        Remove a worktree; directory is the containing project, not the worktree.

        A worktree git no longer knows about is deleted from disk (if present)
        and deregistered anyway.

        Raises:
            WorktreeError: For a blank target or the primary worktree
            GitCommandError: When ``worktree remove`` or branch deletion fails
        """
        target_directory = normalize_directory_path(request.directory)
        if not target_directory:
            raise WorktreeError("Worktree directory is required")

        context = await self.resolve_context(directory)
        primary = context.primary_worktree

        target_canonical = canonical_path(target_directory)
        if target_canonical == canonical_path(primary):
            raise WorktreeError("Cannot remove the primary workspace")

        matched: Optional[WorktreeEntry] = None
        for entry in await self.list_entries(primary):
            if entry.worktree and canonical_path(entry.worktree) == target_canonical:
                matched = entry
                break

        if matched is None:
            logger.info(f"Worktree {target_directory} is not registered with git; cleaning up")
            with ErrorContext(
                f"delete leftover worktree directory {target_directory}",
                raise_on_error=False,
                logger_instance=logger,
                log_level=logging.WARNING,
            ):
                if os.path.isdir(target_directory) and not os.path.islink(target_directory):
                    shutil.rmtree(target_directory)
                elif os.path.lexists(target_directory):
                    os.remove(target_directory)
            await self._sync_removed_sandbox(context, target_directory)
            return True

        logger.info(f"Removing worktree {matched.worktree}")
        await self.executor.run_or_raise(
            ["worktree", "remove", "--force", matched.worktree], primary, "Failed to remove git worktree"
        )

        if request.delete_local_branch:
            branch_name = clean_branch_name((matched.branch_ref or matched.branch or "").strip())
            if branch_name:
                await self.executor.run_or_raise(
                    ["branch", "-D", branch_name], primary, f"Failed to delete local branch {branch_name}"
                )

        await self._sync_removed_sandbox(context, matched.worktree, target_directory)
        return True

    async def _sync_removed_sandbox(self, context: WorktreeContext, *sandboxes: str) -> None:
        # git reports resolved paths; the registered entry may be the caller's spelling
        for sandbox in dict.fromkeys(sandboxes):
            with ErrorContext(
                "sync project sandbox metadata (remove)",
                raise_on_error=False,
                logger_instance=logger,
                log_level=logging.WARNING,
            ):
                await self.store.remove_sandbox(context.project_id, context.primary_worktree, sandbox)
