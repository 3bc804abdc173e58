"""Post-create start scripts, run detached from the worktree creation call."""

import asyncio
import logging
import sys
from dataclasses import dataclass
from typing import List, Optional, Set

from ..core.config import StartScriptConfig
from ..utils.subprocess_utils import run_command
from .project_store import ProjectStore

logger = logging.getLogger(__name__)


@dataclass
class StartCommandResult:
    success: bool
    message: str = ""
    stdout: str = ""
    stderr: str = ""


class StartScriptRunner:
    """
    Runs the project's stored start command, then an optional per-call command,
    inside a freshly created worktree.

    Failures are logged as warnings and never reach the creation caller. If the
    project command fails the extra command is skipped.
    """

    def __init__(
        self,
        store: ProjectStore,
        env_builder=None,
        config: Optional[StartScriptConfig] = None,
    ):
        self.store = store
        self.env_builder = env_builder
        self.config = config or StartScriptConfig()
        self._pending: Set[asyncio.Task] = set()

    def _shell_argv(self, command: str) -> List[str]:
        if sys.platform == "win32":
            return ["cmd", "/c", command]
        return [self.config.shell, "-lc", command]

    async def run_command(self, directory: str, command: str) -> StartCommandResult:
        text = str(command or "").strip()
        if not text:
            return StartCommandResult(success=True)

        env = await self.env_builder.build_env() if self.env_builder is not None else None
        result = await run_command(self._shell_argv(text), cwd=directory, env=env, timeout=self.config.timeout)
        if result.success:
            return StartCommandResult(success=True, stdout=result.stdout, stderr=result.stderr)
        return StartCommandResult(
            success=False,
            stdout=result.stdout,
            stderr=result.stderr,
            message=result.message or "Failed to run start command",
        )

    async def run_scripts(self, directory: str, project_id: str, extra_command: Optional[str] = None) -> None:
        project_start = await self.store.load_start_command(project_id)
        if project_start:
            logger.info(f"Running project start command in {directory}")
            project_result = await self.run_command(directory, project_start)
            if not project_result.success:
                logger.warning(f"Worktree project start command failed: {project_result.message}")
                return

        extra = str(extra_command or "").strip()
        if not extra:
            return
        logger.info(f"Running start command in {directory}")
        extra_result = await self.run_command(directory, extra)
        if not extra_result.success:
            logger.warning(f"Worktree start command failed: {extra_result.message}")

    def _on_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"Worktree start script task failed: {error}")

    def queue(self, directory: str, project_id: str, extra_command: Optional[str] = None) -> Optional[asyncio.Task]:
        """Schedule the scripts on the running loop and return without waiting."""
        if not self.config.enabled:
            return None
        task = asyncio.get_running_loop().create_task(self.run_scripts(directory, project_id, extra_command))
        self._pending.add(task)
        task.add_done_callback(self._on_done)
        return task

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for queued scripts (used before a short-lived process exits)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
