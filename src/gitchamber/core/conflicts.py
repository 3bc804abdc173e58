"""Merge/rebase controller.

Per repository: Clean -> InProgress -> Conflict | Completed. Conflicts come
back as ``ConflictResult(conflict=True)``; only failures that do not look like
conflicts raise.
"""

import logging
from typing import Iterable, List

from ..errors import GitCommandError
from ..utils.subprocess_utils import CommandResult, GitExecutor
from .models import ConflictResult, OperationResult
from .parsers import (
    CONTINUE_CONFLICT_PHRASES,
    MERGE_CONFLICT_PHRASES,
    REBASE_CONFLICT_PHRASES,
    is_conflict_output,
    parse_conflict_files,
)

logger = logging.getLogger(__name__)


class ConflictController:
    """Drives merge and rebase and classifies their failures."""

    def __init__(self, executor: GitExecutor):
        self.executor = executor

    async def conflict_files(self, directory: str) -> List[str]:
        status = await self.executor.run(["status", "--porcelain"], directory)
        return parse_conflict_files(status.stdout)

    async def _classify(
        self,
        directory: str,
        result: CommandResult,
        phrases: Iterable[str],
        failure_message: str,
    ) -> ConflictResult:
        if result.success:
            return ConflictResult(success=True, conflict=False)

        if is_conflict_output(result.stdout + result.stderr, phrases):
            files = await self.conflict_files(directory)
            logger.info(f"Conflict in {directory}: {len(files)} file(s)")
            return ConflictResult(success=False, conflict=True, conflict_files=files)

        logger.error(f"{failure_message} in {directory}: {result.stderr.strip()}")
        raise GitCommandError(
            result.stderr or failure_message,
            exit_code=result.exit_code,
            stderr=result.stderr,
            stdout=result.stdout,
        )

    async def rebase(self, directory: str, onto: str) -> ConflictResult:
        result = await self.executor.run(["rebase", onto], directory)
        return await self._classify(directory, result, REBASE_CONFLICT_PHRASES, "Rebase failed")

    async def merge(self, directory: str, branch: str) -> ConflictResult:
        result = await self.executor.run(["merge", branch], directory)
        return await self._classify(directory, result, MERGE_CONFLICT_PHRASES, "Merge failed")

    async def continue_rebase(self, directory: str) -> ConflictResult:
        # No editor for the reworded commit: nothing can answer it
        result = await self.executor.run(["-c", "core.editor=true", "rebase", "--continue"], directory)
        return await self._classify(directory, result, CONTINUE_CONFLICT_PHRASES, "Continue rebase failed")

    async def continue_merge(self, directory: str) -> ConflictResult:
        """Conclude a merge; resolved files must already be staged."""
        result = await self.executor.run(["commit", "--no-edit"], directory)
        return await self._classify(directory, result, CONTINUE_CONFLICT_PHRASES, "Continue merge failed")

    async def abort_rebase(self, directory: str) -> OperationResult:
        result = await self.executor.run(["rebase", "--abort"], directory)
        return OperationResult(success=result.success)

    async def abort_merge(self, directory: str) -> OperationResult:
        result = await self.executor.run(["merge", "--abort"], directory)
        return OperationResult(success=result.success)
