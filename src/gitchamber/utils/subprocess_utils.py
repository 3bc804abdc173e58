"""Standardized subprocess utilities for git command execution."""

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

from ..errors import GitCommandError

logger = logging.getLogger(__name__)

# Disables any credential prompt so automation never blocks on stdin
NON_INTERACTIVE_ENV = {"GIT_TERMINAL_PROMPT": "0"}


@dataclass
class CommandResult:
    """Captured output of a finished subprocess."""
    stdout: str
    stderr: str
    exit_code: int

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    @property
    def message(self) -> str:
        """stderr and stdout joined, for error reporting."""
        parts = [self.stderr.strip(), self.stdout.strip()]
        return "\n".join(p for p in parts if p).strip()


class SubprocessError(GitCommandError):
    """Exception raised when a required git command fails."""

    def __init__(
        self,
        cmd: str,
        returncode: int,
        stderr: str,
        stdout: str = "",
        cwd: Optional[Path] = None,
        fallback_message: Optional[str] = None,
    ):
        self.cmd = cmd
        self.cwd = cwd
        message = "\n".join(p for p in (stderr.strip(), stdout.strip()) if p)
        super().__init__(
            message or fallback_message or f"Command failed with exit code {returncode}: {cmd}",
            exit_code=returncode,
            stderr=stderr,
            stdout=stdout,
        )


def _normalize_cwd(cwd: Union[str, Path, None]) -> Optional[str]:
    if cwd is None:
        return None
    text = str(cwd).replace("\\", "/")
    if text.startswith("~"):
        text = os.path.expanduser(text)
    return text


async def run_command(
    cmd: List[str],
    *,
    cwd: Union[str, Path, None] = None,
    env: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = None,
) -> CommandResult:
    """
    Run a command without a shell and capture its output.

    Never raises for a nonzero exit. Spawn failures (missing binary, bad cwd)
    come back as exit_code=1 with the reason in stderr and empty stdout.

    Args:
        cmd: Argument vector, first element is the executable
        cwd: Working directory
        env: Full environment for the child (None inherits ours)
        timeout: Optional timeout in seconds

    Returns:
        CommandResult with stdout, stderr and exit_code
    """
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=_normalize_cwd(cwd),
            env=env,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except (OSError, ValueError) as e:
        logger.debug(f"Failed to spawn {cmd[0] if cmd else '<empty>'}: {e}")
        return CommandResult(stdout="", stderr=str(e), exit_code=1)

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        logger.error(f"Command timed out after {timeout}s: {' '.join(cmd)}")
        return CommandResult(stdout="", stderr=f"Command timed out after {timeout}s", exit_code=1)

    return CommandResult(
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
        exit_code=process.returncode if process.returncode is not None else 0,
    )


class GitExecutor:
    """Runs the git binary with the resolved credential environment."""

    def __init__(
        self,
        executable: str = "git",
        env_builder=None,
        timeout: Optional[float] = None,
    ):
        """
        Initialize the executor.

        Args:
            executable: Path or name of the git binary
            env_builder: Object exposing ``async build_env()``; when None the
                ambient environment plus the non-interactive setting is used
            timeout: Default timeout per invocation in seconds (None = no limit)
        """
        self.executable = executable
        self.env_builder = env_builder
        self.timeout = timeout

    async def build_env(self) -> Dict[str, str]:
        if self.env_builder is not None:
            try:
                env = await self.env_builder.build_env()
            except Exception as e:
                logger.warning(f"Failed to build git environment, using ambient env: {e}")
                env = dict(os.environ)
        else:
            env = dict(os.environ)
        env.update(NON_INTERACTIVE_ENV)
        return env

    async def run(self, args: List[str], cwd: Union[str, Path]) -> CommandResult:
        """Run ``git <args>`` in cwd. Never raises for nonzero exit."""
        env = await self.build_env()
        return await run_command([self.executable, *args], cwd=cwd, env=env, timeout=self.timeout)

    async def run_or_raise(
        self,
        args: List[str],
        cwd: Union[str, Path],
        fallback_message: str = "Git command failed",
    ) -> CommandResult:
        """
        Run a git command that must succeed.

        Raises:
            SubprocessError: carrying stderr/stdout (or fallback_message when both are empty)
        """
        result = await self.run(args, cwd)
        if not result.success:
            logger.error(f"Git command failed in {cwd}: git {' '.join(args)}")
            raise SubprocessError(
                cmd=f"git {' '.join(args)}",
                returncode=result.exit_code,
                stderr=result.stderr,
                stdout=result.stdout,
                cwd=Path(str(cwd)),
                fallback_message=fallback_message,
            )
        return result

    async def succeeds(self, args: List[str], cwd: Union[str, Path]) -> bool:
        """Shorthand for probes such as ``show-ref --verify --quiet``."""
        return (await self.run(args, cwd)).success
