"""Exception hierarchy for repository and worktree operations."""

from typing import Optional


class GitChamberError(Exception):
    """Base class for all errors raised by gitchamber."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class GitCommandError(GitChamberError):
    """A required git invocation failed outright.

    The message is assembled from stderr/stdout so callers can show it as-is.
    """

    def __init__(
        self,
        message: str,
        *,
        exit_code: int = 1,
        stderr: str = "",
        stdout: str = "",
    ):
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr
        self.stdout = stdout


class WorktreeError(GitChamberError):
    """Worktree lifecycle refusal (primary removal, name exhaustion, branch conflicts)."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class InvalidSshKeyPathError(GitChamberError, ValueError):
    """SSH key path contains shell metacharacters and was rejected before use."""
