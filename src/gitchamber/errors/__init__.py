"""Error types and user-friendly translation."""

from .exceptions import GitChamberError, GitCommandError, InvalidSshKeyPathError, WorktreeError
from .translator import ErrorTranslator, UserFriendlyError

__all__ = [
    "GitChamberError",
    "GitCommandError",
    "InvalidSshKeyPathError",
    "WorktreeError",
    "ErrorTranslator",
    "UserFriendlyError",
]
