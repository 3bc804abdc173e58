"""Git repository and worktree orchestration for parallel coding sessions."""

from .service import GitService

__version__ = "0.1.0"

__all__ = ["GitService", "__version__"]
