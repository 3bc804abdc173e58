"""Shared utility functions for gitchamber."""

from .atomic_io import atomic_write_model, atomic_write_text
from .credentials import (
    CredentialEnvResolver,
    build_ssh_command,
    escape_ssh_key_path,
    is_socket_path,
)
from .error_handling import ErrorContext, log_and_ignore, safe_await
from .subprocess_utils import (
    CommandResult,
    GitExecutor,
    SubprocessError,
    run_command,
)
from .validators import (
    RemoteBranchRef,
    UpstreamTarget,
    clean_branch_name,
    normalize_branch_name,
    normalize_start_ref,
    normalize_upstream_target,
    parse_remote_branch_ref,
    slugify_worktree_name,
)

__all__ = [
    # Atomic I/O
    "atomic_write_model",
    "atomic_write_text",
    # Credentials
    "CredentialEnvResolver",
    "build_ssh_command",
    "escape_ssh_key_path",
    "is_socket_path",
    # Error handling
    "ErrorContext",
    "log_and_ignore",
    "safe_await",
    # Subprocess utilities
    "CommandResult",
    "GitExecutor",
    "SubprocessError",
    "run_command",
    # Validators
    "RemoteBranchRef",
    "UpstreamTarget",
    "clean_branch_name",
    "normalize_branch_name",
    "normalize_start_ref",
    "normalize_upstream_target",
    "parse_remote_branch_ref",
    "slugify_worktree_name",
]
