"""Validation and normalization of branch names, refs and worktree names."""

import os
import re
from dataclasses import dataclass
from typing import Optional

MAX_WORKTREE_NAME_LENGTH = 80

_DISALLOWED_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(frozen=True)
class RemoteBranchRef:
    """A parsed ``<remote>/<branch>`` reference."""
    remote: str
    branch: str

    @property
    def remote_ref(self) -> str:
        return f"{self.remote}/{self.branch}"

    @property
    def full_ref(self) -> str:
        return f"refs/remotes/{self.remote}/{self.branch}"


@dataclass(frozen=True)
class UpstreamTarget:
    """Remote branch a local branch should track."""
    remote: str
    branch: str

    @property
    def full(self) -> str:
        return f"{self.remote}/{self.branch}"


def slugify_worktree_name(value: Optional[str], max_length: int = MAX_WORKTREE_NAME_LENGTH) -> str:
    """
    Turn a user-preferred name into a directory-safe worktree name.

    Strips leading ``refs/heads/`` / ``heads/``, collapses whitespace and slashes
    to hyphens, replaces anything outside ``[A-Za-z0-9._-]`` and caps the length.

    Args:
        value: Preferred name (may be None or blank)
        max_length: Maximum length of the result

    Returns:
        Slug matching ``^[A-Za-z0-9._-]{0,max_length}$`` with no leading,
        trailing or doubled hyphens
    """
    text = str(value or "").strip()
    for prefix in ("refs/heads/", "heads/"):
        if text.startswith(prefix):
            text = text[len(prefix):]
            break
    text = re.sub(r"\s+", "-", text)
    text = text.strip("/").replace("/", "-")
    text = _DISALLOWED_NAME_CHARS.sub("-", text)
    text = re.sub(r"-+", "-", text).strip("-")
    # Truncation can expose a hyphen at the cut point
    text = text[:max_length].strip("-")
    if text.strip(".") == "":
        # "." and ".." would resolve outside the worktree root
        return ""
    return text


def clean_branch_name(branch: Optional[str]) -> str:
    """Strip ``refs/heads/``, ``heads/`` or ``refs/`` from a branch reference."""
    if not branch:
        return ""
    for prefix in ("refs/heads/", "heads/", "refs/"):
        if branch.startswith(prefix):
            return branch[len(prefix):]
    return branch


def normalize_branch_name(value: Optional[str]) -> str:
    """Loose cleanup for caller-supplied branch names (no character filtering)."""
    text = str(value or "").strip()
    for prefix in ("refs/heads/", "heads/", "remotes/"):
        if text.startswith(prefix):
            text = text[len(prefix):]
            break
    text = re.sub(r"\s+", "-", text)
    return text.strip("/")


def parse_remote_branch_ref(value: Optional[str]) -> Optional[RemoteBranchRef]:
    """
    Parse ``origin/feature/x``, ``remotes/origin/x`` or ``refs/remotes/origin/x``.

    Returns:
        RemoteBranchRef, or None when there is no ``/`` or it sits at
        position 0 or at the end
    """
    text = str(value or "").strip()
    if not text:
        return None

    if text.startswith("refs/remotes/"):
        text = text[len("refs/remotes/"):]
    elif text.startswith("remotes/"):
        text = text[len("remotes/"):]

    slash = text.find("/")
    if slash <= 0 or slash == len(text) - 1:
        return None
    return RemoteBranchRef(remote=text[:slash], branch=text[slash + 1:])


def normalize_upstream_target(remote: Optional[str], branch: Optional[str]) -> Optional[UpstreamTarget]:
    """Build an UpstreamTarget only when both parts are non-blank."""
    remote_name = str(remote or "").strip()
    branch_name = str(branch or "").strip()
    if not remote_name or not branch_name:
        return None
    return UpstreamTarget(remote=remote_name, branch=branch_name)


def normalize_start_ref(value: Optional[str]) -> str:
    """Blank start refs mean HEAD."""
    return str(value or "").strip() or "HEAD"


def normalize_directory_path(value: Optional[str]) -> str:
    """Trim and expand a leading ``~``."""
    text = str(value or "").strip()
    if not text:
        return text
    if text == "~":
        return os.path.expanduser("~")
    if text.startswith("~/") or text.startswith("~\\"):
        return os.path.join(os.path.expanduser("~"), text[2:])
    return text
