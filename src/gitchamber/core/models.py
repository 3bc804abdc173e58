"""Result and request models shared by the engines and the service facade."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..utils.validators import clean_branch_name, normalize_start_ref


# ============== Status ==============

class FileStatus(BaseModel):
    """One changed path with its index and working-tree status codes."""
    path: str
    index: str = " "
    working_dir: str = " "


class MergeInProgress(BaseModel):
    head: str  # short sha of MERGE_HEAD
    message: str = ""  # first line of MERGE_MSG


class RebaseInProgress(BaseModel):
    head_name: str = ""
    onto: str = ""  # short sha


class InProgressState(BaseModel):
    merge_in_progress: Optional[MergeInProgress] = None
    rebase_in_progress: Optional[RebaseInProgress] = None


class StatusResult(BaseModel):
    """Point-in-time repository status."""
    current: str = ""
    tracking: Optional[str] = None
    ahead: int = 0
    behind: int = 0
    files: List[FileStatus] = Field(default_factory=list)
    merge_in_progress: Optional[MergeInProgress] = None
    rebase_in_progress: Optional[RebaseInProgress] = None

    @property
    def is_clean(self) -> bool:
        return not self.files


# ============== Branches ==============

class BranchDetail(BaseModel):
    current: bool = False
    name: str
    commit: str = ""
    label: str
    tracking: Optional[str] = None
    ahead: Optional[int] = None
    behind: Optional[int] = None


class BranchResult(BaseModel):
    """Local and remote branches; remote keys are prefixed with ``remotes/``."""
    all: List[str] = Field(default_factory=list)
    current: str = ""
    branches: Dict[str, BranchDetail] = Field(default_factory=dict)


class BranchOperationResult(BaseModel):
    success: bool
    branch: str = ""


class DetachResult(BaseModel):
    success: bool
    commit: str = ""


# ============== Worktrees ==============

class WorktreeMode(str, Enum):
    NEW = "new"
    EXISTING = "existing"


class WorktreeEntry(BaseModel):
    """One block of ``git worktree list --porcelain``."""
    worktree: str
    head: Optional[str] = None
    branch_ref: Optional[str] = None
    branch: Optional[str] = None


class WorktreeInfo(BaseModel):
    head: str = ""
    name: str
    branch: str = ""
    path: str


class ProjectWorktree(BaseModel):
    """A linked worktree as shown in a project's session list."""
    name: str
    path: str
    project_directory: str
    branch: str = ""
    label: str


class ValidationCode(str, Enum):
    BRANCH_NOT_FOUND = "branch_not_found"
    BRANCH_EXISTS = "branch_exists"
    BRANCH_IN_USE = "branch_in_use"
    START_REF_NOT_FOUND = "start_ref_not_found"
    REMOTE_UNREACHABLE = "remote_unreachable"
    REMOTE_NOT_FOUND = "remote_not_found"
    INVALID_REMOTE_CONFIG = "invalid_remote_config"
    UPSTREAM_INCOMPLETE = "upstream_incomplete"
    VALIDATION_FAILED = "validation_failed"


class WorktreeValidationError(BaseModel):
    code: ValidationCode
    message: str


class ResolvedWorktree(BaseModel):
    mode: WorktreeMode
    local_branch: Optional[str] = None


class WorktreeValidationResult(BaseModel):
    ok: bool
    errors: List[WorktreeValidationError] = Field(default_factory=list)
    resolved: Optional[ResolvedWorktree] = None

    def codes(self) -> List[str]:
        return [error.code.value for error in self.errors]


class CreateWorktreeRequest(BaseModel):
    """
    Parameters for worktree creation and its dry-run validation.

    Blank strings are normalised away: ``worktree_name`` falls back to
    ``name``, ``start_ref`` defaults to ``HEAD`` and ``branch_name`` loses
    any ``refs/heads/`` prefix. Unknown modes are treated as ``new``.
    """
    mode: WorktreeMode = WorktreeMode.NEW
    worktree_name: str = ""
    name: str = ""
    branch_name: str = ""
    existing_branch: str = ""
    start_ref: str = "HEAD"
    start_command: str = ""
    set_upstream: Optional[bool] = None
    upstream_remote: str = ""
    upstream_branch: str = ""
    ensure_remote_name: str = ""
    ensure_remote_url: str = ""

    @model_validator(mode="before")
    @classmethod
    def coerce_blank_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if data.get("mode") not in (WorktreeMode.EXISTING, WorktreeMode.EXISTING.value):
            data["mode"] = WorktreeMode.NEW
        for key, value in list(data.items()):
            if value is None and key != "set_upstream":
                data.pop(key)
        return data

    @field_validator(
        "worktree_name", "name", "existing_branch", "start_command",
        "upstream_remote", "upstream_branch", "ensure_remote_name", "ensure_remote_url",
    )
    @classmethod
    def strip_text(cls, v: str) -> str:
        return str(v or "").strip()

    @field_validator("branch_name")
    @classmethod
    def clean_branch(cls, v: str) -> str:
        return clean_branch_name(str(v or "").strip())

    @field_validator("start_ref")
    @classmethod
    def default_start_ref(cls, v: str) -> str:
        return normalize_start_ref(v)

    @property
    def preferred_name(self) -> str:
        return self.worktree_name or self.name

    @property
    def has_remote_pair(self) -> bool:
        return bool(self.ensure_remote_name and self.ensure_remote_url)


class RemoveWorktreeRequest(BaseModel):
    directory: str
    delete_local_branch: bool = False


# ============== Commits, remotes, history ==============

class ChangeSummary(BaseModel):
    # Always zero: callers rely on the shape, not the numbers
    changes: int = 0
    insertions: int = 0
    deletions: int = 0


class CommitResult(BaseModel):
    success: bool
    commit: str = ""
    branch: str = ""
    summary: ChangeSummary = Field(default_factory=ChangeSummary)


class PushedRef(BaseModel):
    local: str
    remote: str


class PushResult(BaseModel):
    success: bool
    pushed: List[PushedRef] = Field(default_factory=list)
    repo: str = ""
    ref: Optional[str] = None


class PullResult(BaseModel):
    success: bool
    summary: ChangeSummary = Field(default_factory=ChangeSummary)
    files: List[str] = Field(default_factory=list)
    insertions: int = 0
    deletions: int = 0


class OperationResult(BaseModel):
    success: bool


class ConflictResult(BaseModel):
    """Outcome of merge/rebase and their continuations; conflicts are not errors."""
    success: bool
    conflict: bool = False
    conflict_files: List[str] = Field(default_factory=list)


class DiffResult(BaseModel):
    diff: str = ""


class FileDiff(BaseModel):
    original: str = ""
    modified: str = ""
    path: str


class LogEntry(BaseModel):
    hash: str
    date: str = ""
    message: str = ""
    refs: str = ""
    body: str = ""
    author_name: str = ""
    author_email: str = ""
    files_changed: int = 0
    insertions: int = 0
    deletions: int = 0


class LogResult(BaseModel):
    all: List[LogEntry] = Field(default_factory=list)
    latest: Optional[LogEntry] = None
    total: int = 0


class CommitFile(BaseModel):
    path: str
    insertions: int = 0
    deletions: int = 0
    is_binary: bool = False
    change_type: str = "M"


class GitIdentity(BaseModel):
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    ssh_command: Optional[str] = None


class GitRemote(BaseModel):
    name: str
    fetch_url: str = ""
    push_url: str = ""


# ============== Project metadata ==============

def _now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


class ProjectTime(BaseModel):
    created: int = Field(default_factory=_now_ms)
    updated: int = Field(default_factory=_now_ms)


class ProjectRecord(BaseModel):
    """Side-file record of a project's primary worktree and its sandboxes."""
    model_config = ConfigDict(extra="allow")

    id: str
    worktree: str
    vcs: str = "git"
    sandboxes: List[str] = Field(default_factory=list)
    time: ProjectTime = Field(default_factory=ProjectTime)

    def dedupe_sandboxes(self) -> None:
        seen = []
        for entry in self.sandboxes:
            text = str(entry or "").strip()
            if text and text not in seen:
                seen.append(text)
        self.sandboxes = seen
