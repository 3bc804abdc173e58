"""Worktree lifecycle, project metadata and start scripts."""

from .project_store import InMemoryProjectStore, JsonProjectStore, ProjectStore, ensure_project_id
from .start_scripts import StartScriptRunner
from .worktree_manager import WorktreeLifecycleManager, resolve_name_candidates

__all__ = [
    "InMemoryProjectStore",
    "JsonProjectStore",
    "ProjectStore",
    "ensure_project_id",
    "StartScriptRunner",
    "WorktreeLifecycleManager",
    "resolve_name_candidates",
]
