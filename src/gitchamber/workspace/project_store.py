"""Project metadata store: a JSON record per project ID listing its worktrees.

The record lives at ``<data-root>/storage/project/<id>.json`` and is shared
with other tools; unknown keys are preserved on every write.
"""

import json
import logging
import math
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from ..core.config import WorktreeConfig
from ..core.models import ProjectRecord, ProjectTime
from ..core.parsers import select_root_commit
from ..errors import GitChamberError
from ..utils.atomic_io import atomic_write_model
from ..utils.subprocess_utils import GitExecutor

logger = logging.getLogger(__name__)

PROJECT_ID_MARKER = "opencode"

ProjectUpdater = Callable[[ProjectRecord], None]


def _now_ms() -> int:
    return int(time.time() * 1000)


def normalize_project_record(
    raw: Optional[Dict[str, Any]],
    project_id: str,
    primary_worktree: str,
    now: Optional[int] = None,
) -> ProjectRecord:
    """
    Merge a stored record over the defaults and coerce every field.

    ``updated`` is always reset to now; ``created`` survives only when it is a
    positive finite number.
    """
    now = now if now is not None else _now_ms()
    data: Dict[str, Any] = {
        "id": project_id,
        "worktree": primary_worktree,
        "vcs": "git",
        "sandboxes": [],
    }
    if isinstance(raw, dict):
        data.update(raw)

    data["id"] = str(data.get("id") or project_id)
    data["worktree"] = str(data.get("worktree") or primary_worktree)
    data["vcs"] = data.get("vcs") or "git"

    sandboxes = data.get("sandboxes")
    data["sandboxes"] = (
        [str(entry or "").strip() for entry in sandboxes if str(entry or "").strip()]
        if isinstance(sandboxes, list)
        else []
    )

    created = None
    stored_time = data.get("time")
    if isinstance(stored_time, dict):
        try:
            created = float(stored_time.get("created"))
        except (TypeError, ValueError):
            created = None
    if created is None or not math.isfinite(created) or created <= 0:
        created = now
    data["time"] = ProjectTime(created=int(created), updated=now)

    return ProjectRecord(**data)


class ProjectStore(ABC):
    """Read-modify-write registry of a project's sandboxes (worktree paths)."""

    @abstractmethod
    async def load(self, project_id: str) -> Optional[Dict[str, Any]]:
        """Raw stored record, or None when absent or unreadable."""
        pass

    @abstractmethod
    async def save(self, record: ProjectRecord) -> None:
        pass

    async def update(self, project_id: str, primary_worktree: str, updater: ProjectUpdater) -> ProjectRecord:
        record = normalize_project_record(await self.load(project_id), project_id, primary_worktree)
        updater(record)
        record.dedupe_sandboxes()
        await self.save(record)
        return record

    async def add_sandbox(self, project_id: str, primary_worktree: str, sandbox_path: str) -> None:
        sandbox = str(sandbox_path or "").strip()
        if not sandbox:
            return

        def _add(record: ProjectRecord) -> None:
            if sandbox not in record.sandboxes:
                record.sandboxes.append(sandbox)

        await self.update(project_id, primary_worktree, _add)

    async def remove_sandbox(self, project_id: str, primary_worktree: str, sandbox_path: str) -> None:
        sandbox = str(sandbox_path or "").strip()
        if not sandbox:
            return

        def _remove(record: ProjectRecord) -> None:
            record.sandboxes = [entry for entry in record.sandboxes if entry != sandbox]

        await self.update(project_id, primary_worktree, _remove)

    async def load_start_command(self, project_id: str) -> str:
        """``commands.start`` from the stored record, or an empty string."""
        raw = await self.load(project_id)
        if not isinstance(raw, dict):
            return ""
        commands = raw.get("commands")
        start = commands.get("start") if isinstance(commands, dict) else None
        return start.strip() if isinstance(start, str) else ""


class JsonProjectStore(ProjectStore):
    """Stores each record as pretty-printed JSON under storage_root."""

    def __init__(self, storage_root: Path):
        self.storage_root = Path(storage_root).expanduser()

    @classmethod
    def from_config(cls, config: WorktreeConfig) -> "JsonProjectStore":
        return cls(config.project_storage_root())

    def path_for(self, project_id: str) -> Path:
        return self.storage_root / f"{project_id}.json"

    async def load(self, project_id: str) -> Optional[Dict[str, Any]]:
        path = self.path_for(project_id)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable project record {path}: {e}")
            return None
        return data if isinstance(data, dict) else None

    async def save(self, record: ProjectRecord) -> None:
        atomic_write_model(self.path_for(record.id), record)


class InMemoryProjectStore(ProjectStore):
    """Dictionary-backed store for tests and embedding."""

    def __init__(self, records: Optional[Dict[str, Dict[str, Any]]] = None):
        self.records: Dict[str, Dict[str, Any]] = dict(records or {})

    async def load(self, project_id: str) -> Optional[Dict[str, Any]]:
        raw = self.records.get(project_id)
        return dict(raw) if raw is not None else None

    async def save(self, record: ProjectRecord) -> None:
        self.records[record.id] = record.model_dump(mode="json")

    def sandboxes(self, project_id: str) -> list:
        return list((self.records.get(project_id) or {}).get("sandboxes", []))


async def ensure_project_id(executor: GitExecutor, primary_worktree: str, persist: bool = True) -> str:
    """
    Stable project ID: the smallest root commit hash of the repository.

    Cached in ``<primary>/.git/opencode``; the cache write is best-effort and
    skipped when persist is False.

    Raises:
        GitChamberError: If the repository has no commits to derive an ID from
    """
    git_dir = Path(primary_worktree) / ".git"
    marker = git_dir / PROJECT_ID_MARKER
    try:
        existing = marker.read_text(encoding="utf-8").strip()
    except (OSError, UnicodeDecodeError):
        existing = ""
    if existing:
        return existing

    roots = await executor.run_or_raise(
        ["rev-list", "--max-parents=0", "--all"],
        primary_worktree,
        "Failed to resolve repository roots",
    )
    project_id = select_root_commit(roots.stdout)
    if not project_id:
        raise GitChamberError("Failed to derive project ID: repository has no commits")

    if persist:
        try:
            git_dir.mkdir(parents=True, exist_ok=True)
            marker.write_text(project_id, encoding="utf-8")
        except OSError as e:
            logger.debug(f"Could not cache project ID in {marker}: {e}")
    return project_id
