"""Pure parsers for git's line-oriented output.

Every function takes captured text and returns models; none of them spawn
processes, so they are tested directly against sample output.
"""

import re
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

from ..utils.validators import clean_branch_name
from .models import (
    BranchDetail,
    BranchResult,
    CommitFile,
    FileStatus,
    GitRemote,
    LogEntry,
    StatusResult,
    WorktreeEntry,
)

STATUS_HEADER_PATTERN = re.compile(r"^## (.+?)(?:\.\.\.(.+?))?(?:\s+\[(.+)\])?$")
AHEAD_PATTERN = re.compile(r"ahead (\d+)")
BEHIND_PATTERN = re.compile(r"behind (\d+)")
SHORTSTAT_PATTERN = re.compile(
    r"(\d+)\s+files?\s+changed(?:,\s+(\d+)\s+insertions?\(\+\))?(?:,\s+(\d+)\s+deletions?\(-\))?"
)
REMOTE_LINE_PATTERN = re.compile(r"^(\S+)\s+(\S+)\s+\((fetch|push)\)$")

BRANCH_LIST_FORMAT = "%(refname)|%(objectname:short)|%(upstream:short)|%(HEAD)"
LOG_FORMAT = "%H|%aI|%s|%D|%b|%an|%ae"

REBASE_CONFLICT_PHRASES = ("conflict", "could not apply", "merge conflict")
MERGE_CONFLICT_PHRASES = ("conflict", "merge conflict", "automatic merge failed")
CONTINUE_CONFLICT_PHRASES = ("conflict", "needs merge", "unmerged")

CONFLICT_PREFIXES = ("UU", "AA", "DD")

GitOptions = Union[Sequence[str], Mapping[str, object], None]


def _non_empty_lines(raw: str) -> List[str]:
    return [line for line in str(raw or "").splitlines() if line.strip()]


def parse_status_porcelain(raw: str) -> StatusResult:
    """
    Parse ``git status --porcelain=v1 -b -uall``.

    The ``##`` header yields current branch, tracking ref and ahead/behind;
    every other line is two status columns, a space and the path.
    """
    result = StatusResult()
    for line in _non_empty_lines(raw):
        if line.startswith("##"):
            match = STATUS_HEADER_PATTERN.match(line)
            if not match:
                continue
            result.current = match.group(1) or ""
            result.tracking = match.group(2) or None
            tracking_info = match.group(3) or ""
            ahead = AHEAD_PATTERN.search(tracking_info)
            behind = BEHIND_PATTERN.search(tracking_info)
            result.ahead = int(ahead.group(1)) if ahead else 0
            result.behind = int(behind.group(1)) if behind else 0
            continue

        result.files.append(FileStatus(
            path=line[3:].strip(),
            index=line[0] if len(line) > 0 else " ",
            working_dir=line[1] if len(line) > 1 else " ",
        ))
    return result


def parse_branch_listing(raw: str) -> BranchResult:
    """Parse ``git branch -a -v --format=<BRANCH_LIST_FORMAT>``."""
    result = BranchResult()
    for line in _non_empty_lines(raw):
        parts = line.split("|")
        # refs/heads/x -> x, refs/remotes/o/x -> remotes/o/x
        name = re.sub(r"^refs/(heads/)?", "", parts[0].strip())
        if not name:
            continue
        commit = parts[1] if len(parts) > 1 else ""
        tracking = parts[2] if len(parts) > 2 else ""
        is_current = len(parts) > 3 and parts[3].strip() == "*"
        if is_current:
            result.current = name

        result.all.append(name)
        result.branches[name] = BranchDetail(
            current=is_current,
            name=name,
            commit=commit,
            label=re.sub(r"^remotes/", "", name),
            tracking=tracking or None,
        )
    return result


def parse_worktree_porcelain(raw: str) -> List[WorktreeEntry]:
    """
    Parse ``git worktree list --porcelain``.

    Entries start at ``worktree <path>`` and end at a blank line; ``HEAD`` and
    ``branch`` lines fill in the current entry. Lines before the first
    ``worktree`` line are ignored.
    """
    entries: List[WorktreeEntry] = []
    current: Optional[WorktreeEntry] = None

    for line in (l.strip() for l in str(raw or "").split("\n")):
        if not line:
            if current is not None and current.worktree:
                entries.append(current)
            current = None
            continue

        if line.startswith("worktree "):
            if current is not None and current.worktree:
                entries.append(current)
            current = WorktreeEntry(worktree=line[len("worktree "):].strip())
            continue

        if current is None:
            continue

        if line.startswith("HEAD "):
            current.head = line[len("HEAD "):].strip()
        elif line.startswith("branch "):
            branch_ref = line[len("branch "):].strip()
            current.branch_ref = branch_ref
            current.branch = clean_branch_name(branch_ref)

    if current is not None and current.worktree:
        entries.append(current)
    return entries


def parse_log(raw: str) -> List[LogEntry]:
    """Parse ``git log --format=<LOG_FORMAT> --shortstat``."""
    entries: List[LogEntry] = []
    current: Optional[LogEntry] = None

    for line in str(raw or "").split("\n"):
        if "|" in line and not line.startswith(" "):
            if current is not None and current.hash:
                entries.append(current)
            parts = line.split("|")
            parts += [""] * (7 - len(parts))
            current = LogEntry(
                hash=parts[0],
                date=parts[1],
                message=parts[2],
                refs=parts[3],
                body=parts[4],
                author_name=parts[5],
                author_email=parts[6],
            )
        elif current is not None and "file" in line:
            match = SHORTSTAT_PATTERN.search(line)
            if match:
                current.files_changed = int(match.group(1) or 0)
                current.insertions = int(match.group(2) or 0)
                current.deletions = int(match.group(3) or 0)

    if current is not None and current.hash:
        entries.append(current)
    return entries


def parse_numstat(raw: str) -> List[CommitFile]:
    """Parse ``git show --numstat --format=``; ``-``/``-`` counts mark binary files."""
    files: List[CommitFile] = []
    for line in _non_empty_lines(raw):
        parts = line.split("\t")
        if len(parts) < 3:
            continue
        is_binary = parts[0] == "-" and parts[1] == "-"
        files.append(CommitFile(
            path=parts[2],
            insertions=0 if is_binary else _to_int(parts[0]),
            deletions=0 if is_binary else _to_int(parts[1]),
            is_binary=is_binary,
        ))
    return files


def _to_int(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        return 0


def parse_remotes(raw: str) -> List[GitRemote]:
    """Parse ``git remote -v`` into one record per remote, in first-seen order."""
    remotes: Dict[str, GitRemote] = {}
    for line in _non_empty_lines(raw):
        match = REMOTE_LINE_PATTERN.match(line)
        if not match:
            continue
        name, url, kind = match.groups()
        remote = remotes.setdefault(name, GitRemote(name=name))
        if kind == "fetch":
            remote.fetch_url = url
        else:
            remote.push_url = url
    return list(remotes.values())


def parse_conflict_files(raw: str) -> List[str]:
    """Paths of ``git status --porcelain`` lines marked UU, AA or DD."""
    return [
        line[3:].strip()
        for line in str(raw or "").split("\n")
        if line.startswith(CONFLICT_PREFIXES)
    ]


def is_conflict_output(output: str, phrases: Iterable[str]) -> bool:
    lowered = str(output or "").lower()
    return any(phrase in lowered for phrase in phrases)


def parse_lines(raw: str) -> List[str]:
    """Trimmed, non-blank lines (``--name-only`` listings, ``git remote``)."""
    return [line.strip() for line in str(raw or "").split("\n") if line.strip()]


def select_root_commit(raw: str) -> str:
    """Lexicographically smallest hash from ``git rev-list --max-parents=0 --all``."""
    roots = sorted(parse_lines(raw))
    return roots[0] if roots else ""


def normalize_git_options(options: GitOptions) -> List[str]:
    """
    Flatten push options into argv.

    Accepts a list (used as-is) or a mapping where ``None``/``True`` emit the
    bare flag, ``False`` drops it and anything else emits ``flag value``.
    """
    if not options:
        return []
    if isinstance(options, Mapping):
        args: List[str] = []
        for key, value in options.items():
            if value is None or value is True:
                args.append(key)
            elif value is not False:
                args.extend([key, str(value)])
        return args
    return list(options)


def has_option(options: GitOptions, flag: str) -> bool:
    if not options:
        return False
    if isinstance(options, Mapping):
        return flag in options and options[flag] is not False
    return flag in options


def looks_like_missing_upstream(message: str) -> bool:
    lowered = str(message or "").lower()
    return (
        "has no upstream" in lowered
        or "no upstream" in lowered
        or "set-upstream" in lowered
        or "set upstream" in lowered
        or ("upstream" in lowered and "push" in lowered and "-u" in lowered)
    )
