"""Shared fixtures: temporary git repositories and a wired GitService."""

import shutil
import subprocess

import pytest

from gitchamber.core.config import AdapterConfig, ChamberConfig, StartScriptConfig, WorktreeConfig
from gitchamber.service import GitService
from gitchamber.utils.subprocess_utils import GitExecutor
from gitchamber.workspace.project_store import InMemoryProjectStore


@pytest.fixture
def git_binary():
    """Skip the test when no git binary is on PATH."""
    path = shutil.which("git")
    if path is None:
        pytest.skip("git binary not available")
    return path


def git(path, *args):
    """Run git in path and return stdout (raises on failure)."""
    result = subprocess.run(["git", *args], cwd=path, capture_output=True, text=True, check=True)
    return result.stdout


def init_git_repo(path, branch="main"):
    """Create a git repo on `branch` with a local identity and no commits."""
    path.mkdir(parents=True, exist_ok=True)
    git(path, "init")
    git(path, "symbolic-ref", "HEAD", f"refs/heads/{branch}")
    git(path, "config", "user.email", "test@test.com")
    git(path, "config", "user.name", "Test")
    git(path, "config", "commit.gpgsign", "false")


def commit_file(path, name, content, msg="commit"):
    (path / name).write_text(content)
    git(path, "add", name)
    git(path, "commit", "-m", msg)
    return git(path, "rev-parse", "HEAD").strip()


@pytest.fixture
def git_repo(tmp_path, git_binary):
    """Repository with a single commit on main."""
    repo = tmp_path / "repo"
    init_git_repo(repo)
    commit_file(repo, "README.md", "hello\n", "initial")
    return repo


@pytest.fixture
def chamber_config(tmp_path):
    return ChamberConfig(
        worktree=WorktreeConfig(data_root=tmp_path / "data"),
        start_scripts=StartScriptConfig(enabled=True, shell="sh"),
        adapter=AdapterConfig(enabled=False),
    )


@pytest.fixture
def store():
    return InMemoryProjectStore()


@pytest.fixture
def service(chamber_config, store):
    """GitService over the plain git CLI with an in-memory metadata store."""
    return GitService(executor=GitExecutor(), store=store, config=chamber_config)


@pytest.fixture
def run_git(git_binary):
    """`run_git(path, *args)` -> stdout."""
    return git


@pytest.fixture
def make_repo(git_binary):
    """`make_repo(path, branch="main")` -> path of a repo with one commit."""
    def _make(path, branch="main"):
        init_git_repo(path, branch)
        commit_file(path, "README.md", "hello\n", "initial")
        return path
    return _make


@pytest.fixture
def commit(git_binary):
    """`commit(path, name, content, msg)` -> new HEAD sha."""
    return commit_file
