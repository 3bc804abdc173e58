"""GitPython adapter path agrees with the git CLI path."""

import pytest

from gitchamber.core.config import AdapterConfig
from gitchamber.service import GitService
from gitchamber.utils.subprocess_utils import GitExecutor

pytestmark = pytest.mark.integration


@pytest.fixture
def adapter_service(chamber_config, store):
    config = chamber_config.model_copy(update={"adapter": AdapterConfig(enabled=True)})
    service = GitService(executor=GitExecutor(), store=store, config=config)
    yield service
    service.close()


def _files(status):
    return sorted((entry.path, entry.index, entry.working_dir) for entry in status.files)


class TestAdapterParity:
    """Structured and CLI snapshots describe the same repository state."""

    @pytest.mark.asyncio
    async def test_staged_and_modified(self, adapter_service, service, git_repo, run_git):
        (git_repo / "README.md").write_text("changed\n")
        (git_repo / "staged.txt").write_text("new\n")
        run_git(git_repo, "add", "staged.txt")

        structured = await adapter_service.get_status(str(git_repo))
        raw = await service.get_status(str(git_repo))

        assert adapter_service.adapters.is_active
        assert _files(structured) == _files(raw) == [("README.md", " ", "M"), ("staged.txt", "A", " ")]
        assert structured.current == raw.current == "main"

    @pytest.mark.asyncio
    async def test_conflict_marked_unmerged(self, adapter_service, git_repo, run_git, commit):
        commit(git_repo, "x.txt", "base\n", "add x")
        run_git(git_repo, "checkout", "-b", "feature")
        commit(git_repo, "x.txt", "feature\n", "feature change")
        run_git(git_repo, "checkout", "main")
        commit(git_repo, "x.txt", "main\n", "main change")

        result = await adapter_service.merge(str(git_repo), "feature")
        status = await adapter_service.get_status(str(git_repo))

        assert result.conflict is True
        assert _files(status) == [("x.txt", "U", "U")]
        assert status.merge_in_progress is not None

    @pytest.mark.asyncio
    async def test_branches_and_commit(self, adapter_service, git_repo, run_git):
        run_git(git_repo, "branch", "topic")
        branches = await adapter_service.get_branches(str(git_repo))
        assert branches.current == "main"
        assert set(branches.all) == {"main", "topic"}

        (git_repo / "a.txt").write_text("a\n")
        result = await adapter_service.commit(str(git_repo), "Add a", add_all=True)
        assert result.success is True
        assert result.commit == run_git(git_repo, "rev-parse", "HEAD").strip()

    @pytest.mark.asyncio
    async def test_identity_and_file_diff(self, adapter_service, git_repo):
        await adapter_service.set_identity(str(git_repo), "Dev", "dev@example.com")
        identity = await adapter_service.get_identity(str(git_repo))
        assert (identity.user_name, identity.user_email) == ("Dev", "dev@example.com")
        assert identity.ssh_command is None

        (git_repo / "README.md").write_text("changed\n")
        diff = await adapter_service.get_file_diff(str(git_repo), "README.md")
        assert (diff.original, diff.modified) == ("hello\n", "changed\n")
