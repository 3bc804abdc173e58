"""End-to-end worktree lifecycle against real git repositories."""

import re
from unittest.mock import patch

import pytest

from gitchamber.core.models import CreateWorktreeRequest, RemoveWorktreeRequest, WorktreeMode
from gitchamber.errors import GitChamberError, WorktreeError

pytestmark = pytest.mark.integration


def _root_commit(run_git, repo):
    return run_git(repo, "rev-list", "--max-parents=0", "--all").strip()


class TestCreateWorktree:
    """Creating worktrees in new mode."""

    @pytest.mark.asyncio
    async def test_create_uses_preferred_name(self, service, store, git_repo, run_git, chamber_config):
        project_id = _root_commit(run_git, git_repo)

        info = await service.create_worktree(str(git_repo), CreateWorktreeRequest(worktree_name="demo"))
        await service.start_scripts.drain()

        expected = chamber_config.worktree.worktree_root(project_id) / "demo"
        assert info.name == "demo"
        assert info.branch == "openchamber/demo"
        assert info.path == str(expected)
        assert (expected / "README.md").read_text() == "hello\n"
        assert info.head == run_git(git_repo, "rev-parse", "HEAD").strip()
        assert store.sandboxes(project_id) == [info.path]
        assert (git_repo / ".git" / "opencode").read_text() == project_id

    @pytest.mark.asyncio
    async def test_second_create_gets_suffixed_name(self, service, git_repo):
        first = await service.create_worktree(str(git_repo), CreateWorktreeRequest(worktree_name="demo"))
        second = await service.create_worktree(str(git_repo), CreateWorktreeRequest(worktree_name="demo"))
        await service.start_scripts.drain()

        assert first.name == "demo"
        assert re.match(r"^demo-[a-z]+-[a-z]+$", second.name)
        assert second.branch == f"openchamber/{second.name}"

    @pytest.mark.asyncio
    async def test_blank_name_generates_random_name(self, service, git_repo):
        info = await service.create_worktree(str(git_repo), CreateWorktreeRequest())
        await service.start_scripts.drain()
        assert re.match(r"^[a-z]+-[a-z]+$", info.name)

    @pytest.mark.asyncio
    async def test_explicit_branch_and_start_ref(self, service, git_repo, run_git, commit):
        first_sha = run_git(git_repo, "rev-parse", "HEAD").strip()
        commit(git_repo, "later.txt", "later\n", "second")

        info = await service.create_worktree(
            str(git_repo),
            CreateWorktreeRequest(worktree_name="old", branch_name="refs/heads/fix/old", start_ref=first_sha),
        )
        await service.start_scripts.drain()

        assert info.branch == "fix/old"
        assert info.head == first_sha

    @pytest.mark.asyncio
    async def test_local_slash_branch_as_start_ref(self, service, git_repo, run_git, commit):
        run_git(git_repo, "checkout", "-b", "feature/base")
        base_sha = commit(git_repo, "base.txt", "base\n", "base work")
        run_git(git_repo, "checkout", "main")
        request = CreateWorktreeRequest(worktree_name="child", start_ref="feature/base")

        validation = await service.validate_worktree_create(str(git_repo), request)
        assert validation.ok is True

        info = await service.create_worktree(str(git_repo), request)
        await service.start_scripts.drain()

        assert info.branch == "openchamber/child"
        assert info.head == base_sha
        assert run_git(git_repo, "remote").strip() == ""

    @pytest.mark.asyncio
    async def test_own_worktree_branch_as_start_ref(self, service, git_repo):
        first = await service.create_worktree(str(git_repo), CreateWorktreeRequest(worktree_name="first"))
        second = await service.create_worktree(
            str(git_repo), CreateWorktreeRequest(worktree_name="second", start_ref=first.branch)
        )
        await service.start_scripts.drain()

        assert second.head == first.head

    @pytest.mark.asyncio
    async def test_existing_branch_conflict_raises(self, service, git_repo, run_git):
        run_git(git_repo, "branch", "taken")
        with pytest.raises(WorktreeError) as exc_info:
            await service.create_worktree(
                str(git_repo), CreateWorktreeRequest(worktree_name="x", branch_name="taken")
            )
        assert exc_info.value.code == "branch_exists"

    @pytest.mark.asyncio
    async def test_repository_without_commits_fails(self, service, tmp_path, run_git):
        empty = tmp_path / "empty"
        empty.mkdir()
        run_git(empty, "init")
        with pytest.raises(GitChamberError):
            await service.create_worktree(str(empty), CreateWorktreeRequest(worktree_name="demo"))


class TestExistingMode:
    """Attaching worktrees to existing branches."""

    @pytest.mark.asyncio
    async def test_attach_local_branch(self, service, git_repo, run_git):
        run_git(git_repo, "branch", "feature")

        info = await service.create_worktree(
            str(git_repo),
            CreateWorktreeRequest(mode=WorktreeMode.EXISTING, worktree_name="feature", existing_branch="feature"),
        )
        await service.start_scripts.drain()

        assert info.branch == "feature"
        assert info.name == "feature"
        assert run_git(info.path, "symbolic-ref", "--short", "HEAD").strip() == "feature"

    @pytest.mark.asyncio
    async def test_branch_checked_out_elsewhere(self, service, git_repo):
        with pytest.raises(WorktreeError) as exc_info:
            await service.create_worktree(
                str(git_repo), CreateWorktreeRequest(mode="existing", existing_branch="main")
            )
        assert exc_info.value.code == "branch_in_use"

    @pytest.mark.asyncio
    async def test_missing_branch(self, service, git_repo):
        with pytest.raises(WorktreeError) as exc_info:
            await service.create_worktree(
                str(git_repo), CreateWorktreeRequest(mode="existing", existing_branch="nope")
            )
        assert exc_info.value.code == "branch_not_found"


class TestValidateWorktree:
    """Dry-run validation."""

    @pytest.mark.asyncio
    async def test_valid_request(self, service, git_repo):
        result = await service.validate_worktree_create(str(git_repo), CreateWorktreeRequest(worktree_name="demo"))
        assert result.ok is True
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_existing_branch_reported_without_mutation(self, service, git_repo, run_git, chamber_config):
        run_git(git_repo, "branch", "feature")
        refs_before = run_git(git_repo, "show-ref")

        result = await service.validate_worktree_create(
            str(git_repo), CreateWorktreeRequest(worktree_name="x", branch_name="feature")
        )

        assert result.ok is False
        assert result.codes() == ["branch_exists"]
        assert result.resolved.local_branch == "feature"
        assert run_git(git_repo, "show-ref") == refs_before
        assert not (git_repo / ".git" / "opencode").exists()
        assert not (chamber_config.worktree.data_root / "worktree").exists()

    @pytest.mark.asyncio
    async def test_branch_in_use(self, service, git_repo):
        result = await service.validate_worktree_create(
            str(git_repo), CreateWorktreeRequest(mode="existing", existing_branch="main")
        )
        assert result.codes() == ["branch_in_use"]

    @pytest.mark.asyncio
    async def test_missing_existing_branch(self, service, git_repo):
        result = await service.validate_worktree_create(
            str(git_repo), CreateWorktreeRequest(mode="existing", existing_branch="nope")
        )
        assert result.codes() == ["branch_not_found"]

    @pytest.mark.asyncio
    async def test_unknown_start_ref(self, service, git_repo):
        result = await service.validate_worktree_create(
            str(git_repo), CreateWorktreeRequest(worktree_name="x", start_ref="does-not-exist")
        )
        assert result.codes() == ["start_ref_not_found"]

    @pytest.mark.asyncio
    async def test_unknown_remote_start_ref_is_not_queried(self, service, git_repo):
        result = await service.validate_worktree_create(
            str(git_repo), CreateWorktreeRequest(worktree_name="x", start_ref="nowhere/branch")
        )
        assert result.codes() == ["start_ref_not_found"]

    @pytest.mark.asyncio
    async def test_remote_pair_and_upstream_checks(self, service, git_repo):
        result = await service.validate_worktree_create(
            str(git_repo),
            CreateWorktreeRequest(worktree_name="x", ensure_remote_name="fork", set_upstream=True),
        )
        assert result.codes() == ["invalid_remote_config", "upstream_incomplete"]

    @pytest.mark.asyncio
    async def test_unknown_upstream_remote(self, service, git_repo):
        result = await service.validate_worktree_create(
            str(git_repo),
            CreateWorktreeRequest(
                worktree_name="x", set_upstream=True, upstream_remote="nowhere", upstream_branch="x"
            ),
        )
        assert result.codes() == ["remote_not_found"]

    @pytest.mark.asyncio
    async def test_outside_repository(self, service, tmp_path):
        plain = tmp_path / "plain"
        plain.mkdir()
        result = await service.validate_worktree_create(str(plain), CreateWorktreeRequest())
        assert result.ok is False
        assert result.codes() == ["validation_failed"]


class TestRemoveWorktree:
    """Listing and removal."""

    @pytest.mark.asyncio
    async def test_list_and_remove(self, service, store, git_repo, run_git):
        project_id = _root_commit(run_git, git_repo)
        info = await service.create_worktree(str(git_repo), CreateWorktreeRequest(worktree_name="demo"))
        await service.start_scripts.drain()

        listed = await service.list_worktrees(str(git_repo))
        assert [entry.name for entry in listed] == [git_repo.name, "demo"]
        project_worktrees = await service.list_project_worktrees(str(git_repo))
        assert [entry.label for entry in project_worktrees] == ["openchamber/demo"]

        removed = await service.remove_worktree(
            str(git_repo), RemoveWorktreeRequest(directory=info.path, delete_local_branch=True)
        )

        assert removed is True
        assert store.sandboxes(project_id) == []
        assert len(await service.list_worktrees(str(git_repo))) == 1
        assert run_git(git_repo, "branch", "--list", "openchamber/demo").strip() == ""

    @pytest.mark.asyncio
    async def test_keeps_branch_by_default(self, service, git_repo, run_git):
        info = await service.create_worktree(str(git_repo), CreateWorktreeRequest(worktree_name="demo"))
        await service.start_scripts.drain()

        await service.remove_worktree(str(git_repo), RemoveWorktreeRequest(directory=info.path))
        assert "openchamber/demo" in run_git(git_repo, "branch", "--list", "openchamber/demo")

    @pytest.mark.asyncio
    async def test_unregistered_directory_is_cleaned_up(self, service, git_repo, tmp_path):
        stray = tmp_path / "stray"
        stray.mkdir()
        (stray / "leftover.txt").write_text("x")

        assert await service.remove_worktree(str(git_repo), RemoveWorktreeRequest(directory=str(stray))) is True
        assert not stray.exists()

    @pytest.mark.asyncio
    async def test_missing_directory_is_success(self, service, store, git_repo, run_git, tmp_path):
        project_id = _root_commit(run_git, git_repo)
        ghost = tmp_path / "ghost"
        await store.add_sandbox(project_id, str(git_repo), str(ghost))

        assert await service.remove_worktree(str(git_repo), RemoveWorktreeRequest(directory=str(ghost))) is True
        assert store.sandboxes(project_id) == []

    @pytest.mark.asyncio
    async def test_failed_cleanup_still_deregisters(self, service, store, git_repo, run_git, tmp_path):
        project_id = _root_commit(run_git, git_repo)
        stray = tmp_path / "stray"
        stray.mkdir()
        await store.add_sandbox(project_id, str(git_repo), str(stray))

        with patch("gitchamber.workspace.worktree_manager.shutil.rmtree", side_effect=PermissionError("busy")):
            removed = await service.remove_worktree(str(git_repo), RemoveWorktreeRequest(directory=str(stray)))

        assert removed is True
        assert store.sandboxes(project_id) == []

    @pytest.mark.asyncio
    async def test_primary_is_refused(self, service, git_repo):
        with pytest.raises(WorktreeError, match="primary"):
            await service.remove_worktree(str(git_repo), RemoveWorktreeRequest(directory=str(git_repo)))
        assert (git_repo / ".git").exists()

    @pytest.mark.asyncio
    async def test_list_outside_repository_is_empty(self, service, tmp_path):
        assert await service.list_worktrees(str(tmp_path / "nothing")) == []


class TestStartScripts:
    """Project and per-call start commands run inside the new worktree."""

    @pytest.mark.asyncio
    async def test_project_then_extra_command(self, service, store, git_repo, run_git):
        project_id = _root_commit(run_git, git_repo)
        store.records[project_id] = {"commands": {"start": "echo project > started.txt"}}

        info = await service.create_worktree(
            str(git_repo),
            CreateWorktreeRequest(worktree_name="demo", start_command="echo extra >> started.txt"),
        )
        await service.start_scripts.drain()

        started = info.path + "/started.txt"
        with open(started) as f:
            assert f.read() == "project\nextra\n"
        assert store.records[project_id]["commands"] == {"start": "echo project > started.txt"}

    @pytest.mark.asyncio
    async def test_failing_script_does_not_fail_create(self, service, git_repo):
        info = await service.create_worktree(
            str(git_repo), CreateWorktreeRequest(worktree_name="demo", start_command="exit 3")
        )
        await service.start_scripts.drain()
        assert info.name == "demo"
