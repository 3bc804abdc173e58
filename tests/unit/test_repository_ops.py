"""Tests for RepositoryOperations against a mocked git executor."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from gitchamber.adapters.service import AdapterService
from gitchamber.core.repository_ops import RepositoryOperations
from gitchamber.errors import GitCommandError, InvalidSshKeyPathError
from gitchamber.utils.subprocess_utils import CommandResult


def _result(exit_code=0, stdout="", stderr=""):
    return CommandResult(stdout=stdout, stderr=stderr, exit_code=exit_code)


def _ops(*results, repo=None):
    executor = MagicMock()
    executor.run = AsyncMock(side_effect=list(results))
    adapters = AdapterService()
    if repo is not None:
        adapters = MagicMock()
        adapters.get_repository = AsyncMock(return_value=repo)
    return RepositoryOperations(executor, adapters), executor


def _calls(executor):
    return [call.args[0] for call in executor.run.await_args_list]


class TestPush:
    """Tests for push() upstream handling."""

    @pytest.mark.asyncio
    async def test_plain_push(self):
        ops, executor = _ops(_result())
        result = await ops.push("/repo")
        assert result.success is True
        assert result.pushed == []
        assert _calls(executor) == [["push"]]

    @pytest.mark.asyncio
    async def test_missing_upstream_retries_with_set_upstream(self):
        ops, executor = _ops(
            _result(128, stderr="fatal: The current branch feature has no upstream branch."),
            _result(stdout="feature\n"),
            _result(stdout="upstream\norigin\n"),
            _result(),
        )
        result = await ops.push("/repo")

        assert result.pushed[0].local == "feature"
        assert result.pushed[0].remote == "origin"
        assert _calls(executor)[-1] == ["push", "--set-upstream", "origin", "feature"]

    @pytest.mark.asyncio
    async def test_other_failures_propagate(self):
        ops, _ = _ops(_result(1, stderr="! [rejected] main -> main (fetch first)\nerror: failed to push some refs"))
        with pytest.raises(GitCommandError, match="rejected"):
            await ops.push("/repo")

    @pytest.mark.asyncio
    async def test_named_remote_without_tracking_sets_upstream(self):
        ops, executor = _ops(
            _result(stdout="feature\n"),
            _result(128, stderr="fatal: no upstream configured for branch 'feature'"),
            _result(),
        )
        result = await ops.push("/repo", remote="origin")

        assert result.pushed[0].local == "feature"
        assert _calls(executor)[-1] == ["push", "--set-upstream", "origin", "feature"]

    @pytest.mark.asyncio
    async def test_explicit_upstream_option_not_duplicated(self):
        ops, executor = _ops(
            _result(stdout="feature\n"),
            _result(128),
            _result(),
        )
        await ops.push("/repo", remote="origin", options=["-u"])
        assert _calls(executor)[-1] == ["push", "-u", "origin", "feature"]


class TestIdentity:
    """Tests for get_identity() and set_identity()."""

    @pytest.mark.asyncio
    async def test_rejects_unsafe_key_before_writing(self):
        ops, executor = _ops()
        with pytest.raises(InvalidSshKeyPathError):
            await ops.set_identity("/repo", "Dev", "dev@example.com", ssh_key='"; rm -rf /')
        executor.run.assert_not_called()

    @pytest.mark.asyncio
    async def test_writes_config_via_cli(self):
        ops, executor = _ops(_result(), _result(), _result())
        result = await ops.set_identity("/repo", "Dev", "dev@example.com", ssh_key="/home/dev/.ssh/id_ed25519")

        assert result.success is True
        calls = _calls(executor)
        assert calls[0] == ["config", "user.name", "Dev"]
        assert calls[1] == ["config", "user.email", "dev@example.com"]
        assert calls[2][:2] == ["config", "core.sshCommand"]
        assert "/home/dev/.ssh/id_ed25519" in calls[2][2]

    @pytest.mark.asyncio
    async def test_missing_values_are_none(self):
        ops, _ = _ops(_result(stdout="Dev\n"), _result(1), _result(1))
        identity = await ops.get_identity("/repo")
        assert identity.user_name == "Dev"
        assert identity.user_email is None
        assert identity.ssh_command is None


class TestAdapterFallback:
    """Adapter failures fall through to the git CLI."""

    @pytest.mark.asyncio
    async def test_checkout_falls_back(self):
        repo = MagicMock()
        repo.checkout = AsyncMock(side_effect=RuntimeError("adapter broke"))
        ops, executor = _ops(_result(), repo=repo)

        result = await ops.checkout_branch("/repo", "feature")
        assert result.success is True
        assert _calls(executor) == [["checkout", "feature"]]

    @pytest.mark.asyncio
    async def test_checkout_via_adapter_skips_cli(self):
        repo = MagicMock()
        repo.checkout = AsyncMock()
        ops, executor = _ops(repo=repo)

        result = await ops.checkout_branch("/repo", "feature")
        assert result.success is True
        repo.checkout.assert_awaited_once_with("feature")
        executor.run.assert_not_called()


class TestRanges:
    """Tests for range diffs."""

    @pytest.mark.asyncio
    async def test_blank_refs_short_circuit(self):
        ops, executor = _ops()
        assert (await ops.get_range_diff("/repo", " ", "HEAD", "a.py")).diff == ""
        assert await ops.get_range_files("/repo", "main", "") == []
        executor.run.assert_not_called()

    @pytest.mark.asyncio
    async def test_prefers_origin_base(self):
        ops, executor = _ops(_result(stdout="abc\n"), _result(stdout="a.py\nb.py\n"))
        files = await ops.get_range_files("/repo", "main", "feature")
        assert files == ["a.py", "b.py"]
        assert _calls(executor)[1] == ["diff", "--name-only", "origin/main...feature"]

    @pytest.mark.asyncio
    async def test_falls_back_to_local_base(self):
        ops, executor = _ops(_result(128), _result(stdout="diff --git a/a.py b/a.py\n"))
        await ops.get_range_diff("/repo", "main", "feature", "a.py", context_lines=-2)
        assert _calls(executor)[1] == ["diff", "--no-color", "-U0", "main...feature", "--", "a.py"]
