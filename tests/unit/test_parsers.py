"""Tests for the git output parsers."""

from gitchamber.core.parsers import (
    CONTINUE_CONFLICT_PHRASES,
    MERGE_CONFLICT_PHRASES,
    has_option,
    is_conflict_output,
    looks_like_missing_upstream,
    normalize_git_options,
    parse_branch_listing,
    parse_conflict_files,
    parse_log,
    parse_numstat,
    parse_remotes,
    parse_status_porcelain,
    parse_worktree_porcelain,
    select_root_commit,
)


class TestParseStatusPorcelain:
    """Tests for parse_status_porcelain()."""

    def test_header_with_tracking_and_counts(self):
        raw = "## main...origin/main [ahead 2, behind 1]\n M src/app.py\n?? notes.txt\n"
        status = parse_status_porcelain(raw)

        assert status.current == "main"
        assert status.tracking == "origin/main"
        assert status.ahead == 2
        assert status.behind == 1
        assert [(f.path, f.index, f.working_dir) for f in status.files] == [
            ("src/app.py", " ", "M"),
            ("notes.txt", "?", "?"),
        ]

    def test_header_without_tracking(self):
        status = parse_status_porcelain("## feature\n")
        assert status.current == "feature"
        assert status.tracking is None
        assert status.ahead == 0
        assert status.behind == 0
        assert status.is_clean

    def test_only_ahead(self):
        status = parse_status_porcelain("## main...origin/main [ahead 3]\n")
        assert status.ahead == 3
        assert status.behind == 0

    def test_staged_and_conflicted_entries(self):
        status = parse_status_porcelain("## main\nA  new.py\nUU x.txt\n")
        assert [(f.index, f.working_dir) for f in status.files] == [("A", " "), ("U", "U")]

    def test_empty_output(self):
        status = parse_status_porcelain("")
        assert status.current == ""
        assert status.files == []


class TestParseBranchListing:
    """Tests for parse_branch_listing()."""

    def test_local_and_remote_branches(self):
        raw = (
            "refs/heads/main|abc1234|origin/main|*\n"
            "refs/heads/feature|def5678||\n"
            "refs/remotes/origin/main|abc1234||\n"
        )
        result = parse_branch_listing(raw)

        assert result.current == "main"
        assert result.all == ["main", "feature", "remotes/origin/main"]
        assert result.branches["main"].current is True
        assert result.branches["main"].tracking == "origin/main"
        assert result.branches["feature"].tracking is None
        assert result.branches["remotes/origin/main"].label == "origin/main"

    def test_skips_blank_names(self):
        result = parse_branch_listing("|abc||\n\n")
        assert result.all == []


class TestParseWorktreePorcelain:
    """Tests for parse_worktree_porcelain()."""

    def test_multiple_entries(self):
        raw = (
            "worktree /repo\n"
            "HEAD 1111111111111111111111111111111111111111\n"
            "branch refs/heads/main\n"
            "\n"
            "worktree /data/worktree/p/demo\n"
            "HEAD 2222222222222222222222222222222222222222\n"
            "branch refs/heads/openchamber/demo\n"
            "\n"
            "worktree /data/worktree/p/detached\n"
            "HEAD 3333333333333333333333333333333333333333\n"
            "detached\n"
        )
        entries = parse_worktree_porcelain(raw)

        assert [e.worktree for e in entries] == ["/repo", "/data/worktree/p/demo", "/data/worktree/p/detached"]
        assert entries[1].branch_ref == "refs/heads/openchamber/demo"
        assert entries[1].branch == "openchamber/demo"
        assert entries[2].branch is None
        assert entries[2].head.startswith("3333")

    def test_ignores_lines_before_first_worktree(self):
        entries = parse_worktree_porcelain("HEAD abc\nbranch refs/heads/x\n\nworktree /a\n")
        assert len(entries) == 1
        assert entries[0].worktree == "/a"
        assert entries[0].branch is None

    def test_empty(self):
        assert parse_worktree_porcelain("") == []


class TestParseLog:
    """Tests for parse_log()."""

    def test_entries_with_shortstat(self):
        raw = (
            "aaa|2024-01-02T10:00:00+00:00|Second|HEAD -> main||Test|test@test.com\n"
            "\n"
            " 2 files changed, 5 insertions(+), 1 deletion(-)\n"
            "bbb|2024-01-01T10:00:00+00:00|First|||Test|test@test.com\n"
            "\n"
            " 1 file changed, 1 insertion(+)\n"
        )
        entries = parse_log(raw)

        assert [e.hash for e in entries] == ["aaa", "bbb"]
        assert entries[0].refs == "HEAD -> main"
        assert (entries[0].files_changed, entries[0].insertions, entries[0].deletions) == (2, 5, 1)
        assert (entries[1].files_changed, entries[1].insertions, entries[1].deletions) == (1, 1, 0)
        assert entries[1].author_email == "test@test.com"

    def test_deletions_only(self):
        entries = parse_log("ccc|d|msg|||a|e\n 1 file changed, 3 deletions(-)\n")
        assert entries[0].insertions == 0
        assert entries[0].deletions == 3


class TestSmallParsers:
    """Tests for numstat, remotes, conflicts and root commit selection."""

    def test_numstat_flags_binary(self):
        files = parse_numstat("3\t1\tsrc/a.py\n-\t-\timage.png\n")
        assert files[0].path == "src/a.py"
        assert (files[0].insertions, files[0].deletions, files[0].is_binary) == (3, 1, False)
        assert files[1].is_binary is True
        assert files[1].insertions == 0

    def test_remotes_merge_fetch_and_push(self):
        raw = (
            "origin\tgit@example.com:a/b.git (fetch)\n"
            "origin\tgit@example.com:a/b.git (push)\n"
            "fork\thttps://example.com/fork.git (fetch)\n"
        )
        remotes = parse_remotes(raw)
        assert [r.name for r in remotes] == ["origin", "fork"]
        assert remotes[0].push_url == "git@example.com:a/b.git"
        assert remotes[1].push_url == ""

    def test_conflict_files(self):
        raw = "UU x.txt\nAA both.txt\nDD gone.txt\n M clean.txt\n"
        assert parse_conflict_files(raw) == ["x.txt", "both.txt", "gone.txt"]

    def test_conflict_phrases_case_insensitive(self):
        assert is_conflict_output("Automatic merge failed; fix conflicts", MERGE_CONFLICT_PHRASES)
        assert is_conflict_output("error: path 'x' NEEDS MERGE", CONTINUE_CONFLICT_PHRASES)
        assert not is_conflict_output("fatal: not something we can merge", ("conflict",))

    def test_select_root_commit_picks_smallest(self):
        assert select_root_commit("ffff\naaaa\n\ncccc\n") == "aaaa"
        assert select_root_commit("") == ""


class TestGitOptions:
    """Tests for push option normalization."""

    def test_list_passes_through(self):
        assert normalize_git_options(["--force", "--tags"]) == ["--force", "--tags"]

    def test_mapping(self):
        options = {"--force": True, "--no-verify": None, "--dry-run": False, "--push-option": "ci.skip"}
        assert normalize_git_options(options) == ["--force", "--no-verify", "--push-option", "ci.skip"]

    def test_empty(self):
        assert normalize_git_options(None) == []
        assert normalize_git_options({}) == []

    def test_has_option(self):
        assert has_option(["-u"], "-u")
        assert has_option({"--set-upstream": None}, "--set-upstream")
        assert not has_option({"--set-upstream": False}, "--set-upstream")
        assert not has_option(None, "-u")

    def test_missing_upstream_detection(self):
        assert looks_like_missing_upstream("fatal: The current branch x has no upstream branch.")
        assert not looks_like_missing_upstream("! [rejected] main -> main (non-fast-forward)")
