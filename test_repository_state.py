#!/usr/bin/env python3
"""
Unit tests for repository state parsing and the RepositoryStateReader.

The reader is driven by a scripted runner that answers git invocations by
argument prefix, so no git process is spawned.
"""

import sys
from pathlib import Path

import pytest

from vaultsync.git_sync.error_types import PushErrorCategory
from vaultsync.git_sync.operations import CommandError, CommandOutput
from vaultsync.git_sync.repository_info import DETACHED_BRANCH
from vaultsync.git_sync.state import (
    AUTO_STASH_MESSAGE,
    UNQUOTED_PATHS,
    RepositoryStateReader,
    parse_branch_line,
    parse_pull_files,
    parse_status_output
)
from vaultsync.git_sync.utils import Outcome


class ScriptedRunner:
    """Answers git commands from a list of (argument prefix, response) pairs."""

    def __init__(self, responses):
        self.responses = responses
        self.calls = []
        self.working_dir = Path("/vault")

    def run(self, args):
        args = list(args)
        if args[:len(UNQUOTED_PATHS)] == UNQUOTED_PATHS:
            args = args[len(UNQUOTED_PATHS):]
        self.calls.append(args)

        for prefix, response in self.responses:
            if tuple(args[:len(prefix)]) == prefix:
                if isinstance(response, Exception):
                    raise response
                if callable(response):
                    response = response()
                return CommandOutput(stdout=response, stderr="")
        raise AssertionError(f"Unexpected git call: {args}")

    def called(self, *prefix) -> bool:
        return any(tuple(call[:len(prefix)]) == prefix for call in self.calls)


def git_error(exit_code=1, stdout="", stderr=""):
    return CommandError("git failed", exit_code=exit_code, stdout=stdout, stderr=stderr)


def create_reader(responses):
    runner = ScriptedRunner(responses)
    return RepositoryStateReader(runner), runner


# ----------------------------------------------------------------------
# Status parsing
# ----------------------------------------------------------------------

@pytest.mark.parametrize("line, expected", [
    ("## main...origin/main [ahead 2, behind 3]", ("main", 2, 3)),
    ("## notes", ("notes", 0, 0)),
    ("## No commits yet on main", ("main", 0, 0)),
    ("## HEAD (no branch)", (DETACHED_BRANCH, 0, 0)),
    ("## main...origin/main [gone]", ("main", 0, 0)),
])
def test_branch_line(line, expected):
    assert parse_branch_line(line) == expected


def test_file_classification():
    output = "\n".join([
        "## main...origin/main [behind 1]",
        "M  staged.md",
        " M modified.md",
        "MM both.md",
        "?? new.md",
        "UU conflict.md",
        "AA added-both.md",
        "R  old.md -> renamed.md",
        "!! ignored.md",
        '?? "with space.md"',
        "",
    ])
    status = parse_status_output(output)

    assert status.branch == "main"
    assert status.behind == 1
    assert status.staged == ["staged.md", "both.md", "renamed.md"]
    assert status.modified == ["modified.md", "both.md"]
    assert status.untracked == ["new.md", "with space.md"]
    assert status.conflicts == ["conflict.md", "added-both.md"]


def test_conflicted_paths_appear_nowhere_else():
    status = parse_status_output("## main\nUU a.md\nDU b.md\nDD c.md\nUA d.md\n")

    assert status.conflicts == ["a.md", "b.md", "c.md", "d.md"]
    for path in status.conflicts:
        assert path not in status.staged + status.modified + status.untracked


def test_clean_status():
    status = parse_status_output("## main...origin/main\n")

    assert status.clean
    assert not status.detached


def test_pull_diffstat():
    output = "\n".join([
        "Updating 1a2b3c4..5d6e7f8",
        "Fast-forward",
        " notes/daily.md | 2 +-",
        " img/photo.png  | Bin 0 -> 1024 bytes",
        " 2 files changed, 1 insertion(+), 1 deletion(-)",
    ])
    assert parse_pull_files(output) == ["notes/daily.md", "img/photo.png"]


# ----------------------------------------------------------------------
# Queries
# ----------------------------------------------------------------------

def test_remote_precedence_prefers_origin():
    reader, _ = create_reader([(("remote",), "upstream\norigin\n")])
    assert reader.remote_name() == "origin"


def test_remote_precedence_falls_back_to_first():
    reader, _ = create_reader([(("remote",), "upstream\nfork\n")])
    assert reader.remote_name() == "upstream"


def test_no_remote():
    reader, _ = create_reader([(("remote",), "")])

    assert reader.remote_name() is None
    assert not reader.has_remote()


def test_is_repository():
    reader, _ = create_reader([(("rev-parse", "--is-inside-work-tree"), "true\n")])
    assert reader.is_repository()

    reader, _ = create_reader([
        (("rev-parse", "--is-inside-work-tree"), git_error(128, stderr="fatal: not a git repository"))
    ])
    assert not reader.is_repository()


def test_detached_head():
    reader, _ = create_reader([(("symbolic-ref",), git_error(1))])
    assert reader.current_branch() == DETACHED_BRANCH


def test_staged_changes_from_exit_status():
    reader, _ = create_reader([(("diff", "--cached", "--quiet"), git_error(1))])
    assert reader.has_staged_changes()

    reader, _ = create_reader([(("diff", "--cached", "--quiet"), "")])
    assert not reader.has_staged_changes()


def test_conflict_files():
    reader, _ = create_reader([(("diff", "--name-only", "--diff-filter=U"), "a.md\nsub/b.md\n")])

    assert reader.has_conflicts()
    assert reader.conflict_files() == ["a.md", "sub/b.md"]


def test_ahead_behind_comes_from_status():
    reader, runner = create_reader([(("status",), "## main...origin/main [ahead 3, behind 1]\n")])

    assert reader.ahead_behind() == (3, 1)
    assert runner.calls == [["status", "--porcelain=v1", "--branch"]]


def test_unpushed_count_without_remote_branch():
    reader, _ = create_reader([
        (("rev-list", "--count", "origin/main..HEAD"), git_error(128)),
        (("rev-list", "--count", "HEAD"), "4\n"),
    ])
    assert reader.count_unpushed("origin", "main") == 4


def test_log_lists_recent_commits():
    reader, runner = create_reader([(("log",), "abc123 vault backup\ndef456 first note\n")])

    assert reader.log(2) == ["abc123 vault backup", "def456 first note"]
    assert runner.calls == [["log", "--oneline", "-2"]]


def test_unset_config_value():
    reader, _ = create_reader([(("config",), git_error(1))])
    assert reader.get_user_name() is None


def test_credential_helper_is_read_globally():
    reader, _ = create_reader([(("config", "--global", "credential.helper"), "store\n")])
    assert reader.get_credential_helper() == "store"


def test_remote_url():
    reader, _ = create_reader([
        (("remote", "get-url"), "git@example.com:ada/vault.git\n"),
        (("remote",), "origin\n"),
    ])
    assert reader.remote_url() == "git@example.com:ada/vault.git"


# ----------------------------------------------------------------------
# Commit
# ----------------------------------------------------------------------

def test_empty_index_is_no_op_without_invoking_commit():
    reader, runner = create_reader([(("diff", "--cached", "--quiet"), "")])
    result = reader.commit("vault backup")

    assert result.outcome == Outcome.NO_OP
    assert result.success
    assert not runner.called("commit")


def test_nothing_to_commit_race_is_no_op():
    reader, _ = create_reader([
        (("diff", "--cached", "--quiet"), git_error(1)),
        (("commit",), git_error(1, stdout="On branch main\nnothing to commit, working tree clean\n")),
    ])
    assert reader.commit("vault backup").outcome == Outcome.NO_OP


def test_commit_success():
    reader, runner = create_reader([
        (("diff", "--cached", "--quiet"), git_error(1)),
        (("commit",), "[main abc123] vault backup\n"),
    ])
    result = reader.commit("vault backup")

    assert result.outcome == Outcome.SUCCESS
    assert ["commit", "-m", "vault backup"] in runner.calls


def test_other_commit_failures_raise():
    reader, _ = create_reader([
        (("diff", "--cached", "--quiet"), git_error(1)),
        (("commit",), git_error(128, stderr="fatal: unable to auto-detect email address")),
    ])
    with pytest.raises(CommandError):
        reader.commit("vault backup")


# ----------------------------------------------------------------------
# Pull
# ----------------------------------------------------------------------

def pull_responses(status_output):
    return [
        (("remote",), "origin\n"),
        (("symbolic-ref",), "main\n"),
        (("fetch",), ""),
        (("status",), status_output),
        (("stash", "push"), ""),
    ]


def test_pull_without_remote_is_no_op():
    reader, runner = create_reader([(("remote",), "")])
    result = reader.pull()

    assert result.outcome == Outcome.NO_OP
    assert result.files == []
    assert runner.calls == [["remote"]]


def test_pull_on_detached_head_fails():
    reader, runner = create_reader([(("remote",), "origin\n"), (("symbolic-ref",), git_error(1))])
    result = reader.pull()

    assert result.outcome == Outcome.FAILURE
    assert not runner.called("pull")


def test_local_changes_are_stashed_and_restored():
    reader, runner = create_reader(pull_responses("## main...origin/main [behind 1]\n M note.md\n") + [
        (("pull",), "Fast-forward\n remote.md | 1 +\n 1 file changed\n"),
        (("stash", "pop"), ""),
    ])
    result = reader.pull()

    assert result.outcome == Outcome.SUCCESS
    assert result.files == ["remote.md"]
    assert ["stash", "push", "-m", AUTO_STASH_MESSAGE] in runner.calls
    assert ["pull", "--rebase", "--stat", "origin", "main"] in runner.calls
    assert runner.called("stash", "pop")


def test_untracked_only_tree_is_not_stashed():
    reader, runner = create_reader(pull_responses("## main...origin/main [behind 1]\n?? untracked.md\n") + [
        (("pull",), ""),
    ])
    result = reader.pull()

    assert result.outcome == Outcome.SUCCESS
    assert not runner.called("stash")


def test_fetch_can_be_skipped():
    reader, runner = create_reader(pull_responses("## main...origin/main [behind 1]\n") + [(("pull",), "")])
    reader.pull(fetch=False)
    assert not runner.called("fetch")


def test_pull_conflict_keeps_stash():
    reader, runner = create_reader(pull_responses("## main...origin/main [ahead 1, behind 1]\n M note.md\n") + [
        (("pull",), git_error(1, stderr="error: could not apply abc123")),
        (("diff", "--name-only", "--diff-filter=U"), "shared.md\n"),
    ])
    result = reader.pull()

    assert result.outcome == Outcome.CONFLICT
    assert result.conflicts == ["shared.md"]
    assert not runner.called("stash", "pop")


def test_restore_conflict_is_reported():
    reader, _ = create_reader(pull_responses("## main...origin/main [behind 1]\n M note.md\n") + [
        (("pull",), " note.md | 2 +-\n"),
        (("stash", "pop"), git_error(1, stderr="CONFLICT (content): Merge conflict in note.md")),
        (("diff", "--name-only", "--diff-filter=U"), "note.md\n"),
    ])
    result = reader.pull()

    assert result.outcome == Outcome.CONFLICT
    assert result.conflicts == ["note.md"]
    assert result.files == ["note.md"]


def test_other_pull_failure_restores_stash_and_raises():
    reader, runner = create_reader(pull_responses("## main...origin/main [behind 1]\n M note.md\n") + [
        (("pull",), git_error(128, stderr="fatal: couldn't find remote ref main")),
        (("diff", "--name-only", "--diff-filter=U"), ""),
        (("stash", "pop"), ""),
    ])
    with pytest.raises(CommandError):
        reader.pull()
    assert runner.called("stash", "pop")


# ----------------------------------------------------------------------
# Push
# ----------------------------------------------------------------------

def push_responses(push_response):
    return [
        (("remote",), "origin\n"),
        (("symbolic-ref",), "main\n"),
        (("rev-list", "--count"), "2\n"),
        (("push",), push_response),
    ]


def test_push_reports_pending_commits():
    reader, runner = create_reader(push_responses(""))
    result = reader.push()

    assert result.outcome == Outcome.SUCCESS
    assert result.pushed == 2
    assert ["push", "origin", "main"] in runner.calls


def test_push_with_upstream():
    reader, runner = create_reader(push_responses(""))
    reader.push_with_upstream()
    assert ["push", "-u", "origin", "main"] in runner.calls


def test_push_without_remote_is_no_op():
    reader, runner = create_reader([(("remote",), "")])
    result = reader.push()

    assert result.outcome == Outcome.NO_OP
    assert not runner.called("push")


def test_https_authentication_failure():
    stderr = ("remote: Invalid username or password.\n"
              "fatal: Authentication failed for 'https://example.com/me/vault.git/'\n")
    reader, _ = create_reader(push_responses(git_error(128, stderr=stderr)))
    result = reader.push()

    assert result.outcome == Outcome.FAILURE
    assert result.error_category == PushErrorCategory.HTTPS_AUTH
    assert "credential.helper" in result.message


def test_ssh_key_failure():
    stderr = ("git@example.com: Permission denied (publickey).\n"
              "fatal: Could not read from remote repository.\n")
    reader, _ = create_reader(push_responses(git_error(128, stderr=stderr)))
    result = reader.push()

    assert result.error_category == PushErrorCategory.SSH_AUTH
    assert "credential.helper" not in result.message


# ----------------------------------------------------------------------
# Setup and recovery primitives
# ----------------------------------------------------------------------

def test_setters_issue_expected_commands():
    reader, runner = create_reader([(("config",), ""), (("remote",), "")])

    reader.set_user_name("Ada")
    reader.set_user_email("ada@example.com")
    reader.set_credential_helper("store")
    reader.add_remote("origin", "git@example.com:ada/vault.git")
    reader.set_remote_url("origin", "https://example.com/ada/vault.git")

    assert runner.calls == [
        ["config", "user.name", "Ada"],
        ["config", "user.email", "ada@example.com"],
        ["config", "--global", "credential.helper", "store"],
        ["remote", "add", "origin", "git@example.com:ada/vault.git"],
        ["remote", "set-url", "origin", "https://example.com/ada/vault.git"],
    ]


def test_set_upstream_tracks_current_branch():
    reader, runner = create_reader([
        (("remote",), "origin\n"),
        (("symbolic-ref",), "notes\n"),
        (("branch",), ""),
    ])
    reader.set_upstream()

    assert runner.calls[-1] == ["branch", "--set-upstream-to=origin/notes"]


def test_set_upstream_without_remote_does_nothing():
    reader, runner = create_reader([(("remote",), "")])
    reader.set_upstream()

    assert runner.calls == [["remote"]]


def test_abort_commands():
    reader, runner = create_reader([(("merge",), ""), (("rebase",), "")])

    reader.abort_merge()
    reader.abort_rebase()

    assert runner.calls == [["merge", "--abort"], ["rebase", "--abort"]]


def test_abort_without_operation_in_progress_raises():
    reader, _ = create_reader([(("rebase",), git_error(128, stderr="fatal: No rebase in progress?"))])

    with pytest.raises(CommandError) as info:
        reader.abort_rebase()
    assert info.value.summary() == "No rebase in progress?"


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-v"]))
