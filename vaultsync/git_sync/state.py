"""Repository state queries and mutating primitives for the sync engine."""

import logging
import re
from typing import List, Optional, Sequence, Tuple

from ..config import Config
from .error_classifier import PushErrorClassifier
from .operations import CommandError, GitCommandRunner
from .repository_info import DETACHED_BRANCH, RepositoryStatus
from .utils import CommitResult, Outcome, PullResult, PushResult

AUTO_STASH_MESSAGE = "vaultsync-auto-stash"
NOTHING_TO_COMMIT = "nothing to commit"

# Keep non-ASCII paths readable in porcelain and name-only output
UNQUOTED_PATHS = ["-c", "core.quotePath=false"]

_AHEAD_RE = re.compile(r"ahead (\d+)")
_BEHIND_RE = re.compile(r"behind (\d+)")
_TRACKING_RE = re.compile(r"\[([^\]]*)\]\s*$")
_DIFFSTAT_RE = re.compile(r"^\s+(.+?)\s+\|\s*(?:\d+|Bin)")


def _unquote_path(path: str) -> str:
    if len(path) >= 2 and path.startswith('"') and path.endswith('"'):
        path = path[1:-1].replace('\\"', '"').replace('\\\\', '\\')
    return path


def parse_branch_line(line: str) -> Tuple[str, int, int]:
    """
    Parse the `## ...` summary line of `git status --porcelain --branch`.

    Returns:
        Tuple of (branch, ahead, behind)
    """
    header = line[3:] if line.startswith("## ") else line

    if header.startswith("HEAD (no branch)"):
        branch = DETACHED_BRANCH
    else:
        for prefix in ("No commits yet on ", "Initial commit on "):
            if header.startswith(prefix):
                header = header[len(prefix):]
                break
        branch = header.split("...")[0].split(" ")[0]
        if branch == "HEAD":
            branch = DETACHED_BRANCH

    ahead = behind = 0
    tracking = _TRACKING_RE.search(header)
    if tracking:
        ahead_match = _AHEAD_RE.search(tracking.group(1))
        behind_match = _BEHIND_RE.search(tracking.group(1))
        ahead = int(ahead_match.group(1)) if ahead_match else 0
        behind = int(behind_match.group(1)) if behind_match else 0

    return branch, ahead, behind


def parse_status_output(output: str) -> RepositoryStatus:
    """
    Parse `git status --porcelain=v1 --branch` into a RepositoryStatus.

    Each file line is classified by its two-character XY code. Unmerged
    entries (a `U` on either side, `AA`, `DD`) go to conflicts and nowhere
    else.
    """
    lines = [line for line in output.split("\n") if line]
    branch, ahead, behind = DETACHED_BRANCH, 0, 0
    if lines and lines[0].startswith("## "):
        branch, ahead, behind = parse_branch_line(lines[0])
        lines = lines[1:]

    status = RepositoryStatus(branch=branch, ahead=ahead, behind=behind)

    for line in lines:
        if len(line) < 4:
            continue
        index_code, worktree_code = line[0], line[1]
        path = line[3:]

        if index_code == "!" and worktree_code == "!":
            continue

        if index_code in "RC" and " -> " in path:
            path = path.split(" -> ", 1)[1]
        path = _unquote_path(path)

        if (index_code == "U" or worktree_code == "U"
                or (index_code == "A" and worktree_code == "A")
                or (index_code == "D" and worktree_code == "D")):
            status.conflicts.append(path)
            continue

        if index_code == "?" and worktree_code == "?":
            status.untracked.append(path)
            continue

        if index_code not in " ?!":
            status.staged.append(path)

        if worktree_code not in " ?!":
            status.modified.append(path)

    return status


def parse_pull_files(output: str) -> List[str]:
    """Extract changed paths from the diffstat git prints after a pull."""
    files = []
    for line in output.split("\n"):
        match = _DIFFSTAT_RE.match(line)
        if match:
            files.append(match.group(1).strip())
    return files


class RepositoryStateReader:
    """
    Typed view of a git working tree.

    Translates git's text output into RepositoryStatus and result objects
    and exposes the mutating primitives the sync manager sequences. Nothing
    here is cached: every query reflects the disk at call time.
    """

    def __init__(self, runner: GitCommandRunner):
        """
        Initialize the reader.

        Args:
            runner: Command backend bound to the vault directory
        """
        self.runner = runner
        self.logger = logging.getLogger('vaultsync.git_sync.state')
        self.error_classifier = PushErrorClassifier()

    @classmethod
    def from_config(cls, config: Config) -> "RepositoryStateReader":
        """Build a reader with a runner for the configured vault."""
        return cls(GitCommandRunner(
            config.vault_dir,
            git_path=config.git_path,
            timeout=config.command_timeout,
            max_output_bytes=config.max_output_bytes,
        ))

    def _run(self, args: Sequence[str]) -> str:
        return self.runner.run(list(args)).stdout

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_git_available(self) -> bool:
        return self.runner.is_available()

    def is_repository(self) -> bool:
        """Check whether the vault is inside a git work tree."""
        try:
            return self._run(["rev-parse", "--is-inside-work-tree"]).strip() == "true"
        except CommandError:
            return False

    def current_branch(self) -> str:
        """Current branch name, or the detached sentinel."""
        try:
            branch = self._run(["symbolic-ref", "--short", "-q", "HEAD"]).strip()
        except CommandError as e:
            # symbolic-ref exits 1 when HEAD is not a symbolic ref
            if e.exit_code == 1:
                return DETACHED_BRANCH
            raise
        return branch or DETACHED_BRANCH

    def status(self) -> RepositoryStatus:
        """Get a fresh snapshot of the working tree."""
        output = self._run(UNQUOTED_PATHS + ["status", "--porcelain=v1", "--branch"])
        return parse_status_output(output)

    def ahead_behind(self) -> Tuple[int, int]:
        status = self.status()
        return status.ahead, status.behind

    def conflict_files(self) -> List[str]:
        """Paths with unresolved merge conflicts."""
        try:
            output = self._run(UNQUOTED_PATHS + ["diff", "--name-only", "--diff-filter=U"])
        except CommandError as e:
            self.logger.debug(f"Could not list conflicted files: {e}")
            return []
        return [_unquote_path(line) for line in output.strip().split("\n") if line]

    def has_conflicts(self) -> bool:
        """Cheap conflict check that skips full status parsing."""
        return bool(self.conflict_files())

    def has_staged_changes(self) -> bool:
        """Use the exit status of `diff --cached --quiet` instead of parsing text."""
        try:
            self._run(["diff", "--cached", "--quiet"])
        except CommandError as e:
            if e.exit_code == 1:
                return True
            raise
        return False

    def remotes(self) -> List[str]:
        try:
            output = self._run(["remote"])
        except CommandError:
            return []
        return [line.strip() for line in output.split("\n") if line.strip()]

    def remote_name(self) -> Optional[str]:
        """Prefer `origin`, otherwise the first configured remote."""
        remotes = self.remotes()
        if "origin" in remotes:
            return "origin"
        return remotes[0] if remotes else None

    def has_remote(self, name: str = "origin") -> bool:
        return name in self.remotes()

    def remote_url(self) -> Optional[str]:
        remote = self.remote_name()
        if not remote:
            return None
        try:
            return self._run(["remote", "get-url", remote]).strip() or None
        except CommandError:
            return None

    def has_upstream(self) -> bool:
        try:
            self._run(["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{upstream}"])
            return True
        except CommandError:
            return False

    def count_unpushed(self, remote: str, branch: str) -> int:
        """Commits on HEAD that `<remote>/<branch>` does not have yet."""
        try:
            return int(self._run(["rev-list", "--count", f"{remote}/{branch}..HEAD"]).strip() or 0)
        except CommandError:
            self.logger.debug(f"No remote branch {remote}/{branch}; counting all commits")
        try:
            return int(self._run(["rev-list", "--count", "HEAD"]).strip() or 0)
        except CommandError:
            return 0

    def log(self, count: int = 5) -> List[str]:
        output = self._run(["log", "--oneline", f"-{count}"])
        return [line for line in output.strip().split("\n") if line]

    def get_user_name(self) -> Optional[str]:
        return self._get_config_value(["config", "user.name"])

    def get_user_email(self) -> Optional[str]:
        return self._get_config_value(["config", "user.email"])

    def get_credential_helper(self) -> Optional[str]:
        return self._get_config_value(["config", "--global", "credential.helper"])

    def _get_config_value(self, args: List[str]) -> Optional[str]:
        try:
            return self._run(args).strip() or None
        except CommandError:
            # git config exits 1 for unset keys
            return None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def init(self) -> None:
        self._run(["init"])
        self.logger.info(f"Initialized git repository in {self.runner.working_dir}")

    def add_all(self) -> None:
        self._run(["add", "-A"])

    def add(self, paths: Sequence[str]) -> None:
        if not paths:
            return
        self._run(["add", "--", *paths])

    def commit(self, message: str) -> CommitResult:
        """
        Commit staged changes.

        An empty index is a NO_OP rather than an error. Any other failure
        raises CommandError.
        """
        if not self.has_staged_changes():
            return CommitResult(Outcome.NO_OP, "Nothing to commit")

        try:
            self._run(["commit", "-m", message])
        except CommandError as e:
            # Another actor may have committed between the check and the commit
            if NOTHING_TO_COMMIT in e.output:
                return CommitResult(Outcome.NO_OP, "Nothing to commit")
            raise

        self.logger.debug(f"Committed: {message}")
        return CommitResult(Outcome.SUCCESS, "Commit successful")

    def fetch(self, remote: Optional[str] = None) -> None:
        remote = remote or self.remote_name()
        if remote:
            self._run(["fetch", remote])

    def pull(self, fetch: bool = True) -> PullResult:
        """
        Integrate remote changes, protecting uncommitted work.

        Staged or modified files are stashed before a rebase-style pull and
        restored afterwards. The stash is only popped when this call created
        it. Conflicts from either the pull or the restore are reported as a
        CONFLICT result; other failures raise CommandError. Pass
        `fetch=False` when the caller has just fetched.
        """
        remote = self.remote_name()
        if not remote:
            return PullResult(Outcome.NO_OP, "No remote configured")

        branch = self.current_branch()
        if branch == DETACHED_BRANCH:
            return PullResult(Outcome.FAILURE, "HEAD is detached; check out a branch before syncing")

        if fetch:
            self.fetch(remote)

        status = self.status()
        stashed = False
        if status.staged or status.modified:
            self._run(["stash", "push", "-m", AUTO_STASH_MESSAGE])
            stashed = True
            self.logger.debug("Stashed local changes before pull")

        try:
            output = self._run(["pull", "--rebase", "--stat", remote, branch])
        except CommandError:
            if self.has_conflicts():
                if stashed:
                    self.logger.warning(f"Local changes kept in stash '{AUTO_STASH_MESSAGE}' until conflicts are resolved")
                return PullResult(
                    Outcome.CONFLICT,
                    "Merge conflicts detected",
                    conflicts=self.conflict_files()
                )
            if stashed:
                self._restore_stash()
            raise

        files = parse_pull_files(output)

        if stashed:
            try:
                self._restore_stash()
            except CommandError:
                if self.has_conflicts():
                    return PullResult(
                        Outcome.CONFLICT,
                        "Local changes conflict with pulled changes",
                        files=files,
                        conflicts=self.conflict_files()
                    )
                raise

        return PullResult(Outcome.SUCCESS, "Pull successful", files=files)

    def _restore_stash(self) -> None:
        self._run(["stash", "pop"])
        self.logger.debug("Restored stashed local changes")

    def push(self) -> PushResult:
        return self._push(set_upstream=False)

    def push_with_upstream(self) -> PushResult:
        """Push and record the remote branch as upstream."""
        return self._push(set_upstream=True)

    def _push(self, set_upstream: bool) -> PushResult:
        remote = self.remote_name()
        if not remote:
            return PushResult(Outcome.NO_OP, "No remote configured")

        branch = self.current_branch()
        if branch == DETACHED_BRANCH:
            return PushResult(Outcome.FAILURE, "HEAD is detached; check out a branch before syncing")

        pending = self.count_unpushed(remote, branch)
        args = ["push", "-u", remote, branch] if set_upstream else ["push", remote, branch]

        try:
            self._run(args)
        except CommandError as e:
            category, message = self.error_classifier.describe(e.stderr)
            self.logger.warning(f"Push to {remote}/{branch} failed ({category.value}): {e.stderr.strip()}")
            return PushResult(Outcome.FAILURE, message, error_category=category)

        self.logger.debug(f"Pushed {pending} commit(s) to {remote}/{branch}")
        return PushResult(Outcome.SUCCESS, "Push successful", pushed=pending)

    def set_upstream(self) -> None:
        remote = self.remote_name()
        if remote:
            self._run(["branch", f"--set-upstream-to={remote}/{self.current_branch()}"])

    def abort_merge(self) -> None:
        self._run(["merge", "--abort"])

    def abort_rebase(self) -> None:
        self._run(["rebase", "--abort"])

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def set_user_name(self, name: str) -> None:
        self._run(["config", "user.name", name])

    def set_user_email(self, email: str) -> None:
        self._run(["config", "user.email", email])

    def set_credential_helper(self, helper: str) -> None:
        """Configure the global credential helper, e.g. `store`."""
        self._run(["config", "--global", "credential.helper", helper])

    def add_remote(self, name: str, url: str) -> None:
        self._run(["remote", "add", name, url])

    def set_remote_url(self, name: str, url: str) -> None:
        self._run(["remote", "set-url", name, url])
