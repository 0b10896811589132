"""Sync manager: sequences pull, commit and push for the vault."""

import dataclasses
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from ..config import Config
from ..helpers import generate_commit_message
from .operations import CommandError
from .repository_info import GitAvailability, RepositoryStatus
from .scheduler import PeriodicTrigger
from .state import NOTHING_TO_COMMIT, RepositoryStateReader
from .status import StatusListener, SyncPhase
from .utils import Outcome, PullResult, PushResult, SyncResult, create_sync_result

BUSY_MESSAGE = "Sync already in progress"
GIT_UNAVAILABLE_MESSAGE = "Git is not installed or not found in PATH"
NOT_A_REPOSITORY_MESSAGE = "Not a git repository; initialize it first"
NOTHING_TO_SYNC_MESSAGE = "Nothing to commit or push"

# Settings that change how git is invoked
_BACKEND_SETTINGS = {"vault_dir", "git_path", "command_timeout", "max_output_bytes"}
_TRIGGER_SETTINGS = {"auto_sync", "sync_interval"}


class EngineBusyError(RuntimeError):
    """Raised when a change needs the engine idle but an operation holds it."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class EngineState:
    """Mutable state owned by one SyncManager for the life of the process."""
    lock: threading.Lock = field(default_factory=threading.Lock)
    trigger: Optional[PeriodicTrigger] = None
    last_sync_time: Optional[datetime] = None
    last_result: Optional[SyncResult] = None

    @property
    def busy(self) -> bool:
        return self.lock.locked()


class SyncManager:
    """
    Orchestrates synchronization of the vault with its remote.

    Features:
    - Full sync (pull, then commit and push) plus pull-only and
      commit-and-push entry points
    - Single-flight lock: overlapping requests are rejected, not queued
    - Conflicts block the sync before the remote is touched
    - Periodic trigger with stop-before-start rearming
    - Phase notifications for status displays
    """

    def __init__(
        self,
        config: Config,
        repository: Optional[RepositoryStateReader] = None,
        state: Optional[EngineState] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize SyncManager.

        Args:
            config: Engine configuration
            repository: Reader for the vault; built from config when omitted
            state: Engine state; a fresh one when omitted
            clock: Source of the current instant for timestamps and commit messages
        """
        self.config = config
        self.repository = repository or RepositoryStateReader.from_config(config)
        self.state = state or EngineState()
        self._clock = clock
        self._listeners: List[StatusListener] = []
        self._trigger_lock = threading.Lock()
        self.logger = logging.getLogger('vaultsync.git_sync')

    # ------------------------------------------------------------------
    # Status notification
    # ------------------------------------------------------------------

    def add_status_listener(self, listener: StatusListener) -> None:
        self._listeners.append(listener)

    def remove_status_listener(self, listener: StatusListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _update_status(self, phase: SyncPhase, message: str) -> None:
        self.logger.debug(f"[{phase.value}] {message}")
        for listener in list(self._listeners):
            try:
                listener(phase, message)
            except Exception as e:
                self.logger.warning(f"Status listener failed: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_syncing(self) -> bool:
        return self.state.busy

    @property
    def last_sync_result(self) -> Optional[SyncResult]:
        return self.state.last_result

    @property
    def last_sync_time(self) -> Optional[datetime]:
        return self.state.last_sync_time

    def check_git_status(self) -> GitAvailability:
        """Check that git runs and the vault is a repository."""
        if not self.repository.is_git_available():
            return GitAvailability(available=False, is_repo=False, error=GIT_UNAVAILABLE_MESSAGE)
        return GitAvailability(available=True, is_repo=self.repository.is_repository())

    def init_repo(self) -> None:
        self.repository.init()

    def get_status(self) -> RepositoryStatus:
        return self.repository.status()

    def _preflight(self) -> Optional[str]:
        """Error message when the vault cannot be synced at all."""
        git_status = self.check_git_status()
        if not git_status.available:
            return git_status.error or GIT_UNAVAILABLE_MESSAGE
        if not git_status.is_repo:
            return NOT_A_REPOSITORY_MESSAGE
        return None

    # ------------------------------------------------------------------
    # Top-level operations
    # ------------------------------------------------------------------

    def sync(self) -> SyncResult:
        """
        Run a full sync: pull, then commit and push.

        Returns a BUSY result immediately when another operation holds the
        lock. Never raises; unexpected failures become FAILURE results.
        """
        if not self.state.lock.acquire(blocking=False):
            self.logger.info("Sync requested while another operation is running")
            return create_sync_result(Outcome.BUSY, BUSY_MESSAGE)

        try:
            return self._sync_locked()
        finally:
            self.state.lock.release()

    def _sync_locked(self) -> SyncResult:
        try:
            error = self._preflight()
            if error:
                self._update_status(SyncPhase.ERROR, error)
                return create_sync_result(Outcome.FAILURE, error)

            if self.repository.has_conflicts():
                conflicts = self.repository.conflict_files()
                self._update_status(SyncPhase.CONFLICT, "Merge conflicts detected")
                return create_sync_result(
                    Outcome.CONFLICT,
                    "Merge conflicts detected; resolve them manually",
                    conflicts=conflicts
                )

            self._update_status(SyncPhase.PULLING, "Pulling updates...")
            pull_result = self._pull_step()

            if pull_result.outcome == Outcome.CONFLICT:
                self._update_status(SyncPhase.CONFLICT, "Merge conflicts detected")
                return create_sync_result(
                    Outcome.CONFLICT,
                    "Merge conflicts remain after pull",
                    conflicts=pull_result.conflicts
                )
            if not pull_result.success:
                self._update_status(SyncPhase.ERROR, pull_result.message)
                return create_sync_result(Outcome.FAILURE, pull_result.message)

            push_result = self._commit_and_push_step()

            if push_result.success:
                pulled = len(pull_result.files)
                both_no_op = pull_result.outcome == Outcome.NO_OP and push_result.outcome == Outcome.NO_OP
                result = create_sync_result(
                    Outcome.NO_OP if both_no_op else Outcome.SUCCESS,
                    self._summarize(pulled, push_result),
                    pulled=pulled,
                    pushed=push_result.pushed
                )
                self.state.last_sync_time = self._clock()
                self._update_status(SyncPhase.SUCCESS, result.message)
            else:
                result = create_sync_result(Outcome.FAILURE, push_result.message)
                self._update_status(SyncPhase.ERROR, push_result.message)

            self.state.last_result = result
            self.logger.info(f"Sync finished ({result.outcome.value}): {result.message}")
            return result

        except CommandError as e:
            message = e.summary()
            self.logger.error(f"Sync failed: {e} {e.stderr.strip()}")
            self._update_status(SyncPhase.ERROR, message)
            return create_sync_result(Outcome.FAILURE, message)
        except Exception as e:
            message = str(e) or "Unknown error during sync"
            self.logger.error(f"Unexpected error during sync: {e}", exc_info=True)
            self._update_status(SyncPhase.ERROR, message)
            return create_sync_result(Outcome.FAILURE, message)

    @staticmethod
    def _summarize(pulled: int, push_result: PushResult) -> str:
        if pulled == 0 and push_result.pushed == 0:
            if push_result.message == NOTHING_TO_SYNC_MESSAGE:
                return "Already up to date"
            return push_result.message
        return f"Synced: pulled {pulled} file(s), pushed {push_result.pushed} commit(s)"

    def pull_only(self) -> PullResult:
        """Pull remote changes without committing or pushing."""
        if not self.state.lock.acquire(blocking=False):
            return PullResult(Outcome.BUSY, BUSY_MESSAGE)

        try:
            error = self._preflight()
            if error:
                self._update_status(SyncPhase.ERROR, error)
                return PullResult(Outcome.FAILURE, error)

            self._update_status(SyncPhase.PULLING, "Pulling updates...")
            result = self._pull_step()
            self._report_step(result.outcome, result.message)
            return result
        except CommandError as e:
            self.logger.error(f"Pull failed: {e} {e.stderr.strip()}")
            self._update_status(SyncPhase.ERROR, e.summary())
            return PullResult(Outcome.FAILURE, e.summary())
        except Exception as e:
            self.logger.error(f"Unexpected error during pull: {e}", exc_info=True)
            self._update_status(SyncPhase.ERROR, str(e))
            return PullResult(Outcome.FAILURE, str(e) or "Unknown error during pull")
        finally:
            self.state.lock.release()

    def commit_and_push(self) -> PushResult:
        """Commit all local changes and push them."""
        if not self.state.lock.acquire(blocking=False):
            return PushResult(Outcome.BUSY, BUSY_MESSAGE)

        try:
            error = self._preflight()
            if error:
                self._update_status(SyncPhase.ERROR, error)
                return PushResult(Outcome.FAILURE, error)

            result = self._commit_and_push_step()
            self._report_step(result.outcome, result.message)
            return result
        except Exception as e:
            self.logger.error(f"Unexpected error during commit and push: {e}", exc_info=True)
            self._update_status(SyncPhase.ERROR, str(e))
            return PushResult(Outcome.FAILURE, str(e) or "Unknown error during push")
        finally:
            self.state.lock.release()

    def _report_step(self, outcome: Outcome, message: str) -> None:
        if outcome.is_success:
            self._update_status(SyncPhase.SUCCESS, message)
        elif outcome == Outcome.CONFLICT:
            self._update_status(SyncPhase.CONFLICT, message)
        else:
            self._update_status(SyncPhase.ERROR, message)

    # ------------------------------------------------------------------
    # Steps (called with the lock held)
    # ------------------------------------------------------------------

    def _pull_step(self) -> PullResult:
        remote = self.repository.remote_name()
        if not remote:
            return PullResult(Outcome.NO_OP, "No remote configured; skipped pull")

        try:
            self.repository.fetch(remote)

            if self.repository.status().behind == 0:
                return PullResult(Outcome.NO_OP, "Already up to date")

            return self.repository.pull(fetch=False)
        except CommandError:
            if self.repository.has_conflicts():
                return PullResult(
                    Outcome.CONFLICT,
                    "Merge conflicts detected",
                    conflicts=self.repository.status().conflicts
                )
            raise

    def _commit_and_push_step(self) -> PushResult:
        status = self.repository.status()

        if status.conflicts:
            return PushResult(Outcome.CONFLICT, "Resolve merge conflicts before committing")

        if status.clean:
            if status.ahead > 0:
                self._update_status(SyncPhase.PUSHING, "Pushing...")
                return self.repository.push()
            return PushResult(Outcome.NO_OP, NOTHING_TO_SYNC_MESSAGE)

        self._update_status(SyncPhase.COMMITTING, "Committing changes...")
        committed = False
        try:
            self.repository.add_all()
            message = generate_commit_message(self.config.commit_message, self._clock())
            committed = self.repository.commit(message).outcome == Outcome.SUCCESS
            if not committed:
                self.logger.debug("Nothing new to commit; pushing existing commits")
        except CommandError as e:
            if NOTHING_TO_COMMIT not in e.output:
                self.logger.error(f"Commit failed: {e} {e.stderr.strip()}")
                return PushResult(Outcome.FAILURE, e.summary())
            self.logger.debug("Commit raced with another commit; pushing anyway")

        self._update_status(SyncPhase.PUSHING, "Pushing...")
        try:
            if self.repository.has_upstream():
                push_result = self.repository.push()
            else:
                push_result = self.repository.push_with_upstream()
        except CommandError as e:
            self.logger.error(f"Push failed: {e} {e.stderr.strip()}")
            return PushResult(Outcome.FAILURE, e.summary())

        if committed and push_result.outcome == Outcome.NO_OP:
            return PushResult(Outcome.SUCCESS, f"Committed locally; {push_result.message.lower()}")
        return push_result

    # ------------------------------------------------------------------
    # Automatic sync
    # ------------------------------------------------------------------

    def start_auto_sync(self) -> None:
        """Arm the periodic trigger, replacing any existing one."""
        with self._trigger_lock:
            self._stop_trigger_locked()
            trigger = PeriodicTrigger(self.config.sync_interval_seconds, self._auto_sync_tick)
            trigger.start()
            self.state.trigger = trigger
        self.logger.info(f"Automatic sync every {self.config.sync_interval} minute(s)")

    def stop_auto_sync(self) -> None:
        with self._trigger_lock:
            self._stop_trigger_locked()

    def _stop_trigger_locked(self) -> None:
        if self.state.trigger is not None:
            self.state.trigger.stop()
            self.state.trigger = None

    def restart_auto_sync(self) -> None:
        """Re-arm or disarm the trigger after settings change."""
        if self.config.auto_sync:
            self.start_auto_sync()
        else:
            self.stop_auto_sync()

    def _auto_sync_tick(self) -> None:
        try:
            result = self.sync()
        except Exception as e:
            self.logger.error(f"Automatic sync error: {e}", exc_info=True)
            return
        if result.outcome == Outcome.BUSY:
            self.logger.debug("Skipped automatic sync; another operation is running")
        elif not result.success:
            self.logger.warning(f"Automatic sync failed: {result.message}")

    def update_settings(self, **changes) -> Config:
        """
        Apply configuration changes.

        Rebuilds the git backend when invocation settings change and
        re-arms the trigger when auto-sync settings change.

        Raises:
            EngineBusyError: if the git backend would change while an
                operation is running against the current one
        """
        config = dataclasses.replace(self.config, **changes)

        if changes.keys() & _BACKEND_SETTINGS:
            if not self.state.lock.acquire(blocking=False):
                raise EngineBusyError("Cannot change git settings while a sync is running")
            try:
                self.config = config
                self.repository = RepositoryStateReader.from_config(config)
            finally:
                self.state.lock.release()
        else:
            self.config = config

        if changes.keys() & _TRIGGER_SETTINGS:
            self.restart_auto_sync()

        return self.config

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """
        Start the engine.

        Pulls once when configured to, then arms the periodic trigger.
        Failures are logged and reported as status; this never raises.
        """
        try:
            error = self._preflight()
        except Exception as e:
            self.logger.error(f"Could not check git status: {e}", exc_info=True)
            self._update_status(SyncPhase.ERROR, str(e))
            return

        if error:
            self.logger.warning(f"Sync engine not started: {error}")
            self._update_status(SyncPhase.ERROR, error)
            return

        if self.config.auto_pull_on_start:
            try:
                result = self.pull_only()
                if not result.success:
                    self.logger.warning(f"Pull on start failed: {result.message}")
            except Exception as e:
                self.logger.error(f"Pull on start error: {e}", exc_info=True)

        if self.config.auto_sync:
            self.start_auto_sync()

        self._update_status(SyncPhase.IDLE, "Ready")

    def dispose(self) -> None:
        """Stop automatic sync without waiting for a running operation."""
        self.stop_auto_sync()
