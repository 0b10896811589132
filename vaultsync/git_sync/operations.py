"""Git command execution for the sync engine using GitPython."""

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from git import Git
from git.exc import GitCommandNotFound

DEFAULT_TIMEOUT = 120.0
DEFAULT_MAX_OUTPUT_BYTES = 50 * 1024 * 1024

READ_CHUNK_SIZE = 64 * 1024
# Readers still blocked this long after the deadline are abandoned
KILL_GRACE_SECONDS = 5.0


@dataclass
class CommandOutput:
    """Captured output of a successful git invocation."""
    stdout: str
    stderr: str


class CommandError(Exception):
    """
    A git invocation that did not complete successfully.

    Raised for non-zero exits, timeouts, output overflow and a missing
    executable. Carries whatever output was captured.
    """

    def __init__(
        self,
        message: str,
        exit_code: Optional[int] = None,
        stdout: str = "",
        stderr: str = "",
        command: Optional[Sequence[str]] = None,
        timed_out: bool = False,
    ):
        super().__init__(message)
        self.exit_code = exit_code
        self.stdout = stdout or ""
        self.stderr = stderr or ""
        self.command = list(command) if command else []
        self.timed_out = timed_out

    @property
    def output(self) -> str:
        """Combined stdout and stderr, as git splits messages between both."""
        return f"{self.stdout}\n{self.stderr}"

    def summary(self) -> str:
        """Short one-line description suitable for user-facing messages."""
        for line in self.stderr.splitlines():
            if "fatal:" in line:
                return line.split("fatal:", 1)[1].strip()
        for line in self.stderr.splitlines():
            if line.strip():
                return line.strip()
        return str(self)


class _OutputCapture:
    """
    Drains stdout and stderr of a running git process.

    Keeps at most `limit` bytes across both streams and kills the process
    as soon as more than that arrives.
    """

    def __init__(self, process, limit: int):
        self.process = process
        self.limit = limit
        self.total = 0
        self.overflowed = False
        self.chunks: Dict[str, List[bytes]] = {"stdout": [], "stderr": []}
        self._lock = threading.Lock()

    def drain(self, stream, name: str) -> None:
        try:
            while True:
                chunk = stream.read1(READ_CHUNK_SIZE)
                if not chunk:
                    return
                with self._lock:
                    room = max(self.limit - self.total, 0)
                    self.chunks[name].append(chunk[:room])
                    self.total += len(chunk)
                    if self.total > self.limit:
                        self.overflowed = True
                if self.overflowed:
                    self.process.kill()
                    return
        except (OSError, ValueError):
            # The pipe was closed after the process was killed
            return

    def text(self, name: str) -> str:
        return b"".join(self.chunks[name]).decode("utf-8", errors="replace")


class GitCommandRunner:
    """
    Runs single git subcommands against a fixed working directory.

    Each call spawns exactly one git process with a wall-clock timeout and a
    cap on captured output. Nothing is retried here; retry policy belongs to
    callers.
    """

    def __init__(
        self,
        working_dir: Union[str, Path],
        git_path: str = "git",
        timeout: float = DEFAULT_TIMEOUT,
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
    ):
        """
        Initialize the runner.

        Args:
            working_dir: Directory every command runs in
            git_path: Git executable name or absolute path
            timeout: Seconds before a running command is killed
            max_output_bytes: Maximum combined stdout/stderr size
        """
        self.working_dir = Path(working_dir)
        self.git_path = git_path
        self.timeout = timeout
        self.max_output_bytes = max_output_bytes
        self.logger = logging.getLogger('vaultsync.git_sync.operations')
        self._git = Git(str(self.working_dir))

    def run(self, args: Sequence[str]) -> CommandOutput:
        """
        Execute `git <args>` and return its output.

        Output is read incrementally. The process is killed once the
        combined output passes `max_output_bytes` or the timeout expires,
        so a runaway command never holds more than the cap in memory.

        Raises:
            CommandError: on non-zero exit, timeout, output overflow or when
                the executable cannot be started
        """
        command = [self.git_path, *args]
        self.logger.debug(f"Running: git {' '.join(args)}")

        try:
            handle = self._git.execute(command, as_process=True)
        except GitCommandNotFound as e:
            raise CommandError(
                f"Git executable not found: {self.git_path}",
                exit_code=None,
                stderr=str(e),
                command=command,
            ) from e

        process = handle.proc
        capture = _OutputCapture(process, self.max_output_bytes)
        timed_out = threading.Event()

        def kill_on_timeout():
            timed_out.set()
            process.kill()

        watchdog = threading.Timer(self.timeout, kill_on_timeout)
        watchdog.daemon = True
        readers = [
            threading.Thread(target=capture.drain, args=(process.stdout, "stdout"), daemon=True),
            threading.Thread(target=capture.drain, args=(process.stderr, "stderr"), daemon=True),
        ]

        watchdog.start()
        try:
            for reader in readers:
                reader.start()
            deadline = time.monotonic() + self.timeout + KILL_GRACE_SECONDS
            for reader in readers:
                reader.join(max(deadline - time.monotonic(), 0.0))
            status = process.wait()
        finally:
            watchdog.cancel()

        stdout = capture.text("stdout")
        stderr = capture.text("stderr")

        if capture.overflowed:
            self.logger.warning(f"git {args[0] if args else ''} exceeded output limit of {self.max_output_bytes} bytes")
            raise CommandError(
                f"git {' '.join(args)} produced more than {self.max_output_bytes} bytes of output",
                exit_code=status,
                stdout=stdout,
                stderr=stderr,
                command=command,
            )

        if status != 0:
            if timed_out.is_set():
                message = f"git {' '.join(args)} timed out after {self.timeout:.0f}s"
            else:
                message = f"git {' '.join(args)} failed with exit code {status}"
            self.logger.debug(f"{message}: {stderr.strip()}")
            raise CommandError(
                message,
                exit_code=status,
                stdout=stdout,
                stderr=stderr,
                command=command,
                timed_out=timed_out.is_set(),
            )

        return CommandOutput(stdout=stdout, stderr=stderr)

    def is_available(self) -> bool:
        """
        Check that the git executable can be run. Never raises.

        Runs outside the working directory so a missing vault does not
        read as a missing git.
        """
        try:
            status, stdout, _ = Git().execute(
                [self.git_path, "--version"],
                with_extended_output=True,
                with_exceptions=False,
                kill_after_timeout=min(self.timeout, 10.0),
            )
        except (GitCommandNotFound, OSError) as e:
            self.logger.debug(f"Git not available: {e}")
            return False

        if status != 0:
            self.logger.debug(f"git --version exited with {status}")
            return False

        self.logger.debug(f"Git available: {stdout.strip()}")
        return True
