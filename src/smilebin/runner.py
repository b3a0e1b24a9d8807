"""Subprocess execution for git, one dispatcher per working directory."""

import logging
import threading
from pathlib import Path

from git.cmd import Git
from git.exc import GitCommandError, GitCommandNotFound

from .errors import ProcessFailure, SpawnFailure

LOG = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class GitRunner:
    """
    Runs commands inside a single working directory.

    Each call spawns its own subprocess through GitPython's command
    dispatcher, so one runner can be shared by concurrent callers.
    """

    def __init__(self, working_dir: str | Path, timeout: float = DEFAULT_TIMEOUT):
        self.working_dir = str(Path(working_dir).resolve())
        self.timeout = timeout
        self._git = Git(self.working_dir)

    def run(self, args: list[str], executable: str = "git") -> str:
        """Run a command and return stdout with trailing whitespace trimmed."""
        output = self._execute(args, executable, as_bytes=False)
        return output.rstrip()

    def run_bytes(self, args: list[str], executable: str = "git") -> bytes:
        """Run a command and return stdout exactly as it was written."""
        return self._execute(args, executable, as_bytes=True)

    def _execute(self, args: list[str], executable: str, as_bytes: bool):
        command = [executable, *args]
        LOG.debug("Running in %s: %s", self.working_dir, " ".join(command))
        try:
            return self._git.execute(
                command,
                kill_after_timeout=self.timeout,
                stdout_as_string=not as_bytes,
                strip_newline_in_stdout=False,
            )
        except GitCommandNotFound as exc:
            raise SpawnFailure(command, str(exc)) from exc
        except GitCommandError as exc:
            stderr = (exc.stderr or "").strip()
            LOG.debug("stderr from %s: %s", command[0], stderr)
            raise ProcessFailure(command, exc.status, stderr) from exc


class RunnerCache:
    """Hands out one GitRunner per working directory."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT):
        self.timeout = timeout
        self._runners: dict[str, GitRunner] = {}
        self._lock = threading.Lock()

    def get(self, working_dir: str | Path) -> GitRunner:
        key = str(Path(working_dir).resolve())
        with self._lock:
            runner = self._runners.get(key)
            if runner is None:
                runner = GitRunner(key, timeout=self.timeout)
                self._runners[key] = runner
        return runner

    def __len__(self) -> int:
        return len(self._runners)
