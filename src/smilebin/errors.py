"""Exception types shared across smilebin."""

from __future__ import annotations


class SmilebinError(Exception):
    """Base class for all smilebin specific errors."""


class GitError(SmilebinError):
    """Raised when talking to git fails."""


class SpawnFailure(GitError):
    """The executable could not be started at all."""

    def __init__(self, command: list[str], reason: str):
        super().__init__(f"failed to execute {' '.join(command)}: {reason}")
        self.command = command
        self.reason = reason


class ProcessFailure(GitError):
    """The process ran but exited with a nonzero status (or timed out)."""

    def __init__(self, command: list[str], exit_code: int | None, stderr: str):
        message = f"command failed ({exit_code}): {' '.join(command)}"
        if stderr:
            message = f"{message}\n{stderr}"
        super().__init__(message)
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr


class DiffParseError(SmilebinError):
    """Raised when a unified diff cannot be parsed."""


class RangeDeclined(SmilebinError):
    """The selected lines cannot be anchored; the user picks another range."""


class AmbiguousRangeDeclined(RangeDeclined):
    """The selected range contains lines that were never committed."""

    def __init__(self, path: str, spans: list):
        uncommitted = [s for s in spans if not s.is_committed]
        lines = ", ".join(f"{s.start_line}-{s.end_line}" for s in uncommitted)
        super().__init__(
            f"{path}: lines {lines} are not committed yet; commit them before adding a smile"
        )
        self.path = path
        self.spans = spans


class TranslationMiss(RangeDeclined):
    """A line has no counterpart on the other side of a diff."""

    def __init__(self, revision: str, line: int):
        super().__init__(
            f"line {line} cannot be traced back to {revision[:7]}; "
            "blame and diff disagree about where it came from"
        )
        self.revision = revision
        self.line = line


class IncompleteAnnotation(SmilebinError):
    """The annotation was stored but not every address made it."""

    def __init__(self, annotation_id: str, created: list[str], cause: Exception):
        super().__init__(
            f"annotation {annotation_id} stored with {len(created)} address(es) "
            f"before failing: {cause}"
        )
        self.annotation_id = annotation_id
        self.created = created
        self.cause = cause


class TransportFailure(SmilebinError):
    """The annotation store could not be reached or rejected the request."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
