"""Git operations for extracting per-line provenance and file history."""

import hashlib
import logging
import re
from pathlib import Path

from git import Repo
from git.exc import InvalidGitRepositoryError, NoSuchPathError

from .errors import ProcessFailure
from .models import RevisionSpan
from .runner import GitRunner

LOG = logging.getLogger(__name__)

# First line of every blamed line in --porcelain output:
# <40-hex sha> <original line> <final line> [<lines in group>]
_PORCELAIN_HEADER_RE = re.compile(r"^(?P<sha>[0-9a-f]{40}) (?P<orig>\d+) (?P<final>\d+)(?: \d+)?$")

_URL_RE = re.compile(
    r"^(?:git|ssh|git\+ssh|https?)://(?:[^@/]+@)?(?P<host>[^/:]+)(?::\d+)?/(?P<path>.+)$"
)
_SCP_RE = re.compile(r"^(?:[\w.-]+@)?(?P<host>[\w.-]+):(?P<path>[^/\\].*)$")


def find_repo(path: str | Path) -> Repo:
    """Open the git repository that contains `path`."""
    target = Path(path).resolve()
    if not target.exists():
        raise ValueError(f"Path does not exist: {target}")
    start = target if target.is_dir() else target.parent
    try:
        return Repo(start, search_parent_directories=True)
    except (InvalidGitRepositoryError, NoSuchPathError):
        raise ValueError(f"Not inside a git repository: {target}") from None


def relative_path(repo: Repo, path: str | Path) -> str:
    """Return `path` relative to the repository's working tree, in git's form."""
    root = Path(repo.working_tree_dir).resolve()
    target = Path(path)
    if not target.is_absolute():
        target = root / target
    try:
        return target.resolve().relative_to(root).as_posix()
    except ValueError:
        raise ValueError(f"{target} is not inside repository {root}") from None


def origin_url(repo: Repo) -> str:
    """URL of the `origin` remote."""
    try:
        return repo.remotes.origin.url
    except AttributeError:
        raise ValueError(f"Repository {repo.working_tree_dir} has no origin remote") from None


def repo_key_from_url(url: str) -> str:
    """
    Normalise a remote URL into `host/owner/name`.

    https, ssh and scp-like (`git@host:owner/name.git`) spellings of the
    same remote all map to the same key.
    """
    url = url.strip()
    match = _URL_RE.match(url) or _SCP_RE.match(url)
    if not match:
        raise ValueError(f"Unrecognised git remote URL: {url}")

    host = match.group("host").lower()
    repo_path = match.group("path").strip("/")
    if repo_path.endswith(".git"):
        repo_path = repo_path[: -len(".git")]
    if not repo_path:
        raise ValueError(f"Git remote URL has no repository path: {url}")
    return f"{host}/{repo_path}"


def list_revisions(runner: GitRunner, file_path: str) -> list[str]:
    """
    Get every revision that touched a file, newest first.

    A file without history is a normal state (nothing can be anchored to it),
    so a failing git log yields an empty list.
    """
    try:
        output = runner.run(
            ["log", "--no-color", "--no-show-signature", "--pretty=format:%H", "--", file_path]
        )
    except ProcessFailure as exc:
        LOG.info("No history for %s: %s", file_path, exc.stderr or exc)
        return []
    return [line.strip() for line in output.splitlines() if line.strip()]


def file_checksum(runner: GitRunner, file_path: str, revision: str) -> str:
    """
    SHA-1 of the file's content as of `revision`.

    Raises ProcessFailure when the revision does not contain the path.
    """
    content = runner.run_bytes(["show", f"{revision}:{file_path}"])
    return shasum_text(content)


def shasum_text(content: bytes) -> str:
    """
    SHA-1 of `content` written the way `shasum` reports standard input.

    Stored checksums carry the trailing `  -`, so fingerprints computed here
    match the ones other smilebin clients send to the same backend.
    """
    return f"{hashlib.sha1(content).hexdigest()}  -"


def file_checksums(runner: GitRunner, file_path: str, revisions: list[str]) -> list[str]:
    """Checksums for several revisions, in the same order."""
    return [file_checksum(runner, file_path, revision) for revision in revisions]


def blame_spans(
    runner: GitRunner, file_path: str, start_line: int, end_line: int
) -> list[RevisionSpan]:
    """
    Get the revisions responsible for an inclusive 1-based line range.

    Blame runs against the working tree, so lines that have not been
    committed come back under the all-zero revision. Consecutive lines
    owned by the same revision are merged into one span, which also keeps
    where its first and last line sit in the revision itself.
    """
    if start_line < 1 or end_line < start_line:
        raise ValueError(f"Invalid line range: {start_line}-{end_line}")

    output = runner.run(
        ["blame", "--porcelain", "-L", f"{start_line},{end_line}", "--", file_path]
    )
    return _merge_blame(_parse_porcelain(output))


def _parse_porcelain(output: str) -> list[tuple[str, int, int]]:
    """Pull (revision, original line, final line) out of porcelain blame output."""
    owners = []
    for line in output.splitlines():
        # Content lines are tab-prefixed and never match the header pattern
        match = _PORCELAIN_HEADER_RE.match(line)
        if match:
            owners.append(
                (match.group("sha"), int(match.group("orig")), int(match.group("final")))
            )
    return owners


def _merge_blame(owners: list[tuple[str, int, int]]) -> list[RevisionSpan]:
    spans: list[RevisionSpan] = []
    for revision, orig, final in owners:
        last = spans[-1] if spans else None
        if last and last.revision == revision and last.end_line == final - 1:
            last.end_line = final
            last.orig_end_line = orig
        else:
            spans.append(RevisionSpan(revision, final, final, orig, orig))
    return spans


def diff_against(runner: GitRunner, file_path: str, revision: str) -> str:
    """Unified diff from `revision` to the current working tree for one file."""
    # Hunks must come out in plain unified format whatever the user has configured
    return runner.run(
        ["diff", "--no-color", "--no-ext-diff", "--no-textconv", revision, "--", file_path]
    )


def line_count(repo_root: str | Path, file_path: str) -> int:
    """
    Number of lines currently in the working-tree file.

    A last line without a trailing newline still counts.
    """
    data = (Path(repo_root) / file_path).read_bytes()
    count = data.count(b"\n")
    if data and not data.endswith(b"\n"):
        count += 1
    return count


def read_lines(repo_root: str | Path, file_path: str, start_line: int, end_line: int) -> str:
    """Current text of an inclusive 1-based line range."""
    text = (Path(repo_root) / file_path).read_text(encoding="utf-8", errors="replace")
    lines = text.split("\n")
    return "\n".join(lines[start_line - 1 : end_line])
