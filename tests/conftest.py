"""Shared fixtures: throw-away git repositories."""

import hashlib
import subprocess
from pathlib import Path

import pytest

ORIGIN = "https://github.com/acme/widgets.git"


def run_git(args, cwd: Path) -> str:
    return subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        text=True,
        capture_output=True,
        check=True,
    ).stdout.strip()


class GitRepo:
    """A small repository in a temporary directory."""

    def __init__(self, root: Path):
        self.root = root

    def write(self, name: str, content: str) -> Path:
        path = self.root / name
        path.write_text(content)
        return path

    def commit(self, name: str, content: str, message: str = "change") -> str:
        self.write(name, content)
        run_git(["add", name], cwd=self.root)
        run_git(["commit", "-m", message], cwd=self.root)
        return self.head()

    def head(self) -> str:
        return run_git(["rev-parse", "HEAD"], cwd=self.root)

    def git(self, *args) -> str:
        return run_git(list(args), cwd=self.root)


def numbered_lines(count: int, prefix: str = "line") -> str:
    return "".join(f"{prefix} {i}\n" for i in range(1, count + 1))


def shasum(content: bytes) -> str:
    """What `shasum` prints for content piped to it, trimmed."""
    return f"{hashlib.sha1(content).hexdigest()}  -"


@pytest.fixture
def git_repo(tmp_path: Path) -> GitRepo:
    root = tmp_path / "repo"
    root.mkdir()
    run_git(["init"], cwd=root)
    run_git(["config", "user.name", "smilebin"], cwd=root)
    run_git(["config", "user.email", "smilebin@example.com"], cwd=root)
    run_git(["config", "commit.gpgsign", "false"], cwd=root)
    run_git(["remote", "add", "origin", ORIGIN], cwd=root)
    return GitRepo(root)
