"""Thin wrappers around the git commands identmux relies on."""

from __future__ import annotations

import os
import shutil
import subprocess
from pathlib import Path

from .exceptions import ExternalToolError, RemoteUpdateError


def find_git_roots(base: Path) -> list[Path]:
    """Find every working tree below ``base`` (``base`` included).

    Args:
        base: Directory to search

    Returns:
        Sorted directories holding a ``.git`` directory
    """
    base = Path(base)
    if not base.is_dir():
        return []

    roots = []
    for root, dirs, _files in os.walk(base):
        if ".git" in dirs:
            roots.append(Path(root))
            dirs.remove(".git")
    return sorted(roots)


class GitClient:
    """Runs git against a repository and returns plain values."""

    def __init__(self, executable: str = "git") -> None:
        self.executable = executable

    def available(self) -> bool:
        return shutil.which(self.executable) is not None

    def _run(self, repo: Path, *args: str) -> subprocess.CompletedProcess[str]:
        if not self.available():
            msg = f"{self.executable} not found"
            raise ExternalToolError(msg)
        return subprocess.run(
            [self.executable, "-C", str(repo), *args],
            capture_output=True,
            text=True,
            check=False,
        )

    def list_remotes(self, repo: Path) -> list[str]:
        """Names of the remotes configured in ``repo``.

        Raises:
            ExternalToolError: If git is missing or the command fails
        """
        result = self._run(repo, "remote")
        if result.returncode != 0:
            msg = f"Cannot list remotes in {repo}: {result.stderr.strip()}"
            raise ExternalToolError(msg, details={"repo": str(repo)})
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def get_remote_url(self, repo: Path, name: str) -> str | None:
        """Stored URL of a remote, ignoring any ``insteadOf`` rewrite."""
        result = self._run(repo, "config", f"remote.{name}.url")
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def set_remote_url(self, repo: Path, name: str, url: str) -> None:
        """Point a remote at a new URL.

        Raises:
            RemoteUpdateError: If git rejects the change
        """
        try:
            result = self._run(repo, "remote", "set-url", name, url)
        except ExternalToolError as e:
            raise RemoteUpdateError(str(e), details={"repo": str(repo), "remote": name}) from e
        if result.returncode != 0:
            msg = f"Failed to update {name} in {repo}: {result.stderr.strip()}"
            raise RemoteUpdateError(msg, details={"repo": str(repo), "remote": name})
