"""Test doubles for the external tools identmux drives."""

from pathlib import Path

from identmux.exceptions import ExternalToolError, RemoteUpdateError
from identmux.gitops import GitClient
from identmux.keys import KeyGenerator
from identmux.models import KeyResult


class FakeGitClient(GitClient):
    """In-memory git: repository path -> {remote name: url}."""

    def __init__(self, remotes: dict[Path, dict[str, str]] | None = None) -> None:
        super().__init__()
        self.remotes = remotes or {}
        self.broken_repos: set[Path] = set()
        self.rejected: set[tuple[Path, str]] = set()

    def available(self) -> bool:
        return True

    def list_remotes(self, repo: Path) -> list[str]:
        if repo in self.broken_repos:
            msg = f"Cannot list remotes in {repo}: not a git repository"
            raise ExternalToolError(msg)
        return list(self.remotes.get(repo, {}))

    def get_remote_url(self, repo: Path, name: str) -> str | None:
        return self.remotes.get(repo, {}).get(name)

    def set_remote_url(self, repo: Path, name: str, url: str) -> None:
        if (repo, name) in self.rejected:
            msg = f"Failed to update {name} in {repo}: permission denied"
            raise RemoteUpdateError(msg)
        self.remotes[repo][name] = url


class FakeKeyGenerator(KeyGenerator):
    """Writes placeholder key files instead of running ssh-keygen."""

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[tuple[Path, str]] = []

    def available(self) -> bool:
        return True

    def generate(self, path: Path, comment: str) -> KeyResult:
        self.calls.append((path, comment))
        if path.exists():
            return KeyResult(path=path, created=False)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("PRIVATE KEY\n")
        public_key = f"ssh-ed25519 AAAAfake {comment}"
        path.with_name(f"{path.name}.pub").write_text(public_key + "\n")
        return KeyResult(path=path, created=True, public_key=public_key)


def make_repo(path: Path) -> Path:
    """Create an empty working tree marker at ``path``."""
    (path / ".git").mkdir(parents=True)
    return path
