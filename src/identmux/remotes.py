"""Remote URL resolution and rewriting for existing repositories.

Remotes are rewritten to the per-identity SSH alias form
``git@<host>-<label>:<slug>.git``. Which hosts are managed is decided
from the identity model alone; the SSH config is never consulted.
"""

from __future__ import annotations

import re
from pathlib import Path

from .exceptions import ExternalToolError, RemoteUpdateError
from .gitops import GitClient, find_git_roots
from .models import (
    Identity,
    IdentityModel,
    LABEL_PATTERN,
    Locations,
    RemoteChange,
    RemoteUpdateReport,
    ValidationWarning,
    WarningKind,
)

_SSH_URL_RE = re.compile(r"^git@(?P<host>[^:]+):(?P<slug>.+)$")
_HTTP_URL_RE = re.compile(r"^https?://(?P<host>[^/]+)/(?P<slug>.+)$")


def split_remote_url(url: str) -> tuple[str, str] | None:
    """Split a remote URL into its raw host and raw path.

    Only ``git@host:path`` and ``http(s)://host/path`` are recognized.
    """
    for pattern in (_SSH_URL_RE, _HTTP_URL_RE):
        match = pattern.match(url.strip())
        if match:
            return match.group("host"), match.group("slug")
    return None


def extract_slug(url: str) -> str | None:
    """The ``owner/repo`` part of a remote URL without ``.git``."""
    parts = split_remote_url(url)
    if parts is None:
        return None
    slug = parts[1].removesuffix(".git")
    return slug or None


def resolve_host(url: str, model: IdentityModel) -> str | None:
    """Bare hostname of a remote URL, if the host is managed by identmux.

    A host component equal to a configured hostname is returned as is. An
    alias ``<hostname>-<label>`` is reduced to ``<hostname>`` when that
    prefix is configured.

    Returns:
        The bare hostname, or None for unrecognized URLs and hosts no
        identity declares
    """
    parts = split_remote_url(url)
    if parts is None:
        return None

    raw_host = parts[0]
    configured = model.all_hosts()
    if raw_host in configured:
        return raw_host

    # Longest host wins when several prefixes match.
    for hostname in sorted(configured, key=len, reverse=True):
        prefix = f"{hostname}-"
        if raw_host.startswith(prefix) and LABEL_PATTERN.match(raw_host[len(prefix):]):
            return hostname
    return None


def target_url(label: str, hostname: str, slug: str) -> str:
    """Canonical aliased SSH URL, used for every identity including the default."""
    return f"git@{hostname}-{label}:{slug}.git"


def propose_change(
    model: IdentityModel,
    identity: Identity,
    repo: Path,
    remote: str,
    url: str,
) -> RemoteChange | None:
    """Compute the rewrite for one remote owned by ``identity``.

    Returns:
        A change, or None when the host is unmanaged, belongs to another
        identity, the URL has no slug, or the URL is already correct
    """
    hostname = resolve_host(url, model)
    if hostname is None or hostname not in identity.hosts:
        return None

    slug = extract_slug(url)
    if slug is None:
        return None

    new_url = target_url(identity.label, hostname, slug)
    if new_url == url:
        return None
    return RemoteChange(
        repo=repo,
        remote=remote,
        old_url=url,
        new_url=new_url,
        label=identity.label,
    )


class RemoteUpdater:
    """Plans and applies remote URL rewrites across identity paths."""

    def __init__(
        self,
        model: IdentityModel,
        locations: Locations,
        git: GitClient | None = None,
    ) -> None:
        """Initialize updater.

        Args:
            model: Identity model deciding hosts and owning paths
            locations: Used to expand ``~`` in identity paths
            git: Git command wrapper
        """
        self.model = model
        self.locations = locations
        self.git = git or GitClient()
        self.warnings: list[ValidationWarning] = []

    def plan(self) -> list[RemoteChange]:
        """Collect every remote whose stored URL differs from its target.

        A repository remote is considered once, for the identity whose
        path most specifically contains the repository.

        Raises:
            ExternalToolError: If git is not installed
        """
        if not self.git.available():
            msg = "git not found; cannot update remotes"
            raise ExternalToolError(msg)

        changes: list[RemoteChange] = []
        seen: set[tuple[Path, str]] = set()

        for identity in self.model.identities.values():
            for pattern in identity.paths:
                base = Path(self.locations.expand(pattern))
                for repo in find_git_roots(base):
                    if self.model.owner_of(repo, self.locations.home) is not identity:
                        continue
                    changes.extend(self._plan_repo(identity, repo, seen))
        return changes

    def _plan_repo(
        self,
        identity: Identity,
        repo: Path,
        seen: set[tuple[Path, str]],
    ) -> list[RemoteChange]:
        try:
            remotes = self.git.list_remotes(repo)
        except ExternalToolError as e:
            self.warnings.append(ValidationWarning(WarningKind.REPO_SKIPPED, str(e)))
            return []

        changes = []
        for remote in remotes:
            if (repo, remote) in seen:
                continue
            seen.add((repo, remote))

            url = self.git.get_remote_url(repo, remote)
            if not url:
                continue
            change = propose_change(self.model, identity, repo, remote, url)
            if change is not None:
                changes.append(change)
        return changes

    def apply(self, changes: list[RemoteChange]) -> RemoteUpdateReport:
        """Apply every change, continuing past individual failures."""
        report = RemoteUpdateReport()
        for change in changes:
            try:
                self.git.set_remote_url(change.repo, change.remote, change.new_url)
            except RemoteUpdateError as e:
                report.failures.append(e)
            else:
                report.updated.append(change)
        return report
