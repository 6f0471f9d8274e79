"""Tests for remote URL resolution and rewriting."""

from pathlib import Path

import pytest

from identmux.exceptions import ExternalToolError
from identmux.gitops import find_git_roots
from identmux.models import Identity, IdentityModel, Locations, WarningKind
from identmux.remotes import (
    RemoteUpdater,
    extract_slug,
    propose_change,
    resolve_host,
    split_remote_url,
    target_url,
)

from .helpers import FakeGitClient, make_repo


class TestResolveHost:
    """Test resolve_host and URL splitting."""

    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("git@github.com:org/repo.git", "github.com"),
            ("git@github.com-work:org/repo.git", "github.com"),
            ("git@github.com-personal:org/repo", "github.com"),
            ("https://github.com/org/repo", "github.com"),
            ("http://github.com/org/repo.git", "github.com"),
            ("https://github.com-work/org/repo.git", "github.com"),
            ("git@unrelated.example:x/y.git", None),
            ("git@github.com-Work:org/repo.git", None),
            ("git@github.company.com:org/repo.git", None),
            ("ssh://git@github.com/org/repo.git", None),
            ("/srv/git/repo.git", None),
        ],
    )
    def test_resolve(self, sample_model: IdentityModel, url: str, expected: str | None) -> None:
        assert resolve_host(url, sample_model) == expected

    def test_alias_of_unlisted_label_still_resolves(self, sample_model: IdentityModel) -> None:
        assert resolve_host("git@github.com-old:org/repo.git", sample_model) == "github.com"

    def test_longest_configured_host_wins(self) -> None:
        model = IdentityModel()
        model.add_identity(Identity(label="personal", hosts=["github.com"]))
        model.add_identity(Identity(label="work", hosts=["github.com-enterprise"]))

        assert resolve_host("git@github.com-enterprise-work:org/repo.git", model) == (
            "github.com-enterprise"
        )
        assert resolve_host("git@github.com-personal:jane/oss.git", model) == "github.com"

    def test_split(self) -> None:
        assert split_remote_url("git@gitlab.com:group/sub/repo.git") == (
            "gitlab.com",
            "group/sub/repo.git",
        )
        assert split_remote_url("not a url") is None

    @pytest.mark.parametrize(
        ("url", "slug"),
        [
            ("git@github.com:org/repo.git", "org/repo"),
            ("https://github.com/org/repo", "org/repo"),
            ("https://gitlab.com/group/sub/repo.git", "group/sub/repo"),
            ("git@github.com:.git", None),
            ("file:///tmp/repo", None),
        ],
    )
    def test_extract_slug(self, url: str, slug: str | None) -> None:
        assert extract_slug(url) == slug


class TestTargetUrl:
    """Test target_url and propose_change."""

    def test_target_url(self) -> None:
        assert target_url("work", "github.com", "org/repo") == "git@github.com-work:org/repo.git"

    def test_default_identity_also_aliased(self, sample_model: IdentityModel) -> None:
        change = propose_change(
            sample_model,
            sample_model.get("personal"),
            Path("/r"),
            "origin",
            "git@github.com:jane/dotfiles.git",
        )

        assert change is not None
        assert change.new_url == "git@github.com-personal:jane/dotfiles.git"

    def test_already_correct(self, sample_model: IdentityModel) -> None:
        url = "git@github.com-work:org/repo.git"

        assert propose_change(sample_model, sample_model.get("work"), Path("/r"), "o", url) is None

    def test_wrong_alias_corrected(self, sample_model: IdentityModel) -> None:
        change = propose_change(
            sample_model,
            sample_model.get("work"),
            Path("/r"),
            "origin",
            "git@github.com-personal:org/repo.git",
        )

        assert change is not None
        assert change.old_url == "git@github.com-personal:org/repo.git"
        assert change.new_url == "git@github.com-work:org/repo.git"
        assert change.label == "work"

    def test_host_of_other_identity_skipped(self) -> None:
        model = IdentityModel()
        model.add_identity(Identity(label="personal", hosts=["github.com"]))
        model.add_identity(Identity(label="work", hosts=["gitlab.corp.example"]))

        change = propose_change(
            model, model.get("work"), Path("/r"), "origin", "https://github.com/org/repo",
        )

        assert change is None


class TestFindGitRoots:
    """Test working tree discovery."""

    def test_finds_nested_repos(self, tmp_path: Path) -> None:
        make_repo(tmp_path / "a")
        make_repo(tmp_path / "group" / "b")
        (tmp_path / "plain").mkdir()

        assert find_git_roots(tmp_path) == [tmp_path / "a", tmp_path / "group" / "b"]

    def test_base_itself(self, tmp_path: Path) -> None:
        make_repo(tmp_path)

        assert find_git_roots(tmp_path) == [tmp_path]

    def test_missing_base(self, tmp_path: Path) -> None:
        assert find_git_roots(tmp_path / "missing") == []


class TestRemoteUpdater:
    """Test planning and applying remote rewrites."""

    @pytest.fixture
    def repo(self, tmp_path: Path) -> Path:
        return make_repo(tmp_path / "company" / "repo")

    @pytest.fixture
    def git(self, repo: Path) -> FakeGitClient:
        return FakeGitClient({repo: {"origin": "https://github.com/org/repo"}})

    def test_company_repo_scenario(
        self,
        sample_model: IdentityModel,
        locations: Locations,
        repo: Path,
        git: FakeGitClient,
    ) -> None:
        updater = RemoteUpdater(sample_model, locations, git=git)

        changes = updater.plan()

        assert len(changes) == 1
        assert changes[0].repo == repo
        assert changes[0].remote == "origin"
        assert changes[0].new_url == "git@github.com-work:org/repo.git"

        report = updater.apply(changes)

        assert report.updated == changes
        assert report.failed_count == 0
        assert git.remotes[repo]["origin"] == "git@github.com-work:org/repo.git"
        assert updater.plan() == []

    def test_unmanaged_remotes_untouched(
        self, sample_model: IdentityModel, locations: Locations, repo: Path,
    ) -> None:
        git = FakeGitClient(
            {
                repo: {
                    "origin": "git@gitlab.example:org/repo.git",
                    "mirror": "/srv/mirror/repo.git",
                },
            },
        )

        assert RemoteUpdater(sample_model, locations, git=git).plan() == []

    def test_nested_path_owned_by_deepest_identity(
        self, locations: Locations, tmp_path: Path,
    ) -> None:
        work_repo = make_repo(tmp_path / "code" / "work" / "repo")
        oss_repo = make_repo(tmp_path / "code" / "oss")
        model = IdentityModel()
        model.add_identity(Identity(label="personal", hosts=["github.com"], paths=["~/code"]))
        model.add_identity(
            Identity(label="work", hosts=["github.com"], paths=["~/code/work"]),
        )
        git = FakeGitClient(
            {
                work_repo: {"origin": "https://github.com/org/repo"},
                oss_repo: {"origin": "https://github.com/jane/oss"},
            },
        )

        changes = RemoteUpdater(model, locations, git=git).plan()

        assert sorted(c.new_url for c in changes) == [
            "git@github.com-personal:jane/oss.git",
            "git@github.com-work:org/repo.git",
        ]

    def test_failures_do_not_stop_batch(
        self, sample_model: IdentityModel, locations: Locations, tmp_path: Path,
    ) -> None:
        first = make_repo(tmp_path / "company" / "a")
        second = make_repo(tmp_path / "company" / "b")
        git = FakeGitClient(
            {
                first: {"origin": "https://github.com/org/a"},
                second: {"origin": "https://github.com/org/b"},
            },
        )
        git.rejected.add((first, "origin"))
        updater = RemoteUpdater(sample_model, locations, git=git)

        report = updater.apply(updater.plan())

        assert report.failed_count == 1
        assert [c.repo for c in report.updated] == [second]
        assert git.remotes[first]["origin"] == "https://github.com/org/a"
        assert git.remotes[second]["origin"] == "git@github.com-work:org/b.git"

    def test_unreadable_repo_warns(
        self, sample_model: IdentityModel, locations: Locations, repo: Path, git: FakeGitClient,
    ) -> None:
        git.broken_repos.add(repo)
        updater = RemoteUpdater(sample_model, locations, git=git)

        assert updater.plan() == []
        assert [w.kind for w in updater.warnings] == [WarningKind.REPO_SKIPPED]

    def test_git_missing(self, sample_model: IdentityModel, locations: Locations) -> None:
        git = FakeGitClient()
        git.available = lambda: False

        with pytest.raises(ExternalToolError, match="git not found"):
            RemoteUpdater(sample_model, locations, git=git).plan()
