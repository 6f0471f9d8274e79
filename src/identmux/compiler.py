"""Config compiler turning the identity model into SSH and Git fragments."""

from __future__ import annotations

import re
from collections.abc import Callable
from pathlib import Path

from .exceptions import IdentmuxError
from .keys import KeyGenerator
from .merger import (
    atomic_write_text,
    merge_block_text,
    merge_managed_block,
    read_user_text,
    strip_managed_block,
)
from .models import (
    ApplyReport,
    Identity,
    IdentityModel,
    Locations,
    ValidationWarning,
    WarningKind,
)
from .parser import serialize_config

_HOST_DECLARATION_RE = re.compile(r"^\s*Host\s+(?P<patterns>.+)$", re.IGNORECASE)
_GLOB_CHARS = ("*", "?", "!")

SSH_DIR_MODE = 0o700
SSH_CONFIG_MODE = 0o644


def _stanza(header: str, entries: list[tuple[str, str]], separator: str = " ") -> str:
    body = "".join(f"    {key}{separator}{value}\n" for key, value in entries)
    return f"{header}\n{body}"


def _user_stanza(identity: Identity) -> str:
    fields = [("name", identity.name), ("email", identity.email)]
    entries = [(key, value) for key, value in fields if value]
    return _stanza("[user]", entries, separator=" = ")


class ConfigCompiler:
    """Compiles an identity model into SSH and Git configuration text."""

    def __init__(self, model: IdentityModel, locations: Locations) -> None:
        """Initialize compiler with the model and target locations.

        Args:
            model: Identity model to compile
            locations: Where fragments live (used for include paths)
        """
        self.model = model
        self.locations = locations

    def _ssh_identities(self) -> list[Identity]:
        return [i for i in self.model.identities.values() if i.ssh_key and i.hosts]

    def ssh_warnings(self) -> list[ValidationWarning]:
        """Warnings for identities left out of the SSH config."""
        warnings = []
        for identity in self.model.identities.values():
            if identity.ssh_key and identity.hosts:
                continue
            missing = "SSH key" if not identity.ssh_key else "hosts"
            warnings.append(
                ValidationWarning(
                    WarningKind.SSH_SKIPPED,
                    f"Identity '{identity.label}' has no {missing}; skipped in SSH config",
                ),
            )
        return warnings

    def compile_ssh_block(self) -> str:
        """Generate SSH host stanzas for every identity with a key and hosts.

        Returns:
            Stanzas separated by blank lines, or an empty string
        """
        stanzas = []
        for identity in self._ssh_identities():
            body = [
                ("User", "git"),
                ("IdentityFile", identity.ssh_key),
                ("IdentitiesOnly", "yes"),
            ]
            for hostname in identity.hosts:
                entries = [("HostName", hostname), *body]
                if self.model.is_default(identity.label):
                    stanzas.append(_stanza(f"Host {hostname}", entries))
                stanzas.append(_stanza(f"Host {identity.alias_for(hostname)}", entries))
        return "\n".join(stanzas)

    def detect_ssh_host_conflicts(self, ssh_config: str) -> list[ValidationWarning]:
        """Find user-owned ``Host`` lines naming a configured hostname.

        Only the content outside the managed block is inspected and it is
        never modified. Glob patterns are not expanded.

        Args:
            ssh_config: Current content of the SSH config file

        Returns:
            One warning per (line, hostname) match
        """
        configured = set(self.model.all_hosts())
        if not configured:
            return []

        warnings = []
        for line in strip_managed_block(ssh_config).splitlines():
            match = _HOST_DECLARATION_RE.match(line)
            if not match:
                continue
            tokens = [
                token for token in match.group("patterns").split()
                if not any(char in token for char in _GLOB_CHARS)
            ]
            for hostname in dict.fromkeys(tokens):
                if hostname in configured:
                    warnings.append(
                        ValidationWarning(
                            WarningKind.HOST_SHADOW,
                            f"Existing SSH host '{hostname}' found outside the identmux "
                            "managed block; it may conflict with identity routing",
                        ),
                    )
        return warnings

    def compile_identity_gitconfig(self, identity: Identity) -> str:
        """Generate the per-identity git fragment.

        Args:
            identity: Identity to compile

        Returns:
            Fragment text, or an empty string when there is nothing to write
        """
        stanzas = []
        if identity.has_git_user:
            stanzas.append(_user_stanza(identity))

        if not self.model.is_default(identity.label):
            for hostname in identity.hosts:
                stanzas.append(
                    _stanza(
                        f'[url "git@{identity.alias_for(hostname)}:"]',
                        [
                            ("insteadOf", f"git@{hostname}:"),
                            ("insteadOf", f"https://{hostname}/"),
                        ],
                        separator=" = ",
                    ),
                )
        return "\n".join(stanzas)

    def compile_identity_gitconfigs(self) -> dict[Path, str]:
        """Generate every non-empty per-identity git fragment keyed by path."""
        fragments = {}
        for identity in self.model.identities.values():
            content = self.compile_identity_gitconfig(identity)
            if content:
                fragments[self.locations.identity_gitconfig(identity.label)] = content
        return fragments

    def compile_git_block(self) -> str:
        """Generate the managed block for the shared gitconfig.

        Returns:
            Default ``[user]`` stanza followed by one ``includeIf`` per
            (identity, path) pair, shallowest path first, or an empty string
        """
        sections = []
        default = self.model.default_identity
        if default is not None and default.has_git_user:
            sections.append(_user_stanza(default) + "\n")

        includes = []
        for identity in self.model.identities.values():
            fragment = self.locations.identity_gitconfig(identity.label)
            for pattern in identity.paths:
                gitdir = self.locations.expand(pattern)
                if not gitdir.endswith("/"):
                    gitdir += "/"
                includes.append((gitdir, fragment))

        # Git applies every matching include in order; deeper paths go last.
        includes.sort(key=lambda item: len(Path(item[0]).parts))
        for gitdir, fragment in includes:
            sections.append(
                _stanza(
                    f'[includeIf "gitdir:{gitdir}"]',
                    [("path", str(fragment))],
                    separator=" = ",
                ),
            )
        if not sections:
            return ""
        return "".join(sections).rstrip("\n") + "\n"


class ConfigInjector:
    """Writes compiled fragments and keys into the user's environment."""

    def __init__(
        self,
        locations: Locations,
        dry_run: bool = False,
        key_generator: KeyGenerator | None = None,
    ) -> None:
        """Initialize injector.

        Args:
            locations: Target file locations
            dry_run: Render previews instead of touching the filesystem
            key_generator: SSH key generator, defaults to ssh-keygen
        """
        self.locations = locations
        self.dry_run = dry_run
        self.key_generator = key_generator or KeyGenerator()

    def missing_keys(self, model: IdentityModel) -> list[tuple[Identity, Path]]:
        """Identities whose configured key file does not exist yet."""
        missing = []
        for identity in model.identities.values():
            if not identity.ssh_key:
                continue
            key_path = Path(self.locations.expand(identity.ssh_key))
            if not key_path.exists():
                missing.append((identity, key_path))
        return missing

    def planned_files(self, model: IdentityModel) -> list[Path]:
        """Files an apply run may modify."""
        files = [self.locations.config_file, self.locations.ssh_config, self.locations.gitconfig]
        files.extend(self.locations.identity_gitconfig(label) for label in model.labels)
        return files

    def apply(self, model: IdentityModel) -> ApplyReport:
        """Apply the model: keys, config file, SSH config, git config.

        Each target is handled on its own; a failure is recorded in the
        report and the remaining targets are still processed.
        """
        report = ApplyReport()
        compiler = ConfigCompiler(model, self.locations)

        self._generate_keys(model, report)
        self._run_step(report, str(self.locations.config_file), self._save_config, model, report)
        self._run_step(report, str(self.locations.ssh_config), self._apply_ssh, compiler, report)
        self._run_step(report, str(self.locations.gitconfig), self._apply_git, compiler, report)
        return report

    def _run_step(
        self,
        report: ApplyReport,
        target: str,
        step: Callable[..., None],
        *args: object,
    ) -> None:
        try:
            step(*args)
        except (IdentmuxError, OSError, UnicodeError) as e:
            report.errors[target] = e

    def _generate_keys(self, model: IdentityModel, report: ApplyReport) -> None:
        for identity, key_path in self.missing_keys(model):
            comment = identity.email or f"identmux-{identity.label}"
            if self.dry_run:
                report.previews[str(key_path)] = (
                    f'ssh-keygen -t ed25519 -C "{comment}" -f "{key_path}" -N ""'
                )
                continue
            try:
                result = self.key_generator.generate(key_path, comment)
            except (IdentmuxError, OSError, UnicodeError) as e:
                report.errors[str(key_path)] = e
                continue
            report.keys.append(result)
            if not result.created:
                report.warnings.append(
                    ValidationWarning(
                        WarningKind.KEY_EXISTS,
                        f"SSH key already exists: {key_path}",
                    ),
                )

    def _save_config(self, model: IdentityModel, report: ApplyReport) -> None:
        content = serialize_config(model)
        if self.dry_run:
            report.previews[str(self.locations.config_file)] = content
            return
        atomic_write_text(self.locations.config_file, content)
        report.written.append(self.locations.config_file)

    def _apply_ssh(self, compiler: ConfigCompiler, report: ApplyReport) -> None:
        report.warnings.extend(compiler.ssh_warnings())
        block = compiler.compile_ssh_block()
        if not block:
            report.warnings.append(
                ValidationWarning(
                    WarningKind.EMPTY_BLOCK,
                    "No SSH config entries to write (no keys or hosts defined)",
                ),
            )
            return

        ssh_config = self.locations.ssh_config
        if ssh_config.exists():
            existing = read_user_text(ssh_config)
            report.warnings.extend(compiler.detect_ssh_host_conflicts(existing))

        if self.dry_run:
            report.previews[str(ssh_config)] = merge_block_text(None, block)
            return

        self.locations.ssh_dir.mkdir(mode=SSH_DIR_MODE, parents=True, exist_ok=True)
        self.locations.ssh_dir.chmod(SSH_DIR_MODE)
        merge_managed_block(ssh_config, block, mode=SSH_CONFIG_MODE)
        report.written.append(ssh_config)

    def _apply_git(self, compiler: ConfigCompiler, report: ApplyReport) -> None:
        for path, content in compiler.compile_identity_gitconfigs().items():
            if self.dry_run:
                report.previews[str(path)] = content
                continue
            self._run_step(report, str(path), self._write_fragment, path, content, report)

        block = compiler.compile_git_block()
        if not block:
            report.warnings.append(
                ValidationWarning(
                    WarningKind.EMPTY_BLOCK,
                    "No Git config entries to write (no name/email/paths defined)",
                ),
            )
            return

        gitconfig = self.locations.gitconfig
        if self.dry_run:
            report.previews[str(gitconfig)] = merge_block_text(None, block)
            return

        merge_managed_block(gitconfig, block)
        report.written.append(gitconfig)

    def _write_fragment(self, path: Path, content: str, report: ApplyReport) -> None:
        atomic_write_text(path, content)
        report.written.append(path)
