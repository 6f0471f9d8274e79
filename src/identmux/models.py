"""Core data models for the identmux identity mapping."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, ValidationInfo, field_validator, model_validator

from .exceptions import ConfigError, IdentmuxError, RemoteUpdateError

LABEL_PATTERN = re.compile(r"^[a-z0-9_-]+$")

# The persisted config grammar has no way to carry quotes or line breaks
# (anything str.splitlines splits on) inside a value.
_QUOTE = '"'


def sanitize_label(raw: str) -> str:
    """Normalize user input into a valid identity label."""
    label = re.sub(r"[^a-z0-9_-]", "-", raw.strip().lower())
    if not label:
        msg = "Identity label cannot be empty"
        raise ConfigError(msg)
    return label


def expand_home(path: str, home: Path) -> str:
    """Expand a leading ``~`` against the given home directory."""
    if path == "~":
        return str(home)
    if path.startswith("~/"):
        return f"{home}/{path[2:]}"
    return path


def collapse_home(path: str, home: Path) -> str:
    """Inverse of :func:`expand_home` for paths below the home directory."""
    prefix = f"{home}/"
    if path == str(home):
        return "~"
    if path.startswith(prefix):
        return f"~/{path[len(prefix):]}"
    return path


def _check_value(value: str, field_name: str) -> str:
    value = value.strip()
    if _QUOTE in value or len(value.splitlines()) > 1:
        msg = f"{field_name} cannot contain double quotes or line breaks"
        raise ValueError(msg)
    return value


class WarningKind(str, Enum):
    """Categories of non-fatal conditions reported during a run."""

    DEFAULT_FALLBACK = "default_fallback"
    HOST_SHADOW = "host_shadow"
    SSH_SKIPPED = "ssh_skipped"
    EMPTY_BLOCK = "empty_block"
    KEY_EXISTS = "key_exists"
    SCHEMA = "schema"
    REPO_SKIPPED = "repo_skipped"


@dataclass(frozen=True)
class ValidationWarning:
    """A non-fatal condition; reported, never raised."""

    kind: WarningKind
    message: str

    def __str__(self) -> str:
        return self.message


class Identity(BaseModel):
    """A single persona mapped to hosts and filesystem paths."""

    label: str = Field(..., description="Unique short identifier")
    name: str = Field(default="", description="Display name for git commits")
    email: str = Field(default="", description="Email for git commits")
    ssh_key: str = Field(default="", description="Path to the private SSH key")
    hosts: list[str] = Field(
        default_factory=list,
        description="Bare hostnames served by this identity",
    )
    paths: list[str] = Field(
        default_factory=list,
        description="Directories under which this identity applies",
    )

    @field_validator("label")
    @classmethod
    def validate_label(cls, v: str) -> str:
        """Validate label is a lowercase token."""
        if not LABEL_PATTERN.match(v):
            msg = "Identity label must contain only a-z, 0-9, '-' and '_'"
            raise ValueError(msg)
        return v

    @field_validator("name", "email", "ssh_key")
    @classmethod
    def validate_scalar(cls, v: str, info: ValidationInfo) -> str:
        """Reject values the config file cannot represent."""
        return _check_value(v, info.field_name)

    @field_validator("hosts")
    @classmethod
    def validate_hosts(cls, v: list[str]) -> list[str]:
        """Strip, validate and de-duplicate hostnames keeping first occurrence."""
        hosts = [_check_value(h, "host") for h in v]
        for host in hosts:
            if not host or any(c.isspace() for c in host):
                msg = f"Invalid hostname: {host!r}"
                raise ValueError(msg)
        return list(dict.fromkeys(hosts))

    @field_validator("paths")
    @classmethod
    def validate_paths(cls, v: list[str]) -> list[str]:
        """Strip and validate path patterns."""
        paths = [_check_value(p, "path") for p in v]
        if any(not p for p in paths):
            msg = "Paths cannot be empty"
            raise ValueError(msg)
        return paths

    @property
    def has_git_user(self) -> bool:
        return bool(self.name or self.email)

    def alias_for(self, hostname: str) -> str:
        """SSH host alias used by this identity for ``hostname``."""
        return f"{hostname}-{self.label}"


class IdentityModel(BaseModel):
    """The full identity mapping: ordered identities plus a default."""

    identities: dict[str, Identity] = Field(
        default_factory=dict,
        description="Identities keyed by label, in insertion order",
    )
    default: str = Field(
        default="",
        description="Label of the default identity (empty means first)",
    )

    @model_validator(mode="after")
    def check_keys(self) -> IdentityModel:
        """Ensure mapping keys agree with identity labels."""
        for key, identity in self.identities.items():
            if key != identity.label:
                msg = f"Identity key '{key}' does not match label '{identity.label}'"
                raise ValueError(msg)
        return self

    @property
    def labels(self) -> list[str]:
        return list(self.identities)

    @property
    def default_label(self) -> str:
        """Resolved default label, falling back to the first identity."""
        if self.default in self.identities:
            return self.default
        return next(iter(self.identities), "")

    @property
    def default_identity(self) -> Identity | None:
        label = self.default_label
        return self.identities.get(label) if label else None

    def is_default(self, label: str) -> bool:
        return bool(label) and label == self.default_label

    def get(self, label: str) -> Identity:
        """Look up an identity by label.

        Raises:
            ConfigError: If no identity has that label
        """
        try:
            return self.identities[label]
        except KeyError as e:
            msg = f"Unknown identity: {label}"
            raise ConfigError(msg) from e

    def add_identity(self, identity: Identity) -> None:
        """Append an identity; labels must stay unique."""
        if identity.label in self.identities:
            msg = f"Identity '{identity.label}' already exists"
            raise ConfigError(msg)
        self.identities[identity.label] = identity

    def remove_identity(self, label: str) -> Identity:
        identity = self.get(label)
        del self.identities[label]
        if self.default == label:
            self.default = ""
        return identity

    def set_default(self, label: str) -> None:
        self.get(label)
        self.default = label

    def all_hosts(self) -> list[str]:
        """Every configured hostname across identities, first occurrence order."""
        hosts: dict[str, None] = {}
        for identity in self.identities.values():
            for host in identity.hosts:
                hosts.setdefault(host)
        return list(hosts)

    def owner_of(self, directory: Path, home: Path) -> Identity | None:
        """Identity whose path most specifically contains ``directory``.

        The deepest matching path wins, as it does for the ``includeIf``
        stanzas of the shared gitconfig. Equal depths go to the first
        identity in model order.
        """
        target = Path(directory)
        owner = None
        depth = -1
        for identity in self.identities.values():
            for pattern in identity.paths:
                base = Path(expand_home(pattern, home))
                if (target == base or base in target.parents) and len(base.parts) > depth:
                    owner = identity
                    depth = len(base.parts)
        return owner


class Locations(BaseModel):
    """Filesystem locations identmux reads from and writes to."""

    home: Path = Field(..., description="Home directory all defaults derive from")
    config_path: Path | None = Field(
        default=None,
        description="Explicit config file (defaults to config_dir/config.yaml)",
    )

    @classmethod
    def from_environment(
        cls,
        home: Path | None = None,
        config_path: Path | None = None,
    ) -> Locations:
        """Build locations from arguments, ``IDENTMUX_HOME`` or the user home."""
        if home is None:
            env_home = os.environ.get("IDENTMUX_HOME")
            home = Path(env_home) if env_home else Path.home()
        return cls(home=home, config_path=config_path)

    @property
    def config_dir(self) -> Path:
        return self.home / ".config" / "identmux"

    @property
    def config_file(self) -> Path:
        return self.config_path or self.config_dir / "config.yaml"

    @property
    def ssh_dir(self) -> Path:
        return self.home / ".ssh"

    @property
    def ssh_config(self) -> Path:
        return self.ssh_dir / "config"

    @property
    def gitconfig(self) -> Path:
        return self.home / ".gitconfig"

    def identity_gitconfig(self, label: str) -> Path:
        """Per-identity git fragment included from the shared gitconfig."""
        return self.config_dir / f"gitconfig-{label}"

    def expand(self, path: str) -> str:
        return expand_home(path, self.home)


@dataclass
class ParseResult:
    """Outcome of loading a config: the model plus non-fatal warnings."""

    model: IdentityModel
    warnings: list[ValidationWarning] = field(default_factory=list)


@dataclass(frozen=True)
class RemoteChange:
    """A proposed remote URL rewrite for one repository remote."""

    repo: Path
    remote: str
    old_url: str
    new_url: str
    label: str


@dataclass
class RemoteUpdateReport:
    """Outcome of applying a batch of remote changes."""

    updated: list[RemoteChange] = field(default_factory=list)
    failures: list[RemoteUpdateError] = field(default_factory=list)

    @property
    def failed_count(self) -> int:
        return len(self.failures)


@dataclass
class KeyResult:
    """Outcome of one key generation request."""

    path: Path
    created: bool
    public_key: str = ""


@dataclass
class ApplyReport:
    """Files written (or previewed) and problems met while applying a config."""

    written: list[Path] = field(default_factory=list)
    previews: dict[str, str] = field(default_factory=dict)
    keys: list[KeyResult] = field(default_factory=list)
    warnings: list[ValidationWarning] = field(default_factory=list)
    errors: dict[str, IdentmuxError | OSError | UnicodeError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors
