"""Reader and writer for the identmux config file.

The config is a small, fixed subset of YAML::

    version: 1
    default: personal

    identities:
      personal:
        name: "Jane Doe"
        email: "jane@example.com"
        ssh_key: "~/.ssh/id_ed25519_personal"
        hosts:
          - "github.com"
        paths:
          - "~/oss"

Only this schema is understood. The parser is a state machine over the
indentation depth and the current context (no identity, an identity, or
one of its lists); anything outside the schema is skipped.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from pydantic import ValidationError

from .exceptions import ConfigError
from .models import (
    Identity,
    IdentityModel,
    ParseResult,
    ValidationWarning,
    WarningKind,
)

CONFIG_VERSION = 1

SCALAR_FIELDS = ("name", "email", "ssh_key")
LIST_FIELDS = ("hosts", "paths")

_TOP_LEVEL_RE = re.compile(r"^(?P<key>version|default):\s*(?P<value>.*)$")
_LABEL_RE = re.compile(r"^(?P<label>[A-Za-z0-9_-]+):$")
_SCALAR_RE = re.compile(r"^(?P<key>name|email|ssh_key):\s*(?P<value>.*)$")
_LIST_RE = re.compile(r"^(?P<key>hosts|paths):$")
_ITEM_RE = re.compile(r"^-\s+(?P<value>.+)$")


def unquote(value: str) -> str:
    """Trim a value and drop one pair of surrounding quotes."""
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    return value


@dataclass
class _Draft:
    """Fields collected for one identity before validation."""

    label: str
    line: int
    scalars: dict[str, str] = field(default_factory=dict)
    lists: dict[str, list[str]] = field(
        default_factory=lambda: {key: [] for key in LIST_FIELDS},
    )


class _ParserState:
    """Cursor of the indentation state machine."""

    def __init__(self) -> None:
        self.default = ""
        self.drafts: dict[str, _Draft] = {}
        self.identity: _Draft | None = None
        self.list_key: str | None = None

    def reset(self) -> None:
        self.identity = None
        self.list_key = None

    def open_identity(self, label: str, line: int) -> None:
        # A repeated label continues the earlier identity.
        self.identity = self.drafts.setdefault(label, _Draft(label=label, line=line))
        self.list_key = None


def _indent_of(line: str, lineno: int) -> int:
    stripped = line.lstrip(" \t")
    leading = line[: len(line) - len(stripped)]
    if "\t" in leading:
        msg = f"Tab indentation is not supported (line {lineno})"
        raise ConfigError(msg, details={"line": lineno})
    return len(leading)


def parse_config(text: str) -> ParseResult:
    """Decode config text into an identity model.

    Args:
        text: Config file content

    Returns:
        The parsed model and any non-fatal warnings

    Raises:
        ConfigError: If the text defines no identities, uses tab
            indentation, or carries an invalid identity
    """
    state = _ParserState()

    for lineno, raw_line in enumerate(text.splitlines(), start=1):
        trimmed = raw_line.strip()
        if not trimmed or trimmed.startswith("#"):
            continue

        indent = _indent_of(raw_line, lineno)

        if indent == 0:
            state.reset()
            match = _TOP_LEVEL_RE.match(trimmed)
            if match and match.group("key") == "default":
                state.default = unquote(match.group("value"))
            continue

        if indent == 2:
            match = _LABEL_RE.match(trimmed)
            if match:
                state.open_identity(match.group("label"), lineno)
            continue

        if indent == 4:
            if state.identity is None:
                continue
            state.list_key = None
            match = _SCALAR_RE.match(trimmed)
            if match:
                state.identity.scalars[match.group("key")] = unquote(match.group("value"))
                continue
            match = _LIST_RE.match(trimmed)
            if match:
                state.list_key = match.group("key")
            continue

        if indent >= 6 and state.identity is not None and state.list_key:
            match = _ITEM_RE.match(trimmed)
            if match:
                item = unquote(match.group("value"))
                if item:
                    state.identity.lists[state.list_key].append(item)

    return _build_result(state)


def _build_result(state: _ParserState) -> ParseResult:
    if not state.drafts:
        msg = "No identities found in config"
        raise ConfigError(msg)

    model = IdentityModel()
    for draft in state.drafts.values():
        try:
            identity = Identity(label=draft.label, **draft.scalars, **draft.lists)
        except ValidationError as e:
            error = e.errors()[0]
            msg = f"Invalid identity '{draft.label}' (line {draft.line}): {error['msg']}"
            raise ConfigError(msg, details={"line": draft.line}) from e
        model.add_identity(identity)

    warnings: list[ValidationWarning] = []
    if state.default in model.identities:
        model.default = state.default
    else:
        model.default = model.labels[0]
        if state.default:
            reason = f"Default identity '{state.default}' is not defined"
        else:
            reason = "No default identity set"
        warnings.append(
            ValidationWarning(
                WarningKind.DEFAULT_FALLBACK,
                f"{reason}; using '{model.default}'",
            ),
        )

    return ParseResult(model=model, warnings=warnings)


def serialize_config(model: IdentityModel) -> str:
    """Encode an identity model in the config file format."""
    lines = [
        f"version: {CONFIG_VERSION}",
        f"default: {model.default_label}",
        "",
        "identities:",
    ]
    for identity in model.identities.values():
        lines.append(f"  {identity.label}:")
        for key in SCALAR_FIELDS:
            lines.append(f'    {key}: "{getattr(identity, key)}"')
        for key in LIST_FIELDS:
            lines.append(f"    {key}:")
            lines.extend(f'      - "{item}"' for item in getattr(identity, key))
        lines.append("")

    return "\n".join(lines) + "\n"
