"""Persistent identity store with schema verification."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import jsonschema
import yaml

from .exceptions import ConfigError
from .merger import atomic_write_text
from .models import (
    IdentityModel,
    Locations,
    ParseResult,
    ValidationWarning,
    WarningKind,
)
from .parser import LIST_FIELDS, SCALAR_FIELDS, parse_config, serialize_config

CONFIG_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "identmux config",
    "type": "object",
    "required": ["identities"],
    "additionalProperties": False,
    "properties": {
        "version": {"type": ["integer", "string"]},
        "default": {"type": ["string", "null"]},
        "identities": {
            "type": "object",
            "minProperties": 1,
            "propertyNames": {"pattern": "^[a-z0-9_-]+$"},
            "additionalProperties": {
                "type": "object",
                "additionalProperties": False,
                "properties": {
                    **{key: {"type": ["string", "null"]} for key in SCALAR_FIELDS},
                    **{
                        key: {"type": ["array", "null"], "items": {"type": "string"}}
                        for key in LIST_FIELDS
                    },
                },
            },
        },
    },
}


class IdentityStore:
    """Loads and saves the identity model at its configured location."""

    def __init__(self, locations: Locations) -> None:
        """Initialize store.

        Args:
            locations: Provides the config file path
        """
        self.locations = locations

    @property
    def path(self) -> Path:
        return self.locations.config_file

    def exists(self) -> bool:
        return self.path.is_file()

    def read_text(self) -> str:
        """Raw config text.

        Raises:
            ConfigError: If the file is missing or unreadable
        """
        if not self.exists():
            msg = f"No config found at {self.path}. Run 'identmux add' first."
            raise ConfigError(msg, details={"path": str(self.path)})
        try:
            return self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            msg = f"Failed to read config file: {e}"
            raise ConfigError(msg, details={"path": str(self.path)}) from e

    def load(self) -> ParseResult:
        """Parse the config file into an identity model."""
        return parse_config(self.read_text())

    def save(self, model: IdentityModel) -> None:
        """Persist the model, replacing the config file atomically."""
        try:
            atomic_write_text(self.path, serialize_config(model))
        except OSError as e:
            msg = f"Failed to write config file: {e}"
            raise ConfigError(msg, details={"path": str(self.path)}) from e

    def export(self) -> str:
        return self.read_text()

    def verify(self) -> list[ValidationWarning]:
        """Cross-check the config against a full YAML reading.

        The restricted parser skips lines it does not understand. This
        validates the document against :data:`CONFIG_SCHEMA` and reports
        identities and list entries that a YAML reader sees but identmux
        would drop.

        Raises:
            ConfigError: If the file cannot be read, is not YAML, or defines
                no identities
        """
        text = self.read_text()
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            msg = f"Failed to parse config YAML: {e}"
            raise ConfigError(msg, details={"path": str(self.path)}) from e

        warnings = []
        for error in jsonschema.Draft7Validator(CONFIG_SCHEMA).iter_errors(data):
            location = "/".join(str(part) for part in error.absolute_path) or "<root>"
            warnings.append(
                ValidationWarning(WarningKind.SCHEMA, f"Schema: {error.message} at {location}"),
            )

        model = parse_config(text).model
        if isinstance(data, dict) and isinstance(data.get("identities"), dict):
            warnings.extend(self._compare(data["identities"], model))
        return warnings

    def _compare(
        self,
        documented: dict[str, Any],
        model: IdentityModel,
    ) -> list[ValidationWarning]:
        warnings = []
        for label, fields in documented.items():
            label = str(label)
            if label not in model.identities:
                warnings.append(
                    ValidationWarning(
                        WarningKind.SCHEMA,
                        f"Identity '{label}' is ignored by identmux (check indentation)",
                    ),
                )
                continue
            if not isinstance(fields, dict):
                continue
            identity = model.identities[label]
            for key in LIST_FIELDS:
                items = fields.get(key) or []
                if not isinstance(items, list):
                    continue
                if key == "hosts":
                    items = list(dict.fromkeys(str(item) for item in items))
                parsed = getattr(identity, key)
                if len(items) != len(parsed):
                    warnings.append(
                        ValidationWarning(
                            WarningKind.SCHEMA,
                            f"Identity '{label}' lists {len(items)} {key} but identmux "
                            f"reads {len(parsed)} (check indentation and quoting)",
                        ),
                    )
        return warnings
