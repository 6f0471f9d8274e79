"""Shared fixtures for identmux tests."""

from pathlib import Path

import pytest

from identmux.models import Identity, IdentityModel, Locations


@pytest.fixture
def locations(tmp_path: Path) -> Locations:
    """Locations rooted in a temporary home directory."""
    return Locations(home=tmp_path)


@pytest.fixture
def sample_model() -> IdentityModel:
    """Personal (default) and work identities sharing github.com."""
    model = IdentityModel()
    model.add_identity(
        Identity(
            label="personal",
            name="Jane Doe",
            email="jane@example.com",
            ssh_key="~/.ssh/id_ed25519_personal",
            hosts=["github.com"],
            paths=["~/oss"],
        ),
    )
    model.add_identity(
        Identity(
            label="work",
            name="Jane Doe",
            email="jane@corp.example",
            ssh_key="~/.ssh/id_ed25519_work",
            hosts=["github.com"],
            paths=["~/company"],
        ),
    )
    model.set_default("personal")
    return model
