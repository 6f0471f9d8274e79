"""identmux: map project directories to Git and SSH identities."""

__version__ = "0.1.0"
__author__ = "identmux Contributors"
__description__ = "Map project directories to Git and SSH identities"

from .compiler import ConfigCompiler, ConfigInjector
from .models import Identity, IdentityModel, Locations
from .parser import parse_config, serialize_config
from .store import IdentityStore

__all__ = [
    "ConfigCompiler",
    "ConfigInjector",
    "Identity",
    "IdentityModel",
    "IdentityStore",
    "Locations",
    "parse_config",
    "serialize_config",
]
