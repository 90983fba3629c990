"""Directory adapters implementing the DirectoryClient port."""

from ldap_exporter.adapters.directory.in_memory import InMemoryDirectory, entry
from ldap_exporter.adapters.directory.ldap_client import (
    Ldap3DirectoryClient,
    connect,
)

__all__ = [
    "InMemoryDirectory",
    "Ldap3DirectoryClient",
    "connect",
    "entry",
]
