"""Expose LDAP directory attributes as Prometheus metrics."""

from ldap_exporter.core.config import load_config, load_config_file
from ldap_exporter.core.errors import (
    ConfigError,
    DirectoryError,
    LdapExporterError,
    ScrapeError,
)
from ldap_exporter.core.exporter import Exporter
from ldap_exporter.core.source import MetricsSource

__version__ = "0.1.0"

__all__ = [
    "ConfigError",
    "DirectoryError",
    "Exporter",
    "LdapExporterError",
    "MetricsSource",
    "ScrapeError",
    "load_config",
    "load_config_file",
]
