"""Bundled metric definitions for directory servers we can identify.

The vendor is read from the root DSE's ``vendorName`` attribute. Sources
returned here are ordinary MetricsSource objects and are merged with the
user's configuration.
"""

from importlib import resources

from ldap_exporter.core.config import load_config
from ldap_exporter.core.logs import get_logger
from ldap_exporter.core.models import (
    MATCH_ALL_FILTER,
    DerefPolicy,
    SearchRequest,
    SearchScope,
)
from ldap_exporter.core.ports import DirectoryClient
from ldap_exporter.core.source import MetricsSource

logger = get_logger(__name__)

VENDOR_QUERY = SearchRequest(
    base_dn="",
    filter=MATCH_ALL_FILTER,
    scope=SearchScope.BASE,
    deref=DerefPolicy.NEVER,
    attributes=("vendorName",),
)

# vendorName value -> bundled definition
KNOWN_VENDORS = {
    "389 Project": "389.yaml",
}


def load_bundled_config(name: str) -> list[MetricsSource]:
    """Load a definition shipped in ldap_exporter/vendors/definitions."""
    definition = resources.files(__package__) / "definitions" / name
    return load_config(definition.read_text(encoding="utf-8"))


def identify_vendor(client: DirectoryClient) -> str | None:
    """Return the root DSE's single vendorName value, or None if there is none.

    Raises:
        DirectoryError: If the root DSE cannot be searched.
    """
    logger.debug("attempting to identify the ldap vendor for the given service...")
    for entry in client.search(VENDOR_QUERY):
        for attribute in entry.attributes:
            if attribute.name.lower() == "vendorname" and len(attribute.values) == 1:
                return attribute.values[0]
    return None


def detect_vendor_sources(client: DirectoryClient) -> list[MetricsSource]:
    """Identify the directory vendor and load its bundled metrics, if any.

    Raises:
        DirectoryError: If the root DSE cannot be searched.
    """
    vendor = identify_vendor(client)
    definition = KNOWN_VENDORS.get(vendor or "")
    if definition is None:
        logger.warning(
            "Couldn't identify the LDAP vendor, no bundled metrics will be enabled",
            extra={"vendor": vendor or ""},
        )
        return []
    logger.info("Loading bundled metrics for LDAP vendor %s", vendor)
    return load_bundled_config(definition)
