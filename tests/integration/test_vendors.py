"""Integration tests for vendor detection and bundled definitions."""

import logging

import pytest

from ldap_exporter.adapters.directory import InMemoryDirectory, entry
from ldap_exporter.core.config import DEFAULT_HELP
from ldap_exporter.core.errors import DirectoryError
from ldap_exporter.core.exporter import Exporter
from ldap_exporter.core.models import DirectoryEntry, EntryAttribute
from ldap_exporter.vendors import (
    VENDOR_QUERY,
    detect_vendor_sources,
    identify_vendor,
    load_bundled_config,
)


@pytest.fixture
def directory_389(directory: InMemoryDirectory) -> InMemoryDirectory:
    """Directory whose root DSE identifies as 389 Directory Server."""
    directory.add("", entry("", vendorName="389 Project"))
    return directory


class TestIdentifyVendor:
    """Tests for identify_vendor()."""

    @pytest.mark.adapters
    def test_queries_root_dse(self, directory_389: InMemoryDirectory) -> None:
        """The vendor is read from the root DSE with a base search."""
        assert identify_vendor(directory_389) == "389 Project"
        assert directory_389.requests == [VENDOR_QUERY]
        assert VENDOR_QUERY.base_dn == ""
        assert VENDOR_QUERY.attributes == ("vendorName",)

    @pytest.mark.adapters
    def test_attribute_name_case_is_ignored(self, directory: InMemoryDirectory) -> None:
        """Servers may return vendorname in lower case."""
        directory.add(
            "",
            DirectoryEntry("", (EntryAttribute("vendorname", ("389 Project",)),)),
        )
        assert identify_vendor(directory) == "389 Project"

    @pytest.mark.adapters
    def test_multi_valued_vendor_is_unidentified(self, directory: InMemoryDirectory) -> None:
        """Only a single vendorName value identifies a vendor."""
        directory.add("", entry("", vendorName=["a", "b"]))
        assert identify_vendor(directory) is None


class TestDetectVendorSources:
    """Tests for detect_vendor_sources()."""

    @pytest.mark.adapters
    def test_389_loads_bundled_sources(self, directory_389: InMemoryDirectory) -> None:
        """389 Directory Server gets its bundled sections."""
        sources = detect_vendor_sources(directory_389)
        assert [s.name for s in sources] == ["server", "snmp"]

    @pytest.mark.adapters
    def test_unknown_vendor_warns(
        self, directory: InMemoryDirectory, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Unknown vendors load nothing and log a warning."""
        directory.add("", entry("", vendorName="OpenLDAP"))

        with caplog.at_level(logging.WARNING, logger="ldap_exporter"):
            sources = detect_vendor_sources(directory)

        assert sources == []
        assert "Couldn't identify the LDAP vendor" in caplog.text

    @pytest.mark.adapters
    def test_search_failure_propagates(self, directory: InMemoryDirectory) -> None:
        """A failing root DSE search is an error for the caller."""
        directory.fail("", "Operations error")
        with pytest.raises(DirectoryError):
            detect_vendor_sources(directory)


class TestBundled389:
    """Tests for the bundled 389 definition."""

    @pytest.mark.adapters
    def test_every_metric_has_help(self) -> None:
        """Bundled metrics are documented."""
        for source in load_bundled_config("389.yaml"):
            for descriptor in source.describe():
                assert descriptor.help != DEFAULT_HELP, descriptor.name

    @pytest.mark.adapters
    def test_scrape_cn_monitor(self, directory: InMemoryDirectory) -> None:
        """The server section exports gauges, counters and the version info."""
        server = [s for s in load_bundled_config("389.yaml") if s.name == "server"]
        directory.add(
            "cn=monitor",
            entry(
                "cn=monitor",
                version="389-Directory/2.4.4 B2024.050.0000",
                threads="17",
                currentconnections="3",
                totalconnections="1200",
            ),
        )

        result = Exporter(directory, server).scrape()

        assert result.failures == 0
        values = {s.name: (s.labels, s.value) for s in result.samples}
        assert values["ldap_server_info"] == (
            {"version": "389-Directory/2.4.4 B2024.050.0000"},
            1.0,
        )
        assert values["ldap_server_threads"] == ({}, 17.0)
        assert values["ldap_server_currentconnections"] == ({}, 3.0)
        assert values["ldap_server_totalconnections_total"] == ({}, 1200.0)
