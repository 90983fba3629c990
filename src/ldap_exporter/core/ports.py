"""Port interfaces for directory access.

The engine depends only on this protocol, not on a concrete LDAP client.
Examples: InMemoryDirectory, Ldap3DirectoryClient.
"""

from typing import Protocol, runtime_checkable

from ldap_exporter.core.models import DirectoryEntry, SearchRequest


@runtime_checkable
class DirectoryClient(Protocol):
    """Port for directory search operations."""

    def search(self, request: SearchRequest) -> list[DirectoryEntry]:
        """Execute a search.

        Args:
            request: The search to run.

        Returns:
            Result entries in server order.

        Raises:
            DirectoryError: If the search could not be executed.
        """
        ...
