"""In-memory directory adapter."""

from ldap_exporter.core.errors import DirectoryError
from ldap_exporter.core.models import DirectoryEntry, EntryAttribute, SearchRequest


def entry(dn: str, **attributes: str | list[str]) -> DirectoryEntry:
    """Build a DirectoryEntry from keyword arguments.

    Example:
        ```python
        entry("uid=alice,ou=people", cn="alice", loginCount="4")
        ```
    """
    return DirectoryEntry(
        dn=dn,
        attributes=tuple(
            EntryAttribute(
                name=name,
                values=(value,) if isinstance(value, str) else tuple(value),
            )
            for name, value in attributes.items()
        ),
    )


class InMemoryDirectory:
    """In-memory implementation of DirectoryClient.

    Answers searches from entries registered per base DN, regardless of
    filter and scope. Suitable for testing and examples.
    """

    def __init__(self) -> None:
        self._entries: dict[str, list[DirectoryEntry]] = {}
        self._failures: dict[str, str] = {}
        self.requests: list[SearchRequest] = []

    def add(self, base_dn: str, *entries: DirectoryEntry) -> None:
        """Register entries returned for searches rooted at base_dn."""
        self._entries.setdefault(base_dn, []).extend(entries)

    def fail(self, base_dn: str, message: str = "search failed") -> None:
        """Make searches rooted at base_dn raise DirectoryError."""
        self._failures[base_dn] = message

    def search(self, request: SearchRequest) -> list[DirectoryEntry]:
        """Return the entries registered for request.base_dn."""
        self.requests.append(request)
        if request.base_dn in self._failures:
            raise DirectoryError(self._failures[request.base_dn])
        return list(self._entries.get(request.base_dn, []))
