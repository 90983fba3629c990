"""Example exporter serving a fake directory, no LDAP server required.

Run with:
    uvicorn examples.in_memory_example:app --reload

Endpoints:
    /          - Landing page
    /metrics   - Prometheus text format

Every pull bumps alice's login count, so the counter moves between scrapes.
"""

from ldap_exporter.adapters.directory import InMemoryDirectory, entry
from ldap_exporter.adapters.frameworks.asgi import create_asgi_app
from ldap_exporter.adapters.logging import configure_logging
from ldap_exporter.adapters.prometheus import build_registry
from ldap_exporter.core.config import load_config
from ldap_exporter.core.exporter import Exporter
from ldap_exporter.core.models import DirectoryEntry, SearchRequest

CONFIG = """
- name: users
  search: ou=people,dc=example,dc=com
  scope: single
  labels:
    env: example
  attributes:
    labels:
      uid: user
    metrics:
      loginCount:
        type: counter
        metric_name: logins
        help: Successful logins per user.
      memberOf:
        type: gauge
        metric_name: user_groups
        help: Number of groups the user belongs to.
        translator: |
          - value: {{ values | length }}
"""


class TickingDirectory(InMemoryDirectory):
    """In-memory directory whose login counts grow on every search."""

    def __init__(self) -> None:
        super().__init__()
        self.logins = 0

    def search(self, request: SearchRequest) -> list[DirectoryEntry]:
        self.logins += 1
        self._entries["ou=people,dc=example,dc=com"] = [
            entry(
                "uid=alice,ou=people,dc=example,dc=com",
                uid="alice",
                loginCount=str(self.logins),
                memberOf=["cn=admins", "cn=staff"],
            ),
            entry(
                "uid=bob,ou=people,dc=example,dc=com",
                uid="bob",
                loginCount="1",
                memberOf=["cn=staff"],
            ),
        ]
        return super().search(request)


configure_logging("INFO")
exporter = Exporter(TickingDirectory(), load_config(CONFIG))
app = create_asgi_app(build_registry(exporter))
