"""Shared test fixtures for all test modules."""

import textwrap

import pytest

try:
    import httpx
except ImportError:
    httpx = None

from ldap_exporter.adapters.directory import InMemoryDirectory, entry
from ldap_exporter.core.config import load_config
from ldap_exporter.core.source import MetricsSource

USERS_CONFIG = """
- name: users
  search: ou=people,dc=example,dc=com
  scope: single
  labels:
    site: dc1
  attributes:
    labels:
      uid: user
    metrics:
      loginCount:
        type: counter
        help: Successful logins per user.
      quota:
        type: gauge
        help: Mailbox quota in bytes.
"""


@pytest.fixture
def directory() -> InMemoryDirectory:
    """Provide an empty in-memory directory."""
    return InMemoryDirectory()


@pytest.fixture
def load_yaml():
    """Factory fixture loading an indented YAML snippet into sources.

    Usage:
        def test_something(load_yaml):
            sources = load_yaml('''
                - name: x
                  search: dc=example
            ''')
    """

    def _load(text: str) -> list[MetricsSource]:
        return load_config(textwrap.dedent(text))

    return _load


@pytest.fixture
def users_config() -> str:
    """A single users section with a counter, a gauge and a constant label."""
    return USERS_CONFIG


@pytest.fixture
def users_sources(users_config: str) -> list[MetricsSource]:
    """Sources loaded from users_config."""
    return load_config(users_config)


@pytest.fixture
def users_directory(directory: InMemoryDirectory) -> InMemoryDirectory:
    """Directory holding two users under ou=people."""
    directory.add(
        "ou=people,dc=example,dc=com",
        entry(
            "uid=alice,ou=people,dc=example,dc=com",
            uid="alice",
            loginCount="4",
            quota="1.5e9",
        ),
        entry(
            "uid=bob,ou=people,dc=example,dc=com",
            uid="bob",
            loginCount="7",
            quota="2048",
        ),
    )
    return directory


# === ASGI Test Fixtures ===


@pytest.fixture
def asgi_test_client():
    """Factory fixture that creates an httpx.AsyncClient for ASGI testing.

    Usage:
        async def test_something(asgi_test_client):
            app = create_asgi_app(registry)
            async with asgi_test_client(app) as client:
                response = await client.get("/metrics")
    """
    if httpx is None:
        pytest.skip("httpx not installed")

    def _get_client(app):
        """Return an AsyncClient context manager for the given app."""
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        )

    return _get_client
