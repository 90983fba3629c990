"""ldap3 adapter implementing the DirectoryClient port."""

import ssl
from urllib.parse import urlparse

from ldap3 import ANONYMOUS, NONE, SIMPLE, SYNC, Connection, Server, Tls
from ldap3.core.exceptions import LDAPException

from ldap_exporter.core.errors import DirectoryError
from ldap_exporter.core.logs import get_logger
from ldap_exporter.core.models import DirectoryEntry, EntryAttribute, SearchRequest
from ldap_exporter.settings import ExporterSettings

logger = get_logger(__name__)

_DEFAULT_PORTS = {"ldap": 389, "ldaps": 636}


def create_tls(settings: ExporterSettings) -> Tls:
    """Build the TLS configuration from the settings."""
    server_name = settings.tls_server_name or None
    return Tls(
        local_private_key_file=settings.tls_key_file or None,
        local_certificate_file=settings.tls_cert_file or None,
        validate=ssl.CERT_NONE if settings.tls_skip_verify else ssl.CERT_REQUIRED,
        ca_certs_file=settings.tls_ca_file or None,
        valid_names=[server_name] if server_name else None,
        sni=server_name,
    )


def create_server(settings: ExporterSettings) -> Server:
    """Build an ldap3 Server for an ldap://, ldaps:// or ldapi:// URI.

    Raises:
        DirectoryError: If the URI scheme is not supported.
    """
    uri = urlparse(settings.ldap_uri)
    if uri.scheme == "ldapi":
        return Server(settings.ldap_uri, get_info=NONE)
    if uri.scheme not in _DEFAULT_PORTS:
        raise DirectoryError(f"unsupported ldap scheme {uri.scheme!r}")
    if not uri.hostname:
        raise DirectoryError(f"no host in ldap uri {settings.ldap_uri!r}")
    use_ssl = uri.scheme == "ldaps"
    return Server(
        uri.hostname,
        port=uri.port or _DEFAULT_PORTS[uri.scheme],
        use_ssl=use_ssl,
        tls=create_tls(settings) if use_ssl else None,
        get_info=NONE,
    )


def connect(settings: ExporterSettings) -> Connection:
    """Open a connection and bind when a bind DN is configured.

    Raises:
        DirectoryError: If the connection or the bind fails.
    """
    server = create_server(settings)
    connection = Connection(
        server,
        user=settings.bind_dn or None,
        password=settings.bind_password or None,
        authentication=SIMPLE if settings.bind_dn else ANONYMOUS,
        client_strategy=SYNC,
        read_only=True,
        raise_exceptions=False,
    )
    try:
        connection.open()
        if settings.bind_dn:
            logger.debug("Executing bind")
            if not connection.bind():
                raise DirectoryError(
                    f"bind as {settings.bind_dn} failed: "
                    f"{connection.result.get('description')}"
                )
            logger.debug("Bound successfully")
        else:
            logger.debug("no bind given, thus skipping")
    except LDAPException as exc:
        raise DirectoryError(f"failed connecting to {settings.ldap_uri}: {exc}") from exc
    return connection


def _decode(value: bytes | str) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


class Ldap3DirectoryClient:
    """DirectoryClient backed by a synchronous ldap3 Connection.

    The connection is not safe for concurrent searches; callers serialize.
    """

    def __init__(self, connection: Connection) -> None:
        self._connection = connection

    def search(self, request: SearchRequest) -> list[DirectoryEntry]:
        """Run a search and convert the result entries.

        Raises:
            DirectoryError: On client errors or a non-success result code.
        """
        try:
            self._connection.search(
                search_base=request.base_dn,
                search_filter=request.filter,
                search_scope=request.scope.value,
                dereference_aliases=request.deref.value,
                attributes=list(request.attributes),
                size_limit=request.size_limit,
                time_limit=request.time_limit,
            )
        except LDAPException as exc:
            raise DirectoryError(f"search of {request.base_dn!r} failed: {exc}") from exc

        result = self._connection.result or {}
        if result.get("result", 0) != 0:
            raise DirectoryError(
                f"search of {request.base_dn!r} failed: "
                f"{result.get('description')} {result.get('message') or ''}".rstrip()
            )

        entries = []
        for item in self._connection.response or []:
            if item.get("type") != "searchResEntry":
                continue
            attributes = tuple(
                EntryAttribute(name=name, values=tuple(_decode(v) for v in values))
                for name, values in item.get("raw_attributes", {}).items()
                # ldap3 fills requested but absent attributes with empty lists
                if values
            )
            entries.append(DirectoryEntry(dn=item.get("dn", ""), attributes=attributes))
        return entries
