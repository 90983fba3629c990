"""Runtime settings, built once at startup and passed to whoever needs them."""

import argparse
import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass


class SettingsError(ValueError):
    """The command line or environment is inconsistent."""


@dataclass(frozen=True)
class ExporterSettings:
    """Process settings.

    Attributes:
        ldap_uri: ldap://, ldaps:// or ldapi:// URI of the directory.
        tls_ca_file: CA bundle used to verify the server.
        tls_cert_file: Client certificate, requires tls_key_file.
        tls_key_file: Client key, requires tls_cert_file.
        tls_server_name: Expected server name, defaults to the URI host.
        tls_skip_verify: Disable certificate verification.
        bind_dn: DN to bind as; anonymous when empty.
        bind_password: Password for bind_dn.
        listen_address: host:port for the HTTP server.
        telemetry_path: Path the metrics are served under.
        metrics_config: YAML file with the metrics configuration.
        disable_vendor_metrics: Skip vendor detection.
        log_level: Logging level name.
    """

    ldap_uri: str
    tls_ca_file: str = ""
    tls_cert_file: str = ""
    tls_key_file: str = ""
    tls_server_name: str = ""
    tls_skip_verify: bool = False
    bind_dn: str = ""
    bind_password: str = ""
    listen_address: str = ":9095"
    telemetry_path: str = "/metrics"
    metrics_config: str = ""
    disable_vendor_metrics: bool = False
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if not self.ldap_uri:
            raise SettingsError("--ldap.uri is a required argument")
        if self.tls_cert_file and not self.tls_key_file:
            raise SettingsError(
                "passed --ldap.tls.cert-file but required --ldap.tls.key-file wasn't passed"
            )
        if self.tls_key_file and not self.tls_cert_file:
            raise SettingsError(
                "passed --ldap.tls.key-file but required --ldap.tls.cert-file wasn't passed"
            )
        if self.bind_dn and not self.bind_password:
            raise SettingsError("--ldap.bind given, but --ldap.password wasn't")
        if self.bind_password and not self.bind_dn:
            raise SettingsError("--ldap.password given, but --ldap.bind wasn't")
        if not self.telemetry_path.startswith("/"):
            raise SettingsError("--web.telemetry-path must start with '/'")

    @property
    def listen_host(self) -> str:
        host, _, _ = self.listen_address.rpartition(":")
        return host or "0.0.0.0"

    @property
    def listen_port(self) -> int:
        _, _, port = self.listen_address.rpartition(":")
        try:
            return int(port)
        except ValueError:
            raise SettingsError(
                f"--web.listen-address {self.listen_address!r} has no valid port"
            ) from None


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="ldap-exporter",
        description="Export LDAP directory attributes as Prometheus metrics",
    )

    web = parser.add_argument_group("Web Options")
    web.add_argument(
        "--web.listen-address",
        dest="listen_address",
        default=":9095",
        help="The host:port to listen on for HTTP requests (default: :9095)",
    )
    web.add_argument(
        "--web.telemetry-path",
        dest="telemetry_path",
        default="/metrics",
        help="Path under which to expose metrics (default: /metrics)",
    )

    ldap = parser.add_argument_group("LDAP Options")
    ldap.add_argument(
        "--ldap.uri",
        dest="ldap_uri",
        default="",
        help="URI to connect to. Can use ldap://, ldaps://, ldapi://",
    )
    ldap.add_argument(
        "--ldap.tls.ca-file",
        dest="tls_ca_file",
        default="",
        help="If TLS is used, the path to the CA to use",
    )
    ldap.add_argument(
        "--ldap.tls.cert-file",
        dest="tls_cert_file",
        default="",
        help="Client certificate; requires --ldap.tls.key-file",
    )
    ldap.add_argument(
        "--ldap.tls.key-file",
        dest="tls_key_file",
        default="",
        help="Client key; requires --ldap.tls.cert-file",
    )
    ldap.add_argument(
        "--ldap.tls.server-name",
        dest="tls_server_name",
        default="",
        help="Expect this name for TLS handshakes rather than the host in --ldap.uri",
    )
    ldap.add_argument(
        "--ldap.tls.skip-verify",
        dest="tls_skip_verify",
        action="store_true",
        help="Do not verify the server's certificate. Insecure",
    )
    ldap.add_argument("--ldap.bind", dest="bind_dn", default="", help="DN to bind as")
    ldap.add_argument(
        "--ldap.password",
        dest="bind_password",
        default=None,
        help="Bind password. Can be set via the LDAP_PASSWORD environment variable",
    )

    metrics = parser.add_argument_group("Metrics Options")
    metrics.add_argument(
        "--metrics.config",
        dest="metrics_config",
        default="",
        help="YAML file holding ldap -> metrics queries",
    )
    metrics.add_argument(
        "--metrics.disable-vendor-metrics",
        dest="disable_vendor_metrics",
        action="store_true",
        help="Do not identify the LDAP vendor and load its bundled metrics",
    )

    parser.add_argument(
        "--log.level",
        dest="log_level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    return parser


def settings_from_args(
    argv: Sequence[str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> ExporterSettings:
    """Build settings from command line arguments and the environment.

    Raises:
        SettingsError: If the combination of options is invalid.
    """
    environ = os.environ if environ is None else environ
    args = create_parser().parse_args(argv)
    password = args.bind_password
    if password is None:
        password = environ.get("LDAP_PASSWORD", "")
    return ExporterSettings(
        ldap_uri=args.ldap_uri,
        tls_ca_file=args.tls_ca_file,
        tls_cert_file=args.tls_cert_file,
        tls_key_file=args.tls_key_file,
        tls_server_name=args.tls_server_name,
        tls_skip_verify=args.tls_skip_verify,
        bind_dn=args.bind_dn,
        bind_password=password,
        listen_address=args.listen_address,
        telemetry_path=args.telemetry_path,
        metrics_config=args.metrics_config,
        disable_vendor_metrics=args.disable_vendor_metrics,
        log_level=args.log_level,
    )
