"""Command line entry point: connect, load metrics, serve them over HTTP.

Usage:
    ldap-exporter --ldap.uri ldap://localhost --metrics.config metrics.yaml
"""

import sys
from collections.abc import Sequence

import uvicorn

from ldap_exporter.adapters.directory import Ldap3DirectoryClient, connect
from ldap_exporter.adapters.frameworks.asgi import ASGIApp, create_asgi_app
from ldap_exporter.adapters.logging import configure_logging
from ldap_exporter.adapters.prometheus import build_registry
from ldap_exporter.core.config import check_metric_names, load_config_file
from ldap_exporter.core.errors import ConfigError, DirectoryError
from ldap_exporter.core.exporter import Exporter
from ldap_exporter.core.logs import get_logger
from ldap_exporter.core.ports import DirectoryClient
from ldap_exporter.core.source import MetricsSource
from ldap_exporter.settings import ExporterSettings, SettingsError, settings_from_args
from ldap_exporter.vendors import detect_vendor_sources

logger = get_logger(__name__)


def load_sources(
    settings: ExporterSettings, client: DirectoryClient
) -> list[MetricsSource]:
    """Collect configured sources followed by the vendor's bundled sources.

    Raises:
        ConfigError: If the configuration file is invalid, nothing is configured
            or two sources expose a metric under the same name.
        DirectoryError: If vendor detection cannot search the directory.
    """
    sources: list[MetricsSource] = []
    if settings.metrics_config:
        sources.extend(load_config_file(settings.metrics_config))
        logger.debug("loaded %d queries from configuration", len(sources))
    if not settings.disable_vendor_metrics:
        sources.extend(detect_vendor_sources(client))
    if not sources:
        raise ConfigError("no metrics were configured; nothing to export")
    check_metric_names(sources)
    return sources


def build_app(settings: ExporterSettings, client: DirectoryClient) -> ASGIApp:
    """Wire sources, exporter, registry and HTTP app together."""
    exporter = Exporter(client, load_sources(settings, client))
    return create_asgi_app(build_registry(exporter), settings.telemetry_path)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the exporter until interrupted. Returns the process exit code."""
    try:
        settings = settings_from_args(argv)
        configure_logging(settings.log_level)
        client = Ldap3DirectoryClient(connect(settings))
        app = build_app(settings, client)
        host, port = settings.listen_host, settings.listen_port
    except (SettingsError, ConfigError, DirectoryError, OSError) as exc:
        print(f"ldap-exporter: {exc}", file=sys.stderr)
        return 1

    logger.info(
        "starting server; telemetry accessible at %s%s",
        settings.listen_address,
        settings.telemetry_path,
    )
    uvicorn.run(app, host=host, port=port, log_level=settings.log_level.lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())
