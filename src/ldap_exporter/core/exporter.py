"""Scrape orchestration: run every metrics source and track failures."""

import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass, field, replace

from ldap_exporter.core.errors import DirectoryError, ScrapeError
from ldap_exporter.core.logs import get_logger
from ldap_exporter.core.metrics import NAMESPACE
from ldap_exporter.core.models import (
    ExporterStats,
    MetricDescriptor,
    MetricKind,
    MetricSample,
)
from ldap_exporter.core.ports import DirectoryClient
from ldap_exporter.core.source import MetricsSource

logger = get_logger(__name__)

_SUBSYSTEM = f"{NAMESPACE}_exporter"

LAST_SCRAPE_DURATION = MetricDescriptor(
    name=f"{_SUBSYSTEM}_last_scrape_duration_seconds",
    help="Duration of the last scrape of metrics from LDAP.",
    kind=MetricKind.GAUGE,
)
LAST_SCRAPE_ERROR = MetricDescriptor(
    name=f"{_SUBSYSTEM}_last_scrape_error",
    help=(
        "Count of individual LDAP queries in the last scrape that failed. "
        "Zero is success, anything else is failures."
    ),
    kind=MetricKind.GAUGE,
)
SCRAPES_TOTAL = MetricDescriptor(
    name=f"{_SUBSYSTEM}_scrapes_total",
    help="Total number of times LDAP was scraped for metrics.",
    kind=MetricKind.COUNTER,
)
ERRORS_TOTAL = MetricDescriptor(
    name=f"{_SUBSYSTEM}_errors_total",
    help="Total number of times the exporter experienced errors collecting LDAP metrics.",
    kind=MetricKind.COUNTER,
)

SELF_METRICS = (LAST_SCRAPE_DURATION, SCRAPES_TOTAL, ERRORS_TOTAL, LAST_SCRAPE_ERROR)


@dataclass(frozen=True)
class ScrapeResult:
    """Outcome of one scrape cycle.

    Attributes:
        samples: Samples from every source that succeeded.
        failures: Number of sources that failed.
        duration: Wall clock seconds spent.
    """

    samples: list[MetricSample] = field(default_factory=list)
    failures: int = 0
    duration: float = 0.0


class Exporter:
    """Runs every configured metrics source against one directory connection.

    Sources are searched one after another on the shared client; a failing
    source is logged and counted, and the remaining sources still run.
    Nothing is cached between scrapes.
    """

    def __init__(self, client: DirectoryClient, sources: Sequence[MetricsSource]) -> None:
        """Initialize the exporter.

        Args:
            client: Directory client implementing the DirectoryClient port.
            sources: Metrics sources, typically from load_config().
        """
        self._client = client
        self._sources = tuple(sources)
        self._stats = ExporterStats()
        self._stats_lock = threading.Lock()

    @property
    def sources(self) -> tuple[MetricsSource, ...]:
        return self._sources

    @property
    def stats(self) -> ExporterStats:
        """A snapshot of the self-metrics state."""
        with self._stats_lock:
            return replace(self._stats)

    def describe(self) -> list[MetricDescriptor]:
        """Return the descriptor of every configured metric attribute."""
        logger.debug("describing metrics")
        return [desc for source in self._sources for desc in source.describe()]

    def _scrape_source(self, source: MetricsSource) -> list[MetricSample]:
        entries = self._client.search(source.search)
        return source.extract(entries)

    def scrape(self) -> ScrapeResult:
        """Run one scrape cycle over every source."""
        with self._stats_lock:
            self._stats.scrapes_total += 1

        begin = time.perf_counter()
        samples: list[MetricSample] = []
        failures = 0
        try:
            for source in self._sources:
                try:
                    samples.extend(self._scrape_source(source))
                except (DirectoryError, ScrapeError) as exc:
                    logger.error(
                        "failed scraping for %s; Error was: %s",
                        source,
                        exc,
                        extra={"source": source.name},
                    )
                    failures += 1
        finally:
            duration = time.perf_counter() - begin
            with self._stats_lock:
                self._stats.last_scrape_duration = duration
                self._stats.last_scrape_errors = failures
                self._stats.errors_total += failures
        return ScrapeResult(samples=samples, failures=failures, duration=duration)

    def self_metrics(self) -> list[MetricSample]:
        """Samples describing the exporter's own scrape behavior."""
        stats = self.stats
        return [
            MetricSample(LAST_SCRAPE_DURATION, stats.last_scrape_duration),
            MetricSample(SCRAPES_TOTAL, float(stats.scrapes_total)),
            MetricSample(ERRORS_TOTAL, float(stats.errors_total)),
            MetricSample(LAST_SCRAPE_ERROR, float(stats.last_scrape_errors)),
        ]

    def collect(self) -> list[MetricSample]:
        """Scrape every source and append the self-metrics."""
        logger.debug("collecting metrics")
        result = self.scrape()
        return [*result.samples, *self.self_metrics()]
