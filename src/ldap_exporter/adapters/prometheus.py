"""prometheus_client adapter for the scrape engine.

Exposes an Exporter as a custom collector: every registry pull runs one
scrape and converts the resulting samples into metric families.
"""

from collections.abc import Iterable, Iterator

from prometheus_client import CollectorRegistry
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, Metric
from prometheus_client.registry import Collector

from ldap_exporter.core.exporter import SELF_METRICS, Exporter
from ldap_exporter.core.models import MetricDescriptor, MetricKind, MetricSample


def _family(descriptor: MetricDescriptor) -> CounterMetricFamily | GaugeMetricFamily:
    labels = [*descriptor.label_names, *descriptor.constant_labels]
    if descriptor.kind is MetricKind.COUNTER:
        return CounterMetricFamily(descriptor.name, descriptor.help, labels=labels)
    return GaugeMetricFamily(descriptor.name, descriptor.help, labels=labels)


def samples_to_families(samples: Iterable[MetricSample]) -> list[Metric]:
    """Group samples into metric families by metric name, in first-seen order.

    Constant labels are appended after the variable labels of each sample.
    """
    families: dict[str, CounterMetricFamily | GaugeMetricFamily] = {}
    for sample in samples:
        descriptor = sample.descriptor
        family = families.get(descriptor.name)
        if family is None:
            family = families[descriptor.name] = _family(descriptor)
        family.add_metric(
            [*sample.label_values, *descriptor.constant_labels.values()],
            sample.value,
        )
    return list(families.values())


class LdapCollector(Collector):
    """Custom collector running an Exporter scrape on every collect()."""

    def __init__(self, exporter: Exporter) -> None:
        self._exporter = exporter

    def describe(self) -> Iterator[Metric]:
        seen: set[str] = set()
        for descriptor in [*self._exporter.describe(), *SELF_METRICS]:
            if descriptor.name in seen:
                continue
            seen.add(descriptor.name)
            yield _family(descriptor)

    def collect(self) -> Iterator[Metric]:
        yield from samples_to_families(self._exporter.collect())


def build_registry(exporter: Exporter) -> CollectorRegistry:
    """Return a fresh registry with only the exporter's collector registered."""
    registry = CollectorRegistry(auto_describe=True)
    registry.register(LdapCollector(exporter))
    return registry
