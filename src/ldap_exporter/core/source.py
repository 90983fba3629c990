"""A configured search together with its attribute to metric mappings."""

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field

from ldap_exporter.core.errors import (
    AttributeParseError,
    EntryRejectedError,
    UnexpectedAttributeError,
)
from ldap_exporter.core.metrics import MetricAttribute
from ldap_exporter.core.models import (
    DerefPolicy,
    DirectoryEntry,
    MetricDescriptor,
    MetricSample,
    SearchRequest,
    SearchScope,
)


@dataclass(frozen=True)
class MetricsSource:
    """One search plus the metrics and labels extracted from its results.

    Attribute names are matched case-insensitively, as LDAP servers may
    return attribute names in a different case than requested.

    Attributes:
        search: The search executed on every scrape.
        metric_attributes: Attribute name to metric exporter.
        label_attributes: Attribute name to output label name.
        name: Section name from the configuration.
    """

    search: SearchRequest
    metric_attributes: Mapping[str, MetricAttribute]
    label_attributes: Mapping[str, str] = field(default_factory=dict)
    name: str = ""
    _metrics_by_key: dict[str, MetricAttribute] = field(
        init=False, repr=False, compare=False
    )
    _labels_by_key: dict[str, str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "_metrics_by_key",
            {attr.lower(): m for attr, m in self.metric_attributes.items()},
        )
        object.__setattr__(
            self,
            "_labels_by_key",
            {attr.lower(): label for attr, label in self.label_attributes.items()},
        )

    def __str__(self) -> str:
        return f"search='{self.search.base_dn}', filter: '{self.search.filter}'"

    def describe(self) -> Iterator[MetricDescriptor]:
        """Yield the descriptor of every configured metric attribute."""
        for attribute in self.metric_attributes.values():
            yield attribute.describe()

    def extract(self, entries: Iterable[DirectoryEntry]) -> list[MetricSample]:
        """Turn search result entries into metric samples.

        Either every entry is converted or an error is raised; no samples
        are returned for a partially processed result.

        Raises:
            EntryRejectedError: An entry lacks a required label value.
            UnexpectedAttributeError: The server sent an unmapped attribute.
            AttributeParseError: An attribute failed to convert.
        """
        samples: list[MetricSample] = []
        for entry in entries:
            samples.extend(self._extract_entry(entry))
        return samples

    def _entry_labels(self, entry: DirectoryEntry) -> dict[str, str]:
        labels: dict[str, str] = {}
        for attribute in entry.attributes:
            label_name = self._labels_by_key.get(attribute.name.lower())
            if label_name is None:
                continue
            if len(attribute.values) != 1:
                raise EntryRejectedError(
                    f"while scraping {self}: attribute {attribute.name} of {entry.dn} "
                    f"is a label type but has {len(attribute.values)} values: "
                    f"{list(attribute.values)}"
                )
            labels[label_name] = attribute.values[0]
        if len(labels) != len(self.label_attributes):
            # a sample with fewer labels than declared would be rejected downstream
            raise EntryRejectedError(
                f"while scraping {self}: required label attributes weren't found "
                f"on {entry.dn}. Attribute->label name mapping was "
                f"{dict(self.label_attributes)}, only built {labels}"
            )
        return labels

    def _extract_entry(self, entry: DirectoryEntry) -> list[MetricSample]:
        labels = self._entry_labels(entry)
        samples: list[MetricSample] = []
        for attribute in entry.attributes:
            key = attribute.name.lower()
            metric = self._metrics_by_key.get(key)
            if metric is None:
                if key not in self._labels_by_key:
                    raise UnexpectedAttributeError(
                        f"while scraping {self}: server sent us an attribute we do "
                        f"not recognize ({attribute.name})"
                    )
                continue
            try:
                samples.extend(metric.parse(labels, attribute))
            except AttributeParseError as exc:
                raise AttributeParseError(f"while scraping {self}: {exc}") from exc
        return samples


def build_search_request(
    base_dn: str,
    filter: str,
    scope: SearchScope,
    deref: DerefPolicy,
    metric_attributes: Iterable[str],
    label_attributes: Iterable[str],
) -> SearchRequest:
    """Build the search for a source, requesting every mapped attribute once."""
    requested = list(dict.fromkeys([*metric_attributes, *label_attributes]))
    return SearchRequest(
        base_dn=base_dn,
        filter=filter,
        scope=scope,
        deref=deref,
        attributes=tuple(requested),
    )
