"""Core domain models for directory searches and metric samples."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum

MATCH_ALL_FILTER = "(objectClass=*)"


class SearchScope(Enum):
    """LDAP search scope.

    Values are the scope names understood by the ldap3 client library.
    """

    BASE = "BASE"
    SINGLE_LEVEL = "LEVEL"
    SUBTREE = "SUBTREE"


class DerefPolicy(Enum):
    """LDAP alias dereferencing policy (ldap3 naming)."""

    NEVER = "NEVER"
    SEARCH = "SEARCH"
    BASE = "FINDING_BASE"
    ALWAYS = "ALWAYS"


class MetricKind(Enum):
    """The two metric types an attribute can be exported as."""

    COUNTER = "counter"
    GAUGE = "gauge"


@dataclass(frozen=True)
class SearchRequest:
    """An immutable directory search.

    Attributes:
        base_dn: Distinguished name the search starts from.
        filter: LDAP filter expression.
        scope: How far below base_dn the search reaches.
        deref: Alias dereferencing policy.
        attributes: Attribute names requested from the server.
        size_limit: Maximum number of entries (0 is unlimited).
        time_limit: Server-side time limit in seconds (0 is unlimited).
    """

    base_dn: str
    filter: str = MATCH_ALL_FILTER
    scope: SearchScope = SearchScope.BASE
    deref: DerefPolicy = DerefPolicy.ALWAYS
    attributes: tuple[str, ...] = ()
    size_limit: int = 0
    time_limit: int = 0


@dataclass(frozen=True)
class EntryAttribute:
    """A named, possibly multi-valued attribute on a directory entry."""

    name: str
    values: tuple[str, ...] = ()


@dataclass(frozen=True)
class DirectoryEntry:
    """A single search result entry.

    Attributes:
        dn: Distinguished name of the entry.
        attributes: Attributes in the order the server returned them.
    """

    dn: str
    attributes: tuple[EntryAttribute, ...] = ()


@dataclass(frozen=True)
class MetricDescriptor:
    """Static description of an exported metric.

    Attributes:
        name: Full metric name, including the namespace prefix.
        help: Help text.
        kind: Counter or gauge.
        label_names: Ordered names of the variable labels.
        constant_labels: Labels with a fixed value on every sample.
    """

    name: str
    help: str
    kind: MetricKind
    label_names: tuple[str, ...] = ()
    constant_labels: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class MetricSample:
    """A single metric observation.

    Attributes:
        descriptor: The metric this sample belongs to.
        value: The metric value.
        label_values: Values for descriptor.label_names, in the same order.
    """

    descriptor: MetricDescriptor
    value: float
    label_values: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        expected = len(self.descriptor.label_names)
        if len(self.label_values) != expected:
            raise ValueError(
                f"metric {self.descriptor.name} expects {expected} label values, "
                f"got {len(self.label_values)}"
            )

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def labels(self) -> dict[str, str]:
        """Variable and constant labels merged into one mapping."""
        labels = dict(zip(self.descriptor.label_names, self.label_values))
        labels.update(self.descriptor.constant_labels)
        return labels


@dataclass(frozen=True)
class TranslationResult:
    """One (value, labels) pair produced by a translation template."""

    value: float
    labels: Mapping[str, str] = field(default_factory=dict)


@dataclass
class ExporterStats:
    """Self-observability state of the scrape engine.

    Attributes:
        last_scrape_duration: Seconds spent in the most recent scrape.
        last_scrape_errors: Failed sources in the most recent scrape.
        scrapes_total: Number of scrapes since start.
        errors_total: Failed sources across all scrapes since start.
    """

    last_scrape_duration: float = 0.0
    last_scrape_errors: int = 0
    scrapes_total: int = 0
    errors_total: int = 0
