"""Counter and gauge attributes: turn one LDAP attribute into metric samples."""

import re
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import ClassVar

from ldap_exporter.core.errors import (
    AttributeParseError,
    TemplateRenderError,
    TranslationError,
)
from ldap_exporter.core.models import (
    EntryAttribute,
    MetricDescriptor,
    MetricKind,
    MetricSample,
)
from ldap_exporter.core.templates import Translator

NAMESPACE = "ldap"

_UINT64_MAX = 2**64 - 1
_UNSIGNED_RE = re.compile(r"[0-9]+")


def build_ordered_labels(
    label_names: Sequence[str], *label_sources: Mapping[str, str]
) -> tuple[str, ...]:
    """Resolve each label name from the first source that defines it.

    Args:
        label_names: Labels to resolve, in descriptor order.
        *label_sources: Mappings searched in priority order.

    Returns:
        Label values in the same order as label_names.

    Raises:
        ValueError: If a label is not defined by any source.
    """
    values: list[str] = []
    for label_name in label_names:
        for source in label_sources:
            if label_name in source:
                values.append(source[label_name])
                break
        else:
            raise ValueError(
                f"label {label_name} wasn't found in label sources "
                f"{[dict(s) for s in label_sources]}"
            )
    return tuple(values)


@dataclass(frozen=True)
class MetricAttribute(ABC):
    """Exports one directory attribute as one metric.

    Exactly two variants exist, CounterAttribute and GaugeAttribute; use
    create_metric_attribute() to build one from a MetricKind.

    Attributes:
        descriptor: The metric's name, help and labels.
        translator: Optional template that expands raw values into
            (value, labels) results.
    """

    kind: ClassVar[MetricKind]

    descriptor: MetricDescriptor
    translator: Translator | None = None

    @abstractmethod
    def parse_value(self, raw: str) -> float:
        """Parse a single raw attribute value."""

    def describe(self) -> MetricDescriptor:
        return self.descriptor

    def parse(
        self, labels: Mapping[str, str], attribute: EntryAttribute
    ) -> list[MetricSample]:
        """Convert one attribute's values into samples.

        Args:
            labels: Labels extracted from the entry the attribute belongs to.
            attribute: The attribute as returned by the server.

        Raises:
            AttributeParseError: On value count, parse, translation or
                label resolution failures.
        """
        try:
            if self.translator is None:
                return [self._parse_raw(labels, attribute)]
            return self._parse_translated(labels, attribute)
        except AttributeParseError:
            raise
        except (TemplateRenderError, TranslationError, ValueError) as exc:
            raise AttributeParseError(
                f"attribute {attribute.name} with values {list(attribute.values)}: {exc}"
            ) from exc

    def _parse_raw(
        self, labels: Mapping[str, str], attribute: EntryAttribute
    ) -> MetricSample:
        if len(attribute.values) != 1:
            raise AttributeParseError(
                f"Attribute {attribute.name} resulted in {len(attribute.values)} "
                "matches, but no translator was defined to convert this into "
                "labeled values"
            )
        value = self.parse_value(attribute.values[0])
        label_values = build_ordered_labels(self.descriptor.label_names, labels)
        return MetricSample(self.descriptor, value, label_values)

    def _parse_translated(
        self, labels: Mapping[str, str], attribute: EntryAttribute
    ) -> list[MetricSample]:
        assert self.translator is not None
        samples = []
        for result in self.translator.translate(attribute.values):
            # translation labels take priority over the entry's labels
            label_values = build_ordered_labels(
                self.descriptor.label_names, result.labels, labels
            )
            samples.append(MetricSample(self.descriptor, result.value, label_values))
        return samples


@dataclass(frozen=True)
class CounterAttribute(MetricAttribute):
    """Monotonic counter; raw values must be unsigned 64 bit integers."""

    kind: ClassVar[MetricKind] = MetricKind.COUNTER

    def parse_value(self, raw: str) -> float:
        if not _UNSIGNED_RE.fullmatch(raw) or int(raw) > _UINT64_MAX:
            raise ValueError(f"'{raw}' is not an unsigned integer")
        return float(int(raw))


@dataclass(frozen=True)
class GaugeAttribute(MetricAttribute):
    """Gauge; raw values are parsed as floats."""

    kind: ClassVar[MetricKind] = MetricKind.GAUGE

    def parse_value(self, raw: str) -> float:
        if raw != raw.strip() or "_" in raw:
            raise ValueError(f"'{raw}' is not a number")
        try:
            return float(raw)
        except ValueError:
            raise ValueError(f"'{raw}' is not a number") from None


_ATTRIBUTE_TYPES: dict[MetricKind, type[MetricAttribute]] = {
    MetricKind.COUNTER: CounterAttribute,
    MetricKind.GAUGE: GaugeAttribute,
}


def create_metric_attribute(
    kind: MetricKind,
    name: str,
    help: str,
    label_names: Sequence[str] = (),
    constant_labels: Mapping[str, str] | None = None,
    translator: Translator | None = None,
) -> MetricAttribute:
    """Build the attribute variant for ``kind``.

    Args:
        kind: Counter or gauge.
        name: Full metric name.
        help: Help text.
        label_names: Ordered variable label names.
        constant_labels: Fixed labels added to every sample.
        translator: Optional value translator.

    Returns:
        A CounterAttribute or GaugeAttribute.
    """
    descriptor = MetricDescriptor(
        name=name,
        help=help,
        kind=kind,
        label_names=tuple(label_names),
        constant_labels=dict(constant_labels or {}),
    )
    return _ATTRIBUTE_TYPES[kind](descriptor=descriptor, translator=translator)
