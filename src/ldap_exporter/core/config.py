"""Loading of the declarative metrics configuration.

A configuration document is a YAML list of sections. Each section names an
LDAP search and maps attributes of its result entries to metrics or labels::

    - name: users
      search: ou=people,dc=example,dc=com
      scope: single
      attributes:
        labels:
          cn: user
        metrics:
          loginCount:
            type: counter
            metric_name: logins
            help: Successful logins per user.

Loading happens in two phases. The document is first decoded into plain
Python values, then validated field by field with pydantic models that
reject unknown keys at every level. Every problem is reported with its
document path, and a single problem fails the whole document.
"""

import re
from collections.abc import Iterable
from pathlib import Path
from typing import Annotated, Any

import yaml
from ldap3.core.exceptions import LDAPException
from ldap3.operation.search import parse_filter
from ldap3.utils.dn import parse_dn
from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from ldap_exporter.core.errors import ConfigError, TemplateRenderError
from ldap_exporter.core.exporter import SELF_METRICS
from ldap_exporter.core.logs import get_logger
from ldap_exporter.core.metrics import (
    NAMESPACE,
    MetricAttribute,
    create_metric_attribute,
)
from ldap_exporter.core.models import (
    MATCH_ALL_FILTER,
    DerefPolicy,
    MetricDescriptor,
    MetricKind,
    SearchScope,
)
from ldap_exporter.core.source import MetricsSource, build_search_request
from ldap_exporter.core.templates import (
    DEFAULT_COUNTER_TEMPLATE,
    DEFAULT_GAUGE_TEMPLATE,
    CompiledTemplate,
    Translator,
    compile_template,
    render_metric_name,
)

logger = get_logger(__name__)

DEFAULT_HELP = "No help provided"

_METRIC_NAME_RE = re.compile(r"[a-zA-Z_:][a-zA-Z0-9_:]*")
_LABEL_NAME_RE = re.compile(r"[a-zA-Z_][a-zA-Z0-9_]*")

_SCOPE_NAMES = {
    "base": SearchScope.BASE,
    "single": SearchScope.SINGLE_LEVEL,
    "subtree": SearchScope.SUBTREE,
    # RFC 4511 names
    "baseObject": SearchScope.BASE,
    "singleLevel": SearchScope.SINGLE_LEVEL,
    "wholeSubtree": SearchScope.SUBTREE,
    # ldap3 names
    "BASE": SearchScope.BASE,
    "LEVEL": SearchScope.SINGLE_LEVEL,
    "SUBTREE": SearchScope.SUBTREE,
}

_DEREF_NAMES = {
    "never": DerefPolicy.NEVER,
    "search": DerefPolicy.SEARCH,
    "base": DerefPolicy.BASE,
    "always": DerefPolicy.ALWAYS,
}


# === Field validators ===


def _check_label_name(label: str, what: str) -> str:
    if not label or label.strip() != label:
        raise ValueError(f"{what} cannot have whitespace and must be nonempty: '{label}'")
    if not _LABEL_NAME_RE.fullmatch(label):
        raise ValueError(f"{what} '{label}' is not a valid label name")
    return label


def _check_distinct_attributes(attributes: Iterable[str], what: str) -> None:
    # entries are matched case-insensitively, so cn and CN are one attribute
    seen: dict[str, str] = {}
    for attribute in attributes:
        other = seen.setdefault(attribute.lower(), attribute)
        if other != attribute:
            raise ValueError(
                f"{what} attributes '{other}' and '{attribute}' differ only in case"
            )


def _none_as_empty(value: Any) -> Any:
    return {} if value is None else value


def _as_template(value: Any) -> Any:
    if value is None or isinstance(value, CompiledTemplate):
        return value
    if not isinstance(value, str):
        raise ValueError("template must be a string")
    try:
        return compile_template(value)
    except ConfigError as exc:
        raise ValueError(str(exc)) from exc


OptionalTemplate = Annotated[CompiledTemplate | None, BeforeValidator(_as_template)]
StringMap = Annotated[dict[str, str], BeforeValidator(_none_as_empty)]


class MetricConfig(BaseModel):
    """One attribute exported as a metric."""

    model_config = ConfigDict(extra="forbid", frozen=True, arbitrary_types_allowed=True)

    metric_name: str | None = None
    type: MetricKind
    labels: list[str] = Field(default_factory=list)
    translator: OptionalTemplate = None
    help: str = ""

    @field_validator("labels", mode="before")
    @classmethod
    def _labels_list(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("labels")
    @classmethod
    def _labels_are_names(cls, value: list[str]) -> list[str]:
        for idx, label in enumerate(value):
            _check_label_name(label, f"label at index {idx}")
        return value


class AttributesConfig(BaseModel):
    """Attribute to label and attribute to metric mappings of a section."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    labels: StringMap = Field(default_factory=dict)
    metrics: Annotated[
        dict[str, MetricConfig], BeforeValidator(_none_as_empty)
    ] = Field(default_factory=dict)

    @field_validator("labels")
    @classmethod
    def _label_targets_are_names(cls, value: dict[str, str]) -> dict[str, str]:
        _check_distinct_attributes(value, "label")
        for attribute, label in value.items():
            _check_label_name(label, f"label for attribute {attribute}")
        return value

    @field_validator("metrics")
    @classmethod
    def _metric_attributes_distinct(
        cls, value: dict[str, MetricConfig]
    ) -> dict[str, MetricConfig]:
        _check_distinct_attributes(value, "metric")
        return value


class SourceConfig(BaseModel):
    """One configuration section: a search and its mappings."""

    model_config = ConfigDict(extra="forbid", frozen=True, arbitrary_types_allowed=True)

    name: str = Field(min_length=1)
    search: str
    filter: str = MATCH_ALL_FILTER
    scope: SearchScope = SearchScope.BASE
    deref: DerefPolicy = DerefPolicy.ALWAYS
    counter_metric_name_template: OptionalTemplate = DEFAULT_COUNTER_TEMPLATE
    gauge_metric_name_template: OptionalTemplate = DEFAULT_GAUGE_TEMPLATE
    attributes: AttributesConfig = Field(default_factory=AttributesConfig)
    labels: StringMap = Field(default_factory=dict)

    @field_validator("search")
    @classmethod
    def _search_is_dn(cls, value: str) -> str:
        try:
            parse_dn(value)
        except (LDAPException, ValueError) as exc:
            raise ValueError(f"search is malformed: {exc}") from exc
        return value

    @field_validator("filter", mode="before")
    @classmethod
    def _default_filter(cls, value: Any) -> Any:
        return MATCH_ALL_FILTER if value is None else value

    @field_validator("filter")
    @classmethod
    def _filter_is_valid(cls, value: str) -> str:
        if not (value.startswith("(") and value.endswith(")")):
            raise ValueError(f"filter is malformed: '{value}' must be enclosed in parentheses")
        try:
            parse_filter(value, None, False, False, None, False)
        except (LDAPException, ValueError) as exc:
            raise ValueError(f"filter is malformed: {exc}") from exc
        return value

    @field_validator("scope", mode="before")
    @classmethod
    def _scope_choice(cls, value: Any) -> Any:
        if value is None:
            return SearchScope.BASE
        if isinstance(value, SearchScope):
            return value
        if isinstance(value, str) and value in _SCOPE_NAMES:
            return _SCOPE_NAMES[value]
        raise ValueError(
            f"ldap search scope {value} is unknown; supported options are 'base', "
            "'single', and 'subtree'. Optionally, you can also use the protocol's "
            "naming: 'baseObject', 'singleLevel', 'wholeSubtree'"
        )

    @field_validator("deref", mode="before")
    @classmethod
    def _deref_choice(cls, value: Any) -> Any:
        if value is None:
            return DerefPolicy.ALWAYS
        if isinstance(value, DerefPolicy):
            return value
        if isinstance(value, str) and value in _DEREF_NAMES:
            return _DEREF_NAMES[value]
        raise ValueError(
            f"ldap deref choice {value} is unknown; supported options are 'never', "
            "'search', 'base', and 'always'"
        )

    @field_validator("counter_metric_name_template", mode="after")
    @classmethod
    def _default_counter_template(cls, value: CompiledTemplate | None) -> CompiledTemplate:
        return DEFAULT_COUNTER_TEMPLATE if value is None else value

    @field_validator("gauge_metric_name_template", mode="after")
    @classmethod
    def _default_gauge_template(cls, value: CompiledTemplate | None) -> CompiledTemplate:
        return DEFAULT_GAUGE_TEMPLATE if value is None else value

    @field_validator("labels")
    @classmethod
    def _constant_labels(cls, value: dict[str, str]) -> dict[str, str]:
        for key, label_value in value.items():
            _check_label_name(key, "constant label name")
            if not label_value or label_value.strip() != label_value:
                raise ValueError(
                    f"constant label for attribute {key} cannot have whitespace "
                    f"and must be nonempty: '{label_value}'"
                )
        return value


_SOURCES = TypeAdapter(list[SourceConfig])


# === Error reporting ===


def _format_loc(loc: Iterable[int | str]) -> str:
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else part
    return path


def _issues_from(exc: ValidationError) -> list[tuple[str, str]]:
    issues = []
    for error in exc.errors():
        loc = tuple(error["loc"])
        if error["type"] == "extra_forbidden":
            issues.append((_format_loc(loc[:-1]), f"unknown field '{loc[-1]}'"))
            continue
        message = error["msg"]
        if error["type"] == "value_error":
            message = message.removeprefix("Value error, ")
        issues.append((_format_loc(loc), message))
    return issues


# === Building metrics sources ===


def _metric_name(
    source: SourceConfig, attribute: str, metric: MetricConfig
) -> str:
    name = metric.metric_name
    if not name:
        template = (
            source.counter_metric_name_template
            if metric.type is MetricKind.COUNTER
            else source.gauge_metric_name_template
        )
        name = render_metric_name(template, source.name, attribute)
    return f"{NAMESPACE}_{name}"


def _build_source(
    path: str, source: SourceConfig, issues: list[tuple[str, str]]
) -> MetricsSource | None:
    start = len(issues)

    source_labels: list[str] = []
    for attribute, label in source.attributes.labels.items():
        if label in source_labels:
            issues.append(
                (
                    f"{path}.attributes.labels.{attribute}",
                    f"duplicate label names found for {attribute}->{label}; "
                    f"'{label}' already is a label",
                )
            )
            continue
        source_labels.append(label)

    metric_attributes: dict[str, MetricAttribute] = {}
    for attribute, metric in source.attributes.metrics.items():
        metric_path = f"{path}.attributes.metrics.{attribute}"

        label_names = [*source_labels, *metric.labels]
        seen: set[str] = set()
        for label in label_names:
            if label in seen:
                issues.append((metric_path, f"duplicate label name '{label}'"))
            elif label in source.labels:
                issues.append(
                    (metric_path, f"label '{label}' is also defined as a constant label")
                )
            seen.add(label)

        try:
            name = _metric_name(source, attribute, metric)
        except TemplateRenderError as exc:
            issues.append((metric_path, str(exc)))
            continue
        if not _METRIC_NAME_RE.fullmatch(name):
            issues.append((metric_path, f"'{name}' is not a valid metric name"))
            continue

        help_text = metric.help
        if not help_text:
            logger.warning(
                "section %s, attribute %s: no help provided", source.name, attribute
            )
            help_text = DEFAULT_HELP

        translator = Translator(metric.translator) if metric.translator else None
        metric_attributes[attribute] = create_metric_attribute(
            kind=metric.type,
            name=name,
            help=help_text,
            label_names=label_names,
            constant_labels=source.labels,
            translator=translator,
        )

    if len(issues) != start:
        return None

    search = build_search_request(
        base_dn=source.search,
        filter=source.filter,
        scope=source.scope,
        deref=source.deref,
        metric_attributes=metric_attributes,
        label_attributes=source.attributes.labels,
    )
    return MetricsSource(
        search=search,
        metric_attributes=metric_attributes,
        label_attributes=dict(source.attributes.labels),
        name=source.name,
    )


# === Metric name uniqueness ===


def _exposed_names(descriptor: MetricDescriptor) -> set[str]:
    # counters are exposed as a family without _total and a _total sample
    if descriptor.kind is MetricKind.COUNTER:
        family = descriptor.name.removesuffix("_total")
        return {family, f"{family}_total"}
    return {descriptor.name}


def _name_conflicts(
    described: Iterable[tuple[str, MetricDescriptor]],
) -> list[tuple[str, str]]:
    owners = {
        name: "an exporter self-metric"
        for descriptor in SELF_METRICS
        for name in _exposed_names(descriptor)
    }
    issues = []
    for path, descriptor in described:
        names = _exposed_names(descriptor)
        taken = sorted(names & owners.keys())
        if taken:
            issues.append(
                (
                    path,
                    f"metric name '{descriptor.name}' is already used by "
                    f"{owners[taken[0]]}",
                )
            )
            continue
        owners.update(dict.fromkeys(names, path))
    return issues


def check_metric_names(sources: Iterable[MetricsSource]) -> None:
    """Fail when two metric attributes would be exposed under the same name.

    Paths in the error are ``<source name>.<attribute>``.

    Raises:
        ConfigError: Naming every metric whose name is already taken.
    """
    issues = _name_conflicts(
        (f"{source.name}.{attribute}", metric.describe())
        for source in sources
        for attribute, metric in source.metric_attributes.items()
    )
    if issues:
        raise ConfigError(issues)


# === Public API ===


def parse_config(text: str) -> list[SourceConfig]:
    """Decode and validate a configuration document.

    Args:
        text: YAML document.

    Returns:
        Validated sections, in document order.

    Raises:
        ConfigError: If the document is not valid.
    """
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"configuration is not valid YAML: {exc}") from exc
    if document is None:
        return []
    if not isinstance(document, list):
        raise ConfigError(
            "configuration must be a list of sections, "
            f"got {type(document).__name__}"
        )
    try:
        return _SOURCES.validate_python(document)
    except ValidationError as exc:
        raise ConfigError(_issues_from(exc)) from exc


def load_config(text: str) -> list[MetricsSource]:
    """Load a configuration document into metrics sources.

    Raises:
        ConfigError: If any part of the document is invalid. No sources are
            returned for a partially valid document.
    """
    issues: list[tuple[str, str]] = []
    built: list[tuple[str, MetricsSource]] = []
    for idx, section in enumerate(parse_config(text)):
        source = _build_source(f"[{idx}]", section, issues)
        if source is not None:
            built.append((f"[{idx}]", source))
    issues.extend(
        _name_conflicts(
            (f"{path}.attributes.metrics.{attribute}", metric.describe())
            for path, source in built
            for attribute, metric in source.metric_attributes.items()
        )
    )
    sources = [source for _, source in built]
    if issues:
        raise ConfigError(issues)
    return sources


def load_config_file(path: str | Path) -> list[MetricsSource]:
    """Load a configuration file. See load_config()."""
    logger.debug("parsing query file %s", path)
    return load_config(Path(path).read_text(encoding="utf-8"))
