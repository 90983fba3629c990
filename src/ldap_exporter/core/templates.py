"""Template evaluation for metric names and value translation.

Templates are Jinja2 templates compiled once when the configuration is
loaded. Rendering uses StrictUndefined, so referencing a field that does
not exist is an error instead of an empty string.

Translation templates receive ``values`` (every raw value of the
attribute) and ``value`` (the first one) and must render a YAML list of
``{value: <number>, labels: {<name>: <value>}}`` objects.
"""

import json
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import yaml
from jinja2 import StrictUndefined, Template, TemplateError, TemplateSyntaxError
from jinja2.sandbox import SandboxedEnvironment

from ldap_exporter.core.errors import (
    TemplateRenderError,
    TemplateSyntaxConfigError,
    TranslationError,
)
from ldap_exporter.core.logs import get_logger
from ldap_exporter.core.models import TranslationResult

logger = get_logger(__name__)

DEFAULT_GAUGE_NAME_TEMPLATE = "{{ section }}_{{ attribute }}"
DEFAULT_COUNTER_NAME_TEMPLATE = "{{ section }}_{{ attribute }}_total"

_RESULT_FIELDS = frozenset({"value", "labels"})

_NULL_TAG = "tag:yaml.org,2002:null"
_INT_TAG = "tag:yaml.org,2002:int"
_FLOAT_TAG = "tag:yaml.org,2002:float"
_STR_TAG = "tag:yaml.org,2002:str"

# Errors a misbehaving template or helper can raise while rendering
_RENDER_ERRORS = (
    TemplateError,
    ArithmeticError,
    LookupError,
    TypeError,
    ValueError,
    re.error,
)


def _split(value: str, sep: str | None = None, maxsplit: int = -1) -> list[str]:
    return str(value).split(sep, maxsplit)


def _regex_replace(value: str, pattern: str, repl: str) -> str:
    return re.sub(pattern, repl, str(value))


def _regex_search(value: str, pattern: str, group: int | str = 0) -> str:
    """Return the requested group of the first match, or an empty string."""
    match = re.search(pattern, str(value))
    if match is None:
        return ""
    return match.group(group) or ""


def _regex_findall(value: str, pattern: str) -> list[Any]:
    return re.findall(pattern, str(value))


def _kvpairs(value: str, item_sep: str = ",", kv_sep: str = "=") -> dict[str, str]:
    """Parse ``a=1,b=2`` style strings into a dict."""
    pairs: dict[str, str] = {}
    for item in str(value).split(item_sep):
        item = item.strip()
        if not item:
            continue
        if kv_sep not in item:
            raise ValueError(f"'{item}' is not a key{kv_sep}value pair")
        key, _, val = item.partition(kv_sep)
        pairs[key.strip()] = val.strip()
    return pairs


def _to_yaml(value: Any) -> str:
    """Render a value as inline YAML, quoting strings as needed."""
    # JSON is valid flow-style YAML and never spans lines
    return json.dumps(value, ensure_ascii=False)


def _default_if_empty(value: Any, default: Any) -> Any:
    return value if value not in ("", None, [], {}) else default


def _create_environment() -> SandboxedEnvironment:
    env = SandboxedEnvironment(
        undefined=StrictUndefined,
        autoescape=False,
        keep_trailing_newline=True,
    )
    env.filters.update(
        {
            "split": _split,
            "regex_replace": _regex_replace,
            "regex_search": _regex_search,
            "regex_findall": _regex_findall,
            "kvpairs": _kvpairs,
            "to_yaml": _to_yaml,
            "default_if_empty": _default_if_empty,
        }
    )
    env.globals.update({"zip": zip, "enumerate": enumerate})
    return env


_ENVIRONMENT = _create_environment()


@dataclass(frozen=True)
class CompiledTemplate:
    """A compiled template together with its source text.

    Two compiled templates compare equal when their sources are equal.
    """

    source: str
    name: str = "config supplied template"
    _template: Template = field(compare=False, repr=False, default=None)  # type: ignore[assignment]

    def render(self, **context: Any) -> str:
        """Render the template.

        Raises:
            TemplateRenderError: On undefined references or helper failures.
        """
        try:
            return self._template.render(**context)
        except _RENDER_ERRORS as exc:
            raise TemplateRenderError(f"{self.name} failed to render: {exc}") from exc


def compile_template(source: str, name: str = "config supplied template") -> CompiledTemplate:
    """Compile a template, failing fast on syntax errors.

    Args:
        source: Template text.
        name: Human readable name used in error messages.

    Raises:
        TemplateSyntaxConfigError: If the template does not compile.
    """
    try:
        template = _ENVIRONMENT.from_string(source)
    except TemplateSyntaxError as exc:
        raise TemplateSyntaxConfigError(
            f"template parse failure; error was {exc}, template was:\n{source}"
        ) from exc
    return CompiledTemplate(source=source, name=name, _template=template)


DEFAULT_GAUGE_TEMPLATE = compile_template(DEFAULT_GAUGE_NAME_TEMPLATE, "default gauge name")
DEFAULT_COUNTER_TEMPLATE = compile_template(
    DEFAULT_COUNTER_NAME_TEMPLATE, "default counter name"
)


def render_metric_name(template: CompiledTemplate, section: str, attribute: str) -> str:
    """Render a metric naming template for one attribute of one section."""
    try:
        name = template.render(section=section, attribute=attribute)
    except TemplateRenderError as exc:
        raise TemplateRenderError(f"attribute {attribute} naming error: {exc}") from exc
    logger.debug("templating metric name for attr %s to %s", attribute, name)
    return name


def _describe_node(loader: yaml.SafeLoader, node: yaml.Node) -> Any:
    return loader.construct_object(node, deep=True)


def _result_value(loader: yaml.SafeLoader, node: yaml.Node | None) -> float | None:
    """Return the number a ``value`` node holds, or None if it is not one."""
    if not isinstance(node, yaml.ScalarNode):
        return None
    if node.tag in (_INT_TAG, _FLOAT_TAG):
        return float(loader.construct_object(node))
    # YAML 1.1 resolves exponents without a dot (1e3, 1e+06) as strings
    if node.tag == _STR_TAG and node.style is None:
        try:
            return float(node.value)
        except ValueError:
            return None
    return None


def _label_pair(
    loader: yaml.SafeLoader, idx: int, key: yaml.Node, value: yaml.Node
) -> tuple[str, str]:
    if not isinstance(key, yaml.ScalarNode):
        raise TranslationError(
            f"result {idx} has non-scalar label name {_describe_node(loader, key)!r}"
        )
    if not isinstance(value, yaml.ScalarNode) or value.tag == _NULL_TAG:
        raise TranslationError(
            f"result {idx} label {key.value} must be a scalar, "
            f"got {_describe_node(loader, value)!r}"
        )
    # label values keep their text as written: on, 1.10 and 010 stay as they are
    return key.value, value.value


def _parse_result(
    loader: yaml.SafeLoader, idx: int, node: yaml.Node, rendered: str
) -> TranslationResult:
    if not isinstance(node, yaml.MappingNode):
        raise TranslationError(
            f"result {idx} is not a mapping; intermediate yaml was:\n{rendered}"
        )
    fields = {
        key.value if isinstance(key, yaml.ScalarNode) else str(key): value
        for key, value in node.value
    }
    unknown = sorted(set(fields) - _RESULT_FIELDS)
    if unknown:
        raise TranslationError(
            f"had unknown field in position {idx}: {', '.join(unknown)}; "
            f"intermediate yaml was:\n{rendered}"
        )

    value_node = fields.get("value")
    value = _result_value(loader, value_node)
    if value is None:
        got = None if value_node is None else _describe_node(loader, value_node)
        raise TranslationError(
            f"result {idx} value must be a number, got {got!r}; "
            f"intermediate yaml was:\n{rendered}"
        )

    labels_node = fields.get("labels")
    if labels_node is None or (
        isinstance(labels_node, yaml.ScalarNode) and labels_node.tag == _NULL_TAG
    ):
        return TranslationResult(value=value, labels={})
    if not isinstance(labels_node, yaml.MappingNode):
        raise TranslationError(
            f"result {idx} labels must be a mapping, "
            f"got {_describe_node(loader, labels_node)!r}"
        )
    labels = dict(_label_pair(loader, idx, k, v) for k, v in labels_node.value)
    return TranslationResult(value=value, labels=labels)


def _parse_document(loader: yaml.SafeLoader, rendered: str) -> list[TranslationResult]:
    document = loader.get_single_node()
    if document is None or (
        isinstance(document, yaml.ScalarNode) and document.tag == _NULL_TAG
    ):
        return []
    if not isinstance(document, yaml.SequenceNode):
        kind = type(_describe_node(loader, document)).__name__
        raise TranslationError(
            f"expected a list of results, got {kind}; "
            f"intermediate yaml was:\n{rendered}"
        )
    return [
        _parse_result(loader, idx, item, rendered)
        for idx, item in enumerate(document.value)
    ]


def parse_translation(rendered: str) -> list[TranslationResult]:
    """Parse rendered translation output into results, in rendered order.

    The output is read as a YAML node tree rather than plain Python values,
    so label values are taken verbatim instead of going through YAML's
    implicit bool and number typing.

    Raises:
        TranslationError: If the output is not a list of ``{value, labels}``
            mappings. The message includes the rendered text.
    """
    loader = yaml.SafeLoader(rendered)
    try:
        return _parse_document(loader, rendered)
    except yaml.YAMLError as exc:
        raise TranslationError(f"{exc}; intermediate yaml was:\n{rendered}") from exc
    finally:
        loader.dispose()


@dataclass(frozen=True)
class Translator:
    """Turns the raw values of one attribute into translation results."""

    template: CompiledTemplate

    def translate(self, values: Sequence[str]) -> list[TranslationResult]:
        """Evaluate the template against ``values`` and parse its output.

        Raises:
            TranslationError: If there are no values or the output is invalid.
            TemplateRenderError: If evaluation fails.
        """
        values = list(values)
        if not values:
            raise TranslationError("no values to translate")
        try:
            rendered = self.template.render(values=values, value=values[0])
        except TemplateRenderError as exc:
            raise TemplateRenderError(f"failed parsing for value {values}: {exc}") from exc
        try:
            return parse_translation(rendered)
        except TranslationError as exc:
            raise TranslationError(f"failed parsing value {values}: {exc}") from exc
