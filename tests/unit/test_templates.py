"""Tests for template compilation, metric naming and value translation."""

import pytest

from ldap_exporter.core.errors import (
    ConfigError,
    TemplateRenderError,
    TemplateSyntaxConfigError,
    TranslationError,
)
from ldap_exporter.core.templates import (
    DEFAULT_COUNTER_TEMPLATE,
    DEFAULT_GAUGE_TEMPLATE,
    Translator,
    compile_template,
    parse_translation,
    render_metric_name,
)


def _translate(source: str, *values: str):
    return Translator(compile_template(source)).translate(list(values))


class TestCompileTemplate:
    """Tests for compile_template()."""

    @pytest.mark.core
    def test_syntax_error_fails_at_compile_time(self) -> None:
        """A template that does not parse is a configuration error."""
        with pytest.raises(TemplateSyntaxConfigError, match="template parse failure"):
            compile_template("{{ value ")

    @pytest.mark.core
    def test_syntax_error_is_a_config_error(self) -> None:
        """Template syntax errors abort configuration loading."""
        with pytest.raises(ConfigError):
            compile_template("{% for %}")

    @pytest.mark.core
    def test_templates_with_same_source_are_equal(self) -> None:
        """Compiled templates compare by their source text."""
        assert compile_template("{{ value }}") == compile_template("{{ value }}")

    @pytest.mark.core
    def test_undefined_reference_fails_instead_of_rendering_empty(self) -> None:
        """Referencing a missing field is an error, not an empty string."""
        template = compile_template("{{ missing }}")
        with pytest.raises(TemplateRenderError, match="missing"):
            template.render(value="1")


class TestRenderMetricName:
    """Tests for metric name templates."""

    @pytest.mark.core
    def test_default_gauge_name(self) -> None:
        """Gauges are named section_attribute by default."""
        assert render_metric_name(DEFAULT_GAUGE_TEMPLATE, "users", "quota") == "users_quota"

    @pytest.mark.core
    def test_default_counter_name(self) -> None:
        """Counters are named section_attribute_total by default."""
        name = render_metric_name(DEFAULT_COUNTER_TEMPLATE, "users", "logins")
        assert name == "users_logins_total"

    @pytest.mark.core
    def test_custom_template_can_use_filters(self) -> None:
        """Naming templates have the full filter library."""
        template = compile_template("{{ section }}_{{ attribute | lower }}")
        assert render_metric_name(template, "users", "loginCount") == "users_logincount"

    @pytest.mark.core
    def test_unknown_field_in_name_template_fails(self) -> None:
        """Naming templates only receive section and attribute."""
        template = compile_template("{{ section }}_{{ kind }}")
        with pytest.raises(TemplateRenderError, match="naming error"):
            render_metric_name(template, "users", "quota")


class TestParseTranslation:
    """Tests for parse_translation()."""

    @pytest.mark.core
    def test_results_keep_rendered_order(self) -> None:
        """Each list item becomes one result, in order."""
        results = parse_translation(
            "[{value: 2, labels: {status: ok}}, {value: 5, labels: {status: fail}}]"
        )
        assert [r.value for r in results] == [2.0, 5.0]
        assert [dict(r.labels) for r in results] == [{"status": "ok"}, {"status": "fail"}]

    @pytest.mark.core
    def test_empty_output_is_zero_results(self) -> None:
        """Rendering nothing yields no results."""
        assert parse_translation("\n") == []

    @pytest.mark.core
    def test_labels_are_optional(self) -> None:
        """A result without labels has an empty label map."""
        (result,) = parse_translation("- value: 1.5\n")
        assert result.value == 1.5
        assert dict(result.labels) == {}

    @pytest.mark.core
    def test_label_values_keep_their_text(self) -> None:
        """Label values are exported as written, without YAML bool or number typing."""
        (result,) = parse_translation(
            "- {value: 1, labels: {state: on, version: 1.10, code: 010, port: 389}}\n"
        )
        assert dict(result.labels) == {
            "state": "on",
            "version": "1.10",
            "code": "010",
            "port": "389",
        }

    @pytest.mark.core
    def test_quoted_label_values_lose_only_their_quotes(self) -> None:
        """Quoting, as done by to_yaml, does not leak into the label value."""
        (result,) = parse_translation(
            "- {value: 1, labels: {version: \"1.2.3\", mode: 'yes'}}\n"
        )
        assert dict(result.labels) == {"version": "1.2.3", "mode": "yes"}

    @pytest.mark.core
    def test_unknown_field_is_rejected_with_rendered_text(self) -> None:
        """Fields other than value and labels fail, quoting the output."""
        with pytest.raises(TranslationError) as exc_info:
            parse_translation("- {value: 1, unit: seconds}\n")
        message = str(exc_info.value)
        assert "unknown field in position 0: unit" in message
        assert "intermediate yaml was:\n- {value: 1, unit: seconds}" in message

    @pytest.mark.core
    def test_invalid_yaml_reports_rendered_text(self) -> None:
        """YAML errors include the rendered text."""
        with pytest.raises(TranslationError, match="intermediate yaml was"):
            parse_translation("- value: [1\n")

    @pytest.mark.core
    def test_non_list_output_is_rejected(self) -> None:
        """The output must be a list."""
        with pytest.raises(TranslationError, match="expected a list"):
            parse_translation("value: 1\n")

    @pytest.mark.core
    @pytest.mark.parametrize(
        ("value", "expected"),
        [("3", 3.0), ("0.25", 0.25), ("1e3", 1000.0), ("1e+06", 1e6), ("-2.5e-3", -0.0025)],
    )
    def test_plain_numbers_are_values(self, value: str, expected: float) -> None:
        """Integers, decimals and exponent notation are all numbers."""
        (result,) = parse_translation(f"- value: {value}\n")
        assert result.value == expected

    @pytest.mark.core
    @pytest.mark.parametrize("value", ["'3'", "true", "null", "[1]", "1e3x", "'1e3'"])
    def test_value_must_be_a_number(self, value: str) -> None:
        """Quoted strings, booleans, nulls, lists and non-numeric text are not values."""
        with pytest.raises(TranslationError, match="value must be a number"):
            parse_translation(f"- value: {value}\n")

    @pytest.mark.core
    def test_nested_label_value_is_rejected(self) -> None:
        """Label values must be scalars."""
        with pytest.raises(TranslationError, match="must be a scalar"):
            parse_translation("- {value: 1, labels: {status: [a, b]}}\n")


class TestTranslator:
    """Tests for Translator.translate()."""

    @pytest.mark.core
    def test_value_is_first_of_values(self) -> None:
        """``value`` is bound to the first raw value."""
        (result,) = _translate("- value: {{ value }}\n", "3", "9")
        assert result.value == 3.0

    @pytest.mark.core
    def test_fan_out_over_values(self) -> None:
        """One attribute can expand into one result per raw value."""
        results = _translate(
            "{% for v in values %}- {value: {{ loop.index }}, labels: {name: {{ v | to_yaml }}}}\n"
            "{% endfor %}",
            "a",
            "b",
        )
        assert [(r.value, dict(r.labels)) for r in results] == [
            (1.0, {"name": "a"}),
            (2.0, {"name": "b"}),
        ]

    @pytest.mark.core
    def test_no_values_is_an_error(self) -> None:
        """There is nothing to translate without values."""
        with pytest.raises(TranslationError, match="no values"):
            _translate("- value: 1\n")

    @pytest.mark.core
    def test_undefined_field_fails_with_values_in_message(self) -> None:
        """Evaluation failures name the values being translated."""
        with pytest.raises(TemplateRenderError, match=r"failed parsing for value \['x'\]"):
            _translate("- value: {{ nope }}\n", "x")


class TestHelperFilters:
    """Tests for the filters available to templates."""

    @pytest.mark.core
    def test_kvpairs(self) -> None:
        """kvpairs parses comma separated key=value text."""
        results = _translate(
            "{% for k, v in value | kvpairs | dictsort %}- value: {{ v }}\n"
            "  labels: {name: {{ k | to_yaml }}}\n{% endfor %}",
            "reads=10, writes=3",
        )
        assert [(r.value, dict(r.labels)) for r in results] == [
            (10.0, {"name": "reads"}),
            (3.0, {"name": "writes"}),
        ]

    @pytest.mark.core
    def test_kvpairs_rejects_malformed_pairs(self) -> None:
        """Items without a separator fail evaluation."""
        with pytest.raises(TemplateRenderError, match="not a key=value pair"):
            _translate("{{ value | kvpairs }}", "a=1,b")

    @pytest.mark.core
    def test_split(self) -> None:
        """split splits on the given separator."""
        (result,) = _translate("- value: {{ (value | split(':'))[1] }}\n", "ops:42")
        assert result.value == 42.0

    @pytest.mark.core
    def test_regex_search_group(self) -> None:
        """regex_search returns the requested group."""
        (result,) = _translate(
            '- value: {{ value | regex_search("([0-9]+) ops", 1) }}\n', "served 17 ops"
        )
        assert result.value == 17.0

    @pytest.mark.core
    def test_regex_search_without_match_is_empty(self) -> None:
        """default_if_empty substitutes for a missing match."""
        (result,) = _translate(
            '- value: {{ value | regex_search("[0-9]+") | default_if_empty(0) }}\n', "none"
        )
        assert result.value == 0.0

    @pytest.mark.core
    def test_regex_replace(self) -> None:
        """regex_replace substitutes every match."""
        (result,) = _translate(
            '- value: {{ value | regex_replace("[^0-9]", "") }}\n', "1,024 bytes"
        )
        assert result.value == 1024.0

    @pytest.mark.core
    def test_to_yaml_quotes_strings(self) -> None:
        """to_yaml keeps label values that look like YAML syntax as strings."""
        (result,) = _translate(
            "- {value: 1, labels: {version: {{ value | to_yaml }}}}\n", "1.2: beta, {x}"
        )
        assert dict(result.labels) == {"version": "1.2: beta, {x}"}
