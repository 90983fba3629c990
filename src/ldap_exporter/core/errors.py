"""Exception hierarchy for configuration loading and scraping.

Load-time errors (ConfigError and subclasses) are fatal to startup.
Scrape-time errors (DirectoryError, ScrapeError and subclasses) abort a
single metrics source for a single scrape and are counted in the
self-metrics.
"""

from collections.abc import Sequence


class LdapExporterError(Exception):
    """Base class for every error raised by ldap_exporter."""


class ConfigError(LdapExporterError):
    """The metrics configuration document is invalid.

    Attributes:
        issues: (document path, message) pairs, one per problem found.
    """

    def __init__(self, issues: Sequence[tuple[str, str]] | str) -> None:
        if isinstance(issues, str):
            issues = [("", issues)]
        self.issues = list(issues)
        super().__init__(self._format())

    def _format(self) -> str:
        lines = [f"{path}: {message}" if path else message for path, message in self.issues]
        if len(lines) == 1:
            return lines[0]
        return "invalid configuration:\n" + "\n".join(f"  {line}" for line in lines)


class TemplateSyntaxConfigError(ConfigError):
    """A configured template failed to compile."""


class TemplateRenderError(LdapExporterError):
    """A template failed during evaluation, e.g. on an undefined reference."""


class TranslationError(LdapExporterError):
    """A translation template rendered output that is not a valid result list."""


class DirectoryError(LdapExporterError):
    """A directory connection or search failed."""


class ScrapeError(LdapExporterError):
    """Extracting metrics from a search result failed."""


class EntryRejectedError(ScrapeError):
    """An entry lacks the single-valued label attributes its source requires."""


class UnexpectedAttributeError(ScrapeError):
    """The server returned an attribute that no mapping accounts for."""


class AttributeParseError(ScrapeError):
    """An attribute's values could not be turned into metric samples."""
