"""Embedded-JSON extraction from rendered or fetched HTML.

Retailers ship their search state inside the page (``__NEXT_DATA__``,
``window.__INITIAL_STATE__``, inline ``var initialData = ...``). Each way of
finding that state is an ``ExtractionRule``: a regex whose first group is a
JSON document plus a dotted key path into it. Rules are evaluated in order and
the first one that parses to a non-empty value wins.
"""

import json
import logging
import re
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import Any

from .utils import dig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtractionRule:
    """One known shape of embedded state."""

    name: str
    pattern: re.Pattern[str]
    path: str = ""

    def extract(self, html: str) -> Any:
        """Return the value at ``path`` or None when the pattern is absent.

        Raises
        ------
            ValueError: If the matched text is not valid JSON

        """
        match = self.pattern.search(html)
        if not match:
            return None
        data = json.loads(match.group(1))
        return dig(data, self.path) if self.path else data


def rule(name: str, pattern: str, path: str = "", flags: int = 0) -> ExtractionRule:
    return ExtractionRule(name=name, pattern=re.compile(pattern, flags), path=path)


GENERIC_RULES: tuple[ExtractionRule, ...] = (
    rule(
        "next_data",
        r'<script[^>]+id=["\']__NEXT_DATA__["\'][^>]*>(.+?)</script>',
        "props.pageProps",
        re.S,
    ),
    rule(
        "initial_state",
        r"window\.__INITIAL_STATE__\s*=\s*({.+?})\s*;?\s*</script>",
        flags=re.S,
    ),
    rule(
        "preloaded_state",
        r"window\.__PRELOADED_STATE__\s*=\s*({.+?})\s*;?\s*</script>",
        flags=re.S,
    ),
    rule(
        "apollo_state",
        r"window\.__APOLLO_STATE__\s*=\s*({.+?})\s*;?\s*</script>",
        flags=re.S,
    ),
)


class EmbeddedJsonExtractor:
    """Evaluate an ordered list of ``ExtractionRule`` against HTML."""

    def __init__(self, rules: Sequence[ExtractionRule] = GENERIC_RULES):
        self.rules = tuple(rules)

    def iter_payloads(self, html: str) -> Iterator[tuple[ExtractionRule, Any]]:
        """Yield every rule that parses, in rule order."""
        if not html:
            return
        for extraction_rule in self.rules:
            try:
                value = extraction_rule.extract(html)
            except ValueError as e:
                logger.debug(f"Embedded JSON rule '{extraction_rule.name}' failed: {e}")
                continue
            if value:
                yield extraction_rule, value

    def extract(self, html: str) -> tuple[ExtractionRule, Any] | None:
        """Return the first successful ``(rule, value)`` pair."""
        return next(self.iter_payloads(html), None)
