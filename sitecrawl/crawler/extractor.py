"""
Structured data extraction from fetched pages.

The crawler treats extraction as an opaque capability: it hands over the raw
page and the configured rule spec and stores whatever JSON comes back.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

import yaml
from bs4 import BeautifulSoup
from soupsieve import SelectorSyntaxError

from ..exceptions import ExtractionError


class Extractor(Protocol):
    """extract(body, rule_spec) -> JSON string."""

    def extract(self, body: bytes, rule_spec: str) -> str:
        ...


@dataclass
class SelectorRule:
    """A named CSS selector, optionally reading an attribute instead of text."""
    name: str
    selector: str
    attribute: Optional[str] = None
    limit: int = 1


class SelectorExtractor:
    """
    Default extractor driven by a YAML rule spec:

        rules:
          - name: title
            selector: h1
          - name: images
            selector: img
            attribute: src
            limit: 10

    A rule with limit 1 yields a single value (or null), otherwise a list.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._cache: Dict[str, List[SelectorRule]] = {}

    def parse_rules(self, rule_spec: str) -> List[SelectorRule]:
        if rule_spec in self._cache:
            return self._cache[rule_spec]

        try:
            data = yaml.safe_load(rule_spec)
        except yaml.YAMLError as e:
            raise ExtractionError(f"Invalid extraction rules: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get('rules'), list):
            raise ExtractionError("Extraction rules must be a mapping with a 'rules' list")

        rules = []
        for entry in data['rules']:
            if not isinstance(entry, dict) or 'name' not in entry or 'selector' not in entry:
                raise ExtractionError(f"Extraction rule needs 'name' and 'selector': {entry!r}")
            try:
                rule = SelectorRule(
                    name=str(entry['name']),
                    selector=str(entry['selector']),
                    attribute=entry.get('attribute'),
                    limit=int(entry.get('limit', 1))
                )
            except (TypeError, ValueError) as e:
                raise ExtractionError(f"Invalid extraction rule {entry!r}: {e}") from e
            if rule.limit < 1:
                raise ExtractionError(f"Extraction rule {rule.name!r} needs a positive limit")
            rules.append(rule)

        self._cache[rule_spec] = rules
        return rules

    def _apply(self, soup: BeautifulSoup, rule: SelectorRule) -> Any:
        try:
            elements = soup.select(rule.selector, limit=rule.limit)
        except SelectorSyntaxError as e:
            raise ExtractionError(f"Invalid selector {rule.selector!r}: {e}") from e

        values = []
        for element in elements:
            if rule.attribute:
                value = element.get(rule.attribute)
                if isinstance(value, list):
                    value = ' '.join(value)
            else:
                value = element.get_text(separator=' ', strip=True)
            if value is not None:
                values.append(value)

        if rule.limit == 1:
            return values[0] if values else None
        return values

    def extract(self, body: bytes, rule_spec: str) -> str:
        rules = self.parse_rules(rule_spec)
        soup = BeautifulSoup(body, 'lxml')
        result = {rule.name: self._apply(soup, rule) for rule in rules}
        return json.dumps(result, ensure_ascii=False)
