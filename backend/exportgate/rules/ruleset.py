"""
Detection Ruleset

Versioned, configuration-loaded parameters for the five detection layers.
Each rule is a tagged variant (discriminated on `kind`) so the layer that
consumes it gets a typed object instead of a loose dict:

    exact_match  → ExactMatchRule
    semantic     → SemanticRule
    threshold    → ThresholdRule   (technical-specification predicates, ordered)
    hs_code      → HSCodeRule
    keyword      → KeywordRule

The built-in DEFAULT_RULESET is plain data; deployments can ship a JSON file
with the same shape and point EXPORTGATE_RULESET_PATH at it.
"""

import logging
import re
from pathlib import Path
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

_NUMBER_RE = re.compile(r"[-+]?\d+(?:\.\d+)?")


def contains_term(text: str, term: str) -> bool:
    """Case-insensitive whole-word/phrase match ("AI" matches "AI cards", not "chair")."""
    pattern = rf"(?<![a-z0-9]){re.escape(term.lower())}(?![a-z0-9])"
    return re.search(pattern, text.lower()) is not None


def normalize_hs_code(hs_code: str | None) -> str:
    return "".join(ch for ch in (hs_code or "") if ch.isdigit())


def spec_number(specs: dict, field: str) -> float | None:
    """Read a numeric technical spec, accepting snake_case/camelCase keys and unit suffixes ("7nm")."""
    if not specs:
        return None
    camel = re.sub(r"_([a-z])", lambda m: m.group(1).upper(), field)
    for key in (field, camel):
        if key not in specs or specs[key] is None:
            continue
        value = specs[key]
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return float(value)
        match = _NUMBER_RE.search(str(value))
        if match:
            return float(match.group())
    return None


# ── Technical-spec conditions ────────────────────────────────────────────────

class KeywordAnyCondition(BaseModel):
    type: Literal["keyword_any"] = "keyword_any"
    terms: list[str]

    def holds(self, description: str, hs_code: str, specs: dict) -> bool:
        return any(contains_term(description, t) for t in self.terms)


class SpecAboveCondition(BaseModel):
    type: Literal["spec_above"] = "spec_above"
    field: str
    value: float

    def holds(self, description: str, hs_code: str, specs: dict) -> bool:
        actual = spec_number(specs, self.field)
        return actual is not None and actual > self.value


class SpecAtMostCondition(BaseModel):
    type: Literal["spec_at_most"] = "spec_at_most"
    field: str
    value: float

    def holds(self, description: str, hs_code: str, specs: dict) -> bool:
        actual = spec_number(specs, self.field)
        return actual is not None and actual <= self.value


class HSPrefixCondition(BaseModel):
    type: Literal["hs_prefix"] = "hs_prefix"
    prefixes: list[str]

    def holds(self, description: str, hs_code: str, specs: dict) -> bool:
        code = normalize_hs_code(hs_code)
        return bool(code) and any(code.startswith(normalize_hs_code(p)) for p in self.prefixes)


class DescriptionQuantityCondition(BaseModel):
    """A quantity stated in the description text, e.g. "128GB", at or above a minimum."""

    type: Literal["description_quantity"] = "description_quantity"
    unit: str
    at_least: float

    def holds(self, description: str, hs_code: str, specs: dict) -> bool:
        pattern = rf"(\d+(?:\.\d+)?)\s*{re.escape(self.unit)}\b"
        return any(
            float(m.group(1)) >= self.at_least
            for m in re.finditer(pattern, description, flags=re.IGNORECASE)
        )


Condition = Annotated[
    Union[
        KeywordAnyCondition,
        SpecAboveCondition,
        SpecAtMostCondition,
        HSPrefixCondition,
        DescriptionQuantityCondition,
    ],
    Field(discriminator="type"),
]


# ── Layer rules ──────────────────────────────────────────────────────────────

class ExactMatchRule(BaseModel):
    kind: Literal["exact_match"] = "exact_match"
    confidence: int = 95
    match_descriptions: bool = True
    match_keywords: bool = True
    match_hs_patterns: bool = True


class SemanticRule(BaseModel):
    kind: Literal["semantic"] = "semantic"
    similarity_threshold: float = 0.85
    max_results: int = 10


class ThresholdRule(BaseModel):
    kind: Literal["threshold"] = "threshold"
    code: str
    confidence: int
    reason: str
    match: Literal["any", "all"] = "any"
    conditions: list[Condition]

    def satisfied(self, description: str, hs_code: str | None, specs: dict | None) -> bool:
        results = (c.holds(description, hs_code or "", specs or {}) for c in self.conditions)
        return any(results) if self.match == "any" else all(results)


class HSPrefix(BaseModel):
    prefix: str
    label: str
    categories: list[str]


class HSCodeRule(BaseModel):
    kind: Literal["hs_code"] = "hs_code"
    confidence: int = 70
    similarity_threshold: float = 0.65
    max_results: int = 5
    prefixes: list[HSPrefix]

    def match_prefix(self, hs_code: str | None) -> HSPrefix | None:
        code = normalize_hs_code(hs_code)
        if not code:
            return None
        for p in self.prefixes:
            if code.startswith(normalize_hs_code(p.prefix)):
                return p
        return None


class KeywordRule(BaseModel):
    kind: Literal["keyword"] = "keyword"
    confidence: int = 60
    similarity_threshold: float = 0.60
    max_results: int = 5
    terms: list[str]

    def found_terms(self, description: str) -> list[str]:
        return [t for t in self.terms if contains_term(description, t)]


LayerRule = Annotated[
    Union[ExactMatchRule, SemanticRule, ThresholdRule, HSCodeRule, KeywordRule],
    Field(discriminator="kind"),
]


class Ruleset(BaseModel):
    version: str
    strategic_threshold: int = 60
    manual_review_below: int = 70
    rules: list[LayerRule]

    def _first(self, kind: type) -> BaseModel | None:
        return next((r for r in self.rules if isinstance(r, kind)), None)

    @property
    def exact_match(self) -> ExactMatchRule | None:
        return self._first(ExactMatchRule)

    @property
    def semantic(self) -> SemanticRule | None:
        return self._first(SemanticRule)

    @property
    def threshold_rules(self) -> list[ThresholdRule]:
        return [r for r in self.rules if isinstance(r, ThresholdRule)]

    @property
    def hs_code(self) -> HSCodeRule | None:
        return self._first(HSCodeRule)

    @property
    def keyword(self) -> KeywordRule | None:
        return self._first(KeywordRule)


DEFAULT_RULESET = {
    "version": "2025.1",
    "strategic_threshold": 60,
    "manual_review_below": 70,
    "rules": [
        {"kind": "exact_match", "confidence": 95},
        {"kind": "semantic", "similarity_threshold": 0.85, "max_results": 10},
        # Technical specification rules, evaluated in order
        {
            "kind": "threshold",
            "code": "3A001.a.1",
            "confidence": 90,
            "reason": "High-performance AI/ML processing capability detected",
            "match": "any",
            "conditions": [
                {"type": "keyword_any", "terms": ["AI", "neural", "accelerator", "TPU", "GPU", "machine learning"]},
                {"type": "spec_above", "field": "tpp", "value": 4800},
                {"type": "spec_at_most", "field": "process_node", "value": 16},
            ],
        },
        {
            "kind": "threshold",
            "code": "5A002.a",
            "confidence": 85,
            "reason": "High-speed network equipment detected",
            "match": "all",
            "conditions": [
                {"type": "keyword_any", "terms": ["switch", "router", "network", "high-speed"]},
                {"type": "hs_prefix", "prefixes": ["8517", "8471", "8473"]},
            ],
        },
        {
            "kind": "threshold",
            "code": "3A001.a.3",
            "confidence": 80,
            "reason": "High-capacity memory system detected",
            "match": "all",
            "conditions": [
                {"type": "keyword_any", "terms": ["memory", "RAM", "server memory"]},
                {"type": "description_quantity", "unit": "GB", "at_least": 64},
            ],
        },
        {
            "kind": "hs_code",
            "confidence": 70,
            "similarity_threshold": 0.65,
            "max_results": 5,
            "prefixes": [
                {"prefix": "8542", "label": "Electronic integrated circuits and microassemblies", "categories": ["Electronics"]},
                {"prefix": "8471", "label": "Automatic data processing machines and units", "categories": ["Electronics"]},
                {"prefix": "8473", "label": "Parts and accessories of machines of headings 84.69 to 84.72", "categories": ["Electronics"]},
                {"prefix": "8517", "label": "Telephone sets and other apparatus for transmission", "categories": ["Telecommunications", "Electronics"]},
                {"prefix": "9013", "label": "Liquid crystal devices and optical instruments", "categories": ["Electronics", "Telecommunications"]},
                {"prefix": "8544", "label": "Insulated wire, cable and other insulated electric conductors", "categories": ["Telecommunications"]},
            ],
        },
        {
            "kind": "keyword",
            "confidence": 60,
            "similarity_threshold": 0.60,
            "max_results": 5,
            "terms": [
                "encryption", "cryptographic", "dual-use", "military",
                "artificial intelligence", "machine learning", "neural network",
                "high-performance computing", "supercomputer", "quantum",
                "surveillance", "intrusion detection", "cybersecurity",
                "semiconductor", "microprocessor", "integrated circuit",
            ],
        },
    ],
}


def load_ruleset(path: str | None = None) -> Ruleset:
    """Load the ruleset from a JSON file, or the built-in default when no path is given."""
    if path:
        ruleset = Ruleset.model_validate_json(Path(path).read_text(encoding="utf-8"))
        logger.info("Loaded detection ruleset %s from %s", ruleset.version, path)
        return ruleset
    return Ruleset.model_validate(DEFAULT_RULESET)
