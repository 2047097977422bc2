"""
L1: Exact Match Detection

Direct lookup against the catalog: the item description contains an entry's
description or one of its keywords as a whole word or phrase
(case-insensitive, so "RAM" does not fire on "ceramic"), or the item's
HS code falls under one of the entry's stored HS patterns. Highest-trust layer.
"""

from exportgate.layers.base import BaseLayer, DetectionContext, LayerOutcome
from exportgate.rules.ruleset import contains_term


class ExactMatchLayer(BaseLayer):
    layer_name = "exact_match"
    order = 1
    method = "Direct catalog lookup"

    async def evaluate(self, ctx: DetectionContext) -> LayerOutcome:
        rule = ctx.ruleset.exact_match
        if rule is None:
            return self._skipped("no exact_match rule in ruleset")

        text = ctx.item.description
        matches = []
        for entry in ctx.catalog:
            reason = None
            if rule.match_descriptions and contains_term(text, entry.description):
                reason = "description"
            elif rule.match_keywords:
                keyword = next((k for k in entry.keywords if contains_term(text, k)), None)
                if keyword:
                    reason = f"keyword '{keyword}'"
            if reason is None and rule.match_hs_patterns and entry.matches_hs_code(ctx.item.hs_code):
                reason = f"HS code {ctx.item.hs_code}"
            if reason:
                matches.append(self.entry_match(entry, confidence=rule.confidence, reason=reason))

        return self._matched(rule.confidence, matches)
