"""
L3: Technical Specification Rules

Declarative predicates over the description text and the structured
technical specs (performance, process node, capacity, HS chapter). Rules are
evaluated in ruleset order; the first satisfied rule for a code wins, and
different rules may contribute different codes. Layer confidence is the
highest confidence among the satisfied rules.
"""

from exportgate.layers.base import BaseLayer, DetectionContext, LayerOutcome


class TechnicalSpecsLayer(BaseLayer):
    layer_name = "technical_specs"
    order = 3
    method = "Technical specifications analysis"

    async def evaluate(self, ctx: DetectionContext) -> LayerOutcome:
        rules = ctx.ruleset.threshold_rules
        if not rules:
            return self._skipped("no threshold rules in ruleset")

        item = ctx.item
        matches = []
        seen_codes: set[str] = set()
        for rule in rules:
            if rule.code in seen_codes:
                continue
            if not rule.satisfied(item.description, item.hs_code, item.technical_specs):
                continue
            entry = ctx.catalog.get(rule.code)
            if entry is None:
                continue
            seen_codes.add(rule.code)
            matches.append(self.entry_match(entry, confidence=rule.confidence, reason=rule.reason))

        if not matches:
            return self._no_match()
        return self._matched(max(m.confidence for m in matches), matches)
