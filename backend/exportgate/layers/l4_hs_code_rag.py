"""
L4: HS Code + RAG Detection

Only runs when the item's HS code starts with one of the strategic HS
prefixes. Semantic search is then narrowed to catalog entries in categories
compatible with that HS heading (or whose own HS patterns share the prefix)
at a looser similarity threshold (0.65).
"""

from exportgate.layers.base import BaseLayer, DetectionContext, LayerOutcome
from exportgate.rules.ruleset import normalize_hs_code


class HSCodeRAGLayer(BaseLayer):
    layer_name = "hs_code_rag"
    order = 4
    method = "HS code analysis with RAG validation"

    async def evaluate(self, ctx: DetectionContext) -> LayerOutcome:
        rule = ctx.ruleset.hs_code
        if rule is None:
            return self._skipped("no hs_code rule in ruleset")
        if not ctx.item.hs_code:
            return self._skipped("item has no HS code")

        heading = rule.match_prefix(ctx.item.hs_code)
        if heading is None:
            return self._no_match({"hs_code": ctx.item.hs_code})

        prefix = normalize_hs_code(heading.prefix)
        candidates = ctx.catalog.in_categories(heading.categories)
        candidates += [
            e for e in ctx.catalog
            if e not in candidates
            and any(normalize_hs_code(p).startswith(prefix) for p in e.hs_code_patterns)
        ]
        details = {"hs_prefix": heading.prefix, "hs_code_category": heading.label}
        ranked = await ctx.rank_by_similarity(candidates, rule.similarity_threshold, rule.max_results)
        matches = [self.entry_match(entry, similarity=sim) for entry, sim in ranked]
        return self._matched(rule.confidence, matches, details)
