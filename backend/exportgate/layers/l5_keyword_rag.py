"""
L5: Keywords + RAG Detection

Triggers on any term from the strategic keyword list appearing in the
description, then validates semantically (similarity > 0.60) against catalog
entries that share at least one of the found terms.
"""

from exportgate.layers.base import BaseLayer, DetectionContext, LayerOutcome


def _shares_term(keywords: tuple[str, ...], found: list[str]) -> bool:
    lowered = [k.lower() for k in keywords]
    return any(term.lower() in k for term in found for k in lowered)


class KeywordRAGLayer(BaseLayer):
    layer_name = "keywords_rag"
    order = 5
    method = "Strategic keywords with RAG validation"

    async def evaluate(self, ctx: DetectionContext) -> LayerOutcome:
        rule = ctx.ruleset.keyword
        if rule is None:
            return self._skipped("no keyword rule in ruleset")

        found = rule.found_terms(ctx.item.description)
        if not found:
            return self._no_match()

        candidates = [e for e in ctx.catalog if _shares_term(e.keywords, found)]
        details = {"found_keywords": found}
        ranked = await ctx.rank_by_similarity(candidates, rule.similarity_threshold, rule.max_results)
        matches = [self.entry_match(entry, similarity=sim) for entry, sim in ranked]
        return self._matched(rule.confidence, matches, details)
