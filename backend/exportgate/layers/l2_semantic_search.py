"""
L2: Semantic Search Detection

Embeds the item description and retrieves catalog entries whose cosine
similarity exceeds the semantic threshold (0.85), best first. Confidence is
the top similarity expressed as a percentage.
"""

from exportgate.layers.base import BaseLayer, DetectionContext, LayerOutcome


class SemanticSearchLayer(BaseLayer):
    layer_name = "semantic_search"
    order = 2
    method = "Vector similarity search"

    async def evaluate(self, ctx: DetectionContext) -> LayerOutcome:
        rule = ctx.ruleset.semantic
        if rule is None:
            return self._skipped("no semantic rule in ruleset")

        ranked = await ctx.rank_by_similarity(
            ctx.catalog.with_embeddings(), rule.similarity_threshold, rule.max_results,
        )
        if not ranked:
            return self._no_match({"threshold": rule.similarity_threshold})

        matches = [self.entry_match(entry, similarity=sim) for entry, sim in ranked]
        confidence = round(ranked[0][1] * 100)
        return self._matched(confidence, matches, {"threshold": rule.similarity_threshold})
