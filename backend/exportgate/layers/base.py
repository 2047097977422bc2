"""
Base layer class for all strategic-item detection layers.

Every layer implements `evaluate()` which takes a DetectionContext for one
product item and returns a LayerOutcome. A layer that cannot run (missing
rule, no HS code) reports `skipped`; a layer that raises is turned into a
`failed` outcome by the engine, never into `no_match`.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal

from exportgate.errors import EmbeddingProviderUnavailable
from exportgate.rules.ruleset import Ruleset
from exportgate.services.catalog import Catalog, CatalogEntry
from exportgate.services.embedding import EmbeddingProvider, cosine_similarity

MATCHED = "matched"
NO_MATCH = "no_match"
FAILED = "failed"
SKIPPED = "skipped"


@dataclass
class ProductItem:
    """One normalized line item supplied by document extraction."""
    description: str
    hs_code: str | None = None
    quantity: Decimal | None = None
    technical_specs: dict = field(default_factory=dict)


@dataclass
class LayerMatch:
    code: str
    required_permits: tuple[str, ...]
    category: str | None = None
    similarity: float | None = None
    confidence: int | None = None
    reason: str | None = None

    def to_dict(self) -> dict:
        data = {"code": self.code, "required_permits": list(self.required_permits), "category": self.category}
        if self.similarity is not None:
            data["similarity"] = round(self.similarity, 4)
        if self.confidence is not None:
            data["confidence"] = self.confidence
        if self.reason:
            data["reason"] = self.reason
        return data


@dataclass
class LayerOutcome:
    """Result of running a single layer against a single item."""
    layer: str
    status: str
    method: str
    confidence: int = 0
    matches: list[LayerMatch] = field(default_factory=list)
    details: dict = field(default_factory=dict)
    error: str | None = None

    @property
    def matched(self) -> bool:
        return self.status == MATCHED and bool(self.matches)

    @property
    def failed(self) -> bool:
        return self.status == FAILED

    @property
    def matched_codes(self) -> list[str]:
        return list(dict.fromkeys(m.code for m in self.matches))

    @property
    def required_permits(self) -> list[str]:
        return list(dict.fromkeys(p for m in self.matches for p in m.required_permits))

    def to_dict(self) -> dict:
        data = {
            "status": self.status,
            "confidence": self.confidence,
            "matched_codes": self.matched_codes,
            "method": self.method,
            "matches": [m.to_dict() for m in self.matches],
        }
        if self.details:
            data["details"] = self.details
        if self.error:
            data["error"] = self.error
        return data


class DetectionContext:
    """Per-item inputs shared by all layers; memoises the item embedding."""

    def __init__(self, item: ProductItem, catalog: Catalog, ruleset: Ruleset, embedder: EmbeddingProvider):
        self.item = item
        self.catalog = catalog
        self.ruleset = ruleset
        self.embedder = embedder
        self._embedding: list[float] | None = None
        self._embedding_error: EmbeddingProviderUnavailable | None = None

    async def item_embedding(self) -> list[float]:
        """Embed the item description once; a provider failure is replayed to every caller."""
        if self._embedding_error is not None:
            raise self._embedding_error
        if self._embedding is None:
            try:
                self._embedding = await self.embedder.embed(self.item.description)
            except EmbeddingProviderUnavailable as exc:
                self._embedding_error = exc
                raise
        return self._embedding

    async def rank_by_similarity(
        self, entries: list[CatalogEntry], threshold: float, limit: int,
    ) -> list[tuple[CatalogEntry, float]]:
        """Entries whose cosine similarity to the item exceeds `threshold`, best first."""
        candidates = [e for e in entries if e.embedding is not None]
        if not candidates:
            return []
        vector = await self.item_embedding()
        scored = [(e, cosine_similarity(vector, e.embedding)) for e in candidates]
        scored = [(e, s) for e, s in scored if s > threshold]
        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored[:limit]


class BaseLayer(ABC):
    """Abstract base class for all detection layers."""

    layer_name: str
    order: int
    method: str

    @abstractmethod
    async def evaluate(self, ctx: DetectionContext) -> LayerOutcome:
        """
        Run this layer against one product item.

        Args:
            ctx: DetectionContext with the item, catalog snapshot, ruleset
                 and embedding provider

        Returns:
            LayerOutcome with status, confidence and matched catalog entries
        """
        pass

    def _no_match(self, details: dict | None = None) -> LayerOutcome:
        """Helper for layers that ran and found nothing."""
        return LayerOutcome(layer=self.layer_name, status=NO_MATCH, method=self.method, details=details or {})

    def _skipped(self, reason: str) -> LayerOutcome:
        """Helper for layers whose preconditions are not met."""
        return LayerOutcome(layer=self.layer_name, status=SKIPPED, method=self.method, details={"reason": reason})

    def _matched(self, confidence: int, matches: list[LayerMatch], details: dict | None = None) -> LayerOutcome:
        """Helper for layers that fire."""
        if not matches:
            return self._no_match(details)
        return LayerOutcome(
            layer=self.layer_name,
            status=MATCHED,
            method=self.method,
            confidence=int(min(max(confidence, 0), 100)),
            matches=matches,
            details=details or {},
        )

    @staticmethod
    def entry_match(entry: CatalogEntry, **kwargs) -> LayerMatch:
        return LayerMatch(
            code=entry.code,
            required_permits=entry.required_permits,
            category=entry.category,
            **kwargs,
        )
