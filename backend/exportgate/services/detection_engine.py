"""
Detection Engine

Discovers all detection layers, runs them in order against one product item,
and fuses their outcomes into a single verdict.

Fusion:
  final_confidence = max(confidence of layers that matched), 0 if none
  is_strategic     = final_confidence >= ruleset.strategic_threshold (60)
  strategic_codes / required_permits = ordered union over every matched layer,
  including layers that did not set the final confidence.

A layer that raises is recorded as `failed` and the remaining layers still
run. An item that no layer matched but where at least one layer failed is
`indeterminate`, never `not_strategic`.
"""

import importlib
import logging
import pkgutil
from dataclasses import dataclass, field

from exportgate.errors import EmbeddingProviderUnavailable, LayerFailure
from exportgate.layers.base import FAILED, BaseLayer, DetectionContext, LayerOutcome, ProductItem
from exportgate.middleware.metrics import detection_items_total, detection_layer_failures_total
from exportgate.rules.ruleset import Ruleset
from exportgate.services.catalog import Catalog
from exportgate.services.embedding import EmbeddingProvider

logger = logging.getLogger(__name__)

STRATEGIC = "strategic"
NOT_STRATEGIC = "not_strategic"
INDETERMINATE = "indeterminate"


@dataclass
class ItemDetection:
    """Fused verdict for one product item."""
    item: ProductItem
    layer_outcomes: list[LayerOutcome]
    final_confidence: int
    is_strategic: bool
    determination: str
    strategic_codes: list[str] = field(default_factory=list)
    required_permits: list[str] = field(default_factory=list)
    manual_review_required: bool = False
    ruleset_version: str = ""

    @property
    def export_blocked(self) -> bool:
        return self.is_strategic

    @property
    def failed_layers(self) -> list[str]:
        return [o.layer for o in self.layer_outcomes if o.failed]

    def layers_dict(self) -> dict:
        return {o.layer: o.to_dict() for o in self.layer_outcomes}


def discover_layers(package_name: str = "exportgate.layers") -> list[BaseLayer]:
    """Instantiate every BaseLayer subclass found in the layers package, sorted by order."""
    package = importlib.import_module(package_name)
    found: dict[str, BaseLayer] = {}
    for _importer, modname, _ispkg in pkgutil.iter_modules(package.__path__):
        if modname == "base":
            continue
        module = importlib.import_module(f"{package_name}.{modname}")
        for attr_name in dir(module):
            attr = getattr(module, attr_name)
            if (
                isinstance(attr, type)
                and issubclass(attr, BaseLayer)
                and attr is not BaseLayer
                and hasattr(attr, "layer_name")
            ):
                instance = attr()
                found[instance.layer_name] = instance
    return sorted(found.values(), key=lambda layer: layer.order)


class DetectionEngine:
    """Runs the detection layers against single items and fuses the results."""

    def __init__(
        self,
        ruleset: Ruleset,
        embedder: EmbeddingProvider,
        layers: list[BaseLayer] | None = None,
    ):
        self.ruleset = ruleset
        self.embedder = embedder
        self.layers = layers if layers is not None else discover_layers()

    async def evaluate_item(self, item: ProductItem, catalog: Catalog) -> ItemDetection:
        ctx = DetectionContext(item, catalog, self.ruleset, self.embedder)
        outcomes = []

        for layer in self.layers:
            try:
                outcome = await layer.evaluate(ctx)
            except EmbeddingProviderUnavailable as e:
                detection_layer_failures_total.labels(layer=layer.layer_name).inc()
                logger.warning("Layer %s degraded: %s", layer.layer_name, e.message)
                outcome = self._failed(layer, str(e))
            except Exception as e:
                failure = LayerFailure(layer.layer_name, e)
                detection_layer_failures_total.labels(layer=layer.layer_name).inc()
                logger.exception("%s", failure.message)
                outcome = self._failed(layer, str(e)[:200])
            outcomes.append(outcome)

        detection = self.fuse(item, outcomes)
        detection_items_total.labels(determination=detection.determination).inc()
        return detection

    def fuse(self, item: ProductItem, outcomes: list[LayerOutcome]) -> ItemDetection:
        matched = [o for o in outcomes if o.matched]
        final_confidence = max((o.confidence for o in matched), default=0)
        is_strategic = final_confidence >= self.ruleset.strategic_threshold

        codes = list(dict.fromkeys(code for o in matched for code in o.matched_codes))
        permits = list(dict.fromkeys(p for o in matched for p in o.required_permits))

        if is_strategic:
            determination = STRATEGIC
        elif not matched and any(o.failed for o in outcomes):
            determination = INDETERMINATE
        else:
            determination = NOT_STRATEGIC

        manual_review = (
            is_strategic and final_confidence < self.ruleset.manual_review_below
        ) or determination == INDETERMINATE

        return ItemDetection(
            item=item,
            layer_outcomes=outcomes,
            final_confidence=final_confidence,
            is_strategic=is_strategic,
            determination=determination,
            strategic_codes=codes,
            required_permits=permits,
            manual_review_required=manual_review,
            ruleset_version=self.ruleset.version,
        )

    @staticmethod
    def _failed(layer: BaseLayer, error: str) -> LayerOutcome:
        return LayerOutcome(layer=layer.layer_name, status=FAILED, method=layer.method, error=error)

    def get_layer_count(self) -> int:
        return len(self.layers)
