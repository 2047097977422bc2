"""Tests for the layered detection engine and score fusion."""

import pytest

from exportgate.layers.base import BaseLayer, DetectionContext, LayerMatch, LayerOutcome, ProductItem
from exportgate.rules.ruleset import load_ruleset
from exportgate.seed.catalog_data import STRATEGIC_ITEMS
from exportgate.services.catalog import Catalog, CatalogEntry
from exportgate.services.detection_engine import (
    INDETERMINATE,
    NOT_STRATEGIC,
    STRATEGIC,
    DetectionEngine,
    discover_layers,
)


def make_catalog(embeddings: dict[str, list[float]] | None = None) -> Catalog:
    embeddings = embeddings or {}
    entries = []
    for item in STRATEGIC_ITEMS:
        vector = embeddings.get(item["code"])
        entries.append(CatalogEntry(
            code=item["code"],
            description=item["description"],
            category=item["category"],
            subcategory=item.get("subcategory"),
            keywords=tuple(item["keywords"]),
            technical_thresholds=item["technical_thresholds"],
            embedding=tuple(vector) if vector else None,
            required_permits=tuple(item["required_permits"]),
            permit_deadlines=item["permit_deadlines"],
        ))
    return Catalog(entries)


class StubLayer(BaseLayer):
    method = "stub"

    def __init__(self, name: str, order: int, confidence: int = 0, code: str | None = None,
                 permits: tuple[str, ...] = (), error: Exception | None = None):
        self.layer_name = name
        self.order = order
        self.confidence = confidence
        self.code = code
        self.permits = permits
        self.error = error
        self.calls = 0

    async def evaluate(self, ctx: DetectionContext) -> LayerOutcome:
        self.calls += 1
        if self.error is not None:
            raise self.error
        if self.code is None:
            return self._no_match()
        return self._matched(self.confidence, [LayerMatch(code=self.code, required_permits=self.permits)])


# ── Layer discovery ──────────────────────────────────────────────────────────

class TestDiscovery:
    def test_five_layers_in_order(self):
        layers = discover_layers()
        assert [l.layer_name for l in layers] == [
            "exact_match", "semantic_search", "technical_specs", "hs_code_rag", "keywords_rag",
        ]


# ── Fusion ───────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestFusion:
    async def test_final_confidence_is_max_not_sum(self, fake_embedder):
        layers = [
            StubLayer("a", 1, confidence=60, code="X.1", permits=("STA_2010",)),
            StubLayer("b", 2, confidence=90, code="Y.2", permits=("AICA",)),
        ]
        engine = DetectionEngine(load_ruleset(), fake_embedder, layers)
        result = await engine.evaluate_item(ProductItem("widget"), make_catalog())

        assert result.final_confidence == 90
        assert result.is_strategic is True
        assert result.determination == STRATEGIC

    async def test_codes_and_permits_union_includes_losing_layer(self, fake_embedder):
        layers = [
            StubLayer("a", 1, confidence=60, code="X.1", permits=("STA_2010", "TechDocs")),
            StubLayer("b", 2, confidence=90, code="Y.2", permits=("AICA", "STA_2010")),
        ]
        engine = DetectionEngine(load_ruleset(), fake_embedder, layers)
        result = await engine.evaluate_item(ProductItem("widget"), make_catalog())

        assert result.strategic_codes == ["X.1", "Y.2"]
        assert result.required_permits == ["STA_2010", "TechDocs", "AICA"]

    async def test_below_threshold_is_not_strategic(self, fake_embedder):
        layers = [StubLayer("a", 1, confidence=59, code="X.1", permits=("STA_2010",))]
        engine = DetectionEngine(load_ruleset(), fake_embedder, layers)
        result = await engine.evaluate_item(ProductItem("widget"), make_catalog())

        assert result.final_confidence == 59
        assert result.is_strategic is False
        assert result.export_blocked is False
        assert result.determination == NOT_STRATEGIC

    async def test_low_confidence_strategic_needs_review(self, fake_embedder):
        layers = [StubLayer("a", 1, confidence=65, code="X.1")]
        engine = DetectionEngine(load_ruleset(), fake_embedder, layers)
        result = await engine.evaluate_item(ProductItem("widget"), make_catalog())

        assert result.is_strategic is True
        assert result.manual_review_required is True

    async def test_high_confidence_strategic_skips_review(self, fake_embedder):
        layers = [StubLayer("a", 1, confidence=70, code="X.1")]
        engine = DetectionEngine(load_ruleset(), fake_embedder, layers)
        result = await engine.evaluate_item(ProductItem("widget"), make_catalog())

        assert result.manual_review_required is False


# ── Fault isolation ──────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestLayerFailures:
    async def test_raising_layer_is_failed_and_others_still_run(self, fake_embedder):
        broken = StubLayer("broken", 1, error=RuntimeError("index corrupted"))
        healthy = StubLayer("healthy", 2, confidence=80, code="X.1", permits=("STA_2010",))
        engine = DetectionEngine(load_ruleset(), fake_embedder, [broken, healthy])

        result = await engine.evaluate_item(ProductItem("widget"), make_catalog())

        assert healthy.calls == 1
        outcomes = result.layers_dict()
        assert outcomes["broken"]["status"] == "failed"
        assert "index corrupted" in outcomes["broken"]["error"]
        assert result.failed_layers == ["broken"]
        assert result.final_confidence == 80
        assert result.determination == STRATEGIC

    async def test_failure_without_match_is_indeterminate(self, fake_embedder):
        layers = [
            StubLayer("broken", 1, error=RuntimeError("boom")),
            StubLayer("empty", 2),
        ]
        engine = DetectionEngine(load_ruleset(), fake_embedder, layers)
        result = await engine.evaluate_item(ProductItem("widget"), make_catalog())

        assert result.determination == INDETERMINATE
        assert result.is_strategic is False
        assert result.final_confidence == 0
        assert result.manual_review_required is True

    async def test_clean_no_match_is_not_strategic(self, fake_embedder):
        engine = DetectionEngine(load_ruleset(), fake_embedder, [StubLayer("empty", 1)])
        result = await engine.evaluate_item(ProductItem("widget"), make_catalog())

        assert result.determination == NOT_STRATEGIC
        assert result.manual_review_required is False

    async def test_embedding_outage_degrades_semantic_layers_only(self, embedder_factory):
        embedder = embedder_factory(fail=True)
        catalog = make_catalog({"3A001.a.1": [1.0, 0.0, 0.0, 0.0], "4A003.u": [0.0, 1.0, 0.0, 0.0]})
        engine = DetectionEngine(load_ruleset(), embedder)

        result = await engine.evaluate_item(
            ProductItem("PCIe AI accelerator card", hs_code="8542.31.00"), catalog,
        )

        outcomes = result.layers_dict()
        assert outcomes["semantic_search"]["status"] == "failed"
        assert outcomes["hs_code_rag"]["status"] == "failed"
        assert outcomes["exact_match"]["status"] == "matched"
        assert outcomes["technical_specs"]["status"] == "matched"
        assert result.is_strategic is True
        assert result.final_confidence == 95
        # Embedding is attempted once per item, then replayed
        assert len(embedder.calls) == 1


# ── Individual layers with the default ruleset ───────────────────────────────

@pytest.mark.asyncio
class TestDefaultLayers:
    async def test_exact_keyword_match_confidence_95(self, fake_embedder):
        engine = DetectionEngine(load_ruleset(), fake_embedder)
        result = await engine.evaluate_item(
            ProductItem("Rack server with AI accelerator boards"), make_catalog(),
        )

        exact = result.layers_dict()["exact_match"]
        assert exact["status"] == "matched"
        assert exact["confidence"] == 95
        assert "3A001.a.1" in exact["matched_codes"]

    async def test_exact_match_on_stored_hs_pattern(self, fake_embedder):
        engine = DetectionEngine(load_ruleset(), fake_embedder)
        result = await engine.evaluate_item(
            ProductItem("Switch chassis, 48 port", hs_code="8517.62.00"), make_catalog(),
        )

        exact = result.layers_dict()["exact_match"]
        assert exact["matched_codes"] == ["5A002.a"]
        assert result.required_permits[:2] == ["STA_2010", "SIRIM"]

    async def test_semantic_layer_uses_top_similarity(self, embedder_factory):
        embedder = embedder_factory({"tensor module": [1.0, 0.0, 0.0, 0.0]})
        catalog = make_catalog({"3A001.a.1": [1.0, 0.0, 0.0, 0.0]})
        engine = DetectionEngine(load_ruleset(), embedder)

        result = await engine.evaluate_item(ProductItem("Tensor module, boxed"), catalog)

        semantic = result.layers_dict()["semantic_search"]
        assert semantic["status"] == "matched"
        assert semantic["confidence"] == 100
        assert semantic["matched_codes"] == ["3A001.a.1"]

    async def test_semantic_layer_threshold(self, embedder_factory):
        embedder = embedder_factory({"tensor module": [0.8, 0.6, 0.0, 0.0]})
        catalog = make_catalog({"3A001.a.1": [1.0, 0.0, 0.0, 0.0]})
        engine = DetectionEngine(load_ruleset(), embedder)

        result = await engine.evaluate_item(ProductItem("Tensor module, boxed"), catalog)

        assert result.layers_dict()["semantic_search"]["status"] == "no_match"

    async def test_technical_spec_threshold_rule(self, fake_embedder):
        engine = DetectionEngine(load_ruleset(), fake_embedder)
        result = await engine.evaluate_item(
            ProductItem("Compute module", technical_specs={"processNode": "7nm"}), make_catalog(),
        )

        specs = result.layers_dict()["technical_specs"]
        assert specs["status"] == "matched"
        assert specs["confidence"] == 90
        assert specs["matched_codes"] == ["3A001.a.1"]

    async def test_memory_capacity_rule(self, fake_embedder):
        engine = DetectionEngine(load_ruleset(), fake_embedder)
        result = await engine.evaluate_item(ProductItem("Server memory kit 128GB"), make_catalog())

        specs = result.layers_dict()["technical_specs"]
        assert "3A001.a.3" in specs["matched_codes"]

    async def test_hs_code_layer_skipped_without_hs_code(self, fake_embedder):
        engine = DetectionEngine(load_ruleset(), fake_embedder)
        result = await engine.evaluate_item(ProductItem("Office chair"), make_catalog())

        assert result.layers_dict()["hs_code_rag"]["status"] == "skipped"

    async def test_hs_code_layer_validates_semantically(self, embedder_factory):
        embedder = embedder_factory({"board": [0.7, 0.7, 0.0, 0.0]})
        catalog = make_catalog({"4A003.u": [1.0, 0.0, 0.0, 0.0]})
        engine = DetectionEngine(load_ruleset(), embedder)

        result = await engine.evaluate_item(ProductItem("Mainboard", hs_code="8471.50"), catalog)

        hs = result.layers_dict()["hs_code_rag"]
        assert hs["status"] == "matched"
        assert hs["confidence"] == 70
        assert hs["matched_codes"] == ["4A003.u"]
        assert hs["details"]["hs_prefix"] == "8471"

    async def test_keyword_layer_low_confidence(self, embedder_factory):
        embedder = embedder_factory({"military-grade": [0.0, 0.7, 0.7, 0.0]})
        catalog = make_catalog({"5D002": [0.0, 1.0, 0.0, 0.0]})
        engine = DetectionEngine(load_ruleset(), embedder)

        result = await engine.evaluate_item(ProductItem("Military-grade encryption module"), catalog)

        keywords = result.layers_dict()["keywords_rag"]
        assert keywords["status"] == "matched"
        assert keywords["details"]["found_keywords"] == ["encryption", "military"]
        assert result.final_confidence == 60
        assert result.is_strategic is True
        assert result.manual_review_required is True
        assert "CyberSecurity" in result.required_permits


# ── End-to-end scenarios ─────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestScenarios:
    async def test_gpu_card_is_strategic(self, fake_embedder):
        engine = DetectionEngine(load_ruleset(), fake_embedder)
        item = ProductItem(
            "NVIDIA GeForce RTX 4090 graphics card with AI accelerator",
            hs_code="8473.30.90",
            technical_specs={"tpp": 5285},
        )
        result = await engine.evaluate_item(item, make_catalog())

        assert result.is_strategic is True
        assert result.export_blocked is True
        assert result.final_confidence >= 80
        assert "STA_2010" in result.required_permits
        assert "3A001.a.1" in result.strategic_codes

    async def test_tx4090_accelerator_cards(self, fake_embedder):
        engine = DetectionEngine(load_ruleset(), fake_embedder)
        item = ProductItem("AI Accelerator Cards - Model TX4090", hs_code="8473.30.90")
        result = await engine.evaluate_item(item, make_catalog())

        specs = result.layers_dict()["technical_specs"]
        assert specs["status"] == "matched"
        assert specs["confidence"] >= 80
        assert result.is_strategic is True
        assert "STA_2010" in result.required_permits

    async def test_standard_packaging_tape(self, fake_embedder):
        engine = DetectionEngine(load_ruleset(), fake_embedder)
        result = await engine.evaluate_item(ProductItem("Standard Packaging Tape", hs_code="3919.10"), make_catalog())

        assert result.final_confidence == 0
        assert result.is_strategic is False
        assert result.export_blocked is False

    async def test_packaging_tape_is_not_controlled(self, fake_embedder):
        engine = DetectionEngine(load_ruleset(), fake_embedder)
        item = ProductItem("Polypropylene packaging tape 48mm x 100m, clear", hs_code="3919.10")
        result = await engine.evaluate_item(item, make_catalog())

        assert result.final_confidence == 0
        assert result.is_strategic is False
        assert result.export_blocked is False
        assert result.determination == NOT_STRATEGIC
        assert result.required_permits == []
        assert result.failed_layers == []

    async def test_ceramic_floor_tiles_do_not_match_ram_keyword(self, fake_embedder):
        engine = DetectionEngine(load_ruleset(), fake_embedder)
        item = ProductItem("Ceramic floor tiles", hs_code="6907.21")
        result = await engine.evaluate_item(item, make_catalog())

        assert result.layers_dict()["exact_match"]["status"] == "no_match"
        assert result.final_confidence == 0
        assert result.is_strategic is False
        assert result.required_permits == []

    async def test_exact_keyword_needs_whole_word(self, fake_embedder):
        engine = DetectionEngine(load_ruleset(), fake_embedder)

        framed = await engine.evaluate_item(ProductItem("Paramount picture frame"), make_catalog())
        assert framed.layers_dict()["exact_match"]["status"] == "no_match"

        memory = await engine.evaluate_item(ProductItem("32GB RAM stick"), make_catalog())
        exact = memory.layers_dict()["exact_match"]
        assert exact["status"] == "matched"
        assert "3A001.a.3" in exact["matched_codes"]
