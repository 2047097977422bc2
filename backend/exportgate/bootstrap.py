"""
Core bootstrap.

`initialize_core` runs once at process start (API lifespan, worker startup)
and builds the long-lived collaborators every request shares. Services
receive the resulting CoreServices explicitly.
"""

import logging
from dataclasses import dataclass

from exportgate.config import Settings
from exportgate.permits.registry import PermitRegistry, build_registry
from exportgate.rules.ruleset import Ruleset, load_ruleset
from exportgate.services.compliance_gate import ShipmentLocks
from exportgate.services.detection_engine import DetectionEngine
from exportgate.services.embedding import EmbeddingProvider, OllamaEmbeddingProvider
from exportgate.storage import StorageBackend, create_storage

logger = logging.getLogger(__name__)


@dataclass
class CoreServices:
    ruleset: Ruleset
    embedder: EmbeddingProvider
    engine: DetectionEngine
    storage: StorageBackend
    permits: PermitRegistry
    locks: ShipmentLocks


def initialize_core(
    settings: Settings,
    embedder: EmbeddingProvider | None = None,
    storage: StorageBackend | None = None,
) -> CoreServices:
    ruleset = load_ruleset(settings.ruleset_path or None)
    embedder = embedder or OllamaEmbeddingProvider(
        settings.ollama_url,
        settings.embedding_model,
        dimensions=settings.embedding_dimensions,
        timeout=settings.embedding_timeout_seconds,
        max_retries=settings.embedding_max_retries,
        backoff=settings.embedding_backoff_seconds,
    )
    engine = DetectionEngine(ruleset, embedder)
    core = CoreServices(
        ruleset=ruleset,
        embedder=embedder,
        engine=engine,
        storage=storage or create_storage(settings.storage_path),
        permits=build_registry(settings.max_permit_file_bytes),
        locks=ShipmentLocks(),
    )
    logger.info(
        "Core initialised: ruleset %s, %d detection layers, %d permit types",
        ruleset.version, engine.get_layer_count(), len(core.permits.codes()),
    )
    return core
