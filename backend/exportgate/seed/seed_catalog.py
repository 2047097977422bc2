"""
Seed the strategic item catalog.

Upserts every entry of STRATEGIC_ITEMS keyed by code and stores an embedding
of its description, keywords, category and subcategory. If the embedding
provider is down the entry is still written without a vector; semantic
layers simply skip it until the seed is re-run.

Run with: python -m exportgate.seed.seed_catalog [--no-embeddings]
"""

import asyncio
import logging
import sys
import time

from sqlalchemy.ext.asyncio import AsyncSession

from exportgate.config import settings
from exportgate.errors import EmbeddingProviderUnavailable
from exportgate.seed.catalog_data import CONTROL_LIST_SOURCE, EFFECTIVE_DATE, STRATEGIC_ITEMS, embedding_text
from exportgate.services.catalog import CatalogService
from exportgate.services.embedding import EmbeddingProvider, OllamaEmbeddingProvider

logger = logging.getLogger(__name__)


async def seed_catalog(
    session: AsyncSession,
    provider: EmbeddingProvider | None,
    items: list[dict] | None = None,
) -> dict:
    """Upsert catalog entries; returns counts of written and embedded entries."""
    rows = []
    embedded = 0
    for item in items if items is not None else STRATEGIC_ITEMS:
        vector = None
        if provider is not None:
            try:
                vector = await provider.embed(embedding_text(item))
                embedded += 1
            except EmbeddingProviderUnavailable as e:
                logger.warning("No embedding for %s: %s", item["code"], e.message)
        rows.append({
            **item,
            "embedding": vector,
            "control_list_source": item.get("control_list_source", CONTROL_LIST_SOURCE),
            "effective_date": item.get("effective_date", EFFECTIVE_DATE),
        })

    written = await CatalogService(session).upsert_entries(rows)
    return {"written": written, "embedded": embedded}


async def main():
    from exportgate.database import async_session, engine

    start = time.time()
    provider = None if "--no-embeddings" in sys.argv else OllamaEmbeddingProvider()

    async with async_session() as session:
        counts = await seed_catalog(session, provider)
        await session.commit()

    await engine.dispose()
    print(f"Catalog seed ({settings.embedding_model}) completed in {time.time() - start:.1f}s")
    print(f"  {counts['written']} entries written, {counts['embedded']} embedded")


if __name__ == "__main__":
    asyncio.run(main())
