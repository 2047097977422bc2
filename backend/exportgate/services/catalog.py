"""
Strategic Item Catalog

Read-mostly reference set of controlled-item definitions. Detection works on
an immutable `Catalog` snapshot loaded once from the `strategic_items` table;
only catalog maintenance (`upsert_entries`) writes rows.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from exportgate.clock import utcnow
from exportgate.models import StrategicItem
from exportgate.rules.ruleset import normalize_hs_code

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogEntry:
    code: str
    description: str
    category: str
    subcategory: str | None
    keywords: tuple[str, ...]
    technical_thresholds: dict = field(hash=False, compare=False)
    embedding: tuple[float, ...] | None
    required_permits: tuple[str, ...]
    permit_deadlines: dict = field(hash=False, compare=False)

    @property
    def hs_code_patterns(self) -> tuple[str, ...]:
        return tuple(self.technical_thresholds.get("hs_code_patterns", ()))

    def matches_hs_code(self, hs_code: str | None) -> bool:
        code = normalize_hs_code(hs_code)
        if not code:
            return False
        return any(code.startswith(normalize_hs_code(p)) for p in self.hs_code_patterns)

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "description": self.description,
            "category": self.category,
            "subcategory": self.subcategory,
            "keywords": list(self.keywords),
            "technical_thresholds": self.technical_thresholds,
            "required_permits": list(self.required_permits),
            "permit_deadlines": self.permit_deadlines,
            "has_embedding": self.embedding is not None,
        }

    @classmethod
    def from_row(cls, row: StrategicItem) -> "CatalogEntry":
        return cls(
            code=row.code,
            description=row.description,
            category=row.category,
            subcategory=row.subcategory,
            keywords=tuple(row.keywords or ()),
            technical_thresholds=dict(row.technical_thresholds or {}),
            embedding=tuple(row.embedding) if row.embedding else None,
            required_permits=tuple(row.required_permits or ()),
            permit_deadlines=dict(row.permit_deadlines or {}),
        )


class Catalog:
    """Immutable snapshot of the catalog, indexed by code."""

    def __init__(self, entries: list[CatalogEntry]):
        self._entries = tuple(entries)
        self._by_code = {e.code: e for e in self._entries}

    def __iter__(self):
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, code: str) -> CatalogEntry | None:
        return self._by_code.get(code)

    def in_categories(self, categories: list[str]) -> list[CatalogEntry]:
        wanted = {c.lower() for c in categories}
        return [e for e in self._entries if e.category.lower() in wanted]

    def with_embeddings(self) -> list[CatalogEntry]:
        return [e for e in self._entries if e.embedding is not None]


class CatalogService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def load(self) -> Catalog:
        result = await self.session.execute(select(StrategicItem).order_by(StrategicItem.code))
        entries = [CatalogEntry.from_row(row) for row in result.scalars()]
        logger.debug("Loaded catalog snapshot with %d entries", len(entries))
        return Catalog(entries)

    async def upsert_entries(self, items: list[dict]) -> int:
        """Insert or update catalog rows keyed by code. Returns number written."""
        count = 0
        for item in items:
            existing = (
                await self.session.execute(
                    select(StrategicItem).where(StrategicItem.code == item["code"])
                )
            ).scalar_one_or_none()
            if existing is None:
                self.session.add(StrategicItem(**item))
            else:
                for key, value in item.items():
                    setattr(existing, key, value)
                existing.updated_at = utcnow()
            count += 1
        await self.session.flush()
        return count
