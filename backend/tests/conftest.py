"""Shared test fixtures for backend tests."""

import os

os.environ["EXPORTGATE_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

from typing import AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import exportgate.models  # noqa: E402,F401
from exportgate.api.deps import get_db  # noqa: E402
from exportgate.bootstrap import CoreServices, initialize_core  # noqa: E402
from exportgate.config import settings  # noqa: E402
from exportgate.database import Base  # noqa: E402
from exportgate.errors import EmbeddingProviderUnavailable  # noqa: E402
from exportgate.main import app  # noqa: E402
from exportgate.models import Shipment  # noqa: E402
from exportgate.services.compliance_gate import ComplianceGate  # noqa: E402
from exportgate.services.detection_orchestrator import DetectionOrchestrator  # noqa: E402
from exportgate.services.permit_ledger import PermitLedger  # noqa: E402
from exportgate.services.review_queue import ReviewQueue  # noqa: E402
from exportgate.storage import LocalStorage  # noqa: E402


class FakeEmbeddingProvider:
    """Deterministic embedder: the first registered phrase found in the text picks the vector."""

    dimensions = 4

    def __init__(self, vectors: dict[str, list[float]] | None = None, fail: bool = False):
        self.vectors = vectors or {}
        self.fail = fail
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail:
            raise EmbeddingProviderUnavailable("embedding provider down")
        for phrase, vector in self.vectors.items():
            if phrase.lower() in text.lower():
                return list(vector)
        return [0.0, 0.0, 0.0, 1.0]


@pytest.fixture
def fake_embedder() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def embedder_factory():
    return FakeEmbeddingProvider


@pytest.fixture
def storage(tmp_path) -> LocalStorage:
    return LocalStorage(str(tmp_path / "permits"))


@pytest.fixture
def core(fake_embedder, storage) -> CoreServices:
    return initialize_core(settings, embedder=fake_embedder, storage=storage)


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database per test."""
    TestSession = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with TestSession() as session:
        yield session


@pytest_asyncio.fixture
async def shipment(db_session: AsyncSession) -> Shipment:
    s = Shipment(shipment_id="SHP-2025-0001", reference="INV-88812", destination_country="SG")
    db_session.add(s)
    await db_session.flush()
    return s


@pytest.fixture
def gate(db_session, core) -> ComplianceGate:
    return ComplianceGate(db_session, core.locks)


@pytest.fixture
def ledger(db_session, core, gate) -> PermitLedger:
    return PermitLedger(db_session, core.permits, core.storage, gate)


@pytest.fixture
def orchestrator(db_session, core, gate) -> DetectionOrchestrator:
    return DetectionOrchestrator(db_session, core.engine, core.permits, gate)


@pytest.fixture
def review_queue(db_session, gate) -> ReviewQueue:
    return ReviewQueue(db_session, gate)


def _override_db(session: AsyncSession):
    """Create a dependency override for get_db."""
    async def _get_db():
        yield session
    return _get_db


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, core: CoreServices) -> AsyncGenerator[AsyncClient, None]:
    app.state.core = core
    app.dependency_overrides[get_db] = _override_db(db_session)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def seeded_catalog(db_session: AsyncSession) -> dict:
    """Control-list extract written without embeddings."""
    from exportgate.seed.seed_catalog import seed_catalog
    return await seed_catalog(db_session, None)


async def _add_detection(
    session: AsyncSession,
    shipment_id: str,
    description: str,
    required_permits: list[str],
    *,
    index: int = 0,
    confidence: int = 95,
    determination: str = "strategic",
):
    """Store a DetectionResult directly, bypassing the engine."""
    from uuid import uuid4

    from exportgate.models import DetectionResult

    strategic = determination == "strategic"
    row = DetectionResult(
        result_id=str(uuid4()),
        shipment_id=shipment_id,
        item_index=index,
        item_description=description,
        final_confidence=confidence if strategic else 0,
        is_strategic=strategic,
        determination=determination,
        strategic_codes=["CUSTOM.1"] if strategic else [],
        required_permits=required_permits if strategic else [],
        export_blocked=strategic,
        compliance_state="DETECTED" if strategic else (
            "PENDING_REVIEW" if determination == "indeterminate" else "NOT_CONTROLLED"
        ),
        manual_review_required=determination == "indeterminate",
        ruleset_version="test",
    )
    session.add(row)
    await session.flush()
    return row


@pytest.fixture
def add_detection(db_session: AsyncSession):
    async def _add(shipment_id: str, description: str, required_permits: list[str], **kwargs):
        return await _add_detection(db_session, shipment_id, description, required_permits, **kwargs)
    return _add
