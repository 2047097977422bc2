import logging
import traceback
from contextlib import asynccontextmanager

import httpx
import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from exportgate.bootstrap import initialize_core
from exportgate.config import settings
from exportgate.database import engine
from exportgate.errors import ExportGateError
from exportgate.middleware.logging_config import configure_logging

configure_logging(settings.log_level, settings.log_format)

from exportgate.api.shipments import router as shipments_router  # noqa: E402
from exportgate.api.strategic import router as strategic_router  # noqa: E402
from exportgate.api.permits import router as permits_router  # noqa: E402
from exportgate.api.compliance import router as compliance_router  # noqa: E402
from exportgate.api.reviews import router as reviews_router  # noqa: E402
from exportgate.api.audit import router as audit_router  # noqa: E402
from exportgate.api.catalog import router as catalog_router  # noqa: E402
from exportgate.api.metrics import router as metrics_router  # noqa: E402

logger = logging.getLogger("exportgate")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: verify DB connection, build core services once
    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))
    app.state.core = initialize_core(settings)
    yield
    # Shutdown
    await engine.dispose()


app = FastAPI(
    title="ExportGate Strategic Trade Compliance",
    description="Strategic item detection, permit ledger and export compliance gate",
    version="0.1.0",
    lifespan=lifespan,
)

# ── CORS ─────────────────────────────────────────────────────────────────────
origins = [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT"],
    allow_headers=["Content-Type", "X-Request-ID"],
)

# ── Request context middleware (request ID + timing) ─────────────────────────
from exportgate.middleware.request_context import RequestContextMiddleware  # noqa: E402

app.add_middleware(RequestContextMiddleware)

# ── Prometheus metrics middleware ────────────────────────────────────────────
from exportgate.middleware.metrics import PrometheusMiddleware  # noqa: E402

app.add_middleware(PrometheusMiddleware)


@app.exception_handler(ExportGateError)
async def export_gate_error_handler(request: Request, exc: ExportGateError):
    logger.warning("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return detailed error info in development mode so 500s are debuggable."""
    tb = traceback.format_exc()
    logger.error(
        "Unhandled %s on %s %s: %s\n%s",
        type(exc).__name__, request.method, request.url.path, exc, tb,
    )
    detail = f"{type(exc).__name__}: {exc}"
    if settings.environment == "development":
        return JSONResponse(
            status_code=500,
            content={"detail": detail, "traceback": tb.splitlines()[-5:]},
        )
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


# Register API routers
app.include_router(shipments_router)
app.include_router(strategic_router)
app.include_router(permits_router)
app.include_router(compliance_router)
app.include_router(reviews_router)
app.include_router(audit_router)
app.include_router(catalog_router)
app.include_router(metrics_router)


# ── Health check ─────────────────────────────────────────────────────────────

@app.get("/api/health")
async def health_check():
    components: dict = {}

    # Database
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        components["database"] = {"status": "connected"}
    except Exception as exc:
        components["database"] = {"status": "disconnected", "error": str(exc)}

    # Redis (maintenance queue only)
    try:
        r = aioredis.from_url(settings.redis_url, decode_responses=True)
        await r.ping()
        await r.aclose()
        components["redis"] = {"status": "connected"}
    except Exception as exc:
        components["redis"] = {"status": "disconnected", "error": str(exc)}

    # Embedding provider
    try:
        async with httpx.AsyncClient(timeout=3.0) as client:
            resp = await client.post(
                f"{settings.ollama_url}/api/show",
                json={"name": settings.embedding_model},
            )
        status = "ready" if resp.status_code == 200 else "loading"
        components["embedding"] = {"status": status, "model": settings.embedding_model}
    except httpx.HTTPError:
        components["embedding"] = {"status": "unavailable", "model": settings.embedding_model}

    # Embedding outages degrade semantic layers only
    db_ok = components["database"]["status"] == "connected"
    embed_ok = components["embedding"]["status"] == "ready"
    if not db_ok:
        overall = "unhealthy"
    elif embed_ok and components["redis"]["status"] == "connected":
        overall = "healthy"
    else:
        overall = "degraded"

    return {
        "status": overall,
        "environment": settings.environment,
        "components": components,
    }
