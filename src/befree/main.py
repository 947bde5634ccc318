import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.befree.api.v1.routes_reference import router as reference_router_v1
from src.befree.api.v1.routes_referrals import router as referrals_router_v1
from src.befree.api.v1.routes_screenings import router as screenings_router_v1
from src.befree.api.v1.routes_system import router as system_router_v1
from src.befree.config import settings
from src.befree.infra.db.bootstrap import init_sql_document_store

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

app = FastAPI(title="BeFree Screening and Referral API")


@app.on_event("startup")
async def on_startup() -> None:
    """Application startup hook.

    When USE_SQL_REPOS is enabled and a DATABASE_URL is configured, this
    switches the process-wide document store to the SQL-backed one. In other
    environments (tests, local dev without a database), this is a no-op and
    the in-memory store remains active.
    """

    init_sql_document_store()

# Allowed origins come from CORS_ALLOW_ORIGINS; "*" when unset.
allow_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()] or ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["system"])
async def health_check() -> dict:
    """Basic liveness check for the API root."""
    return {"status": "ok"}


# Versioned API routers
app.include_router(system_router_v1, prefix="/api/v1")
app.include_router(screenings_router_v1, prefix="/api/v1")
app.include_router(referrals_router_v1, prefix="/api/v1")
app.include_router(reference_router_v1, prefix="/api/v1")
