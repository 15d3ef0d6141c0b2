import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.middleware.tenant import TenantMiddleware
from app.middleware.exceptions import register_exception_handlers
from app.routers import batches, health, lots, packaging, recipes, tanks

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="BrewLot",
    description="Brewery lot lineage: fermentation, splits, blends and packaging",
    version="0.1.0",
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware (outermost first) ─────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Tenant context (innermost - processes request data)
app.add_middleware(TenantMiddleware)

# ── Routers ──────────────────────────────────────────────────
# Public (no tenant context needed)
app.include_router(health.router)

# Tenant-scoped (require tenant_id in JWT)
app.include_router(recipes.router, prefix="/api/recipes", tags=["recipes"])
app.include_router(tanks.router, prefix="/api/tanks", tags=["tanks"])
app.include_router(batches.router, prefix="/api/batches", tags=["batches"])
app.include_router(lots.router, prefix="/api/lots", tags=["lots"])
app.include_router(packaging.router, prefix="/api/packaging", tags=["packaging"])
