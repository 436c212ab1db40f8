import logging
import subprocess
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from checkin_console.api.auth import router as auth_router
from checkin_console.api.checkins import router as checkins_router
from checkin_console.api.employees import router as employees_router
from checkin_console.api.reports import router as reports_router
from checkin_console.core.config import settings
from checkin_console.services.geocoding import close_geocoding_resolver

logger = logging.getLogger(__name__)

_PROJECT_ROOT = Path(__file__).resolve().parent.parent


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run Alembic migrations on startup and release the geocoding client on shutdown."""
    logger.info("Running Alembic migrations...")
    try:
        result = subprocess.run(
            ["alembic", "upgrade", "head"],
            capture_output=True,
            text=True,
            cwd=_PROJECT_ROOT,
        )
        if result.returncode != 0:
            logger.error("Alembic migration failed:\n%s", result.stderr)
        else:
            logger.info("Migrations applied successfully:\n%s", result.stdout)
    except OSError as exc:
        logger.exception("Failed to run migrations: %s", exc)

    yield

    await close_geocoding_resolver()
    logger.info("Shutting down check-in monitoring backend.")


app = FastAPI(
    title="Check-in Monitoring API",
    description="Painel administrativo de monitoramento de check-ins e relatórios.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router, prefix="/api/auth", tags=["Auth"])
app.include_router(employees_router, prefix="/api/employees", tags=["Employees"])
app.include_router(checkins_router, prefix="/api/checkins", tags=["Check-ins"])
app.include_router(reports_router, prefix="/api/reports", tags=["Reports"])


@app.get("/health", tags=["System"])
async def health_check() -> dict:
    return {"status": "ok"}
