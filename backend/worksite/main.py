import logging
import subprocess
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from worksite.api.attendance import router as attendance_router
from worksite.api.reports import router as reports_router
from worksite.api.workers import router as workers_router
from worksite.core.config import settings
from worksite.db.session import AsyncSessionLocal
from worksite.services.directory import DirectoryClient
from worksite.services.ledger import LedgerBook
from worksite.services.report_generator import ReportGenerator
from worksite.services.snapshot_store import SnapshotStore

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

BACKEND_DIR = Path(__file__).resolve().parents[1]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run Alembic migrations and wire the directory client and ledger services."""
    logger.info("Running Alembic migrations...")
    try:
        result = subprocess.run(
            ["alembic", "upgrade", "head"],
            capture_output=True,
            text=True,
            cwd=BACKEND_DIR,
        )
        if result.returncode != 0:
            logger.error("Alembic migration failed:\n%s", result.stderr)
        else:
            logger.info("Migrations applied successfully:\n%s", result.stdout)
    except Exception as exc:
        logger.exception("Failed to run migrations: %s", exc)

    directory = DirectoryClient()
    book = LedgerBook(SnapshotStore(AsyncSessionLocal))
    app.state.directory = directory
    app.state.book = book
    app.state.reports = ReportGenerator(directory, book)

    yield

    await directory.aclose()
    logger.info("Shutting down worksite attendance backend.")


app = FastAPI(
    title="Worksite Attendance API",
    description="Daily worker attendance, payments and PDF reports for construction sites.",
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

app.include_router(workers_router, prefix="/api/workers", tags=["Workers"])
app.include_router(attendance_router, prefix="/api/attendance", tags=["Attendance"])
app.include_router(reports_router, prefix="/api/reports", tags=["Reports"])


@app.get("/health", tags=["System"])
async def health_check() -> dict:
    return {"status": "ok"}
