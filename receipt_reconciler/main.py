import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from receipt_reconciler.core.config import settings
from receipt_reconciler.core.database import engine, Base
from receipt_reconciler.core.logging import configure_logging
from receipt_reconciler.api.deps import get_task_runner
from receipt_reconciler.api.rest import api_router
from receipt_reconciler.api.graphql.router import graphql_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level, settings.log_json)
    # Create database tables
    Base.metadata.create_all(bind=engine)
    Path(settings.storage_dir).mkdir(parents=True, exist_ok=True)
    logger.info("receipt reconciler started")
    yield
    get_task_runner().shutdown(wait=True)
    get_task_runner.cache_clear()


app = FastAPI(
    title="Receipt Reconciliation API",
    description="Multi-tenant bank transaction and receipt reconciliation with hybrid OCR",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(api_router, prefix="/api")
app.include_router(graphql_router, prefix="/graphql")
app.mount("/receipts", StaticFiles(directory=settings.storage_dir, check_dir=False), name="receipts")


@app.get("/")
def root():
    return {"message": "Receipt Reconciliation API", "version": "1.0.0"}


@app.get("/health")
def health():
    return {"status": "healthy"}
