# src/app/main.py
from __future__ import annotations
import logging
import sys
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.app.config import settings
from src.app.routers.authors import router as authors_router
from src.app.routers.extract import router as extract_router
from src.app.routers.jobs import router as jobs_router
from src.app.routers.recipes import router as recipes_router
from src.services import extraction_queue

# Plain stdout logging (fine for dev and containers)
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
# httpx logs every request at INFO
logging.getLogger("httpx").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

app = FastAPI(title="Recipe Extraction API", version="0.3.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.FRONTEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(extract_router)
app.include_router(authors_router)
app.include_router(recipes_router)
# Internal, token-guarded
app.include_router(jobs_router)


@app.on_event("startup")
async def startup() -> None:
    await extraction_queue.start_worker()
    logger.info("Recipe extraction API started: env=%s workers=%d", settings.APP_ENV, settings.EXTRACTION_WORKERS)


@app.on_event("shutdown")
async def shutdown() -> None:
    await extraction_queue.stop_worker()


@app.get("/health")
def health():
    return {"ok": True, "queueRunning": extraction_queue.get_queue().running}
