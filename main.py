from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text
import logging
import os

from groupchat.api import graphql, uploads
from groupchat.websocket import router as websocket_router
from groupchat.websocket.manager import manager
from groupchat.core.config import settings
from groupchat.db.database import engine
from groupchat.db.init_db import init
import cleanup

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ===== startup =====
    # workers started with SKIP_DB_INIT=1 leave DDL to the first process
    if os.environ.get("SKIP_DB_INIT") != "1":
        try:
            init()
        except Exception as e:
            logger.error(f"Database init failed: {e}")
    scheduler = cleanup.start_scheduler()

    yield

    # ===== shutdown =====
    cleanup.stop_scheduler(scheduler)


app = FastAPI(
    title="Group Chat",
    lifespan=lifespan
)

os.makedirs(settings.STATIC_DIR, exist_ok=True)
app.mount("/static", StaticFiles(directory=settings.STATIC_DIR), name="static")

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS_LIST,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(graphql.router, tags=["GraphQL"])
app.include_router(uploads.router, prefix="/api/groups", tags=["Uploads"])
app.include_router(websocket_router.router, tags=["WebSocket"])


@app.get("/")
def root():
    return {"msg": "Group chat service is running"}


@app.get("/health")
def health_check():
    """Liveness probe: database reachability and open sockets"""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return {
            "status": "healthy",
            "database": "connected",
            "websocket_connections": len(manager.active_connections)
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "database": "disconnected",
            "error": str(e)
        }
