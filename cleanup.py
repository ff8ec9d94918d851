# cleanup.py
import os
import time
import asyncio
from pathlib import Path
from concurrent.futures import ThreadPoolExecutor

from apscheduler.schedulers.asyncio import AsyncIOScheduler
import logging

from groupchat.core.config import settings
from groupchat.websocket.manager import manager

logger = logging.getLogger(__name__)

# group images and avatars are permanent, only attachments expire
EXCLUDE_DIRS = ["avatars", "group_images"]

# file walking runs off the event loop
executor = ThreadPoolExecutor(max_workers=2)

def remove_old_files_sync(static_dir: str | Path | None = None, days_keep: int | None = None) -> int:
    static_dir = Path(static_dir or settings.STATIC_DIR)
    days_keep = settings.UPLOAD_RETENTION_DAYS if days_keep is None else days_keep
    now = time.time()
    deleted_count = 0

    for root, _, files in os.walk(static_dir):
        root_path = Path(root)
        if any(excluded in root_path.relative_to(static_dir).parts for excluded in EXCLUDE_DIRS):
            continue

        for fname in files:
            # .gitkeep / .gitignore and friends
            if fname.startswith("."):
                continue
            fpath = root_path / fname
            if not fpath.is_file():
                continue
            if now - fpath.stat().st_mtime > days_keep * 86400:
                try:
                    fpath.unlink()
                    deleted_count += 1
                    logger.info(f"[cleanup] deleted {fpath}")
                except OSError as e:
                    logger.error(f"[cleanup] failed to delete {fpath}: {e}")

    logger.info(f"[cleanup] done, {deleted_count} files removed")
    return deleted_count

async def remove_old_files():
    loop = asyncio.get_running_loop()
    try:
        await loop.run_in_executor(executor, remove_old_files_sync)
    except OSError as e:
        logger.error(f"[cleanup] job failed: {e}")

def start_scheduler() -> AsyncIOScheduler:
    """Start the jobs; call from inside the running event loop (app lifespan)"""
    scheduler = AsyncIOScheduler()
    # every day at 02:30
    scheduler.add_job(remove_old_files, "cron", hour=2, minute=30)
    scheduler.add_job(manager.cleanup_stale_connections, "interval", minutes=5)
    scheduler.start()
    logger.info("[cleanup] scheduler started")
    return scheduler

def stop_scheduler(scheduler: AsyncIOScheduler):
    scheduler.shutdown()
    executor.shutdown(wait=False)
    logger.info("[cleanup] scheduler stopped")
