# import the models first so Base knows which tables to create
from groupchat.db.database import Base, engine
from groupchat.models import user, groups, group_members, group_messages  # noqa: F401
import time
import logging

logger = logging.getLogger(__name__)

def init():
    """
    Create the tables.
    Retries when several workers race on concurrent DDL.
    """
    max_retries = 5
    retry_delay = 2  # seconds

    for attempt in range(max_retries):
        try:
            Base.metadata.create_all(bind=engine, checkfirst=True)
            logger.info("Database tables created/verified")
            return
        except Exception as e:
            error_msg = str(e)
            # MySQL 1684: concurrent DDL
            if "1684" in error_msg or "concurrent DDL" in error_msg:
                if attempt < max_retries - 1:
                    wait_time = retry_delay * (attempt + 1)
                    logger.warning(f"Concurrent DDL detected, retrying in {wait_time}s (attempt {attempt + 1}/{max_retries})")
                    time.sleep(wait_time)
                else:
                    logger.error(f"Database init failed after {max_retries} attempts: {error_msg}")
                    raise
            else:
                logger.error(f"Database init failed: {error_msg}")
                raise

if __name__ == "__main__":
    init()
