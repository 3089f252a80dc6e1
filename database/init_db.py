import logging

from sqlalchemy.engine import Engine
from tenacity import retry, stop_after_attempt, wait_fixed

from database.models import Base

logger = logging.getLogger(__name__)


@retry(stop=stop_after_attempt(5), wait=wait_fixed(2), reraise=True)
def init_db(engine: Engine = None):
    """Create the event store tables, retrying while the database starts up."""
    if engine is None:
        from database.database import engine as default_engine
        engine = default_engine

    logger.info("Initializing database...")
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Tables created or verified.")
    except Exception as e:
        logger.error(f"Error initializing DB: {e}")
        raise
