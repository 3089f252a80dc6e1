import contextlib
import logging
from typing import Callable, ContextManager, Optional

from sqlalchemy.orm import Session

from database.repositories.stock_event import StockNotificationEventRepository

logger = logging.getLogger(__name__)

StockEventUowFactory = Callable[[], ContextManager[StockNotificationEventRepository]]


@contextlib.contextmanager
def stock_event_uow(session_factory: Optional[Callable[[], Session]] = None):
    """Per-unit-of-work transaction scope.

    Yields a StockNotificationEventRepository bound to a fresh Session.
    Commits on success, rolls back on exception, always closes.

    Usage:
        with stock_event_uow() as repo:
            events = repo.find_distinct_pending_for_day(day)
            # perform operations...
        # commit happens automatically on successful exit
    """
    if session_factory is None:
        from database.database import SessionLocal
        session_factory = SessionLocal

    session = session_factory()
    try:
        repo = StockNotificationEventRepository(session)
        yield repo
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def uow_factory(session_factory: Optional[Callable[[], Session]] = None) -> StockEventUowFactory:
    """Bind stock_event_uow to a session factory for injection into services."""
    def _factory():
        return stock_event_uow(session_factory)
    return _factory
