from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from notification.exceptions import PersistenceError


class BaseRepository:
    """Session-bound repository. SQLAlchemy failures are rolled back and
    re-raised as PersistenceError, so callers never see driver exceptions."""

    def __init__(self, db: Session):
        self.db = db

    def _commit(self, description: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Failed to {description}: {e}") from e

    def _execute_write(self, stmt, description: str) -> int:
        """Run an UPDATE/DELETE in its own transaction; returns affected rows."""
        try:
            count = self.db.execute(stmt).rowcount or 0
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Failed to {description}: {e}") from e
        return count

    def _scalar(self, stmt, description: str) -> Any:
        try:
            return self.db.execute(stmt).scalar()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Failed to {description}: {e}") from e

    def _scalars(self, stmt) -> list:
        try:
            return list(self.db.execute(stmt).scalars().all())
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Event store query failed: {e}") from e
