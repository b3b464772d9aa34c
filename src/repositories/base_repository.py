"""Base repository class with proper session management."""

from typing import Optional

from sqlalchemy.orm import Session

from src.config.database import get_db
from src.utils.logger import logger


class BaseRepository:
    """
    Base class for all repositories.

    Handles database session lifecycle to prevent connection pool exhaustion.
    Sessions are created on demand and must be closed when done. A caller
    may pass its own session instead (tests, or several repositories that
    must share one transaction); an injected session is never closed here.

    IMPORTANT: Always call commit() after write operations and
    end_read_transaction() after read-only operations to prevent
    "idle in transaction" connections.
    """

    def __init__(self, db: Optional[Session] = None):
        self._owns_session = db is None
        if db is None:
            self._db_generator = get_db()
            self._db: Session = next(self._db_generator)
        else:
            self._db_generator = None
            self._db = db

    def _replace_session(self):
        try:
            self._db.close()
        except Exception as e:
            logger.debug(f"Suppressed error closing broken session: {e}")
        self._db_generator = get_db()
        self._db = next(self._db_generator)
        self._owns_session = True

    @property
    def db(self) -> Session:
        """Get the database session, ensuring it's in a clean state."""
        # Rollback any failed transaction to reset session state
        try:
            if not self._db.is_active:
                self._db.rollback()
        except Exception as e:
            # Rollback failed: the connection is likely severed.
            logger.warning(
                f"Session recovery rollback failed, creating new session: {e}"
            )
            self._replace_session()
        return self._db

    def commit(self):
        """Commit the current transaction."""
        try:
            self._db.commit()
        except Exception as e:
            logger.warning(f"Error during commit: {e}")
            self._db.rollback()
            raise

    def rollback(self):
        """Rollback the current transaction."""
        try:
            self._db.rollback()
        except Exception as e:
            logger.warning(f"Error during rollback: {e}")

    def end_read_transaction(self):
        """
        End a read-only transaction by committing (releases locks).

        In SQLAlchemy, even SELECT queries start a transaction that must be
        ended. If both commit and rollback fail (dead connection), replaces
        the session entirely so the next operation starts clean.
        """
        try:
            self._db.commit()
        except Exception:
            try:
                self._db.rollback()
            except Exception:
                logger.warning("Session unrecoverable, creating fresh session")
                self._replace_session()

    def close(self):
        """
        Close the database session and return connection to pool.

        Injected sessions belong to the caller and are left open.
        """
        if not self._owns_session:
            return
        try:
            try:
                next(self._db_generator)
            except StopIteration:
                pass  # Generator closes the session in its finally block
        except Exception as e:
            logger.warning(f"Error closing database session: {e}")
        finally:
            try:
                self._db.close()
            except Exception as e:
                logger.debug(f"Suppressed error during session close: {e}")

    def __del__(self):
        """Cleanup when repository is garbage collected."""
        try:
            self.close()
        except Exception:
            # Logging may already be torn down at interpreter shutdown
            pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - ensures session is closed."""
        self.close()
        return False

    @staticmethod
    def check_connection():
        """
        Verify database connectivity by executing a simple query.

        Used by HealthCheckService without crossing the repository boundary.

        Raises:
            Exception: If database is unreachable or query fails
        """
        from sqlalchemy import text

        db = next(get_db())
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
