"""
SQLite engine for the per-project embedding cache.

One DatabaseManager per cache file. Writes go through ``session_scope`` so
that a batch of new embeddings lands in a single transaction.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Union

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base

MEMORY = ":memory:"


class DatabaseManager:
    """
    Owns the engine and session factory for one cache database.

    The schema is created on construction. Pass ``":memory:"`` for a
    throwaway database shared by every session of this manager.
    """

    def __init__(self, db_path: Union[str, Path], echo: bool = False):
        """
        Args:
            db_path: SQLite file (parent directories are created) or ":memory:"
            echo: Log emitted SQL
        """
        self.db_path = str(db_path)

        if self.db_path == MEMORY:
            # a single shared connection, otherwise each session sees an empty database
            self.engine = create_engine(
                f"sqlite:///{MEMORY}",
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self.engine = create_engine(f"sqlite:///{self.db_path}", echo=echo)

        event.listen(self.engine, "connect", self._apply_pragmas)
        self._sessions = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        Base.metadata.create_all(bind=self.engine)

    @staticmethod
    def _apply_pragmas(dbapi_conn, connection_record) -> None:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.close()

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """
        Transactional session: committed on normal exit, rolled back on error.

        Usage:
            with db_manager.session_scope() as session:
                session.add_all(entries)
        """
        session = self._sessions()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self) -> None:
        self.engine.dispose()
