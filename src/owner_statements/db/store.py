"""Transactional persistence store.

Every write runs inside ``Store.transaction()``, which commits on success,
rolls back on any exception, and enforces a wall-clock budget per
transaction: a transaction that has been open longer than the budget when it
tries to commit is rolled back instead. Bulk writers split their work into
chunks so that each chunk fits inside the budget.
"""

import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager

import structlog
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from owner_statements.config import get_settings
from owner_statements.db.models import Base

logger = structlog.get_logger(__name__)


class TransactionTimeoutError(Exception):
    """A transaction exceeded its wall-clock budget and was rolled back."""

    def __init__(self, elapsed: float, budget: float):
        super().__init__(
            f"Transaction took {elapsed:.2f}s, exceeding the {budget:.2f}s budget; rolled back"
        )
        self.elapsed = elapsed
        self.budget = budget


def _is_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in url


class Store:
    """SQLAlchemy-backed store with budgeted transactions."""

    def __init__(
        self,
        database_url: str | None = None,
        engine: Engine | None = None,
        transaction_timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        settings = get_settings()
        if engine is None:
            url = database_url or settings.database_url
            if _is_memory_sqlite(url):
                # One shared connection, otherwise each session sees its own empty database
                engine = create_engine(
                    url,
                    echo=settings.database_echo,
                    connect_args={"check_same_thread": False},
                    poolclass=StaticPool,
                )
            else:
                engine = create_engine(
                    url, echo=settings.database_echo, pool_pre_ping=True
                )
        self.engine = engine
        self.transaction_timeout = (
            transaction_timeout
            if transaction_timeout is not None
            else settings.transaction_timeout_seconds
        )
        self._clock = clock
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)
        self._logger = logger.bind(component="store")

    def create_all(self) -> None:
        """Create all tables."""
        Base.metadata.create_all(self.engine)

    def drop_all(self) -> None:
        """Drop all tables."""
        Base.metadata.drop_all(self.engine)

    @contextmanager
    def transaction(self, timeout: float | None = None) -> Iterator[Session]:
        """Provide a transactional scope bounded by a wall-clock budget.

        Yields:
            Session: SQLAlchemy session; committed on success, rolled back on error.

        Raises:
            TransactionTimeoutError: If the budget ran out before commit.
        """
        budget = timeout if timeout is not None else self.transaction_timeout
        session = self._session_factory()
        started = self._clock()
        try:
            yield session
            session.flush()
            elapsed = self._clock() - started
            if elapsed > budget:
                raise TransactionTimeoutError(elapsed, budget)
            session.commit()
        except Exception as e:
            session.rollback()
            self._logger.warning("transaction_rolled_back", error=str(e), error_type=type(e).__name__)
            raise
        finally:
            session.close()

    @contextmanager
    def read(self) -> Iterator[Session]:
        """Provide a session for reads; nothing is committed."""
        session = self._session_factory()
        try:
            yield session
        finally:
            session.rollback()
            session.close()
