"""Chunked bulk writes.

Bulk work is split into chunks that each commit in their own budgeted
transaction. A chunk that fails on infrastructure (database error or an
exceeded budget) is recorded and the remaining chunks still run; chunks that
already committed stay committed.
"""

from collections.abc import Callable, Sequence
from typing import TypeVar

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from owner_statements.db import Store, TransactionTimeoutError
from owner_statements.errors import InternalError
from owner_statements.schemas import ChunkOutcome

T = TypeVar("T")


def partition(items: Sequence[T], size: int) -> list[list[T]]:
    """Split items into consecutive chunks of at most ``size``."""
    if size < 1:
        raise ValueError(f"Chunk size must be positive, got {size}")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


def run_chunks(
    store: Store,
    chunks: list[list[T]],
    keys_of: Callable[[list[T]], list[str]],
    work: Callable[[Session, list[T]], int],
    log: structlog.stdlib.BoundLogger,
) -> list[ChunkOutcome]:
    """Commit each chunk in its own transaction and report per-chunk outcomes.

    Args:
        store: Store providing budgeted transactions.
        chunks: Work units, already partitioned.
        keys_of: Property ids (or names) a chunk covers, for reporting.
        work: Writes one chunk inside the given session; returns rows created.
        log: Bound logger of the calling component.

    Raises:
        InternalError: If every chunk failed.
    """
    outcomes: list[ChunkOutcome] = []

    for index, chunk in enumerate(chunks):
        outcome = ChunkOutcome(index=index, property_ids=keys_of(chunk))
        try:
            with store.transaction() as session:
                outcome.created_count = work(session, chunk)
        except (SQLAlchemyError, TransactionTimeoutError) as e:
            outcome.created_count = 0
            outcome.error = str(e)
            log.error(
                "chunk_failed",
                chunk=index + 1,
                total_chunks=len(chunks),
                properties=outcome.property_ids,
                error=str(e),
                error_type=type(e).__name__,
            )
        else:
            log.info(
                "chunk_committed",
                chunk=index + 1,
                total_chunks=len(chunks),
                created=outcome.created_count,
            )
        outcomes.append(outcome)

    if outcomes and all(outcome.failed for outcome in outcomes):
        raise InternalError(
            f"All {len(outcomes)} chunks failed",
            {"chunks": [{"index": o.index, "error": o.error} for o in outcomes]},
        )
    return outcomes
