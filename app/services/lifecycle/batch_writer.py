# app/services/lifecycle/batch_writer.py
"""
Batch writer enforcing the per-commit operation ceiling.

Mutations are queued as SQL statements and committed in chunks of at most
`ceiling` operations. Each writer owns its own counters; nothing is shared
between runs.

Usage:
    writer = BatchWriter(db, ceiling=500)
    for listing in listings:
        writer.add_operation(WriteOperation(OP_DELETE_LISTING, stmt, listing.id))
    writer.flush()
    writer.completed_batches  # commits issued
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.sql import Executable

from app.constants import BatchLimits
from app.services.lifecycle.errors import BatchCommitError

logger = logging.getLogger(__name__)

# Operation kinds
OP_ARCHIVE_LISTING = "archive_listing"
OP_ASSIGN_TTL = "assign_ttl"
OP_ASSIGN_GRACE_TTL = "assign_grace_ttl"
OP_REPAIR_LISTING = "repair_listing"
OP_RESTORE_LISTING = "restore_listing"
OP_DELETE_LISTING = "delete_listing"
OP_DELETE_FAVORITE = "delete_favorite"


@dataclass
class WriteOperation:
    """One mutate statement plus what it is for."""
    kind: str
    statement: Executable
    listing_id: Optional[str] = None


@dataclass
class WriteBatch:
    """Operations committed together."""
    number: int
    operations: List[WriteOperation] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.operations)


class BatchWriter:
    """
    Splits an operation stream into sequential commits of at most `ceiling`.

    A commit failure rolls back the failing batch and raises BatchCommitError.
    Batches committed earlier stay committed. In dry-run mode nothing is
    executed, but batches and operations are counted exactly as they would be.
    """

    def __init__(
        self,
        db: Session,
        ceiling: int = BatchLimits.MAX_OPERATIONS_PER_COMMIT,
        dry_run: bool = False,
    ):
        if ceiling < 1 or ceiling > BatchLimits.MAX_OPERATIONS_PER_COMMIT:
            raise ValueError(
                f"Batch ceiling must be between 1 and {BatchLimits.MAX_OPERATIONS_PER_COMMIT}, got {ceiling}"
            )
        self.db = db
        self.ceiling = ceiling
        self.dry_run = dry_run
        self.completed_batches = 0
        # Operations committed, per kind
        self.committed: Counter = Counter()
        # Rows the committed statements actually touched, per kind
        self.affected: Counter = Counter()
        self._current = WriteBatch(number=1)

    @property
    def current(self) -> WriteBatch:
        return self._current

    @property
    def pending(self) -> int:
        return len(self._current)

    def add_operation(self, operation: WriteOperation) -> WriteBatch:
        """
        Queue an operation; commit once the current batch is full.

        Returns the batch that will receive the next operation.
        """
        self._current.operations.append(operation)
        if len(self._current) >= self.ceiling:
            self._commit(self._current)
            self._current = WriteBatch(number=self._current.number + 1)
        return self._current

    def flush(self) -> WriteBatch:
        """Commit whatever is pending. No-op when the batch is empty."""
        if self._current.operations:
            self._commit(self._current)
            self._current = WriteBatch(number=self._current.number + 1)
        return self._current

    def _commit(self, batch: WriteBatch) -> None:
        affected: Counter = Counter()

        if self.dry_run:
            for op in batch.operations:
                affected[op.kind] += 1
        else:
            try:
                for op in batch.operations:
                    result = self.db.execute(op.statement)
                    affected[op.kind] += max(result.rowcount or 0, 0)
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(
                    f"Batch {batch.number} commit failed ({len(batch)} operations): {e}",
                    extra={
                        "event": "batch_commit_failed",
                        "batch_number": batch.number,
                        "operations": len(batch),
                        "completed_batches": self.completed_batches,
                    },
                )
                raise BatchCommitError(batch.number, self.completed_batches, cause=e) from e

        self.completed_batches += 1
        for op in batch.operations:
            self.committed[op.kind] += 1
        self.affected.update(affected)

        logger.info(
            f"Committed batch {batch.number} ({len(batch)} operations, dry_run={self.dry_run})",
            extra={
                "event": "batch_committed",
                "batch_number": batch.number,
                "operations": len(batch),
                "dry_run": self.dry_run,
            },
        )
