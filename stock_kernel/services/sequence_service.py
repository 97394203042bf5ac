"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Provides strictly increasing sequence numbers for ledger entries,
    adjustment requests and audit events.  A dedicated counter table with
    row-level locking (``SELECT ... FOR UPDATE``) guarantees uniqueness and
    ordering under concurrent writers.  The aggregate-max-plus-one pattern
    is never used: two writers would read the same max.

Failure modes:
    - IntegrityError on the first-use counter creation race, handled by
      rolling back a SAVEPOINT and re-reading the winner's row.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stock_kernel.logging_config import get_logger
from stock_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Allocates the next value of a named sequence.

    The increment is transactional: it becomes visible when the caller's
    transaction commits, and a rollback returns the value.

    Usage:
        seq = SequenceService(session).next_value(SequenceService.LEDGER_ENTRY)
    """

    LEDGER_ENTRY = "ledger_entry"
    ADJUSTMENT_REQUEST = "adjustment_request"
    AUDIT_EVENT = "audit_event"

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Lock the counter row (creating it on first use), increment, return.

        Postconditions:
            - Returns an integer > 0 strictly greater than any value
              previously returned for ``sequence_name``.
            - The counter row stays locked until the transaction completes,
              which serializes concurrent allocators.
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            # First use.  A concurrent writer may create the row at the same
            # time, so the insert runs in a SAVEPOINT.
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value without incrementing; None if never allocated."""
        return self._session.execute(
            select(SequenceCounter.current_value)
            .where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
