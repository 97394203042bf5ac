"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor and session-handling contract for every write-side
    service.  Services persist with ``session.flush()`` -- never
    ``session.commit()`` -- so the caller can compose several operations
    into one transaction.

Failure modes:
    - SQLAlchemy errors escaping a service are wrapped in ``StorageError``
      via ``_storage_errors()``; domain errors pass through untouched.
"""

from abc import ABC
from contextlib import contextmanager
from typing import Generic, Iterator, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stock_kernel.db.base import Base
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.exceptions import StorageError

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()`` on the outer transaction.  SAVEPOINTs
          opened by a service are committed or rolled back by that service.

    Non-goals:
        - Read-only queries belong in ``stock_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()

    @contextmanager
    def _storage_errors(self, operation: str) -> Iterator[None]:
        """Re-raise persistence failures as ``StorageError``."""
        try:
            yield
        except SQLAlchemyError as exc:
            raise StorageError(operation, str(exc)) from exc
