"""
BaseService -- abstract base for all ledger kernel services.

Responsibility:
    Common constructor for every write-side service.  Services receive a
    SQLAlchemy ``Session`` and an injected ``Clock``; they persist with
    ``session.flush()`` and never commit.

Architecture position:
    Kernel > Services -- imperative shell.  The orchestrator (or a test)
    owns the transaction and decides commit or rollback.

Failure modes:
    - A subclass that commits on its own breaks the single-transaction
      guarantee of recompute: a failure halfway would leave a partially
      rewritten chain.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from ledger_kernel.db.base import Base
from ledger_kernel.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.
        - Every timestamp it writes comes from ``self.clock``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
