"""
Module: ledger_kernel.db.base
Responsibility: Declarative base for the ledger's ORM models and the
    portable UUID column type.
Architecture position: Kernel > DB.  Imported by every model; imports
    nothing from the rest of the kernel.

Invariants enforced:
    - Primary keys are uuid4 values stored as lowercase String(36).  Lexical
      order of the stored text equals ``UUID.int`` order, so the id
      tie-break gives the same sequence in SQL and in Python.
    - Money columns are Numeric(18, 2); floats never reach the mapper.
    - created_at comes from the injected clock, because it takes part in
      the canonical movement order.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID stored as its 36-character lowercase text form."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value).lower()

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(18, 2),
        datetime: DateTime(timezone=True),
        UUID: UUIDString(),
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Abstract base adding creation metadata.

    The server default on created_at only covers rows written outside the
    kernel; services always assign it from their Clock.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    # Actor that created the row; the write path may be anonymous.
    created_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
