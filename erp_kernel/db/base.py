"""
Module: erp_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the UUID primary key convention, the type annotation map that keeps column
    types consistent, and the TrackedBase mixin for audit timestamps.
Architecture position: Kernel > DB.  Lowest-level import target in the kernel.
    All ORM modules import from here; this module imports nothing from
    erp_modules, erp_services or erp_engines.

Invariants enforced:
    - UUID primary keys generated with uuid4, stored as String(36) so the
      same schema runs on PostgreSQL and SQLite.
    - Money: Decimal maps to Numeric(14, 2).  Incentive amounts are rupee
      values with paise precision; NEVER use float.
    - Audit metadata: TrackedBase provides created_at, updated_at,
      created_by_id and updated_by_id.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID stored as String(36); converts to and from ``uuid.UUID``."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


class Base(DeclarativeBase):
    """
    Declarative base for all ORM models.

    Guarantees:
        - ``id`` is a uuid4-generated UUID.
        - Decimal -> Numeric(14, 2), datetime -> DateTime(timezone=True),
          UUID -> UUIDString, int -> BigInteger.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(14, 2),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with audit timestamps and actor tracking.

    Guarantees:
        - created_at is set by the server on INSERT.
        - updated_at is refreshed on every UPDATE.
        - created_by_id is required; updated_by_id is set by services on edit.
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

    created_by_id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    updated_by_id: Mapped[PyUUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )


UUID = PyUUID
