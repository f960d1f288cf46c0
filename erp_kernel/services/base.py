"""
BaseService -- common base for services that write through a Session.

Services receive the caller's ``Session`` and use ``session.flush()``;
they never commit or roll back.  ``erp_kernel.db.engine.session_scope()``
(or the test harness) owns the transaction, so a status change, its
history row and any computed shares land atomically or not at all.
"""

from abc import ABC

from sqlalchemy.orm import Session

from erp_kernel.domain.clock import Clock, SystemClock


class BaseService(ABC):
    """
    Abstract base for session-bound services.

    Guarantees:
        - Never calls ``session.commit()`` or ``session.rollback()``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
