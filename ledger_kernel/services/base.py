"""
BaseService -- abstract base for all kernel services.

Every kernel service receives a SQLAlchemy ``Session`` from its caller and
persists with ``session.flush()`` only.  Commit and rollback belong to the
caller (a module service, an event listener, or ``session_scope()``), so a
posting, its period check and any invoice update share one transaction.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from ledger_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.

    Non-goals:
        - Read-only projections belong in ``ledger_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
