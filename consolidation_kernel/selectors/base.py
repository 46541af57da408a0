"""
Module: consolidation_kernel.selectors.base
Responsibility: Base class for read-only selectors.
Architecture position: Kernel > Selectors.  May import db/ and models/.

Invariants enforced:
    - Selectors never add, delete, flush or commit.  The caller owns the
      session and its transaction.
    - Selectors return frozen DTOs, never ORM instances.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """Holds the caller's session for subclass queries."""

    def __init__(self, session: Session):
        self.session = session
