from sqlalchemy import case, select, update
from sqlalchemy.orm import Session
from uuid import UUID
import logging

from ...infrastructure import models
from ...infrastructure.database import expire_cached
from ..errors import LedgerError

logger = logging.getLogger(__name__)

# ============================================================================
# POINTS SYSTEM CONFIGURATION
# ============================================================================

POINTS_SYSTEM = {
    'report_validated': 10,
    'report_rejected': -5,
}


class PointLedger:
    """
    Applies signed point deltas to account balances.

    Every change is a single atomic UPDATE clamped at zero, so concurrent
    adjustments to the same account never overwrite each other. Callers own
    the transaction and must apply each logical event exactly once.
    """

    def __init__(self, db: Session):
        self.db = db

    def apply_delta(self, user_id: UUID, delta: int) -> int:
        """
        Add delta to the account's points, flooring the result at zero.

        Returns the new balance. Raises LedgerError if the account is missing.
        """
        new_points = models.Account.points + delta
        result = self.db.execute(
            update(models.Account)
            .where(models.Account.id == user_id)
            .values(points=case((new_points < 0, 0), else_=new_points))
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            raise LedgerError(f"User {user_id} not found")
        expire_cached(self.db, models.Account, user_id, ["points"])

        balance = self.db.scalar(
            select(models.Account.points).where(models.Account.id == user_id)
        )
        if delta:
            logger.info(f"Ledger: user {user_id} {delta:+d} -> {balance}")
        return balance

    def balance(self, user_id: UUID) -> int:
        balance = self.db.scalar(
            select(models.Account.points).where(models.Account.id == user_id)
        )
        if balance is None:
            raise LedgerError(f"User {user_id} not found")
        return balance
