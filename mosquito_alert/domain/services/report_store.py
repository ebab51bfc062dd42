from sqlalchemy import func, update
from sqlalchemy.orm import Session, Query
from typing import Dict, Optional
from uuid import UUID
import logging

from ...infrastructure import models
from ...infrastructure.database import expire_cached
from ..errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class ReportStore:
    """
    Persistence for report records.

    Listing methods return SQLAlchemy queries: iterating one runs the SELECT,
    and iterating it again re-queries, so results are always current.
    """

    def __init__(self, db: Session):
        self.db = db

    def create(self, **fields) -> models.Report:
        """
        Insert a report with the status and points the caller decided on.

        The caller commits; the row is flushed so its id is available.
        """
        if not fields.get("image_url"):
            raise ValidationError("Image upload is required. Please upload an image.", field="image")

        report = models.Report(**fields)
        self.db.add(report)
        self.db.flush()
        return report

    def find(self, report_id: UUID) -> Optional[models.Report]:
        return self.db.get(models.Report, report_id)

    def get(self, report_id: UUID) -> models.Report:
        report = self.find(report_id)
        if report is None:
            raise NotFoundError("Report not found")
        return report

    def find_by_owner(self, owner_id: UUID) -> Query:
        return (
            self.db.query(models.Report)
            .filter(models.Report.user_id == owner_id)
            .order_by(models.Report.created_at.desc())
        )

    def find_all(self) -> Query:
        """All reports, newest first."""
        return self.db.query(models.Report).order_by(models.Report.created_at.desc())

    def update_status(self, report_id: UUID, status: str, points_awarded: int) -> None:
        """Write exactly the status and points_awarded columns in one UPDATE."""
        result = self.db.execute(
            update(models.Report)
            .where(models.Report.id == report_id)
            .values(status=status, points_awarded=points_awarded)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFoundError("Report not found")
        expire_cached(self.db, models.Report, report_id, ["status", "points_awarded"])

    def delete(self, report_id: UUID) -> None:
        report = self.get(report_id)
        self.db.delete(report)
        self.db.flush()

    def count_by_status(self) -> Dict[str, int]:
        rows = (
            self.db.query(models.Report.status, func.count(models.Report.id))
            .group_by(models.Report.status)
            .all()
        )
        return {status: count for status, count in rows}
