from sqlalchemy import case, func
from sqlalchemy.orm import Session
from typing import Dict, List, Optional
from datetime import datetime, timedelta
import logging

from ...infrastructure import models
from ..models import ReportStatus, Role, Severity
from .report_store import ReportStore

logger = logging.getLogger(__name__)

# Area risk weighting
RISK_WEIGHTS = {
    'report': 2,
    'high_severity': 3,
    'valid': 2,
}
RISK_HIGH_THRESHOLD = 15
RISK_MEDIUM_THRESHOLD = 8


def risk_level(score: int) -> str:
    if score >= RISK_HIGH_THRESHOLD:
        return "High"
    if score >= RISK_MEDIUM_THRESHOLD:
        return "Medium"
    return "Low"


def location_label(report) -> str:
    """Human-readable name for a report, or an area row, with address and coordinates."""
    if report.address:
        return report.address
    if report.latitude is not None and report.longitude is not None:
        return f"{report.latitude:.4f}, {report.longitude:.4f}"
    return "Unknown"


class AnalyticsService:
    """
    Aggregations behind the admin dashboard and the public leaderboard
    """

    def __init__(self, db: Session):
        self.db = db

    def get_overview(self) -> Dict:
        by_status = ReportStore(self.db).count_by_status()
        return {
            'total_reports': sum(by_status.values()),
            'total_users': self.db.query(models.Account).filter(
                models.Account.role == Role.USER.value
            ).count(),
            'valid_reports': by_status.get(ReportStatus.VALID.value, 0),
            'pending_reports': by_status.get(ReportStatus.PENDING.value, 0),
            'in_progress_reports': by_status.get(ReportStatus.IN_PROGRESS.value, 0),
            'cleared_reports': by_status.get(ReportStatus.CLEARED.value, 0),
        }

    def get_weekly_reports(self, now: Optional[datetime] = None) -> List[Dict]:
        """Report counts per day for the last 7 days, oldest first"""
        since = (now or datetime.utcnow()) - timedelta(days=7)
        day = func.date(models.Report.created_at)
        rows = (
            self.db.query(day, func.count(models.Report.id))
            .filter(models.Report.created_at >= since)
            .group_by(day)
            .order_by(day)
            .all()
        )
        return [{'date': str(date), 'count': count} for date, count in rows]

    def get_breeding_distribution(self) -> List[Dict]:
        rows = (
            self.db.query(models.Report.breeding_type, func.count(models.Report.id))
            .group_by(models.Report.breeding_type)
            .all()
        )
        return [{'name': name, 'value': count} for name, count in rows]

    def get_area_risk(self, limit: int = 10) -> List[Dict]:
        """
        Rank locations by report volume and score their risk.

        score = 2 * reports + 3 * high-severity reports + 2 * validated reports
        """
        report_count = func.count(models.Report.id)
        high_count = func.sum(case((models.Report.severity == Severity.HIGH.value, 1), else_=0))
        valid_count = func.sum(case((models.Report.status == ReportStatus.VALID.value, 1), else_=0))

        # One area per distinct (address, latitude, longitude)
        rows = (
            self.db.query(
                models.Report.address,
                models.Report.latitude,
                models.Report.longitude,
                report_count.label('reports'),
                high_count.label('high'),
                valid_count.label('valid'),
            )
            .group_by(models.Report.address, models.Report.latitude, models.Report.longitude)
            .order_by(report_count.desc())
            .limit(limit)
            .all()
        )

        result = []
        for row in rows:
            score = (
                row.reports * RISK_WEIGHTS['report']
                + (row.high or 0) * RISK_WEIGHTS['high_severity']
                + (row.valid or 0) * RISK_WEIGHTS['valid']
            )
            result.append({
                'location': location_label(row),
                'report_count': row.reports,
                'risk_level': risk_level(score),
                'risk_score': score,
            })
        return result

    def get_leaderboard(self, limit: int = 10) -> List[models.Account]:
        return (
            self.db.query(models.Account)
            .filter(models.Account.role == Role.USER.value)
            .order_by(models.Account.points.desc(), models.Account.created_at)
            .limit(limit)
            .all()
        )

    def get_users(self) -> List[models.Account]:
        return (
            self.db.query(models.Account)
            .filter(models.Account.role == Role.USER.value)
            .order_by(models.Account.created_at.desc())
            .all()
        )
