from fastapi import APIRouter, HTTPException, Depends
from sqlalchemy.orm import Session
from typing import List
import logging

from ..domain.models import (
    AreaRisk,
    DailyCount,
    DistributionSlice,
    LeaderboardEntry,
    OverviewResponse,
    UserResponse,
)
from ..domain.services.access import Action, authorize
from ..domain.services.analytics_service import AnalyticsService
from ..infrastructure.database import get_db
from ..infrastructure.models import Account
from .deps import get_current_admin_user, get_current_user

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/leaderboard", response_model=List[LeaderboardEntry])
def get_leaderboard(
    current_user: Account = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Top 10 reporters by points. Open to every signed-in account.
    """
    authorize(current_user, Action.VIEW_LEADERBOARD)
    try:
        return AnalyticsService(db).get_leaderboard(limit=10)
    except Exception as e:
        logger.error(f"Error fetching leaderboard: {e}")
        raise HTTPException(status_code=500, detail="Server error fetching leaderboard")


@router.get("/analytics/overview", response_model=OverviewResponse)
def get_overview(
    admin: Account = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
):
    """Report totals per status and the number of reporters."""
    try:
        return AnalyticsService(db).get_overview()
    except Exception as e:
        logger.error(f"Error fetching overview: {e}")
        raise HTTPException(status_code=500, detail="Server error fetching overview")


@router.get("/analytics/weekly-reports", response_model=List[DailyCount])
def get_weekly_reports(
    admin: Account = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
):
    """Reports per day over the last 7 days (chart data)."""
    try:
        return AnalyticsService(db).get_weekly_reports()
    except Exception as e:
        logger.error(f"Error fetching weekly reports: {e}")
        raise HTTPException(status_code=500, detail="Server error fetching weekly reports")


@router.get("/analytics/breeding-distribution", response_model=List[DistributionSlice])
def get_breeding_distribution(
    admin: Account = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
):
    """Report counts per breeding type, as {name, value} pie slices."""
    try:
        return AnalyticsService(db).get_breeding_distribution()
    except Exception as e:
        logger.error(f"Error fetching breeding distribution: {e}")
        raise HTTPException(status_code=500, detail="Server error fetching distribution")


@router.get("/analytics/area-risk", response_model=List[AreaRisk])
def get_area_risk(
    admin: Account = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
):
    """
    Ten busiest locations with a risk score.

    Score = 2 per report + 3 per high-severity report + 2 per validated report;
    High from 15, Medium from 8.
    """
    try:
        return AnalyticsService(db).get_area_risk(limit=10)
    except Exception as e:
        logger.error(f"Error fetching area risk: {e}")
        raise HTTPException(status_code=500, detail="Server error fetching area risk")


@router.get("/users", response_model=List[UserResponse])
def get_users(
    admin: Account = Depends(get_current_admin_user),
    db: Session = Depends(get_db),
):
    try:
        return AnalyticsService(db).get_users()
    except Exception as e:
        logger.error(f"Error fetching users: {e}")
        raise HTTPException(status_code=500, detail="Server error fetching users")
