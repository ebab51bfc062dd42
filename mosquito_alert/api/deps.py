"""
Authentication and wiring dependencies for FastAPI routes.
"""
from typing import Optional
from uuid import UUID
from collections import defaultdict
from datetime import datetime, timedelta

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from ..core.config import settings
from ..domain.errors import UnauthorizedError
from ..domain.services.access import Action, authorize
from ..domain.services.security import verify_token
from ..domain.services.transitions import CreationPolicy, StatusTransitionEngine
from ..infrastructure.ai_client import FailurePolicy, RoboflowClassifier, get_classifier, get_failure_policy
from ..infrastructure.database import get_db
from ..infrastructure.models import Account
from ..infrastructure.storage import CloudinaryStorageService, get_storage_service


# =============================================================================
# Rate Limiting
# =============================================================================

# In-memory rate limit store: key -> list of timestamps
_rate_limit_store: dict[str, list[datetime]] = defaultdict(list)


def check_rate_limit(
    key: str,
    max_requests: int = 5,
    window_seconds: int = 60
) -> None:
    """
    Simple in-memory sliding-window rate limiter.

    Raises:
        HTTPException: 429 Too Many Requests if limit exceeded
    """
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=window_seconds)

    _rate_limit_store[key] = [t for t in _rate_limit_store[key] if t > cutoff]

    if len(_rate_limit_store[key]) >= max_requests:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Too many requests. Please wait {window_seconds} seconds before trying again.",
        )

    _rate_limit_store[key].append(now)


# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> Account:
    """
    Dependency to get the current authenticated account.
    Raises 401 if not authenticated.
    """
    if not credentials:
        raise UnauthorizedError("Not authorized, no token provided")

    payload = verify_token(credentials.credentials, token_type="access")
    if not payload or not payload.get("sub"):
        raise UnauthorizedError("Not authorized, token invalid")

    account = db.query(Account).filter(Account.id == _parse_uuid(payload["sub"])).first()
    if not account:
        raise UnauthorizedError("User not found")

    return account


def _parse_uuid(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        raise UnauthorizedError("Not authorized, token invalid")


async def get_current_admin_user(
    current_user: Account = Depends(get_current_user)
) -> Account:
    """
    Dependency to get the current account and verify it is an admin.
    Raises 403 if not an admin.
    """
    return authorize(current_user, Action.VIEW_ANALYTICS)


async def get_current_reporter(
    current_user: Account = Depends(get_current_user)
) -> Account:
    """Dependency for report submission: reporters only."""
    return authorize(current_user, Action.CREATE_REPORT)


# =============================================================================
# Lifecycle wiring
# =============================================================================

def get_creation_policy() -> CreationPolicy:
    return CreationPolicy(settings.CREATION_POLICY.lower())


def get_engine(
    db: Session = Depends(get_db),
    policy: CreationPolicy = Depends(get_creation_policy),
) -> StatusTransitionEngine:
    return StatusTransitionEngine(db, policy)


def get_classifier_dep() -> RoboflowClassifier:
    return get_classifier()


def get_failure_policy_dep() -> FailurePolicy:
    return get_failure_policy()


def get_storage() -> CloudinaryStorageService:
    return get_storage_service()
