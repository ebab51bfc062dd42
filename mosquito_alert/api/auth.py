"""
Authentication API endpoints.
Email/password signup and login for reporters and administrators.
"""
from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.orm import Session

from ..domain.errors import MosquitoAlertError, UnauthorizedError
from ..domain.models import (
    ChangePasswordRequest,
    LoginRequest,
    MessageResponse,
    SignupRequest,
    TokenResponse,
    UserResponse,
)
from ..domain.services.auth_service import auth_service
from ..infrastructure.database import get_db
from ..infrastructure.models import Account
from .deps import get_current_user, check_rate_limit
import logging

router = APIRouter()
logger = logging.getLogger(__name__)


def _token_response(account: Account) -> TokenResponse:
    return TokenResponse(
        id=account.id,
        name=account.name,
        email=account.email,
        role=account.role,
        points=account.points,
        created_at=account.created_at,
        token=auth_service.create_token(account),
    )


@router.post("/signup", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def signup(request: SignupRequest, db: Session = Depends(get_db)):
    """
    Register a new reporter.

    Administrators cannot sign up; they are seeded with scripts/seed_admins.py.
    """
    try:
        account = auth_service.register_user(
            name=request.name,
            email=request.email,
            password=request.password,
            db=db,
        )
    except MosquitoAlertError:
        raise
    except Exception as e:
        logger.error(f"Signup error: {e}")
        db.rollback()
        raise HTTPException(status_code=500, detail="Server error during signup")

    return _token_response(account)


@router.post("/login", response_model=TokenResponse)
def login(request: LoginRequest, http_request: Request, db: Session = Depends(get_db)):
    """
    Log in a reporter or an administrator.

    Rate limited to 5 attempts per minute per IP address.
    """
    client_ip = http_request.client.host if http_request.client else "unknown"
    check_rate_limit(f"login:{client_ip}", max_requests=5, window_seconds=60)

    account = auth_service.authenticate(request.email, request.password, db)
    if not account:
        raise UnauthorizedError("Invalid credentials")

    return _token_response(account)


@router.get("/me", response_model=UserResponse)
def get_me(current_user: Account = Depends(get_current_user)):
    """Current account with a fresh points balance."""
    return current_user


@router.put("/change-password", response_model=MessageResponse)
def change_password(
    request: ChangePasswordRequest,
    current_user: Account = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    auth_service.change_password(current_user, request.current_password, request.new_password, db)
    return MessageResponse(message="Password changed successfully")
