"""
Account service: registration, login and password changes.

Reporters and administrators live in one table and are told apart by role,
so login is a single lookup by email.
"""
from typing import Optional
import logging

from sqlalchemy.orm import Session

from ...infrastructure.models import Account
from ..errors import UnauthorizedError, ValidationError
from ..models import Role
from .security import create_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)


class AuthService:
    """Service for account authentication operations"""

    def register_user(self, name: str, email: str, password: str, db: Session) -> Account:
        """
        Create a reporter account. Administrators are only ever seeded.

        Raises:
            ValidationError: if the email is already registered
        """
        email = email.lower().strip()
        if db.query(Account).filter(Account.email == email).first():
            raise ValidationError("User already exists with this email", field="email")

        account = Account(
            name=name.strip(),
            email=email,
            password_hash=hash_password(password),
            role=Role.USER.value,
        )
        db.add(account)
        db.commit()
        db.refresh(account)

        logger.info(f"Registered user {account.id}")
        return account

    def create_admin(self, name: str, email: str, password: str, db: Session) -> Account:
        """Create or update an administrator account (used by the seeder)."""
        email = email.lower().strip()
        account = db.query(Account).filter(Account.email == email).first()
        if account is None:
            account = Account(name=name, email=email, role=Role.ADMIN.value, password_hash="")
            db.add(account)
        account.name = name
        account.role = Role.ADMIN.value
        account.password_hash = hash_password(password)
        db.commit()
        db.refresh(account)
        return account

    def authenticate(self, email: str, password: str, db: Session) -> Optional[Account]:
        """Return the account for valid credentials, else None."""
        account = db.query(Account).filter(Account.email == email.lower().strip()).first()
        if not account or not verify_password(password, account.password_hash):
            return None
        return account

    def change_password(self, account: Account, current_password: str, new_password: str, db: Session) -> None:
        if not verify_password(current_password, account.password_hash):
            raise UnauthorizedError("Current password is incorrect")
        account.password_hash = hash_password(new_password)
        db.commit()
        logger.info(f"Password changed for {account.id}")

    def create_token(self, account: Account) -> str:
        return create_access_token({"sub": str(account.id), "role": account.role})


auth_service = AuthService()
