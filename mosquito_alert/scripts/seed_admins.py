"""
Create or update an administrator account.

Administrators cannot sign up through the API. Run:

    python -m mosquito_alert.scripts.seed_admins --email admin@example.com --password '...'

or set ADMIN_SEED_EMAIL / ADMIN_SEED_PASSWORD (and optionally ADMIN_SEED_NAME).
"""
import argparse
import logging
import sys

from ..core.config import settings
from ..core.logging import setup_logging
from ..domain.services.auth_service import auth_service
from ..infrastructure.database import Base, SessionLocal, engine
from ..infrastructure import models

logger = logging.getLogger(__name__)


def seed_admin(name: str, email: str, password: str) -> models.Account:
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        admin = auth_service.create_admin(name=name, email=email, password=password, db=db)
        logger.info(f"Admin ready: {admin.email} ({admin.id})")
        return admin
    finally:
        db.close()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Seed a Mosquito Alert administrator")
    parser.add_argument("--name", default=settings.ADMIN_SEED_NAME)
    parser.add_argument("--email", default=settings.ADMIN_SEED_EMAIL)
    parser.add_argument("--password", default=settings.ADMIN_SEED_PASSWORD)
    args = parser.parse_args(argv)

    setup_logging()

    if not args.email or not args.password:
        logger.error("Admin email and password are required (flags or ADMIN_SEED_* env vars)")
        return 1
    if len(args.password) < 6:
        logger.error("Admin password must be at least 6 characters")
        return 1

    seed_admin(args.name, args.email, args.password)
    return 0


if __name__ == "__main__":
    sys.exit(main())
