# ertha_exchange/create_tables.py
"""
Idempotent DB initializer for ErthaExchange.
Creates every table and, when ADMIN_EMAIL / ADMIN_PASSWORD are set, the first admin account.
Use:
    ertha-exchange-init
    OR python -m ertha_exchange.create_tables
"""

import logging
import os
from typing import Optional

from sqlalchemy.orm import Session

from ertha_exchange.database import SessionLocal, init_db
from ertha_exchange.logging_config import configure_logging
from ertha_exchange.models import User
from ertha_exchange.services import user_service
from ertha_exchange.utils.security import hash_password

logger = logging.getLogger(__name__)


def ensure_admin(db: Session, email: str, password: str, name: str = "Administrator") -> Optional[User]:
    """Create the admin account if no user owns `email` yet."""
    if user_service.get_by_email(db, email):
        logger.info("Admin %s already exists, skipping", email)
        return None
    admin = User(
        email=email.strip().lower(),
        password=hash_password(password),
        name=name,
        role="admin",
        status="active",
        email_verified=True,
    )
    db.add(admin)
    db.commit()
    logger.info("Created admin account %s", admin.email)
    return admin


def main() -> None:
    configure_logging()
    init_db()
    logger.info("Tables created / verified")

    email = os.getenv("ADMIN_EMAIL")
    password = os.getenv("ADMIN_PASSWORD")
    if email and password:
        db = SessionLocal()
        try:
            ensure_admin(db, email, password, os.getenv("ADMIN_NAME", "Administrator"))
        finally:
            db.close()


if __name__ == "__main__":
    main()
