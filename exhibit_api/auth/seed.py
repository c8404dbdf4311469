from __future__ import annotations

import logging
import os

from sqlalchemy import select

from ..config import settings
from ..database import db_session
from ..models import User

logger = logging.getLogger("exhibit.seed")

_DEFAULT_PASSWORD = "changeme"


def seed_superadmin() -> None:
    """
    Create a superadmin account on first startup if no users exist.
    Credentials are read from environment variables so they can be
    overridden before deployment.

    Defaults (for local dev only; change before production):
      EXHIBIT_ADMIN_EMAIL      = admin@example.com
      EXHIBIT_ADMIN_PASSWORD   = changeme
      EXHIBIT_ADMIN_FIRST_NAME = Site
      EXHIBIT_ADMIN_LAST_NAME  = Admin
    """
    email = os.getenv("EXHIBIT_ADMIN_EMAIL", "admin@example.com").strip().lower()
    password = os.getenv("EXHIBIT_ADMIN_PASSWORD", _DEFAULT_PASSWORD)
    first_name = os.getenv("EXHIBIT_ADMIN_FIRST_NAME", "Site")
    last_name = os.getenv("EXHIBIT_ADMIN_LAST_NAME", "Admin")

    with db_session() as session:
        existing = session.execute(select(User).limit(1)).scalar_one_or_none()
        if existing:
            return  # Users already seeded

        if password == _DEFAULT_PASSWORD:
            logger.warning(
                "Seeding superadmin with the DEFAULT password; "
                "set EXHIBIT_ADMIN_PASSWORD before deploying to production."
            )
            if settings.environment != "development":
                logger.error(
                    "Refusing to seed default password in non-development environment (%s).",
                    settings.environment,
                )
                return

        admin = User(
            email=email,
            first_name=first_name,
            last_name=last_name,
            role="superadmin",
            is_verified=True,
            is_active=True,
            profile_picture=settings.default_profile_picture,
        )
        admin.set_password(password)
        session.add(admin)
    logger.info("Default superadmin created: %s", email)
