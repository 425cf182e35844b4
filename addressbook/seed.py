"""Startup data management: schema creation and the demo account."""

import logging

from sqlalchemy.orm import Session

from . import crud, models, schemas
from .auth import get_password_hash
from .core import get_settings
from .database import Base

logger = logging.getLogger(__name__)


def seed_demo_user(db: Session) -> models.AppUser:
    """
    Create the demo login if it does not exist yet.

    Running it again leaves the existing account untouched.

    Args:
        db (Session): Database session.

    Raises:
        Exception: Any database error, after it has been logged.

    Returns:
        AppUser: The demo user.
    """
    settings = get_settings()
    try:
        user = crud.get_user_by_email(db, settings.DEMO_USER_EMAIL)
        if user is None:
            user_in = schemas.UserCreate(
                email=settings.DEMO_USER_EMAIL,
                first_name="Demo",
                last_name="User",
                password=settings.DEMO_USER_PASSWORD,
            )
            user = crud.create_user(
                db,
                user_in,
                get_password_hash(user_in.password),
                email_confirmed=True,
            )
            logger.info("Seeded demo user %s", user.email)
        return user
    except Exception:
        logger.exception("Error seeding demo login user")
        raise


def manage_data(bind) -> None:
    """
    Bring the database up to date and seed demo data.

    Args:
        bind (Engine): Engine of the application database.
    """
    Base.metadata.create_all(bind=bind)
    with Session(bind=bind) as db:
        seed_demo_user(db)
