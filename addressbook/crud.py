"""CRUD operations for users, contacts and categories.

This module contains database interaction logic, isolated from FastAPI
route handlers. Every contact and category query is constrained by the
owning user's id, so a row that belongs to somebody else behaves exactly
like a row that does not exist.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Any, Iterable

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from . import models, schemas
from .associations import add_categories_to_contact, replace_contact_categories
from .images import StoredImage

logger = logging.getLogger(__name__)


class Outcome(str, enum.Enum):
    """Result classification of an update."""

    SUCCESS = "success"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"


@dataclass
class UpdateResult:
    """Outcome of an update plus the refreshed entity on success."""

    outcome: Outcome
    entity: Any = None

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.SUCCESS


def ensure_utc(value: datetime | date | None) -> datetime | None:
    """
    Normalize a date or datetime to an aware UTC datetime.

    Naive values are taken to already be in UTC; plain dates become
    midnight UTC.
    """
    if value is None:
        return None
    if not isinstance(value, datetime):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# Users


def create_user(
    db: Session,
    user_in: schemas.UserCreate,
    hashed_password: str,
    email_confirmed: bool = False,
) -> models.AppUser:
    """
    Create and persist a new user.

    Args:
        db (Session): SQLAlchemy database session.
        user_in (UserCreate): Incoming user data.
        hashed_password (str): Securely hashed password.
        email_confirmed (bool): Whether the address is already confirmed.

    Raises:
        ValueError: If a user with the same email already exists.

    Returns:
        AppUser: Newly created user instance.
    """
    if get_user_by_email(db, user_in.email):
        raise ValueError("User already exists")

    user = models.AppUser(
        email=user_in.email,
        first_name=user_in.first_name,
        last_name=user_in.last_name,
        hashed_password=hashed_password,
        email_confirmed=email_confirmed,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def get_user_by_email(db: Session, email: str) -> models.AppUser | None:
    """
    Retrieve a user by email address.

    Args:
        db (Session): Database session.
        email (str): User email.

    Returns:
        AppUser | None: User if found, otherwise ``None``.
    """
    return db.execute(
        select(models.AppUser).where(models.AppUser.email == email)
    ).scalar_one_or_none()


def get_user_by_id(db: Session, user_id: int) -> models.AppUser | None:
    """Retrieve a user by primary key."""
    return db.get(models.AppUser, user_id)


# Contacts


def _contact_order():
    return (models.Contact.last_name, models.Contact.first_name)


def list_contacts(
    db: Session, user_id: int, category_id: int | None = None
) -> list[models.Contact]:
    """
    Retrieve a user's contacts ordered by last name, then first name.

    Args:
        db (Session): Database session.
        user_id (int): Owner of the contacts.
        category_id (int | None): Restrict to members of this category.

    Raises:
        LookupError: If ``category_id`` is not one of the user's categories.

    Returns:
        list[Contact]: Matching contacts.
    """
    if category_id is None:
        return list(
            db.scalars(
                select(models.Contact)
                .where(models.Contact.app_user_id == user_id)
                .order_by(*_contact_order())
            ).all()
        )

    category = get_category(db, category_id, user_id)
    if category is None:
        raise LookupError(f"Category {category_id} not found")
    return list_category_contacts(db, category)


def search_contacts(
    db: Session, user_id: int, query: str | None = None
) -> list[models.Contact]:
    """
    Case-insensitive substring search over a user's contacts' full names.

    An empty or missing query returns the full sorted list.

    Args:
        db (Session): Database session.
        user_id (int): Owner of the contacts.
        query (str | None): Text to look for.

    Returns:
        list[Contact]: Matching contacts ordered by last, then first name.
    """
    if not query or not query.strip():
        return list_contacts(db, user_id)

    stmt = (
        select(models.Contact)
        .where(
            models.Contact.app_user_id == user_id,
            func.lower(models.Contact.full_name).contains(
                query.strip().lower(), autoescape=True
            ),
        )
        .order_by(*_contact_order())
    )
    return list(db.scalars(stmt).all())


def get_contact(db: Session, contact_id: int, user_id: int) -> models.Contact | None:
    """
    Retrieve a single contact owned by the given user.

    Args:
        db (Session): Database session.
        contact_id (int): Contact identifier.
        user_id (int): Contact owner.

    Returns:
        Contact | None: Contact if found, otherwise ``None``.
    """
    return db.execute(
        select(models.Contact).where(
            models.Contact.id == contact_id,
            models.Contact.app_user_id == user_id,
        )
    ).scalar_one_or_none()


def _apply_contact_form(
    contact: models.Contact, data: schemas.ContactForm, image: StoredImage | None
) -> None:
    for key, value in data.model_dump().items():
        if key == "state" and value is not None:
            value = value.value
        setattr(contact, key, value)
    contact.date_of_birth = ensure_utc(data.date_of_birth)
    if image is not None:
        contact.image_data = image.data
        contact.image_type = image.content_type


def create_contact(
    db: Session,
    user_id: int,
    data: schemas.ContactForm,
    category_ids: Iterable[int] = (),
    image: StoredImage | None = None,
) -> models.Contact:
    """
    Create a new contact owned by the given user.

    The contact row and its category links are written in one transaction.

    Args:
        db (Session): Database session.
        user_id (int): Owner of the contact.
        data (ContactForm): Validated contact fields.
        category_ids (Iterable[int]): Categories already checked to belong
            to the owner.
        image (StoredImage | None): Uploaded photo.

    Returns:
        Contact: Newly created contact.
    """
    contact = models.Contact(
        app_user_id=user_id,
        created_date=datetime.now(timezone.utc),
    )
    _apply_contact_form(contact, data, image)
    db.add(contact)
    db.flush()
    add_categories_to_contact(db, category_ids, contact.id)
    db.commit()
    db.refresh(contact)
    return contact


def _commit_update(db: Session, model, entity_id: int, work) -> UpdateResult:
    try:
        db.flush()
        work()
        db.commit()
    except StaleDataError:
        db.rollback()
        exists = db.scalar(select(model.id).where(model.id == entity_id))
        if exists is None:
            return UpdateResult(Outcome.NOT_FOUND)
        logger.warning("Concurrent update of %s %s", model.__name__, entity_id)
        return UpdateResult(Outcome.CONFLICT)
    return UpdateResult(Outcome.SUCCESS)


def _delete_owned(db: Session, load, entity_id: int, user_id: int) -> bool:
    # A concurrent edit bumps the version; reload it and try once more.
    for attempt in range(2):
        entity = load(db, entity_id, user_id)
        if entity is None:
            return False
        db.delete(entity)
        try:
            db.commit()
        except StaleDataError:
            db.rollback()
            logger.warning(
                "Delete of %s %s hit a concurrent change (attempt %d)",
                type(entity).__name__,
                entity_id,
                attempt + 1,
            )
            continue
        return True
    return False


def update_contact(
    db: Session,
    contact: models.Contact,
    data: schemas.ContactForm,
    category_ids: Iterable[int] | None = None,
    image: StoredImage | None = None,
) -> UpdateResult:
    """
    Update the editable fields and category links of a contact.

    ``created_date`` is kept from the stored row and re-stamped as UTC.
    The whole change is one transaction; if the row was deleted or changed
    by another request since it was loaded nothing is written.

    Args:
        db (Session): Database session.
        contact (Contact): Contact loaded for the current user.
        data (ContactForm): Validated contact fields.
        category_ids (Iterable[int] | None): New category selection, or
            ``None`` to leave the links untouched.
        image (StoredImage | None): Replacement photo, if one was uploaded.

    Returns:
        UpdateResult: ``SUCCESS``, ``NOT_FOUND`` or ``CONFLICT``.
    """
    contact_id = contact.id
    _apply_contact_form(contact, data, image)
    contact.created_date = ensure_utc(contact.created_date)
    flag_modified(contact, "created_date")

    def relink():
        if category_ids is not None:
            replace_contact_categories(db, contact_id, category_ids)

    result = _commit_update(db, models.Contact, contact_id, relink)
    if result.ok:
        db.refresh(contact)
        result.entity = contact
    return result


def delete_contact(db: Session, contact_id: int, user_id: int) -> bool:
    """
    Delete a contact owned by the given user.

    Args:
        db (Session): Database session.
        contact_id (int): Contact identifier.
        user_id (int): Contact owner.

    Returns:
        bool: ``True`` if a row was removed, ``False`` if there was none.
        A concurrent edit of the contact is reloaded and deleted anyway.
    """
    return _delete_owned(db, get_contact, contact_id, user_id)


# Categories


def list_categories(db: Session, user_id: int) -> list[models.Category]:
    """Retrieve a user's categories ordered by name."""
    return list(
        db.scalars(
            select(models.Category)
            .where(models.Category.app_user_id == user_id)
            .order_by(models.Category.name)
        ).all()
    )


def list_category_contacts(
    db: Session, category: models.Category
) -> list[models.Contact]:
    """Return the members of a category ordered by last, then first name."""
    return list(
        db.scalars(
            select(models.Contact)
            .join(models.contact_categories)
            .where(
                models.contact_categories.c.category_id == category.id,
                models.Contact.app_user_id == category.app_user_id,
            )
            .order_by(*_contact_order())
        ).all()
    )


def get_category(
    db: Session, category_id: int, user_id: int
) -> models.Category | None:
    """
    Retrieve a single category owned by the given user.

    Args:
        db (Session): Database session.
        category_id (int): Category identifier.
        user_id (int): Category owner.

    Returns:
        Category | None: Category if found, otherwise ``None``.
    """
    return db.execute(
        select(models.Category).where(
            models.Category.id == category_id,
            models.Category.app_user_id == user_id,
        )
    ).scalar_one_or_none()


def owned_category_ids(
    db: Session, user_id: int, category_ids: Iterable[int]
) -> set[int]:
    """
    Filter a submitted category selection down to the user's own ids.

    Args:
        db (Session): Database session.
        user_id (int): Category owner.
        category_ids (Iterable[int]): Ids posted by the client.

    Returns:
        set[int]: Ids that exist and belong to the user.
    """
    wanted = set(category_ids)
    if not wanted:
        return set()
    return set(
        db.scalars(
            select(models.Category.id).where(
                models.Category.app_user_id == user_id,
                models.Category.id.in_(wanted),
            )
        ).all()
    )


def create_category(
    db: Session, user_id: int, data: schemas.CategoryForm
) -> models.Category:
    """Create a new category owned by the given user."""
    category = models.Category(app_user_id=user_id, name=data.name)
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


def update_category(
    db: Session, category: models.Category, data: schemas.CategoryForm
) -> UpdateResult:
    """
    Rename a category.

    Args:
        db (Session): Database session.
        category (Category): Category loaded for the current user.
        data (CategoryForm): Validated category fields.

    Returns:
        UpdateResult: ``SUCCESS``, ``NOT_FOUND`` or ``CONFLICT``.
    """
    category_id = category.id
    category.name = data.name
    flag_modified(category, "name")

    result = _commit_update(db, models.Category, category_id, lambda: None)
    if result.ok:
        db.refresh(category)
        result.entity = category
    return result


def delete_category(db: Session, category_id: int, user_id: int) -> bool:
    """
    Delete a category and its contact links.

    Returns:
        bool: ``True`` if a row was removed, ``False`` if there was none.
    """
    return _delete_owned(db, get_category, category_id, user_id)
