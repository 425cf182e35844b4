"""Maintenance of the contact/category join table.

None of these helpers commit. Callers run them inside the same
transaction as the contact write so a category replace is never
observed half done.
"""

from typing import Iterable

from sqlalchemy import delete, insert, select
from sqlalchemy.orm import Session

from .models import contact_categories


def add_categories_to_contact(
    db: Session, category_ids: Iterable[int], contact_id: int
) -> None:
    """
    Link a contact to each of the given categories.

    The ids must already be restricted to the caller's own categories.

    Args:
        db (Session): Database session.
        category_ids (Iterable[int]): Categories to link.
        contact_id (int): Contact identifier.
    """
    rows = [
        {"contact_id": contact_id, "category_id": category_id}
        for category_id in sorted(set(category_ids))
    ]
    if rows:
        db.execute(insert(contact_categories), rows)


def remove_categories_from_contact(db: Session, contact_id: int) -> None:
    """Unlink a contact from every category."""
    db.execute(
        delete(contact_categories).where(
            contact_categories.c.contact_id == contact_id
        )
    )


def replace_contact_categories(
    db: Session, contact_id: int, category_ids: Iterable[int]
) -> None:
    """
    Make ``category_ids`` the exact category set of a contact.

    Args:
        db (Session): Database session.
        contact_id (int): Contact identifier.
        category_ids (Iterable[int]): New category selection.
    """
    remove_categories_from_contact(db, contact_id)
    add_categories_to_contact(db, category_ids, contact_id)


def contact_category_ids(db: Session, contact_id: int) -> set[int]:
    """Return the ids of the categories a contact is linked to."""
    return set(
        db.scalars(
            select(contact_categories.c.category_id).where(
                contact_categories.c.contact_id == contact_id
            )
        ).all()
    )
