"""Category management views."""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError
from sqlalchemy.orm import Session

from . import schemas, crud
from .auth import get_current_user
from .database import get_db
from .email_sender import EmailSender, get_email_sender
from .models import AppUser, Category
from .notifications import build_group_message, dispatch
from .web import redirect, render, verify_csrf

router = APIRouter(prefix="/categories", tags=["categories"])


def _owned_category(db: Session, category_id: int, user_id: int) -> Category:
    category = crud.get_category(db, category_id, user_id)
    if category is None:
        raise HTTPException(status_code=404, detail="Category not found")
    return category


def _render_form(request, values, errors, category=None):
    return render(
        request,
        "categories/form.html",
        {"category": category, "values": values, "errors": errors},
        status_code=status.HTTP_400_BAD_REQUEST if errors else status.HTTP_200_OK,
    )


@router.get("")
def list_categories(
    request: Request,
    db: Session = Depends(get_db),
    current_user: AppUser = Depends(get_current_user),
):
    """List the current user's categories."""
    return render(
        request,
        "categories/index.html",
        {"categories": crud.list_categories(db, current_user.id)},
    )


@router.get("/details/{category_id}")
def category_details(
    category_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: AppUser = Depends(get_current_user),
):
    """Show a category and its members."""
    category = _owned_category(db, category_id, current_user.id)
    return render(
        request,
        "categories/details.html",
        {"category": category, "contacts": crud.list_category_contacts(db, category)},
    )


@router.get("/create")
def create_category_form(
    request: Request,
    current_user: AppUser = Depends(get_current_user),
):
    """Show an empty category form."""
    return _render_form(request, {}, {})


@router.post("/create", dependencies=[Depends(verify_csrf)])
async def create_category(
    request: Request,
    db: Session = Depends(get_db),
    current_user: AppUser = Depends(get_current_user),
):
    """Create a category owned by the current user."""
    form = await request.form()
    values = schemas.pick_fields(form, schemas.CategoryForm)
    try:
        data = schemas.CategoryForm(**values)
    except ValidationError as exc:
        return _render_form(request, values, schemas.error_messages(exc))

    crud.create_category(db, current_user.id, data)
    return redirect("/categories")


@router.get("/edit/{category_id}")
def edit_category_form(
    category_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: AppUser = Depends(get_current_user),
):
    """Show the edit form of a category."""
    category = _owned_category(db, category_id, current_user.id)
    return _render_form(request, {"name": category.name}, {}, category)


@router.post("/edit/{category_id}", dependencies=[Depends(verify_csrf)])
async def edit_category(
    category_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: AppUser = Depends(get_current_user),
):
    """
    Rename a category.

    Raises:
        HTTPException: 404 if the posted id disagrees with the path, or the
            category is missing; 409 if it was changed concurrently.
    """
    form = await request.form()
    if form.get("id") != str(category_id):
        raise HTTPException(status_code=404, detail="Category not found")
    category = _owned_category(db, category_id, current_user.id)

    values = schemas.pick_fields(form, schemas.CategoryForm)
    try:
        data = schemas.CategoryForm(**values)
    except ValidationError as exc:
        return _render_form(request, values, schemas.error_messages(exc), category)

    result = crud.update_category(db, category, data)
    if result.outcome is crud.Outcome.NOT_FOUND:
        raise HTTPException(status_code=404, detail="Category not found")
    if result.outcome is crud.Outcome.CONFLICT:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Category was changed by another request",
        )
    return redirect("/categories")


@router.get("/delete/{category_id}")
def delete_category_form(
    category_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: AppUser = Depends(get_current_user),
):
    """Ask for confirmation before deleting a category."""
    category = _owned_category(db, category_id, current_user.id)
    return render(
        request,
        "categories/delete.html",
        {"category": category, "contacts": crud.list_category_contacts(db, category)},
    )


@router.post("/delete/{category_id}", dependencies=[Depends(verify_csrf)])
def delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    current_user: AppUser = Depends(get_current_user),
):
    """Delete a category; its contacts stay, only the links go."""
    crud.delete_category(db, category_id, current_user.id)
    return redirect("/categories")


@router.get("/email-category/{category_id}")
def email_category_form(
    category_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: AppUser = Depends(get_current_user),
):
    """Show the compose form for a group message."""
    category = _owned_category(db, category_id, current_user.id)
    message = build_group_message(category, crud.list_category_contacts(db, category))
    return render(
        request,
        "categories/email.html",
        {
            "category": category,
            "message": message,
            "values": {"subject": message.subject},
            "errors": {},
        },
    )


@router.post("/email-category/{category_id}", dependencies=[Depends(verify_csrf)])
async def email_category(
    category_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: AppUser = Depends(get_current_user),
    sender: EmailSender = Depends(get_email_sender),
):
    """
    Email every member of a category.

    Recipients are taken from the stored members, not from the form. The
    outcome is reported on the contact list.
    """
    category = _owned_category(db, category_id, current_user.id)
    message = build_group_message(category, crud.list_category_contacts(db, category))

    form = await request.form()
    values = schemas.pick_fields(form, schemas.EmailForm)
    try:
        email_in = schemas.EmailForm(**values)
    except ValidationError as exc:
        return render(
            request,
            "categories/email.html",
            {
                "category": category,
                "message": message,
                "values": values,
                "errors": schemas.error_messages(exc),
            },
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    message.subject = email_in.subject
    message.body = email_in.body
    result = await dispatch(sender, message)
    return redirect("/contacts", swalMessage=result.message)
