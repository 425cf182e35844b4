"""Contact management views.

Every view works on the signed-in user's rows only; an id that belongs to
another user answers 404 just like an id that does not exist.
"""

from dataclasses import dataclass, field

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from pydantic import ValidationError
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile

from . import schemas, crud
from .associations import contact_category_ids
from .auth import get_current_user
from .database import get_db
from .email_sender import EmailSender, get_email_sender
from .images import ImageRejected, StoredImage, to_stored_image
from .models import AppUser, Contact, States
from .notifications import build_contact_message, dispatch
from .web import redirect, render, verify_csrf

router = APIRouter(prefix="/contacts", tags=["contacts"])


@dataclass
class ContactSubmission:
    """Allow-listed values of a posted contact form."""

    values: dict
    selected: list[int] = field(default_factory=list)
    image: StoredImage | None = None
    image_error: str | None = None
    posted_id: str | None = None


def parse_ids(raw_values) -> list[int]:
    """Convert submitted ids to ints, dropping anything that is not one."""
    ids = []
    for raw in raw_values:
        try:
            ids.append(int(raw))
        except (TypeError, ValueError):
            continue
    return ids


async def read_contact_submission(request: Request) -> ContactSubmission:
    """
    Dependency collecting the bindable parts of a contact form.

    Only the fields of ``ContactForm``, the ``selected`` category ids, the
    ``image_file`` upload and the hidden ``id`` are read; anything else in
    the request is ignored.
    """
    form = await request.form()
    submission = ContactSubmission(
        values=schemas.pick_fields(form, schemas.ContactForm),
        selected=parse_ids(form.getlist("selected")),
        posted_id=form.get("id"),
    )
    upload = form.get("image_file")
    if isinstance(upload, UploadFile):
        try:
            submission.image = await to_stored_image(upload)
        except ImageRejected as exc:
            submission.image_error = str(exc)
    return submission


def _contact_values(contact: Contact) -> dict:
    values = {name: getattr(contact, name) for name in schemas.ContactForm.model_fields}
    if contact.date_of_birth is not None:
        values["date_of_birth"] = contact.date_of_birth.date().isoformat()
    return values


def _form_context(
    db: Session,
    user_id: int,
    values: dict,
    selected,
    errors: dict | None = None,
    contact: Contact | None = None,
) -> dict:
    return {
        "contact": contact,
        "values": values,
        "errors": errors or {},
        "categories": crud.list_categories(db, user_id),
        "selected": set(selected),
        "states": [state.value for state in States],
    }


def _validate(submission: ContactSubmission):
    errors: dict[str, str] = {}
    data = None
    try:
        data = schemas.ContactForm(**submission.values)
    except ValidationError as exc:
        errors = schemas.error_messages(exc)
    if submission.image_error:
        errors["image_file"] = submission.image_error
    return data, errors


def _owned_contact(db: Session, contact_id: int, user_id: int) -> Contact:
    contact = crud.get_contact(db, contact_id, user_id)
    if contact is None:
        raise HTTPException(status_code=404, detail="Contact not found")
    return contact


@router.get("")
def list_contacts(
    request: Request,
    category_filter: str | None = Query(None, alias="categoryId"),
    swal_message: str | None = Query(None, alias="swalMessage"),
    db: Session = Depends(get_db),
    current_user: AppUser = Depends(get_current_user),
):
    """
    List the current user's contacts.

    Args:
        request (Request): Incoming request.
        category_filter (str | None): Id of the category to show; blank
            means every contact.
        swal_message (str | None): Status text carried over a redirect.
        db (Session): Database session.
        current_user (AppUser): Authenticated user.

    Raises:
        HTTPException: If the category filter is not one of the user's.
    """
    category_id = None
    if category_filter and category_filter.strip():
        try:
            category_id = int(category_filter)
        except ValueError:
            raise HTTPException(status_code=404, detail="Category not found")
    try:
        contacts = crud.list_contacts(db, current_user.id, category_id)
    except LookupError:
        raise HTTPException(status_code=404, detail="Category not found")
    return render(
        request,
        "contacts/index.html",
        {
            "contacts": contacts,
            "categories": crud.list_categories(db, current_user.id),
            "category_id": category_id,
            "swal_message": swal_message,
            "search_string": "",
        },
    )


@router.get("/search")
def search_contacts(
    request: Request,
    search_string: str | None = Query(None, alias="searchString"),
    db: Session = Depends(get_db),
    current_user: AppUser = Depends(get_current_user),
):
    """Search the current user's contacts by full name."""
    return render(
        request,
        "contacts/index.html",
        {
            "contacts": crud.search_contacts(db, current_user.id, search_string),
            "categories": crud.list_categories(db, current_user.id),
            "category_id": None,
            "swal_message": None,
            "search_string": search_string or "",
        },
    )


@router.get("/details/{contact_id}")
def contact_details(
    contact_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: AppUser = Depends(get_current_user),
):
    """Show a single contact."""
    contact = _owned_contact(db, contact_id, current_user.id)
    return render(request, "contacts/details.html", {"contact": contact})


@router.get("/image/{contact_id}")
def contact_image(
    contact_id: int,
    db: Session = Depends(get_db),
    current_user: AppUser = Depends(get_current_user),
):
    """Serve a contact's stored photo."""
    contact = _owned_contact(db, contact_id, current_user.id)
    if not contact.image_data:
        raise HTTPException(status_code=404, detail="Contact has no image")
    return Response(content=contact.image_data, media_type=contact.image_type)


@router.get("/create")
def create_contact_form(
    request: Request,
    db: Session = Depends(get_db),
    current_user: AppUser = Depends(get_current_user),
):
    """Show an empty contact form."""
    return render(
        request,
        "contacts/form.html",
        _form_context(db, current_user.id, {}, ()),
    )


@router.post("/create", dependencies=[Depends(verify_csrf)])
def create_contact(
    request: Request,
    submission: ContactSubmission = Depends(read_contact_submission),
    db: Session = Depends(get_db),
    current_user: AppUser = Depends(get_current_user),
):
    """
    Create a contact owned by the current user.

    The owner, creation time and photo bytes are set here, never read from
    the posted form.
    """
    data, errors = _validate(submission)
    if errors:
        return render(
            request,
            "contacts/form.html",
            _form_context(
                db, current_user.id, submission.values, submission.selected, errors
            ),
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    category_ids = crud.owned_category_ids(db, current_user.id, submission.selected)
    crud.create_contact(db, current_user.id, data, category_ids, submission.image)
    return redirect("/contacts")


@router.get("/edit/{contact_id}")
def edit_contact_form(
    contact_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: AppUser = Depends(get_current_user),
):
    """Show the edit form of a contact."""
    contact = _owned_contact(db, contact_id, current_user.id)
    return render(
        request,
        "contacts/form.html",
        _form_context(
            db,
            current_user.id,
            _contact_values(contact),
            contact_category_ids(db, contact.id),
            contact=contact,
        ),
    )


@router.post("/edit/{contact_id}", dependencies=[Depends(verify_csrf)])
def edit_contact(
    contact_id: int,
    request: Request,
    submission: ContactSubmission = Depends(read_contact_submission),
    db: Session = Depends(get_db),
    current_user: AppUser = Depends(get_current_user),
):
    """
    Save changes to a contact and replace its category selection.

    Raises:
        HTTPException: 404 if the posted id disagrees with the path, or the
            contact is missing; 409 if it was changed concurrently.
    """
    if submission.posted_id != str(contact_id):
        raise HTTPException(status_code=404, detail="Contact not found")
    contact = _owned_contact(db, contact_id, current_user.id)

    data, errors = _validate(submission)
    if errors:
        return render(
            request,
            "contacts/form.html",
            _form_context(
                db,
                current_user.id,
                submission.values,
                submission.selected,
                errors,
                contact=contact,
            ),
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    category_ids = crud.owned_category_ids(db, current_user.id, submission.selected)
    result = crud.update_contact(db, contact, data, category_ids, submission.image)
    if result.outcome is crud.Outcome.NOT_FOUND:
        raise HTTPException(status_code=404, detail="Contact not found")
    if result.outcome is crud.Outcome.CONFLICT:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Contact was changed by another request",
        )
    return redirect("/contacts")


@router.get("/delete/{contact_id}")
def delete_contact_form(
    contact_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: AppUser = Depends(get_current_user),
):
    """Ask for confirmation before deleting a contact."""
    contact = _owned_contact(db, contact_id, current_user.id)
    return render(request, "contacts/delete.html", {"contact": contact})


@router.post("/delete/{contact_id}", dependencies=[Depends(verify_csrf)])
def delete_contact(
    contact_id: int,
    db: Session = Depends(get_db),
    current_user: AppUser = Depends(get_current_user),
):
    """Delete a contact; a missing id is a no-op."""
    crud.delete_contact(db, contact_id, current_user.id)
    return redirect("/contacts")


@router.get("/email-contact/{contact_id}")
def email_contact_form(
    contact_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: AppUser = Depends(get_current_user),
):
    """Show the compose form for a single contact."""
    contact = _owned_contact(db, contact_id, current_user.id)
    message = build_contact_message(contact)
    return render(
        request,
        "contacts/email.html",
        {"contact": contact, "message": message, "values": {}, "errors": {}},
    )


@router.post("/email-contact/{contact_id}", dependencies=[Depends(verify_csrf)])
async def email_contact(
    contact_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: AppUser = Depends(get_current_user),
    sender: EmailSender = Depends(get_email_sender),
):
    """
    Send an email to a contact and report the outcome on the contact list.

    Transport failures become an error status message, not a server error.
    """
    contact = _owned_contact(db, contact_id, current_user.id)
    message = build_contact_message(contact)

    form = await request.form()
    values = schemas.pick_fields(form, schemas.EmailForm)
    try:
        email_in = schemas.EmailForm(**values)
    except ValidationError as exc:
        return render(
            request,
            "contacts/email.html",
            {
                "contact": contact,
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
