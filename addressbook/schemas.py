"""Form and token schemas.

Each form schema is the allow-list of fields a request may bind. Anything
else a client posts (owner id, created date, image bytes) is ignored and
filled in on the server.
"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from .models import States


def _blank_to_none(value):
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    return value


class ContactForm(BaseModel):
    """Fields a user may set when creating or editing a contact."""

    first_name: str = Field(min_length=2, max_length=50)
    last_name: str = Field(min_length=2, max_length=50)
    date_of_birth: Optional[date] = None
    address1: Optional[str] = Field(default=None, max_length=100)
    address2: Optional[str] = Field(default=None, max_length=100)
    city: Optional[str] = Field(default=None, max_length=100)
    state: Optional[States] = None
    zip_code: Optional[str] = Field(default=None, pattern=r"^\d{5}(-\d{4})?$")
    email: EmailStr
    phone_number: Optional[str] = Field(default=None, max_length=50)

    @field_validator("*", mode="before")
    @classmethod
    def blank_strings_are_missing(cls, value):
        return _blank_to_none(value)


class CategoryForm(BaseModel):
    """Fields a user may set on a category."""

    name: str = Field(min_length=1, max_length=50)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value):
        return _blank_to_none(value)


class EmailForm(BaseModel):
    """Subject and body typed by the user; recipients come from the database."""

    subject: str = Field(min_length=1, max_length=200)
    body: str = Field(min_length=1)

    @field_validator("*", mode="before")
    @classmethod
    def blank_strings_are_missing(cls, value):
        return _blank_to_none(value)


class UserCreate(BaseModel):
    """Payload for registering a new user."""

    email: EmailStr
    first_name: str = Field(min_length=1, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)
    password: str = Field(min_length=6)


class TokenData(BaseModel):
    """Payload stored inside JWT token."""

    sub: str | None = None
    exp: Optional[datetime] = None
    scope: Optional[str] = None


def pick_fields(form, schema: type[BaseModel]) -> dict:
    """
    Copy only the allow-listed keys out of a submitted form.

    Args:
        form (Mapping): Parsed request form.
        schema (type[BaseModel]): Form schema whose fields may be bound.

    Returns:
        dict: Submitted values for the allowed names.
    """
    return {name: form.get(name) for name in schema.model_fields if name in form}


def error_messages(exc) -> dict[str, str]:
    """Flatten a pydantic ``ValidationError`` into ``{field: message}``."""
    messages: dict[str, str] = {}
    for error in exc.errors():
        field = str(error["loc"][0]) if error["loc"] else "__all__"
        messages.setdefault(field, error["msg"])
    return messages
