"""Database models for the Address Book.

This module defines SQLAlchemy ORM models used by the application.
"""

import enum

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Boolean,
    LargeBinary,
    ForeignKey,
    Table,
)
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import relationship

from .database import Base


class States(str, enum.Enum):
    """US state abbreviations offered for contact addresses."""

    AL = "AL"
    AK = "AK"
    AZ = "AZ"
    AR = "AR"
    CA = "CA"
    CO = "CO"
    CT = "CT"
    DE = "DE"
    DC = "DC"
    FL = "FL"
    GA = "GA"
    HI = "HI"
    ID = "ID"
    IL = "IL"
    IN = "IN"
    IA = "IA"
    KS = "KS"
    KY = "KY"
    LA = "LA"
    ME = "ME"
    MD = "MD"
    MA = "MA"
    MI = "MI"
    MN = "MN"
    MS = "MS"
    MO = "MO"
    MT = "MT"
    NE = "NE"
    NV = "NV"
    NH = "NH"
    NJ = "NJ"
    NM = "NM"
    NY = "NY"
    NC = "NC"
    ND = "ND"
    OH = "OH"
    OK = "OK"
    OR = "OR"
    PA = "PA"
    RI = "RI"
    SC = "SC"
    SD = "SD"
    TN = "TN"
    TX = "TX"
    UT = "UT"
    VT = "VT"
    VA = "VA"
    WA = "WA"
    WV = "WV"
    WI = "WI"
    WY = "WY"


#: Join table between contacts and categories; one row per (contact, category).
contact_categories = Table(
    "contact_categories",
    Base.metadata,
    Column(
        "contact_id",
        Integer,
        ForeignKey("contacts.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "category_id",
        Integer,
        ForeignKey("categories.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class AppUser(Base):
    """
    SQLAlchemy model representing an application user.

    A user owns every contact and category it creates; nothing is
    shared between users.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    hashed_password = Column(String(255), nullable=False)
    email_confirmed = Column(Boolean, default=False, nullable=False)

    #: Contacts owned by the user
    contacts = relationship(
        "Contact",
        back_populates="app_user",
        cascade="all, delete",
    )

    #: Categories owned by the user
    categories = relationship(
        "Category",
        back_populates="app_user",
        cascade="all, delete",
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Category(Base):
    """
    SQLAlchemy model representing a named group of contacts.

    ``version`` guards updates: a flush against a row that changed or
    vanished since it was loaded raises ``StaleDataError``.
    """

    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False)
    version = Column(Integer, nullable=False)

    #: Identifier of the owning user
    app_user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    app_user = relationship("AppUser", back_populates="categories")
    contacts = relationship(
        "Contact",
        secondary=contact_categories,
        back_populates="categories",
    )

    __mapper_args__ = {"version_id_col": version}


class Contact(Base):
    """
    SQLAlchemy model representing a contact entry.

    Each contact belongs to exactly one user. ``created_date`` and
    ``date_of_birth`` are stored in UTC.
    """

    __tablename__ = "contacts"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(50), nullable=False, index=True)
    last_name = Column(String(50), nullable=False, index=True)
    date_of_birth = Column(DateTime(timezone=True), nullable=True)
    address1 = Column(String(100), nullable=True)
    address2 = Column(String(100), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(2), nullable=True)
    zip_code = Column(String(10), nullable=True)
    email = Column(String(255), nullable=False)
    phone_number = Column(String(50), nullable=True)
    created_date = Column(DateTime(timezone=True), nullable=False)
    image_data = Column(LargeBinary, nullable=True)
    image_type = Column(String(100), nullable=True)
    version = Column(Integer, nullable=False)

    #: Identifier of the owning user
    app_user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    app_user = relationship("AppUser", back_populates="contacts")
    categories = relationship(
        "Category",
        secondary=contact_categories,
        back_populates="contacts",
    )

    __mapper_args__ = {"version_id_col": version}

    @hybrid_property
    def full_name(self):
        return self.first_name + " " + self.last_name
