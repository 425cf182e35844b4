"""Authentication routes and helpers.

Users sign in through an HTML form; the issued JWT is kept in an
http-only cookie and decoded on every request by ``get_current_user``.
"""

import logging
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Cookie, Depends, HTTPException, Request, status
from fastapi_limiter.depends import RateLimiter
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import ValidationError
from sqlalchemy.orm import Session

from . import schemas, crud
from .core import get_settings
from .database import get_db
from .models import AppUser
from .web import redirect, render, verify_csrf

logger = logging.getLogger(__name__)

ACCESS_COOKIE = "access_token"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
router = APIRouter(prefix="/auth", tags=["auth"])
settings = get_settings()


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Compare a plain password with its hashed value."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Generate a password hash using the configured context."""
    return pwd_context.hash(password)


def create_access_token(
    data: dict, expires_delta: timedelta | None = None, scope: str = "access"
) -> str:
    """Create a signed JWT access token."""
    settings = get_settings()
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire, "scope": scope})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


async def get_current_user(
    access_token: str | None = Cookie(default=None),
    db: Session = Depends(get_db),
) -> AppUser:
    """Dependency that returns the signed-in user from the session cookie."""

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
    )
    if not access_token:
        raise credentials_exception
    try:
        payload = jwt.decode(
            access_token,
            get_settings().SECRET_KEY,
            algorithms=[get_settings().ALGORITHM],
        )
        token_data = schemas.TokenData(
            sub=payload.get("sub"), scope=payload.get("scope", "access")
        )
    except (JWTError, ValidationError):
        raise credentials_exception
    if token_data.sub is None or token_data.scope != "access":
        raise credentials_exception
    user = crud.get_user_by_email(db, email=token_data.sub)
    if user is None:
        raise credentials_exception
    return user


def authenticate_user(db: Session, email: str, password: str) -> AppUser | None:
    """Return the user when the email and password match, else ``None``."""
    user = crud.get_user_by_email(db, email)
    if not user or not verify_password(password, user.hashed_password):
        return None
    return user


@router.get("/register")
def register_form(request: Request):
    """Show the sign-up form."""
    return render(request, "auth/register.html", {"values": {}, "errors": {}})


@router.post("/register", dependencies=[Depends(verify_csrf)])
async def register(request: Request, db: Session = Depends(get_db)):
    """Create an account and sign the new user in."""

    form = await request.form()
    values = schemas.pick_fields(form, schemas.UserCreate)
    try:
        user_in = schemas.UserCreate(**values)
    except ValidationError as exc:
        return render(
            request,
            "auth/register.html",
            {"values": values, "errors": schemas.error_messages(exc)},
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    try:
        user = crud.create_user(db, user_in, get_password_hash(user_in.password))
    except ValueError:
        return render(
            request,
            "auth/register.html",
            {"values": values, "errors": {"email": "Email is already registered"}},
            status_code=status.HTTP_400_BAD_REQUEST,
        )
    logger.info("Registered user %s", user.email)
    return _signed_in(user)


@router.get("/login")
def login_form(request: Request):
    """Show the sign-in form."""
    return render(request, "auth/login.html", {"email": "", "error": None})


@router.post(
    "/login",
    dependencies=[
        Depends(
            RateLimiter(
                times=settings.LOGIN_RATE_LIMIT_TIMES,
                seconds=settings.LOGIN_RATE_LIMIT_SECONDS,
            )
        ),
        Depends(verify_csrf),
    ],
)
async def login(request: Request, db: Session = Depends(get_db)):
    """Check the submitted credentials and set the session cookie."""

    form = await request.form()
    email = str(form.get("email") or "").strip()
    password = str(form.get("password") or "")
    user = authenticate_user(db, email, password)
    if user is None:
        return render(
            request,
            "auth/login.html",
            {"email": email, "error": "Invalid credentials"},
            status_code=status.HTTP_400_BAD_REQUEST,
        )
    return _signed_in(user)


@router.post("/logout", dependencies=[Depends(verify_csrf)])
def logout():
    """Forget the session cookie."""
    response = redirect("/auth/login")
    response.delete_cookie(ACCESS_COOKIE)
    return response


def _signed_in(user: AppUser):
    response = redirect("/contacts")
    response.set_cookie(
        ACCESS_COOKIE,
        create_access_token({"sub": user.email}),
        httponly=True,
        samesite="lax",
        max_age=get_settings().ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    return response
