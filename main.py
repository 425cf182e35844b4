"""
Main application entry point for the Address Book.

This module configures logging, initializes the FastAPI application with
session middleware, prepares the database and demo account on startup,
initializes the login rate limiter with a Redis backend, and includes
routers for authentication, contacts and categories.

Modules:
- FastAPI: Web framework
- SessionMiddleware: Signed session cookie holding the CSRF token
- FastAPILimiter: Rate limiting
- redis.asyncio: Async Redis client
- fakeredis.aioredis: In-process Redis used when none is configured
- addressbook.database: Database engine
- addressbook.seed: Schema creation and demo data
- addressbook.contacts: Contacts router
- addressbook.categories: Categories router
- addressbook.auth: Authentication router
- addressbook.core: Application settings
"""

import logging
from contextlib import asynccontextmanager

from fakeredis.aioredis import FakeRedis
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi_limiter import FastAPILimiter
import redis.asyncio as redis
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from addressbook import contacts, categories
from addressbook.auth import router as auth_router
from addressbook.core import get_settings
from addressbook.database import engine
from addressbook.seed import manage_data
from addressbook.web import redirect, render

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


async def init_rate_limiter():
    """
    Initialize the rate limiter.

    Uses the configured Redis server, or an in-process fake Redis when
    ``REDIS_URL`` is empty or the server cannot be reached.
    """
    if settings.REDIS_URL:
        redis_client = redis.from_url(
            settings.REDIS_URL, encoding="utf-8", decode_responses=True
        )
        try:
            await FastAPILimiter.init(redis_client)
            return
        except (RedisError, OSError):
            logger.warning("Redis at %s unavailable, using fakeredis", settings.REDIS_URL)
    await FastAPILimiter.init(FakeRedis(decode_responses=True))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Prepare the database and rate limiter; release them on shutdown."""
    manage_data(engine)
    await init_rate_limiter()
    yield
    await FastAPILimiter.close()


app = FastAPI(title="Address Book", lifespan=lifespan)

app.add_middleware(
    SessionMiddleware,
    secret_key=settings.SECRET_KEY,
    same_site="lax",
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Send anonymous users to the login page; render other errors."""
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        return redirect("/auth/login")
    return render(
        request,
        "error.html",
        {"status_code": exc.status_code, "detail": exc.detail},
        status_code=exc.status_code,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Treat an unparsable id or filter in the URL as a missing page."""
    in_url = all(error["loc"][:1] in (("path",), ("query",)) for error in exc.errors())
    status_code = (
        status.HTTP_404_NOT_FOUND if in_url else status.HTTP_400_BAD_REQUEST
    )
    return render(
        request,
        "error.html",
        {"status_code": status_code, "detail": "Not Found" if in_url else "Bad Request"},
        status_code=status_code,
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    """Report unexpected storage failures as a generic problem."""
    logger.exception("Unhandled database error on %s", request.url.path)
    return render(
        request,
        "error.html",
        {
            "status_code": status.HTTP_500_INTERNAL_SERVER_ERROR,
            "detail": "There was a problem processing your request.",
        },
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


# Include routers for application areas
app.include_router(auth_router)
app.include_router(contacts.router)
app.include_router(categories.router)


@app.get("/")
def root():
    """Send visitors to their contact list."""
    return redirect("/contacts")
