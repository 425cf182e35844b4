# tests/conftest.py
import os
import sys
import asyncio
import json
import re
from urllib.parse import urlencode

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

sys.path.append(os.path.abspath("."))

# Settings are read once and cached, so the environment is prepared
# before anything from the application is imported.
os.environ.pop("DATABASE_URL", None)
os.environ["DEFAULT_CONNECTION"] = "sqlite://"
os.environ["REDIS_URL"] = ""
os.environ["MAIL_SUPPRESS_SEND"] = "1"
os.environ["LOGIN_RATE_LIMIT_TIMES"] = "1000"

from addressbook.database import Base, get_db
from addressbook.email_sender import get_email_sender
from addressbook import crud, models
from addressbook.auth import ACCESS_COOKIE, create_access_token, get_password_hash
from addressbook.schemas import UserCreate
from main import app


# DB (SQLite in-memory for tests)
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="session", autouse=True)
def prepare_database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


# A second, independent session for simulating concurrent requests
@pytest.fixture()
def other_session():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


# One event loop for the WHOLE pytest session
@pytest.fixture(scope="session")
def session_loop():
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    yield loop
    loop.close()


# Run the application lifespan once per session (same loop)
# so FastAPILimiter.init() and the startup seeding happen.
@pytest.fixture(scope="session", autouse=True)
def app_lifespan(session_loop):
    lifespan = app.router.lifespan_context(app)
    session_loop.run_until_complete(lifespan.__aenter__())
    yield
    session_loop.run_until_complete(lifespan.__aexit__(None, None, None))


# Simple ASGI response/client
class SimpleResponse:
    def __init__(
        self, status_code: int, body: bytes, headers: list[tuple[bytes, bytes]]
    ):
        self.status_code = status_code
        self._body = body
        self.raw_headers = [(k.decode(), v.decode()) for k, v in headers]
        self.headers = {k: v for k, v in self.raw_headers}

    @property
    def content(self) -> bytes:
        return self._body

    @property
    def text(self) -> str:
        return self._body.decode()

    def json(self):
        return json.loads(self._body.decode())


class SimpleClient:
    """
    Important:
    - uses ONE shared session loop (passed from fixture)
    - does NOT call asyncio.run()
    - does NOT close the loop
    - keeps cookies between requests like a browser
    """

    def __init__(self, app, loop):
        self.app = app
        self.loop = loop
        self.cookies: dict[str, str] = {}

    def close(self):
        # do not close the loop here (session fixture closes it)
        pass

    def _store_cookies(self, response: SimpleResponse):
        for name, value in response.raw_headers:
            if name.lower() != "set-cookie":
                continue
            pair, _, attributes = value.partition(";")
            key, _, cookie_value = pair.partition("=")
            attributes = attributes.lower()
            if "max-age=0" in attributes or "01 jan 1970" in attributes:
                self.cookies.pop(key.strip(), None)
            else:
                self.cookies[key.strip()] = cookie_value.strip().strip('"')

    def request(
        self,
        method: str,
        path: str,
        json_body=None,
        data=None,
        headers=None,
        files=None,
    ):
        headers = headers or {}
        body_bytes = b""
        path, _, query_string = path.partition("?")

        if files:
            boundary = "TESTBOUNDARY"
            parts: list[bytes] = []
            for name, value in (data or {}).items():
                values = value if isinstance(value, (list, tuple)) else [value]
                for item in values:
                    parts.append(
                        (
                            f"--{boundary}\r\n"
                            f'Content-Disposition: form-data; name="{name}"\r\n\r\n'
                            f"{item}\r\n"
                        ).encode()
                    )
            for name, (filename, content, content_type) in files.items():
                disposition = f'form-data; name="{name}"; filename="{filename}"'
                part_headers = (
                    f"--{boundary}\r\n"
                    f"Content-Disposition: {disposition}\r\n"
                    f"Content-Type: {content_type or 'application/octet-stream'}\r\n\r\n"
                )
                parts.append(part_headers.encode() + content + b"\r\n")
            parts.append(f"--{boundary}--\r\n".encode())
            body_bytes = b"".join(parts)
            headers["content-type"] = f"multipart/form-data; boundary={boundary}"

        elif json_body is not None:
            body_bytes = json.dumps(json_body).encode()
            headers.setdefault("content-type", "application/json")

        elif data is not None:
            if isinstance(data, dict):
                body_bytes = urlencode(data, doseq=True).encode()
            elif isinstance(data, bytes):
                body_bytes = data
            else:
                body_bytes = str(data).encode()
            headers.setdefault("content-type", "application/x-www-form-urlencoded")

        if self.cookies:
            headers.setdefault(
                "cookie", "; ".join(f"{k}={v}" for k, v in self.cookies.items())
            )

        raw_headers = [(k.lower().encode(), v.encode()) for k, v in headers.items()]
        scope = {
            "type": "http",
            "method": method.upper(),
            "path": path,
            "headers": raw_headers,
            "query_string": query_string.encode(),
            "client": ("testclient", 5000),
        }

        async def receive():
            nonlocal body_bytes
            chunk, body_bytes = body_bytes, b""
            return {"type": "http.request", "body": chunk, "more_body": False}

        response_body = bytearray()
        response_status = 500
        response_headers: list[tuple[bytes, bytes]] = []

        async def send(message):
            nonlocal response_status, response_headers
            if message["type"] == "http.response.start":
                response_status = message["status"]
                response_headers = message.get("headers", [])
            elif message["type"] == "http.response.body":
                response_body.extend(message.get("body", b""))

        # ensure the loop is the current one
        asyncio.set_event_loop(self.loop)
        self.loop.run_until_complete(self.app(scope, receive, send))
        response = SimpleResponse(
            response_status, bytes(response_body), response_headers
        )
        self._store_cookies(response)
        return response

    def get(self, path: str, headers=None):
        return self.request("GET", path, headers=headers)

    def post(self, path: str, json=None, data=None, headers=None, files=None):
        return self.request(
            "POST", path, json_body=json, data=data, headers=headers, files=files
        )

    def csrf_token(self) -> str:
        """Open the login page and return the anti-forgery token it carries."""
        page = self.get("/auth/login").text
        match = re.search(r'name="csrf_token" value="([^"]+)"', page)
        assert match, "login page has no csrf token"
        return match.group(1)

    def login_as(self, user: models.AppUser):
        self.cookies[ACCESS_COOKIE] = create_access_token({"sub": user.email})


class FakeSender:
    """Records messages instead of talking to SMTP."""

    def __init__(self):
        self.sent: list[tuple[str, str, str]] = []
        self.fail = False

    async def send_email(self, to: str, subject: str, html_body: str) -> None:
        if self.fail:
            raise ConnectionError("SMTP server unreachable")
        self.sent.append((to, subject, html_body))


@pytest.fixture()
def sender():
    return FakeSender()


# Client fixture: override DB and mail dependencies per test
@pytest.fixture()
def client(db_session, session_loop, sender):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_email_sender] = lambda: sender

    c = SimpleClient(app, loop=session_loop)
    try:
        yield c
    finally:
        app.dependency_overrides.clear()
        c.close()


_user_counter = 0


@pytest.fixture()
def make_user(db_session):
    def factory(email=None, password="secret123"):
        global _user_counter
        _user_counter += 1
        email = email or f"user{_user_counter}@example.com"
        user_in = UserCreate(
            email=email, first_name="Test", last_name="User", password=password
        )
        return crud.create_user(
            db_session, user_in, get_password_hash(password), email_confirmed=True
        )

    return factory
