# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import AsyncIterator, Callable, Generator, Iterator

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")

from campus_hub.api.v1.dependencies import get_change_feed_dep
from campus_hub.client.backend import BackendClient, BackendConfig
from campus_hub.core.security import create_access_token, hash_password
from campus_hub.db.session import Base
from campus_hub.db.session import get_db as app_get_session
from campus_hub.main import app as fastapi_app
from campus_hub.models import Community, CommunityMember, CommunityPost, Post, Profile
from campus_hub.services.changefeed import ChangeFeed

TEST_DB_URL = "sqlite://"
TEST_PASSWORD = "correct-horse-battery"
_PASSWORD_HASH = hash_password(TEST_PASSWORD)


@pytest.fixture(scope="session")
def test_password() -> str:
    """Password shared by every fixture profile."""
    return TEST_PASSWORD


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    connection = engine.connect()
    transaction = connection.begin()
    SessionLocal = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    session = SessionLocal()
    session.begin_nested()

    @event.listens_for(session, "after_transaction_end")
    def restart_savepoint(sess: Session, trans) -> None:  # pragma: no cover - SQLAlchemy internals
        if trans.nested and not getattr(trans._parent, "nested", False):
            session.begin_nested()

    try:
        yield session
    finally:
        event.remove(session, "after_transaction_end", restart_savepoint)
        session.close()

        if transaction.is_active:
            transaction.rollback()
        connection.close()

        # Ensure each test sees a clean database even if commits occurred.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_session_dependency(app: FastAPI, db_session: Session) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)


@pytest.fixture()
def change_feed() -> ChangeFeed:
    """Return a change feed private to the current test."""
    return ChangeFeed(retention=1000)


@pytest.fixture(autouse=True)
def override_change_feed(app: FastAPI, change_feed: ChangeFeed) -> Iterator[None]:
    app.dependency_overrides[get_change_feed_dep] = lambda: change_feed
    try:
        yield
    finally:
        app.dependency_overrides.pop(get_change_feed_dep, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


def _make_profile(
    db_session: Session,
    username: str,
    *,
    user_type: str = "student",
    display_name: str | None = None,
) -> Profile:
    profile = Profile(
        email=f"{username}@campus.edu",
        username=username,
        display_name=display_name,
        user_type=user_type,
        password_hash=_PASSWORD_HASH,
    )
    db_session.add(profile)
    db_session.flush()
    db_session.refresh(profile)
    return profile


@pytest.fixture()
def make_profile(db_session: Session) -> Callable[..., Profile]:
    """Return a factory for extra persisted profiles."""

    def _factory(username: str, **kwargs) -> Profile:
        return _make_profile(db_session, username, **kwargs)

    return _factory


@pytest.fixture()
def student(db_session: Session) -> Profile:
    """Create and return the primary test user."""
    return _make_profile(db_session, "alice", display_name="Alice")


@pytest.fixture()
def other_student(db_session: Session) -> Profile:
    """Create and return a second persisted user."""
    return _make_profile(db_session, "bob", display_name="Bob")


@pytest.fixture()
def faculty(db_session: Session) -> Profile:
    """Create and return a faculty member."""
    return _make_profile(db_session, "prof", user_type="faculty", display_name="Professor")


def headers_for(profile: Profile) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(profile.id)}"}


@pytest.fixture()
def make_headers() -> Callable[[Profile], dict[str, str]]:
    """Return a factory for authorization headers of any profile."""
    return headers_for


@pytest.fixture()
def auth_headers(student: Profile) -> dict[str, str]:
    """Return authorization headers for the primary test user."""
    return headers_for(student)


@pytest.fixture()
def other_headers(other_student: Profile) -> dict[str, str]:
    """Return authorization headers for the secondary test user."""
    return headers_for(other_student)


@pytest.fixture()
def faculty_headers(faculty: Profile) -> dict[str, str]:
    return headers_for(faculty)


@pytest.fixture()
def post(db_session: Session, student: Profile) -> Post:
    """Create a baseline post authored by the primary user."""
    post = Post(author_id=student.id, content="Library is packed today", category="Campus")
    db_session.add(post)
    db_session.flush()
    db_session.refresh(post)
    return post


@pytest.fixture()
def community(db_session: Session, student: Profile) -> Community:
    """Create a community administered by the primary user."""
    community = Community(name="Robotics Club", description="We build robots", created_by=student.id)
    db_session.add(community)
    db_session.flush()
    db_session.add(CommunityMember(community_id=community.id, user_id=student.id, role="admin"))
    community.member_count = 1
    db_session.flush()
    db_session.refresh(community)
    return community


@pytest.fixture()
def community_post(db_session: Session, community: Community, student: Profile) -> CommunityPost:
    post = CommunityPost(community_id=community.id, author_id=student.id, content="Meeting on Friday")
    db_session.add(post)
    db_session.flush()
    db_session.refresh(post)
    return post


@pytest.fixture()
def backend_config() -> BackendConfig:
    return BackendConfig(base_url="http://test", timeout_seconds=5.0, long_poll_seconds=0.0)


@pytest_asyncio.fixture()
async def make_backend(app: FastAPI, backend_config: BackendConfig) -> AsyncIterator[Callable[..., BackendClient]]:
    """Return a factory for backend clients wired straight to the ASGI app."""
    clients: list[BackendClient] = []

    def _factory(profile: Profile | None = None) -> BackendClient:
        token = create_access_token(profile.id) if profile is not None else None
        backend = BackendClient(backend_config, transport=httpx.ASGITransport(app=app), token=token)
        clients.append(backend)
        return backend

    try:
        yield _factory
    finally:
        for backend in clients:
            await backend.close()


@pytest_asyncio.fixture()
async def backend(make_backend, student: Profile) -> BackendClient:
    """Backend client signed in as the primary test user."""
    return make_backend(student)


@pytest_asyncio.fixture()
async def other_backend(make_backend, other_student: Profile) -> BackendClient:
    return make_backend(other_student)
