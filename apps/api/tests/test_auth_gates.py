from __future__ import annotations

import uuid
from collections.abc import Generator
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from annonest.core.auth import check_account_gates, issue_token
from annonest.core.config import get_settings
from annonest.core.database import Base, get_db
from annonest.core.errors import AuthenticationError, AuthorizationError
from annonest.identity.models import Organization, User
from annonest.main import app


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def configure_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("JWT_SECRET", "test-secret")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def org(db_session: Session) -> Organization:
    organization = Organization(name="Acme Research")
    db_session.add(organization)
    db_session.commit()
    return organization


def _user(session: Session, org: Organization, role: str = "annotator", **values: object) -> User:
    user = User(org_id=org.id, email=f"{uuid.uuid4().hex[:8]}@acme.test", role=role, **values)
    session.add(user)
    session.commit()
    return user


def _auth(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_token(user.id, user.org_id)}"}


def test_access_me_returns_modules_for_role(client: TestClient, db_session: Session, org: Organization) -> None:
    user = _user(db_session, org, role="researcher", display_name="Riya")

    response = client.get("/api/access/me", headers=_auth(user))
    assert response.status_code == 200
    body = response.json()
    assert body["role"] == "researcher"
    assert body["rank"] == 40
    assert body["can_manage_users"] is False
    assert body["modules"] == ["dashboard", "data_nest", "nest_annotate"]


def test_missing_token_is_unauthenticated(client: TestClient) -> None:
    response = client.get("/api/access/me")
    assert response.status_code == 401
    assert response.json()["code"] == "unauthenticated"


def test_garbage_token_is_unauthenticated(client: TestClient) -> None:
    response = client.get("/api/access/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


def test_token_for_another_org_is_unknown_user(client: TestClient, db_session: Session, org: Organization) -> None:
    user = _user(db_session, org)
    token = issue_token(user.id, uuid.uuid4())

    response = client.get("/api/access/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_pending_account_is_rejected(client: TestClient, db_session: Session, org: Organization) -> None:
    user = _user(db_session, org, approval_status="pending")

    response = client.get("/api/access/me", headers=_auth(user))
    assert response.status_code == 403
    assert response.json()["message"] == "account not approved"


def test_expired_trial_blocks_non_managers_only(client: TestClient, db_session: Session, org: Organization) -> None:
    expired = datetime.now(timezone.utc) - timedelta(days=1)
    annotator = _user(db_session, org, trial_ends_at=expired)
    manager = _user(db_session, org, role="manager", trial_ends_at=expired)

    blocked = client.get("/api/access/me", headers=_auth(annotator))
    assert blocked.status_code == 403
    assert blocked.json()["message"] == "trial expired"

    allowed = client.get("/api/access/me", headers=_auth(manager))
    assert allowed.status_code == 200


def test_check_account_gates() -> None:
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)

    check_account_gates(User(role="annotator", approval_status="approved", is_active=True), now=now)
    check_account_gates(
        User(role="annotator", approval_status="approved", is_active=True, trial_ends_at=now + timedelta(hours=1)),
        now=now,
    )

    with pytest.raises(AuthenticationError):
        check_account_gates(User(role="manager", approval_status="approved", is_active=False), now=now)
    with pytest.raises(AuthorizationError):
        check_account_gates(User(role="annotator", approval_status="rejected", is_active=True), now=now)
    with pytest.raises(AuthorizationError):
        check_account_gates(
            User(role="qa", approval_status="approved", is_active=True, trial_ends_at=now - timedelta(seconds=1)),
            now=now,
        )
