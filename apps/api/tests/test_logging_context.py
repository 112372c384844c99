from __future__ import annotations

import logging
import uuid
from collections.abc import Generator

import pytest
from fastapi import Request
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from annonest.core.auth import get_auth_context
from annonest.core.config import get_settings
from annonest.core.database import Base, get_db
from annonest.identity.models import Organization, User
from annonest.main import app
from annonest.platform.security.context import AuthContext


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
def setup_env() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def users(db_session: Session) -> dict[str, User]:
    organization = Organization(name="Acme Research")
    db_session.add(organization)
    db_session.flush()
    created = {
        role: User(org_id=organization.id, email=f"{role}@acme.test", role=role)
        for role in ("manager", "annotator", "researcher")
    }
    db_session.add_all(created.values())
    db_session.commit()
    return created


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def act_as(user: User) -> None:
    user_id, org_id, role = user.id, user.org_id, user.role

    def override_get_auth_context(request: Request) -> AuthContext:
        return AuthContext(
            user_id=user_id,
            org_id=org_id,
            role=role,
            correlation_id=getattr(request.state, "correlation_id", None),
        )

    app.dependency_overrides[get_auth_context] = override_get_auth_context


def test_logs_include_correlation_id_for_http(
    client: TestClient, users: dict[str, User], caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.INFO)
    act_as(users["manager"])

    response = client.get(f"/api/annotate/tasks/{uuid.uuid4()}", headers={"X-Correlation-Id": "abc-123"})
    assert response.status_code == 404

    records = [
        record for record in caplog.records if record.name == "annonest.request" and record.getMessage() == "http.request"
    ]
    assert records
    assert any(
        getattr(record, "correlation_id", None) == "abc-123"
        and getattr(record, "method", None) == "GET"
        and getattr(record, "path", None) == "/api/annotate/tasks/{id}"
        and getattr(record, "status_code", None) == 404
        and isinstance(getattr(record, "duration_ms", None), float)
        for record in records
    )


def test_lost_claim_is_logged_with_outcome(
    client: TestClient, users: dict[str, User], caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.INFO)

    act_as(users["manager"])
    project_id = client.post(
        "/api/annotate/projects", json={"name": "Images", "label_type": "image"}
    ).json()["id"]
    task_id = client.post(f"/api/annotate/projects/{project_id}/tasks", json={"metadata": {}}).json()["id"]

    act_as(users["annotator"])
    assert client.post(f"/api/annotate/tasks/{task_id}/claim").status_code == 200

    act_as(users["researcher"])
    lost = client.post(f"/api/annotate/tasks/{task_id}/claim", headers={"X-Correlation-Id": "claim-log-1"})
    assert lost.status_code == 409

    claim_records = [record for record in caplog.records if record.name == "annonest.workflow"]
    assert any(
        record.getMessage() == "work_item.claim_lost"
        and getattr(record, "outcome", None) == "conflict"
        and getattr(record, "item_id", None) == task_id
        and getattr(record, "correlation_id", None) == "claim-log-1"
        for record in claim_records
    )
