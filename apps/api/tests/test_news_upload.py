from __future__ import annotations

import logging
import uuid
from collections.abc import Generator

import httpx
import pytest
from fastapi import Request
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from annonest.annotate.csv_upload import parse_articles_csv
from annonest.annotate.models import AnnotationTask, NewsArticle
from annonest.core.auth import get_auth_context
from annonest.core.config import get_settings
from annonest.core.database import Base, get_db
from annonest.core.errors import ValidationError
from annonest.identity.models import Organization, User
from annonest.main import app
from annonest.platform.security.context import AuthContext


HEADER = "headline,url,source_name,publish_date,raw_text"

VALID_CSV = "\n".join(
    [
        HEADER,
        'Fund I closes,https://news.test/1,Wire,2026-01-02,"Acme Capital closed Fund I, oversubscribed"',
        '"Acme hires ""new"" CFO",https://news.test/2,Wire,2026-01-03,Leadership change at Acme',
        "Deal signed,https://news.test/3,Daily,2026-01-04,Acme buys Widgets Inc",
    ]
)


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
def clear_settings() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def org(db_session: Session) -> Organization:
    organization = Organization(name="Acme Research")
    db_session.add(organization)
    db_session.commit()
    return organization


def _user(session: Session, org: Organization, role: str) -> User:
    user = User(org_id=org.id, email=f"{role}-{uuid.uuid4().hex[:8]}@acme.test", role=role)
    session.add(user)
    session.commit()
    return user


@pytest.fixture()
def manager(db_session: Session, org: Organization) -> User:
    return _user(db_session, org, "manager")


@pytest.fixture()
def client(db_session: Session, manager: User) -> Generator[TestClient, None, None]:
    manager_id, org_id = manager.id, manager.org_id

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_auth_context(request: Request) -> AuthContext:
        return AuthContext(
            user_id=manager_id,
            org_id=org_id,
            role="manager",
            correlation_id=getattr(request.state, "correlation_id", None),
        )

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_auth_context] = override_get_auth_context
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _news_project(client: TestClient, category: str = "news") -> str:
    response = client.post(
        "/api/annotate/projects",
        json={"name": "Deal news", "label_type": "text", "project_category": category},
    )
    assert response.status_code == 201
    return response.json()["id"]


def _upload(
    client: TestClient, project_id: str, content: str, assignees: list[uuid.UUID] | None = None
) -> httpx.Response:
    return client.post(
        f"/api/annotate/projects/{project_id}/upload",
        files={"file": ("news.csv", content.encode("utf-8"), "text/csv")},
        data={"assignees": [str(user_id) for user_id in assignees or []]},
    )


def test_parser_handles_quoted_commas_and_doubled_quotes() -> None:
    parsed = parse_articles_csv(VALID_CSV)

    assert parsed.skipped_rows == 0
    assert [article.headline for article in parsed.articles] == ['Fund I closes', 'Acme hires "new" CFO', "Deal signed"]
    assert parsed.articles[0].raw_text == "Acme Capital closed Fund I, oversubscribed"
    assert {article.article_state for article in parsed.articles} == {"pending"}


def test_parser_normalizes_header_and_ignores_blank_lines() -> None:
    text = '\r\n\n"Headline", URL ,Source_Name,publish_date,RAW_TEXT,language\r\nTitle,,,,Body,en\r\n\n'

    parsed = parse_articles_csv(text)
    assert len(parsed.articles) == 1
    article = parsed.articles[0]
    assert article.url is None
    assert article.language == "en"


def test_parser_rejects_missing_required_columns() -> None:
    with pytest.raises(ValidationError) as excinfo:
        parse_articles_csv("headline,url,raw_text\nTitle,https://x.test,Body")

    assert excinfo.value.details["missing_columns"] == ["source_name", "publish_date"]


def test_parser_needs_a_data_row() -> None:
    with pytest.raises(ValidationError):
        parse_articles_csv(HEADER + "\n\n")


def test_parser_skips_malformed_rows() -> None:
    text = "\n".join(
        [
            HEADER + ",article_state",
            "Good,https://x.test/1,Wire,2026-01-01,Body,pending",
            "Too,few,columns",
            ",https://x.test/2,Wire,2026-01-01,Body without headline,pending",
            "No body,https://x.test/3,Wire,2026-01-01,,pending",
            "Odd state,https://x.test/4,Wire,2026-01-01,Body,archived",
            "Done,https://x.test/5,Wire,2026-01-01,Body,completed",
        ]
    )

    parsed = parse_articles_csv(text)
    assert [article.headline for article in parsed.articles] == ["Good", "Done"]
    assert parsed.skipped_rows == 4
    assert parsed.articles[1].article_state == "completed"


def test_parser_skips_rows_with_a_stray_carriage_return() -> None:
    text = "\n".join(
        [
            HEADER,
            "Good,https://x.test/1,Wire,2026-01-01,Body",
            "Bad,https://x.test/2,Wire,2026-01-01,line one\rline two",
        ]
    )

    parsed = parse_articles_csv(text)
    assert [article.headline for article in parsed.articles] == ["Good"]
    assert parsed.skipped_rows == 1


def test_upload_fans_out_one_task_per_article_and_assignee(
    client: TestClient, db_session: Session, org: Organization
) -> None:
    project_id = _news_project(client)
    first = _user(db_session, org, "annotator")
    second = _user(db_session, org, "researcher")

    response = _upload(client, project_id, VALID_CSV, [first.id, second.id, first.id])
    assert response.status_code == 201
    body = response.json()
    assert body == {
        "articles": 3,
        "tasks_created": 6,
        "skipped_rows": 0,
        "message": "Uploaded 3 articles and created 6 tasks",
    }

    tasks = db_session.scalars(select(AnnotationTask).where(AnnotationTask.project_id == uuid.UUID(project_id))).all()
    pairs = {(task.task_metadata["news_id"], task.assigned_to) for task in tasks}
    assert len(pairs) == 6
    assert {assignee for _, assignee in pairs} == {first.id, second.id}
    assert {task.status for task in tasks} == {"pending"}
    assert db_session.scalar(select(func.count()).select_from(NewsArticle)) == 3


def test_upload_without_assignees_leaves_tasks_unassigned(client: TestClient, db_session: Session) -> None:
    project_id = _news_project(client)

    response = _upload(client, project_id, VALID_CSV)
    assert response.status_code == 201
    assert response.json()["tasks_created"] == 3

    tasks = db_session.scalars(select(AnnotationTask)).all()
    assert len(tasks) == 3
    assert all(task.assigned_to is None for task in tasks)


def test_upload_reports_skipped_rows(client: TestClient) -> None:
    project_id = _news_project(client)
    content = VALID_CSV + "\nbroken,row\n"

    response = _upload(client, project_id, content)
    assert response.status_code == 201
    assert response.json()["skipped_rows"] == 1
    assert response.json()["message"] == "Uploaded 3 articles and created 3 tasks, skipped 1 rows"


def test_upload_missing_columns_creates_nothing(client: TestClient, db_session: Session) -> None:
    project_id = _news_project(client)

    response = _upload(client, project_id, "headline,raw_text\nTitle,Body")
    assert response.status_code == 422
    body = response.json()
    assert body["code"] == "validation_error"
    assert body["details"]["missing_columns"] == ["url", "source_name", "publish_date"]
    assert db_session.scalar(select(func.count()).select_from(AnnotationTask)) == 0


def test_upload_with_no_valid_rows_fails(client: TestClient, db_session: Session) -> None:
    project_id = _news_project(client)

    response = _upload(client, project_id, HEADER + "\n,,,,\n")
    assert response.status_code == 422
    assert db_session.scalar(select(func.count()).select_from(NewsArticle)) == 0


def test_upload_rejects_foreign_assignee(client: TestClient) -> None:
    project_id = _news_project(client)

    response = _upload(client, project_id, VALID_CSV, [uuid.uuid4()])
    assert response.status_code == 422
    assert response.json()["message"] == "assignees must be users of your organization"


def test_upload_requires_news_project(client: TestClient) -> None:
    project_id = _news_project(client, category="general")

    response = _upload(client, project_id, VALID_CSV)
    assert response.status_code == 422


def test_article_states_create_completed_tasks(client: TestClient, db_session: Session) -> None:
    project_id = _news_project(client)

    response = client.post(
        f"/api/annotate/projects/{project_id}/articles",
        json={
            "articles": [
                {"headline": "Open", "raw_text": "Body"},
                {"headline": "Done", "raw_text": "Body", "article_state": "completed"},
                {"headline": "Noise", "raw_text": "Body", "article_state": "not_relevant"},
                {"headline": "", "raw_text": "Body"},
            ]
        },
    )
    assert response.status_code == 201
    assert response.json()["skipped_rows"] == 1

    tasks = {task.task_metadata["headline"]: task for task in db_session.scalars(select(AnnotationTask)).all()}
    assert tasks["Open"].status == "pending"
    assert tasks["Done"].status == "completed"
    assert tasks["Noise"].status == "completed"
    assert tasks["Noise"].task_metadata["relevance_status"] == "not_relevant"
    assert tasks["Done"].task_metadata["relevance_status"] is None


def test_upload_success_is_logged_with_counts(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)
    project_id = _news_project(client)

    response = _upload(client, project_id, VALID_CSV + "\nbroken,row\n")
    assert response.status_code == 201

    records = [record for record in caplog.records if record.getMessage() == "news.uploaded"]
    assert len(records) == 1
    assert getattr(records[0], "project_id", None) == project_id
    assert getattr(records[0], "tasks_created", None) == 3
    assert getattr(records[0], "skipped_rows", None) == 1
