from __future__ import annotations

import uuid
from collections.abc import Callable, Generator

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
def clear_settings() -> Generator[None, None, None]:
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
def make_user(db_session: Session) -> Callable[..., User]:
    orgs: dict[str, Organization] = {}

    def _make(role: str = "researcher", org_name: str = "Acme Research") -> User:
        if org_name not in orgs:
            orgs[org_name] = Organization(name=org_name)
            db_session.add(orgs[org_name])
            db_session.flush()
        user = User(org_id=orgs[org_name].id, email=f"{role}-{uuid.uuid4().hex[:8]}@acme.test", role=role)
        db_session.add(user)
        db_session.commit()
        return user

    return _make


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


def test_create_and_read_gp_with_provenance(client: TestClient, make_user: Callable[..., User]) -> None:
    researcher = make_user()
    act_as(researcher)

    created = client.post(
        "/api/datanest/entities/gp",
        json={
            "gp_name": "Acme Capital",
            "headquarters_country": "UK",
            "sources_used": ["Website", "LinkedIn"],
            "source_urls": [" https://acme.test/about "],
        },
    )
    assert created.status_code == 201
    body = created.json()
    assert body["status"] == "active"
    assert body["source_urls"] == ["https://acme.test/about"]
    assert body["last_updated_by"] == str(researcher.id)
    assert body["last_updated_on"] is not None

    fetched = client.get(f"/api/datanest/entities/gp/{body['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["gp_name"] == "Acme Capital"


@pytest.mark.parametrize(
    "provenance",
    [
        {"sources_used": ["Website"] * 6},
        {"sources_used": ["Rumour"]},
        {"source_urls": ["ftp://acme.test/file"]},
        {"source_urls": ["not a url"]},
        {"source_urls": [f"https://acme.test/{index}" for index in range(6)]},
    ],
)
def test_provenance_limits(client: TestClient, make_user: Callable[..., User], provenance: dict) -> None:
    act_as(make_user())

    response = client.post("/api/datanest/entities/fund", json={"fund_name": "Fund I", **provenance})
    assert response.status_code == 422
    assert response.json()["code"] == "validation_error"


def test_unknown_entity_type(client: TestClient, make_user: Callable[..., User]) -> None:
    act_as(make_user())

    response = client.get("/api/datanest/entities/planet")
    assert response.status_code == 422
    assert "gp" in response.json()["details"]["allowed"]


def test_update_is_last_write_wins_and_restamps(client: TestClient, make_user: Callable[..., User]) -> None:
    first, second = make_user(), make_user()

    act_as(first)
    created = client.post(
        "/api/datanest/entities/portfolio_company",
        json={"company_name": "Widgets Inc", "employee_count": 10, "sources_used": ["Website"]},
    ).json()

    act_as(second)
    updated = client.patch(
        f"/api/datanest/entities/portfolio_company/{created['id']}",
        json={"employee_count": 25, "sources_used": None},
    )
    assert updated.status_code == 200
    body = updated.json()
    assert body["employee_count"] == 25
    assert body["company_name"] == "Widgets Inc"
    assert body["sources_used"] == []
    assert body["last_updated_by"] == str(second.id)

    cleared = client.patch(f"/api/datanest/entities/portfolio_company/{created['id']}", json={"company_name": None})
    assert cleared.status_code == 422


def test_list_search_and_paging(client: TestClient, make_user: Callable[..., User]) -> None:
    act_as(make_user())
    for name in ("Beta Partners", "Acme Capital", "Acme Growth"):
        assert client.post("/api/datanest/entities/gp", json={"gp_name": name}).status_code == 201

    everything = client.get("/api/datanest/entities/gp").json()
    assert [row["gp_name"] for row in everything] == ["Acme Capital", "Acme Growth", "Beta Partners"]

    searched = client.get("/api/datanest/entities/gp", params={"q": "acme", "limit": 1, "offset": 1}).json()
    assert [row["gp_name"] for row in searched] == ["Acme Growth"]


def test_entities_are_tenant_scoped(client: TestClient, make_user: Callable[..., User]) -> None:
    insider = make_user()
    outsider = make_user("super_admin", org_name="Other")

    act_as(insider)
    gp_id = client.post("/api/datanest/entities/gp", json={"gp_name": "Acme Capital"}).json()["id"]

    act_as(outsider)
    assert client.get(f"/api/datanest/entities/gp/{gp_id}").status_code == 404
    assert client.patch(f"/api/datanest/entities/gp/{gp_id}", json={"gp_name": "Stolen"}).status_code == 404
    assert client.delete(f"/api/datanest/entities/gp/{gp_id}").status_code == 404
    assert client.get("/api/datanest/entities/gp").json() == []

    act_as(insider)
    assert client.get(f"/api/datanest/entities/gp/{gp_id}").json()["gp_name"] == "Acme Capital"


def test_relationships(client: TestClient, make_user: Callable[..., User]) -> None:
    act_as(make_user())
    gp_id = client.post("/api/datanest/entities/gp", json={"gp_name": "Acme Capital"}).json()["id"]
    fund_id = client.post("/api/datanest/entities/fund", json={"fund_name": "Acme Fund I", "gp_id": gp_id}).json()["id"]
    contact_id = client.post(
        "/api/datanest/entities/contact", json={"first_name": "Dana", "last_name": "Reyes"}
    ).json()["id"]

    managed = client.post(
        "/api/datanest/relationships",
        json={
            "from_entity_type": "gp",
            "from_entity_id": gp_id,
            "to_entity_type": "fund",
            "to_entity_id": fund_id,
            "relationship_type": "manages",
        },
    )
    assert managed.status_code == 201
    assert managed.json()["from_entity_name_snapshot"] == "Acme Capital"
    assert managed.json()["to_entity_name_snapshot"] == "Acme Fund I"
    assert managed.json()["relationship_status"] == "Active"

    employs = client.post(
        "/api/datanest/relationships",
        json={
            "from_entity_type": "contact",
            "from_entity_id": contact_id,
            "to_entity_type": "gp",
            "to_entity_id": gp_id,
            "relationship_type": "works_at",
        },
    )
    assert employs.json()["from_entity_name_snapshot"] == "Dana Reyes"

    for_gp = client.get("/api/datanest/relationships", params={"entity_type": "gp", "entity_id": gp_id})
    assert {row["relationship_type"] for row in for_gp.json()} == {"manages", "works_at"}

    for_fund = client.get("/api/datanest/relationships", params={"entity_type": "fund", "entity_id": fund_id})
    assert [row["relationship_type"] for row in for_fund.json()] == ["manages"]

    half = client.get("/api/datanest/relationships", params={"entity_type": "gp"})
    assert half.status_code == 422

    assert client.delete(f"/api/datanest/relationships/{employs.json()['id']}").status_code == 204
    assert len(client.get("/api/datanest/relationships").json()) == 1


def test_relationship_endpoints_must_exist(client: TestClient, make_user: Callable[..., User]) -> None:
    act_as(make_user())
    gp_id = client.post("/api/datanest/entities/gp", json={"gp_name": "Acme Capital"}).json()["id"]

    dangling = client.post(
        "/api/datanest/relationships",
        json={
            "from_entity_type": "gp",
            "from_entity_id": gp_id,
            "to_entity_type": "lp",
            "to_entity_id": str(uuid.uuid4()),
            "relationship_type": "invests_in",
        },
    )
    assert dangling.status_code == 404

    self_loop = client.post(
        "/api/datanest/relationships",
        json={
            "from_entity_type": "gp",
            "from_entity_id": gp_id,
            "to_entity_type": "gp",
            "to_entity_id": gp_id,
            "relationship_type": "same_as",
        },
    )
    assert self_loop.status_code == 422


def test_deleting_an_entity_drops_its_relationships(client: TestClient, make_user: Callable[..., User]) -> None:
    act_as(make_user())
    gp_id = client.post("/api/datanest/entities/gp", json={"gp_name": "Acme Capital"}).json()["id"]
    lp_id = client.post("/api/datanest/entities/lp", json={"lp_name": "Pension Plan"}).json()["id"]
    client.post(
        "/api/datanest/relationships",
        json={
            "from_entity_type": "lp",
            "from_entity_id": lp_id,
            "to_entity_type": "gp",
            "to_entity_id": gp_id,
            "relationship_type": "invests_with",
        },
    )

    assert client.delete(f"/api/datanest/entities/gp/{gp_id}").status_code == 204
    assert client.get(f"/api/datanest/entities/gp/{gp_id}").status_code == 404
    assert client.get("/api/datanest/relationships").json() == []
