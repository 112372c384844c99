from __future__ import annotations

import uuid
from collections.abc import Callable, Generator
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import Request
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from annonest.core.auth import get_auth_context
from annonest.core.config import get_settings
from annonest.core.database import Base, get_db
from annonest.core.errors import AuthorizationError, ConflictError, LockHeldError, NotFoundError
from annonest.datanest.models import EntityGp
from annonest.identity.models import Organization, User
from annonest.locks.models import EntityEditLock
from annonest.locks.service import EntityLockService
from annonest.main import app
from annonest.models.audit import AuditLog
from annonest.platform.security.context import AuthContext


T0 = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)


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


@pytest.fixture()
def make_user(db_session: Session, org: Organization) -> Callable[..., User]:
    def _make(role: str = "researcher") -> User:
        user = User(org_id=org.id, email=f"{role}-{uuid.uuid4().hex[:8]}@acme.test", role=role)
        db_session.add(user)
        db_session.commit()
        return user

    return _make


def _ctx(user: User) -> AuthContext:
    return AuthContext(user_id=user.id, org_id=user.org_id, role=user.role, display_name=user.label)


@pytest.fixture()
def gp_id(db_session: Session, org: Organization) -> uuid.UUID:
    gp = EntityGp(org_id=org.id, gp_name="Acme Capital")
    db_session.add(gp)
    db_session.commit()
    return gp.id


@pytest.fixture()
def service() -> EntityLockService:
    return EntityLockService(ttl_seconds=600)


def test_lock_is_mutually_exclusive(
    db_session: Session, make_user: Callable[..., User], gp_id: uuid.UUID, service: EntityLockService
) -> None:
    alice, bob = _ctx(make_user()), _ctx(make_user())

    status = service.acquire(db_session, alice, "gp", gp_id, now=T0)
    assert status.is_locked and status.is_own_lock
    assert status.lock is not None
    assert status.lock.expires_at == T0 + timedelta(seconds=600)

    with pytest.raises(LockHeldError) as excinfo:
        service.acquire(db_session, bob, "gp", gp_id, now=T0 + timedelta(seconds=30))
    assert excinfo.value.details["locked_by"] == str(alice.user_id)

    seen_by_bob = service.read(db_session, bob, "gp", gp_id, now=T0 + timedelta(seconds=30))
    assert seen_by_bob.is_locked
    assert not seen_by_bob.is_own_lock


def test_reacquire_by_holder_refreshes(
    db_session: Session, make_user: Callable[..., User], gp_id: uuid.UUID, service: EntityLockService
) -> None:
    alice = _ctx(make_user())
    service.acquire(db_session, alice, "gp", gp_id, now=T0)

    later = T0 + timedelta(seconds=500)
    refreshed = service.acquire(db_session, alice, "gp", gp_id, now=later)
    assert refreshed.lock is not None
    assert refreshed.lock.locked_at == later
    assert db_session.scalar(select(func.count()).select_from(EntityEditLock)) == 1


def test_expired_lock_is_absent_and_can_be_taken(
    db_session: Session, make_user: Callable[..., User], gp_id: uuid.UUID, service: EntityLockService
) -> None:
    alice, bob = _ctx(make_user()), _ctx(make_user())
    service.acquire(db_session, alice, "gp", gp_id, now=T0)

    after_ttl = T0 + timedelta(seconds=601)
    assert not service.read(db_session, bob, "gp", gp_id, now=after_ttl).is_locked

    taken = service.acquire(db_session, bob, "gp", gp_id, now=after_ttl)
    assert taken.is_own_lock
    assert taken.lock is not None
    assert taken.lock.locked_by == bob.user_id


def test_release_then_other_user_acquires(
    db_session: Session, make_user: Callable[..., User], gp_id: uuid.UUID, service: EntityLockService
) -> None:
    alice, bob = _ctx(make_user()), _ctx(make_user())
    service.acquire(db_session, alice, "gp", gp_id, now=T0)

    with pytest.raises(AuthorizationError):
        service.release(db_session, bob, "gp", gp_id, now=T0)

    service.release(db_session, alice, "gp", gp_id, now=T0)
    assert service.acquire(db_session, bob, "gp", gp_id, now=T0).is_own_lock

    with pytest.raises(NotFoundError):
        service.release(db_session, alice, "gp", uuid.uuid4(), now=T0)


def test_heartbeat_after_losing_the_lock_is_a_conflict(
    db_session: Session, make_user: Callable[..., User], gp_id: uuid.UUID, service: EntityLockService
) -> None:
    alice, bob = _ctx(make_user()), _ctx(make_user())
    service.acquire(db_session, alice, "gp", gp_id, now=T0)

    beat = service.heartbeat(db_session, alice, "gp", gp_id, now=T0 + timedelta(seconds=300))
    assert beat.lock is not None
    assert beat.lock.expires_at == T0 + timedelta(seconds=900)

    later = T0 + timedelta(seconds=1000)
    service.acquire(db_session, bob, "gp", gp_id, now=later)
    with pytest.raises(ConflictError):
        service.heartbeat(db_session, alice, "gp", gp_id, now=later)


def test_manager_override_is_audited(
    db_session: Session, make_user: Callable[..., User], gp_id: uuid.UUID, service: EntityLockService
) -> None:
    alice, manager = _ctx(make_user()), _ctx(make_user("manager"))
    service.acquire(db_session, alice, "gp", gp_id, now=T0)

    service.release(db_session, manager, "gp", gp_id, now=T0)
    assert not service.read(db_session, alice, "gp", gp_id, now=T0).is_locked

    audit = db_session.scalars(select(AuditLog).where(AuditLog.action == "entity_lock.released")).all()
    assert len(audit) == 1
    assert audit[0].details["override"] is True
    assert audit[0].details["holder"] == str(alice.user_id)


def test_release_own_is_idempotent(
    db_session: Session, make_user: Callable[..., User], gp_id: uuid.UUID, service: EntityLockService
) -> None:
    alice, bob = _ctx(make_user()), _ctx(make_user())
    service.acquire(db_session, alice, "gp", gp_id, now=T0)

    assert service.release_own(db_session, bob, "gp", gp_id) is False
    assert service.release_own(db_session, alice, "gp", gp_id) is True
    assert service.release_own(db_session, alice, "gp", gp_id) is False


def test_sweep_removes_only_expired_rows(
    db_session: Session, make_user: Callable[..., User], org: Organization, service: EntityLockService
) -> None:
    alice = _ctx(make_user())
    gps = [EntityGp(org_id=org.id, gp_name=f"GP {index}") for index in range(3)]
    db_session.add_all(gps)
    db_session.commit()

    service.acquire(db_session, alice, "gp", gps[0].id, now=T0)
    service.acquire(db_session, alice, "gp", gps[1].id, now=T0 + timedelta(seconds=200))
    service.acquire(db_session, alice, "gp", gps[2].id, now=T0 + timedelta(seconds=500))

    assert service.sweep_expired(db_session, now=T0 + timedelta(seconds=900)) == 2
    assert db_session.scalar(select(func.count()).select_from(EntityEditLock)) == 1


def test_lock_requires_existing_entity(
    db_session: Session, make_user: Callable[..., User], service: EntityLockService
) -> None:
    alice = _ctx(make_user())

    with pytest.raises(NotFoundError):
        service.acquire(db_session, alice, "gp", uuid.uuid4(), now=T0)
    with pytest.raises(NotFoundError):
        service.read(db_session, alice, "lp", uuid.uuid4(), now=T0)


def test_ttl_defaults_to_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENTITY_LOCK_TTL_SECONDS", "120")
    get_settings.cache_clear()

    assert EntityLockService().ttl == timedelta(seconds=120)


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def act_as(user: User) -> None:
    user_id, org_id, role, label = user.id, user.org_id, user.role, user.label

    def override_get_auth_context(request: Request) -> AuthContext:
        return AuthContext(
            user_id=user_id,
            org_id=org_id,
            role=role,
            display_name=label,
            correlation_id=getattr(request.state, "correlation_id", None),
        )

    app.dependency_overrides[get_auth_context] = override_get_auth_context


def test_lock_api_round_trip(client: TestClient, make_user: Callable[..., User], gp_id: uuid.UUID) -> None:
    alice, bob, manager = make_user(), make_user(), make_user("manager")
    path = f"/api/locks/gp/{gp_id}"

    act_as(alice)
    acquired = client.post(path)
    assert acquired.status_code == 200
    assert acquired.json()["is_own_lock"] is True
    assert client.post(f"{path}/heartbeat").status_code == 200

    act_as(bob)
    status = client.get(path).json()
    assert status["is_locked"] is True
    assert status["is_own_lock"] is False
    assert status["lock"]["locked_by"] == str(alice.id)

    held = client.post(path)
    assert held.status_code == 409
    assert held.json()["code"] == "lock_held"
    assert held.json()["details"]["locked_by"] == str(alice.id)

    assert client.post(f"{path}/heartbeat").status_code == 409
    forbidden = client.delete(path)
    assert forbidden.status_code == 403

    act_as(manager)
    assert client.delete(path).status_code == 204
    assert client.delete(path).status_code == 404

    act_as(bob)
    assert client.post(path).json()["is_own_lock"] is True


def test_release_beacon_always_succeeds(client: TestClient, make_user: Callable[..., User], gp_id: uuid.UUID) -> None:
    alice = make_user()
    act_as(alice)
    client.post(f"/api/locks/gp/{gp_id}")

    beacon = {"entity_type": "gp", "entity_id": str(gp_id)}
    assert client.post("/api/locks/release-beacon", json=beacon).status_code == 204
    assert client.post("/api/locks/release-beacon", json=beacon).status_code == 204
    assert client.get(f"/api/locks/gp/{gp_id}").json()["is_locked"] is False


def test_lock_api_unknown_type_and_missing_entity(client: TestClient, make_user: Callable[..., User]) -> None:
    act_as(make_user())

    assert client.post(f"/api/locks/planet/{uuid.uuid4()}").status_code == 422
    assert client.get(f"/api/locks/gp/{uuid.uuid4()}").status_code == 404


def test_sweep_task_uses_its_own_session(
    db_session: Session,
    make_user: Callable[..., User],
    gp_id: uuid.UUID,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    from annonest.locks import tasks

    stale = datetime.now(timezone.utc) - timedelta(hours=2)
    EntityLockService().acquire(db_session, _ctx(make_user()), "gp", gp_id, now=stale)

    bind = db_session.get_bind()
    monkeypatch.setattr(tasks, "SessionLocal", sessionmaker(bind=bind, autocommit=False, autoflush=False))

    assert tasks.sweep_expired_locks() == 1
    db_session.expire_all()
    assert db_session.scalar(select(func.count()).select_from(EntityEditLock)) == 0
