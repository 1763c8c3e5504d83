from __future__ import annotations

import os
import sys
import tempfile
from collections.abc import AsyncGenerator, Callable, Iterator
from pathlib import Path
from typing import Any

# Settings are read once on import; point uploads at a scratch directory
# before the app is loaded.
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="training-uploads-"))

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import Engine, create_engine, event  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import Session  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

# Ensure repo root is on sys.path so `import app` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.api.ratelimit import _rate_limiter  # noqa: E402
from app.db.engine import Base, get_async_session, transaction  # noqa: E402
from app.db.tables import (  # noqa: E402
    CourseRow,
    CourseUnitRow,
    LearningBlockRow,
    ModuleRow,
    NormalUserRow,
    SubAdminRow,
    TrainingAreaRow,
    UnitRow,
    UserRow,
)
from app.main import app  # noqa: E402
from app.services import auth_service, token_service  # noqa: E402
from app.services.ai_service import AIBackend, get_ai_backend  # noqa: E402
from app.services.cache import cache_service  # noqa: E402

PASSWORD = "secret123"
_PASSWORD_HASH = auth_service.hash_password(PASSWORD)


def _enable_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
def database_path(tmp_path: Path) -> Path:
    return tmp_path / "test.db"


@pytest.fixture
def sync_engine(database_path: Path) -> Iterator[Engine]:
    """Schema setup and seeding go through a synchronous engine on the same file."""
    engine = create_engine(f"sqlite:///{database_path}", poolclass=NullPool)
    event.listen(engine, "connect", _enable_foreign_keys)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(sync_engine: Engine) -> Iterator[Session]:
    """Synchronous session for seeding rows and checking what the API wrote.

    Call ``db.expire_all()`` before reading rows the API has changed.
    """
    with Session(sync_engine) as session:
        yield session


@pytest.fixture
def session_factory(
    sync_engine: Engine, database_path: Path
) -> async_sessionmaker[AsyncSession]:
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{database_path}", poolclass=NullPool
    )
    event.listen(engine.sync_engine, "connect", _enable_foreign_keys)
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def client(session_factory: async_sessionmaker[AsyncSession]) -> Iterator[TestClient]:
    async def _session() -> AsyncGenerator[AsyncSession, None]:
        async with transaction(session_factory) as session:
            yield session

    app.dependency_overrides[get_async_session] = _session
    yield TestClient(app)
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Shared in-memory state
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def reset_rate_limiter() -> None:
    """Clear rate limit buckets between tests so limits don't bleed."""
    if hasattr(_rate_limiter, "_buckets"):
        _rate_limiter._buckets.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_cache() -> None:
    """Clear cache between tests."""
    if hasattr(cache_service, "_store"):
        cache_service._store.clear()  # type: ignore[union-attr]


# ---------------------------------------------------------------------------
# AI backend
# ---------------------------------------------------------------------------


@pytest.fixture
def ai_backend() -> Callable[[Callable[[httpx.Request], httpx.Response]], None]:
    """Route AI proxy calls to an in-process handler.

    Usage: ai_backend(lambda request: httpx.Response(200, json={...}))
    """

    def _install(handler: Callable[[httpx.Request], httpx.Response]) -> None:
        backend = AIBackend(
            "http://ai.test", timeout=5.0, transport=httpx.MockTransport(handler)
        )
        app.dependency_overrides[get_ai_backend] = lambda: backend

    return _install


# ---------------------------------------------------------------------------
# Tokens and seed helpers
# ---------------------------------------------------------------------------


def mint_token(user_id: int | str = 1, roles: list[str] | None = None) -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(sub=str(user_id), roles=roles)


def auth(token: str | None) -> dict[str, str]:
    if token is None:
        return {}
    return {"Authorization": f"Bearer {token}"}


def add_user(
    db: Session,
    *,
    email: str = "learner@example.com",
    user_type: str = "user",
    first_name: str = "Test",
    last_name: str = "User",
    organization: str = "Acme",
    sub_organization: list[str] | None = None,
    asset: str = "Hospitality",
    sub_asset: str = "Hotels",
    **values: Any,
) -> UserRow:
    user = UserRow(
        first_name=first_name,
        last_name=last_name,
        email=email,
        organization=organization,
        sub_organization=sub_organization,
        asset=asset,
        sub_asset=sub_asset,
        user_type=user_type,
        password_hash=values.pop("password_hash", _PASSWORD_HASH),
        **values,
    )
    db.add(user)
    db.commit()
    return user


def add_frontliner(db: Session, *, email: str, eid: str, **values: Any) -> UserRow:
    """A learner with a normal-user profile."""
    seniority = values.pop("seniority", "Staff")
    role_category = values.pop("role_category", "Front Office")
    user = add_user(db, email=email, **values)
    db.add(
        NormalUserRow(
            user_id=user.id,
            role_category=role_category,
            role="Agent",
            seniority=seniority,
            eid=eid,
            phone_number="+971500000000",
        )
    )
    db.commit()
    return user


def add_sub_admin(db: Session, *, email: str, eid: str, **values: Any) -> UserRow:
    user = add_user(db, email=email, user_type="sub_admin", **values)
    db.add(
        SubAdminRow(
            user_id=user.id,
            job_title="Training Lead",
            total_frontliners=25,
            eid=eid,
            phone_number="+971500000001",
        )
    )
    db.commit()
    return user


@pytest.fixture
def admin(db: Session) -> UserRow:
    return add_user(db, email="admin@example.com", user_type="admin")


@pytest.fixture
def admin_token(admin: UserRow) -> str:
    return mint_token(admin.id, ["admin"])


@pytest.fixture
def learner(db: Session) -> UserRow:
    return add_frontliner(db, email="learner@example.com", eid="EID-1")


@pytest.fixture
def learner_token(learner: UserRow) -> str:
    return mint_token(learner.id, ["user"])


def add_course_tree(db: Session, *, blocks: int = 2, name: str = "Service") -> dict[str, Any]:
    """Training area -> module -> course -> unit with *blocks* learning blocks."""
    area = TrainingAreaRow(name=f"{name} Excellence")
    db.add(area)
    db.flush()
    module = ModuleRow(training_area_id=area.id, name=f"{name} Basics")
    db.add(module)
    db.flush()
    course = CourseRow(module_id=module.id, name=f"{name} 101")
    unit = UnitRow(name=f"{name} Welcome")
    db.add_all([course, unit])
    db.flush()
    course_unit = CourseUnitRow(course_id=course.id, unit_id=unit.id, order=1)
    block_rows = [
        LearningBlockRow(
            unit_id=unit.id, type="text", title=f"Block {i}", order=i, xp_points=10
        )
        for i in range(1, blocks + 1)
    ]
    db.add(course_unit)
    db.add_all(block_rows)
    db.commit()
    return {
        "training_area_id": area.id,
        "module_id": module.id,
        "course_id": course.id,
        "unit_id": unit.id,
        "course_unit_id": course_unit.id,
        "block_ids": [b.id for b in block_rows],
    }
