import os
import warnings
from dataclasses import dataclass
from datetime import datetime
from uuid import uuid4

import pytest

# Set environment variables BEFORE importing wishdraw modules
os.environ["POSTGRES_DSN"] = "sqlite+aiosqlite:///file:wishdraw_tests?mode=memory&cache=shared&uri=true"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-32-chars-minimum!!"
os.environ["REDIS_DSN"] = ""
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["SMTP_HOST"] = ""
os.environ["EMAIL_QUEUE_SEND_DELAY_MS"] = "0"

warnings.filterwarnings("ignore", category=DeprecationWarning)

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from wishdraw.core.security import create_access_token
from wishdraw.db.session import Base, get_db, get_session_factory
from wishdraw.main import app
from wishdraw.models.models import (
    Group,
    GroupMember,
    GroupRoleEnum,
    SecretSantaExclusion,
    User,
    utcnow,
)


CRON_HEADERS = {"Authorization": "Bearer test-cron-secret"}


@pytest.fixture
def anyio_backend():
    return "asyncio"


def pytest_configure(config):
    warnings.filterwarnings("ignore", category=DeprecationWarning)


@dataclass
class SeededGroup:
    id: int
    user_ids: list[int]

    @property
    def owner_id(self) -> int:
        return self.user_ids[0]


def auth_headers(user_id: int) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(str(user_id))}"}


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "test.db"


@pytest.fixture
async def session_factory(db_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    factory = async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async def override_get_db():
        async with factory() as session:
            yield session

    async def override_get_session_factory():
        return factory

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = override_get_session_factory
    yield factory
    app.dependency_overrides.clear()
    await engine.dispose()


@pytest.fixture
async def async_client(session_factory):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def seed_user(session_factory):
    async def _seed(name: str | None = "Outsider", **fields) -> int:
        async with session_factory() as session:
            user = User(email=f"user-{uuid4().hex}@example.com", name=name, **fields)
            session.add(user)
            await session.commit()
            return user.id

    return _seed


@pytest.fixture
def seed_group(session_factory):
    """Create a group of ``size`` fresh users; the first one owns it.

    ``exclusions``, ``left`` and ``admins`` refer to members by index.
    """

    async def _seed(
        size: int = 3,
        *,
        name: str = "Office party",
        exclusions: tuple[tuple[int, int], ...] = (),
        left: tuple[int, ...] = (),
        admins: tuple[int, ...] = (),
        drawn: bool = False,
        draw_date: datetime | None = None,
        archived: bool = False,
        is_secret_santa: bool = True,
        user_fields: dict | None = None,
    ) -> SeededGroup:
        async with session_factory() as session:
            users = [
                User(
                    email=f"user-{uuid4().hex}@example.com",
                    name=f"Member {index + 1}",
                    **(user_fields or {}),
                )
                for index in range(size)
            ]
            session.add_all(users)
            await session.flush()

            group = Group(
                owner_id=users[0].id,
                name=name,
                is_secret_santa=is_secret_santa,
                secret_santa_drawn=drawn,
                secret_santa_draw_date=draw_date,
                archived_at=utcnow() if archived else None,
            )
            session.add(group)
            await session.flush()

            for index, user in enumerate(users):
                session.add(
                    GroupMember(
                        group_id=group.id,
                        user_id=user.id,
                        role=GroupRoleEnum.ADMIN.value if index in admins else GroupRoleEnum.MEMBER.value,
                        left_at=utcnow() if index in left else None,
                    )
                )
            for first, second in exclusions:
                session.add(
                    SecretSantaExclusion(
                        group_id=group.id,
                        user_id1=users[first].id,
                        user_id2=users[second].id,
                    )
                )
            await session.commit()
            return SeededGroup(id=group.id, user_ids=[user.id for user in users])

    return _seed
