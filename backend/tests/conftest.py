import os
import tempfile
import uuid
from datetime import datetime, timedelta

# Settings are cached on first use; point uploads at a scratch directory first
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="rumorwatch-uploads-"))

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from rumorwatch.db import change_feed
from rumorwatch.db.change_feed import ChangeFeedSession
from rumorwatch.db.postgres import Base
import rumorwatch.models  # noqa: F401 (registers all ORM models with Base.metadata)
from rumorwatch.models.admin import Admin, AdminRole
from rumorwatch.models.report import Report, ReportStatus
from rumorwatch.models.user import User

BASE_TIME = datetime(2026, 1, 1, 12, 0, 0)


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """File-backed SQLite so concurrent sessions get their own connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        sync_session_class=ChangeFeedSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def enqueued(monkeypatch):
    """Capture post-commit task dispatch instead of talking to Celery."""
    calls = []
    monkeypatch.setattr(change_feed, "_enqueue", lambda kind, data: calls.append((kind, data)))
    return calls


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

async def make_user(db, user_id, *, total_points=0, total_reports=0, created_at=None, name=None):
    user = User(
        id=user_id,
        email=f"{user_id}@example.com",
        name=name or user_id,
        total_points=total_points,
        total_reports=total_reports,
        created_at=created_at or BASE_TIME,
        last_active=created_at or BASE_TIME,
    )
    db.add(user)
    await db.flush()
    return user


async def make_report(db, submitted_by, *, rumor_url="https://example.com/rumor", minutes=0,
                      status=ReportStatus.PENDING, report_id=None):
    report = Report(
        id=report_id or uuid.uuid4(),
        rumor_url=rumor_url,
        description="Looks fabricated",
        submitted_by=submitted_by,
        submitted_by_email=f"{submitted_by}@example.com",
        submitted_by_name=submitted_by,
        status=status,
        created_at=BASE_TIME + timedelta(minutes=minutes),
    )
    db.add(report)
    await db.flush()
    return report


async def make_admin(db, admin_id, role=AdminRole.ADMIN, *, is_active=True):
    admin = Admin(
        id=admin_id,
        email=f"{admin_id}@example.com",
        name=admin_id,
        role=role,
        is_active=is_active,
    )
    db.add(admin)
    await db.flush()
    return admin
