"""
Test configuration and fixtures for QuickFund backend tests.
"""
import os

# Settings are read at import time
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ["DEBUG"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["EMAIL_SIMULATED_DELAY_SECONDS"] = "0"
os.environ["CARD_GATEWAY_DELAY_SECONDS"] = "0"
os.environ["SCORING_JOB_DELAY_SECONDS"] = "0"
os.environ["SENDGRID_API_KEY"] = ""

import pytest
from typing import Any, AsyncGenerator, Dict, List
from decimal import Decimal
from datetime import datetime

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from httpx import AsyncClient, ASGITransport

from quickfund.core.database import Base, get_db
from quickfund.core.queue import Job
from quickfund.core.security import UserRole, get_password_hash
from quickfund.modules.accounts.models import VirtualAccount
from quickfund.modules.auth.schemas import ClientInfo
from quickfund.modules.auth.services import AuthService
from quickfund.modules.auth.sessions import SessionStore
from quickfund.modules.loans.models import Loan, LoanStatus
from quickfund.modules.notifications.dispatcher import NotificationDispatcher
from quickfund.modules.notifications.gateway import ConnectionManager
from quickfund.modules.users.models import EmploymentStatus, User
from main import app

# Importing the models registers every table on Base.metadata
import quickfund.modules.payments.models  # noqa: F401
import quickfund.modules.notifications.models  # noqa: F401


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_PASSWORD = "Str0ng!Pass"


class InMemoryJobQueue:
    """Records enqueued jobs instead of pushing them to Redis"""

    def __init__(self, name: str = "test"):
        self.name = name
        self.jobs: List[Job] = []

    async def enqueue(self, job_name: str, payload: Dict[str, Any]) -> Job:
        job = Job(name=job_name, payload=payload)
        self.jobs.append(job)
        return job

    def payloads(self, job_name: str) -> List[Dict[str, Any]]:
        return [job.payload for job in self.jobs if job.name == job_name]


# ============================================================
# Database Fixtures
# ============================================================

@pytest.fixture
async def test_engine():
    """Fresh in-memory database per test"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ============================================================
# Infrastructure Fixtures
# ============================================================

@pytest.fixture
def session_store() -> SessionStore:
    return SessionStore()


@pytest.fixture
def scoring_queue() -> InMemoryJobQueue:
    return InMemoryJobQueue("loan-scoring")


@pytest.fixture
def notification_queue() -> InMemoryJobQueue:
    return InMemoryJobQueue("notifications")


@pytest.fixture
async def client(db_session, session_store, scoring_queue, notification_queue) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with the database and queues swapped out"""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.state.session_store = session_store
    app.state.scoring_queue = scoring_queue
    app.state.dispatcher = NotificationDispatcher(notification_queue)
    app.state.connection_manager = ConnectionManager()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ============================================================
# User Fixtures
# ============================================================

async def create_user(
    db: AsyncSession,
    email: str,
    role: UserRole = UserRole.USER,
    with_account: bool = True,
    **profile
) -> User:
    user = User(
        email=email,
        hashed_password=get_password_hash(TEST_PASSWORD),
        role=role,
        first_name=profile.pop("first_name", "Ada"),
        last_name=profile.pop("last_name", "Obi"),
        **profile
    )
    db.add(user)
    await db.flush()

    if with_account:
        db.add(VirtualAccount(
            user_id=user.id,
            account_number=f"QF{user.id:012d}",
            bank_name="QuickFund Bank",
            balance=Decimal("0.00"),
            is_active=True,
        ))

    await db.commit()
    await db.refresh(user)
    return user


@pytest.fixture
async def test_user(db_session) -> User:
    return await create_user(
        db_session,
        "borrower@quickfund.ng",
        phone="08012345678",
        employment_status=EmploymentStatus.EMPLOYED,
        employer_name="Acme Ltd",
        monthly_income=Decimal("250000"),
    )


@pytest.fixture
async def other_user(db_session) -> User:
    return await create_user(db_session, "other@quickfund.ng", first_name="Chidi")


@pytest.fixture
async def admin_user(db_session) -> User:
    return await create_user(db_session, "admin@quickfund.ng", role=UserRole.ADMIN, with_account=False)


@pytest.fixture
async def loan_officer(db_session) -> User:
    return await create_user(db_session, "officer@quickfund.ng", role=UserRole.LOAN_OFFICER, with_account=False)


async def auth_headers_for(db: AsyncSession, session_store: SessionStore, user: User) -> Dict[str, str]:
    """Sign the user in and return a bearer header for the new session"""
    result = await AuthService(db, session_store).login(user.email, TEST_PASSWORD, ClientInfo())
    return {"Authorization": f"Bearer {result.tokens.access_token}"}


@pytest.fixture
async def auth_headers(db_session, session_store, test_user) -> Dict[str, str]:
    return await auth_headers_for(db_session, session_store, test_user)


@pytest.fixture
async def admin_headers(db_session, session_store, admin_user) -> Dict[str, str]:
    return await auth_headers_for(db_session, session_store, admin_user)


# ============================================================
# Loan Fixtures
# ============================================================

async def create_loan(
    db: AsyncSession,
    user: User,
    status: LoanStatus = LoanStatus.PENDING,
    amount: Decimal = Decimal("100000.00"),
    term: int = 12,
    reference: str = None,
    **fields
) -> Loan:
    loan = Loan(
        reference_number=reference or f"QF-LOAN-T{user.id}{status.value[:3].upper()}{term}",
        user_id=user.id,
        amount=amount,
        purpose="Working capital",
        term=term,
        interest_rate=Decimal("0.15"),
        monthly_payment=Decimal("9025.83"),
        total_amount=Decimal("108309.96"),
        status=status,
        **fields
    )
    db.add(loan)
    await db.commit()
    await db.refresh(loan)
    return loan


@pytest.fixture
async def pending_loan(db_session, test_user) -> Loan:
    return await create_loan(db_session, test_user)


@pytest.fixture
async def active_loan(db_session, test_user) -> Loan:
    return await create_loan(db_session, test_user, LoanStatus.ACTIVE, approved_by=1, approved_at=datetime.utcnow())


@pytest.fixture
async def disbursed_loan(db_session, test_user) -> Loan:
    now = datetime.utcnow()
    return await create_loan(
        db_session,
        test_user,
        LoanStatus.DISBURSED,
        approved_by=1,
        approved_at=now,
        disbursed_at=now,
    )


# ============================================================
# Redis Double
# ============================================================

class FakeRedis:
    """The subset of the redis.asyncio client used by queues and the rate limiter"""

    def __init__(self):
        self.lists: Dict[str, List[str]] = {}
        self.values: Dict[str, int] = {}
        self.ttls: Dict[str, int] = {}

    async def lpush(self, key: str, *values: str) -> int:
        items = self.lists.setdefault(key, [])
        for value in values:
            items.insert(0, value)
        return len(items)

    async def rpoplpush(self, source: str, destination: str):
        items = self.lists.get(source)
        if not items:
            return None
        value = items.pop()
        await self.lpush(destination, value)
        return value

    async def brpoplpush(self, source: str, destination: str, timeout: int = 0):
        return await self.rpoplpush(source, destination)

    async def lrem(self, key: str, count: int, value: str) -> int:
        items = self.lists.get(key, [])
        removed = 0
        while value in items and (count == 0 or removed < count):
            items.remove(value)
            removed += 1
        return removed

    async def llen(self, key: str) -> int:
        return len(self.lists.get(key, []))

    async def incr(self, key: str) -> int:
        self.values[key] = self.values.get(key, 0) + 1
        return self.values[key]

    async def expire(self, key: str, seconds: int, nx: bool = False) -> bool:
        if nx and key in self.ttls:
            return False
        self.ttls[key] = seconds
        return True

    def pipeline(self) -> "FakePipeline":
        return FakePipeline(self)


class FakePipeline:
    def __init__(self, redis: FakeRedis):
        self.redis = redis
        self.commands = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self.commands.append((name, args, kwargs))
            return self
        return queue

    async def execute(self) -> list:
        results = []
        for name, args, kwargs in self.commands:
            results.append(await getattr(self.redis, name)(*args, **kwargs))
        self.commands = []
        return results


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()
