from collections.abc import AsyncGenerator
from datetime import date
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from src.core.database.base import Base
from src.core.database import get_db
from src.main import app
from src.modules.obligations.models import Obligation, ObligationStatus
from src.modules.students.models import Student

# In-memory SQLite shared by every connection of the test engine
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

SCHOOL_ID = 1
OTHER_SCHOOL_ID = 2


@pytest.fixture
async def test_engine():
    """Create tables before each test and drop after."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Get test database session."""
    session_factory = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Get test HTTP client with overridden database dependency."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()


async def _create_student(
    db_session: AsyncSession,
    school_id: int = SCHOOL_ID,
    student_number: str = "STU-000001",
) -> Student:
    student = Student(
        school_id=school_id,
        student_number=student_number,
        first_name="Amina",
        last_name="Otieno",
        is_active=True,
    )
    db_session.add(student)
    await db_session.commit()
    return student


async def _create_obligation(
    db_session: AsyncSession,
    student: Student,
    amount: str | Decimal,
    due_date: date | None = None,
    is_overdue: bool = False,
    overdue_days: int = 0,
    category_code: str = "TUITION",
    description: str = "Tuition",
) -> Obligation:
    """Insert an unpaid obligation directly, bypassing the store."""
    amount = Decimal(amount)
    obligation = Obligation(
        school_id=student.school_id,
        student_id=student.id,
        description=description,
        category_code=category_code,
        original_amount=amount,
        discount_amount=Decimal("0.00"),
        additional_charges=Decimal("0.00"),
        final_amount=amount,
        amount_paid=Decimal("0.00"),
        balance=amount,
        due_date=due_date,
        status=ObligationStatus.PENDING.value,
        is_overdue=is_overdue,
        overdue_days=overdue_days,
    )
    db_session.add(obligation)
    await db_session.commit()
    return obligation


@pytest.fixture
def make_student(db_session: AsyncSession):
    async def factory(school_id: int = SCHOOL_ID, student_number: str = "STU-000001") -> Student:
        return await _create_student(db_session, school_id, student_number)

    return factory


@pytest.fixture
def make_obligation(db_session: AsyncSession):
    async def factory(student: Student, amount: str | Decimal, **kwargs) -> Obligation:
        return await _create_obligation(db_session, student, amount, **kwargs)

    return factory


@pytest.fixture
async def student(db_session: AsyncSession) -> Student:
    return await _create_student(db_session)
