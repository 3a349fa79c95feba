from collections.abc import AsyncGenerator
from datetime import date

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from fee_ledger.core.auth.jwt import create_access_token
from fee_ledger.core.auth.models import User, UserRole
from fee_ledger.core.auth.service import AuthService
from fee_ledger.core.database import get_db
from fee_ledger.core.database.base import Base
from fee_ledger.main import app
from fee_ledger.modules.enrollments.models import (
    AcademicYear,
    Classroom,
    Enrollment,
    Grade,
    School,
    Student,
)

# In-memory SQLite; one fresh database per test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def test_engine():
    """Create tables before each test and drop after."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
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
        autoflush=False,
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


async def make_user(
    db_session: AsyncSession, email: str, role: UserRole = UserRole.SUPER_ADMIN
) -> User:
    user = await AuthService(db_session).create_user(
        email=email,
        password="Test123!",
        full_name=f"{role.value} Tester",
        role=role,
    )
    await db_session.commit()
    return user


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}


@pytest.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await make_user(db_session, "admin@school.com", UserRole.SUPER_ADMIN)


@pytest.fixture
async def admin_headers(admin_user: User) -> dict[str, str]:
    return auth_headers(admin_user)


@pytest.fixture
async def enrollment(db_session: AsyncSession) -> Enrollment:
    """Student enrolled in Grade 4 / 4A for the 2024/2025 academic year."""
    school = School(name="Greenfield Academy", phone="+254700000001")
    grade = Grade(name="Grade 4", display_order=4)
    db_session.add_all([school, grade])
    await db_session.flush()

    year = AcademicYear(
        school_id=school.id,
        name="2024/2025",
        start_date=date(2024, 9, 1),
        end_date=date(2025, 6, 30),
        is_current=True,
    )
    classroom = Classroom(grade_id=grade.id, name="4A")
    student = Student(
        full_name="Amina Otieno",
        guardian_name="Grace Otieno",
        guardian_phone="+254711000111",
    )
    db_session.add_all([year, classroom, student])
    await db_session.flush()

    enrollment = Enrollment(
        student_id=student.id,
        school_id=school.id,
        academic_year_id=year.id,
        grade_id=grade.id,
        classroom_id=classroom.id,
    )
    db_session.add(enrollment)
    await db_session.commit()
    return enrollment
