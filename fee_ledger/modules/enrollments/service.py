"""Read access to enrollment context for the fee engine."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from fee_ledger.core.exceptions import NotFoundError
from fee_ledger.modules.enrollments.models import Enrollment
from fee_ledger.modules.enrollments.schemas import EnrollmentContext


def enrollment_context_options():
    """Loader options that make EnrollmentContext.from_enrollment safe under asyncio."""
    return (
        selectinload(Enrollment.student),
        selectinload(Enrollment.school),
        selectinload(Enrollment.academic_year),
        selectinload(Enrollment.grade),
        selectinload(Enrollment.classroom),
    )


class EnrollmentService:
    """Lookups and row locks on enrollments. Never mutates them."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_enrollment(self, enrollment_id: int) -> Enrollment:
        """Get enrollment with its display context loaded."""
        result = await self.db.execute(
            select(Enrollment)
            .where(Enrollment.id == enrollment_id)
            .options(*enrollment_context_options())
        )
        enrollment = result.scalar_one_or_none()
        if not enrollment:
            raise NotFoundError("Enrollment", enrollment_id)
        return enrollment

    async def get_context(self, enrollment_id: int) -> EnrollmentContext:
        return EnrollmentContext.from_enrollment(await self.get_enrollment(enrollment_id))

    async def lock_enrollment(self, enrollment_id: int) -> Enrollment:
        """
        SELECT ... FOR UPDATE on the enrollment row.

        Serializes writers of the enrollment's ledger chain and installment
        schedule until the surrounding transaction ends.
        """
        result = await self.db.execute(
            select(Enrollment)
            .where(Enrollment.id == enrollment_id)
            .with_for_update()
        )
        enrollment = result.scalar_one_or_none()
        if not enrollment:
            raise NotFoundError("Enrollment", enrollment_id)
        return enrollment

    async def list_ids_for_student(self, student_id: int) -> list[int]:
        result = await self.db.execute(
            select(Enrollment.id).where(Enrollment.student_id == student_id).order_by(Enrollment.id)
        )
        return list(result.scalars().all())
