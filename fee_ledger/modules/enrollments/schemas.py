"""Pydantic schemas for enrollment context."""

from fee_ledger.shared.schemas.base import BaseSchema


class EnrollmentContext(BaseSchema):
    """Display fields of an enrollment, flattened for fee screens and reminders."""

    enrollment_id: int
    student_id: int
    student_name: str
    guardian_name: str | None = None
    guardian_phone: str | None = None
    school_id: int
    school_name: str
    academic_year_id: int
    academic_year: str
    grade_name: str
    classroom_name: str | None = None
    status: str

    @classmethod
    def from_enrollment(cls, enrollment) -> "EnrollmentContext":
        """Build from an Enrollment loaded with enrollment_context_options()."""
        return cls(
            enrollment_id=enrollment.id,
            student_id=enrollment.student_id,
            student_name=enrollment.student.full_name,
            guardian_name=enrollment.student.guardian_name,
            guardian_phone=enrollment.student.guardian_phone,
            school_id=enrollment.school_id,
            school_name=enrollment.school.name,
            academic_year_id=enrollment.academic_year_id,
            academic_year=enrollment.academic_year.name,
            grade_name=enrollment.grade.name,
            classroom_name=enrollment.classroom.name if enrollment.classroom else None,
            status=enrollment.status,
        )
