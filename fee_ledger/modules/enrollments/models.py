"""Read-only enrollment context: school, academic year, grade, classroom, student.

These tables are owned by the school-administration CRUD screens. The fee
engine only reads them for scoping (enrollment_id) and display.
"""

from datetime import date
from enum import StrEnum

from sqlalchemy import Boolean, Date, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fee_ledger.core.database.base import BaseModel, BigIntPK


class EnrollmentStatus(StrEnum):
    """Enrollment status enumeration."""

    ACTIVE = "active"
    TRANSFERRED = "transferred"
    WITHDRAWN = "withdrawn"


class School(BaseModel):
    __tablename__ = "schools"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)


class AcademicYear(BaseModel):
    """Academic year of a school, e.g. "2024/2025" from September to June."""

    __tablename__ = "academic_years"

    school_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("schools.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_current: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class Grade(BaseModel):
    __tablename__ = "grades"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class Classroom(BaseModel):
    __tablename__ = "classrooms"

    grade_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("grades.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)


class Student(BaseModel):
    __tablename__ = "students"

    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    government_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    guardian_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    # Reminder hand-off target (WhatsApp/SMS number)
    guardian_phone: Mapped[str | None] = mapped_column(String(30), nullable=True)

    enrollments: Mapped[list["Enrollment"]] = relationship(
        "Enrollment", back_populates="student"
    )


class Enrollment(BaseModel):
    """
    A student's registration in one academic year / school / grade / classroom.

    Scoping key for both the installment schedule and the ledger. Ledger appends
    lock this row so each enrollment's balance chain has a single writer.
    """

    __tablename__ = "enrollments"

    student_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("students.id"), nullable=False, index=True
    )
    school_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("schools.id"), nullable=False, index=True
    )
    academic_year_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("academic_years.id"), nullable=False, index=True
    )
    grade_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("grades.id"), nullable=False
    )
    classroom_id: Mapped[int | None] = mapped_column(
        BigIntPK, ForeignKey("classrooms.id"), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=EnrollmentStatus.ACTIVE.value
    )

    # Relationships
    student: Mapped["Student"] = relationship("Student", back_populates="enrollments")
    school: Mapped["School"] = relationship("School")
    academic_year: Mapped["AcademicYear"] = relationship("AcademicYear")
    grade: Mapped["Grade"] = relationship("Grade")
    classroom: Mapped["Classroom | None"] = relationship("Classroom")
