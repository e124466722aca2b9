"""Exam package (bundle) model and its question links."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Column, ForeignKey, Index, Integer, String, Table
from sqlalchemy.orm import Mapped, mapped_column, relationship

from exam_allocator.models.base import Base, IdentifierType, IntegerIdMixin, TimestampMixin

if TYPE_CHECKING:
    from exam_allocator.models.question import Question
    from exam_allocator.models.topic import Topic

package_questions = Table(
    "package_questions",
    Base.metadata,
    Column(
        "package_id",
        IdentifierType,
        ForeignKey("exam_packages.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "question_id",
        IdentifierType,
        ForeignKey("questions.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Index("idx_package_questions_question", "question_id"),
)


class ExamPackage(Base, IntegerIdMixin, TimestampMixin):
    """Named collection of exactly ``question_count`` questions."""

    __tablename__ = "exam_packages"
    __table_args__ = (
        Index("idx_package_deleted_active", "deleted", "is_active"),
        Index("idx_package_topic_active_deleted", "topic_id", "is_active", "deleted"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    question_count: Mapped[int] = mapped_column(Integer, nullable=False)
    # One of AllocationMode values: auto_any, auto_category, manual
    generation_type: Mapped[str] = mapped_column(String(30), nullable=False)
    topic_id: Mapped[int | None] = mapped_column(
        IdentifierType,
        ForeignKey("topics.id", ondelete="SET NULL"),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    topic: Mapped[Topic | None] = relationship("Topic")
    questions: Mapped[list[Question]] = relationship(
        "Question",
        secondary=package_questions,
        lazy="raise",
        viewonly=True,
    )
