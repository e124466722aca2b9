"""Question topic model."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from exam_allocator.models.base import Base, IntegerIdMixin, TimestampMixin

if TYPE_CHECKING:
    from exam_allocator.models.question import Question


class Topic(Base, IntegerIdMixin, TimestampMixin):
    """Category that questions and topic packages are scoped to."""

    __tablename__ = "topics"

    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    questions: Mapped[list[Question]] = relationship(
        "Question",
        back_populates="topic",
    )
