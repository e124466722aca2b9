"""Question (catalog item) model."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import Boolean, ForeignKey, Index, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from exam_allocator.models.base import Base, IdentifierType, IntegerIdMixin, TimestampMixin

if TYPE_CHECKING:
    from exam_allocator.models.topic import Topic


class Question(Base, IntegerIdMixin, TimestampMixin):
    """Reusable exam question shared by many packages."""

    __tablename__ = "questions"
    __table_args__ = (
        Index("idx_question_active_deleted", "is_active", "deleted"),
        Index("idx_question_topic_active_deleted", "topic_id", "is_active", "deleted"),
    )

    topic_id: Mapped[int | None] = mapped_column(
        IdentifierType,
        ForeignKey("topics.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    topic: Mapped[Topic | None] = relationship("Topic", back_populates="questions")
