"""SQLAlchemy database models."""
from exam_allocator.models.base import Base
from exam_allocator.models.exam_package import ExamPackage, package_questions
from exam_allocator.models.question import Question
from exam_allocator.models.topic import Topic

__all__ = [
    "Base",
    "Topic",
    "Question",
    "ExamPackage",
    "package_questions",
]
