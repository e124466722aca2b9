"""create topics, questions, exam packages and package question links

Revision ID: 3f7a1c2d9b10
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f7a1c2d9b10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "topics",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
    )

    op.create_table(
        "questions",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("topic_id", sa.BigInteger(), nullable=True),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("deleted", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["topic_id"], ["topics.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_questions_topic_id"), "questions", ["topic_id"], unique=False)
    op.create_index(
        "idx_question_active_deleted",
        "questions",
        ["is_active", "deleted"],
        unique=False,
    )
    op.create_index(
        "idx_question_topic_active_deleted",
        "questions",
        ["topic_id", "is_active", "deleted"],
        unique=False,
    )

    op.create_table(
        "exam_packages",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("question_count", sa.Integer(), nullable=False),
        sa.Column("generation_type", sa.String(length=30), nullable=False),
        sa.Column("topic_id", sa.BigInteger(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("deleted", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["topic_id"], ["topics.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_package_deleted_active",
        "exam_packages",
        ["deleted", "is_active"],
        unique=False,
    )
    op.create_index(
        "idx_package_topic_active_deleted",
        "exam_packages",
        ["topic_id", "is_active", "deleted"],
        unique=False,
    )

    op.create_table(
        "package_questions",
        sa.Column("package_id", sa.BigInteger(), nullable=False),
        sa.Column("question_id", sa.BigInteger(), nullable=False),
        sa.ForeignKeyConstraint(["package_id"], ["exam_packages.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["question_id"], ["questions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("package_id", "question_id"),
    )
    op.create_index(
        "idx_package_questions_question",
        "package_questions",
        ["question_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("idx_package_questions_question", table_name="package_questions")
    op.drop_table("package_questions")
    op.drop_index("idx_package_topic_active_deleted", table_name="exam_packages")
    op.drop_index("idx_package_deleted_active", table_name="exam_packages")
    op.drop_table("exam_packages")
    op.drop_index("idx_question_topic_active_deleted", table_name="questions")
    op.drop_index("idx_question_active_deleted", table_name="questions")
    op.drop_index(op.f("ix_questions_topic_id"), table_name="questions")
    op.drop_table("questions")
    op.drop_table("topics")
