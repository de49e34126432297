import uuid
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from peereval.db.base import Base


class Evaluation(Base):
    """Directed evaluator -> evaluatee assignment inside a session."""

    __tablename__ = "evaluations"
    __table_args__ = (
        UniqueConstraint(
            "session_id", "evaluator_id", "evaluatee_id",
            name="uq_evaluations_session_pair",
        ),
        CheckConstraint("evaluator_id <> evaluatee_id", name="ck_evaluations_not_self"),
        CheckConstraint(
            "status IN ('PENDING','SUBMITTED','REVIEWED')",
            name="ck_evaluations_status",
        ),
        Index("ix_evaluations_session_evaluator", "session_id", "evaluator_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    activity_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("activities.id", ondelete="CASCADE"),
        nullable=False,
    )
    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("sessions.id", ondelete="CASCADE"),
        nullable=False,
    )

    evaluator_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    evaluatee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )

    # NULL for ANY_TO_ANY pairs, which cross group boundaries
    group_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("groups.id", ondelete="SET NULL"),
        nullable=True,
    )

    marks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")
    is_submitted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_reviewed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=sa.func.now()
    )
