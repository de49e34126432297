import uuid
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from peereval.db.base import Base
from peereval.db.types import utcnow


class EvaluationSession(Base):
    """One scheduled evaluation event for an activity."""

    __tablename__ = "sessions"
    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING','ACTIVE','COMPLETED')",
            name="ck_sessions_status",
        ),
        CheckConstraint(
            "evaluation_type IN ('WITHIN_GROUP','GROUP_TO_GROUP','ANY_TO_ANY')",
            name="ck_sessions_evaluation_type",
        ),
        CheckConstraint("group_size >= 1", name="ck_sessions_group_size"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    activity_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("activities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)  # minutes

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")
    evaluation_type: Mapped[str] = mapped_column(String(20), nullable=False)
    group_size: Mapped[int] = mapped_column(Integer, nullable=False)
    total_students: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    scheduled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=sa.func.now()
    )

    # Bumped by every allocate/finalize; compare-and-swap target
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
        onupdate=sa.func.now(),
    )
