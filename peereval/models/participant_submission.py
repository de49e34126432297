import uuid
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy import CheckConstraint, DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from peereval.db.base import Base
from peereval.db.types import utcnow


class ParticipantSubmission(Base):
    """Join record linking a user to an activity."""

    __tablename__ = "participant_submissions"
    __table_args__ = (
        UniqueConstraint("activity_id", "user_id", name="uq_participant_activity_user"),
        CheckConstraint("joined_via IN ('LINK','MANUAL')", name="ck_participant_joined_via"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    activity_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("activities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    joined_via: Mapped[str] = mapped_column(String(10), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=sa.func.now()
    )

    user = relationship("User", lazy="joined")
