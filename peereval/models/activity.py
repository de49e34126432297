import uuid
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy import DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from peereval.db.base import Base
from peereval.db.types import JSONType, utcnow


class Activity(Base):
    __tablename__ = "activities"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    created_by_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    # role the host picked when creating the activity (e.g. "HOST", "TEACHER")
    created_with_role: Mapped[str] = mapped_column(String(50), nullable=False, default="HOST")

    activity_metadata: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    # [{"name": "...", "description": "...", "max_marks": 10}, ...]
    rubric_criteria: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    max_marks: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
        onupdate=sa.func.now(),
    )
