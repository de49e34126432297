from datetime import datetime
from pydantic import BaseModel, Field


class UserCreate(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    full_name: str = Field(min_length=1, max_length=200)


class UserOut(BaseModel):
    id: str
    email: str
    full_name: str


class InviteLinkOut(BaseModel):
    activity_id: str
    code: str | None
    invite_link: str | None
    is_valid: bool
    expired_at: datetime | None


class ManualEnrollRequest(BaseModel):
    participant_emails: list[str] = Field(min_length=1, max_length=500)


class ParticipantOut(BaseModel):
    id: str
    activity_id: str
    user_id: str
    email: str | None
    full_name: str | None
    joined_via: str  # LINK | MANUAL
    created_at: datetime


class JoinOut(BaseModel):
    activity_id: str
    already_joined: bool
    participant: ParticipantOut
