from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

EvaluationTypeName = Literal["WITHIN_GROUP", "GROUP_TO_GROUP", "ANY_TO_ANY"]


class SessionCreate(BaseModel):
    start_time: datetime
    end_time: datetime
    evaluation_type: EvaluationTypeName
    group_size: int = Field(ge=1, le=1000)


class SessionOut(BaseModel):
    id: str
    activity_id: str
    start_time: datetime
    end_time: datetime
    duration: int
    status: str
    evaluation_type: str
    group_size: int
    total_students: int
    scheduled_at: datetime
    version: int
    allocation_state: str  # UNALLOCATED | ALLOCATED | FINALIZED
    group_count: int


class GroupOut(BaseModel):
    id: str
    session_id: str
    activity_id: str
    group_name: str
    position: int
    group_members: list[str]
    finalized_at: datetime | None


class AllocationOut(BaseModel):
    session_id: str
    status: str
    allocation_state: str
    version: int
    groups: list[GroupOut]


class FinalizeOut(AllocationOut):
    evaluation_count: int


class EvaluationOut(BaseModel):
    id: str
    session_id: str
    activity_id: str
    evaluator_id: str
    evaluatee_id: str
    group_id: str | None
    marks: int
    status: str
    is_submitted: bool
    is_reviewed: bool
    created_at: datetime
