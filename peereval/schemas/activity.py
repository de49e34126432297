from datetime import datetime
from pydantic import BaseModel, Field


class RubricCriterion(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    max_marks: int | None = Field(default=None, ge=0)


class ActivityCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    created_with_role: str = Field(default="HOST", min_length=1, max_length=50)
    metadata: dict = Field(default_factory=dict)
    rubric_criteria: list[RubricCriterion] = Field(default_factory=list)
    max_marks: int | None = Field(default=None, ge=0)


class ActivityUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    metadata: dict | None = None
    rubric_criteria: list[RubricCriterion] | None = None
    max_marks: int | None = Field(default=None, ge=0)


class ActivityOut(BaseModel):
    id: str
    name: str
    created_by_user_id: str
    created_with_role: str
    metadata: dict | None
    rubric_criteria: list[RubricCriterion]
    max_marks: int | None
    created_at: datetime
    updated_at: datetime
