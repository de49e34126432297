import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from peereval.core.access import assert_user_is_creator, get_activity_or_404
from peereval.core.audit import log_event
from peereval.core.errors import Conflict
from peereval.core.security import get_current_user
from peereval.db.session import get_db
from peereval.models.activity import Activity
from peereval.models.evaluation_session import EvaluationSession
from peereval.models.user import User
from peereval.schemas.activity import ActivityCreate, ActivityOut, ActivityUpdate

router = APIRouter(prefix="/activities", tags=["activities"])


def to_out(a: Activity) -> ActivityOut:
    return ActivityOut(
        id=str(a.id),
        name=a.name,
        created_by_user_id=str(a.created_by_user_id),
        created_with_role=a.created_with_role,
        metadata=a.activity_metadata,
        rubric_criteria=a.rubric_criteria or [],
        max_marks=a.max_marks,
        created_at=a.created_at,
        updated_at=a.updated_at,
    )


def _has_sessions(db: Session, activity_id: uuid.UUID) -> bool:
    return (
        db.query(EvaluationSession.id)
        .filter(EvaluationSession.activity_id == activity_id)
        .first()
        is not None
    )


@router.get("", response_model=list[ActivityOut])
def list_activities(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Activities created by the caller, newest first."""
    rows = (
        db.query(Activity)
        .filter(Activity.created_by_user_id == current_user.id)
        .order_by(Activity.created_at.desc())
        .all()
    )
    return [to_out(a) for a in rows]


@router.get("/{activity_id}", response_model=ActivityOut)
def get_activity(
    activity_id: uuid.UUID,
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
):
    return to_out(get_activity_or_404(db, activity_id))


@router.post("", response_model=ActivityOut, status_code=status.HTTP_201_CREATED)
def create_activity(
    payload: ActivityCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    a = Activity(
        name=payload.name,
        created_by_user_id=current_user.id,
        created_with_role=payload.created_with_role,
        activity_metadata=payload.metadata,
        rubric_criteria=[c.model_dump() for c in payload.rubric_criteria],
        max_marks=payload.max_marks,
    )
    db.add(a)
    db.flush()  # ensures a.id exists for audit

    log_event(
        db=db,
        actor=current_user,
        action="ACTIVITY_CREATED",
        entity_type="activity",
        entity_id=a.id,
        metadata={"name": a.name, "criteria": len(payload.rubric_criteria)},
    )

    db.commit()
    db.refresh(a)
    return to_out(a)


@router.patch("/{activity_id}", response_model=ActivityOut)
def update_activity(
    activity_id: uuid.UUID,
    payload: ActivityUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    a = get_activity_or_404(db, activity_id)
    assert_user_is_creator(current_user, a)

    rubric_change = payload.rubric_criteria is not None or payload.max_marks is not None
    if rubric_change and _has_sessions(db, a.id):
        raise Conflict("Rubric cannot change once sessions are scheduled")

    before = {"name": a.name, "metadata": a.activity_metadata}

    if payload.name is not None:
        a.name = payload.name
    if payload.metadata is not None:
        a.activity_metadata = {**(a.activity_metadata or {}), **payload.metadata}
    if payload.rubric_criteria is not None:
        a.rubric_criteria = [c.model_dump() for c in payload.rubric_criteria]
    if payload.max_marks is not None:
        a.max_marks = payload.max_marks

    log_event(
        db=db,
        actor=current_user,
        action="ACTIVITY_UPDATED",
        entity_type="activity",
        entity_id=a.id,
        metadata={
            "before": before,
            "after": {"name": a.name, "metadata": a.activity_metadata},
            "rubric_changed": rubric_change,
        },
    )

    db.commit()
    db.refresh(a)
    return to_out(a)


@router.delete("/{activity_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_activity(
    activity_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    a = get_activity_or_404(db, activity_id)
    assert_user_is_creator(current_user, a)

    if _has_sessions(db, a.id):
        raise Conflict("Activities with scheduled sessions cannot be deleted")

    log_event(
        db=db,
        actor=current_user,
        action="ACTIVITY_DELETED",
        entity_type="activity",
        entity_id=a.id,
        metadata={"name": a.name},
    )
    db.delete(a)
    db.commit()
