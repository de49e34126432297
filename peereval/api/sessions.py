import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Header, Query, Response, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from peereval.core.access import assert_user_is_creator, get_activity_or_404, get_session_or_404
from peereval.core.audit import log_event
from peereval.core.errors import InvalidInput
from peereval.core.optimistic_lock import parse_if_match, set_etag
from peereval.core.security import get_current_user
from peereval.db.session import get_db
from peereval.models.evaluation import Evaluation
from peereval.models.evaluation_session import EvaluationSession
from peereval.models.group import Group
from peereval.models.participant_submission import ParticipantSubmission
from peereval.models.user import User
from peereval.schemas.pagination import PaginatedResponse, PaginationMeta
from peereval.schemas.session import (
    AllocationOut,
    EvaluationOut,
    FinalizeOut,
    GroupOut,
    SessionCreate,
    SessionOut,
)
from peereval.services.allocation import (
    allocate_groups,
    allocation_state,
    current_groups,
    finalize_allocation,
)

router = APIRouter(tags=["sessions"])


def _group_count(db: Session, session_id: uuid.UUID) -> int:
    return db.query(func.count(Group.id)).filter(Group.session_id == session_id).scalar() or 0


def session_to_out(s: EvaluationSession, group_count: int) -> SessionOut:
    return SessionOut(
        id=str(s.id),
        activity_id=str(s.activity_id),
        start_time=s.start_time,
        end_time=s.end_time,
        duration=s.duration,
        status=s.status,
        evaluation_type=s.evaluation_type,
        group_size=s.group_size,
        total_students=s.total_students,
        scheduled_at=s.scheduled_at,
        version=s.version,
        allocation_state=allocation_state(s, group_count),
        group_count=group_count,
    )


def group_to_out(g: Group) -> GroupOut:
    return GroupOut(
        id=str(g.id),
        session_id=str(g.session_id),
        activity_id=str(g.activity_id),
        group_name=g.group_name,
        position=g.position,
        group_members=list(g.group_members),
        finalized_at=g.finalized_at,
    )


def evaluation_to_out(e: Evaluation) -> EvaluationOut:
    return EvaluationOut(
        id=str(e.id),
        session_id=str(e.session_id),
        activity_id=str(e.activity_id),
        evaluator_id=str(e.evaluator_id),
        evaluatee_id=str(e.evaluatee_id),
        group_id=str(e.group_id) if e.group_id else None,
        marks=e.marks,
        status=e.status,
        is_submitted=e.is_submitted,
        is_reviewed=e.is_reviewed,
        created_at=e.created_at,
    )


def _as_utc(value: datetime) -> datetime:
    # naive timestamps from clients are taken as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@router.post(
    "/activities/{activity_id}/sessions",
    response_model=SessionOut,
    status_code=status.HTTP_201_CREATED,
)
def schedule_session(
    activity_id: uuid.UUID,
    payload: SessionCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    activity = get_activity_or_404(db, activity_id)
    assert_user_is_creator(current_user, activity)

    start = _as_utc(payload.start_time)
    end = _as_utc(payload.end_time)
    if end <= start:
        raise InvalidInput("End time must be after start time")

    duration = int((end - start).total_seconds() // 60)  # minutes

    total_students = (
        db.query(func.count(ParticipantSubmission.id))
        .filter(ParticipantSubmission.activity_id == activity.id)
        .scalar()
        or 0
    )

    s = EvaluationSession(
        activity_id=activity.id,
        start_time=start,
        end_time=end,
        duration=duration,
        status="PENDING",
        evaluation_type=payload.evaluation_type,
        group_size=payload.group_size,
        total_students=total_students,
        version=1,
    )
    db.add(s)
    db.flush()

    log_event(
        db=db,
        actor=current_user,
        action="SESSION_SCHEDULED",
        entity_type="session",
        entity_id=s.id,
        metadata={
            "activity_id": str(activity.id),
            "evaluation_type": s.evaluation_type,
            "group_size": s.group_size,
            "total_students": total_students,
        },
    )

    db.commit()
    db.refresh(s)
    return session_to_out(s, 0)


@router.get("/activities/{activity_id}/sessions", response_model=list[SessionOut])
def list_sessions(
    activity_id: uuid.UUID,
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
):
    activity = get_activity_or_404(db, activity_id)
    rows = (
        db.query(EvaluationSession)
        .filter(EvaluationSession.activity_id == activity.id)
        .order_by(EvaluationSession.created_at.desc())
        .all()
    )
    return [session_to_out(s, _group_count(db, s.id)) for s in rows]


@router.get("/sessions/{session_id}", response_model=SessionOut)
def get_session(
    session_id: uuid.UUID,
    response: Response,
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
):
    s = get_session_or_404(db, session_id)
    set_etag(response, s.version)
    return session_to_out(s, _group_count(db, s.id))


@router.get("/sessions/{session_id}/groups", response_model=list[GroupOut])
def list_groups(
    session_id: uuid.UUID,
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
):
    s = get_session_or_404(db, session_id)
    return [group_to_out(g) for g in current_groups(db, s.id)]


@router.post("/sessions/{session_id}/allocate", response_model=AllocationOut)
def allocate(
    session_id: uuid.UUID,
    response: Response,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    if_match: str | None = Header(default=None, alias="If-Match"),
):
    """
    Shuffle the activity roster into groups of the session's group size,
    replacing any previous allocation. Send If-Match with the session version
    to refuse the call when someone else re-allocated in the meantime.
    """
    expected_version = parse_if_match(if_match)

    groups = allocate_groups(
        db=db,
        session_id=session_id,
        actor=current_user,
        expected_version=expected_version,
    )
    s = get_session_or_404(db, session_id)

    set_etag(response, s.version)
    return AllocationOut(
        session_id=str(s.id),
        status=s.status,
        allocation_state=allocation_state(s, len(groups)),
        version=s.version,
        groups=[group_to_out(g) for g in groups],
    )


@router.post("/sessions/{session_id}/finalize", response_model=FinalizeOut)
def finalize(
    session_id: uuid.UUID,
    response: Response,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Lock the current groups and generate every evaluation pair. One way: the
    invite link is invalidated and the session becomes ACTIVE.
    """
    groups, evaluation_count = finalize_allocation(
        db=db,
        session_id=session_id,
        actor=current_user,
    )
    s = get_session_or_404(db, session_id)

    set_etag(response, s.version)
    return FinalizeOut(
        session_id=str(s.id),
        status=s.status,
        allocation_state=allocation_state(s, len(groups)),
        version=s.version,
        groups=[group_to_out(g) for g in groups],
        evaluation_count=evaluation_count,
    )


@router.get("/sessions/{session_id}/evaluations")
def list_evaluations(
    session_id: uuid.UUID,
    evaluator_id: uuid.UUID | None = Query(default=None, description="Filter by evaluator"),
    evaluatee_id: uuid.UUID | None = Query(default=None, description="Filter by evaluatee"),
    group_id: uuid.UUID | None = Query(default=None, description="Filter by group"),
    limit: int = Query(default=100, ge=1, le=1000, description="Maximum number of results"),
    offset: int = Query(default=0, ge=0, description="Number of results to skip"),
    include_pagination: bool = Query(default=False, description="Include pagination metadata"),
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
):
    """
    List a session's evaluation assignments.

    Use ?include_pagination=true to get pagination metadata.
    """
    s = get_session_or_404(db, session_id)

    query = db.query(Evaluation).filter(Evaluation.session_id == s.id)
    if evaluator_id:
        query = query.filter(Evaluation.evaluator_id == evaluator_id)
    if evaluatee_id:
        query = query.filter(Evaluation.evaluatee_id == evaluatee_id)
    if group_id:
        query = query.filter(Evaluation.group_id == group_id)

    total = query.count()

    rows = (
        query.order_by(Evaluation.evaluator_id, Evaluation.evaluatee_id)
        .offset(offset)
        .limit(limit)
        .all()
    )
    items = [evaluation_to_out(e) for e in rows]

    if include_pagination:
        return PaginatedResponse[EvaluationOut](
            items=items,
            pagination=PaginationMeta(
                total=total,
                limit=limit,
                offset=offset,
                has_more=(offset + len(items) < total),
            ),
        )
    return items
