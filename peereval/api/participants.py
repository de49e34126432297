import secrets
import uuid

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from peereval.core.access import assert_user_is_creator, get_activity_or_404
from peereval.core.audit import log_event
from peereval.core.config import settings
from peereval.core.errors import Conflict, InvalidInput, NotFound
from peereval.core.security import get_current_user
from peereval.db.session import get_db
from peereval.models.invite_link import InviteLink
from peereval.models.participant_submission import ParticipantSubmission
from peereval.models.user import User
from peereval.schemas.participant import (
    InviteLinkOut,
    JoinOut,
    ManualEnrollRequest,
    ParticipantOut,
)
from peereval.services.roster import enrollment_closed, has_pending_allocation

router = APIRouter(tags=["participants"])


def link_to_out(link: InviteLink) -> InviteLinkOut:
    return InviteLinkOut(
        activity_id=str(link.activity_id),
        code=link.code,
        invite_link=link.sharing_link,
        is_valid=link.is_valid,
        expired_at=link.expired_at,
    )


def participant_to_out(p: ParticipantSubmission) -> ParticipantOut:
    return ParticipantOut(
        id=str(p.id),
        activity_id=str(p.activity_id),
        user_id=str(p.user_id),
        email=p.user.email if p.user else None,
        full_name=p.user.full_name if p.user else None,
        joined_via=p.joined_via,
        created_at=p.created_at,
    )


def _find_submission(db: Session, activity_id: uuid.UUID, user_id: uuid.UUID) -> ParticipantSubmission | None:
    return (
        db.query(ParticipantSubmission)
        .filter(
            ParticipantSubmission.activity_id == activity_id,
            ParticipantSubmission.user_id == user_id,
        )
        .one_or_none()
    )


def _assert_enrollment_open(db: Session, activity_id: uuid.UUID):
    if enrollment_closed(db, activity_id):
        raise Conflict("Enrollment is closed for this activity")


@router.post("/activities/{activity_id}/invite-link", response_model=InviteLinkOut)
def create_invite_link(
    activity_id: uuid.UUID,
    response: Response,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Return the activity's invite link, creating it on first use. Creating the
    link also enrolls the creator.
    """
    activity = get_activity_or_404(db, activity_id)
    assert_user_is_creator(current_user, activity)

    existing = db.query(InviteLink).filter(InviteLink.activity_id == activity.id).one_or_none()
    if existing:
        return link_to_out(existing)

    _assert_enrollment_open(db, activity.id)

    code = secrets.token_urlsafe(8)
    link = InviteLink(
        activity_id=activity.id,
        code=code,
        sharing_link=f"{settings.INVITE_BASE_URL.rstrip('/')}/join/{code}",
        shared_by_user_id=current_user.id,
    )
    db.add(link)

    if not _find_submission(db, activity.id, current_user.id):
        db.add(
            ParticipantSubmission(
                activity_id=activity.id,
                user_id=current_user.id,
                joined_via="MANUAL",
            )
        )
    db.flush()

    log_event(
        db=db,
        actor=current_user,
        action="INVITE_LINK_CREATED",
        entity_type="activity",
        entity_id=activity.id,
        metadata={"code": code},
    )

    db.commit()
    db.refresh(link)
    response.status_code = status.HTTP_201_CREATED
    return link_to_out(link)


@router.post("/join/{code}", response_model=JoinOut)
def join_via_link(
    code: str,
    response: Response,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    link = db.query(InviteLink).filter(InviteLink.code == code).one_or_none()
    if not link or not link.is_valid:
        raise NotFound("Invalid or expired invite link")

    existing = _find_submission(db, link.activity_id, current_user.id)
    if existing:
        return JoinOut(
            activity_id=str(link.activity_id),
            already_joined=True,
            participant=participant_to_out(existing),
        )

    _assert_enrollment_open(db, link.activity_id)

    submission = ParticipantSubmission(
        activity_id=link.activity_id,
        user_id=current_user.id,
        joined_via="LINK",
    )
    try:
        db.add(submission)
        db.flush()
    except IntegrityError:
        # concurrent join by the same user won the insert
        db.rollback()
        existing = _find_submission(db, link.activity_id, current_user.id)
        if not existing:
            raise
        return JoinOut(
            activity_id=str(link.activity_id),
            already_joined=True,
            participant=participant_to_out(existing),
        )

    log_event(
        db=db,
        actor=current_user,
        action="PARTICIPANT_JOINED",
        entity_type="activity",
        entity_id=link.activity_id,
        metadata={"user_id": str(current_user.id), "joined_via": "LINK"},
    )

    db.commit()
    db.refresh(submission)
    response.status_code = status.HTTP_201_CREATED
    return JoinOut(
        activity_id=str(link.activity_id),
        already_joined=False,
        participant=participant_to_out(submission),
    )


@router.post(
    "/activities/{activity_id}/participants",
    response_model=list[ParticipantOut],
    status_code=status.HTTP_201_CREATED,
)
def add_participants_manually(
    activity_id: uuid.UUID,
    payload: ManualEnrollRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    activity = get_activity_or_404(db, activity_id)
    assert_user_is_creator(current_user, activity)
    _assert_enrollment_open(db, activity.id)

    emails = list(dict.fromkeys(payload.participant_emails))
    users = db.query(User).filter(User.email.in_(emails)).all()
    by_email = {u.email: u for u in users}

    invalid = [e for e in emails if e not in by_email]
    if invalid:
        raise InvalidInput(
            "Some emails are not registered users",
            detail={"message": "Some emails are not registered users", "invalid_emails": invalid},
        )

    created: list[ParticipantSubmission] = []
    for email in emails:
        user = by_email[email]
        if _find_submission(db, activity.id, user.id):
            continue
        s = ParticipantSubmission(activity_id=activity.id, user_id=user.id, joined_via="MANUAL")
        db.add(s)
        created.append(s)

    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise Conflict("Participant list changed concurrently; retry")

    if created:
        log_event(
            db=db,
            actor=current_user,
            action="PARTICIPANTS_ENROLLED",
            entity_type="activity",
            entity_id=activity.id,
            metadata={"user_ids": [str(s.user_id) for s in created], "joined_via": "MANUAL"},
        )

    db.commit()
    for s in created:
        db.refresh(s)
    return [participant_to_out(s) for s in created]


@router.get("/activities/{activity_id}/participants", response_model=list[ParticipantOut])
def list_participants(
    activity_id: uuid.UUID,
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
):
    activity = get_activity_or_404(db, activity_id)
    rows = (
        db.query(ParticipantSubmission)
        .filter(ParticipantSubmission.activity_id == activity.id)
        .order_by(ParticipantSubmission.created_at, ParticipantSubmission.id)
        .all()
    )
    return [participant_to_out(p) for p in rows]


@router.delete(
    "/activities/{activity_id}/participants/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def remove_participant(
    activity_id: uuid.UUID,
    user_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    activity = get_activity_or_404(db, activity_id)
    assert_user_is_creator(current_user, activity)
    _assert_enrollment_open(db, activity.id)

    submission = _find_submission(db, activity.id, user_id)
    if not submission:
        raise NotFound("Participant not found in this activity")

    # allocated groups still list the participant; finalize would pair them
    if has_pending_allocation(db, activity.id):
        raise Conflict("Participants cannot be removed once a pending session has groups")

    db.delete(submission)
    log_event(
        db=db,
        actor=current_user,
        action="PARTICIPANT_REMOVED",
        entity_type="activity",
        entity_id=activity.id,
        metadata={"user_id": str(user_id)},
    )
    db.commit()
