import logging
import uuid

from sqlalchemy.orm import Session

from peereval.core.access import get_activity_or_404
from peereval.models.evaluation_session import EvaluationSession
from peereval.models.group import Group
from peereval.models.invite_link import InviteLink
from peereval.models.participant_submission import ParticipantSubmission

logger = logging.getLogger(__name__)


def resolve_roster(db: Session, activity_id: uuid.UUID) -> list[uuid.UUID]:
    """
    Enrolled participant ids for an activity, in join order.

    Raises NotFound when the activity does not exist. An empty list is a valid
    answer (nobody has joined yet); deciding whether that is an error is up to
    the caller.
    """
    get_activity_or_404(db, activity_id)

    rows = (
        db.query(ParticipantSubmission.user_id)
        .filter(ParticipantSubmission.activity_id == activity_id)
        .order_by(ParticipantSubmission.created_at, ParticipantSubmission.id)
        .all()
    )
    roster = list(dict.fromkeys(r[0] for r in rows))
    if len(roster) != len(rows):
        logger.warning(
            "activity %s has %d duplicate submission rows", activity_id, len(rows) - len(roster)
        )
    return roster


def enrollment_closed(db: Session, activity_id: uuid.UUID) -> bool:
    """True once any session of the activity has been finalized."""
    expired_link = (
        db.query(InviteLink.id)
        .filter(InviteLink.activity_id == activity_id, InviteLink.expired_at.is_not(None))
        .first()
    )
    if expired_link:
        return True
    started = (
        db.query(EvaluationSession.id)
        .filter(
            EvaluationSession.activity_id == activity_id,
            EvaluationSession.status != "PENDING",
        )
        .first()
    )
    return started is not None


def has_pending_allocation(db: Session, activity_id: uuid.UUID) -> bool:
    """True while a PENDING session of the activity holds groups built from the current roster."""
    row = (
        db.query(Group.id)
        .join(EvaluationSession, Group.session_id == EvaluationSession.id)
        .filter(
            EvaluationSession.activity_id == activity_id,
            EvaluationSession.status == "PENDING",
        )
        .first()
    )
    return row is not None
