import uuid

from sqlalchemy.orm import Session

from peereval.core.errors import NotFound, Unauthorized
from peereval.models.activity import Activity
from peereval.models.evaluation_session import EvaluationSession
from peereval.models.user import User


def get_activity_or_404(db: Session, activity_id: uuid.UUID) -> Activity:
    activity = db.get(Activity, activity_id)
    if not activity:
        raise NotFound("Activity not found")
    return activity


def get_session_or_404(db: Session, session_id: uuid.UUID, *, for_update: bool = False) -> EvaluationSession:
    q = db.query(EvaluationSession).filter(EvaluationSession.id == session_id)
    if for_update:
        # reread the row even if this Session already holds it
        q = q.with_for_update().populate_existing()
    session = q.one_or_none()
    if not session:
        raise NotFound("Session not found")
    return session


def assert_user_is_creator(user: User, activity: Activity):
    if activity.created_by_user_id != user.id:
        raise Unauthorized("Only the activity's creator can perform this action")
