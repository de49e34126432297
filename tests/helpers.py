from datetime import datetime, timedelta, timezone
from sqlalchemy.orm import Session

from peereval.models.user import User
from peereval.models.activity import Activity
from peereval.models.invite_link import InviteLink
from peereval.models.participant_submission import ParticipantSubmission
from peereval.models.evaluation_session import EvaluationSession


def auth(user: User) -> dict[str, str]:
    return {"X-User-Email": user.email}


def create_user(db: Session, email: str, full_name="User") -> User:
    u = User(email=email, full_name=full_name, is_active=True)
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


def create_users(db: Session, count: int, prefix="student") -> list[User]:
    return [create_user(db, f"{prefix}{i}@local.test", f"{prefix.title()} {i}") for i in range(1, count + 1)]


def create_activity(db: Session, created_by: User, name="Peer Review") -> Activity:
    a = Activity(name=name, created_by_user_id=created_by.id, created_with_role="HOST")
    db.add(a)
    db.commit()
    db.refresh(a)
    return a


def enroll(db: Session, activity: Activity, users: list[User], joined_via="MANUAL") -> list[ParticipantSubmission]:
    rows = []
    for u in users:
        s = ParticipantSubmission(activity_id=activity.id, user_id=u.id, joined_via=joined_via)
        db.add(s)
        db.commit()
        rows.append(s)
    return rows


def create_invite_link(db: Session, activity: Activity, shared_by: User, code="joinme42") -> InviteLink:
    link = InviteLink(
        activity_id=activity.id,
        code=code,
        sharing_link=f"http://localhost:3000/join/{code}",
        shared_by_user_id=shared_by.id,
    )
    db.add(link)
    db.commit()
    db.refresh(link)
    return link


def create_session(
    db: Session,
    activity: Activity,
    *,
    evaluation_type="WITHIN_GROUP",
    group_size=2,
    status="PENDING",
) -> EvaluationSession:
    start = datetime(2026, 11, 2, 9, 0, tzinfo=timezone.utc)
    s = EvaluationSession(
        activity_id=activity.id,
        start_time=start,
        end_time=start + timedelta(minutes=90),
        duration=90,
        status=status,
        evaluation_type=evaluation_type,
        group_size=group_size,
        total_students=0,
        version=1,
    )
    db.add(s)
    db.commit()
    db.refresh(s)
    return s


def setup_session(db: Session, *, participants=4, evaluation_type="WITHIN_GROUP", group_size=2, with_invite=True):
    """Host + enrolled participants + a PENDING session. Returns (host, users, activity, session)."""
    host = create_user(db, "host@local.test", "Host")
    users = create_users(db, participants)
    activity = create_activity(db, host)
    enroll(db, activity, users)
    if with_invite:
        create_invite_link(db, activity, host)
    session = create_session(db, activity, evaluation_type=evaluation_type, group_size=group_size)
    return host, users, activity, session
