from datetime import datetime, timedelta, timezone

from dotenv import load_dotenv
from sqlalchemy.orm import Session

# Load environment variables
load_dotenv()

from peereval.db.session import SessionLocal
from peereval.models.user import User
from peereval.models.activity import Activity
from peereval.models.participant_submission import ParticipantSubmission
from peereval.models.evaluation_session import EvaluationSession

HOST_EMAIL = "host@local.test"
PARTICIPANT_COUNT = 12


def get_or_create_user(db: Session, email: str, full_name: str) -> User:
    u = db.query(User).filter(User.email == email).one_or_none()
    if u:
        return u
    u = User(email=email, full_name=full_name, is_active=True)
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


def get_or_create_activity(db: Session, name: str, host: User) -> Activity:
    a = (
        db.query(Activity)
        .filter(Activity.name == name, Activity.created_by_user_id == host.id)
        .one_or_none()
    )
    if a:
        return a
    a = Activity(
        name=name,
        created_by_user_id=host.id,
        created_with_role="HOST",
        activity_metadata={"course": "DEMO101"},
        rubric_criteria=[
            {"name": "Clarity", "description": "Was the presentation clear?", "max_marks": 5},
            {"name": "Depth", "description": "Did it go beyond the basics?", "max_marks": 5},
        ],
        max_marks=10,
    )
    db.add(a)
    db.commit()
    db.refresh(a)
    return a


def ensure_enrolled(db: Session, activity: Activity, user: User, joined_via: str = "MANUAL"):
    s = (
        db.query(ParticipantSubmission)
        .filter(
            ParticipantSubmission.activity_id == activity.id,
            ParticipantSubmission.user_id == user.id,
        )
        .one_or_none()
    )
    if s:
        return s
    s = ParticipantSubmission(activity_id=activity.id, user_id=user.id, joined_via=joined_via)
    db.add(s)
    db.commit()
    return s


def get_or_create_session(db: Session, activity: Activity, evaluation_type: str, group_size: int) -> EvaluationSession:
    s = (
        db.query(EvaluationSession)
        .filter(
            EvaluationSession.activity_id == activity.id,
            EvaluationSession.evaluation_type == evaluation_type,
        )
        .first()
    )
    if s:
        return s
    start = datetime.now(timezone.utc) + timedelta(days=1)
    end = start + timedelta(hours=1)
    total = (
        db.query(ParticipantSubmission)
        .filter(ParticipantSubmission.activity_id == activity.id)
        .count()
    )
    s = EvaluationSession(
        activity_id=activity.id,
        start_time=start,
        end_time=end,
        duration=60,
        status="PENDING",
        evaluation_type=evaluation_type,
        group_size=group_size,
        total_students=total,
        version=1,
    )
    db.add(s)
    db.commit()
    db.refresh(s)
    return s


def main():
    db = SessionLocal()
    try:
        host = get_or_create_user(db, HOST_EMAIL, "Demo Host")
        activity = get_or_create_activity(db, "Demo Peer Review", host)

        ensure_enrolled(db, activity, host)
        for i in range(1, PARTICIPANT_COUNT + 1):
            u = get_or_create_user(db, f"student{i:02d}@local.test", f"Student {i:02d}")
            ensure_enrolled(db, activity, u, joined_via="LINK" if i % 2 else "MANUAL")

        sessions = [
            get_or_create_session(db, activity, "WITHIN_GROUP", 4),
            get_or_create_session(db, activity, "GROUP_TO_GROUP", 3),
            get_or_create_session(db, activity, "ANY_TO_ANY", 5),
        ]

        print("Seeded activity:", activity.id)
        for s in sessions:
            print(f"  session {s.id} {s.evaluation_type} group_size={s.group_size}")
        print(f"Use header X-User-Email: {HOST_EMAIL}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
