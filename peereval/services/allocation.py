"""
Group allocation and finalization for evaluation sessions.

A session moves UNALLOCATED -> ALLOCATED (allocate, repeatable) ->
FINALIZED (finalize, one way). Each call is a single database transaction:
either every step lands or none does.
"""
import logging
import random
import uuid

from sqlalchemy import delete, insert, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from peereval.core.access import assert_user_is_creator, get_activity_or_404, get_session_or_404
from peereval.core.audit import log_event
from peereval.core.config import settings
from peereval.core.errors import AppError, Conflict, InvalidInput, StorageFailure
from peereval.db.types import utcnow
from peereval.models.evaluation import Evaluation
from peereval.models.evaluation_session import EvaluationSession
from peereval.models.group import Group
from peereval.models.invite_link import InviteLink
from peereval.models.user import User
from peereval.services.pairing import EvaluationPair, GroupMembers, generate_pairs
from peereval.services.partition import group_name, partition
from peereval.services.roster import resolve_roster

logger = logging.getLogger(__name__)

UNALLOCATED = "UNALLOCATED"
ALLOCATED = "ALLOCATED"
FINALIZED = "FINALIZED"


def allocation_state(session: EvaluationSession, group_count: int) -> str:
    if session.status != "PENDING":
        return FINALIZED
    return ALLOCATED if group_count > 0 else UNALLOCATED


def current_groups(db: Session, session_id: uuid.UUID) -> list[Group]:
    return (
        db.query(Group)
        .filter(Group.session_id == session_id)
        .order_by(Group.position)
        .all()
    )


def claim_session(db: Session, session: EvaluationSession, *, to_status: str | None = None) -> None:
    """
    Compare-and-swap on the session row: bump ``version`` (and optionally move
    the status) only if nobody else has touched the row since it was read.
    Raises Conflict for the loser of a race.
    """
    values = {"version": session.version + 1}
    if to_status is not None:
        values["status"] = to_status

    result = db.execute(
        update(EvaluationSession)
        .where(
            EvaluationSession.id == session.id,
            EvaluationSession.version == session.version,
            EvaluationSession.status == "PENDING",
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise Conflict("Session was modified concurrently; reload and retry")
    db.refresh(session)


def expire_invite_link(db: Session, activity_id: uuid.UUID) -> None:
    link = db.query(InviteLink).filter(InviteLink.activity_id == activity_id).one_or_none()
    if not link:
        return
    link.code = None
    link.sharing_link = None
    if link.expired_at is None:
        link.expired_at = utcnow()


def _insert_evaluations(db: Session, session: EvaluationSession, pairs: list[EvaluationPair]) -> None:
    rows = [
        {
            "activity_id": session.activity_id,
            "session_id": session.id,
            "evaluator_id": p.evaluator_id,
            "evaluatee_id": p.evaluatee_id,
            "group_id": p.group_id,
            "marks": 0,
            "status": "PENDING",
            "is_submitted": False,
            "is_reviewed": False,
        }
        for p in pairs
    ]
    batch_size = settings.EVALUATION_INSERT_BATCH_SIZE
    for start in range(0, len(rows), batch_size):
        db.execute(insert(Evaluation), rows[start:start + batch_size])


def allocate_groups(
    *,
    db: Session,
    session_id: uuid.UUID,
    actor: User,
    rng: random.Random | None = None,
    expected_version: int | None = None,
) -> list[Group]:
    """
    Replace the session's groups with a fresh random partition of the
    activity roster.
    """
    try:
        session = get_session_or_404(db, session_id, for_update=True)
        activity = get_activity_or_404(db, session.activity_id)
        assert_user_is_creator(actor, activity)

        if session.status != "PENDING":
            raise Conflict("Session is finalized; groups can no longer be re-allocated")

        if expected_version is not None and expected_version != session.version:
            raise Conflict(
                "Stale version",
                detail={
                    "message": "Stale version",
                    "expected": session.version,
                    "got": expected_version,
                },
            )

        roster = resolve_roster(db, activity.id)
        if not roster:
            raise InvalidInput("No participants found for this activity")

        chunks = partition(roster, session.group_size, rng=rng)

        claim_session(db, session)

        replaced = db.execute(delete(Group).where(Group.session_id == session.id)).rowcount

        groups = [
            Group(
                session_id=session.id,
                activity_id=activity.id,
                position=position,
                group_name=group_name(position),
                group_members=[str(member) for member in chunk],
            )
            for position, chunk in enumerate(chunks, start=1)
        ]
        db.add_all(groups)
        db.flush()

        log_event(
            db=db,
            actor=actor,
            action="GROUPS_ALLOCATED",
            entity_type="session",
            entity_id=session.id,
            metadata={
                "group_size": session.group_size,
                "participants": len(roster),
                "groups": len(groups),
                "replaced_groups": replaced,
                "version": session.version,
            },
        )

        db.commit()
    except AppError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("allocate failed for session %s", session_id)
        raise StorageFailure("Failed to allocate groups") from exc

    logger.info(
        "allocated %d participants into %d groups for session %s (version %d)",
        len(roster), len(groups), session.id, session.version,
    )
    return groups


def finalize_allocation(
    *,
    db: Session,
    session_id: uuid.UUID,
    actor: User,
) -> tuple[list[Group], int]:
    """
    Lock the current groups, close enrollment, start the session and
    materialize every evaluation pair. Returns (groups, evaluation count).
    """
    try:
        session = get_session_or_404(db, session_id, for_update=True)
        activity = get_activity_or_404(db, session.activity_id)
        assert_user_is_creator(actor, activity)

        if session.status != "PENDING":
            raise Conflict("Session has already been finalized")

        groups = current_groups(db, session.id)
        if not groups:
            raise InvalidInput("Session has no allocated groups; allocate before finalizing")

        expire_invite_link(db, activity.id)

        # only the first finalize wins this transition
        claim_session(db, session, to_status="ACTIVE")

        now = utcnow()
        for g in groups:
            g.finalized_at = now

        pairs = generate_pairs(
            [GroupMembers(g.id, [uuid.UUID(m) for m in g.group_members]) for g in groups],
            session.evaluation_type,
        )
        _insert_evaluations(db, session, pairs)

        log_event(
            db=db,
            actor=actor,
            action="ALLOCATION_FINALIZED",
            entity_type="session",
            entity_id=session.id,
            metadata={
                "evaluation_type": session.evaluation_type,
                "groups": len(groups),
                "evaluations": len(pairs),
            },
        )

        db.commit()
    except AppError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("finalize failed for session %s", session_id)
        raise StorageFailure("Failed to finalize allocation") from exc

    logger.info(
        "finalized session %s: %d groups, %d %s evaluations",
        session.id, len(groups), len(pairs), session.evaluation_type,
    )
    return groups, len(pairs)
