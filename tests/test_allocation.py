import random

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError

from peereval.core.access import get_session_or_404
from peereval.core.config import settings
from peereval.core.errors import Conflict, InvalidInput, StorageFailure, Unauthorized
from peereval.services import allocation
from peereval.models.evaluation import Evaluation
from peereval.models.evaluation_session import EvaluationSession
from peereval.models.group import Group
from peereval.models.invite_link import InviteLink
from peereval.services.allocation import (
    ALLOCATED,
    FINALIZED,
    UNALLOCATED,
    allocate_groups,
    allocation_state,
    claim_session,
    current_groups,
    finalize_allocation,
)
from peereval.services.roster import enrollment_closed
from tests.helpers import create_user, setup_session


def _evaluations(db, session_id):
    return db.query(Evaluation).filter(Evaluation.session_id == session_id).all()


def test_allocate_partitions_roster(db_session):
    host, users, activity, session = setup_session(db_session, participants=5, group_size=2)

    groups = allocate_groups(db=db_session, session_id=session.id, actor=host, rng=random.Random(3))

    assert [g.group_name for g in groups] == ["Group 1", "Group 2", "Group 3"]
    assert [len(g.group_members) for g in groups] == [2, 2, 1]
    members = [m for g in groups for m in g.group_members]
    assert sorted(members) == sorted(str(u.id) for u in users)
    assert all(g.finalized_at is None for g in groups)

    db_session.refresh(session)
    assert session.status == "PENDING"
    assert session.version == 2
    assert allocation_state(session, len(groups)) == ALLOCATED


def test_reallocate_replaces_previous_groups(db_session):
    host, users, activity, session = setup_session(db_session, participants=4, group_size=2)

    first = allocate_groups(db=db_session, session_id=session.id, actor=host)
    first_ids = {g.id for g in first}
    second = allocate_groups(db=db_session, session_id=session.id, actor=host)

    stored = current_groups(db_session, session.id)
    assert len(stored) == 2
    assert {g.id for g in stored} == {g.id for g in second}
    assert first_ids.isdisjoint({g.id for g in stored})

    db_session.refresh(session)
    assert session.version == 3


def test_allocate_with_empty_roster_fails(db_session):
    host, _, _, session = setup_session(db_session, participants=0)

    with pytest.raises(InvalidInput):
        allocate_groups(db=db_session, session_id=session.id, actor=host)

    assert db_session.query(Group).count() == 0
    db_session.refresh(session)
    assert session.version == 1
    assert allocation_state(session, 0) == UNALLOCATED


def test_allocate_requires_creator(db_session):
    _, _, _, session = setup_session(db_session, participants=4)
    outsider = create_user(db_session, "outsider@local.test", "Outsider")

    with pytest.raises(Unauthorized):
        allocate_groups(db=db_session, session_id=session.id, actor=outsider)
    assert db_session.query(Group).count() == 0


def test_allocate_rejects_stale_version(db_session):
    host, _, _, session = setup_session(db_session, participants=4)
    allocate_groups(db=db_session, session_id=session.id, actor=host)

    with pytest.raises(Conflict) as exc:
        allocate_groups(db=db_session, session_id=session.id, actor=host, expected_version=1)

    assert exc.value.detail["expected"] == 2
    assert exc.value.detail["got"] == 1


def test_claim_session_loses_to_concurrent_writer(db_session):
    _, _, _, session = setup_session(db_session, participants=2)

    # another writer bumps the row behind this object's back
    db_session.execute(
        update(EvaluationSession)
        .where(EvaluationSession.id == session.id)
        .values(version=2)
        .execution_options(synchronize_session=False)
    )

    with pytest.raises(Conflict):
        claim_session(db_session, session, to_status="ACTIVE")


def test_finalize_within_group(db_session):
    host, users, activity, session = setup_session(db_session, participants=4, group_size=2)
    groups = allocate_groups(db=db_session, session_id=session.id, actor=host)

    finalized, count = finalize_allocation(db=db_session, session_id=session.id, actor=host)

    assert count == 4
    assert {g.id for g in finalized} == {g.id for g in groups}
    assert all(g.finalized_at is not None for g in finalized)

    rows = _evaluations(db_session, session.id)
    assert len(rows) == 4
    by_group = {g.id: set(g.group_members) for g in finalized}
    for e in rows:
        assert e.evaluator_id != e.evaluatee_id
        assert e.status == "PENDING"
        assert e.marks == 0
        assert {str(e.evaluator_id), str(e.evaluatee_id)} <= by_group[e.group_id]

    db_session.refresh(session)
    assert session.status == "ACTIVE"
    assert allocation_state(session, len(finalized)) == FINALIZED

    link = db_session.query(InviteLink).filter(InviteLink.activity_id == activity.id).one()
    assert link.code is None
    assert link.sharing_link is None
    assert link.expired_at is not None
    assert link.is_valid is False
    assert enrollment_closed(db_session, activity.id) is True


def test_finalize_group_to_group(db_session):
    host, _, _, session = setup_session(
        db_session, participants=4, group_size=2, evaluation_type="GROUP_TO_GROUP"
    )
    groups = allocate_groups(db=db_session, session_id=session.id, actor=host)

    _, count = finalize_allocation(db=db_session, session_id=session.id, actor=host)

    assert count == 8
    members_of = {g.id: set(g.group_members) for g in groups}
    for e in _evaluations(db_session, session.id):
        assert str(e.evaluator_id) in members_of[e.group_id]
        assert str(e.evaluatee_id) not in members_of[e.group_id]


def test_finalize_group_to_group_single_group(db_session):
    host, _, _, session = setup_session(
        db_session, participants=3, group_size=5, evaluation_type="GROUP_TO_GROUP"
    )
    allocate_groups(db=db_session, session_id=session.id, actor=host)

    _, count = finalize_allocation(db=db_session, session_id=session.id, actor=host)
    assert count == 6


def test_finalize_any_to_any(db_session):
    host, _, _, session = setup_session(
        db_session, participants=4, group_size=2, evaluation_type="ANY_TO_ANY"
    )
    allocate_groups(db=db_session, session_id=session.id, actor=host)

    _, count = finalize_allocation(db=db_session, session_id=session.id, actor=host)

    assert count == 12
    assert all(e.group_id is None for e in _evaluations(db_session, session.id))


def test_finalize_twice_conflicts(db_session):
    host, _, _, session = setup_session(db_session, participants=4)
    allocate_groups(db=db_session, session_id=session.id, actor=host)
    finalize_allocation(db=db_session, session_id=session.id, actor=host)

    with pytest.raises(Conflict):
        finalize_allocation(db=db_session, session_id=session.id, actor=host)
    assert len(_evaluations(db_session, session.id)) == 4


def test_allocate_after_finalize_conflicts(db_session):
    host, _, _, session = setup_session(db_session, participants=4)
    allocate_groups(db=db_session, session_id=session.id, actor=host)
    finalize_allocation(db=db_session, session_id=session.id, actor=host)
    before = {g.id for g in current_groups(db_session, session.id)}

    with pytest.raises(Conflict):
        allocate_groups(db=db_session, session_id=session.id, actor=host)
    assert {g.id for g in current_groups(db_session, session.id)} == before


def test_finalize_without_groups_fails(db_session):
    host, _, activity, session = setup_session(db_session, participants=4)

    with pytest.raises(InvalidInput):
        finalize_allocation(db=db_session, session_id=session.id, actor=host)

    db_session.refresh(session)
    assert session.status == "PENDING"
    link = db_session.query(InviteLink).filter(InviteLink.activity_id == activity.id).one()
    assert link.is_valid is True
    assert _evaluations(db_session, session.id) == []


def test_finalize_requires_creator(db_session):
    host, _, _, session = setup_session(db_session, participants=4)
    allocate_groups(db=db_session, session_id=session.id, actor=host)
    outsider = create_user(db_session, "outsider@local.test", "Outsider")

    with pytest.raises(Unauthorized):
        finalize_allocation(db=db_session, session_id=session.id, actor=outsider)

    db_session.refresh(session)
    assert session.status == "PENDING"


def _fail(*args, **kwargs):
    raise OperationalError("INSERT INTO ...", {}, Exception("database is locked"))


def test_finalize_storage_failure_rolls_back_everything(db_session, monkeypatch):
    host, _, activity, session = setup_session(db_session, participants=4, group_size=2)
    allocate_groups(db=db_session, session_id=session.id, actor=host)
    monkeypatch.setattr(allocation, "_insert_evaluations", _fail)

    with pytest.raises(StorageFailure):
        finalize_allocation(db=db_session, session_id=session.id, actor=host)

    db_session.refresh(session)
    assert session.status == "PENDING"
    assert session.version == 2

    link = db_session.query(InviteLink).filter(InviteLink.activity_id == activity.id).one()
    assert link.is_valid is True
    assert link.expired_at is None

    assert [g.finalized_at for g in current_groups(db_session, session.id)] == [None, None]
    assert _evaluations(db_session, session.id) == []
    assert enrollment_closed(db_session, activity.id) is False


def test_allocate_storage_failure_keeps_previous_groups(db_session, monkeypatch):
    host, _, _, session = setup_session(db_session, participants=4, group_size=2)
    first = allocate_groups(db=db_session, session_id=session.id, actor=host)
    before = {g.id: list(g.group_members) for g in first}

    # fails after the old groups are deleted and the new ones flushed
    monkeypatch.setattr(allocation, "log_event", _fail)

    with pytest.raises(StorageFailure):
        allocate_groups(db=db_session, session_id=session.id, actor=host)

    stored = current_groups(db_session, session.id)
    assert {g.id: list(g.group_members) for g in stored} == before
    db_session.refresh(session)
    assert session.version == 2


def test_finalize_inserts_evaluations_in_batches(db_session, monkeypatch):
    host, _, _, session = setup_session(
        db_session, participants=7, group_size=3, evaluation_type="ANY_TO_ANY"
    )
    allocate_groups(db=db_session, session_id=session.id, actor=host)
    monkeypatch.setattr(settings, "EVALUATION_INSERT_BATCH_SIZE", 5)

    batches = []
    real_execute = db_session.execute

    def counting_execute(statement, *args, **kwargs):
        if args and isinstance(args[0], list) and getattr(statement, "table", None) is Evaluation.__table__:
            batches.append(len(args[0]))
        return real_execute(statement, *args, **kwargs)

    monkeypatch.setattr(db_session, "execute", counting_execute)

    _, count = finalize_allocation(db=db_session, session_id=session.id, actor=host)

    assert count == 42
    assert batches == [5] * 8 + [2]
    rows = _evaluations(db_session, session.id)
    assert len(rows) == 42
    assert len({(e.evaluator_id, e.evaluatee_id) for e in rows}) == 42


def test_locked_read_refreshes_stale_session(db_session):
    host, _, _, session = setup_session(db_session, participants=4)
    assert session.version == 1

    # another writer bumps the row without touching this Session's copy
    db_session.execute(
        update(EvaluationSession)
        .where(EvaluationSession.id == session.id)
        .values(version=2)
        .execution_options(synchronize_session=False)
    )
    db_session.commit()

    locked = get_session_or_404(db_session, session.id, for_update=True)
    assert locked.version == 2
    db_session.rollback()

    groups = allocate_groups(db=db_session, session_id=session.id, actor=host, expected_version=2)
    assert len(groups) == 2
