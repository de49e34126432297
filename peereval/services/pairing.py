"""
Evaluation pair generation.

Given the finalized groups of a session (in persisted order) and the session's
evaluation type, produce every directed evaluator -> evaluatee assignment.

  WITHIN_GROUP    every ordered pair of distinct members inside each group
  GROUP_TO_GROUP  groups form a ring; members of group k evaluate every
                  member of group k+1 (mod N)
  ANY_TO_ANY      every ordered pair of distinct participants, ignoring groups

A participant never evaluates themselves, whatever the topology.
"""
import logging
from itertools import permutations, product
from typing import Hashable, Iterable, Iterator, NamedTuple, Sequence

from peereval.core.errors import InvalidInput

logger = logging.getLogger(__name__)

WITHIN_GROUP = "WITHIN_GROUP"
GROUP_TO_GROUP = "GROUP_TO_GROUP"
ANY_TO_ANY = "ANY_TO_ANY"

EVALUATION_TYPES = (WITHIN_GROUP, GROUP_TO_GROUP, ANY_TO_ANY)


class GroupMembers(NamedTuple):
    group_id: Hashable
    members: Sequence[Hashable]


class EvaluationPair(NamedTuple):
    evaluator_id: Hashable
    evaluatee_id: Hashable
    group_id: Hashable | None  # None when the pair crosses group boundaries


def _within_group(groups: Sequence[GroupMembers]) -> Iterator[EvaluationPair]:
    for group in groups:
        for evaluator, evaluatee in permutations(group.members, 2):
            if evaluator != evaluatee:
                yield EvaluationPair(evaluator, evaluatee, group.group_id)


def _group_to_group(groups: Sequence[GroupMembers]) -> Iterator[EvaluationPair]:
    total = len(groups)
    if total == 1:
        # a ring of one is the group facing itself
        logger.warning(
            "GROUP_TO_GROUP with a single group; falling back to WITHIN_GROUP pairs"
        )
        yield from _within_group(groups)
        return

    for k, evaluator_group in enumerate(groups):
        evaluatee_group = groups[(k + 1) % total]
        for evaluator, evaluatee in product(evaluator_group.members, evaluatee_group.members):
            if evaluator != evaluatee:
                yield EvaluationPair(evaluator, evaluatee, evaluator_group.group_id)


def _any_to_any(groups: Sequence[GroupMembers]) -> Iterator[EvaluationPair]:
    pool = [member for group in groups for member in group.members]
    for evaluator, evaluatee in permutations(pool, 2):
        if evaluator != evaluatee:
            yield EvaluationPair(evaluator, evaluatee, None)


_GENERATORS = {
    WITHIN_GROUP: _within_group,
    GROUP_TO_GROUP: _group_to_group,
    ANY_TO_ANY: _any_to_any,
}


def generate_pairs(groups: Iterable[GroupMembers], evaluation_type: str) -> list[EvaluationPair]:
    try:
        generator = _GENERATORS[evaluation_type]
    except KeyError:
        raise InvalidInput(f"Unknown evaluation type: {evaluation_type!r}") from None

    return list(generator(list(groups)))
