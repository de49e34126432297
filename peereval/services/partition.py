import random
from typing import Sequence, TypeVar

from peereval.core.errors import InvalidInput

T = TypeVar("T")


def group_name(position: int) -> str:
    """Positional label for the 1-indexed group at ``position``."""
    return f"Group {position}"


def partition(
    participant_ids: Sequence[T],
    group_size: int,
    rng: random.Random | None = None,
) -> list[list[T]]:
    """
    Shuffle ``participant_ids`` and slice them into consecutive chunks of
    ``group_size``. The last chunk carries the remainder and may be short.

    Pass a seeded ``rng`` for reproducible groupings; by default every call
    draws a fresh shuffle.
    """
    if isinstance(group_size, bool) or not isinstance(group_size, int) or group_size < 1:
        raise InvalidInput(f"group_size must be a positive integer, got {group_size!r}")

    rng = rng or random.Random()
    shuffled = list(participant_ids)
    rng.shuffle(shuffled)

    return [shuffled[i:i + group_size] for i in range(0, len(shuffled), group_size)]
