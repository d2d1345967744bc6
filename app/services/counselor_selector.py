"""
app/services/counselor_selector.py — Pick one counselor from an eligible pool.

The strategy is a property of the team:

  round_robin → persisted team counter, advanced atomically by the repository
  least_load  → smallest current-day load, first in pool order on ties
  weighted    → random draw proportional to workload_weight × spare capacity

Unknown or unset strategies fall back to the first counselor in pool order.
"""

import logging
import random
from typing import Callable, Optional, Sequence

from app.db.models import LoadStrategy
from app.db.repository import CounselorCandidate

logger = logging.getLogger(__name__)


def select_by_round_robin(
    counselors: Sequence[CounselorCandidate],
    next_index: Callable[[int], int],
) -> CounselorCandidate:
    """
    Use the team's round-robin counter as an index into the current pool.

    `next_index(pool_size)` must advance the persisted counter atomically and
    return the selected index. The pool may have changed since the previous
    call, so the index is a position in this snapshot, not a stable cursor.
    """
    index = next_index(len(counselors))
    return counselors[index % len(counselors)]


def select_by_least_load(counselors: Sequence[CounselorCandidate]) -> CounselorCandidate:
    return min(counselors, key=lambda c: c.current_daily_load)


def counselor_weight(counselor: CounselorCandidate) -> float:
    """workload_weight × max(spare capacity, 1); unset capacity counts as 1."""
    base_weight = counselor.workload_weight if counselor.workload_weight is not None else 1.0
    if counselor.capacity_daily is None:
        spare = 1
    else:
        spare = max(counselor.capacity_daily - counselor.current_daily_load, 1)
    return base_weight * spare


def select_by_weighted(
    counselors: Sequence[CounselorCandidate],
    rng: Optional[random.Random] = None,
) -> CounselorCandidate:
    rng = rng or random
    weights = [(c, counselor_weight(c)) for c in counselors]
    total_weight = sum(w for _, w in weights if w > 0)

    if total_weight > 0:
        remaining = rng.random() * total_weight
        for counselor, weight in weights:
            if weight <= 0:
                continue
            remaining -= weight
            if remaining <= 0:
                return counselor

    # floating-point leftovers (or no positive weight at all)
    for counselor, weight in weights:
        if weight > 0:
            return counselor
    return counselors[0]


def select_counselor(
    counselors: Sequence[CounselorCandidate],
    strategy: Optional[str],
    next_round_robin_index: Callable[[int], int],
    rng: Optional[random.Random] = None,
) -> CounselorCandidate:
    """
    Pick one counselor according to the team's load strategy.

    Args:
        counselors:             Eligible pool, in deterministic (name) order.
        strategy:               Team load_strategy value.
        next_round_robin_index: Atomic counter advance, used by round_robin only.
        rng:                    Random source for the weighted strategy.

    Raises:
        ValueError: If the pool is empty.
    """
    if not counselors:
        raise ValueError("Cannot select from an empty counselor pool")

    if strategy == LoadStrategy.ROUND_ROBIN.value:
        selected = select_by_round_robin(counselors, next_round_robin_index)
    elif strategy == LoadStrategy.LEAST_LOAD.value:
        selected = select_by_least_load(counselors)
    elif strategy == LoadStrategy.WEIGHTED.value:
        selected = select_by_weighted(counselors, rng)
    else:
        selected = counselors[0]

    logger.debug(
        "Strategy %s picked counselor %d from a pool of %d",
        strategy, selected.user_id, len(counselors),
    )
    return selected
