"""Incremental sync planning.

Decides, from the store snapshot alone, which requested identifiers need work.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping

from unitsync.core.constants import DEFAULT_MAX_RETRIES
from unitsync.core.models import Invalid, Outcome, Pending, Present


@dataclass
class SyncPlan:
    """Disjoint classification of the requested identifiers.

    skip = present + invalid + exhausted. Every requested identifier appears in
    exactly one of skip, retry or new.
    """

    present: List[str] = field(default_factory=list)
    invalid: List[str] = field(default_factory=list)
    exhausted: List[str] = field(default_factory=list)
    retry: List[str] = field(default_factory=list)
    new: List[str] = field(default_factory=list)

    @property
    def skip(self) -> List[str]:
        return sorted(self.present + self.invalid + self.exhausted)

    @property
    def work_queue(self) -> List[str]:
        """Identifiers to hand to the scheduler, retries first."""
        return self.retry + self.new

    @property
    def total(self) -> int:
        return len(self.present) + len(self.invalid) + len(self.exhausted) + len(self.retry) + len(self.new)

    def to_dict(self) -> Dict[str, List[str]]:
        return {
            "skip": self.skip,
            "present": list(self.present),
            "invalid": list(self.invalid),
            "exhausted": list(self.exhausted),
            "retry": list(self.retry),
            "new": list(self.new),
        }


def plan_sync(
    requested: Iterable[str],
    snapshot: Mapping[str, Outcome],
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> SyncPlan:
    """Classify requested identifiers against the store snapshot.

    Args:
        requested: Identifiers wanted in this run (duplicates ignored)
        snapshot: Current outcome per identifier, as returned by OutcomeStore.snapshot()
        max_retries: Pending identifiers with attempts >= this are abandoned

    Returns:
        SyncPlan with identifiers in sorted order within each list
    """
    plan = SyncPlan()

    for code in sorted(set(requested)):
        outcome = snapshot.get(code)
        if isinstance(outcome, Present):
            plan.present.append(code)
        elif isinstance(outcome, Invalid):
            plan.invalid.append(code)
        elif isinstance(outcome, Pending):
            if outcome.attempts < max_retries:
                plan.retry.append(code)
            else:
                plan.exhausted.append(code)
        else:
            plan.new.append(code)

    return plan
