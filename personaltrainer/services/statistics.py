from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from personaltrainer.models import Training


@dataclass(frozen=True)
class ActivityMinutes:
    activity: str
    minutes: int


def minutes_by_activity(trainings: Iterable[Training]) -> list[ActivityMinutes]:
    """Sum training minutes per activity, in order of first appearance."""
    totals: dict[str, int] = {}
    for training in trainings:
        totals[training.activity] = totals.get(training.activity, 0) + int(training.duration or 0)
    return [ActivityMinutes(activity, minutes) for activity, minutes in totals.items()]


def total_minutes(stats: Iterable[ActivityMinutes]) -> int:
    return sum(s.minutes for s in stats)
