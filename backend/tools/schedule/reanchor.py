from datetime import date, datetime, time, timedelta
from typing import List, Sequence, TypeVar

from pydantic import BaseModel

T = TypeVar("T", bound=BaseModel)


def _midnight(d) -> datetime:
    if isinstance(d, datetime):
        return d
    return datetime.combine(d, time.min)


def open_date_delta(old_open_date: date, new_open_date: date) -> timedelta:
    """Constant shift between two opening days."""
    return _midnight(new_open_date) - _midnight(old_open_date)


def shift_task(task: T, delta: timedelta) -> T:
    """Move start and end by the same delta; every other field is left alone."""
    return task.model_copy(update={
        "start_date": task.start_date + delta,
        "end_date": task.end_date + delta,
    })


def shift_tasks(tasks: Sequence[T], delta: timedelta) -> List[T]:
    return [shift_task(t, delta) for t in tasks]


def reanchor_tasks(old_open_date: date, new_open_date: date, tasks: Sequence[T]) -> List[T]:
    """Re-anchor a whole task set from the old opening day to the new one.

    Applies uniformly, hidden tasks and the opening-day milestone included.
    Durations are preserved exactly.
    """
    return shift_tasks(tasks, open_date_delta(old_open_date, new_open_date))
