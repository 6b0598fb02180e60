import math
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional

ONE_DAY = timedelta(days=1)


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def _as_date(value) -> date:
    return value.date() if isinstance(value, datetime) else value


def format_duration(start: datetime, end: datetime) -> str:
    """Human label for a task span: 日間 under a week, then 週間, ヶ月 and 年."""
    days = int((end - start) / ONE_DAY) + 1
    if days <= 0:
        return ""
    if days < 7:
        return f"{days}日間"
    if days < 30:
        return f"{_round_half_up(days / 7)}週間"
    if days < 365:
        if days % 30 > 15:
            return f"{days // 30}ヶ月半"
        return f"{_round_half_up(days / 30)}ヶ月"
    return f"{_round_half_up(days / 365)}年"


def days_from_open_label(day, open_date: Optional[date]) -> Optional[str]:
    """Position of a day relative to the opening day, e.g. "OPEN日の120日前"."""
    if open_date is None:
        return None
    diff = _round_half_up((datetime.combine(_as_date(day), datetime.min.time())
                           - datetime.combine(_as_date(open_date), datetime.min.time())) / ONE_DAY)
    if diff == 0:
        return "OPEN日"
    if diff < 0:
        return f"OPEN日の{abs(diff)}日前"
    return f"OPEN日の{diff}日後"


def group_by_category(tasks: Iterable, include_hidden: bool = False) -> Dict[str, List]:
    """Tasks grouped by category, in order of first appearance."""
    grouped: Dict[str, List] = {}
    for task in tasks:
        if task.is_hidden and not include_hidden:
            continue
        grouped.setdefault(task.category, []).append(task)
    return grouped


def checklist_progress(task) -> Optional[dict]:
    """Completion percentages of the sub-task checklist.

    Returns {"categories": {category_id: pct | None}, "overall": pct}, or None
    when the task has no checklist items at all.
    """
    per_category: Dict[str, Optional[int]] = {}
    done_total = 0
    item_total = 0
    for category in task.sub_tasks:
        done = sum(1 for item in category.items if item.completed)
        count = len(category.items)
        per_category[category.id] = _round_half_up(done / count * 100) if count else None
        done_total += done
        item_total += count
    if item_total == 0:
        return None
    return {"categories": per_category, "overall": _round_half_up(done_total / item_total * 100)}


def default_view_start(open_date: Optional[date], today: date) -> date:
    """First day of the chart window: four months before the opening day, else today."""
    if open_date is None:
        return today
    open_date = _as_date(open_date)
    month_index = open_date.month - 1 - 4
    year = open_date.year + month_index // 12
    month = month_index % 12 + 1
    # A day past the target month's end rolls into the next month (06-30 -> 03-02)
    return date(year, month, 1) + (open_date.day - 1) * ONE_DAY
