from .generator import (
    OPEN_DAY_TASK_NAME,
    SCHEDULE_TEMPLATE,
    WELL_TASK_NAME,
    TemplateTask,
    generate_schedule,
    template_entries,
)
from .reanchor import (
    open_date_delta,
    reanchor_tasks,
    shift_task,
    shift_tasks,
)
from .formatting import (
    checklist_progress,
    days_from_open_label,
    default_view_start,
    format_duration,
    group_by_category,
)

__all__ = [
    "OPEN_DAY_TASK_NAME",
    "SCHEDULE_TEMPLATE",
    "WELL_TASK_NAME",
    "TemplateTask",
    "generate_schedule",
    "template_entries",
    "open_date_delta",
    "reanchor_tasks",
    "shift_task",
    "shift_tasks",
    "checklist_progress",
    "days_from_open_label",
    "default_view_start",
    "format_duration",
    "group_by_category",
]
