import math
from datetime import datetime, timedelta
from typing import List, Union

from sqlalchemy import delete, insert, select, update

from ..db.db_loader import load_task, to_record, to_row_values
from ..db.models import TaskCreate, TaskModel, TaskUpdate
from ..db.schema import projects, tasks
from ..errors import NotFound, ValidationError
from ..realtime import DELETE, INSERT, UPDATE, ChangeEvent
from .base import BaseRepository, coerce, new_id, require_name, utcnow

# Columns that may be explicitly cleared through a patch
_NULLABLE_FIELDS = {"color", "memo"}

# Bar colour for tasks created without one
DEFAULT_COLORS = {"wash-facility-development": "#f97316"}
FALLBACK_COLOR = "#3b82f6"


def default_color(category: str) -> str:
    return DEFAULT_COLORS.get(category, FALLBACK_COLOR)


def compute_duration(start_date: datetime, end_date: datetime) -> int:
    """Days between start and end, inclusive: ceil((end - start) / 1 day) + 1."""
    return math.ceil((end_date - start_date) / timedelta(days=1)) + 1


def _check_range(start_date: datetime, end_date: datetime) -> None:
    if start_date > end_date:
        raise ValidationError(
            f"start_date {start_date.isoformat()} is after end_date {end_date.isoformat()}"
        )


class TaskRepository(BaseRepository):
    """CRUD over the tasks table, always scoped by project id."""

    def _fetch(self, db, project_id: str, task_id: str) -> TaskModel:
        row = db.execute(
            select(tasks).where(tasks.c.id == task_id, tasks.c.project_id == project_id)
        ).fetchone()
        if not row:
            raise NotFound(f"Task {task_id} not found in project {project_id}")
        return load_task(row)

    def _require_project(self, db, project_id: str) -> None:
        if not db.execute(select(projects.c.id).where(projects.c.id == project_id)).fetchone():
            raise NotFound(f"Project {project_id} not found")

    def list(self, project_id: str) -> List[TaskModel]:
        with self._transaction() as (db, _):
            self._require_project(db, project_id)
            rows = db.execute(
                select(tasks).where(tasks.c.project_id == project_id).order_by(tasks.c.created_at)
            ).fetchall()
        return [load_task(r) for r in rows]

    def get(self, project_id: str, task_id: str) -> TaskModel:
        with self._transaction() as (db, _):
            return self._fetch(db, project_id, task_id)

    def create(self, project_id: str, fields: Union[TaskCreate, dict]) -> TaskModel:
        fields = coerce(TaskCreate, fields)
        name = require_name(fields.name)
        _check_range(fields.start_date, fields.end_date)
        duration = compute_duration(fields.start_date, fields.end_date)
        if fields.duration is not None and fields.duration != duration:
            raise ValidationError(
                f"duration {fields.duration} does not match the date range ({duration} days)"
            )
        now = utcnow()
        values = to_row_values(fields)
        if values.get("color") is None:
            values["color"] = default_color(fields.category)
        values.update(
            id=new_id(),
            project_id=project_id,
            name=name,
            duration=duration,
            created_at=now,
            updated_at=now,
        )
        with self._transaction() as (db, events):
            self._require_project(db, project_id)
            db.execute(insert(tasks).values(**values))
            task = self._fetch(db, project_id, values["id"])
            events.append(ChangeEvent("tasks", INSERT, new=to_record(task)))
        return task

    def _write(self, db, events, current: TaskModel, values: dict) -> TaskModel:
        values["updated_at"] = utcnow()
        db.execute(update(tasks).where(tasks.c.id == current.id).values(**values))
        task = self._fetch(db, current.project_id, current.id)
        events.append(ChangeEvent("tasks", UPDATE, new=to_record(task), old=to_record(current)))
        return task

    def update(self, project_id: str, task_id: str, patch: Union[TaskUpdate, dict]) -> TaskModel:
        """Patch only the supplied fields; dates are validated against the merged result."""
        patch = coerce(TaskUpdate, patch)
        changes = patch.model_dump(exclude_unset=True)
        for key, value in changes.items():
            if value is None and key not in _NULLABLE_FIELDS:
                raise ValidationError(f"{key} cannot be null")
        if "name" in changes:
            changes["name"] = require_name(changes["name"])
        with self._transaction() as (db, events):
            current = self._fetch(db, project_id, task_id)
            start_date = changes.get("start_date", current.start_date)
            end_date = changes.get("end_date", current.end_date)
            _check_range(start_date, end_date)
            if "start_date" in changes or "end_date" in changes:
                changes["duration"] = compute_duration(start_date, end_date)
            return self._write(db, events, current, changes)

    def delete(self, project_id: str, task_id: str) -> None:
        with self._transaction() as (db, events):
            current = self._fetch(db, project_id, task_id)
            db.execute(delete(tasks).where(tasks.c.id == task_id))
            events.append(ChangeEvent("tasks", DELETE, old=to_record(current)))

    def delete_all(self, project_id: str) -> int:
        """Remove every task of the project; returns how many were removed."""
        with self._transaction() as (db, events):
            self._require_project(db, project_id)
            rows = db.execute(select(tasks).where(tasks.c.project_id == project_id)).fetchall()
            db.execute(delete(tasks).where(tasks.c.project_id == project_id))
            for row in rows:
                events.append(ChangeEvent("tasks", DELETE, old=to_record(load_task(row))))
        return len(rows)

    def set_hidden(self, project_id: str, task_id: str, is_hidden: bool) -> TaskModel:
        with self._transaction() as (db, events):
            current = self._fetch(db, project_id, task_id)
            return self._write(db, events, current, {"is_hidden": bool(is_hidden)})

    def toggle_hidden(self, project_id: str, task_id: str) -> TaskModel:
        with self._transaction() as (db, events):
            current = self._fetch(db, project_id, task_id)
            return self._write(db, events, current, {"is_hidden": not current.is_hidden})

    def set_sub_task_item_completed(self, project_id: str, task_id: str, category_id: str,
                                    item_id: str, completed: bool) -> TaskModel:
        """Flip one checklist item and write the whole sub_tasks tree back."""
        with self._transaction() as (db, events):
            current = self._fetch(db, project_id, task_id)
            tree = [c.model_copy(deep=True) for c in current.sub_tasks]
            category = next((c for c in tree if c.id == category_id), None)
            if category is None:
                raise NotFound(f"Sub-task category {category_id} not found in task {task_id}")
            item = next((i for i in category.items if i.id == item_id), None)
            if item is None:
                raise NotFound(f"Sub-task item {item_id} not found in category {category_id}")
            item.completed = bool(completed)
            return self._write(db, events, current, {"sub_tasks": [c.model_dump() for c in tree]})
