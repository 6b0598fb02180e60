from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import delete, insert, select, update

from ..db.db_loader import load_project, to_record
from ..db.models import ProjectModel
from ..db.schema import projects, tasks
from ..errors import NotFound, ValidationError
from ..realtime import DELETE, INSERT, UPDATE, ChangeEvent
from .base import BaseRepository, new_id, require_name, utcnow

_EDITABLE_FIELDS = {"name", "description", "use_well_water"}


class ProjectRepository(BaseRepository):
    """CRUD over the projects table; deleting a project takes its tasks with it."""

    def _fetch(self, db, project_id: str) -> ProjectModel:
        row = db.execute(select(projects).where(projects.c.id == project_id)).fetchone()
        if not row:
            raise NotFound(f"Project {project_id} not found")
        return load_project(row)

    def list(self) -> List[ProjectModel]:
        """All projects, newest first."""
        with self._transaction() as (db, _):
            rows = db.execute(select(projects).order_by(projects.c.created_at.desc())).fetchall()
        return [load_project(r) for r in rows]

    def get(self, project_id: str) -> ProjectModel:
        with self._transaction() as (db, _):
            return self._fetch(db, project_id)

    def create(self, name: str, use_well_water: bool = False, description: Optional[str] = None,
               open_date: Optional[date] = None) -> ProjectModel:
        name = require_name(name)
        now = utcnow()
        with self._transaction() as (db, events):
            project_id = new_id()
            db.execute(insert(projects).values(
                id=project_id,
                name=name,
                description=description,
                open_date=_as_date(open_date),
                use_well_water=bool(use_well_water),
                created_at=now,
                updated_at=now,
            ))
            project = self._fetch(db, project_id)
            events.append(ChangeEvent("projects", INSERT, new=to_record(project)))
        return project

    def _update(self, project_id: str, **values) -> ProjectModel:
        with self._transaction() as (db, events):
            old = self._fetch(db, project_id)
            values["updated_at"] = utcnow()
            db.execute(update(projects).where(projects.c.id == project_id).values(**values))
            project = self._fetch(db, project_id)
            events.append(ChangeEvent("projects", UPDATE, new=to_record(project), old=to_record(old)))
        return project

    def update(self, project_id: str, **fields) -> ProjectModel:
        """Write name, description and/or use_well_water in one transaction.

        The open date is not accepted here; moving it goes through the planner.
        """
        unknown = set(fields) - _EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update project field(s): {', '.join(sorted(unknown))}")
        if not fields:
            raise ValidationError("No project fields to update")
        if "name" in fields:
            fields["name"] = require_name(fields["name"])
        if "use_well_water" in fields:
            fields["use_well_water"] = bool(fields["use_well_water"])
        return self._update(project_id, **fields)

    def rename(self, project_id: str, name: str) -> ProjectModel:
        return self._update(project_id, name=require_name(name))

    def set_description(self, project_id: str, description: Optional[str]) -> ProjectModel:
        return self._update(project_id, description=description)

    def set_open_date(self, project_id: str, open_date: Optional[date]) -> ProjectModel:
        """Persist the opening day only; re-anchoring the tasks is the caller's job."""
        return self._update(project_id, open_date=_as_date(open_date))

    def set_use_well_water(self, project_id: str, use_well_water: bool) -> ProjectModel:
        return self._update(project_id, use_well_water=bool(use_well_water))

    def delete(self, project_id: str) -> None:
        with self._transaction() as (db, events):
            project = self._fetch(db, project_id)
            task_rows = db.execute(
                select(tasks.c.id, tasks.c.project_id).where(tasks.c.project_id == project_id)
            ).fetchall()
            db.execute(delete(tasks).where(tasks.c.project_id == project_id))
            db.execute(delete(projects).where(projects.c.id == project_id))
            for row in task_rows:
                events.append(ChangeEvent("tasks", DELETE, old={"id": row.id, "project_id": row.project_id}))
            events.append(ChangeEvent("projects", DELETE, old=to_record(project)))


def _as_date(value) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    return value
