"""
Operations that span both repositories: moving the opening day (and every task
with it), regenerating the template schedule, and the "at least one project"
bootstrap.
"""
import logging
from datetime import date
from functools import partial
from typing import List, Optional, Tuple

import anyio

try:
    from backend import config
except ModuleNotFoundError:
    import config

try:
    from tools.schedule import generate_schedule, reanchor_tasks
except ModuleNotFoundError:
    from backend.tools.schedule import generate_schedule, reanchor_tasks

from .bulk import run_batch
from .db.models import ProjectModel, TaskModel, TaskUpdate
from .errors import ValidationError
from .store import Store

logger = logging.getLogger(__name__)


def require_confirmation(confirm: bool, what: str) -> None:
    if not confirm:
        raise ValidationError(f"{what} deletes every task of the project and cannot be undone; confirmation required")


async def change_open_date(store: Store, project_id: str, new_open_date: Optional[date],
                           retries: Optional[int] = None) -> Tuple[ProjectModel, List[TaskModel]]:
    """Persist a new opening day, then shift every task of the project by the same delta.

    The open date is written first: a second call for the same transition sees
    an unchanged date and shifts nothing. Returns the project and the shifted tasks.
    """
    previous = await anyio.to_thread.run_sync(store.projects.get, project_id)
    project = await anyio.to_thread.run_sync(store.projects.set_open_date, project_id, new_open_date)
    old_open_date, new_open_date = previous.open_date, project.open_date
    if old_open_date is None or new_open_date is None or old_open_date == new_open_date:
        return project, []

    current = await anyio.to_thread.run_sync(store.tasks.list, project_id)
    shifted = reanchor_tasks(old_open_date, new_open_date, current)
    if not shifted:
        return project, []
    logger.info("re-anchoring %d task(s) of project %s: %s -> %s",
                len(shifted), project_id, old_open_date, new_open_date)
    items = [
        (t.id, partial(store.tasks.update, project_id, t.id,
                       TaskUpdate(start_date=t.start_date, end_date=t.end_date)))
        for t in shifted
    ]
    return project, await run_batch("re-anchor tasks", items, retries=retries)


async def regenerate_schedule(store: Store, project_id: str, confirm: bool = False,
                              retries: Optional[int] = None) -> List[TaskModel]:
    """Replace every task of the project with the template schedule."""
    require_confirmation(confirm, "Generating the schedule")
    project = await anyio.to_thread.run_sync(store.projects.get, project_id)
    if project.open_date is None:
        raise ValidationError(f"Project {project_id} has no open date to schedule against")

    drafts = generate_schedule(project.open_date, project.use_well_water)
    removed = await anyio.to_thread.run_sync(store.tasks.delete_all, project_id)
    logger.info("generating %d template task(s) for project %s (removed %d)", len(drafts), project_id, removed)
    items = [(d.name, partial(store.tasks.create, project_id, d)) for d in drafts]
    return await run_batch("generate schedule", items, retries=retries)


def clear_tasks(store: Store, project_id: str, confirm: bool = False) -> int:
    require_confirmation(confirm, "Deleting all tasks")
    return store.tasks.delete_all(project_id)


def ensure_project(store: Store) -> ProjectModel:
    """Return the oldest project, creating a default one when there is none."""
    existing = store.projects.list()
    if existing:
        return existing[-1]
    logger.info("no projects yet; creating the default project")
    return store.projects.create(f"{config.DEFAULT_PROJECT_NAME} 1")
