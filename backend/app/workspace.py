"""
Application session over the store: an in-memory mirror of the projects and of
the active project's tasks, kept fresh by the change feed, plus the save-status
indicator the presentation layer observes.

The mirror only ever holds confirmed store state, with one exception: an
optimistic task move is applied locally before it is persisted. The
authoritative row (from the call's result or its change event) replaces the
speculative value as soon as it arrives; on failure the previous value comes back.
"""
import logging
import threading
from contextlib import contextmanager
from datetime import date, datetime
from typing import Callable, Dict, List, Optional, Union

from . import planner
from .db.db_loader import load_project, load_task
from .db.models import ProjectModel, TaskCreate, TaskModel, TaskUpdate
from .errors import NotFound, ValidationError
from .realtime import DELETE, ChangeEvent, Subscription
from .repositories.tasks import compute_duration
from .store import Store

logger = logging.getLogger(__name__)

IDLE = "idle"
SAVING = "saving"
SAVED = "saved"
ERROR = "error"


class SaveStatus:
    """Observable tri-state outcome of the latest store call (idle before the first one)."""

    def __init__(self):
        self._lock = threading.Lock()
        self.state = IDLE
        self.last_saved: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self._listeners: List[Callable[["SaveStatus"], None]] = []

    def subscribe(self, listener: Callable[["SaveStatus"], None]) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)
        return unsubscribe

    def _set(self, state: str, error: Optional[str] = None) -> None:
        with self._lock:
            self.state = state
            if state == SAVED:
                self.last_saved = datetime.now()
                self.last_error = None
            elif state == ERROR:
                self.last_error = error
            listeners = list(self._listeners)
        for listener in listeners:
            listener(self)

    def set_saving(self) -> None:
        self._set(SAVING)

    def set_saved(self) -> None:
        self._set(SAVED)

    def set_error(self, error: Exception) -> None:
        self._set(ERROR, str(error))

    @contextmanager
    def track(self):
        self.set_saving()
        try:
            yield
        except Exception as e:
            self.set_error(e)
            raise
        self.set_saved()


class Workspace:
    def __init__(self, store: Store, status: Optional[SaveStatus] = None):
        self.store = store
        self.status = status or SaveStatus()
        self._lock = threading.RLock()
        self._projects: Dict[str, ProjectModel] = {}
        self._tasks: Dict[str, TaskModel] = {}
        self._current_project_id: Optional[str] = None
        self._project_sub: Optional[Subscription] = None
        self._task_sub: Optional[Subscription] = None

    # ------------------------------
    # Lifecycle
    # ------------------------------

    def open(self) -> "Workspace":
        """Load the project list and start listening for project changes."""
        if self._project_sub is None:
            self._project_sub = self.store.feed.subscribe("projects", self._on_project_event)
        with self.status.track():
            projects = self.store.projects.list()
        with self._lock:
            self._projects = {}
            for p in projects:
                self._apply_project(p)
        return self

    def close(self) -> None:
        """Dispose of every subscription and forget the mirrored state."""
        self._dispose_task_subscription()
        if self._project_sub is not None:
            self._project_sub.unsubscribe()
            self._project_sub = None
        with self._lock:
            self._projects = {}
            self._tasks = {}
            self._current_project_id = None

    def __enter__(self):
        return self.open()

    def __exit__(self, *exc):
        self.close()

    # ------------------------------
    # Mirror access
    # ------------------------------

    @property
    def projects(self) -> List[ProjectModel]:
        with self._lock:
            return sorted(self._projects.values(), key=lambda p: p.created_at, reverse=True)

    @property
    def current_project_id(self) -> Optional[str]:
        return self._current_project_id

    @property
    def current_project(self) -> Optional[ProjectModel]:
        with self._lock:
            if self._current_project_id is None:
                return None
            return self._projects.get(self._current_project_id)

    @property
    def tasks(self) -> List[TaskModel]:
        with self._lock:
            return sorted(self._tasks.values(), key=lambda t: t.created_at)

    def task(self, task_id: str) -> Optional[TaskModel]:
        with self._lock:
            return self._tasks.get(task_id)

    # ------------------------------
    # Change feed handling
    # ------------------------------

    def _apply_project(self, project: ProjectModel) -> None:
        existing = self._projects.get(project.id)
        if existing is None or project.updated_at >= existing.updated_at:
            self._projects[project.id] = project

    def _apply_task(self, task: TaskModel) -> None:
        # Confirmed rows always carry a newer updated_at than a speculative local copy
        if task.project_id != self._current_project_id:
            return
        existing = self._tasks.get(task.id)
        if existing is None or task.updated_at >= existing.updated_at:
            self._tasks[task.id] = task

    def _on_project_event(self, event: ChangeEvent) -> None:
        with self._lock:
            if event.type == DELETE:
                project_id = event.record.get("id")
                self._projects.pop(project_id, None)
                if project_id == self._current_project_id:
                    self._current_project_id = None
                    self._tasks = {}
                    drop_tasks = True
                else:
                    drop_tasks = False
            else:
                self._apply_project(load_project(event.new))
                drop_tasks = False
        if drop_tasks:
            self._dispose_task_subscription()

    def _on_task_event(self, project_id: str, event: ChangeEvent) -> None:
        with self._lock:
            # A subscription for a project that is no longer selected must not leak into the mirror
            if project_id != self._current_project_id or event.project_id != project_id:
                logger.debug("dropping stale task event for project %s", event.project_id)
                return
            if event.type == DELETE:
                self._tasks.pop(event.record.get("id"), None)
            else:
                self._apply_task(load_task(event.new))

    def _dispose_task_subscription(self) -> None:
        if self._task_sub is not None:
            self._task_sub.unsubscribe()
            self._task_sub = None

    # ------------------------------
    # Projects
    # ------------------------------

    def select_project(self, project_id: str) -> ProjectModel:
        """Make a project active: the old task subscription goes before the new one starts."""
        self._dispose_task_subscription()
        with self._lock:
            self._current_project_id = project_id
            self._tasks = {}
        self._task_sub = self.store.feed.subscribe(
            "tasks", lambda event: self._on_task_event(project_id, event), project_id=project_id
        )
        try:
            with self.status.track():
                project = self.store.projects.get(project_id)
                tasks = self.store.tasks.list(project_id)
        except NotFound:
            self._dispose_task_subscription()
            with self._lock:
                self._current_project_id = None
            raise
        with self._lock:
            self._apply_project(project)
            for t in tasks:
                self._apply_task(t)
        return project

    def _require_current(self) -> str:
        if self._current_project_id is None:
            raise ValidationError("No project selected")
        return self._current_project_id

    def _confirmed_project(self, project: ProjectModel) -> ProjectModel:
        with self._lock:
            self._apply_project(project)
        return project

    def ensure_project(self) -> ProjectModel:
        with self.status.track():
            project = planner.ensure_project(self.store)
        self._confirmed_project(project)
        return self.select_project(project.id)

    def create_project(self, name: str, use_well_water: bool = False,
                       description: Optional[str] = None) -> ProjectModel:
        """Create a project and make it the current one."""
        with self.status.track():
            project = self.store.projects.create(name, use_well_water=use_well_water, description=description)
        self._confirmed_project(project)
        return self.select_project(project.id)

    def rename_project(self, name: str, project_id: Optional[str] = None) -> ProjectModel:
        with self.status.track():
            project = self.store.projects.rename(project_id or self._require_current(), name)
        return self._confirmed_project(project)

    def set_project_description(self, description: Optional[str], project_id: Optional[str] = None) -> ProjectModel:
        with self.status.track():
            project = self.store.projects.set_description(project_id or self._require_current(), description)
        return self._confirmed_project(project)

    def set_use_well_water(self, use_well_water: bool, project_id: Optional[str] = None) -> ProjectModel:
        with self.status.track():
            project = self.store.projects.set_use_well_water(project_id or self._require_current(), use_well_water)
        return self._confirmed_project(project)

    async def change_open_date(self, new_open_date: Optional[date]) -> ProjectModel:
        """Move the current project's opening day; its tasks follow by the same delta."""
        project_id = self._require_current()
        with self.status.track():
            project, shifted = await planner.change_open_date(self.store, project_id, new_open_date)
        with self._lock:
            self._apply_project(project)
            for t in shifted:
                self._apply_task(t)
        return project

    def delete_project(self, project_id: Optional[str] = None) -> None:
        project_id = project_id or self._require_current()
        with self.status.track():
            self.store.projects.delete(project_id)
        with self._lock:
            self._projects.pop(project_id, None)
            was_current = project_id == self._current_project_id
            if was_current:
                self._current_project_id = None
                self._tasks = {}
        if was_current:
            self._dispose_task_subscription()

    # ------------------------------
    # Tasks of the current project
    # ------------------------------

    def _confirmed_task(self, task: TaskModel) -> TaskModel:
        with self._lock:
            self._apply_task(task)
        return task

    def add_task(self, fields: Union[TaskCreate, dict]) -> TaskModel:
        with self.status.track():
            task = self.store.tasks.create(self._require_current(), fields)
        return self._confirmed_task(task)

    def update_task(self, task_id: str, patch: Union[TaskUpdate, dict]) -> TaskModel:
        with self.status.track():
            task = self.store.tasks.update(self._require_current(), task_id, patch)
        return self._confirmed_task(task)

    def delete_task(self, task_id: str) -> None:
        with self.status.track():
            self.store.tasks.delete(self._require_current(), task_id)
        with self._lock:
            self._tasks.pop(task_id, None)

    def delete_all_tasks(self, confirm: bool = False) -> int:
        project_id = self._require_current()
        with self.status.track():
            removed = planner.clear_tasks(self.store, project_id, confirm=confirm)
        with self._lock:
            self._tasks = {}
        return removed

    def set_task_hidden(self, task_id: str, is_hidden: bool) -> TaskModel:
        with self.status.track():
            task = self.store.tasks.set_hidden(self._require_current(), task_id, is_hidden)
        return self._confirmed_task(task)

    def toggle_task_hidden(self, task_id: str) -> TaskModel:
        with self.status.track():
            task = self.store.tasks.toggle_hidden(self._require_current(), task_id)
        return self._confirmed_task(task)

    def set_sub_task_item_completed(self, task_id: str, category_id: str, item_id: str,
                                    completed: bool) -> TaskModel:
        with self.status.track():
            task = self.store.tasks.set_sub_task_item_completed(
                self._require_current(), task_id, category_id, item_id, completed
            )
        return self._confirmed_task(task)

    async def generate_schedule(self, confirm: bool = False) -> List[TaskModel]:
        """Replace the current project's tasks with the template schedule."""
        project_id = self._require_current()
        with self.status.track():
            generated = await planner.regenerate_schedule(self.store, project_id, confirm=confirm)
        with self._lock:
            for t in generated:
                self._apply_task(t)
        return generated

    def move_task(self, task_id: str, start_date: datetime, end_date: datetime) -> TaskModel:
        """Optimistic date edit: apply locally, persist, then let the store's answer win."""
        project_id = self._require_current()
        with self._lock:
            before = self._tasks.get(task_id)
            if before is None:
                raise NotFound(f"Task {task_id} not found in project {project_id}")
            speculative = before.model_copy(update={
                "start_date": start_date,
                "end_date": end_date,
                "duration": compute_duration(start_date, end_date) if start_date <= end_date else before.duration,
            })
            self._tasks[task_id] = speculative
        try:
            with self.status.track():
                confirmed = self.store.tasks.update(
                    project_id, task_id, TaskUpdate(start_date=start_date, end_date=end_date)
                )
        except Exception:
            with self._lock:
                if self._tasks.get(task_id) is speculative:
                    self._tasks[task_id] = before
            raise
        return self._confirmed_task(confirmed)
