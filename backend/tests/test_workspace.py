"""
Tests for app/workspace.py: the mirrored session state, change-feed wiring,
save status and optimistic task moves.
"""
from datetime import date, datetime, timedelta
from unittest.mock import patch

import pytest

from backend.app.db.db_loader import to_record
from backend.app.errors import NotFound, StoreUnavailable, ValidationError
from backend.app.realtime import INSERT, ChangeEvent
from backend.app.workspace import ERROR, IDLE, SAVED, SaveStatus, Workspace
from backend.tools.schedule import OPEN_DAY_TASK_NAME


@pytest.fixture
def workspace(store):
    ws = Workspace(store).open()
    yield ws
    ws.close()


class TestSaveStatus:
    def test_tracks_outcome(self):
        status = SaveStatus()
        seen = []
        status.subscribe(lambda s: seen.append(s.state))
        assert status.state == IDLE

        with status.track():
            pass
        assert status.state == SAVED
        assert status.last_saved is not None

        with pytest.raises(RuntimeError):
            with status.track():
                raise RuntimeError("lost connection")
        assert status.state == ERROR
        assert status.last_error == "lost connection"
        assert seen == ["saving", "saved", "saving", "error"]

    def test_unsubscribe(self):
        status = SaveStatus()
        seen = []
        unsubscribe = status.subscribe(lambda s: seen.append(s.state))
        unsubscribe()
        status.set_saved()
        assert seen == []


class TestWorkspaceProjects:
    def test_open_loads_projects(self, store, project):
        ws = Workspace(store).open()
        try:
            assert ws.projects == [project]
            assert ws.current_project is None
        finally:
            ws.close()

    def test_ensure_project_bootstraps_and_selects(self, workspace):
        project = workspace.ensure_project()
        assert workspace.current_project == project
        assert workspace.projects == [project]
        assert workspace.ensure_project() == project

    def test_create_project_becomes_current(self, workspace):
        first = workspace.create_project("first")
        second = workspace.create_project("second", use_well_water=True)
        assert workspace.current_project_id == second.id
        assert [p.id for p in workspace.projects] == [second.id, first.id]

    def test_remote_project_changes_mirrored(self, store, workspace):
        project = store.projects.create("remote")
        assert workspace.projects == [project]
        store.projects.rename(project.id, "renamed elsewhere")
        assert workspace.projects[0].name == "renamed elsewhere"
        store.projects.delete(project.id)
        assert workspace.projects == []

    def test_project_updates_applied(self, workspace):
        workspace.create_project("site")
        workspace.rename_project("site 2")
        workspace.set_project_description("north lot")
        workspace.set_use_well_water(True)
        current = workspace.current_project
        assert (current.name, current.description, current.use_well_water) == ("site 2", "north lot", True)
        assert workspace.status.state == SAVED

    def test_delete_current_project_clears_selection(self, store, workspace, make_task, project):
        workspace.select_project(project.id)
        make_task()
        workspace.delete_project()
        assert workspace.current_project_id is None
        assert workspace.tasks == []
        assert store.feed.subscriber_count("tasks") == 0

    def test_remote_delete_of_current_project(self, store, workspace, project):
        workspace.select_project(project.id)
        store.projects.delete(project.id)
        assert workspace.current_project_id is None
        assert store.feed.subscriber_count("tasks") == 0

    def test_select_missing_project(self, store, workspace):
        with pytest.raises(NotFound):
            workspace.select_project("missing")
        assert workspace.current_project_id is None
        assert workspace.status.state == ERROR
        assert store.feed.subscriber_count("tasks") == 0

    def test_task_operations_need_a_project(self, workspace):
        with pytest.raises(ValidationError):
            workspace.add_task({"name": "x", "start_date": datetime(2025, 1, 1), "end_date": datetime(2025, 1, 2)})

    def test_close_disposes_subscriptions(self, store, project):
        ws = Workspace(store).open()
        ws.select_project(project.id)
        assert store.feed.subscriber_count() == 2
        ws.close()
        assert store.feed.subscriber_count() == 0


class TestWorkspaceTasks:
    def test_select_loads_tasks(self, workspace, project, make_task):
        tasks = [make_task(name=f"t{i}") for i in range(3)]
        workspace.select_project(project.id)
        assert workspace.tasks == tasks

    def test_switching_projects_drops_old_subscription(self, store, workspace, project, make_task):
        other = store.projects.create("other")
        workspace.select_project(project.id)
        workspace.select_project(other.id)
        assert store.feed.subscriber_count("tasks") == 1

        make_task(name="belongs to first project")
        assert workspace.tasks == []

    def test_stale_event_for_previous_project_ignored(self, store, workspace, project, make_task):
        """An event delivered through a superseded subscription never reaches the mirror."""
        workspace.select_project(project.id)
        old_sub = workspace._task_sub
        other = store.projects.create("other")
        workspace.select_project(other.id)

        task = make_task()
        old_sub.callback(ChangeEvent("tasks", INSERT, new=to_record(task)))
        assert workspace.tasks == []

    def test_remote_task_changes_mirrored(self, store, workspace, project, make_task):
        workspace.select_project(project.id)
        task = make_task()
        assert workspace.tasks == [task]
        updated = store.tasks.update(project.id, task.id, {"progress": 80})
        assert workspace.task(task.id) == updated
        store.tasks.delete(project.id, task.id)
        assert workspace.tasks == []

    def test_task_crud(self, workspace, project):
        workspace.select_project(project.id)
        task = workspace.add_task({
            "name": "Signage", "start_date": datetime(2025, 9, 1), "end_date": datetime(2025, 9, 5),
        })
        assert workspace.tasks == [task]
        updated = workspace.update_task(task.id, {"memo": "ordered"})
        assert workspace.task(task.id).memo == "ordered"
        assert workspace.toggle_task_hidden(task.id).is_hidden is True
        assert workspace.set_task_hidden(task.id, False).is_hidden is False
        workspace.delete_task(task.id)
        assert workspace.tasks == []
        assert updated.updated_at > task.updated_at

    def test_failed_update_sets_error_status(self, workspace, project, make_task):
        workspace.select_project(project.id)
        task = make_task()
        with pytest.raises(ValidationError):
            workspace.update_task(task.id, {"start_date": datetime(2030, 1, 1)})
        assert workspace.status.state == ERROR
        assert workspace.task(task.id) == task

    def test_sub_task_item(self, workspace, project):
        workspace.select_project(project.id)
        task = workspace.add_task({
            "name": "Checklist",
            "start_date": datetime(2025, 9, 1),
            "end_date": datetime(2025, 9, 1),
            "sub_tasks": [{"id": "c1", "name": "docs", "items": [
                {"id": "i1", "name": "a"}, {"id": "i2", "name": "b"},
            ]}],
        })
        updated = workspace.set_sub_task_item_completed(task.id, "c1", "i2", True)
        assert [i.completed for i in updated.sub_tasks[0].items] == [False, True]
        assert workspace.task(task.id) == updated

    def test_delete_all_requires_confirmation(self, workspace, project, make_task):
        workspace.select_project(project.id)
        make_task()
        with pytest.raises(ValidationError):
            workspace.delete_all_tasks()
        assert len(workspace.tasks) == 1
        assert workspace.delete_all_tasks(confirm=True) == 1
        assert workspace.tasks == []

    @pytest.mark.asyncio
    async def test_generate_schedule(self, workspace, project, make_task):
        workspace.select_project(project.id)
        make_task(name="manual")
        generated = await workspace.generate_schedule(confirm=True)
        assert sorted(t.id for t in workspace.tasks) == sorted(t.id for t in generated)
        assert OPEN_DAY_TASK_NAME in {t.name for t in workspace.tasks}
        assert workspace.status.state == SAVED

    @pytest.mark.asyncio
    async def test_change_open_date_moves_mirrored_tasks(self, workspace, project, make_task):
        workspace.select_project(project.id)
        task = make_task()
        await workspace.change_open_date(date(2025, 11, 1))
        assert workspace.current_project.open_date == date(2025, 11, 1)
        assert workspace.task(task.id).start_date == task.start_date + timedelta(days=31)


class TestOptimisticMove:
    def test_move_confirmed(self, workspace, project, make_task):
        workspace.select_project(project.id)
        task = make_task(start=datetime(2025, 9, 1), days=3)
        moved = workspace.move_task(task.id, datetime(2025, 9, 10), datetime(2025, 9, 14))
        assert moved.duration == 5
        assert workspace.task(task.id) == moved
        assert workspace.status.state == SAVED

    def test_move_applied_before_store_answers(self, store, workspace, project, make_task):
        workspace.select_project(project.id)
        task = make_task(start=datetime(2025, 9, 1), days=3)
        seen = {}
        original_update = store.tasks.update

        def update(project_id, task_id, patch):
            seen["local"] = workspace.task(task_id)
            return original_update(project_id, task_id, patch)

        with patch.object(store.tasks, "update", side_effect=update):
            workspace.move_task(task.id, datetime(2025, 9, 10), datetime(2025, 9, 12))
        assert seen["local"].start_date == datetime(2025, 9, 10)
        assert seen["local"].updated_at == task.updated_at

    def test_failed_move_restores_previous_value(self, store, workspace, project, make_task):
        workspace.select_project(project.id)
        task = make_task(start=datetime(2025, 9, 1), days=3)
        with patch.object(store.tasks, "update", side_effect=StoreUnavailable("offline")):
            with pytest.raises(StoreUnavailable):
                workspace.move_task(task.id, datetime(2025, 9, 10), datetime(2025, 9, 12))
        assert workspace.task(task.id) == task
        assert workspace.status.state == ERROR
        assert workspace.status.last_error == "offline"

    def test_remote_change_wins_over_pending_move(self, store, workspace, project, make_task):
        """A remote write landing while the move is in flight is kept when the move fails."""
        workspace.select_project(project.id)
        task = make_task(start=datetime(2025, 9, 1), days=3)
        original_update = store.tasks.update
        remote = {}

        def update(project_id, task_id, patch):
            remote["task"] = original_update(project_id, task_id, {"memo": "edited elsewhere"})
            raise StoreUnavailable("timeout")

        with patch.object(store.tasks, "update", side_effect=update):
            with pytest.raises(StoreUnavailable):
                workspace.move_task(task.id, datetime(2025, 9, 10), datetime(2025, 9, 12))
        assert workspace.task(task.id) == remote["task"]
        assert workspace.task(task.id).start_date == task.start_date

    def test_move_unknown_task(self, workspace, project):
        workspace.select_project(project.id)
        with pytest.raises(NotFound):
            workspace.move_task("missing", datetime(2025, 9, 10), datetime(2025, 9, 12))
