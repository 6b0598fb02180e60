from fastapi import FastAPI, HTTPException, Query, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from datetime import date
from typing import List, Optional
import logging
try:
    from backend import config
except ModuleNotFoundError:
    import config
try:
    from app.db.database import SessionLocal, engine, init_db
    from app.db.models import ProjectModel, TaskCreate, TaskModel, TaskUpdate
    from app.errors import NotFound, PartialBatchFailure, ScheduleError, StoreUnavailable, ValidationError
    from app.store import Store
    from app import planner
except ModuleNotFoundError:
    from backend.app.db.database import SessionLocal, engine, init_db
    from backend.app.db.models import ProjectModel, TaskCreate, TaskModel, TaskUpdate
    from backend.app.errors import NotFound, PartialBatchFailure, ScheduleError, StoreUnavailable, ValidationError
    from backend.app.store import Store
    from backend.app import planner
try:
    from tools.schedule import (
        checklist_progress,
        days_from_open_label,
        default_view_start,
        format_duration,
        group_by_category,
    )
except ModuleNotFoundError:
    from backend.tools.schedule import (
        checklist_progress,
        days_from_open_label,
        default_view_start,
        format_duration,
        group_by_category,
    )


logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger("api")

app = FastAPI(title="Car wash opening schedule")


class ProjectCreateRequest(BaseModel):
    name: str
    use_well_water: bool = False
    description: Optional[str] = None
    open_date: Optional[date] = None

class ProjectPatchRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None

class OpenDateRequest(BaseModel):
    open_date: Optional[date] = None

class UseWellWaterRequest(BaseModel):
    use_well_water: bool

class HiddenRequest(BaseModel):
    is_hidden: bool

class SubTaskItemRequest(BaseModel):
    completed: bool


# Enable CORS for local frontend dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_store: Optional[Store] = None

def get_store() -> Store:
    global _store
    if _store is None:
        init_db(engine)
        _store = Store(SessionLocal)
    return _store


@app.exception_handler(ScheduleError)
async def schedule_error_handler(request: Request, exc: ScheduleError):
    if isinstance(exc, PartialBatchFailure):
        return JSONResponse(
            status_code=500,
            content={"detail": str(exc), "failed": exc.failed_ids, "succeeded": exc.succeeded},
        )
    if isinstance(exc, ValidationError):
        status_code = 422
    elif isinstance(exc, NotFound):
        status_code = 404
    elif isinstance(exc, StoreUnavailable):
        status_code = 503
    else:
        status_code = 500
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def _unexpected(route: str, e: Exception):
    logging.exception("%s failed: %s", route, e)
    raise HTTPException(status_code=500, detail=str(e))


@app.get("/")
async def root():
    return {"message": "Hello from backend!"}

@app.get("/debug/ping")
async def debug_ping():
    return {"pong": True}

# ------------------------------
# Projects
# ------------------------------

@app.get("/projects", response_model=List[ProjectModel])
def list_projects(store: Store = Depends(get_store)):
    try:
        return store.projects.list()
    except (HTTPException, ScheduleError):
        raise
    except Exception as e:
        _unexpected("/projects", e)

@app.post("/projects", response_model=ProjectModel, status_code=201)
def create_project(request: ProjectCreateRequest, store: Store = Depends(get_store)):
    try:
        return store.projects.create(
            request.name,
            use_well_water=request.use_well_water,
            description=request.description,
            open_date=request.open_date,
        )
    except (HTTPException, ScheduleError):
        raise
    except Exception as e:
        _unexpected("POST /projects", e)

@app.post("/projects/ensure", response_model=ProjectModel)
def ensure_project(store: Store = Depends(get_store)):
    """Return the oldest project, creating the default one on an empty store."""
    try:
        return planner.ensure_project(store)
    except (HTTPException, ScheduleError):
        raise
    except Exception as e:
        _unexpected("/projects/ensure", e)

@app.get("/projects/{project_id}", response_model=ProjectModel)
def get_project(project_id: str, store: Store = Depends(get_store)):
    try:
        return store.projects.get(project_id)
    except (HTTPException, ScheduleError):
        raise
    except Exception as e:
        _unexpected("GET /projects/{id}", e)

@app.patch("/projects/{project_id}", response_model=ProjectModel)
def patch_project(project_id: str, request: ProjectPatchRequest, store: Store = Depends(get_store)):
    try:
        fields = request.model_fields_set
        if not fields:
            raise HTTPException(status_code=422, detail="Provide 'name' and/or 'description'")
        return store.projects.update(project_id, **request.model_dump(include=fields))
    except (HTTPException, ScheduleError):
        raise
    except Exception as e:
        _unexpected("PATCH /projects/{id}", e)

@app.put("/projects/{project_id}/open-date")
async def set_open_date(project_id: str, request: OpenDateRequest, store: Store = Depends(get_store)):
    """Persist the opening day and move every task of the project by the same number of days."""
    try:
        project, shifted = await planner.change_open_date(store, project_id, request.open_date)
        return {"project": project, "shifted": len(shifted)}
    except (HTTPException, ScheduleError):
        raise
    except Exception as e:
        _unexpected("/projects/{id}/open-date", e)

@app.put("/projects/{project_id}/use-well-water", response_model=ProjectModel)
def set_use_well_water(project_id: str, request: UseWellWaterRequest, store: Store = Depends(get_store)):
    try:
        return store.projects.set_use_well_water(project_id, request.use_well_water)
    except (HTTPException, ScheduleError):
        raise
    except Exception as e:
        _unexpected("/projects/{id}/use-well-water", e)

@app.delete("/projects/{project_id}")
def delete_project(project_id: str, store: Store = Depends(get_store)):
    try:
        store.projects.delete(project_id)
        return {"deleted": project_id}
    except (HTTPException, ScheduleError):
        raise
    except Exception as e:
        _unexpected("DELETE /projects/{id}", e)

# ------------------------------
# Tasks
# ------------------------------

@app.get("/projects/{project_id}/tasks", response_model=List[TaskModel])
def list_tasks(project_id: str, include_hidden: bool = Query(True), store: Store = Depends(get_store)):
    try:
        tasks = store.tasks.list(project_id)
        if not include_hidden:
            tasks = [t for t in tasks if not t.is_hidden]
        return tasks
    except (HTTPException, ScheduleError):
        raise
    except Exception as e:
        _unexpected("GET /projects/{id}/tasks", e)

@app.post("/projects/{project_id}/tasks", response_model=TaskModel, status_code=201)
def create_task(project_id: str, request: TaskCreate, store: Store = Depends(get_store)):
    try:
        return store.tasks.create(project_id, request)
    except (HTTPException, ScheduleError):
        raise
    except Exception as e:
        _unexpected("POST /projects/{id}/tasks", e)

@app.delete("/projects/{project_id}/tasks")
def delete_all_tasks(project_id: str, confirm: bool = Query(False), store: Store = Depends(get_store)):
    try:
        removed = planner.clear_tasks(store, project_id, confirm=confirm)
        return {"deleted": removed}
    except (HTTPException, ScheduleError):
        raise
    except Exception as e:
        _unexpected("DELETE /projects/{id}/tasks", e)

@app.post("/projects/{project_id}/schedule", response_model=List[TaskModel])
async def generate_schedule(project_id: str, confirm: bool = Query(False), store: Store = Depends(get_store)):
    """Replace the project's tasks with the template schedule anchored on its opening day."""
    try:
        return await planner.regenerate_schedule(store, project_id, confirm=confirm)
    except (HTTPException, ScheduleError):
        raise
    except Exception as e:
        _unexpected("/projects/{id}/schedule", e)

@app.get("/projects/{project_id}/tasks/{task_id}", response_model=TaskModel)
def get_task(project_id: str, task_id: str, store: Store = Depends(get_store)):
    try:
        return store.tasks.get(project_id, task_id)
    except (HTTPException, ScheduleError):
        raise
    except Exception as e:
        _unexpected("GET /projects/{id}/tasks/{task_id}", e)

@app.patch("/projects/{project_id}/tasks/{task_id}", response_model=TaskModel)
def update_task(project_id: str, task_id: str, request: TaskUpdate, store: Store = Depends(get_store)):
    try:
        return store.tasks.update(project_id, task_id, request)
    except (HTTPException, ScheduleError):
        raise
    except Exception as e:
        _unexpected("PATCH /projects/{id}/tasks/{task_id}", e)

@app.delete("/projects/{project_id}/tasks/{task_id}")
def delete_task(project_id: str, task_id: str, store: Store = Depends(get_store)):
    try:
        store.tasks.delete(project_id, task_id)
        return {"deleted": task_id}
    except (HTTPException, ScheduleError):
        raise
    except Exception as e:
        _unexpected("DELETE /projects/{id}/tasks/{task_id}", e)

@app.put("/projects/{project_id}/tasks/{task_id}/hidden", response_model=TaskModel)
def set_task_hidden(project_id: str, task_id: str, request: HiddenRequest, store: Store = Depends(get_store)):
    try:
        return store.tasks.set_hidden(project_id, task_id, request.is_hidden)
    except (HTTPException, ScheduleError):
        raise
    except Exception as e:
        _unexpected("/projects/{id}/tasks/{task_id}/hidden", e)

@app.put("/projects/{project_id}/tasks/{task_id}/sub-tasks/{category_id}/items/{item_id}", response_model=TaskModel)
def set_sub_task_item(project_id: str, task_id: str, category_id: str, item_id: str,
                      request: SubTaskItemRequest, store: Store = Depends(get_store)):
    try:
        return store.tasks.set_sub_task_item_completed(project_id, task_id, category_id, item_id, request.completed)
    except (HTTPException, ScheduleError):
        raise
    except Exception as e:
        _unexpected("/projects/{id}/tasks/{task_id}/sub-tasks", e)

# ------------------------------
# Chart
# ------------------------------

@app.get("/projects/{project_id}/chart")
def project_chart(project_id: str, include_hidden: bool = Query(False), today: Optional[date] = Query(None),
                  store: Store = Depends(get_store)):
    """Gantt rows grouped by category, with the labels the chart shows next to each bar."""
    try:
        project = store.projects.get(project_id)
        tasks = store.tasks.list(project_id)
        groups = {}
        for category, members in group_by_category(tasks, include_hidden=include_hidden).items():
            groups[category] = [
                {
                    "id": t.id,
                    "name": t.name,
                    "start_date": t.start_date,
                    "end_date": t.end_date,
                    "duration_label": format_duration(t.start_date, t.end_date),
                    "start_label": days_from_open_label(t.start_date, project.open_date),
                    "checklist": checklist_progress(t),
                    "color": t.color,
                }
                for t in members
            ]
        return {
            "project": project,
            "view_start": default_view_start(project.open_date, today or date.today()),
            "groups": groups,
        }
    except (HTTPException, ScheduleError):
        raise
    except Exception as e:
        _unexpected("/projects/{id}/chart", e)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=config.UVICORN_HOST, port=config.UVICORN_PORT)
