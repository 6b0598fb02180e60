from typing import List, Literal, Optional
from pydantic import BaseModel, Field, field_validator
from datetime import date, datetime, timezone


TaskStatus = Literal["not-started", "in-progress", "done", "delayed"]
TaskCategory = Literal["wash-facility-development", "back-office", "milestone"]

TASK_CATEGORIES: tuple = ("wash-facility-development", "back-office", "milestone")


def _naive_utc(value):
    # Instants are stored without zone; aware input is normalised to UTC first
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class SubTaskItem(BaseModel):
    id: str
    name: str
    completed: bool = False


class SubTaskCategory(BaseModel):
    id: str
    name: str
    items: List[SubTaskItem] = []


class ProjectModel(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    open_date: Optional[date] = None
    use_well_water: bool = False
    created_at: datetime
    updated_at: datetime


class TaskModel(BaseModel):
    id: str
    project_id: str
    name: str
    start_date: datetime
    end_date: datetime
    duration: int
    progress: int = Field(default=0, ge=0, le=100)
    status: TaskStatus = "not-started"
    category: TaskCategory
    dependencies: List[str] = []
    is_hidden: bool = False
    sub_tasks: List[SubTaskCategory] = []
    color: Optional[str] = None
    memo: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class TaskCreate(BaseModel):
    """Fields accepted when creating a task; also the shape of generated template tasks."""
    name: str
    start_date: datetime
    end_date: datetime
    category: TaskCategory = "wash-facility-development"
    duration: Optional[int] = None
    progress: int = Field(default=0, ge=0, le=100)
    status: TaskStatus = "not-started"
    dependencies: List[str] = []
    is_hidden: bool = False
    sub_tasks: List[SubTaskCategory] = []
    color: Optional[str] = None
    memo: Optional[str] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def normalise_dates(cls, value):
        return _naive_utc(value)


class TaskUpdate(BaseModel):
    """Partial task patch: only explicitly supplied fields are written."""
    name: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    progress: Optional[int] = Field(default=None, ge=0, le=100)
    status: Optional[TaskStatus] = None
    category: Optional[TaskCategory] = None
    dependencies: Optional[List[str]] = None
    is_hidden: Optional[bool] = None
    sub_tasks: Optional[List[SubTaskCategory]] = None
    color: Optional[str] = None
    memo: Optional[str] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def normalise_dates(cls, value):
        return _naive_utc(value)
