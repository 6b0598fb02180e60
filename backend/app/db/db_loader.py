import json
import logging
from typing import Any, Mapping

from pydantic import BaseModel

from ..errors import ValidationError
from .models import ProjectModel, TaskModel

logger = logging.getLogger(__name__)


def _mapping(row: Any) -> Mapping[str, Any]:
    # SQLAlchemy Row objects expose their columns through _mapping
    return row._mapping if hasattr(row, "_mapping") else row


def _load_json(value: Any, default, column: str):
    """JSON columns come back decoded from Postgres but may be text elsewhere."""
    if value is None:
        return default
    if isinstance(value, (bytes, str)):
        try:
            return json.loads(value)
        except ValueError as e:
            logger.warning("undecodable %s column: %s", column, e)
            raise ValidationError(f"Stored {column} is not valid JSON: {e}") from e
    return value


def load_project(row: Any) -> ProjectModel:
    """Map a projects row (or a change-event payload) onto the entity."""
    data = dict(_mapping(row))
    data["use_well_water"] = bool(data.get("use_well_water") or False)
    return ProjectModel.model_validate(data)


def load_task(row: Any) -> TaskModel:
    """Map a tasks row (or a change-event payload) onto the entity."""
    data = dict(_mapping(row))
    data["dependencies"] = _load_json(data.get("dependencies"), [], "dependencies")
    data["sub_tasks"] = _load_json(data.get("sub_tasks"), [], "sub_tasks")
    data["is_hidden"] = bool(data.get("is_hidden") or False)
    return TaskModel.model_validate(data)


def to_record(model: BaseModel) -> dict:
    """JSON-safe store-shaped dict, as carried by change events."""
    return model.model_dump(mode="json")


def to_row_values(model: BaseModel) -> dict:
    """Column values for INSERT/UPDATE; nested checklist trees become plain lists."""
    return model.model_dump()
