from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime
from enum import StrEnum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from errors import TaskValidationError

TITLE_MAX_LENGTH = 255
PRIORITY_MIN = 0
PRIORITY_MAX = 5


class TaskStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class Task(BaseModel):
    """A stored task. ``deleted_at`` is never serialized."""

    id: int
    title: str
    description: Optional[str] = None
    status: TaskStatus
    priority: int
    due_date: Optional[date] = None  # "YYYY-MM-DD"
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = Field(default=None, exclude=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class TaskInput(BaseModel):
    """
    Client-supplied task fields.

    Used for both create and update: every write carries the full set of
    fields, there is no partial patch.
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    title: str = Field(min_length=1, max_length=TITLE_MAX_LENGTH)
    description: Optional[str] = None
    status: TaskStatus
    priority: int = Field(ge=PRIORITY_MIN, le=PRIORITY_MAX)
    due_date: Optional[date] = None

    @field_validator("description", "due_date", mode="before")
    @classmethod
    def _empty_string_is_null(cls, v: Any) -> Any:
        if isinstance(v, str) and v.strip() == "":
            return None
        return v


MESSAGES: Dict[str, str] = {
    "title.required": "The task title is required.",
    "title.string": "The task title must be a string.",
    "title.max": f"The task title may not be greater than {TITLE_MAX_LENGTH} characters.",
    "description.string": "The description must be a string.",
    "status.required": "The task status is required.",
    "status.in": "The selected status is invalid.",
    "priority.required": "The task priority is required.",
    "priority.integer": "The priority must be an integer.",
    "priority.min": f"The priority must be at least {PRIORITY_MIN}.",
    "priority.max": f"The priority may not be greater than {PRIORITY_MAX}.",
    "due_date.date": "The due date must be a valid date.",
}
PAYLOAD_MESSAGE = "The request body must be a JSON object."


def _rule_for(error: Dict[str, Any]) -> str:
    """Map a pydantic error onto the name of the rule it broke."""
    kind = error["type"]
    if kind == "missing" or error.get("input") is None:
        return "required"
    if kind == "string_too_short":
        # only reachable for title, which is stripped first
        return "required"
    if kind == "string_too_long":
        return "max"
    if kind == "string_type":
        return "string"
    if kind == "enum":
        return "in"
    if kind == "greater_than_equal":
        return "min"
    if kind == "less_than_equal":
        return "max"
    if kind.startswith("int_"):
        return "integer"
    if kind.startswith("date"):
        return "date"
    return kind


def _messages_from(exc: ValidationError) -> Dict[str, List[str]]:
    errors: Dict[str, List[str]] = {}
    for err in exc.errors():
        field = str(err["loc"][0]) if err["loc"] else "payload"
        rule = _rule_for(err)
        message = MESSAGES.get(f"{field}.{rule}", err["msg"])
        bucket = errors.setdefault(field, [])
        if message not in bucket:
            bucket.append(message)
    return errors


def validate_task_input(data: Any) -> TaskInput:
    """Apply the task rules to a request payload or raise TaskValidationError."""
    if not isinstance(data, Mapping):
        raise TaskValidationError({"payload": [PAYLOAD_MESSAGE]})
    try:
        return TaskInput.model_validate(dict(data))
    except ValidationError as exc:
        raise TaskValidationError(_messages_from(exc)) from None
