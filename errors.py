from __future__ import annotations

from typing import Dict, List


class TaskServiceError(Exception):
    """Base class for errors the task service reports to its callers."""


class TaskValidationError(TaskServiceError):
    """Input failed the task rules; ``errors`` maps field -> messages."""

    def __init__(self, errors: Dict[str, List[str]]) -> None:
        self.errors = errors
        super().__init__(self.summary())

    def summary(self) -> str:
        messages = [m for msgs in self.errors.values() for m in msgs]
        if not messages:
            return "The given data was invalid."
        first = messages[0]
        extra = len(messages) - 1
        if extra == 1:
            return f"{first} (and 1 more error)"
        if extra > 1:
            return f"{first} (and {extra} more errors)"
        return first


class TaskNotFound(TaskServiceError):
    def __init__(self, task_id: int) -> None:
        self.task_id = task_id
        super().__init__(f"Task {task_id} not found")
