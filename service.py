from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Protocol

from broadcast import TASKS_CHANNEL, BroadcastPublisher, TaskEvent
from errors import TaskNotFound
from models import Task, validate_task_input

logger = logging.getLogger(__name__)


class TaskRepository(Protocol):
    def list_all(self) -> List[Task]: ...

    def create(self, fields: Mapping[str, Any]) -> Task: ...

    def find(self, task_id: int) -> Optional[Task]: ...

    def update(self, task_id: int, fields: Mapping[str, Any]) -> Optional[Task]: ...

    def soft_delete(self, task_id: int) -> bool: ...


class TaskService:
    """
    Validates task input, writes it through the store and announces each
    committed change on the ``tasks`` channel.

    A broadcast is attempted only after the store call returned; if the
    publisher raises, the error is logged and the mutation still stands.
    """

    def __init__(self, store: TaskRepository, publisher: BroadcastPublisher) -> None:
        self.store = store
        self.publisher = publisher

    def list_tasks(self) -> List[Task]:
        return self.store.list_all()

    def get_task(self, task_id: int) -> Task:
        task = self.store.find(task_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task

    def create_task(self, data: Any) -> Task:
        fields = validate_task_input(data).model_dump()
        task = self.store.create(fields)
        logger.info("Task created id=%s", task.id)
        self._broadcast(task, "created")
        return task

    def update_task(self, task_id: int, data: Any) -> Task:
        fields = validate_task_input(data).model_dump()
        task = self.store.update(task_id, fields)
        if task is None:
            raise TaskNotFound(task_id)
        logger.info("Task updated id=%s", task.id)
        self._broadcast(task, "updated")
        return task

    def delete_task(self, task_id: int) -> Task:
        """Soft-delete a task; returns its state from before the deletion."""
        snapshot = self.get_task(task_id)
        if not self.store.soft_delete(task_id):
            # deleted by someone else between the two calls
            raise TaskNotFound(task_id)
        logger.info("Task deleted id=%s", task_id)
        self._broadcast(snapshot, "deleted")
        return snapshot

    def _broadcast(self, task: Task, action: str) -> None:
        event = TaskEvent(task, action)
        try:
            self.publisher.publish(event.channel, event.name, event.payload())
        except Exception:
            logger.exception(
                "Broadcast publish failed channel=%s event=%s task_id=%s",
                TASKS_CHANNEL,
                event.name,
                task.id,
            )
