from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List

import pytest
from fastapi.testclient import TestClient

from broadcast import BroadcastError
from database import TaskStore
from main import create_app
from service import TaskService


@dataclass(slots=True)
class Published:
    channel: str
    event_name: str
    payload: Dict[str, Any]


@dataclass(slots=True)
class RecordingPublisher:
    """Keeps every accepted event for assertions."""

    calls: List[Published] = field(default_factory=list)

    def publish(self, channel: str, event_name: str, payload: Dict[str, Any]) -> None:
        self.calls.append(Published(channel, event_name, payload))


class FailingPublisher:
    def __init__(self) -> None:
        self.attempts = 0

    def publish(self, channel: str, event_name: str, payload: Dict[str, Any]) -> None:
        self.attempts += 1
        raise BroadcastError("transport down")


class TickingClock:
    """Each call returns a time one second after the previous one."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 4, 29, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture()
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture()
def store(tmp_path: Path, clock: TickingClock) -> TaskStore:
    return TaskStore(tmp_path / "tasks.sqlite3", clock=clock)


@pytest.fixture()
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture()
def service(store: TaskStore, publisher: RecordingPublisher) -> TaskService:
    return TaskService(store, publisher)


@pytest.fixture()
def client(service: TaskService) -> TestClient:
    return TestClient(create_app(task_service=service))


@pytest.fixture()
def task_data() -> Dict[str, Any]:
    return {
        "title": "Test Task",
        "description": "This is a test task",
        "status": "pending",
        "priority": 3,
        "due_date": "2024-05-06",
    }
