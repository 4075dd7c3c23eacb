"""Realtime broadcast of task mutations.

Every task event goes out on the single ``tasks`` channel. Publishers only
accept the event; delivery to subscribers happens later and its outcome is
never reported back to the caller.
"""

from __future__ import annotations

import concurrent.futures
import hashlib
import hmac
import json
import logging
import time
from typing import Any, Dict, Optional, Protocol

import requests

from config import Settings
from models import Task

logger = logging.getLogger(__name__)

TASKS_CHANNEL = "tasks"

EVENT_NAMES: Dict[str, str] = {
    "created": "task-created",
    "updated": "task-updated",
    "deleted": "task-deleted",
}
FALLBACK_EVENT_NAME = "task-event"


def event_name_for(action: str) -> str:
    return EVENT_NAMES.get(action, FALLBACK_EVENT_NAME)


class BroadcastError(Exception):
    """A publisher could not accept or deliver an event."""


class TaskEvent:
    def __init__(self, task: Task, action: str) -> None:
        self.task = task
        self.action = action
        logger.info(
            "TaskEvent constructed task_id=%s action=%s title=%r status=%s",
            task.id,
            action,
            task.title,
            task.status.value,
        )

    @property
    def channel(self) -> str:
        return TASKS_CHANNEL

    @property
    def name(self) -> str:
        return event_name_for(self.action)

    def payload(self) -> Dict[str, Any]:
        return {"task": self.task.to_json(), "action": self.action}


class BroadcastPublisher(Protocol):
    def publish(self, channel: str, event_name: str, payload: Dict[str, Any]) -> None:
        """Accept an event for delivery. Must not wait for subscribers."""


class NullPublisher:
    def publish(self, channel: str, event_name: str, payload: Dict[str, Any]) -> None:
        return

    def close(self) -> None:
        return


class LogPublisher:
    """Writes events to the log instead of a realtime transport."""

    def __init__(self, level: int = logging.INFO) -> None:
        self.level = level

    def publish(self, channel: str, event_name: str, payload: Dict[str, Any]) -> None:
        logger.log(
            self.level,
            "Broadcast channel=%s event=%s data=%s",
            channel,
            event_name,
            json.dumps(payload, ensure_ascii=False),
        )

    def close(self) -> None:
        return


class PusherPublisher:
    """
    Publisher for the Pusher Channels HTTP API.

    publish() hands the request to a small thread pool and returns at once;
    failures are logged from the worker. trigger() is the synchronous,
    signed POST /apps/{app_id}/events call.
    """

    def __init__(
        self,
        *,
        app_id: str,
        key: str,
        secret: str,
        cluster: str = "mt1",
        timeout: float = 5.0,
        max_workers: int = 2,
        session: Optional[requests.Session] = None,
        host: Optional[str] = None,
    ) -> None:
        self.app_id = app_id
        self.key = key
        self._secret = secret.encode("utf-8")
        self.timeout = timeout
        self.base_url = f"https://{host or f'api-{cluster}.pusher.com'}"
        self._session = session or requests.Session()
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="broadcast"
        )

    @property
    def events_path(self) -> str:
        return f"/apps/{self.app_id}/events"

    def sign(self, body: str, *, timestamp: Optional[int] = None) -> Dict[str, str]:
        params = {
            "auth_key": self.key,
            "auth_timestamp": str(int(time.time()) if timestamp is None else timestamp),
            "auth_version": "1.0",
            "body_md5": hashlib.md5(body.encode("utf-8")).hexdigest(),
        }
        query = "&".join(f"{k}={params[k]}" for k in sorted(params))
        to_sign = "\n".join(["POST", self.events_path, query])
        params["auth_signature"] = hmac.new(
            self._secret, to_sign.encode("utf-8"), hashlib.sha256
        ).hexdigest()
        return params

    def trigger(self, channel: str, event_name: str, payload: Dict[str, Any]) -> None:
        body = json.dumps(
            {
                "name": event_name,
                "channels": [channel],
                "data": json.dumps(payload, ensure_ascii=False),
            },
            ensure_ascii=False,
        )
        try:
            resp = self._session.post(
                self.base_url + self.events_path,
                params=self.sign(body),
                data=body.encode("utf-8"),
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise BroadcastError(f"Pusher request failed: {e}") from e

        if resp.status_code >= 400:
            raise BroadcastError(f"Pusher rejected event {event_name}: {resp.status_code} {resp.text}")
        logger.debug("Pusher accepted event=%s channel=%s", event_name, channel)

    def publish(self, channel: str, event_name: str, payload: Dict[str, Any]) -> None:
        try:
            future = self._executor.submit(self.trigger, channel, event_name, payload)
        except RuntimeError as e:
            raise BroadcastError(f"Publisher is closed: {e}") from e
        future.add_done_callback(
            lambda f: self._log_outcome(f, channel=channel, event_name=event_name)
        )

    @staticmethod
    def _log_outcome(future: concurrent.futures.Future, *, channel: str, event_name: str) -> None:
        exc = future.exception()
        if exc is not None:
            logger.error("Broadcast failed channel=%s event=%s: %s", channel, event_name, exc)

    def close(self) -> None:
        self._executor.shutdown(wait=True)
        self._session.close()


def build_publisher(settings: Settings) -> BroadcastPublisher:
    driver = settings.broadcast_driver
    if driver == "pusher":
        if not (settings.pusher_app_id and settings.pusher_key and settings.pusher_secret):
            raise ValueError(
                "pusher driver needs TASKS_PUSHER_APP_ID, TASKS_PUSHER_APP_KEY and TASKS_PUSHER_APP_SECRET"
            )
        return PusherPublisher(
            app_id=settings.pusher_app_id,
            key=settings.pusher_key,
            secret=settings.pusher_secret,
            cluster=settings.pusher_cluster,
            timeout=settings.pusher_timeout,
            max_workers=settings.broadcast_workers,
        )
    if driver == "log":
        return LogPublisher()
    if driver in ("null", "none"):
        return NullPublisher()
    raise ValueError(f"Unknown broadcast driver: {driver!r}")
