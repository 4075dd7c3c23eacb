import logging
import sqlite3
from contextlib import asynccontextmanager
from typing import Any, List, Optional

from fastapi import Body, Depends, FastAPI, Request, Response
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from broadcast import build_publisher
from config import Settings, get_settings
from database import TaskStore
from errors import TaskNotFound, TaskValidationError
from models import PAYLOAD_MESSAGE
from logging_setup import setup_logging
from service import TaskService

logger = logging.getLogger(__name__)


def get_service(request: Request) -> TaskService:
    return request.app.state.service


def create_app(
    task_service: Optional[TaskService] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Build the API. Without an injected service the store and publisher
    are created from settings when the app starts.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if task_service is not None:
            yield
            return

        cfg = settings or get_settings()
        setup_logging(level=cfg.log_level, log_dir=cfg.log_dir)
        store = TaskStore(cfg.db_path)
        publisher = build_publisher(cfg)
        app.state.service = TaskService(store, publisher)
        logger.info(
            "%s started db=%s broadcast_driver=%s",
            cfg.app_name,
            cfg.db_path,
            cfg.broadcast_driver,
        )
        try:
            yield
        finally:
            close = getattr(publisher, "close", None)
            if close is not None:
                close()

    app = FastAPI(title="Todo API", lifespan=lifespan)
    if task_service is not None:
        app.state.service = task_service

    @app.exception_handler(TaskValidationError)
    async def validation_error_handler(request: Request, exc: TaskValidationError):
        return JSONResponse(
            status_code=422,
            content={"message": exc.summary(), "errors": exc.errors},
        )

    @app.exception_handler(RequestValidationError)
    async def request_error_handler(request: Request, exc: RequestValidationError):
        # Unreadable bodies get the same shape as rule failures; path errors keep the default.
        if not any(err["loc"] and err["loc"][0] == "body" for err in exc.errors()):
            return await request_validation_exception_handler(request, exc)
        payload_error = TaskValidationError({"payload": [PAYLOAD_MESSAGE]})
        return JSONResponse(
            status_code=422,
            content={"message": payload_error.summary(), "errors": payload_error.errors},
        )

    @app.exception_handler(TaskNotFound)
    async def not_found_handler(request: Request, exc: TaskNotFound):
        return JSONResponse(status_code=404, content={"detail": "Task not found"})

    @app.exception_handler(sqlite3.Error)
    async def storage_error_handler(request: Request, exc: sqlite3.Error):
        logger.error(
            "Storage failure on %s %s",
            request.method,
            request.url.path,
            exc_info=(type(exc), exc, exc.__traceback__),
        )
        return JSONResponse(status_code=500, content={"detail": "Server Error"})

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.get("/tasks", response_model=List[dict])
    def read_tasks(service: TaskService = Depends(get_service)):
        return [task.to_json() for task in service.list_tasks()]

    @app.post("/tasks", status_code=201)
    def create_task(
        payload: Any = Body(None),
        service: TaskService = Depends(get_service),
    ):
        return service.create_task(payload).to_json()

    @app.get("/tasks/{task_id}")
    def read_task(task_id: int, service: TaskService = Depends(get_service)):
        return service.get_task(task_id).to_json()

    @app.put("/tasks/{task_id}")
    def update_task(
        task_id: int,
        payload: Any = Body(None),
        service: TaskService = Depends(get_service),
    ):
        return service.update_task(task_id, payload).to_json()

    @app.delete("/tasks/{task_id}", status_code=204)
    def delete_task(task_id: int, service: TaskService = Depends(get_service)):
        service.delete_task(task_id)
        return Response(status_code=204)

    return app


app = create_app()
