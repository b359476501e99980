"""FastAPI application factory.

Wiring only: repositories, services and exception handlers. Callers may pass
their own repositories, rule set or clock (tests do).
"""
from __future__ import annotations

import logging
from typing import Callable

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from vaultlog.domain.errors import PersistenceError, VaultLogError
from vaultlog.domain.workflow import DEFAULT_WORKFLOW_RULES, WorkflowRuleSet
from vaultlog.infra.db import init_db
from vaultlog.infra.models import utcnow
from vaultlog.infra.repository import ClientRepository, TaskRepository, UserRepository
from vaultlog.services.task_service import Clock, TaskService

from .routes import router

logger = logging.getLogger(__name__)


def _vaultlog_error_handler(request: Request, exc: VaultLogError) -> JSONResponse:
    if isinstance(exc, PersistenceError):
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "code": exc.error_code, **exc.details},
    )


def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={
            "error": "Invalid request body",
            "code": "VALIDATION_ERROR",
            "issues": jsonable_encoder(exc.errors(), custom_encoder={Exception: str}),
        },
    )


def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


def create_app(
    task_repo: TaskRepository | None = None,
    client_repo: ClientRepository | None = None,
    user_repo: UserRepository | None = None,
    rules: WorkflowRuleSet = DEFAULT_WORKFLOW_RULES,
    clock: Clock = utcnow,
    check_database: Callable[[], None] = init_db,
) -> FastAPI:
    app = FastAPI(title="VaultLog", version="0.1.0")
    app.state.task_service = TaskService(task_repo or TaskRepository(), rules=rules, clock=clock)
    app.state.client_repo = client_repo or ClientRepository()
    app.state.user_repo = user_repo or UserRepository()
    app.state.check_database = check_database

    app.add_exception_handler(VaultLogError, _vaultlog_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.include_router(router)
    return app
