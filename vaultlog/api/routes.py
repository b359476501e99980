"""HTTP routes: thin handlers delegating to TaskService and the record repositories."""
from __future__ import annotations

import logging
from typing import Annotated, Callable
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from sqlalchemy.exc import SQLAlchemyError

from vaultlog.domain.entities import TaskEntity, UserEntity
from vaultlog.domain.enums import TaskStatus, UserRole
from vaultlog.domain.errors import NotFoundError
from vaultlog.domain.filters import TaskFilters
from vaultlog.infra.repository import ClientRepository, UserRepository
from vaultlog.services.task_service import TaskService

from .schemas import (
    ActivityResponse,
    ClientCreateRequest,
    ClientResponse,
    TaskCreateRequest,
    TaskDetailResponse,
    TaskResponse,
    TaskUpdateRequest,
    TimeLogCreateRequest,
    TimeLogResponse,
    UserCreateRequest,
    UserResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

MANAGERS = (UserRole.ADMIN, UserRole.MANAGER)


def get_task_service(request: Request) -> TaskService:
    return request.app.state.task_service


def get_client_repo(request: Request) -> ClientRepository:
    return request.app.state.client_repo


def get_user_repo(request: Request) -> UserRepository:
    return request.app.state.user_repo


def get_actor(
    user_repo: Annotated[UserRepository, Depends(get_user_repo)],
    x_user_id: Annotated[str | None, Header()] = None,
) -> UserEntity:
    """Acting user from the X-User-Id header. Authentication happens upstream."""
    try:
        actor_id = str(UUID(x_user_id or ""))
    except ValueError:
        raise HTTPException(status_code=401, detail="Unauthorized") from None
    user = user_repo.get_user(actor_id)
    if not user or not user.active:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user


def require_roles(*roles: UserRole) -> Callable[..., UserEntity]:
    def dependency(actor: Annotated[UserEntity, Depends(get_actor)]) -> UserEntity:
        if actor.role not in roles:
            logger.info("User %s (%s) denied", actor.id, actor.role.value)
            raise HTTPException(status_code=403, detail="Forbidden")
        return actor

    return dependency


def _parse_task_id(task_id: str) -> str:
    try:
        return str(UUID(task_id))
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid task id") from None


def _ensure_visible(task: TaskEntity, actor: UserEntity) -> None:
    # staff only work on tasks assigned to them
    if actor.role == UserRole.STAFF and task.assigned_to_id != actor.id:
        raise HTTPException(status_code=403, detail="Forbidden")


TaskServiceDep = Annotated[TaskService, Depends(get_task_service)]
ActorDep = Annotated[UserEntity, Depends(get_actor)]
ManagerDep = Annotated[UserEntity, Depends(require_roles(*MANAGERS))]
AdminDep = Annotated[UserEntity, Depends(require_roles(UserRole.ADMIN))]


@router.get("/health")
def health(request: Request) -> dict:
    try:
        request.app.state.check_database()
    except SQLAlchemyError as exc:
        logger.warning("Database ping failed: %s", exc)
        raise HTTPException(status_code=503, detail="Database unavailable") from exc
    return {"status": "ok"}


@router.get("/workflow")
def get_workflow_rules(service: TaskServiceDep, _actor: ActorDep) -> dict:
    """Transition table, WIP ceilings and SLA targets, read-only."""
    return service.get_workflow_rules()


@router.get("/tasks", response_model=list[TaskResponse])
def list_tasks(
    service: TaskServiceDep,
    actor: ActorDep,
    status: TaskStatus | None = None,
    client_id: UUID | None = None,
    assigned_to: UUID | None = None,
    search: str | None = Query(default=None, max_length=200),
):
    assigned_to_id = str(assigned_to) if assigned_to else None
    if actor.role == UserRole.STAFF:
        if assigned_to_id and assigned_to_id != actor.id:
            raise HTTPException(status_code=403, detail="Forbidden")
        assigned_to_id = actor.id
    filters = TaskFilters(
        status=status,
        client_id=str(client_id) if client_id else None,
        assigned_to_id=assigned_to_id,
        search=search or None,
    )
    return [TaskResponse.model_validate(task) for task in service.list_tasks(filters)]


@router.post("/tasks", response_model=TaskResponse, status_code=201)
def create_task(
    body: TaskCreateRequest,
    service: TaskServiceDep,
    actor: ManagerDep,
    client_repo: Annotated[ClientRepository, Depends(get_client_repo)],
):
    client_id = str(body.client_id)
    if not client_repo.get_client(client_id):
        raise NotFoundError("client", client_id)
    data = body.model_dump()
    data["client_id"] = client_id
    data["assigned_to_id"] = str(body.assigned_to_id) if body.assigned_to_id else None
    return TaskResponse.model_validate(service.create_task(data, actor.id))


@router.get("/tasks/stats")
def get_task_stats(service: TaskServiceDep, _actor: ManagerDep) -> dict:
    return service.get_stats()


@router.get("/tasks/{task_id}", response_model=TaskDetailResponse)
def get_task(task_id: str, service: TaskServiceDep, actor: ActorDep):
    task_id = _parse_task_id(task_id)
    task = service.get_task(task_id)
    _ensure_visible(task, actor)
    return TaskDetailResponse(
        **TaskResponse.model_validate(task).model_dump(),
        activity=[ActivityResponse.from_entry(e) for e in service.list_activity(task_id)],
        time_logs=[TimeLogResponse.model_validate(t) for t in service.list_time_logs(task_id)],
    )


@router.patch("/tasks/{task_id}", response_model=TaskResponse)
def update_task(
    task_id: str,
    body: TaskUpdateRequest,
    service: TaskServiceDep,
    actor: ManagerDep,
):
    task_id = _parse_task_id(task_id)
    data = body.model_dump(exclude_unset=True)
    if data.get("assigned_to_id") is not None:
        data["assigned_to_id"] = str(data["assigned_to_id"])
    return TaskResponse.model_validate(service.update_task(task_id, data, actor.id))


@router.get("/tasks/{task_id}/activity", response_model=list[ActivityResponse])
def list_task_activity(task_id: str, service: TaskServiceDep, actor: ActorDep):
    task_id = _parse_task_id(task_id)
    _ensure_visible(service.get_task(task_id), actor)
    return [ActivityResponse.from_entry(entry) for entry in service.list_activity(task_id)]


@router.post("/time-logs", response_model=TimeLogResponse, status_code=201)
def create_time_log(body: TimeLogCreateRequest, service: TaskServiceDep, actor: ActorDep):
    task_id = str(body.task_id)
    _ensure_visible(service.get_task(task_id), actor)
    data = body.model_dump()
    data["task_id"] = task_id
    return TimeLogResponse.model_validate(service.log_time(data, actor.id))


@router.get("/clients", response_model=list[ClientResponse])
def list_clients(
    client_repo: Annotated[ClientRepository, Depends(get_client_repo)],
    _actor: ManagerDep,
):
    return [ClientResponse.model_validate(client) for client in client_repo.list_clients()]


@router.post("/clients", response_model=ClientResponse, status_code=201)
def create_client(
    body: ClientCreateRequest,
    client_repo: Annotated[ClientRepository, Depends(get_client_repo)],
    _actor: ManagerDep,
):
    data = body.model_dump()
    data["status"] = body.status.value
    return ClientResponse.model_validate(client_repo.create_client(data))


@router.get("/users", response_model=list[UserResponse])
def list_users(user_repo: Annotated[UserRepository, Depends(get_user_repo)], _actor: AdminDep):
    return [UserResponse.model_validate(user) for user in user_repo.list_users()]


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(
    body: UserCreateRequest,
    user_repo: Annotated[UserRepository, Depends(get_user_repo)],
    _actor: AdminDep,
):
    data = body.model_dump()
    data["role"] = body.role.value
    return UserResponse.model_validate(user_repo.create_user(data))
