"""
Routers for the group records that share one CRUD shape.

Each record type gets the same set of endpoints:

- ``POST /create-{singular}``                       managers
- ``GET /manage-{plural}``, ``/manage-search-{plural}`` managers, drafts included
- ``GET /manage-{singular}/{id}``                   managers
- ``PATCH /update-{singular}/{id}``                 managers
- ``DELETE /delete-{singular}/{id}``                managers
- ``POST /delete-{plural}``                         managers
- ``GET /{plural}``, ``/search-{plural}``, ``/{singular}/{id}``  members, published only
"""

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import require_permissions
from app.models.group_context import GroupContext
from app.models.permission import Permission
from app.models.records import Announcement, Constitution, Expense, Minutes
from app.schemas.common import IdListRequest
from app.schemas.payment_schemas import CreatedResponse, DeletedResponse
from app.schemas.record_schemas import (
    ExpenseCreate,
    ExpenseResponse,
    ExpenseUpdate,
    RecordListResponse,
    TextRecordCreate,
    TextRecordResponse,
    TextRecordUpdate,
)
from app.services.record_service import GroupRecordService


def build_record_router(
    model,
    label: str,
    singular: str,
    plural: str,
    manage_permission: Permission,
    create_schema: type[BaseModel],
    update_schema: type[BaseModel],
    response_schema: type[BaseModel],
) -> APIRouter:
    router = APIRouter()
    managers = require_permissions(Permission.ADMIN, manage_permission)
    members = require_permissions(Permission.USER, Permission.ADMIN, manage_permission)

    def get_service(db: Session = Depends(get_db)) -> GroupRecordService:
        return GroupRecordService(db, model, label)

    @router.post(
        f"/create-{singular}",
        response_model=CreatedResponse,
        status_code=status.HTTP_201_CREATED,
    )
    async def create_record(
        data: create_schema,
        context: GroupContext = Depends(managers),
        service: GroupRecordService = Depends(get_service),
    ):
        record = service.create(data, context)
        return {"message": f"{label.capitalize()} created successfully.", "id": record.id}

    @router.get(f"/manage-{plural}", response_model=RecordListResponse)
    async def manage_records(
        page: int = Query(1, ge=1),
        context: GroupContext = Depends(managers),
        service: GroupRecordService = Depends(get_service),
    ):
        return service.list_records(context, page=page)

    @router.get(f"/manage-search-{plural}", response_model=RecordListResponse)
    async def manage_search_records(
        title: str = Query(..., min_length=1),
        page: int = Query(1, ge=1),
        context: GroupContext = Depends(managers),
        service: GroupRecordService = Depends(get_service),
    ):
        return service.list_records(context, title=title, page=page)

    @router.get(f"/manage-{singular}/{{record_id}}", response_model=response_schema)
    async def manage_record(
        record_id: int,
        context: GroupContext = Depends(managers),
        service: GroupRecordService = Depends(get_service),
    ):
        return service.get(record_id, context)

    @router.patch(f"/update-{singular}/{{record_id}}", response_model=response_schema)
    async def update_record(
        record_id: int,
        data: update_schema,
        context: GroupContext = Depends(managers),
        service: GroupRecordService = Depends(get_service),
    ):
        return service.update(record_id, data, context)

    @router.delete(f"/delete-{singular}/{{record_id}}", response_model=DeletedResponse)
    async def delete_record(
        record_id: int,
        context: GroupContext = Depends(managers),
        service: GroupRecordService = Depends(get_service),
    ):
        deleted = service.delete([record_id], context)
        return {"message": f"{label.capitalize()} deleted successfully.", "deleted_count": deleted}

    @router.post(f"/delete-{plural}", response_model=DeletedResponse)
    async def delete_records(
        data: IdListRequest,
        context: GroupContext = Depends(managers),
        service: GroupRecordService = Depends(get_service),
    ):
        deleted = service.delete(data.ids, context)
        return {"message": f"{deleted} {label}(s) deleted successfully.", "deleted_count": deleted}

    @router.get(f"/{plural}", response_model=RecordListResponse)
    async def list_published(
        page: int = Query(1, ge=1),
        context: GroupContext = Depends(members),
        service: GroupRecordService = Depends(get_service),
    ):
        return service.list_records(context, published_only=True, page=page)

    @router.get(f"/search-{plural}", response_model=RecordListResponse)
    async def search_published(
        title: str = Query(..., min_length=1),
        page: int = Query(1, ge=1),
        context: GroupContext = Depends(members),
        service: GroupRecordService = Depends(get_service),
    ):
        return service.list_records(context, title=title, published_only=True, page=page)

    @router.get(f"/{singular}/{{record_id}}", response_model=response_schema)
    async def get_published(
        record_id: int,
        context: GroupContext = Depends(members),
        service: GroupRecordService = Depends(get_service),
    ):
        return service.get(record_id, context, published_only=True)

    return router


routers = [
    build_record_router(
        Announcement,
        "announcement",
        "announcement",
        "announcements",
        Permission.MANAGE_ANNOUNCEMENTS,
        TextRecordCreate,
        TextRecordUpdate,
        TextRecordResponse,
    ),
    build_record_router(
        Constitution,
        "constitution",
        "constitution",
        "constitutions",
        Permission.MANAGE_CONSTITUTIONS,
        TextRecordCreate,
        TextRecordUpdate,
        TextRecordResponse,
    ),
    build_record_router(
        Minutes,
        "minutes record",
        "minutes",
        "minutes-records",
        Permission.MANAGE_MINUTES_RECORDS,
        TextRecordCreate,
        TextRecordUpdate,
        TextRecordResponse,
    ),
    build_record_router(
        Expense,
        "expense",
        "expense",
        "expenses",
        Permission.MANAGE_EXPENSES,
        ExpenseCreate,
        ExpenseUpdate,
        ExpenseResponse,
    ),
]
