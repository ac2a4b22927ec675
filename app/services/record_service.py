from math import ceil
from typing import Generic

from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.config import settings
from app.core.exceptions import NotFoundException
from app.core.transaction import transaction
from app.models.group_context import GroupContext
from app.repositories.record_repository import GroupRecordRepository, RecordT


class GroupRecordService(Generic[RecordT]):
    """
    CRUD for one group-scoped record type (announcements, constitutions,
    minutes, expenses).

    Members only ever see published records; managers see drafts too.
    """

    def __init__(self, db: Session, model: type[RecordT], label: str):
        self.db = db
        self.model = model
        self.label = label
        self.repo = GroupRecordRepository(db, model)

    def create(self, data: BaseModel, context: GroupContext) -> RecordT:
        with transaction(self.db, f"{self.label} creation"):
            record = self.repo.create(
                self.model(
                    **data.model_dump(),
                    group_id=context.group_id,
                    created_by_id=context.user_id,
                )
            )
        return record

    def list_records(
        self,
        context: GroupContext,
        title: str | None = None,
        published_only: bool = False,
        page: int = 1,
    ) -> dict:
        limit = settings.PAGE_SIZE
        records, total = self.repo.list_by_group(
            context.group_id,
            title=title.strip() if title else None,
            published_only=published_only,
            limit=limit,
            offset=(page - 1) * limit,
        )
        return {
            "items": records,
            "total_pages": ceil(total / limit),
            "current_page": page,
        }

    def get(self, record_id: int, context: GroupContext, published_only: bool = False) -> RecordT:
        """
        Raises:
            NotFoundException: If missing, in another group, or (for members) unpublished
        """
        record = self.repo.get_by_id_and_group(record_id, context.group_id, published_only)
        if not record:
            raise NotFoundException(f"{self.label.capitalize()} not found.")
        return record

    def update(self, record_id: int, data: BaseModel, context: GroupContext) -> RecordT:
        record = self.get(record_id, context)
        with transaction(self.db, f"{self.label} update"):
            for field, value in data.model_dump(exclude_unset=True).items():
                if value is not None:
                    setattr(record, field, value)
            self.repo.update(record)
        return record

    def delete(self, record_ids: list[int], context: GroupContext) -> int:
        with transaction(self.db, f"{self.label} deletion"):
            deleted = self.repo.delete_by_ids_and_group(set(record_ids), context.group_id)
            if deleted == 0:
                raise NotFoundException(f"{self.label.capitalize()} not found.")
        return deleted
