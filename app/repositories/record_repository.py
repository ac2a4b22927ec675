from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from app.models.records import GroupRecordMixin

RecordT = TypeVar("RecordT", bound=GroupRecordMixin)


class GroupRecordRepository(Generic[RecordT]):
    """
    Group-scoped data access shared by announcements, constitutions,
    minutes and expenses.

    Every read filters on group_id in the query itself, so an id from another
    group behaves exactly like an id that does not exist.
    """

    def __init__(self, db: Session, model: type[RecordT]):
        self.db = db
        self.model = model

    def get_by_id_and_group(
        self, record_id: int, group_id: int, published_only: bool = False
    ) -> RecordT | None:
        query = self.db.query(self.model).filter(
            self.model.id == record_id, self.model.group_id == group_id
        )
        if published_only:
            query = query.filter(self.model.published.is_(True))
        return query.first()

    def list_by_group(
        self,
        group_id: int,
        title: str | None = None,
        published_only: bool = False,
        limit: int = 10,
        offset: int = 0,
    ) -> tuple[list[RecordT], int]:
        """
        Page through a group's records, newest first.

        Args:
            title: Optional case-insensitive partial match on title
            published_only: Hide drafts (member-facing listings)

        Returns:
            Tuple of (records, total count)
        """
        query = self.db.query(self.model).filter(self.model.group_id == group_id)
        if published_only:
            query = query.filter(self.model.published.is_(True))
        if title:
            query = query.filter(self.model.title.icontains(title, autoescape=True))

        total = query.count()
        records = (
            query.order_by(self.model.created_at.desc(), self.model.id.desc())
            .limit(limit)
            .offset(offset)
            .all()
        )
        return records, total

    def create(self, record: RecordT) -> RecordT:
        self.db.add(record)
        self.db.flush()
        return record

    def update(self, record: RecordT) -> RecordT:
        self.db.flush()
        return record

    def delete_by_ids_and_group(self, record_ids: set[int], group_id: int) -> int:
        if not record_ids:
            return 0
        count = (
            self.db.query(self.model)
            .filter(self.model.id.in_(record_ids), self.model.group_id == group_id)
            .delete(synchronize_session=False)
        )
        self.db.flush()
        return count
