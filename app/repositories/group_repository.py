"""Repository for Group model operations."""

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.models.group import Group


class GroupRepository:
    """Repository for Group model operations"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, group_id: int) -> Group | None:
        return self.db.get(Group, group_id)

    def get_by_join_code(self, join_code: str) -> Group | None:
        return self.db.query(Group).filter(Group.join_code == join_code.strip().upper()).first()

    def join_code_exists(self, join_code: str) -> bool:
        return self.db.query(Group.id).filter(Group.join_code == join_code).first() is not None

    def allocate_member_sequence(self, group_id: int) -> tuple[int, str] | None:
        """
        Atomically increment ``member_counter`` and return the new value.

        A single UPDATE ... RETURNING statement, so two concurrent joiners
        can never be handed the same sequence number.

        Returns:
            (sequence, abbreviation), or None if the group no longer exists
        """
        row = self.db.execute(
            update(Group)
            .where(Group.id == group_id)
            .values(member_counter=Group.member_counter + 1)
            .returning(Group.member_counter, Group.abbreviation)
            .execution_options(synchronize_session=False)
        ).first()
        if row is None:
            return None
        return row[0], row[1]

    def create(self, group: Group) -> Group:
        """Add group and flush to assign its ID. Caller commits."""
        self.db.add(group)
        self.db.flush()
        return group

    def update(self, group: Group) -> Group:
        self.db.flush()
        return group
