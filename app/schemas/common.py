from pydantic import BaseModel


def lower_email(value: str) -> str:
    """Emails are stored and looked up lower-cased"""
    return value.lower()


class MessageResponse(BaseModel):
    message: str


class IdListRequest(BaseModel):
    """Body for bulk operations on ids"""

    ids: list[int]
