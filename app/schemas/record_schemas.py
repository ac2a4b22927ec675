from datetime import datetime

from pydantic import BaseModel, Field


class TextRecordCreate(BaseModel):
    """Schema for creating an announcement, constitution or minutes record"""

    model_config = {"str_strip_whitespace": True}

    title: str = Field(..., min_length=1, max_length=255)
    body: str = Field(..., min_length=1)
    published: bool = False


class TextRecordUpdate(BaseModel):
    model_config = {"str_strip_whitespace": True}

    title: str | None = Field(None, min_length=1, max_length=255)
    body: str | None = Field(None, min_length=1)
    published: bool | None = None


class TextRecordResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    group_id: int
    title: str
    body: str
    published: bool
    created_by_id: int
    created_at: datetime
    updated_at: datetime


class ExpenseCreate(BaseModel):
    model_config = {"str_strip_whitespace": True}

    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0)
    published: bool = False


class ExpenseUpdate(BaseModel):
    model_config = {"str_strip_whitespace": True}

    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, min_length=1)
    amount: float | None = Field(None, gt=0)
    published: bool | None = None


class ExpenseResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    group_id: int
    title: str
    description: str
    amount: float
    published: bool
    created_by_id: int
    created_at: datetime
    updated_at: datetime


class RecordSummaryResponse(BaseModel):
    """List item; the record body is left out of listings"""

    model_config = {"from_attributes": True}

    id: int
    title: str
    published: bool
    created_by_id: int
    created_at: datetime


class RecordListResponse(BaseModel):
    items: list[RecordSummaryResponse]
    total_pages: int
    current_page: int
