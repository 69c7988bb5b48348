from typing import Optional

from pydantic import BaseModel, Field

MAX_BUTTONS = 3
BUTTON_TITLE_LIMIT = 20
SECTION_TITLE_LIMIT = 24
ROW_TITLE_LIMIT = 24
ROW_DESCRIPTION_LIMIT = 72
MAX_ROWS_PER_SECTION = 10


class Button(BaseModel):
    id: str
    title: str


class ListRow(BaseModel):
    id: str
    title: str
    description: Optional[str] = None


class ListSection(BaseModel):
    title: str
    rows: list[ListRow] = Field(default_factory=list)


class SendResult(BaseModel):
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
