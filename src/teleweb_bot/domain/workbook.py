"""Models for workbook collection state."""

from pydantic import BaseModel


class WorkbookState(BaseModel):
    """Persisted workbook progress for a user."""

    active_sheet: str | None = None
    image_counter: int = 0
    download_count: int = 0
