from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class StoredRecordRead(BaseModel):
    """Read model for a table row: primary key plus audit timestamps."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    created_at: datetime
    updated_at: datetime | None = None
