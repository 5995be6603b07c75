from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class ContactMedia(BaseModel):
    """Public mention of a contact (contact_media table)."""

    id: Optional[UUID] = None  # assigned on insert
    contact_id: UUID

    # podcast, interview, talk, webinar, blog, article, news, patent
    media_type: str
    title: str
    url: str
    publication: Optional[str] = None
    published_at: Optional[datetime] = None
    snippet: Optional[str] = None

    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
