from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class Contact(BaseModel):
    """Contact model matching the contacts table. At most one per lead."""

    id: Optional[UUID] = None  # assigned on insert
    lead_id: UUID

    name: str
    title: Optional[str] = None
    email: str
    linkedin_url: Optional[str] = None
    headline: Optional[str] = None
    summary: Optional[str] = None
    location: Optional[str] = None

    # Scores
    title_match_score: Optional[float] = None
    confidence_score: Optional[float] = None

    # Email verification
    email_verification_status: str = "verified"
    email_verification_reason: Optional[str] = None
    email_pattern: Optional[str] = None

    connection_count: Optional[int] = None
    last_activity_date: Optional[date] = None
    highlights: List[str] = []
    enrichment_depth: str = "basic"  # basic, enhanced

    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
