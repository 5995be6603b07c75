from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class Visit(BaseModel):
    """Tracked website visit (user_visits row). Read-only input to enrichment."""

    id: UUID
    workspace_id: Optional[UUID] = None
    ip_address: str
    page_url: Optional[str] = None
    referrer: Optional[str] = None
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    user_agent: Optional[str] = None

    # Enrichment tracking (pending, processing, enriched, skip_isp, no_contact, email_fail, error)
    enrichment_status: str = "pending"
    enrichment_attempted_at: Optional[datetime] = None
    enrichment_cost_cents: int = 0

    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
