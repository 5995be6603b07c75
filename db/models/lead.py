from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class Lead(BaseModel):
    """Lead model matching the leads table. One per enriched visit."""

    id: Optional[UUID] = None  # assigned on insert
    workspace_id: Optional[UUID] = None
    user_visit_id: UUID

    # Company
    company_name: str
    company_domain: Optional[str] = None
    company_city: Optional[str] = None
    company_region: Optional[str] = None
    company_country: Optional[str] = None
    company_type: Optional[str] = None

    # Attribution
    is_ai_attributed: bool = False
    ai_source: Optional[str] = None

    # Quality (company_only, basic, enhanced)
    enrichment_quality: str = "company_only"
    confidence_score: Optional[float] = None
    enrichment_cost_cents: int = 0
    public_signals_count: int = 0

    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
