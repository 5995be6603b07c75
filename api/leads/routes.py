"""API routes for on-demand lead enrichment."""

import os
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import AliasChoices, BaseModel, Field, field_validator

from services.leads.service import ILeadEnrichmentService, LeadEnrichmentService

router = APIRouter()

_service: Optional[ILeadEnrichmentService] = None


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class EnrichBody(BaseModel):
    """Enrich one tracked visit.

    Example:
        {
            "visitId": "6f1c2a9e-...",
            "icpDescription": "Head of Engineering"
        }
    """

    visit_id: str = Field(validation_alias=AliasChoices("visitId", "visit_id"))
    icp_description: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("icpDescription", "icp_description", "role_description"),
    )

    @field_validator("visit_id")
    @classmethod
    def strip_visit_id(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("visitId is required")
        return v


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_service() -> ILeadEnrichmentService:
    """Process-wide enrichment service (shares one HTTP connection pool)."""
    global _service
    if _service is None:
        _service = LeadEnrichmentService()
    return _service


async def close_service() -> None:
    global _service
    if isinstance(_service, LeadEnrichmentService):
        await _service.aclose()
    _service = None


def require_token(authorization: Optional[str] = Header(default=None)) -> None:
    """Operator bearer token gate (LEADS_API_TOKEN)."""
    expected = os.getenv("LEADS_API_TOKEN")
    if not expected:
        raise HTTPException(status_code=503, detail="LEADS_API_TOKEN is not configured")
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(token.strip(), expected):
        raise HTTPException(status_code=401, detail="Invalid or missing bearer token")


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.post("/api/leads/enrich", dependencies=[Depends(require_token)])
async def enrich_visit(
    body: EnrichBody,
    service: ILeadEnrichmentService = Depends(get_service),
):
    # Every pipeline outcome, including error, is a 200 with a tagged body
    result = await service.enrich(body.visit_id, body.icp_description)
    return result.to_response()


@router.get("/health")
async def health():
    return {"status": "ok"}
