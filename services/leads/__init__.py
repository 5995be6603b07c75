"""Leads service.

Lead enrichment pipeline for tracked website visits.

Components:
- Repo: Persistence port + Postgres / in-memory implementations (repo.py)
- Service: Orchestrates the enrichment state machine (service.py)
"""

from services.leads.repo import ILeadRepo, InMemoryLeadRepo, LeadRepo
from services.leads.service import (
    EnrichmentResult,
    EnrichmentStatus,
    ILeadEnrichmentService,
    LeadEnrichmentService,
)

__all__ = [
    "ILeadRepo",
    "LeadRepo",
    "InMemoryLeadRepo",
    "EnrichmentResult",
    "EnrichmentStatus",
    "ILeadEnrichmentService",
    "LeadEnrichmentService",
]
