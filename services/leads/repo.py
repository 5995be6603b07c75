"""Lead Repository - persistence for the lead enrichment pipeline.

ILeadRepo is the port the orchestrator writes through. LeadRepo is the
asyncpg/aiosql implementation; InMemoryLeadRepo mirrors its FK and
uniqueness rules for tests and dry runs.

Write order is always Lead → Contact → ContactMedia.
"""

import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol, runtime_checkable
from uuid import UUID

from db.client import queries, get_conn
from db.models.contact import Contact
from db.models.contact_media import ContactMedia
from db.models.lead import Lead
from db.models.visit import Visit


class IntegrityError(Exception):
    """Write violates a foreign-key or uniqueness rule."""


@runtime_checkable
class ILeadRepo(Protocol):
    """Protocol for lead persistence."""

    async def get_visit(self, visit_id: UUID) -> Optional[Visit]:
        """Get a visit by ID, None if it doesn't exist."""
        ...

    async def insert_lead(self, lead: Lead) -> Lead:
        """Insert a lead. Returns the stored row with id set."""
        ...

    async def insert_contact(self, contact: Contact) -> Contact:
        """Insert the (single) contact for a lead."""
        ...

    async def insert_media(self, media: ContactMedia) -> ContactMedia:
        """Insert a media mention for a contact."""
        ...

    async def get_lead(self, lead_id: UUID) -> Optional[Lead]:
        """Get a lead by ID."""
        ...

    async def get_contact_by_lead(self, lead_id: UUID) -> Optional[Contact]:
        """Get the contact stored for a lead."""
        ...

    async def get_media_by_contact(self, contact_id: UUID) -> List[ContactMedia]:
        """Get media mentions for a contact."""
        ...


class LeadRepo(ILeadRepo):
    """Postgres implementation (asyncpg pool + aiosql queries)."""

    async def get_visit(self, visit_id: UUID) -> Optional[Visit]:
        async with get_conn() as conn:
            result = await queries.get_visit(conn, visit_id=visit_id)
            if result:
                return Visit.model_validate(dict(result))
            return None

    async def insert_lead(self, lead: Lead) -> Lead:
        async with get_conn() as conn:
            result = await queries.insert_lead(
                conn,
                workspace_id=lead.workspace_id,
                user_visit_id=lead.user_visit_id,
                company_name=lead.company_name,
                company_domain=lead.company_domain,
                company_city=lead.company_city,
                company_region=lead.company_region,
                company_country=lead.company_country,
                company_type=lead.company_type,
                is_ai_attributed=lead.is_ai_attributed,
                ai_source=lead.ai_source,
                enrichment_quality=lead.enrichment_quality,
                confidence_score=lead.confidence_score,
                enrichment_cost_cents=lead.enrichment_cost_cents,
                public_signals_count=lead.public_signals_count,
            )
            return Lead.model_validate(dict(result))

    async def insert_contact(self, contact: Contact) -> Contact:
        async with get_conn() as conn:
            result = await queries.insert_contact(
                conn,
                lead_id=contact.lead_id,
                name=contact.name,
                title=contact.title,
                email=contact.email,
                linkedin_url=contact.linkedin_url,
                headline=contact.headline,
                summary=contact.summary,
                location=contact.location,
                title_match_score=contact.title_match_score,
                confidence_score=contact.confidence_score,
                email_verification_status=contact.email_verification_status,
                email_verification_reason=contact.email_verification_reason,
                email_pattern=contact.email_pattern,
                connection_count=contact.connection_count,
                last_activity_date=contact.last_activity_date,
                highlights=contact.highlights,
                enrichment_depth=contact.enrichment_depth,
            )
            return Contact.model_validate(dict(result))

    async def insert_media(self, media: ContactMedia) -> ContactMedia:
        async with get_conn() as conn:
            result = await queries.insert_contact_media(
                conn,
                contact_id=media.contact_id,
                media_type=media.media_type,
                title=media.title,
                url=media.url,
                publication=media.publication,
                published_at=media.published_at,
                snippet=media.snippet,
            )
            return ContactMedia.model_validate(dict(result))

    async def get_lead(self, lead_id: UUID) -> Optional[Lead]:
        async with get_conn() as conn:
            result = await queries.get_lead(conn, lead_id=lead_id)
            if result:
                return Lead.model_validate(dict(result))
            return None

    async def get_contact_by_lead(self, lead_id: UUID) -> Optional[Contact]:
        async with get_conn() as conn:
            result = await queries.get_contact_by_lead(conn, lead_id=lead_id)
            if result:
                return Contact.model_validate(dict(result))
            return None

    async def get_media_by_contact(self, contact_id: UUID) -> List[ContactMedia]:
        async with get_conn() as conn:
            results = await queries.get_media_by_contact(conn, contact_id=contact_id)
            return [ContactMedia.model_validate(dict(row)) for row in results]


class InMemoryLeadRepo(ILeadRepo):
    """In-memory store for tests. Enforces the same FK/unique rules as the schema."""

    def __init__(self, visits: Optional[List[Visit]] = None):
        self.visits: Dict[UUID, Visit] = {v.id: v for v in (visits or [])}
        self.leads: Dict[UUID, Lead] = {}
        self.contacts: Dict[UUID, Contact] = {}
        self.media: Dict[UUID, ContactMedia] = {}
        self.writes: List[str] = []  # table names in write order

    def add_visit(self, visit: Visit) -> Visit:
        self.visits[visit.id] = visit
        return visit

    async def get_visit(self, visit_id: UUID) -> Optional[Visit]:
        return self.visits.get(visit_id)

    async def insert_lead(self, lead: Lead) -> Lead:
        if lead.user_visit_id not in self.visits:
            raise IntegrityError(f"leads.user_visit_id {lead.user_visit_id} not in user_visits")
        stored = lead.model_copy(update={"id": uuid.uuid4(), "created_at": datetime.now(timezone.utc)})
        self.leads[stored.id] = stored
        self.writes.append("leads")
        return stored

    async def insert_contact(self, contact: Contact) -> Contact:
        if contact.lead_id not in self.leads:
            raise IntegrityError(f"contacts.lead_id {contact.lead_id} not in leads")
        if any(c.lead_id == contact.lead_id for c in self.contacts.values()):
            raise IntegrityError(f"duplicate contact for lead {contact.lead_id}")
        stored = contact.model_copy(update={"id": uuid.uuid4(), "created_at": datetime.now(timezone.utc)})
        self.contacts[stored.id] = stored
        self.writes.append("contacts")
        return stored

    async def insert_media(self, media: ContactMedia) -> ContactMedia:
        if media.contact_id not in self.contacts:
            raise IntegrityError(f"contact_media.contact_id {media.contact_id} not in contacts")
        stored = media.model_copy(update={"id": uuid.uuid4(), "created_at": datetime.now(timezone.utc)})
        self.media[stored.id] = stored
        self.writes.append("contact_media")
        return stored

    async def get_lead(self, lead_id: UUID) -> Optional[Lead]:
        return self.leads.get(lead_id)

    async def get_contact_by_lead(self, lead_id: UUID) -> Optional[Contact]:
        return next((c for c in self.contacts.values() if c.lead_id == lead_id), None)

    async def get_media_by_contact(self, contact_id: UUID) -> List[ContactMedia]:
        return [m for m in self.media.values() if m.contact_id == contact_id]


# ============================================================================
# Batch workflow helpers (Postgres only)
# ============================================================================


async def insert_visit(
    ip_address: str,
    workspace_id: Optional[UUID] = None,
    page_url: Optional[str] = None,
    referrer: Optional[str] = None,
    utm_source: Optional[str] = None,
    utm_medium: Optional[str] = None,
    utm_campaign: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Visit:
    """Insert a visit (integration tests and backfills)."""
    async with get_conn() as conn:
        result = await queries.insert_visit(
            conn,
            workspace_id=workspace_id,
            ip_address=ip_address,
            page_url=page_url,
            referrer=referrer,
            utm_source=utm_source,
            utm_medium=utm_medium,
            utm_campaign=utm_campaign,
            user_agent=user_agent,
        )
        return Visit.model_validate(dict(result))


async def delete_visit(visit_id: UUID) -> None:
    """Delete a visit and its lead/contact/media (for testing)."""
    async with get_conn() as conn:
        await queries.delete_visit(conn, visit_id=visit_id)


async def claim_pending_visits(limit: int = 50) -> List[Visit]:
    """Atomically claim pending visits (multi-worker safe).

    Flips enrichment_status pending → processing with FOR UPDATE SKIP LOCKED,
    so each visit gets exactly one enrichment attempt.
    """
    async with get_conn() as conn:
        results = await queries.claim_pending_visits(conn, limit=limit)
        return [Visit.model_validate(dict(row)) for row in results]


async def reset_stale_visit_claims() -> None:
    """Reset visits stuck in processing for > 30 min (crashed workers)."""
    async with get_conn() as conn:
        await queries.reset_stale_visit_claims(conn)


async def mark_visit_enrichment(visit_id: UUID, status: str, cost_cents: int = 0) -> None:
    """Record the terminal enrichment status and cost on a visit."""
    async with get_conn() as conn:
        await queries.mark_visit_enrichment(
            conn, visit_id=visit_id, status=status, cost_cents=cost_cents,
        )


async def get_enrichment_stats() -> Dict[str, int]:
    """Visit counts per enrichment status, plus total cost in cents."""
    async with get_conn() as conn:
        result = await queries.get_enrichment_stats(conn)
        if result:
            return {k: int(v) for k, v in dict(result).items()}
        return {
            "total": 0, "pending": 0, "processing": 0, "enriched": 0, "skip_isp": 0,
            "no_contact": 0, "email_fail": 0, "error": 0, "cost_cents": 0,
        }
