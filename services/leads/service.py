"""Lead Enrichment Service.

Turns one tracked visit into a lead: IP → company → LinkedIn candidates →
scored contact → verified email → optional deep insights → persisted
Lead/Contact/ContactMedia rows.

Uses dependency injection for every collaborator (repo, resolver, Exa
client, scorer, email verifier, deep enricher). Anything not injected is
built from EnrichmentConfig on first use.

Every call returns an EnrichmentResult. Expected negative outcomes map to
skip_isp / no_contact / email_fail; transport faults and persistence
failures map to error.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import List, Optional, Union
from uuid import UUID

import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from db.models.contact import Contact
from db.models.contact_media import ContactMedia
from db.models.lead import Lead
from db.models.visit import Visit
from lib.enrichment.attribution import detect_ai_attribution
from lib.enrichment.config import EnrichmentConfig
from lib.enrichment.deep_enrichment import DeepEnricher
from lib.enrichment.email_discovery import (
    DnsEmailVerifier,
    EmailVerifier,
    generate_patterns,
    verify_first,
)
from lib.enrichment.errors import EnrichmentError, StageTimeoutError
from lib.enrichment.exa_client import ExaClient
from lib.enrichment.ipinfo_client import IPInfoClient
from lib.enrichment.models import Company, CostLedger, Insights, ScoredContact, VerifiedEmail
from lib.enrichment.scoring import ContactScorer
from services.leads.repo import ILeadRepo, LeadRepo


class VisitNotFoundError(EnrichmentError):
    """Visit id is malformed or doesn't exist."""

    stage = "visit"


class PersistenceError(EnrichmentError):
    """Writing the lead/contact/media rows failed."""

    stage = "persistence"


class EnrichmentStatus(str, Enum):
    ENRICHED = "enriched"
    SKIP_ISP = "skip_isp"
    NO_CONTACT = "no_contact"
    EMAIL_FAIL = "email_fail"
    ERROR = "error"


# ============================================================================
# Result models (camelCase on the wire)
# ============================================================================


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CompanySummary(_CamelModel):
    name: str
    domain: str = ""
    city: str = ""
    country: str = ""


class ContactSummary(_CamelModel):
    name: str
    title: str = ""
    email: str
    profile_url: str
    title_match_score: float
    confidence_score: float
    highlights: List[str] = []


class EnrichmentResult(_CamelModel):
    """Tagged outcome of one enrichment run. success is True only for enriched."""

    success: bool
    status: EnrichmentStatus
    lead_id: Optional[UUID] = None
    company: Optional[CompanySummary] = None
    contact: Optional[ContactSummary] = None
    insights: Optional[dict] = None
    cost: Optional[float] = None
    error: Optional[str] = None
    cost_cents: int = Field(default=0, exclude=True)  # everything spent, any status

    def to_response(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class _Outcome(BaseModel):
    """What the pipeline found, before persistence."""

    status: EnrichmentStatus
    company: Optional[Company] = None
    contact: Optional[ScoredContact] = None
    email: Optional[VerifiedEmail] = None
    insights: Optional[Insights] = None
    message: Optional[str] = None


# ============================================================================
# Service
# ============================================================================


class ILeadEnrichmentService(ABC):
    """Interface for the lead enrichment pipeline."""

    @abstractmethod
    async def enrich(
        self,
        visit_id: Union[UUID, str],
        role_description: Optional[str] = None,
    ) -> EnrichmentResult:
        """Enrich one visit. Never raises."""
        pass


class LeadEnrichmentService(ILeadEnrichmentService):
    """Lead enrichment pipeline implementation."""

    def __init__(
        self,
        repo: Optional[ILeadRepo] = None,
        resolver: Optional[IPInfoClient] = None,
        exa: Optional[ExaClient] = None,
        scorer: Optional[ContactScorer] = None,
        verifier: Optional[EmailVerifier] = None,
        deep_enricher: Optional[DeepEnricher] = None,
        config: Optional[EnrichmentConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.config = config or EnrichmentConfig.from_env()
        self.repo = repo or LeadRepo()
        self._resolver = resolver
        self._exa = exa
        self._deep_enricher = deep_enricher
        self._verifier = verifier
        self.scorer = scorer or ContactScorer(min_confidence=self.config.min_confidence)
        self._http = http_client
        self._owns_http = False

    # ------------------------------------------------------------------
    # Default collaborators
    # ------------------------------------------------------------------

    def _http_client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(follow_redirects=True)
            self._owns_http = True
        return self._http

    @property
    def resolver(self) -> IPInfoClient:
        if self._resolver is None:
            self._resolver = IPInfoClient(
                self._http_client(),
                token=self.config.ipinfo_token,
                timeout=self.config.ip_lookup_timeout,
                allowed_org_types=self.config.allowed_org_types,
            )
        return self._resolver

    @property
    def exa(self) -> ExaClient:
        if self._exa is None:
            self._exa = ExaClient(
                self._http_client(),
                api_key=self.config.exa_api_key,
                search_timeout=self.config.search_timeout,
                contents_timeout=self.config.contents_timeout,
                num_results=self.config.search_num_results,
                costs=self.config.costs,
            )
        return self._exa

    def _run_verifier(self) -> EmailVerifier:
        """Injected verifier, else a fresh DnsEmailVerifier so its per-domain cache lives for one run."""
        if self._verifier is not None:
            return self._verifier
        return DnsEmailVerifier(
            self._http_client(),
            probe_timeout=self.config.email_probe_timeout,
            o365_probe=self.config.o365_probe,
            smtp_probe=self.config.smtp_probe,
        )

    @property
    def deep_enricher(self) -> DeepEnricher:
        if self._deep_enricher is None:
            self._deep_enricher = DeepEnricher(
                self.exa,
                timeout=self.config.deep_enrichment_timeout,
                costs=self.config.costs,
            )
        return self._deep_enricher

    async def aclose(self) -> None:
        """Close the HTTP client if this service created it."""
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None
            self._owns_http = False

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def enrich(
        self,
        visit_id: Union[UUID, str],
        role_description: Optional[str] = None,
    ) -> EnrichmentResult:
        role = (role_description or "").strip() or self.config.default_role_description
        ledger = CostLedger()
        tag = f"[{visit_id}]"
        t0 = time.monotonic()

        try:
            visit = await self._load_visit(visit_id)
            tag = f"[{visit.id}|{visit.ip_address}]"
            outcome = await self._run(visit, role, ledger, tag)
            lead_id = await self._persist(visit, outcome, ledger, tag)
        except Exception as e:
            elapsed = time.monotonic() - t0
            logger.error(f"{tag} Enrichment failed: {type(e).__name__}: {e} [{elapsed:.1f}s]")
            return EnrichmentResult(
                success=False,
                status=EnrichmentStatus.ERROR,
                error=str(e) or type(e).__name__,
                cost_cents=ledger.cents,
            )

        elapsed = time.monotonic() - t0
        logger.info(
            f"{tag} Done: {outcome.status.value} "
            f"(cost=${ledger.total:.4f}) [{elapsed:.1f}s]"
        )
        return self._result(outcome, lead_id, ledger)

    async def _load_visit(self, visit_id: Union[UUID, str]) -> Visit:
        try:
            parsed = visit_id if isinstance(visit_id, UUID) else UUID(str(visit_id))
        except ValueError:
            raise VisitNotFoundError(f"Visit not found: {visit_id}")
        visit = await self.repo.get_visit(parsed)
        if visit is None:
            raise VisitNotFoundError(f"Visit not found: {visit_id}")
        return visit

    async def _stage(self, stage: str, timeout: float, coro):
        """Await coro with a stage timeout, surfacing timeouts as StageTimeoutError."""
        try:
            return await asyncio.wait_for(coro, timeout=timeout)
        except asyncio.TimeoutError:
            raise StageTimeoutError(stage, timeout) from None

    async def _run(self, visit: Visit, role: str, ledger: CostLedger, tag: str) -> _Outcome:
        cfg = self.config

        # 1. IP → company
        t0 = time.monotonic()
        company = await self._stage("ip_lookup", cfg.ip_lookup_timeout, self.resolver.resolve(visit.ip_address))
        ledger.add("ip_lookup", cfg.costs.ip_lookup)
        elapsed = time.monotonic() - t0
        if company is None:
            logger.info(f"{tag} [1/5 IP] Not a business IP, skipping [{elapsed:.1f}s]")
            return _Outcome(status=EnrichmentStatus.SKIP_ISP, message="IP does not belong to a business")
        logger.info(f"{tag} [1/5 IP] HIT {company.name} ({company.domain or 'no domain'}) [{elapsed:.1f}s]")

        # 2. Company + role → candidates → fetched profiles
        t0 = time.monotonic()
        logger.debug(f"{tag} [2/5 Search] {role!r} at {company.name}")
        candidates = await self._stage(
            "search", cfg.search_timeout, self.exa.search_profiles(company.name, role, ledger=ledger)
        )
        if not candidates:
            elapsed = time.monotonic() - t0
            logger.info(f"{tag} [2/5 Search] No profiles found [{elapsed:.1f}s]")
            return _Outcome(
                status=EnrichmentStatus.NO_CONTACT,
                company=company,
                message=f"No LinkedIn profiles found for {role!r} at {company.name}",
            )
        fetched = await self._stage(
            "contents", cfg.contents_timeout, self.exa.fetch_contents(candidates, ledger=ledger)
        )
        elapsed = time.monotonic() - t0
        if not fetched:
            logger.info(f"{tag} [2/5 Search] {len(candidates)} profiles, none fetched [{elapsed:.1f}s]")
            return _Outcome(
                status=EnrichmentStatus.NO_CONTACT,
                company=company,
                message="Failed to fetch profile contents",
            )
        logger.info(f"{tag} [2/5 Search] {len(fetched)}/{len(candidates)} profiles fetched [{elapsed:.1f}s]")

        # 3. Score and select
        location_hint = company.city or None
        best = self.scorer.score_and_select(fetched, company.name, location_hint, role)
        if best is None:
            logger.info(f"{tag} [3/5 Score] No candidate cleared {self.scorer.min_confidence}")
            return _Outcome(
                status=EnrichmentStatus.NO_CONTACT,
                company=company,
                message=f"No contacts met minimum confidence threshold ({self.scorer.min_confidence})",
            )
        logger.info(
            f"{tag} [3/5 Score] HIT {best.name}, {best.job_title or '?'} "
            f"(confidence={best.confidence_score:.2f}, title={best.title_match_score:.2f})"
        )

        # 4. Email
        t0 = time.monotonic()
        patterns = generate_patterns(best.name, company.domain)
        if not patterns:
            logger.info(f"{tag} [4/5 Email] No patterns for {best.name!r} @ {company.domain!r}")
            return _Outcome(
                status=EnrichmentStatus.EMAIL_FAIL,
                company=company,
                contact=best,
                message=f"Could not generate email patterns for {best.name}",
            )
        verified = await self._stage(
            "email_verification", cfg.email_stage_timeout, verify_first(patterns, self._run_verifier())
        )
        ledger.add("email_verification", cfg.costs.email_verification)
        elapsed = time.monotonic() - t0
        if verified is None:
            logger.info(f"{tag} [4/5 Email] None of {len(patterns)} patterns verified [{elapsed:.1f}s]")
            return _Outcome(
                status=EnrichmentStatus.EMAIL_FAIL,
                company=company,
                contact=best,
                message="Email verification failed",
            )
        logger.info(f"{tag} [4/5 Email] HIT {verified.email} ({verified.reason}) [{elapsed:.1f}s]")

        # 5. Deep enrichment (best effort)
        insights = await self._deep_enrich(best, company, ledger, tag)

        return _Outcome(
            status=EnrichmentStatus.ENRICHED,
            company=company,
            contact=best,
            email=verified,
            insights=insights,
        )

    async def _deep_enrich(
        self,
        contact: ScoredContact,
        company: Company,
        ledger: CostLedger,
        tag: str,
    ) -> Optional[Insights]:
        if not self.config.deep_enrichment:
            return None
        t0 = time.monotonic()
        try:
            insights = await self.deep_enricher.deep_enrich(
                contact.name, company.name, contact.job_title, ledger=ledger,
            )
        except Exception as e:
            elapsed = time.monotonic() - t0
            logger.warning(f"{tag} [5/5 Deep] Error: {e} [{elapsed:.1f}s]")
            return None
        elapsed = time.monotonic() - t0
        if insights is None:
            logger.info(f"{tag} [5/5 Deep] No public signals [{elapsed:.1f}s]")
        else:
            logger.info(
                f"{tag} [5/5 Deep] HIT {insights.total_public_mentions} mentions, "
                f"{len(insights.patents)} patents [{elapsed:.1f}s]"
            )
        return insights

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def _persist(
        self,
        visit: Visit,
        outcome: _Outcome,
        ledger: CostLedger,
        tag: str,
    ) -> Optional[UUID]:
        """Write Lead → Contact → ContactMedia once, after the terminal status is known."""
        if outcome.status in (EnrichmentStatus.SKIP_ISP, EnrichmentStatus.ERROR) or outcome.company is None:
            return None

        enriched = outcome.status == EnrichmentStatus.ENRICHED
        insights = outcome.insights if enriched else None
        is_ai, ai_source = detect_ai_attribution(visit.utm_source, visit.utm_medium, visit.referrer)
        company = outcome.company

        if not enriched:
            quality = "company_only"
        elif insights is not None:
            quality = "enhanced"
        else:
            quality = "basic"

        lead = Lead(
            workspace_id=visit.workspace_id,
            user_visit_id=visit.id,
            company_name=company.name,
            company_domain=company.domain or None,
            company_city=company.city or None,
            company_region=company.region or None,
            company_country=company.country or None,
            company_type=company.org_type.value,
            is_ai_attributed=is_ai,
            ai_source=ai_source,
            enrichment_quality=quality,
            confidence_score=outcome.contact.confidence_score if enriched else None,
            enrichment_cost_cents=ledger.cents,
            public_signals_count=insights.total_public_mentions if insights else 0,
        )
        try:
            stored_lead = await self.repo.insert_lead(lead)
        except Exception as e:
            raise PersistenceError(f"Failed to save lead: {e}") from e
        logger.debug(f"{tag} Saved lead {stored_lead.id} ({quality})")

        if not enriched:
            return stored_lead.id

        contact = outcome.contact
        email = outcome.email
        try:
            stored_contact = await self.repo.insert_contact(Contact(
                lead_id=stored_lead.id,
                name=contact.name,
                title=contact.job_title or None,
                email=email.email,
                linkedin_url=contact.profile_url,
                headline=contact.headline,
                summary=contact.summary,
                location=contact.location,
                title_match_score=contact.title_match_score,
                confidence_score=contact.confidence_score,
                email_verification_status=email.status.value,
                email_verification_reason=email.reason or None,
                email_pattern=email.pattern,
                connection_count=contact.connection_count,
                last_activity_date=contact.last_activity_date,
                highlights=contact.highlights,
                enrichment_depth="enhanced" if insights else "basic",
            ))
        except Exception as e:
            raise PersistenceError(f"Failed to save contact: {e}") from e

        if insights:
            try:
                for item in insights.media_items():
                    await self.repo.insert_media(ContactMedia(
                        contact_id=stored_contact.id,
                        media_type=item.media_type,
                        title=item.title,
                        url=item.url,
                        publication=item.publication,
                        published_at=_parse_timestamp(item.published_at),
                        snippet=item.snippet,
                    ))
            except Exception as e:
                raise PersistenceError(f"Failed to save contact media: {e}") from e

        return stored_lead.id

    def _result(self, outcome: _Outcome, lead_id: Optional[UUID], ledger: CostLedger) -> EnrichmentResult:
        enriched = outcome.status == EnrichmentStatus.ENRICHED
        company = None
        if outcome.company is not None:
            company = CompanySummary(
                name=outcome.company.name,
                domain=outcome.company.domain,
                city=outcome.company.city,
                country=outcome.company.country,
            )
        contact = None
        if enriched:
            contact = ContactSummary(
                name=outcome.contact.name,
                title=outcome.contact.job_title,
                email=outcome.email.email,
                profile_url=outcome.contact.profile_url,
                title_match_score=outcome.contact.title_match_score,
                confidence_score=outcome.contact.confidence_score,
                highlights=outcome.contact.highlights,
            )
        insights = None
        if enriched and outcome.insights is not None:
            insights = outcome.insights.model_dump(mode="json", by_alias=True)
            insights["totalPublicMentions"] = outcome.insights.total_public_mentions

        return EnrichmentResult(
            success=enriched,
            status=outcome.status,
            lead_id=lead_id,
            company=company,
            contact=contact,
            insights=insights,
            cost=ledger.total if enriched else None,
            error=outcome.message if not enriched else None,
            cost_cents=ledger.cents,
        )


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
