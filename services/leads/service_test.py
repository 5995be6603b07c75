"""Tests for the lead enrichment pipeline (in-memory repo, mocked clients)."""

import asyncio
import uuid
from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest

from db.models.visit import Visit
from lib.enrichment.config import EnrichmentConfig
from lib.enrichment.email_discovery import DnsEmailVerifier
from lib.enrichment.errors import ExaError, ResolverError
from lib.enrichment.models import (
    CandidateContact,
    Company,
    EmailCandidate,
    Insights,
    MediaItem,
    OrgType,
    ScoredContact,
    VerificationStatus,
    VerifiedEmail,
)
from lib.enrichment.scoring import ContactScorer
from services.leads.repo import InMemoryLeadRepo
from services.leads.service import EnrichmentStatus, LeadEnrichmentService


ACME = Company(
    name="Acme Corp", domain="acme.com", city="San Francisco",
    country="US", org_type=OrgType.BUSINESS,
)
JANE_URL = "https://www.linkedin.com/in/janedoe"


class ScriptedVerifier:
    """Verifier returning a fixed status per address; records calls."""

    def __init__(self, statuses: dict):
        self.statuses = statuses
        self.calls = []

    async def verify(self, candidate: EmailCandidate) -> VerifiedEmail:
        self.calls.append(candidate.email)
        status = self.statuses.get(candidate.email, VerificationStatus.INVALID)
        return VerifiedEmail(
            email=candidate.email, pattern=candidate.pattern, status=status, reason="scripted",
        )


def _visit(**overrides) -> Visit:
    data = dict(
        id=uuid.uuid4(),
        workspace_id=uuid.uuid4(),
        ip_address="203.0.113.7",
        page_url="https://example.com/pricing",
    )
    data.update(overrides)
    return Visit(**data)


def _scored(confidence: float, title_match: float = 0.9) -> ScoredContact:
    return ScoredContact(
        profile_url=JANE_URL,
        title="Jane Doe - VP Engineering at Acme Corp | LinkedIn",
        content="Jane Doe\nVP Engineering at Acme Corp",
        highlights=["Leads platform engineering at Acme"],
        name="Jane Doe",
        job_title="VP Engineering",
        company="Acme Corp",
        headline="VP Engineering at Acme Corp",
        location="San Francisco Bay Area",
        confidence_score=confidence,
        title_match_score=title_match,
        last_activity_date=date(2026, 1, 1),
    )


def _service(
    visit: Visit,
    company=ACME,
    candidates=None,
    fetched=None,
    confidence: float = 0.85,
    verifier=None,
    insights=None,
    **config,
):
    repo = InMemoryLeadRepo([visit])

    resolver = MagicMock()
    resolver.resolve = AsyncMock(return_value=company)

    if candidates is None:
        candidates = [CandidateContact(profile_url=JANE_URL, title="Jane Doe - VP Engineering at Acme Corp | LinkedIn")]
    if fetched is None:
        fetched = [c.model_copy(update={"content": "Jane Doe\nVP Engineering at Acme Corp"}) for c in candidates]
    exa = MagicMock()
    exa.search_profiles = AsyncMock(return_value=candidates)
    exa.fetch_contents = AsyncMock(return_value=fetched)

    scorer = ContactScorer()
    scorer.score = MagicMock(return_value=_scored(confidence))

    if verifier is None:
        verifier = ScriptedVerifier({"jane.doe@acme.com": VerificationStatus.VERIFIED})

    deep = MagicMock()
    deep.deep_enrich = AsyncMock(return_value=insights)

    service = LeadEnrichmentService(
        repo=repo,
        resolver=resolver,
        exa=exa,
        scorer=scorer,
        verifier=verifier,
        deep_enricher=deep,
        config=EnrichmentConfig(ipinfo_token="test", exa_api_key="test", **config),
    )
    return service, repo


@pytest.mark.no_db
class TestScenarios:

    @pytest.mark.asyncio
    async def test_a_hosting_ip_is_skip_isp(self):
        visit = _visit(ip_address="192.0.2.1")
        service, repo = _service(visit, company=None)

        result = await service.enrich(visit.id)

        assert result.status == EnrichmentStatus.SKIP_ISP
        assert result.success is False
        assert repo.leads == {}
        service.exa.search_profiles.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_b_no_profiles_is_no_contact(self):
        visit = _visit()
        company = Company(name="Acme", domain="acme.com")
        service, repo = _service(visit, company=company, candidates=[])

        result = await service.enrich(visit.id, "Chief Astronaut")

        assert result.status == EnrichmentStatus.NO_CONTACT
        assert "No LinkedIn profiles found" in result.error
        assert repo.contacts == {}
        args = service.exa.search_profiles.await_args
        assert args.args == ("Acme", "Chief Astronaut")

    @pytest.mark.asyncio
    async def test_c_below_floor_is_no_contact(self):
        visit = _visit()
        service, repo = _service(visit, confidence=0.25)

        result = await service.enrich(visit.id)

        assert result.status == EnrichmentStatus.NO_CONTACT
        assert "0.3" in result.error
        assert repo.contacts == {}

    @pytest.mark.asyncio
    async def test_d_verification_stops_at_first_verified(self):
        visit = _visit()
        verifier = ScriptedVerifier({
            "jane@acme.com": VerificationStatus.RISKY,
            "jane.doe@acme.com": VerificationStatus.VERIFIED,
            "jdoe@acme.com": VerificationStatus.VERIFIED,
        })
        service, repo = _service(visit, verifier=verifier)

        result = await service.enrich(visit.id)

        assert result.contact.email == "jane.doe@acme.com"
        assert verifier.calls == ["jane@acme.com", "jane.doe@acme.com"]

    @pytest.mark.asyncio
    async def test_e_full_success(self):
        visit = _visit()
        service, repo = _service(visit, confidence=0.85)

        result = await service.enrich(visit.id)

        assert result.status == EnrichmentStatus.ENRICHED
        assert result.success is True
        assert result.error is None
        lead = await repo.get_lead(result.lead_id)
        assert lead.user_visit_id == visit.id
        assert lead.company_name == "Acme Corp"
        assert lead.enrichment_quality == "basic"
        contact = await repo.get_contact_by_lead(lead.id)
        assert contact.email == "jane.doe@acme.com"
        assert contact.confidence_score == 0.85
        assert result.contact.confidence_score == 0.85
        assert repo.writes == ["leads", "contacts"]


@pytest.mark.no_db
class TestEnrichedRun:

    @pytest.mark.asyncio
    async def test_round_trip(self):
        visit = _visit()
        service, repo = _service(visit)

        result = await service.enrich(visit.id)

        lead = await repo.get_lead(result.lead_id)
        contact = await repo.get_contact_by_lead(lead.id)
        assert lead.company_name == result.company.name
        assert lead.company_domain == result.company.domain
        assert lead.company_city == result.company.city
        assert lead.company_country == result.company.country
        assert contact.name == result.contact.name
        assert contact.title == result.contact.title
        assert contact.email == result.contact.email
        assert contact.linkedin_url == result.contact.profile_url
        assert contact.title_match_score == result.contact.title_match_score
        assert contact.confidence_score == result.contact.confidence_score
        assert contact.highlights == result.contact.highlights

    @pytest.mark.asyncio
    async def test_cost_reported(self):
        visit = _visit()
        service, repo = _service(visit)

        result = await service.enrich(visit.id)

        # Mocked Exa records nothing; only the email estimate lands in the ledger
        assert result.cost == pytest.approx(0.003)
        assert result.cost_cents == 1
        assert "costCents" not in result.to_response()
        lead = await repo.get_lead(result.lead_id)
        assert lead.enrichment_cost_cents == 1

    @pytest.mark.asyncio
    async def test_insights_make_lead_enhanced(self):
        visit = _visit()
        insights = Insights(
            thought_leadership=[MediaItem(
                media_type="podcast", title="Scale Podcast", url="https://pod.example.com/1",
                published_at="2026-02-01",
            )],
            press_quotes=[MediaItem(
                media_type="news", title="Acme raises", url="https://techcrunch.com/x",
                publication="techcrunch",
            )],
        )
        service, repo = _service(visit, insights=insights)

        result = await service.enrich(visit.id)

        assert result.status == EnrichmentStatus.ENRICHED
        assert repo.writes == ["leads", "contacts", "contact_media", "contact_media"]
        lead = await repo.get_lead(result.lead_id)
        assert lead.enrichment_quality == "enhanced"
        assert lead.public_signals_count == 2
        contact = await repo.get_contact_by_lead(lead.id)
        assert contact.enrichment_depth == "enhanced"
        media = await repo.get_media_by_contact(contact.id)
        assert {m.media_type for m in media} == {"podcast", "news"}
        assert result.insights["totalPublicMentions"] == 2
        assert result.insights["thoughtLeadership"][0]["mediaType"] == "podcast"

    @pytest.mark.asyncio
    async def test_deep_enrichment_failure_is_swallowed(self):
        visit = _visit()
        service, repo = _service(visit)
        service.deep_enricher.deep_enrich = AsyncMock(side_effect=RuntimeError("boom"))

        result = await service.enrich(visit.id)

        assert result.status == EnrichmentStatus.ENRICHED
        assert result.insights is None

    @pytest.mark.asyncio
    async def test_deep_enrichment_disabled(self):
        visit = _visit()
        service, repo = _service(visit, deep_enrichment=False)

        result = await service.enrich(visit.id)

        assert result.status == EnrichmentStatus.ENRICHED
        service.deep_enricher.deep_enrich.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ai_attribution_recorded(self):
        visit = _visit(utm_source="chatgpt")
        service, repo = _service(visit)

        result = await service.enrich(visit.id)

        lead = await repo.get_lead(result.lead_id)
        assert lead.is_ai_attributed is True
        assert lead.ai_source == "chatgpt"

    @pytest.mark.asyncio
    async def test_response_is_camel_case(self):
        visit = _visit()
        service, repo = _service(visit)

        body = (await service.enrich(visit.id)).to_response()

        assert body["success"] is True
        assert body["status"] == "enriched"
        assert body["leadId"] == str(body["leadId"])
        assert body["contact"]["profileUrl"] == JANE_URL
        assert body["contact"]["confidenceScore"] == 0.85
        assert "error" not in body


@pytest.mark.no_db
class TestNegativeOutcomes:

    @pytest.mark.asyncio
    async def test_blank_role_uses_default(self):
        visit = _visit()
        service, repo = _service(visit, candidates=[])

        await service.enrich(visit.id, "   ")

        args = service.exa.search_profiles.await_args
        assert args.args == ("Acme Corp", "Senior executive or decision maker")

    @pytest.mark.asyncio
    async def test_nothing_fetched_is_no_contact(self):
        visit = _visit()
        service, repo = _service(visit, fetched=[])

        result = await service.enrich(visit.id)

        assert result.status == EnrichmentStatus.NO_CONTACT
        assert "Failed to fetch profile contents" in result.error

    @pytest.mark.asyncio
    async def test_no_contact_persists_company_only_lead(self):
        visit = _visit()
        service, repo = _service(visit, candidates=[])

        result = await service.enrich(visit.id)

        lead = await repo.get_lead(result.lead_id)
        assert lead.enrichment_quality == "company_only"
        assert lead.confidence_score is None
        assert repo.writes == ["leads"]

    @pytest.mark.asyncio
    async def test_nothing_verifies_is_email_fail(self):
        visit = _visit()
        verifier = ScriptedVerifier({"jane@acme.com": VerificationStatus.RISKY})
        service, repo = _service(visit, verifier=verifier)

        result = await service.enrich(visit.id)

        assert result.status == EnrichmentStatus.EMAIL_FAIL
        assert result.error == "Email verification failed"
        assert len(verifier.calls) == 8
        assert repo.contacts == {}
        assert repo.writes == ["leads"]

    @pytest.mark.asyncio
    async def test_no_domain_is_email_fail(self):
        visit = _visit()
        verifier = ScriptedVerifier({})
        service, repo = _service(visit, company=Company(name="Acme Corp", domain=""), verifier=verifier)

        result = await service.enrich(visit.id)

        assert result.status == EnrichmentStatus.EMAIL_FAIL
        assert verifier.calls == []


@pytest.mark.no_db
class TestErrors:

    @pytest.mark.asyncio
    async def test_missing_visit(self):
        service, repo = _service(_visit())

        result = await service.enrich(uuid.uuid4())

        assert result.status == EnrichmentStatus.ERROR
        assert "Visit not found" in result.error
        assert repo.leads == {}

    @pytest.mark.asyncio
    async def test_malformed_visit_id(self):
        service, repo = _service(_visit())

        result = await service.enrich("not-a-uuid")

        assert result.status == EnrichmentStatus.ERROR
        assert result.success is False

    @pytest.mark.asyncio
    async def test_resolver_failure_is_error(self):
        visit = _visit()
        service, repo = _service(visit)
        service.resolver.resolve = AsyncMock(side_effect=ResolverError("IPInfo returned HTTP 403"))

        result = await service.enrich(visit.id)

        assert result.status == EnrichmentStatus.ERROR
        assert "403" in result.error
        assert repo.leads == {}

    @pytest.mark.asyncio
    async def test_resolver_timeout_is_error(self):
        visit = _visit()
        service, repo = _service(visit, ip_lookup_timeout=0.01)

        async def slow(ip):
            await asyncio.sleep(1)

        service.resolver.resolve = slow
        result = await service.enrich(visit.id)

        assert result.status == EnrichmentStatus.ERROR
        assert "timed out" in result.error

    @pytest.mark.asyncio
    async def test_search_failure_is_error(self):
        visit = _visit()
        service, repo = _service(visit)
        service.exa.search_profiles = AsyncMock(side_effect=ExaError("Exa /search returned HTTP 500"))

        result = await service.enrich(visit.id)

        assert result.status == EnrichmentStatus.ERROR
        assert repo.leads == {}

    @pytest.mark.asyncio
    async def test_persistence_failure_is_error(self):
        visit = _visit()
        service, repo = _service(visit)
        repo.insert_contact = AsyncMock(side_effect=RuntimeError("connection reset"))

        result = await service.enrich(visit.id)

        assert result.status == EnrichmentStatus.ERROR
        assert "Failed to save contact" in result.error
        assert "connection reset" in result.error

    @pytest.mark.asyncio
    async def test_missing_credentials_is_error(self):
        visit = _visit()
        service = LeadEnrichmentService(
            repo=InMemoryLeadRepo([visit]),
            config=EnrichmentConfig(ipinfo_token=None, exa_api_key=None),
        )

        result = await service.enrich(visit.id)
        await service.aclose()

        assert result.status == EnrichmentStatus.ERROR
        assert "IPINFO_TOKEN" in result.error


@pytest.mark.no_db
class TestDefaultCollaborators:

    @pytest.mark.asyncio
    async def test_default_verifier_is_fresh_per_run(self):
        service = LeadEnrichmentService(
            repo=InMemoryLeadRepo(),
            config=EnrichmentConfig(ipinfo_token="test", exa_api_key="test"),
        )
        first = service._run_verifier()
        second = service._run_verifier()
        await service.aclose()

        assert isinstance(first, DnsEmailVerifier)
        assert first is not second

    def test_injected_verifier_is_reused(self):
        verifier = ScriptedVerifier({})
        service, _ = _service(_visit(), verifier=verifier)
        assert service._run_verifier() is verifier
