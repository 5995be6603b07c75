"""Lead enrichment library.

Turns an anonymous visitor IP into a named, verified contact:
  1. IP → company (ipinfo.io, business networks only)
  2. Company + role → LinkedIn profile candidates (Exa search)
  3. Batched profile content fetch (Exa contents)
  4. Scoring and selection above the 0.3 confidence floor
  5. Email pattern generation + verification (DNS MX, O365, SMTP)
  6. Best-effort deep enrichment (talks, press, patents, social)

Clients and models only. Orchestration and persistence live in services/leads.
"""

from lib.enrichment.attribution import detect_ai_attribution, detect_ai_source
from lib.enrichment.config import EnrichmentConfig, StageCosts
from lib.enrichment.deep_enrichment import DeepEnricher
from lib.enrichment.email_discovery import (
    DnsEmailVerifier,
    EmailVerifier,
    generate_patterns,
    iter_verifications,
    verify_first,
)
from lib.enrichment.errors import EnrichmentError, ExaError, ResolverError, StageTimeoutError
from lib.enrichment.exa_client import ExaClient
from lib.enrichment.ipinfo_client import IPInfoClient
from lib.enrichment.models import (
    CandidateContact,
    Company,
    CostLedger,
    EmailCandidate,
    Insights,
    MediaItem,
    OrgType,
    ScoredContact,
    SocialProfile,
    VerificationStatus,
    VerifiedEmail,
)
from lib.enrichment.scoring import ContactScorer

__all__ = [
    # Config
    "EnrichmentConfig",
    "StageCosts",
    # Errors
    "EnrichmentError",
    "ResolverError",
    "ExaError",
    "StageTimeoutError",
    # Models
    "OrgType",
    "Company",
    "CandidateContact",
    "ScoredContact",
    "EmailCandidate",
    "VerificationStatus",
    "VerifiedEmail",
    "MediaItem",
    "SocialProfile",
    "Insights",
    "CostLedger",
    # Clients
    "IPInfoClient",
    "ExaClient",
    "ContactScorer",
    "EmailVerifier",
    "DnsEmailVerifier",
    "generate_patterns",
    "iter_verifications",
    "verify_first",
    "DeepEnricher",
    "detect_ai_attribution",
    "detect_ai_source",
]
