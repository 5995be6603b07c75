"""
Enrichment pipeline configuration.
"""

import os
from typing import Optional, Set

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

DEFAULT_ROLE_DESCRIPTION = "Senior executive or decision maker"
MIN_CONFIDENCE = 0.3


class StageCosts(BaseModel):
    """Estimated USD cost per external call, used when a provider
    doesn't report its own cost."""

    ip_lookup: float = 0.0
    search: float = 0.0275
    contents: float = 0.005
    deep_enrichment: float = 0.033
    email_verification: float = 0.003


class EnrichmentConfig(BaseModel):
    """
    Runtime configuration for the lead enrichment pipeline.

    Defaults match production. Override per-field via LEADS_* env vars
    (see from_env) or by constructing directly in tests.
    """

    # Credentials
    ipinfo_token: Optional[str] = Field(default=None, description="ipinfo.io API token")
    exa_api_key: Optional[str] = Field(default=None, description="Exa API key")

    # Targeting
    default_role_description: str = Field(
        default=DEFAULT_ROLE_DESCRIPTION,
        description="ICP description used when the caller passes none",
    )
    search_num_results: int = Field(default=5, description="Profiles requested per search")
    min_confidence: float = Field(
        default=MIN_CONFIDENCE, description="Hard floor for contact selection"
    )
    allowed_org_types: Set[str] = Field(
        default_factory=lambda: {"business"},
        description="IP org types that resolve to a company",
    )

    # Timeouts (seconds)
    ip_lookup_timeout: float = Field(default=5.0)
    search_timeout: float = Field(default=20.0)
    contents_timeout: float = Field(default=30.0)
    email_probe_timeout: float = Field(default=10.0, description="Per DNS/O365/SMTP probe")
    email_stage_timeout: float = Field(default=60.0, description="Whole verification loop")
    deep_enrichment_timeout: float = Field(default=25.0)

    # Email verification
    smtp_probe: bool = Field(
        default=False,
        description="Probe MX hosts with SMTP RCPT TO (needs outbound port 25)",
    )
    o365_probe: bool = Field(default=True, description="Use O365 GetCredentialType for Microsoft MX")

    # Deep enrichment
    deep_enrichment: bool = Field(default=True, description="Run best-effort deep enrichment")

    costs: StageCosts = Field(default_factory=StageCosts)

    @classmethod
    def from_env(cls) -> "EnrichmentConfig":
        """Build config from environment variables."""
        overrides = {}
        if os.getenv("LEADS_SEARCH_NUM_RESULTS"):
            overrides["search_num_results"] = int(os.environ["LEADS_SEARCH_NUM_RESULTS"])
        if os.getenv("LEADS_MIN_CONFIDENCE"):
            overrides["min_confidence"] = float(os.environ["LEADS_MIN_CONFIDENCE"])
        if os.getenv("LEADS_ALLOWED_ORG_TYPES"):
            overrides["allowed_org_types"] = {
                t.strip().lower() for t in os.environ["LEADS_ALLOWED_ORG_TYPES"].split(",") if t.strip()
            }
        if os.getenv("LEADS_SMTP_PROBE"):
            overrides["smtp_probe"] = os.environ["LEADS_SMTP_PROBE"].lower() in ("1", "true", "yes")
        if os.getenv("LEADS_DEEP_ENRICHMENT"):
            overrides["deep_enrichment"] = os.environ["LEADS_DEEP_ENRICHMENT"].lower() in ("1", "true", "yes")

        return cls(
            ipinfo_token=os.getenv("IPINFO_TOKEN"),
            exa_api_key=os.getenv("EXA_API_KEY"),
            **overrides,
        )
