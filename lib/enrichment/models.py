"""Data models for the lead enrichment pipeline.

All of these are transient: scoped to one pipeline invocation. Persisted
rows live in db/models.
"""

import math
from datetime import date
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class OrgType(str, Enum):
    """Organization type of the network owning an IP."""

    BUSINESS = "business"
    ISP = "isp"
    HOSTING = "hosting"
    EDUCATION = "education"
    GOVERNMENT = "government"


class Company(BaseModel):
    """Business identity resolved from a visitor IP."""

    name: str
    domain: str = ""
    city: str = ""
    region: str = ""
    country: str = ""
    org_type: OrgType = OrgType.BUSINESS


class CandidateContact(BaseModel):
    """An unscored profile search hit. content is None until fetched."""

    profile_url: str
    title: str = ""  # search result title, e.g. "Jane Doe - CTO at Acme | LinkedIn"
    snippet: Optional[str] = None
    published_date: Optional[str] = None
    content: Optional[str] = None
    highlights: List[str] = []


class ScoredContact(CandidateContact):
    """A fetched candidate with parsed profile fields and scores."""

    name: str
    job_title: str = ""
    company: str = ""
    headline: Optional[str] = None
    summary: Optional[str] = None
    location: Optional[str] = None
    confidence_score: float = 0.0  # 0.0-1.0
    title_match_score: float = 0.0  # 0.0-1.0
    connection_count: Optional[int] = None
    last_activity_date: Optional[date] = None
    score_notes: List[str] = []  # why it scored the way it did


class EmailCandidate(BaseModel):
    """A generated address plus the pattern that produced it."""

    email: str
    pattern: str  # first, first.last, flast, first_last, ...
    likelihood: float = 0.0


class VerificationStatus(str, Enum):
    VERIFIED = "verified"
    UNVERIFIED = "unverified"
    RISKY = "risky"  # catch-all domain, accepts anything
    UNKNOWN = "unknown"  # probe inconclusive / DNS error
    INVALID = "invalid"  # bad format, no MX, mailbox rejected


class VerifiedEmail(BaseModel):
    """Outcome of verifying one EmailCandidate."""

    email: str
    pattern: str
    status: VerificationStatus
    reason: str = ""
    method: Optional[str] = None  # mx, o365_autodiscover, smtp_rcpt

    @property
    def is_verified(self) -> bool:
        return self.status == VerificationStatus.VERIFIED


class MediaItem(BaseModel):
    """A public mention of a contact (talk, article, press quote, patent)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    media_type: str  # podcast, interview, talk, webinar, blog, article, news, patent
    title: str
    url: str
    publication: Optional[str] = None
    published_at: Optional[str] = None
    snippet: Optional[str] = None


class SocialProfile(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    platform: str
    url: str
    handle: Optional[str] = None


class Insights(BaseModel):
    """Deep-enrichment output for a confirmed contact."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    thought_leadership: List[MediaItem] = []
    press_quotes: List[MediaItem] = []
    patents: List[MediaItem] = []
    social_profiles: List[SocialProfile] = []

    @property
    def total_public_mentions(self) -> int:
        return len(self.thought_leadership) + len(self.press_quotes)

    @property
    def is_empty(self) -> bool:
        return not (
            self.thought_leadership or self.press_quotes
            or self.patents or self.social_profiles
        )

    def media_items(self) -> List[MediaItem]:
        """All items that become contact_media rows."""
        return [*self.thought_leadership, *self.press_quotes, *self.patents]


class CostEntry(BaseModel):
    stage: str
    dollars: float


class CostLedger(BaseModel):
    """Per-invocation record of external-call spend."""

    entries: List[CostEntry] = Field(default_factory=list)

    def add(self, stage: str, dollars: float) -> None:
        if dollars:
            self.entries.append(CostEntry(stage=stage, dollars=dollars))

    @property
    def total(self) -> float:
        return round(sum(e.dollars for e in self.entries), 6)

    @property
    def cents(self) -> int:
        return int(math.ceil(round(self.total * 100, 6)))

    def by_stage(self) -> dict:
        totals: dict = {}
        for e in self.entries:
            totals[e.stage] = round(totals.get(e.stage, 0.0) + e.dollars, 6)
        return totals
