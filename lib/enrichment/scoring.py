"""Contact scoring and selection.

Parses fetched LinkedIn profile pages, scores each one against the target
company and role, and picks the single best candidate that clears the
confidence floor.

Confidence = weighted sum of four sub-scores, each in [0, 1]:
    title     0.55  role description vs title/headline/body
    company   0.30  currently employed at the target company
    location  0.10  only when a location hint is given
    recency   0.05  how recent the latest dated activity is

Without a location hint the location weight is spread proportionally over
the other three, so the weights always sum to 1.
"""

import re
from datetime import date, datetime
from typing import Dict, List, Optional

from loguru import logger

from lib.enrichment.config import MIN_CONFIDENCE
from lib.enrichment.models import CandidateContact, ScoredContact

DEFAULT_WEIGHTS = {
    "title": 0.55,
    "company": 0.30,
    "location": 0.10,
    "recency": 0.05,
}

RECENCY_WINDOW_YEARS = 5

# Role concept → keywords. A concept is "requested" when the role description
# hits one of its keywords, and "matched" when the profile does.
CONCEPTS: Dict[str, List[str]] = {
    "product": ["product", "pm", "offering"],
    "technology": ["technology", "tech", "technical", "software", "hardware", "cto"],
    "executive": [
        "executive", "chief", "ceo", "cfo", "coo", "cto", "cmo", "vp",
        "vice president", "svp", "evp", "head", "director", "president",
        "founder", "owner",
    ],
    "senior": ["senior", "sr", "principal", "lead"],
    "design": ["design", "ux", "ui", "user experience", "creative"],
    "marketing": ["marketing", "growth", "brand", "demand", "cmo"],
    "sales": ["sales", "revenue", "business development", "bd", "account executive"],
    "engineering": ["engineering", "engineer", "development", "developer", "dev"],
    "finance": ["finance", "financial", "cfo", "accounting", "controller"],
    "operations": ["operations", "ops", "coo", "supply chain"],
    "decisions": ["decision", "strategy", "strategic", "leadership", "leader"],
}

STOPWORDS = {"with", "that", "from", "their", "have", "this", "role", "someone", "person", "people"}

FORMER_TITLE_RE = re.compile(r"\b(former|previously|retired)\b|(?<![a-z])ex-", re.IGNORECASE)
NEGATIVE_RE = re.compile(
    r"\b(previous|previously|former|formerly|past|prior|left|departed|ended|used to)\b|(?<![a-z])ex-",
    re.IGNORECASE,
)
CURRENT_EMPLOYMENT_RES = [
    re.compile(r"\d{4}\s*[-–]\s*(present|current|now)\b", re.IGNORECASE),
    re.compile(
        r"(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\s+\d{4}\s*[-–]\s*(present|current|now)\b",
        re.IGNORECASE,
    ),
    re.compile(r"\d{1,2}/\d{4}\s*[-–]\s*(present|current|now)\b", re.IGNORECASE),
    re.compile(r"present\s*·\s*\d+\s*(yr|year|mo|month)", re.IGNORECASE),
    re.compile(r"current\s*(role|position|job)", re.IGNORECASE),
    re.compile(r"currently\s*(working|employed|at)\b", re.IGNORECASE),
]
COMPANY_SUFFIX_RE = re.compile(
    r"[,\s]*\b(inc|llc|corp|corporation|ltd|limited|co|gmbh|plc)\b\.?$", re.IGNORECASE
)

# "Jane Doe - VP Engineering at Acme Corp | LinkedIn"
# The separator needs spaces on both sides so "Mary-Jane" stays one name
FULL_TITLE_RE = re.compile(
    r"^(.+?)\s+[-–]\s+(.+?)\s+(?:at|@)\s+(.+?)\s*\|\s*LinkedIn", re.IGNORECASE
)
# "Jane Doe - VP Engineering | LinkedIn" or "Jane Doe | LinkedIn"
SIMPLE_TITLE_RE = re.compile(r"^(.+?)(?:\s+[-–]\s+(.+?))?\s*\|\s*LinkedIn", re.IGNORECASE)
LOCATION_RE = re.compile(r"(?:Located in|Based in|Location:)\s*([^.\n]+)", re.IGNORECASE)
AREA_RE = re.compile(r"\b((?:Greater )?[A-Z][\w.'-]*(?: [A-Z][\w.'-]*)* (?:Metropolitan |Bay )?Area)\b")
CONNECTIONS_RE = re.compile(r"(\d[\d,]*)\+?\s+connections", re.IGNORECASE)
ABOUT_RE = re.compile(
    r"(?:^|\n)\s*About\s*\n+(.+?)(?=\n\s*\n|\n\s*(?:Experience|Education|Activity|Skills)\b|$)",
    re.DOTALL,
)
YEAR_RE = re.compile(r"\b(19[89]\d|20\d\d)\b")


# ── Parsing ─────────────────────────────────────────────────────────


def _clean_name(name: str) -> str:
    name = re.sub(r"\s*\(.*?\)\s*", " ", name)
    name = re.sub(r",\s*(phd|mba|cpa|md|jd|pmp)\b.*$", "", name, flags=re.IGNORECASE)
    return re.sub(r"\s+", " ", name).strip(" -–|,")


def _content_lines(content: str) -> List[str]:
    return [line.strip(" #*") for line in (content or "").splitlines() if line.strip(" #*")]


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def _latest_year(text: str, today: date) -> Optional[date]:
    years = [int(y) for y in YEAR_RE.findall(text or "") if int(y) <= today.year]
    return date(max(years), 1, 1) if years else None


def parse_profile(candidate: CandidateContact, today: Optional[date] = None) -> dict:
    """Extract name, title, company and profile details from a fetched candidate."""
    today = today or date.today()
    content = candidate.content or ""
    lines = _content_lines(content)

    name = job_title = company = ""
    match = FULL_TITLE_RE.match(candidate.title or "")
    if match:
        name, job_title, company = (g.strip() for g in match.groups())
    else:
        simple = SIMPLE_TITLE_RE.match(candidate.title or "")
        if simple:
            name = simple.group(1).strip()
            job_title = (simple.group(2) or "").strip()

    if not name and lines:
        name = lines[0]
        job_title = job_title or (lines[1] if len(lines) > 1 else "")

    headline = None
    if len(lines) > 1 and _clean_name(lines[0]).lower() == _clean_name(name).lower():
        headline = lines[1]
    if not headline and job_title:
        headline = f"{job_title} at {company}" if company else job_title

    about = ABOUT_RE.search(content)
    summary = re.sub(r"\s+", " ", about.group(1)).strip()[:500] if about else None

    location = None
    loc = LOCATION_RE.search(content)
    if loc:
        location = loc.group(1).strip()
    else:
        area = AREA_RE.search(content)
        location = area.group(1).strip() if area else None

    connections = None
    conn = CONNECTIONS_RE.search(content)
    if conn:
        connections = int(conn.group(1).replace(",", ""))

    last_activity = _parse_date(candidate.published_date) or _latest_year(content, today)

    return {
        "name": _clean_name(name),
        "job_title": job_title.strip(),
        "company": company.strip(),
        "headline": headline,
        "summary": summary,
        "location": location,
        "connection_count": connections,
        "last_activity_date": last_activity,
    }


# ── Sub-scores ──────────────────────────────────────────────────────


def _has_keyword(text: str, keyword: str) -> bool:
    return re.search(r"(?<![a-z0-9])" + re.escape(keyword) + r"(?![a-z0-9])", text) is not None


def _company_variants(company_name: str) -> List[str]:
    lower = company_name.lower().strip()
    stripped = COMPANY_SUFFIX_RE.sub("", lower).strip()
    return [v for v in dict.fromkeys([lower, stripped]) if len(v) >= 2]


def title_match_score(
    role_description: str,
    job_title: str,
    headline: Optional[str] = None,
    body: str = "",
) -> float:
    """Similarity of a profile's title to the requested role, in [0, 1].

    Concept matches in title/headline count fully, in the body count half.
    """
    role = (role_description or "").lower()
    title_text = f"{job_title or ''} {headline or ''}".lower()
    body_text = (body or "").lower()

    requested = [kws for kws in CONCEPTS.values() if any(_has_keyword(role, k) for k in kws)]
    concept_hits = 0.0
    for keywords in requested:
        if any(_has_keyword(title_text, k) for k in keywords):
            concept_hits += 1.0
        elif any(_has_keyword(body_text, k) for k in keywords):
            concept_hits += 0.5
    concept_ratio = concept_hits / len(requested) if requested else 0.0

    role_words = [
        w for w in re.findall(r"[a-z][a-z&-]+", role) if len(w) > 3 and w not in STOPWORDS
    ]
    title_words = re.findall(r"[a-z][a-z&-]+", title_text)
    exact = sum(1 for w in role_words if any(w in tw or tw in w for tw in title_words if len(tw) > 3))
    exact_ratio = exact / len(role_words) if role_words else 0.0

    if requested:
        score = concept_ratio * 0.7 + exact_ratio * 0.3
    else:
        score = exact_ratio

    if FORMER_TITLE_RE.search(job_title or ""):
        score *= 0.1
    return max(0.0, min(score, 1.0))


def company_match_score(content: str, company_name: str, parsed_company: str = "") -> float:
    """1.0 = currently employed, 0.5 = mentioned, 0.0 = absent or former."""
    variants = _company_variants(company_name)
    if not variants:
        return 0.0

    parsed = (parsed_company or "").lower().strip()
    if parsed:
        parsed_stripped = COMPANY_SUFFIX_RE.sub("", parsed).strip()
        if any(v == parsed or v == parsed_stripped or v in parsed for v in variants):
            return 1.0

    text = (content or "").lower()
    mentioned = False
    for variant in variants:
        pattern = re.compile(r"(?<![a-z0-9])" + re.escape(variant) + r"(?![a-z0-9])")
        for occurrence in pattern.finditer(text):
            before = text[max(0, occurrence.start() - 60):occurrence.start()]
            if NEGATIVE_RE.search(before):
                continue
            mentioned = True
            window = text[max(0, occurrence.start() - 300):occurrence.end() + 300]
            if any(r.search(window) for r in CURRENT_EMPLOYMENT_RES):
                return 1.0
    return 0.5 if mentioned else 0.0


def location_match_score(text: str, location_hint: Optional[str]) -> float:
    if not location_hint:
        return 0.0
    parts = [p for p in re.split(r"[,\s]+", location_hint.lower()) if len(p) > 2]
    if not parts:
        return 0.0
    lower = (text or "").lower()
    return min(sum(1 for p in parts if p in lower) / len(parts), 1.0)


def recency_score(last_activity: Optional[date], today: Optional[date] = None) -> float:
    """1.0 this year, linear decay to 0 over RECENCY_WINDOW_YEARS, 0.5 if undated."""
    if last_activity is None:
        return 0.5
    today = today or date.today()
    age = max(today.year - last_activity.year, 0)
    return max(0.0, 1.0 - age / RECENCY_WINDOW_YEARS)


# ── Scorer ──────────────────────────────────────────────────────────


class ContactScorer:
    """Scores fetched candidates and selects the best one above the floor."""

    def __init__(
        self,
        min_confidence: float = MIN_CONFIDENCE,
        weights: Optional[Dict[str, float]] = None,
        today: Optional[date] = None,
    ):
        self.min_confidence = min_confidence
        self.weights = dict(weights or DEFAULT_WEIGHTS)
        self._today = today

    @property
    def today(self) -> date:
        return self._today or date.today()

    def _effective_weights(self, has_location: bool) -> Dict[str, float]:
        if has_location:
            return self.weights
        rest = {k: w for k, w in self.weights.items() if k != "location"}
        total = sum(rest.values())
        return {k: w / total for k, w in rest.items()}

    def score(
        self,
        candidate: CandidateContact,
        company_name: str,
        location_hint: Optional[str],
        role_description: str,
    ) -> Optional[ScoredContact]:
        """Score one candidate. None when it has no content or no parseable name."""
        if not (candidate.content or "").strip():
            return None

        parsed = parse_profile(candidate, self.today)
        if not parsed["name"]:
            logger.debug(f"Scorer: no name parsed from {candidate.profile_url}")
            return None

        body = candidate.content or ""
        sub = {
            "title": title_match_score(role_description, parsed["job_title"], parsed["headline"], body),
            "company": company_match_score(
                f"{candidate.title}\n{body}", company_name, parsed["company"]
            ),
            "recency": recency_score(parsed["last_activity_date"], self.today),
        }
        if location_hint:
            sub["location"] = location_match_score(
                f"{parsed['location'] or ''}\n{body}", location_hint
            )

        weights = self._effective_weights(bool(location_hint))
        confidence = sum(weights[k] * sub[k] for k in sub)
        confidence = round(max(0.0, min(confidence, 1.0)), 4)
        if sub["company"] == 0.0:
            # Not at the company: no email at its domain, whatever the title
            confidence = 0.0

        notes = [f"{k}={v:.2f}" for k, v in sub.items()]
        logger.debug(
            f"Scorer: {parsed['name']} ({parsed['job_title'] or '?'}) "
            f"confidence={confidence:.2f} [{', '.join(notes)}]"
        )

        return ScoredContact(
            **candidate.model_dump(),
            **parsed,
            confidence_score=confidence,
            title_match_score=round(sub["title"], 4),
            score_notes=notes,
        )

    def select(self, scored: List[ScoredContact]) -> Optional[ScoredContact]:
        """Best contact at or above the floor, independent of input order."""
        survivors = [c for c in scored if c is not None and c.confidence_score >= self.min_confidence]
        if not survivors:
            return None
        survivors.sort(key=lambda c: (
            -c.confidence_score,
            -c.title_match_score,
            -(c.last_activity_date.toordinal() if c.last_activity_date else 0),
            c.profile_url,
        ))
        return survivors[0]

    def score_and_select(
        self,
        candidates: List[CandidateContact],
        company_name: str,
        location_hint: Optional[str],
        role_description: str,
    ) -> Optional[ScoredContact]:
        scored = [self.score(c, company_name, location_hint, role_description) for c in candidates]
        best = self.select([s for s in scored if s is not None])
        if best is None:
            logger.info(f"Scorer: no contacts met minimum confidence threshold ({self.min_confidence})")
        return best
