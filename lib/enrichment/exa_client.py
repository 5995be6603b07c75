"""Exa API client: profile search and batched content fetch.

Candidate search finds LinkedIn profile pages for "<role> at <company>".
Content fetch pulls full page text for those URLs in ONE /contents call and
drops URLs that failed individually instead of failing the batch.

Every Exa payload goes through parse_exa_response() at the boundary, which
validates the shape and raises ExaError rather than passing untyped dicts
inward.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from lib.enrichment.config import StageCosts
from lib.enrichment.errors import ExaError
from lib.enrichment.models import CandidateContact, CostLedger

EXA_BASE_URL = "https://api.exa.ai"
USER_AGENT = "Split-Leads/1.0"
SEARCH_TIMEOUT = 20.0
CONTENTS_TIMEOUT = 30.0
MAX_CONTENT_CHARS = 10_000

PROFILE_URL_RE = re.compile(r"linkedin\.com/(?:in|pub)/[^/?#]+", re.IGNORECASE)


# ── Boundary models ─────────────────────────────────────────────────


class ExaResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    url: str
    id: Optional[str] = None
    title: Optional[str] = None
    text: Optional[str] = None
    highlights: List[str] = []
    published_date: Optional[str] = Field(default=None, alias="publishedDate")
    author: Optional[str] = None


class ExaStatus(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    status: str  # "success" | "error"
    error: Optional[dict] = None


class ExaResponse(BaseModel):
    results: List[ExaResult] = []
    statuses: List[ExaStatus] = []
    cost_dollars: Optional[float] = None


def parse_exa_response(data) -> ExaResponse:
    """Validate an Exa JSON payload. Malformed items are skipped; a
    malformed envelope raises ExaError."""
    if not isinstance(data, dict) or not isinstance(data.get("results"), list):
        raise ExaError("Exa returned an unexpected payload (no results list)")

    results = []
    for item in data["results"]:
        try:
            results.append(ExaResult.model_validate(item))
        except ValidationError:
            logger.debug(f"Exa: skipping malformed result {str(item)[:200]}")

    statuses = []
    for item in data.get("statuses") or []:
        try:
            statuses.append(ExaStatus.model_validate(item))
        except ValidationError:
            continue

    cost = None
    cost_block = data.get("costDollars")
    if isinstance(cost_block, dict) and isinstance(cost_block.get("total"), (int, float)):
        cost = float(cost_block["total"])

    return ExaResponse(results=results, statuses=statuses, cost_dollars=cost)


def is_profile_url(url: str) -> bool:
    return bool(PROFILE_URL_RE.search(url or ""))


def _normalize_url(url: str) -> str:
    return (url or "").strip().rstrip("/").lower()


def build_profile_query(company: str, role_description: str) -> str:
    """Query for person profiles, not company pages, emphasizing CURRENT employment."""
    return (
        f'site:linkedin.com/in "{role_description}" currently working at "{company}" '
        f'OR "present" "{company}" -jobs -careers -former -ex- -"used to work"'
    )


# ── Client ──────────────────────────────────────────────────────────


class ExaClient:
    """Thin async wrapper over Exa /search and /contents.

    Usage:
        async with httpx.AsyncClient() as http:
            exa = ExaClient(http, api_key=os.getenv("EXA_API_KEY"))
            candidates = await exa.search_profiles("Acme Corp", "VP of Engineering")
            fetched = await exa.fetch_contents(candidates)
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: Optional[str],
        search_timeout: float = SEARCH_TIMEOUT,
        contents_timeout: float = CONTENTS_TIMEOUT,
        num_results: int = 5,
        costs: Optional[StageCosts] = None,
        base_url: str = EXA_BASE_URL,
    ):
        if not api_key:
            raise ValueError("EXA_API_KEY is required")
        self._client = client
        self._api_key = api_key
        self.search_timeout = search_timeout
        self.contents_timeout = contents_timeout
        self.num_results = num_results
        self.costs = costs or StageCosts()
        self.base_url = base_url.rstrip("/")

    async def _post(self, path: str, payload: dict, timeout: float) -> ExaResponse:
        try:
            resp = await self._client.post(
                f"{self.base_url}{path}",
                headers={
                    "x-api-key": self._api_key,
                    "Content-Type": "application/json",
                    "User-Agent": USER_AGENT,
                },
                json=payload,
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            raise ExaError(f"Exa {path} timed out after {timeout:.0f}s") from e
        except httpx.HTTPError as e:
            raise ExaError(f"Exa {path} request failed: {e!r}") from e

        if resp.status_code != 200:
            raise ExaError(f"Exa {path} returned HTTP {resp.status_code}: {resp.text[:200]}")
        try:
            data = resp.json()
        except ValueError as e:
            raise ExaError(f"Exa {path} returned non-JSON body") from e
        return parse_exa_response(data)

    async def search(
        self,
        query: str,
        num_results: int,
        ledger: Optional[CostLedger] = None,
        cost_stage: str = "search",
        estimated_cost: Optional[float] = None,
        **options,
    ) -> List[ExaResult]:
        """Generic /search call. options are passed through (camelCase)."""
        payload = {"query": query, "numResults": num_results, **options}
        response = await self._post("/search", payload, self.search_timeout)
        if ledger is not None:
            fallback = self.costs.search if estimated_cost is None else estimated_cost
            ledger.add(cost_stage, response.cost_dollars if response.cost_dollars is not None else fallback)
        return response.results

    async def search_profiles(
        self,
        company: str,
        role_description: str,
        ledger: Optional[CostLedger] = None,
    ) -> List[CandidateContact]:
        """Find profile pages for role_description at company. No location filter."""
        query = build_profile_query(company, role_description)
        logger.debug(f"Exa: ICP search for {role_description!r} at {company!r}")

        results = await self.search(
            query,
            num_results=self.num_results,
            ledger=ledger,
            includeDomains=["linkedin.com"],
            useAutoprompt=True,
        )

        candidates = []
        seen = set()
        for r in results:
            if not is_profile_url(r.url):
                logger.debug(f"Exa: dropping non-profile result {r.url}")
                continue
            key = _normalize_url(r.url)
            if key in seen:
                continue
            seen.add(key)
            candidates.append(CandidateContact(
                profile_url=r.url,
                title=r.title or "",
                snippet=(r.text or "")[:500] or None,
                published_date=r.published_date,
                highlights=r.highlights,
            ))

        logger.debug(f"Exa: {len(candidates)}/{len(results)} results are profiles")
        return candidates

    async def fetch_contents(
        self,
        candidates: List[CandidateContact],
        ledger: Optional[CostLedger] = None,
    ) -> List[CandidateContact]:
        """Fetch full text for candidates in one batched call.

        Returns only candidates whose content came back; order follows the
        input. Results are matched by URL.
        """
        if not candidates:
            return []

        payload = {
            "urls": [c.profile_url for c in candidates],
            "text": True,
            "livecrawl": "preferred",  # LinkedIn cache goes stale fast
            "highlights": {"numSentences": 2},
        }
        response = await self._post("/contents", payload, self.contents_timeout)
        if ledger is not None:
            ledger.add(
                "contents",
                response.cost_dollars if response.cost_dollars is not None else self.costs.contents,
            )

        failed = {
            _normalize_url(s.id) for s in response.statuses if s.status != "success"
        }
        by_url = {}
        for r in response.results:
            by_url.setdefault(_normalize_url(r.url), r)
            if r.id:
                by_url.setdefault(_normalize_url(r.id), r)

        fetched = []
        for c in candidates:
            key = _normalize_url(c.profile_url)
            result = by_url.get(key)
            if key in failed or result is None or not (result.text or "").strip():
                logger.debug(f"Exa: no content for {c.profile_url}")
                continue
            fetched.append(c.model_copy(update={
                "content": result.text[:MAX_CONTENT_CHARS],
                "title": c.title or result.title or "",
                "highlights": result.highlights or c.highlights,
            }))

        logger.debug(f"Exa: fetched content for {len(fetched)}/{len(candidates)} profiles")
        return fetched


def published_since(days: int) -> str:
    """ISO timestamp for Exa's startPublishedDate filter."""
    since = datetime.now(timezone.utc) - timedelta(days=days)
    return since.strftime("%Y-%m-%dT%H:%M:%S.000Z")
