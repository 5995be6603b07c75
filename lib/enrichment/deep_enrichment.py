"""Best-effort deep enrichment for a confirmed contact.

Four Exa searches run concurrently: thought leadership, press quotes,
patents and social profiles. Nothing here ever raises: a failed search
contributes nothing, and a failed or timed-out run returns None.
"""

import asyncio
import re
from typing import List, Optional
from urllib.parse import urlparse

from loguru import logger

from lib.enrichment.config import StageCosts
from lib.enrichment.exa_client import ExaClient, ExaResult, published_since
from lib.enrichment.models import CostLedger, Insights, MediaItem, SocialProfile

DEEP_ENRICHMENT_TIMEOUT = 25.0
SNIPPET_CHARS = 200
SEARCHES_PER_RUN = 4

TWITTER_HANDLE_RE = re.compile(r"(?:twitter|x)\.com/([A-Za-z0-9_]{1,15})(?:[/?#]|$)")
TWITTER_RESERVED = {"home", "search", "i", "intent", "share", "hashtag", "explore"}


def detect_content_type(title: str, url: str) -> str:
    lower = (title or "").lower()
    if "podcast" in lower:
        return "podcast"
    if "interview" in lower:
        return "interview"
    if "keynote" in lower or "talk" in lower:
        return "talk"
    if "webinar" in lower:
        return "webinar"
    if "blog" in (url or "").lower():
        return "blog"
    return "article"


def publication_from_url(url: str) -> Optional[str]:
    host = urlparse(url or "").hostname or ""
    if host.startswith("www."):
        host = host[4:]
    return host.split(".")[0] if host else None


def twitter_handle(url: str) -> Optional[str]:
    match = TWITTER_HANDLE_RE.search(url or "")
    if not match or match.group(1).lower() in TWITTER_RESERVED:
        return None
    return f"@{match.group(1)}"


def _snippet(result: ExaResult) -> Optional[str]:
    text = (result.text or "").strip()
    return text[:SNIPPET_CHARS] if text else None


class DeepEnricher:
    """Gathers public signals (talks, press, patents, social) for one person."""

    def __init__(
        self,
        exa: ExaClient,
        timeout: float = DEEP_ENRICHMENT_TIMEOUT,
        costs: Optional[StageCosts] = None,
    ):
        self.exa = exa
        self.timeout = timeout
        self.costs = costs or StageCosts()

    async def _search(self, query: str, num_results: int, ledger: CostLedger, **options) -> List[ExaResult]:
        return await self.exa.search(
            query,
            num_results=num_results,
            ledger=ledger,
            cost_stage="deep_enrichment",
            estimated_cost=self.costs.deep_enrichment / SEARCHES_PER_RUN,
            contents={"text": {"maxCharacters": SNIPPET_CHARS}},
            **options,
        )

    async def thought_leadership(
        self, name: str, company: str, ledger: CostLedger, title: Optional[str] = None,
    ) -> List[MediaItem]:
        # Title is a hint for autoprompt, not a required phrase
        role = f"{title} " if title else ""
        query = (
            f'"{name}" {role}"{company}" '
            "(podcast OR blog OR interview OR keynote OR webinar OR talk OR conference)"
        )
        results = await self._search(
            query, 5, ledger, useAutoprompt=True, type="auto",
            startPublishedDate=published_since(365),
        )
        return [
            MediaItem(
                media_type=detect_content_type(r.title or "", r.url),
                title=r.title or r.url,
                url=r.url,
                publication=publication_from_url(r.url),
                published_at=r.published_date,
                snippet=_snippet(r),
            )
            for r in results
        ][:3]

    async def press_quotes(self, name: str, company: str, ledger: CostLedger) -> List[MediaItem]:
        query = f'"{name}" "{company}" (announced OR launches OR said OR "press release" OR quoted)'
        results = await self._search(
            query, 5, ledger, useAutoprompt=True, category="news",
            startPublishedDate=published_since(180),
        )
        return [
            MediaItem(
                media_type="news",
                title=r.title or r.url,
                url=r.url,
                publication=publication_from_url(r.url),
                published_at=r.published_date,
                snippet=_snippet(r),
            )
            for r in results
        ][:3]

    async def patents(self, name: str, ledger: CostLedger) -> List[MediaItem]:
        query = f'"{name}" patent (USPTO OR "patent application" OR inventor)'
        results = await self._search(query, 3, ledger, useAutoprompt=False)
        return [
            MediaItem(
                media_type="patent",
                title=r.title or r.url,
                url=r.url,
                publication=publication_from_url(r.url),
                published_at=r.published_date,
            )
            for r in results
        ][:2]

    async def social_profiles(self, name: str, company: str, ledger: CostLedger) -> List[SocialProfile]:
        query = f'"{name}" site:twitter.com "{company}"'
        results = await self._search(query, 1, ledger, includeDomains=["twitter.com", "x.com"])
        profiles = []
        for r in results[:1]:
            handle = twitter_handle(r.url)
            if handle:
                profiles.append(SocialProfile(platform="twitter", url=r.url, handle=handle))
        return profiles

    async def _gather(
        self, name: str, company: str, ledger: CostLedger, title: Optional[str] = None,
    ) -> Insights:
        labels = ["thought_leadership", "social_profiles", "patents", "press_quotes"]
        results = await asyncio.gather(
            self.thought_leadership(name, company, ledger, title),
            self.social_profiles(name, company, ledger),
            self.patents(name, ledger),
            self.press_quotes(name, company, ledger),
            return_exceptions=True,
        )
        found = {}
        for label, result in zip(labels, results):
            if isinstance(result, BaseException):
                logger.warning(f"Deep enrichment: {label} search failed: {result}")
                found[label] = []
            else:
                found[label] = result
        return Insights(**found)

    async def deep_enrich(
        self,
        name: str,
        company: str,
        title: Optional[str] = None,
        ledger: Optional[CostLedger] = None,
    ) -> Optional[Insights]:
        """Insights for name at company, or None on any failure or empty result.

        title narrows the thought-leadership search.
        """
        local = CostLedger()
        try:
            insights = await asyncio.wait_for(self._gather(name, company, local, title), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Deep enrichment timed out after {self.timeout:.0f}s for {name} at {company}")
            return None
        except Exception as e:
            logger.warning(f"Deep enrichment failed for {name} at {company}: {e}")
            return None
        finally:
            if ledger is not None:
                ledger.entries.extend(local.entries)

        if insights.is_empty:
            logger.debug(f"Deep enrichment: no public signals for {name} ({title or 'no title'})")
            return None

        logger.debug(
            f"Deep enrichment: {name} → {len(insights.thought_leadership)} talks/articles, "
            f"{len(insights.press_quotes)} press, {len(insights.patents)} patents, "
            f"{len(insights.social_profiles)} social"
        )
        return insights
