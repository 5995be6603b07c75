"""Visit enrichment workflow - turn tracked visits into leads.

USAGE:
    # Enrich a single visit
    uv run python workflows/enrich_visits.py run --visit-id 6f1c2a9e-... --icp "Head of Engineering"

    # Claim and enrich pending visits
    uv run python workflows/enrich_visits.py pending --limit 50 --concurrency 5

    # Show enrichment status
    uv run python workflows/enrich_visits.py status
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import asyncio
import argparse
import json
from collections import Counter
from typing import List, Optional

from loguru import logger

from db.client import init_db, close_db
from db.models.visit import Visit
from services.leads import repo
from services.leads.service import EnrichmentResult, EnrichmentStatus, LeadEnrichmentService


async def run_single(visit_id: str, icp: Optional[str] = None) -> EnrichmentResult:
    """Enrich one visit and print the tagged result."""
    await init_db()
    service = LeadEnrichmentService()
    try:
        result = await service.enrich(visit_id, icp)
        print(json.dumps(result.to_response(), indent=2))
        return result
    finally:
        await service.aclose()
        await close_db()


async def _enrich_claimed(
    service: LeadEnrichmentService,
    visit: Visit,
    icp: Optional[str],
    semaphore: asyncio.Semaphore,
) -> EnrichmentResult:
    async with semaphore:
        result = await service.enrich(visit.id, icp)
        await repo.mark_visit_enrichment(visit.id, result.status.value, cost_cents=result.cost_cents)
        return result


async def run_pending(
    limit: int = 50,
    concurrency: int = 5,
    icp: Optional[str] = None,
) -> List[EnrichmentResult]:
    """Claim pending visits and enrich them concurrently."""
    await init_db()
    service = LeadEnrichmentService()
    try:
        await repo.reset_stale_visit_claims()
        visits = await repo.claim_pending_visits(limit=limit)
        if not visits:
            logger.info("No visits pending enrichment")
            return []

        logger.info(f"Enriching {len(visits)} visits (concurrency={concurrency})")
        semaphore = asyncio.Semaphore(concurrency)
        outcomes = await asyncio.gather(
            *[_enrich_claimed(service, v, icp, semaphore) for v in visits],
            return_exceptions=True,
        )

        results = []
        for visit, outcome in zip(visits, outcomes):
            if isinstance(outcome, BaseException):
                # enrich() never raises; this is the status write failing
                logger.error(f"[{visit.id}] Failed to record enrichment status: {outcome}")
                continue
            results.append(outcome)

        counts = Counter(r.status.value for r in results)
        total_cost = sum(r.cost or 0 for r in results)
        breakdown = "\n".join(
            f"  {status.value:<12} {counts.get(status.value, 0)}" for status in EnrichmentStatus
        )
        logger.info(
            f"\nVisit Enrichment Complete:\n"
            f"  Visits processed: {len(results)}/{len(visits)}\n"
            f"{breakdown}\n"
            f"  Total cost: ${total_cost:.4f}"
        )
        return results

    except Exception as e:
        logger.error(f"Visit enrichment failed: {e}")
        raise
    finally:
        await service.aclose()
        await close_db()


async def show_status() -> None:
    """Show visit enrichment pipeline statistics."""
    await init_db()
    try:
        stats = await repo.get_enrichment_stats()

        print("\n=== Visit Enrichment Status ===")
        print(f"  Total visits:   {stats.get('total', 0):,}")
        print(f"  Pending:        {stats.get('pending', 0):,}")
        print(f"  Processing:     {stats.get('processing', 0):,}")
        print(f"  ---")
        print(f"  Enriched:       {stats.get('enriched', 0):,}")
        print(f"  Skipped (ISP):  {stats.get('skip_isp', 0):,}")
        print(f"  No contact:     {stats.get('no_contact', 0):,}")
        print(f"  Email failed:   {stats.get('email_fail', 0):,}")
        print(f"  Errors:         {stats.get('error', 0):,}")
        print(f"  ---")
        print(f"  Total cost:     ${stats.get('cost_cents', 0) / 100:,.2f}")
        print()

    finally:
        await close_db()


def main():
    parser = argparse.ArgumentParser(description="Website visit to lead enrichment pipeline")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    run_parser = subparsers.add_parser("run", help="Enrich a single visit")
    run_parser.add_argument("--visit-id", required=True, help="user_visits.id to enrich")
    run_parser.add_argument("--icp", default=None, help="Target role / ICP description")

    pending_parser = subparsers.add_parser("pending", help="Claim and enrich pending visits")
    pending_parser.add_argument("--limit", type=int, default=50, help="Max visits to claim")
    pending_parser.add_argument("--concurrency", type=int, default=5, help="Max concurrent enrichments")
    pending_parser.add_argument("--icp", default=None, help="Target role / ICP description")

    subparsers.add_parser("status", help="Show enrichment pipeline status")

    args = parser.parse_args()

    if args.command == "run":
        result = asyncio.run(run_single(args.visit_id, args.icp))
        sys.exit(0 if result.status != EnrichmentStatus.ERROR else 1)
    elif args.command == "pending":
        asyncio.run(run_pending(
            limit=args.limit,
            concurrency=args.concurrency,
            icp=args.icp,
        ))
    elif args.command == "status":
        asyncio.run(show_status())
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
