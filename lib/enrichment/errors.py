"""Exceptions raised by the enrichment clients.

Only "could not determine" conditions raise. "Nothing found" is returned
as None / [] so the orchestrator can map it to an expected status.
"""


class EnrichmentError(Exception):
    """Base class for transport/infrastructure faults in a stage."""

    stage: str = "enrichment"


class ResolverError(EnrichmentError):
    """IP lookup service failed (transport, auth, malformed payload)."""

    stage = "ip_lookup"


class ExaError(EnrichmentError):
    """Exa search/contents call failed."""

    stage = "exa"


class StageTimeoutError(EnrichmentError):
    """A stage exceeded its timeout."""

    def __init__(self, stage: str, timeout: float):
        self.stage = stage
        self.timeout = timeout
        super().__init__(f"{stage} timed out after {timeout:.0f}s")
