"""IP → company resolution via ipinfo.io.

Returns a Company only for business networks. Residential ISPs, hosting
providers (proxies/VPNs), bogons and unresolvable IPs come back as None,
which is a normal outcome, not a fault. Transport failures raise
ResolverError so callers can tell "not a business" from "couldn't check".

Handles both response shapes:
  - paid plans: {"asn": {"name", "domain", "type"}, "company": {...}}
  - basic plan: {"org": "AS15169 Google LLC"} → keyword heuristics
"""

import ipaddress
import re
from typing import Optional, Set

import httpx
from loguru import logger

from lib.enrichment.errors import ResolverError
from lib.enrichment.models import Company, OrgType

IPINFO_BASE_URL = "https://ipinfo.io"
IP_LOOKUP_TIMEOUT = 5.0
USER_AGENT = "Split-Leads/1.0"

ISP_KEYWORDS = [
    "comcast", "verizon", "at&t", "spectrum", "cox", "charter", "centurylink",
    "frontier", "windstream", "mediacom", "cable", "broadband", "telecom",
    "communications", "internet service", "isp", "t-mobile", "vodafone",
]
HOSTING_KEYWORDS = [
    "amazon web services", "aws", "google cloud", "microsoft azure",
    "digitalocean", "linode", "vultr", "ovh", "hetzner", "hosting",
    "datacenter", "data center", "cloud", "vpn", "proxy",
]
EDUCATION_KEYWORDS = ["university", "college", "school", "academy", "institute of technology"]
GOVERNMENT_KEYWORDS = ["government", "ministry", "department of", "federal", "county of", "city of"]

LEGAL_SUFFIXES = re.compile(
    r"\b(inc|llc|corp|corporation|ltd|limited|co|gmbh|plc|sa|ag|bv)\b\.?", re.IGNORECASE
)


def _classify_org(name: str) -> OrgType:
    """Keyword classification for basic-plan responses with no type field."""
    lower = name.lower()
    # Word-boundary match so "cox" doesn't hit "Moxcom" and "isp" doesn't hit "dispatch"
    def _has(keywords):
        return any(re.search(r"(?<![a-z])" + re.escape(k) + r"(?![a-z])", lower) for k in keywords)

    if _has(HOSTING_KEYWORDS):
        return OrgType.HOSTING
    if _has(ISP_KEYWORDS):
        return OrgType.ISP
    if _has(EDUCATION_KEYWORDS):
        return OrgType.EDUCATION
    if _has(GOVERNMENT_KEYWORDS):
        return OrgType.GOVERNMENT
    return OrgType.BUSINESS


def _parse_org_type(value) -> Optional[OrgType]:
    if not isinstance(value, str):
        return None
    value = value.strip().lower()
    if value in ("edu", "education"):
        return OrgType.EDUCATION
    if value in ("gov", "government"):
        return OrgType.GOVERNMENT
    try:
        return OrgType(value)
    except ValueError:
        return None


def domain_from_company_name(name: str) -> str:
    """Best-effort domain guess: first word of the cleaned name + .com."""
    cleaned = LEGAL_SUFFIXES.sub("", name.lower())
    cleaned = re.sub(r"[^a-z0-9\s]", "", cleaned).strip()
    first = cleaned.split()[0] if cleaned else ""
    return f"{first}.com" if first else ""


def parse_ipinfo_response(data: dict) -> Optional[Company]:
    """Map an ipinfo payload to a Company (any org type) or None.

    Fails closed: anything that doesn't carry an organization name is None.
    """
    if not isinstance(data, dict) or data.get("bogon"):
        return None

    asn = data.get("asn") if isinstance(data.get("asn"), dict) else {}
    company = data.get("company") if isinstance(data.get("company"), dict) else {}

    name = ""
    domain = ""
    org_type: Optional[OrgType] = None

    if company.get("name"):
        name = company["name"]
        domain = company.get("domain") or ""
        org_type = _parse_org_type(company.get("type"))
    if asn:
        name = name or asn.get("name") or ""
        domain = domain or asn.get("domain") or ""
        org_type = org_type or _parse_org_type(asn.get("type"))
    if not name and isinstance(data.get("org"), str):
        # Basic plan: "AS15169 Google LLC"
        match = re.match(r"^AS\d+\s+(.+)$", data["org"].strip())
        name = match.group(1) if match else data["org"].strip()

    name = (name or "").strip()
    if not name:
        return None

    if org_type is None:
        org_type = _classify_org(name)

    domain = (domain or data.get("domain") or "").strip().lower()
    if not domain and org_type == OrgType.BUSINESS:
        domain = domain_from_company_name(name)

    return Company(
        name=name,
        domain=domain,
        city=data.get("city") or "",
        region=data.get("region") or "",
        country=data.get("country") or "",
        org_type=org_type,
    )


class IPInfoClient:
    """Company resolver backed by ipinfo.io.

    Usage:
        async with httpx.AsyncClient() as http:
            resolver = IPInfoClient(http, token=os.getenv("IPINFO_TOKEN"))
            company = await resolver.resolve("8.8.8.8")
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        token: Optional[str],
        timeout: float = IP_LOOKUP_TIMEOUT,
        allowed_org_types: Optional[Set[str]] = None,
        base_url: str = IPINFO_BASE_URL,
    ):
        if not token:
            raise ValueError("IPINFO_TOKEN is required")
        self._client = client
        self._token = token
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")
        self.allowed_org_types = allowed_org_types or {OrgType.BUSINESS.value}

    async def lookup(self, ip: str) -> Optional[Company]:
        """Raw lookup: the Company for any org type, or None if unresolvable."""
        try:
            ipaddress.ip_address(ip.strip())
        except ValueError:
            logger.debug(f"IPInfo: {ip!r} is not an IP address")
            return None

        try:
            resp = await self._client.get(
                f"{self.base_url}/{ip.strip()}",
                params={"token": self._token},
                headers={"Accept": "application/json", "User-Agent": USER_AGENT},
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            raise ResolverError(f"IPInfo request failed for {ip}: {e!r}") from e

        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise ResolverError(f"IPInfo returned HTTP {resp.status_code} for {ip}")

        try:
            data = resp.json()
        except ValueError as e:
            raise ResolverError(f"IPInfo returned non-JSON body for {ip}") from e
        if not isinstance(data, dict):
            raise ResolverError(f"IPInfo returned unexpected payload for {ip}")

        logger.debug(f"IPInfo raw response for {ip}: {data}")
        return parse_ipinfo_response(data)

    async def resolve(self, ip: str) -> Optional[Company]:
        """Resolve an IP to a business. None for ISP/hosting/unresolvable."""
        company = await self.lookup(ip)
        if company is None:
            logger.debug(f"IPInfo: no organization for {ip}")
            return None
        if company.org_type.value not in self.allowed_org_types:
            logger.info(
                f"IPInfo: skipping non-business IP {ip} "
                f"({company.name}, type={company.org_type.value})"
            )
            return None
        return company
