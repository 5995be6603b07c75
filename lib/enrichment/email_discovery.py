"""Email pattern generation and verification for a selected contact.

Given a full name and a company domain, generates candidate addresses in
order of how common the convention is, then verifies them one at a time,
stopping at the first verified address.

Verification ladder for one address:
    format check → MX lookup → O365 GetCredentialType (Microsoft MX only)
    → optional SMTP RCPT TO with catch-all detection → MX exists.
"""

import asyncio
import re
import smtplib
import socket
import unicodedata
from typing import AsyncIterator, Dict, Iterable, List, Optional, Protocol, Tuple, runtime_checkable

import dns.exception
import dns.resolver
import httpx
from loguru import logger

from lib.enrichment.models import EmailCandidate, VerificationStatus, VerifiedEmail

O365_CREDENTIAL_URL = "https://login.microsoftonline.com/common/GetCredentialType"
PROBE_TIMEOUT = 10.0

EMAIL_RE = re.compile(r"^[a-z0-9][a-z0-9._%+-]*@[a-z0-9-]+(\.[a-z0-9-]+)*\.[a-z]{2,}$")
DOMAIN_RE = re.compile(r"^[a-z0-9-]+(\.[a-z0-9-]+)*\.[a-z]{2,}$")

HONORIFICS = {"mr", "mrs", "ms", "miss", "mx", "dr", "prof", "sir", "dame"}
POST_NOMINALS = {
    "jr", "sr", "ii", "iii", "iv", "phd", "md", "mba", "cpa", "jd", "esq",
    "pmp", "cfa", "pe", "msc", "bsc",
}

# (pattern, likelihood) from most to least common corporate convention
PATTERNS = [
    ("first", 0.30),
    ("first.last", 0.25),
    ("flast", 0.15),
    ("first_last", 0.08),
    ("firstlast", 0.07),
    ("f.last", 0.06),
    ("last", 0.05),
    ("firstl", 0.04),
]

MICROSOFT_MX_SUFFIXES = ("mail.protection.outlook.com", "outlook.com")


# ── Pattern generation ──────────────────────────────────────────────


def _name_tokens(full_name: str) -> List[str]:
    """Lowercase ASCII name tokens with honorifics and post-nominals removed."""
    if not full_name:
        return []
    text = unicodedata.normalize("NFKD", full_name)
    text = text.encode("ascii", "ignore").decode("ascii").lower()
    text = re.sub(r"\(.*?\)|\".*?\"", " ", text)  # nicknames
    text = text.split(",")[0]  # "Jane Doe, PhD"
    tokens = []
    for raw in text.split():
        token = re.sub(r"[^a-z]", "", raw)
        if not token or token in HONORIFICS or token in POST_NOMINALS:
            continue
        tokens.append(token)
    return tokens


def normalize_domain(domain: str) -> str:
    domain = (domain or "").strip().lower()
    domain = re.sub(r"^[a-z]+://", "", domain)
    domain = domain.split("/")[0].split("@")[-1]
    if domain.startswith("www."):
        domain = domain[4:]
    return domain if DOMAIN_RE.match(domain) else ""


def generate_patterns(full_name: str, domain: str) -> List[EmailCandidate]:
    """Candidate addresses for full_name at domain, most likely first.

    A single-token name yields only first@domain. No usable name or domain
    yields an empty list.
    """
    tokens = _name_tokens(full_name)
    domain = normalize_domain(domain)
    if not tokens or not domain:
        return []

    first = tokens[0]
    last = tokens[-1] if len(tokens) > 1 else ""
    locals_by_pattern = {
        "first": first,
        "first.last": f"{first}.{last}",
        "flast": f"{first[0]}{last}",
        "first_last": f"{first}_{last}",
        "firstlast": f"{first}{last}",
        "f.last": f"{first[0]}.{last}",
        "last": last,
        "firstl": f"{first}{last[:1]}",
    }

    candidates = []
    seen = set()
    for pattern, likelihood in PATTERNS:
        if pattern != "first" and not last:
            continue
        email = f"{locals_by_pattern[pattern]}@{domain}"
        if email in seen:
            continue
        seen.add(email)
        candidates.append(EmailCandidate(email=email, pattern=pattern, likelihood=likelihood))
    return candidates


# ── Verification ────────────────────────────────────────────────────


@runtime_checkable
class EmailVerifier(Protocol):
    """Verifies one candidate address."""

    async def verify(self, candidate: EmailCandidate) -> VerifiedEmail: ...


def _resolve_mx(domain: str) -> List[str]:
    """MX hosts by preference. Empty list when the domain has none."""
    resolver = dns.resolver.Resolver()
    resolver.timeout = 5
    resolver.lifetime = 10
    try:
        answers = resolver.resolve(domain, "MX")
    except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
        return []
    records = sorted(answers, key=lambda r: r.preference)
    return [str(r.exchange).lower().rstrip(".") for r in records if str(r.exchange) != "."]


def _smtp_rcpt(email: str, mx_host: str, timeout: float, from_addr: str) -> Optional[int]:
    """RCPT TO status code for email, or None when the server can't be reached."""
    try:
        server = smtplib.SMTP(timeout=timeout)
        try:
            server.connect(mx_host, 25)
            server.ehlo("verify.example.com")
            server.mail(from_addr)
            code, _ = server.rcpt(email)
        finally:
            try:
                server.quit()
            except (smtplib.SMTPException, OSError):
                pass
        return code
    except (smtplib.SMTPException, socket.error):
        return None


class DnsEmailVerifier:
    """Free verification ladder: DNS MX, O365 autodiscover, optional SMTP.

    MX hosts and catch-all status are resolved once per domain, so use one
    instance per verification run.

    Usage:
        async with httpx.AsyncClient() as http:
            verifier = DnsEmailVerifier(http)
            result = await verifier.verify(EmailCandidate(email="jane@acme.com", pattern="first"))
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        probe_timeout: float = PROBE_TIMEOUT,
        o365_probe: bool = True,
        smtp_probe: bool = False,
        smtp_from: str = "verify@example.com",
    ):
        self._client = client
        self.probe_timeout = probe_timeout
        self.o365_probe = o365_probe
        self.smtp_probe = smtp_probe
        self.smtp_from = smtp_from
        # Per-domain lookups, shared by every candidate this verifier sees
        self._mx: Dict[str, Tuple[Optional[List[str]], str]] = {}
        self._catch_all: Dict[str, bool] = {}

    def _result(self, candidate: EmailCandidate, status: VerificationStatus, reason: str,
                method: Optional[str] = None) -> VerifiedEmail:
        return VerifiedEmail(
            email=candidate.email,
            pattern=candidate.pattern,
            status=status,
            reason=reason,
            method=method,
        )

    async def _lookup_mx(self, domain: str) -> List[str]:
        loop = asyncio.get_running_loop()
        return await asyncio.wait_for(
            loop.run_in_executor(None, _resolve_mx, domain), timeout=self.probe_timeout
        )

    async def _o365_lookup(self, email: str) -> Optional[str]:
        """'exists', 'not_found' or None when inconclusive."""
        try:
            resp = await self._client.post(
                O365_CREDENTIAL_URL,
                json={"Username": email},
                timeout=self.probe_timeout,
            )
        except httpx.HTTPError as e:
            logger.debug(f"O365 probe failed for {email}: {e!r}")
            return None
        if resp.status_code != 200:
            return None
        try:
            data = resp.json()
        except ValueError:
            return None
        # IfExistsResult: 0=exists, 1=doesn't exist, 5=exists (different IdP), 6=exists
        result = data.get("IfExistsResult") if isinstance(data, dict) else None
        if result in (0, 5, 6):
            return "exists"
        if result == 1:
            return "not_found"
        return None

    async def _smtp_code(self, email: str, mx_host: str) -> Optional[int]:
        loop = asyncio.get_running_loop()
        return await asyncio.wait_for(
            loop.run_in_executor(None, _smtp_rcpt, email, mx_host, self.probe_timeout, self.smtp_from),
            timeout=self.probe_timeout + 2,
        )

    async def _mx_for(self, domain: str) -> Tuple[Optional[List[str]], str]:
        """MX hosts for domain, resolved once per verifier. (None, reason) on lookup failure."""
        if domain not in self._mx:
            try:
                self._mx[domain] = (await self._lookup_mx(domain), "")
            except asyncio.TimeoutError:
                self._mx[domain] = (None, "MX lookup timed out")
            except dns.exception.DNSException as e:
                self._mx[domain] = (None, f"DNS error: {type(e).__name__}")
        return self._mx[domain]

    async def _is_catch_all(self, domain: str, mx_host: str) -> bool:
        """RCPT TO a made-up address, probed once per domain."""
        if domain not in self._catch_all:
            fake = f"xz9q7k2m_nonexistent_99999@{domain}"
            self._catch_all[domain] = await self._smtp_code(fake, mx_host) == 250
        return self._catch_all[domain]

    async def verify(self, candidate: EmailCandidate) -> VerifiedEmail:
        email = candidate.email.strip().lower()
        if not EMAIL_RE.match(email):
            return self._result(candidate, VerificationStatus.INVALID, "Invalid email format")
        domain = email.split("@", 1)[1]

        mx_hosts, failure = await self._mx_for(domain)
        if mx_hosts is None:
            return self._result(candidate, VerificationStatus.UNKNOWN, failure)
        if not mx_hosts:
            return self._result(candidate, VerificationStatus.INVALID, "No MX records found", "mx")

        if self.o365_probe and any(h.endswith(MICROSOFT_MX_SUFFIXES) for h in mx_hosts):
            o365 = await self._o365_lookup(email)
            if o365 == "exists":
                return self._result(
                    candidate, VerificationStatus.VERIFIED, "Mailbox exists in Microsoft 365",
                    "o365_autodiscover",
                )
            if o365 == "not_found":
                return self._result(
                    candidate, VerificationStatus.INVALID, "Mailbox not found in Microsoft 365",
                    "o365_autodiscover",
                )

        if self.smtp_probe:
            mx_host = mx_hosts[0]
            try:
                if await self._is_catch_all(domain, mx_host):
                    return self._result(
                        candidate, VerificationStatus.RISKY, "Catch-all domain accepts any address",
                        "smtp_rcpt",
                    )
                code = await self._smtp_code(email, mx_host)
            except asyncio.TimeoutError:
                return self._result(candidate, VerificationStatus.UNKNOWN, "SMTP probe timed out", "smtp_rcpt")
            if code == 250:
                return self._result(candidate, VerificationStatus.VERIFIED, "SMTP accepted recipient", "smtp_rcpt")
            if code == 550:
                return self._result(candidate, VerificationStatus.INVALID, "SMTP rejected recipient", "smtp_rcpt")
            return self._result(
                candidate, VerificationStatus.UNKNOWN,
                f"SMTP inconclusive (code={code})", "smtp_rcpt",
            )

        return self._result(candidate, VerificationStatus.VERIFIED, "MX record exists", "mx")


async def iter_verifications(
    candidates: Iterable[EmailCandidate],
    verifier: EmailVerifier,
) -> AsyncIterator[VerifiedEmail]:
    """Verify candidates lazily, one at a time, in order."""
    for candidate in candidates:
        result = await verifier.verify(candidate)
        logger.debug(f"Email: {result.email} → {result.status.value} ({result.reason})")
        yield result


async def verify_first(
    candidates: Iterable[EmailCandidate],
    verifier: EmailVerifier,
) -> Optional[VerifiedEmail]:
    """First verified address, or None. Stops calling the verifier once one verifies."""
    results = iter_verifications(candidates, verifier)
    try:
        async for result in results:
            if result.is_verified:
                return result
    finally:
        await results.aclose()
    return None
