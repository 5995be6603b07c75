"""Tests for the ipinfo.io company resolver."""

import httpx
import pytest

from lib.enrichment.errors import ResolverError
from lib.enrichment.ipinfo_client import (
    IPInfoClient,
    domain_from_company_name,
    parse_ipinfo_response,
)
from lib.enrichment.models import OrgType


def _client(payload=None, status=200, exc=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if exc is not None:
            raise exc
        assert request.url.params["token"] == "test-token"
        if isinstance(payload, str):
            return httpx.Response(status, text=payload)
        return httpx.Response(status, json=payload)
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.no_db
class TestParseIPInfoResponse:

    def test_paid_plan_business(self):
        company = parse_ipinfo_response({
            "ip": "203.0.113.7",
            "city": "San Francisco",
            "region": "California",
            "country": "US",
            "company": {"name": "Acme Corp", "domain": "acme.com", "type": "business"},
            "asn": {"asn": "AS64500", "name": "Acme Corp", "domain": "acme.com", "type": "business"},
        })
        assert company.name == "Acme Corp"
        assert company.domain == "acme.com"
        assert company.city == "San Francisco"
        assert company.country == "US"
        assert company.org_type == OrgType.BUSINESS

    def test_paid_plan_hosting(self):
        company = parse_ipinfo_response({
            "asn": {"name": "DigitalOcean, LLC", "domain": "digitalocean.com", "type": "hosting"},
        })
        assert company.org_type == OrgType.HOSTING

    def test_basic_plan_isp_heuristic(self):
        company = parse_ipinfo_response({"org": "AS7922 Comcast Cable Communications, LLC"})
        assert company.name == "Comcast Cable Communications, LLC"
        assert company.org_type == OrgType.ISP

    def test_basic_plan_hosting_heuristic(self):
        company = parse_ipinfo_response({"org": "AS16509 Amazon Web Services"})
        assert company.org_type == OrgType.HOSTING

    def test_basic_plan_business_gets_domain_guess(self):
        company = parse_ipinfo_response({"org": "AS64500 Acme Widgets Inc."})
        assert company.org_type == OrgType.BUSINESS
        assert company.domain == "acme.com"

    def test_edu_type(self):
        company = parse_ipinfo_response({"asn": {"name": "MIT", "type": "edu"}})
        assert company.org_type == OrgType.EDUCATION

    def test_bogon(self):
        assert parse_ipinfo_response({"ip": "10.0.0.1", "bogon": True}) is None

    def test_no_org(self):
        assert parse_ipinfo_response({"ip": "203.0.113.7", "city": "Nowhere"}) is None

    def test_domain_from_company_name(self):
        assert domain_from_company_name("Acme Corp") == "acme.com"
        assert domain_from_company_name("Globex, LLC") == "globex.com"
        assert domain_from_company_name("Inc.") == ""


@pytest.mark.no_db
class TestIPInfoClient:

    def test_requires_token(self):
        with pytest.raises(ValueError):
            IPInfoClient(httpx.AsyncClient(), token=None)

    @pytest.mark.asyncio
    async def test_resolve_business(self):
        async with _client({"company": {"name": "Acme Corp", "domain": "acme.com", "type": "business"}}) as http:
            company = await IPInfoClient(http, token="test-token").resolve("203.0.113.7")
        assert company.name == "Acme Corp"

    @pytest.mark.asyncio
    async def test_resolve_hosting_is_absent(self):
        async with _client({"asn": {"name": "Example Hosting", "type": "hosting"}}) as http:
            assert await IPInfoClient(http, token="test-token").resolve("192.0.2.1") is None

    @pytest.mark.asyncio
    async def test_resolve_isp_is_absent(self):
        async with _client({"org": "AS7922 Comcast Cable Communications, LLC"}) as http:
            assert await IPInfoClient(http, token="test-token").resolve("198.51.100.4") is None

    @pytest.mark.asyncio
    async def test_allowed_org_types_widen(self):
        payload = {"asn": {"name": "State University", "type": "education"}}
        async with _client(payload) as http:
            resolver = IPInfoClient(http, token="test-token", allowed_org_types={"business", "education"})
            company = await resolver.resolve("198.51.100.4")
        assert company.org_type == OrgType.EDUCATION

    @pytest.mark.asyncio
    async def test_invalid_ip_is_absent(self):
        async with _client({}) as http:
            assert await IPInfoClient(http, token="test-token").resolve("not-an-ip") is None

    @pytest.mark.asyncio
    async def test_404_is_absent(self):
        async with _client({"error": "not found"}, status=404) as http:
            assert await IPInfoClient(http, token="test-token").resolve("203.0.113.7") is None

    @pytest.mark.asyncio
    async def test_server_error_raises(self):
        async with _client({"error": "boom"}, status=500) as http:
            with pytest.raises(ResolverError):
                await IPInfoClient(http, token="test-token").resolve("203.0.113.7")

    @pytest.mark.asyncio
    async def test_auth_failure_raises(self):
        async with _client({"error": "invalid token"}, status=403) as http:
            with pytest.raises(ResolverError):
                await IPInfoClient(http, token="test-token").resolve("203.0.113.7")

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        async with _client(exc=httpx.ConnectError("refused")) as http:
            with pytest.raises(ResolverError):
                await IPInfoClient(http, token="test-token").resolve("203.0.113.7")

    @pytest.mark.asyncio
    async def test_non_json_raises(self):
        async with _client("<html>oops</html>") as http:
            with pytest.raises(ResolverError):
                await IPInfoClient(http, token="test-token").resolve("203.0.113.7")


@pytest.mark.online
@pytest.mark.asyncio
async def test_resolve_google_dns():
    import os
    async with httpx.AsyncClient() as http:
        resolver = IPInfoClient(http, token=os.getenv("IPINFO_TOKEN"))
        company = await resolver.lookup("8.8.8.8")
    assert company is not None
