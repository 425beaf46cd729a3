"""Tests for provider HTTP clients."""

import base64
import json
from datetime import UTC, date, datetime

import httpx
import pytest

from abacus.services.anthropic_client import AnthropicClient
from abacus.services.cursor_client import CursorClient, to_epoch_ms
from abacus.services.errors import (
    AuthConfigurationError,
    ProviderAPIError,
    RateLimitError,
    TransientNetworkError,
)
from abacus.services.github_client import GitHubClient
from abacus.services.http_client import ProviderHTTPClient


def make_client(handler, **kwargs) -> ProviderHTTPClient:
    return ProviderHTTPClient(
        "https://api.example.com/",
        transport=httpx.MockTransport(handler),
        max_retries=3,
        backoff_base=0,
        **kwargs,
    )


class TestProviderHTTPClient:
    """Tests for retry and error classification."""

    @pytest.mark.asyncio
    async def test_get_success(self):
        """Test successful request returns decoded JSON."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"ok": True})

        client = make_client(handler)
        data = await client.get("/things", {"limit": 5})

        assert data == {"ok": True}
        assert str(seen[0].url) == "https://api.example.com/things?limit=5"

    @pytest.mark.asyncio
    async def test_rate_limit_raises_without_retry(self):
        """Test 429 raises RateLimitError immediately."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(429, headers={"retry-after": "30"})

        client = make_client(handler)
        with pytest.raises(RateLimitError) as exc_info:
            await client.get("/things")

        assert exc_info.value.retry_after == 30.0
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_server_error_retried(self):
        """Test 5xx responses are retried until success."""
        responses = [httpx.Response(502), httpx.Response(503), httpx.Response(200, json=[1])]

        def handler(request: httpx.Request) -> httpx.Response:
            return responses.pop(0)

        client = make_client(handler)
        assert await client.get("/things") == [1]
        assert responses == []

    @pytest.mark.asyncio
    async def test_server_error_exhausts_retries(self):
        """Test persistent 5xx surfaces as TransientNetworkError."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(500)

        client = make_client(handler)
        with pytest.raises(TransientNetworkError):
            await client.get("/things")
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_transport_error_exhausts_retries(self):
        """Test connection failures surface as TransientNetworkError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        with pytest.raises(TransientNetworkError):
            await client.get("/things")

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self):
        """Test 4xx raises ProviderAPIError with the status code."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(404, text="Not Found")

        client = make_client(handler)
        with pytest.raises(ProviderAPIError) as exc_info:
            await client.get("/missing")

        assert exc_info.value.status_code == 404
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_non_json_body_is_api_error(self):
        """Test a 2xx HTML page raises ProviderAPIError instead of a decode error."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>maintenance</html>")

        client = make_client(handler)
        with pytest.raises(ProviderAPIError, match="invalid JSON") as exc_info:
            await client.get("/things")

        assert exc_info.value.status_code == 200


class TestGitHubClient:
    """Tests for GitHub-specific behaviour."""

    def test_requires_token(self):
        with pytest.raises(AuthConfigurationError):
            GitHubClient(token="")

    @pytest.mark.asyncio
    async def test_primary_rate_limit_403(self):
        """Test 403 with exhausted quota is a rate limit."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, headers={"x-ratelimit-remaining": "0"})

        client = GitHubClient(token="t", transport=httpx.MockTransport(handler), backoff_base=0)
        with pytest.raises(RateLimitError):
            await client.get_commit("acme/api", "abc")

    @pytest.mark.asyncio
    async def test_forbidden_is_api_error(self):
        """Test plain 403 is a permission error, not a rate limit."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, headers={"x-ratelimit-remaining": "4999"})

        client = GitHubClient(token="t", transport=httpx.MockTransport(handler), backoff_base=0)
        with pytest.raises(ProviderAPIError) as exc_info:
            await client.get_commit("acme/api", "abc")
        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_list_commits_params(self):
        """Test commit listing passes branch and time bounds."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        client = GitHubClient(token="t", transport=httpx.MockTransport(handler))
        await client.list_commits(
            "acme/api",
            "main",
            since=datetime(2025, 1, 1, tzinfo=UTC),
            until=datetime(2025, 1, 2, tzinfo=UTC),
            page=2,
        )

        params = seen[0].url.params
        assert seen[0].url.path == "/repos/acme/api/commits"
        assert params["sha"] == "main"
        assert params["since"] == "2025-01-01T00:00:00Z"
        assert params["until"] == "2025-01-02T00:00:00Z"
        assert params["page"] == "2"
        assert seen[0].headers["authorization"] == "Bearer t"

    @pytest.mark.asyncio
    async def test_list_org_repos_skips_archived(self):
        pages = [
            [{"full_name": "acme/api"}, {"full_name": "acme/old", "archived": True}],
            [],
        ]

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=pages.pop(0))

        client = GitHubClient(token="t", transport=httpx.MockTransport(handler))
        assert await client.list_org_repos("acme") == ["acme/api"]

    @pytest.mark.asyncio
    async def test_member_emails_graphql_errors(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"errors": [{"message": "Resource not accessible"}]})

        client = GitHubClient(token="t", transport=httpx.MockTransport(handler))
        with pytest.raises(ProviderAPIError, match="Resource not accessible"):
            await client.fetch_member_emails("acme")


class TestCursorClient:
    """Tests for the Cursor Admin API client."""

    def test_requires_key(self):
        with pytest.raises(AuthConfigurationError):
            CursorClient(admin_key="")

    @pytest.mark.asyncio
    async def test_fetch_usage_events_request(self):
        """Test basic auth and epoch-millisecond body."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"usageEvents": [], "pagination": {"hasNextPage": False}})

        client = CursorClient(admin_key="key_123", transport=httpx.MockTransport(handler))
        start = datetime(2025, 1, 2, tzinfo=UTC)
        end = datetime(2025, 1, 2, 10, tzinfo=UTC)
        await client.fetch_usage_events(start, end, page=3, page_size=500)

        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/teams/filtered-usage-events"
        expected_auth = base64.b64encode(b"key_123:").decode()
        assert request.headers["authorization"] == f"Basic {expected_auth}"
        assert json.loads(request.content) == {
            "startDate": to_epoch_ms(start),
            "endDate": to_epoch_ms(end),
            "page": 3,
            "pageSize": 500,
        }
        assert to_epoch_ms(start) == 1735776000000


class TestAnthropicClient:
    """Tests for the Anthropic Admin API client."""

    def test_requires_key(self):
        with pytest.raises(AuthConfigurationError):
            AnthropicClient(admin_key="")

    @pytest.mark.asyncio
    async def test_fetch_usage_report_params(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"data": [], "has_more": False})

        client = AnthropicClient(admin_key="sk-admin", transport=httpx.MockTransport(handler))
        await client.fetch_usage_report(date(2025, 1, 2), page="tok")

        request = seen[0]
        assert request.url.path == "/v1/organizations/usage_report/claude_code"
        assert request.url.params["starting_at"] == "2025-01-02"
        assert request.url.params["page"] == "tok"
        assert request.headers["x-api-key"] == "sk-admin"
        assert "anthropic-version" in request.headers

    @pytest.mark.asyncio
    async def test_list_users_paginates(self):
        """Test after_id pagination collects every page."""
        seen = []
        pages = [
            {"data": [{"id": "u1"}], "has_more": True, "last_id": "u1"},
            {"data": [{"id": "u2"}], "has_more": False, "last_id": "u2"},
        ]

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=pages.pop(0))

        client = AnthropicClient(admin_key="sk-admin", transport=httpx.MockTransport(handler))
        users = await client.list_users()

        assert [u["id"] for u in users] == ["u1", "u2"]
        assert "after_id" not in seen[0].url.params
        assert seen[1].url.params["after_id"] == "u1"
