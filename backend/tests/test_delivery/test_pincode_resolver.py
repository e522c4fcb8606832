"""
Test suite for tiered pincode resolution.

Covers the static table, the remote lookup with endpoint fallback and
timeouts, the Redis cache tier and the prefix pattern fallback. Remote calls
go through ``httpx.MockTransport``; no network is used.
"""

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest
from redis.exceptions import RedisError

from storefront.services.delivery.pincode_resolver import (
    LocationSource,
    PincodeLookupStrategy,
    PincodeNotResolvableError,
    PincodeResolver,
    PrefixPatternStrategy,
    RedisCacheStrategy,
    RemoteLookupStrategy,
    ResolvedLocation,
    StaticTableStrategy,
    is_valid_pincode,
    parse_postal_payload,
)

PRIMARY = "https://primary.example"
BACKUP = "https://backup.example"


def postal_success(state: str, district: str) -> list:
    return [
        {
            "Status": "Success",
            "PostOffice": [{"Name": "Head Office", "State": state, "District": district}],
        }
    ]


class RecordingTransport:
    """Builds an ``httpx.MockTransport`` and records requested URLs."""

    def __init__(self, routes: dict):
        self.routes = routes
        self.calls: list[str] = []

    async def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.calls.append(url)
        for prefix, answer in self.routes.items():
            if url.startswith(prefix):
                return await answer(request) if callable(answer) else answer
        return httpx.Response(404)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def make_resolver(transport: RecordingTransport, cache=None, timeout: float = 1.0):
    remote = RemoteLookupStrategy(
        [PRIMARY, BACKUP],
        timeout_seconds=timeout,
        http_client=transport.client(),
        cache=cache,
    )
    strategies = [StaticTableStrategy()]
    if cache is not None:
        strategies.append(cache)
    strategies += [remote, PrefixPatternStrategy()]
    return PincodeResolver(strategies)


class TestPincodeFormat:
    @pytest.mark.parametrize("value", ["632001", "000000", "999999"])
    def test_six_digits_are_valid(self, value):
        assert is_valid_pincode(value)

    @pytest.mark.parametrize("value", ["", "63200", "6320011", "63200a", "632 01", "６３２００１"])
    def test_other_values_are_invalid(self, value):
        assert not is_valid_pincode(value)

    @pytest.mark.asyncio
    async def test_malformed_pincode_is_rejected_without_lookup(self):
        transport = RecordingTransport({})
        resolver = make_resolver(transport)

        with pytest.raises(PincodeNotResolvableError) as exc_info:
            await resolver.resolve("63200")

        assert "6 digits" in exc_info.value.message
        assert transport.calls == []


class TestStaticTable:
    @pytest.mark.asyncio
    async def test_known_pincode_resolves_without_network(self):
        transport = RecordingTransport({PRIMARY: httpx.Response(500)})
        resolver = make_resolver(transport)

        location = await resolver.resolve("632001")

        assert location == ResolvedLocation("Tamil Nadu", "Vellore", LocationSource.CACHE)
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_surrounding_whitespace_is_ignored(self):
        resolver = PincodeResolver([StaticTableStrategy()])

        location = await resolver.resolve("  632001 ")

        assert location.district == "Vellore"


class TestRemoteLookup:
    @pytest.mark.asyncio
    async def test_remote_answer_is_used(self):
        transport = RecordingTransport(
            {PRIMARY: httpx.Response(200, json=postal_success("Tamil Nadu", "Krishnagiri"))}
        )
        resolver = make_resolver(transport)

        location = await resolver.resolve("635001")

        assert location.state == "Tamil Nadu"
        assert location.district == "Krishnagiri"
        assert location.source is LocationSource.REMOTE
        assert transport.calls == [f"{PRIMARY}/pincode/635001"]

    @pytest.mark.asyncio
    async def test_server_error_falls_back_to_next_endpoint(self):
        transport = RecordingTransport(
            {
                PRIMARY: httpx.Response(503),
                BACKUP: httpx.Response(200, json=postal_success("Kerala", "Kollam")),
            }
        )
        resolver = make_resolver(transport)

        location = await resolver.resolve("691001")

        assert location.district == "Kollam"
        assert len(transport.calls) == 2

    @pytest.mark.asyncio
    async def test_slow_endpoint_is_abandoned_after_timeout(self):
        async def stall(request):
            await asyncio.sleep(2)
            return httpx.Response(200, json=postal_success("Tamil Nadu", "Salem"))

        transport = RecordingTransport(
            {
                PRIMARY: stall,
                BACKUP: httpx.Response(200, json=postal_success("Tamil Nadu", "Erode")),
            }
        )
        resolver = make_resolver(transport, timeout=0.05)

        location = await resolver.resolve("638001")

        assert location.district == "Erode"
        assert location.source is LocationSource.REMOTE

    @pytest.mark.asyncio
    async def test_malformed_body_falls_back_to_next_endpoint(self):
        transport = RecordingTransport(
            {
                PRIMARY: httpx.Response(200, json={"unexpected": True}),
                BACKUP: httpx.Response(200, json=postal_success("Kerala", "Kannur")),
            }
        )
        resolver = make_resolver(transport)

        location = await resolver.resolve("670001")

        assert location.district == "Kannur"

    @pytest.mark.asyncio
    async def test_unknown_pincode_stops_remote_tier_and_uses_pattern(self):
        transport = RecordingTransport(
            {
                PRIMARY: httpx.Response(
                    200, json=[{"Status": "Error", "PostOffice": None}]
                ),
                BACKUP: httpx.Response(200, json=postal_success("Nowhere", "Nothing")),
            }
        )
        resolver = make_resolver(transport)

        location = await resolver.resolve("632999")

        assert location == ResolvedLocation("Tamil Nadu", "Vellore", LocationSource.PATTERN)
        assert transport.calls == [f"{PRIMARY}/pincode/632999"]

    @pytest.mark.asyncio
    async def test_all_endpoints_failing_uses_two_digit_pattern(self):
        transport = RecordingTransport(
            {PRIMARY: httpx.Response(500), BACKUP: httpx.Response(502)}
        )
        resolver = make_resolver(transport)

        location = await resolver.resolve("636001")

        assert location.state == "Tamil Nadu"
        assert location.district is None
        assert location.source is LocationSource.PATTERN

    @pytest.mark.asyncio
    async def test_no_endpoints_defers(self):
        strategy = RemoteLookupStrategy([])

        assert await strategy.lookup("635001") is None


class TestRedisCache:
    @pytest.fixture
    def redis_client(self) -> AsyncMock:
        client = AsyncMock()
        client.get_json = AsyncMock(return_value=None)
        client.set_json = AsyncMock(return_value=True)
        return client

    @pytest.mark.asyncio
    async def test_remote_answer_is_written_back(self, redis_client):
        cache = RedisCacheStrategy(redis_client, ttl_seconds=3600)
        transport = RecordingTransport(
            {PRIMARY: httpx.Response(200, json=postal_success("Karnataka", "Mysuru"))}
        )
        resolver = make_resolver(transport, cache=cache)

        await resolver.resolve("570001")

        redis_client.set_json.assert_awaited_once_with(
            "storefront:pincode:570001",
            {"state": "Karnataka", "district": "Mysuru"},
            ex=3600,
        )

    @pytest.mark.asyncio
    async def test_cached_answer_skips_remote(self, redis_client):
        redis_client.get_json.return_value = {"state": "Karnataka", "district": "Mysuru"}
        cache = RedisCacheStrategy(redis_client, ttl_seconds=3600)
        transport = RecordingTransport({})
        resolver = make_resolver(transport, cache=cache)

        location = await resolver.resolve("570001")

        assert location == ResolvedLocation("Karnataka", "Mysuru", LocationSource.CACHE)
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_cache_errors_count_as_miss(self, redis_client):
        redis_client.get_json.side_effect = RedisError("down")
        redis_client.set_json.side_effect = RedisError("down")
        cache = RedisCacheStrategy(redis_client, ttl_seconds=60)
        transport = RecordingTransport(
            {PRIMARY: httpx.Response(200, json=postal_success("Karnataka", "Mandya"))}
        )
        resolver = make_resolver(transport, cache=cache)

        location = await resolver.resolve("571401")

        assert location.district == "Mandya"
        assert location.source is LocationSource.REMOTE


class FailingStrategy(PincodeLookupStrategy):
    name = "failing"

    async def lookup(self, pincode):
        raise RuntimeError("boom")


class TestResolverChain:
    @pytest.mark.asyncio
    async def test_failing_strategy_is_skipped(self):
        resolver = PincodeResolver([FailingStrategy(), PrefixPatternStrategy()])

        location = await resolver.resolve("600099")

        assert location.district == "Chennai"

    @pytest.mark.asyncio
    async def test_exhausted_chain_raises(self):
        resolver = PincodeResolver([StaticTableStrategy(), PrefixPatternStrategy()])

        with pytest.raises(PincodeNotResolvableError) as exc_info:
            await resolver.resolve("990001")

        assert exc_info.value.pincode == "990001"


class TestParsePostalPayload:
    def test_bare_object_is_accepted(self):
        verdict, found = parse_postal_payload(postal_success("Goa", "North Goa")[0])

        assert verdict.value == "found"
        assert found == ("Goa", "North Goa")

    def test_missing_state_is_malformed(self):
        payload = [{"Status": "Success", "PostOffice": [{"District": "X"}]}]

        verdict, found = parse_postal_payload(payload)

        assert verdict.value == "malformed"
        assert found is None

    def test_empty_post_office_list_is_not_found(self):
        verdict, _ = parse_postal_payload([{"Status": "Success", "PostOffice": []}])

        assert verdict.value == "not_found"
