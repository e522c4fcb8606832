"""
Tiered pincode resolution.

A pincode is resolved to a state and optional district by an ordered list of
lookup strategies behind a single driver. The default chain is:

1. static table of known pincodes (no I/O)
2. Redis cache of earlier remote answers (optional)
3. remote postal lookup service, one attempt per configured endpoint, each
   bounded by a timeout
4. three-digit then two-digit prefix tables

The first strategy that answers wins. Strategy failures are logged and never
reach the caller; only exhausting every tier raises.
"""

import asyncio
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Sequence, Tuple

import httpx
from redis.exceptions import RedisError

from storefront.cache.redis_client import CacheKeyManager, RedisClient
from storefront.core.config import Settings, get_settings
from storefront.core.logging import get_logger, log_performance
from storefront.services.delivery import pincode_data

logger = get_logger(__name__)

_PINCODE_PATTERN = re.compile(r"[0-9]{6}")


class LocationSource(str, Enum):
    """Tier that produced a resolved location."""

    CACHE = "cache"
    REMOTE = "remote"
    PATTERN = "pattern"


@dataclass(frozen=True)
class ResolvedLocation:
    """Normalized delivery location for a pincode."""

    state: str
    district: Optional[str] = None
    source: LocationSource = LocationSource.CACHE

    def to_cache(self) -> dict[str, Any]:
        return {"state": self.state, "district": self.district}


class PincodeResolverError(Exception):
    """Base exception for pincode resolution errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


class PincodeNotResolvableError(PincodeResolverError):
    """Raised when no tier can resolve a pincode."""

    def __init__(self, pincode: str, reason: str = "no tier resolved the pincode"):
        super().__init__(
            f"Pincode {pincode!r} could not be resolved: {reason}",
            pincode=pincode,
            reason=reason,
        )
        self.pincode = pincode


def is_valid_pincode(value: str) -> bool:
    """Check that ``value`` is exactly six ASCII digits."""
    return bool(_PINCODE_PATTERN.fullmatch(value))


class PincodeLookupStrategy(ABC):
    """One tier of the resolver chain."""

    name: str = "strategy"

    @abstractmethod
    async def lookup(self, pincode: str) -> Optional[ResolvedLocation]:
        """
        Resolve ``pincode`` or return None to defer to the next tier.

        Args:
            pincode: Validated six-digit pincode
        """


class StaticTableStrategy(PincodeLookupStrategy):
    """Exact lookup in an immutable in-process table."""

    name = "static_table"

    def __init__(
        self,
        table: Mapping[str, Tuple[str, str]] = pincode_data.KNOWN_PINCODES,
    ):
        self._table = table

    async def lookup(self, pincode: str) -> Optional[ResolvedLocation]:
        entry = self._table.get(pincode)
        if entry is None:
            return None
        state, district = entry
        return ResolvedLocation(
            state=state,
            district=district,
            source=LocationSource.CACHE,
        )


class RedisCacheStrategy(PincodeLookupStrategy):
    """
    Read-through cache of remote answers stored in Redis.

    Redis errors count as a miss on read and are ignored on write.
    """

    name = "redis_cache"

    def __init__(
        self,
        client: RedisClient,
        ttl_seconds: int,
        key_manager: Optional[CacheKeyManager] = None,
    ):
        self._client = client
        self._ttl_seconds = ttl_seconds
        self._keys = key_manager or CacheKeyManager()

    async def lookup(self, pincode: str) -> Optional[ResolvedLocation]:
        try:
            cached = await self._client.get_json(self._keys.pincode_key(pincode))
        except (RedisError, ValueError) as e:
            logger.warning(
                "Pincode cache read failed",
                pincode=pincode,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        if not cached or not cached.get("state"):
            return None

        return ResolvedLocation(
            state=cached["state"],
            district=cached.get("district"),
            source=LocationSource.CACHE,
        )

    async def store(self, pincode: str, location: ResolvedLocation) -> None:
        """Write a remote answer back into the cache."""
        try:
            await self._client.set_json(
                self._keys.pincode_key(pincode),
                location.to_cache(),
                ex=self._ttl_seconds,
            )
        except RedisError as e:
            logger.warning(
                "Pincode cache write failed",
                pincode=pincode,
                error=str(e),
                error_type=type(e).__name__,
            )


class _PayloadVerdict(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    MALFORMED = "malformed"


def parse_postal_payload(
    payload: Any,
) -> Tuple[_PayloadVerdict, Optional[Tuple[str, Optional[str]]]]:
    """
    Interpret a postal lookup response body.

    The service answers with a list whose first element carries ``Status``
    and a ``PostOffice`` list; a bare object is accepted too.

    Returns:
        Verdict and, when found, ``(state, district)`` of the first post office
    """
    record = payload[0] if isinstance(payload, list) and payload else payload
    if not isinstance(record, dict) or not isinstance(record.get("Status"), str):
        return _PayloadVerdict.MALFORMED, None

    if record["Status"].strip().lower() != "success":
        return _PayloadVerdict.NOT_FOUND, None

    offices = record.get("PostOffice")
    if not isinstance(offices, list) or not offices:
        return _PayloadVerdict.NOT_FOUND, None

    office = offices[0]
    if not isinstance(office, dict):
        return _PayloadVerdict.MALFORMED, None

    state = (office.get("State") or "").strip()
    if not state:
        return _PayloadVerdict.MALFORMED, None

    district = (office.get("District") or "").strip() or None
    return _PayloadVerdict.FOUND, (state, district)


class RemoteLookupStrategy(PincodeLookupStrategy):
    """
    Query the postal lookup service across an ordered list of endpoints.

    Each attempt is bounded by ``timeout_seconds`` through both the HTTP
    client timeout and ``asyncio.wait_for``, so a stalled endpoint is
    cancelled. Timeouts, transport errors, non-2xx responses and malformed
    bodies move on to the next endpoint. The first response with a
    recognizable status is final: a non-success status defers to the next
    tier without trying further endpoints.
    """

    name = "remote_lookup"

    def __init__(
        self,
        endpoints: Sequence[str],
        timeout_seconds: float = 8.0,
        http_client: Optional[httpx.AsyncClient] = None,
        cache: Optional[RedisCacheStrategy] = None,
    ):
        self._endpoints = tuple(endpoint.rstrip("/") for endpoint in endpoints)
        self._timeout_seconds = timeout_seconds
        self._http_client = http_client
        self._cache = cache

    async def lookup(self, pincode: str) -> Optional[ResolvedLocation]:
        if not self._endpoints:
            return None

        if self._http_client is not None:
            return await self._lookup_with(self._http_client, pincode)

        async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
            return await self._lookup_with(client, pincode)

    async def _lookup_with(
        self,
        client: httpx.AsyncClient,
        pincode: str,
    ) -> Optional[ResolvedLocation]:
        for endpoint in self._endpoints:
            try:
                with log_performance(
                    logger,
                    "pincode_remote_lookup",
                    endpoint=endpoint,
                    pincode=pincode,
                ):
                    payload = await asyncio.wait_for(
                        self._fetch(client, endpoint, pincode),
                        timeout=self._timeout_seconds,
                    )
            except asyncio.TimeoutError:
                logger.warning(
                    "Pincode lookup timed out",
                    endpoint=endpoint,
                    pincode=pincode,
                    timeout_seconds=self._timeout_seconds,
                )
                continue
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(
                    "Pincode lookup failed",
                    endpoint=endpoint,
                    pincode=pincode,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            verdict, found = parse_postal_payload(payload)
            if verdict is _PayloadVerdict.MALFORMED:
                logger.warning(
                    "Pincode lookup returned malformed payload",
                    endpoint=endpoint,
                    pincode=pincode,
                )
                continue

            if verdict is _PayloadVerdict.NOT_FOUND:
                logger.info(
                    "Pincode not known to postal service",
                    endpoint=endpoint,
                    pincode=pincode,
                )
                return None

            state, district = found
            location = ResolvedLocation(
                state=state,
                district=district,
                source=LocationSource.REMOTE,
            )
            if self._cache is not None:
                await self._cache.store(pincode, location)
            return location

        logger.warning("All pincode lookup endpoints failed", pincode=pincode)
        return None

    async def _fetch(
        self,
        client: httpx.AsyncClient,
        endpoint: str,
        pincode: str,
    ) -> Any:
        response = await client.get(
            f"{endpoint}/pincode/{pincode}",
            timeout=self._timeout_seconds,
        )
        response.raise_for_status()
        return response.json()


class PrefixPatternStrategy(PincodeLookupStrategy):
    """Heuristic lookup by three-digit, then two-digit prefix."""

    name = "prefix_pattern"

    def __init__(
        self,
        district_prefixes: Mapping[str, Tuple[str, str]] = pincode_data.DISTRICT_PREFIXES,
        state_prefixes: Mapping[str, str] = pincode_data.STATE_PREFIXES,
    ):
        self._district_prefixes = district_prefixes
        self._state_prefixes = state_prefixes

    async def lookup(self, pincode: str) -> Optional[ResolvedLocation]:
        hit = pincode_data.lookup_prefix(
            pincode,
            district_prefixes=self._district_prefixes,
            state_prefixes=self._state_prefixes,
        )
        if hit is None:
            return None
        state, district = hit
        return ResolvedLocation(
            state=state,
            district=district,
            source=LocationSource.PATTERN,
        )


class PincodeResolver:
    """
    Driver iterating lookup strategies until one answers.

    Resolution is read-only and safe to retry.
    """

    def __init__(self, strategies: Sequence[PincodeLookupStrategy]):
        self._strategies = tuple(strategies)
        logger.info(
            "Pincode resolver initialized",
            strategies=[strategy.name for strategy in self._strategies],
        )

    @property
    def strategies(self) -> Tuple[PincodeLookupStrategy, ...]:
        return self._strategies

    async def resolve(self, pincode: str) -> ResolvedLocation:
        """
        Resolve a pincode to a delivery location.

        Args:
            pincode: Raw pincode as entered by the customer

        Returns:
            Resolved location and the tier that produced it

        Raises:
            PincodeNotResolvableError: If the pincode is malformed or no tier
                can resolve it
        """
        normalized = (pincode or "").strip()
        if not is_valid_pincode(normalized):
            raise PincodeNotResolvableError(normalized, "pincode must be 6 digits")

        for strategy in self._strategies:
            try:
                location = await strategy.lookup(normalized)
            except Exception as e:
                logger.warning(
                    "Pincode strategy failed",
                    strategy=strategy.name,
                    pincode=normalized,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            if location is not None:
                logger.debug(
                    "Pincode resolved",
                    pincode=normalized,
                    strategy=strategy.name,
                    state=location.state,
                    district=location.district,
                    source=location.source.value,
                )
                return location

        logger.info("Pincode not resolvable", pincode=normalized)
        raise PincodeNotResolvableError(normalized)


def build_pincode_resolver(
    settings: Optional[Settings] = None,
    redis_client: Optional[RedisClient] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> PincodeResolver:
    """
    Assemble the default strategy chain from settings.

    Args:
        settings: Application settings (defaults to ``get_settings()``)
        redis_client: Connected Redis client; the cache tier is skipped
            when None or when caching is disabled
        http_client: Shared HTTP client for the remote tier

    Returns:
        Configured pincode resolver
    """
    settings = settings or get_settings()

    cache: Optional[RedisCacheStrategy] = None
    if redis_client is not None and settings.pincode_cache_enabled:
        cache = RedisCacheStrategy(
            redis_client,
            ttl_seconds=settings.pincode_cache_ttl_seconds,
        )

    strategies: list[PincodeLookupStrategy] = [StaticTableStrategy()]
    if cache is not None:
        strategies.append(cache)
    strategies.append(
        RemoteLookupStrategy(
            settings.pincode_lookup_endpoints,
            timeout_seconds=settings.pincode_lookup_timeout_seconds,
            http_client=http_client,
            cache=cache,
        )
    )
    strategies.append(PrefixPatternStrategy())

    return PincodeResolver(strategies)
