"""CORS relay router with health-ranked ordering, failover and full-pass retries.

A request is tried through the relays one at a time, best first. The custom
relay (when configured) always leads; the rest are ranked by their recorded
success rate. Relays that look broken are skipped for the pass. When a whole
pass fails the router sleeps ``2 ** pass_index`` seconds and starts a fresh
pass with a freshly computed order, up to ``max_passes`` passes.

Every attempt updates the relay's health statistics, and the complete map is
written to the ``HealthStore`` after each update so rankings survive restarts.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import replace

import httpx

from bgg_picker.middleware.error_handler import (
    AllEndpointsExhaustedError,
    AllEndpointsUnhealthyError,
    EndpointRequestError,
)
from bgg_picker.proxy.health_store import HealthStore
from bgg_picker.proxy.types import (
    CUSTOM_ENDPOINT_ID,
    Endpoint,
    EndpointHealth,
    ResponseShape,
)

logger = logging.getLogger(__name__)

BGG_API_BASE = "https://boardgamegeek.com/xmlapi2"
DEFAULT_PROBE_URL = f"{BGG_API_BASE}/thing?id=13&type=boardgame"

ACCEPT_HEADER = "application/json, text/plain, */*"

# Skip rule thresholds
MAX_CONSECUTIVE_FAILURES = 5
MIN_SUCCESS_RATE = 0.2
MIN_ATTEMPTS_FOR_RATE = 10
STALE_SUCCESS_SECONDS = 3600

_WRAPPED_PAYLOAD_KEYS = ("contents", "data", "body")

NotifyFn = Callable[[str, str], None]
SleepFn = Callable[[float], Awaitable[None]]


class ProxyRouter:
    """Executes GET requests through a ranked pool of CORS relays.

    Parameters
    ----------
    endpoints:
        Configured relays, in tie-break order.
    health_store:
        Durable store for the health map; loaded by ``initialize()``.
    client:
        HTTP transport. When omitted the router creates and owns one.
    custom_endpoint_url:
        Optional user relay prefix. Always tried first and never skipped.
    user_agent:
        Sent on every attempt to relays that accept a custom ``User-Agent``.
    request_timeout_seconds / probe_timeout_seconds:
        Per-attempt timeouts for requests and health probes.
    max_passes:
        Number of full ordered passes before giving up.
    health_check_interval_seconds:
        Period of ``health_check_loop``.
    notify:
        Optional ``(message, kind)`` status sink. Failures are ignored.
    sleep / clock:
        Injectable backoff sleep and wall clock (epoch seconds).
    verbose:
        Log per-attempt progress at INFO rather than DEBUG.
    """

    def __init__(
        self,
        endpoints: list[Endpoint],
        health_store: HealthStore,
        *,
        client: httpx.AsyncClient | None = None,
        custom_endpoint_url: str | None = None,
        user_agent: str = "BoardGamePicker/2.0.0",
        request_timeout_seconds: float = 30.0,
        probe_timeout_seconds: float = 10.0,
        max_passes: int = 3,
        health_check_interval_seconds: int = 300,
        notify: NotifyFn | None = None,
        sleep: SleepFn = asyncio.sleep,
        clock: Callable[[], float] = time.time,
        verbose: bool = False,
    ) -> None:
        self._endpoints = list(endpoints)
        self._store = health_store
        self._client = client or httpx.AsyncClient(follow_redirects=True)
        self._owns_client = client is None
        self._custom: Endpoint | None = None
        self._user_agent = user_agent
        self._request_timeout = request_timeout_seconds
        self._probe_timeout = probe_timeout_seconds
        self._max_passes = max_passes
        self._health_check_interval_seconds = health_check_interval_seconds
        self._notify = notify
        self._sleep = sleep
        self._clock = clock
        self._progress_level = logging.INFO if verbose else logging.DEBUG

        self._health: dict[str, EndpointHealth] = {}
        self._initialized = False

        self.set_custom_endpoint(custom_endpoint_url)

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Load persisted relay health. Called once before the first request."""
        try:
            self._health = self._store.load()
        except Exception:
            logger.exception("Failed to load relay health — starting with empty stats")
            self._health = {}
        self._initialized = True
        logger.info(
            "Proxy router initialized with %d relays (%d with recorded health)",
            len(self._endpoints),
            len(self._health),
        )

    def set_custom_endpoint(self, url: str | None) -> None:
        """Install or clear the user-supplied relay."""
        if url:
            self._custom = Endpoint(identifier=CUSTOM_ENDPOINT_ID, url_template=url)
        else:
            self._custom = None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Ordering and filtering
    # ------------------------------------------------------------------

    def ordered_endpoints(self) -> list[Endpoint]:
        """Return relays in attempt order for the current health state.

        Custom relay first, then relays with a positive success rate (best
        first), then relays without recorded health, then relays that have
        never succeeded. ``sorted`` is stable, so ties keep config order.
        """

        def rank(endpoint: Endpoint) -> tuple[int, float]:
            health = self._health.get(endpoint.identifier)
            if health is None or health.total_attempts == 0:
                return (1, 0.0)
            rate = health.success_rate
            if rate > 0:
                return (0, -rate)
            return (2, 0.0)

        ordered = sorted(self._endpoints, key=rank)
        if self._custom is not None:
            ordered.insert(0, self._custom)
        return ordered

    def is_unhealthy(self, identifier: str) -> bool:
        """Skip rule: too many consecutive failures, a poor rate, or a stale success."""
        if identifier == CUSTOM_ENDPOINT_ID:
            return False
        health = self._health.get(identifier)
        if health is None:
            return False

        if health.consecutive_failures >= MAX_CONSECUTIVE_FAILURES:
            return True
        if (
            health.success_rate < MIN_SUCCESS_RATE
            and health.total_attempts >= MIN_ATTEMPTS_FOR_RATE
        ):
            return True
        if (
            health.last_success_time is not None
            and self._clock() - health.last_success_time > STALE_SUCCESS_SECONDS
        ):
            return True
        return False

    def candidate_endpoints(self) -> list[Endpoint]:
        return [e for e in self.ordered_endpoints() if not self.is_unhealthy(e.identifier)]

    # ------------------------------------------------------------------
    # Health tracking
    # ------------------------------------------------------------------

    def update_health(self, identifier: str, success: bool) -> EndpointHealth:
        """Record one attempt outcome and persist the complete health map."""
        now = self._clock()
        health = self._health.get(identifier)
        if health is None:
            health = EndpointHealth(last_check_time=now)
            self._health[identifier] = health

        if success:
            health.success_count += 1
            health.last_success_time = now
            health.consecutive_failures = 0
        else:
            health.failure_count += 1
            health.consecutive_failures += 1

        health.last_check_time = now
        self._persist()
        return health

    def _persist(self) -> None:
        try:
            self._store.save(self._health)
        except Exception:
            # At most this update is lost; the in-memory map stays authoritative.
            logger.exception("Failed to persist relay health")

    def get_health(self) -> dict[str, EndpointHealth]:
        """Return a copy of the health map."""
        return {
            identifier: replace(health)
            for identifier, health in self._health.items()
        }

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def request(self, target_url: str) -> str:
        """GET ``target_url`` through the relays and return the upstream body text.

        Raises
        ------
        AllEndpointsUnhealthyError
            If every relay is skipped before the first attempt.
        AllEndpointsExhaustedError
            If every pass failed. Carries the last failure message.
        """
        if not self._initialized:
            await self.initialize()

        last_error: str | None = None
        passes = 0

        for pass_index in range(self._max_passes):
            candidates = self.candidate_endpoints()
            if not candidates:
                if pass_index == 0:
                    logger.error("No healthy relay available for %s", target_url)
                    raise AllEndpointsUnhealthyError()
                break

            for endpoint in candidates:
                start = time.monotonic()
                try:
                    text = await self._attempt(endpoint, target_url)
                except (httpx.HTTPError, EndpointRequestError) as exc:
                    last_error = str(exc) or exc.__class__.__name__
                    logger.warning(
                        "%s failed: %s",
                        endpoint.identifier,
                        last_error,
                        extra={
                            "relay": endpoint.identifier,
                            "target_url": target_url,
                            "pass_index": pass_index,
                            "error_reason": last_error,
                        },
                    )
                    self.update_health(endpoint.identifier, False)
                    continue

                self.update_health(endpoint.identifier, True)
                logger.log(
                    self._progress_level,
                    "Fetched %s via %s",
                    target_url,
                    endpoint.identifier,
                    extra={
                        "relay": endpoint.identifier,
                        "target_url": target_url,
                        "pass_index": pass_index,
                        "duration_ms": round((time.monotonic() - start) * 1000, 1),
                    },
                )
                return text

            passes = pass_index + 1
            if passes < self._max_passes:
                delay = 2**pass_index  # 1s, 2s, ...
                logger.log(self._progress_level, "Retrying in %ds...", delay)
                await self._sleep(delay)

        logger.error(
            "All relays failed for %s after %d passes",
            target_url,
            passes,
            extra={"target_url": target_url, "error_reason": last_error},
        )
        raise AllEndpointsExhaustedError(last_error, attempts=passes)

    async def _attempt(self, endpoint: Endpoint, target_url: str) -> str:
        """Issue one GET through ``endpoint`` and normalise its response body."""
        self._emit(f"Connecting via {endpoint.identifier} proxy...", "loading")
        logger.log(
            self._progress_level,
            "Trying relay %s",
            endpoint.identifier,
            extra={"relay": endpoint.identifier, "target_url": target_url},
        )

        headers = {"Accept": ACCEPT_HEADER}
        if endpoint.sends_user_agent:
            headers["User-Agent"] = self._user_agent

        try:
            response = await self._client.get(
                endpoint.build_url(target_url),
                headers=headers,
                timeout=self._request_timeout,
            )
        except httpx.InvalidURL as exc:
            raise EndpointRequestError(f"Invalid relay URL: {exc}") from exc

        if not response.is_success:
            raise EndpointRequestError(
                f"HTTP error! status: {response.status_code} - {response.reason_phrase}"
            )

        if endpoint.response_shape == ResponseShape.JSON_WRAPPED:
            text = _unwrap_json(response.text)
        else:
            text = response.text

        if not text:
            raise EndpointRequestError("Empty response body")
        return text

    def _emit(self, message: str, kind: str) -> None:
        if self._notify is None:
            return
        try:
            self._notify(message, kind)
        except Exception:
            logger.debug("Status sink raised — ignoring", exc_info=True)

    # ------------------------------------------------------------------
    # Background health checks
    # ------------------------------------------------------------------

    async def check_all_health(self, probe_url: str = DEFAULT_PROBE_URL) -> dict[str, bool]:
        """Probe every configured relay once with a short timeout and record the outcome."""
        logger.log(self._progress_level, "Running relay health check...")
        results: dict[str, bool] = {}

        for endpoint in self._endpoints:
            try:
                response = await self._client.get(
                    endpoint.build_url(probe_url),
                    timeout=self._probe_timeout,
                )
                ok = response.is_success
            except (httpx.HTTPError, httpx.InvalidURL):
                ok = False
            self.update_health(endpoint.identifier, ok)
            results[endpoint.identifier] = ok

        return results

    async def health_check_loop(self, *, probe_first: bool = True) -> None:
        """Re-probe all relays every ``health_check_interval_seconds``.

        With ``probe_first`` the first round runs immediately, so relays marked
        stale by persisted health recover without waiting a full interval.
        """
        if probe_first:
            await self._health_check_round()
        while True:
            await self._sleep(self._health_check_interval_seconds)
            await self._health_check_round()

    async def _health_check_round(self) -> None:
        try:
            await self.check_all_health()
        except Exception:
            logger.exception("Relay health check round failed")

    # ------------------------------------------------------------------
    # Stats / metrics
    # ------------------------------------------------------------------

    def get_stats(self) -> dict:
        """Return relay pool statistics for the health endpoint."""
        relays = []
        for endpoint in self.ordered_endpoints():
            health = self._health.get(endpoint.identifier)
            relays.append(
                {
                    "name": endpoint.identifier,
                    "url": endpoint.url_template,
                    "is_healthy": not self.is_unhealthy(endpoint.identifier),
                    "success_count": health.success_count if health else 0,
                    "failure_count": health.failure_count if health else 0,
                    "consecutive_failures": health.consecutive_failures if health else 0,
                    "success_rate": round(health.success_rate, 3) if health else None,
                    "last_success": health.last_success_time if health else None,
                }
            )

        healthy = sum(1 for r in relays if r["is_healthy"])
        return {
            "total": len(relays),
            "healthy": healthy,
            "unhealthy": len(relays) - healthy,
            "relays": relays,
        }


def _unwrap_json(body: str) -> str:
    """Extract the payload from a JSON envelope, falling back to the raw body."""
    try:
        parsed = json.loads(body)
    except ValueError:
        return body
    except RecursionError as exc:
        raise EndpointRequestError("Malformed wrapped response: nesting too deep") from exc

    if not isinstance(parsed, dict):
        raise EndpointRequestError("Malformed wrapped response")

    for key in _WRAPPED_PAYLOAD_KEYS:
        value = parsed.get(key)
        if value:
            if not isinstance(value, str):
                raise EndpointRequestError(f"Malformed wrapped response: '{key}' is not text")
            return value
    return ""
