"""
Generic request dispatcher.

Performs exactly one authenticated HTTP exchange and normalizes its outcome
into a response envelope:
- Encodes the payload and attaches the credential
- Holds the request back until the rate tracker allows it
- Parses the quota headers of every response, success or not
- Decodes server errors into APIError and success bodies into the envelope
- Reports every observed quota back to the rate tracker

No retries happen here; callers decide what to retry based on the error.
"""
import asyncio
import json
import logging
import time
from typing import Any, Optional, TypeVar

import aiohttp

from .config import ClientConfig
from .envelope import ResponseEnvelope
from .errors import (
    DecodingError,
    MalformedQuotaError,
    MarketClientError,
    TransportError,
    decode_api_error,
)
from .exchange import PendingExchange
from .quota import parse_quota
from .rate_tracker import RateTracker
from .telemetry import TelemetryDecision, TelemetryRecorder, create_event, get_recorder

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=ResponseEnvelope)

HTTP_OK = 200


class RequestDispatcher:
    """
    Sends requests for any envelope type through one shared rate tracker.

    Example:
        config = load_config()
        tracker = RateTracker.from_config(config)
        async with RequestDispatcher(tracker, config) as dispatcher:
            response = await dispatcher.send(
                "GET", url, api_key, JSONResponse(), query={"limit": 40}
            )
            print(response.quota.remaining, response.data)
    """

    def __init__(
        self,
        rate_tracker: RateTracker,
        config: Optional[ClientConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
        recorder: Optional[TelemetryRecorder] = None,
    ):
        """
        Initialize dispatcher.

        Args:
            rate_tracker: Tracker shared by all dispatchers of the process,
                usually RateTracker.from_config(config)
            config: Client configuration (defaults to ClientConfig())
            session: Optional aiohttp session; one is created on first use
                and closed by close() when not given
            recorder: Telemetry recorder (defaults to the process recorder)
        """
        self.rate_tracker = rate_tracker
        self.config = config or ClientConfig()
        self.recorder = recorder or get_recorder()
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "RequestDispatcher":
        return self

    async def __aexit__(self, exc_type, exc_value, traceback) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the session if this dispatcher created it."""
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    def _client_timeout(self, timeout: Optional[float]) -> aiohttp.ClientTimeout:
        total = timeout if timeout is not None else self.config.timeout
        return aiohttp.ClientTimeout(
            total=total,
            connect=min(total, self.config.connect_timeout),
        )

    def _headers_seen(self, headers: Any) -> dict[str, str]:
        seen = {}
        for name in self.config.headers.names():
            value = headers.get(name)
            if value is not None:
                seen[name] = value
        return seen

    def _emit(self, exchange: PendingExchange, decision: TelemetryDecision, **kwargs: Any) -> None:
        self.recorder.record(
            create_event(
                method=exchange.method,
                endpoint=exchange.endpoint,
                decision=decision,
                bucket_key=exchange.bucket_key,
                **kwargs,
            )
        )

    async def send(
        self,
        method: str,
        url: str,
        credential: str,
        envelope: E,
        payload: Any = None,
        query: Optional[dict[str, Any]] = None,
        bucket_key: Optional[str] = None,
        wait: Optional[bool] = None,
        timeout: Optional[float] = None,
    ) -> E:
        """
        Send one request and populate the envelope from its response.

        Args:
            method: HTTP method
            url: Request URL; its query string is replaced by ``query``
            credential: API key for the Authorization header
            envelope: Response envelope to populate
            payload: Optional JSON-encodable body
            query: Query parameters
            bucket_key: Rate limit bucket, derived when not given
            wait: Wait for the bucket deadline (defaults to config)
            timeout: Seconds bounding both the rate wait and the request

        Returns:
            The populated envelope

        Raises:
            EncodingError: Payload not serializable, nothing was sent
            RateWaitTimeoutError: Bucket deadline lies beyond the timeout
            TransportError: The server could not be reached
            APIError: The server answered with a non-success status
            DecodingError: A response body could not be decoded
            MalformedQuotaError: Only in strict quota mode
        """
        exchange = PendingExchange(
            method=method,
            url=url,
            credential=credential,
            query=query or {},
            payload=payload,
            bucket_key=bucket_key or "",
        )
        return await self.dispatch(exchange, envelope, wait=wait, timeout=timeout)

    async def dispatch(
        self,
        exchange: PendingExchange,
        envelope: E,
        wait: Optional[bool] = None,
        timeout: Optional[float] = None,
    ) -> E:
        """Send a prepared exchange. See send() for the contract."""
        try:
            body = exchange.encode_body()
            await self._hold(exchange, wait, timeout)
        except MarketClientError as e:
            e.envelope = envelope
            raise

        headers = exchange.build_headers(body, self.config.user_agent)
        session = self._get_session()
        start_time = time.monotonic()

        try:
            async with session.request(
                exchange.method,
                exchange.full_url(),
                data=body,
                headers=headers,
                timeout=self._client_timeout(timeout),
            ) as response:
                elapsed_ms = (time.monotonic() - start_time) * 1000
                return await self._handle_response(exchange, response, envelope, elapsed_ms)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            elapsed_ms = (time.monotonic() - start_time) * 1000
            logger.warning(
                f"Transport failure for {exchange.method} {exchange.endpoint}: {e!r}"
            )
            self._emit(exchange, TelemetryDecision.TRANSPORT_ERROR, elapsed_ms=elapsed_ms)
            raise TransportError(
                f"error sending {exchange.method} {exchange.endpoint}: {e!r}",
                envelope=envelope,
            ) from e

    async def _hold(self, exchange: PendingExchange, wait: Optional[bool], timeout: Optional[float]) -> None:
        if wait is None:
            wait = self.config.wait_by_default

        if wait:
            waited = await self.rate_tracker.wait_async(exchange.bucket_key, timeout=timeout)
            decision = TelemetryDecision.THROTTLE if waited > 0 else TelemetryDecision.ALLOW
            self._emit(exchange, decision, sleep_s=waited)
            return

        pending = self.rate_tracker.peek(exchange.bucket_key)
        if pending > 0:
            logger.info(
                f"Sending {exchange.method} {exchange.endpoint} {pending:.2f}s before "
                f"its bucket deadline, the server may throttle it"
            )
        self._emit(exchange, TelemetryDecision.ALLOW)

    async def _handle_response(
        self,
        exchange: PendingExchange,
        response: aiohttp.ClientResponse,
        envelope: E,
        elapsed_ms: float,
    ) -> E:
        status = response.status
        headers_seen = self._headers_seen(response.headers)

        try:
            quota = parse_quota(
                response.headers,
                self.config.headers,
                now=self.rate_tracker.time_provider.now(),
            )
        except MalformedQuotaError as e:
            e.envelope = envelope
            envelope.set_quota_error(e)
            logger.warning(f"{exchange.method} {exchange.endpoint}: {e}")
            self._emit(
                exchange,
                TelemetryDecision.MALFORMED_QUOTA,
                status=status,
                elapsed_ms=elapsed_ms,
                headers_seen=headers_seen,
            )
        else:
            envelope.set_quota(quota)
            self.rate_tracker.record_observation(exchange.bucket_key, quota)

        if status != HTTP_OK:
            raw = await response.read()
            try:
                api_error = decode_api_error(raw, status)
            except DecodingError as e:
                e.envelope = envelope
                self._emit(
                    exchange,
                    TelemetryDecision.DECODE_ERROR,
                    status=status,
                    elapsed_ms=elapsed_ms,
                    headers_seen=headers_seen,
                )
                raise
            api_error.envelope = envelope
            envelope.set_error(api_error)
            self._emit(
                exchange,
                TelemetryDecision.API_ERROR,
                status=status,
                elapsed_ms=elapsed_ms,
                headers_seen=headers_seen,
                quota_limit=envelope.quota.limit,
                quota_remaining=envelope.quota.remaining,
                error_code=api_error.code,
            )
            raise api_error

        if envelope.decodes_body:
            raw = await response.read()
            try:
                envelope.load_body(json.loads(raw))
            except (TypeError, ValueError, KeyError) as e:
                self._emit(
                    exchange,
                    TelemetryDecision.DECODE_ERROR,
                    status=status,
                    elapsed_ms=elapsed_ms,
                    headers_seen=headers_seen,
                )
                raise DecodingError(
                    f"error decoding response of {exchange.method} {exchange.endpoint}: {e}",
                    http_status=status,
                    envelope=envelope,
                ) from e

        if envelope.quota_error is not None and self.config.strict_quota:
            raise envelope.quota_error

        self._emit(
            exchange,
            TelemetryDecision.OBSERVE,
            status=status,
            elapsed_ms=elapsed_ms,
            headers_seen=headers_seen,
            quota_limit=envelope.quota.limit,
            quota_remaining=envelope.quota.remaining,
        )
        return envelope
