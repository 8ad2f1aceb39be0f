import asyncio
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Optional, Tuple, Type

import aiohttp
import orjson
from pydantic import BaseModel
from pydantic import ValidationError as PayloadValidationError

from dmmcache.core.exceptions import (MalformedPayload, NetworkError,
                                      ReauthenticationRequired,
                                      UpstreamAuthExpired, UpstreamError,
                                      UpstreamRateLimited)
from dmmcache.core.logger import logger
from dmmcache.utils.http_client import HttpClientManager


@dataclass
class ApiCredential:
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[float] = None

    @classmethod
    def from_token_response(cls, data: dict, previous: "ApiCredential" = None):
        expires_in = data.get("expires_in")
        refresh_token = data.get("refresh_token") or (
            previous.refresh_token if previous else None
        )
        return cls(
            access_token=data["access_token"],
            refresh_token=refresh_token,
            expires_at=time.time() + expires_in if expires_in else None,
        )


# Exchanges an expiring credential for a fresh one
CredentialRefresher = Callable[[ApiCredential], Awaitable[ApiCredential]]


@dataclass
class UpstreamResult:
    data: object
    status: int = 200
    headers: Dict[str, str] = field(default_factory=dict)
    updated_credential: Optional[ApiCredential] = None


@dataclass
class RetryPolicy:
    max_attempts: int = 10
    base_delay: float = 1.0
    max_delay: float = 30.0
    retry_on: Tuple[Type[BaseException], ...] = (UpstreamRateLimited,)

    def backoff(self, attempt: int) -> float:
        return min(self.base_delay * (2**attempt), self.max_delay)

    def delay_for(self, attempt: int, error: BaseException) -> float:
        """Backoff for ``attempt``, raised to the upstream Retry-After when it asks for longer."""
        delay = self.backoff(attempt)
        retry_after = getattr(error, "retry_after", None)
        if retry_after is None:
            return delay

        try:
            requested = float(retry_after)
        except (TypeError, ValueError):
            # HTTP-date form is not honoured
            return delay
        return min(max(delay, requested), self.max_delay)

    def is_retryable(self, error: BaseException) -> bool:
        return isinstance(error, self.retry_on)


async def retry_with_policy(
    operation: Callable[[], Awaitable],
    policy: RetryPolicy,
    name: str = "upstream",
    sleep: Callable[[float], Awaitable] = asyncio.sleep,
):
    """
    Run ``operation`` until it succeeds, fails with a non-retryable error, or
    ``policy.max_attempts`` retries have been spent. The last error is raised
    unchanged.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as e:
            if not policy.is_retryable(e) or attempt >= policy.max_attempts:
                if attempt and policy.is_retryable(e):
                    logger.log(
                        "UPSTREAM",
                        f"[{name}] Max retries ({policy.max_attempts}) exceeded: {e}",
                    )
                raise

            attempt += 1
            delay = policy.delay_for(attempt, e)
            logger.log(
                "UPSTREAM",
                f"[{name}] {e}. Retrying in {delay}s... (Attempt {attempt}/{policy.max_attempts})",
            )
            await sleep(delay)


class RequestThrottle:
    """
    Keeps calls to one upstream at least ``min_interval`` seconds apart.

    Each caller reserves the next free slot before awaiting, so concurrent
    callers queue up behind each other instead of firing together.
    """

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
    ):
        self.min_interval = min_interval
        self.clock = clock
        self.sleep = sleep
        self.last_request_time: Optional[float] = None

    async def wait(self) -> float:
        now = self.clock()
        if self.last_request_time is None:
            slot = now
        else:
            slot = max(now, self.last_request_time + self.min_interval)
        self.last_request_time = slot

        delay = slot - now
        if delay > 0:
            await self.sleep(delay)
        return delay


class ResilientClient:
    """
    Outbound HTTP client for one upstream.

    Every attempt waits on the shared throttle, 429 answers are retried by the
    retry policy, and a 401 with a refresh token available is refreshed once
    and replayed once. A refreshed credential is handed back on the result.
    """

    def __init__(
        self,
        name: str,
        base_url: str,
        session_factory: Callable[[], Awaitable[aiohttp.ClientSession]],
        throttle: RequestThrottle,
        policy: RetryPolicy,
        timeout: float = 10,
        headers: Optional[dict] = None,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
    ):
        self.name = name
        self.base_url = base_url
        self.session_factory = session_factory
        self.throttle = throttle
        self.policy = policy
        self.timeout = timeout
        self.headers = headers or {}
        self.sleep = sleep

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}{path}"

    async def _send(
        self,
        method: str,
        url: str,
        credential: Optional[ApiCredential],
        kwargs: dict,
    ) -> UpstreamResult:
        await self.throttle.wait()

        headers = {**self.headers, **kwargs.pop("headers", {})}
        if credential is not None:
            headers["Authorization"] = f"Bearer {credential.access_token}"

        session = await self.session_factory()
        try:
            async with session.request(
                method,
                url,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                **kwargs,
            ) as response:
                raw = await response.read()
                status = response.status
                response_headers = response.headers.copy()
        except asyncio.TimeoutError as e:
            raise NetworkError(f"[{self.name}] {method} {url} timed out after {self.timeout}s") from e
        except aiohttp.ClientError as e:
            raise NetworkError(f"[{self.name}] {method} {url} failed: {e}") from e

        body = self._decode(raw)

        if status == 429:
            raise UpstreamRateLimited(body, response_headers.get("Retry-After"))
        if status == 401:
            raise UpstreamAuthExpired(body)
        if status >= 400:
            raise UpstreamError(status, body)

        return UpstreamResult(body, status, response_headers)

    @staticmethod
    def _decode(raw: bytes):
        if not raw:
            return None
        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError:
            return raw.decode("utf-8", errors="replace")

    async def _send_with_retry(self, method, url, credential, kwargs):
        return await retry_with_policy(
            lambda: self._send(method, url, credential, dict(kwargs)),
            self.policy,
            self.name,
            self.sleep,
        )

    async def request(
        self,
        method: str,
        path: str,
        credential: Optional[ApiCredential] = None,
        refresher: Optional[CredentialRefresher] = None,
        **kwargs,
    ) -> UpstreamResult:
        url = self._url(path)

        try:
            return await self._send_with_retry(method, url, credential, kwargs)
        except UpstreamAuthExpired:
            if credential is None or not credential.refresh_token or refresher is None:
                raise

        logger.log("UPSTREAM", f"[{self.name}] Access token expired, refreshing")
        try:
            refreshed = await refresher(credential)
        except UpstreamError as e:
            raise ReauthenticationRequired(e.body, e.status) from e

        try:
            result = await self._send_with_retry(method, url, refreshed, kwargs)
        except UpstreamAuthExpired as e:
            raise ReauthenticationRequired(e.body, e.status) from e

        result.updated_credential = refreshed
        return result

    async def get(self, path: str, **kwargs) -> UpstreamResult:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs) -> UpstreamResult:
        return await self.request("POST", path, **kwargs)

    async def delete(self, path: str, **kwargs) -> UpstreamResult:
        return await self.request("DELETE", path, **kwargs)


class NetworkManager:
    """One resilient client, and so one throttle watermark, per upstream."""

    def __init__(
        self,
        timeout: float = 10,
        min_interval: float = 0.24,
        policy: Optional[RetryPolicy] = None,
        http_client: Optional[HttpClientManager] = None,
    ):
        self.timeout = timeout
        self.min_interval = min_interval
        self.policy = policy or RetryPolicy()
        self.http_client = http_client or HttpClientManager()
        self._clients: Dict[str, ResilientClient] = {}

    def get_client(
        self,
        name: str,
        base_url: str,
        headers: Optional[dict] = None,
        min_interval: Optional[float] = None,
    ) -> ResilientClient:
        if name not in self._clients:
            throttle = RequestThrottle(
                self.min_interval if min_interval is None else min_interval
            )
            self._clients[name] = ResilientClient(
                name,
                base_url,
                self.http_client.get_session,
                throttle,
                self.policy,
                timeout=self.timeout,
                headers=headers,
            )
        return self._clients[name]

    async def close_all(self):
        self._clients.clear()
        await self.http_client.close()


def parse_payload(model: Type[BaseModel], result: UpstreamResult):
    """Validate an upstream body against its data contract."""
    try:
        if isinstance(result.data, list):
            return [model.model_validate(item) for item in result.data]
        return model.model_validate(result.data)
    except PayloadValidationError as e:
        raise MalformedPayload(result.status, result.data, str(e)) from e
