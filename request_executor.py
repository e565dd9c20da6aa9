"""
Request executor
================
Issues one HTTP request with a bounded timeout and turns whatever happens
into a RequestOutcome. Transport faults and timeouts become failed outcomes;
scenario-definition bugs (bad method, bad payload) raise immediately.
"""

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional, Any, Tuple, AsyncIterator

import aiohttp

from load_types import (
    RequestOutcome,
    SUPPORTED_METHODS,
    TIMEOUT_ERROR,
    ConfigurationError,
    MalformedPayloadError,
    UnsupportedMethodError,
)

logger = logging.getLogger(__name__)

PAYLOAD_METHODS = ("POST", "PUT")


class AiohttpTransport:
    """Thin wrapper over a shared aiohttp session."""

    def __init__(self, session: aiohttp.ClientSession):
        self.session = session

    async def send(
        self,
        method: str,
        url: str,
        user_id: str,
        payload: Optional[Any] = None,
    ) -> Tuple[int, bytes]:
        headers = {
            "User-Agent": f"LoadTester-{user_id}",
            "Accept": "application/json",
        }
        async with self.session.request(method, url, headers=headers, json=payload) as response:
            # Read the body so the request is fully completed
            body = await response.read()
            return response.status, body


@asynccontextmanager
async def open_transport(limit: int = 100, timeout: float = 10.0) -> AsyncIterator[AiohttpTransport]:
    """Open a pooled aiohttp session sized for the run."""
    connector = aiohttp.TCPConnector(
        limit=limit,
        limit_per_host=limit,
        keepalive_timeout=30,
        enable_cleanup_closed=True,
    )
    client_timeout = aiohttp.ClientTimeout(total=timeout)
    async with aiohttp.ClientSession(timeout=client_timeout, connector=connector) as session:
        yield AiohttpTransport(session)


def _decode_body(body: bytes) -> Optional[Any]:
    if not body:
        return None
    try:
        return json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


class RequestExecutor:
    """
    Executes single requests on behalf of a scenario.

    In dry-run mode no transport is touched: every request succeeds with
    status 200 and zero elapsed time.
    """

    def __init__(
        self,
        transport=None,
        dry_run: bool = False,
        verbose: bool = False,
        timeout: float = 10.0,
    ):
        if transport is None and not dry_run:
            raise ConfigurationError("A transport is required unless running in dry-run mode")
        self.transport = transport
        self.dry_run = dry_run
        self.verbose = verbose
        self.timeout = timeout

    def _validate(self, method: str, payload: Optional[Any]):
        if method not in SUPPORTED_METHODS:
            raise UnsupportedMethodError(method)
        if payload is None:
            return
        if method not in PAYLOAD_METHODS:
            raise MalformedPayloadError(f"{method} requests cannot carry a JSON payload")
        try:
            json.dumps(payload)
        except (TypeError, ValueError) as e:
            raise MalformedPayloadError(f"Payload is not JSON serializable: {e}") from e

    async def execute(
        self,
        method: str,
        url: str,
        user_id: str,
        payload: Optional[Any] = None,
        capture_body: bool = False,
    ) -> RequestOutcome:
        """
        Issue one request. With capture_body the decoded JSON body (or None)
        is kept on the outcome for later scenario steps.
        """
        self._validate(method, payload)

        if self.dry_run:
            if self.verbose:
                logger.info("[DRY RUN] %s %s (%s)", method, url, user_id)
            return RequestOutcome(
                method=method,
                url=url,
                user_id=user_id,
                success=True,
                elapsed_ms=0.0,
                status=200,
            )

        start = time.perf_counter()
        try:
            status, body = await asyncio.wait_for(
                self.transport.send(method, url, user_id, payload),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            outcome = RequestOutcome(
                method=method,
                url=url,
                user_id=user_id,
                success=False,
                elapsed_ms=(time.perf_counter() - start) * 1000,
                status=0,
                error=TIMEOUT_ERROR,
            )
        except (aiohttp.ClientError, OSError, ValueError) as e:
            # ValueError covers bad URLs, e.g. an over-long host label failing IDNA encoding
            outcome = RequestOutcome(
                method=method,
                url=url,
                user_id=user_id,
                success=False,
                elapsed_ms=(time.perf_counter() - start) * 1000,
                status=0,
                error=str(e) or type(e).__name__,
            )
        else:
            outcome = RequestOutcome(
                method=method,
                url=url,
                user_id=user_id,
                success=200 <= status < 400,
                elapsed_ms=(time.perf_counter() - start) * 1000,
                status=status,
                response_data=_decode_body(body) if capture_body else None,
            )

        if self.verbose:
            self._log(outcome)
        return outcome

    def _log(self, outcome: RequestOutcome):
        if outcome.success:
            logger.info(
                "[%s] %s %s - %d (%.0fms)",
                outcome.user_id, outcome.method, outcome.url, outcome.status, outcome.elapsed_ms,
            )
        else:
            logger.info(
                "[%s] %s %s - FAILED: %s (%.0fms)",
                outcome.user_id, outcome.method, outcome.url,
                outcome.error or f"status {outcome.status}", outcome.elapsed_ms,
            )
