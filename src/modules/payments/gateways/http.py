"""HTTP transport for server-to-server gateway calls.

Every request carries a timeout.  Transport errors, timeouts and 5xx
answers are retried with exponential backoff up to
``RetryPolicy.max_attempts``; 4xx answers are not retried.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import httpx
import structlog

from modules.payments.exceptions import (
    GatewayRejected,
    GatewayTimeout,
    GatewayUnavailable,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff_seconds: float = 0.5

    def delay(self, attempt: int) -> float:
        return self.backoff_seconds * (2 ** (attempt - 1))


class GatewayHttpClient:
    def __init__(
        self,
        timeout: float,
        retry_policy: RetryPolicy,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._retry = retry_policy
        self._sleep = sleep
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout),
            transport=transport,
            headers={"Accept": "application/json"},
        )

    def post_json(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._send("POST", url, json=payload)

    def get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self._send("GET", url, params=params)

    def close(self) -> None:
        self._client.close()

    def _send(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        log = logger.bind(method=method, url=url)
        error: Exception = GatewayUnavailable(f"{method} {url} was not attempted.")

        for attempt in range(1, self._retry.max_attempts + 1):
            try:
                response = self._client.request(method, url, **kwargs)
                response.raise_for_status()
                return response.json()
            except httpx.TimeoutException as exc:
                error = GatewayTimeout(f"{method} {url} timed out: {exc}")
            except httpx.HTTPStatusError as exc:
                if exc.response.status_code < 500:
                    log.warning(
                        "gateway.http_rejected",
                        status_code=exc.response.status_code,
                    )
                    raise GatewayRejected(
                        f"{method} {url} answered {exc.response.status_code}."
                    ) from exc
                error = GatewayUnavailable(
                    f"{method} {url} answered {exc.response.status_code}."
                )
            except httpx.TransportError as exc:
                error = GatewayUnavailable(f"{method} {url} failed: {exc}")
            except ValueError as exc:
                raise GatewayRejected(f"{method} {url} returned invalid JSON.") from exc

            log.warning(
                "gateway.http_attempt_failed",
                attempt=attempt,
                max_attempts=self._retry.max_attempts,
                error=str(error),
            )
            if attempt < self._retry.max_attempts:
                self._sleep(self._retry.delay(attempt))

        log.error("gateway.http_exhausted", error=str(error))
        raise error
