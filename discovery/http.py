"""HTTP client with retry/backoff and request accounting."""
from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = (429, 500, 502, 503, 504)


class DiscoveryError(RuntimeError):
    pass


class TransportError(DiscoveryError):
    """The data source was unreachable or answered with a failure."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def user_message(self) -> str:
        if self.status_code is None:
            return "Could not reach the business directory. Check your connection and try again."
        if self.status_code == 404:
            return "The requested businesses were not found."
        if self.status_code >= 500 or self.status_code == 429:
            return "The business directory is temporarily unavailable. Please try again."
        return f"The business directory rejected the request (HTTP {self.status_code})."


@dataclass
class RequestMetrics:
    network_requests: int = 0
    retries: int = 0
    failures: int = 0

    def inc_network(self) -> None:
        self.network_requests += 1

    def inc_retry(self) -> None:
        self.retries += 1

    def inc_failure(self) -> None:
        self.failures += 1


class HttpClient:
    def __init__(
        self,
        timeout: int = 20,
        retry_max: int = 3,
        backoff_base: float = 0.5,
        backoff_max: float = 8.0,
        metrics: Optional[RequestMetrics] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.timeout = timeout
        self.retry_max = max(1, retry_max)
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.metrics = metrics
        self.headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if headers:
            self.headers.update(headers)
        self.session = requests.Session()

    def get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        allow_not_found: bool = False,
    ) -> Any:
        """GET ``url`` and decode the JSON body.

        Returns None for a 404 when ``allow_not_found`` is set. Everything
        else that is not a 200 ends in ``TransportError``.
        """
        for attempt in range(1, self.retry_max + 1):
            if self.metrics is not None:
                self.metrics.inc_network()
            try:
                resp = self.session.get(url, params=params, headers=self.headers, timeout=self.timeout)
            except requests.RequestException as exc:
                if attempt >= self.retry_max:
                    self._record_failure()
                    raise TransportError(f"Request to {url} failed: {exc}") from exc
                logger.warning("Request to %s failed (attempt %s): %s", url, attempt, exc)
                self._record_retry()
                self._sleep_backoff(attempt)
                continue

            status = resp.status_code
            if status == 200:
                try:
                    return resp.json()
                except ValueError as exc:
                    logger.error("Non-JSON response from %s", url)
                    self._record_failure()
                    raise TransportError(f"Non-JSON response from {url}", status) from exc

            if status == 404 and allow_not_found:
                return None

            if status in RETRYABLE_STATUSES:
                logger.warning("HTTP %s from %s (attempt %s)", status, url, attempt)
                if attempt >= self.retry_max:
                    self._record_failure()
                    raise TransportError(f"HTTP {status} from {url}", status)
                self._record_retry()
                if not self._sleep_retry_after(resp):
                    self._sleep_backoff(attempt)
                continue

            # Non-retryable
            logger.error("HTTP %s from %s", status, url)
            self._record_failure()
            raise TransportError(f"HTTP {status} from {url}", status)

        raise RuntimeError("Unexpected HTTP retry loop exit")

    def close(self) -> None:
        self.session.close()

    def _record_retry(self) -> None:
        if self.metrics is not None:
            self.metrics.inc_retry()

    def _record_failure(self) -> None:
        if self.metrics is not None:
            self.metrics.inc_failure()

    def _sleep_backoff(self, attempt: int) -> None:
        base = min(self.backoff_base * (2 ** (attempt - 1)), self.backoff_max)
        jitter = random.uniform(0, self.backoff_base)
        time.sleep(base + jitter)

    def _sleep_retry_after(self, resp: requests.Response) -> bool:
        retry_after = resp.headers.get("Retry-After")
        if not retry_after:
            return False
        try:
            delay = float(retry_after)
        except ValueError:
            return False
        delay = max(0.0, min(delay, self.backoff_max))
        time.sleep(delay)
        return True
