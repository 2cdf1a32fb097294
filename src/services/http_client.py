from __future__ import annotations

import logging
from typing import Any, Callable, Iterable

import requests
from requests import Response
from requests.adapters import HTTPAdapter
from urllib3.exceptions import MaxRetryError, TimeoutError as TransportTimeoutError
from urllib3.util import Retry

from domain.errors import NetworkError, NetworkTimeoutError

logger = logging.getLogger(__name__)

TRANSIENT_STATUSES = frozenset(range(500, 600))
IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE"})


def build_retry(
    *,
    attempts: int,
    backoff_seconds: float,
    allowed_methods: Iterable[str] = IDEMPOTENT_METHODS,
) -> Retry:
    """Retry policy: connection failures and 5xx only, delay doubling per attempt."""
    if attempts < 0:
        raise ValueError("attempts must be >= 0")
    if backoff_seconds < 0:
        raise ValueError("backoff_seconds must be >= 0")
    return Retry(
        total=attempts,
        connect=attempts,
        read=attempts,
        status=attempts,
        backoff_factor=backoff_seconds,
        status_forcelist=TRANSIENT_STATUSES,
        allowed_methods=frozenset(method.upper() for method in allowed_methods),
        raise_on_status=False,
        respect_retry_after_header=True,
    )


def _caused_by_timeout(exc: requests.RequestException) -> bool:
    # Exhausted read retries surface as ConnectionError wrapping MaxRetryError.
    reason = exc.args[0] if exc.args else None
    if isinstance(reason, MaxRetryError):
        reason = reason.reason
    return isinstance(reason, TransportTimeoutError)


class HttpClient:
    def __init__(
        self,
        *,
        base_url: str = "",
        timeout: float = 30.0,
        retry_attempts: int = 3,
        retry_backoff_seconds: float = 0.5,
        session: requests.Session | None = None,
        auth_token_provider: Callable[[], str | None] | None = None,
    ) -> None:
        if timeout <= 0:
            raise ValueError("timeout must be > 0")

        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.auth_token_provider = auth_token_provider
        self._session = session or requests.Session()

        self.retry = build_retry(attempts=retry_attempts, backoff_seconds=retry_backoff_seconds)
        adapter = HTTPAdapter(max_retries=self.retry)
        self._session.mount("https://", adapter)
        self._session.mount("http://", adapter)

    def get(self, path: str, *, params: dict[str, Any] | None = None) -> Any:
        return self.request("GET", path, params=params)

    def post(self, path: str, *, json: Any | None = None) -> Any:
        return self.request("POST", path, json=json)

    def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        url = self._url(path)
        try:
            response = self._session.request(
                method,
                url,
                params=params,
                json=json,
                timeout=self.timeout,
                headers=self._headers(headers),
            )
            response.raise_for_status()
        except requests.Timeout as exc:
            logger.warning("%s %s timed out after %.1fs", method, url, self.timeout)
            raise NetworkTimeoutError(f"Request to {url} timed out") from exc
        except requests.HTTPError as exc:
            resp = exc.response
            status_code = getattr(resp, "status_code", None)
            message, payload = self._extract_error(resp)
            logger.warning("%s %s failed with status %s", method, url, status_code)
            raise NetworkError(message, status_code=status_code, payload=payload) from exc
        except requests.RequestException as exc:
            if _caused_by_timeout(exc):
                logger.warning("%s %s timed out after retries (%.1fs each)", method, url, self.timeout)
                raise NetworkTimeoutError(f"Request to {url} timed out") from exc
            status_code = getattr(getattr(exc, "response", None), "status_code", None)
            logger.warning("%s %s failed: %s", method, url, exc)
            raise NetworkError(f"Request to {url} failed", status_code=status_code) from exc

        return self._decode(response)

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        if not path:
            return self.base_url
        return f"{self.base_url}/{path.lstrip('/')}"

    def _headers(self, custom: dict[str, str] | None) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if custom:
            headers.update(custom)
        if self.auth_token_provider is not None:
            token = self.auth_token_provider()
            if token:
                headers["Authorization"] = f"Bearer {token}"
        return headers

    @staticmethod
    def _decode(response: Response) -> Any:
        content_type = response.headers.get("content-type", "")
        if "application/json" not in content_type:
            return response.text
        try:
            return response.json()
        except ValueError as exc:
            raise NetworkError(
                "Response declared JSON but could not be decoded",
                status_code=response.status_code,
                payload=response.text,
            ) from exc

    @staticmethod
    def _extract_error(response: Response | None) -> tuple[str, Any | None]:
        message = "HTTP request failed"
        payload: Any | None = None
        if response is None:
            return message, payload

        try:
            payload = response.json()
            if isinstance(payload, dict):
                error = payload.get("error")
                if isinstance(error, dict):
                    error = error.get("message")
                message = payload.get("message") or error or message
        except ValueError:
            payload = response.text
        return str(message), payload


__all__ = ["HttpClient", "IDEMPOTENT_METHODS", "TRANSIENT_STATUSES", "build_retry"]
