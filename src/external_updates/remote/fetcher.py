"""Single-attempt HTTP retrieval of component metadata."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

import httpx

from external_updates.errors import BadStatusError, EmptyBodyError, TransportError

DEFAULT_TIMEOUT = 10.0


def default_request_options(timeout: float = DEFAULT_TIMEOUT) -> dict[str, Any]:
    return {
        "timeout": timeout,
        "headers": {"Accept": "application/json"},
    }


@dataclass(slots=True, frozen=True)
class FetchResult:
    url: str
    status_code: int
    body: bytes


class MetadataFetcher:
    """Issues one GET per call; retries are left to whoever schedules checks."""

    def __init__(self, client: httpx.Client | None = None) -> None:
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(follow_redirects=True)
        return self._client

    def close(self) -> None:
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None

    def fetch(
        self,
        endpoint: str,
        query_params: Mapping[str, str],
        options: Mapping[str, Any] | None = None,
    ) -> FetchResult:
        options = dict(options or default_request_options())
        timeout = _coerce_timeout(options.get("timeout", DEFAULT_TIMEOUT))
        headers = dict(options.get("headers") or {})

        request_url = endpoint
        try:
            request = self.client.build_request(
                "GET",
                endpoint,
                params=dict(query_params) or None,
                headers=headers,
                timeout=timeout,
            )
            request_url = str(request.url)
            response = self.client.send(request)
        except httpx.TimeoutException as exc:
            raise TransportError(
                request_url, f"request timed out after {_describe_timeout(timeout)}: {exc}"
            ) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise TransportError(request_url, f"HTTP error: {exc}") from exc

        if response.status_code != 200:
            raise BadStatusError(request_url, response.status_code)

        body = response.content
        if not body.strip():
            raise EmptyBodyError(request_url)

        return FetchResult(url=request_url, status_code=response.status_code, body=body)


def _coerce_timeout(value: Any) -> httpx.Timeout | float | None:
    # httpx accepts a Timeout instance, a number of seconds, or None for no limit.
    if value is None or isinstance(value, httpx.Timeout):
        return value
    return float(value)


def _describe_timeout(timeout: httpx.Timeout | float | None) -> str:
    if isinstance(timeout, httpx.Timeout):
        seconds = timeout.read
    else:
        seconds = timeout
    return "no limit" if seconds is None else f"{seconds}s"
