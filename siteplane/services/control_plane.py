"""
Control-plane HTTP boundary.

Responsibility: Send authenticated requests to the control plane and turn every
failure into one typed UpstreamError, then into the caller-facing error:
4xx keeps the upstream status and message, anything else becomes a 502 with
the operation's generic message.
"""

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from siteplane.core.config import (
    CONTROL_PLANE_API_KEY,
    CONTROL_PLANE_INTERNAL_KEY,
    CONTROL_PLANE_TIMEOUT,
    CONTROL_PLANE_URL,
)
from siteplane.core.errors import (
    ConfigurationMissingError,
    SiteplaneError,
    UpstreamClientError,
    UpstreamUnavailableError,
)

logger = logging.getLogger(__name__)

DEFAULT_CLIENT_ERROR_MESSAGE = "Request failed"


def _extract_message(response: httpx.Response) -> str | None:
    """Human-readable message from an error body: detail, then message."""
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    for field in ("detail", "message"):
        value = body.get(field)
        if isinstance(value, str) and value:
            return value
    return None


@dataclass(frozen=True)
class UpstreamError:
    """What went wrong on a control-plane call. status_code is None for transport failures."""

    status_code: int | None
    message: str | None = None

    @classmethod
    def from_exception(cls, exc: Exception) -> "UpstreamError":
        if isinstance(exc, httpx.HTTPStatusError):
            return cls(exc.response.status_code, _extract_message(exc.response))
        return cls(None, None)

    @property
    def is_client_error(self) -> bool:
        return self.status_code is not None and 400 <= self.status_code < 500

    def to_exception(self, failure_message: str) -> SiteplaneError:
        if self.is_client_error:
            return UpstreamClientError(self.message or DEFAULT_CLIENT_ERROR_MESSAGE, self.status_code)
        return UpstreamUnavailableError(failure_message)


class ControlPlaneClient:
    """
    Thin client for the control plane.

    /api/* calls use the tenant-scoped API key plus an X-Tenant-ID header;
    /internal/* calls use the internal service key. Pass http_client to reuse a
    connection pool (or a mock transport in tests); otherwise a client is opened per call.
    """

    def __init__(
        self,
        base_url: str = CONTROL_PLANE_URL,
        api_key: str = CONTROL_PLANE_API_KEY,
        internal_key: str = CONTROL_PLANE_INTERNAL_KEY,
        timeout: float = CONTROL_PLANE_TIMEOUT,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key
        self.internal_key = internal_key
        self.timeout = timeout
        self._http = http_client

    @property
    def has_api_access(self) -> bool:
        return bool(self.base_url and self.api_key)

    @property
    def has_internal_access(self) -> bool:
        return bool(self.base_url and self.internal_key)

    def api(
        self,
        method: str,
        path: str,
        tenant_id: str,
        *,
        failure_message: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Call /api{path} on behalf of tenant_id."""
        if not self.has_api_access:
            raise ConfigurationMissingError()
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "X-Tenant-ID": tenant_id,
        }
        return self._send(method, f"/api{path}", headers, failure_message, json=json, params=params)

    def internal(
        self,
        method: str,
        path: str,
        *,
        failure_message: str,
        api_key_header: bool = False,
        timeout: float | None = None,
    ) -> Any:
        """Call /internal{path} with the service key (bearer, or X-API-Key when api_key_header)."""
        if not self.has_internal_access:
            raise ConfigurationMissingError()
        if api_key_header:
            headers = {"X-API-Key": self.internal_key}
        else:
            headers = {"Authorization": f"Bearer {self.internal_key}"}
        return self._send(method, f"/internal{path}", headers, failure_message, timeout=timeout)

    def _send(
        self,
        method: str,
        path: str,
        headers: dict[str, str],
        failure_message: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        if params:
            params = {k: v for k, v in params.items() if v is not None and v != ""}
        timeout = timeout if timeout is not None else self.timeout
        logger.info("[control_plane:%s] IN  %s", method.lower(), path)
        try:
            if self._http is not None:
                response = self._http.request(
                    method, url, headers=headers, json=json, params=params or None, timeout=timeout
                )
            else:
                with httpx.Client(timeout=timeout) as client:
                    response = client.request(method, url, headers=headers, json=json, params=params or None)
            response.raise_for_status()
            data = response.json() if response.content else None
        except (httpx.HTTPError, ValueError) as exc:
            upstream = UpstreamError.from_exception(exc)
            if upstream.is_client_error:
                logger.info("[control_plane:%s] OUT %s status=%s", method.lower(), path, upstream.status_code)
            else:
                logger.error(
                    "[control_plane:%s] %s failed status=%s: %s",
                    method.lower(), path, upstream.status_code, exc,
                )
            raise upstream.to_exception(failure_message) from exc
        logger.info("[control_plane:%s] OUT %s status=%d", method.lower(), path, response.status_code)
        return data
