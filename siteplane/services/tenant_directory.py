"""
Tenant directory: tenant -> primary site, and tenant -> account status.

Responsibility: Look up tenant records on the control plane's internal API and
cache them per tenant with a fixed TTL. Lookup errors propagate; callers decide
whether to degrade.
"""

import logging
import time
from typing import Any, Callable

from siteplane.core.config import SITE_CACHE_TTL_SECONDS, TENANT_CACHE_TTL_SECONDS, TENANT_LOOKUP_TIMEOUT
from siteplane.core.errors import ConfigurationMissingError, TenantAccessDeniedError
from siteplane.core.ttl_cache import TTLCache
from siteplane.schemas.tenant import TenantSiteRef
from siteplane.services.control_plane import ControlPlaneClient

logger = logging.getLogger(__name__)

# Statuses that grant access when the control plane does not say explicitly
ACTIVE_TENANT_STATUSES: frozenset[str] = frozenset({"active", "trialing", "pending"})


def is_access_allowed(tenant_state: dict[str, Any]) -> bool:
    """access_allowed wins when it is a bool; otherwise derive it from status."""
    allowed = tenant_state.get("access_allowed")
    if isinstance(allowed, bool):
        return allowed
    return tenant_state.get("status") in ACTIVE_TENANT_STATUSES


class TenantDirectory:
    """Resolves tenants through the control plane, with per-instance TTL caches."""

    def __init__(
        self,
        control_plane: ControlPlaneClient,
        site_ttl: float = SITE_CACHE_TTL_SECONDS,
        status_ttl: float = TENANT_CACHE_TTL_SECONDS,
        lookup_timeout: float = TENANT_LOOKUP_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.control_plane = control_plane
        self.lookup_timeout = lookup_timeout
        self._sites: TTLCache[TenantSiteRef] = TTLCache(site_ttl, clock)
        self._statuses: TTLCache[dict[str, Any]] = TTLCache(status_ttl, clock)

    @property
    def enabled(self) -> bool:
        return self.control_plane.has_internal_access

    def resolve_primary_site(self, tenant_id: str) -> TenantSiteRef | None:
        """
        Return the tenant's primary site, from cache when fresh.

        Returns None when the control plane is not configured (feature disabled)
        or it returned an empty body. Upstream errors are raised, not retried.
        """
        if not self.enabled:
            return None
        cached = self._sites.get(tenant_id)
        if cached is not None:
            return cached

        data = self.control_plane.internal(
            "GET",
            f"/tenants/{tenant_id}/sites/primary",
            failure_message="Failed to fetch site",
            timeout=self.lookup_timeout,
        )
        if not data:
            return None
        site = TenantSiteRef.model_validate(data)
        self._sites.set(tenant_id, site)
        logger.info("[tenant_directory:resolve_primary_site] cached tenant=%s site_id=%s", tenant_id, site.id)
        return site

    def remember_site(self, tenant_id: str, site: TenantSiteRef) -> None:
        """Replace the cached primary site after an upsert."""
        self._sites.set(tenant_id, site)

    def forget_site(self, tenant_id: str) -> None:
        self._sites.invalidate(tenant_id)

    def get_tenant_status(self, tenant_id: str) -> dict[str, Any]:
        """Return the tenant's account state ({status, access_allowed, billing_required, reason})."""
        if not self.enabled:
            raise ConfigurationMissingError()
        cached = self._statuses.get(tenant_id)
        if cached is not None:
            return cached
        data = self.control_plane.internal(
            "GET",
            f"/tenants/{tenant_id}",
            failure_message="Tenant verification failed",
            api_key_header=True,
        )
        state = data if isinstance(data, dict) else {}
        self._statuses.set(tenant_id, state)
        return state

    def ensure_tenant_active(self, tenant_id: str | None) -> dict[str, Any]:
        """Raise TenantAccessDeniedError unless the tenant may use the product."""
        if not tenant_id:
            raise TenantAccessDeniedError("Tenant not configured")
        state = self.get_tenant_status(tenant_id)
        if not is_access_allowed(state):
            message = "Billing required" if state.get("billing_required") else "Tenant inactive"
            logger.info("[tenant_directory:ensure_tenant_active] denied tenant=%s message=%s", tenant_id, message)
            raise TenantAccessDeniedError(message, reason=state.get("reason") or "tenant_inactive")
        return state
