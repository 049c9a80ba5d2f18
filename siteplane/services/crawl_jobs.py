"""
Crawl job proxy: site records, crawl jobs, action discovery, widget and billing
on the control plane, scoped to one tenant per call.

Responsibility: Validate caller input before any network call, forward to the
control plane, and shape responses. Enqueue calls return immediately; job
state is only observed here, never changed. Also holds the progress formula
and the polling policy shared by server and UI.
"""

import logging
from typing import Any

from pydantic import ValidationError

from siteplane.core.config import CRAWL_POLL_INTERVAL_SECONDS
from siteplane.core.errors import InvalidInputError, NotFoundError, UpstreamClientError, UpstreamUnavailableError
from siteplane.schemas.tenant import (
    CrawlJob,
    CrawlProgress,
    CrawlStats,
    CrawlStatus,
    CrawlStatusResponse,
    JobAccepted,
    SiteUpsert,
    TenantAction,
    TenantSiteRef,
    WidgetConfig,
)
from siteplane.services.control_plane import ControlPlaneClient
from siteplane.services.tenant_directory import TenantDirectory

logger = logging.getLogger(__name__)

# Every CrawlStatus must appear here; None means terminal (stop polling)
POLL_INTERVALS: dict[CrawlStatus, float | None] = {
    CrawlStatus.QUEUED: CRAWL_POLL_INTERVAL_SECONDS,
    CrawlStatus.RUNNING: CRAWL_POLL_INTERVAL_SECONDS,
    CrawlStatus.INGESTING: CRAWL_POLL_INTERVAL_SECONDS,
    CrawlStatus.SUCCEEDED: None,
    CrawlStatus.FAILED: None,
    CrawlStatus.CANCELLED: None,
}


def poll_interval(status: CrawlStatus) -> float | None:
    """Seconds to wait before polling again, or None once the job is terminal."""
    return POLL_INTERVALS[status]


def is_terminal(status: CrawlStatus) -> bool:
    return poll_interval(status) is None


def _percent(part: int, whole: int) -> int | None:
    if whole <= 0:
        return None
    # round half up, like Math.round in the UI
    return int(part / whole * 100 + 0.5)


def derive_progress(stats: CrawlStats, phase: str | None = None) -> CrawlProgress:
    """
    crawl = processed / (processed + queue), ingest = ingested / processed.
    The displayed value follows the ingest figure while phase is "ingesting".
    """
    crawl_progress = _percent(stats.processed, stats.processed + stats.queue)
    ingest_progress = _percent(stats.ingested, stats.processed)
    phase = phase or stats.phase
    progress = ingest_progress if phase == CrawlStatus.INGESTING.value else crawl_progress
    return CrawlProgress(crawl_progress=crawl_progress, ingest_progress=ingest_progress, progress=progress)


def describe_job(job: CrawlJob) -> CrawlStatusResponse:
    return CrawlStatusResponse(
        job=job,
        phase=job.phase,
        progress=derive_progress(job.stats, job.phase),
        poll_interval=poll_interval(job.status),
    )


def _require_tenant(tenant_id: str | None) -> str:
    if not tenant_id:
        raise InvalidInputError("Missing tenant context")
    return tenant_id


class CrawlJobProxy:
    """Tenant-scoped operations against the control plane."""

    def __init__(self, control_plane: ControlPlaneClient, directory: TenantDirectory | None = None) -> None:
        self.control_plane = control_plane
        self.directory = directory

    # --- Sites ---

    def get_site(self, tenant_id: str | None) -> TenantSiteRef:
        tenant_id = _require_tenant(tenant_id)
        try:
            data = self.control_plane.internal(
                "GET", f"/tenants/{tenant_id}/sites/primary", failure_message="Failed to fetch site"
            )
        except UpstreamClientError as e:
            if e.status_code == 404:
                raise NotFoundError("Site not found") from e
            raise
        if not data:
            raise NotFoundError("Site not found")
        return TenantSiteRef.model_validate(data)

    def upsert_site(self, tenant_id: str | None, body: SiteUpsert) -> dict[str, Any]:
        """Update the tenant's existing site (PUT) or create one (POST)."""
        tenant_id = _require_tenant(tenant_id)
        if not body.base_url:
            raise InvalidInputError("base_url is required")

        existing: dict[str, Any] | None = None
        try:
            existing = self.control_plane.internal(
                "GET", f"/tenants/{tenant_id}/sites/primary", failure_message="Failed to check existing site"
            )
        except UpstreamClientError as e:
            if e.status_code != 404:
                raise
            logger.info("[crawl_jobs:upsert_site] no existing site tenant=%s", tenant_id)

        payload = {
            "base_url": body.base_url,
            "sitemap_url": body.sitemap_url or None,
            "crawl_rules": body.crawl_rules or None,
        }
        existing_id = existing.get("id") if isinstance(existing, dict) else None
        if existing_id:
            data = self.control_plane.api(
                "PUT", f"/sites/{existing_id}", tenant_id, failure_message="Failed to save site", json=payload
            )
        else:
            data = self.control_plane.api("POST", "/sites", tenant_id, failure_message="Failed to save site", json=payload)

        if self.directory is not None:
            if isinstance(data, dict) and data.get("id") is not None:
                self.directory.remember_site(tenant_id, TenantSiteRef.model_validate(data))
            else:
                self.directory.forget_site(tenant_id)
        logger.info("[crawl_jobs:upsert_site] OUT tenant=%s updated=%s", tenant_id, bool(existing_id))
        return data

    # --- Crawl jobs ---

    def run_crawl(self, tenant_id: str | None, site_id: str | int | None = None) -> JobAccepted:
        """Enqueue a crawl. Duplicate calls create duplicate jobs; the worker deduplicates if at all."""
        tenant_id = _require_tenant(tenant_id)
        payload: dict[str, Any] = {"tenant_id": tenant_id}
        if site_id:
            payload["site_id"] = site_id
        data = self.control_plane.api("POST", "/crawl/run", tenant_id, failure_message="Failed to start crawl", json=payload)
        return self._accepted(data, "Failed to start crawl")

    def get_crawl_status(self, tenant_id: str | None, site_id: str | int | None = None) -> CrawlJob | None:
        """Latest job for the tenant (or site); None when nothing has been crawled yet."""
        tenant_id = _require_tenant(tenant_id)
        data = self.control_plane.api(
            "GET", "/crawl/status", tenant_id,
            failure_message="Failed to fetch crawl status",
            params={"site_id": site_id},
        )
        return self._job(data)

    def get_crawl_status_by_id(self, tenant_id: str | None, job_id: str | None) -> CrawlJob | None:
        tenant_id = _require_tenant(tenant_id)
        if not job_id:
            raise InvalidInputError("jobId is required")
        data = self.control_plane.api(
            "GET", f"/crawl/status/{job_id}", tenant_id, failure_message="Failed to fetch crawl status"
        )
        return self._job(data)

    # --- Actions ---

    def discover_actions(self, tenant_id: str | None, url: str | None, site_id: str | int | None = None) -> JobAccepted:
        tenant_id = _require_tenant(tenant_id)
        if not url:
            raise InvalidInputError("url is required")
        payload: dict[str, Any] = {"url": url}
        if site_id:
            payload["site_id"] = site_id
        data = self.control_plane.api(
            "POST", "/actions/discover", tenant_id, failure_message="Failed to discover actions", json=payload
        )
        return self._accepted(data, "Failed to discover actions")

    def list_actions(
        self, tenant_id: str | None, site_id: str | int | None = None, url: str | None = None
    ) -> list[TenantAction]:
        tenant_id = _require_tenant(tenant_id)
        data = self.control_plane.api(
            "GET", "/actions", tenant_id,
            failure_message="Failed to fetch actions",
            params={"site_id": site_id, "url": url},
        )
        try:
            return [TenantAction.model_validate(item) for item in (data or [])]
        except (ValidationError, TypeError) as e:
            logger.error("[crawl_jobs:list_actions] unexpected payload: %s", e)
            raise UpstreamUnavailableError("Failed to fetch actions") from e

    # --- Widget ---

    def get_widget_config(self, tenant_id: str | None) -> WidgetConfig:
        tenant_id = _require_tenant(tenant_id)
        data = self.control_plane.api("GET", "/widget/config", tenant_id, failure_message="Failed to fetch widget config")
        return WidgetConfig.model_validate(data or {})

    def update_widget_config(self, tenant_id: str | None, changes: dict[str, Any]) -> WidgetConfig:
        tenant_id = _require_tenant(tenant_id)
        data = self.control_plane.api(
            "PUT", "/widget/config", tenant_id, failure_message="Failed to update widget config", json=changes or {}
        )
        return WidgetConfig.model_validate(data or {})

    def rotate_widget_key(self, tenant_id: str | None) -> WidgetConfig:
        """Issue a new site key; the previous key stops working."""
        tenant_id = _require_tenant(tenant_id)
        data = self.control_plane.api(
            "POST", "/widget/config/rotate-key", tenant_id, failure_message="Failed to rotate widget key", json={}
        )
        return WidgetConfig.model_validate(data or {})

    # --- Billing ---

    def create_billing_checkout(self, tenant_id: str | None, email: str | None) -> dict[str, Any]:
        tenant_id = _require_tenant(tenant_id)
        return self.control_plane.api(
            "POST", "/billing/checkout", tenant_id, failure_message="Failed to start billing", json={"email": email}
        )

    # --- Helpers ---

    @staticmethod
    def _accepted(data: Any, failure_message: str) -> JobAccepted:
        try:
            return JobAccepted.model_validate(data)
        except ValidationError as e:
            logger.error("[crawl_jobs] unexpected enqueue response: %s", e)
            raise UpstreamUnavailableError(failure_message) from e

    @staticmethod
    def _job(data: Any) -> CrawlJob | None:
        if not data:
            return None
        try:
            return CrawlJob.model_validate(data)
        except ValidationError as e:
            logger.error("[crawl_jobs] unexpected crawl status payload: %s", e)
            raise UpstreamUnavailableError("Failed to fetch crawl status") from e
