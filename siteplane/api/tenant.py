"""
Tenant routes: site, crawl, actions, widget and billing, proxied to the control plane.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends

from siteplane.api.deps import get_crawl_job_proxy, require_active_tenant
from siteplane.schemas.tenant import (
    CrawlStatusResponse,
    DiscoverActionsRequest,
    Identity,
    JobAccepted,
    RunCrawlRequest,
    SiteUpsert,
    TenantAction,
    TenantSiteRef,
    WidgetConfig,
)
from siteplane.services.crawl_jobs import CrawlJobProxy, describe_job

tenant_router = APIRouter(tags=["tenant"])


# --- Site ---

@tenant_router.get("/site", response_model=TenantSiteRef, summary="Get the tenant's primary site")
def get_site(
    identity: Identity = Depends(require_active_tenant),
    proxy: CrawlJobProxy = Depends(get_crawl_job_proxy),
) -> TenantSiteRef:
    return proxy.get_site(identity.tenant_id)


@tenant_router.post("/site", summary="Create or update the tenant's site")
def upsert_site(
    body: SiteUpsert,
    identity: Identity = Depends(require_active_tenant),
    proxy: CrawlJobProxy = Depends(get_crawl_job_proxy),
) -> Any:
    return proxy.upsert_site(identity.tenant_id, body)


# --- Crawl ---

@tenant_router.post(
    "/crawl",
    response_model=JobAccepted,
    summary="Start a crawl",
    description="Enqueues a crawl and returns the job id immediately. Poll /crawl/status for progress.",
)
def run_crawl(
    body: RunCrawlRequest | None = None,
    identity: Identity = Depends(require_active_tenant),
    proxy: CrawlJobProxy = Depends(get_crawl_job_proxy),
) -> JobAccepted:
    return proxy.run_crawl(identity.tenant_id, body.site_id if body else None)


@tenant_router.get(
    "/crawl/status",
    response_model=CrawlStatusResponse | None,
    summary="Latest crawl job status",
    description="Returns null when the tenant has not crawled yet.",
)
def get_crawl_status(
    site_id: str | None = None,
    identity: Identity = Depends(require_active_tenant),
    proxy: CrawlJobProxy = Depends(get_crawl_job_proxy),
) -> CrawlStatusResponse | None:
    job = proxy.get_crawl_status(identity.tenant_id, site_id)
    return describe_job(job) if job is not None else None


@tenant_router.get(
    "/crawl/status/{job_id}", response_model=CrawlStatusResponse | None, summary="Crawl job status by id"
)
def get_crawl_status_by_id(
    job_id: str,
    identity: Identity = Depends(require_active_tenant),
    proxy: CrawlJobProxy = Depends(get_crawl_job_proxy),
) -> CrawlStatusResponse | None:
    job = proxy.get_crawl_status_by_id(identity.tenant_id, job_id)
    return describe_job(job) if job is not None else None


# --- Billing ---

@tenant_router.post("/billing/checkout", summary="Start a billing checkout session")
def create_billing_checkout(
    identity: Identity = Depends(require_active_tenant),
    proxy: CrawlJobProxy = Depends(get_crawl_job_proxy),
) -> Any:
    return proxy.create_billing_checkout(identity.tenant_id, identity.email)


# --- Actions ---

@tenant_router.get("/actions", response_model=list[TenantAction], summary="List discovered actions")
def list_actions(
    site_id: str | None = None,
    url: str | None = None,
    identity: Identity = Depends(require_active_tenant),
    proxy: CrawlJobProxy = Depends(get_crawl_job_proxy),
) -> list[TenantAction]:
    return proxy.list_actions(identity.tenant_id, site_id=site_id, url=url)


@tenant_router.post("/actions/discover", response_model=JobAccepted, summary="Discover actions on a page")
def discover_actions(
    body: DiscoverActionsRequest | None = None,
    identity: Identity = Depends(require_active_tenant),
    proxy: CrawlJobProxy = Depends(get_crawl_job_proxy),
) -> JobAccepted:
    body = body or DiscoverActionsRequest()
    return proxy.discover_actions(identity.tenant_id, body.url, body.site_id)


# --- Widget ---

@tenant_router.get("/widget/config", response_model=WidgetConfig, summary="Widget embed settings")
def get_widget_config(
    identity: Identity = Depends(require_active_tenant),
    proxy: CrawlJobProxy = Depends(get_crawl_job_proxy),
) -> WidgetConfig:
    return proxy.get_widget_config(identity.tenant_id)


@tenant_router.put("/widget/config", response_model=WidgetConfig, summary="Update widget embed settings")
def update_widget_config(
    changes: dict[str, Any] | None = Body(None),
    identity: Identity = Depends(require_active_tenant),
    proxy: CrawlJobProxy = Depends(get_crawl_job_proxy),
) -> WidgetConfig:
    return proxy.update_widget_config(identity.tenant_id, changes or {})


@tenant_router.post("/widget/config/rotate-key", response_model=WidgetConfig, summary="Issue a new widget site key")
def rotate_widget_key(
    identity: Identity = Depends(require_active_tenant),
    proxy: CrawlJobProxy = Depends(get_crawl_job_proxy),
) -> WidgetConfig:
    return proxy.rotate_widget_key(identity.tenant_id)
