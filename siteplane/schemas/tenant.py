"""Schemas for tenant sites, crawl jobs, discovered actions and the widget."""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class Identity(BaseModel):
    """Authenticated caller, resolved upstream of this service."""

    user_id: str = Field(..., min_length=1)
    tenant_id: str | None = None
    email: str | None = None


class TenantSiteRef(BaseModel):
    """A tenant's primary site as returned by the control plane."""

    model_config = ConfigDict(extra="allow")

    id: int | str
    tenant_id: str | None = None
    base_url: str | None = None
    sitemap_url: str | None = None


class SiteUpsert(BaseModel):
    """Request body for creating or updating the tenant's site."""

    base_url: str | None = Field(None, description="Site root to crawl, e.g. https://example.com")
    sitemap_url: str | None = None
    crawl_rules: dict[str, Any] | None = None


class CrawlStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    INGESTING = "ingesting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class CrawlStats(BaseModel):
    """Counters reported by the remote crawler."""

    model_config = ConfigDict(extra="allow")

    visited: int = 0
    queue: int = 0
    processed: int = 0
    ingested: int = 0
    skipped: int = 0
    updated_at: datetime | None = None
    phase: str | None = None


class CrawlJob(BaseModel):
    """A crawl job as observed through the control plane. Never mutated here."""

    model_config = ConfigDict(extra="allow")

    job_id: str | int | None = None
    tenant_id: str | None = None
    site_id: str | int | None = None
    status: CrawlStatus
    stats: CrawlStats = Field(default_factory=CrawlStats)

    @property
    def phase(self) -> str:
        return self.stats.phase or self.status.value


class CrawlProgress(BaseModel):
    """Percentages derived from CrawlStats; None when the denominator is zero."""

    crawl_progress: int | None = None
    ingest_progress: int | None = None
    progress: int | None = None


class CrawlStatusResponse(BaseModel):
    """Crawl job plus the derived progress and polling hint returned to the UI."""

    job: CrawlJob
    phase: str
    progress: CrawlProgress
    poll_interval: float | None = Field(None, description="Seconds until the next poll; null once terminal.")


class JobAccepted(BaseModel):
    """Response of enqueue operations (run crawl, discover actions). Passed through as sent."""

    model_config = ConfigDict(extra="allow")

    job_id: str | int | None = None
    status: str | None = None


class RunCrawlRequest(BaseModel):
    site_id: str | int | None = None


class DiscoverActionsRequest(BaseModel):
    url: str | None = None
    site_id: str | int | None = None


class TenantAction(BaseModel):
    """An interactive element discovered on a tenant's site."""

    model_config = ConfigDict(extra="allow")

    id: str | int
    url: str
    action_type: Literal["form", "button", "link", "schema_action"]
    source: Literal["static", "playwright"]
    method: str | None = None
    endpoint: str | None = None
    label: str | None = None


class WidgetConfig(BaseModel):
    """Widget embed settings. Unknown upstream fields are preserved."""

    model_config = ConfigDict(extra="allow")

    site_id: str | int | None = None
    site_key: str | None = None
    enabled: bool | None = None
    embed_script_url: str | None = None
    frame_url: str | None = None
