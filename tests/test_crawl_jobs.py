"""
Unit tests for the crawl job proxy: input validation, upstream error mapping,
site upsert, and the crawl progress / polling policy.
"""

import json

import httpx
import pytest

from siteplane.core.errors import (
    ConfigurationMissingError,
    InvalidInputError,
    NotFoundError,
    UpstreamClientError,
    UpstreamUnavailableError,
)
from siteplane.schemas.tenant import CrawlJob, CrawlStats, CrawlStatus, SiteUpsert, TenantSiteRef
from siteplane.services.control_plane import ControlPlaneClient, UpstreamError
from siteplane.services.crawl_jobs import (
    POLL_INTERVALS,
    CrawlJobProxy,
    derive_progress,
    describe_job,
    is_terminal,
    poll_interval,
)
from siteplane.services.tenant_directory import TenantDirectory


class FakeControlPlane:
    """Routes (method, path) to canned (status, body) outcomes or exceptions; records requests."""

    def __init__(self, routes: dict | None = None) -> None:
        self.routes = routes or {}
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self.routes.get((request.method, request.url.path), (404, {"detail": "no route"}))
        if isinstance(outcome, Exception):
            raise outcome
        status, body = outcome
        return httpx.Response(status, json=body)

    def client(self, **kwargs) -> ControlPlaneClient:
        http = httpx.Client(transport=httpx.MockTransport(self.handler))
        return ControlPlaneClient("https://cp.test", "cp_api_key", "cp_internal_key", http_client=http, **kwargs)

    def proxy(self, directory: TenantDirectory | None = None) -> CrawlJobProxy:
        return CrawlJobProxy(self.client(), directory)


def body_of(request: httpx.Request) -> dict:
    return json.loads(request.content)


class TestProgress:
    """Tests for derive_progress() and the polling policy."""

    def test_crawl_progress(self) -> None:
        progress = derive_progress(CrawlStats(processed=40, queue=10, ingested=20, phase="crawling"))
        assert progress.crawl_progress == 80
        assert progress.progress == 80

    def test_ingest_progress_shown_while_ingesting(self) -> None:
        progress = derive_progress(CrawlStats(processed=40, queue=0, ingested=20, phase="ingesting"))
        assert progress.ingest_progress == 50
        assert progress.progress == 50

    def test_phase_argument_overrides_stats(self) -> None:
        stats = CrawlStats(processed=40, queue=10, ingested=20)
        assert derive_progress(stats, "ingesting").progress == 50
        assert derive_progress(stats, "running").progress == 80

    def test_zero_denominators_are_undefined(self) -> None:
        progress = derive_progress(CrawlStats())
        assert progress.crawl_progress is None
        assert progress.ingest_progress is None
        assert progress.progress is None

    def test_rounds_half_up(self) -> None:
        # 1 / 8 = 12.5%
        assert derive_progress(CrawlStats(processed=1, queue=7)).crawl_progress == 13

    def test_every_status_has_a_poll_policy(self) -> None:
        assert set(POLL_INTERVALS) == set(CrawlStatus)

    @pytest.mark.parametrize("status", [CrawlStatus.QUEUED, CrawlStatus.RUNNING, CrawlStatus.INGESTING])
    def test_active_statuses_poll_every_ten_seconds(self, status) -> None:
        assert poll_interval(status) == 10.0
        assert not is_terminal(status)

    @pytest.mark.parametrize("status", [CrawlStatus.SUCCEEDED, CrawlStatus.FAILED, CrawlStatus.CANCELLED])
    def test_terminal_statuses_stop_polling(self, status) -> None:
        assert poll_interval(status) is None
        assert is_terminal(status)

    def test_describe_job_uses_status_when_no_phase(self) -> None:
        job = CrawlJob(job_id="j1", status="running", stats={"processed": 3, "queue": 1})
        described = describe_job(job)
        assert described.phase == "running"
        assert described.progress.progress == 75
        assert described.poll_interval == 10.0


class TestUpstreamError:
    def test_detail_then_message_then_fallback(self) -> None:
        request = httpx.Request("GET", "https://cp.test/api/x")
        for body, expected in [
            ({"detail": "bad", "message": "ignored"}, "bad"),
            ({"message": "from message"}, "from message"),
            ({"error": "other"}, "Request failed"),
        ]:
            response = httpx.Response(422, json=body, request=request)
            error = UpstreamError.from_exception(httpx.HTTPStatusError("x", request=request, response=response))
            mapped = error.to_exception("Failed to do it")
            assert isinstance(mapped, UpstreamClientError)
            assert mapped.status_code == 422
            assert mapped.message == expected

    def test_transport_failure_is_generic(self) -> None:
        error = UpstreamError.from_exception(httpx.ConnectError("refused"))
        assert error.status_code is None
        mapped = error.to_exception("Failed to do it")
        assert isinstance(mapped, UpstreamUnavailableError)
        assert (mapped.status_code, mapped.message) == (502, "Failed to do it")


class TestValidation:
    @pytest.mark.parametrize(
        "call",
        [
            lambda p: p.get_site(None),
            lambda p: p.upsert_site("", SiteUpsert(base_url="https://a.test")),
            lambda p: p.run_crawl(None),
            lambda p: p.get_crawl_status(None),
            lambda p: p.get_crawl_status_by_id(None, "job-1"),
            lambda p: p.discover_actions(None, "https://a.test/contact"),
            lambda p: p.list_actions(None),
            lambda p: p.get_widget_config(None),
            lambda p: p.update_widget_config(None, {"enabled": True}),
            lambda p: p.rotate_widget_key(None),
            lambda p: p.create_billing_checkout(None, "a@b.test"),
        ],
    )
    def test_missing_tenant_rejected_before_network(self, call) -> None:
        cp = FakeControlPlane()
        with pytest.raises(InvalidInputError) as exc_info:
            call(cp.proxy())
        assert exc_info.value.message == "Missing tenant context"
        assert cp.requests == []

    def test_discover_actions_requires_url(self) -> None:
        cp = FakeControlPlane()
        with pytest.raises(InvalidInputError) as exc_info:
            cp.proxy().discover_actions("tenant-1", None)
        assert exc_info.value.status_code == 400
        assert exc_info.value.message == "url is required"
        assert cp.requests == []

    def test_upsert_requires_base_url(self) -> None:
        cp = FakeControlPlane()
        with pytest.raises(InvalidInputError):
            cp.proxy().upsert_site("tenant-1", SiteUpsert())
        assert cp.requests == []

    def test_status_by_id_requires_job_id(self) -> None:
        cp = FakeControlPlane()
        with pytest.raises(InvalidInputError):
            cp.proxy().get_crawl_status_by_id("tenant-1", "")

    def test_not_configured(self) -> None:
        proxy = CrawlJobProxy(ControlPlaneClient("", "", ""))
        with pytest.raises(ConfigurationMissingError) as exc_info:
            proxy.run_crawl("tenant-1")
        assert exc_info.value.message == "Control plane not configured"


class TestSites:
    def test_get_site(self) -> None:
        cp = FakeControlPlane({("GET", "/internal/tenants/tenant-1/sites/primary"): (200, {"id": 3, "base_url": "https://a.test"})})
        site = cp.proxy().get_site("tenant-1")
        assert site.id == 3

    def test_get_site_not_found(self) -> None:
        cp = FakeControlPlane()
        with pytest.raises(NotFoundError) as exc_info:
            cp.proxy().get_site("tenant-1")
        assert exc_info.value.message == "Site not found"

    def test_upsert_updates_existing_site(self) -> None:
        cp = FakeControlPlane({
            ("GET", "/internal/tenants/tenant-1/sites/primary"): (200, {"id": 9}),
            ("PUT", "/api/sites/9"): (200, {"id": 9, "base_url": "https://new.test"}),
        })
        result = cp.proxy().upsert_site("tenant-1", SiteUpsert(base_url="https://new.test"))
        assert result["base_url"] == "https://new.test"
        put = cp.requests[-1]
        assert body_of(put) == {"base_url": "https://new.test", "sitemap_url": None, "crawl_rules": None}
        assert put.headers["X-Tenant-ID"] == "tenant-1"
        assert put.headers["Authorization"] == "Bearer cp_api_key"

    def test_upsert_creates_when_probe_is_404(self) -> None:
        cp = FakeControlPlane({("POST", "/api/sites"): (200, {"id": 11})})
        body = SiteUpsert(base_url="https://a.test", sitemap_url="https://a.test/sitemap.xml", crawl_rules={"max_pages": 50})
        assert cp.proxy().upsert_site("tenant-1", body) == {"id": 11}
        assert [r.method for r in cp.requests] == ["GET", "POST"]
        assert body_of(cp.requests[-1])["crawl_rules"] == {"max_pages": 50}

    def test_upsert_probe_failure_is_502(self) -> None:
        cp = FakeControlPlane({("GET", "/internal/tenants/tenant-1/sites/primary"): (500, {"detail": "boom"})})
        with pytest.raises(UpstreamUnavailableError) as exc_info:
            cp.proxy().upsert_site("tenant-1", SiteUpsert(base_url="https://a.test"))
        assert exc_info.value.message == "Failed to check existing site"
        assert len(cp.requests) == 1

    def test_upsert_refreshes_directory_cache(self) -> None:
        cp = FakeControlPlane({("POST", "/api/sites"): (200, {"id": 12, "base_url": "https://b.test"})})
        directory = TenantDirectory(cp.client())
        directory.remember_site("tenant-1", TenantSiteRef(id=1))
        cp.proxy(directory).upsert_site("tenant-1", SiteUpsert(base_url="https://b.test"))
        assert directory.resolve_primary_site("tenant-1").id == 12


class TestCrawl:
    def test_run_crawl_passes_upstream_response_through(self) -> None:
        cp = FakeControlPlane({("POST", "/api/crawl/run"): (200, {"job_id": "job-1", "status": "queued", "extra": 1})})
        accepted = cp.proxy().run_crawl("tenant-1", site_id=5)
        assert (accepted.job_id, accepted.status) == ("job-1", "queued")
        assert body_of(cp.requests[0]) == {"tenant_id": "tenant-1", "site_id": 5}

    def test_run_crawl_without_site_surfaces_upstream_4xx(self) -> None:
        cp = FakeControlPlane({("POST", "/api/crawl/run"): (404, {"detail": "No site configured"})})
        with pytest.raises(UpstreamClientError) as exc_info:
            cp.proxy().run_crawl("tenant-1")
        assert (exc_info.value.status_code, exc_info.value.message) == (404, "No site configured")

    def test_duplicate_runs_are_forwarded(self) -> None:
        cp = FakeControlPlane({("POST", "/api/crawl/run"): (200, {"job_id": "job-1", "status": "queued"})})
        proxy = cp.proxy()
        proxy.run_crawl("tenant-1")
        proxy.run_crawl("tenant-1")
        assert len(cp.requests) == 2

    def test_get_crawl_status(self) -> None:
        cp = FakeControlPlane({
            ("GET", "/api/crawl/status"): (200, {
                "job_id": "job-1",
                "status": "ingesting",
                "stats": {"processed": 40, "queue": 0, "ingested": 20, "phase": "ingesting"},
            })
        })
        job = cp.proxy().get_crawl_status("tenant-1", site_id=5)
        assert job.status is CrawlStatus.INGESTING
        assert job.phase == "ingesting"
        assert cp.requests[0].url.params["site_id"] == "5"

    def test_get_crawl_status_by_id(self) -> None:
        cp = FakeControlPlane({("GET", "/api/crawl/status/job-7"): (200, {"job_id": "job-7", "status": "succeeded"})})
        job = cp.proxy().get_crawl_status_by_id("tenant-1", "job-7")
        assert is_terminal(job.status)

    def test_unknown_status_is_rejected(self) -> None:
        cp = FakeControlPlane({("GET", "/api/crawl/status"): (200, {"job_id": "job-1", "status": "paused"})})
        with pytest.raises(UpstreamUnavailableError) as exc_info:
            cp.proxy().get_crawl_status("tenant-1")
        assert exc_info.value.message == "Failed to fetch crawl status"

    def test_no_job_yet_returns_none(self) -> None:
        cp = FakeControlPlane({("GET", "/api/crawl/status"): (200, None)})
        assert cp.proxy().get_crawl_status("tenant-1") is None

    def test_null_json_body_returns_none(self) -> None:
        cp = FakeControlPlane()
        cp.handler = lambda request: httpx.Response(200, content=b"null", headers={"Content-Type": "application/json"})
        assert cp.proxy().get_crawl_status("tenant-1", site_id=5) is None

    def test_status_5xx_is_generic_502(self) -> None:
        cp = FakeControlPlane({("GET", "/api/crawl/status"): (503, {"detail": "worker pool exhausted"})})
        with pytest.raises(UpstreamUnavailableError) as exc_info:
            cp.proxy().get_crawl_status("tenant-1")
        assert exc_info.value.status_code == 502
        assert "worker" not in exc_info.value.message


class TestActions:
    def test_discover_actions(self) -> None:
        cp = FakeControlPlane({("POST", "/api/actions/discover"): (200, {"job_id": "a-1", "status": "queued"})})
        accepted = cp.proxy().discover_actions("tenant-1", "https://a.test/contact")
        assert accepted.job_id == "a-1"
        assert body_of(cp.requests[0]) == {"url": "https://a.test/contact"}

    def test_list_actions_with_filters(self) -> None:
        cp = FakeControlPlane({
            ("GET", "/api/actions"): (200, [
                {
                    "id": 1,
                    "url": "https://a.test/contact",
                    "action_type": "form",
                    "source": "static",
                    "method": "POST",
                    "endpoint": "/contact",
                    "label": "Contact us",
                }
            ])
        })
        actions = cp.proxy().list_actions("tenant-1", site_id=5, url="https://a.test/contact")
        assert actions[0].action_type == "form"
        params = cp.requests[0].url.params
        assert params["site_id"] == "5" and params["url"] == "https://a.test/contact"

    def test_list_actions_without_filters_sends_no_params(self) -> None:
        cp = FakeControlPlane({("GET", "/api/actions"): (200, [])})
        assert cp.proxy().list_actions("tenant-1") == []
        assert str(cp.requests[0].url) == "https://cp.test/api/actions"


class TestWidgetAndBilling:
    def test_get_widget_config(self) -> None:
        cp = FakeControlPlane({
            ("GET", "/api/widget/config"): (200, {
                "site_id": 1,
                "site_key": "wpk_abc",
                "enabled": True,
                "embed_script_url": "https://widget.test/v1/loader.js",
                "frame_url": "https://widget.test/v1/frame",
            })
        })
        config = cp.proxy().get_widget_config("tenant-123")
        assert config.site_key == "wpk_abc"
        request = cp.requests[0]
        assert request.headers["Authorization"] == "Bearer cp_api_key"
        assert request.headers["X-Tenant-ID"] == "tenant-123"

    def test_update_widget_config_maps_4xx(self) -> None:
        cp = FakeControlPlane({("PUT", "/api/widget/config"): (400, {"detail": "invalid payload"})})
        with pytest.raises(UpstreamClientError) as exc_info:
            cp.proxy().update_widget_config("tenant-123", {"enabled": False})
        assert exc_info.value.status_code == 400
        assert exc_info.value.message == "invalid payload"

    def test_update_widget_config_timeout_is_502(self) -> None:
        cp = FakeControlPlane({("PUT", "/api/widget/config"): httpx.ReadTimeout("timed out")})
        with pytest.raises(UpstreamUnavailableError) as exc_info:
            cp.proxy().update_widget_config("tenant-123", {"enabled": False})
        assert exc_info.value.status_code == 502
        assert exc_info.value.message == "Failed to update widget config"

    def test_rotate_widget_key_maps_5xx_to_502(self) -> None:
        cp = FakeControlPlane({("POST", "/api/widget/config/rotate-key"): (500, {"message": "upstream failure"})})
        with pytest.raises(UpstreamUnavailableError) as exc_info:
            cp.proxy().rotate_widget_key("tenant-123")
        assert exc_info.value.message == "Failed to rotate widget key"

    def test_rotate_widget_key(self) -> None:
        cp = FakeControlPlane({("POST", "/api/widget/config/rotate-key"): (200, {"site_key": "wpk_new"})})
        assert cp.proxy().rotate_widget_key("tenant-123").site_key == "wpk_new"
        assert body_of(cp.requests[0]) == {}

    def test_billing_checkout(self) -> None:
        cp = FakeControlPlane({("POST", "/api/billing/checkout"): (200, {"url": "https://pay.test/s/1"})})
        assert cp.proxy().create_billing_checkout("tenant-1", "owner@a.test") == {"url": "https://pay.test/s/1"}
        assert body_of(cp.requests[0]) == {"email": "owner@a.test"}

    def test_billing_failure_message(self) -> None:
        cp = FakeControlPlane({("POST", "/api/billing/checkout"): httpx.ConnectError("refused")})
        with pytest.raises(UpstreamUnavailableError) as exc_info:
            cp.proxy().create_billing_checkout("tenant-1", None)
        assert exc_info.value.message == "Failed to start billing"
