"""
Service wiring and request dependencies.

Authentication happens at the gateway, which forwards the resolved caller as
X-User-ID / X-User-Email / X-Tenant-ID headers. Services are built once per
process and handed to routes through FastAPI dependencies so tests can
override them.
"""

import logging
from functools import lru_cache

from fastapi import Depends, Header

from siteplane.core.config import MONGO_URI
from siteplane.core.conversation_store import InMemoryConversationStore, InMemorySearchIndex
from siteplane.core.errors import SiteplaneError, TenantAccessDeniedError
from siteplane.core.mongo_store import MongoConversationStore, MongoSearchIndex, get_collection
from siteplane.schemas.tenant import Identity
from siteplane.services.control_plane import ControlPlaneClient
from siteplane.services.conversation_pager import ConversationPager
from siteplane.services.crawl_jobs import CrawlJobProxy
from siteplane.services.site_context import SiteContextAssembler
from siteplane.services.tenant_directory import TenantDirectory

logger = logging.getLogger(__name__)


@lru_cache
def get_control_plane() -> ControlPlaneClient:
    return ControlPlaneClient()


@lru_cache
def get_tenant_directory() -> TenantDirectory:
    return TenantDirectory(get_control_plane())


@lru_cache
def get_site_context_assembler() -> SiteContextAssembler:
    return SiteContextAssembler(get_tenant_directory())


@lru_cache
def get_crawl_job_proxy() -> CrawlJobProxy:
    return CrawlJobProxy(get_control_plane(), get_tenant_directory())


@lru_cache
def get_conversation_pager() -> ConversationPager:
    """Mongo-backed when MONGO_URI is set, otherwise an empty in-process store."""
    if MONGO_URI:
        collection = get_collection(MONGO_URI)
        return ConversationPager(MongoConversationStore(collection), MongoSearchIndex(collection))
    logger.warning("[deps] MONGO_URI not set, conversations are kept in process memory")
    store = InMemoryConversationStore()
    return ConversationPager(store, InMemorySearchIndex(store))


def get_identity(
    x_user_id: str | None = Header(None),
    x_tenant_id: str | None = Header(None),
    x_user_email: str | None = Header(None),
) -> Identity:
    if not x_user_id:
        raise SiteplaneError("Unauthorized", 401)
    return Identity(user_id=x_user_id, tenant_id=x_tenant_id or None, email=x_user_email or None)


def require_active_tenant(
    identity: Identity = Depends(get_identity),
    directory: TenantDirectory = Depends(get_tenant_directory),
) -> Identity:
    """Reject callers whose tenant is missing, inactive or unpaid."""
    if not identity.tenant_id:
        raise TenantAccessDeniedError("Tenant not configured")
    try:
        directory.ensure_tenant_active(identity.tenant_id)
    except TenantAccessDeniedError:
        raise
    except SiteplaneError as e:
        logger.error("[deps:require_active_tenant] tenant verification failed tenant=%s: %s", identity.tenant_id, e)
        raise SiteplaneError("Tenant verification failed", 500) from e
    return identity
