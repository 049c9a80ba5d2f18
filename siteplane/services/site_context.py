"""
Site context: grounding block for chat answers from the tenant's indexed website.

Responsibility: Resolve the tenant's primary site, query the retrieval index
scoped to it, keep only hits with content and a citable page URL, and wrap them
in <document> blocks. Never raises into the chat pipeline: "" means "answer
without grounding", NO_SOURCES_MESSAGE means "retrieval ran but nothing is citable".
"""

import logging
from typing import Any, Callable
from urllib.parse import urlsplit

import httpx

from siteplane.core.config import (
    RAG_API_URL,
    RETRIEVAL_TIMEOUT,
    SITE_RAG_ALLOW_ROOT_URL,
    SITE_RAG_ENABLED,
    SITE_RAG_MAX_CHARS,
    SITE_RAG_REQUIRE_SOURCE_URL,
    SITE_RAG_TOP_K,
)
from siteplane.core.tokens import generate_short_lived_token
from siteplane.services.tenant_directory import TenantDirectory

logger = logging.getLogger(__name__)

ELLIPSIS = "…"

NO_SOURCES_MESSAGE = (
    "No page-level sources were found for this query in the client's indexed website. "
    "If you cannot cite a page URL, say you cannot find a source URL."
)

CONTEXT_PREAMBLE = (
    "Use only the page-level URLs provided in <source> for citations.",
    "If you cannot cite a page URL from the indexed content, say you cannot find a source URL.",
    "The following context was retrieved from the client's indexed website:",
)


def truncate(text: str, max_chars: int) -> str:
    """Cut text to max_chars, marking the cut with an ellipsis."""
    if not text or len(text) <= max_chars:
        return text
    return f"{text[:max_chars]}{ELLIPSIS}"


def is_http_url(value: Any) -> bool:
    if not value or not isinstance(value, str):
        return False
    try:
        parts = urlsplit(value)
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.netloc)


def is_page_url(value: Any, allow_root_url: bool = SITE_RAG_ALLOW_ROOT_URL) -> bool:
    """
    True if value can be cited as a page.

    With allow_root_url any http(s) URL qualifies; otherwise a bare domain is
    rejected unless it carries a query string or fragment.
    """
    if not is_http_url(value):
        return False
    if allow_root_url:
        return True
    parts = urlsplit(value)
    if parts.path and parts.path != "/":
        return True
    return bool(parts.query or parts.fragment)


def _document_block(title: str, source: str, content: str) -> str:
    return (
        "<document>\n"
        f"  <title>{title or 'Untitled'}</title>\n"
        f"  <source>{source}</source>\n"
        f"  <content>{content}</content>\n"
        "</document>"
    )


class SiteContextAssembler:
    """Builds the retrieval context string for one chat message."""

    def __init__(
        self,
        directory: TenantDirectory,
        rag_api_url: str = RAG_API_URL,
        enabled: bool = SITE_RAG_ENABLED,
        top_k: int = SITE_RAG_TOP_K,
        max_chars: int = SITE_RAG_MAX_CHARS,
        require_source_url: bool = SITE_RAG_REQUIRE_SOURCE_URL,
        allow_root_url: bool = SITE_RAG_ALLOW_ROOT_URL,
        token_issuer: Callable[[str], str] = generate_short_lived_token,
        timeout: float = RETRIEVAL_TIMEOUT,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.directory = directory
        self.rag_api_url = (rag_api_url or "").rstrip("/")
        self.enabled = enabled
        self.top_k = top_k
        self.max_chars = max_chars
        self.require_source_url = require_source_url
        self.allow_root_url = allow_root_url
        self.token_issuer = token_issuer
        self.timeout = timeout
        self._http = http_client

    def build_context(self, tenant_id: str | None, user_id: str, query_text: str | None) -> str:
        """Return the context block for query_text, NO_SOURCES_MESSAGE, or "" when retrieval is unavailable."""
        if not self.rag_api_url or not self.enabled or not tenant_id:
            return ""
        query = (query_text or "").strip()
        if not query:
            return ""

        try:
            site = self.directory.resolve_primary_site(tenant_id)
        except Exception as e:
            logger.warning("[site_context:build_context] failed to fetch primary site tenant=%s: %s", tenant_id, e)
            return ""
        if site is None or site.id is None:
            logger.info("[site_context:build_context] no primary site tenant=%s", tenant_id)
            return ""
        entity_id = str(site.id)

        logger.info("[site_context:build_context] IN  tenant=%s entity_id=%s k=%d", tenant_id, entity_id, self.top_k)
        try:
            token = self.token_issuer(user_id)
            results = self._query(query, entity_id, tenant_id, token)
            if not isinstance(results, list) or not results:
                logger.info("[site_context:build_context] OUT no hits")
                return ""
            docs = [block for block in (self._to_block(r) for r in results) if block]
        except Exception as e:
            logger.error("[site_context:build_context] retrieval failed tenant=%s: %s", tenant_id, e)
            return ""

        logger.info("[site_context:build_context] OUT hits=%d citable=%d", len(results), len(docs))
        if not docs:
            return NO_SOURCES_MESSAGE
        return "\n".join([*CONTEXT_PREAMBLE, "<documents>", "\n".join(docs), "</documents>"])

    def _query(self, query: str, entity_id: str, tenant_id: str, token: str) -> Any:
        payload = {"query": query, "k": self.top_k, "entity_id": entity_id}
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "X-Tenant-ID": tenant_id,
        }
        url = f"{self.rag_api_url}/query"
        if self._http is not None:
            response = self._http.post(url, json=payload, headers=headers, timeout=self.timeout)
        else:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(url, json=payload, headers=headers)
        response.raise_for_status()
        return response.json()

    def _to_block(self, result: Any) -> str:
        """Render one [payload, score] hit, or "" if it must be dropped."""
        payload = result[0] if isinstance(result, (list, tuple)) and result else {}
        if not isinstance(payload, dict):
            return ""
        page_content = payload.get("page_content")
        if not isinstance(page_content, str) or not page_content:
            return ""
        content = truncate(page_content, self.max_chars)
        meta = payload.get("metadata")
        if not isinstance(meta, dict):
            meta = {}
        source_url = meta.get("source_url") or ""
        citable = is_page_url(source_url, self.allow_root_url)
        if self.require_source_url and not citable:
            return ""
        return _document_block(meta.get("title") or "", source_url if citable else "", content)
