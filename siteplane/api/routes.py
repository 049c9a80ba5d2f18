"""
API route aggregator: register endpoints; no logic, only delegate to services.
"""

import logging

from fastapi import APIRouter, Depends, Query

from siteplane.api.deps import get_conversation_pager, get_identity, get_site_context_assembler
from siteplane.core.config import DEFAULT_PAGE_LIMIT
from siteplane.schemas.conversation import ContextRequest, ContextResponse, ConversationListResponse
from siteplane.schemas.tenant import Identity
from siteplane.services.conversation_pager import ConversationPager
from siteplane.services.site_context import SiteContextAssembler

logger = logging.getLogger(__name__)
router = APIRouter()


# --- System ---

@router.get("/", tags=["system"])
def root():
    return {"status": "siteplane running"}


@router.get("/health", tags=["system"])
def health():
    return {"ok": True}


# --- Chat grounding ---

@router.post(
    "/chat/context",
    response_model=ContextResponse,
    tags=["chat"],
    summary="Build site context for a chat message",
    description="Returns the grounding block for the message. Empty when site retrieval is disabled or unavailable; never fails.",
)
def post_chat_context(
    body: ContextRequest,
    identity: Identity = Depends(get_identity),
    assembler: SiteContextAssembler = Depends(get_site_context_assembler),
) -> ContextResponse:
    context = assembler.build_context(identity.tenant_id, identity.user_id, body.text)
    return ContextResponse(context=context)


# --- Conversations ---

@router.get(
    "/convos",
    response_model=ConversationListResponse,
    tags=["conversations"],
    summary="List conversations (cursor pagination)",
    description="400 on an invalid sort_by. An unreadable cursor restarts from the first page.",
)
def get_convos(
    cursor: str | None = None,
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=100),
    is_archived: bool = False,
    tags: list[str] | None = Query(None),
    search: str | None = None,
    sort_by: str = "updated_at",
    sort_direction: str = "desc",
    identity: Identity = Depends(get_identity),
    pager: ConversationPager = Depends(get_conversation_pager),
) -> ConversationListResponse:
    page = pager.page(
        identity.user_id,
        cursor=cursor,
        limit=limit,
        is_archived=is_archived,
        tags=tags,
        search=search,
        sort_by=sort_by,
        sort_direction=sort_direction,
        tenant_id=identity.tenant_id,
    )
    return ConversationListResponse(conversations=page.items, next_cursor=page.next_cursor)
