"""Search router - direct access to the web search gatherer."""

import logging

from fastapi import APIRouter, Request

from modelrelay.core.security import sanitize_input
from modelrelay.models.schemas import SearchRequest, SearchResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=SearchResponse)
async def search(request: Request, body: SearchRequest):
    """Search the web and return ranked, de-duplicated results."""
    gatherer = request.app.state.gatherer
    query = sanitize_input(body.query)
    results = await gatherer.search(query, body.language)
    logger.info(f"Search for {query[:80]!r} returned {len(results)} results")
    return SearchResponse(results=results)
