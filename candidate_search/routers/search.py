# routers/search.py
from functools import lru_cache
from typing import Any, List

from fastapi import APIRouter, Body, Depends, Response

from candidate_search.models.response import ErrorResponse, MatchResult
from candidate_search.models.schemas import SearchRequest
from candidate_search.models.settings import load_settings
from candidate_search.services.pipeline import MatchPipeline
from candidate_search.utils.exceptions import InvalidQueryError
from candidate_search.utils.logging_config import log_api_call

router = APIRouter(prefix="/search", tags=["search"])

@lru_cache
def get_pipeline() -> MatchPipeline:
    """Single pipeline per process; it holds no per-request state."""
    return MatchPipeline.from_settings(load_settings())


@router.post(
    "",
    response_model=List[MatchResult],
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
@log_api_call("search")
async def search_candidates(
    response: Response,
    body: Any = Body(default=None, examples=[{"query": "Senior React Developer"}]),
    pipeline: MatchPipeline = Depends(get_pipeline),
):
    """Rank candidates semantically similar to a free-text role description.

    An empty list is a successful "no matches" answer; the X-Retrieval-Pass
    header tells whether results came from the primary or fallback pass.
    """
    # a JSON body that is not an object is an invalid query
    if not isinstance(body, dict):
        raise InvalidQueryError(value=body)
    payload = SearchRequest.model_validate(body)

    outcome = await pipeline.run(payload.query)
    response.headers["X-Retrieval-Pass"] = outcome.retrieval_pass
    return outcome.results
