from fastapi import APIRouter, Request

from smb_context.engine.context_engine import ContextEngine
from smb_context.models.responses import AIContextRequest, AIContextResponse, ErrorResponse

router = APIRouter(prefix="/context", tags=["Context"])


def get_engine(request: Request) -> ContextEngine:
    return request.app.state.engine


@router.post(
    "/query",
    response_model=AIContextResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Business not found"},
        422: {"model": ErrorResponse, "description": "Invalid request"},
        503: {"model": ErrorResponse, "description": "Data source unavailable, retry later"},
    },
)
async def query_context(body: AIContextRequest, request: Request):
    """
    Answer a business query grounded in the business's own data.

    Returns the natural-language answer together with insights, recommended
    actions, automation suggestions and related data. Any of the lists may
    be empty when the LLM is unavailable.
    """
    engine = get_engine(request)
    return await engine.process_query(body)
