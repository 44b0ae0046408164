"""API routes — thin controllers that delegate to the use case."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from repo_line_counter.interface.dependencies import enforce_rate_limit, get_use_case
from repo_line_counter.interface.schemas import AnalyzeRequest, AnalyzeResponse, ErrorResponse
from repo_line_counter.services.analyze_repo import AnalyzeRepoUseCase
from repo_line_counter.services.extension_classifier import language_categories

router = APIRouter(prefix="/api")


@router.post(
    "/analyze",
    response_model=AnalyzeResponse,
    dependencies=[Depends(enforce_rate_limit)],
    responses={
        400: {"model": ErrorResponse, "description": "Invalid URL or repository too large"},
        404: {"model": ErrorResponse, "description": "Repository not found"},
        422: {"model": ErrorResponse, "description": "Repository is empty"},
        429: {"model": ErrorResponse, "description": "Too many requests"},
        502: {"model": ErrorResponse, "description": "Repository could not be fetched"},
    },
)
async def analyze(
    body: AnalyzeRequest,
    use_case: AnalyzeRepoUseCase = Depends(get_use_case),
) -> AnalyzeResponse:
    """Count lines per language in a public repository."""
    result = await use_case.execute(body.repo_url)
    return AnalyzeResponse(stats=result.stats, total_lines=result.total_lines)


@router.get("/languages")
async def languages() -> dict[str, str]:
    """Known language labels mapped to their display category."""
    return language_categories()
