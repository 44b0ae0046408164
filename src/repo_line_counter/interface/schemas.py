"""Pydantic request / response DTOs for the API boundary."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class AnalyzeRequest(BaseModel):
    """Request body for ``POST /api/analyze``.

    Emptiness and URL checks happen in the use case so that every rejection
    carries the same messages whether it comes from HTTP or elsewhere.
    """

    model_config = ConfigDict(populate_by_name=True)

    repo_url: str | None = Field(default=None, alias="repoUrl")


class AnalyzeResponse(BaseModel):
    """Successful response from ``POST /api/analyze``."""

    model_config = ConfigDict(populate_by_name=True)

    stats: dict[str, int]
    total_lines: int = Field(alias="totalLines")


class ErrorResponse(BaseModel):
    """Standard error envelope returned on all failure paths."""

    error: str
