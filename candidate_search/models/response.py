# models/response.py
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class MatchResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    accuracy: int = Field(ge=0, le=100)
    reason: str
    linkedin_url: Optional[str] = Field(default=None, alias="linkedinUrl")
    cv_url: Optional[str] = Field(default=None, alias="cvUrl")


class SearchOutcome(BaseModel):
    """Pipeline result plus the retrieval pass that produced it"""
    results: List[MatchResult]
    retrieval_pass: str
    embedded_candidates: Optional[int] = None


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    error_code: Optional[str] = None
    request_id: Optional[str] = None
