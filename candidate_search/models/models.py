from pydantic import BaseModel, Field
from typing import List, Optional


class CandidateRecord(BaseModel):
    """A stored candidate profile. `embedding` is None until backfilled."""
    candidate_id: str
    full_name: Optional[str] = None
    cv_info: Optional[str] = None
    linkedin_url: Optional[str] = None
    cv_url: Optional[str] = None
    embedding: Optional[List[float]] = Field(default=None, repr=False)

    @classmethod
    def from_document(cls, doc: dict) -> "CandidateRecord":
        return cls(
            candidate_id=str(doc.get("candidate_id") or doc.get("_id")),
            full_name=doc.get("full_name"),
            cv_info=doc.get("cv_info"),
            linkedin_url=doc.get("linkedin_url"),
            cv_url=doc.get("cv_url"),
            embedding=doc.get("embedding"),
        )


class ScoredCandidate(BaseModel):
    record: CandidateRecord
    similarity: Optional[float] = None
