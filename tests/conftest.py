import os

# Console-only WARNING logging, no log files
os.environ["ENVIRONMENT"] = "testing"

import pytest
from unittest.mock import AsyncMock, MagicMock

from candidate_search.models.models import CandidateRecord, ScoredCandidate


def make_match(candidate_id, similarity, name="Jane Doe", cv_info="Seasoned engineer.", **links):
    return ScoredCandidate(
        record=CandidateRecord(
            candidate_id=candidate_id,
            full_name=name,
            cv_info=cv_info,
            linkedin_url=links.get("linkedin_url"),
            cv_url=links.get("cv_url"),
        ),
        similarity=similarity,
    )


@pytest.fixture
def embedder():
    mock = MagicMock()
    mock.provider = "openai"
    mock.embed = AsyncMock(return_value=[0.1, 0.2, 0.3])
    return mock


@pytest.fixture
def store():
    mock = MagicMock()
    mock.search = AsyncMock(return_value=[])
    mock.count_embedded = AsyncMock(return_value=0)
    return mock


@pytest.fixture
def synthesizer():
    async def explain(query, profile):
        return f"Matches '{query}': {profile}"

    mock = MagicMock()
    mock.provider = "openai"
    mock.explain = AsyncMock(side_effect=explain)
    return mock
