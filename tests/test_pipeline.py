import asyncio

import pytest
from unittest.mock import AsyncMock, patch

from conftest import make_match
from candidate_search.models.settings import EmbeddingSettings, Provider, RetrievalSettings, SynthesisSettings
from candidate_search.services.embeddings import EmbeddingClient
from candidate_search.services.justification import JustificationSynthesizer
from candidate_search.services.pipeline import MatchPipeline, NO_INFORMATION, RetrievalPass
from candidate_search.utils.exceptions import (
    ConfigurationError,
    EmbeddingServiceError,
    InvalidQueryError,
    StoreError,
    SynthesisError,
)


@pytest.fixture
def pipeline(embedder, store, synthesizer):
    return MatchPipeline(embedder, store, synthesizer)


def run(coro):
    return asyncio.run(coro)


class TestQueryValidation:
    """Queries are validated before any external call"""

    @pytest.mark.parametrize("query", ["", "   ", None, 42, ["Senior React Developer"], {"q": "x"}])
    def test_invalid_query(self, pipeline, embedder, store, query):
        with pytest.raises(InvalidQueryError) as exc_info:
            run(pipeline.search(query))

        assert exc_info.value.error_code == "INVALID_QUERY"
        embedder.embed.assert_not_called()
        store.search.assert_not_called()


class TestEmbeddingFailures:

    def test_embedding_error_aborts_before_retrieval(self, pipeline, embedder, store):
        """Embedding failure surfaces as-is and the store is never queried"""
        embedder.embed.side_effect = EmbeddingServiceError("service unavailable", provider="openai")

        with pytest.raises(EmbeddingServiceError):
            run(pipeline.search("Senior React Developer"))

        store.search.assert_not_called()

    def test_missing_credential_is_configuration_error(self, store, synthesizer):
        """Scenario: embedding credential absent -> ConfigurationError, no store call"""
        pipeline = MatchPipeline(EmbeddingClient(EmbeddingSettings(api_key=None)), store, synthesizer)

        with pytest.raises(ConfigurationError) as exc_info:
            run(pipeline.search("Senior React Developer"))

        assert exc_info.value.details["config_key"] == "OPENAI_API_KEY"
        store.search.assert_not_called()

    def test_missing_credential_fails_every_search(self, store, synthesizer):
        pipeline = MatchPipeline(EmbeddingClient(EmbeddingSettings(api_key=None)), store, synthesizer)

        for _ in range(3):
            with pytest.raises(ConfigurationError):
                run(pipeline.search("Data engineer"))


class TestRetrieval:

    def test_primary_results(self, pipeline, store):
        """Scenario: three primary matches keep store order and percentage scores"""
        store.search.return_value = [
            make_match("c1", 0.91, name="Ada"),
            make_match("c2", 0.85, name="Grace"),
            make_match("c3", 0.60, name="Linus"),
        ]

        outcome = run(pipeline.run("Senior React Developer"))

        assert [r.accuracy for r in outcome.results] == [91, 85, 60]
        assert [r.id for r in outcome.results] == ["c1", "c2", "c3"]
        assert outcome.retrieval_pass == RetrievalPass.PRIMARY.value
        store.search.assert_awaited_once_with([0.1, 0.2, 0.3], threshold=0.3, limit=5)

    def test_fallback_when_primary_empty(self, pipeline, store):
        """Scenario: empty primary pass retries at threshold 0.0 with the same limit"""
        store.search.side_effect = [
            [],
            [make_match("c7", 0.12), make_match("c8", 0.05)],
        ]

        outcome = run(pipeline.run("obscure niche role"))

        assert [r.accuracy for r in outcome.results] == [12, 5]
        assert outcome.retrieval_pass == RetrievalPass.FALLBACK.value
        thresholds = [call.kwargs["threshold"] for call in store.search.call_args_list]
        limits = [call.kwargs["limit"] for call in store.search.call_args_list]
        assert thresholds == [0.3, 0.0]
        assert limits == [5, 5]

    def test_no_embedded_candidates_returns_empty(self, pipeline, store, synthesizer):
        """Scenario: both passes empty -> empty success, not an error"""
        store.search.side_effect = [[], []]
        store.count_embedded.return_value = 0

        outcome = run(pipeline.run("anything"))

        assert outcome.results == []
        assert outcome.retrieval_pass == RetrievalPass.NONE.value
        assert outcome.embedded_candidates == 0
        assert store.search.await_count == 2
        synthesizer.explain.assert_not_called()

    def test_count_failure_does_not_fail_empty_search(self, pipeline, store):
        store.search.side_effect = [[], []]
        store.count_embedded.side_effect = StoreError("down", retriable=True)

        outcome = run(pipeline.run("anything"))

        assert outcome.results == []
        assert outcome.embedded_candidates is None

    def test_fallback_not_attempted_when_primary_has_rows(self, pipeline, store):
        store.search.return_value = [make_match("c1", 0.31)]

        run(pipeline.search("role"))

        assert store.search.await_count == 1

    def test_store_error_aborts(self, pipeline, store, synthesizer):
        store.search.side_effect = StoreError("connection refused", retriable=True)

        with pytest.raises(StoreError) as exc_info:
            run(pipeline.search("role"))

        assert exc_info.value.retriable is True
        synthesizer.explain.assert_not_called()

    def test_missing_search_function_is_configuration_error(self, pipeline, store):
        store.search.side_effect = ConfigurationError("Vector search index 'x' not found", config_key="VECTOR_INDEX_NAME")

        with pytest.raises(ConfigurationError):
            run(pipeline.search("role"))

    @pytest.mark.parametrize("error", [
        StoreError("connection reset", retriable=True),
        ConfigurationError("Vector search index 'x' not found", config_key="VECTOR_INDEX_NAME"),
    ])
    def test_fallback_failure_is_empty_success(self, pipeline, store, synthesizer, error):
        """Only the primary pass can fail a search; a failed fallback means no rows"""
        store.search.side_effect = [[], error]

        outcome = run(pipeline.run("obscure niche role"))

        assert outcome.results == []
        assert outcome.retrieval_pass == RetrievalPass.NONE.value
        assert store.search.await_count == 2
        synthesizer.explain.assert_not_called()

    def test_custom_retrieval_settings(self, embedder, store, synthesizer):
        retrieval = RetrievalSettings(primary_threshold=0.5, fallback_threshold=0.1, limit=3)
        pipeline = MatchPipeline(embedder, store, synthesizer, retrieval)
        store.search.side_effect = [[], []]

        run(pipeline.search("role"))

        assert [c.kwargs["threshold"] for c in store.search.call_args_list] == [0.5, 0.1]
        assert all(c.kwargs["limit"] == 3 for c in store.search.call_args_list)


class TestResultShaping:

    def test_accuracy_is_rounded_percentage(self, pipeline, store):
        store.search.return_value = [
            make_match("a", 0.999),
            make_match("b", 0.455),
            make_match("c", 0.004),
            make_match("d", None),
        ]

        results = run(pipeline.search("role"))

        assert [r.accuracy for r in results] == [100, 46, 0, 0]
        assert all(0 <= r.accuracy <= 100 for r in results)

    def test_unknown_name_and_links(self, pipeline, store):
        store.search.return_value = [
            make_match("a", 0.8, name=None, linkedin_url="https://linkedin.com/in/a", cv_url="https://cv/a.pdf"),
            make_match("b", 0.7, name=""),
        ]

        results = run(pipeline.search("role"))

        assert results[0].name == "Unknown"
        assert results[0].linkedin_url == "https://linkedin.com/in/a"
        assert results[0].cv_url == "https://cv/a.pdf"
        assert results[1].name == "Unknown"
        assert results[1].linkedin_url is None
        assert results[1].cv_url is None


class TestJustifications:

    def test_reasons_come_from_synthesizer(self, pipeline, store, synthesizer):
        store.search.return_value = [make_match("a", 0.9, cv_info="Python and FastAPI")]

        results = run(pipeline.search("Backend engineer"))

        assert results[0].reason == "Matches 'Backend engineer': Python and FastAPI"
        synthesizer.explain.assert_awaited_once_with("Backend engineer", "Python and FastAPI")

    @pytest.mark.parametrize("cv_info", [None, "", "   \n"])
    def test_blank_profile_uses_sentinel(self, pipeline, store, synthesizer, cv_info):
        store.search.return_value = [make_match("a", 0.9, cv_info=cv_info)]

        results = run(pipeline.search("role"))

        assert results[0].reason == NO_INFORMATION == "No additional information available"
        synthesizer.explain.assert_not_called()

    def test_one_failure_does_not_affect_siblings(self, pipeline, store, synthesizer):
        async def explain(query, profile):
            if profile == "profile-b":
                raise SynthesisError("rate limited")
            return f"why {profile}"

        synthesizer.explain = AsyncMock(side_effect=explain)
        store.search.return_value = [
            make_match("a", 0.9, cv_info="profile-a"),
            make_match("b", 0.8, cv_info="profile-b"),
            make_match("c", 0.7, cv_info="profile-c"),
        ]

        results = run(pipeline.search("role"))

        assert [r.reason for r in results] == ["why profile-a", "profile-b", "why profile-c"]
        assert synthesizer.explain.await_count == 3

    def test_unexpected_failure_does_not_affect_siblings(self, pipeline, store, synthesizer):
        async def explain(query, profile):
            if profile == "profile-a":
                raise RuntimeError("malformed completion")
            return f"why {profile}"

        synthesizer.explain = AsyncMock(side_effect=explain)
        store.search.return_value = [
            make_match("a", 0.9, cv_info="profile-a"),
            make_match("b", 0.8, cv_info="profile-b"),
        ]

        results = run(pipeline.search("role"))

        assert [r.reason for r in results] == ["profile-a", "why profile-b"]

    @patch('candidate_search.utils.utils.requests.post')
    def test_non_object_ollama_reply_falls_back_to_profile(self, mock_post, embedder, store):
        mock_post.return_value.json.return_value = ["unexpected"]
        synthesizer = JustificationSynthesizer(SynthesisSettings(provider=Provider.OLLAMA))
        pipeline = MatchPipeline(embedder, store, synthesizer)
        store.search.return_value = [make_match("a", 0.9, cv_info="profile-a")]

        results = run(pipeline.search("role"))

        assert results[0].reason == "profile-a"

    def test_order_independent_of_completion_time(self, pipeline, store, synthesizer):
        delays = {"slow": 0.05, "medium": 0.02, "fast": 0.0}

        async def explain(query, profile):
            await asyncio.sleep(delays[profile])
            return profile.upper()

        synthesizer.explain = AsyncMock(side_effect=explain)
        store.search.return_value = [
            make_match("1", 0.9, cv_info="slow"),
            make_match("2", 0.8, cv_info="medium"),
            make_match("3", 0.7, cv_info="fast"),
        ]

        results = run(pipeline.search("role"))

        assert [r.id for r in results] == ["1", "2", "3"]
        assert [r.reason for r in results] == ["SLOW", "MEDIUM", "FAST"]

    def test_justifications_run_concurrently(self, pipeline, store, synthesizer):
        state = {"in_flight": 0, "peak": 0}

        async def explain(query, profile):
            state["in_flight"] += 1
            state["peak"] = max(state["peak"], state["in_flight"])
            await asyncio.sleep(0.01)
            state["in_flight"] -= 1
            return "ok"

        synthesizer.explain = AsyncMock(side_effect=explain)
        store.search.return_value = [make_match(str(i), 0.9 - i / 10, cv_info=f"p{i}") for i in range(4)]

        run(pipeline.search("role"))

        assert state["peak"] == 4
