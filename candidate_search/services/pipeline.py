"""
Match pipeline: query -> embedding -> two-pass retrieval -> justifications -> results.

Stateless per request. Only validation, embedding and primary retrieval
failures abort a search. A failed fallback pass counts as no rows, and
justification failures degrade per candidate.
"""
import asyncio
from enum import Enum
from typing import Any, List, Optional

from candidate_search.models.models import ScoredCandidate
from candidate_search.models.response import MatchResult, SearchOutcome
from candidate_search.models.settings import RetrievalSettings, Settings
from candidate_search.services.embeddings import EmbeddingClient
from candidate_search.services.justification import JustificationSynthesizer
from candidate_search.services.vector_store import MongoVectorStore
from candidate_search.utils.exceptions import CandidateSearchError, InvalidQueryError, SynthesisError
from candidate_search.utils.logging_config import PerformanceMonitor, get_logger
from candidate_search.utils.utils import to_accuracy

logger = get_logger(__name__)

NO_INFORMATION = "No additional information available"
UNKNOWN_NAME = "Unknown"


class RetrievalPass(str, Enum):
    PRIMARY = "primary"
    FALLBACK = "fallback"
    NONE = "none"  # both passes came back empty


class MatchPipeline:

    def __init__(
        self,
        embedder: EmbeddingClient,
        store: MongoVectorStore,
        synthesizer: JustificationSynthesizer,
        retrieval: Optional[RetrievalSettings] = None,
    ):
        self.embedder = embedder
        self.store = store
        self.synthesizer = synthesizer
        self.retrieval = retrieval or RetrievalSettings()

    @classmethod
    def from_settings(cls, settings: Settings, store: Optional[MongoVectorStore] = None) -> "MatchPipeline":
        if store is None:
            from candidate_search.services.vector_store import build_store
            store = build_store(settings.store)
        return cls(
            embedder=EmbeddingClient(settings.embedding),
            store=store,
            synthesizer=JustificationSynthesizer(settings.synthesis),
            retrieval=settings.retrieval,
        )

    def retrieval_plan(self):
        """(pass, threshold) pairs, tried in order until one returns rows."""
        return [
            (RetrievalPass.PRIMARY, self.retrieval.primary_threshold),
            (RetrievalPass.FALLBACK, self.retrieval.fallback_threshold),
        ]

    async def search(self, query: Any) -> List[MatchResult]:
        outcome = await self.run(query)
        return outcome.results

    async def run(self, query: Any) -> SearchOutcome:
        if not isinstance(query, str) or not query.strip():
            raise InvalidQueryError(value=query)

        with PerformanceMonitor("query embedding", logger):
            query_vector = await self.embedder.embed(query)

        matches: List[ScoredCandidate] = []
        used_pass = RetrievalPass.NONE
        for retrieval_pass, threshold in self.retrieval_plan():
            matches = await self._retrieve(retrieval_pass, query_vector, threshold)
            logger.info(
                f"{retrieval_pass.value.capitalize()} retrieval (threshold={threshold}) "
                f"returned {len(matches)} candidates"
            )
            if matches:
                used_pass = retrieval_pass
                break
            if retrieval_pass == RetrievalPass.PRIMARY:
                logger.info(
                    f"No candidates found with threshold {threshold}. "
                    f"Trying with threshold {self.retrieval.fallback_threshold}..."
                )

        if not matches:
            embedded = await self._count_embedded()
            if embedded == 0:
                logger.warning("No candidates have embeddings yet - run the embedding backfill")
            else:
                logger.info(f"No semantic match among {embedded if embedded is not None else 'unknown'} embedded candidates")
            return SearchOutcome(results=[], retrieval_pass=used_pass.value, embedded_candidates=embedded)

        logger.info(f"Top match similarity: {matches[0].similarity}")
        if used_pass == RetrievalPass.FALLBACK:
            for idx, item in enumerate(matches, start=1):
                logger.info(f"  {idx}. Similarity: {(item.similarity or 0):.4f} - {item.record.full_name}")

        with PerformanceMonitor("justification fan-out", logger, threshold_ms=5000):
            results = await asyncio.gather(*(self._to_result(query, m) for m in matches))

        return SearchOutcome(results=list(results), retrieval_pass=used_pass.value)

    async def _retrieve(self, retrieval_pass: RetrievalPass, query_vector: List[float], threshold: float) -> List[ScoredCandidate]:
        """One store query. Only the primary pass may abort the search; a failed fallback counts as no rows."""
        try:
            with PerformanceMonitor(f"{retrieval_pass.value} retrieval", logger):
                return await self.store.search(query_vector, threshold=threshold, limit=self.retrieval.limit)
        except CandidateSearchError as e:
            if retrieval_pass == RetrievalPass.PRIMARY:
                raise
            logger.error(f"Fallback query error: {e.message}")
            return []

    async def _count_embedded(self) -> Optional[int]:
        try:
            return await self.store.count_embedded()
        except CandidateSearchError as e:
            logger.error(f"Error checking embedded candidates: {e.message}")
            return None

    async def _justify(self, query: str, match: ScoredCandidate) -> str:
        profile = match.record.cv_info or ""
        if not profile.strip():
            return NO_INFORMATION
        try:
            return await self.synthesizer.explain(query, profile)
        except SynthesisError as e:
            logger.error(f"Error generating reason for candidate {match.record.candidate_id}: {e.message}")
            return profile
        except Exception as e:
            # failures stay with their own candidate
            logger.error(
                f"Unexpected {e.__class__.__name__} generating reason for candidate {match.record.candidate_id}: {e}",
                exc_info=True,
            )
            return profile

    async def _to_result(self, query: str, match: ScoredCandidate) -> MatchResult:
        record = match.record
        return MatchResult(
            id=record.candidate_id,
            name=record.full_name or UNKNOWN_NAME,
            accuracy=to_accuracy(match.similarity),
            reason=await self._justify(query, match),
            linkedin_url=record.linkedin_url or None,
            cv_url=record.cv_url or None,
        )
