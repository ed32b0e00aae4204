"""
Vector store over the MongoDB candidates collection.

Two ranking strategies share one contract:

- ``atlas``: ``$vectorSearch`` against an Atlas vector index (cosine). Atlas
  reports ``(1 + cos) / 2`` as ``vectorSearchScore``; it is mapped back to
  cosine before thresholding.
- ``exact``: loads embedded documents in ``_id`` order and scores them with
  numpy. Suitable for small collections and self-hosted MongoDB.

Only documents with a non-null ``embedding`` are ever ranked.
"""
from typing import AsyncIterator, List, Sequence

from pymongo.errors import (
    ConnectionFailure,
    ExecutionTimeout,
    OperationFailure,
    PyMongoError,
)

from candidate_search.models.models import CandidateRecord, ScoredCandidate
from candidate_search.models.settings import SearchMode, VectorStoreSettings
from candidate_search.utils.exceptions import ConfigurationError, StoreError
from candidate_search.utils.logging_config import get_logger
from candidate_search.utils.utils import cosine_similarity

logger = get_logger(__name__)

EMBEDDED = {"embedding": {"$ne": None}}
MISSING_EMBEDDING = {"embedding": None}  # matches null and absent

CANDIDATE_FIELDS = {
    "_id": 1,
    "candidate_id": 1,
    "full_name": 1,
    "cv_info": 1,
    "linkedin_url": 1,
    "cv_url": 1,
}

# Unrecognized pipeline stage / search not enabled on this deployment
SEARCH_UNAVAILABLE_CODES = {40324, 31082}


class MongoVectorStore:

    def __init__(self, collection, settings: VectorStoreSettings):
        self.collection = collection
        self.settings = settings

    @property
    def collection_name(self) -> str:
        return self.settings.collection

    def _translate(self, exc: PyMongoError, operation: str) -> Exception:
        message = str(exc)
        lowered = message.lower()

        if isinstance(exc, OperationFailure) and (
            exc.code in SEARCH_UNAVAILABLE_CODES
            or "$vectorsearch" in lowered
            or ("index" in lowered and "not found" in lowered)
        ):
            return ConfigurationError(
                f"Vector search function not available on collection '{self.collection_name}' "
                f"(index '{self.settings.index_name}'): {message}",
                config_key="VECTOR_INDEX_NAME",
                config_value=self.settings.index_name,
                cause=exc,
            )

        retriable = isinstance(exc, (ConnectionFailure, ExecutionTimeout))
        return StoreError(
            f"Vector store {operation} failed: {message}",
            operation=operation,
            collection=self.collection_name,
            retriable=retriable,
            cause=exc,
        )

    async def search(self, query: Sequence[float], threshold: float, limit: int) -> List[ScoredCandidate]:
        """Candidates with similarity strictly above `threshold`, best first, at most `limit`."""
        if limit <= 0:
            return []

        try:
            if self.settings.search_mode == SearchMode.ATLAS:
                scored = await self._search_atlas(query, limit)
            else:
                scored = await self._search_exact(query)
        except PyMongoError as e:
            logger.error(f"Similarity search failed on {self.collection_name}: {e}")
            raise self._translate(e, "search") from e

        # sort is stable: equal scores keep store order
        matches = [c for c in scored if c.similarity is not None and c.similarity > threshold]
        matches.sort(key=lambda c: c.similarity, reverse=True)
        matches = matches[:limit]

        logger.debug(
            f"Similarity search (mode={self.settings.search_mode.value}, threshold={threshold}, "
            f"limit={limit}) returned {len(matches)} of {len(scored)} scored candidates"
        )
        return matches

    async def _search_atlas(self, query: Sequence[float], limit: int) -> List[ScoredCandidate]:
        pipeline = [
            {
                "$vectorSearch": {
                    "index": self.settings.index_name,
                    "path": "embedding",
                    "queryVector": list(query),
                    "numCandidates": max(limit * 20, 100),
                    "limit": limit,
                }
            },
            {"$project": {**CANDIDATE_FIELDS, "score": {"$meta": "vectorSearchScore"}}},
        ]
        docs = await self.collection.aggregate(pipeline).to_list(length=limit)

        if not docs:
            # Atlas answers an unknown index with an empty result
            await self._ensure_index()

        return [
            ScoredCandidate(
                record=CandidateRecord.from_document(doc),
                similarity=2.0 * float(doc["score"]) - 1.0 if doc.get("score") is not None else None,
            )
            for doc in docs
        ]

    async def _ensure_index(self) -> None:
        indexes = await self.collection.list_search_indexes(self.settings.index_name).to_list(length=None)
        if not indexes:
            raise ConfigurationError(
                f"Vector search index '{self.settings.index_name}' not found on collection "
                f"'{self.collection_name}'. Create it before searching",
                config_key="VECTOR_INDEX_NAME",
                config_value=self.settings.index_name,
            )

    async def _search_exact(self, query: Sequence[float]) -> List[ScoredCandidate]:
        cursor = self.collection.find(EMBEDDED, {**CANDIDATE_FIELDS, "embedding": 1}).sort("_id", 1)
        docs = await cursor.to_list(length=None)

        scored = []
        for doc in docs:
            try:
                similarity = cosine_similarity(query, doc["embedding"])
            except ValueError as e:
                raise ConfigurationError(
                    f"Stored embedding for candidate {doc.get('candidate_id')} does not match "
                    f"the query embedding: {e}",
                    config_key="EMBEDDING_MODEL",
                    cause=e,
                ) from e
            record = CandidateRecord.from_document({k: v for k, v in doc.items() if k != "embedding"})
            scored.append(ScoredCandidate(record=record, similarity=similarity))
        return scored

    async def count_embedded(self) -> int:
        try:
            return await self.collection.count_documents(EMBEDDED)
        except PyMongoError as e:
            raise self._translate(e, "count") from e

    async def iter_candidates(self, only_missing: bool = True) -> AsyncIterator[CandidateRecord]:
        query = MISSING_EMBEDDING if only_missing else {}
        try:
            async for doc in self.collection.find(query, CANDIDATE_FIELDS).sort("_id", 1):
                yield CandidateRecord.from_document(doc)
        except PyMongoError as e:
            raise self._translate(e, "scan") from e

    async def set_embedding(self, candidate_id: str, vector: Sequence[float]) -> bool:
        try:
            result = await self.collection.update_one(
                {"candidate_id": candidate_id},
                {"$set": {"embedding": [float(x) for x in vector]}},
            )
        except PyMongoError as e:
            raise self._translate(e, "update") from e
        return result.matched_count > 0


def build_store(settings: VectorStoreSettings) -> MongoVectorStore:
    from candidate_search.services.db import candidates_coll
    return MongoVectorStore(candidates_coll, settings)
