"""
Embedding backfill: compute and store embeddings for candidate profiles.

Usage:
    python -m candidate_search.services.backfill          # only candidates without an embedding
    python -m candidate_search.services.backfill --all    # re-embed every candidate
"""
import argparse
import asyncio
import sys

from pydantic import BaseModel

from candidate_search.services.embeddings import EmbeddingClient
from candidate_search.services.vector_store import MongoVectorStore
from candidate_search.utils.exceptions import ConfigurationError, EmbeddingServiceError, StoreError
from candidate_search.utils.logging_config import get_logger, log_function_call

logger = get_logger(__name__)


class BackfillReport(BaseModel):
    processed: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0


@log_function_call
async def embed_candidates(
    store: MongoVectorStore,
    embedder: EmbeddingClient,
    only_missing: bool = True,
) -> BackfillReport:
    """Embed each candidate's cv_info and store the vector.

    A failure on one candidate is logged and counted; the job moves on.
    ConfigurationError aborts the run since every later call would fail too.
    """
    report = BackfillReport()
    logger.info(f"Fetching candidates ({'missing embeddings only' if only_missing else 'all'})...")

    async for candidate in store.iter_candidates(only_missing=only_missing):
        report.processed += 1

        if not candidate.cv_info or not candidate.cv_info.strip():
            logger.warning(f"Skipping candidate {candidate.candidate_id} - no cv_info")
            report.skipped += 1
            continue

        try:
            logger.info(f"Processing candidate {candidate.candidate_id}...")
            vector = await embedder.embed(candidate.cv_info)
            if await store.set_embedding(candidate.candidate_id, vector):
                report.updated += 1
                logger.info(f"Updated candidate {candidate.candidate_id}")
            else:
                report.failed += 1
                logger.error(f"Candidate {candidate.candidate_id} disappeared before update")
        except (EmbeddingServiceError, StoreError) as e:
            report.failed += 1
            logger.error(f"Error processing candidate {candidate.candidate_id}: {e.message}")

    if report.processed == 0:
        logger.info("No candidates found in database.")
    logger.info(
        f"Embedding backfill finished: {report.updated} updated, "
        f"{report.skipped} skipped, {report.failed} failed"
    )
    return report


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Populate candidate embeddings")
    parser.add_argument("--all", action="store_true", help="re-embed candidates that already have an embedding")
    args = parser.parse_args(argv)

    from candidate_search.models.settings import load_settings
    from candidate_search.services.vector_store import build_store
    from candidate_search.utils.logging_config import configure_for_environment

    configure_for_environment()
    try:
        settings = load_settings()
        store = build_store(settings.store)
        embedder = EmbeddingClient(settings.embedding)
        report = asyncio.run(embed_candidates(store, embedder, only_missing=not args.all))
    except ConfigurationError as e:
        logger.error(f"Fatal error: {e.message}")
        return 1
    except StoreError as e:
        logger.error(f"Fatal error: {e.message}")
        return 1

    return 0 if report.failed == 0 else 2


if __name__ == "__main__":
    sys.exit(main())
