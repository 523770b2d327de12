"""
Pipeline orchestration: fetch -> text -> vectorize -> store.

Stages run strictly one after another. Any ``IngestionError`` raised by a
stage ends the run; nothing is retried.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from entities.config_models import PipelineSettings
from ingestion.classifications import ClassificationCache
from ingestion.registry_source import RegistrySource
from ingestion.roster_source import RosterSource
from ingestion.store import COMPANY_TABLES, INVESTOR_TABLES, StoreWriter, TableSpec, create_store
from ingestion.text import company_text, investor_text
from ingestion.translation import Translator
from ingestion.vectorizer import BatchVectorizer, create_vectorizer

logger = logging.getLogger(__name__)


@dataclass
class PipelineSummary:
    pipeline: str
    entities_processed: int = 0
    vectors_generated: int = 0
    embeddings_stored: int = 0
    dimension: Optional[int] = None
    embeddings_enabled: bool = True

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


_classification_cache: Optional[ClassificationCache] = None


def get_classification_cache() -> ClassificationCache:
    """
    The process-wide classification table.

    Every company run in this process, including repeated runs from the admin
    service, shares it, so the table is fetched at most once.
    """
    global _classification_cache
    if _classification_cache is None:
        _classification_cache = ClassificationCache()
    return _classification_cache


def build_registry_source(settings: PipelineSettings) -> RegistrySource:
    return RegistrySource(
        classifications=get_classification_cache(),
        translator=Translator(api_key=settings.deepl_api_key),
    )


def build_writer(settings: PipelineSettings, tables: TableSpec) -> StoreWriter:
    return StoreWriter(create_store(settings.store), tables, batch_size=settings.store.batch_size)


def log_summary(summary: PipelineSummary) -> None:
    logger.info("Pipeline '%s' completed successfully", summary.pipeline)
    logger.info("  - Entities processed: %d", summary.entities_processed)
    logger.info("  - Vectors generated: %d", summary.vectors_generated)
    logger.info("  - Dimension: %s", summary.dimension or "N/A")


def run_company_pipeline(
    settings: PipelineSettings,
    source: Optional[RegistrySource] = None,
    vectorizer: Optional[BatchVectorizer] = None,
    writer: Optional[StoreWriter] = None,
    target_count: Optional[int] = None,
    embeddings_enabled: Optional[bool] = None,
) -> PipelineSummary:
    """
    Ingest recently registered companies.

    With embeddings disabled only the company rows are written.
    """
    if embeddings_enabled is None:
        embeddings_enabled = settings.embeddings_enabled
    target_count = target_count or settings.company_target_count
    source = source or build_registry_source(settings)
    writer = writer or build_writer(settings, COMPANY_TABLES)
    summary = PipelineSummary("company", embeddings_enabled=embeddings_enabled)

    logger.info("Starting company pipeline (target %d companies)", target_count)
    companies = source.fetch(target_count)
    summary.entities_processed = len(companies)
    if not companies:
        logger.warning("No companies loaded, nothing to store")
        return summary

    if not embeddings_enabled:
        logger.info("Embeddings disabled; storing company rows only")
        writer.store_entities(companies)
        log_summary(summary)
        return summary

    vectorizer = vectorizer or create_vectorizer(settings.embedding)
    texts = [company_text(company) for company in companies]
    vectors = vectorizer.vectorize(texts)
    summary.vectors_generated = len(vectors)
    summary.dimension = len(vectors[0]) if vectors else None

    summary.embeddings_stored = writer.store(companies, vectors)
    log_summary(summary)
    return summary


def run_investor_pipeline(
    settings: PipelineSettings,
    source: Optional[RosterSource] = None,
    vectorizer: Optional[BatchVectorizer] = None,
    writer: Optional[StoreWriter] = None,
) -> PipelineSummary:
    """Ingest the investor roster; investors are always embedded."""
    source = source or RosterSource(settings.investors_file)
    writer = writer or build_writer(settings, INVESTOR_TABLES)
    summary = PipelineSummary("investor")

    logger.info("Starting investor pipeline")
    investors = source.fetch()
    summary.entities_processed = len(investors)
    if not investors:
        logger.warning("No investors found in %s, nothing to store", source.path)
        return summary

    vectorizer = vectorizer or create_vectorizer(settings.embedding)
    vectors = vectorizer.vectorize([investor_text(investor) for investor in investors])
    summary.vectors_generated = len(vectors)
    summary.dimension = len(vectors[0]) if vectors else None

    summary.embeddings_stored = writer.store(investors, vectors)
    log_summary(summary)
    return summary


PIPELINES = {
    "company": run_company_pipeline,
    "investor": run_investor_pipeline,
}
