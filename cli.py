"""
Command-line entry point.

    entity-ingest                 run the company pipeline (default)
    entity-ingest company         run the company pipeline
    entity-ingest investor        run the investor pipeline
    entity-ingest init-db         create the Postgres tables
"""

import argparse
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv

from ingestion.errors import ConfigurationError, IngestionError
from ingestion.pipelines import run_company_pipeline, run_investor_pipeline
from ingestion.settings import load_settings, require_embedding_key
from ingestion.store import PostgresStore

logger = logging.getLogger("entity_ingest")

COMMANDS = ("company", "investor", "init-db")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="entity-ingest",
        description="Ingest companies or investors and store their embeddings.",
    )
    parser.add_argument("pipeline", nargs="?", default="company", help=" | ".join(COMMANDS))
    parser.add_argument("--target-count", type=int, default=None, help="companies to fetch")
    parser.add_argument(
        "--no-embeddings",
        action="store_true",
        help="store company rows without vectorizing them",
    )
    return parser


def run(pipeline: str, target_count: Optional[int], no_embeddings: bool) -> None:
    settings = load_settings(needs_embeddings=False)
    logging.getLogger().setLevel(settings.log_level)

    if pipeline == "init-db":
        if settings.store.backend != "postgres":
            raise ConfigurationError("init-db requires STORE_BACKEND=postgres")
        PostgresStore(settings.store.dsn).create_schema(dimension=settings.embedding.dimension)
        return

    if pipeline == "investor":
        require_embedding_key(settings)
        run_investor_pipeline(settings)
        return

    embeddings_enabled = settings.embeddings_enabled and not no_embeddings
    if embeddings_enabled:
        require_embedding_key(settings)
    run_company_pipeline(settings, target_count=target_count, embeddings_enabled=embeddings_enabled)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    pipeline = args.pipeline.lower()
    if pipeline not in COMMANDS:
        parser.print_usage(sys.stderr)
        print(f"Invalid argument: '{args.pipeline}'", file=sys.stderr)
        return 1

    load_dotenv()
    logging.basicConfig(level=logging.INFO)
    try:
        run(pipeline, args.target_count, args.no_embeddings)
    except IngestionError as exc:
        logger.error("Pipeline failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
