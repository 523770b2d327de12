"""
Environment-driven configuration.

Values come from the process environment, with a ``.env`` file in the working
directory loaded first. ``load_settings`` fails fast with ``ConfigurationError``
so that no network call is made with an incomplete configuration.
"""

import os
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from entities.config_models import EmbeddingSettings, PipelineSettings, StoreSettings
from ingestion.errors import ConfigurationError


def _bool_env(env: Mapping[str, str], name: str, default: str = "1") -> bool:
    value = env.get(name, default).strip().lower()
    return value not in {"0", "false", "no", "off"}


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got '{raw}'") from exc


def _float_env(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got '{raw}'") from exc


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    needs_embeddings: bool = True,
) -> PipelineSettings:
    """
    Build and validate pipeline settings.

    Args:
        environ: Mapping to read from. Defaults to ``os.environ`` after loading ``.env``.
        needs_embeddings: Whether the run will call the embedding service, which makes
            its credential mandatory.

    Raises:
        ConfigurationError: If a required value is missing or malformed.
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    provider = environ.get("EMBEDDING_PROVIDER", "voyage").strip().lower()
    key_variable = "OPENAI_API_KEY" if provider == "openai" else "VOYAGE_API_KEY"

    try:
        store = StoreSettings(
            backend=environ.get("STORE_BACKEND", "postgres").strip().lower(),
            postgres_host=environ.get("POSTGRES_HOST"),
            postgres_port=_int_env(environ, "POSTGRES_PORT", 5432),
            postgres_db=environ.get("POSTGRES_DB"),
            postgres_user=environ.get("POSTGRES_USER"),
            postgres_password=environ.get("POSTGRES_PASSWORD"),
            supabase_url=environ.get("SUPABASE_URL"),
            supabase_key=environ.get("SUPABASE_ANON_KEY"),
            batch_size=_int_env(environ, "BATCH_SIZE", 50),
        )
        embedding = EmbeddingSettings(
            provider=provider,
            api_key=environ.get(key_variable),
            model=environ.get("EMBEDDING_MODEL") or None,
            dimension=_int_env(environ, "EMBEDDING_DIMENSION", 1024),
            batch_size=_int_env(environ, "EMBEDDING_BATCH_SIZE", 100),
            batch_delay=_float_env(environ, "EMBEDDING_BATCH_DELAY", 60.0),
        )
        settings = PipelineSettings(
            store=store,
            embedding=embedding,
            deepl_api_key=environ.get("DEEPL_API_KEY") or None,
            company_target_count=_int_env(environ, "COMPANY_TARGET_COUNT", 500),
            embeddings_enabled=_bool_env(environ, "EMBEDDINGS_ENABLED", "true"),
            investors_file=environ.get("INVESTORS_FILE", "investors.json"),
            log_level=environ.get("LOG_LEVEL", "INFO").upper(),
        )
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc

    if needs_embeddings:
        require_embedding_key(settings)
    return settings


def require_embedding_key(settings: PipelineSettings) -> None:
    """Raise ``ConfigurationError`` if the embedding credential is absent."""
    if not settings.embedding.api_key:
        raise ConfigurationError(
            f"{settings.embedding.api_key_variable} environment variable is not set"
        )
