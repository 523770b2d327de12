"""
Module containing configuration models for the ingestion pipelines.
"""

from typing import Optional
from pydantic import BaseModel, Field, field_validator, model_validator


class StoreSettings(BaseModel):
    """
    Connection settings for the relational + vector store.

    Attributes:
        backend: "postgres" for a direct psycopg2 connection, "supabase" for PostgREST.
        batch_size: Rows per embedding upsert request.
    """
    backend: str = Field(
        "postgres",
        description="Store backend: 'postgres' or 'supabase'"
    )
    postgres_host: Optional[str] = None
    postgres_port: int = 5432
    postgres_db: Optional[str] = None
    postgres_user: Optional[str] = None
    postgres_password: Optional[str] = None
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    batch_size: int = Field(
        50,
        ge=1,
        description="Rows per embedding upsert request"
    )

    @model_validator(mode="after")
    def credentials_present(self) -> "StoreSettings":
        if self.backend == "postgres":
            required = {
                "POSTGRES_HOST": self.postgres_host,
                "POSTGRES_DB": self.postgres_db,
                "POSTGRES_USER": self.postgres_user,
                "POSTGRES_PASSWORD": self.postgres_password,
            }
        elif self.backend == "supabase":
            required = {
                "SUPABASE_URL": self.supabase_url,
                "SUPABASE_ANON_KEY": self.supabase_key,
            }
        else:
            raise ValueError(f"Unknown store backend '{self.backend}'")
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise ValueError(f"Missing store settings: {', '.join(missing)}")
        return self

    @property
    def dsn(self) -> str:
        """libpq connection string for the postgres backend."""
        return (
            f"dbname={self.postgres_db} user={self.postgres_user} "
            f"password={self.postgres_password} host={self.postgres_host} "
            f"port={self.postgres_port}"
        )


class EmbeddingSettings(BaseModel):
    """
    Settings for the external embedding service and its rate ceiling.

    Attributes:
        provider: "voyage" or "openai".
        batch_size: Texts sent per embedding request.
        batch_delay: Seconds to wait between embedding requests.
    """
    provider: str = Field("voyage", description="Embedding provider")
    api_key: Optional[str] = None
    model: Optional[str] = None
    dimension: int = Field(1024, ge=1)
    batch_size: int = Field(100, ge=1)
    batch_delay: float = Field(60.0, ge=0)

    @model_validator(mode="after")
    def known_provider(self) -> "EmbeddingSettings":
        if self.provider not in ("voyage", "openai"):
            raise ValueError(f"Unknown embedding provider '{self.provider}'")
        if self.model is None:
            self.model = "voyage-2" if self.provider == "voyage" else "text-embedding-3-small"
        return self

    @property
    def api_key_variable(self) -> str:
        return "VOYAGE_API_KEY" if self.provider == "voyage" else "OPENAI_API_KEY"


class PipelineSettings(BaseModel):
    """
    Top-level settings for one ingestion run.
    """
    store: StoreSettings
    embedding: EmbeddingSettings
    deepl_api_key: Optional[str] = Field(
        None,
        description="Translation credential; without it only the fallback dictionary is used"
    )
    company_target_count: int = Field(500, ge=1)
    embeddings_enabled: bool = True
    investors_file: str = "investors.json"
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def known_log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level '{value}'")
        return value
