"""
Module containing the data models passed between ingestion stages.
"""
from typing import Any, Dict, Iterator, List, Tuple
from pydantic import BaseModel, Field, field_validator, model_validator

EmbeddingVector = List[float]


class NormalizedEntity(BaseModel):
    """
    Represents an entity ready for text normalization and storage.

    The natural key is the upsert conflict key, so it must be stable across runs.
    """
    natural_key: str = Field(..., description="Business or investor identifier")
    display_name: str = Field("", description="Entity name")
    attributes: Dict[str, Any] = Field(
        default_factory=dict,
        description="Opaque detail document stored verbatim"
    )

    @field_validator("natural_key")
    @classmethod
    def natural_key_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("natural_key must be a non-empty string")
        return value


class ClassificationEntry(BaseModel):
    """
    Represents one industry classification code and its best available label.
    """
    code: str
    label: str = ""
    is_source_language: bool = Field(
        False,
        description="True when no target-language label exists"
    )


class EmbeddedEntities(BaseModel):
    """
    Entities paired positionally with their embedding vectors.

    Index i of ``vectors`` was computed from index i of ``entities``.
    """
    entities: List[NormalizedEntity]
    vectors: List[EmbeddingVector]

    @model_validator(mode="after")
    def lengths_match(self) -> "EmbeddedEntities":
        if len(self.entities) != len(self.vectors):
            raise ValueError(
                f"Got {len(self.entities)} entities but {len(self.vectors)} vectors"
            )
        return self

    def pairs(self) -> Iterator[Tuple[NormalizedEntity, EmbeddingVector]]:
        """Yield (entity, vector) pairs in input order."""
        return zip(self.entities, self.vectors)

    def __len__(self) -> int:
        return len(self.entities)
