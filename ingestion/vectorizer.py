"""
Embedding generation under a fixed requests-per-minute ceiling.

Texts are sent in fixed-size chunks with a fixed pause between chunks. The
embedding services return vectors in input order without a correlation key, so
the vectorizer only accepts a response that has exactly one vector per text.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

import numpy as np
import requests
from openai import OpenAI, OpenAIError

from entities.config_models import EmbeddingSettings
from entities.entity_models import EmbeddingVector
from ingestion.errors import VectorizationError

logger = logging.getLogger(__name__)

VOYAGE_URL = "https://api.voyageai.com/v1/embeddings"


# =====================
# Embedding clients
# =====================

class EmbeddingClient(ABC):
    """One request to an embedding service."""

    @abstractmethod
    def embed(self, texts: List[str]) -> List[EmbeddingVector]:
        """Return one vector per text, in input order."""


class VoyageEmbeddingClient(EmbeddingClient):
    """Voyage AI embeddings over plain HTTP."""

    def __init__(
        self,
        api_key: str,
        model: str = "voyage-2",
        session: Optional[requests.Session] = None,
        url: str = VOYAGE_URL,
        timeout: float = 120,
    ):
        self.api_key = api_key
        self.model = model
        self.session = session or requests.Session()
        self.url = url
        self.timeout = timeout

    def embed(self, texts: List[str]) -> List[EmbeddingVector]:
        try:
            response = self.session.post(
                self.url,
                json={"input": texts, "model": self.model},
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self.api_key}",
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()["data"]
            return [item["embedding"] for item in data]
        except requests.HTTPError as exc:
            body = exc.response.text if exc.response is not None else ""
            raise VectorizationError(f"Voyage request failed: {exc} {body}".strip()) from exc
        except (requests.RequestException, ValueError, KeyError, TypeError) as exc:
            raise VectorizationError(f"Voyage request failed: {exc}") from exc


class OpenAIEmbeddingClient(EmbeddingClient):
    """
    OpenAI embeddings, shortened to the configured dimension.
    """

    def __init__(self, api_key: str, model: str = "text-embedding-3-small", dimension: int = 1024):
        self.api_key = api_key
        self.model = model
        self.dimension = dimension
        self._client: Optional[OpenAI] = None

    def get_client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(api_key=self.api_key)
            logger.info("Initialized OpenAI client with API key: %s...", self.api_key[:5])
        return self._client

    def embed(self, texts: List[str]) -> List[EmbeddingVector]:
        try:
            response = self.get_client().embeddings.create(
                model=self.model,
                input=texts,
                dimensions=self.dimension,
                encoding_format="float",
            )
        except OpenAIError as exc:
            raise VectorizationError(f"OpenAI embedding request failed: {exc}") from exc
        return [item.embedding for item in response.data]


def create_embedding_client(settings: EmbeddingSettings) -> EmbeddingClient:
    if settings.provider == "openai":
        return OpenAIEmbeddingClient(settings.api_key, settings.model, settings.dimension)
    return VoyageEmbeddingClient(settings.api_key, settings.model)


# =====================
# Batch vectorizer
# =====================

@dataclass
class RateLimitPolicy:
    """
    Pre-emptive pacing for the embedding service.

    Attributes:
        batch_size: Texts per request.
        delay: Seconds to wait between two requests (not after the last one).
    """
    batch_size: int = 100
    delay: float = 60.0


class BatchVectorizer:
    """
    Turns texts into vectors, one request per chunk of ``policy.batch_size``.

    The call is all-or-nothing: any failing chunk raises ``VectorizationError``
    and no vectors are returned.
    """

    def __init__(
        self,
        client: EmbeddingClient,
        policy: Optional[RateLimitPolicy] = None,
        dimension: int = 1024,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.policy = policy or RateLimitPolicy()
        self.dimension = dimension
        self.sleep = sleep

    def vectorize(self, texts: Sequence[str]) -> List[EmbeddingVector]:
        texts = list(texts)
        batch_size = self.policy.batch_size
        total_batches = (len(texts) + batch_size - 1) // batch_size
        logger.info("Vectorizing %d texts in %d batches", len(texts), total_batches)

        vectors: List[EmbeddingVector] = []
        for batch_number, start in enumerate(range(0, len(texts), batch_size), start=1):
            batch = texts[start:start + batch_size]
            logger.info("Batch %d/%d: vectorizing %d texts", batch_number, total_batches, len(batch))
            try:
                batch_vectors = self.client.embed(batch)
            except VectorizationError:
                logger.error("Embedding batch %d/%d failed", batch_number, total_batches)
                raise
            vectors.extend(self._checked(batch_vectors, len(batch), batch_number))
            logger.info("Batch %d/%d: generated %d vectors", batch_number, total_batches, len(batch_vectors))

            if start + batch_size < len(texts):
                logger.info("Waiting %s seconds for rate limit", self.policy.delay)
                self.sleep(self.policy.delay)

        logger.info("Generated %d vectors total", len(vectors))
        return vectors

    def _checked(self, batch_vectors, expected: int, batch_number: int) -> List[EmbeddingVector]:
        if len(batch_vectors) != expected:
            raise VectorizationError(
                f"Batch {batch_number}: expected {expected} vectors, got {len(batch_vectors)}"
            )
        checked = []
        for vector in batch_vectors:
            array = np.asarray(vector, dtype=np.float32)
            if array.shape != (self.dimension,):
                raise VectorizationError(
                    f"Batch {batch_number}: expected vectors of dimension {self.dimension}, "
                    f"got shape {array.shape}"
                )
            checked.append(array.tolist())
        return checked


def create_vectorizer(settings: EmbeddingSettings) -> BatchVectorizer:
    return BatchVectorizer(
        create_embedding_client(settings),
        RateLimitPolicy(batch_size=settings.batch_size, delay=settings.batch_delay),
        dimension=settings.dimension,
    )
