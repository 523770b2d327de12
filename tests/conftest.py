"""
Shared fixtures: an in-memory upsert store, HTTP response stubs and sample records.
"""

from collections import defaultdict
from typing import Any, Dict, List
from unittest.mock import MagicMock

import pytest

from ingestion.settings import load_settings
from ingestion.store import UpsertStore

ENV_VARIABLES = (
    "STORE_BACKEND", "POSTGRES_HOST", "POSTGRES_PORT", "POSTGRES_DB", "POSTGRES_USER",
    "POSTGRES_PASSWORD", "SUPABASE_URL", "SUPABASE_ANON_KEY", "EMBEDDING_PROVIDER",
    "VOYAGE_API_KEY", "OPENAI_API_KEY", "EMBEDDING_MODEL", "EMBEDDING_DIMENSION",
    "EMBEDDING_BATCH_SIZE", "EMBEDDING_BATCH_DELAY", "DEEPL_API_KEY", "BATCH_SIZE",
    "COMPANY_TARGET_COUNT", "EMBEDDINGS_ENABLED", "INVESTORS_FILE", "LOG_LEVEL",
)

BASE_ENV = {
    "POSTGRES_HOST": "localhost",
    "POSTGRES_DB": "entities",
    "POSTGRES_USER": "ingest",
    "POSTGRES_PASSWORD": "secret",
    "VOYAGE_API_KEY": "pa-test-key",
}


class InMemoryStore(UpsertStore):
    """
    Upsert store with surrogate ids, recording every call as (operation, table, row count).
    """

    def __init__(self):
        self.tables: Dict[str, Dict[Any, Dict[str, Any]]] = defaultdict(dict)
        self.next_ids: Dict[str, int] = defaultdict(int)
        self.calls: List[tuple] = []

    def upsert(self, table, rows, conflict_key, returning=()):
        self.calls.append(("upsert", table, len(rows)))
        result = []
        for row in rows:
            existing = self.tables[table].get(row[conflict_key])
            if existing is None:
                self.next_ids[table] += 1
                existing = {"id": self.next_ids[table]}
                self.tables[table][row[conflict_key]] = existing
            existing.update(row)
            result.append({column: existing[column] for column in returning})
        return result

    def select_in(self, table, columns, column, values):
        self.calls.append(("select", table, len(values)))
        wanted = set(values)
        return [
            {c: row[c] for c in columns}
            for row in self.tables[table].values()
            if row.get(column) in wanted
        ]


def json_response(payload: Any) -> MagicMock:
    """A ``requests.Response`` stand-in returning ``payload`` from ``json()``."""
    response = MagicMock()
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


def make_company(
    business_id: str = "3100000-1",
    registration_date: str = "2021-05-04",
    industry_code: str = "62010",
    name: str = "Testi Oy",
) -> Dict[str, Any]:
    """A company record shaped like the PRH v3 listing."""
    company = {
        "businessId": {"value": business_id, "registrationDate": registration_date, "source": "3"},
        "names": [{"name": name, "type": "1", "registrationDate": registration_date, "version": 1}],
        "addresses": [{
            "type": 1,
            "street": "Mannerheimintie",
            "buildingNumber": "10",
            "postCode": "00100",
            "postOffices": [
                {"city": "HELSINKI", "languageCode": "1"},
                {"city": "Helsinki", "languageCode": "3"},
            ],
        }],
    }
    if industry_code:
        company["mainBusinessLine"] = {
            "type": industry_code,
            "descriptions": [
                {"languageCode": "1", "description": "Ohjelmistojen suunnittelu ja valmistus"},
                {"languageCode": "3", "description": "Computer programming"},
            ],
        }
    return company


class FakeEmbeddingClient:
    """Returns vectors filled with the text's position across all calls."""

    def __init__(self, dimension: int = 1024):
        self.dimension = dimension
        self.batches: List[List[str]] = []
        self.seen = 0

    def embed(self, texts):
        self.batches.append(list(texts))
        vectors = []
        for _ in texts:
            vectors.append([float(self.seen)] * self.dimension)
            self.seen += 1
        return vectors


@pytest.fixture
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARIABLES:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def settings():
    return load_settings(environ=dict(BASE_ENV))
