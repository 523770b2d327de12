"""
Persistence of entities and their embeddings.

Two store backends share the same two operations, ``upsert`` and
``select_in``: ``PostgresStore`` talks to Postgres + pgvector through psycopg2,
``RestStore`` talks to a Supabase (PostgREST) endpoint over HTTP.
``StoreWriter`` runs the write protocol on top of either of them:

1. upsert entity rows on their natural key,
2. read the surrogate ids back,
3. upsert embedding rows on the entity foreign key, in batches.
"""

import json
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np
import psycopg2
import requests
from psycopg2 import sql
from psycopg2.extras import Json, RealDictCursor, execute_values

from entities.config_models import StoreSettings
from entities.entity_models import EmbeddedEntities, EmbeddingVector, NormalizedEntity
from ingestion.errors import StoreError

logger = logging.getLogger(__name__)

EMBEDDING_COLUMN = "embeddings"
READ_BACK_CHUNK = 500


@dataclass(frozen=True)
class TableSpec:
    """
    Names of the entity table and its one-to-one embedding table.
    """
    entity_table: str
    key_column: str
    embedding_table: str
    foreign_key: str


COMPANY_TABLES = TableSpec("company", "business_id", "company_embeddings", "company_id")
INVESTOR_TABLES = TableSpec("investor", "investor_id", "investor_embeddings", "investor_id")
ALL_TABLES = (COMPANY_TABLES, INVESTOR_TABLES)


# =====================
# Store backends
# =====================

class UpsertStore(ABC):
    """Table-scoped insert-or-update and filtered select."""

    @abstractmethod
    def upsert(
        self,
        table: str,
        rows: List[Dict[str, Any]],
        conflict_key: str,
        returning: Sequence[str] = (),
    ) -> List[Dict[str, Any]]:
        """Insert rows, updating every other column on ``conflict_key`` collisions."""

    @abstractmethod
    def select_in(
        self,
        table: str,
        columns: Sequence[str],
        column: str,
        values: Sequence[Any],
    ) -> List[Dict[str, Any]]:
        """Return ``columns`` of the rows whose ``column`` is one of ``values``."""


class PostgresStore(UpsertStore):
    """
    Direct Postgres access. Columns named ``embeddings`` are written as pgvector values.
    """

    def __init__(self, dsn: str, vector_columns: Iterable[str] = (EMBEDDING_COLUMN,)):
        self.dsn = dsn
        self.vector_columns = set(vector_columns)

    @contextmanager
    def get_db(self):
        """
        Context manager for connecting to the database.
        """
        try:
            conn = psycopg2.connect(self.dsn)
        except psycopg2.Error as exc:
            raise StoreError(f"Could not connect to the database: {exc}") from exc
        try:
            yield conn
        finally:
            conn.close()

    def _adapt(self, column: str, value: Any) -> Any:
        if column in self.vector_columns and value is not None:
            return json.dumps(np.asarray(value, dtype=np.float32).tolist())
        if isinstance(value, (dict, list)):
            return Json(value)
        return value

    def upsert(self, table, rows, conflict_key, returning=()):
        if not rows:
            return []
        columns = list(rows[0].keys())
        values = [tuple(self._adapt(c, row.get(c)) for c in columns) for row in rows]
        template = "(" + ", ".join(
            "%s::vector" if c in self.vector_columns else "%s" for c in columns
        ) + ")"

        updates = [c for c in columns if c != conflict_key]
        if updates:
            action = sql.SQL("DO UPDATE SET {}").format(sql.SQL(", ").join(
                sql.SQL("{col} = EXCLUDED.{col}").format(col=sql.Identifier(c)) for c in updates
            ))
        else:
            action = sql.SQL("DO NOTHING")
        query = sql.SQL("INSERT INTO {table} ({columns}) VALUES %s ON CONFLICT ({key}) {action}").format(
            table=sql.Identifier(table),
            columns=sql.SQL(", ").join(map(sql.Identifier, columns)),
            key=sql.Identifier(conflict_key),
            action=action,
        )
        if returning:
            query = query + sql.SQL(" RETURNING {}").format(
                sql.SQL(", ").join(map(sql.Identifier, returning))
            )

        with self.get_db() as conn:
            try:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    result = execute_values(
                        cur, query, values, template=template, fetch=bool(returning)
                    )
                conn.commit()
            except psycopg2.Error as exc:
                conn.rollback()
                raise StoreError(f"Upsert into {table} failed: {exc}") from exc
        return [dict(row) for row in result] if returning else []

    def select_in(self, table, columns, column, values):
        query = sql.SQL("SELECT {columns} FROM {table} WHERE {column} = ANY(%s)").format(
            columns=sql.SQL(", ").join(map(sql.Identifier, columns)),
            table=sql.Identifier(table),
            column=sql.Identifier(column),
        )
        with self.get_db() as conn:
            try:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    cur.execute(query, (list(values),))
                    return [dict(row) for row in cur.fetchall()]
            except psycopg2.Error as exc:
                raise StoreError(f"Select from {table} failed: {exc}") from exc

    # Schema management

    def create_schema(self, dimension: int = 1024, tables: Sequence[TableSpec] = ALL_TABLES) -> None:
        """
        Creates the pgvector extension and the entity/embedding tables if missing.
        """
        statements = [sql.SQL("CREATE EXTENSION IF NOT EXISTS vector")]
        for spec in tables:
            statements.append(sql.SQL("""
                CREATE TABLE IF NOT EXISTS {entity} (
                    id SERIAL PRIMARY KEY,
                    {key} TEXT NOT NULL UNIQUE,
                    name TEXT,
                    details JSONB NOT NULL DEFAULT '{{}}'::jsonb,
                    created_at TIMESTAMP DEFAULT NOW()
                )
            """).format(entity=sql.Identifier(spec.entity_table), key=sql.Identifier(spec.key_column)))
            statements.append(sql.SQL("""
                CREATE TABLE IF NOT EXISTS {embedding} (
                    id SERIAL PRIMARY KEY,
                    {fk} INTEGER NOT NULL UNIQUE REFERENCES {entity} (id) ON DELETE CASCADE,
                    {column} VECTOR({dimension}),
                    created_at TIMESTAMP DEFAULT NOW()
                )
            """).format(
                embedding=sql.Identifier(spec.embedding_table),
                fk=sql.Identifier(spec.foreign_key),
                entity=sql.Identifier(spec.entity_table),
                column=sql.Identifier(EMBEDDING_COLUMN),
                dimension=sql.Literal(dimension),
            ))
            statements.append(sql.SQL(
                "CREATE INDEX IF NOT EXISTS {index} ON {embedding} USING ivfflat ({column} vector_cosine_ops)"
            ).format(
                index=sql.Identifier(f"idx_{spec.embedding_table}_vector"),
                embedding=sql.Identifier(spec.embedding_table),
                column=sql.Identifier(EMBEDDING_COLUMN),
            ))
        self._execute_all(statements)
        logger.info("Schema ready for tables: %s", ", ".join(s.entity_table for s in tables))

    def truncate(self, tables: Sequence[TableSpec] = ALL_TABLES) -> None:
        """Deletes all rows; embedding rows go with their entities."""
        self._execute_all([sql.SQL("TRUNCATE TABLE {} RESTART IDENTITY CASCADE").format(
            sql.SQL(", ").join(sql.Identifier(s.entity_table) for s in tables)
        )])

    def drop_schema(self, tables: Sequence[TableSpec] = ALL_TABLES) -> None:
        statements = []
        for spec in tables:
            statements.append(sql.SQL("DROP TABLE IF EXISTS {} CASCADE").format(sql.Identifier(spec.embedding_table)))
            statements.append(sql.SQL("DROP TABLE IF EXISTS {} CASCADE").format(sql.Identifier(spec.entity_table)))
        self._execute_all(statements)

    def _execute_all(self, statements) -> None:
        with self.get_db() as conn:
            try:
                with conn.cursor() as cur:
                    for statement in statements:
                        cur.execute(statement)
                conn.commit()
            except psycopg2.Error as exc:
                conn.rollback()
                raise StoreError(f"Schema statement failed: {exc}") from exc


class RestStore(UpsertStore):
    """
    Supabase / PostgREST access over HTTP.
    """

    def __init__(self, url: str, api_key: str, session: Optional[requests.Session] = None, timeout: float = 60):
        self.base_url = url.rstrip("/") + "/rest/v1"
        self.session = session or requests.Session()
        self.timeout = timeout
        self.headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    def upsert(self, table, rows, conflict_key, returning=()):
        if not rows:
            return []
        params = {"on_conflict": conflict_key}
        prefer = "resolution=merge-duplicates"
        if returning:
            params["select"] = ",".join(returning)
            prefer += ",return=representation"
        else:
            prefer += ",return=minimal"
        try:
            response = self.session.post(
                f"{self.base_url}/{table}",
                params=params,
                json=rows,
                headers={**self.headers, "Prefer": prefer},
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json() if returning else []
        except (requests.RequestException, ValueError) as exc:
            raise StoreError(f"Upsert into {table} failed: {exc}") from exc

    def select_in(self, table, columns, column, values):
        quoted = ",".join('"{}"'.format(str(v).replace('"', '\\"')) for v in values)
        try:
            response = self.session.get(
                f"{self.base_url}/{table}",
                params={"select": ",".join(columns), column: f"in.({quoted})"},
                headers=self.headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as exc:
            raise StoreError(f"Select from {table} failed: {exc}") from exc


def create_store(settings: StoreSettings) -> UpsertStore:
    if settings.backend == "supabase":
        return RestStore(settings.supabase_url, settings.supabase_key)
    return PostgresStore(settings.dsn)


# =====================
# Writer
# =====================

def _dedupe(entities: Sequence[NormalizedEntity], vectors: Optional[Sequence[EmbeddingVector]] = None):
    """Keep the last occurrence of each natural key; survivors are ordered by that last position."""
    latest: Dict[str, int] = {}
    for index, entity in enumerate(entities):
        latest[entity.natural_key] = index
    if len(latest) < len(entities):
        logger.warning("Dropping %d duplicate natural keys", len(entities) - len(latest))
    indexes = sorted(latest.values())
    kept_entities = [entities[i] for i in indexes]
    kept_vectors = [vectors[i] for i in indexes] if vectors is not None else None
    return kept_entities, kept_vectors


class StoreWriter:
    """
    Writes entities and their embeddings for one pair of tables.

    Args:
        store: Backend used for every request.
        tables: Entity and embedding table names.
        batch_size: Embedding rows per upsert request.
    """

    def __init__(self, store: UpsertStore, tables: TableSpec, batch_size: int = 50):
        self.backend = store
        self.tables = tables
        self.batch_size = batch_size

    def entity_row(self, entity: NormalizedEntity) -> Dict[str, Any]:
        return {
            self.tables.key_column: entity.natural_key,
            "name": entity.display_name,
            "details": entity.attributes,
        }

    def resolve_ids(self, keys: Sequence[str]) -> Dict[str, Any]:
        """Read back surrogate ids for natural keys."""
        key_column = self.tables.key_column
        ids: Dict[str, Any] = {}
        for start in range(0, len(keys), READ_BACK_CHUNK):
            records = self.backend.select_in(
                self.tables.entity_table,
                ["id", key_column],
                key_column,
                list(keys[start:start + READ_BACK_CHUNK]),
            )
            for record in records:
                ids[record[key_column]] = record["id"]
        return ids

    def store_entities(self, entities: Sequence[NormalizedEntity]) -> Dict[str, Any]:
        """
        Upsert entity rows and return natural key -> surrogate id.

        The upsert response is only used for logging; ids always come from a
        separate read-back.
        """
        entities, _ = _dedupe(entities)
        if not entities:
            return {}
        logger.info("Upserting %d rows into '%s'", len(entities), self.tables.entity_table)
        inserted = self.backend.upsert(
            self.tables.entity_table,
            [self.entity_row(entity) for entity in entities],
            conflict_key=self.tables.key_column,
            returning=("id", self.tables.key_column),
        )
        logger.info("Upserted %d rows", len(inserted) or len(entities))
        return self.resolve_ids([entity.natural_key for entity in entities])

    def store_embedded(self, batch: EmbeddedEntities) -> int:
        """
        Persist a paired batch. Returns the number of embedding rows written.
        """
        entities, vectors = _dedupe(batch.entities, batch.vectors)
        ids = self.store_entities(entities)

        rows = []
        for entity, vector in zip(entities, vectors):
            surrogate_id = ids.get(entity.natural_key)
            if surrogate_id is None:
                continue
            rows.append({self.tables.foreign_key: surrogate_id, EMBEDDING_COLUMN: vector})
        if len(rows) < len(entities):
            logger.warning(
                "%d entities had no id after read-back; their embeddings were skipped",
                len(entities) - len(rows),
            )

        logger.info("Upserting %d rows into '%s'", len(rows), self.tables.embedding_table)
        for batch_number, start in enumerate(range(0, len(rows), self.batch_size), start=1):
            chunk = rows[start:start + self.batch_size]
            logger.info("Embedding batch %d: %d rows", batch_number, len(chunk))
            self.backend.upsert(
                self.tables.embedding_table,
                chunk,
                conflict_key=self.tables.foreign_key,
            )
        return len(rows)

    def store(self, entities: Sequence[NormalizedEntity], vectors: Sequence[EmbeddingVector]) -> int:
        """
        Persist entities with positionally aligned vectors.

        Raises:
            ValueError: If the sequences differ in length.
            StoreError: If any store request fails. Batches written before the
                failure stay written.
        """
        return self.store_embedded(EmbeddedEntities(entities=list(entities), vectors=list(vectors)))
