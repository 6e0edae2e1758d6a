"""
Statute Store with PostgreSQL + pgvector

Vector storage and similarity search over legal provisions (one row per
article). Search mirrors a `search_legal_docs(embedding, threshold, count,
category)` lookup: cosine similarity, minimum score, optional category filter.
"""

import os
import uuid
import logging
from typing import Optional
from dataclasses import dataclass, field
from contextlib import contextmanager

try:
    import psycopg2
    import psycopg2.extras
    import psycopg2.pool
except ImportError:
    psycopg2 = None  # Will be caught at connect() time

logger = logging.getLogger(__name__)

# Raised when the database itself cannot be reached, as opposed to a bad query
CONNECTION_ERRORS: tuple = (ConnectionError, ImportError)
if psycopg2 is not None:
    CONNECTION_ERRORS += (psycopg2.OperationalError, psycopg2.InterfaceError)


@dataclass
class StatuteStoreConfig:
    """Configuration for statute store."""
    connection_string: Optional[str] = None
    table_name: str = "legal_docs"
    embedding_dimensions: int = 1024
    # Connection pooling settings
    pool_min_connections: int = 2
    pool_max_connections: int = 20
    use_pooling: bool = True


@dataclass
class StatuteRecord:
    """A single search hit from the statute table."""
    id: str
    article_number: Optional[str]
    category: str
    content: str
    similarity: float
    source_url: str = ""


@dataclass
class StatuteArticle:
    """An article to be inserted."""
    category: str
    content: str
    source_url: str
    article_number: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


class StatuteStore:
    """
    PostgreSQL statute store with pgvector.

    Features:
    - Cosine similarity search with threshold and category filter
    - Pooled connections with one retry on stale connections
    - Batch insert for ingestion
    """

    def __init__(self, config: Optional[StatuteStoreConfig] = None):
        self.config = config or StatuteStoreConfig()
        self._conn = None
        self._pool = None
        self._connection_string = (
            self.config.connection_string or
            os.getenv("POSTGRES_URL") or
            os.getenv("DATABASE_URL") or
            "postgresql://localhost:5432/defense_builder"
        )

    def connect(self) -> None:
        """Establish database connection (with optional pooling)."""
        if psycopg2 is None:
            raise ImportError(
                "psycopg2 not installed. Run: pip install psycopg2-binary"
            )
        from psycopg2.extras import RealDictCursor

        try:
            if self.config.use_pooling:
                self._pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=self.config.pool_min_connections,
                    maxconn=self.config.pool_max_connections,
                    dsn=self._connection_string,
                    cursor_factory=RealDictCursor,
                )
                conn = self._pool.getconn()
                try:
                    with conn.cursor() as cur:
                        cur.execute("CREATE EXTENSION IF NOT EXISTS vector")
                    conn.commit()
                finally:
                    self._pool.putconn(conn)

                logger.info(
                    f"Connection pool initialized (min={self.config.pool_min_connections}, "
                    f"max={self.config.pool_max_connections})"
                )
            else:
                self._conn = psycopg2.connect(
                    self._connection_string,
                    cursor_factory=RealDictCursor
                )
                self._conn.autocommit = False

                with self._conn.cursor() as cur:
                    cur.execute("CREATE EXTENSION IF NOT EXISTS vector")
                    self._conn.commit()

                logger.info("Connected to PostgreSQL with pgvector (single connection)")

        except Exception as e:
            logger.error(f"Database connection failed: {e}")
            raise

    def _get_connection(self):
        """Get a database connection (from pool or single connection)."""
        if self._pool:
            return self._pool.getconn()

        if self._conn and self._conn.closed:
            logger.warning("Connection closed, reconnecting...")
            self.connect()

        return self._conn

    def _release_connection(self, conn):
        """Release a connection back to the pool (if pooling is enabled)."""
        if self._pool and conn:
            self._pool.putconn(conn)

    def _ensure_connection(self):
        """Ensure we have a connection (pool or single) and return it."""
        if not self._conn and not self._pool:
            self.connect()

        try:
            return self._get_connection()
        except (psycopg2.OperationalError, psycopg2.InterfaceError):
            logger.warning("Database error in _ensure_connection, retrying after reconnect...")
            self.connect()
            return self._get_connection()

    def is_connected(self) -> bool:
        """Check if we have an active connection (pool or single)."""
        return self._conn is not None or self._pool is not None

    @contextmanager
    def get_connection(self):
        """
        Context manager for getting a database connection.

        Usage:
            with store.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
        """
        conn = self._ensure_connection()
        try:
            yield conn
        finally:
            self._release_connection(conn)

    def _safe_rollback(self, conn) -> None:
        """Rollback a connection, ignoring errors if the connection is dead."""
        try:
            conn.rollback()
        except (psycopg2.InterfaceError, psycopg2.OperationalError):
            pass

    def _execute_with_retry(self, operation, label="db_operation"):
        """Execute a DB operation with one retry on stale connection.

        Args:
            operation: Callable(conn) that performs the DB work and returns a result.
            label: Human-readable name for logging.

        Returns:
            Whatever ``operation`` returns.
        """
        for attempt in range(2):
            conn = self._ensure_connection()
            try:
                result = operation(conn)
                self._release_connection(conn)
                return result
            except (psycopg2.OperationalError, psycopg2.InterfaceError) as e:
                self._safe_rollback(conn)
                self._release_connection(conn)
                if attempt == 0:
                    logger.warning(f"{label}: stale conn, reconnecting: {e}")
                    self.connect()
                    continue
                raise
            except Exception:
                self._safe_rollback(conn)
                self._release_connection(conn)
                raise

    def close(self) -> None:
        """Close database connection(s)."""
        if self._pool:
            self._pool.closeall()
            self._pool = None
            logger.info("Connection pool closed")
        if self._conn:
            self._conn.close()
            self._conn = None

    # =========================================================================
    # Schema
    # =========================================================================

    def initialize_schema(self) -> None:
        """Create the statute table and indexes if they don't exist."""
        schema_sql = f"""
        CREATE TABLE IF NOT EXISTS {self.config.table_name} (
            id UUID PRIMARY KEY,
            article_number TEXT,
            category TEXT NOT NULL,
            content TEXT NOT NULL,
            source_url TEXT NOT NULL,
            embedding VECTOR({self.config.embedding_dimensions}),
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        );

        CREATE INDEX IF NOT EXISTS idx_{self.config.table_name}_category
            ON {self.config.table_name}(category);
        CREATE INDEX IF NOT EXISTS idx_{self.config.table_name}_article
            ON {self.config.table_name}(article_number, category);
        """

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(schema_sql)
                conn.commit()

        try:
            self._execute_with_retry(_op, "initialize_schema")
            logger.info("Statute schema initialized successfully")
        except Exception as e:
            logger.error(f"Schema initialization failed: {e}")
            raise

    def create_hnsw_index(self, m: int = 16, ef_construction: int = 64) -> None:
        """Create an HNSW cosine index (build after the corpus is loaded)."""
        sql = f"""
        CREATE INDEX IF NOT EXISTS idx_{self.config.table_name}_embedding_hnsw
            ON {self.config.table_name}
            USING hnsw (embedding vector_cosine_ops)
            WITH (m = %s, ef_construction = %s)
        """

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, (m, ef_construction))
                conn.commit()

        self._execute_with_retry(_op, "create_hnsw_index")
        logger.info(f"HNSW index ready (m={m}, ef_construction={ef_construction})")

    # =========================================================================
    # Writes
    # =========================================================================

    def insert_statutes(
        self,
        articles: list[StatuteArticle],
        embeddings: list[list[float]],
    ) -> int:
        """
        Batch insert articles with their embeddings.

        Returns:
            Number of rows written (existing ids are updated in place)
        """
        if len(articles) != len(embeddings):
            raise ValueError(
                f"Got {len(articles)} articles but {len(embeddings)} embeddings"
            )
        if not articles:
            return 0

        rows = [
            (a.id, a.article_number, a.category, a.content, a.source_url, emb)
            for a, emb in zip(articles, embeddings)
        ]
        sql = f"""
        INSERT INTO {self.config.table_name}
            (id, article_number, category, content, source_url, embedding)
        VALUES %s
        ON CONFLICT (id) DO UPDATE SET
            article_number = EXCLUDED.article_number,
            category = EXCLUDED.category,
            content = EXCLUDED.content,
            source_url = EXCLUDED.source_url,
            embedding = EXCLUDED.embedding,
            updated_at = NOW()
        """

        def _op(conn):
            with conn.cursor() as cur:
                psycopg2.extras.execute_values(
                    cur, sql, rows,
                    template="(%s::uuid, %s, %s, %s, %s, %s::vector)",
                    page_size=100,
                )
                conn.commit()
            return len(rows)

        written = self._execute_with_retry(_op, "insert_statutes")
        logger.info(f"Inserted {written} statute articles")
        return written

    # =========================================================================
    # Reads
    # =========================================================================

    def search(
        self,
        query_embedding: list[float],
        top_k: int = 3,
        min_score: float = 0.4,
        category: Optional[str] = None,
    ) -> list[StatuteRecord]:
        """
        Semantic search using cosine similarity.

        Args:
            query_embedding: Query embedding vector
            top_k: Maximum number of results
            min_score: Minimum similarity score (0-1)
            category: Optional category filter

        Returns:
            StatuteRecord list ordered by descending similarity, all >= min_score
        """
        sql = f"""
        SELECT
            d.id,
            d.article_number,
            d.category,
            d.content,
            d.source_url,
            1 - (d.embedding <=> %s::vector) AS similarity
        FROM {self.config.table_name} d
        WHERE d.embedding IS NOT NULL
          AND 1 - (d.embedding <=> %s::vector) >= %s
          AND (%s::text IS NULL OR d.category = %s::text)
        ORDER BY d.embedding <=> %s::vector
        LIMIT %s
        """
        params = [
            query_embedding, query_embedding, min_score,
            category, category, query_embedding, top_k,
        ]

        def _op(conn):
            with conn.cursor() as cur:
                cur.execute(sql, params)
                rows = cur.fetchall()

            results = []
            for row in rows:
                row_dict = dict(row)
                # Cosine similarity can dip below 0 for opposed vectors
                similarity = min(max(float(row_dict["similarity"]), 0.0), 1.0)
                if similarity < min_score:
                    continue
                results.append(StatuteRecord(
                    id=str(row_dict["id"]),
                    article_number=row_dict.get("article_number"),
                    category=row_dict["category"],
                    content=row_dict["content"],
                    similarity=similarity,
                    source_url=row_dict.get("source_url") or "",
                ))
            return results

        return self._execute_with_retry(_op, "search")

    def count_statutes(self, category: Optional[str] = None) -> int:
        """Count stored articles, optionally within a category."""
        def _op(conn):
            with conn.cursor() as cur:
                if category:
                    cur.execute(
                        f"SELECT COUNT(*) AS count FROM {self.config.table_name} WHERE category = %s",
                        (category,),
                    )
                else:
                    cur.execute(f"SELECT COUNT(*) AS count FROM {self.config.table_name}")
                row = cur.fetchone()
            return row["count"] if row else 0

        return self._execute_with_retry(_op, "count_statutes")
