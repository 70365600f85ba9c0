"""Repository pattern for all harvester database operations.

Single interface for: projects, documents, chunks, FTS5 search, chunk
embeddings and vector similarity search. Every write is an upsert keyed by
the record's natural identity, so repeated or concurrent ingestion of the
same URI converges on one document and one embedding per chunk.
"""

from __future__ import annotations

import re
import sqlite3
import struct
import uuid

import sqlite_vec

from harvester.db.models import Chunk, Document, Project

_CHUNK_COLUMNS = "c.id, c.document_id, c.ord, c.text, c.token_count, c.section_path, c.created_at"


class ProjectNotFoundError(LookupError):
    """Raised when a project id or slug does not resolve to a project."""

    def __init__(self, ref: str) -> None:
        super().__init__(f"project '{ref}' not found")
        self.ref = ref


class Repository:
    """Data access layer for all harvester database entities.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use; connections must not be shared between
    threads.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see harvester.db.schema.initialize).
        """
        self._conn = conn

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def add_project(self, slug: str, name: str = "") -> Project:
        """Insert a new project with a generated id and return it.

        Raises:
            sqlite3.IntegrityError: If *slug* is already taken.
        """
        project_id = str(uuid.uuid4())
        self._conn.execute(
            "INSERT INTO projects (id, slug, name) VALUES (?, ?, ?)",
            (project_id, slug, name),
        )
        self._conn.commit()
        return self.get_project(project_id)

    def get_project(self, project_id: str) -> Project | None:
        row = self._conn.execute(
            "SELECT id, slug, name, created_at FROM projects WHERE id = ?", (project_id,)
        ).fetchone()
        return _row_to_project(row) if row else None

    def get_project_by_slug(self, slug: str) -> Project | None:
        row = self._conn.execute(
            "SELECT id, slug, name, created_at FROM projects WHERE slug = ?", (slug,)
        ).fetchone()
        return _row_to_project(row) if row else None

    def list_projects(self) -> list[Project]:
        rows = self._conn.execute(
            "SELECT id, slug, name, created_at FROM projects ORDER BY created_at, slug"
        ).fetchall()
        return [_row_to_project(r) for r in rows]

    def resolve_project(self, ref: str) -> Project:
        """Return the project whose id or slug equals *ref*.

        Raises:
            ProjectNotFoundError: If neither an id nor a slug matches.
        """
        project = self.get_project(ref) or self.get_project_by_slug(ref)
        if project is None:
            raise ProjectNotFoundError(ref)
        return project

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def upsert_document(self, project_id: str, uri: str, title: str = "") -> str:
        """Insert or update the document for (*project_id*, *uri*); return its id.

        An existing document keeps its id. Its title is only replaced when
        *title* is non-empty.
        """
        document_id = self._write_document(project_id, uri, title)
        self._conn.commit()
        return document_id

    def get_document(self, document_id: str) -> Document | None:
        row = self._conn.execute(
            "SELECT id, project_id, uri, title, created_at, updated_at FROM documents WHERE id = ?",
            (document_id,),
        ).fetchone()
        return _row_to_document(row) if row else None

    def get_document_by_uri(self, project_id: str, uri: str) -> Document | None:
        row = self._conn.execute(
            """
            SELECT id, project_id, uri, title, created_at, updated_at
            FROM documents WHERE project_id = ? AND uri = ?
            """,
            (project_id, uri),
        ).fetchone()
        return _row_to_document(row) if row else None

    def count_documents(self, project_id: str) -> int:
        return self._conn.execute(
            "SELECT COUNT(*) FROM documents WHERE project_id = ?", (project_id,)
        ).fetchone()[0]

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def upsert_chunk(self, chunk: Chunk) -> int:
        """Insert or replace the chunk at (document_id, ord); sync FTS5. Returns the chunk id.

        The id of an existing (document_id, ord) row is preserved, so an
        embedding upserted afterwards replaces the previous one.
        """
        chunk_id = self._write_chunk(chunk)
        self._conn.commit()
        return chunk_id

    def get_chunk(self, chunk_id: int) -> Chunk | None:
        row = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks c WHERE c.id = ?", (chunk_id,)
        ).fetchone()
        return _row_to_chunk(row) if row else None

    def list_chunks(self, document_id: str) -> list[Chunk]:
        """Return the chunks of *document_id* ordered by ord."""
        rows = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks c WHERE c.document_id = ? ORDER BY c.ord",
            (document_id,),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def prune_chunks(self, document_id: str, keep: int) -> int:
        """Delete chunks of *document_id* with ord >= *keep*, with FTS rows and embeddings.

        Returns the number of chunks removed.
        """
        removed = self._delete_chunks_from(document_id, keep)
        self._conn.commit()
        return removed

    # ------------------------------------------------------------------
    # Embeddings
    # ------------------------------------------------------------------

    def upsert_embedding(self, chunk_id: int, model: str, embedding: list[float]) -> None:
        """Store *embedding* for *chunk_id*, replacing any previous vector."""
        self._write_embedding(chunk_id, model, embedding)
        self._conn.commit()

    def get_embedding(self, chunk_id: int) -> list[float] | None:
        row = self._conn.execute(
            "SELECT dimensions, embedding FROM chunk_embeddings WHERE chunk_id = ?", (chunk_id,)
        ).fetchone()
        if row is None:
            return None
        return list(struct.unpack(f"{row['dimensions']}f", row["embedding"]))

    def count_embeddings(self, document_id: str) -> int:
        return self._conn.execute(
            """
            SELECT COUNT(*) FROM chunk_embeddings e
            JOIN chunks c ON c.id = e.chunk_id
            WHERE c.document_id = ?
            """,
            (document_id,),
        ).fetchone()[0]

    def search_vec(
        self, project_id: str, embedding: list[float], limit: int = 10
    ) -> list[tuple[Chunk, float]]:
        """Cosine nearest neighbours within a project. Returns (chunk, distance), closest first.

        Only embeddings with the query's dimensionality are compared.
        """
        rows = self._conn.execute(
            f"""
            SELECT {_CHUNK_COLUMNS}, vec_distance_cosine(e.embedding, ?) AS distance
            FROM chunk_embeddings e
            JOIN chunks c ON c.id = e.chunk_id
            JOIN documents d ON d.id = c.document_id
            WHERE d.project_id = ? AND e.dimensions = ?
            ORDER BY distance
            LIMIT ?
            """,
            (sqlite_vec.serialize_float32(embedding), project_id, len(embedding), limit),
        ).fetchall()
        return [(_row_to_chunk(r), r["distance"]) for r in rows]

    # ------------------------------------------------------------------
    # FTS5 / BM25 search
    # ------------------------------------------------------------------

    def search_fts(self, project_id: str, query: str, limit: int = 10) -> list[tuple[Chunk, float]]:
        """BM25 full-text search within a project. Returns (chunk, score) sorted best-first.

        bm25() returns negative values; lower (more negative) = better match.
        The raw bm25 score is returned so callers can apply thresholds.
        """
        # FTS5 MATCH treats punctuation and bare AND/OR/NOT as syntax;
        # quote each word so the query is always a plain term list.
        terms = re.findall(r"\w+", query)
        if not terms:
            return []
        fts_query = " ".join(f'"{t}"' for t in terms)
        rows = self._conn.execute(
            f"""
            SELECT {_CHUNK_COLUMNS}, bm25(chunks_fts) AS score
            FROM chunks_fts
            JOIN chunks c ON c.id = chunks_fts.rowid
            JOIN documents d ON d.id = c.document_id
            WHERE chunks_fts MATCH ? AND d.project_id = ?
            ORDER BY score
            LIMIT ?
            """,
            (fts_query, project_id, limit),
        ).fetchall()
        return [(_row_to_chunk(r), r["score"]) for r in rows]

    # ------------------------------------------------------------------
    # Whole-document writes
    # ------------------------------------------------------------------

    def store_document(
        self,
        project_id: str,
        uri: str,
        title: str,
        chunks: list[Chunk],
        embeddings: list[list[float]],
        model: str,
    ) -> tuple[str, int]:
        """Write a document, its chunks and their embeddings in one transaction.

        The chunk set replaces the previous one: chunks are upserted by ord,
        every chunk gets its embedding from *embeddings* (same order), and
        ordinals past the new count are deleted. On any error nothing is
        written.

        Returns:
            (document id, number of stale chunks removed).
        """
        if len(chunks) != len(embeddings):
            raise ValueError(f"{len(chunks)} chunks but {len(embeddings)} embeddings")
        with self._conn:
            document_id = self._write_document(project_id, uri, title)
            for chunk, embedding in zip(chunks, embeddings):
                chunk.document_id = document_id
                self._write_embedding(self._write_chunk(chunk), model, embedding)
            removed = self._delete_chunks_from(document_id, len(chunks))
        return document_id, removed

    # Statement helpers below never commit; callers own the transaction.

    def _write_document(self, project_id: str, uri: str, title: str) -> str:
        self._conn.execute(
            """
            INSERT INTO documents (id, project_id, uri, title)
            VALUES (?, ?, ?, COALESCE(NULLIF(?, ''), 'Untitled'))
            ON CONFLICT (project_id, uri) DO UPDATE SET
                title = COALESCE(NULLIF(?, ''), documents.title),
                updated_at = datetime('now')
            """,
            (str(uuid.uuid4()), project_id, uri, title, title),
        )
        row = self._conn.execute(
            "SELECT id FROM documents WHERE project_id = ? AND uri = ?", (project_id, uri)
        ).fetchone()
        return row["id"]

    def _write_chunk(self, chunk: Chunk) -> int:
        self._conn.execute(
            """
            INSERT INTO chunks (document_id, ord, text, token_count, section_path)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (document_id, ord) DO UPDATE SET
                text = excluded.text,
                token_count = excluded.token_count,
                section_path = excluded.section_path
            """,
            (chunk.document_id, chunk.ord, chunk.text, chunk.token_count, chunk.section_path),
        )
        chunk_id = self._conn.execute(
            "SELECT id FROM chunks WHERE document_id = ? AND ord = ?",
            (chunk.document_id, chunk.ord),
        ).fetchone()[0]
        # Keep FTS5 in sync with explicit rowid mapping
        self._conn.execute("DELETE FROM chunks_fts WHERE rowid = ?", (chunk_id,))
        self._conn.execute(
            "INSERT INTO chunks_fts(rowid, text) VALUES (?, ?)", (chunk_id, chunk.text)
        )
        chunk.id = chunk_id
        return chunk_id

    def _write_embedding(self, chunk_id: int, model: str, embedding: list[float]) -> None:
        self._conn.execute(
            """
            INSERT INTO chunk_embeddings (chunk_id, model, dimensions, embedding)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (chunk_id) DO UPDATE SET
                model = excluded.model,
                dimensions = excluded.dimensions,
                embedding = excluded.embedding,
                updated_at = datetime('now')
            """,
            (chunk_id, model, len(embedding), sqlite_vec.serialize_float32(embedding)),
        )

    def _delete_chunks_from(self, document_id: str, keep: int) -> int:
        ids = [
            r[0]
            for r in self._conn.execute(
                "SELECT id FROM chunks WHERE document_id = ? AND ord >= ?", (document_id, keep)
            ).fetchall()
        ]
        if not ids:
            return 0
        placeholders = ",".join("?" * len(ids))
        self._conn.execute(f"DELETE FROM chunks_fts WHERE rowid IN ({placeholders})", ids)
        self._conn.execute(
            f"DELETE FROM chunk_embeddings WHERE chunk_id IN ({placeholders})", ids
        )
        self._conn.execute(f"DELETE FROM chunks WHERE id IN ({placeholders})", ids)
        return len(ids)


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------

def _row_to_project(row: sqlite3.Row) -> Project:
    return Project(
        id=row["id"],
        slug=row["slug"],
        name=row["name"],
        created_at=row["created_at"],
    )


def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        id=row["id"],
        project_id=row["project_id"],
        uri=row["uri"],
        title=row["title"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        id=row["id"],
        document_id=row["document_id"],
        ord=row["ord"],
        text=row["text"],
        token_count=row["token_count"],
        section_path=row["section_path"],
        created_at=row["created_at"],
    )
