"""SQLite result cache for per-file extractions and finished scope documents.

Architecture:
- ``file_extractions`` is keyed by file id **and** content hash, so a file
  is re-extracted only when its bytes change.
- ``scope_documents`` is keyed by the query string, the aggregate tree
  hash and a fingerprint of the traversal settings; any change anywhere in
  the tree, or to the depth defaults, safety cap or skip-list, misses.

Graphs themselves are never persisted: they are rebuilt every run from the
cached extractions.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from .models import FileExtraction, FileRecord, ScopeDocument

logger = logging.getLogger(__name__)

# Bumped whenever extraction output changes shape or meaning.
EXTRACTION_VERSION = 1


class ScopeCache:
    """Content-addressed cache backed by a single SQLite file.

    One connection is shared by every thread of the process; all access
    goes through ``self._lock``.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._init_schema()

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    def __enter__(self) -> "ScopeCache":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def _init_schema(self) -> None:
        with self._lock:
            cur = self.conn.cursor()
            cur.execute("""
                CREATE TABLE IF NOT EXISTS file_extractions (
                    path         TEXT NOT NULL,
                    content_hash TEXT NOT NULL,
                    version      INTEGER NOT NULL,
                    payload      TEXT NOT NULL,
                    PRIMARY KEY (path, content_hash)
                )
            """)
            columns = {row["name"] for row in cur.execute("PRAGMA table_info(scope_documents)")}
            if columns and "settings_key" not in columns:
                # Documents written before settings were part of the key.
                cur.execute("DROP TABLE scope_documents")
            cur.execute("""
                CREATE TABLE IF NOT EXISTS scope_documents (
                    query        TEXT NOT NULL,
                    tree_hash    TEXT NOT NULL,
                    settings_key TEXT NOT NULL,
                    payload      TEXT NOT NULL,
                    PRIMARY KEY (query, tree_hash, settings_key)
                )
            """)
            self.conn.commit()

    def clear(self) -> None:
        with self._lock:
            cur = self.conn.cursor()
            cur.execute("DELETE FROM file_extractions")
            cur.execute("DELETE FROM scope_documents")
            self.conn.commit()

    # ------------------------------------------------------------------
    # Per-file extractions
    # ------------------------------------------------------------------

    def get_extractions(self, records: Iterable[FileRecord]) -> Dict[str, FileExtraction]:
        """Cached extractions for every record whose content hash still matches."""
        found: Dict[str, FileExtraction] = {}
        for record in records:
            with self._lock:
                row = self.conn.execute(
                    "SELECT payload FROM file_extractions WHERE path = ? AND content_hash = ? AND version = ?",
                    (record.path, record.content_hash, EXTRACTION_VERSION),
                ).fetchone()
            if row is None:
                continue
            try:
                found[record.path] = FileExtraction.from_dict(json.loads(row["payload"]))
            except (json.JSONDecodeError, KeyError, TypeError) as exc:
                logger.warning("Discarding corrupt cache entry for %s: %s", record.path, exc)
        logger.debug("Extraction cache: %d hits", len(found))
        return found

    def put_extractions(self, rows: Iterable[Tuple[FileRecord, FileExtraction]]) -> None:
        rows_list = list(rows)
        if not rows_list:
            return
        with self._lock:
            cur = self.conn.cursor()
            cur.executemany(
                "DELETE FROM file_extractions WHERE path = ?",
                [(record.path,) for record, _ in rows_list],
            )
            cur.executemany(
                """
                INSERT OR REPLACE INTO file_extractions (path, content_hash, version, payload)
                VALUES (?, ?, ?, ?)
                """,
                [
                    (record.path, record.content_hash, EXTRACTION_VERSION, json.dumps(extraction.to_dict()))
                    for record, extraction in rows_list
                ],
            )
            self.conn.commit()

    def extraction_count(self) -> int:
        with self._lock:
            return self.conn.execute("SELECT COUNT(*) FROM file_extractions").fetchone()[0]

    # ------------------------------------------------------------------
    # Scope documents
    # ------------------------------------------------------------------

    def get_document(self, query: str, tree_hash: str, settings_key: str = "") -> Optional[ScopeDocument]:
        with self._lock:
            row = self.conn.execute(
                "SELECT payload FROM scope_documents WHERE query = ? AND tree_hash = ? AND settings_key = ?",
                (query, tree_hash, settings_key),
            ).fetchone()
        if row is None:
            return None
        try:
            return ScopeDocument.from_json(row["payload"])
        except (json.JSONDecodeError, KeyError, TypeError) as exc:
            logger.warning("Discarding corrupt cached scope for %r: %s", query, exc)
            return None

    def put_document(self, document: ScopeDocument, settings_key: str = "") -> None:
        with self._lock:
            self.conn.execute(
                """
                INSERT OR REPLACE INTO scope_documents (query, tree_hash, settings_key, payload)
                VALUES (?, ?, ?, ?)
                """,
                (document.query, document.tree_hash, settings_key, document.to_json(indent=None)),
            )
            self.conn.commit()

    def list_documents(self) -> List[Tuple[str, str]]:
        with self._lock:
            rows = self.conn.execute(
                "SELECT DISTINCT query, tree_hash FROM scope_documents ORDER BY query, tree_hash"
            ).fetchall()
        return [(r["query"], r["tree_hash"]) for r in rows]
