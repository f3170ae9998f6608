"""Persistence layer for artefacts, impact runs, the linkage graph and link suggestions.

Architecture:
- Narrow repository interfaces (:class:`ArtefactStore`, :class:`RunStore`,
  :class:`LinkageStore`, :class:`SuggestionStore`) are what the engine
  depends on.
- :class:`SQLiteStore` implements all four on one SQLite database. Every
  write touches a single row, except run completion which persists the
  run's items together with its terminal status.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .models import (
    Artefact,
    ArtefactLink,
    ArtefactVersion,
    CodeLink,
    DataLink,
    ImpactItem,
    ImpactRun,
    LinkageGraph,
    LinkEdge,
    LinkSuggestion,
    RunSummary,
    TestLink,
    metadata_from_dict,
    new_id,
    utc_now,
)

logger = logging.getLogger(__name__)


# ===================================================================
# Repository interfaces
# ===================================================================

class ArtefactStore:
    """Read access to artefacts plus their analysed-content versions."""

    def get_artefact(self, artefact_id: str) -> Optional[Artefact]:
        raise NotImplementedError

    def context_artefacts(self, product_context_id: str, exclude_id: str) -> List[Artefact]:
        raise NotImplementedError

    def save_artefact(self, artefact: Artefact) -> None:
        raise NotImplementedError

    def latest_version(self, artefact_id: str) -> Optional[ArtefactVersion]:
        raise NotImplementedError

    def add_version(self, artefact_id: str, content: Any) -> ArtefactVersion:
        raise NotImplementedError


class RunStore:
    """Impact runs and their items."""

    def create_run(self, run: ImpactRun) -> ImpactRun:
        raise NotImplementedError

    def mark_running(self, run_id: str) -> None:
        raise NotImplementedError

    def complete_run(self, run: ImpactRun, items: List[ImpactItem]) -> None:
        raise NotImplementedError

    def fail_run(self, run_id: str, error: str) -> None:
        raise NotImplementedError

    def get_run(self, run_id: str) -> Optional[ImpactRun]:
        raise NotImplementedError

    def list_runs(self, artefact_id: str, status: Optional[str] = None) -> List[ImpactRun]:
        raise NotImplementedError

    def get_items(self, run_id: str) -> List[ImpactItem]:
        raise NotImplementedError

    def get_item(self, item_id: str) -> Optional[ImpactItem]:
        raise NotImplementedError

    def set_item_status(self, item_id: str, status: str) -> None:
        raise NotImplementedError


class LinkageStore:
    """Typed, confidence-weighted edges from artefacts to code, tests, data and artefacts."""

    def upsert_edge(self, edge: LinkEdge) -> LinkEdge:
        raise NotImplementedError

    def delete_edge(self, edge_id: str) -> bool:
        raise NotImplementedError

    def edges_for(self, artefact_id: str) -> LinkageGraph:
        raise NotImplementedError

    def known_code_ids(self) -> List[str]:
        raise NotImplementedError

    def known_data_ids(self) -> List[str]:
        raise NotImplementedError


class SuggestionStore:
    def add_suggestions(self, suggestions: Iterable[LinkSuggestion]) -> None:
        raise NotImplementedError

    def get_suggestion(self, suggestion_id: str) -> Optional[LinkSuggestion]:
        raise NotImplementedError

    def list_suggestions(self, artefact_id: str, status: Optional[str] = None) -> List[LinkSuggestion]:
        raise NotImplementedError

    def resolve_suggestion(self, suggestion_id: str, status: str) -> bool:
        """Move a pending suggestion to *status*. Returns False if it was not pending."""
        raise NotImplementedError

    def reopen_suggestion(self, suggestion_id: str, status: str) -> bool:
        """Move a suggestion from *status* back to ``pending``. Returns False if it was not in *status*."""
        raise NotImplementedError


# ===================================================================
# SQLiteStore
# ===================================================================

_EDGE_TABLES = {
    "code": "feature_code_map",
    "test": "test_index",
    "data": "feature_data_map",
    "artefact": "artefact_links",
}


class SQLiteStore(ArtefactStore, RunStore, LinkageStore, SuggestionStore):
    """All repositories on one SQLite database file (or ``:memory:``)."""

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = db_path
        if str(db_path) != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(db_path))
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def close(self) -> None:
        self.conn.close()

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def _init_schema(self) -> None:
        cur = self.conn.cursor()
        cur.executescript("""
            CREATE TABLE IF NOT EXISTS artifacts (
                id                 TEXT PRIMARY KEY,
                title              TEXT NOT NULL,
                artifact_type      TEXT NOT NULL,
                content            TEXT NOT NULL,
                product_context_id TEXT,
                updated_at         TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS artefact_versions (
                id                  TEXT PRIMARY KEY,
                artefact_id         TEXT NOT NULL,
                version_number      INTEGER NOT NULL,
                previous_version_id TEXT,
                content             TEXT NOT NULL,
                created_at          TEXT NOT NULL,
                UNIQUE (artefact_id, version_number)
            );
            CREATE TABLE IF NOT EXISTS impact_runs (
                id                    TEXT PRIMARY KEY,
                artefact_id           TEXT NOT NULL,
                trigger_change_set_id TEXT,
                artefact_version_id   TEXT,
                impact_score          REAL NOT NULL DEFAULT 0,
                summary               TEXT NOT NULL,
                status                TEXT NOT NULL,
                error                 TEXT,
                created_at            TEXT NOT NULL,
                completed_at          TEXT
            );
            CREATE TABLE IF NOT EXISTS impact_items (
                id                  TEXT PRIMARY KEY,
                impact_run_id       TEXT NOT NULL,
                item_name           TEXT NOT NULL,
                item_type           TEXT NOT NULL,
                impact_score        REAL NOT NULL,
                impact_reason       TEXT NOT NULL,
                review_status       TEXT NOT NULL,
                related_artefact_id TEXT,
                metadata            TEXT,
                created_at          TEXT NOT NULL,
                UNIQUE (impact_run_id, item_type, item_name)
            );
            CREATE TABLE IF NOT EXISTS feature_code_map (
                id          TEXT PRIMARY KEY,
                feature_id  TEXT NOT NULL,
                target_key  TEXT NOT NULL,
                file_path   TEXT NOT NULL,
                symbols     TEXT,
                confidence  REAL NOT NULL,
                link_source TEXT NOT NULL,
                created_at  TEXT NOT NULL,
                UNIQUE (feature_id, target_key)
            );
            CREATE TABLE IF NOT EXISTS test_index (
                id                 TEXT PRIMARY KEY,
                related_feature_id TEXT NOT NULL,
                target_key         TEXT NOT NULL,
                test_file          TEXT NOT NULL,
                test_name          TEXT,
                test_type          TEXT NOT NULL,
                related_file_path  TEXT,
                confidence         REAL NOT NULL,
                link_source        TEXT NOT NULL,
                created_at         TEXT NOT NULL,
                UNIQUE (related_feature_id, target_key)
            );
            CREATE TABLE IF NOT EXISTS feature_data_map (
                id          TEXT PRIMARY KEY,
                feature_id  TEXT NOT NULL,
                target_key  TEXT NOT NULL,
                table_name  TEXT NOT NULL,
                event_name  TEXT,
                kpi_name    TEXT,
                confidence  REAL NOT NULL,
                link_source TEXT NOT NULL,
                created_at  TEXT NOT NULL,
                UNIQUE (feature_id, target_key)
            );
            CREATE TABLE IF NOT EXISTS artefact_links (
                id               TEXT PRIMARY KEY,
                source_id        TEXT NOT NULL,
                target_key       TEXT NOT NULL,
                target_type      TEXT NOT NULL,
                target_id        TEXT NOT NULL,
                link_type        TEXT NOT NULL,
                confidence_score REAL NOT NULL,
                user_id          TEXT,
                link_source      TEXT NOT NULL,
                created_at       TEXT NOT NULL,
                UNIQUE (source_id, target_key)
            );
            CREATE TABLE IF NOT EXISTS link_suggestions (
                id                    TEXT PRIMARY KEY,
                artefact_id           TEXT NOT NULL,
                suggested_target_type TEXT NOT NULL,
                suggested_target_id   TEXT NOT NULL,
                suggested_link_type   TEXT NOT NULL,
                confidence            REAL NOT NULL,
                reasoning             TEXT,
                status                TEXT NOT NULL,
                created_at            TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_runs_artefact ON impact_runs(artefact_id, created_at);
            CREATE INDEX IF NOT EXISTS idx_items_run ON impact_items(impact_run_id);
            CREATE INDEX IF NOT EXISTS idx_suggestions_artefact ON link_suggestions(artefact_id, status);
            CREATE INDEX IF NOT EXISTS idx_artifacts_context ON artifacts(product_context_id);
        """)
        self.conn.commit()

    # ------------------------------------------------------------------
    # Artefacts
    # ------------------------------------------------------------------

    def save_artefact(self, artefact: Artefact) -> None:
        if not artefact.updated_at:
            artefact.updated_at = utc_now()
        self.conn.execute(
            """
            INSERT OR REPLACE INTO artifacts (
                id, title, artifact_type, content, product_context_id, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                artefact.id,
                artefact.title,
                artefact.artifact_type,
                json.dumps(artefact.content),
                artefact.product_context_id,
                artefact.updated_at,
            ),
        )
        self.conn.commit()

    def get_artefact(self, artefact_id: str) -> Optional[Artefact]:
        row = self.conn.execute(
            "SELECT * FROM artifacts WHERE id = ?", (artefact_id,),
        ).fetchone()
        return _row_to_artefact(row) if row else None

    def context_artefacts(self, product_context_id: str, exclude_id: str) -> List[Artefact]:
        rows = self.conn.execute(
            "SELECT * FROM artifacts WHERE product_context_id = ? AND id != ? ORDER BY title",
            (product_context_id, exclude_id),
        ).fetchall()
        return [_row_to_artefact(r) for r in rows]

    def latest_version(self, artefact_id: str) -> Optional[ArtefactVersion]:
        row = self.conn.execute(
            """
            SELECT * FROM artefact_versions WHERE artefact_id = ?
            ORDER BY version_number DESC LIMIT 1
            """,
            (artefact_id,),
        ).fetchone()
        if row is None:
            return None
        return ArtefactVersion(
            id=row["id"],
            artefact_id=row["artefact_id"],
            version_number=row["version_number"],
            content=json.loads(row["content"]),
            previous_version_id=row["previous_version_id"],
            created_at=row["created_at"],
        )

    def add_version(self, artefact_id: str, content: Any) -> ArtefactVersion:
        previous = self.latest_version(artefact_id)
        version = ArtefactVersion(
            id=new_id(),
            artefact_id=artefact_id,
            version_number=previous.version_number + 1 if previous else 1,
            content=content,
            previous_version_id=previous.id if previous else None,
            created_at=utc_now(),
        )
        self.conn.execute(
            """
            INSERT INTO artefact_versions (
                id, artefact_id, version_number, previous_version_id, content, created_at
            ) VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                version.id,
                version.artefact_id,
                version.version_number,
                version.previous_version_id,
                json.dumps(content),
                version.created_at,
            ),
        )
        self.conn.commit()
        return version

    # ------------------------------------------------------------------
    # Runs and items
    # ------------------------------------------------------------------

    def create_run(self, run: ImpactRun) -> ImpactRun:
        self.conn.execute(
            """
            INSERT INTO impact_runs (
                id, artefact_id, trigger_change_set_id, artefact_version_id,
                impact_score, summary, status, error, created_at, completed_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                run.id,
                run.artefact_id,
                run.trigger_change_set_id,
                run.artefact_version_id,
                run.impact_score,
                json.dumps(run.summary.to_dict()),
                run.status,
                run.error,
                run.created_at,
                run.completed_at,
            ),
        )
        self.conn.commit()
        return run

    def mark_running(self, run_id: str) -> None:
        self.conn.execute(
            "UPDATE impact_runs SET status = 'running' WHERE id = ? AND status = 'pending'",
            (run_id,),
        )
        self.conn.commit()

    def complete_run(self, run: ImpactRun, items: List[ImpactItem]) -> None:
        """Persist *items* and flip the run to ``completed`` in one commit, or neither."""
        try:
            self._write_completion(run, items)
        except sqlite3.Error:
            self.conn.rollback()
            raise
        self.conn.commit()

    def _write_completion(self, run: ImpactRun, items: List[ImpactItem]) -> None:
        cur = self.conn.cursor()
        cur.executemany(
            """
            INSERT INTO impact_items (
                id, impact_run_id, item_name, item_type, impact_score, impact_reason,
                review_status, related_artefact_id, metadata, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    item.id,
                    item.impact_run_id,
                    item.item_name,
                    item.item_type,
                    item.impact_score,
                    item.impact_reason,
                    item.review_status,
                    item.related_artefact_id,
                    json.dumps(item.metadata.to_dict()),
                    item.created_at,
                )
                for item in items
            ],
        )
        cur.execute(
            """
            UPDATE impact_runs
            SET status = 'completed', impact_score = ?, summary = ?,
                artefact_version_id = ?, trigger_change_set_id = ?, completed_at = ?
            WHERE id = ? AND status = 'running'
            """,
            (
                run.impact_score,
                json.dumps(run.summary.to_dict()),
                run.artefact_version_id,
                run.trigger_change_set_id,
                run.completed_at,
                run.id,
            ),
        )
        if cur.rowcount != 1:
            raise sqlite3.IntegrityError(f"Run {run.id} is not running; refusing to complete it")

    def fail_run(self, run_id: str, error: str) -> None:
        self.conn.execute(
            """
            UPDATE impact_runs SET status = 'failed', error = ?, completed_at = ?
            WHERE id = ? AND status IN ('pending', 'running')
            """,
            (error, utc_now(), run_id),
        )
        self.conn.commit()

    def get_run(self, run_id: str) -> Optional[ImpactRun]:
        row = self.conn.execute(
            "SELECT * FROM impact_runs WHERE id = ?", (run_id,),
        ).fetchone()
        return _row_to_run(row) if row else None

    def list_runs(self, artefact_id: str, status: Optional[str] = None) -> List[ImpactRun]:
        """Runs of one artefact, newest first."""
        query = "SELECT * FROM impact_runs WHERE artefact_id = ?"
        params: List[Any] = [artefact_id]
        if status:
            query += " AND status = ?"
            params.append(status)
        query += " ORDER BY created_at DESC, rowid DESC"
        return [_row_to_run(r) for r in self.conn.execute(query, params).fetchall()]

    def get_items(self, run_id: str) -> List[ImpactItem]:
        rows = self.conn.execute(
            """
            SELECT * FROM impact_items WHERE impact_run_id = ?
            ORDER BY impact_score DESC, item_type, item_name
            """,
            (run_id,),
        ).fetchall()
        return [_row_to_item(r) for r in rows]

    def get_item(self, item_id: str) -> Optional[ImpactItem]:
        row = self.conn.execute(
            "SELECT * FROM impact_items WHERE id = ?", (item_id,),
        ).fetchone()
        return _row_to_item(row) if row else None

    def set_item_status(self, item_id: str, status: str) -> None:
        self.conn.execute(
            "UPDATE impact_items SET review_status = ? WHERE id = ?", (status, item_id),
        )
        self.conn.commit()

    # ------------------------------------------------------------------
    # Linkage graph
    # ------------------------------------------------------------------

    def upsert_edge(self, edge: LinkEdge) -> LinkEdge:
        """Insert an edge, or overwrite confidence/source of the existing one for the same target."""
        key = edge.target_identifier
        if isinstance(edge, CodeLink):
            self.conn.execute(
                """
                INSERT INTO feature_code_map (
                    id, feature_id, target_key, file_path, symbols, confidence, link_source, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (feature_id, target_key) DO UPDATE SET
                    confidence = excluded.confidence,
                    link_source = excluded.link_source,
                    symbols = excluded.symbols
                """,
                (edge.id, edge.artefact_id, key, edge.file_path, json.dumps(edge.symbols),
                 edge.confidence, edge.link_source, edge.created_at),
            )
        elif isinstance(edge, TestLink):
            self.conn.execute(
                """
                INSERT INTO test_index (
                    id, related_feature_id, target_key, test_file, test_name, test_type,
                    related_file_path, confidence, link_source, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (related_feature_id, target_key) DO UPDATE SET
                    confidence = excluded.confidence,
                    link_source = excluded.link_source,
                    test_type = excluded.test_type,
                    related_file_path = excluded.related_file_path
                """,
                (edge.id, edge.artefact_id, key, edge.test_file, edge.test_name, edge.test_type,
                 edge.related_file_path, edge.confidence, edge.link_source, edge.created_at),
            )
        elif isinstance(edge, DataLink):
            self.conn.execute(
                """
                INSERT INTO feature_data_map (
                    id, feature_id, target_key, table_name, event_name, kpi_name,
                    confidence, link_source, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (feature_id, target_key) DO UPDATE SET
                    confidence = excluded.confidence,
                    link_source = excluded.link_source
                """,
                (edge.id, edge.artefact_id, key, edge.table_name, edge.event_name, edge.kpi_name,
                 edge.confidence, edge.link_source, edge.created_at),
            )
        elif isinstance(edge, ArtefactLink):
            self.conn.execute(
                """
                INSERT INTO artefact_links (
                    id, source_id, target_key, target_type, target_id, link_type,
                    confidence_score, user_id, link_source, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (source_id, target_key) DO UPDATE SET
                    confidence_score = excluded.confidence_score,
                    link_source = excluded.link_source,
                    link_type = excluded.link_type
                """,
                (edge.id, edge.source_id, key, edge.target_type, edge.target_id, edge.link_type,
                 edge.confidence_score, edge.user_id, edge.link_source, edge.created_at),
            )
        else:
            raise TypeError(f"Unsupported edge type: {type(edge).__name__}")
        self.conn.commit()
        return self._edge_by_key(edge.target_type, edge.artefact_id, key) or edge

    def delete_edge(self, edge_id: str) -> bool:
        cur = self.conn.cursor()
        for table in _EDGE_TABLES.values():
            cur.execute(f"DELETE FROM {table} WHERE id = ?", (edge_id,))
            if cur.rowcount:
                self.conn.commit()
                return True
        return False

    def edges_for(self, artefact_id: str) -> LinkageGraph:
        graph = LinkageGraph()
        for row in self.conn.execute(
            "SELECT * FROM feature_code_map WHERE feature_id = ? ORDER BY created_at", (artefact_id,),
        ):
            graph.code.append(_row_to_code_link(row))
        for row in self.conn.execute(
            "SELECT * FROM test_index WHERE related_feature_id = ? ORDER BY created_at", (artefact_id,),
        ):
            graph.tests.append(_row_to_test_link(row))
        for row in self.conn.execute(
            "SELECT * FROM feature_data_map WHERE feature_id = ? ORDER BY created_at", (artefact_id,),
        ):
            graph.data.append(_row_to_data_link(row))
        for row in self.conn.execute(
            "SELECT * FROM artefact_links WHERE source_id = ? ORDER BY created_at", (artefact_id,),
        ):
            graph.artefacts.append(_row_to_artefact_link(row))
        return graph

    def known_code_ids(self) -> List[str]:
        rows = self.conn.execute("SELECT DISTINCT file_path FROM feature_code_map ORDER BY file_path")
        return [r[0] for r in rows]

    def known_data_ids(self) -> List[str]:
        rows = self.conn.execute(
            "SELECT DISTINCT table_name FROM feature_data_map ORDER BY table_name"
        )
        return [r[0] for r in rows]

    def _edge_by_key(self, target_type: str, artefact_id: str, key: str) -> Optional[LinkEdge]:
        table = _EDGE_TABLES[target_type]
        owner = {"test": "related_feature_id", "artefact": "source_id"}.get(target_type, "feature_id")
        row = self.conn.execute(
            f"SELECT * FROM {table} WHERE {owner} = ? AND target_key = ?", (artefact_id, key),
        ).fetchone()
        if row is None:
            return None
        converter = {
            "code": _row_to_code_link,
            "test": _row_to_test_link,
            "data": _row_to_data_link,
            "artefact": _row_to_artefact_link,
        }[target_type]
        return converter(row)

    # ------------------------------------------------------------------
    # Link suggestions
    # ------------------------------------------------------------------

    def add_suggestions(self, suggestions: Iterable[LinkSuggestion]) -> None:
        self.conn.executemany(
            """
            INSERT INTO link_suggestions (
                id, artefact_id, suggested_target_type, suggested_target_id,
                suggested_link_type, confidence, reasoning, status, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (s.id, s.artefact_id, s.suggested_target_type, s.suggested_target_id,
                 s.suggested_link_type, s.confidence, s.reasoning, s.status, s.created_at)
                for s in suggestions
            ],
        )
        self.conn.commit()

    def get_suggestion(self, suggestion_id: str) -> Optional[LinkSuggestion]:
        row = self.conn.execute(
            "SELECT * FROM link_suggestions WHERE id = ?", (suggestion_id,),
        ).fetchone()
        return _row_to_suggestion(row) if row else None

    def list_suggestions(self, artefact_id: str, status: Optional[str] = None) -> List[LinkSuggestion]:
        query = "SELECT * FROM link_suggestions WHERE artefact_id = ?"
        params: List[Any] = [artefact_id]
        if status:
            query += " AND status = ?"
            params.append(status)
        query += " ORDER BY confidence DESC, created_at"
        return [_row_to_suggestion(r) for r in self.conn.execute(query, params).fetchall()]

    def resolve_suggestion(self, suggestion_id: str, status: str) -> bool:
        cur = self.conn.execute(
            "UPDATE link_suggestions SET status = ? WHERE id = ? AND status = 'pending'",
            (status, suggestion_id),
        )
        self.conn.commit()
        return cur.rowcount == 1

    def reopen_suggestion(self, suggestion_id: str, status: str) -> bool:
        cur = self.conn.execute(
            "UPDATE link_suggestions SET status = 'pending' WHERE id = ? AND status = ?",
            (suggestion_id, status),
        )
        self.conn.commit()
        return cur.rowcount == 1


def open_store(db_path: Optional[Path] = None) -> SQLiteStore:
    """Open the configured database (``IMPACTGRAPH_DB`` / ``<home>/impact.db``)."""
    from . import config

    if db_path is None:
        config.ensure_base_dirs()
        db_path = config.DB_PATH
    return SQLiteStore(db_path)


# ===================================================================
# Row converters
# ===================================================================

def _loads(raw: Optional[str], default: Any) -> Any:
    if not raw:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Unparseable JSON column ignored: %.60s", raw)
        return default


def _row_to_artefact(row: sqlite3.Row) -> Artefact:
    return Artefact(
        id=row["id"],
        title=row["title"],
        content=_loads(row["content"], ""),
        artifact_type=row["artifact_type"],
        product_context_id=row["product_context_id"],
        updated_at=row["updated_at"],
    )


def _row_to_run(row: sqlite3.Row) -> ImpactRun:
    return ImpactRun(
        id=row["id"],
        artefact_id=row["artefact_id"],
        status=row["status"],
        impact_score=row["impact_score"],
        summary=RunSummary.from_dict(_loads(row["summary"], {})),
        trigger_change_set_id=row["trigger_change_set_id"],
        artefact_version_id=row["artefact_version_id"],
        created_at=row["created_at"],
        completed_at=row["completed_at"],
        error=row["error"],
    )


def _row_to_item(row: sqlite3.Row) -> ImpactItem:
    return ImpactItem(
        id=row["id"],
        impact_run_id=row["impact_run_id"],
        item_name=row["item_name"],
        item_type=row["item_type"],
        impact_score=row["impact_score"],
        impact_reason=row["impact_reason"],
        review_status=row["review_status"],
        related_artefact_id=row["related_artefact_id"],
        metadata=metadata_from_dict(_loads(row["metadata"], {})),
        created_at=row["created_at"],
    )


def _row_to_code_link(row: sqlite3.Row) -> CodeLink:
    return CodeLink(
        id=row["id"],
        artefact_id=row["feature_id"],
        file_path=row["file_path"],
        symbols=_loads(row["symbols"], []),
        confidence=row["confidence"],
        link_source=row["link_source"],
        created_at=row["created_at"],
    )


def _row_to_test_link(row: sqlite3.Row) -> TestLink:
    return TestLink(
        id=row["id"],
        artefact_id=row["related_feature_id"],
        test_file=row["test_file"],
        test_name=row["test_name"],
        test_type=row["test_type"],
        related_file_path=row["related_file_path"],
        confidence=row["confidence"],
        link_source=row["link_source"],
        created_at=row["created_at"],
    )


def _row_to_data_link(row: sqlite3.Row) -> DataLink:
    return DataLink(
        id=row["id"],
        artefact_id=row["feature_id"],
        table_name=row["table_name"],
        event_name=row["event_name"],
        kpi_name=row["kpi_name"],
        confidence=row["confidence"],
        link_source=row["link_source"],
        created_at=row["created_at"],
    )


def _row_to_artefact_link(row: sqlite3.Row) -> ArtefactLink:
    return ArtefactLink(
        id=row["id"],
        source_id=row["source_id"],
        target_type=row["target_type"],
        target_id=row["target_id"],
        link_type=row["link_type"],
        confidence_score=row["confidence_score"],
        user_id=row["user_id"] or "",
        link_source=row["link_source"],
        created_at=row["created_at"],
    )


def _row_to_suggestion(row: sqlite3.Row) -> LinkSuggestion:
    return LinkSuggestion(
        id=row["id"],
        artefact_id=row["artefact_id"],
        suggested_target_type=row["suggested_target_type"],
        suggested_target_id=row["suggested_target_id"],
        suggested_link_type=row["suggested_link_type"],
        confidence=row["confidence"],
        reasoning=row["reasoning"] or "",
        status=row["status"],
        created_at=row["created_at"],
    )
