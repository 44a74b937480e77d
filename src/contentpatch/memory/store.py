"""SQLite catalog of analysed sections and their editable elements."""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, List, Mapping, Optional, Sequence

from ..structured import SectionGroup, Template
from .schema import EditableElement, ElementGroup, ElementType, Placeholder, utc_now

__all__ = ["CatalogStore", "DEFAULT_DB_PATH"]

DEFAULT_DB_PATH = Path("data/contentpatch.sqlite")
LOGGER = logging.getLogger(__name__)


def _as_iso(timestamp: datetime) -> str:
    """Serialise a timestamp to a timezone-aware ISO 8601 string."""
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc).isoformat()


def _from_iso(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _load_json(value: Optional[str], *, default: Any) -> Any:
    """Decode JSON columns while falling back to the provided default."""
    if not value:
        return default
    data = json.loads(value)
    if data is None:
        return default
    return data


def _new_id() -> str:
    return uuid.uuid4().hex


class CatalogStore:
    """SQLite-backed persistence for extraction results."""

    def __init__(self, db_path: Path | str = DEFAULT_DB_PATH) -> None:
        if str(db_path) == ":memory:":
            self.db_path: Optional[Path] = None
            target = ":memory:"
        else:
            self.db_path = Path(db_path).resolve()
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            target = str(self.db_path)
        self._conn: Optional[sqlite3.Connection] = sqlite3.connect(target)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._bootstrap()

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "CatalogStore":
        paths = config.get("paths") or {}
        return cls(paths.get("db_path") or DEFAULT_DB_PATH)

    def close(self) -> None:
        if self._conn is not None:
            try:
                self._conn.close()
            finally:
                self._conn = None

    def __enter__(self) -> "CatalogStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def _db(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("CatalogStore is closed")
        return self._conn

    def _bootstrap(self) -> None:
        self._db.executescript(
            """
            CREATE TABLE IF NOT EXISTS element_groups (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                description TEXT,
                source_file TEXT NOT NULL,
                start_line INTEGER NOT NULL,
                end_line INTEGER NOT NULL,
                item_count INTEGER NOT NULL DEFAULT 0,
                template TEXT,
                indentation TEXT NOT NULL DEFAULT '',
                placeholders TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS elements (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                type TEXT NOT NULL,
                kind TEXT NOT NULL,
                source_file TEXT NOT NULL,
                source_line INTEGER NOT NULL,
                source_column INTEGER,
                current_value TEXT NOT NULL,
                href TEXT,
                confidence REAL NOT NULL,
                context_before TEXT NOT NULL,
                context_after TEXT NOT NULL,
                group_id TEXT,
                group_index INTEGER,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY(group_id) REFERENCES element_groups(id) ON DELETE CASCADE
            );
            CREATE INDEX IF NOT EXISTS idx_elements_file_line
                ON elements(source_file, source_line);
            CREATE INDEX IF NOT EXISTS idx_elements_group
                ON elements(group_id, group_index);
            """
        )
        self._db.commit()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            yield self._db
            self._db.commit()
        except Exception:
            self._db.rollback()
            raise

    # Sections ------------------------------------------------------------------------
    def save_sections(self, sections: Sequence[SectionGroup]) -> List[ElementGroup]:
        """Persist analysis output; each section becomes a group with indexed members."""
        groups: list[ElementGroup] = []
        for section in sections:
            group = ElementGroup(
                id=_new_id(),
                name=section.name,
                description=section.description,
                source_file=section.source_file,
                start_line=section.start_line,
                end_line=section.end_line,
                item_count=len(section.elements),
            )
            self.save_group(group)
            for index, member in enumerate(section.elements):
                self.save_element(
                    EditableElement(
                        id=_new_id(),
                        name=member.name,
                        type=member.type,
                        kind=ElementType.classify(member.type),
                        source_file=member.file_path,
                        source_line=member.line,
                        current_value=member.current_value,
                        href=member.href,
                        confidence=member.confidence,
                        context_before=list(member.context_before),
                        context_after=list(member.context_after),
                        group_id=group.id,
                        group_index=index,
                    )
                )
            groups.append(group)
        LOGGER.info("Saved %d sections to the catalog", len(groups))
        return groups

    # Groups --------------------------------------------------------------------------
    def save_group(self, group: ElementGroup) -> None:
        record = group.model_copy(update={"updated_at": utc_now()})
        with self._transaction():
            self._db.execute(
                """
                INSERT INTO element_groups (
                    id, name, description, source_file, start_line, end_line, item_count,
                    template, indentation, placeholders, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    description = excluded.description,
                    source_file = excluded.source_file,
                    start_line = excluded.start_line,
                    end_line = excluded.end_line,
                    item_count = excluded.item_count,
                    template = excluded.template,
                    indentation = excluded.indentation,
                    placeholders = excluded.placeholders,
                    updated_at = excluded.updated_at
                """,
                (
                    record.id,
                    record.name,
                    record.description,
                    record.source_file,
                    record.start_line,
                    record.end_line,
                    record.item_count,
                    record.template,
                    record.indentation,
                    json.dumps([placeholder.model_dump() for placeholder in record.placeholders]),
                    _as_iso(record.created_at),
                    _as_iso(record.updated_at),
                ),
            )

    def get_group(self, group_id: str) -> Optional[ElementGroup]:
        row = self._db.execute("SELECT * FROM element_groups WHERE id = ?", (group_id,)).fetchone()
        return self._row_to_group(row) if row else None

    def list_groups(self, *, source_file: Optional[str] = None) -> List[ElementGroup]:
        query = "SELECT * FROM element_groups"
        params: list[Any] = []
        if source_file:
            query += " WHERE source_file = ?"
            params.append(source_file)
        query += " ORDER BY source_file ASC, start_line ASC"
        return [self._row_to_group(row) for row in self._db.execute(query, params).fetchall()]

    def save_group_template(self, group_id: str, template: Template) -> ElementGroup:
        """Attach an extracted template to a stored group."""
        group = self.get_group(group_id)
        if group is None:
            raise KeyError(f"Unknown element group: {group_id}")
        updated = group.model_copy(
            update={
                "template": template.template_code,
                "indentation": template.container_info.indentation,
                "placeholders": [
                    Placeholder(
                        name=placeholder.name,
                        description=placeholder.description,
                        type=placeholder.type,
                        example=placeholder.example,
                    )
                    for placeholder in template.placeholders
                ],
            }
        )
        self.save_group(updated)
        return updated

    # Elements ------------------------------------------------------------------------
    def save_element(self, element: EditableElement) -> None:
        record = element.model_copy(update={"updated_at": utc_now()})
        with self._transaction():
            self._db.execute(
                """
                INSERT INTO elements (
                    id, name, type, kind, source_file, source_line, source_column, current_value,
                    href, confidence, context_before, context_after, group_id, group_index,
                    created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    type = excluded.type,
                    kind = excluded.kind,
                    source_file = excluded.source_file,
                    source_line = excluded.source_line,
                    source_column = excluded.source_column,
                    current_value = excluded.current_value,
                    href = excluded.href,
                    confidence = excluded.confidence,
                    context_before = excluded.context_before,
                    context_after = excluded.context_after,
                    group_id = excluded.group_id,
                    group_index = excluded.group_index,
                    updated_at = excluded.updated_at
                """,
                (
                    record.id,
                    record.name,
                    record.type,
                    record.kind.value,
                    record.source_file,
                    record.source_line,
                    record.source_column,
                    record.current_value,
                    record.href,
                    record.confidence,
                    json.dumps(record.context_before),
                    json.dumps(record.context_after),
                    record.group_id,
                    record.group_index,
                    _as_iso(record.created_at),
                    _as_iso(record.updated_at),
                ),
            )

    def get_element(self, element_id: str) -> Optional[EditableElement]:
        row = self._db.execute("SELECT * FROM elements WHERE id = ?", (element_id,)).fetchone()
        return self._row_to_element(row) if row else None

    def list_elements(
        self,
        *,
        source_file: Optional[str] = None,
        group_id: Optional[str] = None,
    ) -> List[EditableElement]:
        query = "SELECT * FROM elements"
        clauses = []
        params: List[Any] = []
        if source_file:
            clauses.append("source_file = ?")
            params.append(source_file)
        if group_id:
            clauses.append("group_id = ?")
            params.append(group_id)
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY source_file ASC, source_line ASC, group_index ASC"
        return [self._row_to_element(row) for row in self._db.execute(query, params).fetchall()]

    def apply_merged_edit(
        self, element_id: str, new_value: str, new_href: Optional[str] = None
    ) -> Optional[EditableElement]:
        """Record the value an element carries after its pull request merged."""
        element = self.get_element(element_id)
        if element is None:
            LOGGER.warning("Merged edit references unknown element %s", element_id)
            return None
        update: dict[str, Any] = {"current_value": new_value}
        if new_href:
            update["href"] = new_href
        updated = element.model_copy(update=update)
        self.save_element(updated)
        return updated

    # Row mapping ---------------------------------------------------------------------
    @staticmethod
    def _row_to_group(row: sqlite3.Row) -> ElementGroup:
        return ElementGroup(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            source_file=row["source_file"],
            start_line=row["start_line"],
            end_line=row["end_line"],
            item_count=row["item_count"],
            template=row["template"],
            indentation=row["indentation"],
            placeholders=[Placeholder(**item) for item in _load_json(row["placeholders"], default=[])],
            created_at=_from_iso(row["created_at"]),
            updated_at=_from_iso(row["updated_at"]),
        )

    @staticmethod
    def _row_to_element(row: sqlite3.Row) -> EditableElement:
        return EditableElement(
            id=row["id"],
            name=row["name"],
            type=row["type"],
            kind=row["kind"],
            source_file=row["source_file"],
            source_line=row["source_line"],
            source_column=row["source_column"],
            current_value=row["current_value"],
            href=row["href"],
            confidence=row["confidence"],
            context_before=_load_json(row["context_before"], default=[]),
            context_after=_load_json(row["context_after"], default=[]),
            group_id=row["group_id"],
            group_index=row["group_index"],
            created_at=_from_iso(row["created_at"]),
            updated_at=_from_iso(row["updated_at"]),
        )
