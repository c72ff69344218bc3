"""Generic row storage, object storage and search over the knowledge base"""

import json
import logging
import sqlite3
from pathlib import Path, PurePosixPath
from typing import List, Dict, Any, Optional, Union

from ..config import KBConfig
from ..errors import PersistenceError
from .database import DatabaseManager, DatabaseSchema

logger = logging.getLogger(__name__)


DEFAULT_SEARCH_LIMIT = 10
MAX_SEARCH_LIMIT = 50

TITLE_MATCH_SCORE = 3.0
CONTENT_MATCH_SCORE = 1.0
TAG_MATCH_SCORE = 2.0
MIN_RELEVANCE = 0.1


def _escape_like(value: str) -> str:
    """Escape LIKE wildcards so the value matches literally"""
    return value.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


class ObjectStore:
    """Stores uploaded binaries under a directory, addressed by relative path"""

    def __init__(self, root: Path):
        self.root = Path(root)

    def _resolve(self, path: str) -> Path:
        relative = PurePosixPath(path)
        if relative.is_absolute() or '..' in relative.parts or not relative.parts:
            raise PersistenceError(f"Invalid object path: {path}")
        return self.root.joinpath(*relative.parts)

    def upload_binary(self, path: str, data: bytes) -> None:
        """Write a binary object, replacing any existing object at the path"""
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise PersistenceError(f"Failed to upload {path}: {e}", original_error=e)
        logger.debug(f"Stored {len(data)} bytes at {path}")

    def read_binary(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except OSError as e:
            raise PersistenceError(f"Failed to read {path}: {e}", original_error=e)

    def remove_binary(self, path: str) -> bool:
        target = self._resolve(path)
        if not target.exists():
            return False
        try:
            target.unlink()
        except OSError as e:
            raise PersistenceError(f"Failed to remove {path}: {e}", original_error=e)
        return True


class KnowledgeStore:
    """Insert/update/select/delete over the knowledge-base tables"""

    def __init__(self, config: KBConfig):
        self.config = config
        self.db_manager = DatabaseManager(config)
        self.objects = ObjectStore(config.objects_path)
        self._columns: Dict[str, List[str]] = {}
        self._ensure_initialized()

    def _ensure_initialized(self) -> None:
        """Ensure database is initialized"""
        if self.db_manager.get_schema_version() is None:
            self.db_manager.initialize_database()

    def upload_binary(self, path: str, data: bytes) -> None:
        self.objects.upload_binary(path, data)

    def insert_rows(self, table: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Insert rows into a table in a single transaction

        Args:
            table: Table name
            rows: Column/value mappings; list and dict values of JSON columns are encoded

        Returns:
            The inserted rows as stored, including generated ids
        """
        if not rows:
            return []

        try:
            with self.db_manager.get_connection() as conn:
                ids = []
                for row in rows:
                    encoded = self._encode(table, row)
                    columns = ', '.join(encoded)
                    placeholders = ', '.join('?' for _ in encoded)
                    cursor = conn.execute(
                        f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
                        list(encoded.values())
                    )
                    ids.append(cursor.lastrowid)
                conn.commit()

                inserted = []
                for row_id in ids:
                    cursor = conn.execute(f"SELECT * FROM {table} WHERE id = ?", (row_id,))
                    inserted.append(self._decode(table, cursor.fetchone()))

            logger.debug(f"Inserted {len(inserted)} rows into {table}")
            return inserted

        except sqlite3.Error as e:
            logger.error(f"Failed to insert into {table}: {e}")
            raise PersistenceError(f"Failed to insert into {table}: {e}", original_error=e)

    def update_row(self, table: str, row_id: int, patch: Dict[str, Any]) -> bool:
        """Update one row; returns False if no row has the id"""
        if not patch:
            return True

        encoded = self._encode(table, patch)
        set_clause = ', '.join(f"{column} = ?" for column in encoded)

        try:
            with self.db_manager.get_connection() as conn:
                cursor = conn.execute(
                    f"UPDATE {table} SET {set_clause} WHERE id = ?",
                    list(encoded.values()) + [row_id]
                )
                conn.commit()
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            logger.error(f"Failed to update {table} row {row_id}: {e}")
            raise PersistenceError(f"Failed to update {table} row {row_id}: {e}", original_error=e)

    def select_rows(self, table: str, filters: Optional[Dict[str, Any]] = None,
                    order_by: Optional[str] = None, descending: bool = False,
                    limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Select rows matching all equality filters"""
        filters = filters or {}
        self._check_columns(table, list(filters) + ([order_by] if order_by else []))

        where_clauses = []
        params = []
        for column, value in filters.items():
            if value is None:
                where_clauses.append(f"{column} IS NULL")
            else:
                where_clauses.append(f"{column} = ?")
                params.append(value)

        query = f"SELECT * FROM {table}"
        if where_clauses:
            query += " WHERE " + " AND ".join(where_clauses)
        if order_by:
            direction = "DESC" if descending else "ASC"
            query += f" ORDER BY {order_by} {direction}, id {direction}"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        try:
            with self.db_manager.get_connection() as conn:
                cursor = conn.execute(query, params)
                return [self._decode(table, row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            logger.error(f"Failed to select from {table}: {e}")
            raise PersistenceError(f"Failed to select from {table}: {e}", original_error=e)

    def delete_row(self, table: str, row_id: int) -> bool:
        """Delete one row, cascading to dependent rows; returns False if absent"""
        self._check_columns(table, [])
        try:
            with self.db_manager.get_connection() as conn:
                cursor = conn.execute(f"DELETE FROM {table} WHERE id = ?", (row_id,))
                conn.commit()
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            logger.error(f"Failed to delete {table} row {row_id}: {e}")
            raise PersistenceError(f"Failed to delete {table} row {row_id}: {e}", original_error=e)

    def get_entry(self, entry_id: int) -> Optional[Dict[str, Any]]:
        rows = self.select_rows('knowledge_base', {'id': entry_id})
        return rows[0] if rows else None

    def search_entries(self, query: Optional[str] = None, category: Optional[str] = None,
                       tags: Optional[List[str]] = None,
                       limit: int = DEFAULT_SEARCH_LIMIT) -> List[Dict[str, Any]]:
        """
        Search knowledge entries

        Args:
            query: Case-insensitive substring matched against title or content
            category: Exact category
            tags: Entries must share at least one tag
            limit: Maximum hits, capped at MAX_SEARCH_LIMIT

        Returns:
            Matching entries, most recently updated first, each with a 'relevance' score
        """
        limit = max(1, min(limit or DEFAULT_SEARCH_LIMIT, MAX_SEARCH_LIMIT))

        where_clauses = []
        params: List[Union[str, int]] = []
        if query:
            where_clauses.append("(title LIKE ? ESCAPE '\\' OR content LIKE ? ESCAPE '\\')")
            pattern = f"%{_escape_like(query)}%"
            params.extend([pattern, pattern])
        if category:
            where_clauses.append("category = ?")
            params.append(category)

        sql = "SELECT * FROM knowledge_base"
        if where_clauses:
            sql += " WHERE " + " AND ".join(where_clauses)
        sql += " ORDER BY updated_at DESC, id DESC"

        try:
            with self.db_manager.get_connection() as conn:
                rows = [self._decode('knowledge_base', row) for row in conn.execute(sql, params)]
        except sqlite3.Error as e:
            logger.error(f"Knowledge base search failed: {e}")
            raise PersistenceError(f"Knowledge base search failed: {e}", original_error=e)

        wanted_tags = set(tags or [])
        results = []
        for row in rows:
            if wanted_tags and not wanted_tags.intersection(row.get('tags') or []):
                continue
            row['relevance'] = self._relevance(row, query, wanted_tags)
            results.append(row)
            if len(results) >= limit:
                break

        logger.debug(f"Search returned {len(results)} entries")
        return results

    def list_categories(self) -> List[str]:
        try:
            with self.db_manager.get_connection() as conn:
                cursor = conn.execute("SELECT DISTINCT category FROM knowledge_base ORDER BY category")
                return [row['category'] for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to list categories: {e}", original_error=e)

    def list_tags(self) -> List[str]:
        tags = set()
        for row in self.select_rows('knowledge_base'):
            tags.update(row.get('tags') or [])
        return sorted(tags)

    def _relevance(self, row: Dict[str, Any], query: Optional[str], wanted_tags: set) -> float:
        score = 0.0
        if query:
            needle = query.lower()
            if needle in (row.get('title') or '').lower():
                score += TITLE_MATCH_SCORE
            if needle in (row.get('content') or '').lower():
                score += CONTENT_MATCH_SCORE
        score += TAG_MATCH_SCORE * len(wanted_tags.intersection(row.get('tags') or []))
        return max(score, MIN_RELEVANCE)

    def _check_columns(self, table: str, columns: List[str]) -> None:
        if table not in DatabaseSchema.TABLES:
            raise PersistenceError(f"Unknown table: {table}")
        if table not in self._columns:
            self._columns[table] = self.db_manager.get_table_columns(table)
        unknown = [column for column in columns if column not in self._columns[table]]
        if unknown:
            raise PersistenceError(f"Unknown columns for {table}: {', '.join(unknown)}")

    def _encode(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        self._check_columns(table, list(row))
        json_columns = DatabaseSchema.JSON_COLUMNS.get(table, ())
        encoded = {}
        for column, value in row.items():
            if column in json_columns and value is not None:
                value = json.dumps(value, ensure_ascii=False)
            encoded[column] = value
        return encoded

    def _decode(self, table: str, row: Optional[sqlite3.Row]) -> Dict[str, Any]:
        result = dict(row) if row is not None else {}
        for column in DatabaseSchema.JSON_COLUMNS.get(table, ()):
            if result.get(column):
                try:
                    result[column] = json.loads(result[column])
                except (TypeError, ValueError):
                    logger.warning(f"Invalid JSON in {table}.{column} for row {result.get('id')}")
        for column in DatabaseSchema.BOOLEAN_COLUMNS.get(table, ()):
            if column in result:
                result[column] = bool(result[column])
        return result
