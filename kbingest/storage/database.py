"""SQLite database schema and connection handling for the knowledge base"""

import sqlite3
import logging
from typing import Optional, List, Dict, Any
from contextlib import contextmanager

from ..config import KBConfig

logger = logging.getLogger(__name__)


class DatabaseSchema:
    """Database schema definitions"""

    SCHEMA_VERSION = 1

    TABLES = ('kb_documents', 'kb_processing_jobs', 'knowledge_base')

    # Columns stored as JSON text
    JSON_COLUMNS = {
        'kb_documents': ('analysis', 'processing_log'),
        'kb_processing_jobs': ('processing_config',),
        'knowledge_base': ('tags', 'keywords'),
    }

    BOOLEAN_COLUMNS = {
        'knowledge_base': ('ai_generated', 'is_approved'),
    }

    @staticmethod
    def get_create_tables_sql() -> List[str]:
        """Get SQL statements to create all tables"""
        return [
            # Uploaded documents and their extraction results
            """
            CREATE TABLE IF NOT EXISTS kb_documents (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                description TEXT,
                file_name TEXT NOT NULL,
                file_path TEXT NOT NULL,
                file_size INTEGER NOT NULL,
                mime_type TEXT NOT NULL,
                page_count INTEGER,
                extracted_text TEXT,
                extraction_method TEXT,
                analysis TEXT,  -- JSON DocumentAnalysis
                processing_log TEXT,  -- JSON list of log entries
                ai_processing_status TEXT NOT NULL DEFAULT 'pending',
                ai_processing_error TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
            """,

            # One row per processing run of a document
            """
            CREATE TABLE IF NOT EXISTS kb_processing_jobs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                document_id INTEGER NOT NULL,
                status TEXT NOT NULL,  -- 'processing', 'completed', 'failed'
                progress INTEGER NOT NULL DEFAULT 0,
                current_step TEXT,
                processing_config TEXT,  -- JSON options used for the run
                segmentation_method TEXT,
                total_tokens_used INTEGER DEFAULT 0,
                estimated_cost REAL DEFAULT 0,
                error_message TEXT,
                completed_at TIMESTAMP,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (document_id) REFERENCES kb_documents (id) ON DELETE CASCADE
            )
            """,

            # Knowledge entries awaiting or past review
            """
            CREATE TABLE IF NOT EXISTS knowledge_base (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                source_document_id INTEGER,
                title TEXT NOT NULL,
                content TEXT NOT NULL,
                category TEXT NOT NULL,
                subcategory TEXT,
                tags TEXT,  -- JSON list
                keywords TEXT,  -- JSON list
                priority INTEGER NOT NULL DEFAULT 5,
                confidence_score REAL NOT NULL,
                source TEXT NOT NULL,
                source_type TEXT,
                original_text TEXT,
                page_number INTEGER,
                page_reference TEXT,
                ai_generated BOOLEAN NOT NULL DEFAULT 0,
                is_approved BOOLEAN NOT NULL DEFAULT 0,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (source_document_id) REFERENCES kb_documents (id) ON DELETE CASCADE
            )
            """
        ]

    @staticmethod
    def get_create_indexes_sql() -> List[str]:
        """Get SQL statements to create indexes for efficient querying"""
        return [
            "CREATE INDEX IF NOT EXISTS idx_kb_documents_status ON kb_documents (ai_processing_status)",
            "CREATE INDEX IF NOT EXISTS idx_kb_jobs_document_id ON kb_processing_jobs (document_id)",
            "CREATE INDEX IF NOT EXISTS idx_knowledge_base_document ON knowledge_base (source_document_id)",
            "CREATE INDEX IF NOT EXISTS idx_knowledge_base_category ON knowledge_base (category)",
            "CREATE INDEX IF NOT EXISTS idx_knowledge_base_updated_at ON knowledge_base (updated_at)",
            "CREATE INDEX IF NOT EXISTS idx_knowledge_base_approved ON knowledge_base (is_approved)"
        ]

    @staticmethod
    def get_create_triggers_sql() -> List[str]:
        """Get SQL statements keeping updated_at current"""
        return [
            f"""
            CREATE TRIGGER IF NOT EXISTS update_{table}_timestamp
            AFTER UPDATE ON {table}
            WHEN NEW.updated_at = OLD.updated_at
            BEGIN
                UPDATE {table} SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
            END
            """
            for table in DatabaseSchema.TABLES
        ]


class DatabaseManager:
    """Manages SQLite database connections and schema operations"""

    def __init__(self, config: KBConfig):
        self.config = config
        self.db_path = config.database_path
        self._ensure_data_directory()

    def _ensure_data_directory(self) -> None:
        """Ensure the data directory exists"""
        self.config.data_path.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def get_connection(self):
        """Get a database connection with proper error handling"""
        conn = None
        try:
            conn = sqlite3.connect(
                self.db_path,
                timeout=30.0,
                check_same_thread=False
            )
            # Enable foreign key constraints
            conn.execute("PRAGMA foreign_keys = ON")
            # Set WAL mode for better concurrency
            conn.execute("PRAGMA journal_mode = WAL")
            # Row factory for dict-like access
            conn.row_factory = sqlite3.Row
            yield conn
        except sqlite3.Error as e:
            logger.error(f"Database error: {e}")
            if conn:
                conn.rollback()
            raise
        finally:
            if conn:
                conn.close()

    def initialize_database(self) -> None:
        """Initialize database with schema, indexes and triggers"""
        logger.info(f"Initializing database at {self.db_path}")

        with self.get_connection() as conn:
            try:
                for sql in DatabaseSchema.get_create_tables_sql():
                    conn.execute(sql)

                for sql in DatabaseSchema.get_create_indexes_sql():
                    conn.execute(sql)

                for sql in DatabaseSchema.get_create_triggers_sql():
                    conn.execute(sql)

                conn.execute("""
                    CREATE TABLE IF NOT EXISTS schema_version (
                        version INTEGER PRIMARY KEY,
                        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)

                conn.execute(
                    "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
                    (DatabaseSchema.SCHEMA_VERSION,)
                )

                conn.commit()
                logger.info("Database initialized successfully")

            except sqlite3.Error as e:
                logger.error(f"Failed to initialize database: {e}")
                conn.rollback()
                raise

    def get_schema_version(self) -> Optional[int]:
        """Get current schema version"""
        try:
            with self.get_connection() as conn:
                cursor = conn.execute("SELECT version FROM schema_version ORDER BY version DESC LIMIT 1")
                row = cursor.fetchone()
                return row[0] if row else None
        except sqlite3.Error:
            return None

    def get_table_columns(self, table: str) -> List[str]:
        """Get column names of a known table"""
        if table not in DatabaseSchema.TABLES:
            raise ValueError(f"Unknown table: {table}")

        with self.get_connection() as conn:
            cursor = conn.execute(f"PRAGMA table_info({table})")
            return [row['name'] for row in cursor.fetchall()]

    def check_database_integrity(self) -> bool:
        """Check database integrity"""
        try:
            with self.get_connection() as conn:
                cursor = conn.execute("PRAGMA integrity_check")
                result = cursor.fetchone()
                return result[0] == "ok" if result else False
        except sqlite3.Error as e:
            logger.error(f"Database integrity check failed: {e}")
            return False

    def get_database_stats(self) -> Dict[str, Any]:
        """Get database statistics"""
        try:
            with self.get_connection() as conn:
                stats = {}

                for table in DatabaseSchema.TABLES:
                    cursor = conn.execute(f"SELECT COUNT(*) FROM {table}")
                    stats[f"{table}_count"] = cursor.fetchone()[0]

                cursor = conn.execute("SELECT COUNT(*) FROM knowledge_base WHERE is_approved = 1")
                stats['approved_entries_count'] = cursor.fetchone()[0]

                cursor = conn.execute("PRAGMA page_count")
                page_count = cursor.fetchone()[0]
                cursor = conn.execute("PRAGMA page_size")
                page_size = cursor.fetchone()[0]
                stats['database_size_bytes'] = page_count * page_size

                stats['schema_version'] = self.get_schema_version()

                return stats
        except sqlite3.Error as e:
            logger.error(f"Failed to get database stats: {e}")
            return {}
