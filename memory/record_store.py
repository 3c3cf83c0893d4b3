"""Record store using SQLite for document pipeline persistence.

This module provides DatabaseRecordStore, which persists uploaded documents,
their extraction records, organization compliance rules, compliance results
and chat history. Structured values are stored as msgspec JSON columns.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

import msgspec
from loguru import logger

from clauseguard.config import Settings
from clauseguard.error_handling import StoreError, handle_errors
from clauseguard.models import (
    ChatMessage,
    ComplianceResult,
    ComplianceRule,
    ContractDocument,
    ExtractionRecord,
)


def _encode(value) -> str:
    return msgspec.json.encode(value).decode()


class DatabaseRecordStore:
    """SQLite-backed persistence for documents, records, rules, results and chat.

    Each call opens its own connection, so the store can be shared between
    request handlers and background analysis threads.
    """

    def __init__(self, db_path: str = "clauseguard.db"):
        """Initialize the record store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._record_decoder = msgspec.json.Decoder(ExtractionRecord)
        self._document_decoder = msgspec.json.Decoder(ContractDocument)
        self._rule_decoder = msgspec.json.Decoder(ComplianceRule)
        self._result_decoder = msgspec.json.Decoder(ComplianceResult)
        self._chat_decoder = msgspec.json.Decoder(ChatMessage)
        self._ensure_database_exists()
        logger.info(f"DatabaseRecordStore initialized with db_path={db_path}")

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _ensure_database_exists(self):
        """Create database and tables if they don't exist."""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        with self._connect() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    document_id TEXT PRIMARY KEY,
                    organization_id TEXT NOT NULL,
                    uploaded_at TEXT NOT NULL,
                    data TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS extraction_records (
                    document_id TEXT PRIMARY KEY,
                    extraction_status TEXT NOT NULL,
                    data TEXT NOT NULL,
                    FOREIGN KEY (document_id) REFERENCES documents(document_id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS compliance_rules (
                    rule_id TEXT PRIMARY KEY,
                    organization_id TEXT NOT NULL,
                    enabled INTEGER NOT NULL,
                    created_at TEXT,
                    data TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS compliance_results (
                    document_id TEXT PRIMARY KEY,
                    organization_id TEXT NOT NULL,
                    analyzed_at TEXT NOT NULL,
                    data TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS chat_messages (
                    message_id TEXT PRIMARY KEY,
                    document_id TEXT NOT NULL,
                    conversation_id TEXT,
                    created_at TEXT NOT NULL,
                    data TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_documents_organization_id
                ON documents(organization_id)
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_rules_organization_id
                ON compliance_rules(organization_id)
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_chat_document_id
                ON chat_messages(document_id, created_at)
            """)

            logger.debug("Database schema initialized successfully")

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    @handle_errors(StoreError)
    def save_document(self, document: ContractDocument) -> ContractDocument:
        with self._connect() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO documents (document_id, organization_id, uploaded_at, data)
                VALUES (?, ?, ?, ?)
            """, (
                document.document_id,
                document.organization_id,
                document.uploaded_at.isoformat(),
                _encode(document)
            ))
        return document

    @handle_errors(StoreError)
    def get_document(self, document_id: str) -> Optional[ContractDocument]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT data FROM documents WHERE document_id = ?", (document_id,)
            ).fetchone()
        if row is None:
            return None
        return self._document_decoder.decode(row[0])

    @handle_errors(StoreError)
    def list_documents(self, organization_id: Optional[str] = None) -> List[ContractDocument]:
        with self._connect() as conn:
            if organization_id:
                rows = conn.execute(
                    "SELECT data FROM documents WHERE organization_id = ? ORDER BY uploaded_at DESC",
                    (organization_id,)
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT data FROM documents ORDER BY uploaded_at DESC"
                ).fetchall()
        return [self._document_decoder.decode(row[0]) for row in rows]

    @handle_errors(StoreError)
    def delete_document(self, document_id: str) -> bool:
        """Delete a document together with its record, result and chat history.

        Returns:
            True if the document existed
        """
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM chat_messages WHERE document_id = ?", (document_id,))
            cursor.execute("DELETE FROM compliance_results WHERE document_id = ?", (document_id,))
            cursor.execute("DELETE FROM extraction_records WHERE document_id = ?", (document_id,))
            cursor.execute("DELETE FROM documents WHERE document_id = ?", (document_id,))
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info(f"Document deleted: {document_id}")
        return deleted

    # ------------------------------------------------------------------
    # Extraction records
    # ------------------------------------------------------------------

    @handle_errors(StoreError)
    def save_record(self, record: ExtractionRecord) -> ExtractionRecord:
        with self._connect() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO extraction_records (document_id, extraction_status, data)
                VALUES (?, ?, ?)
            """, (record.document_id, record.extraction_status, _encode(record)))

        logger.debug(
            f"Extraction record saved: {record.document_id}",
            status=record.extraction_status
        )
        return record

    @handle_errors(StoreError)
    def get_record(self, document_id: str) -> Optional[ExtractionRecord]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT data FROM extraction_records WHERE document_id = ?", (document_id,)
            ).fetchone()
        if row is None:
            return None
        return self._record_decoder.decode(row[0])

    # ------------------------------------------------------------------
    # Compliance rules
    # ------------------------------------------------------------------

    @handle_errors(StoreError)
    def save_rule(self, rule: ComplianceRule) -> ComplianceRule:
        with self._connect() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO compliance_rules (rule_id, organization_id, enabled, created_at, data)
                VALUES (?, ?, ?, ?, ?)
            """, (
                rule.rule_id,
                rule.organization_id,
                1 if rule.enabled else 0,
                rule.created_at.isoformat() if rule.created_at else None,
                _encode(rule)
            ))
        return rule

    @handle_errors(StoreError)
    def get_rule(self, rule_id: str) -> Optional[ComplianceRule]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT data FROM compliance_rules WHERE rule_id = ?", (rule_id,)
            ).fetchone()
        if row is None:
            return None
        return self._rule_decoder.decode(row[0])

    @handle_errors(StoreError)
    def list_rules(self, organization_id: str, enabled_only: bool = False) -> List[ComplianceRule]:
        query = "SELECT data FROM compliance_rules WHERE organization_id = ?"
        if enabled_only:
            query += " AND enabled = 1"
        query += " ORDER BY created_at"

        with self._connect() as conn:
            rows = conn.execute(query, (organization_id,)).fetchall()
        return [self._rule_decoder.decode(row[0]) for row in rows]

    @handle_errors(StoreError)
    def delete_rule(self, rule_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM compliance_rules WHERE rule_id = ?", (rule_id,))
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Compliance results
    # ------------------------------------------------------------------

    @handle_errors(StoreError)
    def replace_compliance_result(self, result: ComplianceResult) -> ComplianceResult:
        """Delete any previous result for the document, then insert this one."""
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM compliance_results WHERE document_id = ?", (result.document_id,)
            )
            conn.execute("""
                INSERT INTO compliance_results (document_id, organization_id, analyzed_at, data)
                VALUES (?, ?, ?, ?)
            """, (
                result.document_id,
                result.organization_id,
                result.analyzed_at.isoformat(),
                _encode(result)
            ))

        logger.info(
            f"Compliance result stored for {result.document_id}",
            score=result.score,
            passed=result.passed
        )
        return result

    @handle_errors(StoreError)
    def get_compliance_result(self, document_id: str) -> Optional[ComplianceResult]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT data FROM compliance_results WHERE document_id = ?", (document_id,)
            ).fetchone()
        if row is None:
            return None
        return self._result_decoder.decode(row[0])

    @handle_errors(StoreError)
    def list_compliance_results(self, organization_id: str) -> List[ComplianceResult]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT data FROM compliance_results WHERE organization_id = ?",
                (organization_id,)
            ).fetchall()
        return [self._result_decoder.decode(row[0]) for row in rows]

    # ------------------------------------------------------------------
    # Chat history
    # ------------------------------------------------------------------

    @handle_errors(StoreError)
    def save_chat_message(self, message: ChatMessage) -> ChatMessage:
        with self._connect() as conn:
            conn.execute("""
                INSERT INTO chat_messages (message_id, document_id, conversation_id, created_at, data)
                VALUES (?, ?, ?, ?, ?)
            """, (
                message.message_id,
                message.document_id,
                message.conversation_id,
                message.created_at.isoformat(),
                _encode(message)
            ))
        return message

    @handle_errors(StoreError)
    def get_chat_message(self, message_id: str) -> Optional[ChatMessage]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT data FROM chat_messages WHERE message_id = ?", (message_id,)
            ).fetchone()
        if row is None:
            return None
        return self._chat_decoder.decode(row[0])

    @handle_errors(StoreError)
    def list_chat_messages(
        self,
        document_id: str,
        conversation_id: Optional[str] = None,
        limit: int = 50
    ) -> List[ChatMessage]:
        """Chat history for a document, oldest first."""
        query = "SELECT data FROM chat_messages WHERE document_id = ?"
        params: list = [document_id]
        if conversation_id:
            query += " AND conversation_id = ?"
            params.append(conversation_id)
        query += " ORDER BY created_at ASC LIMIT ?"
        params.append(limit)

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._chat_decoder.decode(row[0]) for row in rows]

    @handle_errors(StoreError)
    def delete_chat_message(self, message_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM chat_messages WHERE message_id = ?", (message_id,))
            return cursor.rowcount > 0

    @handle_errors(StoreError)
    def clear_chat_history(self, document_id: str) -> int:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM chat_messages WHERE document_id = ?", (document_id,))
            deleted = cursor.rowcount

        logger.info(f"Cleared {deleted} chat messages for {document_id}")
        return deleted


def create_record_store(settings: Settings) -> DatabaseRecordStore:
    """Factory function to create a record store from settings."""
    return DatabaseRecordStore(db_path=settings.db_path)
