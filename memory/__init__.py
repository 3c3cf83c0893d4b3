"""Memory package for document pipeline persistence."""

from memory.record_store import DatabaseRecordStore, create_record_store

__all__ = [
    "DatabaseRecordStore",
    "create_record_store",
]
