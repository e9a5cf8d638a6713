"""Audit trail recording and querying."""

from .logger import (
    AuditEvent,
    AuditFilters,
    AuditPage,
    export,
    hash_payload,
    purge_expired,
    purge_system_expired,
    query,
    record,
    serialize_entry,
    summary,
)

__all__ = [
    "AuditEvent",
    "AuditFilters",
    "AuditPage",
    "export",
    "hash_payload",
    "purge_expired",
    "purge_system_expired",
    "query",
    "record",
    "serialize_entry",
    "summary",
]
