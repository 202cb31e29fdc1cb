"""SQLAlchemy table metadata for the AI Office store.

Two schemas live here: ``legacy_metadata`` describes the tables written by
earlier releases of the app (generic ``id`` keys, ``patients.name`` and chat
messages owned directly by a patient) and ``metadata`` describes the target
schema the PHP pages read after :mod:`aioffice.migrations` has run.
"""

from __future__ import annotations

from typing import Dict, List, Mapping

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    MetaData,
    Table,
    Text,
    Time,
)
from sqlalchemy.sql import text

SHADOW_SUFFIX = "_new"
DEFAULT_CONVERSATION_TITLE = "Previous Conversation"

_NOW = text("CURRENT_TIMESTAMP")

# ---------------------------------------------------------------------------
# Legacy schema
# ---------------------------------------------------------------------------

legacy_metadata = MetaData()

legacy_patients = Table(
    "patients",
    legacy_metadata,
    Column("user_id", Text, primary_key=True),
    Column("name", Text, nullable=False),
    Column("created_at", DateTime, server_default=_NOW),
    Column("updated_at", DateTime, server_default=_NOW),
)

legacy_medical_records = Table(
    "medical_records",
    legacy_metadata,
    Column("id", Text, primary_key=True),
    Column("user_id", Text, ForeignKey("patients.user_id"), nullable=False),
    Column("record_title", Text),
    Column("record_type", Text),
    Column("record_date", Date),
    Column("content", Text, nullable=False),
    Column("source_filename", Text),
    Column("created_at", DateTime, server_default=_NOW),
)

legacy_appointments = Table(
    "appointments",
    legacy_metadata,
    Column("id", Text, primary_key=True),
    Column("user_id", Text, ForeignKey("patients.user_id"), nullable=False),
    Column("doctor_name", Text, nullable=False),
    Column("appointment_date", Date, nullable=False),
    Column("appointment_time", Time),
    Column("appointment_datetime_utc", DateTime),
    Column("appointment_type", Text),
    Column("location", Text),
    Column("notes", Text),
    Column("status", Text, server_default=text("'scheduled'")),
    Column("created_at", DateTime, server_default=_NOW),
    Column("updated_at", DateTime, server_default=_NOW),
)

legacy_chat_messages = Table(
    "chat_messages",
    legacy_metadata,
    Column("id", Text, primary_key=True),
    Column("user_id", Text, ForeignKey("patients.user_id"), nullable=False),
    Column("role", Text),
    Column("message", Text, nullable=False),
    Column("timestamp", DateTime, server_default=_NOW),
)

LEGACY_TABLES: List[Table] = [
    legacy_patients,
    legacy_medical_records,
    legacy_appointments,
    legacy_chat_messages,
]

# ---------------------------------------------------------------------------
# Target schema
# ---------------------------------------------------------------------------

metadata = MetaData()

patients = Table(
    "patients",
    metadata,
    Column("user_id", Text, primary_key=True),
    Column("full_name", Text, nullable=False),
    Column("created_at", DateTime, server_default=_NOW),
    Column("updated_at", DateTime, server_default=_NOW),
)

medical_records = Table(
    "medical_records",
    metadata,
    Column("record_id", Text, primary_key=True),
    Column("user_id", Text, ForeignKey("patients.user_id"), nullable=False),
    Column("record_title", Text),
    Column("record_type", Text),
    Column("record_date", Date),
    Column("content", Text, nullable=False),
    Column("source_filename", Text),
    Column("created_at", DateTime, server_default=_NOW),
)

appointments = Table(
    "appointments",
    metadata,
    Column("appointment_id", Text, primary_key=True),
    Column("user_id", Text, ForeignKey("patients.user_id"), nullable=False),
    Column("doctor_name", Text, nullable=False),
    Column("appointment_date", Date, nullable=False),
    Column("appointment_time", Time),
    Column("appointment_datetime_utc", DateTime),
    Column("appointment_type", Text),
    Column("location", Text),
    Column("notes", Text),
    Column("status", Text, server_default=text("'scheduled'")),
    Column("created_at", DateTime, server_default=_NOW),
    Column("updated_at", DateTime, server_default=_NOW),
)

conversations = Table(
    "conversations",
    metadata,
    Column("conversation_id", Text, primary_key=True),
    Column("user_id", Text, ForeignKey("patients.user_id"), nullable=False),
    Column("title", Text, nullable=False),
    Column("created_at", DateTime, server_default=_NOW),
    Column("updated_at", DateTime, server_default=_NOW),
)

chat_messages = Table(
    "chat_messages",
    metadata,
    Column("message_id", Text, primary_key=True),
    Column(
        "conversation_id",
        Text,
        ForeignKey("conversations.conversation_id"),
        nullable=False,
    ),
    Column("role", Text),
    Column("message", Text, nullable=False),
    Column("timestamp", DateTime, server_default=_NOW),
    CheckConstraint("role IN ('patient', 'assistant')"),
)

# Dependency order: parents before children.
MIGRATED_TABLES: List[Table] = [
    patients,
    medical_records,
    appointments,
    conversations,
    chat_messages,
]

TABLES_BY_NAME: Dict[str, Table] = {table.name: table for table in MIGRATED_TABLES}

# Target column -> legacy column for the tables copied with renames only.
COLUMN_RENAMES: Mapping[str, Mapping[str, str]] = {
    "patients": {"full_name": "name"},
    "medical_records": {"record_id": "id"},
    "appointments": {"appointment_id": "id"},
}


def shadow_name(name: str) -> str:
    """Return the name a table is built under before it replaces ``name``."""

    return f"{name}{SHADOW_SUFFIX}"


def shadow_tables() -> Dict[str, Table]:
    """Return shadow copies of the target tables keyed by final table name.

    The copies live in a private ``MetaData`` that also holds the target
    tables under their final names, so foreign keys keep referring to
    ``patients`` and ``conversations`` rather than to the shadow names.
    """

    shadow_meta = MetaData()
    for table in MIGRATED_TABLES:
        table.to_metadata(shadow_meta)
    return {
        table.name: table.to_metadata(shadow_meta, name=shadow_name(table.name))
        for table in MIGRATED_TABLES
    }


__all__ = [
    "COLUMN_RENAMES",
    "DEFAULT_CONVERSATION_TITLE",
    "LEGACY_TABLES",
    "MIGRATED_TABLES",
    "SHADOW_SUFFIX",
    "TABLES_BY_NAME",
    "appointments",
    "chat_messages",
    "conversations",
    "legacy_appointments",
    "legacy_chat_messages",
    "legacy_medical_records",
    "legacy_metadata",
    "legacy_patients",
    "medical_records",
    "metadata",
    "patients",
    "shadow_name",
    "shadow_tables",
]
