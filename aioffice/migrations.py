"""Rewrite a legacy AI Office store into the current schema.

The legacy store keys every table on a generic ``id``, keeps the patient's
name in ``patients.name`` and attaches chat messages straight to a patient.
The current schema renames those keys, stores ``full_name`` and groups chat
messages under ``conversations``.  :func:`migrate_store` performs the rewrite
on a connection that is already inside an exclusive transaction;
:func:`run_migration` owns the transaction and turns every outcome into a
:class:`MigrationResult`.
"""

from __future__ import annotations

import os
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

import sqlalchemy as sa
import structlog
from sqlalchemy.engine import Connection
from sqlalchemy.schema import CreateTable, DropTable

from aioffice import models
from aioffice.config import DEFAULT_LOCK_TIMEOUT
from aioffice.db import (
    StoreNotFoundError,
    create_store_engine,
    require_store,
    store_transaction,
)

logger = structlog.get_logger(__name__)

ConversationIdFactory = Callable[[str], str]
ProgressCallback = Callable[[str], None]


class MigrationError(Exception):
    """Base class for failures detected by the migrator itself."""


class LegacySchemaError(MigrationError):
    """The store does not hold the legacy tables (or was already migrated)."""


class IntegrityCheckError(MigrationError):
    """Migrated rows reference parents that do not exist."""


def random_conversation_id(user_id: str) -> str:
    """Return 16 hex digits of a random UUID; ``user_id`` is not used."""

    return uuid.uuid4().hex[:16]


@dataclass
class MigrationStats:
    """Row counts read from the legacy tables and written to the new ones.

    ``conversations`` maps each prior chat owner to the conversation that
    now holds their messages.
    """

    legacy_rows: Dict[str, int] = field(default_factory=dict)
    legacy_chat_owners: int = 0
    rows_copied: Dict[str, int] = field(default_factory=dict)
    conversations: Dict[str, str] = field(default_factory=dict)

    @property
    def conversations_created(self) -> int:
        return len(self.conversations)


@dataclass
class MigrationResult:
    """Outcome of :func:`run_migration`."""

    ok: bool
    db_path: Path
    stats: Optional[MigrationStats] = None
    schema: List[str] = field(default_factory=list)
    error: Optional[BaseException] = None
    dry_run: bool = False

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def render_schema(self) -> str:
        return "\n".join(f"\n{statement};" for statement in self.schema)


class _DryRunRollback(Exception):
    def __init__(self, stats: MigrationStats, schema: List[str]) -> None:
        super().__init__("dry run")
        self.stats = stats
        self.schema = schema


def _noop(message: str) -> None:
    return None


def _quote(conn: Connection, name: str) -> str:
    return conn.dialect.identifier_preparer.quote(name)


def _count(conn: Connection, table: sa.Table) -> int:
    return conn.scalar(sa.select(sa.func.count()).select_from(table)) or 0


def dump_schema(conn: Connection) -> List[str]:
    """Return the ``CREATE TABLE`` statement of every table in the store."""

    rows = conn.execute(
        sa.text(
            "SELECT sql FROM sqlite_master "
            "WHERE type = 'table' AND sql IS NOT NULL ORDER BY name"
        )
    )
    return [row[0] for row in rows]


def inspect_legacy_schema(conn: Connection) -> None:
    """Raise :class:`LegacySchemaError` unless the legacy tables are present.

    Runs before any write.  A store that was already migrated fails here
    because ``patients.name`` and the generic ``id`` columns are gone.
    """

    inspector = sa.inspect(conn)
    existing = set(inspector.get_table_names())

    missing = [table.name for table in models.LEGACY_TABLES if table.name not in existing]
    if missing:
        raise LegacySchemaError(f"legacy tables missing: {', '.join(missing)}")

    for table in models.LEGACY_TABLES:
        present = {column["name"] for column in inspector.get_columns(table.name)}
        absent = [name for name in table.c.keys() if name not in present]
        if absent:
            raise LegacySchemaError(
                f"table {table.name} lacks legacy columns {', '.join(absent)}; "
                "has the store already been migrated?"
            )

    if models.conversations.name in existing:
        raise LegacySchemaError(
            "table conversations already exists; has the store already been migrated?"
        )


def _snapshot_legacy(conn: Connection, stats: MigrationStats) -> None:
    for table in models.LEGACY_TABLES:
        stats.legacy_rows[table.name] = _count(conn, table)
    owners = models.legacy_chat_messages.c.user_id
    stats.legacy_chat_owners = conn.scalar(sa.select(sa.func.count(owners.distinct()))) or 0


def _create_shadow_tables(conn: Connection, shadows: Dict[str, sa.Table]) -> None:
    for shadow in shadows.values():
        # A shadow left by an earlier attempt may already hold rows.
        conn.execute(DropTable(shadow, if_exists=True))
        conn.execute(CreateTable(shadow))
        logger.debug("shadow_table_created", table=shadow.name)


def _copy_flat_tables(
    conn: Connection, shadows: Dict[str, sa.Table], stats: MigrationStats
) -> None:
    legacy_by_name = {table.name: table for table in models.LEGACY_TABLES}
    for name, renames in models.COLUMN_RENAMES.items():
        shadow = shadows[name]
        legacy = legacy_by_name[name]
        target_columns = [column.name for column in shadow.columns]
        source_columns = [legacy.c[renames.get(column, column)] for column in target_columns]
        conn.execute(
            shadow.insert().from_select(target_columns, sa.select(*source_columns))
        )
        stats.rows_copied[name] = _count(conn, shadow)
        logger.debug("table_copied", table=name, rows=stats.rows_copied[name])


def _synthesise_conversations(
    conn: Connection,
    shadows: Dict[str, sa.Table],
    stats: MigrationStats,
    id_factory: ConversationIdFactory,
) -> None:
    legacy = models.legacy_chat_messages
    conversations = shadows[models.conversations.name]
    messages = shadows[models.chat_messages.name]

    owners = conn.execute(
        sa.select(legacy.c.user_id).distinct().order_by(legacy.c.user_id)
    ).scalars().all()

    for user_id in owners:
        conversation_id = id_factory(user_id)
        conn.execute(
            conversations.insert().values(
                conversation_id=conversation_id,
                user_id=user_id,
                title=models.DEFAULT_CONVERSATION_TITLE,
                created_at=sa.func.current_timestamp(),
            )
        )
        conn.execute(
            messages.insert().from_select(
                ["message_id", "conversation_id", "role", "message", "timestamp"],
                sa.select(
                    legacy.c.id,
                    sa.literal(conversation_id, sa.Text),
                    legacy.c.role,
                    legacy.c.message,
                    legacy.c.timestamp,
                ).where(legacy.c.user_id == user_id),
            )
        )
        stats.conversations[user_id] = conversation_id
        logger.debug("conversation_synthesised", user_id=user_id, conversation_id=conversation_id)

    stats.rows_copied[models.conversations.name] = _count(conn, conversations)
    stats.rows_copied[models.chat_messages.name] = _count(conn, messages)


def _drop_legacy_tables(conn: Connection) -> None:
    for table in reversed(models.LEGACY_TABLES):
        conn.execute(DropTable(table))


def _swap_shadow_tables(conn: Connection, shadows: Dict[str, sa.Table]) -> None:
    for name, shadow in shadows.items():
        conn.exec_driver_sql(
            f"ALTER TABLE {_quote(conn, shadow.name)} RENAME TO {_quote(conn, name)}"
        )


def _check_foreign_keys(conn: Connection) -> None:
    violations = []
    for table in models.MIGRATED_TABLES:
        rows = conn.exec_driver_sql(
            f"PRAGMA foreign_key_check({_quote(conn, table.name)})"
        ).fetchall()
        violations.extend(rows)
    if violations:
        sample = ", ".join(
            f"{row[0]} rowid {row[1]} -> {row[2]}" for row in violations[:5]
        )
        raise IntegrityCheckError(
            f"{len(violations)} foreign key violation(s) after migration: {sample}"
        )


def migrate_store(
    conn: Connection,
    *,
    id_factory: ConversationIdFactory = random_conversation_id,
    progress: ProgressCallback = _noop,
) -> MigrationStats:
    """Migrate the store behind ``conn`` in place.

    ``conn`` must already be inside the transaction that will be committed or
    rolled back as a unit; this function never commits.
    """

    stats = MigrationStats()
    inspect_legacy_schema(conn)
    _snapshot_legacy(conn, stats)
    shadows = models.shadow_tables()

    progress("Creating new tables with descriptive column names...")
    _create_shadow_tables(conn, shadows)

    progress("Migrating existing data...")
    _copy_flat_tables(conn, shadows, stats)

    progress("Creating default conversations for existing chat messages...")
    _synthesise_conversations(conn, shadows, stats, id_factory)

    progress("Replacing old tables with new schema...")
    _drop_legacy_tables(conn)
    _swap_shadow_tables(conn, shadows)
    _check_foreign_keys(conn)

    return stats


def run_migration(
    db_path: Union[str, os.PathLike],
    *,
    id_factory: ConversationIdFactory = random_conversation_id,
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
    progress: ProgressCallback = print,
    dry_run: bool = False,
) -> MigrationResult:
    """Migrate the store at ``db_path`` inside one exclusive transaction.

    Never raises for migration failures: the store is left exactly as it was
    and the returned result carries the error.  With ``dry_run`` every step
    runs and the transaction is then rolled back on purpose.
    """

    log = logger.bind(db_path=str(db_path), dry_run=dry_run)
    try:
        path = require_store(db_path)
    except StoreNotFoundError as exc:
        log.error("migration_store_missing")
        progress(str(exc))
        return MigrationResult(ok=False, db_path=Path(db_path), error=exc, dry_run=dry_run)

    engine = create_store_engine(path, lock_timeout=lock_timeout)
    try:
        with store_transaction(engine) as conn:
            stats = migrate_store(conn, id_factory=id_factory, progress=progress)
            schema = dump_schema(conn)
            if dry_run:
                raise _DryRunRollback(stats, schema)
    except _DryRunRollback as rollback:
        progress("Dry run finished; all changes rolled back.")
        log.info("migration_dry_run", rows=rollback.stats.rows_copied)
        return MigrationResult(
            ok=True, db_path=path, stats=rollback.stats, schema=rollback.schema, dry_run=True
        )
    except Exception as exc:
        log.error("migration_failed", error=str(exc), exc_info=True)
        progress(f"Migration failed: {exc}")
        return MigrationResult(ok=False, db_path=path, error=exc, dry_run=dry_run)
    finally:
        engine.dispose()

    progress("Migration completed successfully!")
    log.info(
        "migration_committed",
        rows=stats.rows_copied,
        conversations=stats.conversations_created,
    )
    return MigrationResult(ok=True, db_path=path, stats=stats, schema=schema)


__all__ = [
    "ConversationIdFactory",
    "IntegrityCheckError",
    "LegacySchemaError",
    "MigrationError",
    "MigrationResult",
    "MigrationStats",
    "StoreNotFoundError",
    "dump_schema",
    "inspect_legacy_schema",
    "migrate_store",
    "random_conversation_id",
    "run_migration",
]
