"""Post-migration checks for an AI Office store.

Each check returns a :class:`CheckOutcome`; the migrate command prints them
after a committed migration.  They are advisory: a failed check is reported
to the operator but does not undo the migration.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Union

import sqlalchemy as sa
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError
from termcolor import colored

from aioffice import models
from aioffice.config import DEFAULT_LOCK_TIMEOUT
from aioffice.db import StoreNotFoundError, create_store_engine, require_store
from aioffice.migrations import MigrationStats


@dataclass
class CheckOutcome:
    """One post-migration check and what it found in the store."""

    label: str
    ok: bool
    details: Optional[str] = None

    @property
    def status(self) -> str:
        return "OK" if self.ok else "FAIL"

    def render(self) -> str:
        head = f"[{colored(self.status, 'green' if self.ok else 'red')}] {self.label}"
        return f"{head}: {self.details}" if self.details else head


def check_target_tables(conn: Connection) -> CheckOutcome:
    inspector = sa.inspect(conn)
    existing = set(inspector.get_table_names())
    problems: List[str] = []
    for table in models.MIGRATED_TABLES:
        if table.name not in existing:
            problems.append(f"{table.name} missing")
            continue
        present = {column["name"] for column in inspector.get_columns(table.name)}
        absent = [name for name in table.c.keys() if name not in present]
        if absent:
            problems.append(f"{table.name} lacks {', '.join(absent)}")
    leftovers = sorted(
        name for name in existing if name.endswith(models.SHADOW_SUFFIX)
        and name[: -len(models.SHADOW_SUFFIX)] in models.TABLES_BY_NAME
    )
    if leftovers:
        problems.append(f"shadow tables left behind: {', '.join(leftovers)}")
    if problems:
        return CheckOutcome("Target schema", False, "; ".join(problems))
    return CheckOutcome("Target schema", True, f"{len(models.MIGRATED_TABLES)} tables present")


def count_rows(conn: Connection, tables: Sequence[sa.Table]) -> Dict[str, int]:
    return {
        table.name: conn.scalar(sa.select(sa.func.count()).select_from(table)) or 0
        for table in tables
    }


def check_row_counts(stats: MigrationStats, conn: Connection) -> List[CheckOutcome]:
    """Compare the legacy row counts recorded during migration with the store."""

    counts = count_rows(conn, models.MIGRATED_TABLES)
    outcomes: List[CheckOutcome] = []
    for name in ("patients", "medical_records", "appointments", "chat_messages"):
        before = stats.legacy_rows.get(name, 0)
        after = counts[name]
        outcomes.append(
            CheckOutcome(f"Row count {name}", before == after, f"{before} -> {after}")
        )
    conversations = counts["conversations"]
    outcomes.append(
        CheckOutcome(
            "Conversations per chat owner",
            conversations == stats.legacy_chat_owners,
            f"{stats.legacy_chat_owners} owner(s), {conversations} conversation(s)",
        )
    )
    return outcomes


def _orphans(conn: Connection, child: sa.Table, parent: sa.Table, column: str) -> int:
    key = parent.c[column]
    query = (
        sa.select(sa.func.count())
        .select_from(child.outerjoin(parent, child.c[column] == key))
        .where(key.is_(None))
    )
    return conn.scalar(query) or 0


def check_referential_integrity(conn: Connection) -> CheckOutcome:
    relations = [
        (models.medical_records, models.patients, "user_id"),
        (models.appointments, models.patients, "user_id"),
        (models.conversations, models.patients, "user_id"),
        (models.chat_messages, models.conversations, "conversation_id"),
    ]
    problems = []
    for child, parent, column in relations:
        orphans = _orphans(conn, child, parent, column)
        if orphans:
            problems.append(f"{orphans} {child.name} row(s) without {parent.name}")
    if problems:
        return CheckOutcome("Referential integrity", False, "; ".join(problems))
    return CheckOutcome("Referential integrity", True, "every owner key resolves")


def verify_store(
    db_path: Union[str, os.PathLike],
    stats: Optional[MigrationStats] = None,
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
) -> List[CheckOutcome]:
    """Run the post-migration checks against the store at ``db_path``."""

    try:
        path = require_store(db_path)
    except StoreNotFoundError as exc:
        return [CheckOutcome("Store present", False, str(exc))]

    engine = create_store_engine(path, lock_timeout=lock_timeout, begin_mode="DEFERRED")
    try:
        with engine.connect() as conn:
            outcomes = [check_target_tables(conn)]
            if not outcomes[0].ok:
                return outcomes
            if stats is not None:
                outcomes.extend(check_row_counts(stats, conn))
            outcomes.append(check_referential_integrity(conn))
            return outcomes
    except SQLAlchemyError as exc:
        return [CheckOutcome("Store readable", False, str(exc))]
    finally:
        engine.dispose()
