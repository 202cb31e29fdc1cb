"""Legacy store builders and sample rows shared by the tests."""

import sqlite3
from pathlib import Path
from typing import Dict, Iterable, List, Mapping

import sqlalchemy as sa

from aioffice import models


def insert_rows(db_path: Path, table: str, rows: Iterable[Mapping[str, object]]) -> None:
    rows = list(rows)
    if not rows:
        return
    columns = list(rows[0].keys())
    placeholders = ", ".join(f":{name}" for name in columns)
    conn = sqlite3.connect(db_path)
    try:
        conn.executemany(
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
            rows,
        )
        conn.commit()
    finally:
        conn.close()


def build_legacy_store(
    db_path: Path,
    patients: Iterable[Mapping[str, object]] = (),
    records: Iterable[Mapping[str, object]] = (),
    appointments: Iterable[Mapping[str, object]] = (),
    messages: Iterable[Mapping[str, object]] = (),
) -> Path:
    engine = sa.create_engine(f'sqlite:///{db_path}')
    with engine.begin() as conn:
        models.legacy_metadata.create_all(conn)
    engine.dispose()
    insert_rows(db_path, 'patients', patients)
    insert_rows(db_path, 'medical_records', records)
    insert_rows(db_path, 'appointments', appointments)
    insert_rows(db_path, 'chat_messages', messages)
    return db_path


def store_snapshot(db_path: Path) -> Dict[str, object]:
    """Return every table's DDL and rows so two states can be compared."""

    conn = sqlite3.connect(db_path)
    try:
        schema = sorted(
            (name, sql)
            for name, sql in conn.execute(
                "SELECT name, sql FROM sqlite_master WHERE type = 'table'"
            )
        )
        rows = {
            name: sorted(conn.execute(f'SELECT * FROM "{name}"').fetchall(), key=repr)
            for name, _ in schema
        }
    finally:
        conn.close()
    return {'schema': schema, 'rows': rows}


def fetch_all(db_path: Path, query: str, params=()) -> List[sqlite3.Row]:
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    try:
        return conn.execute(query, params).fetchall()
    finally:
        conn.close()


PATIENTS = [
    {'user_id': 'u1', 'name': 'Jane Doe', 'created_at': '2024-01-02 09:00:00', 'updated_at': '2024-01-02 09:00:00'},
    {'user_id': 'u2', 'name': 'John Roe', 'created_at': '2024-02-03 10:30:00', 'updated_at': '2024-03-01 08:15:00'},
    {'user_id': 'u3', 'name': 'Ann Poe', 'created_at': '2024-02-04 11:00:00', 'updated_at': '2024-02-04 11:00:00'},
]

RECORDS = [
    {
        'id': 'r1',
        'user_id': 'u1',
        'record_title': 'Blood panel',
        'record_type': 'lab',
        'record_date': '2024-01-05',
        'content': 'Cholesterol within range.',
        'source_filename': 'panel.pdf',
        'created_at': '2024-01-05 12:00:00',
    },
    {
        'id': 'r2',
        'user_id': 'u2',
        'record_title': 'X-ray',
        'record_type': 'imaging',
        'record_date': '2024-02-10',
        'content': 'No fracture.',
        'source_filename': None,
        'created_at': '2024-02-10 15:45:00',
    },
]

APPOINTMENTS = [
    {
        'id': 'a1',
        'user_id': 'u1',
        'doctor_name': 'Dr. Patel',
        'appointment_date': '2024-04-01',
        'appointment_time': '09:30',
        'appointment_datetime_utc': '2024-04-01 13:30:00',
        'appointment_type': 'checkup',
        'location': 'Room 4',
        'notes': 'Fasting required',
        'status': 'scheduled',
        'created_at': '2024-03-01 10:00:00',
        'updated_at': '2024-03-01 10:00:00',
    },
    {
        'id': 'a2',
        'user_id': 'u3',
        'doctor_name': 'Dr. Chen',
        'appointment_date': '2024-04-02',
        'appointment_time': '14:00',
        'appointment_datetime_utc': '2024-04-02 18:00:00',
        'appointment_type': 'follow-up',
        'location': 'Telehealth',
        'notes': None,
        'status': 'cancelled',
        'created_at': '2024-03-02 10:00:00',
        'updated_at': '2024-03-05 16:20:00',
    },
]

MESSAGES = [
    {'id': 'm1', 'user_id': 'u1', 'role': 'patient', 'message': 'Are my results back?', 'timestamp': '2024-01-06 08:00:00'},
    {'id': 'm2', 'user_id': 'u1', 'role': 'assistant', 'message': 'Yes, they look normal.', 'timestamp': '2024-01-06 08:00:05'},
    {'id': 'm3', 'user_id': 'u2', 'role': 'patient', 'message': 'Can I reschedule?', 'timestamp': '2024-02-11 17:00:00'},
]


class SequentialIds:
    """Deterministic conversation id factory recording who it was asked for."""

    def __init__(self, prefix: str = 'conv') -> None:
        self.prefix = prefix
        self.calls: List[str] = []

    def __call__(self, user_id: str) -> str:
        self.calls.append(user_id)
        return f'{self.prefix}-{len(self.calls):04d}'


