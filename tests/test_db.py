import sqlite3

import pytest
import sqlalchemy as sa

from aioffice.db import StoreNotFoundError, create_store_engine, require_store, store_transaction


def _tables(db_path):
    conn = sqlite3.connect(db_path)
    try:
        return {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
    finally:
        conn.close()


def test_require_store_rejects_missing_and_directories(tmp_path):
    with pytest.raises(StoreNotFoundError):
        require_store(tmp_path / 'nope.db')
    with pytest.raises(StoreNotFoundError):
        require_store(tmp_path)
    assert not (tmp_path / 'nope.db').exists()


def test_require_store_returns_path(tmp_path):
    db_path = tmp_path / 'store.db'
    sqlite3.connect(db_path).close()
    assert require_store(str(db_path)) == db_path


def test_invalid_begin_mode(tmp_path):
    with pytest.raises(ValueError):
        create_store_engine(tmp_path / 'store.db', begin_mode='SOMETIMES')


def test_transaction_commits_ddl(tmp_path):
    db_path = tmp_path / 'store.db'
    engine = create_store_engine(db_path)
    try:
        with store_transaction(engine) as conn:
            conn.exec_driver_sql('CREATE TABLE notes (id TEXT PRIMARY KEY)')
            conn.exec_driver_sql("INSERT INTO notes VALUES ('n1')")
    finally:
        engine.dispose()
    assert 'notes' in _tables(db_path)


def test_transaction_rolls_back_ddl_on_error(tmp_path):
    db_path = tmp_path / 'store.db'
    conn = sqlite3.connect(db_path)
    conn.execute('CREATE TABLE keep (id TEXT)')
    conn.commit()
    conn.close()

    engine = create_store_engine(db_path)
    try:
        with pytest.raises(RuntimeError):
            with store_transaction(engine) as tx:
                tx.exec_driver_sql('CREATE TABLE scratch (id TEXT)')
                tx.exec_driver_sql('DROP TABLE keep')
                tx.exec_driver_sql('ALTER TABLE scratch RENAME TO renamed')
                raise RuntimeError('boom')
    finally:
        engine.dispose()

    assert _tables(db_path) == {'keep'}


def test_foreign_keys_not_enforced_inside_transaction(tmp_path):
    db_path = tmp_path / 'store.db'
    engine = create_store_engine(db_path)
    try:
        with store_transaction(engine) as conn:
            assert conn.exec_driver_sql('PRAGMA foreign_keys').scalar() == 0
    finally:
        engine.dispose()


def test_exclusive_transaction_blocks_second_writer(tmp_path):
    db_path = tmp_path / 'store.db'
    sqlite3.connect(db_path).close()
    engine = create_store_engine(db_path)
    try:
        with store_transaction(engine) as conn:
            conn.exec_driver_sql('CREATE TABLE t (id TEXT)')
            other = sqlite3.connect(db_path, timeout=0.1)
            try:
                with pytest.raises(sqlite3.OperationalError, match='locked'):
                    other.execute("SELECT name FROM sqlite_master").fetchall()
            finally:
                other.close()
    finally:
        engine.dispose()


def test_deferred_engine_reads(tmp_path):
    db_path = tmp_path / 'store.db'
    conn = sqlite3.connect(db_path)
    conn.execute('CREATE TABLE t (id TEXT)')
    conn.execute("INSERT INTO t VALUES ('a')")
    conn.commit()
    conn.close()

    engine = create_store_engine(db_path, begin_mode='deferred')
    try:
        with engine.connect() as reader:
            assert reader.execute(sa.text('SELECT COUNT(*) FROM t')).scalar() == 1
    finally:
        engine.dispose()
