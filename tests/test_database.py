# test_database.py
"""Test the database layer"""

import pytest

from logwarden.core.database import Database
from logwarden.core.errors import PersistenceError


def test_users(memory_db):
    user = memory_db.create_user("a@example.com", "hash-a")
    assert user.id is not None
    assert user.role == "user"
    assert user.is_active
    assert user.last_login is None

    assert memory_db.get_user_by_email("a@example.com").id == user.id
    assert memory_db.get_user_by_email("nobody@example.com") is None

    with pytest.raises(ValueError):
        memory_db.create_user("a@example.com", "other")

    memory_db.update_last_login(user.id)
    assert memory_db.get_user(user.id).last_login is not None
    assert "password_hash" not in memory_db.get_user(user.id).public_dict()


def test_sessions(memory_db):
    user = memory_db.create_user("a@example.com", "hash-a")

    memory_db.create_session(user.id, "digest-1")
    assert memory_db.get_session_user("digest-1").id == user.id
    assert memory_db.get_session_user("unknown") is None

    assert memory_db.delete_session("digest-1") is True
    assert memory_db.get_session_user("digest-1") is None
    assert memory_db.delete_session("digest-1") is False


def test_expired_sessions(memory_db):
    user = memory_db.create_user("a@example.com", "hash-a")
    memory_db.create_session(user.id, "old", ttl_hours=-1)
    memory_db.create_session(user.id, "older", ttl_hours=-2)
    memory_db.create_session(user.id, "fresh")

    assert memory_db.get_session_user("old") is None
    assert memory_db.purge_expired_sessions() == 1  # "old" was already removed on lookup
    assert memory_db.get_session_user("fresh").id == user.id


def test_log_files_are_owner_scoped(memory_db):
    alice = memory_db.create_user("alice@example.com", "h")
    bob = memory_db.create_user("bob@example.com", "h")

    log = memory_db.add_log_file(alice.id, "abc-proxy.csv", "proxy.csv", "/tmp/abc-proxy.csv")
    assert log.original_filename == "proxy.csv"
    assert log.analysis_result is None

    assert memory_db.get_log_file(log.id, alice.id).id == log.id
    assert memory_db.get_log_file(log.id, bob.id) is None
    assert memory_db.get_log_file(log.id).id == log.id
    assert memory_db.list_log_files(bob.id) == []


def test_list_log_files_with_analysis(memory_db):
    user = memory_db.create_user("a@example.com", "h")
    first = memory_db.add_log_file(user.id, "1-a.csv", "a.csv", "/tmp/1-a.csv")
    second = memory_db.add_log_file(user.id, "2-b.csv", "b.csv", "/tmp/2-b.csv")

    memory_db.upsert_analysis(first.id, total_analyzed=10, total_anomalies=3, analysis_summary={"x": 1})

    listing = memory_db.list_log_files(user.id)
    # Newest first
    assert [item.id for item in listing] == [second.id, first.id]
    assert listing[0].total_analyzed is None
    assert listing[0].analysis_status is None
    assert listing[1].total_analyzed == 10
    assert listing[1].total_anomalies == 3
    assert listing[1].analysis_status == "completed"


def test_upsert_analysis(memory_db):
    user = memory_db.create_user("a@example.com", "h")
    log = memory_db.add_log_file(user.id, "1-a.csv", "a.csv", "/tmp/1-a.csv")

    first_id = memory_db.upsert_analysis(log.id, 10, 3, {"total_anomalies": 3})
    second_id = memory_db.upsert_analysis(log.id, 12, 5, {"total_anomalies": 5})
    assert first_id == second_id

    analysis = memory_db.get_analysis(log.id)
    assert analysis.total_analyzed == 12
    assert analysis.total_anomalies == 5
    assert analysis.analysis_summary == {"total_anomalies": 5}
    assert analysis.original_filename == "a.csv"

    memory_db.set_log_analysis_result(log.id, {"total_anomalies": 5})
    assert memory_db.get_log_file(log.id).analysis_result == {"total_anomalies": 5}


def test_missing_analysis(memory_db):
    assert memory_db.get_analysis(42) is None


def test_write_failure_is_persistence_error(memory_db):
    # No such log: foreign key violation
    with pytest.raises(PersistenceError):
        memory_db.upsert_analysis(9999, 1, 0, {})


def test_file_database(tmp_path):
    path = tmp_path / "test.db"
    database = Database(db_path=path)
    user = database.create_user("a@example.com", "h")

    # Fresh instance on the same file sees the data
    assert Database(db_path=path).get_user(user.id).email == "a@example.com"
    assert database.get_db_size() > 0
