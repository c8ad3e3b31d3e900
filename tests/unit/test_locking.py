"""Tests for lock-conflict detection."""

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from budgetly.core.locking import is_lock_conflict


class PgError(Exception):
    def __init__(self, sqlstate):
        super().__init__(f"sqlstate {sqlstate}")
        self.sqlstate = sqlstate


class TestIsLockConflict:
    def test_postgres_conflict_codes(self):
        for code in ("40001", "40P01", "55P03"):
            assert is_lock_conflict(DBAPIError("SELECT 1", {}, PgError(code)))

    def test_other_postgres_errors(self):
        assert not is_lock_conflict(DBAPIError("SELECT 1", {}, PgError("23505")))

    def test_sqlite_locked(self):
        assert is_lock_conflict(OperationalError("UPDATE x", {}, Exception("database is locked")))

    def test_integrity_error(self):
        assert not is_lock_conflict(IntegrityError("INSERT x", {}, Exception("UNIQUE constraint failed")))
