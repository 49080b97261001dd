"""Commit retry helper."""
import pytest
from sqlalchemy.exc import OperationalError

from upwatch.utils.db_utils import retry_on_lock, is_transient


def locked():
    return OperationalError("COMMIT", {}, Exception("database is locked"))


class TestRetryOnLock:
    async def test_retries_transient_errors(self):
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise locked()
            return "done"

        assert await retry_on_lock(flaky, base_delay=0) == "done"
        assert len(calls) == 3

    async def test_gives_up_after_max_retries(self):
        async def always_locked():
            raise locked()

        with pytest.raises(OperationalError):
            await retry_on_lock(always_locked, max_retries=2, base_delay=0)

    async def test_other_errors_are_not_retried(self):
        calls = []

        async def broken():
            calls.append(1)
            raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

        with pytest.raises(OperationalError):
            await retry_on_lock(broken, base_delay=0)
        assert len(calls) == 1

    def test_is_transient(self):
        assert is_transient(locked()) is True
        assert is_transient(Exception("syntax error")) is False
