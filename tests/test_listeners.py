"""Tests for ListenerRegistry and the error types it reports through."""

import logging

import pytest

from pyremote import BuildError, ExecutionError, RemoteError, SessionClosedError
from pyremote._internal.listeners import ListenerRegistry


def record(code, status="ok", output=None, error=None):
    return {"code": code, "status": status, "output": output, "error": error}


class TestListenerRegistry:
    def test_notifies_in_registration_order(self):
        registry = ListenerRegistry()
        calls = []
        registry.add(lambda r: calls.append(("first", r["code"])))
        registry.add(lambda r: calls.append(("second", r["code"])))

        registry.notify(record("a();"))

        assert calls == [("first", "a();"), ("second", "a();")]

    def test_rejects_non_callable(self):
        with pytest.raises(ValueError):
            ListenerRegistry().add("not callable")

    def test_remove(self):
        registry = ListenerRegistry()

        def listener(r):
            pass

        registry.add(listener)

        assert registry.remove(listener)
        assert not registry.remove(listener)
        assert len(registry) == 0

    def test_failing_listener_logged_and_skipped(self, caplog):
        registry = ListenerRegistry()
        seen = []

        def broken(r):
            raise RuntimeError("listener bug")

        registry.add(broken)
        registry.add(seen.append)

        with caplog.at_level(logging.ERROR, logger="pyremote._internal.listeners"):
            registry.notify(record("b();"))

        assert [r["code"] for r in seen] == ["b();"]
        assert "b();" in caplog.text

    def test_listener_may_unregister_itself(self):
        registry = ListenerRegistry()
        calls = []

        def once(r):
            calls.append(r["code"])
            registry.remove(once)

        registry.add(once)
        registry.notify(record("a();"))
        registry.notify(record("b();"))

        assert calls == ["a();"]

    def test_clear(self):
        registry = ListenerRegistry()
        registry.add(print)
        registry.clear()

        assert len(registry) == 0


class TestErrors:
    def test_hierarchy(self):
        for cls in (BuildError, ExecutionError, SessionClosedError):
            assert issubclass(cls, RemoteError)

    def test_execution_error_carries_record(self):
        failed = record("var rdd1 = sc.bogus();", status="error", error="TypeError: bogus")

        err = ExecutionError(failed)

        assert err.record is failed
        assert "TypeError: bogus" in str(err)
        assert "var rdd1 = sc.bogus();" in str(err)
