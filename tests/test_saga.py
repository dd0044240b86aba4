"""
Tests for the compensating multi-step mutation runner.
"""

import pytest

from fintrack.audit import AuditLogger
from fintrack.models.records import Collection
from fintrack.reconciliation import MutationSaga, SagaFailedError
from fintrack.services.storage import InMemoryRecordStore


def recorder(log: list, label: str, result=None, fail: bool = False):
    async def _step(ctx):
        log.append(label)
        if fail:
            raise RuntimeError(f"{label} exploded")
        return result
    return _step


class TestMutationSaga:
    """Tests for forward execution and compensation."""

    @pytest.mark.asyncio
    async def test_results_are_stored_by_step_name(self):
        """Test that later steps see earlier results in the context."""
        saga = MutationSaga("demo")
        saga.add_step("first", recorder([], "first", result=41))

        async def second(ctx):
            return ctx["first"] + 1

        saga.add_step("second", second)
        ctx = await saga.run({"seed": True})

        assert ctx == {"seed": True, "first": 41, "second": 42}

    @pytest.mark.asyncio
    async def test_compensation_runs_in_reverse(self):
        log = []
        saga = MutationSaga("demo")
        saga.add_step("a", recorder(log, "a"), compensation=recorder(log, "undo a"))
        saga.add_step("b", recorder(log, "b"), compensation=recorder(log, "undo b"))
        saga.add_step("c", recorder(log, "c", fail=True), compensation=recorder(log, "undo c"))

        with pytest.raises(SagaFailedError) as exc_info:
            await saga.run()

        assert log == ["a", "b", "c", "undo b", "undo a"]
        error = exc_info.value
        assert error.failed_step == "c"
        assert error.compensated_steps == ["b", "a"]
        assert error.failed_compensations == []
        assert isinstance(error.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_failed_compensation_does_not_stop_others(self):
        log = []
        saga = MutationSaga("demo")
        saga.add_step("a", recorder(log, "a"), compensation=recorder(log, "undo a"))
        saga.add_step("b", recorder(log, "b"), compensation=recorder(log, "undo b", fail=True))
        saga.add_step("c", recorder(log, "c", fail=True))

        with pytest.raises(SagaFailedError) as exc_info:
            await saga.run()

        assert log == ["a", "b", "c", "undo b", "undo a"]
        assert exc_info.value.compensated_steps == ["a"]
        assert exc_info.value.failed_compensations == ["b"]
        assert "could not undo: b" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_compensation_disabled(self):
        log = []
        saga = MutationSaga("demo", compensate_on_failure=False)
        saga.add_step("a", recorder(log, "a"), compensation=recorder(log, "undo a"))
        saga.add_step("b", recorder(log, "b", fail=True))

        with pytest.raises(SagaFailedError) as exc_info:
            await saga.run()

        assert log == ["a", "b"]
        assert exc_info.value.compensated_steps == []

    @pytest.mark.asyncio
    async def test_steps_without_compensation_are_skipped(self):
        log = []
        saga = MutationSaga("demo")
        saga.add_step("a", recorder(log, "a"))
        saga.add_step("b", recorder(log, "b", fail=True))

        with pytest.raises(SagaFailedError) as exc_info:
            await saga.run()

        assert exc_info.value.compensated_steps == []

    def test_duplicate_step_name(self):
        saga = MutationSaga("demo")
        saga.add_step("a", recorder([], "a"))

        with pytest.raises(ValueError):
            saga.add_step("a", recorder([], "a"))
        assert saga.step_names == ["a"]

    @pytest.mark.asyncio
    async def test_failure_is_audited(self):
        """Test that a failed saga leaves an audit event behind."""
        store = InMemoryRecordStore()
        saga = MutationSaga("demo", audit_logger=AuditLogger(store))
        saga.add_step("a", recorder([], "a", fail=True))

        with pytest.raises(SagaFailedError):
            await saga.run()

        events = await store.select(Collection.AUDIT_EVENTS)
        assert len(events) == 1
        assert events[0]["event_type"] == "saga_compensated"
        assert events[0]["details"]["failed_step"] == "a"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
