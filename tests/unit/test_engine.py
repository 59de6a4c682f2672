"""
Unit tests for the durable workflow engine: step caching, retries,
event waits and resumption.
"""

import asyncio
from typing import Any, Dict, List
from unittest.mock import patch

import pytest

from src.errors import InstanceNotFoundError, UpstreamFailure
from src.kernel.events.event_store import EventStore
from src.kernel.models.workflow import InstanceStatus, StepStatus, WorkflowInstance
from src.orchestration.engine import StepContext, WorkflowEngine
from tests.support import wait_for_stage


class ReturnsWorkflow:
    def __init__(self, output: Any = None):
        self.output = output

    async def run(self, event, step):
        return self.output


class FailingWorkflow:
    async def run(self, event, step):
        raise UpstreamFailure("boom")


class CountingGateWorkflow:
    """Runs one counted step, then waits for a 'go' event."""

    def __init__(self, timeout: float = 5.0):
        self.timeout = timeout
        self.prepare_calls = 0

    async def _prepare(self) -> Dict[str, Any]:
        self.prepare_calls += 1
        return {"prepared": True}

    async def run(self, event, step):
        prepared = await step.do("prepare", self._prepare)
        await step.report_stage("waiting")
        payload = await step.wait_for_event("wait for go", "go", timeout=self.timeout)
        return {"prepared": prepared, "payload": payload, "params": event.params}


@pytest.fixture
def idle_engine(session_maker, settings):
    return WorkflowEngine(session_maker, ReturnsWorkflow({"ok": True}), settings=settings)


async def _finished_instance(engine: WorkflowEngine) -> str:
    handle = await engine.create({"image_key": "abc"})
    await engine.wait_for(handle.id, timeout=5)
    return handle.id


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_create_runs_to_completion(self, idle_engine):
        handle = await idle_engine.create({"image_key": "abc"})
        status = await idle_engine.wait_for(handle.id, timeout=5)

        assert status.status == InstanceStatus.COMPLETE
        assert status.output == {"ok": True}
        assert status.error is None
        assert idle_engine.active_instances == 0

    @pytest.mark.asyncio
    async def test_failed_workflow_reports_error(self, session_maker, settings):
        engine = WorkflowEngine(session_maker, FailingWorkflow(), settings=settings)
        handle = await engine.create()
        status = await engine.wait_for(handle.id, timeout=5)

        assert status.status == InstanceStatus.ERROR
        assert status.error == "boom"
        assert status.status.is_terminal

    @pytest.mark.asyncio
    async def test_unknown_instance(self, idle_engine):
        with pytest.raises(InstanceNotFoundError):
            await idle_engine.get("no-such-instance")
        with pytest.raises(InstanceNotFoundError):
            await idle_engine.get_status("no-such-instance")
        with pytest.raises(InstanceNotFoundError):
            await idle_engine.send_event("no-such-instance", "go", {"approved": True})


class TestStepDo:

    @pytest.mark.asyncio
    async def test_completed_step_is_replayed_from_cache(self, idle_engine):
        instance_id = await _finished_instance(idle_engine)
        step = StepContext(idle_engine, instance_id)
        calls = 0

        async def compute():
            nonlocal calls
            calls += 1
            return {"value": 42}

        assert await step.do("compute", compute) == {"value": 42}
        assert await step.do("compute", compute) == {"value": 42}
        assert calls == 1

    @pytest.mark.asyncio
    async def test_failures_retried_until_success(self, idle_engine):
        instance_id = await _finished_instance(idle_engine)
        step = StepContext(idle_engine, instance_id)
        attempts: List[int] = []

        async def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise UpstreamFailure("transient")
            return "done"

        assert await step.do("flaky", flaky) == "done"
        record = await idle_engine._load_step(instance_id, "flaky")
        assert record.attempts == 3
        assert record.status == StepStatus.COMPLETE

    @pytest.mark.asyncio
    async def test_last_failure_propagates(self, idle_engine, settings):
        instance_id = await _finished_instance(idle_engine)
        step = StepContext(idle_engine, instance_id)
        calls = 0

        async def broken():
            nonlocal calls
            calls += 1
            raise UpstreamFailure("still down")

        with pytest.raises(UpstreamFailure, match="still down"):
            await step.do("broken", broken)
        assert calls == settings.step_retry_limit + 1
        record = await idle_engine._load_step(instance_id, "broken")
        assert record.status == StepStatus.PENDING


class TestWaitForEvent:

    @pytest.mark.asyncio
    async def test_event_delivered_before_wait_is_received(self, idle_engine):
        instance_id = await _finished_instance(idle_engine)
        await idle_engine.send_event(instance_id, "go", {"approved": True})

        step = StepContext(idle_engine, instance_id)
        assert await step.wait_for_event("wait", "go", timeout=5) == {"approved": True}

    @pytest.mark.asyncio
    async def test_waiter_is_woken_by_delivery(self, idle_engine):
        instance_id = await _finished_instance(idle_engine)
        step = StepContext(idle_engine, instance_id)

        waiter = asyncio.create_task(step.wait_for_event("wait", "go", timeout=5))
        await asyncio.sleep(0.05)
        assert not waiter.done()
        await idle_engine.send_event(instance_id, "go", {"approved": False})

        assert await asyncio.wait_for(waiter, timeout=2) == {"approved": False}

    @pytest.mark.asyncio
    async def test_timeout_returns_none_and_is_cached(self, idle_engine):
        instance_id = await _finished_instance(idle_engine)
        step = StepContext(idle_engine, instance_id)

        assert await step.wait_for_event("wait", "go", timeout=0.05) is None
        record = await idle_engine._load_step(instance_id, "wait")
        assert record.output == {"payload": None, "timed_out": True}

        # A decision arriving after the deadline does not change the outcome
        await idle_engine.send_event(instance_id, "go", {"approved": True})
        assert await step.wait_for_event("wait", "go", timeout=5) is None

    @pytest.mark.asyncio
    async def test_events_are_consumed_oldest_first(self, idle_engine, session_maker):
        instance_id = await _finished_instance(idle_engine)
        await idle_engine.send_event(instance_id, "go", {"n": 1})
        await idle_engine.send_event(instance_id, "go", {"n": 2})
        step = StepContext(idle_engine, instance_id)

        assert await step.wait_for_event("first", "go", timeout=1) == {"n": 1}
        assert await step.wait_for_event("second", "go", timeout=1) == {"n": 2}

        async with session_maker() as session:
            history = await EventStore(session).get_instance_history(instance_id)
        assert len(history) == 2
        assert all(e.consumed_at is not None for e in history)

    @pytest.mark.asyncio
    async def test_interrupted_wait_keeps_event_for_replay(self, idle_engine):
        instance_id = await _finished_instance(idle_engine)
        await idle_engine.send_event(instance_id, "go", {"approved": True})
        step = StepContext(idle_engine, instance_id)
        consume = EventStore.consume

        async def consume_then_cancel(store, event):
            await consume(store, event)
            raise asyncio.CancelledError()

        with patch.object(EventStore, "consume", consume_then_cancel):
            with pytest.raises(asyncio.CancelledError):
                await step.wait_for_event("wait", "go", timeout=5)

        record = await idle_engine._load_step(instance_id, "wait")
        assert record.status == StepStatus.PENDING
        assert await step.wait_for_event("wait", "go", timeout=0.05) == {"approved": True}

    @pytest.mark.asyncio
    async def test_received_event_is_cached_with_the_step(self, idle_engine):
        instance_id = await _finished_instance(idle_engine)
        await idle_engine.send_event(instance_id, "go", {"approved": True})
        step = StepContext(idle_engine, instance_id)

        with patch.object(idle_engine, "_complete_step", side_effect=asyncio.CancelledError()):
            assert await step.wait_for_event("wait", "go", timeout=5) == {"approved": True}

        record = await idle_engine._load_step(instance_id, "wait")
        assert record.output == {"payload": {"approved": True}, "timed_out": False}
        assert await step.wait_for_event("wait", "go", timeout=0.05) == {"approved": True}

    @pytest.mark.asyncio
    async def test_other_event_types_do_not_wake(self, idle_engine):
        instance_id = await _finished_instance(idle_engine)
        await idle_engine.send_event(instance_id, "other", {"approved": True})

        step = StepContext(idle_engine, instance_id)
        assert await step.wait_for_event("wait", "go", timeout=0.05) is None


class TestDurability:

    @pytest.mark.asyncio
    async def test_instance_resumes_where_it_stopped(self, session_maker, settings):
        workflow = CountingGateWorkflow()
        engine = WorkflowEngine(session_maker, workflow, settings=settings)
        handle = await engine.create({"image_key": "abc"})
        await wait_for_stage(engine, handle.id, "waiting")

        await engine.aclose()
        assert (await engine.get_status(handle.id)).status == InstanceStatus.RUNNING

        restarted = WorkflowEngine(session_maker, workflow, settings=settings)
        try:
            assert await restarted.resume_pending() == 1
            await restarted.send_event(handle.id, "go", {"approved": True})
            status = await restarted.wait_for(handle.id, timeout=5)
        finally:
            await restarted.aclose()

        assert status.status == InstanceStatus.COMPLETE
        assert status.output == {
            "prepared": {"prepared": True},
            "payload": {"approved": True},
            "params": {"image_key": "abc"},
        }
        assert workflow.prepare_calls == 1

    @pytest.mark.asyncio
    async def test_resume_picks_up_queued_instances(self, session_maker, settings):
        async with session_maker() as session, session.begin():
            session.add(WorkflowInstance(id="left-behind", params={}, status=InstanceStatus.QUEUED))

        engine = WorkflowEngine(session_maker, ReturnsWorkflow("late"), settings=settings)
        try:
            assert await engine.resume_pending() == 1
            status = await engine.wait_for("left-behind", timeout=5)
        finally:
            await engine.aclose()

        assert status.status == InstanceStatus.COMPLETE
        assert status.output == "late"

    @pytest.mark.asyncio
    async def test_deadline_survives_restart(self, session_maker, settings):
        workflow = CountingGateWorkflow(timeout=0.3)
        engine = WorkflowEngine(session_maker, workflow, settings=settings)
        handle = await engine.create()
        await wait_for_stage(engine, handle.id, "waiting")
        await engine.aclose()

        await asyncio.sleep(0.4)
        restarted = WorkflowEngine(session_maker, workflow, settings=settings)
        try:
            await restarted.resume_pending()
            status = await restarted.wait_for(handle.id, timeout=1)
        finally:
            await restarted.aclose()

        assert status.status == InstanceStatus.COMPLETE
        assert status.output["payload"] is None
