"""
Tests for run scheduling: triggers, cancellation, faults and notifications.
"""
import asyncio
import threading

import pytest
from pydantic import PrivateAttr

from circdep.collaborators import NotificationSeverity
from circdep.config import ValidatorConfig
from circdep.index import InvalidPathIndex
from circdep.memory import InMemoryModel
from circdep.orchestrator import (
    CancellationToken, RunStatus, ValidationOrchestrator, ValidationState
)
from circdep.errors import ValidationCancelled


class GatedModel(InMemoryModel):
    """Blocks extraction until the test opens the gate."""

    _gate: threading.Event = PrivateAttr(default_factory=threading.Event)
    _entered: threading.Event = PrivateAttr(default_factory=threading.Event)
    _calls: int = PrivateAttr(default=0)

    def all_elements(self):
        self._calls += 1
        self._entered.set()
        self._gate.wait(timeout=5)
        return super().all_elements()


class FailingModel(InMemoryModel):
    fail: bool = False

    def all_elements(self):
        if self.fail:
            raise RuntimeError("model access lost")
        return super().all_elements()


def make_orchestrator(model, session, sink, config=None):
    index = InvalidPathIndex()
    return ValidationOrchestrator(model, session, index, sink, config or ValidatorConfig())


class TestCancellationToken:

    def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.raise_if_cancelled()
        token.cancel()
        assert token.is_cancelled
        with pytest.raises(ValidationCancelled):
            token.raise_if_cancelled()


class TestTriggers:

    @pytest.mark.asyncio
    async def test_session_opened_runs_and_publishes(self, two_block_cycle, session, sink, inline_config):
        orchestrator = make_orchestrator(two_block_cycle.model, session, sink, inline_config)

        task = orchestrator.session_opened()
        assert task is not None
        assert orchestrator.state == ValidationState.RUNNING

        outcome = await task
        assert outcome.status == RunStatus.COMPLETED
        assert outcome.invalid_path_count == 2  # one under A, one under B
        assert orchestrator.state == ValidationState.IDLE
        assert orchestrator.index.get().roots == ["A", "B"]

    @pytest.mark.asyncio
    async def test_no_session_no_run(self, two_block_cycle, session, sink):
        session.is_open = False
        orchestrator = make_orchestrator(two_block_cycle.model, session, sink)

        assert orchestrator.session_opened() is None
        assert orchestrator.model_saved() is None
        assert orchestrator.state == ValidationState.IDLE

    @pytest.mark.asyncio
    async def test_second_session_opened_is_ignored(self, two_block_cycle, session, sink, inline_config):
        orchestrator = make_orchestrator(two_block_cycle.model, session, sink, inline_config)

        first = orchestrator.session_opened()
        assert orchestrator.session_opened() is None
        await first
        assert len(sink.notifications) == 1

    @pytest.mark.asyncio
    async def test_model_saved_when_idle_starts_run(self, acyclic_tree, session, sink, inline_config):
        orchestrator = make_orchestrator(acyclic_tree.model, session, sink, inline_config)

        outcome = await orchestrator.model_saved()
        assert outcome.status == RunStatus.COMPLETED
        assert outcome.invalid_path_count == 0

    @pytest.mark.asyncio
    async def test_wait_until_idle_without_runs(self, acyclic_tree, session, sink):
        orchestrator = make_orchestrator(acyclic_tree.model, session, sink)
        assert await orchestrator.wait_until_idle() is None


class TestNotifications:

    @pytest.mark.asyncio
    async def test_warning_when_cycles_found(self, two_block_cycle, session, sink, inline_config):
        orchestrator = make_orchestrator(two_block_cycle.model, session, sink, inline_config)
        await orchestrator.session_opened()

        assert len(sink.notifications) == 1
        notification = sink.notifications[0]
        assert notification.severity == NotificationSeverity.WARNING
        assert "[Spacecraft] contains circular dependency (2 invalid paths)" in notification.message
        assert notification.message.startswith("Detecting circular dependency on the SysML model took ")
        assert str(notification).startswith("warning: ")

    @pytest.mark.asyncio
    async def test_info_when_clean(self, acyclic_tree, session, sink, inline_config):
        orchestrator = make_orchestrator(acyclic_tree.model, session, sink, inline_config)
        await orchestrator.session_opened()

        assert [n.severity for n in sink.notifications] == [NotificationSeverity.INFO]
        assert "contains circular dependency" not in sink.notifications[0].message
        assert "ms to complete" in sink.get_logs()

    @pytest.mark.asyncio
    async def test_listeners_receive_outcome(self, acyclic_tree, session, sink, inline_config):
        orchestrator = make_orchestrator(acyclic_tree.model, session, sink, inline_config)
        outcomes = []

        def broken_listener(outcome):
            raise ValueError("listener bug")

        orchestrator.add_listener(broken_listener)
        orchestrator.add_listener(outcomes.append)
        await orchestrator.session_opened()

        assert [o.status for o in outcomes] == [RunStatus.COMPLETED]
        assert orchestrator.state == ValidationState.IDLE


class TestFaults:

    @pytest.mark.asyncio
    async def test_fault_keeps_previous_snapshot(self, session, sink, inline_config):
        model = FailingModel()
        a = model.add_block("A", element_id="A")
        model.add_part(a, "self", a, element_id="a.self")
        orchestrator = make_orchestrator(model, session, sink, inline_config)

        await orchestrator.session_opened()
        previous = orchestrator.index.get()
        assert previous.roots == ["A"]

        model.fail = True
        outcome = await orchestrator.model_saved()

        assert outcome.status == RunStatus.FAULTED
        assert "model access lost" in outcome.error
        assert orchestrator.index.get() is previous
        assert orchestrator.state == ValidationState.IDLE
        assert sink.notifications[-1].severity == NotificationSeverity.ERROR
        assert "Failure to detect circular dependency" in sink.notifications[-1].message

    @pytest.mark.asyncio
    async def test_fault_in_thread(self, session, sink):
        model = FailingModel(fail=True)
        orchestrator = make_orchestrator(model, session, sink)

        outcome = await orchestrator.session_opened()
        assert outcome.status == RunStatus.FAULTED
        assert orchestrator.index.get().is_empty
        assert not orchestrator.index.is_building


class TestCancellation:

    @pytest.mark.asyncio
    async def test_model_saved_cancels_and_reruns(self, session, sink):
        model = GatedModel()
        a = model.add_block("A", element_id="A")
        model.add_part(a, "self", a, element_id="a.self")
        orchestrator = make_orchestrator(model, session, sink)

        seen = []
        orchestrator.add_listener(lambda outcome: seen.append((outcome.status, orchestrator.index.get())))

        before = orchestrator.index.get()
        orchestrator.session_opened()
        # Wait for the worker thread to be inside extraction
        await asyncio.to_thread(model._entered.wait, 5)

        assert orchestrator.model_saved() is None
        assert orchestrator.state == ValidationState.CANCEL_REQUESTED
        # A further save while cancelling changes nothing
        assert orchestrator.model_saved() is None
        assert orchestrator.session_opened() is None

        model._gate.set()
        final = await orchestrator.wait_until_idle()

        # The cancelled run published nothing and said nothing
        assert seen[0][0] == RunStatus.CANCELLED
        assert seen[0][1] is before
        # The fresh run completed and published
        assert final.status == RunStatus.COMPLETED
        assert [status for status, _ in seen] == [RunStatus.CANCELLED, RunStatus.COMPLETED]
        assert orchestrator.index.get().roots == ["A"]
        assert [n.severity for n in sink.notifications] == [NotificationSeverity.WARNING]
        assert model._calls == 2

    @pytest.mark.asyncio
    async def test_no_rerun_when_session_closed_meanwhile(self, session, sink):
        model = GatedModel()
        model.add_block("A", element_id="A")
        orchestrator = make_orchestrator(model, session, sink)

        orchestrator.session_opened()
        await asyncio.to_thread(model._entered.wait, 5)
        orchestrator.model_saved()
        session.is_open = False
        model._gate.set()

        outcome = await orchestrator.wait_until_idle()
        assert outcome.status == RunStatus.CANCELLED
        assert orchestrator.state == ValidationState.IDLE
        assert sink.notifications == []

    @pytest.mark.asyncio
    async def test_cancelled_task_stops_its_worker_before_next_run(self, session, sink):
        model = GatedModel()
        a = model.add_block("A", element_id="A")
        model.add_part(a, "self", a, element_id="a.self")
        orchestrator = make_orchestrator(model, session, sink)

        task = orchestrator.session_opened()
        await asyncio.to_thread(model._entered.wait, 5)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        # The worker thread is still inside extraction: no second run may start
        assert orchestrator.state == ValidationState.CANCEL_REQUESTED
        assert orchestrator.session_opened() is None
        assert orchestrator.model_saved() is None
        assert model._calls == 1

        model._gate.set()
        final = await orchestrator.wait_until_idle()

        # The save made while unwinding ran once the worker had stopped
        assert final.status == RunStatus.COMPLETED
        assert model._calls == 2
        assert orchestrator.state == ValidationState.IDLE
        assert orchestrator.index.get().roots == ["A"]
        assert not orchestrator.index.is_building

    @pytest.mark.asyncio
    async def test_cancelled_task_without_rerun_goes_idle(self, session, sink):
        model = GatedModel()
        model.add_block("A", element_id="A")
        orchestrator = make_orchestrator(model, session, sink)

        task = orchestrator.session_opened()
        await asyncio.to_thread(model._entered.wait, 5)
        task.cancel()
        model._gate.set()

        assert await orchestrator.wait_until_idle() is None
        assert orchestrator.state == ValidationState.IDLE
        assert orchestrator.index.get().is_empty
        assert sink.notifications == []
        assert orchestrator.session_opened() is not None
        await orchestrator.wait_until_idle()
        assert model._calls == 2


class TestRunOnce:

    def test_run_once(self, two_block_cycle, session, sink):
        orchestrator = make_orchestrator(two_block_cycle.model, session, sink)
        outcome = orchestrator.run_once()

        assert outcome.status == RunStatus.COMPLETED
        assert outcome.has_invalid_paths
        assert orchestrator.index.get().entry_count == 2

    @pytest.mark.asyncio
    async def test_run_once_refused_while_running(self, acyclic_tree, session, sink, inline_config):
        orchestrator = make_orchestrator(acyclic_tree.model, session, sink, inline_config)
        task = orchestrator.session_opened()
        with pytest.raises(RuntimeError):
            orchestrator.run_once()
        await task
