"""
Scheduling of circular dependency validation runs.

The orchestrator reacts to two events of the authoring tool:

- session opened: start a run unless one is already going
- model saved: start a run, superseding (cancelling) the one in progress

Only one run is ever active. A run extracts the composition graph, walks every
root and records invalid paths into the index; the new snapshot is published
only when the run completes. Faulted and cancelled runs leave the previously
published snapshot in place.
"""
import asyncio
import functools
import logging
import threading
import time
from enum import Enum
from typing import Callable, List, Optional

from pydantic import BaseModel

from circdep.collaborators import (
    LoggingNotificationSink, ModelAccess, NotificationSeverity, NotificationSink, SessionService
)
from circdep.config import ValidatorConfig
from circdep.errors import ValidationCancelled, WalkFault
from circdep.graph.extractor import GraphExtractor
from circdep.graph.walker import CycleWalker
from circdep.index import InvalidPathIndex


class ValidationState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    CANCEL_REQUESTED = "cancel_requested"


class RunStatus(str, Enum):
    COMPLETED = "completed"
    FAULTED = "faulted"
    CANCELLED = "cancelled"


class RunOutcome(BaseModel):
    """Result of one validation run, handed to listeners."""
    status: RunStatus
    duration_ms: int = 0
    invalid_path_count: int = 0
    error: Optional[str] = None

    @property
    def has_invalid_paths(self) -> bool:
        return self.invalid_path_count > 0


class CancellationToken:
    """Cooperative cancellation flag shared between the event loop and the worker thread."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ValidationCancelled("Validation superseded by a newer request")


RunListener = Callable[[RunOutcome], None]


class ValidationOrchestrator:
    def __init__(self,
                 model: ModelAccess,
                 session: SessionService,
                 index: InvalidPathIndex,
                 sink: Optional[NotificationSink] = None,
                 config: Optional[ValidatorConfig] = None):
        self.model = model
        self.session = session
        self.index = index
        self.sink = sink or LoggingNotificationSink()
        self.config = config or ValidatorConfig()
        self._logger = logging.getLogger("ValidationOrchestrator")
        self._state = ValidationState.IDLE
        self._token: Optional[CancellationToken] = None
        self._task: Optional["asyncio.Task[RunOutcome]"] = None
        self._worker: Optional["asyncio.Future[int]"] = None
        self._rerun_requested = False
        self._listeners: List[RunListener] = []

    @property
    def state(self) -> ValidationState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state != ValidationState.IDLE

    def add_listener(self, listener: RunListener) -> None:
        """Register a callback invoked with the RunOutcome after every run."""
        self._listeners.append(listener)

    ##############################
    # Trigger events
    ##############################

    def session_opened(self) -> Optional["asyncio.Task[RunOutcome]"]:
        """Start a run if none is active. Must be called from the event loop."""
        if not self.session.has_open_session():
            return None
        if self._state != ValidationState.IDLE:
            self._logger.debug(f"Session opened while {self._state.value}, ignoring")
            return None
        return self._start_run()

    def model_saved(self) -> Optional["asyncio.Task[RunOutcome]"]:
        """Start a run, cancelling the active one first if needed. Must be called from the event loop."""
        if not self.session.has_open_session():
            return None
        if self._state == ValidationState.RUNNING:
            self._logger.info("Model saved during validation, cancelling the current run")
            self._state = ValidationState.CANCEL_REQUESTED
            self._rerun_requested = True
            if self._token is not None:
                self._token.cancel()
            return None
        if self._state == ValidationState.CANCEL_REQUESTED:
            self._rerun_requested = True
            return None
        return self._start_run()

    async def wait_until_idle(self) -> Optional[RunOutcome]:
        """Await the active run and any rerun it scheduled. Returns the last outcome."""
        outcome: Optional[RunOutcome] = None
        while self._task is not None:
            task = self._task
            try:
                outcome = await task
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise
                # The run task was cancelled; its worker may still be unwinding
                outcome = None
                if self._worker is not None:
                    await asyncio.wait({self._worker})
            if self._task is task:
                break
        return outcome

    ##############################
    # Runs
    ##############################

    def _start_run(self) -> "asyncio.Task[RunOutcome]":
        loop = asyncio.get_running_loop()
        token = CancellationToken()
        self._token = token
        self._state = ValidationState.RUNNING
        self._task = loop.create_task(self._run(token))
        self._task.add_done_callback(functools.partial(self._run_finished, token))
        return self._task

    async def _run(self, token: CancellationToken) -> RunOutcome:
        started = time.perf_counter()
        count = 0
        error: Optional[WalkFault] = None
        cancelled = False
        try:
            if self.config.run_in_thread:
                # Shielded so that cancelling the run task never orphans a running worker
                self._worker = asyncio.ensure_future(asyncio.to_thread(self.validate, token))
                count = await asyncio.shield(self._worker)
            else:
                count = self.validate(token)
        except ValidationCancelled:
            cancelled = True
        except WalkFault as e:
            error = e
        except Exception as e:
            error = WalkFault(e)
        self._worker = None

        outcome = self._conclude(started, count, error, cancelled)
        self._state = ValidationState.IDLE
        self._token = None
        self._notify_listeners(outcome)
        self._start_requested_rerun()
        return outcome

    def _run_finished(self, token: CancellationToken, task: "asyncio.Task[RunOutcome]") -> None:
        if not task.cancelled():
            return
        token.cancel()
        worker = self._worker
        if worker is not None and not worker.done():
            self._state = ValidationState.CANCEL_REQUESTED
            self._logger.info("Validation task cancelled, waiting for its worker to stop")
            worker.add_done_callback(self._worker_unwound)
        else:
            self._worker_unwound(worker)

    def _worker_unwound(self, worker: Optional["asyncio.Future[int]"]) -> None:
        if worker is not None and not worker.cancelled() and worker.exception() is not None:
            self._logger.debug(f"Abandoned validation worker stopped with {worker.exception()!r}")
        self.index.discard()
        self._worker = None
        self._token = None
        self._state = ValidationState.IDLE
        self._logger.info("Validation task cancelled")
        self._start_requested_rerun()

    def _start_requested_rerun(self) -> None:
        if not self._rerun_requested:
            return
        self._rerun_requested = False
        if self.session.has_open_session():
            self._logger.debug("Starting the validation run requested while cancelling")
            self._start_run()

    def run_once(self) -> RunOutcome:
        """Validate synchronously and publish the result. Refuses to run next to a background run."""
        if self._state != ValidationState.IDLE:
            raise RuntimeError("A validation run is already in progress")
        started = time.perf_counter()
        self._state = ValidationState.RUNNING
        count = 0
        error: Optional[WalkFault] = None
        try:
            count = self.validate(CancellationToken())
        except WalkFault as e:
            error = e
        except Exception as e:
            error = WalkFault(e)
        finally:
            self._state = ValidationState.IDLE
        outcome = self._conclude(started, count, error, cancelled=False)
        self._notify_listeners(outcome)
        return outcome

    def validate(self, token: CancellationToken) -> int:
        """
        Extract, walk every root and record invalid paths into the index.

        Nothing is published here; the caller publishes or discards.

        Returns:
            Number of invalid paths recorded

        Raises:
            ValidationCancelled: the token was cancelled between two roots
            WalkFault: extraction or walking raised
        """
        token.raise_if_cancelled()
        try:
            graph = GraphExtractor(self.model, self.config).extract()
        except Exception as e:
            raise WalkFault(e) from e

        self.index.clear()
        walker = CycleWalker(graph)
        count = 0
        for root_id in graph.roots:
            token.raise_if_cancelled()
            try:
                entries = walker.invalid_paths(root_id)
            except Exception as e:
                raise WalkFault(e, root_id) from e
            root = graph.nodes[root_id].element
            for entry in entries:
                self.index.record(root, entry)
                count += 1
        return count

    def _conclude(self, started: float, count: int, error: Optional[WalkFault], cancelled: bool) -> RunOutcome:
        duration_ms = int(round((time.perf_counter() - started) * 1000))

        if cancelled:
            self.index.discard()
            self._logger.info(f"Validation cancelled after {duration_ms} ms")
            return RunOutcome(status=RunStatus.CANCELLED, duration_ms=duration_ms)

        if error is not None:
            self.index.discard()
            self._logger.error(f"Validation failed after {duration_ms} ms: {error}", exc_info=error.cause)
            self.sink.append(
                f"Failure to detect circular dependency in the SysML model. {error}",
                NotificationSeverity.ERROR,
            )
            return RunOutcome(status=RunStatus.FAULTED, duration_ms=duration_ms, error=str(error))

        self.index.publish()
        base_info = f"Detecting circular dependency on the SysML model took {duration_ms} ms to complete"
        if count == 0:
            self._logger.info(base_info)
            self.sink.append(base_info, NotificationSeverity.INFO)
        else:
            self._logger.warning(f"{base_info}, {count} invalid paths")
            self.sink.append(
                f"{base_info}. [{self._project_name()}] contains circular dependency ({count} invalid paths)",
                NotificationSeverity.WARNING,
            )
        return RunOutcome(status=RunStatus.COMPLETED, duration_ms=duration_ms, invalid_path_count=count)

    def _notify_listeners(self, outcome: RunOutcome) -> None:
        for listener in self._listeners:
            try:
                listener(outcome)
            except Exception as e:
                self._logger.error(f"Validation listener {listener!r} failed: {str(e)}")

    def _project_name(self) -> str:
        try:
            return self.session.project_name()
        except Exception as e:
            self._logger.debug(f"Could not get the project name: {e}")
            return "SysML model"
