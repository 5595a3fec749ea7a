import logging
from typing import Any, Iterable, Optional

from circdep.collaborators import LoggingNotificationSink, ModelAccess, NotificationSink, RowNode, SessionService
from circdep.config import ValidatorConfig
from circdep.filter import ElementFilter, FilterResult
from circdep.index import InvalidPathIndex, InvalidPathSnapshot
from circdep.orchestrator import RunListener, RunOutcome, ValidationOrchestrator, ValidationState

LOGGER_NAMES = (
    "GraphExtractor",
    "CycleWalker",
    "InvalidPathIndex",
    "ElementFilter",
    "ValidationOrchestrator",
    "CircularDependencyValidator",
)


class CircularDependencyValidator:
    """
    Verifies that no part property chain of the model revisits a block.

    Wires the index, the element filter and the orchestrator around the given
    collaborators. The host forwards its session-opened and model-saved events
    to `session_opened()` and `model_saved()`; dialogs query the published
    result through `get_invalid_paths()`, `filters_invalid_elements()` and
    `is_already_present()`.
    """

    def __init__(self,
                 model: ModelAccess,
                 session: SessionService,
                 sink: Optional[NotificationSink] = None,
                 config: Optional[ValidatorConfig] = None):
        self.config = config or ValidatorConfig()
        self._logger = logging.getLogger("CircularDependencyValidator")
        for name in LOGGER_NAMES:
            logging.getLogger(name).setLevel(self.config.log_level)

        self.model = model
        self.session = session
        self.sink = sink or LoggingNotificationSink()
        self.index = InvalidPathIndex()
        self.element_filter = ElementFilter(self.index, model)
        self.orchestrator = ValidationOrchestrator(model, session, self.index, self.sink, self.config)
        self._logger.info(f"Circular dependency validator ready for {type(model).__name__}")

    # Events

    def session_opened(self):
        return self.orchestrator.session_opened()

    def model_saved(self):
        return self.orchestrator.model_saved()

    def add_listener(self, listener: RunListener) -> None:
        self.orchestrator.add_listener(listener)

    async def wait_until_idle(self) -> Optional[RunOutcome]:
        return await self.orchestrator.wait_until_idle()

    def run_once(self) -> RunOutcome:
        return self.orchestrator.run_once()

    @property
    def state(self) -> ValidationState:
        return self.orchestrator.state

    # Queries

    def get_invalid_paths(self) -> InvalidPathSnapshot:
        return self.index.get()

    def filters_invalid_elements(self, candidates: Iterable[Any]) -> FilterResult:
        return self.element_filter.filter_invalid(candidates)

    def is_already_present(self, row_tree: RowNode, prop: Any) -> bool:
        return self.element_filter.is_already_present(row_tree, prop)
