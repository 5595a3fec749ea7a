"""
Circular part-dependency validation for SysML models.

Walks the composition graph formed by part properties between blocks and
reports every path on which a block contains itself, directly or through
other blocks.
"""
from circdep.collaborators import (
    BufferedNotificationSink,
    LoggingNotificationSink,
    ModelAccess,
    Notification,
    NotificationSeverity,
    NotificationSink,
    RowNode,
    SessionService,
)
from circdep.config import ValidatorConfig
from circdep.errors import CircularDependencyError, ExtractionSkip, ValidationCancelled, WalkFault
from circdep.filter import ElementFilter, FilterResult
from circdep.graph import (
    CompositionGraph,
    CycleWalker,
    GraphExtractor,
    GraphNode,
    InvalidPathEntry,
    PartEdge,
    PathState,
    PathStep,
)
from circdep.index import InvalidPathIndex, InvalidPathSnapshot
from circdep.orchestrator import (
    CancellationToken,
    RunOutcome,
    RunStatus,
    ValidationOrchestrator,
    ValidationState,
)
from circdep.validator import CircularDependencyValidator

__all__ = [
    "BufferedNotificationSink", "LoggingNotificationSink", "ModelAccess", "Notification",
    "NotificationSeverity", "NotificationSink", "RowNode", "SessionService",
    "ValidatorConfig",
    "CircularDependencyError", "ExtractionSkip", "ValidationCancelled", "WalkFault",
    "ElementFilter", "FilterResult",
    "CompositionGraph", "CycleWalker", "GraphExtractor", "GraphNode", "InvalidPathEntry",
    "PartEdge", "PathState", "PathStep",
    "InvalidPathIndex", "InvalidPathSnapshot",
    "CancellationToken", "RunOutcome", "RunStatus", "ValidationOrchestrator", "ValidationState",
    "CircularDependencyValidator",
]
