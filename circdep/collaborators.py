"""
Interfaces of the collaborators the validator depends on.

The validator never owns the model. Everything it knows about blocks, part
properties, the open session and the UI row tree comes through the protocols
below. Notifications go to a NotificationSink; two sinks are provided, one that
forwards to a standard logger and one that buffers for UI panes and tests.
"""
import logging
from datetime import datetime, timezone
from enum import Enum
from io import StringIO
from typing import Any, Iterable, List, Optional, Protocol, Sequence, runtime_checkable

from pydantic import BaseModel, Field


##############################
# 1) Model and session access
##############################

@runtime_checkable
class ModelAccess(Protocol):
    """Read-only view over the authoring tool's model."""

    def all_elements(self) -> Iterable[Any]: ...
    def element_id(self, element: Any) -> str: ...
    def name(self, element: Any) -> str: ...
    def is_composite(self, element: Any) -> bool: ...
    def is_part_property(self, prop: Any) -> bool: ...
    def owned_properties(self, element: Any) -> Sequence[Any]: ...
    def property_type(self, prop: Any) -> Optional[Any]: ...
    def owner(self, prop: Any) -> Optional[Any]: ...


def part_properties(model: ModelAccess, element: Any) -> List[Any]:
    """Owned properties of an element that are part properties, in declaration order."""
    return [p for p in model.owned_properties(element) if model.is_part_property(p)]


@runtime_checkable
class SessionService(Protocol):
    """The authoring tool session."""

    def has_open_session(self) -> bool: ...
    def project_name(self) -> str: ...


@runtime_checkable
class RowNode(Protocol):
    """A row of a displayed element tree."""

    @property
    def element_id(self) -> str: ...

    @property
    def contained_rows(self) -> Sequence["RowNode"]: ...


##############################
# 2) Notifications
##############################

class NotificationSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

    @property
    def log_level(self) -> int:
        return {
            NotificationSeverity.INFO: logging.INFO,
            NotificationSeverity.WARNING: logging.WARNING,
            NotificationSeverity.ERROR: logging.ERROR,
        }[self]


class Notification(BaseModel):
    """A message shown to the user."""
    message: str
    severity: NotificationSeverity = NotificationSeverity.INFO
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def __str__(self) -> str:
        return f"{self.severity.value}: {self.message}"


@runtime_checkable
class NotificationSink(Protocol):
    def append(self, message: str, severity: NotificationSeverity = NotificationSeverity.INFO) -> None: ...


class LoggingNotificationSink:
    """Forwards notifications to a standard logger at the matching level."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("CircularDependencyNotifications")

    def append(self, message: str, severity: NotificationSeverity = NotificationSeverity.INFO) -> None:
        self.logger.log(severity.log_level, message)


class BufferedNotificationSink:
    """
    Keeps notifications in memory and mirrors them to a text log stream.

    Meant to back a UI log pane: `notifications` holds structured records,
    `get_logs()` returns the rendered text.
    """

    def __init__(self) -> None:
        self.notifications: List[Notification] = []
        self._log_stream = StringIO()
        # Owned by the sink, not attached to a named logger, so it goes away with it
        self._handler = logging.StreamHandler(self._log_stream)
        self._handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))

    def append(self, message: str, severity: NotificationSeverity = NotificationSeverity.INFO) -> None:
        self.notifications.append(Notification(message=message, severity=severity))
        self._handler.handle(logging.makeLogRecord({
            "name": "CircularDependencyNotifications",
            "levelno": severity.log_level,
            "levelname": logging.getLevelName(severity.log_level),
            "msg": message,
        }))

    def get_logs(self) -> str:
        """Get all notifications as text."""
        return self._log_stream.getvalue()

    def clear_logs(self) -> None:
        """Clear buffered notifications and the text log."""
        self.notifications.clear()
        self._log_stream.truncate(0)
        self._log_stream.seek(0)

    def by_severity(self, severity: NotificationSeverity) -> List[Notification]:
        return [n for n in self.notifications if n.severity == severity]
