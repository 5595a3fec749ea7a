"""
Error taxonomy for circular dependency validation.

- ExtractionSkip: one malformed element met while extracting the graph. It is
  logged and the element is omitted; the run carries on.
- WalkFault: anything uncaught during extraction or walking. The run is
  aborted and the previously published index stays in place.
- ValidationCancelled: a newer trigger superseded the run. Silent.
"""
from typing import Any, Optional


class CircularDependencyError(Exception):
    """Base class for all validator errors."""


class ExtractionSkip(CircularDependencyError):
    """Raised when an element cannot be queried for id, name, owner or type."""

    def __init__(self, element: Any, reason: str):
        self.element = element
        self.reason = reason
        super().__init__(f"Skipping element {element!r}: {reason}")


class WalkFault(CircularDependencyError):
    """Wraps the exception that aborted a validation run."""

    def __init__(self, cause: BaseException, root_id: Optional[str] = None):
        self.cause = cause
        self.root_id = root_id
        where = f" while walking root {root_id}" if root_id else ""
        super().__init__(f"{type(cause).__name__}{where}: {cause}")


class ValidationCancelled(CircularDependencyError):
    """Raised between root walks once the cancellation token is set."""
