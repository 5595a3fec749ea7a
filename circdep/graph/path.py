"""
Path values produced by the cycle walk.

A PathState is the ordered record of what a single branch visited, starting
with the root block. It is immutable: every insertion returns a new state, so
two branches forked from the same point cannot see each other's steps.
"""
from enum import Enum
from typing import Any, FrozenSet, List, Tuple

from pydantic import BaseModel, ConfigDict, Field


class StepKind(str, Enum):
    NODE = "node"
    PROPERTY = "property"


class PathStep(BaseModel):
    """One visited block or part property."""
    element: Any = Field(default=None, exclude=True)
    step_id: str
    name: str = ""
    kind: StepKind = StepKind.NODE

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PathStep):
            return NotImplemented
        return self.step_id == other.step_id and self.kind == other.kind

    def __hash__(self) -> int:
        return hash((self.step_id, self.kind))

    def __repr__(self) -> str:
        return f"{self.kind.value}:{self.name or self.step_id}"

    @property
    def label(self) -> str:
        return self.name or self.step_id


class PathState(BaseModel):
    """
    Ordered id -> entity record of one branch.

    Inserting a block id that is already present appends the duplicate as the
    last step and marks the state cyclic; a cyclic state accepts no further
    steps. Property steps are recorded but never close a cycle, since one
    property may be listed under several owners.
    """
    steps: Tuple[PathStep, ...] = ()
    # Block ids on the branch
    seen: FrozenSet[str] = frozenset()
    is_cyclic: bool = False

    model_config = ConfigDict(frozen=True)

    @classmethod
    def start(cls, root: PathStep) -> "PathState":
        return cls(steps=(root,), seen=frozenset({root.step_id}))

    def insert(self, step: PathStep) -> "PathState":
        if self.is_cyclic:
            raise ValueError(f"Cannot extend a cyclic path ending at {self.steps[-1]!r}")
        if step.kind != StepKind.NODE:
            return self.model_copy(update={"steps": self.steps + (step,)})
        return self.model_copy(update={
            "steps": self.steps + (step,),
            "seen": self.seen | {step.step_id},
            "is_cyclic": step.step_id in self.seen,
        })

    def contains(self, step_id: str) -> bool:
        return step_id in self.seen

    @property
    def root(self) -> PathStep:
        return self.steps[0]

    @property
    def ids(self) -> Tuple[str, ...]:
        return tuple(s.step_id for s in self.steps)

    def __len__(self) -> int:
        return len(self.steps)


class InvalidPathEntry(BaseModel):
    """
    A cyclic path found under a root.

    `steps` excludes the root itself and ends with the repeated block.
    """
    root_id: str
    root_name: str = ""
    steps: Tuple[PathStep, ...]

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    @classmethod
    def from_state(cls, state: PathState) -> "InvalidPathEntry":
        if not state.is_cyclic:
            raise ValueError("Only cyclic path states describe an invalid path")
        return cls(root_id=state.root.step_id, root_name=state.root.name, steps=state.steps[1:])

    @property
    def step_ids(self) -> Tuple[str, ...]:
        return tuple(s.step_id for s in self.steps)

    @property
    def elements(self) -> List[Any]:
        return [s.element for s in self.steps]

    @property
    def repeated(self) -> PathStep:
        """The block whose second visit closed the cycle."""
        return self.steps[-1]

    def __len__(self) -> int:
        return len(self.steps)

    def describe(self) -> str:
        """Render as `Root -> prop : Block -> prop : Block`."""
        parts = [self.root_name or self.root_id]
        for i in range(0, len(self.steps) - 1, 2):
            parts.append(f"{self.steps[i].label} : {self.steps[i + 1].label}")
        if len(self.steps) % 2:
            parts.append(self.steps[-1].label)
        return " -> ".join(parts)
