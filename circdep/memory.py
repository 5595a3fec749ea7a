"""
In-memory implementations of the validator collaborators.

Used by scripts and tests in place of the authoring tool. Elements reference
each other by id so that cyclic models do not produce cyclic Python objects.
"""
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union
from uuid import uuid4

from pydantic import BaseModel, Field


def _new_id() -> str:
    return str(uuid4())


class ModelElement(BaseModel):
    element_id: str = Field(default_factory=_new_id)
    name: str = ""

    def __hash__(self) -> int:
        return hash(self.element_id)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ModelElement):
            return NotImplemented
        return type(self) is type(other) and self.element_id == other.element_id

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name or self.element_id})"


class Block(ModelElement):
    """A class element; composite when it carries the block stereotype."""
    is_block: bool = True
    property_ids: List[str] = Field(default_factory=list)


class PartProperty(ModelElement):
    """An owned attribute; a part property unless `is_part` is False."""
    owner_id: Optional[str] = None
    type_id: Optional[str] = None
    is_part: bool = True


class InMemoryModel(BaseModel):
    """A small model with builder helpers, implementing ModelAccess."""
    elements: Dict[str, ModelElement] = Field(default_factory=dict)

    # Builders

    def add_block(self, name: str, is_block: bool = True, element_id: Optional[str] = None) -> Block:
        block = Block(name=name, is_block=is_block, element_id=element_id or _new_id())
        self.elements[block.element_id] = block
        return block

    def add_part(self,
                 owner: Block,
                 name: str,
                 type_: Optional[Union[Block, str]] = None,
                 is_part: bool = True,
                 element_id: Optional[str] = None) -> PartProperty:
        type_id = type_.element_id if isinstance(type_, Block) else type_
        prop = PartProperty(
            name=name,
            owner_id=owner.element_id,
            type_id=type_id,
            is_part=is_part,
            element_id=element_id or _new_id(),
        )
        self.elements[prop.element_id] = prop
        owner.property_ids.append(prop.element_id)
        return prop

    def get(self, element_id: str) -> ModelElement:
        return self.elements[element_id]

    def blocks(self) -> List[Block]:
        return [e for e in self.elements.values() if isinstance(e, Block)]

    # ModelAccess

    def all_elements(self) -> Iterable[Any]:
        return list(self.elements.values())

    def element_id(self, element: Any) -> str:
        return element.element_id

    def name(self, element: Any) -> str:
        return element.name

    def is_composite(self, element: Any) -> bool:
        return isinstance(element, Block) and element.is_block

    def is_part_property(self, prop: Any) -> bool:
        return isinstance(prop, PartProperty) and prop.is_part

    def owned_properties(self, element: Any) -> Sequence[Any]:
        return [self.elements[pid] for pid in element.property_ids]

    def property_type(self, prop: Any) -> Optional[Any]:
        if prop.type_id is None:
            return None
        return self.elements[prop.type_id]

    def owner(self, prop: Any) -> Optional[Any]:
        if prop.owner_id is None:
            return None
        return self.elements[prop.owner_id]


class InMemorySession(BaseModel):
    """Session stand-in, implementing SessionService."""
    project: str = "Untitled"
    is_open: bool = True

    def has_open_session(self) -> bool:
        return self.is_open

    def project_name(self) -> str:
        return self.project


class Row(BaseModel):
    """A displayed row backed by a model element, implementing RowNode."""
    element_id: str
    name: str = ""
    contained_rows: List["Row"] = Field(default_factory=list)

    def add(self, *rows: "Row") -> "Row":
        self.contained_rows.extend(rows)
        return self

    @classmethod
    def for_element(cls, element: ModelElement, *children: "Row") -> "Row":
        return cls(element_id=element.element_id, name=element.name, contained_rows=list(children))
