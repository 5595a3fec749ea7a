import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional

from circdep.collaborators import ModelAccess, RowNode
from circdep.index import InvalidPathIndex, InvalidPathSnapshot


@dataclass
class FilterResult:
    """Outcome of filtering candidates against the invalid path index."""
    invalid: InvalidPathSnapshot = field(default_factory=InvalidPathSnapshot)
    remaining: List[Any] = field(default_factory=list)

    @property
    def has_invalid(self) -> bool:
        return not self.invalid.is_empty


class ElementFilter:
    """
    Read-only queries against the published invalid path index.
    """

    def __init__(self, index: InvalidPathIndex, model: ModelAccess):
        self.index = index
        self.model = model
        self._logger = logging.getLogger("ElementFilter")

    def _id_of(self, element: Any) -> Optional[str]:
        try:
            element_id = self.model.element_id(element)
        except (AttributeError, TypeError, LookupError, ValueError) as e:
            self._logger.debug(f"Cannot get id of {element!r}: {e}")
            return None
        return str(element_id) if element_id else None

    def filter_invalid(self, candidates: Iterable[Any]) -> FilterResult:
        """
        Split candidates into those that are roots of an invalid path and the rest.

        Args:
            candidates: Elements about to be mapped or transferred

        Returns:
            FilterResult with the invalid roots (and their paths) and the
            remaining candidates in their original order
        """
        snapshot = self.index.get()
        candidates = list(candidates)
        if snapshot.is_empty:
            return FilterResult(remaining=candidates)

        invalid_ids: List[str] = []
        remaining: List[Any] = []
        for element in candidates:
            element_id = self._id_of(element)
            if element_id is not None and element_id in snapshot:
                if element_id not in invalid_ids:
                    invalid_ids.append(element_id)
            else:
                remaining.append(element)

        if invalid_ids:
            self._logger.info(f"Filtered out {len(invalid_ids)} of {len(candidates)} elements involved in circular dependencies")
        return FilterResult(invalid=snapshot.subset(invalid_ids), remaining=remaining)

    def is_already_present(self, row_tree: RowNode, prop: Any) -> bool:
        """
        Whether a part property is already represented in a displayed row tree.

        Only relevant when the property's owning block is the root of an
        invalid path; otherwise answers False without looking at the tree.
        """
        snapshot = self.index.get()
        if snapshot.is_empty:
            return False

        try:
            owner = self.model.owner(prop)
        except (AttributeError, TypeError, LookupError, ValueError) as e:
            self._logger.debug(f"Cannot get owner of {prop!r}: {e}")
            return False
        owner_id = self._id_of(owner) if owner is not None else None
        property_id = self._id_of(prop)
        if owner_id is None or property_id is None or owner_id not in snapshot:
            return False

        stack = list(reversed(list(row_tree.contained_rows)))
        while stack:
            row = stack.pop()
            if row.element_id == property_id:
                return True
            stack.extend(reversed(list(row.contained_rows)))
        return False
