import logging
import threading
from collections.abc import Mapping
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union, overload

from circdep.graph.path import InvalidPathEntry

##############################
# 1) Published snapshot
##############################

class InvalidPathSnapshot(Mapping):
    """
    Read-only multimap of root id -> invalid paths found under that root.

    A snapshot never changes once built; a new validation run produces a new
    snapshot which replaces the old one.
    """

    def __init__(self,
                 paths: Optional[Dict[str, List[InvalidPathEntry]]] = None,
                 root_elements: Optional[Dict[str, Any]] = None):
        self._paths: Dict[str, Tuple[InvalidPathEntry, ...]] = {
            root_id: tuple(entries) for root_id, entries in (paths or {}).items() if entries
        }
        self._root_elements: Dict[str, Any] = {
            root_id: element for root_id, element in (root_elements or {}).items() if root_id in self._paths
        }

    def __getitem__(self, root_id: str) -> Tuple[InvalidPathEntry, ...]:
        return self._paths[root_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._paths)

    def __len__(self) -> int:
        return len(self._paths)

    def __repr__(self) -> str:
        return f"InvalidPathSnapshot(roots={len(self)}, paths={self.entry_count})"

    @property
    def is_empty(self) -> bool:
        return not self._paths

    @property
    def roots(self) -> List[str]:
        return list(self._paths)

    @property
    def entry_count(self) -> int:
        return sum(len(entries) for entries in self._paths.values())

    def entries(self, root_id: str) -> Tuple[InvalidPathEntry, ...]:
        return self._paths.get(root_id, ())

    def root_element(self, root_id: str) -> Optional[Any]:
        return self._root_elements.get(root_id)

    def subset(self, root_ids: List[str]) -> "InvalidPathSnapshot":
        """A snapshot restricted to the given roots, in the given order."""
        return InvalidPathSnapshot(
            {r: list(self._paths[r]) for r in root_ids if r in self._paths},
            {r: self._root_elements.get(r) for r in root_ids if r in self._paths},
        )

    def describe(self) -> List[str]:
        """One human-readable line per invalid path."""
        return [entry.describe() for entries in self._paths.values() for entry in entries]

    def to_mermaid(self) -> str:
        """Generate a Mermaid diagram of every invalid path."""
        if self.is_empty:
            return "```mermaid\ngraph TD\n  No circular dependency\n```"

        lines = ["```mermaid", "graph TD"]
        # Mermaid ids are numbered per element id; labels carry the names
        refs: Dict[str, str] = {}

        def escape(label: str) -> str:
            return label.replace('"', "#quot;")

        def node_ref(step_id: str, label: str) -> str:
            ref = refs.get(step_id)
            if ref is None:
                ref = f"n{len(refs)}"
                refs[step_id] = ref
                lines.append(f"  {ref}[\"{escape(label)}\"]")
            return ref

        edges = set()
        for root_id, entries in self._paths.items():
            for entry in entries:
                current = node_ref(root_id, entry.root_name or root_id)
                # Steps alternate property, block
                for i in range(0, len(entry.steps) - 1, 2):
                    prop, block = entry.steps[i], entry.steps[i + 1]
                    target = node_ref(block.step_id, block.label)
                    edge = f"  {current} -->|\"{escape(prop.label)}\"| {target}"
                    if edge not in edges:
                        edges.add(edge)
                        lines.append(edge)
                    current = target

        lines.append("```")
        return "\n".join(lines)


##############################
# 2) Index
##############################

class InvalidPathIndex:
    """
    Holds the published InvalidPathSnapshot and the build of the next one.

    A run calls `clear()`, then `record()` for every invalid path, then either
    `publish()` or `discard()`. Readers only ever see published snapshots.
    """

    def __init__(self) -> None:
        self._logger = logging.getLogger("InvalidPathIndex")
        self._lock = threading.Lock()
        self._published = InvalidPathSnapshot()
        self._pending: Optional[Dict[str, List[InvalidPathEntry]]] = None
        self._pending_roots: Dict[str, Any] = {}

    def clear(self) -> None:
        """Start building a new snapshot. The published one is left untouched."""
        self._pending = {}
        self._pending_roots = {}

    def record(self, root: Any, entry: InvalidPathEntry) -> None:
        """Append an invalid path under its root in the snapshot being built."""
        if self._pending is None:
            raise RuntimeError("record() called without clear(); no snapshot is being built")
        self._pending.setdefault(entry.root_id, []).append(entry)
        self._pending_roots.setdefault(entry.root_id, root)
        self._logger.debug(f"Recorded invalid path {entry.describe()}")

    @property
    def is_building(self) -> bool:
        return self._pending is not None

    def publish(self) -> InvalidPathSnapshot:
        """Replace the published snapshot with the one being built."""
        snapshot = InvalidPathSnapshot(self._pending or {}, self._pending_roots)
        with self._lock:
            self._published = snapshot
        self._pending = None
        self._pending_roots = {}
        self._logger.info(f"Published {snapshot!r}")
        return snapshot

    def discard(self) -> None:
        """Drop the snapshot being built, keeping the published one."""
        if self._pending is not None:
            self._logger.debug(f"Discarding pending snapshot with {len(self._pending)} roots")
        self._pending = None
        self._pending_roots = {}

    @overload
    def get(self) -> InvalidPathSnapshot: ...

    @overload
    def get(self, root_id: str) -> Tuple[InvalidPathEntry, ...]: ...

    def get(self, root_id: Optional[str] = None) -> Union[InvalidPathSnapshot, Tuple[InvalidPathEntry, ...]]:
        with self._lock:
            snapshot = self._published
        if root_id is None:
            return snapshot
        return snapshot.entries(root_id)
