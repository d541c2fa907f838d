"""
structdelta.containers — Sequence, mapping and set diff engines.

Each engine produces a flat list of entry-level operations and recurses
into the element shape for element deltas.

SEQUENCES align by POSITION, not by longest common subsequence:

    a = [1, 2, 3]          EDIT(1, 2→5)
    b = [1, 5, 3, 9]       INSERT(3, 9)

Common-prefix positions whose elements differ become EDITs, extra tail
elements of `b` become INSERTs in ascending order, and extra tail
elements of `a` become REMOVEs in DESCENDING order, so that applying the
ops one after another never invalidates a later index.  A single
insertion in the middle therefore costs a cascade of tail edits.

MAPPINGS are keyed: REMOVE for keys only in `a`, EDIT for shared keys
whose values differ, INSERT for keys only in `b`.

SETS carry `add = b \\ a` and `remove = a \\ b`.  Unlike the other two,
set apply is idempotent: adding a present element or removing an absent
one is a no-op, since membership has no position or value to corrupt.
"""

from typing import Callable, Optional

from .core import (
    EditOp, EntryOp, MapDelta, SeqDelta, SetDelta, Shape,
    clone, edit, insert, remove,
)
from .errors import (
    DeltaError, DuplicateKey, IndexOutOfRange, MalformedDelta, MissingKey, nested,
)


# ═══════════════════════════════════════════════════════════════════
#  SEQUENCE DIFF ENGINE
# ═══════════════════════════════════════════════════════════════════

class SequenceShape(Shape):
    """Homogeneous ordered sequences (`list[T]`, `tuple[T, ...]`)."""
    __slots__ = ('element', 'container')
    delta_type = SeqDelta

    def __init__(self, element: Shape, container: Callable = list):
        self.element = element
        self.container = container

    def compute(self, a, b) -> SeqDelta:
        ops: list[EntryOp] = []
        common = min(len(a), len(b))

        for i in range(common):
            sub = self.element.compute(a[i], b[i])
            if not sub.is_noop:
                ops.append(edit(i, sub))

        for i in range(common, len(b)):
            ops.append(insert(i, clone(b[i])))

        for i in reversed(range(common, len(a))):
            ops.append(remove(i))

        return SeqDelta(tuple(ops))

    def apply(self, a, delta: SeqDelta):
        self._check(delta)
        if delta.is_noop:
            return a

        items = list(a)
        for entry in delta.ops:
            i = entry.key
            if not isinstance(i, int) or isinstance(i, bool):
                raise MalformedDelta(f"sequence index must be an int, got {i!r}")
            if entry.op == EditOp.INSERT:
                if not 0 <= i <= len(items):
                    raise IndexOutOfRange(i, len(items))
                items.insert(i, clone(entry.value))
            elif entry.op == EditOp.REMOVE:
                if not 0 <= i < len(items):
                    raise IndexOutOfRange(i, len(items))
                del items[i]
            else:
                if not 0 <= i < len(items):
                    raise IndexOutOfRange(i, len(items))
                try:
                    items[i] = self.element.apply(items[i], entry.delta)
                except DeltaError as error:
                    raise nested(error, i) from error

        return self.container(items)

    def to_delta(self, value) -> SeqDelta:
        return SeqDelta(tuple(insert(i, clone(item)) for i, item in enumerate(value)))

    def from_delta(self, delta: SeqDelta):
        return self.apply(self.container(), delta)

    def __repr__(self) -> str:
        return f"SequenceShape({self.element!r})"


# ═══════════════════════════════════════════════════════════════════
#  MAPPING DIFF ENGINE
# ═══════════════════════════════════════════════════════════════════

class MappingShape(Shape):
    """
    Key → value mappings (`dict[K, V]`).

    Keys are compared, never diffed; `key` is kept for encoding only.
    Ops are emitted in a deterministic order: one pass over `a` in
    iteration order (REMOVE / EDIT), then one over `b` (INSERT).
    """
    __slots__ = ('key', 'value', 'container')
    delta_type = MapDelta

    def __init__(self, key: Shape, value: Shape, container: Callable = dict):
        self.key = key
        self.value = value
        self.container = container

    def compute(self, a, b) -> MapDelta:
        ops: list[EntryOp] = []

        for k, old in a.items():
            if k not in b:
                ops.append(remove(k))
                continue
            sub = self.value.compute(old, b[k])
            if not sub.is_noop:
                ops.append(edit(k, sub))

        for k, new in b.items():
            if k not in a:
                ops.append(insert(k, clone(new)))

        return MapDelta(tuple(ops))

    def apply(self, a, delta: MapDelta):
        self._check(delta)
        if delta.is_noop:
            return a

        entries = dict(a)
        for entry in delta.ops:
            k = entry.key
            if entry.op == EditOp.INSERT:
                if k in entries:
                    raise DuplicateKey(k)
                entries[k] = clone(entry.value)
            elif entry.op == EditOp.REMOVE:
                if k not in entries:
                    raise MissingKey(k)
                del entries[k]
            else:
                if k not in entries:
                    raise MissingKey(k)
                try:
                    entries[k] = self.value.apply(entries[k], entry.delta)
                except DeltaError as error:
                    raise nested(error, k) from error

        return self.container(entries)

    def to_delta(self, value) -> MapDelta:
        return MapDelta(tuple(insert(k, clone(v)) for k, v in value.items()))

    def from_delta(self, delta: MapDelta):
        return self.apply(self.container(), delta)

    def __repr__(self) -> str:
        return f"MappingShape({self.key!r}, {self.value!r})"


# ═══════════════════════════════════════════════════════════════════
#  SET DIFF ENGINE
# ═══════════════════════════════════════════════════════════════════

class SetShape(Shape):
    """Unordered membership (`set[T]`, `frozenset[T]`)."""
    __slots__ = ('element', 'container')
    delta_type = SetDelta

    def __init__(self, element: Optional[Shape] = None, container: Callable = set):
        self.element = element
        self.container = container

    def compute(self, a, b) -> SetDelta:
        return SetDelta(add=frozenset(clone(v) for v in b - a),
                        remove=frozenset(clone(v) for v in a - b))

    def apply(self, a, delta: SetDelta):
        self._check(delta)
        if delta.is_noop:
            return a
        return self.container((set(a) - delta.remove) | delta.add)

    def to_delta(self, value) -> SetDelta:
        return SetDelta(add=frozenset(clone(v) for v in value))

    def from_delta(self, delta: SetDelta):
        return self.apply(self.container(), delta)

    def __repr__(self) -> str:
        return f"SetShape({self.element!r})"
