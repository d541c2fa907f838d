"""
structdelta.dynamic — Deltas for untyped, JSON-like trees.

When no static shape is available, values are classified at runtime:

    dict              → mapping engine
    list / tuple      → sequence engine
    set / frozenset   → set engine
    anything else     → atom (replace-or-unchanged)

Children are again dynamic.  If the runtime type changes between `a` and
`b` (a list that became a dict, an int that became a float) the whole
value is replaced.  On apply, the delta's family says which kind of
receiver it assumes; a receiver of another kind is a variant mismatch.

to_delta carries lists, dicts and sets entry by entry and everything else
(tuples and frozensets included) as a single replacement, so from_delta
rebuilds the exact runtime type.
"""

from typing import Any

from .containers import MappingShape, SequenceShape, SetShape
from .core import AtomDelta, AtomShape, MapDelta, SeqDelta, SetDelta, Shape
from .errors import MalformedDelta, VariantMismatch


_SEQ_TYPES = (list, tuple)
_SET_TYPES = (set, frozenset)
# Kinds whose container a delta alone can name; the rest travel whole.
_REBUILDABLE = (list, dict, set)


def kind_of(value: Any) -> str:
    """
    Runtime kind of a dynamic value: "map", "seq", "set" or "atom".

    Exact types only: subclasses (OrderedDict, NamedTuples, ...) may not
    be rebuildable from a plain iterable, so they are treated as atoms.
    """
    tp = type(value)
    if tp is dict:
        return "map"
    if tp in _SEQ_TYPES:
        return "seq"
    if tp in _SET_TYPES:
        return "set"
    return "atom"


class DynamicShape(Shape):
    """Shape of `Any`: dispatches on the runtime type of each value."""
    __slots__ = ()
    delta_type = AtomDelta

    def _engine(self, value: Any) -> Shape:
        kind = kind_of(value)
        if kind == "map":
            return MappingShape(_ATOM, self, dict)
        if kind == "seq":
            return SequenceShape(self, type(value))
        if kind == "set":
            return SetShape(_ATOM, type(value))
        return _ATOM

    def compute(self, a: Any, b: Any) -> Any:
        if type(a) is not type(b):
            return _ATOM.compute(a, b)
        return self._engine(a).compute(a, b)

    def apply(self, a: Any, delta: Any) -> Any:
        if isinstance(delta, AtomDelta):
            return _ATOM.apply(a, delta)

        if isinstance(delta, MapDelta):
            expected = "map"
        elif isinstance(delta, SeqDelta):
            expected = "seq"
        elif isinstance(delta, SetDelta):
            expected = "set"
        else:
            raise MalformedDelta(f"DynamicShape cannot apply {type(delta).__name__}")

        actual = kind_of(a)
        if actual != expected:
            raise VariantMismatch(expected, actual)
        return self._engine(a).apply(a, delta)

    def to_delta(self, value: Any) -> Any:
        if type(value) in _REBUILDABLE:
            return self._engine(value).to_delta(value)
        return _ATOM.to_delta(value)

    def from_delta(self, delta: Any) -> Any:
        if isinstance(delta, AtomDelta):
            return _ATOM.from_delta(delta)
        if isinstance(delta, SeqDelta):
            return self._engine([]).from_delta(delta)
        if isinstance(delta, MapDelta):
            return self._engine({}).from_delta(delta)
        if isinstance(delta, SetDelta):
            return self._engine(set()).from_delta(delta)
        raise MalformedDelta(f"DynamicShape cannot rebuild from {type(delta).__name__}")

    def __repr__(self) -> str:
        return "DYNAMIC"


_ATOM = AtomShape()

#: The shared dynamic shape; it holds no state.
DYNAMIC = DynamicShape()
