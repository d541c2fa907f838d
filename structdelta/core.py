"""
structdelta.core — Delta Algebra
================================

FRAMEWORK
═════════

§1  THE PROBLEM
───────────────

An application keeps successive versions of a large nested value (a
config tree, a game state, a document model).  Storing or sending every
version in full is wasteful: most of each version is unchanged.

We want a DELTA Δ between two values of the same type such that

    apply(a, compute(a, b)) == b

and Δ is itself plain data: it can be stored now, shipped elsewhere, and
applied later without `b` being present.


§2  SHAPES
──────────

Every participating type is described by a SHAPE, which knows how to
compute and apply deltas for values of that type:

    (1)  AtomShape                 leaves: replace-or-unchanged
    (2)  OptionShape(T)            presence / absence of a T
    (3)  RecordShape(fields)       struct-like products, field-wise
    (4)  TupleShape(T₁, ..., Tₙ)   fixed-length positional products
    (5)  UnionShape(variants)      tagged unions, variant-aware
    (6)  SequenceShape(T)          ordered sequences, positional
    (7)  MappingShape(K, V)        key → value mappings, keyed
    (8)  SetShape(T)               unordered membership
    (9)  DynamicShape              untyped JSON-like trees, by runtime type

Composite shapes recurse into their children's shapes, bottoming out at
AtomShape.  The delta mirrors the value's shape one level at a time and
holds child DELTAS (never raw child values) wherever the child type itself
participates.


§3  DELTAS
──────────

    AtomDelta      changed? + replacement value
    OptionDelta    NO_CHANGE | EDIT(Δ) | BECAME_SOME(value) | BECAME_NONE
    RecordDelta    {field: Δ}            (identity children omitted)
    UnionDelta     SAME_VARIANT(tag, Δ) | DIFFERENT_VARIANT(tag, value)
    SeqDelta       [INSERT(i, v) | REMOVE(i) | EDIT(i, Δ)]
    MapDelta       [INSERT(k, v) | REMOVE(k) | EDIT(k, Δ)]
    SetDelta       add = b \\ a,  remove = a \\ b

Every delta has `is_noop`: True iff it was produced by compute(a, a).


§4  LAWS
────────

    (i)   Soundness:   apply(a, compute(a, b)) == b
    (ii)  Identity:    compute(a, a).is_noop
    (iii) Partiality:  apply(c, compute(a, b)) for c ≠ a may raise a
                       DeltaError, but never returns a corrupted value
                       and never mutates c.

Deltas and results never share mutable state: values embedded in a delta
are deep copies of the compared values, and apply deep-copies them again
on the way out.


§5  NON-GOALS
─────────────

    • Minimum-size deltas.  The sequence engine aligns by position, not
      by LCS: one mid-sequence insertion costs a cascade of tail edits.
    • Untagged unions.
    • I/O and concurrency.  Every function here is pure.
"""

import copy
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Optional

from .errors import MalformedDelta, VariantMismatch


# ═══════════════════════════════════════════════════════════════════
#  DELTA TYPES
# ═══════════════════════════════════════════════════════════════════

class EditOp(Enum):
    """Entry-level operations of sequence and mapping deltas."""
    INSERT = auto()     # Insert a new value at a position / key
    REMOVE = auto()     # Remove the value at a position / key
    EDIT = auto()       # Apply a child delta at a position / key


@dataclass(frozen=True, slots=True)
class EntryOp:
    """One entry of a sequence or mapping delta."""
    op: EditOp
    key: Any                    # Index for sequences, key for mappings
    value: Any = None           # INSERT only
    delta: Any = None           # EDIT only

    def __repr__(self) -> str:
        if self.op == EditOp.INSERT:
            return f"Insert({self.key!r}, {self.value!r})"
        if self.op == EditOp.REMOVE:
            return f"Remove({self.key!r})"
        return f"Edit({self.key!r}, {self.delta!r})"


def insert(key: Any, value: Any) -> EntryOp:
    return EntryOp(EditOp.INSERT, key, value=value)


def remove(key: Any) -> EntryOp:
    return EntryOp(EditOp.REMOVE, key)


def edit(key: Any, delta: Any) -> EntryOp:
    return EntryOp(EditOp.EDIT, key, delta=delta)


@dataclass(frozen=True, slots=True)
class AtomDelta:
    """
    Delta of a leaf value.

    `changed=False` means unchanged; `changed=True` means "replace wholesale
    with `value`".  A flag is used instead of `value is None` because None
    is itself a valid replacement.
    """
    changed: bool = False
    value: Any = None

    @property
    def is_noop(self) -> bool:
        return not self.changed

    def __repr__(self) -> str:
        return f"AtomDelta({self.value!r})" if self.changed else "AtomDelta()"


class OptionOp(Enum):
    NO_CHANGE = auto()      # None → None, or Some(x) → Some(x)
    EDIT = auto()           # Some(x) → Some(y), carries the child delta
    BECAME_SOME = auto()    # None → Some(y), carries y
    BECAME_NONE = auto()    # Some(x) → None


@dataclass(frozen=True, slots=True)
class OptionDelta:
    """Delta of an optional value."""
    op: OptionOp = OptionOp.NO_CHANGE
    value: Any = None
    delta: Any = None

    @property
    def is_noop(self) -> bool:
        return self.op == OptionOp.NO_CHANGE


@dataclass(frozen=True, slots=True)
class RecordDelta:
    """
    Field-wise delta of a record (or of a fixed-length tuple, keyed by
    position).  Only fields whose child delta is not a no-op appear.
    """
    fields: dict[Any, Any]

    def __init__(self, fields: Optional[dict[Any, Any]] = None):
        object.__setattr__(self, 'fields', dict(fields or {}))

    @property
    def is_noop(self) -> bool:
        return not self.fields

    def __repr__(self) -> str:
        return f"RecordDelta({self.fields!r})"


class UnionOp(Enum):
    SAME_VARIANT = auto()       # Payload delta, receiver must be in `tag`
    DIFFERENT_VARIANT = auto()  # Whole replacement value of variant `tag`


@dataclass(frozen=True, slots=True)
class UnionDelta:
    """Delta of a tagged union."""
    op: UnionOp
    tag: str
    delta: Any = None
    value: Any = None

    @property
    def is_noop(self) -> bool:
        return self.op == UnionOp.SAME_VARIANT and self.delta.is_noop


@dataclass(frozen=True, slots=True)
class SeqDelta:
    """Ordered list of positional entry operations, applied in order."""
    ops: tuple[EntryOp, ...] = ()

    @property
    def is_noop(self) -> bool:
        return not self.ops

    def __len__(self) -> int:
        return len(self.ops)


@dataclass(frozen=True, slots=True)
class MapDelta:
    """Keyed entry operations, at most one per affected key."""
    ops: tuple[EntryOp, ...] = ()

    @property
    def is_noop(self) -> bool:
        return not self.ops

    def __len__(self) -> int:
        return len(self.ops)


@dataclass(frozen=True, slots=True)
class SetDelta:
    """Membership changes: `add = b \\ a`, `remove = a \\ b`."""
    add: frozenset = field(default_factory=frozenset)
    remove: frozenset = field(default_factory=frozenset)

    @property
    def is_noop(self) -> bool:
        return not self.add and not self.remove


# ═══════════════════════════════════════════════════════════════════
#  SHAPE CONTRACT
# ═══════════════════════════════════════════════════════════════════

class Shape:
    """
    Base class for shapes.  Not instantiated directly.

    Subclasses implement:
        compute(a, b)     → delta such that apply(a, delta) == b
        apply(a, delta)   → new value, or raise DeltaError
        to_delta(v)       → standalone delta that carries all of v
        from_delta(delta) → v rebuilt with no base value
    """
    __slots__ = ()

    #: Delta class produced and accepted by this shape.
    delta_type: type = object

    def compute(self, a: Any, b: Any) -> Any:
        raise NotImplementedError

    def apply(self, a: Any, delta: Any) -> Any:
        raise NotImplementedError

    def to_delta(self, value: Any) -> Any:
        raise NotImplementedError

    def from_delta(self, delta: Any) -> Any:
        raise NotImplementedError

    def noop(self) -> Any:
        """The identity delta of this shape."""
        return self.delta_type()

    def _check(self, delta: Any) -> None:
        if not isinstance(delta, self.delta_type):
            raise MalformedDelta(
                f"{type(self).__name__} cannot apply {type(delta).__name__}"
            )


def clone(value: Any) -> Any:
    """Deep copy, so deltas and results never alias each other."""
    return copy.deepcopy(value)


def same_atom(a: Any, b: Any) -> bool:
    """
    Atom equality.

    In Python, bool is a subclass of int (True == 1, 1 == 1.0), so plain
    == would let a delta silently turn True into 1.  Atoms are equal only
    when their runtime types match as well.
    """
    return a is b or (type(a) is type(b) and a == b)


# ═══════════════════════════════════════════════════════════════════
#  PRIMITIVE ADAPTER
# ═══════════════════════════════════════════════════════════════════

class AtomShape(Shape):
    """
    Leaf values: None, bool, numbers, strings, bytes, enums, dates, ...

    compute(a, b) = AtomDelta()            if a == b
                  = AtomDelta(True, b)     otherwise
    apply never fails.
    """
    __slots__ = ('tp',)
    delta_type = AtomDelta

    def __init__(self, tp: Any = object):
        self.tp = tp

    def compute(self, a: Any, b: Any) -> AtomDelta:
        if same_atom(a, b):
            return AtomDelta()
        return AtomDelta(True, clone(b))

    def apply(self, a: Any, delta: AtomDelta) -> Any:
        self._check(delta)
        if not delta.changed:
            return a
        return clone(delta.value)

    def to_delta(self, value: Any) -> AtomDelta:
        return AtomDelta(True, clone(value))

    def from_delta(self, delta: AtomDelta) -> Any:
        self._check(delta)
        if not delta.changed:
            raise MalformedDelta("an unchanged atom delta carries no value")
        return clone(delta.value)

    def __repr__(self) -> str:
        return f"AtomShape({getattr(self.tp, '__name__', self.tp)})"


# ═══════════════════════════════════════════════════════════════════
#  OPTIONAL COMPOSER
# ═══════════════════════════════════════════════════════════════════

class OptionShape(Shape):
    """
    `T | None`.

    Transitions across presence always succeed on apply.  Only an EDIT
    (Some → Some, carrying the child delta) can fail: it needs a receiver
    that is currently Some.
    """
    __slots__ = ('child',)
    delta_type = OptionDelta

    def __init__(self, child: Shape):
        self.child = child

    def compute(self, a: Any, b: Any) -> OptionDelta:
        if a is None and b is None:
            return OptionDelta()
        if a is None:
            return OptionDelta(OptionOp.BECAME_SOME, value=clone(b))
        if b is None:
            return OptionDelta(OptionOp.BECAME_NONE)

        sub = self.child.compute(a, b)
        if sub.is_noop:
            return OptionDelta()
        return OptionDelta(OptionOp.EDIT, delta=sub)

    def apply(self, a: Any, delta: OptionDelta) -> Any:
        self._check(delta)
        if delta.op == OptionOp.NO_CHANGE:
            return a
        if delta.op == OptionOp.BECAME_NONE:
            return None
        if delta.op == OptionOp.BECAME_SOME:
            return clone(delta.value)

        # EDIT
        if a is None:
            raise VariantMismatch("some", "none")
        return self.child.apply(a, delta.delta)

    def to_delta(self, value: Any) -> OptionDelta:
        if value is None:
            return OptionDelta(OptionOp.BECAME_NONE)
        return OptionDelta(OptionOp.BECAME_SOME, value=clone(value))

    def from_delta(self, delta: OptionDelta) -> Any:
        self._check(delta)
        if delta.op == OptionOp.BECAME_NONE:
            return None
        if delta.op == OptionOp.BECAME_SOME:
            return clone(delta.value)
        if delta.op == OptionOp.EDIT:
            return self.child.from_delta(delta.delta)
        raise MalformedDelta("an unchanged optional delta carries no value")

    def __repr__(self) -> str:
        return f"OptionShape({self.child!r})"
