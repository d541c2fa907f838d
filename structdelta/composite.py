"""
structdelta.composite — Product and sum composers.

RecordShape diffs struct-like values field by field; TupleShape does the
same for fixed-length tuples keyed by position.  UnionShape diffs tagged
unions: when both sides are in the same variant it diffs the payloads,
otherwise it ships the whole new value.
"""

import copy
import dataclasses
from typing import Any, Callable, Iterable, Optional

from .core import (
    RecordDelta, Shape, UnionDelta, UnionOp, clone,
)
from .errors import (
    DeltaError, IndexOutOfRange, MalformedDelta, MissingKey, UnsupportedType,
    VariantMismatch, nested,
)


#: Dataclass field metadata key marking a field as excluded from deltas.
IGNORE_KEY = "structdelta.ignore"


def ignore_field(**kwargs) -> Any:
    """
    `dataclasses.field()` for a field that never appears in a delta.

    compute skips it; apply keeps whatever the receiver holds.  Use it for
    caches, handles and other state that should not travel with a delta.
    Soundness holds for every other field.
    """
    metadata = dict(kwargs.pop("metadata", None) or {})
    metadata[IGNORE_KEY] = True
    return dataclasses.field(metadata=metadata, **kwargs)


# ═══════════════════════════════════════════════════════════════════
#  PRODUCT COMPOSER
# ═══════════════════════════════════════════════════════════════════

def _get_attr(value: Any, name: str) -> Any:
    return getattr(value, name)


def _get_item(value: Any, name: str) -> Any:
    return value[name]


def _build_dataclass(value: Any, changes: dict[str, Any]) -> Any:
    return dataclasses.replace(value, **changes)


def _build_namedtuple(value: Any, changes: dict[str, Any]) -> Any:
    return value._replace(**changes)


def _build_dict(value: Any, changes: dict[str, Any]) -> Any:
    return {**value, **changes}


def _build_object(value: Any, changes: dict[str, Any]) -> Any:
    new = copy.copy(value)
    for name, field_value in changes.items():
        setattr(new, name, field_value)
    return new


class RecordShape(Shape):
    """
    Struct-like values: dataclasses, NamedTuples, TypedDicts, or any class
    wired by hand.

    The delta maps field name → child delta and omits unchanged fields, so
    field order never matters.  Fields absent from a delta are left
    untouched on apply.
    """
    __slots__ = ('cls', 'fields', 'ignored', 'getter', 'builder')
    delta_type = RecordDelta

    def __init__(
        self,
        cls: type,
        fields: Optional[dict[str, Shape]] = None,
        ignored: Iterable[str] = (),
        getter: Optional[Callable[[Any, str], Any]] = None,
        builder: Optional[Callable[[Any, dict[str, Any]], Any]] = None,
    ):
        self.cls = cls
        self.fields: dict[str, Shape] = dict(fields or {})
        self.ignored = frozenset(ignored)
        self.getter = getter or _get_attr
        self.builder = builder or _build_object

    @classmethod
    def for_dataclass(cls, tp: type, fields: dict[str, Shape]) -> "RecordShape":
        ignored = [
            f.name for f in dataclasses.fields(tp) if f.metadata.get(IGNORE_KEY)
        ]
        return cls(tp, fields, ignored, _get_attr, _build_dataclass)

    @classmethod
    def for_namedtuple(cls, tp: type, fields: dict[str, Shape]) -> "RecordShape":
        return cls(tp, fields, (), _get_attr, _build_namedtuple)

    @classmethod
    def for_typeddict(cls, tp: type, fields: dict[str, Shape]) -> "RecordShape":
        return cls(tp, fields, (), _get_item, _build_dict)

    def compute(self, a: Any, b: Any) -> RecordDelta:
        changes = {}
        for name, shape in self.fields.items():
            if name in self.ignored:
                continue
            sub = shape.compute(self.getter(a, name), self.getter(b, name))
            if not sub.is_noop:
                changes[name] = sub
        return RecordDelta(changes)

    def apply(self, a: Any, delta: RecordDelta) -> Any:
        self._check(delta)
        if delta.is_noop:
            return a

        changes = {}
        for name, sub in delta.fields.items():
            shape = self.fields.get(name)
            if shape is None or name in self.ignored:
                raise MissingKey(name)
            try:
                changes[name] = shape.apply(self.getter(a, name), sub)
            except DeltaError as error:
                raise nested(error, name) from error
        return self.builder(a, changes)

    def to_delta(self, value: Any) -> RecordDelta:
        return RecordDelta({
            name: shape.to_delta(self.getter(value, name))
            for name, shape in self.fields.items()
            if name not in self.ignored
        })

    def from_delta(self, delta: RecordDelta) -> Any:
        """Build a fresh instance; every non-ignored field must be present."""
        self._check(delta)
        for name in delta.fields:
            if name not in self.fields or name in self.ignored:
                raise MissingKey(name)

        kwargs = {}
        for name, shape in self.fields.items():
            if name in self.ignored:
                continue
            if name not in delta.fields:
                raise MalformedDelta(f"{self.cls.__name__} delta lacks field {name!r}")
            try:
                kwargs[name] = shape.from_delta(delta.fields[name])
            except DeltaError as error:
                raise nested(error, name) from error
        try:
            return self.cls(**kwargs)
        except TypeError as error:
            raise MalformedDelta(f"cannot build {self.cls.__name__}: {error}") from error

    def __repr__(self) -> str:
        return f"RecordShape({self.cls.__name__})"


class TupleShape(Shape):
    """
    Fixed-length heterogeneous tuples, e.g. `tuple[int, str, float]`.

    Positions play the role of field names in the resulting RecordDelta.
    """
    __slots__ = ('items',)
    delta_type = RecordDelta

    def __init__(self, items: Iterable[Shape]):
        self.items = tuple(items)

    def compute(self, a: tuple, b: tuple) -> RecordDelta:
        changes = {}
        for i, shape in enumerate(self.items):
            sub = shape.compute(a[i], b[i])
            if not sub.is_noop:
                changes[i] = sub
        return RecordDelta(changes)

    def apply(self, a: tuple, delta: RecordDelta) -> tuple:
        self._check(delta)
        if delta.is_noop:
            return a

        items = list(a)
        for i, sub in delta.fields.items():
            if not isinstance(i, int) or not 0 <= i < len(self.items) or i >= len(items):
                raise IndexOutOfRange(i, len(items))
            try:
                items[i] = self.items[i].apply(items[i], sub)
            except DeltaError as error:
                raise nested(error, i) from error
        return tuple(items)

    def to_delta(self, value: tuple) -> RecordDelta:
        return RecordDelta({
            i: shape.to_delta(item)
            for i, (shape, item) in enumerate(zip(self.items, value))
        })

    def from_delta(self, delta: RecordDelta) -> tuple:
        self._check(delta)
        if set(delta.fields) != set(range(len(self.items))):
            raise MalformedDelta(
                f"expected positions 0..{len(self.items) - 1}, got {list(delta.fields)}"
            )
        items = []
        for i, shape in enumerate(self.items):
            try:
                items.append(shape.from_delta(delta.fields[i]))
            except DeltaError as error:
                raise nested(error, i) from error
        return tuple(items)

    def __repr__(self) -> str:
        return f"TupleShape({list(self.items)!r})"


# ═══════════════════════════════════════════════════════════════════
#  SUM COMPOSER
# ═══════════════════════════════════════════════════════════════════

def variant_tag(cls: type) -> str:
    """Tag of a variant class: `__delta_tag__` if set, else the class name."""
    return getattr(cls, "__delta_tag__", None) or cls.__name__


class UnionShape(Shape):
    """
    Tagged unions over a closed, ordered set of variant classes.

    The runtime class of a value is its tag, so the variants must be
    distinguishable by class.  Unions that are not (two members with the
    same runtime class or the same tag) are untagged and rejected.

        same variant      → SAME_VARIANT(tag, payload delta)
        different variant → DIFFERENT_VARIANT(tag, whole new value)

    DIFFERENT_VARIANT is the safe fallback: it never fails on apply.
    """
    __slots__ = ('variants', 'by_class')
    delta_type = UnionDelta

    def __init__(self, variants: Iterable[tuple[str, type, Shape]]):
        self.variants: dict[str, tuple[type, Shape]] = {}
        self.by_class: dict[type, str] = {}
        for tag, cls, payload in variants:
            if tag in self.variants or cls in self.by_class:
                raise UnsupportedType(
                    f"untagged union: variant {tag!r} ({cls!r}) is ambiguous"
                )
            self.variants[tag] = (cls, payload)
            self.by_class[cls] = tag

    def tag_of(self, value: Any) -> str:
        tag = self.by_class.get(type(value))
        if tag is None:
            raise VariantMismatch(
                "|".join(self.variants), type(value).__name__
            )
        return tag

    def compute(self, a: Any, b: Any) -> UnionDelta:
        tag_a = self.tag_of(a)
        tag_b = self.tag_of(b)
        if tag_a == tag_b:
            payload = self.variants[tag_a][1]
            return UnionDelta(UnionOp.SAME_VARIANT, tag_a, delta=payload.compute(a, b))
        return UnionDelta(UnionOp.DIFFERENT_VARIANT, tag_b, value=clone(b))

    def apply(self, a: Any, delta: UnionDelta) -> Any:
        self._check(delta)
        if delta.op == UnionOp.DIFFERENT_VARIANT:
            return clone(delta.value)

        if delta.tag not in self.variants:
            raise VariantMismatch(delta.tag, type(a).__name__)
        actual = self.by_class.get(type(a), type(a).__name__)
        if actual != delta.tag:
            raise VariantMismatch(delta.tag, actual)
        if delta.delta.is_noop:
            return a
        try:
            return self.variants[delta.tag][1].apply(a, delta.delta)
        except DeltaError as error:
            raise nested(error, delta.tag) from error

    def to_delta(self, value: Any) -> UnionDelta:
        tag = self.tag_of(value)
        return UnionDelta(
            UnionOp.SAME_VARIANT, tag, delta=self.variants[tag][1].to_delta(value)
        )

    def from_delta(self, delta: UnionDelta) -> Any:
        self._check(delta)
        if delta.op == UnionOp.DIFFERENT_VARIANT:
            return clone(delta.value)
        if delta.tag not in self.variants:
            raise MalformedDelta(f"unknown variant {delta.tag!r}")
        try:
            return self.variants[delta.tag][1].from_delta(delta.delta)
        except DeltaError as error:
            raise nested(error, delta.tag) from error

    def noop(self) -> UnionDelta:
        tag = next(iter(self.variants))
        return UnionDelta(UnionOp.SAME_VARIANT, tag, delta=self.variants[tag][1].noop())

    def __repr__(self) -> str:
        return f"UnionShape({list(self.variants)})"
