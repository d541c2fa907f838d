"""
Test suite for the product and sum composers.

    §1  Records (dataclasses, NamedTuples, TypedDicts)
    §2  Ignored fields
    §3  Fixed-length tuples
    §4  Tagged unions
"""

import sys
import os
import dataclasses
import pytest
from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple, Optional, TypedDict, Union

# Add parent to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from structdelta import (
    AtomDelta, RecordDelta, UnionDelta, UnionOp, RecordShape, UnionShape,
    compute, apply, shape_of, union_of, ignore_field,
    VariantMismatch, IndexOutOfRange, MissingKey, NestedError,
    MalformedDelta, UnsupportedType,
)


class Color(Enum):
    RED = "red"
    GREEN = "green"


@dataclass
class Point:
    x: int
    y: int


@dataclass(frozen=True)
class Style:
    color: Color
    width: float = 1.0


@dataclass
class Shape2D:
    name: str
    points: list[Point]
    style: Optional[Style] = None
    tags: set[str] = field(default_factory=set)


@dataclass
class Cached:
    value: int
    cache: dict = ignore_field(default_factory=dict)


@dataclass
class Derived:
    value: int
    doubled: int = field(init=False)

    def __post_init__(self):
        self.doubled = self.value * 2


class Pair(NamedTuple):
    left: int
    right: str


class Movie(TypedDict):
    title: str
    year: int


@dataclass
class A:
    x: int


@dataclass
class B:
    y: int


@dataclass
class Unit:
    pass


class Renamed:
    __delta_tag__ = "renamed"


@dataclass
class Circle:
    __delta_tag__ = "circle"
    radius: float


@dataclass
class Square:
    __delta_tag__ = "square"
    side: float


@dataclass
class Canvas:
    title: str
    shapes: list[Union[Circle, Square]]


# ═══════════════════════════════════════════════════════════════════
#  §1  RECORDS
# ═══════════════════════════════════════════════════════════════════

class TestRecord:

    def test_unchanged_fields_omitted(self):
        d = compute(Point(1, 2), Point(1, 5), Point)
        assert isinstance(d, RecordDelta)
        assert set(d.fields) == {"y"}
        assert d.fields["y"] == AtomDelta(True, 5)

    def test_identity(self):
        p = Point(1, 2)
        d = compute(p, Point(1, 2), Point)
        assert d.is_noop
        assert apply(p, d, Point) is p

    def test_round_trip_nested(self):
        a = Shape2D("tri", [Point(0, 0), Point(1, 0), Point(0, 1)])
        b = Shape2D("tri", [Point(0, 0), Point(2, 0)],
                    style=Style(Color.RED), tags={"draft"})
        d = compute(a, b, Shape2D)
        assert set(d.fields) == {"points", "style", "tags"}
        assert apply(a, d, Shape2D) == b

    def test_frozen_dataclass(self):
        a = Style(Color.RED)
        b = Style(Color.GREEN, 2.5)
        assert apply(a, compute(a, b, Style), Style) == b

    def test_apply_builds_new_instance(self):
        a = Point(1, 2)
        result = apply(a, compute(a, Point(3, 2), Point), Point)
        assert result == Point(3, 2)
        assert a == Point(1, 2)

    def test_fields_absent_from_delta_untouched(self):
        """A delta only carries what changed; other fields come from the receiver."""
        d = compute(Point(1, 2), Point(1, 5), Point)
        assert apply(Point(100, 2), d, Point) == Point(100, 5)

    def test_nested_failure_has_field_path(self):
        a = Shape2D("s", [Point(0, 0), Point(1, 1)])
        b = Shape2D("s", [Point(0, 0), Point(1, 9)])
        d = compute(a, b, Shape2D)
        with pytest.raises(NestedError) as info:
            apply(Shape2D("s", [Point(0, 0)]), d, Shape2D)
        assert info.value.path == ("points",)
        assert isinstance(info.value.inner, IndexOutOfRange)

    def test_unknown_field_in_delta(self):
        with pytest.raises(MissingKey):
            apply(Point(1, 2), RecordDelta({"z": AtomDelta(True, 1)}), Point)

    def test_wrong_delta_family(self):
        with pytest.raises(MalformedDelta):
            apply(Point(1, 2), AtomDelta(True, Point(0, 0)), Point)

    def test_namedtuple(self):
        d = compute(Pair(1, "a"), Pair(2, "a"), Pair)
        assert set(d.fields) == {"left"}
        result = apply(Pair(1, "a"), d, Pair)
        assert result == Pair(2, "a")
        assert isinstance(result, Pair)

    def test_typeddict(self):
        a: Movie = {"title": "Alien", "year": 1978}
        b: Movie = {"title": "Alien", "year": 1979}
        d = compute(a, b, Movie)
        assert set(d.fields) == {"year"}
        assert apply(a, d, Movie) == b
        assert a["year"] == 1978

    def test_hand_wired_record(self):
        """Classes that are not dataclasses can list their fields explicitly."""
        class Account:
            def __init__(self, owner, balance):
                self.owner = owner
                self.balance = balance

        shape = RecordShape(Account, {"owner": shape_of(str), "balance": shape_of(int)})
        a = Account("ann", 10)
        result = shape.apply(a, shape.compute(a, Account("ann", 25)))
        assert (result.owner, result.balance) == ("ann", 25)
        assert result is not a
        assert a.balance == 10


# ═══════════════════════════════════════════════════════════════════
#  §2  IGNORED FIELDS
# ═══════════════════════════════════════════════════════════════════

class TestIgnoredFields:

    def test_ignored_field_not_in_delta(self):
        a = Cached(1, {"k": 1})
        b = Cached(2, {"k": 2})
        d = compute(a, b, Cached)
        assert set(d.fields) == {"value"}

    def test_ignored_field_keeps_receiver_value(self):
        a = Cached(1, {"k": 1})
        result = apply(a, compute(a, Cached(2, {"other": 0}), Cached), Cached)
        assert result.value == 2
        assert result.cache == {"k": 1}

    def test_ignore_field_keeps_metadata(self):
        f = ignore_field(default=0, metadata={"doc": "x"})
        assert f.metadata["doc"] == "x"

    def test_init_false_fields_are_derived(self):
        a = Derived(1)
        result = apply(a, compute(a, Derived(4), Derived), Derived)
        assert result.value == 4
        assert result.doubled == 8


# ═══════════════════════════════════════════════════════════════════
#  §3  FIXED-LENGTH TUPLES
# ═══════════════════════════════════════════════════════════════════

class TestTuple:

    tp = tuple[int, str, float]

    def test_positional_delta(self):
        d = compute((1, "a", 1.0), (1, "b", 1.0), self.tp)
        assert set(d.fields) == {1}
        assert apply((1, "a", 1.0), d, self.tp) == (1, "b", 1.0)

    def test_short_receiver(self):
        d = compute((1, "a", 1.0), (1, "a", 2.0), self.tp)
        with pytest.raises(IndexOutOfRange):
            apply((1, "a"), d, self.tp)


# ═══════════════════════════════════════════════════════════════════
#  §4  TAGGED UNIONS
# ═══════════════════════════════════════════════════════════════════

class TestUnion:

    shape = union_of(A, B)

    def test_same_variant(self):
        d = self.shape.compute(A(1), A(2))
        assert d.op == UnionOp.SAME_VARIANT
        assert d.tag == "A"
        assert isinstance(d.delta, RecordDelta)
        assert self.shape.apply(A(1), d) == A(2)

    def test_same_variant_identity(self):
        d = self.shape.compute(A(1), A(1))
        assert d.is_noop
        assert self.shape.apply(A(1), d) == A(1)

    def test_different_variant(self):
        d = self.shape.compute(A(1), B(2))
        assert d == UnionDelta(UnionOp.DIFFERENT_VARIANT, "B", value=B(2))
        assert self.shape.apply(A(1), d) == B(2)

    def test_different_variant_ignores_receiver_tag(self):
        d = self.shape.compute(A(1), B(2))
        assert self.shape.apply(B(99), d) == B(2)
        assert self.shape.apply(A(5), d) == B(2)

    def test_same_variant_on_other_variant_fails(self):
        d = self.shape.compute(A(1), A(2))
        with pytest.raises(VariantMismatch) as info:
            self.shape.apply(B(1), d)
        assert info.value.expected == "A"
        assert info.value.actual == "B"

    def test_unknown_tag(self):
        d = UnionDelta(UnionOp.SAME_VARIANT, "C", delta=RecordDelta())
        with pytest.raises(VariantMismatch):
            self.shape.apply(A(1), d)

    def test_unit_variant(self):
        shape = union_of(A, Unit)
        d = shape.compute(Unit(), Unit())
        assert d.is_noop
        assert shape.apply(A(3), shape.compute(A(3), Unit())) == Unit()

    def test_custom_tags(self):
        shape = shape_of(Union[Circle, Square])
        assert isinstance(shape, UnionShape)
        assert set(shape.variants) == {"circle", "square"}
        d = shape.compute(Circle(1.0), Square(2.0))
        assert d.tag == "square"

    def test_union_of_atoms(self):
        shape = shape_of(Union[int, str])
        assert shape.apply(1, shape.compute(1, 2)) == 2
        assert shape.apply(1, shape.compute(1, "x")) == "x"

    def test_union_inside_list(self):
        a = Canvas("c", [Circle(1.0), Square(1.0)])
        b = Canvas("c", [Circle(2.0), Circle(1.0)])
        d = compute(a, b, Canvas)
        ops = d.fields["shapes"].ops
        assert ops[0].delta.op == UnionOp.SAME_VARIANT
        assert ops[1].delta.op == UnionOp.DIFFERENT_VARIANT
        assert apply(a, d, Canvas) == b

    def test_mismatch_path_names_variant(self):
        a = Canvas("c", [Circle(1.0)])
        d = compute(a, Canvas("c", [Circle(3.0)]), Canvas)
        with pytest.raises(NestedError) as info:
            apply(Canvas("c", [Square(1.0)]), d, Canvas)
        assert info.value.path == ("shapes", 0)
        assert isinstance(info.value.inner, VariantMismatch)

    def test_ambiguous_union_rejected(self):
        with pytest.raises(UnsupportedType):
            shape_of(Union[list[int], list[str]])

    def test_duplicate_tag_rejected(self):
        class Other:
            __delta_tag__ = "renamed"

        with pytest.raises(UnsupportedType):
            UnionShape([("renamed", Renamed, shape_of(int)),
                        ("renamed", Other, shape_of(int))])

    def test_optional_union(self):
        shape = shape_of(Optional[Union[A, B]])
        assert shape.apply(None, shape.compute(None, A(1))) == A(1)
        assert shape.apply(A(1), shape.compute(A(1), A(2))) == A(2)
        assert shape.apply(A(1), shape.compute(A(1), None)) is None

    def test_record_dataclass_is_still_a_dataclass(self):
        result = self.shape.apply(A(1), self.shape.compute(A(1), A(2)))
        assert dataclasses.is_dataclass(result)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
