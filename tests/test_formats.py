"""
Test suite for the plain-data / JSON codec.

    §1  Values
    §2  Typed deltas
    §3  Dynamic deltas
    §4  Malformed input
    §5  Untyped atoms and marker escaping
"""

import sys
import os
import json
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from fractions import Fraction
from enum import Enum
from typing import Optional, Union

import pytest

# Add parent to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from structdelta import (
    AtomDelta, MapDelta, SeqDelta,
    compute, apply,
    encode_value, decode_value, encode_delta, decode_delta, to_json, from_json,
    MalformedDelta,
)
from structdelta.core import remove
from structdelta.formats import MAP_KEY, SET_KEY, TAG_KEY, TUPLE_KEY, VALUE_KEY


class Status(Enum):
    DRAFT = "draft"
    LIVE = "live"


@dataclass(frozen=True)
class Label:
    name: str


@dataclass
class Text:
    body: str


@dataclass
class Image:
    data: bytes
    alt: Optional[str] = None


@dataclass
class Page:
    id: uuid.UUID
    status: Status
    price: Decimal
    published: Optional[datetime]
    ttl: timedelta
    blocks: list[Union[Text, Image]]
    meta: dict[str, str] = field(default_factory=dict)
    ratings: dict[int, float] = field(default_factory=dict)
    labels: frozenset[str] = frozenset()
    span: tuple[int, int] = (0, 0)


def make_page(**changes) -> Page:
    page = Page(
        id=uuid.UUID("12345678-1234-5678-1234-567812345678"),
        status=Status.DRAFT,
        price=Decimal("9.90"),
        published=None,
        ttl=timedelta(minutes=5),
        blocks=[Text("hello"), Image(b"\x89PNG")],
        meta={"lang": "en"},
        ratings={1: 4.5},
        labels=frozenset({"new"}),
    )
    for name, value in changes.items():
        setattr(page, name, value)
    return page


# ═══════════════════════════════════════════════════════════════════
#  §1  VALUES
# ═══════════════════════════════════════════════════════════════════

class TestValues:

    def test_typed_round_trip_through_json(self):
        page = make_page()
        text = json.dumps(encode_value(page, Page))
        assert decode_value(json.loads(text), Page) == page

    def test_union_uses_tag_keys(self):
        obj = encode_value([Text("a")], list[Union[Text, Image]])
        assert obj == [{TAG_KEY: "Text", VALUE_KEY: {"body": "a"}}]

    def test_enum_by_value(self):
        assert encode_value(Status.LIVE, Status) == "live"
        assert decode_value("live", Status) is Status.LIVE

    def test_non_string_keys_become_pairs(self):
        assert encode_value({1: "a"}, dict[int, str]) == [[1, "a"]]
        assert decode_value([[1, "a"]], dict[int, str]) == {1: "a"}

    def test_string_keys_stay_a_dict(self):
        assert encode_value({"a": 1}, dict[str, int]) == {"a": 1}

    @pytest.mark.parametrize("value", [
        {"a": [1, 2], "b": None},
        (1, "x"),
        {1, 2, 3},
        frozenset({"a"}),
        {(1, 2): "pair"},
        b"\x00raw",
        [{"nested": ({"deep"},)}],
    ])
    def test_dynamic_round_trip_through_json(self, value):
        text = json.dumps(encode_value(value))
        assert decode_value(json.loads(text)) == value


# ═══════════════════════════════════════════════════════════════════
#  §2  TYPED DELTAS
# ═══════════════════════════════════════════════════════════════════

class TestTypedDeltas:

    def test_page_delta_through_json(self):
        a = make_page()
        b = make_page(
            status=Status.LIVE,
            price=Decimal("12.00"),
            published=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
            blocks=[Text("hello, world"), Text("caption"), Image(b"GIF89a", "logo")],
            meta={"lang": "de", "author": "kim"},
            ratings={2: 3.0},
            labels=frozenset({"featured"}),
            span=(0, 10),
        )
        d = compute(a, b, Page)
        decoded = from_json(to_json(d, Page), Page)
        assert decoded == d
        assert apply(a, decoded, Page) == b

    def test_atom_encoding(self):
        assert encode_delta(AtomDelta(), int) is None
        assert encode_delta(AtomDelta(True, 5), int) == {"replace": 5}

    def test_mapping_delta_layout(self):
        d = compute({"x": 1, "y": 2}, {"y": 3, "z": 4}, dict[str, int])
        assert encode_delta(d, dict[str, int]) == [
            {"op": "remove", "key": "x"},
            {"op": "edit", "key": "y", "delta": {"replace": 3}},
            {"op": "insert", "key": "z", "value": 4},
        ]

    def test_sequence_delta_layout(self):
        d = compute([1, 2, 3], [1, 5, 3, 9], list[int])
        assert encode_delta(d, list[int]) == [
            {"op": "edit", "index": 1, "delta": {"replace": 5}},
            {"op": "insert", "index": 3, "value": 9},
        ]

    def test_option_delta_layout(self):
        assert encode_delta(compute(None, 3, Optional[int]), Optional[int]) == {
            "op": "became_some", "value": 3,
        }
        assert encode_delta(compute(3, None, Optional[int]), Optional[int]) == {
            "op": "became_none",
        }

    def test_union_delta_layout(self):
        shape = Union[Text, Image]
        d = compute(Text("a"), Text("b"), shape)
        assert encode_delta(d, shape) == {
            "op": "same_variant", "tag": "Text", "delta": {"body": {"replace": "b"}},
        }
        d = compute(Text("a"), Image(b"x"), shape)
        assert encode_delta(d, shape)["op"] == "different_variant"
        assert decode_delta(encode_delta(d, shape), shape) == d

    def test_set_delta_is_sorted(self):
        d = compute({1}, {3, 2}, set[int])
        assert encode_delta(d, set[int]) == {"add": [2, 3], "remove": [1]}

    def test_unorderable_set_members_sorted_by_json(self):
        d = compute(set(), {Label("b"), Label("a"), Label("c")}, set[Label])
        assert encode_delta(d, set[Label]) == {
            "add": [{"name": "a"}, {"name": "b"}, {"name": "c"}],
            "remove": [],
        }


    def test_stored_delta_applies_later(self):
        """A delta serialized now can be applied without the target present."""
        a = {"cfg": {"port": 80}}
        text = to_json(compute(a, {"cfg": {"port": 8080}}, dict[str, dict[str, int]]),
                       dict[str, dict[str, int]])
        assert apply(a, from_json(text, dict[str, dict[str, int]]),
                     dict[str, dict[str, int]]) == {"cfg": {"port": 8080}}


# ═══════════════════════════════════════════════════════════════════
#  §3  DYNAMIC DELTAS
# ═══════════════════════════════════════════════════════════════════

class TestDynamicDeltas:

    def test_round_trip(self):
        a = {"a": [1, 2], "b": {1, 2}, "keep": "x"}
        b = {"a": [1, 3], "b": {2, 3}, "keep": "x", "c": (1, 2)}
        d = compute(a, b)
        decoded = from_json(to_json(d))
        assert decoded == d
        assert apply(a, decoded) == b

    def test_kind_recorded(self):
        assert encode_delta(compute([1], [1, 2]))["kind"] == "seq"
        assert encode_delta(compute({"a": 1}, {}))["kind"] == "map"
        assert encode_delta(compute({1}, set()))["kind"] == "set"
        assert encode_delta(compute(1, 1)) == {"kind": "atom"}

    def test_decoded_families(self):
        assert isinstance(decode_delta({"kind": "seq", "ops": []}), SeqDelta)
        assert isinstance(decode_delta({"kind": "map", "ops": []}), MapDelta)

    def test_json_kwargs_forwarded(self):
        text = to_json(compute({"a": 1}, {"a": 2}), indent=2)
        assert "\n" in text


# ═══════════════════════════════════════════════════════════════════
#  §4  MALFORMED INPUT
# ═══════════════════════════════════════════════════════════════════

class TestMalformed:

    @pytest.mark.parametrize("obj,shape", [
        ({"op": "bogus"}, Optional[int]),
        ({"kind": "tree"}, None),
        ([{"op": "edit", "index": 0}], list[int]),
        ({"nope": None}, Text),
        ({"op": "same_variant", "tag": "Video", "delta": {}}, Union[Text, Image]),
        ({"9": None}, tuple[int, int]),
        ("scalar", dict[str, int]),
        ([{"op": "remove", "index": "0"}], list[int]),
        ([{"op": "remove", "index": True}], list[int]),
        ({"kind": "seq", "ops": [{"op": "remove", "index": 0.0}]}, None),
        ({"kind": "atom", "replace": {"__decimal__": "nine"}}, None),
    ])
    def test_decode_delta(self, obj, shape):
        with pytest.raises(MalformedDelta):
            decode_delta(obj, shape)

    def test_invalid_json(self):
        with pytest.raises(MalformedDelta):
            from_json("{not json")

    def test_value_missing_field(self):
        with pytest.raises(MalformedDelta):
            decode_value({}, Text)

    def test_unknown_variant_value(self):
        with pytest.raises(MalformedDelta):
            decode_value({TAG_KEY: "Video", VALUE_KEY: {}}, Union[Text, Image])

    def test_encode_foreign_delta(self):
        with pytest.raises(MalformedDelta):
            encode_delta(SeqDelta(), int)

    def test_sequence_index_must_be_int(self):
        with pytest.raises(MalformedDelta):
            apply([1, 2], SeqDelta((remove("0"),)), list[int])


# ═══════════════════════════════════════════════════════════════════
#  §5  UNTYPED ATOMS AND MARKER ESCAPING
# ═══════════════════════════════════════════════════════════════════

class TestUntypedAtoms:

    @pytest.mark.parametrize("value", [
        datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        date(2024, 5, 1),
        time(12, 30, 5, 250),
        timedelta(days=2, microseconds=7),
        Decimal("9.90"),
        Fraction(1, 3),
        uuid.UUID("12345678-1234-5678-1234-567812345678"),
        complex(1, -2),
        Status.LIVE,
    ])
    def test_type_survives_json(self, value):
        decoded = decode_value(json.loads(json.dumps(encode_value(value))))
        assert decoded == value
        assert type(decoded) is type(value)

    def test_replacement_delta_keeps_type(self):
        a = {"when": datetime(2024, 1, 1), "price": Decimal("1.00")}
        b = {"when": datetime(2024, 6, 1, 8, 30), "price": Decimal("2.50")}
        result = apply(a, from_json(to_json(compute(a, b))))
        assert result == b
        assert type(result["when"]) is datetime
        assert type(result["price"]) is Decimal

    def test_enum_inside_containers(self):
        a = [Status.DRAFT, {Status.DRAFT}]
        b = [Status.LIVE, {Status.LIVE, Status.DRAFT}]
        assert apply(a, from_json(to_json(compute(a, b)))) == b

    def test_local_enum_is_not_encodable(self):
        class Local(Enum):
            ONE = 1

        with pytest.raises(MalformedDelta):
            encode_value(Local.ONE)

    def test_opaque_object_is_not_encodable(self):
        with pytest.raises(MalformedDelta):
            to_json(compute(1, object()))

    @pytest.mark.parametrize("obj", [
        {"__enum__": ["no_such_module_for_structdelta:Thing", "A"]},
        {"__enum__": ["json:dumps", "A"]},
        {"__enum__": [f"{__name__}:Status", "ARCHIVED"]},
    ])
    def test_unresolvable_enum(self, obj):
        with pytest.raises(MalformedDelta):
            decode_value(obj)

    @pytest.mark.parametrize("value", [
        {"__tuple__": [1, 2]},
        {"__map__": []},
        {"__datetime__": "2024-01-01T00:00:00"},
        {"__bytes__": "AA=="},
    ])
    def test_marker_lookalike_dicts_survive(self, value):
        (key, inner), = value.items()
        assert encode_value(value) == {MAP_KEY: [[key, inner]]}
        assert apply(1, from_json(to_json(compute(1, value)))) == value

    def test_unsortable_set_members_have_fixed_order(self):
        assert encode_value({1, "a"}) == {SET_KEY: ["a", 1]}
        assert encode_value({(1, "a"), ("b", 2)}) == {
            SET_KEY: [{TUPLE_KEY: ["b", 2]}, {TUPLE_KEY: [1, "a"]}],
        }



if __name__ == "__main__":
    pytest.main([__file__, "-v"])
