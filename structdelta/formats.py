"""
structdelta.formats — Convert deltas and values to plain data and JSON.

Deltas are ordinary data, but the Python objects that hold them (frozen
dataclasses, enums, user records) are not directly serializable.  This
module maps them to plain Python built only from dicts, lists, strings,
numbers, bools and None, and back.  The mapping is SHAPE-DIRECTED: the
same shape that computed a delta is needed to decode it, exactly as a
schema is needed to decode any wire format.

Supported conversions:
    • values  ↔ plain Python      (encode_value / decode_value)
    • deltas  ↔ plain Python      (encode_delta / decode_delta)
    • deltas  ↔ JSON strings      (to_json / from_json)

Encoding of the delta families:

    AtomDelta      null                         (unchanged)
                   {"replace": v}
    OptionDelta    {"op": "no_change" | "edit" | "became_some" | "became_none", ...}
    RecordDelta    {field: Δ, ...}
    UnionDelta     {"op": "same_variant" | "different_variant", "tag": t, ...}
    SeqDelta       [{"op": "insert" | "remove" | "edit", "index": i, ...}, ...]
    MapDelta       [{"op": "insert" | "remove" | "edit", "key": k, ...}, ...]
    SetDelta       {"add": [...], "remove": [...]}

Deltas of untyped (DYNAMIC) data carry an extra "kind" so the family can
be recovered without a schema.  Untyped values other than JSON scalars,
lists and string-keyed dicts travel as one-key marker dicts such as
{"__tuple__": [...]} or {"__datetime__": "2024-05-01T12:00:00"}; a user
dict that happens to look like a marker is escaped through "__map__".
"""

import base64
import datetime
import decimal
import enum
import fractions
import importlib
import json
import uuid
from typing import Any

from .composite import RecordShape, TupleShape, UnionShape
from .containers import MappingShape, SequenceShape, SetShape
from .core import (
    AtomDelta, AtomShape, EditOp, EntryOp, MapDelta, OptionDelta, OptionOp,
    OptionShape, RecordDelta, SeqDelta, SetDelta, Shape, UnionDelta, UnionOp,
)
from .dynamic import DYNAMIC, DynamicShape
from .errors import DeltaError, MalformedDelta
from .registry import shape_of


TAG_KEY = "__tag__"
VALUE_KEY = "__value__"
BYTES_KEY = "__bytes__"
TUPLE_KEY = "__tuple__"
SET_KEY = "__set__"
FROZENSET_KEY = "__frozenset__"
MAP_KEY = "__map__"
DATETIME_KEY = "__datetime__"
DATE_KEY = "__date__"
TIME_KEY = "__time__"
TIMEDELTA_KEY = "__timedelta__"
DECIMAL_KEY = "__decimal__"
FRACTION_KEY = "__fraction__"
UUID_KEY = "__uuid__"
COMPLEX_KEY = "__complex__"
ENUM_KEY = "__enum__"


_OPTION_OPS = {
    OptionOp.NO_CHANGE: "no_change",
    OptionOp.EDIT: "edit",
    OptionOp.BECAME_SOME: "became_some",
    OptionOp.BECAME_NONE: "became_none",
}
_UNION_OPS = {
    UnionOp.SAME_VARIANT: "same_variant",
    UnionOp.DIFFERENT_VARIANT: "different_variant",
}
_EDIT_OPS = {
    EditOp.INSERT: "insert",
    EditOp.REMOVE: "remove",
    EditOp.EDIT: "edit",
}


def _resolve(shape: Any) -> Shape:
    return DYNAMIC if shape is None else shape_of(shape)


def _reverse(table: dict, name: Any) -> Any:
    for op, op_name in table.items():
        if op_name == name:
            return op
    raise MalformedDelta(f"unknown op {name!r}")


def _ordered(items: list) -> list:
    """
    Sort encoded set members for stable output.  Members that do not
    compare (records, mixed types) are ordered by their canonical JSON.
    """
    try:
        return sorted(items)
    except TypeError:
        return sorted(items, key=lambda item: json.dumps(item, sort_keys=True))


# ═══════════════════════════════════════════════════════════════════
#  ATOMS
# ═══════════════════════════════════════════════════════════════════

def _encode_atom(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, bytes):
        return {BYTES_KEY: base64.b64encode(value).decode("ascii")}
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, datetime.timedelta):
        return value.total_seconds()
    if isinstance(value, (decimal.Decimal, fractions.Fraction, uuid.UUID)):
        return str(value)
    if isinstance(value, complex):
        return [value.real, value.imag]
    return value


def _decode_atom(obj: Any, tp: Any) -> Any:
    if isinstance(obj, dict) and BYTES_KEY in obj:
        return base64.b64decode(obj[BYTES_KEY])
    if obj is None or not isinstance(tp, type) or tp is object:
        return obj

    if issubclass(tp, enum.Enum):
        return tp(obj)
    if tp is datetime.datetime:
        return datetime.datetime.fromisoformat(obj)
    if tp is datetime.date:
        return datetime.date.fromisoformat(obj)
    if tp is datetime.time:
        return datetime.time.fromisoformat(obj)
    if tp is datetime.timedelta:
        return datetime.timedelta(seconds=obj)
    if tp in (decimal.Decimal, fractions.Fraction, uuid.UUID):
        return tp(obj)
    if tp is complex:
        return complex(*obj)
    if tp is float and isinstance(obj, int):
        return float(obj)
    return obj


# ═══════════════════════════════════════════════════════════════════
#  VALUES ↔ PLAIN PYTHON
# ═══════════════════════════════════════════════════════════════════

def encode_value(value: Any, shape: Any = None) -> Any:
    """Convert a value of `shape` into plain, JSON-compatible Python."""
    shape = _resolve(shape)

    if isinstance(shape, DynamicShape):
        return _encode_dynamic(value)
    if isinstance(shape, AtomShape):
        return _encode_atom(value)
    if isinstance(shape, OptionShape):
        return None if value is None else encode_value(value, shape.child)
    if isinstance(shape, RecordShape):
        return {
            name: encode_value(shape.getter(value, name), field_shape)
            for name, field_shape in shape.fields.items()
        }
    if isinstance(shape, TupleShape):
        return [encode_value(v, s) for v, s in zip(value, shape.items)]
    if isinstance(shape, UnionShape):
        tag = shape.tag_of(value)
        return {TAG_KEY: tag, VALUE_KEY: encode_value(value, shape.variants[tag][1])}
    if isinstance(shape, SequenceShape):
        return [encode_value(item, shape.element) for item in value]
    if isinstance(shape, MappingShape):
        return _encode_entries(value, shape)
    if isinstance(shape, SetShape):
        element = shape.element or DYNAMIC
        return _ordered([encode_value(item, element) for item in value])

    raise MalformedDelta(f"cannot encode values of {shape!r}")


def decode_value(obj: Any, shape: Any = None) -> Any:
    """Inverse of encode_value."""
    shape = _resolve(shape)
    try:
        return _decode_value(obj, shape)
    except DeltaError:
        raise
    except (KeyError, TypeError, ValueError, AttributeError, ArithmeticError) as error:
        raise MalformedDelta(f"cannot decode value for {shape!r}: {error}") from error


def _decode_value(obj: Any, shape: Shape) -> Any:
    if isinstance(shape, DynamicShape):
        return _decode_dynamic(obj)
    if isinstance(shape, AtomShape):
        return _decode_atom(obj, shape.tp)
    if isinstance(shape, OptionShape):
        return None if obj is None else _decode_value(obj, shape.child)
    if isinstance(shape, RecordShape):
        kwargs = {
            name: _decode_value(obj[name], field_shape)
            for name, field_shape in shape.fields.items()
        }
        return shape.cls(**kwargs)
    if isinstance(shape, TupleShape):
        if len(obj) != len(shape.items):
            raise MalformedDelta(f"expected {len(shape.items)} items, got {len(obj)}")
        return tuple(_decode_value(v, s) for v, s in zip(obj, shape.items))
    if isinstance(shape, UnionShape):
        tag = obj[TAG_KEY]
        if tag not in shape.variants:
            raise MalformedDelta(f"unknown variant {tag!r}")
        return _decode_value(obj[VALUE_KEY], shape.variants[tag][1])
    if isinstance(shape, SequenceShape):
        return shape.container(_decode_value(item, shape.element) for item in obj)
    if isinstance(shape, MappingShape):
        return shape.container(_decode_entries(obj, shape))
    if isinstance(shape, SetShape):
        element = shape.element or DYNAMIC
        return shape.container(_decode_value(item, element) for item in obj)

    raise MalformedDelta(f"cannot decode values of {shape!r}")


def _encode_entries(value: Any, shape: MappingShape) -> Any:
    pairs = [
        (encode_value(k, shape.key), encode_value(v, shape.value))
        for k, v in value.items()
    ]
    if all(isinstance(k, str) for k, _ in pairs):
        return dict(pairs)
    return [[k, v] for k, v in pairs]


def _decode_entries(obj: Any, shape: MappingShape) -> list:
    pairs = obj.items() if isinstance(obj, dict) else obj
    return [
        (_decode_value(k, shape.key), _decode_value(v, shape.value))
        for k, v in pairs
    ]


def _encode_dynamic(value: Any) -> Any:
    tp = type(value)
    if tp is dict:
        if all(isinstance(k, str) for k in value) and not _looks_marked(value):
            return {k: _encode_dynamic(v) for k, v in value.items()}
        return {MAP_KEY: [[_encode_dynamic(k), _encode_dynamic(v)] for k, v in value.items()]}
    if tp is list:
        return [_encode_dynamic(item) for item in value]
    if tp is tuple:
        return {TUPLE_KEY: [_encode_dynamic(item) for item in value]}
    if tp is set:
        return {SET_KEY: _ordered([_encode_dynamic(item) for item in value])}
    if tp is frozenset:
        return {FROZENSET_KEY: _ordered([_encode_dynamic(item) for item in value])}
    return _encode_dynamic_atom(value)


def _looks_marked(value: dict) -> bool:
    """A plain one-key dict whose key is reserved must be escaped."""
    return len(value) == 1 and next(iter(value)) in _MARKER_KEYS


def _encode_dynamic_atom(value: Any) -> Any:
    """
    Untyped atoms carry their type in a one-key marker dict, since no
    shape is around to say what a bare string or number stood for.
    """
    if isinstance(value, enum.Enum):
        return {ENUM_KEY: [_enum_path(type(value)), value.name]}
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, bytes):
        return {BYTES_KEY: base64.b64encode(value).decode("ascii")}
    # datetime is a date subclass
    if isinstance(value, datetime.datetime):
        return {DATETIME_KEY: value.isoformat()}
    if isinstance(value, datetime.date):
        return {DATE_KEY: value.isoformat()}
    if isinstance(value, datetime.time):
        return {TIME_KEY: value.isoformat()}
    if isinstance(value, datetime.timedelta):
        return {TIMEDELTA_KEY: [value.days, value.seconds, value.microseconds]}
    if isinstance(value, decimal.Decimal):
        return {DECIMAL_KEY: str(value)}
    if isinstance(value, fractions.Fraction):
        return {FRACTION_KEY: str(value)}
    if isinstance(value, uuid.UUID):
        return {UUID_KEY: str(value)}
    if isinstance(value, complex):
        return {COMPLEX_KEY: [value.real, value.imag]}
    raise MalformedDelta(
        f"cannot encode untyped {type(value).__name__!r} value; pass a shape"
    )


def _enum_path(cls: type) -> str:
    if "<locals>" in cls.__qualname__:
        raise MalformedDelta(f"enum {cls.__qualname__} is not importable")
    return f"{cls.__module__}:{cls.__qualname__}"


def _enum_member(path: str, name: str) -> enum.Enum:
    module_name, _, qualname = path.partition(":")
    try:
        target: Any = importlib.import_module(module_name)
        for part in qualname.split("."):
            target = getattr(target, part)
    except (ImportError, AttributeError, ValueError) as error:
        raise MalformedDelta(f"cannot resolve enum {path!r}") from error
    if not (isinstance(target, type) and issubclass(target, enum.Enum)):
        raise MalformedDelta(f"{path!r} is not an enum")
    try:
        return target[name]
    except KeyError:
        raise MalformedDelta(f"{path!r} has no member {name!r}") from None


_DYNAMIC_ATOMS = {
    BYTES_KEY: base64.b64decode,
    DATETIME_KEY: datetime.datetime.fromisoformat,
    DATE_KEY: datetime.date.fromisoformat,
    TIME_KEY: datetime.time.fromisoformat,
    TIMEDELTA_KEY: lambda parts: datetime.timedelta(*parts),
    DECIMAL_KEY: decimal.Decimal,
    FRACTION_KEY: fractions.Fraction,
    UUID_KEY: uuid.UUID,
    COMPLEX_KEY: lambda parts: complex(*parts),
    ENUM_KEY: lambda parts: _enum_member(*parts),
}
_MARKER_KEYS = frozenset({TUPLE_KEY, SET_KEY, FROZENSET_KEY, MAP_KEY, *_DYNAMIC_ATOMS})


def _decode_dynamic(obj: Any) -> Any:
    if isinstance(obj, list):
        return [_decode_dynamic(item) for item in obj]
    if not isinstance(obj, dict):
        return obj

    if len(obj) == 1:
        (key, inner), = obj.items()
        if key in _DYNAMIC_ATOMS:
            return _DYNAMIC_ATOMS[key](inner)
        if key == TUPLE_KEY:
            return tuple(_decode_dynamic(item) for item in inner)
        if key == SET_KEY:
            return {_decode_dynamic(item) for item in inner}
        if key == FROZENSET_KEY:
            return frozenset(_decode_dynamic(item) for item in inner)
        if key == MAP_KEY:
            return {_decode_dynamic(k): _decode_dynamic(v) for k, v in inner}
    return {k: _decode_dynamic(v) for k, v in obj.items()}


# ═══════════════════════════════════════════════════════════════════
#  DELTAS ↔ PLAIN PYTHON
# ═══════════════════════════════════════════════════════════════════

def encode_delta(delta: Any, shape: Any = None) -> Any:
    """Convert a delta computed with `shape` into plain, JSON-compatible Python."""
    return _encode_delta(delta, _resolve(shape))


def decode_delta(obj: Any, shape: Any = None) -> Any:
    """Inverse of encode_delta."""
    shape = _resolve(shape)
    try:
        return _decode_delta(obj, shape)
    except DeltaError:
        raise
    except (KeyError, TypeError, ValueError, AttributeError, IndexError,
            ArithmeticError) as error:
        raise MalformedDelta(f"cannot decode delta for {shape!r}: {error}") from error


def to_json(delta: Any, shape: Any = None, **kwargs) -> str:
    """Convert a delta to a JSON string."""
    return json.dumps(encode_delta(delta, shape), **kwargs)


def from_json(text: str, shape: Any = None) -> Any:
    """Parse a JSON string into a delta."""
    try:
        obj = json.loads(text)
    except json.JSONDecodeError as error:
        raise MalformedDelta(f"invalid JSON: {error}") from error
    return decode_delta(obj, shape)


def _encode_delta(delta: Any, shape: Shape) -> Any:
    if isinstance(shape, DynamicShape):
        return _encode_dynamic_delta(delta)

    shape._check(delta)

    if isinstance(shape, AtomShape):
        return {"replace": encode_value(delta.value, shape)} if delta.changed else None

    if isinstance(shape, OptionShape):
        out: dict[str, Any] = {"op": _OPTION_OPS[delta.op]}
        if delta.op == OptionOp.EDIT:
            out["delta"] = _encode_delta(delta.delta, shape.child)
        elif delta.op == OptionOp.BECAME_SOME:
            out["value"] = encode_value(delta.value, shape.child)
        return out

    if isinstance(shape, RecordShape):
        return {
            name: _encode_delta(sub, _field(shape, name))
            for name, sub in delta.fields.items()
        }

    if isinstance(shape, TupleShape):
        return {
            str(i): _encode_delta(sub, shape.items[i])
            for i, sub in delta.fields.items()
        }

    if isinstance(shape, UnionShape):
        out = {"op": _UNION_OPS[delta.op], "tag": delta.tag}
        payload = _variant(shape, delta.tag)
        if delta.op == UnionOp.SAME_VARIANT:
            out["delta"] = _encode_delta(delta.delta, payload)
        else:
            out["value"] = encode_value(delta.value, payload)
        return out

    if isinstance(shape, SequenceShape):
        return [_encode_entry(e, "index", e.key, shape.element) for e in delta.ops]

    if isinstance(shape, MappingShape):
        return [
            _encode_entry(e, "key", encode_value(e.key, shape.key), shape.value)
            for e in delta.ops
        ]

    if isinstance(shape, SetShape):
        element = shape.element or DYNAMIC
        return {
            "add": _ordered([encode_value(v, element) for v in delta.add]),
            "remove": _ordered([encode_value(v, element) for v in delta.remove]),
        }

    raise MalformedDelta(f"cannot encode deltas of {shape!r}")


def _encode_entry(entry: EntryOp, position: str, key: Any, child: Shape) -> dict:
    out = {"op": _EDIT_OPS[entry.op], position: key}
    if entry.op == EditOp.INSERT:
        out["value"] = encode_value(entry.value, child)
    elif entry.op == EditOp.EDIT:
        out["delta"] = _encode_delta(entry.delta, child)
    return out


def _decode_delta(obj: Any, shape: Shape) -> Any:
    if isinstance(shape, DynamicShape):
        return _decode_dynamic_delta(obj)

    if isinstance(shape, AtomShape):
        if obj is None:
            return AtomDelta()
        return AtomDelta(True, _decode_value(obj["replace"], shape))

    if isinstance(shape, OptionShape):
        op = _reverse(_OPTION_OPS, obj["op"])
        if op == OptionOp.EDIT:
            return OptionDelta(op, delta=_decode_delta(obj["delta"], shape.child))
        if op == OptionOp.BECAME_SOME:
            return OptionDelta(op, value=_decode_value(obj["value"], shape.child))
        return OptionDelta(op)

    if isinstance(shape, RecordShape):
        return RecordDelta({
            name: _decode_delta(sub, _field(shape, name))
            for name, sub in obj.items()
        })

    if isinstance(shape, TupleShape):
        fields = {}
        for key, sub in obj.items():
            i = int(key)
            if not 0 <= i < len(shape.items):
                raise MalformedDelta(f"tuple position {i} out of range")
            fields[i] = _decode_delta(sub, shape.items[i])
        return RecordDelta(fields)

    if isinstance(shape, UnionShape):
        op = _reverse(_UNION_OPS, obj["op"])
        tag = obj["tag"]
        payload = _variant(shape, tag)
        if op == UnionOp.SAME_VARIANT:
            return UnionDelta(op, tag, delta=_decode_delta(obj["delta"], payload))
        return UnionDelta(op, tag, value=_decode_value(obj["value"], payload))

    if isinstance(shape, SequenceShape):
        return SeqDelta(tuple(
            _decode_entry(item, _index(item["index"]), shape.element) for item in obj
        ))

    if isinstance(shape, MappingShape):
        return MapDelta(tuple(
            _decode_entry(item, _decode_value(item["key"], shape.key), shape.value)
            for item in obj
        ))

    if isinstance(shape, SetShape):
        element = shape.element or DYNAMIC
        return SetDelta(
            add=frozenset(_decode_value(v, element) for v in obj["add"]),
            remove=frozenset(_decode_value(v, element) for v in obj["remove"]),
        )

    raise MalformedDelta(f"cannot decode deltas of {shape!r}")


def _decode_entry(item: dict, key: Any, child: Shape) -> EntryOp:
    op = _reverse(_EDIT_OPS, item["op"])
    if op == EditOp.INSERT:
        return EntryOp(op, key, value=_decode_value(item["value"], child))
    if op == EditOp.EDIT:
        return EntryOp(op, key, delta=_decode_delta(item["delta"], child))
    return EntryOp(op, key)


def _index(obj: Any) -> int:
    if not isinstance(obj, int) or isinstance(obj, bool):
        raise MalformedDelta(f"sequence index must be an int, got {obj!r}")
    return obj


def _field(shape: RecordShape, name: str) -> Shape:
    field_shape = shape.fields.get(name)
    if field_shape is None:
        raise MalformedDelta(f"{shape.cls.__name__} has no field {name!r}")
    return field_shape


def _variant(shape: UnionShape, tag: str) -> Shape:
    if tag not in shape.variants:
        raise MalformedDelta(f"unknown variant {tag!r}")
    return shape.variants[tag][1]


# ═══════════════════════════════════════════════════════════════════
#  DYNAMIC DELTAS
# ═══════════════════════════════════════════════════════════════════

_DYNAMIC_SEQ = SequenceShape(DYNAMIC)
_DYNAMIC_MAP = MappingShape(DYNAMIC, DYNAMIC)
_DYNAMIC_SET = SetShape(DYNAMIC)


def _encode_dynamic_delta(delta: Any) -> dict:
    if isinstance(delta, AtomDelta):
        out = {"kind": "atom"}
        if delta.changed:
            out["replace"] = _encode_dynamic(delta.value)
        return out
    if isinstance(delta, SeqDelta):
        return {"kind": "seq", "ops": _encode_delta(delta, _DYNAMIC_SEQ)}
    if isinstance(delta, MapDelta):
        return {"kind": "map", "ops": _encode_delta(delta, _DYNAMIC_MAP)}
    if isinstance(delta, SetDelta):
        return {"kind": "set", **_encode_delta(delta, _DYNAMIC_SET)}
    raise MalformedDelta(f"DynamicShape cannot encode {type(delta).__name__}")


def _decode_dynamic_delta(obj: dict) -> Any:
    kind = obj["kind"]
    if kind == "atom":
        if "replace" in obj:
            return AtomDelta(True, _decode_dynamic(obj["replace"]))
        return AtomDelta()
    if kind == "seq":
        return _decode_delta(obj["ops"], _DYNAMIC_SEQ)
    if kind == "map":
        return _decode_delta(obj["ops"], _DYNAMIC_MAP)
    if kind == "set":
        return _decode_delta(obj, _DYNAMIC_SET)
    raise MalformedDelta(f"unknown dynamic delta kind {kind!r}")
