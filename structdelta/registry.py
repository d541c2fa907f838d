"""
structdelta.registry — Map Python types to shapes.

This is the wiring step between user types and the generic composers.
For each type it lists the fields (products) or variants (sums) once and
delegates to the matching shape:

    int, str, Enum, Literal[...], datetime, ...   → AtomShape
    T | None, Optional[T]                         → OptionShape
    @dataclass, NamedTuple, TypedDict             → RecordShape
    tuple[A, B, C]                                → TupleShape
    A | B | C  (distinguishable classes)          → UnionShape
    list[T], tuple[T, ...], Sequence[T]           → SequenceShape
    dict[K, V], Mapping[K, V]                     → MappingShape
    set[T], frozenset[T]                          → SetShape
    Any, object, bare list / dict / set           → DYNAMIC children

Results are memoized per type.  A record type is cached before its fields
are resolved, so self-referential types (trees, linked lists) resolve to a
finite cyclic shape graph.  Resolution holds a module-wide re-entrant lock,
so another thread never sees a record whose fields are still being filled.
"""

import collections.abc as cabc
import dataclasses
import datetime
import decimal
import enum
import fractions
import logging
import threading
import types
import typing
import uuid
from typing import Any, Literal, Union, get_args, get_origin, get_type_hints

from .composite import RecordShape, TupleShape, UnionShape, variant_tag
from .containers import MappingShape, SequenceShape, SetShape
from .core import AtomShape, OptionShape, Shape
from .dynamic import DYNAMIC
from .errors import UnsupportedType

logger = logging.getLogger(__name__)


ATOM_TYPES = (
    type(None), bool, int, float, complex, str, bytes,
    decimal.Decimal, fractions.Fraction,
    datetime.datetime, datetime.date, datetime.time, datetime.timedelta,
    uuid.UUID,
)

_SEQUENCE_ORIGINS = (list, cabc.Sequence, cabc.MutableSequence)
_MAPPING_ORIGINS = (dict, cabc.Mapping, cabc.MutableMapping)
_SET_ORIGINS = (set, cabc.Set, cabc.MutableSet)

_registered: dict[Any, Shape] = {}
_cache: dict[Any, Shape] = {}
_lock = threading.RLock()


def register(tp: Any, shape: Shape) -> Shape:
    """Use `shape` for `tp` instead of deriving one by reflection."""
    with _lock:
        _registered[tp] = shape
        _cache.clear()
    return shape


def unregister(tp: Any) -> None:
    with _lock:
        _registered.pop(tp, None)
        _cache.clear()


def shape_of(tp: Any) -> Shape:
    """Return the shape for a type annotation (or pass a Shape through)."""
    if isinstance(tp, Shape):
        return tp
    with _lock:
        if tp in _registered:
            return _registered[tp]
        cached = _cache.get(tp)
        if cached is not None:
            return cached

        shape = _resolve(tp)
        _cache[tp] = shape
    logger.debug("Resolved shape for %r: %r", tp, shape)
    return shape


def union_of(*classes: type) -> UnionShape:
    """Tagged union over explicitly listed variant classes."""
    return UnionShape((variant_tag(cls), cls, shape_of(cls)) for cls in classes)


# ═══════════════════════════════════════════════════════════════════
#  RESOLUTION
# ═══════════════════════════════════════════════════════════════════

def _resolve(tp: Any) -> Shape:
    if tp is Any or tp is object or isinstance(tp, typing.TypeVar):
        return DYNAMIC
    if tp is None:
        return AtomShape(type(None))

    origin = get_origin(tp)
    args = get_args(tp)

    if origin is None:
        return _resolve_class(tp)

    if origin is Literal:
        return AtomShape(tp)
    if origin is typing.Annotated:
        return shape_of(args[0])
    if origin is Union or origin is types.UnionType:
        return _resolve_union(args)

    if origin is tuple:
        if len(args) == 2 and args[1] is Ellipsis:
            return SequenceShape(shape_of(args[0]), tuple)
        if not args:
            return SequenceShape(DYNAMIC, tuple)
        if args == ((),):
            return TupleShape(())
        return TupleShape(shape_of(arg) for arg in args)

    if origin in _SEQUENCE_ORIGINS:
        return SequenceShape(_arg(args, 0), list)
    if origin in _MAPPING_ORIGINS:
        return MappingShape(_arg(args, 0), _arg(args, 1), dict)
    if origin in _SET_ORIGINS:
        return SetShape(_arg(args, 0), set)
    if origin is frozenset:
        return SetShape(_arg(args, 0), frozenset)

    # Parametrized user generics, e.g. Box[int]: type variables become DYNAMIC.
    if isinstance(origin, type):
        return shape_of(origin)

    raise UnsupportedType(f"no shape for {tp!r}")


def _arg(args: tuple, index: int) -> Shape:
    if len(args) > index:
        return shape_of(args[index])
    return DYNAMIC


def _resolve_class(tp: Any) -> Shape:
    if not isinstance(tp, type):
        raise UnsupportedType(f"no shape for {tp!r}")

    if tp in ATOM_TYPES or issubclass(tp, enum.Enum):
        return AtomShape(tp)
    if dataclasses.is_dataclass(tp):
        return _resolve_record(tp, "dataclass")
    if issubclass(tp, tuple) and hasattr(tp, "_fields"):
        return _resolve_record(tp, "namedtuple")
    if typing.is_typeddict(tp):
        return _resolve_record(tp, "typeddict")

    if tp is list:
        return SequenceShape(DYNAMIC, list)
    if tp is tuple:
        return SequenceShape(DYNAMIC, tuple)
    if tp is dict:
        return MappingShape(DYNAMIC, DYNAMIC, dict)
    if tp in (set, frozenset):
        return SetShape(DYNAMIC, tp)

    if issubclass(tp, ATOM_TYPES[1:]):
        return AtomShape(tp)

    raise UnsupportedType(f"no shape for {tp!r}")


def _hints(tp: type) -> dict[str, Any]:
    try:
        return get_type_hints(tp)
    except NameError:
        # Forward references to names that are not importable from the
        # defining module (e.g. classes local to a function).
        return dict(getattr(tp, "__annotations__", {}))


def _resolve_record(tp: type, kind: str) -> RecordShape:
    hints = _hints(tp)

    if kind == "dataclass":
        record = RecordShape.for_dataclass(tp, {})
        # Fields outside __init__ cannot be passed to dataclasses.replace().
        record.ignored |= {f.name for f in dataclasses.fields(tp) if not f.init}
        names = [f.name for f in dataclasses.fields(tp) if f.name not in record.ignored]
    elif kind == "namedtuple":
        record = RecordShape.for_namedtuple(tp, {})
        names = list(tp._fields)
    else:
        if getattr(tp, "__optional_keys__", frozenset()):
            raise UnsupportedType(f"{tp.__name__}: TypedDict keys must all be required")
        record = RecordShape.for_typeddict(tp, {})
        names = list(hints)

    # Cache the record before resolving fields so recursive types terminate.
    _cache[tp] = record
    try:
        for name in names:
            record.fields[name] = shape_of(hints.get(name, Any))
    except UnsupportedType:
        _cache.pop(tp, None)
        raise
    return record


def _resolve_union(args: tuple) -> Shape:
    members = [arg for arg in args if arg is not type(None)]
    optional = len(members) < len(args)

    if len(members) == 1:
        inner = shape_of(members[0])
    else:
        variants = []
        for member in members:
            cls = get_origin(member) or member
            if not isinstance(cls, type):
                raise UnsupportedType(f"untagged union member {member!r}")
            variants.append((variant_tag(cls), cls, shape_of(member)))
        inner = UnionShape(variants)

    return OptionShape(inner) if optional else inner
