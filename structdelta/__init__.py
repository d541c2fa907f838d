"""
Structured Deltas
=================

Compute the difference Δ between two versions of a nested value, and
apply Δ to the first version to get the second back, without the second
version being present.

    >>> from structdelta import compute, apply
    >>> d = compute([1, 2, 3], [1, 5, 3, 9])
    >>> d.ops
    (Edit(1, AtomDelta(5)), Insert(3, 9))
    >>> apply([1, 2, 3], d)
    [1, 5, 3, 9]

Typed values use a shape derived from their annotations:

    @dataclass
    class Config:
        name: str
        ports: list[int]
        tls: Optional[Tls] = None

    d = compute(old, new, Config)
    text = to_json(d, Config)                 # store or ship it
    new_again = apply(old, from_json(text, Config), Config)

Deltas are plain immutable data.  Applying a delta to a value it was not
computed against either succeeds or raises a DeltaError; it never returns
a silently corrupted value and never mutates its argument.
"""

from structdelta.composite import (
    IGNORE_KEY, RecordShape, TupleShape, UnionShape, ignore_field, variant_tag,
)
from structdelta.containers import MappingShape, SequenceShape, SetShape
from structdelta.core import (
    # Deltas
    AtomDelta, EditOp, EntryOp, MapDelta, OptionDelta, OptionOp,
    RecordDelta, SeqDelta, SetDelta, UnionDelta, UnionOp,
    # Shapes
    AtomShape, OptionShape, Shape,
)
from structdelta.dynamic import DYNAMIC, DynamicShape
from structdelta.engine import apply, compute, from_delta, inverse, to_delta
from structdelta.errors import (
    DeltaError, DuplicateKey, IndexOutOfRange, MalformedDelta, MissingKey,
    NestedError, UnsupportedType, VariantMismatch, error_from_dict,
)
from structdelta.formats import (
    decode_delta, decode_value, encode_delta, encode_value, from_json, to_json,
)
from structdelta.registry import register, shape_of, union_of, unregister
from structdelta.snapshots import (
    DeltaSnapshot, DeltaSnapshots, FullSnapshot, FullSnapshots,
)

__version__ = "0.1.0"
__all__ = [
    "compute", "apply", "inverse", "to_delta", "from_delta",
    "AtomDelta", "OptionDelta", "OptionOp", "RecordDelta", "UnionDelta",
    "UnionOp", "SeqDelta", "MapDelta", "SetDelta", "EntryOp", "EditOp",
    "Shape", "AtomShape", "OptionShape", "RecordShape", "TupleShape",
    "UnionShape", "SequenceShape", "MappingShape", "SetShape",
    "DynamicShape", "DYNAMIC",
    "shape_of", "register", "unregister", "union_of",
    "ignore_field", "variant_tag", "IGNORE_KEY",
    "DeltaError", "VariantMismatch", "IndexOutOfRange", "MissingKey",
    "DuplicateKey", "NestedError", "MalformedDelta", "UnsupportedType",
    "error_from_dict",
    "encode_value", "decode_value", "encode_delta", "decode_delta",
    "to_json", "from_json",
    "FullSnapshot", "FullSnapshots", "DeltaSnapshot", "DeltaSnapshots",
]
