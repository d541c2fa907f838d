"""
structdelta.errors — the failure vocabulary shared by every shape.

Failures only arise when a delta is APPLIED to a value it was not computed
against.  Computing a delta between two valid values never fails.

Every error carries a stable ``kind`` string and can be turned into plain
data with ``to_dict()`` (and back with ``error_from_dict``), so a failure
can cross a process or network boundary intact.

Errors raised deep inside a nested value are wrapped in a single
``NestedError`` whose ``path`` locates the failure from the outermost value
down, e.g. ``("users", 3, "email")``.
"""

from typing import Any


class DeltaError(Exception):
    """Base class for delta errors."""

    kind = "delta_error"

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": str(self)}


class VariantMismatch(DeltaError):
    """The delta assumes a variant the receiver is not currently in."""

    kind = "variant_mismatch"

    def __init__(self, expected: str, actual: str):
        super().__init__(f"expected variant {expected!r}, found {actual!r}")
        self.expected = expected
        self.actual = actual

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "expected": self.expected, "actual": self.actual}


class IndexOutOfRange(DeltaError):
    """A positional edit points past the end of the receiver."""

    kind = "index_out_of_range"

    def __init__(self, index: int, length: int):
        super().__init__(f"index {index} out of range for length {length}")
        self.index = index
        self.length = length

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "index": self.index, "length": self.length}


class MissingKey(DeltaError):
    """The delta removes or edits a key the receiver does not have."""

    kind = "missing_key"

    def __init__(self, key: Any):
        super().__init__(f"missing key {key!r}")
        self.key = key

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "key": self.key}


class DuplicateKey(DeltaError):
    """The delta inserts a key the receiver already has."""

    kind = "duplicate_key"

    def __init__(self, key: Any):
        super().__init__(f"duplicate key {key!r}")
        self.key = key

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "key": self.key}


class MalformedDelta(DeltaError):
    """The delta (or its encoded form) does not belong to the shape it was given to."""

    kind = "malformed_delta"


class UnsupportedType(DeltaError, TypeError):
    """No shape can be derived for a type (including untagged unions)."""

    kind = "unsupported_type"


class NestedError(DeltaError):
    """
    A failure inside a child value.

    ``inner`` is always a leaf error (never another ``NestedError``) and
    ``path`` is the full location of the failure, outermost segment first.
    """

    def __init__(self, inner: DeltaError, path: tuple):
        location = "/".join(str(p) for p in path) or "(root)"
        super().__init__(f"at {location}: {inner}")
        self.inner = inner
        self.path = path

    @property
    def kind(self) -> str:
        return self.inner.kind

    def to_dict(self) -> dict[str, Any]:
        return {"kind": "nested", "path": list(self.path), "inner": self.inner.to_dict()}


def nested(error: DeltaError, segment: Any) -> NestedError:
    """Prefix ``segment`` to the location of ``error``, flattening nested wrappers."""
    if isinstance(error, NestedError):
        return NestedError(error.inner, (segment,) + error.path)
    return NestedError(error, (segment,))


def error_from_dict(data: dict[str, Any]) -> DeltaError:
    """Rebuild an error from the output of ``DeltaError.to_dict()``."""
    kind = data.get("kind")
    if kind == "nested":
        return NestedError(error_from_dict(data["inner"]), tuple(data["path"]))
    if kind == VariantMismatch.kind:
        return VariantMismatch(data["expected"], data["actual"])
    if kind == IndexOutOfRange.kind:
        return IndexOutOfRange(data["index"], data["length"])
    if kind == MissingKey.kind:
        return MissingKey(data["key"])
    if kind == DuplicateKey.kind:
        return DuplicateKey(data["key"])
    if kind == MalformedDelta.kind:
        return MalformedDelta(data.get("message", ""))
    if kind == UnsupportedType.kind:
        return UnsupportedType(data.get("message", ""))
    raise MalformedDelta(f"unknown error kind: {kind!r}")
