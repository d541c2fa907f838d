"""
structdelta.engine — Entry points.

    compute(a, b, shape)   → Δ  with apply(a, Δ) == b
    apply(a, Δ, shape)     → b, or raise DeltaError
    inverse(a, b, shape)   → Δ  with apply(b, Δ) == a
    to_delta(v, shape)     → Δ  carrying all of v
    from_delta(Δ, shape)   → v, rebuilt with no base value

`shape` may be a Shape, a type annotation (resolved through the registry,
e.g. `compute(a, b, Config)` or `compute(a, b, list[int])`), or omitted for
untyped JSON-like data.
"""

import logging
from typing import Any

from .core import Shape
from .dynamic import DYNAMIC
from .errors import DeltaError
from .registry import shape_of

logger = logging.getLogger(__name__)


def resolve(shape: Any = None) -> Shape:
    if shape is None:
        return DYNAMIC
    return shape_of(shape)


def compute(a: Any, b: Any, shape: Any = None) -> Any:
    """Compute the delta that turns `a` into `b`."""
    return resolve(shape).compute(a, b)


def apply(a: Any, delta: Any, shape: Any = None) -> Any:
    """
    Apply `delta` to `a` and return the new value.

    `a` is never modified.  If the delta does not fit `a` (it was computed
    against another baseline) a DeltaError is raised and no partial result
    escapes.
    """
    try:
        return resolve(shape).apply(a, delta)
    except DeltaError as error:
        logger.debug("Delta apply failed (%s): %s", error.kind, error)
        raise


def inverse(a: Any, b: Any, shape: Any = None) -> Any:
    """Compute the delta that turns `b` back into `a`."""
    return resolve(shape).compute(b, a)


def to_delta(value: Any, shape: Any = None) -> Any:
    """Turn a whole value into a standalone delta (for storage or transfer)."""
    return resolve(shape).to_delta(value)


def from_delta(delta: Any, shape: Any = None) -> Any:
    """
    Rebuild a value from a delta made by `to_delta`, with no base value.

    Raises a DeltaError when the delta does not carry a whole value,
    e.g. an unchanged atom or a record delta that lacks a field.
    """
    try:
        return resolve(shape).from_delta(delta)
    except DeltaError as error:
        logger.debug("Delta rebuild failed (%s): %s", error.kind, error)
        raise

