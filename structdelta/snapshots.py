"""
structdelta.snapshots — Version histories as full states or as deltas.

A FullSnapshots history stores every state in full; a DeltaSnapshots
history stores only the delta from each state to the next, plus the
latest full state.  Either can be converted into the other:

    full   = FullSnapshots(Config, initial)
    full.push("boot", cfg_v1)
    full.push("reload", cfg_v2)

    compact = full.to_delta_snapshots()     # small, serializable
    again = compact.to_full_snapshots()     # replayed from `initial`

Both histories replay from the same explicit `initial` state, which plays
the role of a default value for the tracked type.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from .engine import resolve
from .errors import DeltaError, IndexOutOfRange, nested

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class FullSnapshot:
    """A complete state, where it came from and when it was taken."""
    state: Any
    origin: str = "default"
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass
class DeltaSnapshot:
    """The delta from the previous state, where it came from and when."""
    delta: Any
    origin: str = "default"
    timestamp: datetime = field(default_factory=_utcnow)


class FullSnapshots:
    """History of full states."""

    def __init__(self, shape: Any = None, initial: Any = None):
        self.shape = resolve(shape)
        self.initial = initial
        self.snapshots: list[FullSnapshot] = []

    def __len__(self) -> int:
        return len(self.snapshots)

    def clear(self) -> None:
        self.snapshots.clear()

    def push(self, origin: str, state: Any) -> FullSnapshot:
        snapshot = FullSnapshot(state, origin)
        self.add(snapshot)
        return snapshot

    def add(self, snapshot: FullSnapshot) -> None:
        self.snapshots.append(snapshot)

    def snapshot(self, idx: int) -> FullSnapshot:
        if not 0 <= idx < len(self.snapshots):
            raise IndexOutOfRange(idx, len(self.snapshots))
        return self.snapshots[idx]

    def to_delta_snapshots(self) -> "DeltaSnapshots":
        """Compress into deltas, each relative to the state before it."""
        deltas = DeltaSnapshots(self.shape, self.initial)
        previous = self.initial
        for snapshot in self.snapshots:
            deltas.add(DeltaSnapshot(
                delta=self.shape.compute(previous, snapshot.state),
                origin=snapshot.origin,
                timestamp=snapshot.timestamp,
            ))
            previous = snapshot.state

        if self.snapshots:
            deltas.current = self.snapshots[-1]
        logger.debug("Compressed %d full snapshots into deltas", len(self.snapshots))
        return deltas


class DeltaSnapshots:
    """
    History of deltas plus the latest full state.

    `push` records the delta from `current` to the new state; `current`
    always holds the newest state in full so the next push can be diffed
    against it.
    """

    def __init__(self, shape: Any = None, initial: Any = None):
        self.shape = resolve(shape)
        self.initial = initial
        self.snapshots: list[DeltaSnapshot] = []
        self.current = FullSnapshot(initial)

    def __len__(self) -> int:
        return len(self.snapshots)

    def clear(self) -> None:
        self.snapshots.clear()
        self.current = FullSnapshot(self.initial)

    def update_current(self, origin: str, state: Any) -> None:
        """Replace the current state without recording a delta."""
        self.current = FullSnapshot(state, origin)

    def push(self, origin: str, state: Any) -> DeltaSnapshot:
        delta = self.shape.compute(self.current.state, state)
        full = FullSnapshot(state, origin)
        snapshot = DeltaSnapshot(delta, origin, full.timestamp)
        self.add(snapshot)
        self.current = full
        logger.debug("Pushed delta snapshot %d from %s", len(self.snapshots), origin)
        return snapshot

    def add(self, snapshot: DeltaSnapshot) -> None:
        self.snapshots.append(snapshot)

    def take_snapshots(self) -> list[DeltaSnapshot]:
        """Remove and return all recorded delta snapshots."""
        taken, self.snapshots = self.snapshots, []
        return taken

    def to_full_snapshots(self, initial: Optional[Any] = None) -> FullSnapshots:
        """
        Replay every delta from `initial` (default: the history's own).

        A delta that does not fit the replayed state raises a NestedError
        whose path starts with the index of the offending snapshot.
        """
        start = self.initial if initial is None else initial
        full = FullSnapshots(self.shape, start)
        state = start
        for i, snapshot in enumerate(self.snapshots):
            try:
                state = self.shape.apply(state, snapshot.delta)
            except DeltaError as error:
                raise nested(error, i) from error
            full.add(FullSnapshot(state, snapshot.origin, snapshot.timestamp))

        logger.debug("Replayed %d delta snapshots", len(self.snapshots))
        return full
