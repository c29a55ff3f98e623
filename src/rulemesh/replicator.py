"""Cumulative replication of a transform stack."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

from rulemesh.errors import ValidationError
from rulemesh.transforms import AccumulatedState, TransformStack, compose


@dataclass(frozen=True, eq=False)
class Replication:
    """The ``count`` states obtained by applying ``stack`` repeatedly.

    Element ``i`` (1-based) is ``compose`` applied ``i`` times to ``incoming``,
    so each repetition builds on the previous one. Iterating again restarts
    the computation; nothing is materialised.
    """

    count: int
    stack: TransformStack
    incoming: AccumulatedState

    def __iter__(self) -> Iterator[AccumulatedState]:
        state = self.incoming
        for _ in range(self.count):
            state = compose(self.stack, state)
            yield state

    def __len__(self) -> int:
        return self.count


def replicate(count: int, stack: TransformStack, incoming: AccumulatedState) -> Replication:
    """Return the lazy sequence ``[state_1 .. state_count]``.

    Raises:
        ValidationError: If ``count`` is negative or not an integer.
    """
    if isinstance(count, bool) or not isinstance(count, int):
        raise ValidationError(f"Replication count must be an integer, got {count!r}")
    if count < 0:
        raise ValidationError(f"Replication count must be >= 0, got {count}")
    return Replication(count=count, stack=stack, incoming=incoming)
