"""Depth-first rule expansion into a stream of mesh instances."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from itertools import chain
from typing import Iterator, Mapping

import numpy as np

from rulemesh.errors import ValidationError
from rulemesh.rules import RuleGraph, RuleNode, RuleRef, ShapeRef, Step
from rulemesh.transforms import IDENTITY_STATE, AccumulatedState, ColorDelta

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 10


@dataclass(frozen=True)
class TerminationPolicy:
    """Bounds recursive expansion.

    ``max_depth`` is the number of rule nodes allowed on one path, the root
    being level 1; ``0`` expands nothing. ``rule_limits`` caps how many times a
    given rule may appear on one path. Refused rule references are pruned
    silently.
    """

    max_depth: int = DEFAULT_MAX_DEPTH
    rule_limits: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if isinstance(self.max_depth, bool) or not isinstance(self.max_depth, int):
            raise ValidationError(f"max_depth must be an integer, got {self.max_depth!r}")
        if self.max_depth < 0:
            raise ValidationError(f"max_depth must be >= 0, got {self.max_depth}")
        for name, limit in self.rule_limits.items():
            if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
                raise ValidationError(
                    f"Rule limit for {name!r} must be an integer >= 0, got {limit!r}"
                )
        object.__setattr__(self, "rule_limits", dict(self.rule_limits))

    def admits(self, rule: str, depth: int, path: tuple[str, ...]) -> bool:
        """Whether ``rule`` may be entered at ``depth`` below ``path``."""
        if depth > self.max_depth:
            return False
        limit = self.rule_limits.get(rule)
        return limit is None or path.count(rule) < limit


@dataclass(frozen=True, eq=False)
class MeshInstance:
    """One placement of a shape with its resolved frame and color shift."""

    shape_id: str
    matrix: np.ndarray
    color: ColorDelta
    path: tuple[str, ...] = ()


@dataclass
class _Frame:
    depth: int
    path: tuple[str, ...]
    pending: Iterator[tuple[Step, AccumulatedState]]


def _step_states(
    node: RuleNode, incoming: AccumulatedState
) -> Iterator[tuple[Step, AccumulatedState]]:
    for s in node.steps:
        for state in s.states(incoming):
            yield s, state


class Expansion:
    """Lazy, restartable instance stream of one rule graph expansion.

    Each iteration walks the graph afresh with an explicit frame stack, so
    neither recursion depth nor memory grows with the replication product.
    """

    def __init__(self, graph: RuleGraph, root: str, policy: TerminationPolicy) -> None:
        graph.check()
        if root not in graph:
            raise ValidationError(f"Unknown root rule: {root!r}")
        self.graph = graph
        self.root = root
        self.policy = policy
        self.pruned = 0
        self._lock = threading.Lock()

    def __iter__(self) -> Iterator[MeshInstance]:
        self.pruned = 0
        if not self.policy.admits(self.root, 1, ()):
            return
        emitted = 0
        for instance in self._walk(self.graph[self.root], IDENTITY_STATE, 1, (self.root,)):
            emitted += 1
            yield instance
        logger.debug(
            "expanded %r: %d instances, %d rule references pruned",
            self.root,
            emitted,
            self.pruned,
        )

    def _walk(
        self, node: RuleNode, incoming: AccumulatedState, depth: int, path: tuple[str, ...]
    ) -> Iterator[MeshInstance]:
        stack = [_Frame(depth, path, _step_states(node, incoming))]
        while stack:
            frame = stack[-1]
            item = next(frame.pending, None)
            if item is None:
                stack.pop()
                continue
            s, state = item
            target = s.target
            if isinstance(target, ShapeRef):
                yield MeshInstance(target.shape_id, state.matrix, state.color, frame.path)
                continue
            child_depth = frame.depth + 1
            if not self.policy.admits(target.rule, child_depth, frame.path):
                with self._lock:
                    self.pruned += 1
                continue
            child = self.graph[target.rule]
            stack.append(
                _Frame(child_depth, frame.path + (child.name,), _step_states(child, state))
            )

    def _subtree(self, s: Step, state: AccumulatedState) -> list[MeshInstance]:
        """Instances produced by one root step at one replication state."""
        root_path = (self.root,)
        target = s.target
        if isinstance(target, ShapeRef):
            return [MeshInstance(target.shape_id, state.matrix, state.color, root_path)]
        if not self.policy.admits(target.rule, 2, root_path):
            with self._lock:
                self.pruned += 1
            return []
        child = self.graph[target.rule]
        return list(self._walk(child, state, 2, root_path + (child.name,)))

    def parallel(self, workers: int) -> Iterator[MeshInstance]:
        """Expand each root step/replication subtree on a thread pool.

        Subtrees are materialised per task and yielded in depth-first order,
        so the result equals iterating the expansion directly.
        """
        self.pruned = 0
        if not self.policy.admits(self.root, 1, ()):
            return iter(())
        tasks = list(_step_states(self.graph[self.root], IDENTITY_STATE))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(lambda task: self._subtree(*task), tasks))
        logger.debug("expanded %r on %d workers: %d subtrees", self.root, workers, len(tasks))
        return chain.from_iterable(results)


def expand(graph: RuleGraph, root: str, policy: TerminationPolicy | None = None) -> Expansion:
    """Expand ``root`` depth-first, steps in listed order, replications in sequence."""
    return Expansion(graph, root, policy or TerminationPolicy())


def expand_parallel(
    graph: RuleGraph, root: str, policy: TerminationPolicy | None = None, *, workers: int = 4
) -> list[MeshInstance]:
    """Same instances as ``expand``, computed concurrently per root subtree."""
    if workers < 1:
        raise ValueError(f"workers must be >= 1, got {workers}")
    return list(Expansion(graph, root, policy or TerminationPolicy()).parallel(workers))
