"""Rule nodes, steps and the name-addressed rule graph."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator, Union

from rulemesh.errors import ValidationError
from rulemesh.replicator import Replication, replicate
from rulemesh.transforms import AccumulatedState, Transform, TransformStack, as_stack


@dataclass(frozen=True)
class ShapeRef:
    shape_id: str


@dataclass(frozen=True)
class RuleRef:
    rule: str


Target = Union[ShapeRef, RuleRef]


@dataclass(frozen=True)
class Step:
    """Replicate ``stack`` ``count`` times and invoke ``target`` at each state."""

    target: Target
    stack: TransformStack = field(default_factory=TransformStack)
    count: int = 1

    def __post_init__(self) -> None:
        if not isinstance(self.target, (ShapeRef, RuleRef)):
            raise ValidationError(f"Step target must be a ShapeRef or RuleRef, got {self.target!r}")
        if isinstance(self.count, bool) or not isinstance(self.count, int):
            raise ValidationError(f"Step count must be an integer, got {self.count!r}")
        if self.count < 0:
            raise ValidationError(f"Step count must be >= 0, got {self.count}")
        object.__setattr__(self, "stack", as_stack(self.stack))

    def states(self, incoming: AccumulatedState) -> Replication:
        return replicate(self.count, self.stack, incoming)


def step(target: Target, *transforms: Transform, count: int = 1) -> Step:
    """Shorthand for ``Step(target, TransformStack(transforms), count)``."""
    return Step(target=target, stack=TransformStack(transforms), count=count)


@dataclass(frozen=True)
class RuleNode:
    name: str
    steps: tuple[Step, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise ValidationError(f"Rule name must be a non-empty string, got {self.name!r}")
        steps = tuple(self.steps)
        for s in steps:
            if not isinstance(s, Step):
                raise ValidationError(f"Rule {self.name!r}: steps must be Step values, got {s!r}")
        object.__setattr__(self, "steps", steps)

    def rule_refs(self) -> list[str]:
        return [s.target.rule for s in self.steps if isinstance(s.target, RuleRef)]

    def shape_refs(self) -> list[str]:
        return [s.target.shape_id for s in self.steps if isinstance(s.target, ShapeRef)]


class RuleGraph:
    """Arena of rule nodes addressed by name.

    Nodes refer to each other through ``RuleRef`` names, so self-reference and
    mutual reference need no ownership cycles.
    """

    def __init__(self, rules: Iterable[RuleNode] = ()) -> None:
        self._rules: dict[str, RuleNode] = {}
        for rule in rules:
            self.add(rule)

    def add(self, rule: RuleNode) -> RuleNode:
        if not isinstance(rule, RuleNode):
            raise ValidationError(f"Expected a RuleNode, got {rule!r}")
        if rule.name in self._rules:
            raise ValidationError(f"Duplicate rule name: {rule.name!r}")
        self._rules[rule.name] = rule
        return rule

    def define(self, name: str, *steps: Step) -> RuleNode:
        """Create a rule from ``steps`` and add it."""
        return self.add(RuleNode(name=name, steps=steps))

    def __getitem__(self, name: str) -> RuleNode:
        try:
            return self._rules[name]
        except KeyError:
            raise ValidationError(f"Unknown rule: {name!r}") from None

    def __contains__(self, name: object) -> bool:
        return name in self._rules

    def __iter__(self) -> Iterator[RuleNode]:
        return iter(self._rules.values())

    def __len__(self) -> int:
        return len(self._rules)

    @property
    def names(self) -> list[str]:
        return list(self._rules)

    def check(self) -> None:
        """Verify every RuleRef resolves to a rule in the graph.

        Raises:
            ValidationError: Naming the rule and step index of the first dangling reference.
        """
        for rule in self._rules.values():
            for i, s in enumerate(rule.steps):
                if isinstance(s.target, RuleRef) and s.target.rule not in self._rules:
                    raise ValidationError(
                        f"Rule {rule.name!r} step {i}: references unknown rule {s.target.rule!r}"
                    )

    def reachable(self, root: str) -> list[str]:
        """Names reachable from ``root`` (inclusive), in first-visit depth-first order."""
        seen: dict[str, None] = {}
        pending = [root]
        while pending:
            name = pending.pop()
            if name in seen or name not in self._rules:
                continue
            seen[name] = None
            pending.extend(reversed(self._rules[name].rule_refs()))
        return list(seen)

    def is_recursive(self, name: str) -> bool:
        """True when ``name`` can reach itself through one or more RuleRefs."""
        starts = self[name].rule_refs()
        for ref in starts:
            if name in self.reachable(ref):
                return True
        return False

    def shape_ids(self) -> set[str]:
        return {shape_id for rule in self._rules.values() for shape_id in rule.shape_refs()}
