"""Semantic validation of rule graphs before expansion."""

from __future__ import annotations

from rulemesh.errors import ValidationError
from rulemesh.expander import TerminationPolicy
from rulemesh.rules import RuleGraph, ShapeRef
from rulemesh.shapes import ShapeRegistry
from rulemesh.warning_policy import WarningPolicy, emit_warning


def validate(
    graph: RuleGraph,
    root: str,
    *,
    shapes: ShapeRegistry | None = None,
    policy: TerminationPolicy | None = None,
    warning_policy: WarningPolicy | None = None,
) -> None:
    """Run all semantic checks on a rule graph.

    Shape references are only checked when ``shapes`` is given; otherwise an
    unknown shape surfaces as ``UnknownShape`` during assembly.

    Raises:
        ValidationError: On any structural defect.
    """
    _check_root_exists(graph, root)
    graph.check()
    if policy is not None:
        _check_rule_limit_refs(graph, policy)
    if shapes is not None:
        _check_shape_refs(graph, shapes)
    _warn_unreachable_rules(graph, root, warning_policy=warning_policy)
    _warn_zero_count_steps(graph, warning_policy=warning_policy)
    _warn_empty_rules(graph, warning_policy=warning_policy)


def _check_root_exists(graph: RuleGraph, root: str) -> None:
    if root not in graph:
        raise ValidationError(f"Root rule {root!r} is not defined")


def _check_rule_limit_refs(graph: RuleGraph, policy: TerminationPolicy) -> None:
    for name in policy.rule_limits:
        if name not in graph:
            raise ValidationError(f"rule_limits references unknown rule {name!r}")


def _check_shape_refs(graph: RuleGraph, shapes: ShapeRegistry) -> None:
    missing = graph.shape_ids() - set(shapes.ids)
    if not missing:
        return
    for rule in graph:
        for i, s in enumerate(rule.steps):
            if isinstance(s.target, ShapeRef) and s.target.shape_id in missing:
                raise ValidationError(
                    f"Rule {rule.name!r} step {i}: references unknown shape {s.target.shape_id!r}"
                )


def _warn_unreachable_rules(
    graph: RuleGraph, root: str, *, warning_policy: WarningPolicy | None = None
) -> None:
    reachable = set(graph.reachable(root))
    for name in graph.names:
        if name not in reachable:
            emit_warning(
                "W01",
                f"Rule {name!r} is not reachable from root {root!r}",
                policy=warning_policy,
            )


def _warn_zero_count_steps(
    graph: RuleGraph, *, warning_policy: WarningPolicy | None = None
) -> None:
    for rule in graph:
        for i, s in enumerate(rule.steps):
            if s.count == 0:
                emit_warning(
                    "W02",
                    f"Rule {rule.name!r} step {i} has count 0 and contributes nothing",
                    policy=warning_policy,
                )


def _warn_empty_rules(graph: RuleGraph, *, warning_policy: WarningPolicy | None = None) -> None:
    for rule in graph:
        if not rule.steps:
            emit_warning("W03", f"Rule {rule.name!r} has no steps", policy=warning_policy)
