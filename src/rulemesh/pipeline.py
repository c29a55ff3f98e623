"""Expand-then-assemble convenience entry point."""

from __future__ import annotations

from rulemesh.assembler import Mesh, assemble
from rulemesh.expander import TerminationPolicy, expand, expand_parallel
from rulemesh.rules import RuleGraph
from rulemesh.shapes import ShapeProvider


def generate(
    graph: RuleGraph,
    root: str,
    provider: ShapeProvider,
    *,
    policy: TerminationPolicy | None = None,
    workers: int | None = None,
) -> Mesh:
    """Expand ``root`` under ``policy`` and assemble the result through ``provider``.

    With ``workers`` set, root subtrees are expanded concurrently; the mesh is
    identical to the sequential result.
    """
    if workers is not None and workers > 1:
        instances = expand_parallel(graph, root, policy, workers=workers)
    else:
        instances = expand(graph, root, policy)
    return assemble(instances, provider)
