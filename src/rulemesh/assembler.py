"""Assembly of an instance stream into a single mesh."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

import numpy as np

from rulemesh.colors import apply_color_delta
from rulemesh.errors import UnknownShape
from rulemesh.expander import MeshInstance
from rulemesh.shapes import Geometry, ShapeProvider
from rulemesh.transforms import AccumulatedState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InstanceRange:
    """Where one instance landed in the output buffers (half-open ranges)."""

    shape_id: str
    path: tuple[str, ...]
    vertices: tuple[int, int]
    faces: tuple[int, int]


@dataclass
class Mesh:
    """Assembled output geometry."""

    positions: np.ndarray  # (N, 3) float64
    colors: np.ndarray  # (N, 3) float64 RGB
    faces: list[tuple[int, ...]] = field(default_factory=list)
    instance_ranges: list[InstanceRange] = field(default_factory=list)

    @classmethod
    def empty(cls) -> Mesh:
        return cls(
            positions=np.zeros((0, 3), dtype=np.float64),
            colors=np.zeros((0, 3), dtype=np.float64),
        )

    @property
    def vertex_count(self) -> int:
        return len(self.positions)

    @property
    def face_count(self) -> int:
        return len(self.faces)

    def triangles(self) -> np.ndarray:
        """Fan-triangulate the polygon faces into an (M, 3) uint32 array.

        Faces with fewer than three indices (points, lines) are skipped.
        """
        tris = [
            (face[0], face[i], face[i + 1])
            for face in self.faces
            if len(face) >= 3
            for i in range(1, len(face) - 1)
        ]
        if not tris:
            return np.zeros((0, 3), dtype=np.uint32)
        return np.array(tris, dtype=np.uint32)

    def bounds(self) -> tuple[np.ndarray, np.ndarray] | None:
        """Axis-aligned (min, max) corners, or ``None`` for an empty mesh."""
        if self.vertex_count == 0:
            return None
        return self.positions.min(axis=0), self.positions.max(axis=0)


def assemble(instances: Iterable[MeshInstance], provider: ShapeProvider) -> Mesh:
    """Place every instance's base geometry into one mesh, in stream order.

    Raises:
        UnknownShape: If the provider does not know an instance's shape id.
            The error carries the rule path that produced the instance.
    """
    cache: dict[str, Geometry] = {}
    all_positions: list[np.ndarray] = []
    all_colors: list[np.ndarray] = []
    faces: list[tuple[int, ...]] = []
    ranges: list[InstanceRange] = []
    vertex_offset = 0

    for inst in instances:
        geometry = cache.get(inst.shape_id)
        if geometry is None:
            try:
                geometry = provider.geometry(inst.shape_id)
            except UnknownShape as e:
                raise UnknownShape(inst.shape_id, inst.path) from e
            cache[inst.shape_id] = geometry

        state = AccumulatedState(matrix=inst.matrix, color=inst.color)
        n_verts = geometry.vertex_count
        face_start = len(faces)

        all_positions.append(state.apply_to_points(geometry.positions))
        all_colors.append(apply_color_delta(geometry.colors, inst.color))
        faces.extend(tuple(i + vertex_offset for i in face) for face in geometry.faces)

        ranges.append(
            InstanceRange(
                shape_id=inst.shape_id,
                path=inst.path,
                vertices=(vertex_offset, vertex_offset + n_verts),
                faces=(face_start, len(faces)),
            )
        )
        vertex_offset += n_verts

    logger.debug("assembled %d instances into %d vertices", len(ranges), vertex_offset)

    if not all_positions:
        mesh = Mesh.empty()
        mesh.instance_ranges = ranges
        return mesh

    return Mesh(
        positions=np.concatenate(all_positions, axis=0),
        colors=np.concatenate(all_colors, axis=0),
        faces=faces,
        instance_ranges=ranges,
    )
