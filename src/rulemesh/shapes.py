"""Base shape geometry, the shape-provider interface and built-in shapes."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Iterable, Protocol, Sequence

import numpy as np

from rulemesh.errors import UnknownShape, ValidationError

# Pure red, so hue shifts are visible on built-in shapes.
DEFAULT_COLOR: tuple[float, float, float] = (1.0, 0.0, 0.0)


@dataclass(frozen=True, eq=False)
class Geometry:
    """Local-space vertices with base colors, and polygon faces indexing them."""

    positions: np.ndarray  # (N, 3) float64
    colors: np.ndarray  # (N, 3) float64 RGB
    faces: tuple[tuple[int, ...], ...]

    def __post_init__(self) -> None:
        positions = np.asarray(self.positions, dtype=np.float64).reshape(-1, 3)
        colors = np.asarray(self.colors, dtype=np.float64).reshape(-1, 3)
        if len(colors) != len(positions):
            raise ValidationError(
                f"Geometry has {len(positions)} vertices but {len(colors)} colors"
            )
        if not np.all(np.isfinite(positions)):
            raise ValidationError("Geometry positions must be finite")
        if np.any((colors < 0.0) | (colors > 1.0)):
            raise ValidationError("Geometry colors must be within [0, 1]")
        faces = tuple(tuple(int(i) for i in face) for face in self.faces)
        for n, face in enumerate(faces):
            if not face:
                raise ValidationError(f"Face {n} is empty")
            for i in face:
                if not 0 <= i < len(positions):
                    raise ValidationError(
                        f"Face {n} index {i} out of range for {len(positions)} vertices"
                    )
        positions.setflags(write=False)
        colors.setflags(write=False)
        object.__setattr__(self, "positions", positions)
        object.__setattr__(self, "colors", colors)
        object.__setattr__(self, "faces", faces)

    @classmethod
    def build(
        cls,
        positions: Sequence[Sequence[float]] | np.ndarray,
        faces: Iterable[Sequence[int]] = (),
        colors: Sequence[Sequence[float]] | np.ndarray | None = None,
        color: tuple[float, float, float] = DEFAULT_COLOR,
    ) -> Geometry:
        """Build geometry, filling missing per-vertex colors with ``color``."""
        positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
        if colors is None:
            colors = np.tile(np.asarray(color, dtype=np.float64), (len(positions), 1))
        return cls(
            positions=positions, colors=np.asarray(colors, dtype=np.float64), faces=tuple(faces)
        )

    @property
    def vertex_count(self) -> int:
        return len(self.positions)


class ShapeProvider(Protocol):
    """Source of base geometry; must be pure and deterministic per id."""

    def geometry(self, shape_id: str) -> Geometry: ...


class ShapeRegistry:
    """Dictionary-backed ``ShapeProvider``."""

    def __init__(self, shapes: dict[str, Geometry] | None = None) -> None:
        self._shapes: dict[str, Geometry] = {}
        for shape_id, geometry in (shapes or {}).items():
            self.register(shape_id, geometry)

    def register(self, shape_id: str, geometry: Geometry, *, replace: bool = False) -> None:
        if not isinstance(geometry, Geometry):
            raise ValidationError(f"Shape {shape_id!r}: expected Geometry, got {geometry!r}")
        if shape_id in self._shapes and not replace:
            raise ValidationError(f"Duplicate shape id: {shape_id!r}")
        self._shapes[shape_id] = geometry

    def geometry(self, shape_id: str) -> Geometry:
        try:
            return self._shapes[shape_id]
        except KeyError:
            raise UnknownShape(shape_id) from None

    def __contains__(self, shape_id: object) -> bool:
        return shape_id in self._shapes

    @property
    def ids(self) -> list[str]:
        return sorted(self._shapes)


# --- Built-in shapes ---


def point(color: tuple[float, float, float] = DEFAULT_COLOR) -> Geometry:
    """A single vertex at the origin, no faces."""
    return Geometry.build([(0.0, 0.0, 0.0)], color=color)


def cube(size: float = 1.0, color: tuple[float, float, float] = DEFAULT_COLOR) -> Geometry:
    """Axis-aligned cube centred on the origin: 8 verts, 6 quads."""
    h = size / 2
    positions = [
        (-h, h, h),
        (-h, -h, h),
        (h, -h, h),
        (h, h, h),
        (-h, h, -h),
        (-h, -h, -h),
        (h, -h, -h),
        (h, h, -h),
    ]
    faces = [
        (0, 1, 2, 3),
        (7, 6, 5, 4),
        (3, 2, 6, 7),
        (4, 0, 3, 7),
        (4, 5, 1, 0),
        (1, 5, 6, 2),
    ]
    return Geometry.build(positions, faces, color=color)


def sphere(
    radius: float = 0.5,
    n_lat: int = 16,
    n_lon: int = 32,
    color: tuple[float, float, float] = DEFAULT_COLOR,
) -> Geometry:
    """UV sphere: (n_lat + 1) x (n_lon + 1) verts, 2 triangles per quad."""
    positions = []
    for lat in range(n_lat + 1):
        theta = math.pi * lat / n_lat
        sin_theta = math.sin(theta)
        cos_theta = math.cos(theta)

        for lon in range(n_lon + 1):
            phi = 2.0 * math.pi * lon / n_lon
            x = radius * sin_theta * math.cos(phi)
            z = radius * sin_theta * math.sin(phi)
            positions.append((x, radius * cos_theta, z))

    faces = []
    for lat in range(n_lat):
        for lon in range(n_lon):
            current = lat * (n_lon + 1) + lon
            next_row = current + n_lon + 1
            faces.append((current, next_row, current + 1))
            faces.append((current + 1, next_row, next_row + 1))

    return Geometry.build(positions, faces, color=color)


def icosphere(
    subdivisions: int = 0, diameter: float = 1.0, color: tuple[float, float, float] = DEFAULT_COLOR
) -> Geometry:
    """Icosahedron subdivided ``subdivisions`` times: 20 * 4**n triangles."""
    t = (1.0 + math.sqrt(5.0)) / 2.0
    verts = [
        (-1, t, 0), (1, t, 0), (-1, -t, 0), (1, -t, 0),
        (0, -1, t), (0, 1, t), (0, -1, -t), (0, 1, -t),
        (t, 0, -1), (t, 0, 1), (-t, 0, -1), (-t, 0, 1),
    ]  # fmt: skip
    faces = [
        (0, 11, 5), (0, 5, 1), (0, 1, 7), (0, 7, 10), (0, 10, 11),
        (1, 5, 9), (5, 11, 4), (11, 10, 2), (10, 7, 6), (7, 1, 8),
        (3, 9, 4), (3, 4, 2), (3, 2, 6), (3, 6, 8), (3, 8, 9),
        (4, 9, 5), (2, 4, 11), (6, 2, 10), (8, 6, 7), (9, 8, 1),
    ]  # fmt: skip
    points = [np.asarray(v, dtype=np.float64) / np.linalg.norm(v) for v in verts]

    for _ in range(subdivisions):
        midpoints: dict[tuple[int, int], int] = {}

        def midpoint(a: int, b: int) -> int:
            key = (min(a, b), max(a, b))
            if key not in midpoints:
                m = (points[a] + points[b]) / 2.0
                points.append(m / np.linalg.norm(m))
                midpoints[key] = len(points) - 1
            return midpoints[key]

        refined = []
        for a, b, c in faces:
            ab, bc, ca = midpoint(a, b), midpoint(b, c), midpoint(c, a)
            refined.extend([(a, ab, ca), (b, bc, ab), (c, ca, bc), (ab, bc, ca)])
        faces = refined

    positions = np.array(points) * (diameter / 2.0)
    return Geometry.build(positions, faces, color=color)


BUILTIN_SHAPES: dict[str, Callable[[], Geometry]] = {
    "point": point,
    "cube": cube,
    "sphere": sphere,
    "icosphere": icosphere,
}


def default_registry() -> ShapeRegistry:
    """Registry preloaded with every entry of ``BUILTIN_SHAPES``."""
    return ShapeRegistry({shape_id: make() for shape_id, make in BUILTIN_SHAPES.items()})
