"""Atomic transforms, transform stacks and accumulated-state composition.

Spatial transforms are 4x4 affine matrices acting on column vectors. A stack
``[T1, T2, ..., Tn]`` composes by right-multiplication onto the incoming
frame, ``M_out = M_in @ T1 @ T2 @ ... @ Tn``, so every transform acts in the
local frame established by the ones before it.

Color transforms are deltas in HSV space. Hue is in degrees and wraps modulo
360; saturation and value shifts are additive and the accumulated shift is
clamped to [-1, 1]. A ``Color`` transform sets an absolute color instead;
shifts after it modify that color, and a later ``Color`` replaces it.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable, Iterator

import numpy as np

from rulemesh.errors import ValidationError

SHIFT_LIMIT = 1.0


def _frozen(matrix: np.ndarray) -> np.ndarray:
    matrix.setflags(write=False)
    return matrix


IDENTITY: np.ndarray = _frozen(np.eye(4, dtype=np.float64))


def _require_finite(kind: str, **values: float) -> None:
    for name, value in values.items():
        if not math.isfinite(value):
            raise ValidationError(f"{kind}: {name} must be finite, got {value!r}")


def _require_nonzero_scale(kind: str, **values: float) -> None:
    _require_finite(kind, **values)
    for name, value in values.items():
        if value == 0.0:
            raise ValidationError(f"{kind}: {name} must be non-zero")


def _require_shift(kind: str, delta: float) -> None:
    _require_finite(kind, delta=delta)
    if not -SHIFT_LIMIT <= delta <= SHIFT_LIMIT:
        raise ValidationError(
            f"{kind}: delta must be within [-{SHIFT_LIMIT}, {SHIFT_LIMIT}], got {delta!r}"
        )


def _clamp_shift(value: float) -> float:
    return max(-SHIFT_LIMIT, min(SHIFT_LIMIT, value))


def translation_matrix(x: float, y: float, z: float) -> np.ndarray:
    m = np.eye(4, dtype=np.float64)
    m[:3, 3] = (x, y, z)
    return m


def scale_matrix(x: float, y: float, z: float) -> np.ndarray:
    return np.diag([x, y, z, 1.0]).astype(np.float64)


def rotation_matrix(axis: str, degrees: float) -> np.ndarray:
    """Right-handed rotation about a coordinate axis through the origin."""
    r = math.radians(degrees)
    c, s = math.cos(r), math.sin(r)
    m = np.eye(4, dtype=np.float64)
    if axis == "x":
        m[1:3, 1:3] = [[c, -s], [s, c]]
    elif axis == "y":
        m[0, 0], m[0, 2], m[2, 0], m[2, 2] = c, s, -s, c
    elif axis == "z":
        m[0:2, 0:2] = [[c, -s], [s, c]]
    else:
        raise ValueError(f"Unknown rotation axis: {axis!r}")
    return m


@dataclass(frozen=True)
class ColorDelta:
    """Accumulated HSV shift. ``hue`` is kept in [0, 360).

    ``override`` is an absolute HSV color set somewhere along the path. It
    replaces the base color of the shape, and later shifts are folded into it
    instead of being accumulated.
    """

    hue: float = 0.0
    saturation: float = 0.0
    value: float = 0.0
    override: tuple[float, float, float] | None = None

    def then(self, other: ColorDelta) -> ColorDelta:
        """Return the shift of applying ``self`` followed by ``other``."""
        if other.override is not None:
            return other
        if self.override is not None:
            h, s, v = self.override
            return ColorDelta(
                override=(
                    (h + other.hue) % 360.0,
                    min(1.0, max(0.0, s + other.saturation)),
                    min(1.0, max(0.0, v + other.value)),
                )
            )
        return ColorDelta(
            hue=(self.hue + other.hue) % 360.0,
            saturation=_clamp_shift(self.saturation + other.saturation),
            value=_clamp_shift(self.value + other.value),
        )

    @property
    def is_identity(self) -> bool:
        return (
            self.override is None
            and self.hue == 0.0
            and self.saturation == 0.0
            and self.value == 0.0
        )


NO_COLOR_CHANGE = ColorDelta()


# --- Atomic transforms ---


@dataclass(frozen=True)
class Transform:
    """Base class of the atomic transforms; the identity on its own."""

    def matrix(self) -> np.ndarray:
        return IDENTITY

    def color(self) -> ColorDelta:
        return NO_COLOR_CHANGE


@dataclass(frozen=True)
class RotateX(Transform):
    angle: float

    def __post_init__(self) -> None:
        _require_finite("RotateX", angle=self.angle)

    def matrix(self) -> np.ndarray:
        return rotation_matrix("x", self.angle)


@dataclass(frozen=True)
class RotateY(Transform):
    angle: float

    def __post_init__(self) -> None:
        _require_finite("RotateY", angle=self.angle)

    def matrix(self) -> np.ndarray:
        return rotation_matrix("y", self.angle)


@dataclass(frozen=True)
class RotateZ(Transform):
    angle: float

    def __post_init__(self) -> None:
        _require_finite("RotateZ", angle=self.angle)

    def matrix(self) -> np.ndarray:
        return rotation_matrix("z", self.angle)


@dataclass(frozen=True)
class TranslateX(Transform):
    distance: float

    def __post_init__(self) -> None:
        _require_finite("TranslateX", distance=self.distance)

    def matrix(self) -> np.ndarray:
        return translation_matrix(self.distance, 0.0, 0.0)


@dataclass(frozen=True)
class TranslateY(Transform):
    distance: float

    def __post_init__(self) -> None:
        _require_finite("TranslateY", distance=self.distance)

    def matrix(self) -> np.ndarray:
        return translation_matrix(0.0, self.distance, 0.0)


@dataclass(frozen=True)
class TranslateZ(Transform):
    distance: float

    def __post_init__(self) -> None:
        _require_finite("TranslateZ", distance=self.distance)

    def matrix(self) -> np.ndarray:
        return translation_matrix(0.0, 0.0, self.distance)


@dataclass(frozen=True)
class Translate(Transform):
    """Translation on all three axes at once."""

    x: float
    y: float
    z: float

    def __post_init__(self) -> None:
        _require_finite("Translate", x=self.x, y=self.y, z=self.z)

    def matrix(self) -> np.ndarray:
        return translation_matrix(self.x, self.y, self.z)


@dataclass(frozen=True)
class ScaleX(Transform):
    factor: float

    def __post_init__(self) -> None:
        _require_nonzero_scale("ScaleX", factor=self.factor)

    def matrix(self) -> np.ndarray:
        return scale_matrix(self.factor, 1.0, 1.0)


@dataclass(frozen=True)
class ScaleY(Transform):
    factor: float

    def __post_init__(self) -> None:
        _require_nonzero_scale("ScaleY", factor=self.factor)

    def matrix(self) -> np.ndarray:
        return scale_matrix(1.0, self.factor, 1.0)


@dataclass(frozen=True)
class ScaleZ(Transform):
    factor: float

    def __post_init__(self) -> None:
        _require_nonzero_scale("ScaleZ", factor=self.factor)

    def matrix(self) -> np.ndarray:
        return scale_matrix(1.0, 1.0, self.factor)


@dataclass(frozen=True)
class ScaleUniform(Transform):
    factor: float

    def __post_init__(self) -> None:
        _require_nonzero_scale("ScaleUniform", factor=self.factor)

    def matrix(self) -> np.ndarray:
        return scale_matrix(self.factor, self.factor, self.factor)


@dataclass(frozen=True)
class Scale(Transform):
    """Non-uniform scale on all three axes at once."""

    x: float
    y: float
    z: float

    def __post_init__(self) -> None:
        _require_nonzero_scale("Scale", x=self.x, y=self.y, z=self.z)

    def matrix(self) -> np.ndarray:
        return scale_matrix(self.x, self.y, self.z)


@dataclass(frozen=True)
class Hue(Transform):
    """Rotate hue by ``delta`` degrees."""

    delta: float

    def __post_init__(self) -> None:
        _require_finite("Hue", delta=self.delta)

    def color(self) -> ColorDelta:
        return ColorDelta(hue=self.delta % 360.0)


@dataclass(frozen=True)
class Saturation(Transform):
    delta: float

    def __post_init__(self) -> None:
        _require_shift("Saturation", self.delta)

    def color(self) -> ColorDelta:
        return ColorDelta(saturation=self.delta)


@dataclass(frozen=True)
class Value(Transform):
    delta: float

    def __post_init__(self) -> None:
        _require_shift("Value", self.delta)

    def color(self) -> ColorDelta:
        return ColorDelta(value=self.delta)


@dataclass(frozen=True)
class Color(Transform):
    """Set an absolute HSV color, overriding colors set further up the path."""

    hue: float
    saturation: float
    value: float

    def __post_init__(self) -> None:
        _require_finite("Color", hue=self.hue, saturation=self.saturation, value=self.value)
        for name in ("saturation", "value"):
            if not 0.0 <= getattr(self, name) <= 1.0:
                raise ValidationError(
                    f"Color: {name} must be within [0.0, 1.0], got {getattr(self, name)!r}"
                )

    def color(self) -> ColorDelta:
        return ColorDelta(override=(self.hue % 360.0, self.saturation, self.value))


# --- Stacks and state ---


@dataclass(frozen=True, eq=False)
class AccumulatedState:
    """Affine frame plus color shift carried along one traversal path."""

    matrix: np.ndarray = field(default_factory=lambda: IDENTITY)
    color: ColorDelta = NO_COLOR_CHANGE

    def apply_to_points(self, points: np.ndarray) -> np.ndarray:
        """Transform (N, 3) positions as homogeneous points."""
        return points @ self.matrix[:3, :3].T + self.matrix[:3, 3]


IDENTITY_STATE = AccumulatedState()


@dataclass(frozen=True, eq=False)
class TransformStack:
    """Ordered transforms with their net matrix and color deltas precomputed."""

    transforms: tuple[Transform, ...] = ()
    _matrix: np.ndarray = field(init=False, repr=False)
    _colors: tuple[ColorDelta, ...] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        transforms = tuple(self.transforms)
        for t in transforms:
            if not isinstance(t, Transform):
                raise ValidationError(f"TransformStack entries must be Transforms, got {t!r}")
        net = np.eye(4, dtype=np.float64)
        for t in transforms:
            net = net @ t.matrix()
        colors = tuple(c for c in (t.color() for t in transforms) if not c.is_identity)
        object.__setattr__(self, "transforms", transforms)
        object.__setattr__(self, "_matrix", _frozen(net))
        object.__setattr__(self, "_colors", colors)

    @classmethod
    def of(cls, *transforms: Transform) -> TransformStack:
        return cls(tuple(transforms))

    @property
    def matrix(self) -> np.ndarray:
        return self._matrix

    @property
    def color_deltas(self) -> tuple[ColorDelta, ...]:
        return self._colors

    def __len__(self) -> int:
        return len(self.transforms)

    def __iter__(self) -> Iterator[Transform]:
        return iter(self.transforms)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TransformStack):
            return NotImplemented
        return self.transforms == other.transforms

    def __hash__(self) -> int:
        return hash(self.transforms)


def as_stack(transforms: TransformStack | Transform | Iterable[Transform] | None) -> TransformStack:
    """Coerce a single transform, an iterable of them or ``None`` into a stack."""
    if transforms is None:
        return TransformStack()
    if isinstance(transforms, TransformStack):
        return transforms
    if isinstance(transforms, Transform):
        return TransformStack((transforms,))
    return TransformStack(tuple(transforms))


def compose(stack: TransformStack, incoming: AccumulatedState) -> AccumulatedState:
    """Apply ``stack`` in the local frame of ``incoming``."""
    color = incoming.color
    for delta in stack.color_deltas:
        color = color.then(delta)
    if stack.transforms:
        matrix = _frozen(incoming.matrix @ stack.matrix)
    else:
        matrix = incoming.matrix
    return AccumulatedState(matrix=matrix, color=color)
