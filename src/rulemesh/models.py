"""Pydantic v2 schema models for rulemesh YAML rule documents."""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, StrictInt, field_validator, model_validator

from rulemesh.expander import DEFAULT_MAX_DEPTH

SCALAR_TRANSFORM_KEYS: frozenset[str] = frozenset(
    {
        "rx",
        "ry",
        "rz",
        "tx",
        "ty",
        "tz",
        "sx",
        "sy",
        "sz",
        "s",
        "hue",
        "saturation",
        "value",
    }
)

VECTOR_TRANSFORM_KEYS: frozenset[str] = frozenset({"t", "sby", "color"})

TRANSFORM_KEYS: frozenset[str] = SCALAR_TRANSFORM_KEYS | VECTOR_TRANSFORM_KEYS


class ShapeDef(BaseModel):
    model_config = ConfigDict(extra="forbid")

    vertices: list[tuple[float, float, float]]
    faces: list[list[int]] = []
    colors: list[tuple[float, float, float]] | None = None
    color: tuple[float, float, float] | None = None

    @model_validator(mode="after")
    def _check_colors(self) -> ShapeDef:
        if self.colors is not None and self.color is not None:
            raise ValueError("Shape must set at most one of 'colors' and 'color'")
        if self.colors is not None and len(self.colors) != len(self.vertices):
            raise ValueError(
                f"'colors' has {len(self.colors)} entries for {len(self.vertices)} vertices"
            )
        return self


class StepDef(BaseModel):
    model_config = ConfigDict(extra="forbid")

    shape: str | None = None
    rule: str | None = None
    count: StrictInt = Field(default=1, ge=0)
    transforms: list[dict[str, float | tuple[float, float, float]]] = []

    @field_validator("transforms")
    @classmethod
    def _single_known_key(
        cls, v: list[dict[str, float | tuple[float, float, float]]]
    ) -> list[dict[str, float | tuple[float, float, float]]]:
        for entry in v:
            if len(entry) != 1:
                raise ValueError(f"Transform entry must have exactly one key, got {sorted(entry)}")
            (key, value), = entry.items()
            if key not in TRANSFORM_KEYS:
                raise ValueError(f"Unknown transform {key!r} (known: {sorted(TRANSFORM_KEYS)})")
            if key in VECTOR_TRANSFORM_KEYS and not isinstance(value, tuple):
                raise ValueError(f"Transform {key!r} takes [x, y, z], got {value!r}")
            if key in SCALAR_TRANSFORM_KEYS and isinstance(value, tuple):
                raise ValueError(f"Transform {key!r} takes a number, got {list(value)!r}")
        return v

    @model_validator(mode="after")
    def _check_target(self) -> StepDef:
        if (self.shape is None) == (self.rule is None):
            raise ValueError("Step must set exactly one of 'shape' or 'rule'")
        return self


class RuleDocument(BaseModel):
    model_config = ConfigDict(extra="forbid")

    version: str
    root: str
    max_depth: StrictInt = Field(default=DEFAULT_MAX_DEPTH, ge=0)
    rule_limits: dict[str, Annotated[int, Field(strict=True, ge=0)]] = {}
    shapes: dict[str, ShapeDef] = {}
    rules: dict[str, list[StepDef]]
