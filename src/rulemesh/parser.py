"""YAML loading of rule documents and their conversion to rule graphs."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from pydantic import ValidationError as PydanticValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from rulemesh.errors import ParseError
from rulemesh.expander import TerminationPolicy
from rulemesh.models import RuleDocument, ShapeDef, StepDef
from rulemesh.rules import RuleGraph, RuleNode, RuleRef, ShapeRef, Step
from rulemesh.shapes import Geometry, ShapeRegistry, default_registry
from rulemesh.transforms import (
    Color,
    Hue,
    RotateX,
    RotateY,
    RotateZ,
    Saturation,
    Scale,
    ScaleUniform,
    ScaleX,
    ScaleY,
    ScaleZ,
    Transform,
    TransformStack,
    Translate,
    TranslateX,
    TranslateY,
    TranslateZ,
    Value,
)

LATEST_VERSION: tuple[int, int] = (1, 0)

_SCALAR_BUILDERS: dict[str, Callable[[float], Transform]] = {
    "rx": RotateX,
    "ry": RotateY,
    "rz": RotateZ,
    "tx": TranslateX,
    "ty": TranslateY,
    "tz": TranslateZ,
    "sx": ScaleX,
    "sy": ScaleY,
    "sz": ScaleZ,
    "s": ScaleUniform,
    "hue": Hue,
    "saturation": Saturation,
    "value": Value,
}

_VECTOR_BUILDERS: dict[str, Callable[[float, float, float], Transform]] = {
    "t": Translate,
    "sby": Scale,
    "color": Color,
}


@dataclass
class LoadedRules:
    """Everything a rule document defines, ready for expansion."""

    document: RuleDocument
    graph: RuleGraph
    policy: TerminationPolicy
    shapes: ShapeRegistry

    @property
    def root(self) -> str:
        return self.document.root


def _make_yaml() -> YAML:
    """Create a ruamel.yaml safe loader that errors on duplicate keys."""
    yml = YAML(typ="safe")
    yml.allow_duplicate_keys = False
    return yml


def _read_source_text(source: str | Path) -> str:
    if isinstance(source, Path):
        try:
            return source.read_text(encoding="utf-8")
        except OSError as e:
            raise ParseError(f"Cannot read file: {e}") from e
    return source


def parse_yaml(source: str | Path) -> RuleDocument:
    """Parse a rule document from a YAML string or file path.

    Raises:
        ParseError: On YAML syntax errors, schema violations, or version mismatches.
    """
    try:
        data = _make_yaml().load(_read_source_text(source))
    except YAMLError as e:
        raise ParseError(f"Invalid YAML: {e}") from e

    if not isinstance(data, dict):
        raise ParseError("Top-level YAML value must be a mapping")
    if data.get("version") is None:
        raise ParseError("Missing required field: version")
    _check_version(str(data["version"]))
    data["version"] = str(data["version"])

    try:
        return RuleDocument(**data)
    except PydanticValidationError as e:
        raise ParseError(f"Schema validation failed:\n{e}") from e


def build_transform(key: str, value: float | tuple[float, float, float]) -> Transform:
    """Turn one ``{key: value}`` document entry into a Transform."""
    if key in _VECTOR_BUILDERS:
        return _VECTOR_BUILDERS[key](*value)
    return _SCALAR_BUILDERS[key](value)


def _build_step(step_def: StepDef) -> Step:
    transforms = tuple(
        build_transform(key, value) for entry in step_def.transforms for key, value in entry.items()
    )
    if step_def.shape is not None:
        target = ShapeRef(step_def.shape)
    else:
        target = RuleRef(step_def.rule)
    return Step(target=target, stack=TransformStack(transforms), count=step_def.count)


def build_graph(document: RuleDocument) -> RuleGraph:
    """Convert document rules into a RuleGraph, preserving step order."""
    return RuleGraph(
        RuleNode(name=name, steps=tuple(_build_step(s) for s in steps))
        for name, steps in document.rules.items()
    )


def _build_geometry(shape: ShapeDef) -> Geometry:
    if shape.color is not None:
        return Geometry.build(shape.vertices, shape.faces, color=shape.color)
    if shape.colors is not None:
        return Geometry.build(shape.vertices, shape.faces, colors=shape.colors)
    return Geometry.build(shape.vertices, shape.faces, color=(1.0, 1.0, 1.0))


def build_registry(document: RuleDocument, base: ShapeRegistry | None = None) -> ShapeRegistry:
    """Built-in shapes plus the document's own; document shapes win on clashes."""
    registry = base if base is not None else default_registry()
    for shape_id, shape in document.shapes.items():
        registry.register(shape_id, _build_geometry(shape), replace=True)
    return registry


def build_policy(document: RuleDocument, max_depth: int | None = None) -> TerminationPolicy:
    return TerminationPolicy(
        max_depth=document.max_depth if max_depth is None else max_depth,
        rule_limits=document.rule_limits,
    )


def load_rules(source: str | Path, *, max_depth: int | None = None) -> LoadedRules:
    """Parse a rule document and build its graph, policy and shape registry."""
    document = parse_yaml(source)
    return LoadedRules(
        document=document,
        graph=build_graph(document),
        policy=build_policy(document, max_depth=max_depth),
        shapes=build_registry(document),
    )


def _check_version(version: str) -> None:
    """Validate version string compatibility."""
    parts = version.split(".")
    if len(parts) != 2:
        raise ParseError(f"Invalid version format: {version!r}")

    try:
        major = int(parts[0])
        minor = int(parts[1])
    except ValueError:
        raise ParseError(f"Invalid version format: {version!r}")

    if (major, minor) > LATEST_VERSION:
        latest = ".".join(str(p) for p in LATEST_VERSION)
        raise ParseError(f"Unsupported version: {version!r} (latest supported is {latest})")
