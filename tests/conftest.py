"""Shared fixtures for rulemesh tests."""

import pytest

from rulemesh.rules import RuleGraph, RuleRef, ShapeRef, step
from rulemesh.shapes import Geometry, ShapeRegistry, cube, point
from rulemesh.transforms import RotateZ, TranslateX


@pytest.fixture
def point_registry():
    return ShapeRegistry({"point": point(), "cube": cube()})


@pytest.fixture
def triangle():
    return Geometry.build(
        [(0, 0, 0), (1, 0, 0), (0, 1, 0)],
        [(0, 1, 2)],
        colors=[(1, 0, 0), (0, 1, 0), (0, 0, 1)],
    )


@pytest.fixture
def grow_graph():
    """A rule that places a point, then recurses one unit along +X."""
    graph = RuleGraph()
    graph.define(
        "grow",
        step(ShapeRef("point")),
        step(RuleRef("grow"), TranslateX(1.0)),
    )
    return graph


@pytest.fixture
def fan_graph():
    """Two 90 degree turns, each placing a row of three points."""
    graph = RuleGraph()
    graph.define("fan", step(RuleRef("row"), RotateZ(90.0), count=2))
    graph.define("row", step(ShapeRef("point"), TranslateX(1.0), count=3))
    return graph


@pytest.fixture
def spiral_yaml():
    return """\
version: "1.0"
root: spiral
max_depth: 6
rules:
  spiral:
    - shape: cube
      transforms:
        - s: 0.5
    - rule: spiral
      transforms:
        - rz: 15
        - tx: 0.4
        - s: 0.95
        - hue: 12
"""


@pytest.fixture
def grid_yaml():
    return """\
version: "1.0"
root: grid
shapes:
  tri:
    vertices: [[0, 0, 0], [1, 0, 0], [0, 1, 0]]
    faces: [[0, 1, 2]]
    color: [0.0, 0.0, 1.0]
rules:
  grid:
    - rule: row
      count: 4
      transforms:
        - ty: 1.1
  row:
    - shape: tri
      count: 5
      transforms:
        - tx: 1.1
        - saturation: -0.1
"""
