"""Tests for CLI entry point."""

import json

import pygltflib
from click.testing import CliRunner

from rulemesh.cli import main

ORPHAN_YAML = """\
version: "1.0"
root: r
rules:
  r:
    - shape: cube
  orphan:
    - shape: cube
"""

POINTS_YAML = """\
version: "1.0"
root: r
rules:
  r:
    - shape: point
      count: 3
      transforms:
        - tx: 1
"""


def _write(tmp_path, name, text):
    path = tmp_path / name
    path.write_text(text)
    return path


class TestCLI:
    def test_version_flag(self):
        result = CliRunner().invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_build_success(self, spiral_yaml, tmp_path):
        input_file = _write(tmp_path, "spiral.rules.yaml", spiral_yaml)
        output_file = tmp_path / "out.glb"
        result = CliRunner().invoke(main, ["build", str(input_file), "-o", str(output_file)])
        assert result.exit_code == 0, result.output
        assert "Built" in result.output
        gltf = pygltflib.GLTF2().load(str(output_file))
        assert gltf.accessors[0].count == 6 * 8

    def test_build_default_output_path(self, spiral_yaml, tmp_path):
        input_file = _write(tmp_path, "spiral.rules.yaml", spiral_yaml)
        result = CliRunner().invoke(main, ["build", str(input_file)])
        assert result.exit_code == 0, result.output
        assert (tmp_path / "spiral.glb").exists()

    def test_build_obj(self, grid_yaml, tmp_path):
        input_file = _write(tmp_path, "grid.yaml", grid_yaml)
        result = CliRunner().invoke(
            main, ["build", str(input_file), "--format", "obj", "--grouping", "instance"]
        )
        assert result.exit_code == 0, result.output
        text = (tmp_path / "grid.obj").read_text()
        assert text.count("\ng tri_") == 20
        assert text.startswith("v ")

    def test_build_obj_color_groups_with_materials(self, spiral_yaml, tmp_path):
        input_file = _write(tmp_path, "spiral.yaml", spiral_yaml)
        mtl = tmp_path / "spiral.mtl"
        result = CliRunner().invoke(
            main,
            ["build", str(input_file), "--format", "obj", "--grouping", "color", "--mtl", str(mtl)],
        )
        assert result.exit_code == 0, result.output
        lines = (tmp_path / "spiral.obj").read_text().splitlines()
        assert lines[0] == "mtllib spiral.mtl"
        groups = [line for line in lines if line.startswith("g #")]
        assert groups
        assert mtl.read_text().count("newmtl ") == len(groups)

    def test_mtl_needs_obj(self, spiral_yaml, tmp_path):
        input_file = _write(tmp_path, "spiral.yaml", spiral_yaml)
        result = CliRunner().invoke(
            main, ["build", str(input_file), "--mtl", str(tmp_path / "out.mtl")]
        )
        assert result.exit_code == 2
        assert "--mtl requires --format obj" in result.output
        assert not (tmp_path / "out.mtl").exists()

    def test_build_max_depth_override(self, spiral_yaml, tmp_path):
        input_file = _write(tmp_path, "spiral.yaml", spiral_yaml)
        output_file = tmp_path / "short.glb"
        result = CliRunner().invoke(
            main, ["build", str(input_file), "-o", str(output_file), "--max-depth", "2"]
        )
        assert result.exit_code == 0, result.output
        assert pygltflib.GLTF2().load(str(output_file)).accessors[0].count == 2 * 8

    def test_build_with_workers(self, spiral_yaml, tmp_path):
        input_file = _write(tmp_path, "spiral.yaml", spiral_yaml)
        seq, par = tmp_path / "seq.glb", tmp_path / "par.glb"
        runner = CliRunner()
        assert runner.invoke(main, ["build", str(input_file), "-o", str(seq)]).exit_code == 0
        result = runner.invoke(main, ["build", str(input_file), "-o", str(par), "--workers", "3"])
        assert result.exit_code == 0, result.output
        assert seq.read_bytes() == par.read_bytes()

    def test_points_need_obj(self, tmp_path):
        input_file = _write(tmp_path, "points.yaml", POINTS_YAML)
        runner = CliRunner()
        result = runner.invoke(main, ["build", str(input_file)])
        assert result.exit_code != 0
        assert "no triangles" in result.output
        result = runner.invoke(main, ["build", str(input_file), "--format", "obj"])
        assert result.exit_code == 0, result.output
        assert (tmp_path / "points.obj").read_text().count("p ") == 3

    def test_missing_file(self, tmp_path):
        result = CliRunner().invoke(main, ["build", str(tmp_path / "missing.yaml")])
        assert result.exit_code != 0

    def test_invalid_document(self, tmp_path):
        input_file = _write(tmp_path, "bad.yaml", "version: '1.0'\n")
        result = CliRunner().invoke(main, ["build", str(input_file)])
        assert result.exit_code != 0
        assert "Error" in result.output

    def test_unknown_root(self, spiral_yaml, tmp_path):
        input_file = _write(tmp_path, "spiral.yaml", spiral_yaml)
        result = CliRunner().invoke(main, ["build", str(input_file), "--root", "nope"])
        assert result.exit_code != 0
        assert "Root rule 'nope' is not defined" in result.output

    def test_warn_as_error(self, tmp_path):
        input_file = _write(tmp_path, "orphan.yaml", ORPHAN_YAML)
        result = CliRunner().invoke(main, ["build", str(input_file), "--warn-as-error", "W01"])
        assert result.exit_code != 0
        assert "[W01]" in result.output

    def test_suppress_warning(self, tmp_path):
        input_file = _write(tmp_path, "orphan.yaml", ORPHAN_YAML)
        result = CliRunner().invoke(
            main,
            ["build", str(input_file), "--warn-as-error", "W01", "--suppress-warning", "W01"],
        )
        assert result.exit_code == 0, result.output

    def test_unknown_warning_code(self, tmp_path):
        input_file = _write(tmp_path, "orphan.yaml", ORPHAN_YAML)
        result = CliRunner().invoke(main, ["build", str(input_file), "--suppress-warning", "W77"])
        assert result.exit_code != 0
        assert "Unknown warning code" in result.output


class TestInspect:
    def test_json(self, grid_yaml, tmp_path):
        input_file = _write(tmp_path, "grid.yaml", grid_yaml)
        result = CliRunner().invoke(main, ["inspect", str(input_file), "--format", "json"])
        assert result.exit_code == 0, result.output
        summary = json.loads(result.output)
        assert summary["root"] == "grid"
        assert summary["max_depth"] == 10
        assert summary["reachable_rules"] == ["grid", "row"]
        assert summary["recursive_rules"] == []
        assert summary["instances"] == 20
        assert summary["instances_per_shape"] == {"tri": 20}
        assert summary["vertices"] == 60
        assert summary["faces"] == 20

    def test_text(self, spiral_yaml, tmp_path):
        input_file = _write(tmp_path, "spiral.yaml", spiral_yaml)
        result = CliRunner().invoke(main, ["inspect", str(input_file), "--max-depth", "3"])
        assert result.exit_code == 0, result.output
        assert "root: spiral (max_depth 3)" in result.output
        assert "recursive: spiral" in result.output
        assert "instances: 3" in result.output
        assert "  cube: 3" in result.output

    def test_empty_expansion(self, spiral_yaml, tmp_path):
        input_file = _write(tmp_path, "spiral.yaml", spiral_yaml)
        result = CliRunner().invoke(
            main, ["inspect", str(input_file), "--format", "json", "--max-depth", "0"]
        )
        assert result.exit_code == 0, result.output
        summary = json.loads(result.output)
        assert summary["instances"] == 0
        assert summary["bounds"] is None
