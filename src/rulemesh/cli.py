"""Click CLI entry point for rulemesh."""

from __future__ import annotations

import json
import logging
from collections import Counter
from pathlib import Path

import click

from rulemesh import __version__
from rulemesh.assembler import Mesh
from rulemesh.errors import RulemeshError
from rulemesh.exporter import export_glb, export_obj
from rulemesh.parser import LoadedRules, load_rules
from rulemesh.pipeline import generate
from rulemesh.validation import validate
from rulemesh.warning_policy import WarningPolicy

logger = logging.getLogger(__name__)


def setup_default_logging(level: str = "WARNING") -> None:
    """Apply a minimal logging configuration once; no-op if handlers exist."""
    root = logging.getLogger()
    if root.handlers:
        return
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def _build_warning_policy(
    warn_as_error: str | None, suppress_warning: str | None
) -> WarningPolicy | None:
    try:
        return WarningPolicy.from_options(warn_as_error, suppress_warning)
    except ValueError as e:
        raise click.ClickException(str(e)) from e


def _default_output(input_file: Path, extension: str) -> Path:
    stem = input_file.name
    for suffix in [".rules.yaml", ".rules.yml", ".yaml", ".yml"]:
        if stem.endswith(suffix):
            stem = stem[: -len(suffix)]
            break
    return input_file.parent / f"{stem}.{extension}"


def _load(
    input_file: Path,
    max_depth: int | None,
    root: str | None,
    warning_policy: WarningPolicy | None,
) -> tuple[LoadedRules, str]:
    loaded = load_rules(input_file, max_depth=max_depth)
    root_name = root or loaded.root
    validate(
        loaded.graph,
        root_name,
        shapes=loaded.shapes,
        policy=loaded.policy,
        warning_policy=warning_policy,
    )
    return loaded, root_name


_max_depth_option = click.option(
    "--max-depth",
    type=click.IntRange(min=0),
    default=None,
    help="Override the document's recursion depth bound.",
)
_root_option = click.option(
    "--root",
    type=str,
    default=None,
    help="Expand this rule instead of the document's root.",
)


@click.group()
@click.version_option(version=__version__, prog_name="rulemesh")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging verbosity.",
)
def main(log_level: str = "WARNING") -> None:
    """rulemesh: expand transformation rules into meshes."""
    setup_default_logging(log_level)


@main.command()
@click.argument("input_file", type=click.Path(exists=True, path_type=Path))
@click.option(
    "-o",
    "--output",
    type=click.Path(path_type=Path),
    default=None,
    help="Output file path. Defaults to input name with the format's extension.",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["glb", "obj"]),
    default="glb",
    show_default=True,
    help="Output mesh format.",
)
@click.option(
    "--grouping",
    type=click.Choice(["all", "instance", "color"]),
    default="all",
    show_default=True,
    help="OBJ grouping: one object, one group per instance, or one group per color.",
)
@click.option(
    "--mtl",
    "mtl_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Also write per-color materials to this MTL file (OBJ only).",
)
@_max_depth_option
@_root_option
@click.option(
    "--workers",
    type=click.IntRange(min=1),
    default=None,
    help="Expand root subtrees on this many threads.",
)
@click.option(
    "--warn-as-error",
    "warn_as_error",
    type=str,
    default=None,
    help="Comma-separated W-codes to treat as errors (e.g. W01,W02).",
)
@click.option(
    "--suppress-warning",
    "suppress_warning",
    type=str,
    default=None,
    help="Comma-separated W-codes to suppress (e.g. W03).",
)
def build(
    input_file: Path,
    output: Path | None,
    output_format: str = "glb",
    grouping: str = "all",
    mtl_path: Path | None = None,
    max_depth: int | None = None,
    root: str | None = None,
    workers: int | None = None,
    warn_as_error: str | None = None,
    suppress_warning: str | None = None,
) -> None:
    """Expand a rule document and write the resulting mesh."""
    warning_policy = _build_warning_policy(warn_as_error, suppress_warning)
    if mtl_path is not None and output_format != "obj":
        raise click.UsageError("--mtl requires --format obj")
    if output is None:
        output = _default_output(input_file, output_format)

    try:
        loaded, root_name = _load(input_file, max_depth, root, warning_policy)
        mesh = generate(
            loaded.graph, root_name, loaded.shapes, policy=loaded.policy, workers=workers
        )
        logger.info(
            "%s: %d instances, %d vertices, %d faces",
            input_file,
            len(mesh.instance_ranges),
            mesh.vertex_count,
            mesh.face_count,
        )
        if output_format == "obj":
            export_obj(mesh, output, grouping=grouping, mtl_path=mtl_path)
        else:
            export_glb(mesh, output)
        click.echo(f"Built: {output}")
    except RulemeshError as e:
        raise click.ClickException(str(e)) from e


def _summarize(loaded: LoadedRules, root: str, mesh: Mesh) -> dict:
    per_shape = Counter(r.shape_id for r in mesh.instance_ranges)
    bounds = mesh.bounds()
    return {
        "root": root,
        "max_depth": loaded.policy.max_depth,
        "rules": len(loaded.graph),
        "reachable_rules": loaded.graph.reachable(root),
        "recursive_rules": [r.name for r in loaded.graph if loaded.graph.is_recursive(r.name)],
        "instances": len(mesh.instance_ranges),
        "instances_per_shape": dict(sorted(per_shape.items())),
        "vertices": mesh.vertex_count,
        "faces": mesh.face_count,
        "bounds": None
        if bounds is None
        else {"min": bounds[0].tolist(), "max": bounds[1].tolist()},
    }


def _render_text(summary: dict) -> str:
    lines = [
        f"root: {summary['root']} (max_depth {summary['max_depth']})",
        f"rules: {summary['rules']} ({len(summary['reachable_rules'])} reachable)",
    ]
    if summary["recursive_rules"]:
        lines.append("recursive: " + ", ".join(summary["recursive_rules"]))
    lines.append(f"instances: {summary['instances']}")
    for shape_id, count in summary["instances_per_shape"].items():
        lines.append(f"  {shape_id}: {count}")
    lines.append(f"vertices: {summary['vertices']}")
    lines.append(f"faces: {summary['faces']}")
    if summary["bounds"] is not None:
        lo = ", ".join(f"{v:.4f}" for v in summary["bounds"]["min"])
        hi = ", ".join(f"{v:.4f}" for v in summary["bounds"]["max"])
        lines.append(f"bounds: [{lo}] .. [{hi}]")
    return "\n".join(lines) + "\n"


@main.command()
@click.argument("input_file", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["text", "json"]),
    default="text",
    show_default=True,
    help="Inspection output format.",
)
@_max_depth_option
@_root_option
def inspect(
    input_file: Path,
    output_format: str = "text",
    max_depth: int | None = None,
    root: str | None = None,
) -> None:
    """Report what a rule document expands to without exporting."""
    try:
        loaded, root_name = _load(input_file, max_depth, root, None)
        mesh = generate(loaded.graph, root_name, loaded.shapes, policy=loaded.policy)
    except RulemeshError as e:
        raise click.ClickException(str(e)) from e

    summary = _summarize(loaded, root_name, mesh)
    if output_format == "json":
        click.echo(json.dumps(summary, indent=2))
    else:
        click.echo(_render_text(summary), nl=False)
