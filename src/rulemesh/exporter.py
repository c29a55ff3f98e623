"""Mesh writers: binary glTF via pygltflib, and Wavefront OBJ with optional MTL."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal, TextIO

import numpy as np
import pygltflib

from rulemesh.assembler import InstanceRange, Mesh
from rulemesh.errors import ExportError

Grouping = Literal["all", "instance", "color"]


def export_glb(mesh: Mesh, output_path: Path, *, name: str = "rulemesh") -> None:
    """Write ``mesh`` as a single-primitive GLB with POSITION, COLOR_0 and indices.

    Raises:
        ExportError: If the mesh has no triangles or writing fails.
    """
    try:
        gltf = _build_gltf(mesh, name)
        output_path.write_bytes(b"".join(gltf.save_to_bytes()))
    except Exception as e:
        if isinstance(e, ExportError):
            raise
        raise ExportError(f"Failed to export glTF: {e}") from e


def _append_view(
    gltf: pygltflib.GLTF2, blob_data: bytearray, data: bytes, target: int
) -> int:
    offset = len(blob_data)
    blob_data.extend(data)
    # Keep every view 4-byte aligned.
    blob_data.extend(b"\x00" * ((4 - len(blob_data) % 4) % 4))
    gltf.bufferViews.append(
        pygltflib.BufferView(buffer=0, byteOffset=offset, byteLength=len(data), target=target)
    )
    return len(gltf.bufferViews) - 1


def _build_gltf(mesh: Mesh, name: str) -> pygltflib.GLTF2:
    triangles = mesh.triangles()
    if len(triangles) == 0:
        raise ExportError("Mesh has no triangles to export")

    gltf = pygltflib.GLTF2(
        scene=0,
        scenes=[pygltflib.Scene(nodes=[0])],
        nodes=[pygltflib.Node(name=name, mesh=0)],
        meshes=[],
        accessors=[],
        bufferViews=[],
        buffers=[],
    )
    blob_data = bytearray()

    positions = mesh.positions.astype(np.float32)
    pos_bv_idx = _append_view(gltf, blob_data, positions.tobytes(), pygltflib.ARRAY_BUFFER)
    gltf.accessors.append(
        pygltflib.Accessor(
            bufferView=pos_bv_idx,
            byteOffset=0,
            componentType=pygltflib.FLOAT,
            count=len(positions),
            type=pygltflib.VEC3,
            max=positions.max(axis=0).tolist(),
            min=positions.min(axis=0).tolist(),
        )
    )
    pos_acc_idx = len(gltf.accessors) - 1

    colors = mesh.colors.astype(np.float32)
    color_bv_idx = _append_view(gltf, blob_data, colors.tobytes(), pygltflib.ARRAY_BUFFER)
    gltf.accessors.append(
        pygltflib.Accessor(
            bufferView=color_bv_idx,
            byteOffset=0,
            componentType=pygltflib.FLOAT,
            count=len(colors),
            type=pygltflib.VEC3,
        )
    )
    color_acc_idx = len(gltf.accessors) - 1

    indices = triangles.reshape(-1).astype(np.uint32)
    idx_bv_idx = _append_view(
        gltf, blob_data, indices.tobytes(), pygltflib.ELEMENT_ARRAY_BUFFER
    )
    gltf.accessors.append(
        pygltflib.Accessor(
            bufferView=idx_bv_idx,
            byteOffset=0,
            componentType=pygltflib.UNSIGNED_INT,
            count=len(indices),
            type=pygltflib.SCALAR,
        )
    )
    idx_acc_idx = len(gltf.accessors) - 1

    gltf.meshes.append(
        pygltflib.Mesh(
            name=name,
            primitives=[
                pygltflib.Primitive(
                    attributes=pygltflib.Attributes(POSITION=pos_acc_idx, COLOR_0=color_acc_idx),
                    indices=idx_acc_idx,
                )
            ],
        )
    )

    gltf.buffers = [pygltflib.Buffer(byteLength=len(blob_data))]
    gltf.set_binary_blob(bytes(blob_data))
    return gltf


def _color_key(mesh: Mesh, inst: InstanceRange) -> str | None:
    """Hex name of an instance's color, taken from its first vertex."""
    start, end = inst.vertices
    if start == end:
        return None
    r, g, b = (int(round(c * 255)) for c in mesh.colors[start])
    return f"#{r:02x}{g:02x}{b:02x}"


def write_obj(
    mesh: Mesh, sink: TextIO, *, grouping: Grouping = "all", mtllib: str | None = None
) -> None:
    """Write ``mesh`` as Wavefront OBJ text with per-vertex colors.

    ``grouping="instance"`` emits one ``g`` group per instance and
    ``grouping="color"`` one per distinct instance color. With ``mtllib`` set
    the file references that material library and selects one material per
    color (see ``write_mtl``). Faces keep their polygon arity and use 1-based
    indices.
    """
    if grouping not in ("all", "instance", "color"):
        raise ExportError(f"Unknown OBJ grouping: {grouping!r}")

    if mtllib is not None:
        sink.write(f"mtllib {mtllib}\n")
    for (x, y, z), (r, g, b) in zip(mesh.positions.tolist(), mesh.colors.tolist()):
        sink.write(f"v {x:.6f} {y:.6f} {z:.6f} {r:.6f} {g:.6f} {b:.6f}\n")

    if grouping == "all" and mtllib is None:
        for face in mesh.faces:
            _write_face(sink, face)
        return

    if grouping == "color":
        by_color: dict[str | None, list[InstanceRange]] = {}
        for inst in mesh.instance_ranges:
            by_color.setdefault(_color_key(mesh, inst), []).append(inst)
        for key, instances in by_color.items():
            if key is None:
                continue
            sink.write(f"g {key}\n")
            if mtllib is not None:
                sink.write(f"usemtl {key}\n")
            for inst in instances:
                _write_faces(sink, mesh, inst)
        return

    material = None
    for n, inst in enumerate(mesh.instance_ranges):
        if grouping == "instance":
            sink.write(f"g {inst.shape_id}_{n}\n")
        key = _color_key(mesh, inst)
        if mtllib is not None and key is not None and (grouping == "instance" or key != material):
            sink.write(f"usemtl {key}\n")
            material = key
        _write_faces(sink, mesh, inst)


def write_mtl(mesh: Mesh, sink: TextIO) -> None:
    """Write one flat diffuse material per distinct instance color."""
    seen: set[str] = set()
    for inst in mesh.instance_ranges:
        key = _color_key(mesh, inst)
        if key is None or key in seen:
            continue
        seen.add(key)
        r, g, b = mesh.colors[inst.vertices[0]].tolist()
        sink.write(f"newmtl {key}\nKd {r:.6f} {g:.6f} {b:.6f}\nillum 0\n")


def _write_faces(sink: TextIO, mesh: Mesh, inst: InstanceRange) -> None:
    start, end = inst.faces
    for face in mesh.faces[start:end]:
        _write_face(sink, face)


def _write_face(sink: TextIO, face: tuple[int, ...]) -> None:
    if len(face) == 1:
        sink.write(f"p {face[0] + 1}\n")
    elif len(face) == 2:
        sink.write(f"l {face[0] + 1} {face[1] + 1}\n")
    else:
        sink.write("f " + " ".join(str(i + 1) for i in face) + "\n")


def export_obj(
    mesh: Mesh,
    output_path: Path,
    *,
    grouping: Grouping = "all",
    mtl_path: Path | None = None,
) -> None:
    """Write ``mesh`` to an OBJ file, and its materials to ``mtl_path`` if given.

    Raises:
        ExportError: If a file cannot be written.
    """
    mtllib = None
    try:
        if mtl_path is not None:
            mtllib = Path(os.path.relpath(mtl_path, output_path.parent)).as_posix()
            with mtl_path.open("w", encoding="utf-8") as f:
                write_mtl(mesh, f)
        with output_path.open("w", encoding="utf-8") as f:
            write_obj(mesh, f, grouping=grouping, mtllib=mtllib)
    except OSError as e:
        raise ExportError(f"Failed to export OBJ: {e}") from e
