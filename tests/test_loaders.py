"""Tests for meshsdf.loaders (OBJ and STL)."""
from __future__ import annotations

import struct

import numpy as np
import numpy.testing as npt
import pytest

from meshsdf import Mesh, OBJParseError, convert, load_obj, load_stl, parse_obj

from conftest import make_box

_TRIANGLE_OBJ = """\
v 0 0 0
v 1 0 0
v 0 1 0
f 1 2 3
"""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _write_binary_stl(triangles: np.ndarray, header: bytes = b"") -> bytes:
    header  = header.ljust(80, b"\x00")
    count   = struct.pack("<I", len(triangles))
    records = bytearray()
    for tri in triangles:
        records += struct.pack("<fff", 0.0, 0.0, 0.0)
        for v in tri:
            records += struct.pack("<fff", float(v[0]), float(v[1]), float(v[2]))
        records += struct.pack("<H", 0)
    return header + count + bytes(records)


def _write_ascii_stl(triangles: np.ndarray) -> str:
    lines = ["solid test"]
    for tri in triangles:
        lines.append("  facet normal 0 0 0")
        lines.append("    outer loop")
        for v in tri:
            lines.append(f"      vertex {v[0]:.6g} {v[1]:.6g} {v[2]:.6g}")
        lines.append("    endloop")
        lines.append("  endfacet")
    lines.append("endsolid test")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# parse_obj
# ---------------------------------------------------------------------------

class TestParseObj:
    def test_simple_triangle(self):
        mesh = parse_obj(_TRIANGLE_OBJ)
        assert isinstance(mesh, Mesh)
        npt.assert_array_equal(mesh.vertices, [0, 0, 0, 1, 0, 0, 0, 1, 0])
        npt.assert_array_equal(mesh.indices, [0, 1, 2])
        assert mesh.vertices.dtype == np.float32
        assert mesh.indices.dtype == np.uint32

    def test_quad_is_fan_triangulated(self):
        mesh = parse_obj("v 0 0 0\nv 1 0 0\nv 1 1 0\nv 0 1 0\nf 1 2 3 4\n")
        npt.assert_array_equal(mesh.indices, [0, 1, 2, 0, 2, 3])

    def test_pentagon(self):
        verts = "".join(f"v {i} {i * i} 0\n" for i in range(5))
        mesh = parse_obj(verts + "f 1 2 3 4 5\n")
        assert mesh.triangle_count == 3
        npt.assert_array_equal(mesh.indices, [0, 1, 2, 0, 2, 3, 0, 3, 4])

    @pytest.mark.parametrize("face", [
        "f 1/1 2/2 3/3",
        "f 1//1 2//2 3//3",
        "f 1/1/1 2/2/2 3/3/3",
    ])
    def test_texture_and_normal_tokens(self, face):
        text = "v 0 0 0\nv 1 0 0\nv 0 1 0\nvt 0 0\nvn 0 0 1\n" + face
        npt.assert_array_equal(parse_obj(text).indices, [0, 1, 2])

    def test_comments_blank_lines_and_other_statements(self):
        text = (
            "# exported\n\n"
            "o thing\ng part\nusemtl red\n"
            "v 0 0 0  # origin\n"
            "   v 1 0 0\n"
            "v 0 1 0 1.0\n"
            "s off\n"
            "f 1 2 3\n"
        )
        mesh = parse_obj(text)
        assert mesh.vertex_count == 3
        assert mesh.triangle_count == 1

    def test_negative_indices(self):
        text = "v 9 9 9\nv 0 0 0\nv 1 0 0\nv 0 1 0\nf -3 -2 -1\n"
        npt.assert_array_equal(parse_obj(text).indices, [1, 2, 3])

    def test_negative_index_is_relative_to_vertices_so_far(self):
        text = "v 0 0 0\nv 1 0 0\nv 0 1 0\nf -3 -2 -1\nv 5 5 5\nf -1 -2 -3\n"
        npt.assert_array_equal(parse_obj(text).indices, [0, 1, 2, 3, 2, 1])

    def test_crlf(self):
        mesh = parse_obj(_TRIANGLE_OBJ.replace("\n", "\r\n"))
        assert mesh.triangle_count == 1

    def test_scientific_notation(self):
        mesh = parse_obj("v 1e-3 -2.5E2 0\nv 1 0 0\nv 0 1 0\nf 1 2 3\n")
        npt.assert_allclose(mesh.vertices[:3], [1e-3, -250.0, 0.0], rtol=1e-6)


class TestParseObjErrors:
    @pytest.mark.parametrize("text,line,message", [
        ("v 1 2\n", 1, "Vertex must have at least 3 coordinates"),
        ("v 0 0 0\nv a b c\n", 2, "Invalid vertex coordinates"),
        ("v nan 0 0\n", 1, "Invalid vertex coordinates"),
        ("v 0 0 0\nv 1 -inf 0\n", 2, "Invalid vertex coordinates"),
        (_TRIANGLE_OBJ + "f 1 2\n", 5, "Face must have at least 3 vertices"),
        (_TRIANGLE_OBJ + "f 0 1 2\n", 5, "Face vertex index cannot be 0"),
        (_TRIANGLE_OBJ + "f 1 2 x\n", 5, "Invalid face vertex index: x"),
        (_TRIANGLE_OBJ + "f 1 2 4\n", 5, "Face vertex index 4 out of range (3 vertices)"),
        (_TRIANGLE_OBJ + "f -4 1 2\n", 5, "Face vertex index -4 out of range (3 vertices)"),
    ])
    def test_line_numbered(self, text, line, message):
        with pytest.raises(OBJParseError) as info:
            parse_obj(text)
        assert info.value.line == line
        assert str(info.value) == f"Line {line}: {message}"

    def test_forward_reference(self):
        with pytest.raises(OBJParseError, match="out of range"):
            parse_obj("v 0 0 0\nv 1 0 0\nf 1 2 3\nv 0 1 0\n")

    def test_no_vertices(self):
        with pytest.raises(OBJParseError, match="No vertices found in OBJ file"):
            parse_obj("# nothing here\n")

    def test_no_faces(self):
        with pytest.raises(OBJParseError, match="No faces found in OBJ file") as info:
            parse_obj("v 0 0 0\nv 1 0 0\nv 0 1 0\n")
        assert info.value.line is None

    def test_is_value_error(self):
        with pytest.raises(ValueError):
            parse_obj("")


class TestLoadObj:
    def test_from_file(self, tmp_path):
        path = tmp_path / "tri.obj"
        path.write_text(_TRIANGLE_OBJ)
        mesh = load_obj(path)
        assert mesh.triangle_count == 1
        assert load_obj(str(path)).vertex_count == 3

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_obj(tmp_path / "missing.obj")


# ---------------------------------------------------------------------------
# load_stl
# ---------------------------------------------------------------------------

class TestLoadStl:
    def setup_method(self):
        self.tris = make_box().triangles()

    def test_binary_shape(self, tmp_path):
        stl = tmp_path / "box.stl"
        stl.write_bytes(_write_binary_stl(self.tris))
        mesh = load_stl(stl)
        assert mesh.vertex_count == 36
        assert mesh.triangle_count == 12
        npt.assert_array_equal(mesh.indices, np.arange(36))

    def test_binary_values(self, tmp_path):
        stl = tmp_path / "box.stl"
        stl.write_bytes(_write_binary_stl(self.tris))
        npt.assert_allclose(load_stl(stl).triangles(), self.tris, atol=1e-6)

    def test_binary_with_solid_header(self, tmp_path):
        stl = tmp_path / "box.stl"
        stl.write_bytes(_write_binary_stl(self.tris, header=b"solid exported by CAD"))
        assert load_stl(stl).triangle_count == 12

    def test_ascii_shape(self, tmp_path):
        stl = tmp_path / "box.stl"
        stl.write_text(_write_ascii_stl(self.tris))
        mesh = load_stl(stl)
        assert mesh.vertex_count == 36
        assert mesh.triangle_count == 12

    def test_ascii_values(self, tmp_path):
        stl = tmp_path / "box.stl"
        stl.write_text(_write_ascii_stl(self.tris))
        npt.assert_allclose(load_stl(stl).triangles(), self.tris, atol=1e-5)

    def test_non_finite_vertex_rejected(self, tmp_path):
        tris = self.tris.copy()
        tris[4, 1, 2] = np.nan
        stl = tmp_path / "bad.stl"
        stl.write_bytes(_write_binary_stl(tris))
        with pytest.raises(ValueError, match="vertex 13 has a non-finite"):
            load_stl(stl)

    def test_ascii_incomplete_facet_dropped(self, tmp_path):
        text = _write_ascii_stl(self.tris[:2]) + "\nvertex 1 2 3\nvertex 4 5 6\n"
        stl = tmp_path / "partial.stl"
        stl.write_text(text)
        assert load_stl(stl).triangle_count == 2

    def test_converts(self, tmp_path):
        stl = tmp_path / "box.stl"
        stl.write_bytes(_write_binary_stl(self.tris))
        with convert(load_stl(stl), resolution=10, padding=1.0) as field:
            assert field.value(5, 5, 5) < 0
            assert field.value(0, 0, 0) > 0
